"""Task, task action and browser session models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from screen_tasks.state import TaskStatus
from screen_tasks.utils.urls import get_hostname


@dataclass
class BlockerContext:
    """Why a task paused and what a human needs to do about it.

    Attributes:
        type: Blocker category (login_failure, mfa_required, captcha, ...).
        message: Human-readable explanation shown to the user.
        matched_text: The page text that triggered detection, if any.
        url: Page URL where the blocker was seen.
        confidence: Detection confidence (0.0 to 1.0).
        retry_after_seconds: Wait the site asked for (rate limits only).
        detected_at: When the blocker was detected.
    """
    type: str
    message: str
    matched_text: str | None = None
    url: str | None = None
    confidence: float = 1.0
    retry_after_seconds: int | None = None
    detected_at: datetime = field(default_factory=datetime.now)


@dataclass
class Task:
    """One in-flight or completed multi-step job.

    Attributes:
        task_id: Opaque unique id.
        tenant_id: Isolation boundary (user or organization).
        user_id: User who started the task.
        session_id: Browser session the task belongs to.
        query: The human-level goal.
        url: Last known page URL of the task.
        status: Current lifecycle status.
        current_step_index: Index of the next step to be recorded.
        memory: Task-scoped key/value memory (JSON values).
        blocker_context: Present only while awaiting_user.
        paused_at: Present only while awaiting_user.
        user_resolution_data: Human-supplied data for the next step.
        last_error: Last verification/actuator reason when the task failed.
        created_at: Creation timestamp.
        updated_at: Last mutation timestamp.
    """
    task_id: str
    tenant_id: str
    user_id: str
    session_id: str
    query: str
    url: str | None = None
    status: TaskStatus = TaskStatus.ACTIVE
    current_step_index: int = 0
    memory: dict[str, Any] = field(default_factory=dict)
    blocker_context: BlockerContext | None = None
    paused_at: datetime | None = None
    user_resolution_data: dict[str, Any] | None = None
    last_error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def domain(self) -> str:
        """Hostname of the task URL, used to scope skills."""
        return get_hostname(self.url) if self.url else ""

    def summary(self) -> dict[str, Any]:
        """Compact view returned by the task lifecycle API."""
        return {
            "taskId": self.task_id,
            "query": self.query,
            "status": TaskStatus(self.status).value,
            "currentStepIndex": self.current_step_index,
            "url": self.url,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class TaskAction:
    """Immutable record of one executed step.

    Unique on ``(tenant_id, task_id, step_index)``.

    Attributes:
        tenant_id: Tenant owning the task.
        task_id: Task the step belongs to.
        user_id: User who initiated the task.
        step_index: 0-based position of the step.
        thought: LLM rationale for the step.
        action: Serialized action descriptor, e.g. ``click(12)``.
        expected_outcome: Structured predicate the step was verified against.
        dom_snapshot: Post-action DOM (skeleton when configured).
        url: Page URL after the action.
        passed: Whether the step's outcome was verified.
        reason: Verification/actuator reason for the recorded outcome.
        metrics: Timings and counters, observability only.
        created_at: Write timestamp (informational only).
    """
    tenant_id: str
    task_id: str
    user_id: str
    step_index: int
    thought: str
    action: str
    expected_outcome: dict[str, Any] = field(default_factory=dict)
    dom_snapshot: str | None = None
    url: str | None = None
    passed: bool = True
    reason: str = ""
    metrics: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.tenant_id, self.task_id, self.step_index)


@dataclass
class BrowserSession:
    """A viewer's browser session; owns the opt-in session memory."""
    session_id: str
    tenant_id: str
    user_id: str
    memory: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
