"""Result and collaborator payload models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from screen_tasks.models.task import BlockerContext, TaskAction
from screen_tasks.state import TaskStatus


@dataclass
class ClauseResult:
    """Outcome of one expected-outcome clause."""
    clause: str
    passed: bool
    detail: str = ""


@dataclass
class VerificationResult:
    """Result of verifying a step against its expected outcome.

    Attributes:
        passed: True only when every declared clause passed.
        reason: Human-readable summary; names the first failing clause.
        clauses: Per-clause results, in evaluation order.
        before_hash: Hash of the cleaned DOM before the action.
        after_hash: Hash of the cleaned DOM after the action.
    """
    passed: bool
    reason: str
    clauses: list[ClauseResult] = field(default_factory=list)
    before_hash: str | None = None
    after_hash: str | None = None

    @property
    def dom_changed(self) -> bool:
        return self.before_hash != self.after_hash


@dataclass
class ActuatorResult:
    """What the remote actuator reports after applying an action."""
    dom_snapshot: str = ""
    url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StepResult:
    """Result of submitting one step to the engine.

    Attributes:
        task_id: The task the step belongs to.
        step_index: Index the step was recorded at.
        status: Task status after the step.
        action: The step record that was stored (or already stored).
        replayed: True when the step was already recorded and not re-executed.
        verification: Verification result of the recorded action, if verified.
        correction_attempts: Number of correction attempts used.
        skill_hints_used: Skill ids injected into correction prompts.
        blocker: Blocker that paused the task, if any.
        error: Last failure reason when the task failed.
    """
    task_id: str
    step_index: int
    status: TaskStatus
    action: TaskAction
    replayed: bool = False
    verification: VerificationResult | None = None
    correction_attempts: int = 0
    skill_hints_used: list[str] = field(default_factory=list)
    blocker: BlockerContext | None = None
    error: str | None = None


class MemoryScope(str, Enum):
    TASK = "task"
    SESSION = "session"


@dataclass
class MemoryOperationResult:
    """Result of a memory primitive.

    ``success`` is False only when the operation could not run (owner
    missing, key missing on export). A recall of an absent key succeeds
    with ``found=False``.
    """
    success: bool
    value: Any = None
    found: bool = False
    error: str | None = None
    error_code: str | None = None


@dataclass
class MemoryActionResult:
    """Structured result of a memory action, for the LLM's next turn."""
    success: bool
    action: str
    message: str
    key: str | None = None
    scope: MemoryScope | None = None
    value: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "key": self.key,
            "scope": self.scope.value if self.scope else None,
            "value": self.value,
            "error": self.error,
            "message": self.message,
        }
