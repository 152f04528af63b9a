"""TaskEngine - drives multi-step browser tasks to completion.

One call to :meth:`TaskEngine.submit_step` runs one step: it obtains a
candidate action, applies it (through the actuator, or locally for
memory and terminal actions), verifies the declared outcome, falls back
to bounded self-correction on failure, and records exactly one
:class:`TaskAction` at the task's current step index.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import uuid4

from screen_tasks.blockers import detect_blocker
from screen_tasks.config import EngineConfig
from screen_tasks.dom.normalizer import clean_dom, skeletonize
from screen_tasks.errors import (
    ActuatorError,
    InvalidTaskState,
    PersistenceConflict,
    ProposalError,
    TaskNotFoundError,
    ValidationError,
    VerificationFailed,
)
from screen_tasks.interfaces.collaborators import ActionProposer, Actuator
from screen_tasks.interfaces.storage import MemoryRepository, SkillRepository, TaskRepository
from screen_tasks.memory import MemoryService, is_memory_action, parse_memory_action
from screen_tasks.models.result import MemoryScope, StepResult, VerificationResult
from screen_tasks.models.skill import CorrectionStrategy, FailedState, SkillHint, SuccessfulAction
from screen_tasks.models.task import BlockerContext, BrowserSession, Task, TaskAction
from screen_tasks.prompts import (
    CORRECTION_SYSTEM,
    CORRECTION_USER,
    PROPOSE_ACTION_SYSTEM,
    PROPOSE_ACTION_USER,
    ActionProposal,
)
from screen_tasks.skills import SkillLibrary, format_skill_hints
from screen_tasks.state import ACTIVE_STATUSES, TaskStatus, ensure_transition
from screen_tasks.utils.masking import mask_sensitive
from screen_tasks.utils.serialization import to_jsonable
from screen_tasks.utils.urls import get_hostname, get_origin
from screen_tasks.verification import verify

TERMINAL_ACTIONS = ("finish", "fail")
HISTORY_LIMIT = 10

_CALL_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?:\((.*)\))?\s*$", re.S)


def parse_action(action: str) -> tuple[str, list[str]] | None:
    """Split an action call into its name and raw arguments.

    ``click(12)`` gives ``("click", ["12"])`` and
    ``setValue(4, "a, b")`` gives ``("setValue", ["4", '"a, b"'])``.
    Commas inside quotes, brackets or braces do not split arguments.

    Returns:
        ``(name, args)``, or None if ``action`` is not call-shaped.
    """
    match = _CALL_RE.match(action or "")
    if not match:
        return None
    name, body = match.group(1), match.group(2)
    if not body or not body.strip():
        return name, []

    args: list[str] = []
    depth = 0
    quote: str | None = None
    current = []
    escaped = False
    for char in body:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and quote:
            current.append(char)
            escaped = True
            continue
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    args.append("".join(current).strip())
    return name, args


def _unquote(arg: str) -> str:
    try:
        value = json.loads(arg)
    except ValueError:
        return arg.strip("\"'")
    return value if isinstance(value, str) else arg


@dataclass
class _Attempt:
    """One applied candidate action and what came of it."""
    proposal: ActionProposal
    after_dom: str
    after_url: str | None
    verification: VerificationResult | None = None
    error: VerificationFailed | ActuatorError | None = None
    blocker: BlockerContext | None = None
    terminal: str | None = None
    local: bool = False

    @property
    def passed(self) -> bool:
        return self.error is None and self.blocker is None

    @property
    def reason(self) -> str:
        if self.blocker is not None:
            return f"Blocked ({self.blocker.type}): {self.blocker.message}"
        if self.error is not None:
            return str(self.error)
        return self.verification.reason if self.verification else ""


@dataclass
class _Correction:
    """Result of the correction sub-flow with its pending skill feedback."""
    final: _Attempt
    attempts: int = 0
    hints: list[SkillHint] = field(default_factory=list)
    learned: tuple[FailedState, SuccessfulAction] | None = None
    penalize: bool = False


class TaskEngine:
    """Task state machine over injected repositories and collaborators.

    Args:
        task_storage: Tasks, step records and sessions.
        skill_storage: Learned skills.
        proposer: Source of candidate actions (usually an LLMClient).
        actuator: Applies actions in the browser.
        config: Policy values. Defaults to ``EngineConfig()``.
        memory_storage: Memory maps; defaults to ``task_storage`` when it
            also implements :class:`MemoryRepository`.
        logger: Optional logger. Defaults to this module's logger.
        clock: Returns the current time; injectable for tests.

    Example:
        ```python
        storage = InMemoryTaskStorage()
        async with TaskEngine(storage, InMemorySkillStorage(), LLMClient(AsyncOpenAI()), actuator) as engine:
            task = await engine.create_task("tenant", "user", "session", "log in", url="https://app.example.com")
            result = await engine.submit_step("tenant", task.task_id, dom=page_html)
        ```
    """

    def __init__(
        self,
        task_storage: TaskRepository,
        skill_storage: SkillRepository,
        proposer: ActionProposer,
        actuator: Actuator,
        config: EngineConfig | None = None,
        memory_storage: MemoryRepository | None = None,
        logger: Any | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or EngineConfig()
        self.tasks = task_storage
        self.skill_storage = skill_storage
        self.proposer = proposer
        self.actuator = actuator
        self.clock = clock
        self._logger = logger or logging.getLogger(__name__)

        if memory_storage is None:
            if not isinstance(task_storage, MemoryRepository):
                raise ValidationError("memory_storage is required when task_storage has no memory maps")
            memory_storage = task_storage
        self.memory_storage = memory_storage
        self.memory = MemoryService(memory_storage, clock)
        self.skills = SkillLibrary(skill_storage, self.config, clock)

    def _log(self, message: str, level: str = "debug") -> None:
        """Log message through the configured logger."""
        log_func = getattr(self._logger, level, self._logger.debug)
        log_func(message)

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def _repositories(self) -> list[Any]:
        repos: list[Any] = []
        for repo in (self.tasks, self.memory_storage, self.skill_storage):
            if not any(repo is seen for seen in repos):
                repos.append(repo)
        return repos

    async def open(self) -> None:
        for repo in self._repositories():
            await repo.open()

    async def close(self) -> None:
        for repo in reversed(self._repositories()):
            await repo.close()

    async def __aenter__(self) -> "TaskEngine":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────
    # Task lifecycle API
    # ─────────────────────────────────────────────────────────────

    async def create_task(
        self,
        tenant_id: str,
        user_id: str,
        session_id: str,
        query: str,
        url: str | None = None,
        task_id: str | None = None,
    ) -> Task:
        """Create a task in ``active`` status.

        The browser session is created on first use. Creating a task with
        an explicit ``task_id`` that already exists returns the stored task.

        Raises:
            ValidationError: If a required field is blank or the session id
                is already used by another tenant.
        """
        _require(tenant_id=tenant_id, user_id=user_id, session_id=session_id, query=query)

        now = self.clock()
        if await self.tasks.get_session(tenant_id, session_id) is None:
            try:
                await self.tasks.create_session(BrowserSession(
                    session_id=session_id,
                    tenant_id=tenant_id,
                    user_id=user_id,
                    created_at=now,
                    updated_at=now,
                ))
            except PersistenceConflict as e:
                raise ValidationError(f"Session {session_id} is not available to tenant {tenant_id}") from e

        task = Task(
            task_id=task_id or str(uuid4()),
            tenant_id=tenant_id,
            user_id=user_id,
            session_id=session_id,
            query=query.strip(),
            url=url,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.tasks.create_task(task)
        except PersistenceConflict:
            existing = await self.tasks.get_task(tenant_id, task.task_id)
            if existing is None:
                raise
            self._log(f"[TASK] {task.task_id} already exists, returning stored task")
            return existing

        self._log(f"[TASK] Created {task.task_id}: '{task.query[:60]}'", "info")
        return task

    async def get_task(self, tenant_id: str, task_id: str) -> Task | None:
        _require(tenant_id=tenant_id, task_id=task_id)
        return await self.tasks.get_task(tenant_id, task_id)

    async def list_actions(self, tenant_id: str, task_id: str) -> list[TaskAction]:
        """Step records of a task in ``step_index`` order."""
        _require(tenant_id=tenant_id, task_id=task_id)
        return await self.tasks.list_actions(tenant_id, task_id)

    async def reap_stale_tasks(self, tenant_id: str, user_id: str) -> int:
        """Interrupt the user's active tasks with no update for the stale threshold."""
        _require(tenant_id=tenant_id, user_id=user_id)
        now = self.clock()
        threshold = now - timedelta(minutes=self.config.stale_task_minutes)
        count = await self.tasks.mark_stale(tenant_id, user_id, ACTIVE_STATUSES, threshold, now)
        if count:
            self._log(f"[REAPER] Interrupted {count} stale task(s) for {tenant_id}/{user_id}", "info")
        return count

    async def get_active_task(self, tenant_id: str, user_id: str, url: str | None = None) -> Task | None:
        """Resolve the user's active task, sweeping stale tasks first.

        With ``url``, an exact URL match wins, then a same-origin match,
        then the most recently updated active task.
        """
        await self.reap_stale_tasks(tenant_id, user_id)
        candidates = await self.tasks.find_tasks(tenant_id, user_id, ACTIVE_STATUSES)
        if not candidates:
            return None

        if url:
            for task in candidates:
                if task.url == url:
                    return task
            origin = get_origin(url)
            if origin:
                for task in candidates:
                    if task.url and get_origin(task.url) == origin:
                        return task
        return candidates[0]

    async def resume_task(
        self,
        tenant_id: str,
        task_id: str,
        resolution_data: dict[str, Any] | None = None,
    ) -> Task:
        """Resume a paused or interrupted task.

        Clears the blocker in the same write that flips the status to
        ``executing``; ``resolution_data`` is handed to the next step.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTaskState: If the task is neither awaiting_user nor interrupted.
        """
        task = await self._require_task(tenant_id, task_id)
        if task.status not in (TaskStatus.AWAITING_USER, TaskStatus.INTERRUPTED):
            raise InvalidTaskState(
                f"Task {task_id} is not paused (status: {TaskStatus(task.status).value})",
                current_status=TaskStatus(task.status).value,
            )

        self._transition(task, TaskStatus.EXECUTING)
        task.blocker_context = None
        task.paused_at = None
        task.user_resolution_data = resolution_data
        task.updated_at = self.clock()
        await self.tasks.save_task(task)
        self._log(f"[TASK] Resumed {task_id}", "info")
        return task

    async def pause_task(
        self,
        tenant_id: str,
        task_id: str,
        blocker: BlockerContext | None = None,
        reason: str | None = None,
    ) -> Task:
        """Pause an active task for human input.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTaskState: If the task is not in an active status.
        """
        task = await self._require_task(tenant_id, task_id)
        if blocker is None:
            blocker = BlockerContext(
                type="user_requested",
                message=reason or "Paused for user input",
                url=task.url,
                detected_at=self.clock(),
            )
        self._pause(task, blocker)
        await self.tasks.save_task(task)
        return task

    async def export_debug_session(self, tenant_id: str, task_id: str) -> dict[str, Any]:
        """Task plus all step records, with sensitive fields masked.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        task = await self._require_task(tenant_id, task_id)
        actions = await self.tasks.list_actions(tenant_id, task_id)
        memory = await self.memory_storage.get_memory(tenant_id, MemoryScope.TASK, task_id)
        task_data = to_jsonable(task)
        task_data["memory"] = memory if memory is not None else task_data.get("memory", {})
        return mask_sensitive({
            "exported_at": self.clock().isoformat(),
            "task": task_data,
            "actions": [to_jsonable(action) for action in actions],
            "action_count": len(actions),
        })

    # ─────────────────────────────────────────────────────────────
    # Step application
    # ─────────────────────────────────────────────────────────────

    async def submit_step(
        self,
        tenant_id: str,
        task_id: str,
        step_index: int | None = None,
        dom: str | None = None,
        url: str | None = None,
    ) -> StepResult:
        """Run one step of a task.

        Args:
            tenant_id: Tenant owning the task.
            task_id: The task.
            step_index: Index the client believes it is submitting; defaults
                to the task's current index. An index that was already
                recorded returns the stored step without re-executing it.
            dom: Current page DOM; defaults to the last recorded snapshot.
            url: Current page URL; defaults to the task URL.

        Returns:
            StepResult describing the recorded step.

        Raises:
            TaskNotFoundError: If the task does not exist.
            ValidationError: If ``step_index`` is negative or skips ahead.
            InvalidTaskState: If the task cannot take a step in its status.
            ProposalError: If no candidate action could be obtained (retryable;
                the task is left unchanged).
        """
        task = await self._require_task(tenant_id, task_id)

        if step_index is None:
            step_index = task.current_step_index
        if step_index < 0:
            raise ValidationError(f"step_index must be >= 0, got {step_index}")
        if step_index < task.current_step_index:
            return await self._replay(task, step_index)
        if step_index > task.current_step_index:
            raise ValidationError(
                f"Step {step_index} is ahead of task {task_id} (next step is {task.current_step_index})"
            )
        if task.status not in (TaskStatus.ACTIVE, TaskStatus.PLANNING, TaskStatus.EXECUTING):
            raise InvalidTaskState(
                f"Task {task_id} cannot take a step while {TaskStatus(task.status).value}",
                current_status=TaskStatus(task.status).value,
            )

        started = time.perf_counter()
        history = await self.tasks.list_actions(tenant_id, task_id)
        before_url = url or task.url
        before_dom = dom if dom is not None else (history[-1].dom_snapshot or "") if history else ""
        domain = get_hostname(before_url) if before_url else ""

        if task.status == TaskStatus.ACTIVE:
            self._transition(task, TaskStatus.PLANNING)
        proposal = await self.proposer.propose(
            PROPOSE_ACTION_SYSTEM,
            await self._proposal_prompt(task, history, before_dom, before_url),
            {"task_id": task_id, "step_index": step_index, "mode": "propose"},
        )
        if task.status == TaskStatus.PLANNING:
            self._transition(task, TaskStatus.EXECUTING)
        self._log(f"[STEP] {task_id}#{step_index}: {proposal.action}")

        original = await self._attempt(task, proposal, before_dom, before_url)
        correction = _Correction(final=original)
        if original.error is not None and original.terminal is None:
            correction = await self._correct(task, original, before_dom, before_url, domain)
        final = correction.final

        now = self.clock()
        if final.blocker is not None:
            self._pause(task, final.blocker)
        elif final.passed:
            target = TaskStatus.COMPLETED if final.terminal == "finish" else TaskStatus.EXECUTING
            self._transition(task, target)
        else:
            if task.status != TaskStatus.CORRECTING:
                self._transition(task, TaskStatus.CORRECTING)
            self._transition(task, TaskStatus.FAILED)
            task.last_error = final.reason

        record = TaskAction(
            tenant_id=tenant_id,
            task_id=task_id,
            user_id=task.user_id,
            step_index=step_index,
            thought=final.proposal.thought,
            action=final.proposal.action,
            expected_outcome=final.proposal.expected_outcome.model_dump(by_alias=True, exclude_none=True),
            dom_snapshot=self._snapshot(final.after_dom),
            url=final.after_url,
            passed=final.passed,
            reason=final.reason,
            metrics=self._metrics(original, correction, started),
            created_at=now,
        )
        try:
            await self.tasks.insert_action(record)
        except PersistenceConflict:
            self._log(f"[STEP] {task_id}#{step_index} was recorded concurrently, returning stored step", "info")
            stored = await self._require_task(tenant_id, task_id)
            return await self._replay(stored, step_index)

        task.current_step_index = step_index + 1
        task.url = final.after_url or task.url
        task.user_resolution_data = None
        task.updated_at = now
        await self.tasks.save_task(task)
        self._log(
            f"[STEP] {task_id}#{step_index} recorded: {'PASS' if final.passed else 'FAIL'} "
            f"-> {TaskStatus(task.status).value}",
            "info",
        )
        await self._apply_skill_feedback(task, domain, correction)

        return StepResult(
            task_id=task_id,
            step_index=step_index,
            status=task.status,
            action=record,
            verification=final.verification,
            correction_attempts=correction.attempts,
            skill_hints_used=[h.skill_id for h in correction.hints],
            blocker=final.blocker,
            error=task.last_error if task.status == TaskStatus.FAILED else None,
        )

    async def _attempt(
        self,
        task: Task,
        proposal: ActionProposal,
        before_dom: str,
        before_url: str | None,
    ) -> _Attempt:
        """Apply one candidate action; leaves the task in ``verifying``."""
        parsed = parse_action(proposal.action)
        name, args = parsed if parsed else ("", [])

        if name in TERMINAL_ACTIONS:
            self._transition(task, TaskStatus.VERIFYING)
            detail = _unquote(args[0]) if args else ""
            if name == "finish":
                return _Attempt(
                    proposal=proposal, after_dom=before_dom, after_url=before_url, local=True,
                    verification=VerificationResult(passed=True, reason=f"Finished: {detail}" if detail else "Finished"),
                    terminal="finish",
                )
            return _Attempt(
                proposal=proposal, after_dom=before_dom, after_url=before_url, local=True,
                error=VerificationFailed(f"Agent gave up: {detail or 'no reason given'}"),
                terminal="fail",
            )

        if is_memory_action(name):
            parsed_memory = parse_memory_action(proposal.action)
            action_name, parameters = parsed_memory if parsed_memory else (name, {})
            result = await self.memory.handle_memory_action(
                action_name, task.tenant_id, task.task_id, task.session_id, parameters
            )
            self._transition(task, TaskStatus.VERIFYING)
            self._log(f"[MEMORY] {task.task_id}: {result.message}")
            return _Attempt(
                proposal=proposal, after_dom=before_dom, after_url=before_url, local=True,
                verification=VerificationResult(passed=True, reason=result.message),
            )

        try:
            applied = await self.actuator.apply(task.task_id, proposal.action)
        except ActuatorError as e:
            self._transition(task, TaskStatus.VERIFYING)
            self._log(f"[ACTUATOR] {proposal.action} failed: {e}", "warning")
            return _Attempt(proposal=proposal, after_dom=before_dom, after_url=before_url, error=e)
        self._transition(task, TaskStatus.VERIFYING)

        if not applied.ok:
            self._log(f"[ACTUATOR] {proposal.action} failed: {applied.error}", "warning")
            return _Attempt(
                proposal=proposal, after_dom=before_dom, after_url=before_url,
                error=ActuatorError(applied.error),
            )

        after_dom = applied.dom_snapshot or ""
        after_url = applied.url or before_url
        blocker = detect_blocker(after_dom, after_url, self.config.blocker_confidence_threshold)
        if blocker is not None:
            blocker.detected_at = self.clock()
            return _Attempt(proposal=proposal, after_dom=after_dom, after_url=after_url, blocker=blocker)

        verification = verify(
            before_dom,
            after_dom,
            proposal.expected_outcome,
            before_url=before_url,
            after_url=after_url,
            hash_max_bytes=self.config.dom_hash_max_bytes,
        )
        attempt = _Attempt(proposal=proposal, after_dom=after_dom, after_url=after_url, verification=verification)
        if not verification.passed:
            self._log(f"[VERIFY] {proposal.action} failed: {verification.reason}", "info")
            attempt.error = VerificationFailed(verification.reason)
        return attempt

    async def _correct(
        self,
        task: Task,
        failed: _Attempt,
        before_dom: str,
        before_url: str | None,
        domain: str,
    ) -> _Correction:
        """Bounded correction sub-flow after a failed attempt.

        Skill feedback is returned, not applied: it only counts once the
        step record has been written.
        """
        self._transition(task, TaskStatus.CORRECTING)
        hints = await self.skills.lookup(task.tenant_id, domain, task.query) if domain else []
        if hints:
            self._log(f"[SKILL] {len(hints)} hint(s) for '{task.query[:40]}' on {domain}")

        correction = _Correction(final=failed, hints=hints)
        while correction.attempts < self.config.max_correction_attempts:
            correction.attempts += 1
            current = correction.final
            base_dom = current.after_dom or before_dom
            base_url = current.after_url or before_url
            try:
                proposal = await self.proposer.propose(
                    CORRECTION_SYSTEM,
                    self._correction_prompt(task, current, hints, base_dom, base_url),
                    {
                        "task_id": task.task_id,
                        "step_index": task.current_step_index,
                        "mode": "correction",
                        "attempt": correction.attempts,
                    },
                )
            except ProposalError as e:
                self._log(f"[CORRECT] Attempt {correction.attempts} produced no candidate: {e}", "warning")
                continue

            self._transition(task, TaskStatus.EXECUTING)
            self._log(
                f"[CORRECT] Attempt {correction.attempts}: {proposal.action} ({proposal.strategy or 'other'})",
                "info",
            )
            current = await self._attempt(task, proposal, base_dom, base_url)
            correction.final = current

            if current.blocker is not None:
                return correction
            if current.passed:
                if domain and not current.local and failed.terminal is None:
                    correction.learned = (
                        FailedState(
                            action=failed.proposal.action,
                            element_description=failed.proposal.target_description,
                            error_type=failed.error.code,
                            error_message=failed.reason,
                        ),
                        SuccessfulAction(
                            action=proposal.action,
                            element_description=proposal.target_description,
                            strategy=CorrectionStrategy.parse(proposal.strategy),
                            reasoning=proposal.thought,
                        ),
                    )
                return correction

            self._transition(task, TaskStatus.CORRECTING)
            if current.terminal == "fail":
                break

        correction.penalize = bool(domain and hints)
        return correction

    async def _apply_skill_feedback(self, task: Task, domain: str, correction: _Correction) -> None:
        if correction.learned is not None:
            failed_state, successful_action = correction.learned
            await self.skills.record(task.tenant_id, domain, task.query, failed_state, successful_action)
        if correction.penalize:
            for hint in correction.hints:
                await self.skills.penalize(task.tenant_id, domain, hint.goal, hint.failed_action)

    async def _replay(self, task: Task, step_index: int) -> StepResult:
        stored = await self.tasks.get_action(task.tenant_id, task.task_id, step_index)
        if stored is None:
            raise ValidationError(f"Step {step_index} of task {task.task_id} has no record")
        self._log(f"[STEP] {task.task_id}#{step_index} already recorded, replaying", "info")
        return StepResult(
            task_id=task.task_id,
            step_index=step_index,
            status=task.status,
            action=stored,
            replayed=True,
            verification=VerificationResult(passed=stored.passed, reason=stored.reason),
            correction_attempts=stored.metrics.get("correction_attempts", 0),
            skill_hints_used=list(stored.metrics.get("skill_hints_used", [])),
            blocker=task.blocker_context,
            error=task.last_error if task.status == TaskStatus.FAILED else None,
        )

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    async def _require_task(self, tenant_id: str, task_id: str) -> Task:
        _require(tenant_id=tenant_id, task_id=task_id)
        task = await self.tasks.get_task(tenant_id, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _transition(self, task: Task, target: TaskStatus) -> None:
        previous = TaskStatus(task.status)
        task.status = ensure_transition(previous, target)
        self._log(f"[STATE] {task.task_id}: {previous.value} -> {task.status.value}")

    def _pause(self, task: Task, blocker: BlockerContext) -> None:
        if task.status not in ACTIVE_STATUSES:
            raise InvalidTaskState(
                f"Task {task.task_id} cannot be paused while {TaskStatus(task.status).value}",
                current_status=TaskStatus(task.status).value,
            )
        self._transition(task, TaskStatus.AWAITING_USER)
        task.blocker_context = blocker
        task.paused_at = self.clock()
        task.updated_at = task.paused_at
        self._log(f"[BLOCKER] {task.task_id} paused: {blocker.type} - {blocker.message}", "info")

    def _page_view(self, dom: str) -> str:
        if not dom:
            return "(no page snapshot)"
        if self.config.skeletonize_snapshots:
            return skeletonize(dom, self.config.skeleton_max_text_length).skeleton or "(no interactive elements)"
        return clean_dom(dom)

    def _snapshot(self, dom: str) -> str | None:
        if not dom:
            return None
        if self.config.skeletonize_snapshots:
            return skeletonize(dom, self.config.skeleton_max_text_length).skeleton
        return dom

    async def _proposal_prompt(
        self,
        task: Task,
        history: list[TaskAction],
        dom: str,
        url: str | None,
    ) -> str:
        steps = "\n".join(
            f"{a.step_index}. {a.action} -> {'PASS' if a.passed else 'FAIL'}: {a.reason}"
            for a in history[-HISTORY_LIMIT:]
        )
        memory = await self.memory.recall_all(task.tenant_id, task.task_id)
        return PROPOSE_ACTION_USER.format(
            goal=task.query,
            url=url or "unknown",
            history=steps or "None yet",
            memory=json.dumps(memory.value, ensure_ascii=False) if memory.found else "Empty",
            resolution=(
                json.dumps(task.user_resolution_data, ensure_ascii=False)
                if task.user_resolution_data else "None"
            ),
            dom=self._page_view(dom),
        )

    def _correction_prompt(
        self,
        task: Task,
        failed: _Attempt,
        hints: list[SkillHint],
        dom: str,
        url: str | None,
    ) -> str:
        return CORRECTION_USER.format(
            goal=task.query,
            url=url or "unknown",
            failed_action=failed.proposal.action,
            failed_target=failed.proposal.target_description or "unknown",
            failure_kind=failed.error.code if failed.error else "UNKNOWN",
            failure_reason=failed.reason,
            skill_hints=format_skill_hints(hints) or "No learned patterns for this goal yet.",
            dom=self._page_view(dom),
        )

    def _metrics(
        self,
        original: _Attempt,
        correction: _Correction,
        started: float,
    ) -> dict[str, Any]:
        metrics: dict[str, Any] = {
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            "correction_attempts": correction.attempts,
            "skill_hints_used": [h.skill_id for h in correction.hints],
        }
        if original.error is not None:
            metrics["failure_kind"] = original.error.code
            metrics["original_action"] = original.proposal.action
        verification = correction.final.verification
        if verification is not None and verification.before_hash:
            metrics["dom_changed"] = verification.dom_changed
        return metrics


def _require(**values: str) -> None:
    for name, value in values.items():
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} is required")

