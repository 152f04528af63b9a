"""Task lifecycle states and the allowed transitions between them."""

from enum import Enum

from screen_tasks.errors import InvalidTaskState


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""
    ACTIVE = "active"
    PLANNING = "planning"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    CORRECTING = "correcting"
    AWAITING_USER = "awaiting_user"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses that the stale-task reaper and "get active task" consider live.
ACTIVE_STATUSES = frozenset({
    TaskStatus.ACTIVE,
    TaskStatus.PLANNING,
    TaskStatus.EXECUTING,
    TaskStatus.VERIFYING,
    TaskStatus.CORRECTING,
})

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.ACTIVE: frozenset({TaskStatus.PLANNING}),
    TaskStatus.PLANNING: frozenset({TaskStatus.EXECUTING}),
    TaskStatus.EXECUTING: frozenset({TaskStatus.VERIFYING}),
    TaskStatus.VERIFYING: frozenset({
        TaskStatus.EXECUTING,
        TaskStatus.COMPLETED,
        TaskStatus.CORRECTING,
    }),
    TaskStatus.CORRECTING: frozenset({TaskStatus.EXECUTING, TaskStatus.FAILED}),
    TaskStatus.AWAITING_USER: frozenset({TaskStatus.EXECUTING}),
    TaskStatus.INTERRUPTED: frozenset({TaskStatus.EXECUTING}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Whether ``current -> target`` is an edge of the lifecycle graph."""
    current = TaskStatus(current)
    target = TaskStatus(target)
    if current in ACTIVE_STATUSES and target in (
        TaskStatus.AWAITING_USER,
        TaskStatus.INTERRUPTED,
    ):
        return True
    return target in TRANSITIONS[current]


def ensure_transition(current: TaskStatus, target: TaskStatus) -> TaskStatus:
    """Return ``target`` or raise InvalidTaskState for an illegal edge."""
    if not can_transition(current, target):
        raise InvalidTaskState(
            f"Illegal transition {TaskStatus(current).value} -> {TaskStatus(target).value}",
            current_status=TaskStatus(current).value,
        )
    return TaskStatus(target)
