"""Data models for screen-tasks."""

from screen_tasks.models.task import Task, TaskAction, BrowserSession, BlockerContext
from screen_tasks.models.skill import (
    Skill,
    SkillHint,
    FailedState,
    SuccessfulAction,
    CorrectionStrategy,
    normalize_goal,
)
from screen_tasks.models.result import (
    VerificationResult,
    ClauseResult,
    ActuatorResult,
    StepResult,
    MemoryScope,
    MemoryOperationResult,
    MemoryActionResult,
)

__all__ = [
    "Task",
    "TaskAction",
    "BrowserSession",
    "BlockerContext",
    "Skill",
    "SkillHint",
    "FailedState",
    "SuccessfulAction",
    "CorrectionStrategy",
    "normalize_goal",
    "VerificationResult",
    "ClauseResult",
    "ActuatorResult",
    "StepResult",
    "MemoryScope",
    "MemoryOperationResult",
    "MemoryActionResult",
]
