"""Interfaces module - abstract base classes for external dependencies."""

from screen_tasks.interfaces.storage import (
    Repository,
    TaskRepository,
    MemoryRepository,
    SkillRepository,
)
from screen_tasks.interfaces.collaborators import ActionProposer, Actuator

__all__ = [
    "Repository",
    "TaskRepository",
    "MemoryRepository",
    "SkillRepository",
    "ActionProposer",
    "Actuator",
]
