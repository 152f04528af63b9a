"""Storage module - repository implementations."""

from screen_tasks.storage.memory_storage import InMemoryTaskStorage, InMemorySkillStorage
from screen_tasks.storage.json_storage import JSONSkillStorage

__all__ = [
    "InMemoryTaskStorage",
    "InMemorySkillStorage",
    "JSONSkillStorage",
]
