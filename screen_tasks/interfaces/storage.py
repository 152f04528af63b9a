"""Abstract repository interfaces.

The engine never touches a document store directly; it goes through one
repository per aggregate. Implementations can be backed by various
systems:

- Document databases with unique indexes (MongoDB, DynamoDB)
- Relational databases (PostgreSQL with unique constraints)
- In-memory storage for testing
- File-based storage (skills only)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable

from screen_tasks.models.result import MemoryScope
from screen_tasks.models.skill import FailedState, Skill, SuccessfulAction
from screen_tasks.models.task import BrowserSession, Task, TaskAction
from screen_tasks.state import TaskStatus


class Repository(ABC):
    """Lifecycle hooks shared by all repositories."""

    async def open(self) -> None:
        """Acquire connections. Default implementation does nothing."""

    async def close(self) -> None:
        """Release connections. Default implementation does nothing."""


class TaskRepository(Repository):
    """Persistence for tasks, their step records and browser sessions.

    Implementations must enforce uniqueness of ``(tenant_id, task_id)``
    for tasks and ``(tenant_id, task_id, step_index)`` for actions.
    """

    @abstractmethod
    async def create_task(self, task: Task) -> None:
        """Insert a new task.

        Args:
            task: The task to insert.

        Raises:
            PersistenceConflict: If ``(tenant_id, task_id)`` already exists.
        """
        ...

    @abstractmethod
    async def get_task(self, tenant_id: str, task_id: str) -> Task | None:
        """Retrieve a task.

        Args:
            tenant_id: Tenant owning the task.
            task_id: The task id.

        Returns:
            A copy of the task if found, None otherwise.
        """
        ...

    @abstractmethod
    async def save_task(self, task: Task) -> None:
        """Persist a task's lifecycle fields.

        The ``memory`` map is owned by :class:`MemoryRepository` and is
        not overwritten by this call.

        Args:
            task: The task to save.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        ...

    @abstractmethod
    async def find_tasks(
        self,
        tenant_id: str,
        user_id: str,
        statuses: Iterable[TaskStatus],
    ) -> list[Task]:
        """List a user's tasks in the given statuses.

        Returns:
            Tasks ordered by ``updated_at`` descending.
        """
        ...

    @abstractmethod
    async def mark_stale(
        self,
        tenant_id: str,
        user_id: str,
        statuses: Iterable[TaskStatus],
        updated_before: datetime,
        now: datetime,
    ) -> int:
        """Flip stale tasks to ``interrupted`` in one bulk update.

        Args:
            tenant_id: Tenant to sweep.
            user_id: User to sweep.
            statuses: Statuses eligible for interruption.
            updated_before: Tasks last updated before this instant are stale.
            now: Timestamp written to ``updated_at``.

        Returns:
            Number of tasks interrupted.
        """
        ...

    @abstractmethod
    async def insert_action(self, action: TaskAction) -> None:
        """Append a step record.

        Raises:
            PersistenceConflict: If ``(tenant_id, task_id, step_index)`` exists.
        """
        ...

    @abstractmethod
    async def get_action(self, tenant_id: str, task_id: str, step_index: int) -> TaskAction | None:
        """Retrieve the step record at ``step_index``, or None."""
        ...

    @abstractmethod
    async def list_actions(self, tenant_id: str, task_id: str) -> list[TaskAction]:
        """List a task's step records ordered by ``step_index`` ascending."""
        ...

    @abstractmethod
    async def get_session(self, tenant_id: str, session_id: str) -> BrowserSession | None:
        """Retrieve a tenant's browser session, or None.

        A session owned by another tenant is reported as missing.
        """
        ...

    @abstractmethod
    async def create_session(self, session: BrowserSession) -> None:
        """Insert a browser session if it does not exist yet.

        Raises:
            PersistenceConflict: If the session id belongs to another tenant.
        """
        ...


class MemoryRepository(Repository):
    """Key/value access to the ``memory`` map of a task or a session.

    Values are JSON-representable. Owners are addressed by
    ``(tenant_id, owner_id)``; an owner of another tenant is missing.
    """

    @abstractmethod
    async def get_memory(self, tenant_id: str, scope: MemoryScope, owner_id: str) -> dict[str, Any] | None:
        """Return a copy of the owner's memory, or None if the owner is missing."""
        ...

    @abstractmethod
    async def set_memory_key(
        self,
        tenant_id: str,
        scope: MemoryScope,
        owner_id: str,
        key: str,
        value: Any,
        now: datetime,
    ) -> bool:
        """Write one key and stamp the owner's ``updated_at`` with ``now``.

        Returns:
            False if the owner does not exist, True otherwise.
        """
        ...

    @abstractmethod
    async def delete_memory_key(
        self,
        tenant_id: str,
        scope: MemoryScope,
        owner_id: str,
        key: str,
        now: datetime,
    ) -> bool:
        """Remove one key (absent keys are fine).

        Returns:
            False if the owner does not exist, True otherwise.
        """
        ...


class SkillRepository(Repository):
    """Persistence for learned skills.

    Implementations must keep one record per
    ``(tenant_id, domain, goal_normalized, failed_state.action)`` and
    apply counter updates atomically.
    """

    @abstractmethod
    async def find_by_key(
        self,
        tenant_id: str,
        domain: str,
        goal_normalized: str,
        failed_action: str,
    ) -> Skill | None:
        """Retrieve the skill for one failure signature, or None."""
        ...

    @abstractmethod
    async def find_by_goal(
        self,
        tenant_id: str,
        domain: str,
        goal_normalized: str,
    ) -> list[Skill]:
        """List skills for an exact normalized goal within a tenant/domain."""
        ...

    @abstractmethod
    async def list_for_domain(self, tenant_id: str, domain: str) -> list[Skill]:
        """List every skill of a tenant/domain."""
        ...

    @abstractmethod
    async def list_for_tenant(self, tenant_id: str) -> list[Skill]:
        """List every skill of a tenant."""
        ...

    @abstractmethod
    async def upsert_success(
        self,
        tenant_id: str,
        domain: str,
        goal: str,
        goal_normalized: str,
        failed_state: FailedState,
        successful_action: SuccessfulAction,
        now: datetime,
    ) -> Skill:
        """Atomically create the skill or increment its success count.

        On an existing key the stored successful action is replaced with
        the latest one and ``last_used`` is set to ``now``.

        Returns:
            The skill after the write.
        """
        ...

    @abstractmethod
    async def increment_failure(
        self,
        tenant_id: str,
        domain: str,
        goal_normalized: str,
        failed_action: str,
        now: datetime,
    ) -> Skill | None:
        """Atomically increment the failure count.

        Returns:
            The skill after the write, or None if no such skill exists.
        """
        ...

    @abstractmethod
    async def count(self, tenant_id: str) -> int:
        """Number of skills stored for a tenant."""
        ...

    @abstractmethod
    async def evict_one(self, tenant_id: str) -> Skill | None:
        """Delete the lowest success-rate, least recently used skill.

        Returns:
            The evicted skill, or None if the tenant has none.
        """
        ...

    @abstractmethod
    async def delete_expired(self, used_before: datetime, tenant_id: str | None = None) -> int:
        """Delete skills whose ``last_used`` is older than ``used_before``.

        Args:
            used_before: Expiry instant.
            tenant_id: Restrict to one tenant; all tenants when None.

        Returns:
            Number of skills deleted.
        """
        ...

    @abstractmethod
    async def delete_low_performing(self, tenant_id: str, min_rate: float, min_attempts: int) -> int:
        """Delete skills with enough attempts and a success rate below ``min_rate``.

        Returns:
            Number of skills deleted.
        """
        ...
