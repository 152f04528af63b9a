"""In-process repositories.

Reference persistence for tests, demos and single-process deployments.
Every read returns a copy, so callers never alias stored records. No
method awaits between reading and writing a record, which makes each
call atomic with respect to other coroutines on the same event loop.
"""

import copy
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable

from screen_tasks.errors import PersistenceConflict, TaskNotFoundError
from screen_tasks.interfaces.storage import MemoryRepository, SkillRepository, TaskRepository
from screen_tasks.models.result import MemoryScope
from screen_tasks.models.skill import FailedState, Skill, SuccessfulAction, skill_key
from screen_tasks.models.task import BrowserSession, Task, TaskAction
from screen_tasks.state import TaskStatus


class InMemoryTaskStorage(TaskRepository, MemoryRepository):
    """Tasks, step records, sessions and their memory maps, held in dicts.

    Example:
        storage = InMemoryTaskStorage()
        engine = TaskEngine(storage, InMemorySkillStorage(), proposer, actuator)
    """

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, str], Task] = {}
        self._actions: dict[tuple[str, str, int], TaskAction] = {}
        self._sessions: dict[str, BrowserSession] = {}

    # ─────────────────────────────────────────────────────────────
    # Tasks
    # ─────────────────────────────────────────────────────────────

    async def create_task(self, task: Task) -> None:
        key = (task.tenant_id, task.task_id)
        if key in self._tasks:
            raise PersistenceConflict(f"Task already exists: {task.task_id}", key=key)
        self._tasks[key] = copy.deepcopy(task)

    async def get_task(self, tenant_id: str, task_id: str) -> Task | None:
        task = self._tasks.get((tenant_id, task_id))
        return copy.deepcopy(task) if task else None

    async def save_task(self, task: Task) -> None:
        key = (task.tenant_id, task.task_id)
        stored = self._tasks.get(key)
        if stored is None:
            raise TaskNotFoundError(task.task_id)
        self._tasks[key] = replace(copy.deepcopy(task), memory=stored.memory)

    async def find_tasks(
        self,
        tenant_id: str,
        user_id: str,
        statuses: Iterable[TaskStatus],
    ) -> list[Task]:
        wanted = set(statuses)
        found = [
            copy.deepcopy(task) for task in self._tasks.values()
            if task.tenant_id == tenant_id and task.user_id == user_id and task.status in wanted
        ]
        found.sort(key=lambda t: t.updated_at, reverse=True)
        return found

    async def mark_stale(
        self,
        tenant_id: str,
        user_id: str,
        statuses: Iterable[TaskStatus],
        updated_before: datetime,
        now: datetime,
    ) -> int:
        wanted = set(statuses)
        count = 0
        for task in self._tasks.values():
            if (
                task.tenant_id == tenant_id
                and task.user_id == user_id
                and task.status in wanted
                and task.updated_at < updated_before
            ):
                task.status = TaskStatus.INTERRUPTED
                task.updated_at = now
                count += 1
        return count

    # ─────────────────────────────────────────────────────────────
    # Step records
    # ─────────────────────────────────────────────────────────────

    async def insert_action(self, action: TaskAction) -> None:
        if action.key in self._actions:
            raise PersistenceConflict(
                f"Step {action.step_index} already recorded for task {action.task_id}",
                key=action.key,
            )
        self._actions[action.key] = copy.deepcopy(action)

    async def get_action(self, tenant_id: str, task_id: str, step_index: int) -> TaskAction | None:
        action = self._actions.get((tenant_id, task_id, step_index))
        return copy.deepcopy(action) if action else None

    async def list_actions(self, tenant_id: str, task_id: str) -> list[TaskAction]:
        actions = [
            copy.deepcopy(a) for (tenant, task, _), a in self._actions.items()
            if tenant == tenant_id and task == task_id
        ]
        actions.sort(key=lambda a: a.step_index)
        return actions

    # ─────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────

    async def get_session(self, tenant_id: str, session_id: str) -> BrowserSession | None:
        session = self._sessions.get(session_id)
        if session is None or session.tenant_id != tenant_id:
            return None
        return copy.deepcopy(session)

    async def create_session(self, session: BrowserSession) -> None:
        stored = self._sessions.get(session.session_id)
        if stored is None:
            self._sessions[session.session_id] = copy.deepcopy(session)
        elif stored.tenant_id != session.tenant_id:
            raise PersistenceConflict(
                f"Session {session.session_id} belongs to another tenant",
                key=(session.session_id,),
            )

    # ─────────────────────────────────────────────────────────────
    # Memory maps
    # ─────────────────────────────────────────────────────────────

    def _owner(self, tenant_id: str, scope: MemoryScope, owner_id: str) -> Task | BrowserSession | None:
        if MemoryScope(scope) == MemoryScope.TASK:
            return self._tasks.get((tenant_id, owner_id))
        session = self._sessions.get(owner_id)
        if session is None or session.tenant_id != tenant_id:
            return None
        return session

    async def get_memory(self, tenant_id: str, scope: MemoryScope, owner_id: str) -> dict[str, Any] | None:
        owner = self._owner(tenant_id, scope, owner_id)
        return copy.deepcopy(owner.memory) if owner else None

    async def set_memory_key(
        self,
        tenant_id: str,
        scope: MemoryScope,
        owner_id: str,
        key: str,
        value: Any,
        now: datetime,
    ) -> bool:
        owner = self._owner(tenant_id, scope, owner_id)
        if owner is None:
            return False
        owner.memory[key] = copy.deepcopy(value)
        owner.updated_at = now
        return True

    async def delete_memory_key(
        self,
        tenant_id: str,
        scope: MemoryScope,
        owner_id: str,
        key: str,
        now: datetime,
    ) -> bool:
        owner = self._owner(tenant_id, scope, owner_id)
        if owner is None:
            return False
        owner.memory.pop(key, None)
        owner.updated_at = now
        return True


class InMemorySkillStorage(SkillRepository):
    """Skills keyed by their failure signature."""

    def __init__(self) -> None:
        self._skills: dict[tuple[str, str, str, str], Skill] = {}

    async def find_by_key(
        self,
        tenant_id: str,
        domain: str,
        goal_normalized: str,
        failed_action: str,
    ) -> Skill | None:
        skill = self._skills.get(skill_key(tenant_id, domain, goal_normalized, failed_action))
        return copy.deepcopy(skill) if skill else None

    async def find_by_goal(self, tenant_id: str, domain: str, goal_normalized: str) -> list[Skill]:
        domain = domain.lower()
        return [
            copy.deepcopy(s) for s in self._skills.values()
            if s.tenant_id == tenant_id and s.domain == domain and s.goal_normalized == goal_normalized
        ]

    async def list_for_domain(self, tenant_id: str, domain: str) -> list[Skill]:
        domain = domain.lower()
        return [
            copy.deepcopy(s) for s in self._skills.values()
            if s.tenant_id == tenant_id and s.domain == domain
        ]

    async def list_for_tenant(self, tenant_id: str) -> list[Skill]:
        return [copy.deepcopy(s) for s in self._skills.values() if s.tenant_id == tenant_id]

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
        key = skill_key(tenant_id, domain, goal_normalized, failed_state.action)
        skill = self._skills.get(key)
        if skill is None:
            skill = Skill(
                skill_id=str(uuid.uuid4()),
                tenant_id=tenant_id,
                domain=domain.lower(),
                goal=goal,
                goal_normalized=goal_normalized,
                failed_state=copy.deepcopy(failed_state),
                successful_action=copy.deepcopy(successful_action),
                success_count=1,
                failure_count=0,
                last_used=now,
                created_at=now,
                updated_at=now,
            )
            self._skills[key] = skill
        else:
            skill.success_count += 1
            skill.successful_action = copy.deepcopy(successful_action)
            skill.last_used = now
            skill.updated_at = now
        self._changed()
        return copy.deepcopy(skill)

    async def increment_failure(
        self,
        tenant_id: str,
        domain: str,
        goal_normalized: str,
        failed_action: str,
        now: datetime,
    ) -> Skill | None:
        skill = self._skills.get(skill_key(tenant_id, domain, goal_normalized, failed_action))
        if skill is None:
            return None
        skill.failure_count += 1
        skill.updated_at = now
        self._changed()
        return copy.deepcopy(skill)

    async def count(self, tenant_id: str) -> int:
        return sum(1 for s in self._skills.values() if s.tenant_id == tenant_id)

    async def evict_one(self, tenant_id: str) -> Skill | None:
        candidates = [s for s in self._skills.values() if s.tenant_id == tenant_id]
        if not candidates:
            return None
        victim = min(candidates, key=lambda s: (s.success_rate, s.last_used))
        del self._skills[victim.key]
        self._changed()
        return victim

    async def delete_expired(self, used_before: datetime, tenant_id: str | None = None) -> int:
        return self._delete_where(
            lambda s: s.last_used < used_before and (tenant_id is None or s.tenant_id == tenant_id)
        )

    async def delete_low_performing(self, tenant_id: str, min_rate: float, min_attempts: int) -> int:
        return self._delete_where(
            lambda s: s.tenant_id == tenant_id
            and s.success_count + s.failure_count >= min_attempts
            and s.success_rate < min_rate
        )

    def _delete_where(self, predicate) -> int:
        doomed = [key for key, skill in self._skills.items() if predicate(skill)]
        for key in doomed:
            del self._skills[key]
        if doomed:
            self._changed()
        return len(doomed)

    def _changed(self) -> None:
        """Hook called after every mutation. Subclasses persist here."""
