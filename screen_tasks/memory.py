"""Two-tier key/value memory (task scope and session scope).

Task memory lives and dies with its task. Session memory persists
across the tasks of one browser session. Data moves from task to
session scope only through :meth:`MemoryService.export_to_session`.
Every operation is scoped to a tenant; a task or session of another
tenant is reported as missing.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable

from screen_tasks.errors import SessionNotFoundError, TaskNotFoundError, ValidationError
from screen_tasks.interfaces.storage import MemoryRepository
from screen_tasks.models.result import MemoryActionResult, MemoryOperationResult, MemoryScope

logger = logging.getLogger(__name__)

MEMORY_ACTIONS = ("remember", "recall", "exportToSession")
RECALL_ALL = "*"

KEY_NOT_FOUND = "KEY_NOT_FOUND"


class MemoryService:
    """Memory primitives over a :class:`MemoryRepository`.

    Reads of an absent key succeed with ``found=False``; a missing task
    or session yields ``success=False`` with an error code. Invalid keys
    and non-JSON values raise :class:`ValidationError`.
    """

    def __init__(self, repository: MemoryRepository, clock: Callable[[], datetime] = datetime.now):
        self.repository = repository
        self.clock = clock

    # ─────────────────────────────────────────────────────────────
    # Task scope
    # ─────────────────────────────────────────────────────────────

    async def remember(self, tenant_id: str, task_id: str, key: str, value: Any) -> MemoryOperationResult:
        return await self._write(tenant_id, MemoryScope.TASK, task_id, key, value)

    async def recall(self, tenant_id: str, task_id: str, key: str) -> MemoryOperationResult:
        return await self._read(tenant_id, MemoryScope.TASK, task_id, key)

    async def recall_all(self, tenant_id: str, task_id: str) -> MemoryOperationResult:
        return await self._read_all(tenant_id, MemoryScope.TASK, task_id)

    async def forget(self, tenant_id: str, task_id: str, key: str) -> MemoryOperationResult:
        return await self._delete(tenant_id, MemoryScope.TASK, task_id, key)

    # ─────────────────────────────────────────────────────────────
    # Session scope
    # ─────────────────────────────────────────────────────────────

    async def session_remember(
        self, tenant_id: str, session_id: str, key: str, value: Any
    ) -> MemoryOperationResult:
        return await self._write(tenant_id, MemoryScope.SESSION, session_id, key, value)

    async def session_recall(self, tenant_id: str, session_id: str, key: str) -> MemoryOperationResult:
        return await self._read(tenant_id, MemoryScope.SESSION, session_id, key)

    async def session_recall_all(self, tenant_id: str, session_id: str) -> MemoryOperationResult:
        return await self._read_all(tenant_id, MemoryScope.SESSION, session_id)

    async def session_forget(self, tenant_id: str, session_id: str, key: str) -> MemoryOperationResult:
        return await self._delete(tenant_id, MemoryScope.SESSION, session_id, key)

    # ─────────────────────────────────────────────────────────────
    # Promotion
    # ─────────────────────────────────────────────────────────────

    async def export_to_session(
        self,
        tenant_id: str,
        session_id: str,
        task_id: str,
        key: str,
        session_key: str | None = None,
    ) -> MemoryOperationResult:
        """Copy ``key`` from task memory into session memory.

        Args:
            tenant_id: Tenant owning both the task and the session.
            session_id: Target session.
            task_id: Source task.
            key: Task memory key.
            session_key: Target key; defaults to ``key``.

        Returns:
            The exported value on success; ``KEY_NOT_FOUND`` when the
            task memory has no such key.
        """
        source = await self.recall(tenant_id, task_id, key)
        if not source.success:
            return source
        if not source.found:
            return MemoryOperationResult(
                success=False,
                error=f'Key "{key}" not found in task memory',
                error_code=KEY_NOT_FOUND,
            )

        target_key = session_key or key
        written = await self.session_remember(tenant_id, session_id, target_key, source.value)
        if not written.success:
            return written
        logger.debug("Exported task %s memory %r to session %s as %r", task_id, key, session_id, target_key)
        return MemoryOperationResult(success=True, value=source.value, found=True)

    # ─────────────────────────────────────────────────────────────
    # Action router
    # ─────────────────────────────────────────────────────────────

    async def handle_memory_action(
        self,
        action_name: str,
        tenant_id: str,
        task_id: str,
        session_id: str,
        parameters: dict[str, Any],
    ) -> MemoryActionResult:
        """Route an LLM memory action onto the primitives.

        Never raises for bad input; failures are reported in the result
        so they can be fed back to the model.
        """
        try:
            if action_name == "remember":
                return await self._handle_remember(tenant_id, task_id, parameters)
            if action_name == "recall":
                return await self._handle_recall(tenant_id, task_id, session_id, parameters)
            if action_name == "exportToSession":
                return await self._handle_export(tenant_id, task_id, session_id, parameters)
        except ValidationError as e:
            return MemoryActionResult(
                success=False,
                action=action_name,
                key=parameters.get("key"),
                error=str(e),
                message=f"Invalid {action_name} action: {e}",
            )
        return MemoryActionResult(
            success=False,
            action=action_name,
            error=f"Unknown memory action: {action_name}",
            message=f"Unknown memory action: {action_name}",
        )

    async def _handle_remember(
        self,
        tenant_id: str,
        task_id: str,
        parameters: dict[str, Any],
    ) -> MemoryActionResult:
        key = parameters.get("key")
        if not key:
            return MemoryActionResult(
                success=False, action="remember",
                error="Missing required parameter: key",
                message="Failed to store value: missing key",
            )
        if "value" not in parameters:
            return MemoryActionResult(
                success=False, action="remember", key=key,
                error="Missing required parameter: value",
                message=f'Failed to store value for key "{key}": missing value',
            )

        value = parameters["value"]
        result = await self.remember(tenant_id, task_id, key, value)
        if result.success:
            return MemoryActionResult(
                success=True, action="remember", key=key, scope=MemoryScope.TASK, value=value,
                message=f'Stored "{key}" in task memory',
            )
        return MemoryActionResult(
            success=False, action="remember", key=key, error=result.error,
            message=f'Failed to store "{key}": {result.error}',
        )

    async def _handle_recall(
        self,
        tenant_id: str,
        task_id: str,
        session_id: str,
        parameters: dict[str, Any],
    ) -> MemoryActionResult:
        key = parameters.get("key")
        scope = MemoryScope.SESSION if parameters.get("scope") == "session" else MemoryScope.TASK
        if not key:
            return MemoryActionResult(
                success=False, action="recall",
                error="Missing required parameter: key",
                message="Failed to recall value: missing key",
            )

        if key == RECALL_ALL:
            if scope == MemoryScope.SESSION:
                result = await self.session_recall_all(tenant_id, session_id)
            else:
                result = await self.recall_all(tenant_id, task_id)
            if result.success:
                return MemoryActionResult(
                    success=True, action="recall", key=RECALL_ALL, scope=scope, value=result.value,
                    message=f"Retrieved all {scope.value} memory",
                )
            return MemoryActionResult(
                success=False, action="recall", key=RECALL_ALL, scope=scope, error=result.error,
                message=f"Failed to recall all {scope.value} memory: {result.error}",
            )

        if scope == MemoryScope.SESSION:
            result = await self.session_recall(tenant_id, session_id, key)
        else:
            result = await self.recall(tenant_id, task_id, key)
        if result.success:
            return MemoryActionResult(
                success=True, action="recall", key=key, scope=scope, value=result.value,
                message=(
                    f'Retrieved "{key}" from {scope.value} memory' if result.found
                    else f'Key "{key}" not found in {scope.value} memory'
                ),
            )
        return MemoryActionResult(
            success=False, action="recall", key=key, scope=scope, error=result.error,
            message=f'Failed to recall "{key}" from {scope.value} memory: {result.error}',
        )

    async def _handle_export(
        self,
        tenant_id: str,
        task_id: str,
        session_id: str,
        parameters: dict[str, Any],
    ) -> MemoryActionResult:
        key = parameters.get("key")
        session_key = parameters.get("sessionKey") or parameters.get("session_key")
        if not key:
            return MemoryActionResult(
                success=False, action="exportToSession",
                error="Missing required parameter: key",
                message="Failed to export: missing key",
            )

        result = await self.export_to_session(tenant_id, session_id, task_id, key, session_key)
        if result.success:
            return MemoryActionResult(
                success=True, action="exportToSession", key=key, scope=MemoryScope.SESSION,
                value=result.value,
                message=f'Exported "{key}" to session memory as "{session_key or key}"',
            )
        return MemoryActionResult(
            success=False, action="exportToSession", key=key, error=result.error,
            message=f'Failed to export "{key}" to session: {result.error}',
        )

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    async def _write(
        self, tenant_id: str, scope: MemoryScope, owner_id: str, key: str, value: Any
    ) -> MemoryOperationResult:
        _validate_key(key)
        _validate_value(key, value)
        if not await self.repository.set_memory_key(tenant_id, scope, owner_id, key, value, self.clock()):
            return _owner_missing(scope, owner_id)
        return MemoryOperationResult(success=True, value=value, found=True)

    async def _read(self, tenant_id: str, scope: MemoryScope, owner_id: str, key: str) -> MemoryOperationResult:
        _validate_key(key)
        memory = await self.repository.get_memory(tenant_id, scope, owner_id)
        if memory is None:
            return _owner_missing(scope, owner_id)
        if key not in memory:
            return MemoryOperationResult(success=True, value=None, found=False)
        return MemoryOperationResult(success=True, value=memory[key], found=True)

    async def _read_all(self, tenant_id: str, scope: MemoryScope, owner_id: str) -> MemoryOperationResult:
        memory = await self.repository.get_memory(tenant_id, scope, owner_id)
        if memory is None:
            return _owner_missing(scope, owner_id)
        return MemoryOperationResult(success=True, value=memory, found=bool(memory))

    async def _delete(self, tenant_id: str, scope: MemoryScope, owner_id: str, key: str) -> MemoryOperationResult:
        _validate_key(key)
        if not await self.repository.delete_memory_key(tenant_id, scope, owner_id, key, self.clock()):
            return _owner_missing(scope, owner_id)
        return MemoryOperationResult(success=True)


def is_memory_action(action_name: str) -> bool:
    """Check if an action name is a memory action."""
    return action_name in MEMORY_ACTIONS


def parse_memory_action(action: str) -> tuple[str, dict[str, Any]] | None:
    """Parse ``remember("k", v)``, ``recall("k"[, "session"])`` or
    ``exportToSession("k"[, "sk"])``.

    Returns:
        ``(action_name, parameters)``, or None if ``action`` is not a
        memory action.
    """
    trimmed = action.strip()
    paren = trimmed.find("(")
    if paren == -1:
        return None
    name = trimmed[:paren].strip()
    if not is_memory_action(name):
        return None

    close = trimmed.rfind(")")
    params = trimmed[paren + 1:close if close > paren else len(trimmed)]

    if name == "remember":
        key_part, sep, value_part = params.partition(",")
        if not sep:
            return None
        value_part = value_part.strip()
        try:
            value = json.loads(value_part)
        except ValueError:
            value = _unquote(value_part)
        return name, {"key": _unquote(key_part), "value": value}

    parts = [p.strip() for p in params.split(",")]
    key = _unquote(parts[0]) if parts else ""
    second = _unquote(parts[1]) if len(parts) > 1 else ""

    if name == "recall":
        return name, {"key": key, "scope": "session" if second == "session" else "task"}
    parameters: dict[str, Any] = {"key": key}
    if second:
        parameters["sessionKey"] = second
    return name, parameters


def _unquote(text: str) -> str:
    text = text.strip()
    if text[:1] in ("'", '"'):
        text = text[1:]
    if text[-1:] in ("'", '"'):
        text = text[:-1]
    return text


def _validate_key(key: str) -> None:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("Memory key must be a non-empty string")


def _validate_value(key: str, value: Any) -> None:
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f'Value for "{key}" is not JSON-serializable: {e}') from e


def _owner_missing(scope: MemoryScope, owner_id: str) -> MemoryOperationResult:
    if scope == MemoryScope.TASK:
        error = TaskNotFoundError(owner_id)
    else:
        error = SessionNotFoundError(owner_id)
    return MemoryOperationResult(success=False, error=str(error), error_code=error.code)
