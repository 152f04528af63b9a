"""MCP Server for screen-tasks.

Exposes the task lifecycle and memory action APIs as MCP tools, so an
LLM-facing client (or a browser extension backend) can drive tasks.

Usage:
    python -m screen_tasks serve --actuator my_browser:actuator --port 8000
    python -m screen_tasks serve --actuator my_browser:actuator --transport stdio
"""

from typing import Any

# MCP imports (optional dependency)
try:
    from mcp.server.fastmcp import FastMCP
    MCP_AVAILABLE = True
except ImportError:
    MCP_AVAILABLE = False
    FastMCP = None

from screen_tasks.config import EngineConfig
from screen_tasks.core.llm import LLMClient
from screen_tasks.engine import TaskEngine
from screen_tasks.errors import EngineError
from screen_tasks.interfaces.collaborators import Actuator
from screen_tasks.memory import parse_memory_action
from screen_tasks.models.task import BlockerContext
from screen_tasks.storage.json_storage import JSONSkillStorage
from screen_tasks.storage.memory_storage import InMemoryTaskStorage
from screen_tasks.utils.serialization import to_jsonable


def build_engine(
    actuator: Actuator,
    storage_path: str = "./skills.json",
    llm_model: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    config: EngineConfig | None = None,
) -> TaskEngine:
    """Assemble a TaskEngine with an OpenAI proposer and JSON skill storage.

    Args:
        actuator: Applies actions in the browser.
        storage_path: Path to JSON file for skill storage.
        llm_model: Model for action proposals (defaults to the config value).
        base_url: Base URL for OpenAI-compatible API (e.g., Ollama).
        api_key: API key (overrides OPENAI_API_KEY env var).
        config: Engine policy values (defaults to ``EngineConfig.from_env()``).
    """
    from openai import AsyncOpenAI

    config = config or EngineConfig.from_env()

    client_kwargs = {}
    if base_url:
        client_kwargs["base_url"] = base_url
    if api_key:
        client_kwargs["api_key"] = api_key
    client = AsyncOpenAI(**client_kwargs)

    return TaskEngine(
        task_storage=InMemoryTaskStorage(),
        skill_storage=JSONSkillStorage(storage_path),
        proposer=LLMClient(
            client,
            model=llm_model or config.llm_model,
            use_structured_outputs=base_url is None,
        ),
        actuator=actuator,
        config=config,
    )


def _error(e: EngineError) -> dict[str, Any]:
    return {
        "status": "error",
        "code": e.code,
        "message": str(e),
        "retryable": e.retryable,
    }


def create_mcp_server(engine: TaskEngine) -> "FastMCP":
    """Create and configure the MCP server.

    Args:
        engine: The task engine the tools operate on.

    Returns:
        Configured FastMCP server instance
    """
    if not MCP_AVAILABLE:
        raise ImportError(
            "MCP SDK not installed. Install with: pip install screen-tasks[mcp]"
        )

    mcp = FastMCP(name="screen-tasks")

    # ─────────────────────────────────────────────────────────────
    # Task lifecycle
    # ─────────────────────────────────────────────────────────────

    @mcp.tool()
    async def create_task(
        tenant_id: str,
        user_id: str,
        session_id: str,
        query: str,
        url: str | None = None,
    ) -> dict:
        """Start a new multi-step browser task.

        Args:
            tenant_id: Tenant (user or organization) owning the task
            user_id: User starting the task
            session_id: Browser session the task runs in
            query: The goal, in plain language
            url: Current page URL

        Returns:
            Task summary with its id and status
        """
        try:
            task = await engine.create_task(tenant_id, user_id, session_id, query, url=url)
        except EngineError as e:
            return _error(e)
        return {"status": "created", **task.summary()}

    @mcp.tool()
    async def submit_step(
        tenant_id: str,
        task_id: str,
        dom: str,
        url: str | None = None,
        step_index: int | None = None,
    ) -> dict:
        """Run the next step of a task against the current page.

        Resubmitting an already recorded step_index returns the stored
        step instead of executing it again.

        Args:
            tenant_id: Tenant owning the task
            task_id: The task
            dom: Current page HTML
            url: Current page URL
            step_index: Step the client is submitting (defaults to the next one)

        Returns:
            The recorded step, its verification and the task status
        """
        try:
            result = await engine.submit_step(tenant_id, task_id, step_index=step_index, dom=dom, url=url)
        except EngineError as e:
            return _error(e)

        data = to_jsonable(result)
        data["action"].pop("dom_snapshot", None)
        return data

    @mcp.tool()
    async def get_active_task(tenant_id: str, user_id: str, url: str | None = None) -> dict:
        """Find the user's active task, preferring one on the given URL.

        Tasks idle for longer than the stale threshold are interrupted first.
        """
        try:
            task = await engine.get_active_task(tenant_id, user_id, url=url)
        except EngineError as e:
            return _error(e)
        if task is None:
            return {"status": "not_found", "message": "No active task"}
        return task.summary()

    @mcp.tool()
    async def resume_task(
        tenant_id: str,
        task_id: str,
        resolution_data: dict[str, Any] | None = None,
    ) -> dict:
        """Resume a paused or interrupted task.

        Args:
            tenant_id: Tenant owning the task
            task_id: The task
            resolution_data: Information the user provided (e.g. a verification code)
        """
        try:
            task = await engine.resume_task(tenant_id, task_id, resolution_data)
        except EngineError as e:
            return _error(e)
        return task.summary()

    @mcp.tool()
    async def pause_task(tenant_id: str, task_id: str, reason: str, blocker_type: str = "user_requested") -> dict:
        """Pause an active task until the user acts.

        Args:
            tenant_id: Tenant owning the task
            task_id: The task
            reason: What the user needs to do
            blocker_type: Blocker category (e.g. login_failure, mfa_required, captcha)
        """
        try:
            task = await engine.get_task(tenant_id, task_id)
            blocker = BlockerContext(type=blocker_type, message=reason, url=task.url if task else None)
            task = await engine.pause_task(tenant_id, task_id, blocker=blocker)
        except EngineError as e:
            return _error(e)
        return {**task.summary(), "blocker": to_jsonable(task.blocker_context)}

    @mcp.tool()
    async def export_debug_session(tenant_id: str, task_id: str) -> dict:
        """Export a task with all its steps, with secrets masked."""
        try:
            return await engine.export_debug_session(tenant_id, task_id)
        except EngineError as e:
            return _error(e)

    # ─────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────

    @mcp.tool()
    async def memory_action(tenant_id: str, task_id: str, action: str) -> dict:
        """Run a memory action for a task.

        Supported forms: remember("key", value), recall("key"),
        recall("key", "session"), recall("*"), exportToSession("key", "sessionKey").
        """
        parsed = parse_memory_action(action)
        if parsed is None:
            return {"status": "error", "code": "VALIDATION_ERROR", "message": f"Not a memory action: {action}"}
        try:
            task = await engine.get_task(tenant_id, task_id)
        except EngineError as e:
            return _error(e)
        if task is None:
            return {"status": "error", "code": "TASK_NOT_FOUND", "message": f"Task not found: {task_id}"}

        name, parameters = parsed
        result = await engine.memory.handle_memory_action(
            name, task.tenant_id, task.task_id, task.session_id, parameters
        )
        return result.to_dict()

    # ─────────────────────────────────────────────────────────────
    # Skills
    # ─────────────────────────────────────────────────────────────

    @mcp.tool()
    async def skill_stats(tenant_id: str) -> dict:
        """Skill count, average success rate and top domains for a tenant."""
        try:
            return await engine.skills.stats(tenant_id)
        except EngineError as e:
            return _error(e)

    @mcp.tool()
    async def purge_expired_skills(tenant_id: str | None = None) -> dict:
        """Delete skills not successfully used within the retention window."""
        deleted = await engine.skills.purge_expired(tenant_id)
        return {"status": "ok", "deleted": deleted}

    return mcp


# Convenience function for direct import
def get_server(actuator: Actuator, **kwargs) -> "FastMCP":
    """Build an engine from keyword settings and wrap it in an MCP server."""
    return create_mcp_server(build_engine(actuator, **kwargs))
