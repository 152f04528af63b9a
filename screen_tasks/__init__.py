"""screen-tasks: task execution and verification engine for browser agents.

Drives multi-step browser tasks one verified step at a time, self-corrects
failed steps (biased by a per-tenant skill library of past corrections),
and keeps task- and session-scoped memory.

Example:
    ```python
    from openai import AsyncOpenAI
    from screen_tasks import TaskEngine, LLMClient, InMemoryTaskStorage, InMemorySkillStorage

    engine = TaskEngine(
        task_storage=InMemoryTaskStorage(),
        skill_storage=InMemorySkillStorage(),
        proposer=LLMClient(AsyncOpenAI()),
        actuator=my_actuator,
    )

    task = await engine.create_task("acme", "u1", "s1", "log in", url="https://app.example.com")
    result = await engine.submit_step("acme", task.task_id, dom=page_html)
    ```
"""

__version__ = "0.1.0"

# Main entry points
from screen_tasks.engine import TaskEngine, parse_action
from screen_tasks.config import EngineConfig
from screen_tasks.core.llm import LLMClient

# Components
from screen_tasks.verification import verify
from screen_tasks.skills import SkillLibrary, format_skill_hints
from screen_tasks.memory import MemoryService, is_memory_action, parse_memory_action
from screen_tasks.blockers import detect_blocker
from screen_tasks.dom import clean_dom, extract_text_content, hash_dom, normalize, skeletonize

# Models
from screen_tasks.state import TaskStatus
from screen_tasks.models import (
    Task,
    TaskAction,
    BrowserSession,
    BlockerContext,
    Skill,
    SkillHint,
    FailedState,
    SuccessfulAction,
    CorrectionStrategy,
    VerificationResult,
    ActuatorResult,
    StepResult,
    MemoryScope,
    MemoryOperationResult,
    MemoryActionResult,
)
from screen_tasks.prompts import ActionProposal, ExpectedOutcome

# Errors
from screen_tasks.errors import (
    EngineError,
    ValidationError,
    NotFoundError,
    TaskNotFoundError,
    SessionNotFoundError,
    InvalidTaskState,
    VerificationFailed,
    ActuatorError,
    PersistenceConflict,
    ProposalError,
)

# Interfaces
from screen_tasks.interfaces import (
    TaskRepository,
    MemoryRepository,
    SkillRepository,
    ActionProposer,
    Actuator,
)

# Storage implementations
from screen_tasks.storage import InMemoryTaskStorage, InMemorySkillStorage, JSONSkillStorage

# MCP Server (optional - only if mcp is installed)
from screen_tasks.mcp_server import MCP_AVAILABLE as _HAS_MCP

__all__ = [
    # Version
    "__version__",
    # Main classes
    "TaskEngine",
    "EngineConfig",
    "LLMClient",
    "parse_action",
    # Components
    "verify",
    "SkillLibrary",
    "format_skill_hints",
    "MemoryService",
    "is_memory_action",
    "parse_memory_action",
    "detect_blocker",
    "clean_dom",
    "extract_text_content",
    "hash_dom",
    "normalize",
    "skeletonize",
    # Models
    "TaskStatus",
    "Task",
    "TaskAction",
    "BrowserSession",
    "BlockerContext",
    "Skill",
    "SkillHint",
    "FailedState",
    "SuccessfulAction",
    "CorrectionStrategy",
    "VerificationResult",
    "ActuatorResult",
    "StepResult",
    "MemoryScope",
    "MemoryOperationResult",
    "MemoryActionResult",
    "ActionProposal",
    "ExpectedOutcome",
    # Errors
    "EngineError",
    "ValidationError",
    "NotFoundError",
    "TaskNotFoundError",
    "SessionNotFoundError",
    "InvalidTaskState",
    "VerificationFailed",
    "ActuatorError",
    "PersistenceConflict",
    "ProposalError",
    # Interfaces
    "TaskRepository",
    "MemoryRepository",
    "SkillRepository",
    "ActionProposer",
    "Actuator",
    # Storage
    "InMemoryTaskStorage",
    "InMemorySkillStorage",
    "JSONSkillStorage",
]

# Add MCP to __all__ if available
if _HAS_MCP:
    from screen_tasks.mcp_server import create_mcp_server, get_server

    __all__.extend([
        "create_mcp_server",
        "get_server",
    ])
