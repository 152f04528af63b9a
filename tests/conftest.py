"""Test configuration and fixtures."""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, TypeVar
from unittest.mock import MagicMock

from pydantic import BaseModel

from screen_tasks.config import EngineConfig
from screen_tasks.engine import TaskEngine
from screen_tasks.interfaces.collaborators import ActionProposer, Actuator
from screen_tasks.models.result import ActuatorResult
from screen_tasks.models.skill import FailedState, Skill, SuccessfulAction, normalize_goal
from screen_tasks.models.task import BrowserSession, Task
from screen_tasks.prompts import ActionProposal
from screen_tasks.storage import InMemorySkillStorage, InMemoryTaskStorage

T = TypeVar("T", bound=BaseModel)

TENANT = "acme"
USER = "user-1"
SESSION = "session-1"
URL = "https://app.example.com/home"

HOME_PAGE = """<html><head><title>Home</title></head><body>
<nav class="top-nav">
  <button id="loginBtn" class="nav-button" style="color: red">Log in</button>
  <a id="loginBtnAlt" href="/login" class="auth-link">Sign in</a>
</nav>
<main><p>Welcome to the example app.</p></main>
<script>window.analytics = {};</script>
</body></html>"""

DIALOG_PAGE = HOME_PAGE.replace(
    "</main>",
    """</main>
<div role="dialog" aria-label="Log in form">
  <input name="email" type="email" placeholder="Email" />
  <input name="password" type="password" />
  <button id="submitLogin">Continue</button>
</div>""",
)


# ─────────────────────────────────────────────────────────────────
# Mock OpenAI Client
# ─────────────────────────────────────────────────────────────────

class MockResponse(BaseModel):
    output_parsed: Any


class MockResponses:
    """Structured outputs: returns queued parsed objects in order."""

    def __init__(self, outputs: list[Any]):
        self.outputs = list(outputs)
        self.calls: list[dict] = []

    async def parse(
        self,
        model: str,
        input: list[dict],
        text_format: type[T],
    ) -> MockResponse:
        self.calls.append({"model": model, "input": input, "text_format": text_format})
        output = self.outputs.pop(0) if self.outputs else None
        if isinstance(output, Exception):
            raise output
        return MockResponse(output_parsed=output)


class MockChatCompletions:
    """JSON-mode chat completions: returns queued raw message contents."""

    def __init__(self, contents: list[str | None]):
        self.contents = list(contents)
        self.calls: list[dict] = []

    async def create(self, model: str, messages: list[dict], response_format: dict) -> Any:
        self.calls.append({"model": model, "messages": messages, "response_format": response_format})
        mock_resp = MagicMock()
        mock_resp.choices[0].message.content = self.contents.pop(0) if self.contents else None
        return mock_resp


class MockAsyncOpenAI:
    def __init__(
        self,
        parsed_outputs: list[Any] | None = None,
        chat_contents: list[str | None] | None = None,
    ):
        self.responses = MockResponses(parsed_outputs or [])
        self.chat = MagicMock()
        self.chat.completions = MockChatCompletions(chat_contents or [])


# ─────────────────────────────────────────────────────────────────
# Scripted Collaborators
# ─────────────────────────────────────────────────────────────────

class ScriptedProposer(ActionProposer):
    """Returns (or raises) queued proposals and records every prompt."""

    def __init__(self, script: list[ActionProposal | Exception] | None = None):
        self.script = list(script or [])
        self.calls: list[tuple[str, str, dict]] = []

    async def propose(self, system_prompt: str, user_prompt: str, context: dict[str, Any]) -> ActionProposal:
        self.calls.append((system_prompt, user_prompt, context))
        if not self.script:
            raise AssertionError(f"Proposer script exhausted (context: {context})")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def prompts(self) -> list[str]:
        return [user for _, user, _ in self.calls]


class ScriptedActuator(Actuator):
    """Returns (or raises) queued actuator results and records every action."""

    def __init__(self, script: list[ActuatorResult | Exception] | None = None, delay: float = 0.0):
        self.script = list(script or [])
        self.delay = delay
        self.actions: list[tuple[str, str]] = []

    async def apply(self, task_id: str, action: str) -> ActuatorResult:
        self.actions.append((task_id, action))
        if not self.script:
            raise AssertionError(f"Actuator script exhausted at {action}")
        item = self.script.pop(0)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(item, Exception):
            raise item
        return item


class FakeClock:
    """Controllable replacement for ``datetime.now``."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 15, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ─────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────

def create_test_proposal(
    action: str,
    expected_outcome: dict[str, Any] | None = None,
    thought: str = "Test reasoning",
    target_description: str = "",
    strategy: str | None = None,
) -> ActionProposal:
    """Create a proposal for testing (expected outcome in camelCase form)."""
    return ActionProposal.model_validate({
        "thought": thought,
        "action": action,
        "expectedOutcome": expected_outcome or {},
        "targetDescription": target_description,
        "strategy": strategy,
    })


def create_test_engine(
    proposals: list[ActionProposal | Exception] | None = None,
    actuator_results: list[ActuatorResult | Exception] | None = None,
    config: EngineConfig | None = None,
    clock: FakeClock | None = None,
    skill_storage: InMemorySkillStorage | None = None,
) -> tuple[TaskEngine, ScriptedProposer, ScriptedActuator]:
    """Create an engine over in-memory storage with scripted collaborators."""
    proposer = ScriptedProposer(proposals)
    actuator = ScriptedActuator(actuator_results)
    engine = TaskEngine(
        task_storage=InMemoryTaskStorage(),
        skill_storage=skill_storage or InMemorySkillStorage(),
        proposer=proposer,
        actuator=actuator,
        config=config,
        clock=clock or FakeClock(),
    )
    return engine, proposer, actuator


def create_test_task(
    task_id: str | None = None,
    query: str = "Log in to the dashboard",
    url: str | None = URL,
    session_id: str = SESSION,
    tenant_id: str = TENANT,
) -> Task:
    """Create a task for testing."""
    return Task(
        task_id=task_id or str(uuid.uuid4()),
        tenant_id=tenant_id,
        user_id=USER,
        session_id=session_id,
        query=query,
        url=url,
    )


def create_test_session(session_id: str = SESSION, tenant_id: str = TENANT) -> BrowserSession:
    return BrowserSession(session_id=session_id, tenant_id=tenant_id, user_id=USER)


def create_test_skill(
    tenant_id: str = TENANT,
    domain: str = "app.example.com",
    goal: str = "Log in to the dashboard",
    failed_action: str = "click(loginBtn)",
    successful_action: str = "click(loginBtnAlt)",
    success_count: int = 1,
    failure_count: int = 0,
    last_used: datetime | None = None,
) -> Skill:
    """Create a skill for testing."""
    now = last_used or datetime.now()
    return Skill(
        skill_id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        domain=domain,
        goal=goal,
        goal_normalized=normalize_goal(goal),
        failed_state=FailedState(action=failed_action, element_description="Log in button"),
        successful_action=SuccessfulAction(action=successful_action, element_description="Sign in link"),
        success_count=success_count,
        failure_count=failure_count,
        last_used=now,
        created_at=now,
        updated_at=now,
    )
