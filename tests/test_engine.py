"""Tests for TaskEngine step execution, correction and task lifecycle."""

import asyncio
import logging

import pytest

from screen_tasks.config import EngineConfig
from screen_tasks.engine import TaskEngine, parse_action
from screen_tasks.errors import (
    ActuatorError,
    InvalidTaskState,
    ProposalError,
    TaskNotFoundError,
    ValidationError,
)
from screen_tasks.models.result import ActuatorResult
from screen_tasks.models.task import TaskAction
from screen_tasks.state import TaskStatus
from screen_tasks.storage import InMemorySkillStorage

from tests.conftest import (
    DIALOG_PAGE,
    HOME_PAGE,
    SESSION,
    TENANT,
    URL,
    USER,
    FakeClock,
    create_test_engine,
    create_test_proposal,
    create_test_skill,
)

DIALOG_EXPECTED = {"elementsToAppear": [{"role": "dialog"}]}
LOGIN_URL = "https://app.example.com/login"
QUERY = "Log in to the dashboard"


def login_proposals() -> list:
    return [
        create_test_proposal("click(loginBtn)", DIALOG_EXPECTED, target_description="Log in button"),
        create_test_proposal(
            "click(loginBtnAlt)",
            DIALOG_EXPECTED,
            thought="The nav button did nothing, the sign in link opens the dialog",
            target_description="Sign in link",
            strategy="alternative-selector",
        ),
    ]


def login_results() -> list:
    return [
        ActuatorResult(dom_snapshot=HOME_PAGE, url=URL),
        ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL),
    ]


async def new_task(engine: TaskEngine, query: str = QUERY, url: str | None = URL, **kwargs):
    return await engine.create_task(TENANT, USER, SESSION, query, url=url, **kwargs)


class TestParseAction:
    """Tests for parse_action()."""

    def test_simple_call(self) -> None:
        assert parse_action("click(12)") == ("click", ["12"])

    def test_quoted_commas_do_not_split(self) -> None:
        assert parse_action('setValue(4, "a, b")') == ("setValue", ["4", '"a, b"'])

    def test_nested_brackets(self) -> None:
        assert parse_action('remember("user", {"a": 1, "b": [1, 2]})') == (
            "remember",
            ['"user"', '{"a": 1, "b": [1, 2]}'],
        )

    def test_no_arguments(self) -> None:
        assert parse_action("finish()") == ("finish", [])
        assert parse_action("scroll") == ("scroll", [])

    def test_not_call_shaped(self) -> None:
        assert parse_action("click the button") is None
        assert parse_action("") is None


class TestCreateTask:
    """Tests for engine.create_task()."""

    @pytest.mark.asyncio
    async def test_creates_active_task_and_session(self) -> None:
        engine, _, _ = create_test_engine()

        task = await new_task(engine)

        assert task.status == TaskStatus.ACTIVE
        assert task.current_step_index == 0
        assert task.domain == "app.example.com"
        assert await engine.tasks.get_session(TENANT, SESSION) is not None

    @pytest.mark.asyncio
    async def test_existing_task_id_returns_stored_task(self) -> None:
        engine, _, _ = create_test_engine()
        first = await new_task(engine, task_id="task-1")

        second = await new_task(engine, query="Something else", task_id="task-1")

        assert second.task_id == first.task_id
        assert second.query == QUERY

    @pytest.mark.asyncio
    async def test_blank_query_rejected(self) -> None:
        engine, _, _ = create_test_engine()

        with pytest.raises(ValidationError):
            await new_task(engine, query="   ")

    @pytest.mark.asyncio
    async def test_session_of_another_tenant_rejected(self) -> None:
        engine, _, _ = create_test_engine()
        await new_task(engine)

        with pytest.raises(ValidationError):
            await engine.create_task("globex", "user-2", SESSION, QUERY, url=URL)

        assert await engine.tasks.get_session("globex", SESSION) is None

    @pytest.mark.asyncio
    async def test_context_manager_opens_and_closes(self) -> None:
        engine, _, _ = create_test_engine()

        async with engine as opened:
            task = await new_task(opened)

        assert task.task_id


class TestSubmitStep:
    """Tests for engine.submit_step() on the happy and correction paths."""

    @pytest.mark.asyncio
    async def test_passing_step_advances_task(self) -> None:
        engine, proposer, actuator = create_test_engine(
            proposals=[create_test_proposal("click(loginBtnAlt)", DIALOG_EXPECTED)],
            actuator_results=[ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL)],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.EXECUTING
        assert result.action.passed is True
        assert result.action.step_index == 0
        assert result.correction_attempts == 0
        assert result.verification.passed is True
        assert result.action.expected_outcome == DIALOG_EXPECTED
        assert actuator.actions == [(task.task_id, "click(loginBtnAlt)")]
        assert proposer.calls[0][2]["mode"] == "propose"

        stored = await engine.get_task(TENANT, task.task_id)
        assert stored.current_step_index == 1
        assert stored.status == TaskStatus.EXECUTING

    @pytest.mark.asyncio
    async def test_snapshot_is_skeletonized(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[create_test_proposal("click(loginBtnAlt)", DIALOG_EXPECTED)],
            actuator_results=[ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL)],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        snapshot = result.action.dom_snapshot
        assert 'id="submitLogin"' in snapshot
        assert "<script" not in snapshot
        assert "Welcome to the example app" not in snapshot

    @pytest.mark.asyncio
    async def test_failed_step_is_corrected_and_learned(self) -> None:
        engine, proposer, actuator = create_test_engine(
            proposals=login_proposals(),
            actuator_results=login_results(),
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.EXECUTING
        assert result.action.passed is True
        assert result.action.action == "click(loginBtnAlt)"
        assert result.correction_attempts == 1
        assert result.action.metrics["failure_kind"] == "VERIFICATION_FAILED"
        assert result.action.metrics["original_action"] == "click(loginBtn)"
        assert [a for _, a in actuator.actions] == ["click(loginBtn)", "click(loginBtnAlt)"]

        correction_prompt = proposer.prompts[1]
        assert "dialog not found" in correction_prompt
        assert proposer.calls[1][2] == {
            "task_id": task.task_id,
            "step_index": 0,
            "mode": "correction",
            "attempt": 1,
        }

        skills = await engine.skill_storage.list_for_tenant(TENANT)
        assert len(skills) == 1
        skill = skills[0]
        assert skill.domain == "app.example.com"
        assert skill.success_count == 1
        assert skill.failure_count == 0
        assert skill.failed_state.action == "click(loginBtn)"
        assert skill.failed_state.element_description == "Log in button"
        assert skill.failed_state.error_type == "VERIFICATION_FAILED"
        assert skill.successful_action.action == "click(loginBtnAlt)"
        assert skill.successful_action.strategy.value == "alternative-selector"

        stored = await engine.get_task(TENANT, task.task_id)
        assert stored.current_step_index == 1
        assert len(await engine.list_actions(TENANT, task.task_id)) == 1

    @pytest.mark.asyncio
    async def test_learned_skill_is_hinted_and_reinforced(self) -> None:
        skill_storage = InMemorySkillStorage()
        engine, proposer, _ = create_test_engine(
            proposals=login_proposals() + login_proposals(),
            actuator_results=login_results() + login_results(),
            skill_storage=skill_storage,
        )
        first = await new_task(engine)
        await engine.submit_step(TENANT, first.task_id, dom=HOME_PAGE, url=URL)
        [skill] = await skill_storage.list_for_tenant(TENANT)

        second = await new_task(engine)
        result = await engine.submit_step(TENANT, second.task_id, dom=HOME_PAGE, url=URL)

        assert result.skill_hints_used == [skill.skill_id]
        hinted_prompt = proposer.prompts[3]
        assert "LEARNED PATTERNS" in hinted_prompt
        assert "AVOID: click(loginBtn)" in hinted_prompt
        assert "USE: click(loginBtnAlt)" in hinted_prompt

        [reinforced] = await skill_storage.list_for_tenant(TENANT)
        assert reinforced.skill_id == skill.skill_id
        assert reinforced.success_count == 2
        assert reinforced.success_rate == 1.0

    @pytest.mark.asyncio
    async def test_state_transitions_are_logged_in_order(self, caplog) -> None:
        engine, _, _ = create_test_engine(
            proposals=login_proposals(),
            actuator_results=login_results(),
        )
        task = await new_task(engine)

        with caplog.at_level(logging.DEBUG, logger="screen_tasks.engine"):
            await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        transitions = [
            r.getMessage().split(": ", 1)[1]
            for r in caplog.records
            if r.getMessage().startswith("[STATE]")
        ]
        assert transitions == [
            "active -> planning",
            "planning -> executing",
            "executing -> verifying",
            "verifying -> correcting",
            "correcting -> executing",
            "executing -> verifying",
            "verifying -> executing",
        ]

    @pytest.mark.asyncio
    async def test_correction_exhaustion_fails_task_and_penalizes_hints(self) -> None:
        skill_storage = InMemorySkillStorage()
        seeded = create_test_skill()
        skill_storage._skills[seeded.key] = seeded
        engine, proposer, _ = create_test_engine(
            proposals=[
                create_test_proposal("click(loginBtn)", DIALOG_EXPECTED),
                create_test_proposal("click(navToggle)", DIALOG_EXPECTED),
                create_test_proposal("click(menuLogin)", DIALOG_EXPECTED),
            ],
            actuator_results=[ActuatorResult(dom_snapshot=HOME_PAGE, url=URL) for _ in range(3)],
            skill_storage=skill_storage,
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.FAILED
        assert result.correction_attempts == 2
        assert result.action.passed is False
        assert result.action.action == "click(menuLogin)"
        assert result.error == "dialog not found"
        assert len(proposer.calls) == 3

        stored = await engine.get_task(TENANT, task.task_id)
        assert stored.status == TaskStatus.FAILED
        assert stored.last_error == "dialog not found"

        [penalized] = await skill_storage.list_for_tenant(TENANT)
        assert penalized.failure_count == 1
        assert penalized.success_rate == 0.5

        with pytest.raises(InvalidTaskState):
            await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

    @pytest.mark.asyncio
    async def test_correction_budget_is_configurable(self) -> None:
        engine, proposer, _ = create_test_engine(
            proposals=[
                create_test_proposal("click(loginBtn)", DIALOG_EXPECTED),
                create_test_proposal("click(navToggle)", DIALOG_EXPECTED),
            ],
            actuator_results=[ActuatorResult(dom_snapshot=HOME_PAGE, url=URL) for _ in range(2)],
            config=EngineConfig(max_correction_attempts=1),
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.FAILED
        assert result.correction_attempts == 1
        assert len(proposer.calls) == 2

    @pytest.mark.asyncio
    async def test_actuator_error_triggers_correction(self) -> None:
        engine, proposer, _ = create_test_engine(
            proposals=login_proposals(),
            actuator_results=[
                ActuatorError("Element not interactable"),
                ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL),
            ],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.action.passed is True
        assert result.action.metrics["failure_kind"] == "ACTUATOR_ERROR"
        assert "Element not interactable" in proposer.prompts[1]
        [skill] = await engine.skill_storage.list_for_tenant(TENANT)
        assert skill.failed_state.error_type == "ACTUATOR_ERROR"

    @pytest.mark.asyncio
    async def test_reported_actuator_error_triggers_correction(self) -> None:
        engine, proposer, _ = create_test_engine(
            proposals=login_proposals(),
            actuator_results=[
                ActuatorResult(error="Timed out waiting for element"),
                ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL),
            ],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.action.passed is True
        assert result.correction_attempts == 1
        assert "Timed out waiting for element" in proposer.prompts[1]

    @pytest.mark.asyncio
    async def test_proposal_error_leaves_task_unchanged(self) -> None:
        engine, _, actuator = create_test_engine(proposals=[ProposalError("Malformed action proposal")])
        task = await new_task(engine)

        with pytest.raises(ProposalError) as exc_info:
            await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert exc_info.value.retryable is True
        stored = await engine.get_task(TENANT, task.task_id)
        assert stored.status == TaskStatus.ACTIVE
        assert stored.current_step_index == 0
        assert await engine.list_actions(TENANT, task.task_id) == []
        assert actuator.actions == []

    @pytest.mark.asyncio
    async def test_proposal_error_during_correction_uses_an_attempt(self) -> None:
        original, correction = login_proposals()
        engine, _, _ = create_test_engine(
            proposals=[original, ProposalError("empty"), correction],
            actuator_results=login_results(),
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.action.passed is True
        assert result.correction_attempts == 2

    @pytest.mark.asyncio
    async def test_empty_expected_outcome_never_passes(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[
                create_test_proposal("click(loginBtn)"),
                create_test_proposal("click(loginBtn)"),
                create_test_proposal("click(loginBtn)"),
            ],
            actuator_results=[ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL) for _ in range(3)],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.FAILED
        assert "declares no clauses" in result.error


class TestLocalActions:
    """Tests for finish, fail and memory actions."""

    @pytest.mark.asyncio
    async def test_finish_completes_task_without_actuator(self) -> None:
        engine, _, actuator = create_test_engine(
            proposals=[create_test_proposal('finish("Logged in")')],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=DIALOG_PAGE, url=URL)

        assert result.status == TaskStatus.COMPLETED
        assert result.action.passed is True
        assert result.action.reason == "Finished: Logged in"
        assert actuator.actions == []

        with pytest.raises(InvalidTaskState):
            await engine.submit_step(TENANT, task.task_id, dom=DIALOG_PAGE, url=URL)

    @pytest.mark.asyncio
    async def test_fail_action_fails_without_correction(self) -> None:
        engine, proposer, _ = create_test_engine(
            proposals=[create_test_proposal('fail("The site is down")')],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.FAILED
        assert result.correction_attempts == 0
        assert result.error == "Agent gave up: The site is down"
        assert len(proposer.calls) == 1

    @pytest.mark.asyncio
    async def test_memory_action_is_applied_locally(self) -> None:
        engine, proposer, actuator = create_test_engine(
            proposals=[
                create_test_proposal('remember("email", "ada@example.com")'),
                create_test_proposal('finish("done")'),
            ],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.action.passed is True
        assert result.action.reason == 'Stored "email" in task memory'
        assert result.status == TaskStatus.EXECUTING
        assert actuator.actions == []

        recalled = await engine.memory.recall(TENANT, task.task_id, "email")
        assert recalled.value == "ada@example.com"

        await engine.submit_step(TENANT, task.task_id, url=URL)
        assert '"email": "ada@example.com"' in proposer.prompts[1]
        assert "0. remember" in proposer.prompts[1]


class TestStepIdempotence:
    """Tests for step index handling and concurrent writes."""

    @pytest.mark.asyncio
    async def test_resubmitting_recorded_step_replays_it(self) -> None:
        engine, proposer, actuator = create_test_engine(
            proposals=login_proposals(),
            actuator_results=login_results(),
        )
        task = await new_task(engine)
        first = await engine.submit_step(TENANT, task.task_id, step_index=0, dom=HOME_PAGE, url=URL)

        again = await engine.submit_step(TENANT, task.task_id, step_index=0, dom=HOME_PAGE, url=URL)

        assert again.replayed is True
        assert again.action == first.action
        assert again.correction_attempts == 1
        assert len(actuator.actions) == 2
        assert len(proposer.calls) == 2
        assert len(await engine.list_actions(TENANT, task.task_id)) == 1

    @pytest.mark.asyncio
    async def test_step_index_ahead_is_rejected(self) -> None:
        engine, _, _ = create_test_engine()
        task = await new_task(engine)

        with pytest.raises(ValidationError):
            await engine.submit_step(TENANT, task.task_id, step_index=3, dom=HOME_PAGE)

    @pytest.mark.asyncio
    async def test_concurrent_write_returns_stored_step(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[create_test_proposal("click(loginBtnAlt)", DIALOG_EXPECTED)],
            actuator_results=[ActuatorResult(dom_snapshot=DIALOG_PAGE, url=URL)],
        )
        task = await new_task(engine)
        await engine.tasks.insert_action(TaskAction(
            tenant_id=TENANT,
            task_id=task.task_id,
            user_id=USER,
            step_index=0,
            thought="Recorded by another worker",
            action="click(other)",
            reason="ok",
        ))

        result = await engine.submit_step(TENANT, task.task_id, step_index=0, dom=HOME_PAGE, url=URL)

        assert result.replayed is True
        assert result.action.action == "click(other)"
        assert len(await engine.list_actions(TENANT, task.task_id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_step_learns_once(self) -> None:
        engine, _, actuator = create_test_engine(
            proposals=[login_proposals()[0], login_proposals()[0], login_proposals()[1], login_proposals()[1]],
            actuator_results=[login_results()[0], login_results()[0], login_results()[1], login_results()[1]],
        )
        actuator.delay = 0.01
        task = await new_task(engine)

        results = await asyncio.gather(
            engine.submit_step(TENANT, task.task_id, step_index=0, dom=HOME_PAGE, url=URL),
            engine.submit_step(TENANT, task.task_id, step_index=0, dom=HOME_PAGE, url=URL),
        )

        assert sorted(r.replayed for r in results) == [False, True]
        assert len(await engine.list_actions(TENANT, task.task_id)) == 1
        skills = await engine.skill_storage.list_for_tenant(TENANT)
        assert len(skills) == 1
        assert skills[0].success_count == 1

    @pytest.mark.asyncio
    async def test_actions_are_listed_in_step_order(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[
                create_test_proposal('remember("a", 1)'),
                create_test_proposal('remember("b", 2)'),
                create_test_proposal('finish("ok")'),
            ],
        )
        task = await new_task(engine)
        for _ in range(3):
            await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        actions = await engine.list_actions(TENANT, task.task_id)

        assert [a.step_index for a in actions] == [0, 1, 2]
        assert [a.action for a in actions] == ['remember("a", 1)', 'remember("b", 2)', 'finish("ok")']

    @pytest.mark.asyncio
    async def test_unknown_task_raises(self) -> None:
        engine, _, _ = create_test_engine()

        with pytest.raises(TaskNotFoundError):
            await engine.submit_step(TENANT, "missing", dom=HOME_PAGE)


class TestBlockers:
    """Tests for pausing on pages that need a human."""

    @pytest.mark.asyncio
    async def test_login_failure_pauses_task(self) -> None:
        error_page = (
            "<html><body><h1>Sign in</h1>"
            '<p class="error">Invalid password. Please try again.</p></body></html>'
        )
        engine, proposer, _ = create_test_engine(
            proposals=[
                create_test_proposal("click(submitLogin)", {"urlShouldChange": True}),
                create_test_proposal('finish("Logged in")'),
            ],
            actuator_results=[ActuatorResult(dom_snapshot=error_page, url=LOGIN_URL)],
        )
        task = await new_task(engine, url=LOGIN_URL)

        result = await engine.submit_step(TENANT, task.task_id, dom=DIALOG_PAGE, url=LOGIN_URL)

        assert result.status == TaskStatus.AWAITING_USER
        assert result.blocker.type == "login_failure"
        assert result.blocker.matched_text == "Invalid password"
        assert result.action.passed is False
        assert result.action.reason.startswith("Blocked (login_failure)")
        assert result.correction_attempts == 0

        paused = await engine.get_task(TENANT, task.task_id)
        assert paused.blocker_context.type == "login_failure"
        assert paused.paused_at is not None

        with pytest.raises(InvalidTaskState):
            await engine.submit_step(TENANT, task.task_id, dom=error_page, url=LOGIN_URL)

        resumed = await engine.resume_task(TENANT, task.task_id, {"code": "123456"})
        assert resumed.status == TaskStatus.EXECUTING
        assert resumed.blocker_context is None
        assert resumed.paused_at is None

        await engine.submit_step(TENANT, task.task_id, dom=error_page, url=LOGIN_URL)
        assert '"code": "123456"' in proposer.prompts[1]
        final = await engine.get_task(TENANT, task.task_id)
        assert final.status == TaskStatus.COMPLETED
        assert final.user_resolution_data is None

    @pytest.mark.asyncio
    async def test_captcha_pauses_task(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[create_test_proposal("click(loginBtn)", DIALOG_EXPECTED)],
            actuator_results=[ActuatorResult(
                dom_snapshot="<html><body><div>Please complete the reCAPTCHA below</div></body></html>",
                url=URL,
            )],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.AWAITING_USER
        assert result.blocker.type == "captcha"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "page_text,blocker_type",
        [
            ("Your session has expired. Please sign in again.", "session_expired"),
            ("Too many requests. Try again in 30 seconds.", "rate_limit"),
            ("403 Forbidden: you don't have permission to view this page.", "access_denied"),
        ],
    )
    async def test_other_blockers_pause_task(self, page_text: str, blocker_type: str) -> None:
        engine, _, _ = create_test_engine(
            proposals=[create_test_proposal("click(loginBtn)", DIALOG_EXPECTED)],
            actuator_results=[ActuatorResult(
                dom_snapshot=f"<html><body><main><p>{page_text}</p></main></body></html>",
                url=URL,
            )],
        )
        task = await new_task(engine)

        result = await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        assert result.status == TaskStatus.AWAITING_USER
        assert result.blocker.type == blocker_type
        assert result.correction_attempts == 0
        assert (await engine.get_task(TENANT, task.task_id)).blocker_context.type == blocker_type


class TestTaskLifecycle:
    """Tests for pause, resume, stale sweeping and active task lookup."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self) -> None:
        engine, _, _ = create_test_engine()
        task = await new_task(engine)

        paused = await engine.pause_task(TENANT, task.task_id, reason="Waiting for approval")

        assert paused.status == TaskStatus.AWAITING_USER
        assert paused.blocker_context.type == "user_requested"
        assert paused.blocker_context.message == "Waiting for approval"

        resumed = await engine.resume_task(TENANT, task.task_id)
        assert resumed.status == TaskStatus.EXECUTING

    @pytest.mark.asyncio
    async def test_resume_requires_paused_task(self) -> None:
        engine, _, _ = create_test_engine()
        task = await new_task(engine)

        with pytest.raises(InvalidTaskState) as exc_info:
            await engine.resume_task(TENANT, task.task_id)

        assert exc_info.value.current_status == "active"

    @pytest.mark.asyncio
    async def test_stale_tasks_are_interrupted(self) -> None:
        clock = FakeClock()
        engine, _, _ = create_test_engine(clock=clock)
        stale = await new_task(engine)
        clock.advance(minutes=35)
        fresh = await new_task(engine, url="https://other.example.org/")
        clock.advance(minutes=5)

        active = await engine.get_active_task(TENANT, USER)

        assert active.task_id == fresh.task_id
        interrupted = await engine.get_task(TENANT, stale.task_id)
        assert interrupted.status == TaskStatus.INTERRUPTED
        assert interrupted.updated_at == clock.now

        clock.advance(minutes=40)
        assert await engine.get_active_task(TENANT, USER) is None

        resumed = await engine.resume_task(TENANT, stale.task_id)
        assert resumed.status == TaskStatus.EXECUTING

    @pytest.mark.asyncio
    async def test_active_task_prefers_url_then_origin(self) -> None:
        clock = FakeClock()
        engine, _, _ = create_test_engine(clock=clock)
        on_app = await new_task(engine, url="https://app.example.com/settings")
        clock.advance(minutes=1)
        on_docs = await new_task(engine, url="https://docs.example.com/start")
        clock.advance(minutes=1)

        exact = await engine.get_active_task(TENANT, USER, url="https://app.example.com/settings")
        same_origin = await engine.get_active_task(TENANT, USER, url="https://app.example.com/billing")
        unrelated = await engine.get_active_task(TENANT, USER, url="https://elsewhere.test/")
        latest = await engine.get_active_task(TENANT, USER)

        assert exact.task_id == on_app.task_id
        assert same_origin.task_id == on_app.task_id
        assert unrelated.task_id == on_docs.task_id
        assert latest.task_id == on_docs.task_id

    @pytest.mark.asyncio
    async def test_active_task_ignores_other_users(self) -> None:
        engine, _, _ = create_test_engine()
        await engine.create_task(TENANT, "someone-else", SESSION, QUERY, url=URL)

        assert await engine.get_active_task(TENANT, USER) is None


class TestDebugExport:
    """Tests for engine.export_debug_session()."""

    @pytest.mark.asyncio
    async def test_export_masks_sensitive_memory(self) -> None:
        engine, _, _ = create_test_engine(
            proposals=[create_test_proposal('remember("username", "ada")')],
        )
        task = await new_task(engine)
        await engine.memory.remember(TENANT, task.task_id, "password", "hunter2")
        await engine.submit_step(TENANT, task.task_id, dom=HOME_PAGE, url=URL)

        export = await engine.export_debug_session(TENANT, task.task_id)

        assert export["action_count"] == 1
        assert export["task"]["memory"] == {"password": "***", "username": "ada"}
        assert export["task"]["status"] == "executing"
        assert export["actions"][0]["step_index"] == 0
        assert "exported_at" in export

    @pytest.mark.asyncio
    async def test_export_unknown_task_raises(self) -> None:
        engine, _, _ = create_test_engine()

        with pytest.raises(TaskNotFoundError):
            await engine.export_debug_session(TENANT, "missing")

    @pytest.mark.asyncio
    async def test_export_is_scoped_to_tenant(self) -> None:
        engine, _, _ = create_test_engine()
        await engine.create_task(TENANT, USER, SESSION, QUERY, url=URL, task_id="t1")
        await engine.memory.remember(TENANT, "t1", "card", "4111")
        await engine.create_task("globex", "user-2", "session-g", QUERY, url=URL, task_id="t1")

        export = await engine.export_debug_session("globex", "t1")

        assert export["task"]["tenant_id"] == "globex"
        assert export["task"]["memory"] == {}
        assert (await engine.memory.recall(TENANT, "t1", "card")).value == "4111"
