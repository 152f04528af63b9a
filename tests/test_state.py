"""Tests for the task lifecycle graph."""

import pytest

from screen_tasks.errors import InvalidTaskState
from screen_tasks.state import ACTIVE_STATUSES, TaskStatus, can_transition, ensure_transition


class TestTransitions:
    """Tests for can_transition() and ensure_transition()."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (TaskStatus.ACTIVE, TaskStatus.PLANNING),
            (TaskStatus.PLANNING, TaskStatus.EXECUTING),
            (TaskStatus.EXECUTING, TaskStatus.VERIFYING),
            (TaskStatus.VERIFYING, TaskStatus.EXECUTING),
            (TaskStatus.VERIFYING, TaskStatus.COMPLETED),
            (TaskStatus.VERIFYING, TaskStatus.CORRECTING),
            (TaskStatus.CORRECTING, TaskStatus.EXECUTING),
            (TaskStatus.CORRECTING, TaskStatus.FAILED),
            (TaskStatus.AWAITING_USER, TaskStatus.EXECUTING),
            (TaskStatus.INTERRUPTED, TaskStatus.EXECUTING),
        ],
    )
    def test_allowed(self, current: TaskStatus, target: TaskStatus) -> None:
        assert can_transition(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            (TaskStatus.ACTIVE, TaskStatus.EXECUTING),
            (TaskStatus.EXECUTING, TaskStatus.COMPLETED),
            (TaskStatus.VERIFYING, TaskStatus.FAILED),
            (TaskStatus.COMPLETED, TaskStatus.EXECUTING),
            (TaskStatus.FAILED, TaskStatus.EXECUTING),
            (TaskStatus.AWAITING_USER, TaskStatus.COMPLETED),
            (TaskStatus.COMPLETED, TaskStatus.AWAITING_USER),
        ],
    )
    def test_rejected(self, current: TaskStatus, target: TaskStatus) -> None:
        assert can_transition(current, target) is False

    def test_any_active_status_can_pause_or_be_interrupted(self) -> None:
        for status in ACTIVE_STATUSES:
            assert can_transition(status, TaskStatus.AWAITING_USER)
            assert can_transition(status, TaskStatus.INTERRUPTED)

    def test_accepts_string_values(self) -> None:
        assert ensure_transition("active", "planning") == TaskStatus.PLANNING

    def test_illegal_transition_raises(self) -> None:
        with pytest.raises(InvalidTaskState) as exc_info:
            ensure_transition(TaskStatus.COMPLETED, TaskStatus.EXECUTING)

        assert exc_info.value.current_status == "completed"
        assert exc_info.value.code == "INVALID_TASK_STATE"
