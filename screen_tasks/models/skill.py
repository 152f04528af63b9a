"""Skill data models."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CorrectionStrategy(str, Enum):
    """How a successful correction resolved the original failure."""
    ALTERNATIVE_SELECTOR = "alternative-selector"
    WAIT_FOR_ELEMENT = "wait-for-element"
    SCROLL_INTO_VIEW = "scroll-into-view"
    MENU_EXPANSION = "menu-expansion"
    FORM_NAVIGATION = "form-navigation"
    RETRY = "retry"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "CorrectionStrategy":
        """Lenient parse; accepts ``MENU_EXPANSION`` and ``menu-expansion`` forms."""
        if not value:
            return cls.OTHER
        normalized = value.strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER


@dataclass
class FailedState:
    """The step that failed and triggered a correction.

    Attributes:
        action: The action that failed (e.g. ``click(68)``).
        element_description: Description of the target element.
        error_type: Failure classification (VERIFICATION_FAILED, ACTUATOR_ERROR, ...).
        error_message: Verification/actuator reason.
    """
    action: str
    element_description: str = ""
    error_type: str = "VERIFICATION_FAILED"
    error_message: str | None = None


@dataclass
class SuccessfulAction:
    """The correction that resolved the failure."""
    action: str
    element_description: str = ""
    strategy: CorrectionStrategy = CorrectionStrategy.OTHER
    reasoning: str | None = None


@dataclass
class Skill:
    """A learned correction, scoped to ``(tenant_id, domain)``.

    Unique on ``(tenant_id, domain, goal_normalized, failed_state.action)``.
    """
    skill_id: str
    tenant_id: str
    domain: str
    goal: str
    goal_normalized: str
    failed_state: FailedState
    successful_action: SuccessfulAction
    success_count: int = 1
    failure_count: int = 0
    last_used: datetime = field(default_factory=datetime.now)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total > 0 else 1.0

    @property
    def key(self) -> tuple[str, str, str, str]:
        return skill_key(self.tenant_id, self.domain, self.goal_normalized, self.failed_state.action)

    def to_hint(self) -> "SkillHint":
        return SkillHint(
            skill_id=self.skill_id,
            goal=self.goal,
            failed_action=self.failed_state.action,
            failed_element=self.failed_state.element_description,
            successful_action=self.successful_action.action,
            successful_element=self.successful_action.element_description,
            strategy=self.successful_action.strategy.value,
            success_rate=self.success_rate,
        )


@dataclass(frozen=True)
class SkillHint:
    """Compact skill view for prompt injection."""
    skill_id: str
    goal: str
    failed_action: str
    failed_element: str
    successful_action: str
    successful_element: str
    strategy: str
    success_rate: float


def normalize_goal(goal: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    lowered = goal.lower()
    stripped = re.sub(r"[^a-z0-9\s]", "", lowered)
    return re.sub(r"\s+", " ", stripped).strip()


def skill_key(tenant_id: str, domain: str, goal_normalized: str, failed_action: str) -> tuple[str, str, str, str]:
    return (tenant_id, domain.lower(), goal_normalized, failed_action)
