"""Pydantic schemas for action proposals and expected outcomes.

These are the structured payloads exchanged with the action-proposing
LLM. Field aliases accept the camelCase names the model is prompted with.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ─────────────────────────────────────────────────────────────────
# Expected Outcome
# ─────────────────────────────────────────────────────────────────

class TextExpectation(_Schema):
    """An element expected to contain some text."""

    selector: str = Field(description="Selector of the element (id, class, name, label or text)")
    text: str = Field(description="Text the element should contain")


class AttributeExpectation(_Schema):
    """An attribute expected to hold a value after the action."""

    attribute: str = Field(description="Attribute name, e.g. aria-expanded")
    expected_value: str = Field(
        alias="expectedValue",
        description="Exact value the attribute should have, e.g. true",
    )


class ElementExpectation(_Schema):
    """An element identified by ARIA role and/or selector."""

    role: str | None = Field(default=None, description="ARIA role, e.g. dialog, menuitem")
    selector: str | None = Field(default=None, description="Optional selector")


class ExpectedOutcome(_Schema):
    """Predicate a step's resulting page must satisfy.

    Every declared clause must hold for the step to pass. An outcome
    without any clause is never treated as a pass.
    """

    element_should_exist: str | None = Field(
        default=None, alias="elementShouldExist",
        description="Selector of an element that must exist after the action",
    )
    element_should_not_exist: str | None = Field(
        default=None, alias="elementShouldNotExist",
        description="Selector of an element that must be gone after the action",
    )
    element_should_have_text: TextExpectation | None = Field(
        default=None, alias="elementShouldHaveText",
        description="Selector and text the element must contain",
    )
    url_should_change: bool | None = Field(
        default=None, alias="urlShouldChange",
        description="Whether the URL must change (hash-only changes do not count)",
    )
    attribute_changes: list[AttributeExpectation] | None = Field(
        default=None, alias="attributeChanges",
        description="Attributes that must hold the given values",
    )
    elements_to_appear: list[ElementExpectation] | None = Field(
        default=None, alias="elementsToAppear",
        description="Elements (by role) that must be present",
    )
    elements_to_disappear: list[ElementExpectation] | None = Field(
        default=None, alias="elementsToDisappear",
        description="Elements (by role) that must be absent",
    )

    def declared_clauses(self) -> list[str]:
        """Names of the clauses that were declared, in evaluation order."""
        names = []
        if self.element_should_exist:
            names.append("element_should_exist")
        if self.element_should_not_exist:
            names.append("element_should_not_exist")
        if self.element_should_have_text is not None:
            names.append("element_should_have_text")
        if self.url_should_change is not None:
            names.append("url_should_change")
        if self.attribute_changes:
            names.append("attribute_changes")
        if self.elements_to_appear:
            names.append("elements_to_appear")
        if self.elements_to_disappear:
            names.append("elements_to_disappear")
        return names

    def is_empty(self) -> bool:
        return not self.declared_clauses()


# ─────────────────────────────────────────────────────────────────
# Action Proposal
# ─────────────────────────────────────────────────────────────────

class ActionProposal(_Schema):
    """The next candidate action with its expected outcome."""

    thought: str = Field(description="Reasoning: what is on the page and why this action")
    action: str = Field(
        description="Action call, e.g. click(12), setValue(4, \"text\"), remember(\"key\", value), finish(\"answer\")"
    )
    expected_outcome: ExpectedOutcome = Field(
        default_factory=ExpectedOutcome, alias="expectedOutcome",
        description="What must be true on the page after the action",
    )
    target_description: str = Field(
        default="", alias="targetDescription",
        description="Short human description of the target element",
    )
    strategy: str | None = Field(
        default=None,
        description=(
            "For corrections only: alternative-selector, wait-for-element, scroll-into-view, "
            "menu-expansion, form-navigation, retry or other"
        ),
    )
