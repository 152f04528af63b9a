"""Prompts module - proposal schemas and prompt templates."""

from screen_tasks.prompts.schemas import (
    ActionProposal,
    ExpectedOutcome,
    TextExpectation,
    AttributeExpectation,
    ElementExpectation,
)

from screen_tasks.prompts.templates import (
    PROPOSE_ACTION_SYSTEM,
    PROPOSE_ACTION_USER,
    CORRECTION_SYSTEM,
    CORRECTION_USER,
)

__all__ = [
    # Schemas
    "ActionProposal",
    "ExpectedOutcome",
    "TextExpectation",
    "AttributeExpectation",
    "ElementExpectation",
    # Templates
    "PROPOSE_ACTION_SYSTEM",
    "PROPOSE_ACTION_USER",
    "CORRECTION_SYSTEM",
    "CORRECTION_USER",
]
