"""Abstract interfaces for the engine's remote collaborators."""

from abc import ABC, abstractmethod
from typing import Any

from screen_tasks.models.result import ActuatorResult
from screen_tasks.prompts.schemas import ActionProposal


class ActionProposer(ABC):
    """Source of the next candidate action.

    Typically backed by an LLM (see :class:`screen_tasks.core.llm.LLMClient`).
    """

    @abstractmethod
    async def propose(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> ActionProposal:
        """Propose the next action with its expected outcome.

        Args:
            system_prompt: Instructions for the proposer.
            user_prompt: Rendered goal, page and history.
            context: Structured context (task id, step index, mode, ...).

        Returns:
            The proposed action.

        Raises:
            ProposalError: If the proposer returned nothing usable.
        """
        ...


class Actuator(ABC):
    """Applies actions in the viewer's browser."""

    @abstractmethod
    async def apply(self, task_id: str, action: str) -> ActuatorResult:
        """Apply ``action`` and report the resulting page.

        A failure may be reported either as ``ActuatorResult.error`` or by
        raising :class:`screen_tasks.errors.ActuatorError`.
        """
        ...
