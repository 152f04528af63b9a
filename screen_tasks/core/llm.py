"""LLM-backed action proposer.

Wraps an OpenAI-compatible async client and turns prompts into typed
:class:`ActionProposal` objects.

Supports both OpenAI (with structured outputs) and Ollama-style
providers (with JSON parsing).
"""

import json
import logging
from typing import Any, TypeVar

from openai import ContentFilterFinishReasonError, LengthFinishReasonError
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from screen_tasks.errors import ProposalError
from screen_tasks.interfaces.collaborators import ActionProposer
from screen_tasks.prompts import ActionProposal

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LLMClient(ActionProposer):
    """Action proposer backed by an LLM.

    Supports:
    - OpenAI with structured outputs (responses.parse)
    - Ollama and other providers (chat.completions with JSON parsing)

    Args:
        client: An async OpenAI client instance (AsyncOpenAI or compatible).
        model: Model identifier to use for completions (default: gpt-4o-mini).
        use_structured_outputs: Use OpenAI structured outputs API. Set to False for Ollama.
    """

    def __init__(
        self,
        client: Any,
        model: str = "gpt-4o-mini",
        use_structured_outputs: bool = True,
    ):
        self.client = client
        self.model = model
        self.use_structured_outputs = use_structured_outputs

    async def propose(
        self,
        system_prompt: str,
        user_prompt: str,
        context: dict[str, Any],
    ) -> ActionProposal:
        """Ask the model for the next action.

        Raises:
            ProposalError: If the output is empty, not JSON, or does not
                match the :class:`ActionProposal` schema.
        """
        try:
            proposal = await self._parse(system_prompt, user_prompt, ActionProposal)
        except (
            SchemaValidationError,
            json.JSONDecodeError,
            LengthFinishReasonError,
            ContentFilterFinishReasonError,
        ) as e:
            logger.warning("Unusable proposal for task %s: %s", context.get("task_id"), e)
            raise ProposalError(f"Malformed action proposal: {e}") from e

        if proposal is None or not proposal.action.strip():
            raise ProposalError("Model returned no action")
        return proposal

    def _schema_to_json_instruction(self, schema: type[T]) -> str:
        """Generate JSON instruction from Pydantic schema for non-structured output models."""
        return (
            "Respond strictly with a JSON object matching this schema:\n"
            + json.dumps(schema.model_json_schema(by_alias=True), ensure_ascii=False)
        )

    async def _parse(
        self,
        system_prompt: str,
        user_prompt: str,
        response_schema: type[T],
    ) -> T | None:
        """Make a structured output request."""
        if self.use_structured_outputs:
            # OpenAI responses API (structured outputs)
            response = await self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                text_format=response_schema,
            )
            return response.output_parsed

        # Ollama / other OpenAI-compatible APIs via chat.completions
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "system",
                    "content": system_prompt + "\n\n" + self._schema_to_json_instruction(response_schema),
                },
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            return None
        data = json.loads(content)
        if not isinstance(data, dict):
            raise json.JSONDecodeError("Expected a JSON object", content, 0)
        return response_schema.model_validate(self._normalize_llm_output(data))

    def _normalize_llm_output(self, data: dict) -> dict:
        """Normalize LLM output to match the proposal schema.

        Local LLMs sometimes return:
        - The expected outcome as a JSON-encoded string
        - Booleans as "true"/"false" strings
        """
        for name in ("expectedOutcome", "expected_outcome"):
            value = data.get(name)
            if isinstance(value, str):
                try:
                    data[name] = json.loads(value)
                except json.JSONDecodeError:
                    data[name] = {}

        for name in ("expectedOutcome", "expected_outcome"):
            outcome = data.get(name)
            if not isinstance(outcome, dict):
                continue
            for flag in ("urlShouldChange", "url_should_change"):
                value = outcome.get(flag)
                if isinstance(value, str):
                    outcome[flag] = value.strip().lower() in {"true", "yes", "1"}
        return data
