"""Core module - LLM integration."""

from screen_tasks.core.llm import LLMClient

__all__ = [
    "LLMClient",
]
