"""LLM provider abstraction for profile extraction."""
from .base import LLMProvider, LLMResponse
from .openai_compat import OpenAICompatibleProvider, get_provider

__all__ = ["LLMProvider", "LLMResponse", "OpenAICompatibleProvider", "get_provider"]
