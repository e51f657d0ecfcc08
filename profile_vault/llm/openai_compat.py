"""OpenAI-compatible chat provider — OpenAI directly, or any gateway speaking its API."""
import os
from typing import Any

from openai import AsyncOpenAI

from .base import LLMProvider, LLMResponse

DEFAULT_MODEL = "gpt-4o"


def get_provider(
    model: str = DEFAULT_MODEL,
    api_key: str | None = None,
    base_url: str | None = None,
) -> "OpenAICompatibleProvider":
    """Factory function to create a provider from explicit args or the environment."""
    key = api_key or os.environ.get("PROFILE_LLM_API_KEY") or os.environ.get("OPENAI_API_KEY", "")
    if not key:
        raise ValueError("PROFILE_LLM_API_KEY or OPENAI_API_KEY not set")
    return OpenAICompatibleProvider(
        api_key=key,
        model=model,
        base_url=base_url or os.environ.get("PROFILE_LLM_BASE_URL") or None,
    )


class OpenAICompatibleProvider(LLMProvider):
    """Chat-completions provider on the openai async client."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
    ):
        super().__init__(api_key, model)
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def run(self, query: str, **kwargs: Any) -> LLMResponse:
        """Execute a single-turn query. A ``model`` kwarg overrides the default."""
        model = kwargs.pop("model", None) or self.model

        messages = []
        if kwargs.get("system"):
            messages.append({"role": "system", "content": kwargs.pop("system")})
        messages.append({"role": "user", "content": query})

        response = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 2048),
            temperature=kwargs.get("temperature", 0.1),
        )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            usage={
                "input": response.usage.prompt_tokens if response.usage else 0,
                "output": response.usage.completion_tokens if response.usage else 0,
            },
        )
