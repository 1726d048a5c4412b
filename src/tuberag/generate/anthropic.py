"""Anthropic Claude generation provider."""

from __future__ import annotations

from typing import Any

import anthropic  # type: ignore[import]

from tuberag.core.protocols.generation import GenerationProvider
from tuberag.generate._base import GeneratorMixin


class AnthropicGenerator(GeneratorMixin):
    """Anthropic Claude LLM generation provider."""

    _provider_name: str = "anthropic_generation"
    _retryable_exceptions: tuple[type[Exception], ...] = (
        anthropic.RateLimitError,
        anthropic.APITimeoutError,
        anthropic.APIConnectionError,
        ConnectionError,
    )

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = "claude-3-5-haiku-latest",
        client: Any | None = None,
        retry_config: Any | None = None,
    ) -> None:
        super().__init__(model=model, retry_config=retry_config)
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        operation_logger = self._start(system_prompt, user_prompt, temperature)
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        async def _complete_with_retry() -> Any:
            return await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )

        try:
            response = await _complete_with_retry()
        except Exception as e:
            raise await self._wrap_error(e, "complete") from e

        answer = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )
        operation_logger.info("generation_completed", answer_length=len(answer))
        return answer


# Verify protocol conformance at runtime
assert issubclass(AnthropicGenerator, GenerationProvider)
