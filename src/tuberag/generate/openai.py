"""OpenAI generation provider."""

from __future__ import annotations

from typing import Any

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, RateLimitError  # type: ignore

from tuberag.core.protocols.generation import GenerationProvider
from tuberag.generate._base import GeneratorMixin


class OpenAIGenerator(GeneratorMixin):
    """OpenAI chat completion provider."""

    _provider_name: str = "openai_generation"
    _retryable_exceptions: tuple[type[Exception], ...] = (
        RateLimitError,
        APITimeoutError,
        APIConnectionError,
        ConnectionError,
    )

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        client: AsyncOpenAI | None = None,
        retry_config: Any | None = None,
    ) -> None:
        super().__init__(model=model, retry_config=retry_config)
        self.client = client or AsyncOpenAI(api_key=api_key)

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
            return await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )

        try:
            response = await _complete_with_retry()
        except Exception as e:
            raise await self._wrap_error(e, "complete") from e

        answer = response.choices[0].message.content or ""
        operation_logger.info("generation_completed", answer_length=len(answer))
        return answer


# Verify protocol conformance at runtime
assert issubclass(OpenAIGenerator, GenerationProvider)
