"""Base generator mixin for LLM generation providers."""

from __future__ import annotations

from typing import Any

from tuberag.core.exceptions import ProviderError
from tuberag.core.logging_config import get_logger
from tuberag.core.retry_config import RetryConfig, create_retry_decorator

logger = get_logger(__name__)


class GeneratorMixin:
    """Mixin providing common functionality for generation providers.

    Subclasses must set:
    - _provider_name: str
    - _retryable_exceptions: tuple[type[Exception], ...]
    """

    _provider_name: str = "generator"
    _retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
    )

    def __init__(
        self,
        *,
        model: str,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._model = model
        self._retry_config = retry_config or RetryConfig()
        self._logger = logger.bind(provider=self._provider_name, model=model)

    @property
    def model(self) -> str:
        return self._model

    def _get_retry_decorator(self) -> Any:
        """Get retry decorator configured for provider API calls."""
        return create_retry_decorator(
            config=self._retry_config,
            exception_types=self._retryable_exceptions,
        )

    def _start(self, system_prompt: str, user_prompt: str, temperature: float) -> Any:
        operation_logger = self._logger.bind(
            operation="complete",
            system_prompt_length=len(system_prompt),
            user_prompt_length=len(user_prompt),
            temperature=temperature,
        )
        operation_logger.debug("generation_started")
        return operation_logger

    async def _wrap_error(self, e: Exception, operation: str) -> ProviderError:
        """Wrap provider errors with structured exception.

        Args:
            e: Original exception.
            operation: Name of the operation that failed.

        Returns:
            ProviderError with context.
        """
        return ProviderError(
            message=f"{self._provider_name} {operation} failed: {e}",
            provider=self._provider_name,
            retryable=isinstance(e, self._retryable_exceptions),
        )
