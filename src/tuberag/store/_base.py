"""Base mixin for vector backends."""

from __future__ import annotations

from typing import Any

from tuberag.core.exceptions import ProviderError
from tuberag.core.logging_config import get_logger
from tuberag.core.retry_config import VECTOR_STORE_EXCEPTIONS, RetryConfig, create_retry_decorator

logger = get_logger(__name__)


class VectorBackendMixin:
    """Mixin providing retries and error wrapping for vector backends.

    Subclasses must set:
    - _provider_name: str
    - _retryable_exceptions: tuple[type[Exception], ...]
    """

    _provider_name: str = "vector_backend"
    _retryable_exceptions: tuple[type[Exception], ...] = VECTOR_STORE_EXCEPTIONS

    def __init__(self, *, retry_config: RetryConfig | None = None) -> None:
        self._retry_config = retry_config or RetryConfig()
        self._logger = logger.bind(provider=self._provider_name)

    def _get_retry_decorator(self) -> Any:
        """Get retry decorator configured for backend calls."""
        return create_retry_decorator(
            config=self._retry_config,
            exception_types=self._retryable_exceptions,
        )

    async def _wrap_error(self, e: Exception, operation: str) -> ProviderError:
        """Wrap backend errors with structured exception.

        Args:
            e: Original exception.
            operation: Name of the operation that failed.
        """
        return ProviderError(
            message=f"{self._provider_name} {operation} failed: {e}",
            provider=self._provider_name,
            retryable=isinstance(e, self._retryable_exceptions),
        )
