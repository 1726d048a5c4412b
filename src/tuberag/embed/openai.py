"""OpenAI embedding provider implementation."""

from __future__ import annotations

from typing import Any

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, RateLimitError  # type: ignore

from tuberag.core.exceptions import ProviderError, ProviderQuotaError
from tuberag.core.logging_config import get_logger
from tuberag.core.protocols.embedding import EmbeddingProvider
from tuberag.core.retry_config import RetryConfig, create_retry_decorator

logger = get_logger(__name__)


def is_quota_error(error: BaseException) -> bool:
    """True for the 429 OpenAI sends once the account is out of credit."""
    return (
        isinstance(error, RateLimitError)
        and getattr(error, "code", None) == "insufficient_quota"
    )


class OpenAIEmbeddingProvider:
    """Embedding provider using OpenAI's embedding models.

    Satisfies the EmbeddingProvider Protocol by implementing the async embed method.
    """

    _retryable_exceptions: tuple[type[Exception], ...] = (
        RateLimitError,
        APITimeoutError,
        APIConnectionError,
        ConnectionError,
    )

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the OpenAI embedding provider.

        Args:
            client: AsyncOpenAI client instance. If None, a new client will be created.
            api_key: API key for a new client; falls back to OPENAI_API_KEY.
            model: The embedding model to use.
            dimensions: Requested output size, for models that support shortening.
            retry_config: Retry configuration. Uses default if not provided.
        """
        self._owns_client = client is None
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.dimensions = dimensions
        self._logger = logger.bind(provider="openai_embedding", model=model)
        self._retry_config = retry_config or RetryConfig()

    def _get_retry_decorator(self) -> Any:
        """Get retry decorator configured for OpenAI API calls."""
        return create_retry_decorator(
            config=self._retry_config,
            exception_types=self._retryable_exceptions,
            give_up=is_quota_error,
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts using OpenAI.

        Raises:
            ProviderQuotaError: If the account has run out of quota; not retried.
            ProviderError: If the API call fails after retries.
        """
        operation_logger = self._logger.bind(texts_count=len(texts), operation="embed")
        operation_logger.debug("embedding_started")

        kwargs: dict[str, Any] = {"model": self.model, "input": texts}
        if self.dimensions is not None:
            kwargs["dimensions"] = self.dimensions

        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        async def _embed_with_retry() -> Any:
            return await self.client.embeddings.create(**kwargs)

        try:
            response = await _embed_with_retry()
        except Exception as e:
            operation_logger.error(
                "embedding_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            if is_quota_error(e):
                raise ProviderQuotaError(
                    f"openai_embedding quota exhausted: {e}", provider="openai_embedding"
                ) from e
            raise ProviderError(
                f"openai_embedding embed failed: {e}",
                provider="openai_embedding",
                retryable=isinstance(e, self._retryable_exceptions),
            ) from e

        embeddings = [item.embedding for item in response.data]
        operation_logger.debug(
            "embedding_completed",
            embeddings_count=len(embeddings),
            dimensions=len(embeddings[0]) if embeddings else 0,
        )
        return embeddings

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.close()


# Verify protocol conformance at runtime
assert issubclass(OpenAIEmbeddingProvider, EmbeddingProvider)
