"""Structured exception hierarchy for tuberag.

Exception Hierarchy:
    TubeRAGError (base)
    ├── PipelineError
    │   └── NoVideosError
    ├── AlreadyRunningError
    ├── ProviderError
    │   ├── ProviderQuotaError
    │   │   └── QuotaExhaustedError
    │   └── ChannelNotFoundError
    ├── ConfigurationError
    └── StateError

Usage:
    from tuberag.core.exceptions import PipelineError, QuotaExhaustedError

    try:
        await orchestrator.run(channel_id)
    except NoVideosError as e:
        logger.warning("nothing_to_index", reason=e.reason)
    except PipelineError as e:
        logger.error("run_failed", stage=e.stage)
"""

from __future__ import annotations


class TubeRAGError(Exception):
    """Base exception class for all tuberag errors.

    Catching this class catches every error raised deliberately by the
    library; anything else escaping a public method is a bug.
    """

    pass


class PipelineError(TubeRAGError):
    """Exception raised when an indexing run fails as a whole.

    Args:
        message: Human-readable error message.
        stage: The pipeline stage that failed (e.g., "catalog", "upsert").
        channel_id: The channel being indexed, if known.

    Example:
        raise PipelineError(
            "Upsert failed: connection refused",
            stage="upsert",
            channel_id="UC_x5XG1OV2P6uZZ5FSM9Ttw",
        )
    """

    def __init__(self, message: str, stage: str, channel_id: str | None = None) -> None:
        """Initialize PipelineError with context."""
        super().__init__(message)
        self.stage = stage
        self.channel_id = channel_id


class NoVideosError(PipelineError):
    """Raised when filtering leaves nothing to index.

    ``reason`` is one of ``"empty_channel"``, ``"all_indexed"``,
    ``"all_shorts"`` or ``"all_filtered"``.
    """

    def __init__(self, message: str, reason: str, channel_id: str | None = None) -> None:
        super().__init__(message, stage="filter", channel_id=channel_id)
        self.reason = reason


class AlreadyRunningError(TubeRAGError):
    """Raised when a run is requested while another one is active."""

    def __init__(self, channel_id: str | None = None) -> None:
        message = "Already indexing a channel"
        if channel_id:
            message = f"Already indexing channel {channel_id}"
        super().__init__(message)
        self.channel_id = channel_id


class ProviderError(TubeRAGError):
    """Exception raised when an external provider fails.

    Args:
        message: Human-readable error message.
        provider: The name of the provider that failed (e.g., "openai", "youtube").
        retryable: Whether the error is transient and can be retried.

    Example:
        raise ProviderError(
            "OpenAI API rate limit exceeded",
            provider="openai",
            retryable=True,
        )
    """

    def __init__(self, message: str, provider: str, retryable: bool = False) -> None:
        """Initialize ProviderError with context."""
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class ProviderQuotaError(ProviderError):
    """Raised when a provider reports that its account quota is used up.

    Every later call to the same provider would fail the same way, so an
    indexing run stops at the first one instead of failing each video.
    """

    def __init__(self, message: str, provider: str) -> None:
        super().__init__(message, provider=provider, retryable=False)


class QuotaExhaustedError(ProviderQuotaError):
    """Raised when a metered call does not fit in the remaining daily quota."""

    def __init__(
        self,
        *,
        op_type: str,
        used: int,
        limit: int,
        requested: int,
        provider: str = "youtube",
    ) -> None:
        message = (
            f"Quota exhausted for '{op_type}': used={used}, limit={limit}, "
            f"requested={requested}, remaining={max(0, limit - used)}"
        )
        super().__init__(message, provider=provider)
        self.op_type = op_type
        self.used = used
        self.limit = limit
        self.requested = requested


class ChannelNotFoundError(ProviderError):
    """Raised when the catalog provider knows nothing about a channel."""

    def __init__(self, channel_id: str, provider: str = "youtube") -> None:
        super().__init__(f"Channel not found: {channel_id}", provider=provider)
        self.channel_id = channel_id


class ConfigurationError(TubeRAGError):
    """Exception raised when configuration validation fails.

    Example:
        raise ConfigurationError(
            "YOUTUBE_API_KEY is required but not set. "
            "Please set the TUBERAG_YOUTUBE_API_KEY environment variable."
        )
    """

    def __init__(self, message: str) -> None:
        """Initialize ConfigurationError."""
        super().__init__(message)


class StateError(TubeRAGError):
    """Exception raised when database or state management fails."""

    def __init__(self, message: str) -> None:
        """Initialize StateError."""
        super().__init__(message)


__all__ = [
    "AlreadyRunningError",
    "ChannelNotFoundError",
    "ConfigurationError",
    "NoVideosError",
    "PipelineError",
    "ProviderError",
    "ProviderQuotaError",
    "QuotaExhaustedError",
    "StateError",
    "TubeRAGError",
]
