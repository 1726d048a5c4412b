"""Core tuberag components.

This module contains the models, protocols, configuration, quota accounting
and state shared by the indexing and query sides.
"""

from __future__ import annotations

from tuberag.core.config import TubeRAGConfig
from tuberag.core.exceptions import (
    AlreadyRunningError,
    ChannelNotFoundError,
    ConfigurationError,
    NoVideosError,
    PipelineError,
    ProviderError,
    ProviderQuotaError,
    QuotaExhaustedError,
    StateError,
    TubeRAGError,
)
from tuberag.core.logging_config import Timer, configure_logging, get_logger
from tuberag.core.models import (
    BulkRunResult,
    ChannelInfo,
    FailedVideo,
    FailureCategory,
    IndexingLedgerEntry,
    IndexingProgress,
    NewVideosReport,
    QueryResponse,
    QuotaStatus,
    RunOptions,
    RunState,
    SearchResult,
    SuccessVideo,
    Video,
    VectorRecord,
)
from tuberag.core.protocols import (
    CaptionProvider,
    CatalogProvider,
    EmbeddingProvider,
    GenerationProvider,
    QuotaStore,
    VectorBackend,
)
from tuberag.core.quota import QuotaScheduler
from tuberag.core.quota_store_sqlite import SqliteQuotaStore
from tuberag.core.retry_config import RetryConfig, create_retry_decorator
from tuberag.core.state import StateManager

__all__ = [
    # Exceptions
    "AlreadyRunningError",
    "BulkRunResult",
    # Protocols
    "CaptionProvider",
    "CatalogProvider",
    # Models
    "ChannelInfo",
    "ChannelNotFoundError",
    "ConfigurationError",
    "EmbeddingProvider",
    "FailedVideo",
    "FailureCategory",
    "GenerationProvider",
    "IndexingLedgerEntry",
    "IndexingProgress",
    "NewVideosReport",
    "NoVideosError",
    "PipelineError",
    "ProviderError",
    "ProviderQuotaError",
    "QueryResponse",
    "QuotaExhaustedError",
    # Quota
    "QuotaScheduler",
    "QuotaStatus",
    "QuotaStore",
    "RetryConfig",
    "RunOptions",
    "RunState",
    "SearchResult",
    "SqliteQuotaStore",
    "StateError",
    # State
    "StateManager",
    "SuccessVideo",
    "Timer",
    # Config
    "TubeRAGConfig",
    "TubeRAGError",
    "VectorBackend",
    "VectorRecord",
    "Video",
    # Logging
    "configure_logging",
    "create_retry_decorator",
    "get_logger",
]
