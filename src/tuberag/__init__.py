"""tuberag package.

Index the uploads of YouTube channels into a vector store and answer
questions about them.

Usage:
    from tuberag import IndexingOrchestrator, QueryEngine, RunOptions, TubeRAGConfig

    config = TubeRAGConfig()
    async with IndexingOrchestrator(config) as orchestrator:
        entry = await orchestrator.run("@somechannel", RunOptions(video_limit=20))

    engine = QueryEngine.from_config(config)
    response = await engine.answer("What is discussed?", profile_id="technical")

    # Modular imports
    from tuberag.store import ChromaDBVectorBackend
    from tuberag.generate import AnthropicGenerator
"""

from __future__ import annotations

from tuberag.core import (
    IndexingLedgerEntry,
    IndexingProgress,
    QueryResponse,
    RetryConfig,
    RunOptions,
    RunState,
    TubeRAGConfig,
    configure_logging,
    get_logger,
)
from tuberag.pipeline import IndexingOrchestrator
from tuberag.profiles import ProfileRegistry
from tuberag.query import QueryEngine

__version__ = "0.1.0"

__all__ = [
    "IndexingLedgerEntry",
    "IndexingOrchestrator",
    "IndexingProgress",
    "ProfileRegistry",
    "QueryEngine",
    "QueryResponse",
    "RetryConfig",
    "RunOptions",
    "RunState",
    "TubeRAGConfig",
    "__version__",
    "configure_logging",
    "get_logger",
]
