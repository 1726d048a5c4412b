from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from tuberag.core.models import SearchResult, VectorRecord


@runtime_checkable
class VectorBackend(Protocol):
    """Physical vector store with no notion of namespaces."""

    async def upsert(self, records: list[VectorRecord]) -> None: ...

    async def query(self, vector: list[float], top_k: int) -> list[SearchResult]:
        """Return up to ``top_k`` results, most similar first."""
        ...

    async def reset(self) -> None:
        """Delete every vector in the store."""
        ...

    async def info(self) -> dict[str, Any]:
        """Return backend statistics; must include ``vector_count``."""
        ...
