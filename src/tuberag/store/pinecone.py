"""Pinecone vector backend."""

from __future__ import annotations

import asyncio
from typing import Any

from pinecone import Pinecone  # type: ignore[import]

from tuberag.core.models import SearchResult, VectorRecord
from tuberag.core.protocols.vector_backend import VectorBackend
from tuberag.store._base import VectorBackendMixin


class PineconeVectorBackend(VectorBackendMixin):
    """Pinecone index used without native namespaces.

    Tenancy is handled by ``VectorIndex`` through id prefixes, so every call
    targets the index's default namespace.
    """

    _provider_name: str = "pinecone_vector_store"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        index_name: str = "tuberag",
        retry_config: Any | None = None,
    ) -> None:
        """Initialize Pinecone client."""
        super().__init__(retry_config=retry_config)
        self._pc = Pinecone(api_key=api_key)
        self._index_name = index_name
        self._index: Any = None
        self._logger = self._logger.bind(index_name=index_name)

    def _ensure_initialized(self) -> Any:
        """Lazy initialization of Pinecone index."""
        if self._index is None:
            self._logger.debug("initializing_pinecone")
            self._index = self._pc.Index(self._index_name)
            self._logger.info("pinecone_initialized")
        return self._index

    async def upsert(self, records: list[VectorRecord]) -> None:
        if not records:
            return
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _upsert_sync() -> None:
            index = self._ensure_initialized()
            index.upsert(
                vectors=[
                    {"id": record.id, "values": record.vector, "metadata": record.metadata}
                    for record in records
                ]
            )

        try:
            await asyncio.to_thread(_upsert_sync)
            self._logger.debug("records_upserted", records=len(records))
        except Exception as e:
            raise await self._wrap_error(e, "upsert") from e

    async def query(self, vector: list[float], top_k: int) -> list[SearchResult]:
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _query_sync() -> Any:
            index = self._ensure_initialized()
            return index.query(vector=vector, top_k=top_k, include_metadata=True)

        try:
            results = await asyncio.to_thread(_query_sync)
        except Exception as e:
            raise await self._wrap_error(e, "query") from e
        return self._format_results(results)

    async def reset(self) -> None:
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _reset_sync() -> None:
            self._ensure_initialized().delete(delete_all=True)

        try:
            await asyncio.to_thread(_reset_sync)
            self._logger.warning("index_reset")
        except Exception as e:
            raise await self._wrap_error(e, "reset") from e

    async def info(self) -> dict[str, Any]:
        def _info_sync() -> Any:
            return self._ensure_initialized().describe_index_stats()

        try:
            stats = await asyncio.to_thread(_info_sync)
        except Exception as e:
            raise await self._wrap_error(e, "info") from e
        return {
            "vector_count": int(getattr(stats, "total_vector_count", 0) or 0),
            "dimension": getattr(stats, "dimension", None),
            "index_name": self._index_name,
        }

    def _format_results(self, results: Any) -> list[SearchResult]:
        """Transform Pinecone matches to SearchResults."""
        return [
            SearchResult(
                id=match.id,
                score=float(match.score or 0.0),
                metadata=dict(match.metadata or {}),
            )
            for match in (getattr(results, "matches", None) or [])
        ]


# Verify protocol conformance at runtime
assert issubclass(PineconeVectorBackend, VectorBackend)
