"""Namespaced view over a physical vector backend.

Backends have no notion of tenants, so a namespace is simulated by prefixing
every record id with ``"{namespace}_"`` on write and filtering on that prefix
after each query. Queries therefore over-fetch by ``overfetch_factor``.
"""

from __future__ import annotations

from typing import Any

from tuberag.core.logging_config import get_logger
from tuberag.core.models import SearchResult, VectorRecord
from tuberag.core.protocols.vector_backend import VectorBackend

logger = get_logger(__name__)


class VectorIndex:
    """Args:
    backend: Physical vector store.
    namespace: Tenant prefix; empty or None means no prefix.
    batch_size: Records per backend upsert call.
    overfetch_factor: Multiplier on ``top_k`` when querying a namespaced index.
    """

    def __init__(
        self,
        backend: VectorBackend,
        *,
        namespace: str | None = None,
        batch_size: int = 100,
        overfetch_factor: int = 3,
    ) -> None:
        self._backend = backend
        self._namespace = namespace or ""
        self._batch_size = max(1, batch_size)
        self._overfetch_factor = max(1, overfetch_factor)
        self._logger = logger.bind(component="vector_index", namespace=self._namespace or None)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def prefix(self) -> str:
        return f"{self._namespace}_" if self._namespace else ""

    def namespaced_id(self, raw_id: str) -> str:
        return f"{self.prefix}{raw_id}"

    async def upsert_batch(
        self, records: list[VectorRecord], batch_size: int | None = None
    ) -> int:
        """Upsert ``records`` in fixed-size batches. Returns the number written."""
        size = max(1, batch_size or self._batch_size)
        prefix = self.prefix
        batches = 0
        for start in range(0, len(records), size):
            batch = records[start : start + size]
            if prefix:
                batch = [
                    record.model_copy(update={"id": f"{prefix}{record.id}"}) for record in batch
                ]
            await self._backend.upsert(batch)
            batches += 1

        self._logger.info("records_upserted", records=len(records), batches=batches)
        return len(records)

    async def query(self, vector: list[float], top_k: int = 10) -> list[SearchResult]:
        """Return at most ``top_k`` results belonging to this namespace."""
        prefix = self.prefix
        if not prefix:
            return (await self._backend.query(vector, top_k))[:top_k]

        results = await self._backend.query(vector, top_k * self._overfetch_factor)
        matching = [result for result in results if result.id.startswith(prefix)]
        if len(matching) < top_k < len(results):
            self._logger.debug(
                "namespace_filter_underfilled",
                requested=top_k,
                fetched=len(results),
                matching=len(matching),
            )
        return matching[:top_k]

    async def reset_all(self) -> None:
        """Delete every vector in the backend, across all namespaces."""
        self._logger.warning("vector_index_reset")
        await self._backend.reset()

    async def stats(self) -> dict[str, Any]:
        return await self._backend.info()
