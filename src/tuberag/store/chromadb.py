"""ChromaDB vector backend."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from tuberag.core.models import SearchResult, VectorRecord
from tuberag.core.protocols.vector_backend import VectorBackend
from tuberag.store._base import VectorBackendMixin

if TYPE_CHECKING:
    from chromadb.api import ClientAPI  # type: ignore
    from chromadb.api.models.Collection import Collection  # type: ignore


class ChromaDBVectorBackend(VectorBackendMixin):
    """Persistent local ChromaDB collection using cosine distance.

    Scores are reported as ``1 - distance`` so that higher is more similar.
    """

    _provider_name: str = "chromadb_vector_store"

    def __init__(
        self,
        *,
        persist_directory: str | Path,
        collection_name: str = "tuberag",
        retry_config: Any | None = None,
    ) -> None:
        """Initialize ChromaDB persistent client."""
        super().__init__(retry_config=retry_config)
        self._persist_directory = Path(persist_directory)
        self._collection_name = collection_name
        self._client: ClientAPI | None = None
        self._collection: Collection | None = None
        self._logger = self._logger.bind(
            collection_name=collection_name,
            persist_directory=str(persist_directory),
        )

    def _get_client(self) -> ClientAPI:
        if self._client is None:
            import chromadb  # type: ignore

            self._logger.debug("initializing_chromadb")
            self._client = chromadb.PersistentClient(path=str(self._persist_directory))
        return self._client

    def _ensure_initialized(self) -> Collection:
        """Lazy initialization of ChromaDB client and collection."""
        if self._collection is None:
            self._collection = self._get_client().get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )
            self._logger.info("chromadb_initialized")
        return self._collection

    async def upsert(self, records: list[VectorRecord]) -> None:
        if not records:
            return
        operation_logger = self._logger.bind(operation="upsert", records=len(records))

        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _upsert_sync() -> None:
            collection = self._ensure_initialized()
            collection.upsert(
                ids=[record.id for record in records],
                embeddings=cast(Any, [record.vector for record in records]),
                metadatas=cast(Any, [record.metadata for record in records]),
                documents=[str(record.metadata.get("content", "")) for record in records],
            )

        try:
            await asyncio.to_thread(_upsert_sync)
            operation_logger.debug("records_upserted")
        except Exception as e:
            raise await self._wrap_error(e, "upsert") from e

    async def query(self, vector: list[float], top_k: int) -> list[SearchResult]:
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _query_sync() -> list[SearchResult]:
            collection = self._ensure_initialized()
            count = collection.count()
            if count == 0:
                return []
            results = collection.query(
                query_embeddings=[vector],
                n_results=min(top_k, count),
                include=["metadatas", "distances"],
            )
            return self._format_results(results)

        try:
            return await asyncio.to_thread(_query_sync)
        except Exception as e:
            raise await self._wrap_error(e, "query") from e

    async def reset(self) -> None:
        """Drop and recreate the collection."""
        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        def _reset_sync() -> None:
            # Create first so the delete always has a target.
            self._ensure_initialized()
            self._get_client().delete_collection(name=self._collection_name)
            self._collection = None
            self._ensure_initialized()

        try:
            await asyncio.to_thread(_reset_sync)
            self._logger.warning("collection_reset")
        except Exception as e:
            raise await self._wrap_error(e, "reset") from e

    async def info(self) -> dict[str, Any]:
        def _info_sync() -> dict[str, Any]:
            collection = self._ensure_initialized()
            return {
                "vector_count": collection.count(),
                "collection_name": self._collection_name,
                "persist_directory": str(self._persist_directory),
            }

        try:
            return await asyncio.to_thread(_info_sync)
        except Exception as e:
            raise await self._wrap_error(e, "info") from e

    def _format_results(self, results: Any) -> list[SearchResult]:
        """Transform ChromaDB results to SearchResults."""
        output: list[SearchResult] = []
        if results["ids"] and results["ids"][0]:
            ids = results["ids"][0]
            metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
            distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)
            for id_, metadata, distance in zip(ids, metadatas, distances, strict=False):
                output.append(
                    SearchResult(
                        id=id_,
                        score=1.0 - float(distance),
                        metadata=dict(metadata or {}),
                    )
                )
        return output


# Verify protocol conformance at runtime
assert issubclass(ChromaDBVectorBackend, VectorBackend)
