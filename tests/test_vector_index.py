"""Tests for the namespaced VectorIndex."""

from __future__ import annotations

import pytest

from tests.conftest import InMemoryVectorBackend
from tuberag.core.models import VectorRecord
from tuberag.vector_index import VectorIndex


def _records(*ids: str) -> list[VectorRecord]:
    return [
        VectorRecord(id=record_id, vector=[1.0, float(i), 0.0], metadata={"content": record_id})
        for i, record_id in enumerate(ids)
    ]


class TestUpsert:
    @pytest.mark.asyncio
    async def test_batches(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend, batch_size=2)

        written = await index.upsert_batch(_records("a", "b", "c", "d", "e"))

        assert written == 5
        assert [len(batch) for batch in memory_backend.upsert_calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_batch_size_override(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend, batch_size=2)

        await index.upsert_batch(_records("a", "b", "c"), batch_size=10)

        assert len(memory_backend.upsert_calls) == 1

    @pytest.mark.asyncio
    async def test_empty_input_writes_nothing(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend)

        assert await index.upsert_batch([]) == 0
        assert memory_backend.upsert_calls == []

    @pytest.mark.asyncio
    async def test_namespace_prefixes_ids(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend, namespace="tenant")
        records = _records("v1_chunk_0")

        await index.upsert_batch(records)

        assert list(memory_backend.records) == ["tenant_v1_chunk_0"]
        assert records[0].id == "v1_chunk_0"

    @pytest.mark.parametrize("namespace", [None, ""])
    @pytest.mark.asyncio
    async def test_empty_namespace_means_no_prefix(
        self, memory_backend: InMemoryVectorBackend, namespace: str | None
    ) -> None:
        index = VectorIndex(memory_backend, namespace=namespace)

        await index.upsert_batch(_records("v1_chunk_0"))

        assert index.prefix == ""
        assert list(memory_backend.records) == ["v1_chunk_0"]


class TestQuery:
    @pytest.mark.asyncio
    async def test_plain_query(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend)
        await index.upsert_batch(_records("a", "b", "c"))

        results = await index.query([1.0, 0.0, 0.0], top_k=2)

        assert [r.id for r in results] == ["a", "b"]
        assert memory_backend.query_calls == [2]

    @pytest.mark.asyncio
    async def test_namespaced_query_overfetches_and_filters(
        self, memory_backend: InMemoryVectorBackend
    ) -> None:
        await memory_backend.upsert(_records("other_a", "tenant_b", "other_c", "tenant_d"))
        index = VectorIndex(memory_backend, namespace="tenant", overfetch_factor=3)

        results = await index.query([1.0, 0.0, 0.0], top_k=2)

        assert memory_backend.query_calls == [6]
        assert [r.id for r in results] == ["tenant_b", "tenant_d"]

    @pytest.mark.asyncio
    async def test_namespaced_query_caps_at_top_k(
        self, memory_backend: InMemoryVectorBackend
    ) -> None:
        index = VectorIndex(memory_backend, namespace="tenant")
        await index.upsert_batch(_records("a", "b", "c", "d"))

        results = await index.query([1.0, 0.0, 0.0], top_k=1)

        assert [r.id for r in results] == ["tenant_a"]


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_reset_all_and_stats(self, memory_backend: InMemoryVectorBackend) -> None:
        index = VectorIndex(memory_backend, namespace="tenant")
        await index.upsert_batch(_records("a", "b"))
        assert (await index.stats())["vector_count"] == 2

        await index.reset_all()

        assert (await index.stats())["vector_count"] == 0

    def test_namespaced_id(self, memory_backend: InMemoryVectorBackend) -> None:
        assert VectorIndex(memory_backend, namespace="t").namespaced_id("x") == "t_x"
        assert VectorIndex(memory_backend).namespaced_id("x") == "x"
