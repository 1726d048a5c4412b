"""Shared pytest fixtures for the tuberag test suite."""

import asyncio
import math
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from tuberag.core.config import TubeRAGConfig
from tuberag.core.models import (
    CaptionTrack,
    CatalogPage,
    ChannelInfo,
    QuotaState,
    SearchResult,
    Video,
    VectorRecord,
    VideoDetails,
)
from tuberag.core.quota import QuotaScheduler
from tuberag.core.state import StateManager

CHANNEL_ID = "UCabcdefghijklmnopqrstuv"
UPLOADS_PLAYLIST_ID = "UUabcdefghijklmnopqrstuv"
EMBEDDING_DIMENSION = 3

# ============================================================================
# Temporary Directory Fixtures
# ============================================================================


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database file path.

    Returns:
        Path: Path to a temporary SQLite database file.
    """
    return tmp_path / "test.db"


@pytest.fixture
def tmp_vector_store_dir(tmp_path: Path) -> Path:
    store_dir = tmp_path / "vector_store"
    store_dir.mkdir(parents=True, exist_ok=True)
    return store_dir


# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Settable wall clock; call it to read the time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# In-memory fakes
# ============================================================================


class MemoryQuotaStore:
    """QuotaStore keeping the state in memory."""

    def __init__(self, state: QuotaState | None = None) -> None:
        self.state = state
        self.saves = 0

    def load(self) -> QuotaState | None:
        return self.state

    def save(self, state: QuotaState) -> None:
        self.state = state
        self.saves += 1


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorBackend:
    """VectorBackend keeping records in a dict, ranked by cosine similarity."""

    def __init__(self) -> None:
        self.records: dict[str, VectorRecord] = {}
        self.upsert_calls: list[list[VectorRecord]] = []
        self.query_calls: list[int] = []

    async def upsert(self, records: list[VectorRecord]) -> None:
        self.upsert_calls.append(list(records))
        for record in records:
            self.records[record.id] = record

    async def query(self, vector: list[float], top_k: int) -> list[SearchResult]:
        self.query_calls.append(top_k)
        ranked = sorted(
            self.records.values(), key=lambda r: _cosine(vector, r.vector), reverse=True
        )
        return [
            SearchResult(id=r.id, score=_cosine(vector, r.vector), metadata=dict(r.metadata))
            for r in ranked[:top_k]
        ]

    async def reset(self) -> None:
        self.records.clear()

    async def info(self) -> dict[str, Any]:
        return {"vector_count": len(self.records)}


class FakeCatalogProvider:
    """CatalogProvider over a fixed list of videos."""

    def __init__(
        self,
        videos: list[Video] | None = None,
        durations: dict[str, str | None] | None = None,
        *,
        channel_name: str = "Test Channel",
        page_size: int | None = None,
        channel_exists: bool = True,
    ) -> None:
        self.videos = videos or []
        self.durations = durations or {}
        self.channel_name = channel_name
        self.page_size = page_size
        self.channel_exists = channel_exists
        self.search_calls: list[str] = []
        self.page_calls: list[str | None] = []
        self.video_calls: list[list[str]] = []

    async def search_channel(self, query: str) -> str | None:
        self.search_calls.append(query)
        return CHANNEL_ID

    async def get_channel(self, channel_id: str) -> ChannelInfo | None:
        if not self.channel_exists:
            return None
        return ChannelInfo(
            channel_id=channel_id,
            name=self.channel_name,
            uploads_playlist_id=UPLOADS_PLAYLIST_ID,
        )

    async def list_playlist_page(
        self, playlist_id: str, page_token: str | None, page_size: int
    ) -> CatalogPage:
        self.page_calls.append(page_token)
        size = self.page_size or page_size
        start = int(page_token or 0)
        items = self.videos[start : start + size]
        next_token = str(start + size) if start + size < len(self.videos) else None
        return CatalogPage(items=items, next_page_token=next_token)

    async def get_videos(self, video_ids: list[str]) -> dict[str, VideoDetails]:
        self.video_calls.append(list(video_ids))
        return {
            video_id: VideoDetails(duration=self.durations.get(video_id, "PT10M"))
            for video_id in video_ids
        }


class FakeCaptionProvider:
    """CaptionProvider returning canned segments or raising canned errors.

    ``transcripts`` maps a video id to its raw segment tree, ``errors`` to an
    exception raised on listing. Videos in neither have no caption tracks.
    ``on_fetch`` is awaited before every transcript download.
    """

    def __init__(
        self,
        transcripts: dict[str, Any] | None = None,
        errors: dict[str, Exception] | None = None,
        on_fetch: Callable[[str], Any] | None = None,
    ) -> None:
        self.transcripts = transcripts or {}
        self.errors = errors or {}
        self.on_fetch = on_fetch
        self.fetched: list[str] = []

    async def get_caption_tracks(self, video_id: str) -> list[CaptionTrack] | None:
        if video_id in self.errors:
            raise self.errors[video_id]
        if video_id not in self.transcripts:
            return []
        return [CaptionTrack(language_code="en", name="English")]

    async def get_transcript(self, video_id: str, track: CaptionTrack) -> Any:
        self.fetched.append(video_id)
        if self.on_fetch is not None:
            result = self.on_fetch(video_id)
            if asyncio.iscoroutine(result):
                await result
        return self.transcripts[video_id]


def make_video(video_id: str, title: str | None = None) -> Video:
    return Video(video_id=video_id, title=title or f"Video {video_id}")


def snippets(*texts: str) -> list[dict[str, Any]]:
    """Raw segment tree in the flat snippet shape."""
    return [{"text": text, "start": float(i), "duration": 1.0} for i, text in enumerate(texts)]


def fake_embed(texts: list[str]) -> list[list[float]]:
    return [[1.0, float(len(text) % 7) / 10, 0.5] for text in texts]


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def mock_embedding_provider() -> AsyncMock:
    """Create a mock embedding provider returning 3-dimensional vectors."""
    provider = AsyncMock()
    provider.embed = AsyncMock(side_effect=fake_embed)
    return provider


@pytest.fixture
def mock_generation_provider() -> AsyncMock:
    provider = AsyncMock()
    provider.complete = AsyncMock(return_value="This is a mocked answer.")
    return provider


@pytest.fixture
def memory_backend() -> InMemoryVectorBackend:
    return InMemoryVectorBackend()


@pytest.fixture
def memory_quota_store() -> MemoryQuotaStore:
    return MemoryQuotaStore()


@pytest.fixture
def scheduler(fake_clock: FakeClock, memory_quota_store: MemoryQuotaStore) -> QuotaScheduler:
    """Quota scheduler with no pacing and no retry delays."""
    return QuotaScheduler(
        daily_limit=10_000,
        min_interval_seconds=0,
        retry_delays=(0, 0, 0, 0),
        store=memory_quota_store,
        now=fake_clock,
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def mock_config(tmp_db_path: Path, tmp_vector_store_dir: Path) -> TubeRAGConfig:
    """A real TubeRAGConfig isolated from the environment and sized for tests."""
    return TubeRAGConfig(
        _env_file=None,
        database_path=str(tmp_db_path),
        chromadb_persist_directory=str(tmp_vector_store_dir),
        youtube_api_key="test-key",
        openai_api_key="test-key",
        embedding_dimension=EMBEDDING_DIMENSION,
        chunk_size=100,
        chunk_overlap=0,
        quota_min_interval_seconds=0,
        quota_retry_delays=[0, 0, 0, 0, 0],
        transcript_retry_base_seconds=0,
        retry_min_wait_seconds=0,
        retry_max_wait_seconds=0,
        log_level="WARNING",
    )


# ============================================================================
# State Fixtures
# ============================================================================


@pytest.fixture
async def state_manager(tmp_db_path: Path) -> AsyncGenerator[StateManager, None]:
    """Create and initialize a StateManager instance."""
    manager = StateManager(tmp_db_path)
    await manager.initialize()
    yield manager
    await manager.close()
