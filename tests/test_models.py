"""Unit tests for the pydantic models."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import TypeAdapter, ValidationError

from tuberag.core.models import (
    Chunk,
    FailureCategory,
    IndexingLedgerEntry,
    QuotaState,
    RunOptions,
    RunState,
    TranscriptFailure,
    TranscriptResult,
    TranscriptSuccess,
    Video,
    video_url,
)


class TestVideo:
    def test_url_defaults_to_watch_page(self):
        video = Video(video_id="abc123", title="T")

        assert video.url == "https://www.youtube.com/watch?v=abc123"
        assert video.url == video_url("abc123")

    def test_explicit_url_is_kept(self):
        assert Video(video_id="abc", title="T", url="https://youtu.be/abc").url == (
            "https://youtu.be/abc"
        )

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            Video(video_id="abc", title="T", duration_seconds=-1)


class TestQuotaState:
    def test_remaining_never_negative(self):
        state = QuotaState(units_used=120, units_limit=100, reset_at=datetime.now(UTC))

        assert state.remaining == 0

    def test_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            QuotaState(units_limit=0, reset_at=datetime.now(UTC))


class TestChunk:
    def test_index_must_be_below_total(self):
        with pytest.raises(ValidationError, match="out of range"):
            Chunk(parent_video_id="v", index=2, total_chunks=2, text="x")

    def test_valid_chunk(self):
        chunk = Chunk(parent_video_id="v", index=1, total_chunks=2, text="x")

        assert chunk.metadata == {}


class TestTranscriptResult:
    def test_discriminated_union(self):
        adapter = TypeAdapter(TranscriptResult)

        success = adapter.validate_python(
            {"kind": "success", "video_id": "v", "text": "hi", "segment_count": 1}
        )
        failure = adapter.validate_python(
            {"kind": "failure", "video_id": "v", "category": "NO_CAPTIONS"}
        )

        assert isinstance(success, TranscriptSuccess)
        assert isinstance(failure, TranscriptFailure)
        assert failure.category is FailureCategory.NO_CAPTIONS


class TestRunModels:
    @pytest.mark.parametrize(
        ("state", "terminal"),
        [
            (RunState.IDLE, True),
            (RunState.STARTING, False),
            (RunState.FETCHING_CATALOG, False),
            (RunState.PROCESSING_VIDEOS, False),
            (RunState.UPSERTING, False),
            (RunState.COMPLETED, True),
            (RunState.FAILED, True),
            (RunState.CANCELLED, True),
        ],
    )
    def test_terminal_states(self, state, terminal):
        assert state.is_terminal is terminal

    def test_video_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            RunOptions(video_limit=0)

    def test_ledger_entry_computed_fields(self):
        started = datetime(2026, 1, 1, tzinfo=UTC)
        entry = IndexingLedgerEntry(
            channel_id="UC1",
            state=RunState.COMPLETED,
            started_at=started,
            ended_at=started + timedelta(milliseconds=1500),
        )

        dumped = entry.model_dump()

        assert dumped["duration_ms"] == 1500
        assert dumped["success_count"] == 0
        assert dumped["failed_count"] == 0
