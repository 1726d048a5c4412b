"""Pydantic data models for tuberag."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, computed_field, model_validator

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def video_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------
class QuotaState(BaseModel):
    """Persisted daily quota budget."""

    units_used: int = Field(default=0, ge=0)
    units_limit: int = Field(gt=0)
    reset_at: datetime
    last_updated: datetime | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.units_limit - self.units_used)


class QuotaLevel(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class QuotaEventKind(StrEnum):
    WARNING = "quota_warning"
    CRITICAL = "quota_critical"
    EXHAUSTED = "quota_exhausted"
    RESET = "quota_reset"


class QuotaEvent(BaseModel):
    """A threshold crossing recorded in the scheduler outbox."""

    kind: QuotaEventKind
    used: int
    limit: int
    at: datetime


class QuotaStatus(BaseModel):
    """Read-only snapshot of the scheduler."""

    used: int
    limit: int
    remaining: int
    percent: float
    reset_at: datetime
    reset_in_seconds: float
    level: QuotaLevel
    queue_depth: int
    in_flight: int


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class ChannelInfo(BaseModel):
    channel_id: str
    name: str
    description: str = ""
    uploads_playlist_id: str


class Video(BaseModel):
    """One video of a channel's catalog."""

    video_id: str
    title: str
    published_at: str | None = None
    url: str = ""
    duration_seconds: int = Field(default=0, ge=0)
    description: str = ""
    thumbnail: str | None = None

    @model_validator(mode="after")
    def _default_url(self) -> Video:
        if not self.url:
            self.url = video_url(self.video_id)
        return self


class VideoDetails(BaseModel):
    """Per-video metadata from a batch lookup."""

    title: str = ""
    description: str = ""
    published_at: str | None = None
    duration: str | None = None
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    thumbnail: str | None = None


class CatalogPage(BaseModel):
    items: list[Video] = Field(default_factory=list)
    next_page_token: str | None = None


# ---------------------------------------------------------------------------
# Transcripts
# ---------------------------------------------------------------------------
class FailureCategory(StrEnum):
    """Why a video could not be indexed."""

    NO_CAPTIONS = "NO_CAPTIONS"
    CAPTIONS_DISABLED = "CAPTIONS_DISABLED"
    PRIVATE_OR_RESTRICTED = "PRIVATE_OR_RESTRICTED"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    STRUCTURE_UNSUPPORTED = "STRUCTURE_UNSUPPORTED"
    TOO_SHORT = "TOO_SHORT"
    UNKNOWN = "UNKNOWN"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"


class CaptionTrack(BaseModel):
    """A caption track advertised for a video.

    ``handle`` is whatever the caption provider needs to fetch the body.
    """

    language_code: str = ""
    name: str = ""
    is_generated: bool = False
    handle: Any = Field(default=None, exclude=True)


class TranscriptSuccess(BaseModel):
    kind: Literal["success"] = "success"
    video_id: str
    text: str
    segment_count: int = Field(ge=0)


class TranscriptFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    video_id: str
    category: FailureCategory
    details: str = ""


TranscriptResult = Annotated[TranscriptSuccess | TranscriptFailure, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Chunks and vectors
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A slice of one video's transcript."""

    parent_video_id: str
    index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _index_in_range(self) -> Chunk:
        if self.index >= self.total_chunks:
            raise ValueError(f"chunk index {self.index} out of range for {self.total_chunks}")
        return self


class VectorRecord(BaseModel):
    id: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    id: str
    score: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Indexing runs
# ---------------------------------------------------------------------------
class RunState(StrEnum):
    """Lifecycle of one indexing run."""

    IDLE = "idle"
    STARTING = "starting"
    FETCHING_CATALOG = "fetching_catalog"
    PROCESSING_VIDEOS = "processing_videos"
    UPSERTING = "upserting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.IDLE, RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


class RunOptions(BaseModel):
    video_limit: int | None = Field(default=None, ge=1)
    skip_existing: bool = False
    exclude_shorts: bool = False
    # Extra ids to skip on top of the stored indexed set.
    skip_video_ids: list[str] = Field(default_factory=list)


class SuccessVideo(BaseModel):
    video_id: str
    title: str = ""
    url: str = ""
    duration_seconds: int = 0
    chunks_created: int = Field(ge=0)


class FailedVideo(BaseModel):
    video_id: str
    title: str = ""
    url: str = ""
    reason_category: FailureCategory
    details: str = ""


class IndexingProgress(BaseModel):
    """Live view of the current (or last) run."""

    is_running: bool = False
    cancelled: bool = False
    state: RunState = RunState.IDLE
    channel_id: str | None = None
    channel_name: str | None = None
    total_videos: int = 0
    processed_videos: int = 0
    current_video_title: str | None = None
    progress: int = 0
    message: str = ""
    success_videos: list[SuccessVideo] = Field(default_factory=list)
    failed_videos: list[FailedVideo] = Field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None


class IndexingLedgerEntry(BaseModel):
    """Append-only record of one finished run."""

    channel_id: str
    channel_name: str = ""
    state: RunState
    started_at: datetime
    ended_at: datetime
    total_videos: int = 0
    success_videos: list[SuccessVideo] = Field(default_factory=list)
    failed_videos: list[FailedVideo] = Field(default_factory=list)
    message: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return len(self.success_videos)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_count(self) -> int:
        return len(self.failed_videos)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)


class ChannelRecord(BaseModel):
    channel_id: str
    channel_name: str = ""
    video_count: int = 0
    total_chunks: int = 0
    indexed_at: datetime | None = None
    updated_at: datetime | None = None


class BulkRunResult(BaseModel):
    """Outcome of indexing a list of channels one after another.

    ``skipped`` holds the requested identifiers that were never attempted
    because the batch stopped early.
    """

    requested: list[str]
    entries: list[IndexingLedgerEntry] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    stop_reason: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def successful(self) -> list[str]:
        return [e.channel_id for e in self.entries if e.state is RunState.COMPLETED]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> list[str]:
        return [e.channel_id for e in self.entries if e.state is not RunState.COMPLETED]


class NewVideosReport(BaseModel):
    """Uploads of a registered channel that are not indexed yet."""

    channel_id: str
    channel_name: str = ""
    catalog_count: int = 0
    indexed_count: int = 0
    new_video_ids: list[str] = Field(default_factory=list)
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def new_count(self) -> int:
        return len(self.new_video_ids)


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------
class SourceRef(BaseModel):
    video_id: str
    title: str = ""
    url: str = ""


class ChunkRef(BaseModel):
    content: str = ""
    video_title: str = ""
    score: float = 0.0


class QueryDebug(BaseModel):
    question: str
    profile_id: str
    chunks_count: int = 0
    context: str = ""
    system_prompt: str = ""
    user_prompt: str = ""
    error: str | None = None


class QueryResponse(BaseModel):
    answer: str
    sources: list[SourceRef] = Field(default_factory=list)
    chunks: list[ChunkRef] = Field(default_factory=list)
    debug: QueryDebug
