"""Channel indexing orchestrator.

One run indexes one channel through a fixed sequence of Stage classes:
catalog -> filter -> process_videos -> upsert -> record. A single ``Run``
object owns the live progress and the cancellation flag; only one run may be
active per orchestrator.

Catalog, filter and upsert are all-or-nothing: any error there ends the run
as FAILED. Per-video failures are recorded and never abort the run.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tuberag.catalog import CatalogEnumerator, is_short
from tuberag.chunking import ChunkingEmbedder
from tuberag.core.config import TubeRAGConfig
from tuberag.core.exceptions import (
    AlreadyRunningError,
    NoVideosError,
    PipelineError,
    ProviderError,
    ProviderQuotaError,
    QuotaExhaustedError,
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
    RunOptions,
    RunState,
    SuccessVideo,
    TranscriptFailure,
    VectorRecord,
    Video,
)
from tuberag.core.protocols import (
    CaptionProvider,
    CatalogProvider,
    EmbeddingProvider,
    VectorBackend,
)
from tuberag.core.provider_factory import (
    create_caption_provider,
    create_catalog_provider,
    create_embedding_provider,
    create_vector_backend,
)
from tuberag.core.quota import QuotaScheduler
from tuberag.core.retry_config import RetryConfig
from tuberag.core.state import StateManager
from tuberag.transcript import TranscriptFetcher, describe_failures
from tuberag.vector_index import VectorIndex

if TYPE_CHECKING:
    import structlog

logger = get_logger(__name__)

ALL_FAILED_MESSAGE = (
    "No transcripts could be retrieved for any of the {count} videos from this channel. "
    "This may be due to: 1) Videos have disabled captions, 2) Channel uses members-only "
    "content, 3) Videos are age-restricted, or 4) Technical issues with caption APIs."
)

# Progress percentages at phase boundaries.
_PROGRESS_CATALOG_DONE = 20
_PROGRESS_PROCESSING_SPAN = 50
_PROGRESS_UPSERTING = 80


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _quota_stop_reason(exc: ProviderQuotaError) -> str:
    if isinstance(exc, QuotaExhaustedError):
        return "the YouTube API daily quota is exhausted"
    return f"{exc.provider} reports its quota is exhausted"


# ---------------------------------------------------------------------------
# Run - the one piece of mutable state shared with progress readers
# ---------------------------------------------------------------------------
@dataclass
class Run:
    """One indexing run: options, live progress and the cancellation flag."""

    channel_id: str
    options: RunOptions
    progress: IndexingProgress
    cancel_requested: bool = False
    task: asyncio.Task[IndexingLedgerEntry] | None = None
    result: IndexingLedgerEntry | None = None

    @property
    def is_active(self) -> bool:
        return not self.progress.state.is_terminal

    def set_state(self, state: RunState, message: str | None = None) -> None:
        self.progress.state = state
        if message is not None:
            self.progress.message = message

    def snapshot(self) -> IndexingProgress:
        return self.progress.model_copy(deep=True)


# ---------------------------------------------------------------------------
# Stage context - mutable bag of data passed through the stage pipeline
# ---------------------------------------------------------------------------
@dataclass
class StageContext:
    """Mutable context shared across all stages of a single run."""

    run: Run
    logger: structlog.stdlib.BoundLogger

    channel_id: str = ""
    channel_info: ChannelInfo | None = None
    catalog: list[Video] = field(default_factory=list)
    selected: list[Video] = field(default_factory=list)
    records: list[VectorRecord] = field(default_factory=list)
    stopped_by_cancel: bool = False
    stop_reason: str | None = None

    @property
    def options(self) -> RunOptions:
        return self.run.options

    @property
    def progress(self) -> IndexingProgress:
        return self.run.progress


# ---------------------------------------------------------------------------
# Stage base class
# ---------------------------------------------------------------------------
class Stage(ABC):
    """Abstract pipeline stage."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short, logging-friendly stage name (e.g. ``'catalog'``)."""

    @abstractmethod
    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        """Run the stage, mutating *ctx* in place."""


# ---------------------------------------------------------------------------
# Concrete stages
# ---------------------------------------------------------------------------
class CatalogStage(Stage):
    """Resolve the channel and list every upload."""

    @property
    def name(self) -> str:
        return "catalog"

    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        ctx.run.set_state(RunState.FETCHING_CATALOG, "Fetching channel videos...")
        with Timer(ctx.logger, "stage_catalog") as timer:
            catalog = orchestrator.catalog
            ctx.channel_id = await catalog.resolve_channel(ctx.run.channel_id)
            ctx.channel_info = await catalog.get_channel_info(ctx.channel_id)
            ctx.progress.channel_id = ctx.channel_id
            ctx.progress.channel_name = ctx.channel_info.name
            ctx.catalog = await catalog.list_videos(ctx.channel_id, ctx.channel_info)
            timer.complete(channel_name=ctx.channel_info.name, videos=len(ctx.catalog))


class FilterStage(Stage):
    """Drop already-indexed videos, then shorts, then apply the cap.

    With shorts excluded, metadata is fetched batch by batch over the
    remaining candidates until the cap is filled, so shorts never leave the
    cap under-filled while longer videos are still available.
    """

    @property
    def name(self) -> str:
        return "filter"

    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        options = ctx.options
        skip: set[str] = set(options.skip_video_ids)
        if options.skip_existing:
            skip |= await orchestrator.state.get_indexed_video_ids(ctx.channel_id)

        candidates = [video for video in ctx.catalog if video.video_id not in skip]
        skipped = len(ctx.catalog) - len(candidates)
        cap = options.video_limit
        catalog = orchestrator.catalog

        selected: list[Video] = []
        shorts = 0
        if not options.exclude_shorts:
            chosen = candidates[:cap] if cap else candidates
            if chosen:
                metadata = await catalog.get_metadata_batch([v.video_id for v in chosen])
                selected = catalog.enrich(chosen, metadata)
        else:
            threshold = orchestrator.config.short_video_threshold_seconds
            batch_size = orchestrator.config.metadata_batch_size
            position = 0
            while position < len(candidates) and (cap is None or len(selected) < cap):
                batch = candidates[position : position + batch_size]
                position += len(batch)
                metadata = await catalog.get_metadata_batch([v.video_id for v in batch])
                for video in catalog.enrich(batch, metadata):
                    details = metadata.get(video.video_id)
                    if is_short(details.duration if details else None, threshold):
                        shorts += 1
                        continue
                    selected.append(video)
                    if cap is not None and len(selected) >= cap:
                        break

        ctx.logger.info(
            "videos_filtered",
            catalog=len(ctx.catalog),
            skipped_existing=skipped,
            shorts=shorts,
            selected=len(selected),
        )
        if not selected:
            raise self._no_videos(ctx, skipped=skipped, shorts=shorts)

        ctx.selected = selected
        ctx.progress.total_videos = len(selected)
        ctx.progress.progress = _PROGRESS_CATALOG_DONE

    @staticmethod
    def _no_videos(ctx: StageContext, *, skipped: int, shorts: int) -> NoVideosError:
        total = len(ctx.catalog)
        if total == 0:
            reason, message = "empty_channel", "Channel has no videos to index."
        elif skipped == total:
            reason = "all_indexed"
            message = f"All {total} videos of this channel are already indexed."
        elif skipped == 0 and shorts:
            reason = "all_shorts"
            message = f"All {total} videos of this channel are Shorts and were excluded."
        else:
            reason = "all_filtered"
            message = (
                f"No videos left to index: {skipped} of {total} are already indexed "
                f"and {shorts} of the rest are Shorts."
            )
        return NoVideosError(message, reason=reason, channel_id=ctx.channel_id)


class ProcessVideosStage(Stage):
    """Fetch, chunk and embed each selected video, one at a time.

    The loop ends early when a provider reports its quota used up, or after
    ``caption_rate_limit_stop_after`` rate-limited caption fetches in a row.
    What was collected up to that point is still upserted.
    """

    @property
    def name(self) -> str:
        return "process_videos"

    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        total = len(ctx.selected)
        ctx.run.set_state(RunState.PROCESSING_VIDEOS, f"Processing {total} videos...")
        delay = orchestrator.config.inter_video_delay_seconds
        rate_limit_stop_after = orchestrator.config.caption_rate_limit_stop_after
        rate_limited = 0

        with Timer(ctx.logger, "stage_process_videos", videos=total) as timer:
            for position, video in enumerate(ctx.selected):
                if ctx.run.cancel_requested:
                    ctx.stopped_by_cancel = True
                    ctx.logger.info("run_cancel_observed", processed=position)
                    break

                ctx.progress.current_video_title = video.title
                ctx.progress.message = f"Processing video {position + 1}/{total}: {video.title}"

                try:
                    category = await self._process_one(ctx, orchestrator, video)
                except ProviderQuotaError as exc:
                    self._fail(ctx, video, FailureCategory.QUOTA_EXHAUSTED, str(exc))
                    ctx.stop_reason = _quota_stop_reason(exc)
                    ctx.progress.processed_videos = position + 1
                    ctx.logger.warning(
                        "run_stopped_quota_exhausted",
                        provider=exc.provider,
                        processed=position + 1,
                    )
                    break

                ctx.progress.processed_videos = position + 1
                ctx.progress.progress = _PROGRESS_CATALOG_DONE + int(
                    (position + 1) / total * _PROGRESS_PROCESSING_SPAN
                )

                rate_limited = rate_limited + 1 if category is FailureCategory.RATE_LIMIT else 0
                if rate_limited >= rate_limit_stop_after:
                    ctx.stop_reason = "caption requests are being rate limited"
                    ctx.logger.warning(
                        "run_stopped_rate_limited",
                        consecutive=rate_limited,
                        processed=position + 1,
                    )
                    break

                if delay and position + 1 < total:
                    await asyncio.sleep(delay)

            ctx.progress.current_video_title = None
            timer.complete(
                succeeded=len(ctx.progress.success_videos),
                failed=len(ctx.progress.failed_videos),
                records=len(ctx.records),
            )

    async def _process_one(
        self, ctx: StageContext, orchestrator: IndexingOrchestrator, video: Video
    ) -> FailureCategory | None:
        """Index one video; returns the failure category, or None on success."""
        result = await orchestrator.fetcher.fetch(video.video_id)
        if isinstance(result, TranscriptFailure):
            self._fail(ctx, video, result.category, result.details)
            return result.category

        try:
            records = await orchestrator.embedder.process_video(video, result.text)
        except ProviderQuotaError:
            raise
        except ProviderError as exc:
            self._fail(ctx, video, FailureCategory.EMBEDDING_FAILED, str(exc))
            return FailureCategory.EMBEDDING_FAILED
        except Exception as exc:
            self._fail(ctx, video, FailureCategory.UNKNOWN, f"{type(exc).__name__}: {exc}")
            return FailureCategory.UNKNOWN

        ctx.records.extend(records)
        ctx.progress.success_videos.append(
            SuccessVideo(
                video_id=video.video_id,
                title=video.title,
                url=video.url,
                duration_seconds=video.duration_seconds,
                chunks_created=len(records),
            )
        )
        ctx.logger.info("video_indexed", video_id=video.video_id, chunks=len(records))
        return None

    @staticmethod
    def _fail(
        ctx: StageContext, video: Video, category: FailureCategory, details: str
    ) -> None:
        ctx.progress.failed_videos.append(
            FailedVideo(
                video_id=video.video_id,
                title=video.title,
                url=video.url,
                reason_category=category,
                details=details,
            )
        )
        ctx.logger.info(
            "video_failed", video_id=video.video_id, category=str(category), details=details[:200]
        )


class UpsertStage(Stage):
    """Write every collected record in one batched call."""

    @property
    def name(self) -> str:
        return "upsert"

    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        if not ctx.records:
            ctx.logger.info("upsert_skipped", reason="no_records")
            return
        ctx.run.set_state(
            RunState.UPSERTING, f"Storing {len(ctx.records)} chunks in the vector index..."
        )
        ctx.progress.progress = _PROGRESS_UPSERTING
        with Timer(ctx.logger, "stage_upsert", records=len(ctx.records)):
            await orchestrator.index.upsert_batch(ctx.records)


class RecordStage(Stage):
    """Add the run's successes to the channel registry."""

    @property
    def name(self) -> str:
        return "record"

    async def execute(self, ctx: StageContext, orchestrator: IndexingOrchestrator) -> None:
        successes = ctx.progress.success_videos
        if not successes:
            return
        state = orchestrator.state
        already = await state.get_indexed_video_ids(ctx.channel_id)
        new = [video for video in successes if video.video_id not in already]
        name = ctx.channel_info.name if ctx.channel_info else ctx.channel_id
        await state.record_channel_run(
            ctx.channel_id,
            name,
            videos_added=len(new),
            chunks_added=sum(video.chunks_created for video in new),
            video_ids=[video.video_id for video in successes],
        )


# ---------------------------------------------------------------------------
# Default stage ordering
# ---------------------------------------------------------------------------
_DEFAULT_STAGES: tuple[Stage, ...] = (
    CatalogStage(),
    FilterStage(),
    ProcessVideosStage(),
    UpsertStage(),
    RecordStage(),
)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class IndexingOrchestrator:
    """Index YouTube channels into the vector index, one run at a time.

    Providers default to the ones selected in ``config``; pass instances to
    override them (tests pass fakes for all of them).
    """

    def __init__(
        self,
        config: TubeRAGConfig | None = None,
        *,
        catalog_provider: CatalogProvider | None = None,
        caption_provider: CaptionProvider | None = None,
        embedder: EmbeddingProvider | None = None,
        vector_backend: VectorBackend | None = None,
        scheduler: QuotaScheduler | None = None,
        state: StateManager | None = None,
        stages: tuple[Stage, ...] | None = None,
        configure_logs: bool = True,
    ) -> None:
        self._config = config = config or TubeRAGConfig()

        if configure_logs:
            configure_logging(
                log_level=config.log_level,
                log_format=config.log_format,
                log_timestamps=config.log_timestamps,
            )

        retry_config = RetryConfig.from_config(config)
        # Providers built here are closed by close(); injected ones are not.
        self._owned: list[Any] = []
        if catalog_provider is None:
            catalog_provider = create_catalog_provider(config)
            self._owned.append(catalog_provider)
        if embedder is None:
            embedder = create_embedding_provider(config, retry_config)
            self._owned.append(embedder)

        self._scheduler = scheduler or QuotaScheduler.from_config(config)
        self._catalog = CatalogEnumerator(
            catalog_provider,
            self._scheduler,
            page_size=config.catalog_page_size,
            metadata_batch_size=config.metadata_batch_size,
        )
        self._fetcher = TranscriptFetcher(
            caption_provider or create_caption_provider(config),
            max_attempts=config.transcript_max_attempts,
            retry_base_seconds=config.transcript_retry_base_seconds,
            min_chars=config.min_transcript_chars,
            languages=config.transcript_languages,
        )
        self._embedder = ChunkingEmbedder(
            embedder,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            embedding_dimension=config.embedding_dimension,
        )
        self._index = VectorIndex(
            vector_backend or create_vector_backend(config, retry_config),
            namespace=config.vector_namespace,
            batch_size=config.upsert_batch_size,
            overfetch_factor=config.query_overfetch_factor,
        )
        self._state = state or StateManager(config.database_path)
        self._stages = stages or _DEFAULT_STAGES
        self._run: Run | None = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Collaborators, read by stages
    # ------------------------------------------------------------------

    @property
    def config(self) -> TubeRAGConfig:
        return self._config

    @property
    def catalog(self) -> CatalogEnumerator:
        return self._catalog

    @property
    def fetcher(self) -> TranscriptFetcher:
        return self._fetcher

    @property
    def embedder(self) -> ChunkingEmbedder:
        return self._embedder

    @property
    def index(self) -> VectorIndex:
        return self._index

    @property
    def state(self) -> StateManager:
        return self._state

    @property
    def scheduler(self) -> QuotaScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self._state.initialize()
            self._scheduler.start()
            self._initialized = True

    async def close(self) -> None:
        """Wait for an active run, then release the database, the reset
        monitor and the HTTP clients of providers built from config."""
        await self.wait()
        if self._initialized:
            await self._scheduler.stop()
            await self._state.close()
            self._initialized = False
        owned, self._owned = self._owned, []
        for provider in owned:
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()

    async def __aenter__(self) -> IndexingOrchestrator:
        await self._ensure_initialized()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Stage runner
    # ------------------------------------------------------------------

    async def _run_stages(self, ctx: StageContext) -> None:
        """Execute stages in order, wrapping unexpected errors in PipelineError."""
        for stage in self._stages:
            try:
                await stage.execute(ctx, self)
            except PipelineError:
                raise
            except Exception as exc:
                raise PipelineError(
                    f"Stage '{stage.name}' failed: {exc}",
                    stage=stage.name,
                    channel_id=ctx.channel_id or ctx.run.channel_id,
                ) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _claim(self, channel_id: str, options: RunOptions | None) -> Run:
        # No await between the check and the assignment.
        if self._run is not None and self._run.is_active:
            raise AlreadyRunningError(self._run.channel_id)
        run = Run(
            channel_id=channel_id,
            options=options or RunOptions(),
            progress=IndexingProgress(
                is_running=True,
                state=RunState.STARTING,
                channel_id=channel_id,
                message="Starting indexing process...",
                started_at=_utcnow(),
            ),
        )
        self._run = run
        return run

    async def start_run(self, channel_id: str, options: RunOptions | None = None) -> Run:
        """Start indexing ``channel_id`` in a background task.

        Raises:
            AlreadyRunningError: If a run is already active.
        """
        run = self._claim(channel_id, options)
        run.task = asyncio.create_task(self._execute(run, raise_on_failure=False))
        return run

    async def run(
        self, channel_id: str, options: RunOptions | None = None
    ) -> IndexingLedgerEntry:
        """Index ``channel_id`` and return its ledger entry.

        Raises:
            AlreadyRunningError: If a run is already active.
            PipelineError: If the run failed as a whole; the failure is
                recorded in the ledger first.
        """
        run = self._claim(channel_id, options)
        return await self._execute(run, raise_on_failure=True)

    def get_progress(self) -> IndexingProgress:
        """Snapshot of the current or last run; idle when nothing ran yet."""
        if self._run is None:
            return IndexingProgress()
        return self._run.snapshot()

    def cancel_run(self) -> bool:
        """Ask the active run to stop before its next video.

        Returns False when no run is active.
        """
        run = self._run
        if run is None or not run.is_active:
            return False
        run.cancel_requested = True
        run.progress.cancelled = True
        run.progress.message = "Cancellation requested..."
        logger.info("run_cancel_requested", channel_id=run.channel_id)
        return True

    async def wait(self) -> IndexingLedgerEntry | None:
        """Wait for a background run to finish; returns its ledger entry."""
        run = self._run
        if run is None:
            return None
        if run.task is not None:
            await asyncio.wait({run.task})
        return run.result

    async def get_ledger(
        self, channel_id: str | None = None, limit: int | None = None
    ) -> list[IndexingLedgerEntry]:
        await self._ensure_initialized()
        return await self._state.get_ledger(channel_id=channel_id, limit=limit)

    async def run_many(
        self, channel_ids: list[str], options: RunOptions | None = None
    ) -> BulkRunResult:
        """Index several channels one after another with the same options.

        A failed channel does not stop the batch; its FAILED ledger entry is
        part of the result. The batch does stop when a run is cancelled or
        the YouTube quota is used up, and the channels never attempted are
        listed in ``skipped``.

        Raises:
            ValueError: If ``channel_ids`` is empty.
            AlreadyRunningError: If another run claims the orchestrator
                between two channels.
        """
        if not channel_ids:
            raise ValueError("No channels provided")

        result = BulkRunResult(requested=list(channel_ids))
        batch_logger = logger.bind(operation="index_channels", channels=len(channel_ids))
        batch_logger.info("bulk_run_started")

        for position, channel_id in enumerate(channel_ids):
            # A background run started before the batch finishes first.
            await self.wait()
            run = self._claim(channel_id, options)
            entry = await self._execute(run, raise_on_failure=False)
            result.entries.append(entry)

            if position + 1 == len(channel_ids):
                break
            if entry.state is RunState.CANCELLED:
                result.stop_reason = "cancelled"
            elif self._scheduler.remaining == 0:
                result.stop_reason = "the YouTube API daily quota is exhausted"
            if result.stop_reason:
                result.skipped = list(channel_ids[position + 1 :])
                batch_logger.warning(
                    "bulk_run_stopped", reason=result.stop_reason, skipped=len(result.skipped)
                )
                break

        batch_logger.info(
            "bulk_run_finished",
            successful=len(result.successful),
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
        return result

    async def check_new_videos(self) -> list[NewVideosReport]:
        """Find uploads of every registered channel that are not indexed yet.

        Lists each channel's catalog (one ``channels.list`` call plus one
        ``playlistItems.list`` call per page) and indexes nothing; run the
        channel with ``RunOptions(skip_existing=True)`` to pick the new
        videos up. A channel that cannot be listed gets a report carrying the
        error. Once the quota is used up the remaining channels are reported
        with that error without being listed.
        """
        await self._ensure_initialized()
        reports: list[NewVideosReport] = []
        quota_error: str | None = None

        for channel in await self._state.list_channels():
            report = NewVideosReport(
                channel_id=channel.channel_id, channel_name=channel.channel_name
            )
            reports.append(report)
            if quota_error is not None:
                report.error = quota_error
                continue

            try:
                info = await self._catalog.get_channel_info(channel.channel_id)
                videos = await self._catalog.list_videos(channel.channel_id, info)
            except QuotaExhaustedError as exc:
                quota_error = report.error = str(exc)
                logger.warning("new_video_check_quota_exhausted", channel_id=channel.channel_id)
                continue
            except (ProviderError, ConnectionError, TimeoutError) as exc:
                report.error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "new_video_check_failed", channel_id=channel.channel_id, error=report.error
                )
                continue

            indexed = await self._state.get_indexed_video_ids(channel.channel_id)
            report.channel_name = info.name or channel.channel_name
            report.catalog_count = len(videos)
            report.indexed_count = len(indexed)
            report.new_video_ids = [v.video_id for v in videos if v.video_id not in indexed]
            if report.new_video_ids:
                logger.info(
                    "new_videos_found",
                    channel_id=channel.channel_id,
                    new_videos=len(report.new_video_ids),
                )

        return reports

    # ------------------------------------------------------------------
    # Run execution
    # ------------------------------------------------------------------

    async def _execute(self, run: Run, *, raise_on_failure: bool) -> IndexingLedgerEntry:
        operation_logger = logger.bind(channel_id=run.channel_id, operation="index_channel")
        operation_logger.info("run_started", options=run.options.model_dump())
        ctx = StageContext(run=run, logger=operation_logger)
        failure: PipelineError | None = None

        try:
            await self._ensure_initialized()
            await self._run_stages(ctx)
        except PipelineError as exc:
            failure = exc
        except Exception as exc:
            failure = PipelineError(
                f"Run failed: {exc}", stage="setup", channel_id=run.channel_id
            )
            failure.__cause__ = exc

        if failure is not None:
            run.set_state(RunState.FAILED, str(failure))
            operation_logger.error("run_failed", stage=failure.stage, error=str(failure))
        elif ctx.stopped_by_cancel:
            run.set_state(RunState.CANCELLED, self._summary(ctx, prefix="Indexing cancelled. "))
        else:
            run.set_state(RunState.COMPLETED, self._summary(ctx))
            run.progress.progress = 100

        progress = run.progress
        progress.is_running = False
        progress.current_video_title = None
        progress.ended_at = _utcnow()

        entry = IndexingLedgerEntry(
            channel_id=ctx.channel_id or run.channel_id,
            channel_name=progress.channel_name or "",
            state=progress.state,
            started_at=progress.started_at or progress.ended_at,
            ended_at=progress.ended_at,
            total_videos=progress.total_videos,
            success_videos=list(progress.success_videos),
            failed_videos=list(progress.failed_videos),
            message=progress.message,
        )
        run.result = entry

        try:
            await self._state.append_ledger_entry(entry)
        except Exception as exc:
            operation_logger.error("ledger_write_failed", error=str(exc))
            if raise_on_failure:
                raise
        operation_logger.info(
            "run_finished",
            state=str(entry.state),
            succeeded=entry.success_count,
            failed=entry.failed_count,
            duration_ms=entry.duration_ms,
        )

        if failure is not None and raise_on_failure:
            raise failure
        return entry

    @staticmethod
    def _summary(ctx: StageContext, prefix: str = "") -> str:
        progress = ctx.progress
        successes = progress.success_videos
        failures = progress.failed_videos
        if not successes and failures and not ctx.stopped_by_cancel:
            message = ALL_FAILED_MESSAGE.format(count=len(failures))
        else:
            chunks = sum(video.chunks_created for video in successes)
            message = (
                f"Indexed {len(successes)} of {progress.total_videos} videos ({chunks} chunks)."
            )
        if failures:
            message += f" Failures: {describe_failures(f.reason_category for f in failures)}."
        if ctx.stop_reason:
            message += f" Stopped early: {ctx.stop_reason}."
        return prefix + message
