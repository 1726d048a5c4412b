"""Daily quota scheduler for metered YouTube Data API calls.

Every metered call goes through ``QuotaScheduler.submit``. The scheduler:

* refuses calls whose cost does not fit in the remaining daily budget,
* dispatches admitted calls by priority under a concurrency ceiling and a
  minimum spacing between dispatches,
* debits and persists the budget after each successful call,
* retries transient failures on a fixed delay table,
* resets the budget at the next midnight of the configured timezone, and
* records warning/critical/exhausted/reset events in an outbox.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from datetime import time as dt_time
from enum import StrEnum
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from tuberag.core.exceptions import ProviderError, QuotaExhaustedError
from tuberag.core.logging_config import get_logger
from tuberag.core.models import (
    QuotaEvent,
    QuotaEventKind,
    QuotaLevel,
    QuotaState,
    QuotaStatus,
)
from tuberag.core.protocols.quota_store import QuotaStore
from tuberag.core.retry_config import QUOTA_RETRY_DELAYS, create_table_retry

logger = get_logger(__name__)

T = TypeVar("T")

# YouTube Data API v3 unit costs.
OPERATION_COSTS: dict[str, int] = {
    "channels.list": 1,
    "videos.list": 1,
    "playlistItems.list": 1,
    "search.list": 100,
    "captions.list": 50,
    "captions.download": 200,
}
DEFAULT_COST = 1

# Lower dispatches first.
OPERATION_PRIORITIES: dict[str, int] = {
    "captions.download": 1,
    "channels.list": 3,
    "captions.list": 4,
    "videos.list": 5,
    "playlistItems.list": 5,
    "search.list": 7,
}
DEFAULT_PRIORITY = 5

_QUOTA_REASONS = ("quotaexceeded", "dailylimitexceeded")


class CallErrorKind(StrEnum):
    """How a failed metered call is treated."""

    QUOTA = "quota"
    CLIENT = "client"
    RETRYABLE = "retryable"


def _status_code(exc: BaseException) -> int | None:
    code = getattr(exc, "status_code", None)
    if code is None:
        response = getattr(exc, "response", None)
        code = getattr(response, "status_code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


def classify_call_error(exc: BaseException) -> CallErrorKind:
    """Classify a failed metered call.

    Quota errors are terminal and resync the budget; other 4xx responses
    (except 429) are terminal; everything else is retryable.
    """
    if isinstance(exc, QuotaExhaustedError):
        return CallErrorKind.QUOTA

    message = str(exc).lower()
    reason = str(getattr(exc, "reason", "") or "").lower()
    code = _status_code(exc)

    if "quota" in message or reason in _QUOTA_REASONS:
        return CallErrorKind.QUOTA
    if code == 403 and any(r in message for r in _QUOTA_REASONS):
        return CallErrorKind.QUOTA
    if code is not None and 400 <= code < 500 and code != 429:
        return CallErrorKind.CLIENT
    if code is None and isinstance(exc, ProviderError) and not exc.retryable:
        return CallErrorKind.CLIENT
    return CallErrorKind.RETRYABLE


def should_retry(kind: CallErrorKind, attempt: int, max_attempts: int) -> bool:
    """Whether attempt number ``attempt`` (1-based) may be followed by another."""
    return kind is CallErrorKind.RETRYABLE and attempt < max_attempts


def next_reset_at(now: datetime, tz: ZoneInfo) -> datetime:
    """Next local midnight in ``tz`` after ``now``, as a UTC datetime."""
    local = now.astimezone(tz)
    midnight = datetime.combine(local.date() + timedelta(days=1), dt_time.min, tzinfo=tz)
    return midnight.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class QuotaScheduler:
    """Admission control, pacing and accounting for metered calls.

    Args:
        daily_limit: Units available per day.
        max_concurrent: Maximum calls in flight.
        min_interval_seconds: Minimum spacing between two dispatches.
        warning_threshold: Used fraction that triggers a warning event.
        critical_threshold: Used fraction that triggers a critical event.
        timezone: IANA timezone whose midnight resets the budget.
        reset_check_interval_seconds: Poll interval of the background reset check.
        max_attempts: Attempts per call, including the first.
        retry_delays: Seconds to wait before each retry.
        store: Where the budget is persisted. Nothing is persisted when None.
        now: Wall clock, injectable for tests.
        monotonic: Monotonic clock used for pacing, injectable for tests.
    """

    def __init__(
        self,
        *,
        daily_limit: int = 50_000,
        max_concurrent: int = 10,
        min_interval_seconds: float = 0.05,
        warning_threshold: float = 0.80,
        critical_threshold: float = 0.95,
        timezone: str = "America/Los_Angeles",
        reset_check_interval_seconds: float = 60.0,
        max_attempts: int = 5,
        retry_delays: Sequence[float] = QUOTA_RETRY_DELAYS,
        store: QuotaStore | None = None,
        now: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        if daily_limit <= 0:
            raise ValueError("daily_limit must be > 0")
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be > 0")

        self._limit = daily_limit
        self._max_concurrent = max_concurrent
        self._min_interval = max(0.0, min_interval_seconds)
        self._warning_threshold = warning_threshold
        self._critical_threshold = critical_threshold
        self._tz = ZoneInfo(timezone)
        self._reset_check_interval = reset_check_interval_seconds
        self._max_attempts = max(1, max_attempts)
        self._retry_delays = tuple(retry_delays)
        self._store = store
        self._now = now or _utcnow
        self._monotonic = monotonic or time.monotonic

        self._cond = asyncio.Condition()
        self._waiting: list[tuple[int, int]] = []
        self._sequence = itertools.count()
        self._in_flight = 0
        self._next_dispatch_at = 0.0
        self._events: list[QuotaEvent] = []
        self._fired: set[QuotaEventKind] = set()
        self._monitor: asyncio.Task[None] | None = None
        self._logger = logger.bind(component="quota_scheduler")

        self._state = self._load_state()
        self._fired = self._crossed_kinds()
        self.check_reset()

    @classmethod
    def from_config(cls, config: Any, store: QuotaStore | None = None) -> QuotaScheduler:
        if store is None:
            from tuberag.core.quota_store_sqlite import SqliteQuotaStore

            store = SqliteQuotaStore(config.database_path)
        return cls(
            daily_limit=config.quota_daily_limit,
            max_concurrent=config.quota_max_concurrent,
            min_interval_seconds=config.quota_min_interval_seconds,
            warning_threshold=config.quota_warning_threshold,
            critical_threshold=config.quota_critical_threshold,
            timezone=config.quota_timezone,
            reset_check_interval_seconds=config.quota_reset_check_interval_seconds,
            max_attempts=config.quota_max_attempts,
            retry_delays=config.quota_retry_delays,
            store=store,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _load_state(self) -> QuotaState:
        stored = self._store.load() if self._store is not None else None
        if stored is None:
            state = QuotaState(
                units_used=0,
                units_limit=self._limit,
                reset_at=next_reset_at(self._now(), self._tz),
                last_updated=self._now(),
            )
            self._persist(state)
            return state

        if stored.units_limit != self._limit:
            self._logger.info(
                "quota_limit_changed", previous=stored.units_limit, current=self._limit
            )
            stored = stored.model_copy(
                update={
                    "units_limit": self._limit,
                    "units_used": min(stored.units_used, self._limit),
                }
            )
            self._persist(stored)
        self._logger.debug(
            "quota_state_loaded", used=stored.units_used, reset_at=stored.reset_at.isoformat()
        )
        return stored

    def _persist(self, state: QuotaState) -> None:
        if self._store is not None:
            self._store.save(state)

    def _set_used(self, used: int) -> None:
        self._state = self._state.model_copy(
            update={"units_used": used, "last_updated": self._now()}
        )
        self._persist(self._state)

    @property
    def state(self) -> QuotaState:
        return self._state

    @property
    def remaining(self) -> int:
        return self._state.remaining

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _crossed_kinds(self) -> set[QuotaEventKind]:
        used, limit = self._state.units_used, self._state.units_limit
        crossed: set[QuotaEventKind] = set()
        if used / limit >= self._warning_threshold:
            crossed.add(QuotaEventKind.WARNING)
        if used / limit >= self._critical_threshold:
            crossed.add(QuotaEventKind.CRITICAL)
        if used >= limit:
            crossed.add(QuotaEventKind.EXHAUSTED)
        return crossed

    def _emit(self, kind: QuotaEventKind) -> None:
        event = QuotaEvent(
            kind=kind,
            used=self._state.units_used,
            limit=self._state.units_limit,
            at=self._now(),
        )
        self._events.append(event)
        log = self._logger.info if kind is QuotaEventKind.RESET else self._logger.warning
        log(str(kind), used=event.used, limit=event.limit)

    def _emit_threshold_events(self) -> None:
        crossed = self._crossed_kinds()
        for kind in (QuotaEventKind.WARNING, QuotaEventKind.CRITICAL, QuotaEventKind.EXHAUSTED):
            if kind in crossed and kind not in self._fired:
                self._fired.add(kind)
                self._emit(kind)

    @property
    def pending_events(self) -> list[QuotaEvent]:
        return list(self._events)

    def drain_events(self) -> list[QuotaEvent]:
        """Return and clear the events recorded since the last drain."""
        events, self._events = self._events, []
        return events

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def check_reset(self) -> bool:
        """Reset the budget if the reset boundary has passed.

        Returns:
            True if a reset happened.
        """
        now = self._now()
        if now < self._state.reset_at:
            return False

        self._state = QuotaState(
            units_used=0,
            units_limit=self._limit,
            reset_at=next_reset_at(now, self._tz),
            last_updated=now,
        )
        self._persist(self._state)
        self._fired.clear()
        self._emit(QuotaEventKind.RESET)
        return True

    async def _monitor_resets(self) -> None:
        while True:
            await asyncio.sleep(self._reset_check_interval)
            try:
                self.check_reset()
            except Exception as exc:
                self._logger.error(
                    "quota_reset_check_failed", error=str(exc), error_type=type(exc).__name__
                )

    def start(self) -> None:
        """Start the background reset check on the running event loop."""
        if self._monitor is None or self._monitor.done():
            self._monitor = asyncio.get_running_loop().create_task(self._monitor_resets())

    async def stop(self) -> None:
        if self._monitor is not None:
            self._monitor.cancel()
            try:
                await self._monitor
            except asyncio.CancelledError:
                pass
            self._monitor = None

    async def __aenter__(self) -> QuotaScheduler:
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Accounting
    # ------------------------------------------------------------------

    def _admit(self, op_type: str, cost: int) -> None:
        if cost > self._state.remaining:
            self._logger.warning(
                "quota_call_rejected",
                op_type=op_type,
                cost=cost,
                remaining=self._state.remaining,
            )
            raise QuotaExhaustedError(
                op_type=op_type,
                used=self._state.units_used,
                limit=self._state.units_limit,
                requested=cost,
            )

    def _debit(self, cost: int) -> None:
        self._set_used(min(self._state.units_limit, self._state.units_used + cost))
        self._emit_threshold_events()

    def sync_exhausted(self) -> None:
        """Mark the budget as fully used, matching the upstream's own accounting."""
        self._set_used(self._state.units_limit)
        self._emit_threshold_events()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _acquire_slot(self, priority: int) -> None:
        ticket = (priority, next(self._sequence))
        async with self._cond:
            heapq.heappush(self._waiting, ticket)
            try:
                await self._cond.wait_for(
                    lambda: self._waiting[0] == ticket and self._in_flight < self._max_concurrent
                )
            except BaseException:
                self._waiting.remove(ticket)
                heapq.heapify(self._waiting)
                self._cond.notify_all()
                raise
            heapq.heappop(self._waiting)
            self._in_flight += 1
            now = self._monotonic()
            dispatch_at = max(now, self._next_dispatch_at)
            self._next_dispatch_at = dispatch_at + self._min_interval
            self._cond.notify_all()

        delay = dispatch_at - now
        if delay > 0:
            try:
                await asyncio.sleep(delay)
            except BaseException:
                await self._release_slot()
                raise

    async def _release_slot(self) -> None:
        async with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    async def _dispatch(
        self,
        op_type: str,
        cost: int,
        priority: int,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        await self._acquire_slot(priority)
        try:
            # Budget may have moved while this call was queued.
            self._admit(op_type, cost)
            try:
                result = await fn()
            except QuotaExhaustedError:
                raise
            except Exception as exc:
                kind = classify_call_error(exc)
                self._logger.debug(
                    "metered_call_failed",
                    op_type=op_type,
                    kind=str(kind),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if kind is CallErrorKind.QUOTA:
                    self.sync_exhausted()
                    raise QuotaExhaustedError(
                        op_type=op_type,
                        used=self._state.units_used,
                        limit=self._state.units_limit,
                        requested=cost,
                    ) from exc
                raise
            self._debit(cost)
            return result
        finally:
            await self._release_slot()

    async def submit(
        self,
        op_type: str,
        fn: Callable[[], Awaitable[T]],
        *,
        cost: int | None = None,
        priority: int | None = None,
    ) -> T:
        """Run ``fn`` as a metered call of type ``op_type``.

        Args:
            op_type: Operation name, e.g. ``"playlistItems.list"``.
            fn: Zero-argument coroutine function performing the network call.
            cost: Units to debit. Defaults to the operation table.
            priority: Dispatch priority, lower first. Defaults to the operation table.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            QuotaExhaustedError: If the call does not fit in the remaining budget
                or the upstream reports its quota as exceeded.
        """
        units = OPERATION_COSTS.get(op_type, DEFAULT_COST) if cost is None else cost
        rank = OPERATION_PRIORITIES.get(op_type, DEFAULT_PRIORITY) if priority is None else priority
        if units < 0:
            raise ValueError("cost must be >= 0")

        self.check_reset()
        self._admit(op_type, units)

        def _retry_predicate(exc: BaseException, attempt: int) -> bool:
            return should_retry(classify_call_error(exc), attempt, self._max_attempts)

        retry_decorator = create_table_retry(
            self._retry_delays, self._max_attempts, _retry_predicate
        )

        @retry_decorator
        async def _metered_call() -> T:
            return await self._dispatch(op_type, units, rank, fn)

        return await _metered_call()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> QuotaStatus:
        used, limit = self._state.units_used, self._state.units_limit
        fraction = used / limit
        if fraction >= self._critical_threshold:
            level = QuotaLevel.CRITICAL
        elif fraction >= self._warning_threshold:
            level = QuotaLevel.WARNING
        else:
            level = QuotaLevel.NORMAL
        return QuotaStatus(
            used=used,
            limit=limit,
            remaining=self._state.remaining,
            percent=round(fraction * 100, 2),
            reset_at=self._state.reset_at,
            reset_in_seconds=max(0.0, (self._state.reset_at - self._now()).total_seconds()),
            level=level,
            queue_depth=len(self._waiting),
            in_flight=self._in_flight,
        )
