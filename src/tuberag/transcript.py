"""Caption retrieval and normalization.

``TranscriptFetcher.fetch`` turns one video id into a ``TranscriptResult``:
either the normalized transcript text or a failure with a category from
``FailureCategory``. Callers rely on the category to decide about retries
and to aggregate failures for users, so classification is a pure function
of the error message.

Caption providers return segment trees in several shapes. Each known shape
has its own variant and locator below; anything else is ``Unrecognized``.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tuberag.core.logging_config import get_logger
from tuberag.core.models import (
    CaptionTrack,
    FailureCategory,
    TranscriptFailure,
    TranscriptResult,
    TranscriptSuccess,
)
from tuberag.core.protocols.captions import CaptionProvider
from tuberag.core.retry_config import create_linear_retry

logger = get_logger(__name__)

# Checked in order; the first family with a matching keyword wins.
_KEYWORD_FAMILIES: tuple[tuple[FailureCategory, tuple[str, ...]], ...] = (
    (FailureCategory.CAPTIONS_DISABLED, ("disabled",)),
    (
        FailureCategory.RATE_LIMIT,
        ("quota", "rate limit", "rate-limit", "too many requests", "429", "blocked", "blocking"),
    ),
    (
        FailureCategory.TRANSIENT_ERROR,
        (
            "timeout",
            "timed out",
            "network",
            "connection",
            "econnreset",
            "etimedout",
            "socket",
            "temporarily",
            "service unavailable",
            "bad gateway",
            "502",
            "503",
        ),
    ),
    (
        FailureCategory.PRIVATE_OR_RESTRICTED,
        (
            "private",
            "unavailable",
            "age-restricted",
            "age restricted",
            "agerestricted",
            "members-only",
            "members only",
            "sign in",
            "login",
            "unplayable",
        ),
    ),
    (
        FailureCategory.STRUCTURE_UNSUPPORTED,
        ("unsupported", "unrecognized", "structure", "parse", "cannot read propert"),
    ),
    (FailureCategory.NO_CAPTIONS, ("no transcript", "no caption", "notranscriptfound")),
)

_WHITESPACE_RE = re.compile(r"\s+")


def classify_error(message: str) -> FailureCategory:
    """Map a raw error message to a failure category."""
    lowered = message.lower()
    for category, keywords in _KEYWORD_FAMILIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return FailureCategory.UNKNOWN


def should_retry(category: FailureCategory, attempt: int, max_attempts: int) -> bool:
    """Only transient errors are retried, and only while attempts remain."""
    return category is FailureCategory.TRANSIENT_ERROR and attempt < max_attempts


def describe_exception(exc: BaseException) -> str:
    # Some caption libraries carry a short human cause next to a long message.
    cause = getattr(exc, "cause", None)
    text = cause if isinstance(cause, str) and cause else str(exc)
    return f"{type(exc).__name__}: {text}".strip()


# ---------------------------------------------------------------------------
# Segment tree shapes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class InitialSegmentsBody:
    """``{"initial_segments": [...]}``"""

    segments: Sequence[Any]


@dataclass(frozen=True, slots=True)
class WrappedSegmentList:
    """``[{"transcript_segment_list": {"initial_segments": [...]}}, ...]``"""

    segments: Sequence[Any]


@dataclass(frozen=True, slots=True)
class SegmentListBody:
    """``{"transcript_segment_list": {"initial_segments": [...]}}``"""

    segments: Sequence[Any]


@dataclass(frozen=True, slots=True)
class FlatSnippetList:
    """``[{"text": ..., "start": ..., "duration": ...}, ...]``"""

    segments: Sequence[Any]


@dataclass(frozen=True, slots=True)
class Unrecognized:
    raw_type: str
    keys: list[str] = field(default_factory=list)


SegmentTree = InitialSegmentsBody | WrappedSegmentList | SegmentListBody | FlatSnippetList | Unrecognized


def _field(node: Any, name: str) -> Any:
    if isinstance(node, Mapping):
        return node.get(name)
    return getattr(node, name, None)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str | bytes)


def _locate_initial_segments(raw: Any) -> Sequence[Any] | None:
    if _is_sequence(raw):
        return None
    segments = _field(raw, "initial_segments")
    return segments if _is_sequence(segments) else None


def _locate_wrapped_segment_list(raw: Any) -> Sequence[Any] | None:
    if not _is_sequence(raw) or not raw:
        return None
    segments = _field(_field(raw[0], "transcript_segment_list"), "initial_segments")
    return segments if _is_sequence(segments) else None


def _locate_segment_list_body(raw: Any) -> Sequence[Any] | None:
    if _is_sequence(raw):
        return None
    segments = _field(_field(raw, "transcript_segment_list"), "initial_segments")
    return segments if _is_sequence(segments) else None


def _locate_flat_snippets(raw: Any) -> Sequence[Any] | None:
    if not _is_sequence(raw) or not raw:
        return None
    if all(isinstance(item, str) or _field(item, "text") is not None for item in raw):
        return raw
    return None


_SHAPES = (
    (_locate_initial_segments, InitialSegmentsBody),
    (_locate_wrapped_segment_list, WrappedSegmentList),
    (_locate_segment_list_body, SegmentListBody),
    (_locate_flat_snippets, FlatSnippetList),
)


def parse_segment_tree(raw: Any) -> SegmentTree:
    """Identify which known shape ``raw`` has."""
    if raw is not None:
        for locate, variant in _SHAPES:
            segments = locate(raw)
            if segments is not None:
                return variant(segments)
    keys = sorted(str(k) for k in raw) if isinstance(raw, Mapping) else []
    return Unrecognized(raw_type=type(raw).__name__, keys=keys)


def segment_text(segment: Any) -> str:
    """Text of one segment: ``snippet.text``, else ``text``, else the segment if it is a string."""
    if isinstance(segment, str):
        return segment
    snippet_text = _field(_field(segment, "snippet"), "text")
    if isinstance(snippet_text, str):
        return snippet_text
    text = _field(segment, "text")
    if isinstance(text, str):
        return text
    return ""


def extract_segment_texts(tree: SegmentTree) -> list[str]:
    """Non-empty segment texts of a recognized tree, in document order."""
    if isinstance(tree, Unrecognized):
        return []
    texts = (segment_text(segment) for segment in tree.segments)
    return [text for text in texts if text.strip()]


def normalize_text(texts: Iterable[str]) -> str:
    return _WHITESPACE_RE.sub(" ", " ".join(texts)).strip()


# ---------------------------------------------------------------------------
# Failure aggregation
# ---------------------------------------------------------------------------
def summarize_failures(categories: Iterable[FailureCategory]) -> dict[FailureCategory, int]:
    """Count failures per category, most frequent first."""
    return dict(Counter(categories).most_common())


def describe_failures(categories: Iterable[FailureCategory]) -> str:
    """Human summary such as ``"3 failed: no captions, 1 failed: private or restricted"``."""
    parts = [
        f"{count} failed: {category.value.lower().replace('_', ' ')}"
        for category, count in summarize_failures(categories).items()
    ]
    return ", ".join(parts)


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------
class TranscriptFetcher:
    """Fetch and normalize one video's transcript.

    Args:
        provider: Caption provider.
        max_attempts: Attempts for the transcript body, including the first.
        retry_base_seconds: Linear backoff unit; retry ``n`` waits ``n x base``.
        min_chars: Transcripts shorter than this are reported as ``TOO_SHORT``.
        languages: Preferred caption languages, most preferred first.
    """

    def __init__(
        self,
        provider: CaptionProvider,
        *,
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        min_chars: int = 10,
        languages: Sequence[str] = ("en",),
    ) -> None:
        self._provider = provider
        self._max_attempts = max(1, max_attempts)
        self._retry_base_seconds = retry_base_seconds
        self._min_chars = min_chars
        self._languages = [language.lower() for language in languages]
        self._logger = logger.bind(component="transcript_fetcher")

    def select_track(self, tracks: Sequence[CaptionTrack]) -> CaptionTrack:
        """Prefer manual tracks in a preferred language, then generated ones, then the first."""

        def rank(track: CaptionTrack) -> tuple[int, int]:
            code = track.language_code.lower().split("-")[0]
            language_rank = (
                self._languages.index(code) if code in self._languages else len(self._languages)
            )
            return (language_rank, 1 if track.is_generated else 0)

        return min(tracks, key=rank)

    async def _materialize(self, video_id: str, track: CaptionTrack) -> Any:
        def _retry_predicate(exc: BaseException, attempt: int) -> bool:
            category = classify_error(describe_exception(exc))
            return should_retry(category, attempt, self._max_attempts)

        retry_decorator = create_linear_retry(
            self._retry_base_seconds, self._max_attempts, _retry_predicate
        )

        @retry_decorator
        async def _get_transcript() -> Any:
            return await self._provider.get_transcript(video_id, track)

        return await _get_transcript()

    def _failure(
        self, video_id: str, category: FailureCategory, details: str
    ) -> TranscriptFailure:
        self._logger.info(
            "transcript_failed", video_id=video_id, category=str(category), details=details[:200]
        )
        return TranscriptFailure(video_id=video_id, category=category, details=details)

    async def fetch(self, video_id: str) -> TranscriptResult:
        """Fetch the transcript of ``video_id``. Provider errors become failures."""
        try:
            tracks = await self._provider.get_caption_tracks(video_id)
        except Exception as exc:
            message = describe_exception(exc)
            return self._failure(video_id, classify_error(message), message)

        if not tracks:
            return self._failure(
                video_id, FailureCategory.NO_CAPTIONS, "No caption tracks available"
            )

        track = self.select_track(tracks)
        try:
            raw = await self._materialize(video_id, track)
        except Exception as exc:
            message = describe_exception(exc)
            return self._failure(video_id, classify_error(message), message)

        tree = parse_segment_tree(raw)
        if isinstance(tree, Unrecognized):
            return self._failure(
                video_id,
                FailureCategory.STRUCTURE_UNSUPPORTED,
                f"Unrecognized transcript structure: {tree.raw_type} {tree.keys}".strip(),
            )

        texts = extract_segment_texts(tree)
        text = normalize_text(texts)
        if len(text) < self._min_chars:
            return self._failure(
                video_id,
                FailureCategory.TOO_SHORT,
                f"Transcript has {len(text)} characters, minimum is {self._min_chars}",
            )

        self._logger.debug(
            "transcript_fetched",
            video_id=video_id,
            shape=type(tree).__name__,
            segments=len(texts),
            characters=len(text),
        )
        return TranscriptSuccess(video_id=video_id, text=text, segment_count=len(texts))
