"""Channel catalog enumeration over a metered catalog provider."""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlparse

from tuberag.core.exceptions import ChannelNotFoundError, QuotaExhaustedError
from tuberag.core.logging_config import get_logger
from tuberag.core.models import ChannelInfo, Video, VideoDetails
from tuberag.core.protocols.catalog import CatalogProvider
from tuberag.core.quota import QuotaScheduler

logger = get_logger(__name__)

_CHANNEL_ID_RE = re.compile(r"^UC[A-Za-z0-9_-]{22}$")
_CHANNEL_PATH_RE = re.compile(r"/channel/(UC[A-Za-z0-9_-]{22})")
_DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")


def looks_like_channel_id(identifier: str) -> bool:
    """True for canonical channel ids: ``UC`` followed by 22 id characters."""
    return bool(_CHANNEL_ID_RE.match(identifier))


def clean_identifier(identifier: str) -> str:
    """Best-effort reduction of a handle, URL or name to a lookup key.

    ``https://youtube.com/channel/UC...`` yields the embedded id;
    ``https://youtube.com/@handle`` and ``@handle`` yield ``handle``.
    """
    value = identifier.strip()
    match = _CHANNEL_PATH_RE.search(value)
    if match:
        return match.group(1)
    if "://" in value or value.startswith(("youtube.com", "www.youtube.com")):
        parsed = urlparse(value if "://" in value else f"https://{value}")
        segments = [s for s in parsed.path.split("/") if s]
        for position, segment in enumerate(segments):
            if segment.startswith("@"):
                value = segment
                break
            if segment in ("c", "user") and position + 1 < len(segments):
                value = segments[position + 1]
                break
        else:
            if segments:
                value = segments[0]
    return value.lstrip("@")


def parse_duration(duration: str | None) -> int | None:
    """Parse an ISO-8601 duration such as ``PT1H2M3S`` into seconds.

    Returns None for missing or malformed values.
    """
    if not duration:
        return None
    match = _DURATION_RE.match(duration.strip())
    if not match or duration.strip() in ("P", "PT"):
        return None
    days, hours, minutes, seconds = (int(group or 0) for group in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def is_short(duration: str | None, threshold_seconds: int = 60) -> bool:
    """Whether a video counts as a short.

    A duration that cannot be parsed is never short, so ambiguous videos are
    kept rather than silently dropped.
    """
    seconds = parse_duration(duration)
    if seconds is None:
        return False
    return seconds < threshold_seconds


class CatalogEnumerator:
    """Resolve channels and enumerate their videos through the quota scheduler.

    Args:
        provider: Raw catalog provider (e.g. the YouTube Data API).
        scheduler: Quota scheduler metering every provider call.
        page_size: Items per playlist page.
        metadata_batch_size: Ids per metadata lookup.
    """

    def __init__(
        self,
        provider: CatalogProvider,
        scheduler: QuotaScheduler,
        *,
        page_size: int = 50,
        metadata_batch_size: int = 50,
    ) -> None:
        self._provider = provider
        self._scheduler = scheduler
        self._page_size = page_size
        self._metadata_batch_size = metadata_batch_size
        self._logger = logger.bind(component="catalog")

    @property
    def provider(self) -> CatalogProvider:
        return self._provider

    async def resolve_channel(self, identifier: str) -> str:
        """Resolve a channel id, handle, URL or name to a channel id.

        When the lookup fails or finds nothing, the cleaned identifier is
        returned instead and the run carries on with it.

        Raises:
            QuotaExhaustedError: The one failure that is not absorbed. The
                fallback id would only reach ``channels.list``, which the
                scheduler refuses for the same reason, so the run stops here
                with the quota named as its cause.
        """
        raw = identifier.strip()
        if looks_like_channel_id(raw):
            return raw

        cleaned = clean_identifier(raw)
        if looks_like_channel_id(cleaned):
            return cleaned

        try:
            found = await self._scheduler.submit(
                "search.list", lambda: self._provider.search_channel(cleaned)
            )
        except QuotaExhaustedError:
            raise
        except Exception as exc:
            self._logger.warning(
                "channel_resolve_failed",
                identifier=identifier,
                fallback=cleaned,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return cleaned

        if not found:
            self._logger.warning("channel_resolve_no_match", identifier=identifier)
            return cleaned
        self._logger.info("channel_resolved", identifier=identifier, channel_id=found)
        return found

    async def get_channel_info(self, channel_id: str) -> ChannelInfo:
        """Fetch channel name, description and the uploads playlist.

        Raises:
            ChannelNotFoundError: If the provider has no such channel.
        """
        info = await self._scheduler.submit(
            "channels.list", lambda: self._provider.get_channel(channel_id)
        )
        if info is None:
            raise ChannelNotFoundError(channel_id)
        return info

    async def list_videos(self, channel_id: str, info: ChannelInfo | None = None) -> list[Video]:
        """Page through the channel's uploads until no page token remains."""
        if info is None:
            info = await self.get_channel_info(channel_id)

        videos: list[Video] = []
        page_token: str | None = None
        pages = 0
        while True:
            token = page_token
            page = await self._scheduler.submit(
                "playlistItems.list",
                lambda: self._provider.list_playlist_page(
                    info.uploads_playlist_id, token, self._page_size
                ),
            )
            pages += 1
            videos.extend(page.items)
            page_token = page.next_page_token
            if not page_token:
                break

        self._logger.info(
            "videos_listed", channel_id=channel_id, videos=len(videos), pages=pages
        )
        return videos

    async def get_metadata_batch(self, video_ids: list[str]) -> dict[str, VideoDetails]:
        """Fetch metadata for ``video_ids``, one metered call per batch."""
        metadata: dict[str, VideoDetails] = {}
        size = self._metadata_batch_size
        for start in range(0, len(video_ids), size):
            batch = video_ids[start : start + size]
            metadata.update(
                await self._scheduler.submit(
                    "videos.list", lambda batch=batch: self._provider.get_videos(batch)
                )
            )
        return metadata

    @staticmethod
    def enrich(videos: Iterable[Video], metadata: dict[str, VideoDetails]) -> list[Video]:
        """Return copies of ``videos`` carrying duration and details from ``metadata``."""
        enriched: list[Video] = []
        for video in videos:
            details = metadata.get(video.video_id)
            if details is None:
                enriched.append(video)
                continue
            enriched.append(
                video.model_copy(
                    update={
                        "title": video.title or details.title,
                        "published_at": video.published_at or details.published_at,
                        "duration_seconds": parse_duration(details.duration) or 0,
                        "description": details.description or video.description,
                        "thumbnail": details.thumbnail or video.thumbnail,
                    }
                )
            )
        return enriched
