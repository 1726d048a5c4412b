from __future__ import annotations

from typing import Protocol, runtime_checkable

from tuberag.core.models import CatalogPage, ChannelInfo, VideoDetails


@runtime_checkable
class CatalogProvider(Protocol):
    """Raw access to a video catalog.

    Each method maps to exactly one metered call; metering and retries are
    applied by ``CatalogEnumerator`` through the quota scheduler.
    """

    async def search_channel(self, query: str) -> str | None:
        """Return the id of the best channel match, or None."""
        ...

    async def get_channel(self, channel_id: str) -> ChannelInfo | None:
        """Return channel info, or None when the channel does not exist."""
        ...

    async def list_playlist_page(
        self, playlist_id: str, page_token: str | None, page_size: int
    ) -> CatalogPage: ...

    async def get_videos(self, video_ids: list[str]) -> dict[str, VideoDetails]: ...
