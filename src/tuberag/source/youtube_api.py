"""YouTube Data API v3 catalog provider.

Each method performs exactly one HTTP request; quota metering and retries
belong to ``QuotaScheduler`` and are applied by ``CatalogEnumerator``.
"""

from __future__ import annotations

from typing import Any

import httpx

from tuberag.core.exceptions import ProviderError
from tuberag.core.logging_config import get_logger
from tuberag.core.models import CatalogPage, ChannelInfo, Video, VideoDetails
from tuberag.core.protocols.catalog import CatalogProvider

logger = get_logger(__name__)

YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"


class YouTubeAPIError(ProviderError):
    """A non-2xx response from the Data API.

    ``reason`` is the first ``error.errors[].reason`` of the body, e.g.
    ``quotaExceeded``.
    """

    def __init__(self, message: str, status_code: int, reason: str | None = None) -> None:
        super().__init__(
            message,
            provider="youtube",
            retryable=status_code == 429 or status_code >= 500,
        )
        self.status_code = status_code
        self.reason = reason


def _best_thumbnail(snippet: dict[str, Any]) -> str | None:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeDataAPI:
    """Raw ``CatalogProvider`` over the YouTube Data API v3.

    Args:
        api_key: Data API key.
        client: Optional shared ``httpx.AsyncClient``; one is created otherwise.
        timeout: Request timeout in seconds for a created client.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = YOUTUBE_API_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._logger = logger.bind(provider="youtube_data_api")

    async def _get(self, resource: str, params: dict[str, Any]) -> dict[str, Any]:
        query = {k: v for k, v in params.items() if v is not None}
        query["key"] = self._api_key
        try:
            response = await self._client.get(f"{self._base_url}/{resource}", params=query)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"YouTube {resource} request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ConnectionError(f"YouTube {resource} request failed: {e}") from e

        if response.status_code >= 400:
            message, reason = self._parse_error(response)
            self._logger.debug(
                "youtube_api_error",
                resource=resource,
                status_code=response.status_code,
                reason=reason,
            )
            raise YouTubeAPIError(
                f"YouTube {resource} returned {response.status_code}: {message}",
                status_code=response.status_code,
                reason=reason,
            )
        return response.json()

    @staticmethod
    def _parse_error(response: httpx.Response) -> tuple[str, str | None]:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200], None
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return response.text[:200] or response.reason_phrase, None
        errors = error.get("errors")
        first = errors[0] if isinstance(errors, list) and errors else {}
        reason = first.get("reason") if isinstance(first, dict) else None
        return str(error.get("message") or response.reason_phrase), reason

    async def search_channel(self, query: str) -> str | None:
        data = await self._get(
            "search", {"part": "snippet", "type": "channel", "q": query, "maxResults": 1}
        )
        items = data.get("items") or []
        if not items:
            return None
        first = items[0]
        return (first.get("id") or {}).get("channelId") or (first.get("snippet") or {}).get(
            "channelId"
        )

    async def get_channel(self, channel_id: str) -> ChannelInfo | None:
        data = await self._get("channels", {"part": "snippet,contentDetails", "id": channel_id})
        items = data.get("items") or []
        if not items:
            return None
        item = items[0]
        snippet = item.get("snippet") or {}
        uploads = ((item.get("contentDetails") or {}).get("relatedPlaylists") or {}).get(
            "uploads"
        )
        if not uploads:
            return None
        return ChannelInfo(
            channel_id=item.get("id", channel_id),
            name=snippet.get("title", ""),
            description=snippet.get("description", ""),
            uploads_playlist_id=uploads,
        )

    async def list_playlist_page(
        self, playlist_id: str, page_token: str | None, page_size: int
    ) -> CatalogPage:
        data = await self._get(
            "playlistItems",
            {
                "part": "snippet",
                "playlistId": playlist_id,
                "maxResults": page_size,
                "pageToken": page_token,
            },
        )
        videos: list[Video] = []
        for item in data.get("items") or []:
            snippet = item.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId")
            if not video_id:
                continue
            videos.append(
                Video(
                    video_id=video_id,
                    title=snippet.get("title", ""),
                    published_at=snippet.get("publishedAt"),
                    description=snippet.get("description", ""),
                    thumbnail=_best_thumbnail(snippet),
                )
            )
        return CatalogPage(items=videos, next_page_token=data.get("nextPageToken"))

    async def get_videos(self, video_ids: list[str]) -> dict[str, VideoDetails]:
        if not video_ids:
            return {}
        data = await self._get(
            "videos",
            {"part": "snippet,contentDetails,statistics", "id": ",".join(video_ids)},
        )
        details: dict[str, VideoDetails] = {}
        for item in data.get("items") or []:
            snippet = item.get("snippet") or {}
            statistics = item.get("statistics") or {}
            details[item["id"]] = VideoDetails(
                title=snippet.get("title", ""),
                description=snippet.get("description", ""),
                published_at=snippet.get("publishedAt"),
                duration=(item.get("contentDetails") or {}).get("duration"),
                view_count=int(statistics.get("viewCount", 0) or 0),
                like_count=int(statistics.get("likeCount", 0) or 0),
                comment_count=int(statistics.get("commentCount", 0) or 0),
                thumbnail=_best_thumbnail(snippet),
            )
        return details

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> YouTubeDataAPI:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


# Verify protocol conformance at runtime
assert issubclass(YouTubeDataAPI, CatalogProvider)
