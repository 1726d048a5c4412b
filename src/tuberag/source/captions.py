"""Caption provider backed by ``youtube-transcript-api``.

The library is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any

from youtube_transcript_api import YouTubeTranscriptApi

from tuberag.core.logging_config import get_logger
from tuberag.core.models import CaptionTrack
from tuberag.core.protocols.captions import CaptionProvider

logger = get_logger(__name__)


class YouTubeCaptionProvider:
    """List and download caption tracks without using Data API quota.

    Args:
        api: Optional ``YouTubeTranscriptApi`` instance, e.g. one built with a
            proxy config. A default instance is created otherwise.
    """

    def __init__(self, api: Any | None = None) -> None:
        self._api = api or YouTubeTranscriptApi()
        self._logger = logger.bind(provider="youtube_captions")

    async def get_caption_tracks(self, video_id: str) -> list[CaptionTrack] | None:
        transcript_list = await asyncio.to_thread(self._api.list, video_id)
        tracks = [
            CaptionTrack(
                language_code=transcript.language_code,
                name=transcript.language,
                is_generated=transcript.is_generated,
                handle=transcript,
            )
            for transcript in transcript_list
        ]
        self._logger.debug("caption_tracks_listed", video_id=video_id, tracks=len(tracks))
        return tracks

    async def get_transcript(self, video_id: str, track: CaptionTrack) -> Any:
        """Fetch ``track`` and return its snippets as a flat list of dicts."""
        if track.handle is None:
            fetched = await asyncio.to_thread(
                self._api.fetch, video_id, languages=[track.language_code]
            )
        else:
            fetched = await asyncio.to_thread(track.handle.fetch)
        return fetched.to_raw_data()


# Verify protocol conformance at runtime
assert issubclass(YouTubeCaptionProvider, CaptionProvider)
