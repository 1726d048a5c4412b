from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from tuberag.core.models import CaptionTrack


@runtime_checkable
class CaptionProvider(Protocol):
    async def get_caption_tracks(self, video_id: str) -> list[CaptionTrack] | None:
        """Return the advertised caption tracks; None or [] when there are none."""
        ...

    async def get_transcript(self, video_id: str, track: CaptionTrack) -> Any:
        """Return the raw segment tree for ``track``.

        The shape of the tree depends on the provider; see
        ``tuberag.transcript.parse_segment_tree`` for the shapes understood.
        """
        ...
