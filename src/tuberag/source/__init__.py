"""Catalog and caption providers for YouTube."""

from __future__ import annotations


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "YouTubeDataAPI":
        from tuberag.source.youtube_api import YouTubeDataAPI

        return YouTubeDataAPI
    if name == "YouTubeCaptionProvider":
        try:
            from tuberag.source.captions import YouTubeCaptionProvider

            return YouTubeCaptionProvider
        except ImportError:
            raise ImportError(
                "YouTubeCaptionProvider requires 'youtube-transcript-api'. "
                "Install with: pip install youtube-transcript-api"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "YouTubeCaptionProvider",
    "YouTubeDataAPI",
]
