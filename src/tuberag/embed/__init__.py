"""Embedding providers."""

from __future__ import annotations


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "OpenAIEmbedder":
        try:
            from tuberag.embed.openai import OpenAIEmbeddingProvider

            return OpenAIEmbeddingProvider
        except ImportError:
            raise ImportError(
                "OpenAIEmbedder requires 'openai'. Install with: pip install openai"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "OpenAIEmbedder",
]
