"""Vector backends."""

from __future__ import annotations


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "ChromaDBVectorBackend":
        try:
            from tuberag.store.chromadb import ChromaDBVectorBackend

            return ChromaDBVectorBackend
        except ImportError:
            raise ImportError(
                "ChromaDBVectorBackend requires 'chromadb'. Install with: pip install chromadb"
            ) from None
    if name == "PineconeVectorBackend":
        try:
            from tuberag.store.pinecone import PineconeVectorBackend

            return PineconeVectorBackend
        except ImportError:
            raise ImportError(
                "PineconeVectorBackend requires 'pinecone'. "
                "Install with: pip install tuberag[pinecone]"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "ChromaDBVectorBackend",
    "PineconeVectorBackend",
]
