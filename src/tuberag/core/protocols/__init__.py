"""Capability interfaces consumed by the tuberag core."""

from tuberag.core.protocols.captions import CaptionProvider
from tuberag.core.protocols.catalog import CatalogProvider
from tuberag.core.protocols.embedding import EmbeddingProvider
from tuberag.core.protocols.generation import GenerationProvider
from tuberag.core.protocols.quota_store import QuotaStore
from tuberag.core.protocols.vector_backend import VectorBackend

__all__ = [
    "CaptionProvider",
    "CatalogProvider",
    "EmbeddingProvider",
    "GenerationProvider",
    "QuotaStore",
    "VectorBackend",
]
