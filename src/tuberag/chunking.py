"""Character-based transcript chunking and per-chunk embedding."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from tuberag.core.exceptions import ConfigurationError, ProviderError
from tuberag.core.logging_config import get_logger
from tuberag.core.models import Chunk, Video, VectorRecord
from tuberag.core.protocols.embedding import EmbeddingProvider

logger = get_logger(__name__)

# Paragraph, line, sentence, clause, word, character.
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", ", ", " ", "")


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


def _merge_pieces(pieces: list[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    """Greedily pack pieces into chunks, carrying a tail of up to ``chunk_overlap`` chars."""
    chunks: list[str] = []
    current: list[str] = []
    total = 0
    for piece in pieces:
        if current and total + len(piece) > chunk_size:
            text = "".join(current).strip()
            if text:
                chunks.append(text)
            # Drop from the front until what is left fits as overlap.
            while current and (total > chunk_overlap or total + len(piece) > chunk_size):
                total -= len(current.pop(0))
        current.append(piece)
        total += len(piece)

    text = "".join(current).strip()
    if text:
        chunks.append(text)
    return chunks


def split_text(
    text: str,
    chunk_size: int = 500,
    chunk_overlap: int = 100,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Split ``text`` into overlapping chunks of at most ``chunk_size`` characters.

    The largest separator present in the text is tried first; pieces that are
    still too long are split again with the next separator.
    """
    separator = separators[-1] if separators else ""
    remaining: Sequence[str] = ()
    for position, candidate in enumerate(separators):
        if candidate == "" or candidate in text:
            separator = candidate
            remaining = separators[position + 1 :]
            break

    chunks: list[str] = []
    fitting: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if len(piece) <= chunk_size:
            fitting.append(piece)
            continue
        if fitting:
            chunks.extend(_merge_pieces(fitting, chunk_size, chunk_overlap))
            fitting = []
        if remaining:
            chunks.extend(split_text(piece, chunk_size, chunk_overlap, remaining))
        else:
            chunks.append(piece.strip())
    if fitting:
        chunks.extend(_merge_pieces(fitting, chunk_size, chunk_overlap))
    return [chunk for chunk in chunks if chunk]


def record_id(video_id: str, index: int) -> str:
    return f"{video_id}_chunk_{index}"


class ChunkingEmbedder:
    """Split transcripts into chunks and embed them one at a time.

    Args:
        provider: Embedding provider.
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared by neighbouring chunks.
        embedding_dimension: Expected vector length; None skips the check.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        chunk_size: int = 500,
        chunk_overlap: int = 100,
        embedding_dimension: int | None = None,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= chunk_overlap < chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be in [0, chunk_size={chunk_size})"
            )
        self._provider = provider
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._embedding_dimension = embedding_dimension
        self._separators = tuple(separators)
        self._logger = logger.bind(component="chunking_embedder")

    def chunk(self, text: str, metadata: dict[str, Any] | None = None) -> list[Chunk]:
        """Split ``text`` and stamp every chunk with its index and the total count."""
        pieces = split_text(text, self._chunk_size, self._chunk_overlap, self._separators)
        parent = str((metadata or {}).get("videoId", ""))
        return [
            Chunk(
                parent_video_id=parent,
                index=index,
                total_chunks=len(pieces),
                text=piece,
                metadata=dict(metadata or {}),
            )
            for index, piece in enumerate(pieces)
        ]

    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            ProviderError: If the provider fails or returns an unusable vector.
        """
        try:
            vectors = await self._provider.embed([text])
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Embedding failed: {e}", provider="embedding", retryable=False
            ) from e

        vector = vectors[0] if vectors else []
        if not vector:
            raise ProviderError("Embedding provider returned an empty vector", provider="embedding")
        if self._embedding_dimension is not None and len(vector) != self._embedding_dimension:
            raise ProviderError(
                f"Embedding has {len(vector)} dimensions, expected {self._embedding_dimension}",
                provider="embedding",
            )
        return vector

    async def process_video(self, video: Video, text: str) -> list[VectorRecord]:
        """Chunk and embed one transcript.

        Chunks are embedded sequentially; the first embedding failure aborts
        the whole video so that no partial chunk set gets indexed.
        """
        base_metadata = {
            "videoId": video.video_id,
            "videoTitle": video.title,
            "videoUrl": video.url,
            "publishedAt": video.published_at or "",
        }
        chunks = self.chunk(text, base_metadata)
        operation_logger = self._logger.bind(video_id=video.video_id, chunks=len(chunks))
        operation_logger.debug("video_chunked")

        records: list[VectorRecord] = []
        for chunk in chunks:
            vector = await self.embed(chunk.text)
            records.append(
                VectorRecord(
                    id=record_id(video.video_id, chunk.index),
                    vector=vector,
                    metadata={
                        **chunk.metadata,
                        "chunkIndex": chunk.index,
                        "totalChunks": chunk.total_chunks,
                        "content": chunk.text,
                    },
                )
            )

        operation_logger.info("video_embedded", records=len(records))
        return records
