"""Question answering over the indexed channels.

``QueryEngine.answer`` never raises: an empty index produces a fixed
"nothing found" answer and any error produces a degraded answer with the
error in ``debug.error``.
"""

from __future__ import annotations

from typing import Any

from tuberag.core.config import TubeRAGConfig
from tuberag.core.logging_config import Timer, get_logger
from tuberag.core.models import (
    ChunkRef,
    QueryDebug,
    QueryResponse,
    SearchResult,
    SourceRef,
    video_url,
)
from tuberag.core.protocols.embedding import EmbeddingProvider
from tuberag.core.protocols.generation import GenerationProvider
from tuberag.core.protocols.vector_backend import VectorBackend
from tuberag.core.provider_factory import (
    create_embedding_provider,
    create_generation_provider,
    create_vector_backend,
)
from tuberag.core.retry_config import RetryConfig
from tuberag.profiles import ProfileRegistry
from tuberag.vector_index import VectorIndex

logger = get_logger(__name__)

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information to answer your question. "
    "This could mean: 1) No channels are indexed yet, 2) Your question is outside "
    "the scope of indexed content, or 3) The knowledge base is empty."
)
ERROR_ANSWER = (
    "Sorry, I encountered an error processing your question. "
    "Please check the debug output for details."
)
NO_CONTEXT = "No relevant content found in knowledge base"
NO_SYSTEM_PROMPT = "No system prompt generated - no context available"
ERROR_CONTEXT = "ERROR: Could not retrieve context"
ERROR_PROMPT = "ERROR: Could not generate prompt"


def build_context(results: list[SearchResult]) -> str:
    """Numbered context block, one entry per retrieved chunk."""
    entries = []
    for number, result in enumerate(results, start=1):
        metadata = result.metadata
        entries.append(
            f'[{number}] From "{metadata.get("videoTitle", "")}" '
            f'({metadata.get("videoUrl", "")}):\n{metadata.get("content", "")}'
        )
    return "\n\n".join(entries)


def unique_sources(results: list[SearchResult]) -> list[SourceRef]:
    """One source per video id, in first-seen order."""
    seen: set[str] = set()
    sources: list[SourceRef] = []
    for result in results:
        video_id = str(result.metadata.get("videoId", ""))
        if video_id in seen:
            continue
        seen.add(video_id)
        sources.append(
            SourceRef(
                video_id=video_id,
                title=str(result.metadata.get("videoTitle", "")),
                url=str(result.metadata.get("videoUrl") or video_url(video_id)),
            )
        )
    return sources


class QueryEngine:
    """Args:
    embedder: Embedding provider for the question.
    index: Namespaced vector index to search.
    generator: Generation provider for the answer.
    profiles: Profile registry; built-ins only when omitted.
    max_tokens: Generation budget per answer.
    default_top_k: Results retrieved when ``answer`` is called without ``top_k``.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        generator: GenerationProvider,
        *,
        profiles: ProfileRegistry | None = None,
        max_tokens: int = 2500,
        default_top_k: int = 10,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self._generator = generator
        self._profiles = profiles or ProfileRegistry()
        self._max_tokens = max_tokens
        self._default_top_k = default_top_k

    @classmethod
    def from_config(
        cls,
        config: TubeRAGConfig | None = None,
        *,
        embedder: EmbeddingProvider | None = None,
        vector_backend: VectorBackend | None = None,
        generator: GenerationProvider | None = None,
        **kwargs: Any,
    ) -> QueryEngine:
        """Build an engine from ``config``; explicit providers win over the configured ones."""
        config = config or TubeRAGConfig()
        retry_config = RetryConfig.from_config(config)
        index = VectorIndex(
            vector_backend or create_vector_backend(config, retry_config),
            namespace=config.vector_namespace,
            batch_size=config.upsert_batch_size,
            overfetch_factor=config.query_overfetch_factor,
        )
        kwargs.setdefault("profiles", ProfileRegistry(config.custom_profiles_path))
        kwargs.setdefault("max_tokens", config.generation_max_tokens)
        kwargs.setdefault("default_top_k", config.retrieval_top_k)
        return cls(
            embedder or create_embedding_provider(config, retry_config),
            index,
            generator or create_generation_provider(config, retry_config),
            **kwargs,
        )

    @property
    def profiles(self) -> ProfileRegistry:
        return self._profiles

    async def answer(
        self,
        question: str,
        top_k: int | None = None,
        profile_id: str = "default",
        custom_instructions: str | None = None,
    ) -> QueryResponse:
        """Answer ``question`` from the indexed transcripts."""
        operation_logger = logger.bind(
            question=question[:100], profile_id=profile_id, operation="query"
        )
        operation_logger.info("query_started")
        limit = top_k or self._default_top_k
        debug = QueryDebug(
            question=question,
            profile_id=self._profiles.resolve_id(profile_id),
            context=ERROR_CONTEXT,
            system_prompt=ERROR_PROMPT,
            user_prompt=ERROR_PROMPT,
        )

        try:
            with Timer(operation_logger, "query_embed"):
                vectors = await self._embedder.embed([question])
                if not vectors or not vectors[0]:
                    raise ValueError("Embedding provider returned no vector for the question")

            with Timer(operation_logger, "query_retrieve") as timer:
                results = await self._index.query(vectors[0], limit)
                timer.complete(results_count=len(results))

            if not results:
                operation_logger.info("query_no_results")
                debug.context = NO_CONTEXT
                debug.system_prompt = NO_SYSTEM_PROMPT
                debug.user_prompt = f"Question: {question}"
                return QueryResponse(answer=NO_RESULTS_ANSWER, debug=debug)

            context = build_context(results)
            sources = unique_sources(results)
            chunks = [
                ChunkRef(
                    content=str(r.metadata.get("content", "")),
                    video_title=str(r.metadata.get("videoTitle", "")),
                    score=r.score,
                )
                for r in results
            ]
            debug.chunks_count = len(results)
            debug.context = context

            prompt = self._profiles.build_prompt(
                profile_id, context, question, custom_instructions
            )
            debug.system_prompt = prompt.system_prompt
            debug.user_prompt = prompt.user_prompt

            with Timer(operation_logger, "query_generate"):
                answer = await self._generator.complete(
                    prompt.system_prompt,
                    prompt.user_prompt,
                    prompt.temperature,
                    self._max_tokens,
                )

            operation_logger.info(
                "query_completed", sources_count=len(sources), chunks_count=len(chunks)
            )
            return QueryResponse(answer=answer, sources=sources, chunks=chunks, debug=debug)

        except Exception as e:
            operation_logger.error("query_failed", error=str(e), error_type=type(e).__name__)
            debug.error = str(e) or type(e).__name__
            return QueryResponse(answer=ERROR_ANSWER, debug=debug)
