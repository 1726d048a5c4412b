from __future__ import annotations

from tuberag.core.config import TubeRAGConfig
from tuberag.core.exceptions import ConfigurationError
from tuberag.core.protocols import (
    CaptionProvider,
    CatalogProvider,
    EmbeddingProvider,
    GenerationProvider,
    VectorBackend,
)
from tuberag.core.retry_config import RetryConfig


def create_catalog_provider(config: TubeRAGConfig) -> CatalogProvider:
    if not config.youtube_api_key:
        raise ConfigurationError(
            "YouTube API key is required but not set. "
            "Please set the TUBERAG_YOUTUBE_API_KEY environment variable."
        )
    from tuberag.source.youtube_api import YouTubeDataAPI

    return YouTubeDataAPI(config.youtube_api_key)


def create_caption_provider(config: TubeRAGConfig) -> CaptionProvider:
    from tuberag.source.captions import YouTubeCaptionProvider

    return YouTubeCaptionProvider()


def create_embedding_provider(
    config: TubeRAGConfig, retry_config: RetryConfig
) -> EmbeddingProvider:
    provider_name = config.embedding_provider.lower()
    if provider_name != "openai":
        raise ConfigurationError(f"Unknown embedding provider: {config.embedding_provider}")

    from tuberag.embed.openai import OpenAIEmbeddingProvider

    # Only the text-embedding-3 family accepts a shortened output size.
    dimensions = config.embedding_dimension
    if not config.embedding_model.startswith("text-embedding-3"):
        dimensions = None

    return OpenAIEmbeddingProvider(
        api_key=config.openai_api_key or None,
        model=config.embedding_model,
        dimensions=dimensions,
        retry_config=retry_config,
    )


def create_generation_provider(
    config: TubeRAGConfig, retry_config: RetryConfig
) -> GenerationProvider:
    provider_name = config.generation_provider.lower()

    if provider_name == "anthropic":
        try:
            from tuberag.generate.anthropic import AnthropicGenerator
        except ImportError as e:
            raise ImportError(
                "anthropic generation requires 'anthropic' package. "
                "Install with: pip install tuberag[anthropic]"
            ) from e
        return AnthropicGenerator(
            api_key=config.anthropic_api_key or None,
            model=config.get_generation_model(),
            retry_config=retry_config,
        )
    if provider_name != "openai":
        raise ConfigurationError(f"Unknown generation provider: {config.generation_provider}")

    from tuberag.generate.openai import OpenAIGenerator

    return OpenAIGenerator(
        api_key=config.openai_api_key or None,
        model=config.get_generation_model(),
        retry_config=retry_config,
    )


def create_vector_backend(config: TubeRAGConfig, retry_config: RetryConfig) -> VectorBackend:
    provider_name = config.vector_store_provider.lower()

    if provider_name == "pinecone":
        try:
            from tuberag.store.pinecone import PineconeVectorBackend

            return PineconeVectorBackend(
                api_key=config.pinecone_api_key or None,
                index_name=config.pinecone_index_name,
                retry_config=retry_config,
            )
        except ImportError as e:
            raise ImportError(
                "pinecone vector store requires 'pinecone' package. "
                "Install with: pip install tuberag[pinecone]"
            ) from e
    if provider_name != "chromadb":
        raise ConfigurationError(f"Unknown vector store provider: {config.vector_store_provider}")

    from tuberag.store.chromadb import ChromaDBVectorBackend

    return ChromaDBVectorBackend(
        persist_directory=config.chromadb_persist_directory,
        collection_name=config.chromadb_collection_name,
        retry_config=retry_config,
    )
