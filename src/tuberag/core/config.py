"""Configuration management for tuberag using pydantic-settings."""

from __future__ import annotations

from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TubeRAGConfig(BaseSettings):
    """tuberag configuration with environment variable support.

    All settings use the TUBERAG_ env prefix and may also come from a
    ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUBERAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- Provider Selection --
    embedding_provider: str = "openai"
    generation_provider: str = "openai"
    vector_store_provider: str = "chromadb"

    # -- API Keys --
    youtube_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    pinecone_api_key: str = ""

    # -- Vector Store Settings --
    vector_namespace: str = ""
    chromadb_persist_directory: str = "./chroma_db"
    chromadb_collection_name: str = "tuberag"
    pinecone_index_name: str = "tuberag"
    upsert_batch_size: int = Field(default=100, ge=1)
    query_overfetch_factor: int = Field(default=3, ge=1)

    # -- Database and Storage --
    database_path: str = "tuberag.db"
    custom_profiles_path: str | None = None

    # -- YouTube Quota --
    quota_daily_limit: int = Field(default=50_000, gt=0)
    quota_max_concurrent: int = Field(default=10, ge=1)
    quota_min_interval_seconds: float = Field(default=0.05, ge=0)
    quota_warning_threshold: float = 0.80
    quota_critical_threshold: float = 0.95
    quota_timezone: str = "America/Los_Angeles"
    quota_reset_check_interval_seconds: float = Field(default=60.0, gt=0)
    quota_max_attempts: int = Field(default=5, ge=1)
    quota_retry_delays: list[float] = Field(default_factory=lambda: [0.5, 1.0, 2.0, 5.0, 10.0])

    # -- Catalog --
    catalog_page_size: int = Field(default=50, ge=1, le=50)
    metadata_batch_size: int = Field(default=50, ge=1, le=50)
    short_video_threshold_seconds: int = Field(default=60, ge=0)

    # -- Transcripts --
    transcript_languages: list[str] = Field(default_factory=lambda: ["en"])
    transcript_max_attempts: int = Field(default=3, ge=1)
    transcript_retry_base_seconds: float = Field(default=1.0, ge=0)
    min_transcript_chars: int = Field(default=10, ge=0)
    # Consecutive rate-limited caption fetches that end a run early.
    caption_rate_limit_stop_after: int = Field(default=3, ge=1)

    # -- Chunking --
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=100, ge=0)

    # -- Model Configuration --
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int | None = 1536
    # Empty means the provider default, see get_generation_model().
    generation_model: str = ""
    generation_max_tokens: int = Field(default=2500, ge=1)

    # -- Retrieval Settings --
    retrieval_top_k: int = Field(default=10, ge=1)

    # -- Indexing --
    inter_video_delay_seconds: float = Field(default=0.0, ge=0)

    # -- Logging --
    log_level: str = "INFO"
    log_format: Literal["colored", "plain", "json"] = "colored"
    log_timestamps: bool = True

    # -- Retry Configuration (provider SDK calls) --
    retry_max_attempts: int = 3
    retry_min_wait_seconds: float = 4.0
    retry_max_wait_seconds: float = 60.0
    retry_exponential_multiplier: float = 1.0

    def get_generation_model(self) -> str:
        """Get generation model, falling back to the provider default."""
        if self.generation_model:
            return self.generation_model
        if self.generation_provider.lower() == "anthropic":
            return "claude-3-5-haiku-latest"
        return "gpt-4o-mini"

    @field_validator("quota_warning_threshold", "quota_critical_threshold")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("quota thresholds must be in (0, 1]")
        return value

    @field_validator("quota_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def _validate_relations(self) -> TubeRAGConfig:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.quota_warning_threshold > self.quota_critical_threshold:
            raise ValueError("quota_warning_threshold must not exceed quota_critical_threshold")
        return self
