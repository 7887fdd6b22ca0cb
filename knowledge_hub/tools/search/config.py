"""Configuration for hybrid video search.

Provides Pydantic settings for configuring:
- Embedding model (Nomic with Matryoshka dimensionality)
- HNSW vector index parameters and persistence
- Transcript chunking
- Vector query limits and confidence thresholds
- Cross-strategy score boosts
- Related-video cache and strategy timeouts
- Metadata database location

Environment Variables:
    SEARCH_EMBEDDING_MODEL: Embedding model name (default: nomic-embed-text-v1.5)
    SEARCH_EMBEDDING_DIMENSIONALITY: Matryoshka dimension (default: 768)
    SEARCH_CHUNK_SIZE: Chunk window in characters (default: 1000)
    SEARCH_CHUNK_OVERLAP: Overlap between windows (default: 200)
    SEARCH_SIMILARITY_FLOOR: Minimum score for related matches (default: 0.5)
    SEARCH_HIGH_CONFIDENCE_SCORE: First fallback stage threshold (default: 0.60)
    SEARCH_LOW_CONFIDENCE_SCORE: Second fallback stage threshold (default: 0.40)
    SEARCH_LEXICAL_BOOST: Multiplier applied to full-text scores (default: 1.5)
    SEARCH_RELATED_CACHE_TTL_SECONDS: Related-video cache TTL (default: 600)
    SEARCH_STRATEGY_TIMEOUT_SECONDS: Per-strategy deadline (default: 10)
    SEARCH_DATABASE_URL: SQLAlchemy async URL of the metadata store
    SEARCH_PERSIST_DIRECTORY: Directory for vector store persistence (optional)
    SEARCH_LOG_LEVEL: Root log level for the server (default: INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_data_home() -> Path:
    """Get the XDG data directory for the knowledge hub."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        base_dir = Path(xdg_data_home)
    else:
        base_dir = Path.home() / ".local" / "share"

    return base_dir / "knowledge-hub"


def _get_default_persist_directory() -> str | None:
    """Get XDG-compliant default persistence directory for ChromaDB."""
    return str(_get_data_home() / "chroma_db")


def _get_default_database_url() -> str:
    """Get the default SQLite metadata database URL."""
    return f"sqlite+aiosqlite:///{_get_data_home() / 'videos.db'}"


@dataclass(frozen=True)
class BoostWeights:
    """Score multipliers used when merging strategy results.

    Attributes:
        lexical_boost: Multiplier for every full-text match.
        semantic_weight: Share of a substring score added to an existing match.
        tag_weight: Share of a tag-overlap score added to an existing match.
        vector_weight: Share of a vector score added to an existing match.
    """

    lexical_boost: float = 1.5
    semantic_weight: float = 0.5
    tag_weight: float = 0.3
    vector_weight: float = 0.7


class SearchConfig(BaseSettings):
    """Configuration for the hybrid search engine.

    Groups embedding, vector index, chunking, ranking, caching and storage
    settings for the search core.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Embedding model configuration
    embedding_model: str = Field(
        default="nomic-embed-text-v1.5",
        description="Nomic embedding model name.",
    )
    embedding_dimensionality: Literal[64, 128, 256, 512, 768] = Field(
        default=768,
        description="Matryoshka embedding dimensionality. Lower = faster, higher = better quality.",
    )
    embedding_inference_mode: Literal["local", "remote", "dynamic"] = Field(
        default="local",
        description="Inference mode: 'local' (Embed4All), 'remote' (API), 'dynamic' (auto).",
    )

    # HNSW index configuration
    hnsw_space: Literal["cosine", "l2", "ip"] = Field(
        default="cosine",
        description="Distance metric for similarity search.",
    )
    hnsw_max_neighbors: int = Field(
        default=48,
        ge=4,
        le=128,
        description="HNSW M parameter - connections per node.",
    )
    hnsw_ef_construction: int = Field(
        default=200,
        ge=10,
        le=500,
        description="Build-time accuracy. Higher = better index quality, slower build.",
    )
    hnsw_ef_search: int = Field(
        default=128,
        ge=10,
        le=500,
        description="Search-time accuracy. Higher = better recall, slower search.",
    )

    # Chunking configuration
    chunk_size: int = Field(
        default=1000,
        ge=100,
        le=4000,
        description="Chunk window in characters.",
    )
    chunk_overlap: int = Field(
        default=200,
        ge=0,
        le=1000,
        description="Characters shared by consecutive chunk windows.",
    )
    chunk_min_fill_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Word-boundary back-off never shrinks a window below this share of chunk_size.",
    )

    # Vector query configuration
    query_max_chars: int = Field(
        default=2000,
        ge=1,
        description="Query text is truncated to this many characters before embedding.",
    )
    similar_top_k_cap: int = Field(
        default=20,
        ge=1,
        description="Upper bound on nearest neighbours fetched for similarity queries.",
    )
    similarity_floor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Similarity matches at or below this score are discarded.",
    )
    high_confidence_score: float = Field(
        default=0.60,
        ge=0.0,
        le=1.0,
        description="Minimum chunk score for the first vector stage.",
    )
    low_confidence_score: float = Field(
        default=0.40,
        ge=0.0,
        le=1.0,
        description="Minimum chunk score for the relaxed vector stage.",
    )
    low_confidence_limit: int = Field(
        default=10,
        ge=1,
        description="Result cap for the relaxed vector stage.",
    )
    vector_score_scale: float = Field(
        default=10.0,
        gt=0.0,
        description="Cosine scores are multiplied by this to share a scale with other strategies.",
    )

    # Ranking configuration
    lexical_boost: float = Field(default=1.5, ge=0.0)
    semantic_weight: float = Field(default=0.5, ge=0.0)
    tag_weight: float = Field(default=0.3, ge=0.0)
    vector_weight: float = Field(default=0.7, ge=0.0)

    # Related-video cache and timeouts
    related_cache_ttl_seconds: float = Field(
        default=600.0,
        gt=0.0,
        description="Seconds a cached related-video list stays fresh.",
    )
    related_cache_max_entries: int = Field(
        default=1024,
        ge=1,
        description="Maximum number of (video, limit) entries kept in the cache.",
    )
    strategy_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Default deadline for a single strategy call.",
    )

    # Persistence configuration
    persist_directory: str | None = Field(
        default_factory=_get_default_persist_directory,
        description="Directory for ChromaDB persistence. None for in-memory only.",
    )
    collection_name: str = Field(
        default="video_embeddings",
        description="Name of the ChromaDB collection for transcript chunks.",
    )
    database_url: str = Field(
        default_factory=_get_default_database_url,
        description="SQLAlchemy async URL of the metadata store.",
    )

    log_level: str = Field(default="INFO")

    @field_validator("persist_directory")
    @classmethod
    def expand_persist_directory(cls, value: str | None) -> str | None:
        """Expand ~ in persistence directory path."""
        if value is None:
            return None
        return str(Path(value).expanduser())

    @model_validator(mode="after")
    def validate_chunk_overlap(self) -> SearchConfig:
        """Ensure chunk windows always advance."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    @property
    def boost_weights(self) -> BoostWeights:
        """Get the ranking multipliers as a single value object."""
        return BoostWeights(
            lexical_boost=self.lexical_boost,
            semantic_weight=self.semantic_weight,
            tag_weight=self.tag_weight,
            vector_weight=self.vector_weight,
        )

    @property
    def hnsw_config(self) -> dict[str, str | int]:
        """Get HNSW configuration dictionary for ChromaDB.

        Returns:
            Dictionary with HNSW parameters for collection_configuration.
        """
        return {
            "space": self.hnsw_space,
            "max_neighbors": self.hnsw_max_neighbors,
            "ef_construction": self.hnsw_ef_construction,
            "ef_search": self.hnsw_ef_search,
        }

    @property
    def collection_configuration(self) -> dict[str, dict[str, str | int]]:
        """Get full collection configuration for ChromaDB."""
        return {"hnsw": self.hnsw_config}


@lru_cache
def get_search_config() -> SearchConfig:
    """Get cached search configuration.

    Returns:
        Singleton SearchConfig instance loaded from environment.
    """
    return SearchConfig()
