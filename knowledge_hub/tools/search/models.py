"""Data model for hybrid video search.

Records read from the metadata store (videos, tags, chapters, transcripts)
and the hydrated results returned to callers are Pydantic models so they
serialize straight into tool responses. Per-query intermediate values
(chunks, matches) are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class VideoStatus(str, Enum):
    """Processing status of a video. Only ``ready`` videos are searchable."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class StrategyTag(str, Enum):
    """Retrieval strategy that produced a match."""

    VECTOR = "vector"
    LEXICAL = "lexical"
    TAG = "tag"
    SEMANTIC = "semantic"
    COMBINED = "combined"
    BASIC = "basic"


class VideoDocument(BaseModel):
    """Read-only projection of a video row."""

    id: str
    title: str
    description: str | None = None
    status: VideoStatus = VideoStatus.PROCESSING
    thumbnail_url: str | None = None
    duration: int | None = None
    upload_date: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    tags: set[str] = Field(default_factory=set)
    has_transcript: bool = False

    @property
    def is_searchable(self) -> bool:
        return self.status is VideoStatus.READY


class Tag(BaseModel):
    """AI-generated tag attached to a video."""

    id: str
    name: str
    category: str | None = None
    created_at: str | None = None


class Chapter(BaseModel):
    """AI-generated chapter of a video."""

    id: str
    video_id: str
    title: str
    start_time: int
    end_time: int
    summary: str | None = None


class Transcript(BaseModel):
    """Transcript content of a video."""

    id: str
    video_id: str
    content: str
    language: str = "en"
    confidence_score: float | None = None
    created_at: str | None = None


class ChunkMetadata(BaseModel):
    """Metadata stored with every transcript chunk in the vector index.

    The index only accepts scalar metadata values, so tags are flattened to a
    comma-separated string on write and split again on read.
    """

    video_id: str = Field(min_length=1)
    chunk_index: int = Field(ge=0)
    content: str = ""
    video_title: str = ""
    video_description: str | None = None
    chunk_start: int | None = Field(default=None, ge=0)
    chunk_end: int | None = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, value: Any) -> Any:
        """Accept the flattened comma-separated form stored in the index."""
        if value is None:
            return []
        if isinstance(value, str):
            return [tag for tag in value.split(",") if tag]
        return value

    @field_validator("video_description", mode="before")
    @classmethod
    def empty_description_to_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    def to_index_metadata(self) -> dict[str, str | int]:
        """Flatten into the scalar-only form accepted by the vector index."""
        return {
            "video_id": self.video_id,
            "chunk_index": self.chunk_index,
            "content": self.content,
            "video_title": self.video_title,
            "video_description": self.video_description or "",
            "chunk_start": self.chunk_start or 0,
            "chunk_end": self.chunk_end or 0,
            "tags": ",".join(self.tags),
        }


@dataclass(frozen=True)
class TextChunk:
    """A trimmed transcript window and its character span in the source."""

    content: str
    start: int
    end: int


@dataclass(frozen=True)
class IndexHit:
    """A raw vector index hit with validated metadata."""

    id: str
    score: float
    metadata: ChunkMetadata


@dataclass(frozen=True)
class SimilarityMatch:
    """Best-scoring chunk of a video for a similarity query."""

    video_id: str
    score: float
    content: str
    metadata: ChunkMetadata


@dataclass(frozen=True)
class ChunkMatch:
    """A chunk-level vector hit used for detailed vector exploration."""

    video_id: str
    chunk_index: int
    content: str
    score: float
    metadata: ChunkMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "title": self.metadata.video_title,
            "description": self.metadata.video_description or "",
            "chunk_index": self.chunk_index,
            "content": self.content,
            "score": self.score,
            "metadata": self.metadata.model_dump(),
        }


@dataclass
class SearchMatch:
    """A candidate video produced by one retrieval strategy.

    Attributes:
        video_id: Matched video.
        score: Non-negative, strategy-specific relevance.
        strategy: Strategy that produced the match, ``combined`` after merging.
        excerpt: Optional matched content.
    """

    video_id: str
    score: float
    strategy: StrategyTag
    excerpt: str | None = None


class SearchResult(BaseModel):
    """A hydrated, scored search result."""

    video: VideoDocument
    tags: list[Tag] = Field(default_factory=list)
    chapters: list[Chapter] = Field(default_factory=list)
    transcript: Transcript | None = None
    relevance_score: float
    search_type: StrategyTag

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class RelatedVideo(BaseModel):
    """A related video with the similarity that linked it."""

    video: VideoDocument
    confidence_score: float

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass
class EmbeddingStats:
    """Aggregate statistics of the vector index."""

    total_embeddings: int = 0
    unique_videos: int = 0
    average_chunks_per_video: float = 0.0

    def to_dict(self) -> dict[str, int | float]:
        return {
            "total_embeddings": self.total_embeddings,
            "unique_videos": self.unique_videos,
            "average_chunks_per_video": self.average_chunks_per_video,
        }


@dataclass
class IndexingResult:
    """Result of a vectorization operation.

    Attributes:
        indexed_count: Number of videos successfully indexed.
        chunk_count: Total number of chunks stored across all videos.
        skipped_count: Number of videos skipped (missing or no transcript).
        error_count: Number of videos that failed to index.
        errors: List of error messages with video IDs.
        video_ids: List of successfully indexed video IDs.
    """

    indexed_count: int = 0
    chunk_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)
    video_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, int | list[str]]:
        """Convert to dictionary for API responses."""
        return {
            "indexed_count": self.indexed_count,
            "chunk_count": self.chunk_count,
            "skipped_count": self.skipped_count,
            "error_count": self.error_count,
            "errors": self.errors,
            "video_ids": self.video_ids,
        }
