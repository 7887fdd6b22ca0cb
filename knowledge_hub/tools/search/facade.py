"""Public entry point of the hybrid search engine.

The facade owns every collaborator (indexer, metadata store, lexical index,
fallback matchers, merger, related-video cache) and exposes:

- ``search``: a fallback chain of vector, relaxed vector and substring search
- ``hybrid_search``: concurrent fan-out of all strategies merged into one list
- ``vector_search``: chunk-level vector exploration
- ``get_related_videos``: vector neighbours with a tag-overlap fallback
- ``vectorize_video`` / ``delete_video_embeddings``: index maintenance
- ``rebuild_search_index``, ``embedding_stats``, ``vector_stats``

Strategy failures never reach the caller. Each strategy call runs under a
deadline; errors and timeouts are logged and count as an empty result. The
only error surfaced is ``InvalidQueryError`` for a blank query.

Example:
    >>> from knowledge_hub.tools.search.tools import get_search_service
    >>> facade = get_search_service()
    >>> results = await facade.search("kubernetes operators", limit=10)
    >>> [r.video.title for r in results]
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, Field

from knowledge_hub.tools.search.fallback import BASIC_FIELDS
from knowledge_hub.tools.search.models import (
    IndexingResult,
    RelatedVideo,
    SearchMatch,
    SearchResult,
    StrategyTag,
)
from knowledge_hub.tools.search.ranker import StrategyResults, best_per_video

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from knowledge_hub.tools.search.cache import RelatedVideoCache
    from knowledge_hub.tools.search.config import SearchConfig
    from knowledge_hub.tools.search.fallback import SubstringMatcher, TagOverlapMatcher
    from knowledge_hub.tools.search.indexer import EmbeddingIndexer
    from knowledge_hub.tools.search.lexical import LexicalSearch
    from knowledge_hub.tools.search.metadata import MetadataStore
    from knowledge_hub.tools.search.models import ChunkMatch, EmbeddingStats
    from knowledge_hub.tools.search.ranker import ResultMerger

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InvalidQueryError(ValueError):
    """Raised when a search query is empty or only whitespace."""


class SearchStage(str, Enum):
    """States of the search fallback chain."""

    TRY_HIGH_CONFIDENCE_VECTOR = "try_high_confidence_vector"
    TRY_LOW_CONFIDENCE_VECTOR = "try_low_confidence_vector"
    BASIC_SUBSTRING_FALLBACK = "basic_substring_fallback"
    DONE = "done"


_STAGE_ORDER: tuple[SearchStage, ...] = (
    SearchStage.TRY_HIGH_CONFIDENCE_VECTOR,
    SearchStage.TRY_LOW_CONFIDENCE_VECTOR,
    SearchStage.BASIC_SUBSTRING_FALLBACK,
    SearchStage.DONE,
)


def next_stage(stage: SearchStage, found: bool) -> SearchStage:
    """Transition function of the fallback chain.

    Args:
        stage: Stage that just ran.
        found: Whether it produced at least one result.

    Returns:
        ``DONE`` once a stage finds results or the chain is exhausted,
        otherwise the next, cheaper stage.
    """
    if found or stage is SearchStage.DONE:
        return SearchStage.DONE
    return _STAGE_ORDER[_STAGE_ORDER.index(stage) + 1]


class SearchRequest(BaseModel):
    """Validated search parameters."""

    query: str = Field(min_length=1)
    limit: int = Field(default=20, ge=1, le=100)
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)


class RelatedRequest(BaseModel):
    """Validated related-video parameters."""

    video_id: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=100)


class SearchFacade:
    """Coordinates all retrieval strategies behind one interface.

    Attributes:
        config: Search configuration (thresholds, scales, deadlines).
        store: Metadata store used for hydration.
        indexer: Embedding indexer for vector strategies.
        lexical: Full-text search adapter.
        substring: Substring fallback matcher.
        tag_matcher: Tag overlap matcher.
        merger: Merger for hybrid search.
        related_cache: Cache in front of related-video lookups.
    """

    def __init__(
        self,
        config: SearchConfig,
        store: MetadataStore,
        indexer: EmbeddingIndexer,
        lexical: LexicalSearch,
        substring: SubstringMatcher,
        tag_matcher: TagOverlapMatcher,
        merger: ResultMerger,
        related_cache: RelatedVideoCache,
    ) -> None:
        self.config = config
        self.store = store
        self.indexer = indexer
        self.lexical = lexical
        self.substring = substring
        self.tag_matcher = tag_matcher
        self.merger = merger
        self.related_cache = related_cache

    async def search(
        self,
        query: str,
        limit: int = 20,
        min_score: float | None = None,
        timeout: float | None = None,
    ) -> list[SearchResult]:
        """Search with the vector, relaxed vector, substring fallback chain.

        Args:
            query: Natural language query.
            limit: Maximum number of results (1-100).
            min_score: Overrides the high-confidence vector threshold.
            timeout: Per-strategy deadline in seconds.

        Returns:
            Hydrated results of the first stage that found anything, or an
            empty list when every stage came up empty.

        Raises:
            InvalidQueryError: If the query is blank.
        """
        request = self._request(query, limit, min_score)
        deadline = self._deadline(timeout)

        stage = SearchStage.TRY_HIGH_CONFIDENCE_VECTOR
        results: list[SearchResult] = []
        while stage is not SearchStage.DONE:
            results = await self._run_stage(stage, request, deadline)
            logger.debug(f"Stage {stage.value} produced {len(results)} results")
            stage = next_stage(stage, bool(results))

        logger.info(f"Search for {request.query!r} returned {len(results)} results")
        return results

    async def hybrid_search(
        self,
        query: str,
        limit: int = 20,
        timeout: float | None = None,
    ) -> list[SearchResult]:
        """Run every strategy concurrently and merge their results.

        Args:
            query: Natural language query.
            limit: Maximum number of results (1-100).
            timeout: Per-strategy deadline in seconds.

        Returns:
            Hydrated, merged results sorted by relevance.

        Raises:
            InvalidQueryError: If the query is blank.
        """
        request = self._request(query, limit)
        deadline = self._deadline(timeout)
        q, n = request.query, request.limit

        lexical, semantic, tag, similar = await asyncio.gather(
            self._guarded("lexical", q, self.lexical.search(q, limit=n), deadline),
            self._guarded("semantic", q, self.substring.match(q, limit=n), deadline),
            self._guarded("tag", q, self.tag_matcher.match(q, limit=n), deadline),
            self._guarded("vector", q, self.indexer.query_similar(q, limit=n), deadline),
        )
        vector = [
            SearchMatch(
                video_id=match.video_id,
                score=match.score * self.config.vector_score_scale,
                strategy=StrategyTag.VECTOR,
                excerpt=match.content,
            )
            for match in similar
        ]
        logger.debug(
            f"Hybrid strategies for {q!r}: lexical={len(lexical)}, semantic={len(semantic)}, "
            f"tag={len(tag)}, vector={len(vector)}"
        )

        merged = self.merger.merge(
            StrategyResults(lexical=lexical, semantic=semantic, tag=tag, vector=vector),
            limit=n,
        )
        return await self._hydrate(merged)

    async def vector_search(
        self,
        query: str,
        limit: int = 10,
        min_score: float = 0.0,
        timeout: float | None = None,
    ) -> list[ChunkMatch]:
        """Chunk-level vector search for exploring the embedding index.

        Raises:
            InvalidQueryError: If the query is blank.
        """
        request = self._request(query, limit, min_score)
        return await self._guarded(
            "vector",
            request.query,
            self.indexer.search_chunks(
                request.query, limit=request.limit, min_score=request.min_score or 0.0
            ),
            self._deadline(timeout),
        )

    async def get_related_videos(self, video_id: str, limit: int = 5) -> list[RelatedVideo]:
        """Find videos related to ``video_id``.

        Vector neighbours of the video's transcript are preferred. When there
        are none (no transcript, no embeddings, index failure), videos sharing
        tags with it are returned instead.

        Args:
            video_id: Source video.
            limit: Maximum number of related videos (1-100).

        Returns:
            Related ready videos, most similar first. Store failures give an
            empty list; a video that fails to load is left out.
        """
        request = RelatedRequest(video_id=video_id, limit=limit)
        deadline = self._deadline(None)

        similar = await self._guarded(
            "related",
            request.video_id,
            self.related_cache.get_related(request.video_id, request.limit),
            deadline,
        )
        if similar:
            logger.debug(f"Found {len(similar)} vector-related videos for {video_id}")
            scored = [(match.video_id, match.score) for match in similar]
        else:
            logger.debug(f"No vector neighbours for {video_id}, falling back to tags")
            scored = await self._guarded(
                "related-tags",
                request.video_id,
                self.store.find_videos_sharing_tags(request.video_id, request.limit),
                deadline,
            )

        related = await asyncio.gather(
            *(self._load_related(vid, score) for vid, score in scored)
        )
        return [item for item in related if item is not None]

    async def vectorize_video(self, video_id: str) -> IndexingResult:
        """Replace a video's chunk embeddings with fresh ones from its transcript.

        Args:
            video_id: Video to vectorize.

        Returns:
            IndexingResult with either one indexed video, one skipped video
            (missing, or no transcript) or one error.
        """
        video = await self.store.get_video(video_id)
        if video is None:
            logger.info(f"Video {video_id} not found, skipping vectorization")
            return IndexingResult(skipped_count=1, errors=[f"{video_id}: video not found"])

        transcript = await self.store.get_video_transcript(video_id)
        if transcript is None or not transcript.content.strip():
            logger.info(f"Video {video_id} has no transcript, skipping vectorization")
            return IndexingResult(
                skipped_count=1, errors=[f"{video_id}: no transcript available"]
            )

        tags = await self.store.get_video_tags(video_id)

        try:
            await self.indexer.delete_all(video_id)
            chunk_count = await self.indexer.embed_and_store(
                video_id,
                transcript.content,
                video.title,
                description=video.description,
                tags=[tag.name for tag in tags],
            )
        except Exception as e:
            logger.error(f"Failed to vectorize video {video_id}: {e}")
            return IndexingResult(error_count=1, errors=[f"{video_id}: {e}"])
        finally:
            self.related_cache.invalidate(video_id)

        await self._refresh_search_row(video_id)
        return IndexingResult(indexed_count=1, chunk_count=chunk_count, video_ids=[video_id])

    async def delete_video_embeddings(self, video_id: str) -> int:
        """Remove all chunks of a video from the vector index.

        The video's full-text row is refreshed as well, so a video deleted
        from the library also leaves the lexical index.

        Returns:
            Number of chunks deleted.
        """
        deleted = await self.indexer.delete_all(video_id)
        self.related_cache.invalidate(video_id)
        await self._refresh_search_row(video_id)
        return deleted

    async def rebuild_search_index(self) -> int:
        """Rebuild the full-text index from all ready videos."""
        return await self.lexical.rebuild_index()

    async def embedding_stats(self, video_id: str) -> dict[str, Any]:
        """Report whether a video has embeddings and how many."""
        indexed = await self.indexer.is_video_indexed(video_id)
        count = await self.indexer.chunk_count(video_id) if indexed else 0
        return {
            "video_id": video_id,
            "has_embeddings": indexed,
            "embedding_count": count,
        }

    async def vector_stats(self) -> EmbeddingStats:
        """Report index-wide embedding statistics."""
        return await self.indexer.get_stats()

    async def _run_stage(
        self,
        stage: SearchStage,
        request: SearchRequest,
        deadline: float,
    ) -> list[SearchResult]:
        high = (
            request.min_score
            if request.min_score is not None
            else self.config.high_confidence_score
        )

        if stage is SearchStage.TRY_HIGH_CONFIDENCE_VECTOR:
            matches = await self._vector_matches(request.query, request.limit, high, deadline)
        elif stage is SearchStage.TRY_LOW_CONFIDENCE_VECTOR:
            matches = await self._vector_matches(
                request.query,
                min(request.limit, self.config.low_confidence_limit),
                min(self.config.low_confidence_score, high),
                deadline,
            )
        elif stage is SearchStage.BASIC_SUBSTRING_FALLBACK:
            matches = await self._guarded(
                "basic",
                request.query,
                self.substring.match(
                    request.query,
                    limit=request.limit,
                    fields=BASIC_FIELDS,
                    strategy=StrategyTag.BASIC,
                ),
                deadline,
            )
        else:
            return []

        return await self._hydrate(matches)

    async def _vector_matches(
        self,
        query: str,
        limit: int,
        min_score: float,
        deadline: float,
    ) -> list[SearchMatch]:
        chunks = await self._guarded(
            "vector",
            query,
            self.indexer.search_chunks(query, limit=limit, min_score=min_score),
            deadline,
        )
        return best_per_video(
            SearchMatch(
                video_id=chunk.video_id,
                score=chunk.score * self.config.vector_score_scale,
                strategy=StrategyTag.VECTOR,
                excerpt=chunk.content,
            )
            for chunk in chunks
        )

    async def _hydrate(self, matches: list[SearchMatch]) -> list[SearchResult]:
        """Load full records for matches, dropping missing or unready videos."""
        hydrated = await asyncio.gather(*(self._hydrate_one(m) for m in matches))
        results = [result for result in hydrated if result is not None]
        results.sort(key=lambda r: r.relevance_score, reverse=True)
        return results

    async def _load_related(self, video_id: str, score: float) -> RelatedVideo | None:
        try:
            video = await self.store.get_video(video_id)
        except Exception as e:
            logger.warning(f"Failed to load related video {video_id}: {e}")
            return None
        if video is None or not video.is_searchable:
            return None
        return RelatedVideo(video=video, confidence_score=score)

    async def _refresh_search_row(self, video_id: str) -> None:
        try:
            await self.lexical.refresh_video(video_id)
        except Exception as e:
            logger.warning(f"Failed to refresh search index row for video {video_id}: {e}")

    async def _hydrate_one(self, match: SearchMatch) -> SearchResult | None:
        try:
            video = await self.store.get_video(match.video_id)
            if video is None or not video.is_searchable:
                logger.debug(f"Dropping result for unavailable video {match.video_id}")
                return None

            tags, chapters, transcript = await asyncio.gather(
                self.store.get_video_tags(match.video_id),
                self.store.get_video_chapters(match.video_id),
                self.store.get_video_transcript(match.video_id),
            )
        except Exception as e:
            logger.warning(f"Failed to hydrate video {match.video_id}: {e}")
            return None

        return SearchResult(
            video=video,
            tags=tags,
            chapters=chapters,
            transcript=transcript,
            relevance_score=match.score,
            search_type=match.strategy,
        )

    async def _guarded(
        self,
        strategy: str,
        query: str,
        awaitable: Awaitable[list[T]],
        timeout: float,
    ) -> list[T]:
        """Await a strategy call, turning failures and timeouts into ``[]``."""
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{strategy} strategy timed out after {timeout}s for {query!r}")
        except Exception as e:
            logger.warning(f"{strategy} strategy failed for {query!r}: {e}")
        return []

    def _request(
        self,
        query: str,
        limit: int,
        min_score: float | None = None,
    ) -> SearchRequest:
        if not query or not query.strip():
            raise InvalidQueryError("Search query must not be empty")
        return SearchRequest(query=query.strip(), limit=limit, min_score=min_score)

    def _deadline(self, timeout: float | None) -> float:
        return timeout if timeout is not None else self.config.strategy_timeout_seconds
