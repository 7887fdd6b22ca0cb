"""Embedding storage and similarity queries for transcript chunks.

Coordinates chunking, embedding generation and the vector index:
- Chunk a transcript and upsert one vector per chunk under a deterministic id
- Query the index for videos similar to a piece of text
- Chunk-level vector search with a minimum score, for exploration
- Sweep all chunks of a video out of the index
- Index statistics

Upserts are keyed by ``{video_id}-chunk-{index}``, so embedding the same
video twice overwrites instead of duplicating. A failure half way through
``embed_and_store`` is not rolled back; callers retry the whole video.

Example:
    >>> from knowledge_hub.tools.search.chunker import TextChunker
    >>> from knowledge_hub.tools.search.config import get_search_config
    >>> from knowledge_hub.tools.search.indexer import EmbeddingIndexer
    >>> from knowledge_hub.tools.search.store import get_vector_store
    >>>
    >>> config = get_search_config()
    >>> indexer = EmbeddingIndexer(
    ...     vector_store=get_vector_store(),
    ...     chunker=TextChunker(config),
    ...     config=config,
    ... )
    >>> count = await indexer.embed_and_store("v1", transcript, "Intro to K8s")
    >>> matches = await indexer.query_similar("kubernetes operators", limit=5)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from knowledge_hub.tools.search.models import (
    ChunkMatch,
    ChunkMetadata,
    EmbeddingStats,
    IndexHit,
    SimilarityMatch,
)

if TYPE_CHECKING:
    from langchain_chroma import Chroma
    from langchain_core.embeddings import Embeddings

    from knowledge_hub.tools.search.chunker import TextChunker
    from knowledge_hub.tools.search.config import SearchConfig

logger = logging.getLogger(__name__)


def chunk_id(video_id: str, chunk_index: int) -> str:
    """Build the deterministic index id of a transcript chunk."""
    return f"{video_id}-chunk-{chunk_index}"


class EmbeddingIndexer:
    """Stores and queries transcript chunk embeddings.

    Attributes:
        vector_store: Chroma vector store whose collection is the ANN index.
        embeddings: Embedding model used for chunks and queries.
        chunker: Chunker used to split transcripts.
        config: Search configuration with query limits and thresholds.
    """

    def __init__(
        self,
        vector_store: Chroma,
        chunker: TextChunker,
        config: SearchConfig,
        embeddings: Embeddings | None = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            vector_store: Chroma vector store instance.
            chunker: TextChunker instance for splitting transcripts.
            config: Search configuration.
            embeddings: Embedding model. Defaults to the store's embedding function.
        """
        self.vector_store = vector_store
        self.chunker = chunker
        self.config = config
        self.embeddings = embeddings if embeddings is not None else vector_store.embeddings

    @property
    def _collection(self) -> Any:
        return self.vector_store._collection

    async def embed_and_store(
        self,
        video_id: str,
        transcript: str,
        title: str,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> int:
        """Chunk a transcript, embed every chunk and upsert it into the index.

        Args:
            video_id: Owning video.
            transcript: Full transcript text.
            title: Video title, stored with each chunk.
            description: Optional video description.
            tags: Video tag names at embedding time.

        Returns:
            Number of chunks stored.
        """
        chunks = self.chunker.chunk(transcript)
        logger.info(f"Embedding {len(chunks)} chunks for video {video_id}")

        for index, chunk in enumerate(chunks):
            vector = await self.embeddings.aembed_query(chunk.content)
            metadata = ChunkMetadata(
                video_id=video_id,
                chunk_index=index,
                content=chunk.content,
                video_title=title,
                video_description=description,
                chunk_start=chunk.start,
                chunk_end=chunk.end,
                tags=list(tags or []),
            )
            await asyncio.to_thread(
                self._collection.upsert,
                ids=[chunk_id(video_id, index)],
                embeddings=[vector],
                metadatas=[metadata.to_index_metadata()],
                documents=[chunk.content],
            )

        logger.info(f"Stored {len(chunks)} embeddings for video {video_id}")
        return len(chunks)

    async def query_similar(
        self,
        text: str,
        limit: int = 10,
        exclude_video_id: str | None = None,
    ) -> list[SimilarityMatch]:
        """Find the videos whose chunks are most similar to ``text``.

        Only the best chunk of each video counts. Matches scoring at or below
        ``similarity_floor`` are dropped.

        Args:
            text: Query text. Truncated to ``query_max_chars`` before embedding.
            limit: Maximum number of videos to return.
            exclude_video_id: Video to leave out, e.g. the source of a related query.

        Returns:
            Matches sorted by descending score.
        """
        truncated = text[: self.config.query_max_chars]
        vector = await self.embeddings.aembed_query(truncated)
        top_k = min(limit * 2, self.config.similar_top_k_cap)
        hits = await self._query(vector, top_k)

        best: dict[str, SimilarityMatch] = {}
        for hit in hits:
            video_id = hit.metadata.video_id
            if exclude_video_id is not None and video_id == exclude_video_id:
                continue
            existing = best.get(video_id)
            if existing is None or hit.score > existing.score:
                best[video_id] = SimilarityMatch(
                    video_id=video_id,
                    score=hit.score,
                    content=hit.metadata.content,
                    metadata=hit.metadata,
                )

        matches = [m for m in best.values() if m.score > self.config.similarity_floor]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:limit]

    async def search_chunks(
        self,
        query: str,
        limit: int = 10,
        min_score: float = 0.0,
    ) -> list[ChunkMatch]:
        """Chunk-level vector search.

        Args:
            query: Natural language query.
            limit: Maximum number of chunks to return.
            min_score: Minimum similarity a chunk needs to be kept.

        Returns:
            Chunks in index rank order. A blank query returns an empty list.
        """
        query = query.strip()
        if not query:
            logger.debug("Skipping vector search for blank query")
            return []

        vector = await self.embeddings.aembed_query(query)
        hits = await self._query(vector, limit * 2)
        logger.debug(
            f"Vector index returned {len(hits)} chunks, filtering by min_score={min_score}"
        )

        return [
            ChunkMatch(
                video_id=hit.metadata.video_id,
                chunk_index=hit.metadata.chunk_index,
                content=hit.metadata.content,
                score=hit.score,
                metadata=hit.metadata,
            )
            for hit in hits
            if hit.score >= min_score
        ][:limit]

    async def delete_all(self, video_id: str) -> int:
        """Delete every chunk of a video from the index.

        Best effort: a video without chunks is a no-op and index errors are
        logged rather than raised.

        Args:
            video_id: Video whose chunks should be removed.

        Returns:
            Number of chunks deleted.
        """
        try:
            ids = await self._chunk_ids(video_id)
            if not ids:
                return 0
            await asyncio.to_thread(self._collection.delete, ids=ids)
        except Exception as e:
            logger.warning(f"Failed to delete embeddings for video {video_id}: {e}")
            return 0

        logger.info(f"Deleted {len(ids)} embeddings for video {video_id}")
        return len(ids)

    async def is_video_indexed(self, video_id: str) -> bool:
        """Check whether a video has any chunks in the index."""
        result = await asyncio.to_thread(
            self._collection.get,
            where={"video_id": video_id},
            limit=1,
            include=[],
        )
        return bool(result.get("ids"))

    async def chunk_count(self, video_id: str) -> int:
        """Count the chunks stored for a video."""
        return len(await self._chunk_ids(video_id))

    async def get_stats(self) -> EmbeddingStats:
        """Collect index-wide embedding statistics."""
        result = await asyncio.to_thread(self._collection.get, include=["metadatas"])
        metadatas = result.get("metadatas") or []
        video_ids = {m.get("video_id") for m in metadatas if m and m.get("video_id")}

        total = len(result.get("ids") or [])
        unique = len(video_ids)
        return EmbeddingStats(
            total_embeddings=total,
            unique_videos=unique,
            average_chunks_per_video=total / unique if unique else 0.0,
        )

    async def _chunk_ids(self, video_id: str) -> list[str]:
        result = await asyncio.to_thread(
            self._collection.get,
            where={"video_id": video_id},
            include=[],
        )
        return list(result.get("ids") or [])

    async def _query(self, vector: list[float], top_k: int) -> list[IndexHit]:
        """Run a nearest-neighbour query and validate the returned metadata."""
        result = await asyncio.to_thread(
            self._collection.query,
            query_embeddings=[vector],
            n_results=top_k,
            include=["metadatas", "distances"],
        )

        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        hits: list[IndexHit] = []
        for hit_id, metadata, distance in zip(ids, metadatas, distances):
            try:
                parsed = ChunkMetadata.model_validate(metadata or {})
            except ValidationError as e:
                logger.warning(f"Skipping malformed index entry {hit_id}: {e}")
                continue
            hits.append(
                IndexHit(id=hit_id, score=self._to_score(distance), metadata=parsed)
            )
        return hits

    def _to_score(self, distance: float) -> float:
        """Convert an index distance into a similarity (higher is better)."""
        if self.config.hnsw_space == "l2":
            return 1.0 / (1.0 + float(distance))
        return 1.0 - float(distance)
