"""MCP tools for hybrid video search.

Thin async wrappers that validate arguments, call the shared
``SearchFacade`` and return JSON-ready dictionaries. The server registers
them with FastMCP; search tools are additionally cached with mcp-refcache.

Tools:
    warmup_search: Pre-load the embedding model, vector store and schema.
    search_videos: Fallback-chain search (vector, relaxed vector, substring).
    hybrid_search_videos: All strategies merged into one ranking.
    vector_search: Chunk-level vector exploration.
    get_related_videos: Videos related to a given video.
    vectorize_video: (Re)build a video's transcript embeddings.
    delete_video_embeddings: Remove a video's embeddings.
    get_embedding_stats: Embedding count of a single video.
    get_vector_stats: Index-wide embedding statistics.
    rebuild_search_index: Repopulate the full-text index.

Example:
    >>> result = await search_videos("kubernetes operators", limit=5)
    >>> print(result["count"], result["search_type"])
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from knowledge_hub.tools.search.facade import SearchFacade
    from knowledge_hub.tools.search.models import SearchResult

logger = logging.getLogger(__name__)


@lru_cache
def get_search_service() -> SearchFacade:
    """Get the shared, fully wired SearchFacade.

    Returns:
        Singleton SearchFacade built from the environment configuration.
    """
    from knowledge_hub.tools.search.cache import RelatedVideoCache
    from knowledge_hub.tools.search.chunker import TextChunker
    from knowledge_hub.tools.search.config import get_search_config
    from knowledge_hub.tools.search.facade import SearchFacade
    from knowledge_hub.tools.search.fallback import SubstringMatcher, TagOverlapMatcher
    from knowledge_hub.tools.search.indexer import EmbeddingIndexer
    from knowledge_hub.tools.search.lexical import LexicalSearch
    from knowledge_hub.tools.search.metadata import MetadataStore, create_engine_for_url
    from knowledge_hub.tools.search.ranker import ResultMerger
    from knowledge_hub.tools.search.store import get_vector_store

    config = get_search_config()
    store = MetadataStore(create_engine_for_url(config.database_url))
    indexer = EmbeddingIndexer(
        vector_store=get_vector_store(),
        chunker=TextChunker(config),
        config=config,
    )

    return SearchFacade(
        config=config,
        store=store,
        indexer=indexer,
        lexical=LexicalSearch(store),
        substring=SubstringMatcher(store),
        tag_matcher=TagOverlapMatcher(store),
        merger=ResultMerger(config.boost_weights),
        related_cache=RelatedVideoCache(
            indexer,
            store,
            ttl_seconds=config.related_cache_ttl_seconds,
            max_entries=config.related_cache_max_entries,
        ),
    )


async def warmup_search() -> dict[str, Any]:
    """Pre-load the embedding model and open both stores.

    Loads the Nomic model (downloading it on first use), runs a test
    embedding, opens the vector collection and creates the metadata schema
    if the database is new. Call this before the first search to avoid a
    slow first query.

    Returns:
        Dictionary with warmup status:
            - status: "ready" if successful
            - model: Name of the embedding model loaded
            - dimensionality: Embedding dimensions configured
            - test_embedding_size: Size of the test embedding
            - collection_name: Vector collection in use
            - warmup_time_seconds: Elapsed time
    """
    import time

    from knowledge_hub.tools.search.config import get_search_config

    logger.info("Starting search warmup...")
    start_time = time.time()

    config = get_search_config()
    facade = get_search_service()

    test_vector = await facade.indexer.embeddings.aembed_query("warmup test query")
    logger.info(f"Test embedding complete: {len(test_vector)} dimensions")

    collection_name = facade.indexer.vector_store._collection.name
    await facade.store.create_schema()

    elapsed_time = time.time() - start_time
    logger.info(f"Search warmup complete in {elapsed_time:.2f}s")

    return {
        "status": "ready",
        "model": config.embedding_model,
        "dimensionality": config.embedding_dimensionality,
        "test_embedding_size": len(test_vector),
        "collection_name": collection_name,
        "warmup_time_seconds": round(elapsed_time, 2),
    }


async def search_videos(
    query: str,
    limit: int = 20,
    min_score: float | None = None,
) -> dict[str, Any]:
    """Search ready videos with the vector-first fallback chain.

    Tries a high-confidence vector search, then a relaxed one, then a plain
    substring match over title, description and transcript.

    Args:
        query: Natural language search query.
        limit: Maximum number of results (1-100).
        min_score: Optional minimum chunk similarity (0-1) for the first stage.

    Returns:
        Dictionary with:
            - query: The search query
            - count: Number of results
            - results: Hydrated results (video, tags, chapters, transcript,
              relevance_score, search_type)
            - search_type: Strategy of the stage that answered, or "none"
    """
    logger.info(f"search_videos called: query={query!r}, limit={limit}, min_score={min_score}")
    results = await get_search_service().search(query, limit=limit, min_score=min_score)
    return _search_response(query, results)


async def hybrid_search_videos(query: str, limit: int = 20) -> dict[str, Any]:
    """Search with full-text, substring, tag and vector strategies combined.

    Args:
        query: Natural language search query.
        limit: Maximum number of results (1-100).

    Returns:
        Same shape as ``search_videos``. Videos found by several strategies
        are labelled "combined".
    """
    logger.info(f"hybrid_search_videos called: query={query!r}, limit={limit}")
    results = await get_search_service().hybrid_search(query, limit=limit)
    return _search_response(query, results)


async def vector_search(
    query: str,
    limit: int = 10,
    min_score: float = 0.0,
) -> dict[str, Any]:
    """Explore the embedding index at chunk level.

    Args:
        query: Natural language query.
        limit: Maximum number of chunks (1-100).
        min_score: Minimum cosine similarity of returned chunks.

    Returns:
        Dictionary with the query, count and chunk matches with scores.
    """
    matches = await get_search_service().vector_search(
        query, limit=limit, min_score=min_score
    )
    return {
        "query": query,
        "count": len(matches),
        "results": [match.to_dict() for match in matches],
    }


async def get_related_videos(video_id: str, limit: int = 5) -> dict[str, Any]:
    """Find videos related to a video by transcript similarity or shared tags.

    Args:
        video_id: Source video ID.
        limit: Maximum number of related videos.

    Returns:
        Dictionary with the video ID, count and related videos with
        confidence scores.
    """
    related = await get_search_service().get_related_videos(video_id, limit=limit)
    return {
        "video_id": video_id,
        "count": len(related),
        "related": [item.to_dict() for item in related],
    }


async def vectorize_video(video_id: str) -> dict[str, Any]:
    """Rebuild the transcript embeddings of a video.

    Previous chunks of the video are removed first, so a shorter transcript
    leaves no stale chunks behind.

    Args:
        video_id: Video to vectorize.

    Returns:
        Indexing result with indexed, chunk, skipped and error counts.
    """
    logger.info(f"vectorize_video called: video_id={video_id}")
    result = await get_search_service().vectorize_video(video_id)
    return result.to_dict()


async def delete_video_embeddings(video_id: str) -> dict[str, Any]:
    """Delete every transcript chunk of a video from the vector index.

    Returns:
        Dictionary with the video ID and number of chunks deleted.
    """
    deleted = await get_search_service().delete_video_embeddings(video_id)
    return {"video_id": video_id, "chunks_deleted": deleted}


async def get_embedding_stats(video_id: str) -> dict[str, Any]:
    """Report whether a video has embeddings and how many chunks it has."""
    return await get_search_service().embedding_stats(video_id)


async def get_vector_stats() -> dict[str, Any]:
    """Report total embeddings, indexed videos and average chunks per video."""
    stats = await get_search_service().vector_stats()
    return stats.to_dict()


async def rebuild_search_index() -> dict[str, Any]:
    """Repopulate the full-text index from all ready videos.

    Returns:
        Dictionary with the number of videos indexed.
    """
    count = await get_search_service().rebuild_search_index()
    return {"status": "rebuilt", "indexed_videos": count}


def _search_response(query: str, results: list[SearchResult]) -> dict[str, Any]:
    return {
        "query": query,
        "count": len(results),
        "results": [result.to_dict() for result in results],
        "search_type": results[0].search_type.value if results else "none",
    }
