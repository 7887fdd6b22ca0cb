#!/usr/bin/env python3
"""Video Knowledge Hub MCP server.

Exposes hybrid video search over FastMCP. Search results can be large
(hydrated videos carry transcripts), so search tools are cached with
mcp-refcache and return a reference plus preview when they exceed the
preview budget.

Usage:
    # Run with stdio (for Claude Desktop / Zed)
    uv run knowledge-hub

    # Run with SSE (for web clients / debugging)
    uv run knowledge-hub --transport sse --port 8000

Claude Desktop Configuration:
    Add to your claude_desktop_config.json:
    {
        "mcpServers": {
            "knowledge-hub": {
                "command": "uv",
                "args": ["run", "knowledge-hub"]
            }
        }
    }
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from fastmcp import FastMCP
from mcp_refcache import CacheResponse, PreviewConfig, PreviewStrategy, RefCache
from mcp_refcache.fastmcp import (
    cache_guide_prompt,
    cache_instructions,
    with_cache_docs,
)
from pydantic import BaseModel, Field

from knowledge_hub.tools.search import tools as search_tools
from knowledge_hub.tools.search.config import get_search_config

logger = logging.getLogger(__name__)

# =============================================================================
# Initialize FastMCP Server
# =============================================================================

mcp = FastMCP(
    name="Video Knowledge Hub",
    instructions=f"""Hybrid search over an AI-enriched video library.

Available tools:
- search_videos: Vector search with relaxed and substring fallbacks (cached)
- hybrid_search_videos: Full-text, substring, tag and vector search merged (cached)
- vector_search: Chunk-level vector exploration with similarity scores
- get_related_videos: Videos related by transcript similarity or shared tags
- vectorize_video / delete_video_embeddings: Maintain a video's embeddings
- get_embedding_stats / get_vector_stats: Embedding index statistics
- rebuild_search_index: Repopulate the full-text index
- warmup_search: Load the embedding model before the first search
- get_cached_result: Retrieve or paginate through cached results

{cache_instructions()}
""",
)

# =============================================================================
# Initialize RefCache
# =============================================================================

cache = RefCache(
    name="knowledge-hub",
    default_ttl=600,
    preview_config=PreviewConfig(
        max_size=256,
        default_strategy=PreviewStrategy.SAMPLE,
    ),
)

# =============================================================================
# Pydantic Models for Tool Inputs
# =============================================================================


class CacheQueryInput(BaseModel):
    """Input model for cache queries."""

    ref_id: str = Field(
        description="Reference ID to look up",
    )
    page: int | None = Field(
        default=None,
        ge=1,
        description="Page number for pagination (1-indexed)",
    )
    page_size: int | None = Field(
        default=None,
        ge=1,
        le=100,
        description="Number of items per page",
    )


# =============================================================================
# Search Tools
# =============================================================================


@mcp.tool
@cache.cached(namespace="public")
async def search_videos(
    query: str,
    limit: int = 20,
    min_score: float | None = None,
) -> dict[str, Any]:
    """Search ready videos with natural language.

    Tries a high-confidence vector search first, then a relaxed vector search,
    then a plain substring match over titles, descriptions and transcripts.

    Args:
        query: Natural language search query.
        limit: Maximum number of results (1-100).
        min_score: Optional minimum chunk similarity (0-1) for the first stage.

    Returns:
        Query, result count, hydrated results and the answering search_type.

    **Caching:** Large results are cached in the public namespace.
    """
    return await search_tools.search_videos(query, limit=limit, min_score=min_score)


@mcp.tool
@cache.cached(namespace="public")
async def hybrid_search_videos(query: str, limit: int = 20) -> dict[str, Any]:
    """Search with full-text, substring, tag and vector strategies combined.

    Args:
        query: Natural language search query.
        limit: Maximum number of results (1-100).

    Returns:
        Query, result count and merged, hydrated results.

    **Caching:** Large results are cached in the public namespace.
    """
    return await search_tools.hybrid_search_videos(query, limit=limit)


@mcp.tool
async def vector_search(
    query: str,
    limit: int = 10,
    min_score: float = 0.0,
) -> dict[str, Any]:
    """Explore transcript chunks closest to a query, with similarity scores.

    Args:
        query: Natural language query.
        limit: Maximum number of chunks (1-100).
        min_score: Minimum similarity (0-1).
    """
    return await search_tools.vector_search(query, limit=limit, min_score=min_score)


@mcp.tool
async def get_related_videos(video_id: str, limit: int = 5) -> dict[str, Any]:
    """Find videos related to a video by transcript similarity or shared tags.

    Args:
        video_id: Source video ID.
        limit: Maximum number of related videos.
    """
    return await search_tools.get_related_videos(video_id, limit=limit)


@mcp.tool
async def vectorize_video(video_id: str) -> dict[str, Any]:
    """Rebuild a video's transcript embeddings.

    Args:
        video_id: Video to vectorize.
    """
    return await search_tools.vectorize_video(video_id)


@mcp.tool
async def delete_video_embeddings(video_id: str) -> dict[str, Any]:
    """Remove a video's transcript embeddings from the vector index.

    Args:
        video_id: Video whose embeddings should be deleted.
    """
    return await search_tools.delete_video_embeddings(video_id)


@mcp.tool
async def get_embedding_stats(video_id: str) -> dict[str, Any]:
    """Check whether a video has embeddings and how many."""
    return await search_tools.get_embedding_stats(video_id)


@mcp.tool
async def get_vector_stats() -> dict[str, Any]:
    """Get total embeddings, indexed videos and average chunks per video."""
    return await search_tools.get_vector_stats()


@mcp.tool
async def rebuild_search_index() -> dict[str, Any]:
    """Repopulate the full-text search index from all ready videos."""
    return await search_tools.rebuild_search_index()


@mcp.tool
async def warmup_search() -> dict[str, Any]:
    """Load the embedding model and open the stores before the first search."""
    return await search_tools.warmup_search()


# =============================================================================
# Cache Access
# =============================================================================


@mcp.tool
@with_cache_docs(accepts_references=True, supports_pagination=True)
async def get_cached_result(
    ref_id: str,
    page: int | None = None,
    page_size: int | None = None,
) -> dict[str, Any]:
    """Retrieve a cached search result, optionally with pagination.

    Args:
        ref_id: Reference ID to look up.
        page: Page number (1-indexed).
        page_size: Items per page.

    Returns:
        The cached value or a preview with pagination info.

    **Pagination:** Use `page` and `page_size` to navigate results.

    **References:** This tool accepts `ref_id` from previous tool calls.
    """
    validated = CacheQueryInput(ref_id=ref_id, page=page, page_size=page_size)

    try:
        response: CacheResponse = cache.get(
            validated.ref_id,
            page=validated.page,
            page_size=validated.page_size,
            actor="agent",
        )
    except (PermissionError, KeyError):
        return {
            "error": "Invalid or inaccessible reference",
            "message": "Reference not found, expired, or access denied",
            "ref_id": validated.ref_id,
        }

    result: dict[str, Any] = {
        "ref_id": validated.ref_id,
        "preview": response.preview,
        "preview_strategy": response.preview_strategy.value,
        "total_items": response.total_items,
    }

    if response.page is not None:
        result["page"] = response.page
        result["total_pages"] = response.total_pages

    if response.original_size:
        result["original_size"] = response.original_size
        result["preview_size"] = response.preview_size

    return result


# =============================================================================
# Health Check
# =============================================================================


@mcp.tool
def health_check() -> dict[str, Any]:
    """Check server health status."""
    config = get_search_config()
    return {
        "status": "healthy",
        "server": "knowledge-hub",
        "cache": cache.name,
        "embedding_model": config.embedding_model,
        "collection": config.collection_name,
    }


# =============================================================================
# Prompts for Guidance
# =============================================================================


@mcp.prompt
def search_guide() -> str:
    """Guide for searching the video library."""
    return f"""# Video Knowledge Hub Guide

## Quick Start

1. **Warm up** once per session: `warmup_search()`

2. **Search**
   - `search_videos("kubernetes operators", limit=10)` for precise,
     vector-first search with graceful fallbacks
   - `hybrid_search_videos("nix flakes")` when keywords, tags and meaning
     should all count; results found by several strategies are "combined"

3. **Explore**
   - `vector_search(query, min_score=0.5)` shows matching transcript chunks
   - `get_related_videos(video_id)` lists similar videos

4. **Maintain**
   - `vectorize_video(video_id)` after a transcript changes
   - `rebuild_search_index()` after bulk metadata changes

---

{cache_guide_prompt()}
"""


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the MCP server."""
    parser = argparse.ArgumentParser(
        description="Video Knowledge Hub MCP server",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport mode (default: stdio for Claude Desktop)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for SSE transport (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for SSE transport (default: 127.0.0.1)",
    )

    args = parser.parse_args()

    # stdout carries the stdio transport
    logging.basicConfig(
        level=get_search_config().log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Video Knowledge Hub ({args.transport})")

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(
            transport="sse",
            host=args.host,
            port=args.port,
        )


if __name__ == "__main__":
    main()
