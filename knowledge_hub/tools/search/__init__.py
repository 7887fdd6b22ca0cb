"""Hybrid video search module.

Combines vector similarity over transcript chunks, BM25 full-text search,
tag overlap and a substring fallback into one ranked result list, and
degrades gracefully when any strategy fails or finds nothing.

Components:
    SearchConfig: Pydantic settings for embeddings, HNSW, chunking and ranking.
    get_embeddings: Factory for NomicEmbeddings with Matryoshka dimensionality.
    get_vector_store: Factory for the ChromaDB vector store with HNSW config.
    TextChunker: Overlapping, word-boundary-aware transcript chunker.
    EmbeddingIndexer: Chunk embedding storage and similarity queries.
    MetadataStore: Async SQLite access to videos, tags, chapters and transcripts.
    LexicalSearch: FTS5 BM25 search.
    SubstringMatcher / TagOverlapMatcher: Cheap fallback matchers.
    ResultMerger: Boosted merge of strategy results.
    RelatedVideoCache: TTL cache for related-video lookups.
    SearchFacade: Fallback-chain and hybrid search entry point.

Example:
    >>> from knowledge_hub.tools.search import get_search_service
    >>> results = await get_search_service().hybrid_search("nix flakes", limit=5)
"""

from knowledge_hub.tools.search.cache import RelatedVideoCache
from knowledge_hub.tools.search.chunker import TextChunker
from knowledge_hub.tools.search.config import (
    BoostWeights,
    SearchConfig,
    get_search_config,
)
from knowledge_hub.tools.search.embeddings import create_embeddings, get_embeddings
from knowledge_hub.tools.search.facade import (
    InvalidQueryError,
    SearchFacade,
    SearchStage,
    next_stage,
)
from knowledge_hub.tools.search.fallback import SubstringMatcher, TagOverlapMatcher
from knowledge_hub.tools.search.indexer import EmbeddingIndexer
from knowledge_hub.tools.search.lexical import LexicalSearch, preprocess_query
from knowledge_hub.tools.search.metadata import MetadataStore, create_engine_for_url
from knowledge_hub.tools.search.models import (
    IndexingResult,
    SearchMatch,
    SearchResult,
    StrategyTag,
)
from knowledge_hub.tools.search.ranker import ResultMerger, StrategyResults
from knowledge_hub.tools.search.store import create_vector_store, get_vector_store
from knowledge_hub.tools.search.tools import get_search_service

__all__ = [
    "BoostWeights",
    "EmbeddingIndexer",
    "IndexingResult",
    "InvalidQueryError",
    "LexicalSearch",
    "MetadataStore",
    "RelatedVideoCache",
    "ResultMerger",
    "SearchConfig",
    "SearchFacade",
    "SearchMatch",
    "SearchResult",
    "SearchStage",
    "StrategyResults",
    "StrategyTag",
    "SubstringMatcher",
    "TagOverlapMatcher",
    "TextChunker",
    "create_embeddings",
    "create_engine_for_url",
    "create_vector_store",
    "get_embeddings",
    "get_search_config",
    "get_search_service",
    "get_vector_store",
    "next_stage",
    "preprocess_query",
]
