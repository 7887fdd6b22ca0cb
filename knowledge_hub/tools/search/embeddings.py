"""Embedding model factory for transcript chunks and search queries.

Builds a LangChain ``Embeddings`` implementation backed by Nomic embeddings
with Matryoshka dimensionality, configured from ``SearchConfig``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from langchain_nomic import NomicEmbeddings

from knowledge_hub.tools.search.config import get_search_config

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from knowledge_hub.tools.search.config import SearchConfig


def create_embeddings(config: SearchConfig) -> Embeddings:
    """Create an embedding model from configuration.

    Args:
        config: Search configuration with embedding settings.

    Returns:
        Configured NomicEmbeddings instance.
    """
    return NomicEmbeddings(
        model=config.embedding_model,
        dimensionality=config.embedding_dimensionality,
        inference_mode=config.embedding_inference_mode,
    )


@lru_cache
def get_embeddings() -> Embeddings:
    """Get the cached embedding model built from the global configuration."""
    return create_embeddings(get_search_config())
