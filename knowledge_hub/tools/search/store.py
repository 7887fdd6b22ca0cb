"""Vector store factory for transcript chunk embeddings.

The ANN index is a ChromaDB collection wrapped by LangChain's ``Chroma``
store, configured with the HNSW parameters from ``SearchConfig``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from langchain_chroma import Chroma

from knowledge_hub.tools.search.config import get_search_config
from knowledge_hub.tools.search.embeddings import create_embeddings, get_embeddings

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from knowledge_hub.tools.search.config import SearchConfig


def create_vector_store(
    config: SearchConfig,
    embeddings: Embeddings | None = None,
) -> Chroma:
    """Create a Chroma vector store from configuration.

    Args:
        config: Search configuration with collection and HNSW settings.
        embeddings: Optional embedding model. Created from config if omitted.

    Returns:
        Chroma vector store. A ``persist_directory`` of None keeps it in memory.
    """
    if embeddings is None:
        embeddings = create_embeddings(config)

    return Chroma(
        collection_name=config.collection_name,
        embedding_function=embeddings,
        collection_configuration=config.collection_configuration,
        persist_directory=config.persist_directory,
    )


@lru_cache
def get_vector_store() -> Chroma:
    """Get the cached vector store built from the global configuration."""
    return create_vector_store(get_search_config(), embeddings=get_embeddings())
