"""Unit tests for search configuration, embeddings and vector store factories."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from knowledge_hub.tools.search.config import (
    BoostWeights,
    SearchConfig,
    get_search_config,
)
from knowledge_hub.tools.search.embeddings import create_embeddings, get_embeddings
from knowledge_hub.tools.search.store import create_vector_store, get_vector_store


class TestSearchConfig:
    """Tests for SearchConfig settings model."""

    def test_default_values(self) -> None:
        """Defaults match the documented tuning."""
        config = SearchConfig()

        assert config.embedding_model == "nomic-embed-text-v1.5"
        assert config.embedding_dimensionality == 768
        assert config.chunk_size == 1000
        assert config.chunk_overlap == 200
        assert config.chunk_min_fill_ratio == 0.8
        assert config.query_max_chars == 2000
        assert config.similar_top_k_cap == 20
        assert config.similarity_floor == 0.5
        assert config.high_confidence_score == 0.60
        assert config.low_confidence_score == 0.40
        assert config.low_confidence_limit == 10
        assert config.vector_score_scale == 10.0
        assert config.related_cache_ttl_seconds == 600.0
        assert config.collection_name == "video_embeddings"

    def test_database_url_defaults_to_sqlite(self) -> None:
        config = SearchConfig()

        assert config.database_url.startswith("sqlite+aiosqlite:///")
        assert config.database_url.endswith("videos.db")

    def test_chunk_overlap_must_be_smaller_than_chunk_size(self) -> None:
        """Windows must always advance."""
        with pytest.raises(ValidationError, match="chunk_overlap must be less than chunk_size"):
            SearchConfig(chunk_size=200, chunk_overlap=200)

    def test_invalid_dimensionality_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchConfig(embedding_dimensionality=100)  # type: ignore[arg-type]

    def test_chunk_size_bounds(self) -> None:
        with pytest.raises(ValidationError, match="greater than or equal to"):
            SearchConfig(chunk_size=99, chunk_overlap=10)

        with pytest.raises(ValidationError, match="less than or equal to"):
            SearchConfig(chunk_size=4001)

    def test_boost_weights_property(self) -> None:
        config = SearchConfig(lexical_boost=2.0, tag_weight=0.1)

        assert config.boost_weights == BoostWeights(
            lexical_boost=2.0,
            semantic_weight=0.5,
            tag_weight=0.1,
            vector_weight=0.7,
        )

    def test_collection_configuration_property(self) -> None:
        config = SearchConfig()

        assert config.collection_configuration == {
            "hnsw": {
                "space": "cosine",
                "max_neighbors": 48,
                "ef_construction": 200,
                "ef_search": 128,
            }
        }

    def test_persist_directory_expansion(self) -> None:
        """~ is expanded in persist_directory."""
        config = SearchConfig(persist_directory="~/test/path")

        assert "~" not in config.persist_directory  # type: ignore[operator]
        assert config.persist_directory.endswith("/test/path")  # type: ignore[union-attr]

    def test_persist_directory_none(self) -> None:
        config = SearchConfig(persist_directory=None)

        assert config.persist_directory is None

    @patch.dict(
        "os.environ",
        {
            "SEARCH_CHUNK_SIZE": "1200",
            "SEARCH_HIGH_CONFIDENCE_SCORE": "0.7",
            "SEARCH_LEXICAL_BOOST": "2.5",
        },
    )
    def test_environment_variable_loading(self) -> None:
        config = SearchConfig()

        assert config.chunk_size == 1200
        assert config.high_confidence_score == 0.7
        assert config.lexical_boost == 2.5

    def test_get_search_config_is_cached(self) -> None:
        assert get_search_config() is get_search_config()


class TestCreateEmbeddings:
    """Tests for the embedding model factory."""

    @patch("knowledge_hub.tools.search.embeddings.NomicEmbeddings")
    def test_creates_embeddings_with_config(self, mock_nomic: MagicMock) -> None:
        config = SearchConfig(embedding_dimensionality=256, embedding_inference_mode="remote")

        result = create_embeddings(config)

        assert result is mock_nomic.return_value
        mock_nomic.assert_called_once_with(
            model="nomic-embed-text-v1.5",
            dimensionality=256,
            inference_mode="remote",
        )

    @patch("knowledge_hub.tools.search.embeddings.NomicEmbeddings")
    def test_get_embeddings_is_cached(self, mock_nomic: MagicMock) -> None:
        first = get_embeddings()
        second = get_embeddings()

        assert first is second
        mock_nomic.assert_called_once()


class TestCreateVectorStore:
    """Tests for the vector store factory."""

    @patch("knowledge_hub.tools.search.store.Chroma")
    def test_creates_store_with_hnsw_configuration(self, mock_chroma: MagicMock) -> None:
        config = SearchConfig(collection_name="test_videos", persist_directory=None)
        embeddings = MagicMock()

        result = create_vector_store(config, embeddings=embeddings)

        assert result is mock_chroma.return_value
        mock_chroma.assert_called_once_with(
            collection_name="test_videos",
            embedding_function=embeddings,
            collection_configuration=config.collection_configuration,
            persist_directory=None,
        )

    @patch("knowledge_hub.tools.search.store.create_embeddings")
    @patch("knowledge_hub.tools.search.store.Chroma")
    def test_creates_embeddings_when_missing(
        self, mock_chroma: MagicMock, mock_create_embeddings: MagicMock
    ) -> None:
        config = SearchConfig(persist_directory=None)

        create_vector_store(config)

        mock_create_embeddings.assert_called_once_with(config)
        assert (
            mock_chroma.call_args.kwargs["embedding_function"]
            is mock_create_embeddings.return_value
        )

    @patch("knowledge_hub.tools.search.store.get_embeddings")
    @patch("knowledge_hub.tools.search.store.Chroma")
    def test_get_vector_store_is_cached(
        self, mock_chroma: MagicMock, mock_get_embeddings: MagicMock
    ) -> None:
        assert get_vector_store() is get_vector_store()
        mock_chroma.assert_called_once()
