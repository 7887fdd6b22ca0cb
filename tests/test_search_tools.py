"""Tests for the search tool functions and service wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from knowledge_hub.tools.search import tools
from knowledge_hub.tools.search.cache import RelatedVideoCache
from knowledge_hub.tools.search.facade import InvalidQueryError, SearchFacade
from knowledge_hub.tools.search.models import (
    ChunkMatch,
    ChunkMetadata,
    EmbeddingStats,
    IndexingResult,
    RelatedVideo,
    SearchResult,
    StrategyTag,
    VideoDocument,
)


def _result(video_id: str, score: float, strategy: StrategyTag) -> SearchResult:
    return SearchResult(
        video=VideoDocument(id=video_id, title=f"Video {video_id}", status="ready"),
        relevance_score=score,
        search_type=strategy,
    )


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock()
    service.search = AsyncMock(return_value=[])
    service.hybrid_search = AsyncMock(return_value=[])
    service.vector_search = AsyncMock(return_value=[])
    service.get_related_videos = AsyncMock(return_value=[])
    service.vectorize_video = AsyncMock(return_value=IndexingResult())
    service.delete_video_embeddings = AsyncMock(return_value=0)
    service.embedding_stats = AsyncMock()
    service.vector_stats = AsyncMock(return_value=EmbeddingStats())
    service.rebuild_search_index = AsyncMock(return_value=0)
    return service


@pytest.fixture
def patched_service(mock_service: MagicMock):
    with patch(
        "knowledge_hub.tools.search.tools.get_search_service", return_value=mock_service
    ):
        yield mock_service


class TestSearchTools:
    """Tests for the search tool response shapes."""

    @pytest.mark.asyncio
    async def test_search_videos_response(self, patched_service: MagicMock) -> None:
        patched_service.search.return_value = [
            _result("v1", 9.0, StrategyTag.VECTOR),
            _result("v2", 7.0, StrategyTag.VECTOR),
        ]

        result = await tools.search_videos("kubernetes", limit=5, min_score=0.7)

        patched_service.search.assert_awaited_once_with("kubernetes", limit=5, min_score=0.7)
        assert result["query"] == "kubernetes"
        assert result["count"] == 2
        assert result["search_type"] == "vector"
        assert result["results"][0]["video"]["id"] == "v1"
        assert result["results"][0]["search_type"] == "vector"

    @pytest.mark.asyncio
    async def test_search_videos_without_results(self, patched_service: MagicMock) -> None:
        result = await tools.search_videos("nothing")

        assert result == {"query": "nothing", "count": 0, "results": [], "search_type": "none"}

    @pytest.mark.asyncio
    async def test_blank_query_propagates(self, patched_service: MagicMock) -> None:
        patched_service.search.side_effect = InvalidQueryError("Search query must not be empty")

        with pytest.raises(InvalidQueryError):
            await tools.search_videos("  ")

    @pytest.mark.asyncio
    async def test_hybrid_search_videos_response(self, patched_service: MagicMock) -> None:
        patched_service.hybrid_search.return_value = [
            _result("v1", 15.4, StrategyTag.COMBINED),
            _result("v3", 3.0, StrategyTag.TAG),
        ]

        result = await tools.hybrid_search_videos("kubernetes", limit=10)

        patched_service.hybrid_search.assert_awaited_once_with("kubernetes", limit=10)
        assert result["count"] == 2
        assert result["search_type"] == "combined"
        assert [r["search_type"] for r in result["results"]] == ["combined", "tag"]

    @pytest.mark.asyncio
    async def test_vector_search_response(self, patched_service: MagicMock) -> None:
        patched_service.vector_search.return_value = [
            ChunkMatch(
                video_id="v1",
                chunk_index=2,
                content="operator reconcile loop",
                score=0.83,
                metadata=ChunkMetadata(video_id="v1", chunk_index=2, video_title="Operators"),
            )
        ]

        result = await tools.vector_search("reconcile", limit=3, min_score=0.5)

        patched_service.vector_search.assert_awaited_once_with(
            "reconcile", limit=3, min_score=0.5
        )
        assert result["query"] == "reconcile"
        assert result["count"] == 1
        chunk = result["results"][0]
        assert chunk["video_id"] == "v1"
        assert chunk["chunk_index"] == 2
        assert chunk["score"] == 0.83

    @pytest.mark.asyncio
    async def test_get_related_videos_response(self, patched_service: MagicMock) -> None:
        patched_service.get_related_videos.return_value = [
            RelatedVideo(
                video=VideoDocument(id="v2", title="Helm", status="ready"),
                confidence_score=0.9,
            )
        ]

        result = await tools.get_related_videos("v1", limit=3)

        patched_service.get_related_videos.assert_awaited_once_with("v1", limit=3)
        assert result["video_id"] == "v1"
        assert result["count"] == 1
        assert result["related"][0]["video"]["id"] == "v2"
        assert result["related"][0]["confidence_score"] == 0.9


class TestMaintenanceTools:
    @pytest.mark.asyncio
    async def test_vectorize_video(self, patched_service: MagicMock) -> None:
        patched_service.vectorize_video.return_value = IndexingResult(
            indexed_count=1, chunk_count=4, video_ids=["v1"]
        )

        result = await tools.vectorize_video("v1")

        assert result["indexed_count"] == 1
        assert result["chunk_count"] == 4
        assert result["video_ids"] == ["v1"]

    @pytest.mark.asyncio
    async def test_delete_video_embeddings(self, patched_service: MagicMock) -> None:
        patched_service.delete_video_embeddings.return_value = 4

        result = await tools.delete_video_embeddings("v1")

        assert result == {"video_id": "v1", "chunks_deleted": 4}

    @pytest.mark.asyncio
    async def test_get_embedding_stats(self, patched_service: MagicMock) -> None:
        patched_service.embedding_stats.return_value = {
            "video_id": "v1",
            "has_embeddings": False,
            "embedding_count": 0,
        }

        result = await tools.get_embedding_stats("v1")

        assert result["has_embeddings"] is False

    @pytest.mark.asyncio
    async def test_get_vector_stats(self, patched_service: MagicMock) -> None:
        patched_service.vector_stats.return_value = EmbeddingStats(
            total_embeddings=12, unique_videos=3, average_chunks_per_video=4.0
        )

        result = await tools.get_vector_stats()

        assert result == {
            "total_embeddings": 12,
            "unique_videos": 3,
            "average_chunks_per_video": 4.0,
        }

    @pytest.mark.asyncio
    async def test_rebuild_search_index(self, patched_service: MagicMock) -> None:
        patched_service.rebuild_search_index.return_value = 4

        result = await tools.rebuild_search_index()

        assert result == {"status": "rebuilt", "indexed_videos": 4}


class TestGetSearchService:
    """Tests for wiring the shared facade."""

    def test_builds_facade_from_config(
        self, mock_vector_store: MagicMock, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SEARCH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'db.sqlite'}")
        monkeypatch.setenv("SEARCH_RELATED_CACHE_TTL_SECONDS", "30")

        with patch(
            "knowledge_hub.tools.search.store.get_vector_store",
            return_value=mock_vector_store,
        ):
            service = tools.get_search_service()

        assert isinstance(service, SearchFacade)
        assert service.indexer.vector_store is mock_vector_store
        assert isinstance(service.related_cache, RelatedVideoCache)
        assert service.related_cache.ttl_seconds == 30.0
        assert service.lexical.store is service.store

    def test_is_a_singleton(
        self, mock_vector_store: MagicMock, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SEARCH_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'db.sqlite'}")

        with patch(
            "knowledge_hub.tools.search.store.get_vector_store",
            return_value=mock_vector_store,
        ):
            assert tools.get_search_service() is tools.get_search_service()


class TestWarmupSearch:
    @pytest.mark.asyncio
    async def test_reports_model_and_collection(self, mock_service: MagicMock) -> None:
        mock_service.indexer.embeddings.aembed_query = AsyncMock(return_value=[0.1] * 768)
        mock_service.indexer.vector_store._collection.name = "video_transcripts"
        mock_service.store.create_schema = AsyncMock()

        with patch(
            "knowledge_hub.tools.search.tools.get_search_service", return_value=mock_service
        ):
            result = await tools.warmup_search()

        mock_service.store.create_schema.assert_awaited_once()
        assert result["status"] == "ready"
        assert result["test_embedding_size"] == 768
        assert result["collection_name"] == "video_transcripts"
        assert result["warmup_time_seconds"] >= 0
