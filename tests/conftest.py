"""Pytest configuration and fixtures for knowledge hub tests."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from langchain_core.embeddings import Embeddings
from sqlalchemy import text

from knowledge_hub.tools.search.config import SearchConfig
from knowledge_hub.tools.search.metadata import MetadataStore, create_engine_for_url

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def clear_search_caches() -> Generator[None, None, None]:
    """Clear lru_cache on search singletons between tests.

    A test that calls a real factory would otherwise leak its cached
    instance into later tests that patch the same factory.
    """
    from knowledge_hub.tools.search.config import get_search_config
    from knowledge_hub.tools.search.embeddings import get_embeddings
    from knowledge_hub.tools.search.store import get_vector_store
    from knowledge_hub.tools.search.tools import get_search_service

    get_search_service.cache_clear()
    get_vector_store.cache_clear()
    get_embeddings.cache_clear()
    get_search_config.cache_clear()

    yield

    get_search_service.cache_clear()
    get_vector_store.cache_clear()
    get_embeddings.cache_clear()
    get_search_config.cache_clear()


# =============================================================================
# Fake embedding model and vector collection
# =============================================================================

VOCABULARY = ("kubernetes", "operator", "helm", "pasta", "python")


class KeywordEmbeddings(Embeddings):
    """Deterministic embeddings counting vocabulary words, plus a small bias."""

    def embed_query(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY] + [0.05]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]


def cosine_distance(a: list[float], b: list[float]) -> float:
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 1.0
    return 1.0 - sum(x * y for x, y in zip(a, b)) / norm


class FakeCollection:
    """In-memory stand-in for a ChromaDB collection."""

    name = "test_collection"

    def __init__(self) -> None:
        self.storage: dict[str, dict[str, Any]] = {}
        self.last_n_results: int | None = None

    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict[str, Any]],
        documents: list[str],
    ) -> None:
        for doc_id, embedding, metadata, document in zip(
            ids, embeddings, metadatas, documents
        ):
            self.storage[doc_id] = {
                "embedding": embedding,
                "metadata": metadata,
                "document": document,
            }

    def query(
        self,
        query_embeddings: list[list[float]],
        n_results: int,
        include: list[str] | None = None,
    ) -> dict[str, Any]:
        self.last_n_results = n_results
        ranked = sorted(
            (
                (cosine_distance(query_embeddings[0], item["embedding"]), doc_id)
                for doc_id, item in self.storage.items()
            ),
        )[:n_results]
        return {
            "ids": [[doc_id for _, doc_id in ranked]],
            "metadatas": [[self.storage[doc_id]["metadata"] for _, doc_id in ranked]],
            "distances": [[distance for distance, _ in ranked]],
        }

    def get(
        self,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
        include: list[str] | None = None,
    ) -> dict[str, Any]:
        results: dict[str, Any] = {"ids": [], "metadatas": []}
        for doc_id, item in self.storage.items():
            if where and any(item["metadata"].get(k) != v for k, v in where.items()):
                continue
            results["ids"].append(doc_id)
            if include is None or "metadatas" in include:
                results["metadatas"].append(item["metadata"])
            if limit and len(results["ids"]) >= limit:
                break
        return results

    def delete(self, ids: list[str] | None = None) -> None:
        for doc_id in ids or []:
            self.storage.pop(doc_id, None)

    def count(self) -> int:
        return len(self.storage)


@pytest.fixture
def fake_embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture
def fake_collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def mock_vector_store(
    fake_collection: FakeCollection, fake_embeddings: KeywordEmbeddings
) -> MagicMock:
    """Mock Chroma store exposing the fake collection and embeddings."""
    store = MagicMock()
    store._collection = fake_collection
    store.embeddings = fake_embeddings
    return store


@pytest.fixture
def search_config() -> SearchConfig:
    """Search configuration with small chunks and no persistence."""
    return SearchConfig(
        chunk_size=100,
        chunk_overlap=20,
        persist_directory=None,
    )


# =============================================================================
# Metadata store with a seeded library
# =============================================================================

SEED_STATEMENTS: tuple[tuple[str, dict[str, Any]], ...] = (
    ("INSERT INTO tags (id, name) VALUES (:id, :name)", {"id": "t1", "name": "kubernetes"}),
    ("INSERT INTO tags (id, name) VALUES (:id, :name)", {"id": "t2", "name": "devops"}),
    ("INSERT INTO tags (id, name) VALUES (:id, :name)", {"id": "t3", "name": "cooking"}),
    ("INSERT INTO tags (id, name) VALUES (:id, :name)", {"id": "t4", "name": "python"}),
)

SEED_VIDEOS: tuple[dict[str, Any], ...] = (
    {
        "id": "v1",
        "title": "Kubernetes Operators Explained",
        "description": "Deep dive into operators",
        "status": "ready",
        "created_at": "2024-01-01 00:00:00",
        "transcript": "In this talk we build a kubernetes operator in python step by step.",
        "tags": ("t1", "t2", "t4"),
    },
    {
        "id": "v2",
        "title": "Helm Charts for Kubernetes",
        "description": "Packaging apps",
        "status": "ready",
        "created_at": "2024-02-01 00:00:00",
        "transcript": "helm packages kubernetes manifests into charts",
        "tags": ("t1", "t2"),
    },
    {
        "id": "v3",
        "title": "Italian Cooking Basics",
        "description": "Pasta from scratch",
        "status": "ready",
        "created_at": "2024-03-01 00:00:00",
        "transcript": "we make fresh pasta with eggs and flour",
        "tags": ("t3",),
    },
    {
        "id": "v4",
        "title": "Kubernetes Draft",
        "description": "unfinished",
        "status": "processing",
        "created_at": "2024-04-01 00:00:00",
        "transcript": "kubernetes draft transcript",
        "tags": ("t1",),
    },
    {
        "id": "v5",
        "title": "Python Tips",
        "description": None,
        "status": "ready",
        "created_at": "2024-05-01 00:00:00",
        "transcript": None,
        "tags": ("t4",),
    },
)


async def seed_library(store: MetadataStore) -> None:
    """Insert the sample videos, transcripts, tags and chapters."""
    async with store.engine.begin() as conn:
        for sql, params in SEED_STATEMENTS:
            await conn.execute(text(sql), params)

        for video in SEED_VIDEOS:
            await conn.execute(
                text(
                    "INSERT INTO videos (id, title, description, status, created_at, upload_date)"
                    " VALUES (:id, :title, :description, :status, :created_at, :created_at)"
                ),
                {key: video[key] for key in ("id", "title", "description", "status", "created_at")},
            )
            if video["transcript"] is not None:
                await conn.execute(
                    text(
                        "INSERT INTO transcripts (id, video_id, content)"
                        " VALUES (:id, :video_id, :content)"
                    ),
                    {
                        "id": f"tr-{video['id']}",
                        "video_id": video["id"],
                        "content": video["transcript"],
                    },
                )
            for tag_id in video["tags"]:
                await conn.execute(
                    text("INSERT INTO video_tags (video_id, tag_id) VALUES (:video_id, :tag_id)"),
                    {"video_id": video["id"], "tag_id": tag_id},
                )

        await conn.execute(
            text(
                "INSERT INTO chapters (id, video_id, title, start_time, end_time)"
                " VALUES ('c1', 'v1', 'Intro', 0, 60),"
                " ('c2', 'v1', 'Writing the operator', 60, 300)"
            )
        )


@pytest_asyncio.fixture
async def metadata_store(tmp_path: Path) -> AsyncGenerator[MetadataStore, None]:
    """Real SQLite metadata store in a temporary directory, seeded."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'videos.db'}")
    store = MetadataStore(engine)
    await store.create_schema()
    await seed_library(store)
    yield store
    await store.close()
