"""Read access to the relational video metadata store.

The metadata store is a SQLite database reached through SQLAlchemy's asyncio
engine. It holds videos, transcripts, tags, chapters and the FTS5
``search_index`` table used by lexical search. The search core only reads
these tables (apart from maintaining ``search_index``); ``create_schema``
exists so a fresh local database can be bootstrapped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

from knowledge_hub.tools.search.models import Chapter, Tag, Transcript, VideoDocument

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS videos (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        thumbnail_url TEXT,
        duration INTEGER,
        upload_date DATETIME DEFAULT CURRENT_TIMESTAMP,
        status TEXT DEFAULT 'processing',
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transcripts (
        id TEXT PRIMARY KEY,
        video_id TEXT NOT NULL,
        content TEXT NOT NULL,
        language TEXT DEFAULT 'en',
        confidence_score REAL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (video_id) REFERENCES videos(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        id TEXT PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        category TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS video_tags (
        video_id TEXT NOT NULL,
        tag_id TEXT NOT NULL,
        confidence_score REAL DEFAULT 1.0,
        PRIMARY KEY (video_id, tag_id),
        FOREIGN KEY (video_id) REFERENCES videos(id) ON DELETE CASCADE,
        FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chapters (
        id TEXT PRIMARY KEY,
        video_id TEXT NOT NULL,
        title TEXT NOT NULL,
        start_time INTEGER NOT NULL,
        end_time INTEGER NOT NULL,
        summary TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (video_id) REFERENCES videos(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS search_index USING fts5(
        video_id UNINDEXED,
        title,
        description,
        transcript_content,
        tags
    )
    """,
)


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine, making sure a SQLite file's directory exists.

    Args:
        database_url: SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///videos.db``.

    Returns:
        AsyncEngine for the URL.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(url)


class MetadataStore:
    """Async read access to videos, transcripts, tags and chapters.

    Attributes:
        engine: SQLAlchemy async engine bound to the metadata database.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def create_schema(self) -> None:
        """Create all tables if they do not exist yet."""
        async with self.engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))
        logger.info("Metadata schema ready")

    async def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> Sequence[Mapping[str, Any]]:
        """Run a read query and return all rows as mappings."""
        async with self.engine.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return result.mappings().all()

    async def fetch_one(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> Mapping[str, Any] | None:
        """Run a read query and return the first row, if any."""
        async with self.engine.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return result.mappings().first()

    async def get_video(self, video_id: str) -> VideoDocument | None:
        """Load a video with its tag names and transcript flag."""
        row = await self.fetch_one(
            """
            SELECT v.*,
                   EXISTS (SELECT 1 FROM transcripts t WHERE t.video_id = v.id)
                       AS has_transcript
            FROM videos v
            WHERE v.id = :video_id
            """,
            {"video_id": video_id},
        )
        if row is None:
            return None

        tags = await self.get_video_tags(video_id)
        return _video_from_row(row, {tag.name for tag in tags})

    async def get_video_tags(self, video_id: str) -> list[Tag]:
        rows = await self.fetch_all(
            """
            SELECT t.id, t.name, t.category, t.created_at
            FROM tags t
            JOIN video_tags vt ON t.id = vt.tag_id
            WHERE vt.video_id = :video_id
            ORDER BY t.name
            """,
            {"video_id": video_id},
        )
        return [Tag(**_stringify(row, "created_at")) for row in rows]

    async def get_video_chapters(self, video_id: str) -> list[Chapter]:
        rows = await self.fetch_all(
            """
            SELECT id, video_id, title, start_time, end_time, summary
            FROM chapters
            WHERE video_id = :video_id
            ORDER BY start_time ASC
            """,
            {"video_id": video_id},
        )
        return [Chapter(**row) for row in rows]

    async def get_video_transcript(self, video_id: str) -> Transcript | None:
        row = await self.fetch_one(
            """
            SELECT id, video_id, content, language, confidence_score, created_at
            FROM transcripts
            WHERE video_id = :video_id
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"video_id": video_id},
        )
        if row is None:
            return None
        data = _stringify(row, "created_at")
        data["language"] = data.get("language") or "en"
        return Transcript(**data)

    async def find_videos_sharing_tags(
        self, video_id: str, limit: int
    ) -> list[tuple[str, float]]:
        """Rank other ready videos by the tags they share with ``video_id``.

        Returns:
            ``(video_id, score)`` pairs where score is the number of shared
            tags times their average confidence.
        """
        rows = await self.fetch_all(
            """
            SELECT v.id AS video_id,
                   COUNT(vt.tag_id) * AVG(COALESCE(vt.confidence_score, 1.0)) AS score
            FROM videos v
            JOIN video_tags vt ON v.id = vt.video_id
            WHERE vt.tag_id IN (
                    SELECT tag_id FROM video_tags WHERE video_id = :video_id
                  )
              AND v.id != :video_id
              AND v.status = 'ready'
            GROUP BY v.id
            ORDER BY score DESC, v.upload_date DESC
            LIMIT :limit
            """,
            {"video_id": video_id, "limit": limit},
        )
        return [(row["video_id"], float(row["score"] or 0.0)) for row in rows]

    async def close(self) -> None:
        await self.engine.dispose()


def _stringify(row: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    """Copy a row, turning the given timestamp columns into strings."""
    data = dict(row)
    for key in keys:
        if data.get(key) is not None:
            data[key] = str(data[key])
    return data


def _video_from_row(row: Mapping[str, Any], tags: set[str]) -> VideoDocument:
    data = _stringify(row, "upload_date", "created_at", "updated_at")
    return VideoDocument(
        id=data["id"],
        title=data["title"],
        description=data.get("description"),
        status=data.get("status") or "processing",
        thumbnail_url=data.get("thumbnail_url"),
        duration=data.get("duration"),
        upload_date=data.get("upload_date"),
        created_at=data.get("created_at"),
        updated_at=data.get("updated_at"),
        tags=tags,
        has_transcript=bool(data.get("has_transcript")),
    )
