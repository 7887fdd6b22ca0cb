"""Cheap substring and tag matchers used when precise strategies come up empty.

Both matchers compare the raw query, case-insensitively, against metadata
columns with ``LIKE`` and only ever return videos with a positive score.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from knowledge_hub.tools.search.models import SearchMatch, StrategyTag

if TYPE_CHECKING:
    from collections.abc import Iterable

    from knowledge_hub.tools.search.metadata import MetadataStore

logger = logging.getLogger(__name__)

# Score tier per matched field; tiers of all matched fields are summed.
FIELD_SCORES: dict[str, int] = {
    "title": 10,
    "description": 8,
    "transcript": 6,
    "tag": 5,
    "chapter": 4,
}

BASIC_FIELDS: tuple[str, ...] = ("title", "description", "transcript")

TAG_MATCH_SCORE = 3

_FIELD_CONDITIONS: dict[str, str] = {
    "title": "LOWER(v.title) LIKE :pattern ESCAPE '\\'",
    "description": "LOWER(COALESCE(v.description, '')) LIKE :pattern ESCAPE '\\'",
    "transcript": (
        "EXISTS (SELECT 1 FROM transcripts t WHERE t.video_id = v.id"
        " AND LOWER(t.content) LIKE :pattern ESCAPE '\\')"
    ),
    "tag": (
        "EXISTS (SELECT 1 FROM video_tags vt JOIN tags tag ON vt.tag_id = tag.id"
        " WHERE vt.video_id = v.id AND LOWER(tag.name) LIKE :pattern ESCAPE '\\')"
    ),
    "chapter": (
        "EXISTS (SELECT 1 FROM chapters c WHERE c.video_id = v.id"
        " AND LOWER(c.title) LIKE :pattern ESCAPE '\\')"
    ),
}


def like_pattern(query: str) -> str:
    """Build a lowercase containment pattern with LIKE wildcards escaped."""
    escaped = (
        query.lower()
        .replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
    return f"%{escaped}%"


class SubstringMatcher:
    """Scores ready videos by which fields contain the query."""

    def __init__(self, store: MetadataStore) -> None:
        self.store = store

    async def match(
        self,
        query: str,
        limit: int = 20,
        fields: Iterable[str] = tuple(FIELD_SCORES),
        strategy: StrategyTag = StrategyTag.SEMANTIC,
    ) -> list[SearchMatch]:
        """Find videos whose fields contain the query.

        Args:
            query: Raw user query.
            limit: Maximum number of videos.
            fields: Fields to check, a subset of ``FIELD_SCORES``.
            strategy: Label for the returned matches.

        Returns:
            Matches with the summed field tiers as score, best then newest first.
        """
        query = query.strip()
        if not query:
            return []

        wanted = set(fields)
        selected = [name for name in FIELD_SCORES if name in wanted]
        if not selected:
            raise ValueError(f"No known fields in {sorted(wanted)!r}")

        score_sql = " + ".join(
            f"(CASE WHEN {_FIELD_CONDITIONS[name]} THEN {FIELD_SCORES[name]} ELSE 0 END)"
            for name in selected
        )
        rows = await self.store.fetch_all(
            f"""
            SELECT video_id, score FROM (
                SELECT v.id AS video_id, v.created_at AS created_at, {score_sql} AS score
                FROM videos v
                WHERE v.status = 'ready'
            )
            WHERE score > 0
            ORDER BY score DESC, created_at DESC
            LIMIT :limit
            """,
            {"pattern": like_pattern(query), "limit": limit},
        )
        logger.debug(f"Substring matcher found {len(rows)} videos for {query!r}")

        return [
            SearchMatch(video_id=row["video_id"], score=float(row["score"]), strategy=strategy)
            for row in rows
        ]


class TagOverlapMatcher:
    """Scores ready videos by how many of their tags contain the query."""

    def __init__(self, store: MetadataStore) -> None:
        self.store = store

    async def match(self, query: str, limit: int = 20) -> list[SearchMatch]:
        query = query.strip()
        if not query:
            return []

        rows = await self.store.fetch_all(
            """
            SELECT v.id AS video_id, COUNT(DISTINCT tag.id) * :per_tag AS score
            FROM videos v
            JOIN video_tags vt ON v.id = vt.video_id
            JOIN tags tag ON vt.tag_id = tag.id
            WHERE v.status = 'ready'
              AND LOWER(tag.name) LIKE :pattern ESCAPE '\\'
            GROUP BY v.id
            ORDER BY score DESC, v.created_at DESC
            LIMIT :limit
            """,
            {"pattern": like_pattern(query), "per_tag": TAG_MATCH_SCORE, "limit": limit},
        )

        return [
            SearchMatch(video_id=row["video_id"], score=float(row["score"]), strategy=StrategyTag.TAG)
            for row in rows
            if row["score"]
        ]
