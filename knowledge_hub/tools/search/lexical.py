"""Full-text search over the FTS5 ``search_index`` table.

Queries are turned into an OR of prefix terms so short natural-language
questions still match; ranking is BM25 over title, description, transcript
and tags. Only ``ready`` videos are returned. An empty index is built
from the metadata store on the first query.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from sqlalchemy import text

from knowledge_hub.tools.search.models import SearchMatch, StrategyTag

if TYPE_CHECKING:
    from knowledge_hub.tools.search.metadata import MetadataStore

logger = logging.getLogger(__name__)

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "how", "what", "when", "where", "why", "is", "are",
        "was", "were",
    }
)

_PUNCTUATION = re.compile(r"[^\w\s]")

_INDEX_INSERT = """
    INSERT INTO search_index (video_id, title, description, transcript_content, tags)
    SELECT v.id,
           v.title,
           COALESCE(v.description, ''),
           COALESCE((SELECT t.content FROM transcripts t
                     WHERE t.video_id = v.id
                     ORDER BY t.created_at DESC LIMIT 1), ''),
           COALESCE(GROUP_CONCAT(tag.name, ' '), '')
    FROM videos v
    LEFT JOIN video_tags vt ON v.id = vt.video_id
    LEFT JOIN tags tag ON vt.tag_id = tag.id
"""


def preprocess_query(query: str) -> str | None:
    """Build an FTS5 match expression from a free-text query.

    Lowercases, replaces punctuation with spaces, drops stop words and tokens
    of two characters or fewer, then ORs the remaining tokens as prefix terms.

    Args:
        query: Raw user query.

    Returns:
        Match expression such as ``kubernetes* OR operator*``, or None when no
        usable token remains.
    """
    words = _PUNCTUATION.sub(" ", query.lower()).split()
    tokens = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    if not tokens:
        return None
    return " OR ".join(f"{token}*" for token in tokens)


class LexicalSearch:
    """BM25-ranked full-text search adapter.

    Attributes:
        store: Metadata store holding the ``search_index`` table.
    """

    def __init__(self, store: MetadataStore) -> None:
        self.store = store
        self._index_checked = False

    async def search(self, query: str, limit: int = 20) -> list[SearchMatch]:
        """Search the full-text index.

        Args:
            query: Raw user query.
            limit: Maximum number of videos.

        Returns:
            Matches labelled ``lexical``, best first. Scores are the negated
            BM25 rank, so higher is better.
        """
        expression = preprocess_query(query)
        if expression is None:
            logger.debug(f"No searchable tokens in query {query!r}")
            return []

        await self._ensure_index()
        rows = await self.store.fetch_all(
            """
            SELECT search_index.video_id AS video_id,
                   -bm25(search_index) AS score,
                   snippet(search_index, 3, '', '', '...', 16) AS excerpt
            FROM search_index
            JOIN videos v ON v.id = search_index.video_id
            WHERE search_index MATCH :expression AND v.status = 'ready'
            ORDER BY bm25(search_index)
            LIMIT :limit
            """,
            {"expression": expression, "limit": limit},
        )

        return [
            SearchMatch(
                video_id=row["video_id"],
                score=max(float(row["score"] or 0.0), 0.0),
                strategy=StrategyTag.LEXICAL,
                excerpt=row["excerpt"] or None,
            )
            for row in rows
        ]

    async def rebuild_index(self) -> int:
        """Repopulate the full-text index from all ready videos.

        Returns:
            Number of videos indexed.
        """
        async with self.store.engine.begin() as conn:
            await conn.execute(text("DELETE FROM search_index"))
            await conn.execute(
                text(_INDEX_INSERT + " WHERE v.status = 'ready' GROUP BY v.id")
            )
            result = await conn.execute(text("SELECT COUNT(*) FROM search_index"))
            count = result.scalar_one()

        self._index_checked = True
        logger.info(f"Search index rebuilt with {count} videos")
        return count

    async def refresh_video(self, video_id: str) -> bool:
        """Re-index a single video.

        Returns:
            True if the video is ready and was indexed, False if it was only removed.
        """
        await self._ensure_index()
        async with self.store.engine.begin() as conn:
            await conn.execute(
                text("DELETE FROM search_index WHERE video_id = :video_id"),
                {"video_id": video_id},
            )
            await conn.execute(
                text(
                    _INDEX_INSERT
                    + " WHERE v.id = :video_id AND v.status = 'ready' GROUP BY v.id"
                ),
                {"video_id": video_id},
            )
            result = await conn.execute(
                text("SELECT COUNT(*) FROM search_index WHERE video_id = :video_id"),
                {"video_id": video_id},
            )
            return result.scalar_one() > 0

    async def _ensure_index(self) -> None:
        """Build the index on first use when the table is still empty."""
        if self._index_checked:
            return
        row = await self.store.fetch_one("SELECT COUNT(*) AS n FROM search_index")
        if row is not None and row["n"] == 0:
            logger.info("Search index is empty, building it before the first query")
            await self.rebuild_index()
        self._index_checked = True
