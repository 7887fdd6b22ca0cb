"""Time-bounded cache of related-video similarity results.

Related-video lookups embed a whole transcript, which is the most expensive
query the search core runs. Results are cached per ``(video_id, limit)`` for
``related_cache_ttl_seconds``. The cache is bounded and evicts the least
recently used entry once ``related_cache_max_entries`` is reached.

The cache is owned by whoever constructs it (normally the search facade) and
never lives at module level, so tests can inject a fake clock.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from knowledge_hub.tools.search.indexer import EmbeddingIndexer
    from knowledge_hub.tools.search.metadata import MetadataStore
    from knowledge_hub.tools.search.models import SimilarityMatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    matches: tuple[SimilarityMatch, ...]
    stored_at: float


class RelatedVideoCache:
    """Caches ``query_similar`` results for a video's transcript.

    Attributes:
        indexer: Embedding indexer used on a cache miss.
        store: Metadata store providing transcripts.
        ttl_seconds: Seconds an entry stays fresh.
        max_entries: Maximum number of cached keys.
    """

    def __init__(
        self,
        indexer: EmbeddingIndexer,
        store: MetadataStore,
        ttl_seconds: float = 600.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.indexer = indexer
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple[str, int], _Entry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get_related(self, video_id: str, limit: int = 5) -> list[SimilarityMatch]:
        """Get videos similar to ``video_id``, from cache when fresh.

        Args:
            video_id: Source video.
            limit: Maximum number of related videos.

        Returns:
            Similarity matches excluding the source video. Empty when the
            video has no transcript; that outcome is not cached.
        """
        key = (video_id, limit)
        entry = self._entries.get(key)
        now = self._clock()
        if entry is not None:
            if now - entry.stored_at <= self.ttl_seconds:
                self._entries.move_to_end(key)
                logger.debug(f"Related-video cache hit for {key}")
                return list(entry.matches)
            del self._entries[key]

        transcript = await self.store.get_video_transcript(video_id)
        if transcript is None:
            logger.debug(f"No transcript for video {video_id}, nothing related")
            return []

        matches = await self.indexer.query_similar(
            transcript.content, limit=limit, exclude_video_id=video_id
        )
        self._put(key, matches)
        return matches

    def invalidate(self, video_id: str) -> int:
        """Drop every cached entry of a video.

        Returns:
            Number of entries removed.
        """
        stale = [key for key in self._entries if key[0] == video_id]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def _put(self, key: tuple[str, int], matches: list[SimilarityMatch]) -> None:
        self._entries[key] = _Entry(matches=tuple(matches), stored_at=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted related-video cache entry {evicted}")
