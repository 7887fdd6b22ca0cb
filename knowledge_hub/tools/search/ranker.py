"""Merging of per-strategy results into one ranked list.

Lexical matches seed the ranking with a boost. Substring, tag and vector
matches are then folded in one strategy at a time: a video seen for the
first time enters with its own score, a video already ranked gains a
weighted share of the new score and is relabelled ``combined``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from knowledge_hub.tools.search.config import BoostWeights
from knowledge_hub.tools.search.models import SearchMatch, StrategyTag

if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass
class StrategyResults:
    """Raw matches of every strategy for one query."""

    lexical: list[SearchMatch] = field(default_factory=list)
    semantic: list[SearchMatch] = field(default_factory=list)
    tag: list[SearchMatch] = field(default_factory=list)
    vector: list[SearchMatch] = field(default_factory=list)


def best_per_video(matches: Iterable[SearchMatch]) -> list[SearchMatch]:
    """Keep the highest scoring match of each video, in first-seen order."""
    best: dict[str, SearchMatch] = {}
    for match in matches:
        existing = best.get(match.video_id)
        if existing is None or match.score > existing.score:
            best[match.video_id] = match
    return list(best.values())


class ResultMerger:
    """Combines strategy results using configurable boost weights.

    Attributes:
        weights: Lexical boost and the fold weights of the other strategies.
    """

    def __init__(self, weights: BoostWeights | None = None) -> None:
        self.weights = weights or BoostWeights()

    def merge(self, results: StrategyResults, limit: int) -> list[SearchMatch]:
        """Merge strategy results into a single ranking.

        Args:
            results: Matches produced by each strategy. Not modified.
            limit: Maximum number of merged matches.

        Returns:
            At most ``limit`` matches, one per video, by descending score.
            Ties keep insertion order: lexical first, then semantic, tag
            and vector newcomers.
        """
        merged: dict[str, SearchMatch] = {}

        for match in best_per_video(results.lexical):
            merged[match.video_id] = SearchMatch(
                video_id=match.video_id,
                score=match.score * self.weights.lexical_boost,
                strategy=match.strategy,
                excerpt=match.excerpt,
            )

        self._fold(merged, results.semantic, self.weights.semantic_weight)
        self._fold(merged, results.tag, self.weights.tag_weight)
        self._fold(merged, results.vector, self.weights.vector_weight)

        ranked = sorted(merged.values(), key=lambda m: m.score, reverse=True)
        return ranked[:limit]

    @staticmethod
    def _fold(
        merged: dict[str, SearchMatch],
        matches: list[SearchMatch],
        weight: float,
    ) -> None:
        for match in best_per_video(matches):
            existing = merged.get(match.video_id)
            if existing is None:
                merged[match.video_id] = SearchMatch(
                    video_id=match.video_id,
                    score=match.score,
                    strategy=match.strategy,
                    excerpt=match.excerpt,
                )
            else:
                existing.score += match.score * weight
                existing.strategy = StrategyTag.COMBINED
                if existing.excerpt is None:
                    existing.excerpt = match.excerpt
