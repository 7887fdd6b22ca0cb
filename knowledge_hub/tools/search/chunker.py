"""Overlapping text chunker for transcript embeddings.

Splits a transcript into windows sized for the embedding model:
- Windows of ``chunk_size`` characters whose starts advance by
  ``chunk_size - chunk_overlap``, so consecutive windows share text
- Window ends back off to the preceding space instead of splitting a word,
  unless that would shrink the window below ``chunk_min_fill_ratio``
- Whitespace is trimmed and empty windows are dropped
- Every chunk keeps its character span in the source text

Example:
    >>> from knowledge_hub.tools.search.chunker import TextChunker
    >>> from knowledge_hub.tools.search.config import SearchConfig
    >>> chunker = TextChunker(SearchConfig())
    >>> [c.start for c in chunker.chunk("word " * 500)]
    [0, 800, 1600, 2400]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from knowledge_hub.tools.search.models import TextChunk

if TYPE_CHECKING:
    from knowledge_hub.tools.search.config import SearchConfig


class TextChunker:
    """Word-boundary-aware sliding window chunker.

    The output depends only on the input text and the chunking settings, so
    re-chunking identical text always yields identical spans.

    Attributes:
        config: Search configuration with chunk_size, chunk_overlap and
            chunk_min_fill_ratio.
    """

    def __init__(self, config: SearchConfig) -> None:
        """Initialize the chunker.

        Args:
            config: Search configuration with chunking parameters.
        """
        self.config = config

    @property
    def step(self) -> int:
        """Distance between the starts of consecutive windows."""
        return self.config.chunk_size - self.config.chunk_overlap

    def chunk(self, text: str) -> list[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Source text, typically a full transcript.

        Returns:
            Ordered list of chunks. Each chunk's ``start``/``end`` are offsets
            of its window in ``text``; ``content`` is the trimmed window.
        """
        size = self.config.chunk_size

        if len(text) <= size:
            content = text.strip()
            if not content:
                return []
            return [TextChunk(content=content, start=0, end=len(text))]

        chunks: list[TextChunk] = []
        start = 0
        while start < len(text):
            end = self._window_end(text, start)
            content = text[start:end].strip()
            if content:
                chunks.append(TextChunk(content=content, start=start, end=end))
            start += self.step

        return chunks

    def _window_end(self, text: str, start: int) -> int:
        """Find the end of the window starting at ``start``.

        Args:
            text: Source text.
            start: Window start offset.

        Returns:
            Exclusive end offset, moved back to a space when the hard end
            falls inside the text and the back-off keeps the window full enough.
        """
        size = self.config.chunk_size
        end = min(start + size, len(text))
        if end >= len(text):
            return end

        last_space = text.rfind(" ", start, end + 1)
        if last_space > start + size * self.config.chunk_min_fill_ratio:
            return last_space
        return end
