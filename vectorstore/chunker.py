"""Sliding-window chunking engine for news articles.

Articles are split into fixed-size character windows that overlap by a
configurable amount. When a window would end mid-sentence it is pulled back
to the last sentence terminator, as long as that keeps more than half of the
window. Pieces too short to carry meaning are dropped.

Guarantees, for any 0 <= overlap < size:
  - window start offsets strictly increase, so the loop always terminates
  - consecutive windows touch or overlap, so no input character is skipped
  - every returned chunk has a trimmed length of at least MIN_CHUNK_CHARS
"""

import logging
import time
from typing import Iterator

from schemas.chunk import Chunk

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CHUNK_SIZE = 600
DEFAULT_CHUNK_OVERLAP = 60
MIN_CHUNK_CHARS = 50

SENTENCE_TERMINATORS = (".", "?", "!")


class Chunker:
    """Character-window chunker with sentence-boundary snapping."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_CHUNK_OVERLAP,
        min_chunk_chars: int = MIN_CHUNK_CHARS,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got overlap={overlap} chunk_size={chunk_size}"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_chunk_chars = min_chunk_chars

    # -------------------------------------------------------------------
    # Core splitting
    # -------------------------------------------------------------------

    def iter_windows(self, text: str) -> Iterator[tuple[int, int]]:
        """Yield (start, end) offsets of each window over text."""
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self.chunk_size, length)

            if end < length:
                window = text[start:end]
                cut = max(window.rfind(t) for t in SENTENCE_TERMINATORS)
                if cut > self.chunk_size * 0.5:
                    end = start + cut + 1

            yield start, end

            if end >= length:
                break
            start = max(end - self.overlap, start + 1)

    def chunk(self, text: str) -> list[str]:
        """Split text into trimmed chunks, dropping ones below the minimum length."""
        if not text:
            return []

        chunks = []
        for start, end in self.iter_windows(text):
            piece = text[start:end].strip()
            if len(piece) >= self.min_chunk_chars:
                chunks.append(piece)
        return chunks

    def chunk_document(self, text: str) -> list[Chunk]:
        """Chunk text and wrap each piece with its position in the article."""
        pieces = self.chunk(text)
        return [
            Chunk(
                text=piece,
                size_bound=self.chunk_size,
                overlap_bound=self.overlap,
                chunk_index=i,
                total_chunks=len(pieces),
            )
            for i, piece in enumerate(pieces)
        ]

    def chunk_documents(self, texts: list[str]) -> list[list[Chunk]]:
        """Chunk a batch of article texts, one chunk list per input."""
        t0 = time.perf_counter()
        results = [self.chunk_document(text) for text in texts]
        total = sum(len(r) for r in results)
        logger.info(
            "Chunked %d articles into %d chunks (avg %.1f chunks/article) in %.2fs",
            len(texts), total, total / max(len(texts), 1), time.perf_counter() - t0,
        )
        return results
