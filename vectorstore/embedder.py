"""Embedding gateway with per-text fallback and an OpenAI backend.

The gateway embeds each text with one backend call, running the calls on a
thread pool. A failed call, or a vector of the wrong length, is logged and
replaced by a zero vector so one bad text never sinks an ingestion batch.

The OpenAI backend uses text-embedding-3-small and retries transient API
errors with exponential backoff.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol

import tiktoken
from openai import BadRequestError, OpenAI
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from errors import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536
MAX_INPUT_CHARS = 2000
MAX_TOKENS_PER_TEXT = 8000  # model limit is 8192; leave margin
DEFAULT_MAX_WORKERS = 4


class EmbeddingBackend(Protocol):
    def embed(self, text: str) -> list[float]: ...


# ---------------------------------------------------------------------------
# OpenAI backend
# ---------------------------------------------------------------------------

class OpenAIEmbeddingBackend:
    """Embed single texts with OpenAI's embeddings endpoint."""

    def __init__(
        self,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.model = model or os.getenv("EMBEDDING_MODEL", DEFAULT_MODEL)
        self.dimensions = dimensions or int(os.getenv("EMBEDDING_DIMENSIONS", DEFAULT_DIMENSIONS))
        self.client = OpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"), timeout=timeout)
        self._encoder = tiktoken.encoding_for_model(self.model)

    def _truncate_text(self, text: str) -> str:
        """Truncate text to fit within the embedding model's token limit."""
        tokens = self._encoder.encode(text)
        if len(tokens) <= MAX_TOKENS_PER_TEXT:
            return text
        logger.warning(
            "Truncating text from %d to %d tokens (first 60 chars: '%.60s')",
            len(tokens), MAX_TOKENS_PER_TEXT, text,
        )
        return self._encoder.decode(tokens[:MAX_TOKENS_PER_TEXT])

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_not_exception_type(BadRequestError),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Embedding API retry %d after error: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else "unknown",
        ),
    )
    def embed(self, text: str) -> list[float]:
        response = self.client.embeddings.create(
            model=self.model,
            input=[self._truncate_text(text)],
            dimensions=self.dimensions,
        )
        return response.data[0].embedding


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class EmbeddingGateway:
    """Embed texts through a backend, degrading failures to zero vectors."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        dimensions: int = DEFAULT_DIMENSIONS,
        max_chars: int = MAX_INPUT_CHARS,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.backend = backend
        self.dimensions = dimensions
        self.max_chars = max_chars
        self.max_workers = max_workers

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimensions

    def embed(self, texts: list[str], show_progress: bool = True) -> list[list[float]]:
        """Embed a list of texts.

        Args:
            texts: List of text strings to embed.
            show_progress: Whether to log a summary line.

        Returns:
            One vector per input text, in input order, each of length
            self.dimensions.
        """
        if not texts:
            return []

        prepared = [(t or "")[: self.max_chars] for t in texts]
        start = time.time()

        workers = max(1, min(self.max_workers, len(prepared)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            vectors = list(pool.map(self._embed_or_zero, prepared))

        if show_progress:
            elapsed = time.time() - start
            logger.info(
                "Embedded %d texts (%d dimensions each) in %.1fs (%.1f texts/sec)",
                len(vectors), self.dimensions, elapsed, len(vectors) / max(elapsed, 0.001),
            )
        return vectors

    def embed_single(self, text: str) -> list[float]:
        """Embed a single text string (convenience method for queries)."""
        return self.embed([text], show_progress=False)[0]

    def _embed_or_zero(self, text: str) -> list[float]:
        try:
            return self._embed_checked(text)
        except EmbeddingError as e:
            logger.warning("Embedding failed, using zero vector ('%.60s'): %s", text, e)
            return self.zero_vector()

    def _embed_checked(self, text: str) -> list[float]:
        try:
            vector = list(self.backend.embed(text))
        except Exception as e:
            raise EmbeddingError(str(e)) from e
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"expected {self.dimensions} dimensions, backend returned {len(vector)}"
            )
        return vector
