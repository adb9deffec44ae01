"""
Shared test fixtures: in-memory fakes for the vector store, embedding backend,
language model and feed source.

Dependencies: pytest
System role: Lets pipeline tests run without ChromaDB, OpenAI, Anthropic or network access
"""

from typing import Optional

import pytest

from errors import SourceFetchError, StoreError
from schemas.article import FeedItem
from vectorstore.embedder import EmbeddingGateway
from vectorstore.store import RetrievalResult

DIMENSIONS = 8


class FakeEmbeddingBackend:
    """Returns a deterministic vector per text; texts listed in fail_on raise."""

    def __init__(self, dimensions: int = DIMENSIONS, fail_on: Optional[set] = None):
        self.dimensions = dimensions
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise RuntimeError("backend unavailable")
        return [float(len(text) % 7 + 1)] * self.dimensions


class FakeVectorStore:
    """Dict-backed stand-in for VectorStore. query() returns documents in insertion order."""

    def __init__(self, fail_on: Optional[set] = None):
        self.collections: dict[str, list[dict]] = {}
        self.fail_on = fail_on or set()  # operation names that raise StoreError
        self.upsert_calls: list[dict] = []

    def _check(self, op: str):
        if op in self.fail_on:
            raise StoreError(f"{op} failed")

    def get_or_create(self, name: str):
        self._check("get_or_create")
        return self.collections.setdefault(name, [])

    def upsert(self, name, ids, documents, metadatas, vectors) -> int:
        self._check("upsert")
        rows = self.collections.setdefault(name, [])
        for i, doc_id in enumerate(ids):
            rows[:] = [r for r in rows if r["id"] != doc_id]
            rows.append({
                "id": doc_id,
                "document": documents[i],
                "metadata": metadatas[i],
                "vector": vectors[i],
            })
        self.upsert_calls.append({"collection": name, "ids": list(ids)})
        return len(ids)

    def query(self, name, query_vectors, top_k=5) -> RetrievalResult:
        self._check("query")
        if name not in self.collections:
            raise StoreError(f"Collection '{name}' does not exist")
        rows = self.collections[name][:top_k]
        return RetrievalResult(
            ids=[r["id"] for r in rows],
            documents=[r["document"] for r in rows],
            metadatas=[r["metadata"] for r in rows],
            distances=[0.1 * (i + 1) for i in range(len(rows))],
        )

    def count(self, name: str) -> int:
        self._check("count")
        return len(self.collections.get(name, []))

    def heartbeat(self) -> bool:
        return "heartbeat" not in self.fail_on


class FakeLLM:
    """Records prompts and returns a canned reply, or raises when error is set."""

    def __init__(self, reply: str = "Answer: The summit ended with a joint statement.", error=None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    def chat(self, system: str, user: str, temperature: float = 0.2, max_tokens: int = 1024) -> str:
        self.calls.append({"system": system, "user": user})
        if self.error:
            raise self.error
        return self.reply


class FakeFeedSource:
    """Feed source backed by dicts: feeds → items, urls → bodies."""

    def __init__(self, feeds: dict, bodies: dict, failing_feeds: Optional[set] = None):
        self.feeds = feeds
        self.bodies = bodies
        self.failing_feeds = failing_feeds or set()
        self.fetched: list[str] = []

    def list_feed_items(self, feed_url: str) -> list[FeedItem]:
        if feed_url in self.failing_feeds:
            raise SourceFetchError(f"Feed unreachable: {feed_url}")
        return [
            FeedItem(source_feed=feed_url, **item) for item in self.feeds.get(feed_url, [])
        ]

    def fetch_body(self, url: str) -> Optional[str]:
        self.fetched.append(url)
        return self.bodies.get(url)


@pytest.fixture
def embedding_backend() -> FakeEmbeddingBackend:
    return FakeEmbeddingBackend()


@pytest.fixture
def embedder(embedding_backend) -> EmbeddingGateway:
    return EmbeddingGateway(embedding_backend, dimensions=DIMENSIONS, max_workers=2)


@pytest.fixture
def fake_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    calls: list[float] = []

    def _sleep(seconds: float):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
