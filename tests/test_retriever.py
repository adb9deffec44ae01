"""Tests for Retriever and ContextAssembler.

Dependencies: pytest
System role: Prompt context formatting and similarity lookups
"""

import pytest

from errors import StoreError
from schemas.conversation import ConversationTurn
from vectorstore.store import NEWS_COLLECTION
from webapp.rag.retriever import ContextAssembler, Retriever


def _turns(n: int) -> list[ConversationTurn]:
    return [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
        for i in range(n)
    ]


class TestContextAssembler:
    """Test context block formatting."""

    def test_formats_numbered_source_blocks(self) -> None:
        """Should emit one labelled block per document in order."""
        context = ContextAssembler().assemble(
            ["Body one.", "Body two."],
            [
                {"title": "T1", "source": "https://feed/1", "date": "2024-05-01"},
                {"title": "T2", "source": "https://feed/2", "date": "2024-05-02"},
            ],
        )

        assert "--- Source 1 ---\nTitle: T1\nSource: https://feed/1\nDate: 2024-05-01\nContent: Body one.\n" in context
        assert context.index("--- Source 1 ---") < context.index("--- Source 2 ---")
        assert "Previous conversation" not in context

    def test_missing_metadata_uses_unknown(self) -> None:
        context = ContextAssembler().assemble(["Body."], [{}])

        assert "Title: Unknown" in context
        assert "Date: Unknown" in context

    def test_appends_last_five_turns(self) -> None:
        """Should include only the five most recent turns as role: content."""
        context = ContextAssembler().assemble(["Body."], [{}], history=_turns(8))

        assert "Previous conversation:" in context
        assert "turn 2" not in context
        for i in range(3, 8):
            assert f"turn {i}" in context
        assert "assistant: turn 3" in context
        assert "user: turn 4" in context


class TestRetriever:
    """Test question lookups against the store."""

    def test_retrieve_queries_news_collection(self, fake_store, embedder) -> None:
        fake_store.upsert(NEWS_COLLECTION, ["a", "b"], ["doc a", "doc b"], [{}, {}], [[0.0], [0.0]])

        result = Retriever(fake_store, embedder).retrieve("question", top_k=1)

        assert result.documents == ["doc a"]

    def test_missing_collection_propagates_store_error(self, fake_store, embedder) -> None:
        with pytest.raises(StoreError):
            Retriever(fake_store, embedder).retrieve("question")
