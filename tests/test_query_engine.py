"""Tests for QueryEngine.process_query state handling.

Dependencies: pytest, unittest.mock
System role: No-results short circuit, failure reporting and turn persistence
"""

import random
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeLLM, FakeVectorStore
from errors import StoreError
from schemas.conversation import ConversationTurn, Role
from vectorstore.store import CONVERSATION_COLLECTION, NEWS_COLLECTION
from webapp.rag.generator import AnswerGenerator
from webapp.rag.prompts import APOLOGY_ANSWER, NO_RESULTS_ANSWER
from webapp.rag.query_engine import QueryEngine, QueryState
from webapp.rag.retriever import Retriever


def _populate(store: FakeVectorStore, n: int = 3):
    store.upsert(
        NEWS_COLLECTION,
        ids=[f"news_1_{i}_0" for i in range(n)],
        documents=[f"Chunk {i} about the election." for i in range(n)],
        metadatas=[{"title": f"T{i}", "url": f"https://news/{i % 2}", "source": "feed"} for i in range(n)],
        vectors=[[0.0]] * n,
    )


@pytest.fixture
def sessions() -> MagicMock:
    mgr = MagicMock()
    mgr.get_recent_messages.return_value = []
    return mgr


@pytest.fixture
def engine_factory(fake_store, embedder, sessions):
    def _make(llm=None, **kwargs) -> QueryEngine:
        return QueryEngine(
            retriever=Retriever(fake_store, embedder),
            generator=AnswerGenerator(llm or FakeLLM()),
            session_store=sessions,
            **kwargs,
        )
    return _make


# ============================================================================
# No results
# ============================================================================


class TestNoResults:
    """Retrieval that finds nothing must not reach the model."""

    def test_empty_collection_skips_generation(self, fake_store, engine_factory) -> None:
        fake_store.get_or_create(NEWS_COLLECTION)
        llm = FakeLLM()

        result = engine_factory(llm=llm).process_query("Anything new?", session_id="s1")

        assert result.success is False
        assert result.answer == NO_RESULTS_ANSWER
        assert result.sources == []
        assert result.state == QueryState.NO_RESULTS
        assert llm.calls == []

    def test_missing_collection_reports_store_error(self, engine_factory) -> None:
        """Should report the store error instead of raising."""
        llm = FakeLLM()

        result = engine_factory(llm=llm).process_query("Anything new?")

        assert result.success is False
        assert result.answer == NO_RESULTS_ANSWER
        assert "does not exist" in result.error
        assert llm.calls == []

    def test_store_outage_reports_error(self, fake_store, engine_factory) -> None:
        _populate(fake_store)
        fake_store.fail_on.add("query")

        result = engine_factory().process_query("q")

        assert result.success is False
        assert result.error == "query failed"
        assert result.state == QueryState.NO_RESULTS


# ============================================================================
# Success and storage
# ============================================================================


class TestAnswered:
    """Test the full path through generation and storage."""

    def test_success_persists_both_turns(self, fake_store, engine_factory, sessions) -> None:
        _populate(fake_store)

        result = engine_factory().process_query("Who won the election?", session_id="s1")

        assert result.success is True
        assert result.state == QueryState.DONE
        assert result.relevant_document_count == 3
        assert [s.url for s in result.sources] == ["https://news/0", "https://news/1"]
        calls = sessions.add_message.call_args_list
        assert calls[0].args == ("s1", Role.USER, "Who won the election?")
        assert calls[1].args[:2] == ("s1", Role.ASSISTANT)
        assert calls[1].kwargs["sources"] == result.sources

    def test_success_logs_conversation(self, fake_store, engine_factory) -> None:
        _populate(fake_store)

        engine_factory().process_query("Who won?", session_id="s1")

        logged = fake_store.collections[CONVERSATION_COLLECTION]
        assert len(logged) == 1
        assert logged[0]["id"].startswith("conv_s1_")
        assert logged[0]["document"].startswith("Query: Who won?\nAnswer: ")
        assert logged[0]["metadata"]["session_id"] == "s1"

    def test_history_loaded_from_session_store(self, fake_store, engine_factory, sessions) -> None:
        _populate(fake_store)
        sessions.get_recent_messages.return_value = [
            ConversationTurn(role="user", content="Tell me about the vote"),
        ]
        llm = FakeLLM()

        engine_factory(llm=llm).process_query("And the turnout?", session_id="s1")

        sessions.get_recent_messages.assert_called_once_with("s1", limit=5)
        assert "user: Tell me about the vote" in llm.calls[0]["user"]

    def test_explicit_history_skips_session_lookup(self, fake_store, engine_factory, sessions) -> None:
        _populate(fake_store)

        engine_factory().process_query("q", session_id="s1", history=[])

        sessions.get_recent_messages.assert_not_called()

    def test_storage_failure_keeps_answer(self, fake_store, engine_factory, sessions) -> None:
        """Should return the answer with success False when the turn cannot be stored."""
        _populate(fake_store)
        sessions.add_message.side_effect = StoreError("Session not found: s1")

        result = engine_factory().process_query("q", session_id="s1")

        assert result.success is False
        assert result.answer == "The summit ended with a joint statement."
        assert result.sources
        assert result.error == "Session not found: s1"

    def test_conversation_log_failure_keeps_success(self, fake_store, engine_factory, sessions) -> None:
        """Should still succeed when only the conversation log write fails."""
        _populate(fake_store)
        fake_store.fail_on.add("upsert")

        result = engine_factory().process_query("q", session_id="s1")

        assert result.success is True
        assert result.error is None
        assert result.answer == "The summit ended with a joint statement."
        assert sessions.add_message.call_count == 2

    def test_conversation_log_ids_are_unique(self, fake_store, engine_factory) -> None:
        """Two exchanges in the same session and millisecond get separate log entries."""
        _populate(fake_store)
        engine = engine_factory()

        with patch("webapp.rag.query_engine.datetime") as mock_dt:
            mock_dt.now.return_value = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
            engine.process_query("first", session_id="s1")
            engine.process_query("second", session_id="s1")

        logged = fake_store.collections[CONVERSATION_COLLECTION]
        assert len(logged) == 2
        assert logged[0]["id"] != logged[1]["id"]


# ============================================================================
# Generation failure and shuffle
# ============================================================================


class TestGenerationFailure:
    def test_model_error_returns_apology(self, fake_store, engine_factory, sessions) -> None:
        _populate(fake_store)

        result = engine_factory(llm=FakeLLM(error=RuntimeError("overloaded"))).process_query("q", session_id="s1")

        assert result.success is False
        assert result.answer == APOLOGY_ANSWER
        assert result.state == QueryState.GENERATION_FAILED
        sessions.add_message.assert_not_called()

    def test_unexpected_error_never_raises(self, engine_factory) -> None:
        engine = engine_factory()
        engine.retriever = MagicMock()
        engine.retriever.retrieve.side_effect = KeyError("boom")

        result = engine.process_query("q")

        assert result.success is False
        assert result.answer == APOLOGY_ANSWER


class TestShuffle:
    def test_shuffle_keeps_documents_and_metadata_aligned(self, fake_store, engine_factory) -> None:
        _populate(fake_store, n=5)
        llm = FakeLLM()

        engine_factory(llm=llm, shuffle_results=True, rng=random.Random(3)).process_query("q")

        prompt = llm.calls[0]["user"]
        for i in range(5):
            block = prompt.split(f"Title: T{i}\n", 1)[1]
            assert block.split("Content: ", 1)[1].startswith(f"Chunk {i} ")
