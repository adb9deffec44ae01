"""Tests for AnswerGenerator and source extraction.

Dependencies: pytest
System role: Grounding prompt, response parsing and failure handling
"""

from conftest import FakeLLM
from schemas.conversation import ConversationTurn
from webapp.rag.generator import AnswerGenerator, extract_sources
from webapp.rag.prompts import APOLOGY_ANSWER


class TestExtractSources:
    """Test source deduplication."""

    def test_dedup_by_url_first_seen_order(self) -> None:
        """Should keep the first occurrence of each url, in order."""
        metadatas = [
            {"title": "A1", "url": "https://a", "source": "feed-a", "date": "d1"},
            {"title": "B", "url": "https://b"},
            {"title": "A2", "url": "https://a"},
            {"title": "no url"},
        ]

        sources = extract_sources(metadatas)

        assert [s.url for s in sources] == ["https://a", "https://b"]
        assert sources[0].title == "A1"
        assert sources[0].source == "feed-a"

    def test_empty(self) -> None:
        assert extract_sources([]) == []


class TestGenerate:
    """Test answer generation."""

    def test_success_strips_answer_label(self, fake_llm) -> None:
        """Should return the model text without a leading 'Answer:' label."""
        result = AnswerGenerator(fake_llm).generate(
            "What happened?", "--- Source 1 ---", metadatas=[{"url": "https://a", "title": "A"}],
        )

        assert result.success is True
        assert result.answer == "The summit ended with a joint statement."
        assert [s.url for s in result.sources] == ["https://a"]
        assert result.error is None

    def test_prompt_carries_grounding_rules_context_and_question(self, fake_llm) -> None:
        AnswerGenerator(fake_llm).generate("Who won?", "CONTEXT-BLOCK")

        call = fake_llm.calls[0]
        assert "Use ONLY the information provided" in call["system"]
        assert "CONTEXT-BLOCK" in call["user"]
        assert "Question: Who won?" in call["user"]
        assert "CONVERSATION CONTEXT" not in call["system"]

    def test_history_adds_conversation_instruction(self, fake_llm) -> None:
        history = [ConversationTurn(role="user", content="earlier question")]

        AnswerGenerator(fake_llm).generate("And then?", "ctx", history=history)

        assert "CONVERSATION CONTEXT" in fake_llm.calls[0]["system"]

    def test_model_failure_returns_apology(self) -> None:
        """Should turn a model exception into the apology answer."""
        llm = FakeLLM(error=TimeoutError("model timed out"))

        result = AnswerGenerator(llm).generate("q", "ctx", metadatas=[{"url": "https://a"}])

        assert result.success is False
        assert result.answer == APOLOGY_ANSWER
        assert "model timed out" in result.error
        assert result.sources == []

    def test_empty_response_is_a_failure(self) -> None:
        result = AnswerGenerator(FakeLLM(reply="   ")).generate("q", "ctx")

        assert result.success is False
        assert result.answer == APOLOGY_ANSWER
