"""RAG Query Engine: orchestrates retrieval, context assembly, generation and storage.

One call to process_query() walks these states:

  IDLE → RETRIEVING → NO_RESULTS                       (nothing relevant, no LLM call)
                    → ASSEMBLING → GENERATING → GENERATION_FAILED
                                              → STORING → DONE

Every path ends in a QueryResult. Store, embedding and model failures are
reported through success/error on the result and never raised to the caller.
"""

import logging
import os
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import orjson

from errors import StoreError
from schemas.conversation import ConversationTurn, Role, Source
from vectorstore.store import CONVERSATION_COLLECTION, NEWS_COLLECTION
from webapp.rag.generator import AnswerGenerator
from webapp.rag.prompts import APOLOGY_ANSWER, NO_RESULTS_ANSWER
from webapp.rag.retriever import DEFAULT_TOP_K, HISTORY_TURNS, ContextAssembler, Retriever

logger = logging.getLogger(__name__)


class QueryState(str, Enum):
    IDLE = "idle"
    RETRIEVING = "retrieving"
    NO_RESULTS = "no_results"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    GENERATION_FAILED = "generation_failed"
    STORING = "storing"
    DONE = "done"


@dataclass
class QueryResult:
    """Complete result of a RAG query."""
    success: bool
    answer: str
    sources: list[Source] = field(default_factory=list)
    relevant_document_count: int = 0
    error: Optional[str] = None
    state: QueryState = QueryState.IDLE
    metadata: dict = field(default_factory=dict)  # timings

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "answer": self.answer,
            "sources": [s.model_dump() for s in self.sources],
            "relevant_document_count": self.relevant_document_count,
        }
        if self.error:
            data["error"] = self.error
        return data


class QueryEngine:
    """Answers one question per call against the news collection."""

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator,
        session_store=None,
        assembler: Optional[ContextAssembler] = None,
        top_k: int = DEFAULT_TOP_K,
        shuffle_results: bool = False,
        log_conversations: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self.retriever = retriever
        self.generator = generator
        self.session_store = session_store
        self.assembler = assembler or ContextAssembler()
        self.top_k = top_k
        self.shuffle_results = shuffle_results
        self.log_conversations = log_conversations
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def process_query(
        self,
        question: str,
        session_id: Optional[str] = None,
        history: Optional[list[ConversationTurn]] = None,
    ) -> QueryResult:
        """Run the full pipeline for one question. Never raises."""
        try:
            return self._process(question, session_id, history)
        except Exception as e:
            logger.exception("Unexpected failure answering '%.60s'", question)
            return QueryResult(
                success=False,
                answer=APOLOGY_ANSWER,
                error=f"{type(e).__name__}: {e}",
                state=QueryState.GENERATION_FAILED,
            )

    def _process(
        self,
        question: str,
        session_id: Optional[str],
        history: Optional[list[ConversationTurn]],
    ) -> QueryResult:
        t_start = time.time()
        timings: dict = {}

        if history is None:
            history = self._load_history(session_id)

        # RETRIEVING
        t0 = time.time()
        try:
            retrieved = self.retriever.retrieve(question, top_k=self.top_k)
        except StoreError as e:
            logger.warning("Retrieval failed: %s", e)
            return QueryResult(
                success=False,
                answer=NO_RESULTS_ANSWER,
                error=str(e),
                state=QueryState.NO_RESULTS,
            )
        timings["retrieval_ms"] = int((time.time() - t0) * 1000)

        if retrieved.is_empty:
            logger.info("No relevant documents for '%.60s'", question)
            return QueryResult(
                success=False,
                answer=NO_RESULTS_ANSWER,
                state=QueryState.NO_RESULTS,
                metadata={"timings": timings},
            )

        # ASSEMBLING
        documents, metadatas = list(retrieved.documents), list(retrieved.metadatas)
        if self.shuffle_results:
            paired = list(zip(documents, metadatas))
            self._rng.shuffle(paired)
            documents = [d for d, _ in paired]
            metadatas = [m for _, m in paired]
        context = self.assembler.assemble(documents, metadatas, history)

        # GENERATING
        t0 = time.time()
        generated = self.generator.generate(question, context, history=history, metadatas=metadatas)
        timings["generation_ms"] = int((time.time() - t0) * 1000)

        if not generated.success:
            return QueryResult(
                success=False,
                answer=generated.answer,
                relevant_document_count=len(documents),
                error=generated.error,
                state=QueryState.GENERATION_FAILED,
                metadata={"timings": timings},
            )

        # STORING
        t0 = time.time()
        store_error = self._store_exchange(session_id, question, generated.answer, generated.sources)
        timings["storage_ms"] = int((time.time() - t0) * 1000)
        timings["total_ms"] = int((time.time() - t_start) * 1000)

        return QueryResult(
            success=store_error is None,
            answer=generated.answer,
            sources=generated.sources,
            relevant_document_count=len(documents),
            error=store_error,
            state=QueryState.DONE,
            metadata={"timings": timings},
        )

    # ------------------------------------------------------------------
    # Session and conversation storage
    # ------------------------------------------------------------------

    def _load_history(self, session_id: Optional[str]) -> list[ConversationTurn]:
        if not session_id or self.session_store is None:
            return []
        try:
            return self.session_store.get_recent_messages(session_id, limit=HISTORY_TURNS)
        except StoreError as e:
            logger.warning("Could not load history for session %s: %s", session_id, e)
            return []

    def _store_exchange(
        self,
        session_id: Optional[str],
        question: str,
        answer: str,
        sources: list[Source],
    ) -> Optional[str]:
        """Persist the turn pair. Returns an error message, or None on success.

        Only session-store failures are reported; the conversation log is best-effort.
        """
        try:
            if session_id and self.session_store is not None:
                self.session_store.add_message(session_id, Role.USER, question)
                self.session_store.add_message(session_id, Role.ASSISTANT, answer, sources=sources)
        except StoreError as e:
            logger.error("Storing exchange for session %s failed: %s", session_id, e)
            return str(e)

        if self.log_conversations:
            try:
                self._log_conversation(session_id, question, answer, sources)
            except StoreError as e:
                logger.warning("Conversation log write failed for session %s: %s", session_id, e)
        return None

    def _log_conversation(
        self,
        session_id: Optional[str],
        question: str,
        answer: str,
        sources: list[Source],
    ):
        now = datetime.now(timezone.utc)
        document = f"Query: {question}\nAnswer: {answer}"
        vector = self.retriever.embedder.embed_single(document)
        self.retriever.store.upsert(
            CONVERSATION_COLLECTION,
            ids=[f"conv_{session_id or 'anonymous'}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"],
            documents=[document],
            metadatas=[{
                "session_id": session_id or "",
                "query": question,
                "answer": answer,
                "sources": orjson.dumps([s.model_dump() for s in sources]).decode(),
                "timestamp": now.isoformat(),
            }],
            vectors=[vector],
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_collection_stats(self) -> dict:
        store = self.retriever.store
        return {
            "news_articles": store.count(NEWS_COLLECTION),
            "conversations": store.count(CONVERSATION_COLLECTION),
        }

    def health_check(self) -> dict:
        sessions_ok = self.session_store.health_check() if self.session_store is not None else False
        return {
            "vector_store": self.retriever.store.heartbeat(),
            "session_store": sessions_ok,
        }


def build_query_engine(session_store=None) -> QueryEngine:
    """Assemble a QueryEngine from environment configuration."""
    from vectorstore.embedder import EmbeddingGateway, OpenAIEmbeddingBackend
    from vectorstore.store import VectorStore
    from webapp.rag.generator import LLMClient

    backend = OpenAIEmbeddingBackend()
    retriever = Retriever(
        VectorStore(),
        EmbeddingGateway(backend, dimensions=backend.dimensions),
    )
    return QueryEngine(
        retriever=retriever,
        generator=AnswerGenerator(LLMClient()),
        session_store=session_store,
        top_k=int(os.getenv("RAG_TOP_K", DEFAULT_TOP_K)),
        shuffle_results=os.getenv("RAG_SHUFFLE_RESULTS", "false").lower() in ("1", "true", "yes"),
    )
