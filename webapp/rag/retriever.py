"""Retrieval and context assembly for the news RAG pipeline.

Retriever embeds the question and runs a similarity query against the news
collection. ContextAssembler turns the hits plus recent conversation turns
into the text block the answer prompt is built around.
"""

import logging
from typing import Optional

from schemas.conversation import ConversationTurn
from vectorstore.store import NEWS_COLLECTION, RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
HISTORY_TURNS = 5


class Retriever:
    """Similarity search over the news collection, wrapping VectorStore + EmbeddingGateway."""

    def __init__(self, store, embedder, collection: str = NEWS_COLLECTION):
        self.store = store
        self.embedder = embedder
        self.collection = collection

    def retrieve(self, question: str, top_k: int = DEFAULT_TOP_K) -> RetrievalResult:
        """Return the top_k chunks closest to the question.

        StoreError from the vector store propagates to the caller.
        """
        vector = self.embedder.embed_single(question)
        result = self.store.query(self.collection, [vector], top_k)
        logger.info("Retrieved %d chunks for '%.60s'", len(result), question)
        return result


class ContextAssembler:
    """Formats retrieved chunks and conversation history for the answer prompt."""

    def __init__(self, history_turns: int = HISTORY_TURNS):
        self.history_turns = history_turns

    def assemble(
        self,
        documents: list[str],
        metadatas: list[dict],
        history: Optional[list[ConversationTurn]] = None,
    ) -> str:
        blocks = []
        for i, doc in enumerate(documents):
            meta = metadatas[i] if i < len(metadatas) else {}
            blocks.append(
                f"\n--- Source {i + 1} ---\n"
                f"Title: {meta.get('title', 'Unknown')}\n"
                f"Source: {meta.get('source', 'Unknown')}\n"
                f"Date: {meta.get('date', 'Unknown')}\n"
                f"Content: {doc}\n"
            )
        context = "".join(blocks)

        recent = (history or [])[-self.history_turns:] if self.history_turns > 0 else []
        if recent:
            lines = [f"{turn.role.value}: {turn.content}" for turn in recent]
            context += "\nPrevious conversation:\n" + "\n".join(lines) + "\n"

        return context
