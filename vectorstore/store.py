"""ChromaDB vector store for news chunks and logged conversations.

Connects to a Chroma server (CHROMA_HOST / CHROMA_PORT) by default, or to a
local on-disk database when CHROMA_PERSIST_DIR is set. Every chromadb error is
re-raised as StoreError so callers only deal with one failure type.

Collections:
  - news_corpus:        article chunks written by the ingestion pipeline
  - user_conversations: one document per answered question
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from errors import StoreError

logger = logging.getLogger(__name__)

NEWS_COLLECTION = "news_corpus"
CONVERSATION_COLLECTION = "user_conversations"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8000


@dataclass
class RetrievalResult:
    """Positionally aligned results of one similarity query, best match first."""
    ids: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    metadatas: list[dict] = field(default_factory=list)
    distances: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def is_empty(self) -> bool:
        return not self.documents

    @classmethod
    def from_chroma(cls, results: dict) -> "RetrievalResult":
        """Take the first query row of a chromadb query() response."""
        def first_row(key: str) -> list:
            rows = results.get(key) or [[]]
            return list(rows[0] or [])

        return cls(
            ids=first_row("ids"),
            documents=first_row("documents"),
            metadatas=[m or {} for m in first_row("metadatas")],
            distances=first_row("distances"),
        )


class VectorStore:
    """Thin wrapper over a chromadb client with cosine collections."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        persist_dir: Optional[str] = None,
        client: Any = None,
    ):
        self.host = host or os.getenv("CHROMA_HOST", DEFAULT_HOST)
        self.port = int(port or os.getenv("CHROMA_PORT", DEFAULT_PORT))
        self.persist_dir = persist_dir or os.getenv("CHROMA_PERSIST_DIR") or None
        self._client = client

    @property
    def client(self):
        """Lazily connect so constructing a store never touches the network."""
        if self._client is None:
            import chromadb

            try:
                if self.persist_dir:
                    self._client = chromadb.PersistentClient(path=self.persist_dir)
                    logger.info("Connected to local ChromaDB at %s", self.persist_dir)
                else:
                    self._client = chromadb.HttpClient(host=self.host, port=self.port)
                    logger.info("Connected to ChromaDB at %s:%d", self.host, self.port)
            except Exception as e:
                raise StoreError(f"Could not connect to ChromaDB: {e}") from e
        return self._client

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def get_or_create(self, name: str):
        try:
            return self.client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"get_or_create_collection({name}) failed: {e}") from e

    def _get_existing(self, name: str):
        try:
            return self.client.get_collection(name=name)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Collection '{name}' is not available: {e}") from e

    def delete_collection(self, name: str) -> bool:
        """Drop a collection. Returns False when it did not exist."""
        try:
            existing = self.list_collections()
            if name not in existing:
                logger.info("Collection '%s' does not exist, nothing to delete", name)
                return False
            self.client.delete_collection(name=name)
            logger.info("Deleted collection '%s'", name)
            return True
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"delete_collection({name}) failed: {e}") from e

    def list_collections(self) -> list[str]:
        try:
            collections = self.client.list_collections()
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"list_collections failed: {e}") from e
        # chromadb returns names in newer releases, Collection objects in older ones
        return [c if isinstance(c, str) else c.name for c in collections]

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def upsert(
        self,
        name: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict],
        vectors: list[list[float]],
    ) -> int:
        """Insert or replace documents by id. Returns the number written."""
        if not (len(ids) == len(documents) == len(metadatas) == len(vectors)):
            raise ValueError("ids, documents, metadatas and vectors must have equal length")
        if not ids:
            return 0

        collection = self.get_or_create(name)
        try:
            collection.upsert(
                ids=ids,
                embeddings=vectors,
                documents=documents,
                metadatas=metadatas,
            )
        except Exception as e:
            raise StoreError(f"upsert into '{name}' failed: {e}") from e
        logger.debug("Upserted %d documents into '%s'", len(ids), name)
        return len(ids)

    def query(self, name: str, query_vectors: list[list[float]], top_k: int = 5) -> RetrievalResult:
        """Return the top_k nearest documents for the first query vector.

        Raises StoreError if the collection does not exist. An empty
        collection gives an empty result.
        """
        if not query_vectors:
            return RetrievalResult()

        collection = self._get_existing(name)
        try:
            available = collection.count()
            if available == 0:
                return RetrievalResult()
            results = collection.query(
                query_embeddings=query_vectors[:1],
                n_results=min(top_k, available),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            raise StoreError(f"query on '{name}' failed: {e}") from e
        return RetrievalResult.from_chroma(results)

    def count(self, name: str) -> int:
        collection = self.get_or_create(name)
        try:
            return collection.count()
        except Exception as e:
            raise StoreError(f"count on '{name}' failed: {e}") from e

    def peek(self, name: str, limit: int = 3) -> RetrievalResult:
        """Return up to limit stored documents without a query vector."""
        collection = self._get_existing(name)
        try:
            results = collection.get(limit=limit, include=["documents", "metadatas"])
        except Exception as e:
            raise StoreError(f"peek on '{name}' failed: {e}") from e
        return RetrievalResult(
            ids=list(results.get("ids") or []),
            documents=list(results.get("documents") or []),
            metadatas=[m or {} for m in (results.get("metadatas") or [])],
        )

    # ------------------------------------------------------------------
    # Health and stats
    # ------------------------------------------------------------------

    def heartbeat(self) -> bool:
        try:
            self.client.heartbeat()
            return True
        except Exception as e:
            logger.warning("ChromaDB heartbeat failed: %s", e)
            return False

    def get_stats(self) -> dict[str, dict]:
        """Return {collection name: {"count": n}} for every collection."""
        stats: dict[str, dict] = {}
        for name in self.list_collections():
            try:
                stats[name] = {"count": self._get_existing(name).count()}
            except Exception as e:
                logger.warning("Could not count collection '%s': %s", name, e)
                stats[name] = {"count": 0, "error": str(e)}
        return stats
