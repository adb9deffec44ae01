"""Vector store module for the news RAG pipeline.

Provides character-window chunking, embedding with zero-vector fallback,
ChromaDB storage and the feed ingestion pipeline.
"""
from vectorstore.chunker import Chunker
from vectorstore.embedder import EmbeddingGateway, OpenAIEmbeddingBackend
from vectorstore.store import CONVERSATION_COLLECTION, NEWS_COLLECTION, RetrievalResult, VectorStore
