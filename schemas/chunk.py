"""Pydantic models for article chunks and the documents written to the vector store."""

from pydantic import BaseModel, Field
from typing import List, Optional


class Chunk(BaseModel):
    text: str = Field(description="Trimmed chunk text, at least the minimum chunk length")
    size_bound: int
    overlap_bound: int
    chunk_index: int
    total_chunks: int


class ChunkMetadata(BaseModel):
    title: str
    source: str = Field(description="Feed URL the article came from")
    url: str
    date: str
    description: str = ""
    chunk_index: int
    total_chunks: int
    article_id: str


class IndexedDocument(BaseModel):
    id: str = Field(description="news_{run timestamp ms}_{article index}_{chunk index}")
    text: str
    metadata: ChunkMetadata
    embedding: Optional[List[float]] = Field(
        None, description="Vector embedding (populated just before storage)"
    )
