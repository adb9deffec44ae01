"""Pydantic models for feed items and collected news articles."""

from pydantic import BaseModel, Field
from typing import Optional


class FeedItem(BaseModel):
    title: str
    link: str
    description: str = ""
    published_at: Optional[str] = Field(
        None, description="Publication date as ISO 8601 when parseable, raw otherwise"
    )
    source_feed: str = Field(description="URL of the feed the item was listed in")


class Article(BaseModel):
    id: str = Field(description="uuid4 hex assigned at collection time")
    title: str
    link: str
    description: str = ""
    published_at: Optional[str] = None
    source_feed: str
    content: str = Field(description="Normalized article body, capped per article")

    def full_text(self) -> str:
        """Text that gets chunked: title, description and body."""
        return f"{self.title}\n\n{self.description}\n\n{self.content}"
