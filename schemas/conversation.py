"""Pydantic models for conversation turns and answer sources."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Source(BaseModel):
    title: str = ""
    url: str
    source: str = ""
    date: str = ""


class ConversationTurn(BaseModel):
    role: Role
    content: str
    timestamp: Optional[str] = None
    sources: List[Source] = Field(default_factory=list)
