"""Grounded answer generation over assembled news context.

LLMClient wraps the Anthropic and OpenAI chat APIs behind one chat() call.
AnswerGenerator builds the grounding prompt, calls the model and turns any
failure into a fixed apology so the caller always has something to show.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from errors import GenerationError
from schemas.conversation import ConversationTurn, Source
from webapp.rag.prompts import (
    ANSWER_SYSTEM,
    ANSWER_USER,
    APOLOGY_ANSWER,
    CONVERSATION_CONTEXT_INSTRUCTION,
)

logger = logging.getLogger(__name__)

_ANSWER_LABEL = re.compile(r"^\s*answer\s*:\s*", re.IGNORECASE)


class LLMClient:
    """Unified LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.provider = provider or os.getenv("LLM_PROVIDER", "anthropic")
        model = model or os.getenv("LLM_MODEL") or None

        if self.provider == "anthropic":
            import anthropic
            self.model = model or "claude-sonnet-4-6"
            self.client = anthropic.Anthropic(
                api_key=api_key or os.getenv("ANTHROPIC_API_KEY"),
                timeout=timeout,
            )
        elif self.provider == "openai":
            from openai import OpenAI
            self.model = model or "gpt-4o"
            self.client = OpenAI(
                api_key=api_key or os.getenv("OPENAI_API_KEY"),
                timeout=timeout,
            )
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

    def chat(
        self,
        system: str,
        user: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        """Send a simple chat completion request."""
        if self.provider == "anthropic":
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
            return "".join(
                block.text for block in response.content if getattr(block, "type", None) == "text"
            )
        else:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )
            return response.choices[0].message.content or ""


@dataclass
class GenerationResult:
    success: bool
    answer: str
    sources: list[Source] = field(default_factory=list)
    error: Optional[str] = None


def extract_sources(metadatas: list[dict]) -> list[Source]:
    """Distinct sources by url, in first-seen order. Entries without a url are skipped."""
    seen: set[str] = set()
    sources: list[Source] = []
    for meta in metadatas or []:
        url = (meta or {}).get("url")
        if not url or url in seen:
            continue
        seen.add(url)
        sources.append(Source(
            title=meta.get("title", ""),
            url=url,
            source=meta.get("source", ""),
            date=meta.get("date", ""),
        ))
    return sources


class AnswerGenerator:
    """Produces a grounded answer for a question from assembled context."""

    def __init__(self, llm, temperature: float = 0.2, max_tokens: int = 1024):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens

    def generate(
        self,
        question: str,
        context: str,
        history: Optional[list[ConversationTurn]] = None,
        metadatas: Optional[list[dict]] = None,
    ) -> GenerationResult:
        """Generate an answer. Never raises; failures return the apology answer."""
        sources = extract_sources(metadatas or [])
        system = ANSWER_SYSTEM + (CONVERSATION_CONTEXT_INSTRUCTION if history else "")
        user = ANSWER_USER.format(context=context, question=question)

        try:
            answer = self._complete(system, user)
        except GenerationError as e:
            logger.error("Answer generation failed: %s", e)
            return GenerationResult(success=False, answer=APOLOGY_ANSWER, error=str(e))

        return GenerationResult(success=True, answer=answer, sources=sources)

    def _complete(self, system: str, user: str) -> str:
        try:
            raw = self.llm.chat(
                system=system,
                user=user,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise GenerationError(f"{type(e).__name__}: {e}") from e

        answer = _ANSWER_LABEL.sub("", (raw or "").strip(), count=1).strip()
        if not answer:
            raise GenerationError("Model returned an empty answer")
        return answer
