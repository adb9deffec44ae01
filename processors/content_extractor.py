"""Text normalizer for scraped news content.

Runs on every title, description and article body before chunking. Strips
markup left over from HTML extraction, drops characters that only add noise
to embeddings and removes the player/caption boilerplate that news sites
inject into article bodies.
"""

import logging
import re

logger = logging.getLogger(__name__)

# Phrases news sites inject around embedded media
BOILERPLATE_PHRASES = [
    "To play this video you need to enable JavaScript in your browser.",
    "This video can not be played",
    "Media caption",
    "Image caption",
    "Image source",
]


class TextNormalizer:
    """Cleans raw scraped text into plain, single-spaced prose.

    normalize() is idempotent: feeding its output back in returns it unchanged.
    """

    def __init__(self, boilerplate: list[str] = BOILERPLATE_PHRASES):
        self._tag_pattern = re.compile(r"<[^>]*>")
        self._entity_pattern = re.compile(r"&#?\w+;")
        # Everything outside letters, digits, whitespace and news punctuation
        self._noise_pattern = re.compile(r"[^\w\s.,!?;:'\"()\-%$£€/+@‘’“”]")
        self._whitespace_pattern = re.compile(r"\s+")
        self._boilerplate_patterns = [
            re.compile(re.escape(phrase), re.IGNORECASE) for phrase in boilerplate
        ]

    def normalize(self, raw: str) -> str:
        """Return the cleaned form of raw. Never raises; None becomes ''."""
        if not raw:
            return ""

        text = self._tag_pattern.sub(" ", raw)
        text = self._entity_pattern.sub(" ", text)
        text = self._noise_pattern.sub("", text)
        text = self._collapse(text)

        # Removing one phrase can join its neighbours into another
        previous = None
        while text != previous:
            previous = text
            for pattern in self._boilerplate_patterns:
                text = pattern.sub(" ", text)
            text = self._collapse(text)

        return text

    def normalize_batch(self, texts: list[str]) -> list[str]:
        """Normalize a batch of strings."""
        cleaned = [self.normalize(t) for t in texts]
        logger.debug("Normalized %d texts", len(cleaned))
        return cleaned

    def _collapse(self, text: str) -> str:
        return self._whitespace_pattern.sub(" ", text).strip()
