"""Shared utilities for the news scrapers: retrying fetch, body extraction, dates."""

import logging
from typing import Optional

import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; NewsRAGBot/1.0; news question answering)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/rss+xml,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# Tried in order; the first selector with enough text wins
ARTICLE_SELECTORS = [
    "article",
    ".article-content",
    ".story-body",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
]

# Elements that never contain article prose
NOISE_SELECTORS = [
    "script", "style", "noscript", "nav", "header", "footer", "aside",
    ".advertisement", ".ad", ".ads", ".social-share", ".comments",
]

MIN_SELECTOR_TEXT = 100


def fetch_url(
    url: str,
    headers: Optional[dict] = None,
    timeout: int = 10,
) -> Optional[requests.Response]:
    """Fetch a URL with retry logic.

    Returns None on any unrecoverable error (including exhausted retries).
    """
    try:
        return _fetch_url_with_retry(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        logger.error("All retries exhausted for %s: %s", url, e)
        return None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def _fetch_url_with_retry(
    url: str,
    headers: Optional[dict] = None,
    timeout: int = 10,
) -> Optional[requests.Response]:
    """Inner fetch with retry decorator."""
    merged_headers = {**DEFAULT_HEADERS, **(headers or {})}
    try:
        response = requests.get(url, headers=merged_headers, timeout=timeout)
        if response.status_code == 404:
            logger.warning("404 Not Found: %s", url)
            return None
        response.raise_for_status()
        return response
    except requests.HTTPError as e:
        logger.error("HTTP error fetching %s: %s", url, e)
        return None


def extract_article_text(html: str, selectors: list[str] = ARTICLE_SELECTORS) -> str:
    """Extract the readable body text of a news article page.

    Tries the article selectors in order and falls back to <body>.
    """
    soup = BeautifulSoup(html, "lxml")

    for selector in NOISE_SELECTORS:
        for tag in soup.select(selector):
            tag.decompose()

    for selector in selectors:
        area = soup.select_one(selector)
        if area:
            text = area.get_text(" ", strip=True)
            if len(text) >= MIN_SELECTOR_TEXT:
                return text

    body = soup.find("body")
    return body.get_text(" ", strip=True) if body else ""


def to_iso_date(raw: Optional[str]) -> Optional[str]:
    """Parse an RSS/Atom date string into ISO 8601. Unparseable input is returned as-is."""
    if not raw:
        return None
    raw = raw.strip()
    try:
        return date_parser.parse(raw).isoformat()
    except (ValueError, OverflowError):
        logger.debug("Unparseable date %r, keeping raw value", raw)
        return raw


def strip_markup(fragment: str) -> str:
    """Plain text of an HTML fragment such as an RSS <description>."""
    if not fragment or "<" not in fragment:
        return fragment or ""
    return BeautifulSoup(fragment, "lxml").get_text(" ", strip=True)
