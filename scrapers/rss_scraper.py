"""RSS/Atom feed scraper for news articles.

Lists the items of a feed and fetches the readable body of each linked
article. Feed-level failures raise SourceFetchError so the ingestion
pipeline can skip the feed; article-level failures return None.
"""

import logging
from pathlib import Path
from typing import Optional

import orjson
from bs4 import BeautifulSoup

from errors import SourceFetchError
from schemas.article import FeedItem
from scrapers.utils import extract_article_text, fetch_url, strip_markup, to_iso_date

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_FEEDS_FILE = PROJECT_ROOT / "config" / "feeds.json"


def load_feeds(path: Optional[str] = None) -> list[str]:
    """Load the configured feed URLs from a JSON file.

    The file holds {"feeds": [{"url": ..., "label": ...}, ...]}; plain URL
    strings are accepted too.
    """
    feeds_path = Path(path) if path else DEFAULT_FEEDS_FILE
    if not feeds_path.exists():
        logger.warning("Feeds file not found: %s", feeds_path)
        return []
    data = orjson.loads(feeds_path.read_bytes())
    entries = data.get("feeds", []) if isinstance(data, dict) else data
    return [e["url"] if isinstance(e, dict) else e for e in entries]


class FeedScraper:
    """Reads RSS 2.0 and Atom feeds and fetches article bodies."""

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def list_feed_items(self, feed_url: str) -> list[FeedItem]:
        """Return the items of a feed in feed order."""
        response = fetch_url(feed_url, timeout=self.timeout)
        if response is None:
            raise SourceFetchError(f"Feed unreachable: {feed_url}")

        try:
            soup = BeautifulSoup(response.content, "xml")
        except Exception as e:
            raise SourceFetchError(f"Feed is not parseable XML: {feed_url}: {e}") from e

        entries = soup.find_all("item") or soup.find_all("entry")
        items = []
        for entry in entries:
            item = self._parse_entry(entry, feed_url)
            if item:
                items.append(item)

        logger.info("Feed %s: %d items", feed_url, len(items))
        return items

    def fetch_body(self, url: str) -> Optional[str]:
        """Return the article's extracted body text, or None when unavailable."""
        response = fetch_url(url, timeout=self.timeout)
        if response is None:
            return None
        text = extract_article_text(response.text)
        return text or None

    def _parse_entry(self, entry, feed_url: str) -> Optional[FeedItem]:
        title = _child_text(entry, "title")
        link = _entry_link(entry)
        if not title or not link:
            return None

        description = _child_text(entry, "description") or _child_text(entry, "summary")
        published = (
            _child_text(entry, "pubDate")
            or _child_text(entry, "published")
            or _child_text(entry, "updated")
        )
        return FeedItem(
            title=title,
            link=link,
            description=strip_markup(description),
            published_at=to_iso_date(published),
            source_feed=feed_url,
        )


def _child_text(entry, name: str) -> str:
    child = entry.find(name)
    return child.get_text(strip=True) if child else ""


def _entry_link(entry) -> str:
    link = entry.find("link")
    if not link:
        return ""
    # Atom puts the URL in href, RSS in the element text
    return (link.get("href") or link.get_text(strip=True) or "").strip()
