"""News ingestion pipeline: fetch feeds → normalize → chunk → embed → store in ChromaDB.

Usage (standalone):
  python -m vectorstore.ingest
  python -m vectorstore.ingest --chunk-size 800 --overlap 80

Or via the main pipeline:
  python pipeline.py collect

Ingestion only runs against an empty news collection. Once the collection
holds any vectors the run returns immediately with "already populated";
use `python pipeline.py clear` first to rebuild it.
"""

import argparse
import logging
import os
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from errors import SourceFetchError, StoreError
from processors.content_extractor import TextNormalizer
from schemas.article import Article
from schemas.chunk import ChunkMetadata, IndexedDocument
from vectorstore.chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, Chunker
from vectorstore.embedder import EmbeddingGateway
from vectorstore.store import NEWS_COLLECTION, VectorStore

logger = logging.getLogger(__name__)

ALREADY_POPULATED = "already populated"


# ---------------------------------------------------------------------------
# Options and result
# ---------------------------------------------------------------------------

@dataclass
class IngestionOptions:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    overlap: int = DEFAULT_CHUNK_OVERLAP
    batch_size: int = 10
    feed_cap: int = 5  # articles taken from the top of each feed
    per_article_cap: int = 2000  # characters of body kept per article
    min_content_chars: int = 50
    article_delay: float = 1.0
    feed_delay: float = 2.0
    batch_delay: float = 2.0
    collection: str = NEWS_COLLECTION

    @classmethod
    def from_env(cls) -> "IngestionOptions":
        """Build options from INGEST_* environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            chunk_size=int(os.getenv("INGEST_CHUNK_SIZE", defaults.chunk_size)),
            overlap=int(os.getenv("INGEST_CHUNK_OVERLAP", defaults.overlap)),
            batch_size=int(os.getenv("INGEST_BATCH_SIZE", defaults.batch_size)),
            feed_cap=int(os.getenv("INGEST_FEED_CAP", defaults.feed_cap)),
            per_article_cap=int(os.getenv("INGEST_PER_ARTICLE_CAP", defaults.per_article_cap)),
            min_content_chars=int(os.getenv("INGEST_MIN_CONTENT_CHARS", defaults.min_content_chars)),
            article_delay=float(os.getenv("INGEST_ARTICLE_DELAY", defaults.article_delay)),
            feed_delay=float(os.getenv("INGEST_FEED_DELAY", defaults.feed_delay)),
            batch_delay=float(os.getenv("INGEST_BATCH_DELAY", defaults.batch_delay)),
            collection=os.getenv("NEWS_COLLECTION", defaults.collection),
        )


@dataclass
class IngestionResult:
    success: bool
    articles: int = 0
    chunks: int = 0
    message: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class IngestionPipeline:
    """Collects news articles from feeds and writes their chunks to the vector store."""

    def __init__(
        self,
        source,
        embedder: EmbeddingGateway,
        store: VectorStore,
        feeds: list[str],
        options: Optional[IngestionOptions] = None,
        normalizer: Optional[TextNormalizer] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.embedder = embedder
        self.store = store
        self.feeds = feeds
        self.options = options or IngestionOptions()
        self.normalizer = normalizer or TextNormalizer()
        self.chunker = Chunker(chunk_size=self.options.chunk_size, overlap=self.options.overlap)
        self._sleep = sleep
        self._clock = clock

    def run(self) -> IngestionResult:
        """Run one full ingestion. Never raises; failures come back in the result."""
        opts = self.options
        pipeline_start = time.perf_counter()

        logger.info("STEP 1/4: Checking collection '%s'...", opts.collection)
        try:
            self.store.get_or_create(opts.collection)
            existing = self.store.count(opts.collection)
        except StoreError as e:
            logger.error("Vector store unavailable: %s", e)
            return IngestionResult(success=False, error=str(e))

        if existing > 0:
            logger.info(
                "Collection '%s' already holds %d chunks, skipping ingestion",
                opts.collection, existing,
            )
            return IngestionResult(success=True, articles=0, chunks=existing, message=ALREADY_POPULATED)

        logger.info("STEP 2/4: Collecting articles from %d feeds...", len(self.feeds))
        t0 = time.perf_counter()
        articles = self.collect_articles()
        logger.info("STEP 2/4 done: %d articles in %.1fs", len(articles), time.perf_counter() - t0)
        if not articles:
            return IngestionResult(success=False, error="No articles collected")

        logger.info("STEP 3/4: Chunking %d articles...", len(articles))
        documents = self.build_documents(articles)
        if not documents:
            return IngestionResult(success=False, articles=len(articles), error="No chunks produced")

        logger.info("STEP 4/4: Embedding and storing %d chunks...", len(documents))
        t0 = time.perf_counter()
        try:
            stored = self.store_documents(documents)
        except StoreError as e:
            logger.error("Storing chunks failed: %s", e)
            return IngestionResult(success=False, articles=len(articles), error=str(e))
        logger.info("STEP 4/4 done: %d chunks stored in %.1fs", stored, time.perf_counter() - t0)

        logger.info(
            "Ingestion complete in %.1fs: %d articles, %d chunks",
            time.perf_counter() - pipeline_start, len(articles), stored,
        )
        return IngestionResult(
            success=True,
            articles=len(articles),
            chunks=stored,
            message=f"Stored {stored} chunks from {len(articles)} articles",
        )

    def collect_articles(self) -> list[Article]:
        """Fetch, normalize and filter articles from every configured feed."""
        opts = self.options
        articles: list[Article] = []

        for i, feed_url in enumerate(self.feeds, 1):
            logger.info("Processing feed %d/%d: %s", i, len(self.feeds), feed_url)
            try:
                items = self.source.list_feed_items(feed_url)
            except SourceFetchError as e:
                logger.warning("Skipping feed %s: %s", feed_url, e)
                continue

            for item in items[: opts.feed_cap]:
                article = self._collect_one(item)
                if article:
                    articles.append(article)
                self._sleep(opts.article_delay)

            if i < len(self.feeds):
                self._sleep(opts.feed_delay)

        return articles

    def _collect_one(self, item) -> Optional[Article]:
        opts = self.options
        try:
            body = self.source.fetch_body(item.link)
        except SourceFetchError as e:
            logger.warning("Skipping article %s: %s", item.link, e)
            return None
        if not body:
            logger.debug("No body for %s", item.link)
            return None

        content = self.normalizer.normalize(body)[: opts.per_article_cap].strip()
        if len(content) < opts.min_content_chars:
            logger.debug("Body too short (%d chars) for %s", len(content), item.link)
            return None

        return Article(
            id=uuid.uuid4().hex,
            title=self.normalizer.normalize(item.title),
            link=item.link,
            description=self.normalizer.normalize(item.description),
            published_at=item.published_at,
            source_feed=item.source_feed,
            content=content,
        )

    def build_documents(self, articles: list[Article]) -> list[IndexedDocument]:
        """Chunk each article and attach ids and metadata."""
        run_stamp = int(self._clock() * 1000)
        now_iso = datetime.now(timezone.utc).isoformat()
        chunk_lists = self.chunker.chunk_documents([a.full_text() for a in articles])

        documents: list[IndexedDocument] = []
        for article_idx, (article, chunks) in enumerate(zip(articles, chunk_lists)):
            for chunk in chunks:
                documents.append(IndexedDocument(
                    id=f"news_{run_stamp}_{article_idx}_{chunk.chunk_index}",
                    text=chunk.text,
                    metadata=ChunkMetadata(
                        title=article.title,
                        source=article.source_feed,
                        url=article.link,
                        date=article.published_at or now_iso,
                        description=article.description,
                        chunk_index=chunk.chunk_index,
                        total_chunks=chunk.total_chunks,
                        article_id=article.id,
                    ),
                ))
        return documents

    def store_documents(self, documents: list[IndexedDocument]) -> int:
        """Embed and upsert documents batch by batch. Returns the number stored."""
        opts = self.options
        batch_size = max(1, opts.batch_size)
        total_batches = (len(documents) + batch_size - 1) // batch_size
        stored = 0

        for batch_idx in range(total_batches):
            batch = documents[batch_idx * batch_size:(batch_idx + 1) * batch_size]
            vectors = self.embedder.embed([d.text for d in batch], show_progress=False)
            for doc, vector in zip(batch, vectors):
                doc.embedding = vector

            stored += self.store.upsert(
                opts.collection,
                ids=[d.id for d in batch],
                documents=[d.text for d in batch],
                metadatas=[d.metadata.model_dump() for d in batch],
                vectors=vectors,
            )
            logger.info(
                "Stored batch %d/%d (%d chunks, cumulative %d/%d)",
                batch_idx + 1, total_batches, len(batch), stored, len(documents),
            )

            if batch_idx < total_batches - 1:
                self._sleep(opts.batch_delay)

        return stored


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_pipeline(options: Optional[IngestionOptions] = None) -> IngestionPipeline:
    """Assemble a pipeline from environment configuration."""
    from scrapers.rss_scraper import FeedScraper, load_feeds
    from vectorstore.embedder import OpenAIEmbeddingBackend

    backend = OpenAIEmbeddingBackend()
    return IngestionPipeline(
        source=FeedScraper(),
        embedder=EmbeddingGateway(backend, dimensions=backend.dimensions),
        store=VectorStore(),
        feeds=load_feeds(os.getenv("FEEDS_FILE")),
        options=options or IngestionOptions.from_env(),
    )


def print_summary(result: IngestionResult, store: VectorStore):
    """Print a summary of the ingestion result."""
    print("\n" + "=" * 70)
    print("INGESTION SUMMARY")
    print("=" * 70)
    print(f"  Success:   {result.success}")
    print(f"  Articles:  {result.articles}")
    print(f"  Chunks:    {result.chunks}")
    if result.message:
        print(f"  Message:   {result.message}")
    if result.error:
        print(f"  Error:     {result.error}")

    try:
        db_stats = store.get_stats()
    except StoreError as e:
        print(f"\n  ChromaDB unavailable: {e}")
    else:
        print("\n  ChromaDB collections:")
        for name, info in db_stats.items():
            print(f"    {name}: {info.get('count', 0)} vectors")
    print("=" * 70)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main():
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    parser = argparse.ArgumentParser(description="Collect news feeds into the vector store")
    parser.add_argument("--chunk-size", type=int, default=None, help="Chunk size in characters")
    parser.add_argument("--overlap", type=int, default=None, help="Chunk overlap in characters")
    parser.add_argument("--batch-size", type=int, default=None, help="Chunks per embed/store batch")
    args = parser.parse_args()

    options = IngestionOptions.from_env()
    if args.chunk_size is not None:
        options.chunk_size = args.chunk_size
    if args.overlap is not None:
        options.overlap = args.overlap
    if args.batch_size is not None:
        options.batch_size = args.batch_size

    pipeline = build_pipeline(options)
    result = pipeline.run()
    print_summary(result, pipeline.store)
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
