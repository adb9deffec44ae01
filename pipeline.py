#!/usr/bin/env python3
"""Command-line entry point for news collection, inspection and serving.

Usage:
  python pipeline.py collect                          # Fetch feeds → chunk → embed → store
  python pipeline.py collect --chunk-size 800         # Override chunking for this run
  python pipeline.py clear                            # Drop the news collection
  python pipeline.py clear --conversations            # Also drop logged conversations
  python pipeline.py status                           # Collection and session stats
  python pipeline.py view                             # Sample stored chunks + test query
  python pipeline.py query "What happened in the election?"
  python pipeline.py serve --port 5000                # Launch the chat API

collect does nothing when the news collection already holds data; run
clear first to rebuild it from fresh feeds.
"""

import argparse
import logging
import sys

import orjson
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def cmd_collect(args):
    """Run the ingestion pipeline."""
    from vectorstore.ingest import IngestionOptions, print_summary, build_pipeline

    options = IngestionOptions.from_env()
    if args.chunk_size is not None:
        options.chunk_size = args.chunk_size
    if args.overlap is not None:
        options.overlap = args.overlap
    if args.batch_size is not None:
        options.batch_size = args.batch_size
    if args.feed_cap is not None:
        options.feed_cap = args.feed_cap

    pipeline = build_pipeline(options)
    result = pipeline.run()
    print_summary(result, pipeline.store)
    if not result.success:
        sys.exit(1)


def cmd_clear(args):
    """Drop the news collection (and optionally the conversation log)."""
    from vectorstore.store import CONVERSATION_COLLECTION, NEWS_COLLECTION, VectorStore

    store = VectorStore()
    names = [NEWS_COLLECTION] + ([CONVERSATION_COLLECTION] if args.conversations else [])
    for name in names:
        if store.delete_collection(name):
            print(f"Deleted collection '{name}'")
        else:
            print(f"Collection '{name}' did not exist")


def cmd_status(args):
    """Show vector store and session statistics."""
    from vectorstore.store import VectorStore
    from webapp.sessions import SessionManager

    store = VectorStore()
    stats = store.get_stats()

    print("\n" + "=" * 70)
    print("VECTOR STORE STATUS")
    print("=" * 70)
    if not stats:
        print("\n  No collections yet. Run: python pipeline.py collect")
    for name, info in stats.items():
        print(f"\n  Collection: {name}")
        print(f"    Vectors stored: {info.get('count', 0)}")

    session_stats = SessionManager().get_session_stats()
    print("\n  Sessions:")
    for key, value in session_stats.items():
        print(f"    {key}: {value}")
    print("\n" + "=" * 70)


def cmd_view(args):
    """Print a sample of stored chunks and run a test query."""
    from vectorstore.embedder import EmbeddingGateway, OpenAIEmbeddingBackend
    from vectorstore.store import NEWS_COLLECTION, VectorStore

    store = VectorStore()
    total = store.count(NEWS_COLLECTION)
    print(f"\nCollection '{NEWS_COLLECTION}': {total} chunks")
    if total == 0:
        print("Nothing stored yet. Run: python pipeline.py collect")
        return

    sample = store.peek(NEWS_COLLECTION, limit=args.limit)
    for i, (doc_id, doc, meta) in enumerate(zip(sample.ids, sample.documents, sample.metadatas), 1):
        print(f"\n[{i}] {doc_id}")
        print(f"    Title:  {meta.get('title', '?')}")
        print(f"    Source: {meta.get('source', '?')}")
        print(f"    URL:    {meta.get('url', '?')}")
        print(f"    Chunk:  {meta.get('chunk_index', '?')}/{meta.get('total_chunks', '?')}")
        print(f"    Text:   {doc[:200].replace(chr(10), ' ')}...")

    backend = OpenAIEmbeddingBackend()
    embedder = EmbeddingGateway(backend, dimensions=backend.dimensions)
    results = store.query(NEWS_COLLECTION, [embedder.embed_single(args.test_query)], top_k=3)
    print(f"\nTest query: \"{args.test_query}\"")
    print("-" * 50)
    for doc, meta, dist in zip(results.documents, results.metadatas, results.distances):
        print(f"  Score: {1 - dist:.4f} | {meta.get('title', '?')}")
        print(f"    {doc[:150].replace(chr(10), ' ')}...")


def cmd_query(args):
    """Answer a question from the command line."""
    from webapp.rag.query_engine import build_query_engine

    engine = build_query_engine()
    result = engine.process_query(args.question)

    if args.json:
        print(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2).decode())
        return

    print(f"\nQuestion: {args.question}")
    print("-" * 50)
    print(result.answer)
    if result.sources:
        print("\nSources:")
        for s in result.sources:
            print(f"  - {s.title} ({s.url})")
    if result.error:
        print(f"\nError: {result.error}")
    print(f"\n[{result.state.value}, {result.relevant_document_count} documents, {result.metadata.get('timings', {})}]")


def cmd_serve(args):
    """Launch the chat API."""
    import uvicorn

    logger.info("=" * 60)
    logger.info("LAUNCHING NEWS CHAT API")
    logger.info("  http://localhost:%d", args.port)
    logger.info("=" * 60)

    uvicorn.run(
        "webapp.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="News RAG chat pipeline")
    subparsers = parser.add_subparsers(dest="command")

    collect_parser = subparsers.add_parser("collect", help="Collect news into the vector store")
    collect_parser.add_argument("--chunk-size", type=int, default=None, help="Chunk size in characters (default: 600)")
    collect_parser.add_argument("--overlap", type=int, default=None, help="Chunk overlap in characters (default: 60)")
    collect_parser.add_argument("--batch-size", type=int, default=None, help="Chunks per batch (default: 10)")
    collect_parser.add_argument("--feed-cap", type=int, default=None, help="Articles per feed (default: 5)")

    clear_parser = subparsers.add_parser("clear", help="Delete the news collection")
    clear_parser.add_argument(
        "--conversations", action="store_true", help="Also delete the conversation log"
    )

    subparsers.add_parser("status", help="Show vector store and session statistics")

    view_parser = subparsers.add_parser("view", help="Show sample chunks and a test query")
    view_parser.add_argument("--limit", type=int, default=3, help="Chunks to show")
    view_parser.add_argument("--test-query", default="latest news", help="Query to run")

    query_parser = subparsers.add_parser("query", help="Ask a question")
    query_parser.add_argument("question", help="Question text")
    query_parser.add_argument("--json", action="store_true", help="Print the raw result")

    serve_parser = subparsers.add_parser("serve", help="Launch the chat API")
    serve_parser.add_argument("--port", type=int, default=5000, help="Port (default: 5000)")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host (default: 0.0.0.0)")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "collect": cmd_collect,
        "clear": cmd_clear,
        "status": cmd_status,
        "view": cmd_view,
        "query": cmd_query,
        "serve": cmd_serve,
    }

    try:
        commands[args.command](args)
    except Exception as e:
        logger.exception("Pipeline error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
