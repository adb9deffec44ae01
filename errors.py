"""Exception types shared across ingestion, retrieval and the web app.

Adapters catch the library-specific exceptions (requests, chromadb, sqlite3,
openai, anthropic) and re-raise one of these so the pipeline can decide
whether a failure skips an item or ends the current request.
"""


class NewsRAGError(Exception):
    """Base class for all pipeline errors."""


class SourceFetchError(NewsRAGError):
    """A feed or article could not be fetched or parsed."""


class EmbeddingError(NewsRAGError):
    """The embedding backend failed or returned an unusable vector."""


class StoreError(NewsRAGError):
    """The vector store or session store rejected an operation."""


class GenerationError(NewsRAGError):
    """The language model failed or returned an empty answer."""
