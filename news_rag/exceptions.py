"""
Error types shared across the RAG pipeline.

Only FetchError is recovered locally (a failing feed is skipped); every
other error aborts the current refresh or query and reaches the caller.
"""


class NewsRAGError(Exception):
    """Base class for all pipeline errors."""
    pass


class FetchError(NewsRAGError):
    """Raised when a single feed source is unreachable or malformed."""
    pass


class EmbeddingError(NewsRAGError):
    """Raised when the embedding model is unavailable or the text cannot be embedded."""
    pass


class VectorIndexError(NewsRAGError):
    """Raised when the vector index is unreachable, a collection is missing, or dimensions mismatch."""
    pass


class GenerationError(NewsRAGError):
    """Raised when the text generation endpoint fails (quota, auth, network)."""
    pass


class NotReadyError(NewsRAGError):
    """Raised when a query is issued before the first successful initialization."""
    pass


class SessionNotFoundError(NewsRAGError):
    """Raised when a chat session id is unknown to the session store."""
    pass
