"""
Main Pipeline System

Orchestrates the RAG backend: article ingestion into the vector index
and query answering over it.

Ingestion builds every refresh into a fresh staging collection and then
repoints the public collection alias at it, so concurrent queries keep
reading the previous generation until the new one is complete.
"""

import enum
import time
import uuid
import logging
import threading
from datetime import datetime
from typing import Dict, Any, Optional

from tqdm import tqdm

from .config import Config, get_config
from .embeddings.embedder import Embedder, SentenceTransformerEmbedder
from .embeddings.ollama_service import OllamaEmbedder
from .exceptions import NotReadyError, VectorIndexError
from .generation.llm_client import LLMGenerationClient, create_llm
from .ingestion.feed_fetcher import NewsFetcher
from .models import GeneratedAnswer, IndexedPoint
from .query.rag_service import RAGService
from .storage.vector_store import COSINE, FaissIndexClient

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZING = 'initializing'
    READY = 'ready'
    REFRESHING = 'refreshing'


# States in which a generation has been published and can be queried
_QUERYABLE_STATES = (PipelineState.READY, PipelineState.REFRESHING)


class RAGPipeline:
    """
    Coordinates fetcher, embedder, vector index and generation client.

    State machine: UNINITIALIZED -> INITIALIZING -> READY -> (REFRESHING -> READY)*.
    answer_query() fails fast with NotReadyError until a first
    initialize()/refresh()/restore() has succeeded. Refreshes are
    serialized by a single writer lock; queries take no lock.
    """

    def __init__(
        self,
        fetcher: NewsFetcher,
        embedder: Embedder,
        index_client: FaissIndexClient,
        generation_client: LLMGenerationClient,
        collection_name: str = "news_articles",
        dimension: int = 384,
        article_limit: int = 50,
        top_k: int = 3,
        persist: bool = False,
        show_progress: bool = False
    ):
        """
        Initialize the pipeline.

        Args:
            fetcher: Article source adapter
            embedder: Text embedder (its dimension must match `dimension`)
            index_client: Vector index client
            generation_client: Generation client
            collection_name: Public name queries search (an alias to the live generation)
            dimension: Vector dimensionality of created collections
            article_limit: Articles fetched per refresh
            top_k: Articles retrieved per query
            persist: Save the index to index_client.persist_dir after each refresh
            show_progress: Show a tqdm progress bar while ingesting
        """
        if article_limit <= 0:
            raise ValueError(f"article_limit must be positive, got {article_limit}")
        if embedder.dimension != dimension:
            raise ValueError(
                f"Embedder produces {embedder.dimension}-dim vectors but the index "
                f"expects {dimension}"
            )

        self.fetcher = fetcher
        self.embedder = embedder
        self.index_client = index_client
        self.generation_client = generation_client
        self.collection_name = collection_name
        self.dimension = dimension
        self.article_limit = article_limit
        self.persist = persist
        self.show_progress = show_progress

        self.rag_service = RAGService(
            embedder=embedder,
            index_client=index_client,
            generation_client=generation_client,
            collection_name=collection_name,
            top_k=top_k
        )

        self._state = PipelineState.UNINITIALIZED
        self._refresh_lock = threading.Lock()
        self.last_refresh_at: Optional[str] = None
        self.last_refresh_count = 0

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state in _QUERYABLE_STATES

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def initialize(self) -> int:
        """
        Startup ingestion: build and publish the first collection.

        Returns:
            Number of articles ingested

        Raises:
            RuntimeError: If the pipeline was already initialized
            EmbeddingError, VectorIndexError: Propagated; the pipeline stays UNINITIALIZED
        """
        with self._refresh_lock:
            if self._state is not PipelineState.UNINITIALIZED:
                raise RuntimeError(f"initialize() called in state {self._state.value}")

            logger.info("Starting RAG pipeline initialization...")
            warm_up = getattr(self.embedder, 'warm_up', None)
            if callable(warm_up):
                warm_up()

            return self._run_reindex(PipelineState.INITIALIZING)

    def refresh(self) -> int:
        """
        Re-fetch all articles and atomically replace the published collection.

        Queries keep being answered from the previous collection while this
        runs. On failure the previous collection stays published.

        Returns:
            Number of articles ingested
        """
        with self._refresh_lock:
            logger.info("Refreshing articles...")
            transient = (
                PipelineState.INITIALIZING
                if self._state is PipelineState.UNINITIALIZED
                else PipelineState.REFRESHING
            )
            return self._run_reindex(transient)

    def _run_reindex(self, transient: PipelineState) -> int:
        previous_state = self._state
        self._state = transient
        try:
            count = self._reindex()
        except Exception:
            self._state = previous_state
            logger.error(f"✗ Reindex failed, state restored to {previous_state.value}")
            raise

        self._state = PipelineState.READY
        self.last_refresh_at = datetime.now().isoformat()
        self.last_refresh_count = count

        # The new generation is already live; a failed save only loses the on-disk copy
        if self.persist:
            try:
                self.index_client.save()
            except VectorIndexError as e:
                logger.error(f"✗ Failed to persist index: {e}")

        logger.info(f"✓ Pipeline ready with {count} articles")
        return count

    def _reindex(self) -> int:
        """
        Fetch, embed and index all articles into a new staging collection,
        then publish it under `collection_name`.
        """
        staging = f"{self.collection_name}__{uuid.uuid4().hex[:8]}"
        published = self.index_client.get_alias_target(self.collection_name)
        if published is None:
            logger.debug(f"No existing collection published as '{self.collection_name}'")

        self.index_client.ensure_collection(staging, self.dimension, COSINE)

        try:
            count = self._ingest(staging)
        except Exception:
            self.index_client.delete_collection(staging)
            raise

        previous = self.index_client.set_alias(self.collection_name, staging)
        self._drop_stale_generations(keep=staging)
        if previous and previous != staging:
            logger.info(f"Retired previous collection '{previous}'")
        return count

    def _ingest(self, collection: str) -> int:
        """
        Embed and upsert articles one at a time, ids 0..n-1 in fetch order.

        A failure on article i aborts the ingestion.
        """
        start_time = time.time()
        articles = self.fetcher.fetch_articles(self.article_limit)
        logger.info(f"✓ Fetched {len(articles)} articles")

        iterator = enumerate(articles)
        if self.show_progress:
            iterator = tqdm(iterator, total=len(articles), desc="Ingesting articles")

        for i, article in iterator:
            logger.debug(f"Processing article {i + 1}/{len(articles)}: {article.title}")
            vector = self.embedder.embed(article.content)
            self.index_client.upsert(collection, [
                IndexedPoint(id=i, vector=vector, payload=article.to_payload())
            ])

        logger.info(
            f"✓ Ingested {len(articles)} articles in {time.time() - start_time:.2f}s"
        )
        return len(articles)

    def _drop_stale_generations(self, keep: str) -> None:
        prefix = f"{self.collection_name}__"
        for name in self.index_client.list_collections():
            if name.startswith(prefix) and name != keep:
                self.index_client.delete_collection(name)

    def restore(self) -> bool:
        """
        Become READY from an already-populated index without re-ingesting.

        When persistence is enabled the index is loaded from disk first.

        Returns:
            True if a non-empty published collection was found
        """
        with self._refresh_lock:
            if self.is_ready:
                return True

            if self.persist and not self.index_client.collection_exists(self.collection_name):
                self.index_client.load()

            if not self.index_client.collection_exists(self.collection_name):
                logger.info(f"No published collection '{self.collection_name}' to restore")
                return False

            count = self.index_client.count(self.collection_name)
            if count == 0:
                return False

            self._state = PipelineState.READY
            self.last_refresh_count = count
            logger.info(f"✓ Restored collection '{self.collection_name}' with {count} articles")
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def answer_query(self, user_query: str) -> GeneratedAnswer:
        """
        Answer a user query from the top-k retrieved articles.

        Raises:
            NotReadyError: If no collection has been published yet
            EmbeddingError: If the query is empty, or propagated from the embedder
            VectorIndexError, GenerationError: Propagated
        """
        if not self.is_ready:
            raise NotReadyError(
                f"RAG pipeline is not ready (state: {self._state.value}); "
                "call initialize() or refresh() first"
            )

        logger.info(f"Processing query: {user_query[:80]}")
        return self.rag_service.query(user_query)

    def get_stats(self) -> Dict[str, Any]:
        """Pipeline state and index statistics."""
        stats: Dict[str, Any] = {
            'state': self._state.value,
            'collection_name': self.collection_name,
            'published_collection': self.index_client.get_alias_target(self.collection_name),
            'total_articles': 0,
            'last_refresh_at': self.last_refresh_at,
            'last_refresh_count': self.last_refresh_count,
            'embedder': repr(self.embedder),
            'vector_store_stats': self.index_client.get_stats(),
        }
        if self.index_client.collection_exists(self.collection_name):
            stats['total_articles'] = self.index_client.count(self.collection_name)

        cache_stats = getattr(self.embedder, 'get_cache_stats', None)
        if callable(cache_stats):
            stats['cache_stats'] = cache_stats()
        return stats


def create_embedder(config: Config) -> Embedder:
    """Build the embedder selected by config.embedding_backend."""
    if config.embedding_backend == 'ollama':
        return OllamaEmbedder(
            model=config.ollama_embedding_model,
            base_url=config.ollama_base_url,
            dimension=config.embedding_dimension,
            timeout=config.ollama_timeout
        )

    return SentenceTransformerEmbedder(
        model_name=config.embedding_model,
        dimension=config.embedding_dimension
    )


def build_pipeline(
    config: Optional[Config] = None,
    show_progress: bool = False
) -> RAGPipeline:
    """
    Wire a RAGPipeline with default collaborators from configuration.

    Args:
        config: Configuration (default: global config)
        show_progress: Show a progress bar while ingesting

    Returns:
        A pipeline in the UNINITIALIZED state
    """
    config = config or get_config()

    return RAGPipeline(
        fetcher=NewsFetcher(
            min_content_length=config.min_content_length,
            timeout=config.feed_timeout
        ),
        embedder=create_embedder(config),
        index_client=FaissIndexClient(persist_dir=config.index_dir),
        generation_client=LLMGenerationClient(create_llm(config)),
        collection_name=config.collection_name,
        dimension=config.embedding_dimension,
        article_limit=config.article_limit,
        top_k=config.top_k,
        persist=True,
        show_progress=show_progress
    )
