"""
Ollama Embedding Service

Embeds text through a local Ollama server's /api/embeddings endpoint.
Results are L2-normalized and kept in an in-memory cache keyed by the
SHA-256 of the text, so repeated queries skip the HTTP round-trip.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass, asdict
from typing import List, Dict, Optional

import numpy as np
import requests

from ..exceptions import EmbeddingError
from .embedder import l2_normalize

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics for cache performance tracking."""
    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    cache_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        return self.hits / self.total_requests if self.total_requests > 0 else 0.0

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            **asdict(self),
            'hit_rate': self.hit_rate
        }


class OllamaEmbedder:
    """
    Embedder backed by an Ollama embedding model.

    nomic-embed-text produces 768-dimensional vectors; pass the matching
    dimension when using another model.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        dimension: int = 768,
        timeout: int = 30,
        enable_cache: bool = True,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the Ollama embedder.

        Args:
            model: Ollama model name
            base_url: Ollama base URL
            dimension: Expected embedding dimensionality
            timeout: Request timeout in seconds
            enable_cache: Keep embeddings in memory keyed by text hash
            session: Optional requests session
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self._dimension = dimension
        self.timeout = timeout
        self.enable_cache = enable_cache
        self.session = session or requests.Session()

        self._memory_cache: Dict[str, List[float]] = {}
        self._cache_stats = CacheStats()
        self._cache_lock = threading.Lock()

        logger.info(f"Initialized OllamaEmbedder with model: {self.model}")

    @property
    def dimension(self) -> int:
        return self._dimension

    @staticmethod
    def _compute_hash(text: str) -> str:
        """SHA-256 of the text, used as the cache key."""
        return hashlib.sha256(text.encode('utf-8')).hexdigest()

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: If text is empty, Ollama is unreachable or replies badly
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        text_hash = self._compute_hash(text)
        if self.enable_cache:
            with self._cache_lock:
                self._cache_stats.total_requests += 1
                cached = self._memory_cache.get(text_hash)
                if cached is not None:
                    self._cache_stats.hits += 1
                    logger.debug(f"Cache hit for text hash: {text_hash[:8]}...")
                    return list(cached)
                self._cache_stats.misses += 1

        try:
            response = self.session.post(
                f"{self.base_url}/api/embeddings",
                json={
                    "model": self.model,
                    "prompt": text
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            raw = response.json()['embedding']
        except requests.exceptions.ConnectionError as e:
            raise EmbeddingError(
                f"Unable to connect to Ollama at {self.base_url}. "
                "Please ensure Ollama is running."
            ) from e
        except requests.exceptions.Timeout as e:
            raise EmbeddingError(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            raise EmbeddingError(f"HTTP error from Ollama: {e}") from e
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"Error calling Ollama: {e}") from e
        except (KeyError, ValueError) as e:
            raise EmbeddingError(f"Unexpected API response format: {e}") from e

        vector = l2_normalize(np.array(raw, dtype=np.float32))
        if vector.shape[0] != self._dimension:
            raise EmbeddingError(
                f"Expected {self._dimension} dimensions, got {vector.shape[0]}. "
                "This may indicate an issue with the model or API."
            )

        embedding = vector.tolist()
        if self.enable_cache:
            with self._cache_lock:
                self._memory_cache[text_hash] = embedding
                self._cache_stats.cache_size = len(self._memory_cache)

        return list(embedding)

    def get_cache_stats(self) -> Dict:
        """Get cache performance statistics."""
        with self._cache_lock:
            return self._cache_stats.to_dict()

    def clear_cache(self) -> None:
        """Clear the embedding cache."""
        with self._cache_lock:
            self._memory_cache.clear()
            self._cache_stats = CacheStats()
        logger.info("Cleared memory cache")
