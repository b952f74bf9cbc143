"""
Sentence-Transformers Text Embedder

Turns text into fixed-length, L2-normalized vectors with a pretrained
sentence-transformers model (mean pooling over token embeddings).
Normalization makes cosine similarity and dot product rank identically.
"""

import logging
import threading
from typing import List, Optional, Protocol, runtime_checkable

import numpy as np

from ..exceptions import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSION = 384


@runtime_checkable
class Embedder(Protocol):
    """Anything that maps text to a fixed-length vector."""

    @property
    def dimension(self) -> int: ...

    def embed(self, text: str) -> List[float]: ...


def l2_normalize(vector) -> np.ndarray:
    """
    Scale a vector to unit L2 norm.

    Raises:
        EmbeddingError: If the vector is empty, non-finite or all zeros
    """
    array = np.asarray(vector, dtype=np.float32).reshape(-1)
    if array.size == 0 or not np.all(np.isfinite(array)):
        raise EmbeddingError("Model returned an empty or non-finite embedding")

    norm = float(np.linalg.norm(array))
    if norm == 0.0:
        raise EmbeddingError("Model returned a zero embedding")

    return array / norm


def _load_model(model_name: str, device: Optional[str] = None):
    """Load a SentenceTransformer model (imported lazily, it is heavy)."""
    from sentence_transformers import SentenceTransformer
    return SentenceTransformer(model_name, device=device)


class SentenceTransformerEmbedder:
    """
    Embeds text with a sentence-transformers model.

    The model is loaded once, on first use or on warm_up(), and reused
    for every call. A preloaded model can be injected instead.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        dimension: int = DEFAULT_DIMENSION,
        device: Optional[str] = None,
        model=None
    ):
        """
        Initialize the embedder.

        Args:
            model_name: HuggingFace model id
            dimension: Expected output dimensionality
            device: Torch device ('cpu', 'cuda', ...) or None for auto
            model: Preloaded model exposing encode() (skips lazy loading)
        """
        self.model_name = model_name
        self._dimension = dimension
        self.device = device
        self._model = model
        self._load_lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _get_model(self):
        if self._model is None:
            with self._load_lock:
                if self._model is None:
                    logger.info(f"Loading embedding model: {self.model_name}")
                    try:
                        self._model = _load_model(self.model_name, self.device)
                    except Exception as e:
                        raise EmbeddingError(
                            f"Unable to load embedding model '{self.model_name}': {e}"
                        ) from e
                    logger.info("✓ Embedding model loaded")
        return self._model

    def warm_up(self) -> None:
        """Load the model now instead of on the first embed() call."""
        self._get_model()

    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            text: Input text

        Returns:
            Unit-norm embedding of length `dimension`

        Raises:
            EmbeddingError: If text is empty or the model fails
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        model = self._get_model()
        logger.debug(f"Generating embedding ({len(text)} characters)")

        try:
            raw = model.encode(text, convert_to_numpy=True, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingError(f"Error generating embedding: {e}") from e

        vector = l2_normalize(raw)
        if vector.shape[0] != self._dimension:
            raise EmbeddingError(
                f"Expected {self._dimension} dimensions, got {vector.shape[0]}"
            )

        return vector.tolist()

    def __repr__(self) -> str:
        return (
            f"SentenceTransformerEmbedder(model={self.model_name!r}, "
            f"dimension={self._dimension}, loaded={self.is_loaded})"
        )
