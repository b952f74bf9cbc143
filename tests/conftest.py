"""
Shared fixtures and fakes for the test suite.

The fakes stand in for the network-bound collaborators (feeds, embedding
model, LLM) so the pipeline can be exercised end-to-end against a real
FAISS index.
"""

import hashlib
import re
from typing import List, Sequence

import numpy as np
import pytest

from news_rag.models import Article
from news_rag.storage.vector_store import FaissIndexClient


DIMENSION = 384


class HashingEmbedder:
    """Deterministic bag-of-words embedder producing unit-norm vectors."""

    def __init__(self, dimension: int = DIMENSION):
        self._dimension = dimension
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = np.zeros(self._dimension, dtype=np.float32)
        for token in re.findall(r'\w+', text.lower()):
            digest = hashlib.sha256(token.encode('utf-8')).digest()
            index = int.from_bytes(digest[:4], 'little') % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign
        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
            norm = 1.0
        return (vector / norm).tolist()


class StaticFetcher:
    """Fetcher returning a fixed list of batches, one per call."""

    def __init__(self, *batches: Sequence[Article]):
        self.batches = [list(batch) for batch in batches]
        self.calls = 0

    def fetch_articles(self, limit: int = 50) -> List[Article]:
        batch = self.batches[min(self.calls, len(self.batches) - 1)]
        self.calls += 1
        return batch[:limit]


class EchoGenerationClient:
    """Generation client that records prompts and returns a canned answer."""

    def __init__(self, answer: str = "Generated answer"):
        self.answer = answer
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


def make_article(i: int, source: str = "BBC World", content: str = None) -> Article:
    return Article(
        title=f"Article {i}",
        content=content or f"Story number {i} about topic{i} " + "details " * 30,
        source=source,
        published_at="Mon, 01 Jan 2024 12:00:00 GMT",
        url=f"https://example.com/news/{i}",
    )


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def index_client():
    return FaissIndexClient()


@pytest.fixture
def generation_client():
    return EchoGenerationClient()


@pytest.fixture
def articles():
    return [make_article(i) for i in range(5)]
