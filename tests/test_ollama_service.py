"""
Test Suite for the Ollama Embedder

The HTTP session is mocked; no Ollama server is needed.
"""

import numpy as np
import pytest
import requests
from unittest.mock import Mock

from news_rag.embeddings.ollama_service import CacheStats, OllamaEmbedder
from news_rag.exceptions import EmbeddingError


# ============================================================================
# Fixtures
# ============================================================================

def make_response(embedding):
    response = Mock()
    response.raise_for_status = Mock()
    response.json.return_value = {'embedding': embedding}
    return response


@pytest.fixture
def session():
    session = Mock()
    session.post.return_value = make_response([3.0, 4.0, 0.0, 0.0])
    return session


@pytest.fixture
def embedder(session):
    return OllamaEmbedder(dimension=4, session=session)


# ============================================================================
# Embedding Tests
# ============================================================================

class TestEmbedding:
    """Test request format and vector post-processing."""

    def test_posts_to_embeddings_endpoint(self, embedder, session):
        embedder.embed("hello world")

        session.post.assert_called_once_with(
            "http://localhost:11434/api/embeddings",
            json={"model": "nomic-embed-text", "prompt": "hello world"},
            timeout=30
        )

    def test_base_url_trailing_slash(self, session):
        embedder = OllamaEmbedder(base_url="http://ollama:11434/", dimension=4, session=session)
        embedder.embed("text")

        assert session.post.call_args.args[0] == "http://ollama:11434/api/embeddings"

    def test_result_is_normalized(self, embedder):
        vector = embedder.embed("hello")

        assert np.allclose(vector, [0.6, 0.8, 0.0, 0.0])

    def test_dimension_mismatch(self, session):
        embedder = OllamaEmbedder(dimension=768, session=session)

        with pytest.raises(EmbeddingError, match="Expected 768 dimensions, got 4"):
            embedder.embed("text")

    def test_empty_text(self, embedder, session):
        with pytest.raises(EmbeddingError):
            embedder.embed("  ")

        session.post.assert_not_called()


# ============================================================================
# Error Mapping Tests
# ============================================================================

class TestErrorHandling:
    """Test that transport and format errors become EmbeddingError."""

    def test_connection_error(self, embedder, session):
        session.post.side_effect = requests.exceptions.ConnectionError()

        with pytest.raises(EmbeddingError, match="Unable to connect to Ollama"):
            embedder.embed("text")

    def test_timeout(self, embedder, session):
        session.post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(EmbeddingError, match="timed out"):
            embedder.embed("text")

    def test_http_error(self, embedder, session):
        response = make_response([1.0])
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("404 model not found")
        session.post.return_value = response

        with pytest.raises(EmbeddingError, match="HTTP error"):
            embedder.embed("text")

    def test_missing_embedding_key(self, embedder, session):
        response = make_response(None)
        response.json.return_value = {'error': 'bad'}
        session.post.return_value = response

        with pytest.raises(EmbeddingError, match="Unexpected API response format"):
            embedder.embed("text")

    def test_zero_vector(self, embedder, session):
        session.post.return_value = make_response([0.0, 0.0, 0.0, 0.0])

        with pytest.raises(EmbeddingError):
            embedder.embed("text")


# ============================================================================
# Cache Tests
# ============================================================================

class TestCaching:
    """Test the in-memory embedding cache."""

    def test_repeated_text_hits_cache(self, embedder, session):
        first = embedder.embed("cached text")
        second = embedder.embed("cached text")

        assert first == second
        assert session.post.call_count == 1

        stats = embedder.get_cache_stats()
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['total_requests'] == 2
        assert stats['cache_size'] == 1
        assert stats['hit_rate'] == 0.5

    def test_returned_vectors_are_copies(self, embedder):
        first = embedder.embed("text")
        first[0] = 99.0

        assert embedder.embed("text")[0] != 99.0

    def test_cache_disabled(self, session):
        embedder = OllamaEmbedder(dimension=4, enable_cache=False, session=session)

        embedder.embed("text")
        embedder.embed("text")

        assert session.post.call_count == 2
        assert embedder.get_cache_stats()['total_requests'] == 0

    def test_clear_cache(self, embedder, session):
        embedder.embed("text")
        embedder.clear_cache()
        embedder.embed("text")

        assert session.post.call_count == 2
        assert embedder.get_cache_stats()['misses'] == 1

    def test_failed_request_not_cached(self, embedder, session):
        session.post.side_effect = [requests.exceptions.Timeout(), make_response([3.0, 4.0, 0.0, 0.0])]

        with pytest.raises(EmbeddingError):
            embedder.embed("text")

        assert embedder.embed("text") == pytest.approx([0.6, 0.8, 0.0, 0.0])


class TestCacheStats:
    """Test cache statistics helpers."""

    def test_hit_rate_without_requests(self):
        assert CacheStats().hit_rate == 0.0

    def test_to_dict(self):
        stats = CacheStats(hits=3, misses=1, total_requests=4, cache_size=1)

        assert stats.to_dict() == {
            'hits': 3,
            'misses': 1,
            'total_requests': 4,
            'cache_size': 1,
            'hit_rate': 0.75,
        }
