"""
News RAG Chat Backend

Fetches news articles from RSS feeds, embeds them into a vector index,
and answers chat questions with retrieval-augmented generation.
"""

__version__ = "0.1.0"
