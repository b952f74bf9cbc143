"""
RAG Service for Question Answering with Context Retrieval

Answers one question:
1. Query embedding generation
2. Top-k retrieval from the vector index
3. Context assembly from the retrieved articles
4. Prompt construction and answer generation
"""

import time
import logging
from typing import List, Optional

from ..embeddings.embedder import Embedder
from ..exceptions import EmbeddingError
from ..generation.llm_client import LLMGenerationClient
from ..models import GeneratedAnswer, RetrievedArticle
from ..storage.vector_store import FaissIndexClient

logger = logging.getLogger(__name__)

ANSWER_INSTRUCTIONS = (
    "Please provide a relevant answer based on the context above. "
    "If the context doesn't contain relevant information, please say so. "
    "Include sources in your response when citing specific information."
)


class RAGService:
    """
    Retrieval-augmented question answering over one published collection.

    Stateless between calls: safe to use from several threads at once.
    """

    def __init__(
        self,
        embedder: Embedder,
        index_client: FaissIndexClient,
        generation_client: LLMGenerationClient,
        collection_name: str = "news_articles",
        top_k: int = 3
    ):
        """
        Initialize the RAG service.

        Args:
            embedder: Embeds the user query
            index_client: Vector index to search
            generation_client: Generates the final answer
            collection_name: Collection (or alias) searched per query
            top_k: Number of articles retrieved per query
        """
        if top_k <= 0:
            raise ValueError(f"top_k must be positive, got {top_k}")

        self.embedder = embedder
        self.index_client = index_client
        self.generation_client = generation_client
        self.collection_name = collection_name
        self.top_k = top_k

    def _retrieve_context(self, query_vector: List[float], top_k: int) -> List[RetrievedArticle]:
        """
        Search the index and project hits into RetrievedArticles.

        Order is exactly the index's descending-score order.
        """
        hits = self.index_client.search(self.collection_name, query_vector, k=top_k)
        return [RetrievedArticle.from_hit(hit) for hit in hits]

    def _format_context(self, articles: List[RetrievedArticle]) -> str:
        """
        Concatenate retrieved articles into one context block.

        Each article gets a header naming its source and title, then its
        full content and a blank line.
        """
        parts = []
        for article in articles:
            parts.append(f'Article from {article.source} titled "{article.title}":\n')
            parts.append(article.content + '\n\n')
        return ''.join(parts)

    def _build_prompt(self, question: str, context: str) -> str:
        """Build the generation prompt from the context block and the question."""
        return (
            f"Context from news articles:\n{context}\n\n"
            f"User question: {question}\n\n"
            f"{ANSWER_INSTRUCTIONS}"
        )

    def query(self, question: str, top_k: Optional[int] = None) -> GeneratedAnswer:
        """
        Answer a question from the indexed articles.

        Args:
            question: User's question
            top_k: Override the number of retrieved articles

        Returns:
            GeneratedAnswer with the text and the retrieved articles

        Raises:
            EmbeddingError: If question is empty, or propagated from the embedder
            VectorIndexError, GenerationError: Propagated from collaborators
        """
        if not question or not question.strip():
            raise EmbeddingError("Cannot embed empty text: question is empty")

        k = top_k if top_k is not None else self.top_k
        start_time = time.time()

        # Step 1: Generate query embedding
        query_vector = self.embedder.embed(question)

        # Step 2: Retrieve relevant articles
        articles = self._retrieve_context(query_vector, k)
        logger.info(f"✓ Found {len(articles)} relevant documents")

        # Step 3: Build context and prompt
        context = self._format_context(articles)
        prompt = self._build_prompt(question, context)

        # Step 4: Generate answer
        text = self.generation_client.generate(prompt)

        logger.info(f"✓ Response generated in {time.time() - start_time:.2f}s")
        return GeneratedAnswer(text=text, cited_articles=articles)
