"""
Generation Client

Thin wrapper over a LangChain chat model: one prompt in, one answer out.
Ollama (local) and Gemini (Google) chat models are supported.
"""

import logging
from typing import Any

from langchain_ollama import ChatOllama

from ..config import Config
from ..exceptions import GenerationError

logger = logging.getLogger(__name__)


def create_llm(config: Config):
    """
    Build the chat model selected by config.generation_backend.

    Args:
        config: Application configuration

    Returns:
        A LangChain chat model exposing invoke()
    """
    if config.generation_backend == 'gemini':
        from langchain_google_genai import ChatGoogleGenerativeAI

        logger.info(f"Using Gemini model: {config.gemini_model}")
        return ChatGoogleGenerativeAI(
            model=config.gemini_model,
            temperature=config.llm_temperature,
            max_output_tokens=config.llm_max_tokens,
            google_api_key=config.google_api_key,
        )

    logger.info(f"Using Ollama model: {config.llm_model}")
    return ChatOllama(
        model=config.llm_model,
        temperature=config.llm_temperature,
        base_url=config.ollama_base_url,
        num_predict=config.llm_max_tokens
    )


def _content_to_text(content: Any) -> str:
    """Flatten chat-model message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get('type', 'text') == 'text':
                parts.append(part.get('text', ''))
        return ''.join(parts)

    return str(content)


class LLMGenerationClient:
    """Synchronous prompt -> text generation. No retries."""

    def __init__(self, llm):
        """
        Initialize the client.

        Args:
            llm: LangChain chat model (anything with invoke(prompt))
        """
        self.llm = llm

    def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Complete prompt string

        Returns:
            Generated text

        Raises:
            GenerationError: On any provider failure (quota, auth, network)
        """
        try:
            response = self.llm.invoke(prompt)
        except Exception as e:
            raise GenerationError(f"Error generating answer with LLM: {e}") from e

        if hasattr(response, 'content'):
            return _content_to_text(response.content)
        return str(response)

    def __repr__(self) -> str:
        return f"LLMGenerationClient(llm={type(self.llm).__name__})"
