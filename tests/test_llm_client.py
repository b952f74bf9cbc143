"""
Tests for the Generation Client and chat-model factory.
"""

import pytest
from unittest.mock import Mock, patch

from news_rag.config import Config
from news_rag.exceptions import GenerationError
from news_rag.generation.llm_client import LLMGenerationClient, create_llm


@pytest.fixture
def clean_env(monkeypatch):
    for key in ('GENERATION_BACKEND', 'GOOGLE_API_KEY', 'LLM_MODEL', 'GEMINI_MODEL',
                'LLM_TEMPERATURE', 'LLM_MAX_TOKENS', 'OLLAMA_BASE_URL'):
        monkeypatch.delenv(key, raising=False)


class TestCreateLLM:
    """Test backend selection."""

    def test_ollama_backend(self, clean_env):
        config = Config(llm_model="llama3.1:latest", llm_temperature=0.3, llm_max_tokens=256)

        with patch('news_rag.generation.llm_client.ChatOllama') as chat_ollama:
            llm = create_llm(config)

        chat_ollama.assert_called_once_with(
            model="llama3.1:latest",
            temperature=0.3,
            base_url="http://localhost:11434",
            num_predict=256
        )
        assert llm is chat_ollama.return_value

    def test_gemini_backend(self, clean_env):
        config = Config(generation_backend="gemini", google_api_key="test-key")

        with patch('langchain_google_genai.ChatGoogleGenerativeAI') as chat_gemini:
            llm = create_llm(config)

        chat_gemini.assert_called_once_with(
            model="gemini-2.5-flash",
            temperature=0.7,
            max_output_tokens=1000,
            google_api_key="test-key",
        )
        assert llm is chat_gemini.return_value


class TestLLMGenerationClient:
    """Test prompt -> text generation."""

    def test_returns_message_content(self):
        llm = Mock()
        llm.invoke.return_value = Mock(content="The summit ended without agreement.")
        client = LLMGenerationClient(llm)

        assert client.generate("prompt") == "The summit ended without agreement."
        llm.invoke.assert_called_once_with("prompt")

    def test_flattens_content_parts(self):
        llm = Mock()
        llm.invoke.return_value = Mock(content=[
            {'type': 'text', 'text': 'Part one. '},
            {'type': 'image_url', 'image_url': 'ignored'},
            'Part two.',
        ])

        assert LLMGenerationClient(llm).generate("prompt") == "Part one. Part two."

    def test_plain_string_response(self):
        llm = Mock()
        llm.invoke.return_value = type("Reply", (), {"__str__": lambda self: "raw text"})()

        assert LLMGenerationClient(llm).generate("prompt") == "raw text"

    def test_provider_failure_becomes_generation_error(self):
        llm = Mock()
        llm.invoke.side_effect = RuntimeError("429 quota exceeded")

        with pytest.raises(GenerationError, match="429 quota exceeded"):
            LLMGenerationClient(llm).generate("prompt")

    def test_single_attempt(self):
        llm = Mock()
        llm.invoke.side_effect = ConnectionError("refused")

        with pytest.raises(GenerationError):
            LLMGenerationClient(llm).generate("prompt")

        assert llm.invoke.call_count == 1
