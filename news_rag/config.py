"""
Centralized Configuration Module

Single source of truth for the RAG backend's settings.
Values are read from environment variables (a .env file is honoured)
with defaults, and validated on construction.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


EMBEDDING_BACKENDS = ('sentence-transformers', 'ollama')
# Output size of each backend's default model (all-MiniLM-L6-v2, nomic-embed-text)
DEFAULT_EMBEDDING_DIMENSIONS = {
    'sentence-transformers': 384,
    'ollama': 768,
}
GENERATION_BACKENDS = ('ollama', 'gemini')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Configuration for the news RAG backend.

    All parameters can be overridden from the environment; validation
    runs on initialization and on every update().
    """

    # Embedding Settings
    embedding_backend: str = field(default="sentence-transformers")
    embedding_model: str = field(default="sentence-transformers/all-MiniLM-L6-v2")
    embedding_dimension: Optional[int] = field(default=None)

    # Ollama Settings
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_embedding_model: str = field(default="nomic-embed-text")
    ollama_timeout: int = field(default=30)

    # Generation Settings
    generation_backend: str = field(default="ollama")
    llm_model: str = field(default="llama3.1:latest")
    llm_temperature: float = field(default=0.7)
    llm_max_tokens: int = field(default=1000)
    google_api_key: Optional[str] = field(default=None, repr=False)
    gemini_model: str = field(default="gemini-2.5-flash")

    # Retrieval Settings
    collection_name: str = field(default="news_articles")
    article_limit: int = field(default=50)
    top_k: int = field(default=3)
    min_content_length: int = field(default=100)
    feed_timeout: int = field(default=30)

    # Chat Settings
    cache_ttl: int = field(default=3600)
    enable_session_persistence: bool = field(default=False)

    # Storage Paths
    index_dir: str = field(default="data/index")
    sessions_dir: str = field(default="data/conversations")

    # Logging
    log_level: str = field(default="INFO")

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Embedding Settings
        self.embedding_backend = self._get_env_str('EMBEDDING_BACKEND', self.embedding_backend).lower()
        self.embedding_model = self._get_env_str('EMBEDDING_MODEL', self.embedding_model)
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        if self.embedding_dimension is None:
            self.embedding_dimension = DEFAULT_EMBEDDING_DIMENSIONS.get(self.embedding_backend, 384)

        # Ollama Settings
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)
        self.ollama_embedding_model = self._get_env_str('OLLAMA_EMBEDDING_MODEL', self.ollama_embedding_model)
        self.ollama_timeout = self._get_env_int('OLLAMA_TIMEOUT', self.ollama_timeout)

        # Generation Settings
        self.generation_backend = self._get_env_str('GENERATION_BACKEND', self.generation_backend).lower()
        self.llm_model = self._get_env_str('LLM_MODEL', self.llm_model)
        self.llm_temperature = self._get_env_float('LLM_TEMPERATURE', self.llm_temperature)
        self.llm_max_tokens = self._get_env_int('LLM_MAX_TOKENS', self.llm_max_tokens)
        self.google_api_key = self._get_env_str('GOOGLE_API_KEY', self.google_api_key) or None
        self.gemini_model = self._get_env_str('GEMINI_MODEL', self.gemini_model)

        # Retrieval Settings
        self.collection_name = self._get_env_str('COLLECTION_NAME', self.collection_name)
        self.article_limit = self._get_env_int('ARTICLE_LIMIT', self.article_limit)
        self.top_k = self._get_env_int('TOP_K', self.top_k)
        self.min_content_length = self._get_env_int('MIN_CONTENT_LENGTH', self.min_content_length)
        self.feed_timeout = self._get_env_int('FEED_TIMEOUT', self.feed_timeout)

        # Chat Settings
        self.cache_ttl = self._get_env_int('CACHE_TTL', self.cache_ttl)
        self.enable_session_persistence = self._get_env_bool(
            'ENABLE_SESSION_PERSISTENCE', self.enable_session_persistence
        )

        # Storage Paths
        self.index_dir = self._get_env_path('INDEX_DIR', self.index_dir)
        self.sessions_dir = self._get_env_path('SESSIONS_DIR', self.sessions_dir)

        # Logging
        self.log_level = self._get_env_str('LOG_LEVEL', self.log_level).upper()

    def _get_env_str(self, key: str, default: Optional[str]) -> Optional[str]:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        for field_name in ('embedding_model', 'llm_model', 'collection_name'):
            if not getattr(self, field_name):
                raise ConfigValidationError(f"{field_name} cannot be empty")

        # Validate choices
        if self.embedding_backend not in EMBEDDING_BACKENDS:
            raise ConfigValidationError(
                f"embedding_backend must be one of {EMBEDDING_BACKENDS}, "
                f"got '{self.embedding_backend}'"
            )
        if self.generation_backend not in GENERATION_BACKENDS:
            raise ConfigValidationError(
                f"generation_backend must be one of {GENERATION_BACKENDS}, "
                f"got '{self.generation_backend}'"
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigValidationError(
                f"log_level must be one of {LOG_LEVELS}, got '{self.log_level}'"
            )

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimension', self.embedding_dimension),
            ('llm_max_tokens', self.llm_max_tokens),
            ('article_limit', self.article_limit),
            ('top_k', self.top_k),
            ('min_content_length', self.min_content_length),
            ('cache_ttl', self.cache_ttl),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        # Validate timeouts (at least 1 second)
        if self.ollama_timeout < 1:
            raise ConfigValidationError(
                f"ollama_timeout must be at least 1, got {self.ollama_timeout}"
            )
        if self.feed_timeout < 1:
            raise ConfigValidationError(
                f"feed_timeout must be at least 1, got {self.feed_timeout}"
            )

        if not 0.0 <= self.llm_temperature <= 2.0:
            raise ConfigValidationError(
                f"llm_temperature must be between 0.0 and 2.0, got {self.llm_temperature}"
            )

        # Gemini cannot be reached without a key
        if self.generation_backend == 'gemini' and not self.google_api_key:
            raise ConfigValidationError(
                "GOOGLE_API_KEY must be set when generation_backend is 'gemini'"
            )

        # Validate URL format
        parsed = urlparse(self.ollama_base_url)
        if not all([parsed.scheme, parsed.netloc]):
            raise ConfigValidationError(
                f"Invalid URL for ollama_base_url: {self.ollama_base_url}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (secrets masked)."""
        data = asdict(self)
        if data.get('google_api_key'):
            data['google_api_key'] = '***'
        return data

    def __repr__(self) -> str:
        """String representation of configuration."""
        items = []
        for key, value in self.to_dict().items():
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            # Update values
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            # Validate new configuration
            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_retrieval_config(self) -> Dict[str, Any]:
        """Get retrieval-related configuration."""
        return {
            'collection_name': self.collection_name,
            'embedding_dimension': self.embedding_dimension,
            'article_limit': self.article_limit,
            'top_k': self.top_k,
            'min_content_length': self.min_content_length,
        }

    def get_storage_config(self) -> Dict[str, Any]:
        """Get storage-related configuration."""
        return {
            'index_dir': self.index_dir,
            'sessions_dir': self.sessions_dir,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
