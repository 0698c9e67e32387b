"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LLMSettings(BaseSettings):
    """Generation model configuration.

    Any OpenAI-compatible chat completions endpoint works (Groq, OpenAI,
    Ollama, vLLM).
    """

    model_config = SettingsConfigDict(env_prefix="LLM_")

    base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Chat completions API base URL",
    )
    model: str = Field(
        default="llama-3.1-8b-instant",
        description="Model name to use for generation",
    )
    api_key: SecretStr = Field(
        default=SecretStr("not-required"),
        description="API key (not required for local servers)",
    )
    timeout: float = Field(
        default=120.0,
        description="Request timeout in seconds",
    )
    max_tokens: int = Field(
        default=1024,
        description="Maximum tokens in response",
    )
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (lower = more deterministic)",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Embedding model name",
    )
    batch_size: int = Field(
        default=32,
        ge=1,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )
    dimensions: int | None = Field(
        default=None,
        ge=1,
        description="Vector dimensions override for models not known in advance",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL, or ':memory:' for an in-process store",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="rag_documents",
        description="Collection holding ingested documents",
    )


class RAGSettings(BaseSettings):
    """Retrieval-augmented answering configuration."""

    model_config = SettingsConfigDict(env_prefix="RAG_")

    default_top_k: int = Field(
        default=5,
        ge=1,
        description="Documents retrieved when the caller does not say",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    rag: RAGSettings = Field(default_factory=RAGSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
