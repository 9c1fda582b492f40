"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StorageBackend(str, Enum):
    """Workspace persistence backend."""

    MEMORY = "memory"
    JSON = "json"


class ClusteringSettings(BaseSettings):
    """Clustering and workspace aggregation configuration."""

    model_config = SettingsConfigDict(env_prefix="CLUSTERING_")

    default_threshold: float = Field(
        default=0.75,
        description="Similarity threshold used when none is supplied",
    )
    dimension: int = Field(
        default=512,
        gt=0,
        description="Shared embedding dimension",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding service base URL",
    )
    model: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="Embedding model name",
    )
    batch_size: int = Field(
        default=32,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=60.0,
        description="Request timeout in seconds",
    )
    max_chars: int = Field(
        default=20_000,
        description="Maximum characters of item text sent for embedding",
    )


class StorageSettings(BaseSettings):
    """Workspace storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Persistence backend for workspaces",
    )
    directory: Path = Field(
        default=Path("data/workspaces"),
        description="Directory for the JSON backend",
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
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
