"""
Application Settings

All runtime configuration is read from the environment (and an optional
``.env`` file) through pydantic-settings. Secrets are held as ``SecretStr`` so
they never end up in logs or reprs.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import ConfigurationError


# Dimensionality of every supported embedding model. The vector store column
# width must match the configured model; switching models means recreating
# the table.
EMBEDDING_MODELS: Dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class Settings(BaseSettings):
    openai_api_key: SecretStr
    database_url: str
    mirror_database_url: Optional[str] = None

    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    chat_model: str = "gpt-4o-mini"

    # Chunking
    chunk_size: int = Field(default=4000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    auto_chunk: bool = False
    preprocess_content: bool = True

    # Embedding provider retry policy (rate limits only)
    embedding_max_retries: int = Field(default=3, ge=1)
    embedding_retry_delay: float = Field(default=2.0, ge=0.0)

    # RAG query: cosine distance, 0 = identical
    similarity_threshold: float = 1.0

    # Pause between records while recreating the vector store
    recreate_delay: float = Field(default=0.5, ge=0.0)

    # Guards the sync / admin routes when set
    admin_api_key: Optional[SecretStr] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @property
    def embedding_dimensions(self) -> int:
        """
        Vector width for the configured embedding model.

        Raises
        ------
        ConfigurationError
            If the model is not one of ``EMBEDDING_MODELS``.
        """
        try:
            return EMBEDDING_MODELS[self.embedding_model]
        except KeyError:
            raise ConfigurationError(
                f"Invalid embedding model {self.embedding_model!r}. "
                f"Valid options: {', '.join(EMBEDDING_MODELS)}"
            ) from None

    @property
    def effective_mirror_database_url(self) -> str:
        return self.mirror_database_url or self.database_url


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Return the process-wide settings, loading them on first use.

    Loading is deferred so that importing the package (e.g. in tests) does not
    require a fully populated environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
