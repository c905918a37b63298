"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, in priority order:

1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``.
2. A ``.env`` file in the working directory (local development).

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; defaults are
used when neither source defines a value.  Copy ``.env.example`` to start.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """stack-rag settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider ===
    # "openai" or "ollama"; custom providers are selected through YAML config.
    embedding_provider: str = "openai"
    embedding_model: str = ""  # Empty = provider default
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_organization: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Vector storage ===
    vector_storage: str = "json"  # json | pgvector | sqlite-vss | json-file
    pgvector_distance_function: str = "cosine"
    embeddings_index_path: str = ".embeddings/embeddings.json"

    # === Chunking (tokens; converted at 4 chars/token) ===
    rag_chunking_strategy: str = "recursive"
    rag_chunk_max_tokens: int = 500
    rag_chunk_overlap: int = 50

    # === Batch pipeline ===
    rag_batch_size: int = 10
    rag_rate_limit: int = 100  # requests per minute
    rag_max_retries: int = 3
    rag_retry_delay: float = 1.0  # seconds
    rag_concurrency: int = 1

    # === Application ===
    app_env: str = "development"
    log_level: str = "INFO"
