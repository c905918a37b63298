"""Configuration models for the embedding subsystem.

Provider and storage configuration are closed sum types discriminated by
their ``type`` field.  Each family has one ``Custom*Config`` variant whose
``options`` mapping is passed untouched to a factory registered at startup,
so third-party backends plug in without widening the known variants.

:class:`RAGConfig` mirrors what a user writes (every field optional);
:func:`normalize_rag_config` fills defaults and produces the
:class:`NormalizedRAGConfig` the rest of the package consumes.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ChunkingStrategy = Literal["none", "recursive", "sentence", "sliding-window", "token-aware"]


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
class ChunkingConfig(BaseModel):
    """Token-denominated chunking settings.

    ``max_tokens`` and ``overlap`` are converted to characters at four
    characters per token by
    :meth:`~stack_rag.services.chunker.ChunkingOptions.from_config`.
    """

    model_config = ConfigDict(frozen=True)

    strategy: ChunkingStrategy = "recursive"
    max_tokens: int = Field(default=500, ge=1)
    overlap: int = Field(default=50, ge=0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> ChunkingConfig:
        if self.overlap >= self.max_tokens:
            raise ValueError("chunking overlap must be less than max_tokens")
        return self


# ---------------------------------------------------------------------------
# Embedding providers
# ---------------------------------------------------------------------------
class OpenAIEmbeddingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["openai"] = "openai"
    # Empty until supplied; the provider refuses to start without one.
    api_key: str = Field(default="", repr=False)
    model: str = "text-embedding-3-small"
    organization: str | None = None
    base_url: str | None = None


class OllamaEmbeddingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["ollama"] = "ollama"
    base_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"


class CustomEmbeddingConfig(BaseModel):
    """A provider type registered at runtime; ``options`` go to its factory."""

    model_config = ConfigDict(frozen=True)

    type: str
    options: dict[str, Any] = Field(default_factory=dict)


EmbeddingProviderConfig = Union[OpenAIEmbeddingConfig, OllamaEmbeddingConfig, CustomEmbeddingConfig]


# ---------------------------------------------------------------------------
# Vector storage
# ---------------------------------------------------------------------------
class JsonStorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["json"] = "json"


class PgVectorStorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["pgvector"] = "pgvector"
    distance_function: Literal["cosine", "l2", "inner_product"] = "cosine"


class SqliteVssStorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["sqlite-vss"] = "sqlite-vss"
    distance_function: Literal["cosine", "l2"] = "cosine"


class JsonFileStorageConfig(BaseModel):
    """Search over a build-time embeddings index written to disk."""

    model_config = ConfigDict(frozen=True)

    type: Literal["json-file"] = "json-file"
    path: str = ".embeddings/embeddings.json"
    title_boost: float = Field(default=1.0, gt=0.0)


class CustomStorageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    options: dict[str, Any] = Field(default_factory=dict)


VectorStorageConfig = Union[
    JsonStorageConfig,
    PgVectorStorageConfig,
    SqliteVssStorageConfig,
    JsonFileStorageConfig,
    CustomStorageConfig,
]

_PROVIDER_CONFIGS: dict[str, type[BaseModel]] = {
    "openai": OpenAIEmbeddingConfig,
    "ollama": OllamaEmbeddingConfig,
}

_STORAGE_CONFIGS: dict[str, type[BaseModel]] = {
    "json": JsonStorageConfig,
    "pgvector": PgVectorStorageConfig,
    "sqlite-vss": SqliteVssStorageConfig,
    "json-file": JsonFileStorageConfig,
}


def _split_custom(raw: dict[str, Any]) -> dict[str, Any]:
    # Custom variants accept flat keys; everything except "type" becomes an option.
    if "options" in raw:
        return raw
    return {"type": raw["type"], "options": {k: v for k, v in raw.items() if k != "type"}}


def parse_provider_config(raw: Any) -> EmbeddingProviderConfig:
    """Dispatch a raw mapping to the provider config variant named by ``type``."""
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict) or "type" not in raw:
        raise ValueError("embedding provider config requires a 'type' key")
    model_cls = _PROVIDER_CONFIGS.get(raw["type"])
    if model_cls is None:
        return CustomEmbeddingConfig.model_validate(_split_custom(raw))
    return model_cls.model_validate(raw)  # type: ignore[return-value]


def parse_storage_config(raw: Any) -> VectorStorageConfig:
    """Dispatch a raw mapping to the storage config variant named by ``type``."""
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    if not isinstance(raw, dict) or "type" not in raw:
        raise ValueError("vector storage config requires a 'type' key")
    model_cls = _STORAGE_CONFIGS.get(raw["type"])
    if model_cls is None:
        return CustomStorageConfig.model_validate(_split_custom(raw))
    return model_cls.model_validate(raw)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------
class BuildTimeConfig(BaseModel):
    """Settings for generating a static embeddings index ahead of deployment."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    output_path: str = ".embeddings/embeddings.json"
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    differential: bool = True


class RAGConfig(BaseModel):
    """User-facing configuration; every field may be omitted."""

    model_config = ConfigDict(frozen=True)

    provider: EmbeddingProviderConfig | None = None
    providers: dict[str, EmbeddingProviderConfig] = Field(default_factory=dict)
    storage: VectorStorageConfig | None = None
    chunking: ChunkingConfig | None = None
    build_time: BuildTimeConfig | None = None
    batch_size: int | None = Field(default=None, ge=1)
    rate_limit: int | None = Field(default=None, ge=1)
    max_retries: int | None = Field(default=None, ge=0)
    retry_delay: float | None = Field(default=None, ge=0.0)
    concurrency: int | None = Field(default=None, ge=1)

    @field_validator("provider", mode="before")
    @classmethod
    def _parse_provider(cls, value: Any) -> Any:
        return None if value is None else parse_provider_config(value)

    @field_validator("providers", mode="before")
    @classmethod
    def _parse_providers(cls, value: Any) -> Any:
        return {name: parse_provider_config(raw) for name, raw in (value or {}).items()}

    @field_validator("storage", mode="before")
    @classmethod
    def _parse_storage(cls, value: Any) -> Any:
        return None if value is None else parse_storage_config(value)


class NormalizedRAGConfig(BaseModel):
    """:class:`RAGConfig` with every default applied."""

    model_config = ConfigDict(frozen=True)

    provider: EmbeddingProviderConfig | None
    providers: dict[str, EmbeddingProviderConfig]
    storage: VectorStorageConfig
    chunking: ChunkingConfig
    build_time: BuildTimeConfig | None
    batch_size: int
    rate_limit: int
    max_retries: int
    retry_delay: float
    concurrency: int

    def batch_options(self) -> dict[str, Any]:
        """Keyword arguments for :func:`~stack_rag.services.batch_processor.batch_process`."""
        return {
            "batch_size": self.batch_size,
            "rate_limit": self.rate_limit,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "concurrency": self.concurrency,
        }


def normalize_rag_config(config: RAGConfig) -> NormalizedRAGConfig:
    """Fill in defaults: json storage, recursive chunking, batch 10, 100 rpm, 3 retries."""
    return NormalizedRAGConfig(
        provider=config.provider,
        providers=dict(config.providers),
        storage=config.storage or JsonStorageConfig(),
        chunking=config.chunking or ChunkingConfig(),
        build_time=config.build_time,
        batch_size=config.batch_size or 10,
        rate_limit=config.rate_limit or 100,
        max_retries=3 if config.max_retries is None else config.max_retries,
        retry_delay=1.0 if config.retry_delay is None else config.retry_delay,
        concurrency=config.concurrency or 1,
    )
