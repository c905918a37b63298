"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/rag.yaml: static defaults checked into the repo
  2. .env file: local developer overrides (not committed)
  3. Environment vars: set at deploy time

Only settings that were explicitly provided through the environment or
``.env`` override the YAML file; pydantic-settings defaults never clobber a
value the YAML file sets.  The merged mapping is validated into
:class:`~stack_rag.models.config.RAGConfig` and normalised.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from stack_rag.config.settings import Settings
from stack_rag.models.config import NormalizedRAGConfig, RAGConfig, normalize_rag_config
from stack_rag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


def load_rag_config(
    path: str = "config/rag.yaml", settings: Settings | None = None
) -> NormalizedRAGConfig:
    """Load YAML config, merge environment overrides and apply defaults.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error; environment settings and defaults are used alone.
        settings: Settings instance to read overrides from.  Defaults to a
            fresh ``Settings()`` (reads env and ``.env``).

    Returns:
        Fully resolved, validated configuration.

    Raises:
        ConfigurationError: If the merged configuration fails validation.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    _deep_merge(yaml_config, _env_overrides(settings, yaml_config))

    try:
        config = normalize_rag_config(RAGConfig.model_validate(yaml_config))
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid RAG configuration in {path}: {exc}") from exc

    logger.info(
        "rag_config_loaded",
        path=str(config_path),
        provider=config.provider.type if config.provider else None,
        storage=config.storage.type,
        chunking=config.chunking.strategy,
    )
    return config


def _env_overrides(settings: Settings, yaml_config: dict[str, Any]) -> dict[str, Any]:
    """Build the override mapping from explicitly-set settings."""
    explicit = settings.model_fields_set
    overrides: dict[str, Any] = {}

    provider = _provider_overrides(settings, yaml_config.get("provider"))
    if provider:
        # A different provider type invalidates every YAML provider key.
        yaml_provider = yaml_config.get("provider") or {}
        if yaml_provider.get("type") != provider["type"]:
            yaml_config.pop("provider", None)
        overrides["provider"] = provider

    yaml_storage = yaml_config.get("storage") or {}
    if "vector_storage" in explicit:
        storage: dict[str, Any] = {"type": settings.vector_storage}
        if yaml_storage.get("type") != settings.vector_storage:
            yaml_config.pop("storage", None)
        overrides["storage"] = storage
    storage_type = overrides.get("storage", yaml_storage).get("type")
    if storage_type == "pgvector" and "pgvector_distance_function" in explicit:
        overrides.setdefault("storage", {"type": "pgvector"})
        overrides["storage"]["distance_function"] = settings.pgvector_distance_function
    if storage_type == "json-file" and "embeddings_index_path" in explicit:
        overrides.setdefault("storage", {"type": "json-file"})
        overrides["storage"]["path"] = settings.embeddings_index_path

    chunking = {
        key: getattr(settings, field)
        for key, field in (
            ("strategy", "rag_chunking_strategy"),
            ("max_tokens", "rag_chunk_max_tokens"),
            ("overlap", "rag_chunk_overlap"),
        )
        if field in explicit
    }
    if chunking:
        overrides["chunking"] = chunking

    if "rag_batch_size" in explicit:
        overrides["batch_size"] = settings.rag_batch_size
    if "rag_rate_limit" in explicit:
        overrides["rate_limit"] = settings.rag_rate_limit
    if "rag_max_retries" in explicit:
        overrides["max_retries"] = settings.rag_max_retries
    if "rag_retry_delay" in explicit:
        overrides["retry_delay"] = settings.rag_retry_delay
    if "rag_concurrency" in explicit:
        overrides["concurrency"] = settings.rag_concurrency
    return overrides


def _provider_overrides(settings: Settings, yaml_provider: dict[str, Any] | None) -> dict[str, Any]:
    explicit = settings.model_fields_set
    yaml_provider = yaml_provider or {}

    if "embedding_provider" in explicit:
        provider_type = settings.embedding_provider
    else:
        provider_type = yaml_provider.get("type") or ("openai" if settings.openai_api_key else None)
    if provider_type is None:
        return {}

    overrides: dict[str, Any] = {"type": provider_type}
    if provider_type == "openai":
        if settings.openai_api_key:
            overrides["api_key"] = settings.openai_api_key
        if settings.openai_base_url:
            overrides["base_url"] = settings.openai_base_url
        if settings.openai_organization:
            overrides["organization"] = settings.openai_organization
    elif provider_type == "ollama":
        if "ollama_base_url" in explicit or "base_url" not in yaml_provider:
            overrides["base_url"] = settings.ollama_base_url
    if settings.embedding_model:
        overrides["model"] = settings.embedding_model
    return overrides


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
