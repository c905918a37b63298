"""Vector storage backends and the storage registry.

Four built-in implementations of :class:`IVectorStorage`:

    1. JsonVectorStorage: linear in-process scan; works everywhere.
    2. PgVectorStorage: pgvector distance operators in PostgreSQL,
       falling back to the linear scan when no raw engine is available.
    3. SqliteVssStorage: raw SQLite vector extraction with in-process
       scoring, or a plain scan without a raw connection.
    4. JsonFileStorage: static build-time index file.

Backends are created from configuration by :func:`create_vector_storage`.
Custom backends are added with :func:`register_vector_storage` at startup;
registration is append-only.
"""

from __future__ import annotations

from typing import Callable

import structlog

from stack_rag.interfaces.vector_storage import IVectorStorage
from stack_rag.models.config import VectorStorageConfig
from stack_rag.providers.vector_storage.json_file_storage import JsonFileStorage
from stack_rag.providers.vector_storage.json_storage import JsonVectorStorage
from stack_rag.providers.vector_storage.pgvector_storage import PgVectorStorage, create_pgvector_pool
from stack_rag.providers.vector_storage.sqlite_vss_storage import SqliteVssStorage
from stack_rag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

StorageFactory = Callable[[VectorStorageConfig], IVectorStorage]

_STORAGE_FACTORIES: dict[str, StorageFactory] = {
    "json": lambda config: JsonVectorStorage(),
    "pgvector": lambda config: PgVectorStorage(config),  # type: ignore[arg-type]
    "sqlite-vss": lambda config: SqliteVssStorage(config),  # type: ignore[arg-type]
    "json-file": lambda config: JsonFileStorage(config),  # type: ignore[arg-type]
}


def register_vector_storage(storage_type: str, factory: StorageFactory) -> None:
    """Register a factory for a custom storage type.

    Raises
    ------
    ConfigurationError
        If *storage_type* is already registered.
    """
    if storage_type in _STORAGE_FACTORIES:
        raise ConfigurationError(message=f"Vector storage type '{storage_type}' is already registered")
    _STORAGE_FACTORIES[storage_type] = factory
    logger.info("vector_storage_registered", storage_type=storage_type)


def available_vector_storages() -> list[str]:
    return sorted(_STORAGE_FACTORIES)


def create_vector_storage(config: VectorStorageConfig) -> IVectorStorage:
    """Instantiate the backend registered for ``config.type``.

    Raises
    ------
    ConfigurationError
        If no factory is registered for the type.
    """
    factory = _STORAGE_FACTORIES.get(config.type)
    if factory is None:
        raise ConfigurationError(
            message=(
                f"Unknown vector storage type: {config.type}. "
                f"Available types: {', '.join(available_vector_storages())}"
            )
        )
    return factory(config)


__all__ = [
    "JsonFileStorage",
    "JsonVectorStorage",
    "PgVectorStorage",
    "SqliteVssStorage",
    "available_vector_storages",
    "create_pgvector_pool",
    "create_vector_storage",
    "register_vector_storage",
]
