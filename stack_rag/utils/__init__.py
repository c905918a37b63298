"""Utility modules for stack-rag.

- **errors** -- Exception hierarchy rooted at StackRagError; each layer
  raises its own subclass so callers can handle failures granularly.
- **concurrency** -- sliding-window rate limiter, bounded processing queue
  and semaphore-throttled gather.
- **logging** -- structlog setup: coloured console output in development,
  structured JSON in production.
- **vector_math** -- cosine / L2 / dot product helpers on plain lists and
  numpy matrices.
- **markdown** -- markdown-to-prose conversion before chunking.
"""

# -- Exception hierarchy -----------------------------------------------------
from stack_rag.utils.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingNotFoundError,
    EmbeddingProviderError,
    FieldNotFoundError,
    ItemNotFoundError,
    ListNotFoundError,
    NotFoundError,
    RateLimitError,
    StackRagError,
    VectorStorageError,
)

# -- Async concurrency primitives --------------------------------------------
from stack_rag.utils.concurrency import ProcessingQueue, RateLimiter, throttled_gather

# -- Structured logging setup ------------------------------------------------
from stack_rag.utils.logging import configure_logging, get_logger

# -- Markdown preparation ----------------------------------------------------
from stack_rag.utils.markdown import extract_markdown_text, strip_markdown

# -- Vector math -------------------------------------------------------------
from stack_rag.utils.vector_math import cosine_similarity, l2_distance, normalize_vector

__all__ = [
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingNotFoundError",
    "EmbeddingProviderError",
    "FieldNotFoundError",
    "ItemNotFoundError",
    "ListNotFoundError",
    "NotFoundError",
    "ProcessingQueue",
    "RateLimitError",
    "RateLimiter",
    "StackRagError",
    "VectorStorageError",
    "configure_logging",
    "cosine_similarity",
    "extract_markdown_text",
    "get_logger",
    "l2_distance",
    "normalize_vector",
    "strip_markdown",
    "throttled_gather",
]
