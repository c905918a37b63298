"""Custom exception hierarchy for stack-rag.

All package exceptions inherit from :class:`StackRagError`, which carries an
optional ``provider_name`` so error handlers can identify which backend
(e.g. "openai", "ollama", "pgvector") caused the failure.

The hierarchy is organized by what the caller can do about the failure:

    StackRagError  (base -- catch-all for any stack-rag error)
    +-- ConfigurationError        (unknown provider/storage type, missing key)
    |   +-- DimensionMismatchError  (vector length disagrees with the model)
    +-- EmbeddingProviderError    (embedding API call failed; retryable)
    |   +-- RateLimitError          (provider signalled rate limiting)
    +-- NotFoundError             (lookup target missing; never retried)
    |   +-- ListNotFoundError
    |   +-- FieldNotFoundError
    |   +-- ItemNotFoundError
    |   +-- EmbeddingNotFoundError
    +-- VectorStorageError        (backend failure naming the missing capability)

The batch pipeline retries ``EmbeddingProviderError`` but never
``ConfigurationError``: a wrong API key or a wrong model dimension will not
fix itself on the next attempt.
"""


class StackRagError(Exception):
    """Base exception for all stack-rag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which backend triggered the error.  The
    ``__str__`` method prefixes the provider name in brackets for log
    output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration errors (never retried)
# ---------------------------------------------------------------------------

class ConfigurationError(StackRagError):
    """Raised for unknown provider/storage types or missing credentials."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DimensionMismatchError(ConfigurationError):
    """Raised when a vector's length disagrees with the expected dimensionality.

    Attributes
    ----------
    expected:
        The dimensionality the caller or provider declared.
    actual:
        The dimensionality actually observed.
    """

    def __init__(
        self,
        message: str = "Embedding dimension mismatch",
        provider_name: str | None = None,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        self._expected = expected
        self._actual = actual
        super().__init__(message=message, provider_name=provider_name)

    @property
    def expected(self) -> int | None:
        return self._expected

    @property
    def actual(self) -> int | None:
        return self._actual


# ---------------------------------------------------------------------------
# Embedding provider errors (transient, retried by the batch pipeline)
# ---------------------------------------------------------------------------

class EmbeddingProviderError(StackRagError):
    """Raised when an embedding provider call fails."""

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(EmbeddingProviderError):
    """Raised when an embedding provider's rate limit is exceeded.

    Optionally carries ``retry_after`` (seconds) when the provider
    supplies a Retry-After hint.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        self._retry_after = retry_after
        super().__init__(message=message, provider_name=provider_name)

    @property
    def retry_after(self) -> float | None:
        return self._retry_after


# ---------------------------------------------------------------------------
# Lookup errors
# ---------------------------------------------------------------------------

class NotFoundError(StackRagError):
    """Base for lookups whose target does not exist."""

    def __init__(
        self,
        message: str = "Requested resource was not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ListNotFoundError(NotFoundError):
    """Raised when no record store is registered for a list key."""

    def __init__(self, list_key: str, provider_name: str | None = None) -> None:
        self.list_key = list_key
        super().__init__(
            message=f"List '{list_key}' not found", provider_name=provider_name
        )


class FieldNotFoundError(NotFoundError):
    """Raised when records of a list have no such embedding field."""

    def __init__(
        self, list_key: str, field_name: str, provider_name: str | None = None
    ) -> None:
        self.list_key = list_key
        self.field_name = field_name
        super().__init__(
            message=f"Field '{field_name}' not found on list '{list_key}'",
            provider_name=provider_name,
        )


class ItemNotFoundError(NotFoundError):
    """Raised when a record id does not exist in its list."""

    def __init__(
        self, list_key: str, item_id: str, provider_name: str | None = None
    ) -> None:
        self.list_key = list_key
        self.item_id = item_id
        super().__init__(
            message=f"Item '{item_id}' not found in list '{list_key}'",
            provider_name=provider_name,
        )


class EmbeddingNotFoundError(NotFoundError):
    """Raised when a record exists but carries no embedding for the field."""

    def __init__(
        self,
        list_key: str,
        item_id: str,
        field_name: str,
        provider_name: str | None = None,
    ) -> None:
        self.list_key = list_key
        self.item_id = item_id
        self.field_name = field_name
        super().__init__(
            message=(
                f"Item '{item_id}' in list '{list_key}' has no embedding "
                f"in field '{field_name}'"
            ),
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Vector storage errors
# ---------------------------------------------------------------------------

class VectorStorageError(StackRagError):
    """Raised when a vector storage backend's query engine fails.

    The message names the capability that is most likely missing, e.g.
    the pgvector extension.
    """

    def __init__(
        self,
        message: str = "Vector storage query failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
