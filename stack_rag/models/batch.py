"""Batch pipeline data models.

Every model here lives only for the duration of one
:func:`~stack_rag.services.batch_processor.batch_process` call.  Progress
snapshots and error reports are handed to caller callbacks; the final
:class:`BatchProcessResult` is returned to the caller.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from stack_rag.models.embedding import StoredEmbedding


class BatchProgress(BaseModel):
    """Cumulative progress snapshot emitted after each group completes."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(ge=0, description="Texts finished so far, successful or not.")
    total: int = Field(ge=0)
    failed: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)
    current_batch: int = Field(ge=0, description="1-based number of the group that just finished.")
    total_batches: int = Field(ge=0)


class BatchError(BaseModel):
    """Reported once per text whose group exhausted its retries."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: int = Field(description="Position of the text in the original input.")
    text: str
    error: Exception
    retries: int = Field(ge=0, description="Retry attempts made before giving up.")
    batch_number: int = Field(ge=1)


class FailedItem(BaseModel):
    """A text that could not be embedded, as recorded in the final result."""

    model_config = ConfigDict(frozen=True)

    index: int
    text: str
    error: str
    error_type: str


class BatchStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0)
    successful: int = Field(ge=0)
    failed: int = Field(ge=0)
    duration: float = Field(ge=0.0, description="Wall-clock seconds for the whole run.")
    cancelled: bool = False


class BatchProcessResult(BaseModel):
    """Outcome of a batch run.

    ``embeddings`` holds the successes in input order.  ``positional`` has
    exactly one slot per input text, ``None`` where that text failed or was
    never attempted, so callers can zip it with their records.
    """

    model_config = ConfigDict(frozen=True)

    embeddings: list[StoredEmbedding]
    positional: list[StoredEmbedding | None]
    failed: list[FailedItem]
    stats: BatchStats
