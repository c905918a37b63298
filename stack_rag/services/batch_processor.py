"""Bulk embedding with rate limiting, retry and progress reporting.

:func:`batch_process` is the entry point for backfills: it splits the input
into groups, sends each group to the provider as one ``embed_batch`` call,
and keeps going when a group fails.  Every provider attempt, retries
included, passes through a single :class:`RateLimiter`, and at most
``concurrency`` groups are in flight at once (via :class:`ProcessingQueue`).

Results are written into a buffer indexed by input position, so output
order never depends on completion order.
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Mapping, Union

import structlog

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.batch import (
    BatchError,
    BatchProcessResult,
    BatchProgress,
    BatchStats,
    FailedItem,
)
from stack_rag.models.embedding import StoredEmbedding
from stack_rag.services.embedding_generator import build_stored_embedding
from stack_rag.utils.concurrency import ProcessingQueue, RateLimiter
from stack_rag.utils.errors import ConfigurationError, RateLimitError
from stack_rag.utils.logging import log_context

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[BatchProgress], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[BatchError], Union[None, Awaitable[None]]]
BackoffStrategy = Literal["exponential", "fixed"]


@dataclass(frozen=True)
class _Group:
    number: int
    start: int
    texts: list[str]


async def _invoke(callback: Callable[[Any], Any], payload: Any) -> None:
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


def _retry_delay(retry_delay: float, attempt: int, backoff: BackoffStrategy, exc: Exception) -> float:
    delay = retry_delay * (2**attempt) if backoff == "exponential" else retry_delay
    # Honour the provider's hint when it asks for a longer pause.
    if isinstance(exc, RateLimitError) and exc.retry_after:
        delay = max(delay, exc.retry_after)
    return delay


async def batch_process(
    provider: IEmbeddingProvider,
    texts: list[str],
    *,
    batch_size: int = 10,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff: BackoffStrategy = "exponential",
    rate_limit: int = 100,
    concurrency: int = 1,
    on_progress: ProgressCallback | None = None,
    on_error: ErrorCallback | None = None,
    include_source_hash: bool = True,
    metadata: Mapping[str, Any] | None = None,
    cancel_event: asyncio.Event | None = None,
    rate_limiter: RateLimiter | None = None,
) -> BatchProcessResult:
    """Embed *texts* in groups, tolerating per-group failures.

    Parameters
    ----------
    provider:
        Embedding provider; each group is one ``embed_batch`` call.
    texts:
        Input texts.  Result positions mirror these indices.
    batch_size:
        Texts per group.
    max_retries:
        Retries per group after the first attempt.  ``ConfigurationError``
        (bad credentials, dimension mismatch) is never retried.
    retry_delay:
        Base delay in seconds before a retry.
    backoff:
        ``"exponential"`` waits ``retry_delay * 2**attempt`` (attempt
        counted from 0); ``"fixed"`` always waits ``retry_delay``.
    rate_limit:
        Provider calls allowed per minute.  Ignored when *rate_limiter* is
        given.
    concurrency:
        Groups in flight at once.
    on_progress:
        Called (sync or async) with cumulative progress after each group.
    on_error:
        Called (sync or async) once per text of a group that exhausted its
        retries.  Without it the first such failure is raised, groups not
        yet started are cancelled and the call fails.
    include_source_hash:
        Record each text's SHA-256 in its embedding metadata.
    metadata:
        Extra metadata copied onto every embedding.
    cancel_event:
        Once set, no new group or retry is started.  Texts never completed
        are absent from both the embeddings and the failure list, and
        ``stats.cancelled`` is ``True``.
    rate_limiter:
        Shared limiter, for callers running several pipelines against the
        same provider quota.

    Returns
    -------
    BatchProcessResult

    Raises
    ------
    ValueError
        If ``batch_size < 1`` or ``max_retries < 0``.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    if max_retries < 0:
        raise ValueError("max_retries must not be negative")

    with log_context(batch_run=uuid.uuid4().hex[:12], provider=provider.type, model=provider.model):
        started = time.perf_counter()
        total = len(texts)
        groups = [
            _Group(number=n + 1, start=start, texts=texts[start : start + batch_size])
            for n, start in enumerate(range(0, total, batch_size))
        ]
        limiter = rate_limiter or RateLimiter(rate_limit)
        positional: list[StoredEmbedding | None] = [None] * total
        failed: list[FailedItem] = []
        processed = 0
        aborted = False

        def _cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        async def _attempt(group: _Group) -> list[StoredEmbedding]:
            vectors = await limiter.execute(provider.embed_batch, group.texts)
            if len(vectors) != len(group.texts):
                raise ValueError(
                    f"Provider returned {len(vectors)} vectors for {len(group.texts)} texts"
                )
            return [
                build_stored_embedding(
                    provider, text, vector, include_source_hash=include_source_hash, metadata=metadata
                )
                for text, vector in zip(group.texts, vectors)
            ]

        async def _process(group: _Group) -> None:
            nonlocal processed
            attempt = 0
            while True:
                if aborted:
                    return
                if _cancelled():
                    logger.info("batch_group_skipped", batch=group.number, reason="cancelled")
                    return
                try:
                    embeddings = await _attempt(group)
                    break
                except ConfigurationError as exc:
                    await _fail(group, exc, attempt)
                    return
                except Exception as exc:
                    if attempt >= max_retries:
                        await _fail(group, exc, attempt)
                        return
                    delay = _retry_delay(retry_delay, attempt, backoff, exc)
                    logger.warning(
                        "batch_group_retry",
                        batch=group.number,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

            for offset, embedding in enumerate(embeddings):
                positional[group.start + offset] = embedding
            processed += len(group.texts)
            await _report_progress(group)

        async def _fail(group: _Group, exc: Exception, retries: int) -> None:
            nonlocal processed, aborted
            logger.error(
                "batch_group_failed",
                batch=group.number,
                size=len(group.texts),
                retries=retries,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            if on_error is None:
                # Groups the queue starts before the caller sees this error must not run.
                aborted = True
                raise exc
            for offset, text in enumerate(group.texts):
                failed.append(
                    FailedItem(
                        index=group.start + offset,
                        text=text,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                )
                await _invoke(
                    on_error,
                    BatchError(
                        index=group.start + offset,
                        text=text,
                        error=exc,
                        retries=retries,
                        batch_number=group.number,
                    ),
                )
            processed += len(group.texts)
            await _report_progress(group)

        async def _report_progress(group: _Group) -> None:
            if on_progress is None:
                return
            await _invoke(
                on_progress,
                BatchProgress(
                    processed=processed,
                    total=total,
                    failed=len(failed),
                    percentage=round(processed / total * 100, 2) if total else 100.0,
                    current_batch=group.number,
                    total_batches=len(groups),
                ),
            )

        queue: ProcessingQueue[_Group, None] = ProcessingQueue(_process, concurrency=concurrency)
        futures = [queue.add(group) for group in groups]
        try:
            await asyncio.gather(*futures)
        except Exception:
            queue.cancel_pending()
            # Let groups already in flight settle before failing the call.
            await asyncio.gather(*futures, return_exceptions=True)
            raise

        failed.sort(key=lambda item: item.index)
        embeddings = [e for e in positional if e is not None]
        stats = BatchStats(
            total=total,
            successful=len(embeddings),
            failed=len(failed),
            duration=time.perf_counter() - started,
            cancelled=_cancelled(),
        )
        logger.info(
            "batch_process_complete",
            total=stats.total,
            successful=stats.successful,
            failed=stats.failed,
            batches=len(groups),
            cancelled=stats.cancelled,
            duration_seconds=round(stats.duration, 3),
        )
        return BatchProcessResult(
            embeddings=embeddings,
            positional=positional,
            failed=failed,
            stats=stats,
        )


__all__ = ["batch_process"]
