"""Unit tests for batch_process: grouping, ordering, retry, errors and cancel."""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock, patch

import pytest

from stack_rag.models.batch import BatchError, BatchProgress
from stack_rag.services.batch_processor import batch_process
from stack_rag.services.embedding_generator import hash_text
from stack_rag.utils.concurrency import RateLimiter
from stack_rag.utils.errors import ConfigurationError, EmbeddingProviderError, RateLimitError
from tests.conftest import MockEmbeddingProvider


class FlakyProvider(MockEmbeddingProvider):
    """Fails the first ``failures`` calls, or every call containing a poisoned text."""

    def __init__(self, failures: int = 0, poison: str | None = None, error: Exception | None = None) -> None:
        super().__init__()
        self._failures = failures
        self._poison = poison
        self._error = error or EmbeddingProviderError("temporary outage", provider_name="mock")

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if len(self.batch_calls) <= self._failures or (self._poison and self._poison in texts):
            raise self._error
        return [self._vector(t) for t in texts]


class SlowProvider(MockEmbeddingProvider):
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        await asyncio.sleep(random.uniform(0, 0.02))
        return await super().embed_batch(texts)


def _texts(n: int) -> list[str]:
    topics = ["cat", "dog", "star"]
    return [f"{topics[i % 3]} number {i}" for i in range(n)]


class TestGrouping:
    @pytest.mark.asyncio
    async def test_one_provider_call_per_group(self, provider: MockEmbeddingProvider) -> None:
        result = await batch_process(provider, _texts(25), batch_size=10)

        assert [len(call) for call in provider.batch_calls] == [10, 10, 5]
        assert result.stats.total == 25
        assert result.stats.successful == 25
        assert result.stats.failed == 0
        assert result.stats.cancelled is False

    @pytest.mark.asyncio
    async def test_results_follow_input_order_under_concurrency(self) -> None:
        provider = SlowProvider()
        texts = _texts(30)

        result = await batch_process(provider, texts, batch_size=3, concurrency=4)

        assert [e.metadata.source_hash for e in result.embeddings] == [hash_text(t) for t in texts]
        assert [e.metadata.source_hash for e in result.positional] == [hash_text(t) for t in texts]

    @pytest.mark.asyncio
    async def test_empty_input(self, provider: MockEmbeddingProvider) -> None:
        result = await batch_process(provider, [])
        assert result.embeddings == []
        assert result.positional == []
        assert provider.batch_calls == []

    @pytest.mark.asyncio
    async def test_source_hash_and_metadata_options(self, provider: MockEmbeddingProvider) -> None:
        result = await batch_process(
            provider, ["cat"], include_source_hash=False, metadata={"listKey": "Post"}
        )
        assert result.embeddings[0].metadata.source_hash is None
        assert result.embeddings[0].metadata.extras == {"listKey": "Post"}

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, provider: MockEmbeddingProvider) -> None:
        with pytest.raises(ValueError):
            await batch_process(provider, ["a"], batch_size=0)
        with pytest.raises(ValueError):
            await batch_process(provider, ["a"], max_retries=-1)


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self) -> None:
        provider = FlakyProvider(failures=2)
        result = await batch_process(provider, ["cat", "dog"], retry_delay=0)

        assert len(provider.batch_calls) == 3
        assert result.stats.successful == 2

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self) -> None:
        provider = FlakyProvider(failures=10)
        sleep = AsyncMock()
        errors: list[BatchError] = []

        with patch("stack_rag.services.batch_processor.asyncio.sleep", sleep):
            await batch_process(provider, ["cat"], max_retries=3, retry_delay=1.0, on_error=errors.append)

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]
        assert len(provider.batch_calls) == 4
        assert errors[0].retries == 3

    @pytest.mark.asyncio
    async def test_fixed_backoff_delays(self) -> None:
        provider = FlakyProvider(failures=10)
        sleep = AsyncMock()

        with patch("stack_rag.services.batch_processor.asyncio.sleep", sleep):
            await batch_process(
                provider, ["cat"], max_retries=2, retry_delay=0.5, backoff="fixed", on_error=lambda e: None
            )

        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_rate_limit_hint_extends_delay(self) -> None:
        provider = FlakyProvider(failures=1, error=RateLimitError("slow down", retry_after=7.0))
        sleep = AsyncMock()

        with patch("stack_rag.services.batch_processor.asyncio.sleep", sleep):
            result = await batch_process(provider, ["cat"], retry_delay=1.0)

        sleep.assert_awaited_once_with(7.0)
        assert result.stats.successful == 1

    @pytest.mark.asyncio
    async def test_configuration_errors_are_not_retried(self) -> None:
        provider = FlakyProvider(failures=10, error=ConfigurationError("bad key"))
        errors: list[BatchError] = []

        result = await batch_process(provider, ["cat", "dog"], retry_delay=0, on_error=errors.append)

        assert len(provider.batch_calls) == 1
        assert [e.retries for e in errors] == [0, 0]
        assert result.stats.failed == 2

    @pytest.mark.asyncio
    async def test_every_attempt_goes_through_the_rate_limiter(self) -> None:
        provider = FlakyProvider(failures=2)
        limiter = RateLimiter(100)

        await batch_process(provider, ["cat"], retry_delay=0, rate_limiter=limiter)

        assert limiter.available_slots() == 97


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_failed_group_reported_per_item(self) -> None:
        provider = FlakyProvider(poison="dog number 4")
        texts = _texts(9)
        errors: list[BatchError] = []

        result = await batch_process(
            provider, texts, batch_size=3, max_retries=1, retry_delay=0, on_error=errors.append
        )

        assert [e.index for e in errors] == [3, 4, 5]
        assert {e.batch_number for e in errors} == {2}
        assert all(e.retries == 1 for e in errors)
        assert [f.index for f in result.failed] == [3, 4, 5]
        assert result.failed[0].error_type == "EmbeddingProviderError"
        assert result.positional[3:6] == [None, None, None]
        assert all(e is not None for e in result.positional[:3] + result.positional[6:])
        assert result.stats.successful == 6
        assert result.stats.failed == 3

    @pytest.mark.asyncio
    async def test_async_error_callback(self) -> None:
        provider = FlakyProvider(poison="cat number 0")
        seen: list[int] = []

        async def _on_error(error: BatchError) -> None:
            await asyncio.sleep(0)
            seen.append(error.index)

        await batch_process(provider, _texts(4), batch_size=2, max_retries=0, on_error=_on_error)
        assert seen == [0, 1]

    @pytest.mark.asyncio
    async def test_without_error_callback_the_failure_is_raised(self) -> None:
        provider = FlakyProvider(poison="cat number 0")
        with pytest.raises(EmbeddingProviderError):
            await batch_process(provider, _texts(6), batch_size=2, max_retries=0)
        # Later groups were never started.
        assert len(provider.batch_calls) == 1


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_is_cumulative(self, provider: MockEmbeddingProvider) -> None:
        updates: list[BatchProgress] = []

        await batch_process(provider, _texts(5), batch_size=2, on_progress=updates.append)

        assert [u.processed for u in updates] == [2, 4, 5]
        assert [u.current_batch for u in updates] == [1, 2, 3]
        assert all(u.total == 5 and u.total_batches == 3 for u in updates)
        assert updates[-1].percentage == 100.0

    @pytest.mark.asyncio
    async def test_failed_groups_count_in_progress(self) -> None:
        provider = FlakyProvider(poison="cat number 0")
        updates: list[BatchProgress] = []

        await batch_process(
            provider, _texts(4), batch_size=2, max_retries=0, on_error=lambda e: None, on_progress=updates.append
        )

        assert [(u.processed, u.failed) for u in updates] == [(2, 2), (4, 2)]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_stops_new_groups(self, provider: MockEmbeddingProvider) -> None:
        cancel = asyncio.Event()

        def _on_progress(progress: BatchProgress) -> None:
            if progress.current_batch == 1:
                cancel.set()

        result = await batch_process(
            provider, _texts(6), batch_size=2, on_progress=_on_progress, cancel_event=cancel
        )

        assert len(provider.batch_calls) == 1
        assert result.stats.cancelled is True
        assert result.stats.successful == 2
        assert result.failed == []
        assert result.positional[2:] == [None, None, None, None]
