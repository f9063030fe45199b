"""Tests for retry policy and per-run usage accounting."""

from unittest.mock import AsyncMock, patch

import pytest

from analysis_engine.core.llm import CompletionResponse
from analysis_engine.core.llm_usage import AnalysisRunContext, UsageTracker
from analysis_engine.core.retry import RetryPolicy, tldr_retry_policy


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_retries=3, initial_delay=1.0)
        assert [policy.delay_for(a) for a in range(3)] == [1.0, 2.0, 4.0]
        assert policy.max_attempts == 4

    def test_tldr_policy_from_settings(self, settings):
        policy = tldr_retry_policy(settings)
        assert policy.max_retries == 2
        assert policy.initial_delay == 0.0

    @pytest.mark.asyncio
    @patch("analysis_engine.core.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_retries_then_succeeds(self, mock_sleep):
        """Sleeps with backoff between attempts and returns the first success."""
        func = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])

        result = await RetryPolicy(max_retries=2, initial_delay=1.0).run(func, label="test")

        assert result == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    @patch("analysis_engine.core.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_reraises_after_budget(self, mock_sleep):
        func = AsyncMock(side_effect=RuntimeError("down"))

        with pytest.raises(RuntimeError, match="down"):
            await RetryPolicy(max_retries=2).run(func)

        assert func.await_count == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self):
        func = AsyncMock(side_effect=KeyError("x"))
        policy = RetryPolicy(max_retries=5, initial_delay=0.0, retry_on=(RuntimeError,))

        with pytest.raises(KeyError):
            await policy.run(func)

        assert func.await_count == 1


class TestUsageTracker:
    def test_accumulates_and_dedupes_models(self):
        tracker = UsageTracker()
        tracker.record(100, "model-a")
        tracker.record(50, "model-b")
        tracker.record(25, "model-a")

        assert tracker.tokens_used == 175
        assert tracker.call_count == 3
        assert tracker.models == ["model-a", "model-b"]

    def test_negative_usage_counts_as_zero(self):
        tracker = UsageTracker()
        tracker.record(-10, "model-a")

        assert tracker.tokens_used == 0
        assert tracker.call_count == 1

    def test_reset(self):
        tracker = UsageTracker()
        tracker.record(10, "model-a")
        tracker.reset()

        assert tracker.tokens_used == 0
        assert tracker.call_count == 0
        assert tracker.models == []


class TestAnalysisRunContext:
    def test_runs_are_isolated(self):
        """Each context owns its own tracker and run id."""
        first = AnalysisRunContext(document_id="doc-1")
        second = AnalysisRunContext(document_id="doc-1")

        first.record_usage(CompletionResponse(content="x", tokens_used=7, model="m"), "tldr")

        assert first.usage.tokens_used == 7
        assert second.usage.tokens_used == 0
        assert first.run_id != second.run_id
