"""Tests for the transient-failure retry policy."""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from flowmate.exceptions import ElementError, TransientDispatchError
from flowmate.exec.retry import RetryPolicy


class TestRetryPolicy:
    """Test the RetryPolicy class logic."""

    def test_defaults(self):
        """Default policy allows two retries with a 500ms delay."""
        policy = RetryPolicy()
        assert policy.max_retries == 2
        assert policy.delay_ms == 500

    def test_should_retry_transient_errors_only(self):
        """Only transient dispatch errors are retried."""
        policy = RetryPolicy()
        assert policy.should_retry(TransientDispatchError("injection failed"), 0) is True
        assert policy.should_retry(TransientDispatchError("injection failed"), 1) is True
        assert policy.should_retry(ElementError("Element not found: #x"), 0) is False
        assert policy.should_retry(ValueError("bad"), 0) is False

    def test_should_not_retry_after_max_attempts(self):
        """No retry once max attempts are used."""
        policy = RetryPolicy(max_retries=2)
        assert policy.should_retry(TransientDispatchError("x"), 2) is False

    def test_none_policy(self):
        """The none policy never retries."""
        policy = RetryPolicy.none()
        assert policy.should_retry(TransientDispatchError("x"), 0) is False

    def test_wait_delay(self):
        """Test that retry policy waits for the configured delay."""
        policy = RetryPolicy(max_retries=1, delay_ms=100)

        start = time.monotonic()
        asyncio.run(policy.wait())
        elapsed = time.monotonic() - start

        assert elapsed >= 0.09


class TestRetryRun:
    """Test the retry combinator."""

    def test_succeeds_after_transient_failures(self):
        """An operation succeeding after transient failures returns its result."""
        operation = AsyncMock(side_effect=[
            TransientDispatchError("first"),
            TransientDispatchError("second"),
            "done",
        ])
        policy = RetryPolicy(max_retries=2, delay_ms=0)

        assert asyncio.run(policy.run(operation)) == "done"
        assert operation.await_count == 3

    def test_gives_up_after_two_retries(self):
        """The last transient error surfaces after the retries are used."""
        operation = AsyncMock(side_effect=TransientDispatchError("page navigating"))
        policy = RetryPolicy(max_retries=2, delay_ms=0)

        with pytest.raises(TransientDispatchError):
            asyncio.run(policy.run(operation))
        assert operation.await_count == 3

    def test_element_errors_are_never_retried(self):
        """Element errors surface on the first attempt."""
        operation = AsyncMock(side_effect=ElementError("Element is not visible (hidden)"))
        policy = RetryPolicy(max_retries=2, delay_ms=0)

        with pytest.raises(ElementError):
            asyncio.run(policy.run(operation))
        assert operation.await_count == 1
