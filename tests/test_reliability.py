"""
Tests for reliability — bounded retry policy.
"""

import threading

import pytest

from pwsh_provisioner.core.errors import ProvisioningCancelled, TransportError, UploadError
from pwsh_provisioner.core.reliability.retry import RetryPolicy


def _policy(**kwargs) -> RetryPolicy:
    kwargs.setdefault("base_delay", 0)
    kwargs.setdefault("max_delay", 0)
    return RetryPolicy(**kwargs)


class Flaky:
    """Callable that fails a given number of times before succeeding."""

    def __init__(self, failures: int, error: Exception | None = None):
        self.failures = failures
        self.error = error or TransportError("boom")
        self.attempts: list[int] = []

    def __call__(self, attempt: int) -> str:
        self.attempts.append(attempt)
        if len(self.attempts) <= self.failures:
            raise self.error
        return "done"


# ── Retry policy ─────────────────────────────────────────────────────


class TestRetryPolicy:
    def test_first_attempt_succeeds(self):
        body = Flaky(0)
        assert _policy(tries=3).run(body) == "done"
        assert body.attempts == [1]

    def test_retries_transport_errors(self):
        body = Flaky(2)
        assert _policy(tries=3).run(body) == "done"
        assert body.attempts == [1, 2, 3]

    def test_upload_errors_are_transport_errors(self):
        body = Flaky(1, UploadError("/tmp/x", "reset"))
        assert _policy(tries=2).run(body) == "done"

    def test_tries_exhausted(self):
        body = Flaky(5)
        with pytest.raises(TransportError, match="boom"):
            _policy(tries=2).run(body)
        assert body.attempts == [1, 2]

    def test_non_retryable_propagates_immediately(self):
        body = Flaky(5, ValueError("bad"))
        with pytest.raises(ValueError):
            _policy(tries=5).run(body)
        assert body.attempts == [1]

    def test_unlimited_tries_bounded_by_timeout(self):
        body = Flaky(100)
        with pytest.raises(TransportError):
            _policy(tries=0, start_timeout=0).run(body)
        assert body.attempts == [1]

    def test_unlimited_tries_until_success(self):
        body = Flaky(4)
        assert _policy(tries=0, start_timeout=60).run(body) == "done"
        assert len(body.attempts) == 5

    def test_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        body = Flaky(0)
        with pytest.raises(ProvisioningCancelled):
            _policy().run(body, cancel)
        assert body.attempts == []

    def test_cancelled_while_backing_off(self):
        cancel = threading.Event()

        def body(attempt):
            cancel.set()
            raise TransportError("down")

        with pytest.raises(ProvisioningCancelled):
            RetryPolicy(tries=0, start_timeout=600, base_delay=60).run(body, cancel)

    def test_backoff_grows_and_caps(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=4.0)
        assert 1.0 <= policy.backoff(1) <= 1.3
        assert 2.0 <= policy.backoff(2) <= 2.6
        assert 4.0 <= policy.backoff(5) <= 5.2

    def test_custom_retry_on(self):
        body = Flaky(1, KeyError("k"))
        assert _policy(tries=2, retry_on=(KeyError,)).run(body) == "done"
