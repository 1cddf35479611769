"""Tests for retry policy and the retrying client wrapper."""

from unittest.mock import AsyncMock, Mock

import pytest

from git_wiz.ai.retry import RetryingClient, RetryPolicy
from git_wiz.exceptions import (
    AuthError,
    NetworkError,
    ProviderError,
    ProviderTimeout,
    RateLimitError,
)
from git_wiz.models import Prompt, ProviderIdentity, RawModelReply
from tests.fixtures.diffs import provider_config


class ScriptedClient:
    """Provider client double that replays a list of results or errors."""

    identity = ProviderIdentity.GEMINI
    name = "Gemini"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def generate(self, prompt, config):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _reply(text: str = "feat: add x") -> RawModelReply:
    return RawModelReply(provider=ProviderIdentity.GEMINI, text=text)


def _prompt() -> Prompt:
    return Prompt(text="p", provider=ProviderIdentity.GEMINI, max_tokens=1000)


def _no_jitter() -> Mock:
    rng = Mock()
    rng.uniform.return_value = 0.0
    return rng


class TestRetryPolicy:
    """Test the pure backoff computation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.policy = RetryPolicy()

    def test_exponential_delays(self):
        """Test base 0.5s doubling per retry."""
        error = NetworkError("down")

        assert self.policy.delay_for(0, error, 0.0) == pytest.approx(0.5)
        assert self.policy.delay_for(1, error, 0.0) == pytest.approx(1.0)

    def test_gives_up_after_max_retries(self):
        """Test that no delay is returned once retries are exhausted."""
        assert self.policy.delay_for(2, NetworkError("down"), 0.0) is None

    def test_jitter_bounds(self):
        """Test that jitter stays within +/-20 percent."""
        error = ProviderTimeout("slow")

        assert self.policy.delay_for(0, error, 1.0) == pytest.approx(0.6)
        assert self.policy.delay_for(0, error, -1.0) == pytest.approx(0.4)
        # Samples outside [-1, 1] are clamped
        assert self.policy.delay_for(0, error, 5.0) == pytest.approx(0.6)

    @pytest.mark.parametrize(
        "error",
        [AuthError("bad key"), ProviderError("boom", status_code=500), ValueError("x")],
    )
    def test_non_retryable_errors(self, error):
        """Test that auth, provider and foreign errors are never retried."""
        assert self.policy.delay_for(0, error, 0.0) is None

    def test_retry_after_is_honored(self):
        """Test that a longer Retry-After wins over the computed delay."""
        error = RateLimitError("slow down", retry_after=3.0)

        assert self.policy.delay_for(0, error, 0.0) == pytest.approx(3.0)

    def test_retry_after_is_capped(self):
        """Test that Retry-After cannot exceed the maximum delay."""
        error = RateLimitError("slow down", retry_after=3600)

        assert self.policy.delay_for(0, error, 0.0) == pytest.approx(60.0)


class TestRetryingClient:
    """Test sequential retries around a provider client."""

    @pytest.mark.asyncio
    async def test_rate_limited_three_times(self):
        """Test that three rate limit errors mean three calls and two waits."""
        client = ScriptedClient([RateLimitError("429")] * 3)
        sleep = AsyncMock()
        retrying = RetryingClient(client, sleep=sleep, rng=_no_jitter())

        with pytest.raises(RateLimitError):
            await retrying.generate(_prompt(), provider_config())

        assert client.calls == 3
        assert retrying.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [
            pytest.approx(0.5),
            pytest.approx(1.0),
        ]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        """Test that a retry can succeed."""
        client = ScriptedClient([NetworkError("reset"), _reply("fix: y")])
        sleep = AsyncMock()
        retrying = RetryingClient(client, sleep=sleep, rng=_no_jitter())

        reply = await retrying.generate(_prompt(), provider_config())

        assert reply.text == "fix: y"
        assert client.calls == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self):
        """Test that credential failures surface immediately."""
        client = ScriptedClient([AuthError("401")])
        sleep = AsyncMock()
        retrying = RetryingClient(client, sleep=sleep)

        with pytest.raises(AuthError):
            await retrying.generate(_prompt(), provider_config())

        assert client.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_policy(self):
        """Test that max_retries bounds the number of calls."""
        client = ScriptedClient([ProviderTimeout("t")] * 5)
        retrying = RetryingClient(
            client, RetryPolicy(max_retries=4), sleep=AsyncMock(), rng=_no_jitter()
        )

        with pytest.raises(ProviderTimeout):
            await retrying.generate(_prompt(), provider_config())

        assert client.calls == 5

    def test_exposes_wrapped_identity(self):
        """Test that the wrapper reports the inner client's identity."""
        retrying = RetryingClient(ScriptedClient([]))

        assert retrying.identity == ProviderIdentity.GEMINI
        assert retrying.name == "Gemini"
