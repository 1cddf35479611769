"""Automatic retries for transient provider failures."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from git_wiz.ai.client import ProviderClient
from git_wiz.exceptions import ProviderTransportError
from git_wiz.models import Prompt, ProviderConfig, ProviderIdentity, RawModelReply

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter.

    ``max_retries`` counts additional calls after the first one, so the
    default policy makes at most three provider calls.
    """

    max_retries: int = 2
    base_delay: float = 0.5
    factor: float = 2.0
    jitter: float = 0.2
    max_delay: float = 60.0

    def should_retry(self, error: Exception) -> bool:
        return isinstance(error, ProviderTransportError) and error.retryable

    def delay_for(
        self, retry_index: int, error: Exception, jitter_sample: float
    ) -> float | None:
        """Seconds to wait before retry ``retry_index`` (0-based), or None to give up.

        Args:
            retry_index: Number of retries already made
            error: The failure of the previous call
            jitter_sample: Value in [-1, 1] scaling the jitter range
        """
        if retry_index >= self.max_retries or not self.should_retry(error):
            return None

        exponential_delay = min(self.base_delay * (self.factor**retry_index), self.max_delay)
        jitter_range = exponential_delay * self.jitter
        delay = exponential_delay + jitter_range * max(-1.0, min(1.0, jitter_sample))

        # Honor the vendor's Retry-After when it asks for longer
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.max_delay))

        return max(0.0, delay)


class RetryingClient:
    """Wraps a ProviderClient and retries retryable failures sequentially."""

    def __init__(
        self,
        client: ProviderClient,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.calls = 0

    @property
    def identity(self) -> ProviderIdentity:
        return self.client.identity

    @property
    def name(self) -> str:
        return self.client.name

    async def generate(self, prompt: Prompt, config: ProviderConfig) -> RawModelReply:
        retry_index = 0
        while True:
            self.calls += 1
            try:
                return await self.client.generate(prompt, config)
            except ProviderTransportError as error:
                delay = self.policy.delay_for(
                    retry_index, error, self._rng.uniform(-1.0, 1.0)
                )
                if delay is None:
                    if self.policy.should_retry(error):
                        logger.info(
                            f"Giving up on {self.client.name} after {retry_index + 1} calls: {error}"
                        )
                    else:
                        logger.info(f"Not retrying error: {type(error).__name__}")
                    raise

                retry_index += 1
                logger.info(
                    f"{type(error).__name__} from {self.client.name}; retrying in "
                    f"{delay:.2f} seconds (attempt {retry_index}/{self.policy.max_retries})"
                )
                await self._sleep(delay)
