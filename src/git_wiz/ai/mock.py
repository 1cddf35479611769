"""Offline provider used by ``git-wiz --mock``: no network, canned replies."""

import asyncio
import logging

from git_wiz.models import SUBJECT_MAX_LENGTH, Prompt, ProviderConfig, RawModelReply

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "chore: update staged files"


class MockClient:
    """Stand-in for a provider client that never calls an API.

    The reply uses the hint as the subject when one is given, so the review,
    edit and commit flow can be exercised without credentials.
    """

    name = "Mock"
    model = "mock"

    def __init__(self, hint: str | None = None, delay: float = 0.0) -> None:
        self.hint = hint
        self.delay = delay
        self.calls = 0

    async def generate(self, prompt: Prompt, config: ProviderConfig) -> RawModelReply:
        self.calls += 1
        if self.delay:
            # Simulate network latency
            await asyncio.sleep(self.delay)

        subject = DEFAULT_SUBJECT
        if self.hint and self.hint.strip():
            subject = f"feat: {' '.join(self.hint.split())}"[: SUBJECT_MAX_LENGTH + 6]
        text = (
            f"{subject}\n\n"
            f"- Generated offline from a {len(prompt.text)} character prompt\n"
            "- No API call was made"
        )
        logger.info(f"Mock reply for attempt {self.calls}")
        return RawModelReply(provider=config.provider, model=self.model, text=text)
