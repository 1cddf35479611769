"""Provider client base for git-wiz.

A provider client performs exactly one vendor HTTP call per ``generate`` and
translates every failure into the ProviderTransportError taxonomy. Retries are
not done here; see ``git_wiz.ai.retry.RetryingClient``.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from git_wiz.ai.catalog import ProviderCatalog
from git_wiz.exceptions import (
    AuthError,
    NetworkError,
    ProviderError,
    ProviderTimeout,
    RateLimitError,
)
from git_wiz.models import Prompt, ProviderConfig, ProviderIdentity, RawModelReply

logger = logging.getLogger(__name__)

# Statuses vendors use to signal backpressure (529 is Anthropic's "overloaded")
BACKPRESSURE_STATUSES = frozenset({429, 503, 529})
AUTH_STATUSES = frozenset({401, 403})

_FENCE_LINE_RE = re.compile(r"^\s*```[\w+-]*\s*$")


def clean_response(text: str) -> str:
    """Strip markdown code fence lines and surrounding whitespace."""
    lines = [line for line in text.strip().splitlines() if not _FENCE_LINE_RE.match(line)]
    return "\n".join(lines).strip()


class ProviderClient(ABC):
    """One LLM vendor's text generation call."""

    identity: ClassVar[ProviderIdentity]
    display_name: ClassVar[str]

    def __init__(
        self,
        catalog: ProviderCatalog | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            catalog: Provider catalog used for the default endpoint
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.catalog = catalog or ProviderCatalog()
        self._transport = transport

    @property
    def name(self) -> str:
        return self.display_name

    def endpoint_for(self, config: ProviderConfig) -> str:
        if config.endpoint:
            return config.endpoint.rstrip("/")
        return self.catalog.get(self.identity).endpoint

    async def generate(self, prompt: Prompt, config: ProviderConfig) -> RawModelReply:
        """Send the prompt and return the model's raw reply.

        Raises:
            AuthError: The vendor rejected the API key
            RateLimitError: The vendor asked us to back off
            NetworkError: The vendor could not be reached
            ProviderTimeout: The call exceeded ``config.timeout``
            ProviderError: Unexpected status or malformed response envelope
        """
        if config.provider != self.identity:
            raise ValueError(
                f"{self.name} client cannot serve provider '{config.provider.value}'"
            )

        logger.debug(
            f"Calling {self.name} model {config.model} "
            f"({len(prompt.text)} chars, timeout {config.timeout}s)"
        )
        try:
            return await asyncio.wait_for(
                self._call(prompt, config), timeout=config.timeout
            )
        except TimeoutError as e:
            raise ProviderTimeout(
                f"{self.name} did not respond within {config.timeout:g}s",
                provider=self.identity.value,
            ) from e

    async def _call(self, prompt: Prompt, config: ProviderConfig) -> RawModelReply:
        url, headers, body = self.build_request(prompt, config)

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=config.timeout
            ) as client:
                response = await client.post(url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(
                f"Request to {self.name} timed out: {type(e).__name__}",
                provider=self.identity.value,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"Failed to reach {self.name}: {e}", provider=self.identity.value
            ) from e

        self._raise_for_status(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                f"Failed to parse {self.name} response as JSON",
                provider=self.identity.value,
                status_code=response.status_code,
            ) from e

        try:
            text = self.extract_text(payload)
            if not isinstance(text, str):
                raise TypeError(f"expected text, got {type(text).__name__}")
            tokens_used = self.extract_usage(payload)
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise ProviderError(
                f"Invalid response format from {self.name}: {e}",
                provider=self.identity.value,
                status_code=response.status_code,
            ) from e

        text = clean_response(text)
        if not text:
            raise ProviderError(
                f"Empty response from {self.name}", provider=self.identity.value
            )

        reply = RawModelReply(
            provider=self.identity,
            text=text,
            model=config.model,
            tokens_used=tokens_used,
        )
        logger.info(
            f"Received reply from {self.name} ({len(text)} chars, {reply.tokens_used} tokens)"
        )
        return reply

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Classify a non-2xx response into the transport error taxonomy."""
        if response.is_success:
            return

        status = response.status_code
        detail = _error_detail(response)
        provider = self.identity.value

        if status in AUTH_STATUSES or self.is_auth_failure(response):
            logger.info(f"Not retrying authentication error: {status}")
            raise AuthError(
                f"{self.name} rejected the API key ({status}): {detail}",
                provider=provider,
            )

        if status in BACKPRESSURE_STATUSES:
            raise RateLimitError(
                f"{self.name} rate limit or overload ({status}): {detail}",
                provider=provider,
                retry_after=_parse_retry_after(response.headers.get("retry-after")),
            )

        raise ProviderError(
            f"{self.name} API error ({status}): {detail}",
            provider=provider,
            status_code=status,
        )

    def is_auth_failure(self, response: httpx.Response) -> bool:
        """Vendor-specific credential rejection outside 401/403."""
        return False

    @abstractmethod
    def build_request(
        self, prompt: Prompt, config: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, json body) for the vendor call."""

    @abstractmethod
    def extract_text(self, payload: dict[str, Any]) -> str:
        """Pull the completion text out of the vendor's JSON envelope."""

    def extract_usage(self, payload: dict[str, Any]) -> int:
        return 0


def _error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable error message from a vendor response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text[:200]


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
