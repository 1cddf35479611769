"""Concrete provider clients: Gemini, Claude and GPT."""

from typing import Any

import httpx

from git_wiz.ai.catalog import ProviderCatalog
from git_wiz.ai.client import ProviderClient
from git_wiz.exceptions import ProviderError
from git_wiz.models import Prompt, ProviderConfig, ProviderIdentity

TEMPERATURE = 0.4
ANTHROPIC_VERSION = "2023-06-01"


class GeminiClient(ProviderClient):
    """Google Gemini ``generateContent`` client."""

    identity = ProviderIdentity.GEMINI
    display_name = "Gemini"

    def build_request(
        self, prompt: Prompt, config: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.endpoint_for(config)}/models/{config.model}:generateContent"
        headers = {
            "x-goog-api-key": config.api_key.get_secret_value(),
            "Content-Type": "application/json",
        }
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt.text}]}],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": config.max_output_tokens,
            },
        }
        return url, headers, body

    def extract_text(self, payload: dict[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            reason = (payload.get("promptFeedback") or {}).get("blockReason", "unknown")
            raise ProviderError(
                f"Gemini returned no candidates (block reason: {reason})",
                provider=self.identity.value,
            )
        parts = candidates[0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)

    def extract_usage(self, payload: dict[str, Any]) -> int:
        return int((payload.get("usageMetadata") or {}).get("totalTokenCount", 0))

    def is_auth_failure(self, response: httpx.Response) -> bool:
        # Gemini reports a bad key as 400 INVALID_ARGUMENT
        return response.status_code == 400 and "API_KEY_INVALID" in response.text


class ClaudeClient(ProviderClient):
    """Anthropic Messages API client."""

    identity = ProviderIdentity.CLAUDE
    display_name = "Claude"

    def build_request(
        self, prompt: Prompt, config: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.endpoint_for(config)}/messages"
        headers = {
            "x-api-key": config.api_key.get_secret_value(),
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        body = {
            "model": config.model,
            "max_tokens": config.max_output_tokens,
            "temperature": TEMPERATURE,
            "messages": [{"role": "user", "content": prompt.text}],
        }
        return url, headers, body

    def extract_text(self, payload: dict[str, Any]) -> str:
        blocks = payload["content"]
        return "".join(b["text"] for b in blocks if b.get("type") == "text")

    def extract_usage(self, payload: dict[str, Any]) -> int:
        usage = payload.get("usage") or {}
        return int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0))


class GPTClient(ProviderClient):
    """OpenAI Chat Completions client."""

    identity = ProviderIdentity.GPT
    display_name = "GPT"

    def build_request(
        self, prompt: Prompt, config: ProviderConfig
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        url = f"{self.endpoint_for(config)}/chat/completions"
        headers = {
            "Authorization": f"Bearer {config.api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }
        # Reasoning models reject a non-default temperature, so none is sent
        body = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt.text}],
            "max_completion_tokens": config.max_output_tokens,
        }
        return url, headers, body

    def extract_text(self, payload: dict[str, Any]) -> str:
        content = payload["choices"][0]["message"]["content"]
        return content or ""

    def extract_usage(self, payload: dict[str, Any]) -> int:
        return int((payload.get("usage") or {}).get("total_tokens", 0))


CLIENTS: dict[ProviderIdentity, type[ProviderClient]] = {
    ProviderIdentity.GEMINI: GeminiClient,
    ProviderIdentity.CLAUDE: ClaudeClient,
    ProviderIdentity.GPT: GPTClient,
}


def get_client(
    provider: ProviderIdentity,
    catalog: ProviderCatalog | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderClient:
    """Return the client for a provider tag."""
    try:
        client_class = CLIENTS[provider]
    except KeyError as e:
        raise ValueError(f"Unknown provider: {provider}") from e
    return client_class(catalog=catalog, transport=transport)
