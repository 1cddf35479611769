"""AI integration module for git-wiz.

This module builds bounded prompts from staged diffs, calls the configured
LLM vendor over HTTP (with automatic retries for transient failures) and
validates replies into Conventional Commits messages.
"""

from .catalog import ProviderCatalog, ProviderInfo
from .client import ProviderClient, clean_response
from .mock import MockClient
from .prompt import PromptBuilder, estimate_tokens
from .retry import RetryingClient, RetryPolicy
from .validator import ResponseValidator
from .vendors import CLIENTS, ClaudeClient, GeminiClient, GPTClient, get_client

__all__ = [
    "ProviderCatalog",
    "ProviderInfo",
    "ProviderClient",
    "GeminiClient",
    "ClaudeClient",
    "GPTClient",
    "CLIENTS",
    "get_client",
    "MockClient",
    "clean_response",
    "PromptBuilder",
    "estimate_tokens",
    "RetryPolicy",
    "RetryingClient",
    "ResponseValidator",
]
