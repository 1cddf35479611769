"""Provider catalog for git-wiz.

This module provides the ProviderCatalog class, which loads per-vendor
metadata (endpoint, API key environment variables, default model, prompt token
budget, timeout and the models offered by the setup wizard) from the YAML
files shipped in ``built_in/``. Budgets and timeouts live here rather than in
code so they can be tuned without touching the clients.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from git_wiz.models import ProviderIdentity

logger = logging.getLogger(__name__)


@dataclass
class ModelInfo:
    """A model offered for a provider."""

    name: str
    display_name: str
    description: str = ""


@dataclass
class ProviderInfo:
    """Static metadata for one LLM vendor."""

    identity: ProviderIdentity
    display_name: str
    api_key_env: list[str]
    endpoint: str
    default_model: str
    prompt_token_budget: int
    max_output_tokens: int = 1024
    timeout: float = 30.0
    models: list[ModelInfo] = field(default_factory=list)
    yaml_path: str | None = None

    def api_key_from_env(self) -> str | None:
        """Return the first API key found in this provider's environment variables."""
        for name in self.api_key_env:
            value = os.getenv(name)
            if value:
                return value
        return None


class ProviderCatalog:
    """Manage provider metadata loaded from the built-in YAML files."""

    REQUIRED_FIELDS = [
        "provider",
        "display_name",
        "api_key_env",
        "endpoint",
        "default_model",
        "prompt_token_budget",
        "models",
    ]

    def __init__(self, catalog_dir: Path | None = None) -> None:
        """Initialize the catalog.

        Args:
            catalog_dir: Directory of provider YAML files (defaults to built_in/)
        """
        self._providers: dict[ProviderIdentity, ProviderInfo] = {}
        self._load_providers(catalog_dir or Path(__file__).parent / "built_in")

    def _load_providers(self, catalog_dir: Path) -> None:
        if not catalog_dir.exists():
            logger.warning(f"Provider catalog directory not found: {catalog_dir}")
            return

        for yaml_file in sorted(catalog_dir.glob("*.yaml")):
            try:
                self._load_provider_file(yaml_file)
            except Exception as e:
                logger.error(f"Failed to load provider file {yaml_file}: {e}")

    def _load_provider_file(self, yaml_file: Path) -> None:
        """Load a single provider YAML file."""
        try:
            with open(yaml_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Invalid YAML syntax in {yaml_file}: {e}")
            return
        except OSError as e:
            logger.error(f"Cannot read provider file {yaml_file}: {e}")
            return

        if not self._validate_provider_structure(data, yaml_file):
            return

        try:
            identity = ProviderIdentity(data["provider"])
        except ValueError:
            logger.error(f"Unknown provider '{data['provider']}' in {yaml_file}")
            return

        api_key_env = data["api_key_env"]
        if isinstance(api_key_env, str):
            api_key_env = [api_key_env]

        models = [
            ModelInfo(
                name=m["name"],
                display_name=m.get("display_name", m["name"]),
                description=m.get("description", ""),
            )
            for m in data["models"]
            if isinstance(m, dict) and m.get("name")
        ]

        self._providers[identity] = ProviderInfo(
            identity=identity,
            display_name=data["display_name"],
            api_key_env=list(api_key_env),
            endpoint=str(data["endpoint"]).rstrip("/"),
            default_model=data["default_model"],
            prompt_token_budget=int(data["prompt_token_budget"]),
            max_output_tokens=int(data.get("max_output_tokens", 1024)),
            timeout=float(data.get("timeout", 30)),
            models=models,
            yaml_path=str(yaml_file),
        )
        logger.debug(f"Loaded provider {identity.value} with {len(models)} models")

    def _validate_provider_structure(self, data: Any, file_path: Path) -> bool:
        """Validate provider YAML structure."""
        if not isinstance(data, dict):
            logger.error(f"Provider file {file_path} is not a mapping")
            return False

        for field_name in self.REQUIRED_FIELDS:
            if field_name not in data:
                logger.error(
                    f"Provider file {file_path} missing required field '{field_name}'"
                )
                return False

        if not isinstance(data["models"], list):
            logger.error(f"Provider file {file_path}: 'models' must be a list")
            return False

        try:
            if int(data["prompt_token_budget"]) <= 0:
                logger.error(f"Provider file {file_path} has invalid prompt_token_budget")
                return False
        except (ValueError, TypeError):
            logger.error(f"Provider file {file_path} has non-numeric prompt_token_budget")
            return False

        return True

    def get(self, identity: ProviderIdentity) -> ProviderInfo:
        """Return metadata for a provider.

        Raises:
            KeyError: If the provider is not in the catalog
        """
        return self._providers[identity]

    def providers(self) -> list[ProviderInfo]:
        """Return all loaded providers in ProviderIdentity order."""
        return [self._providers[p] for p in ProviderIdentity if p in self._providers]

    def token_budgets(self) -> dict[ProviderIdentity, int]:
        """Prompt token budget per provider."""
        return {p: info.prompt_token_budget for p, info in self._providers.items()}
