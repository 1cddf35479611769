"""Configuration management for git-wiz."""

import json
import logging
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich import print

from git_wiz.ai.catalog import ProviderCatalog
from git_wiz.exceptions import ConfigurationError, NotConfigured
from git_wiz.models import ProviderConfig, ProviderIdentity

logger = logging.getLogger(__name__)

APP_NAME = "git-wiz"

# Vendor names written by earlier releases
_PROVIDER_ALIASES = {
    "openai": ProviderIdentity.GPT,
    "anthropic": ProviderIdentity.CLAUDE,
    "google": ProviderIdentity.GEMINI,
}


class Config:
    """Manage git-wiz provider configuration and API key storage."""

    def __init__(
        self,
        config_dir: Path | None = None,
        catalog: ProviderCatalog | None = None,
    ) -> None:
        """Initialize config with default paths.

        Args:
            config_dir: Override for the OS-specific application directory
            catalog: Provider catalog used for defaults and env var lookups
        """
        self.config_dir = config_dir or Path(typer.get_app_dir(APP_NAME))
        self.config_file = self.config_dir / "config.json"
        self.catalog = catalog or ProviderCatalog()
        self._ensure_config_dir()

    def _ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        # Set restrictive permissions on the config directory
        self.config_dir.chmod(0o700)

    def load_provider_config(self) -> ProviderConfig:
        """Load the configured provider, model and API key.

        Returns:
            The ProviderConfig snapshot for this invocation

        Raises:
            NotConfigured: If no provider or API key has been set up
            ConfigurationError: If the stored configuration is invalid
        """
        data = self._read_config()

        provider_name = data.get("provider")
        if not provider_name:
            raise NotConfigured(
                "No AI provider configured. Run 'git-wiz --config' to set one up."
            )

        identity = _parse_provider(str(provider_name))
        try:
            info = self.catalog.get(identity)
        except KeyError as e:
            raise ConfigurationError(
                f"Provider '{identity.value}' is missing from the provider catalog"
            ) from e

        api_key = data.get("api_key") or info.api_key_from_env()
        if not api_key:
            raise NotConfigured(
                f"No API key found for {info.display_name}. Run 'git-wiz --config' "
                f"or set {' / '.join(info.api_key_env)}."
            )

        try:
            return ProviderConfig(
                provider=identity,
                model=data.get("model") or info.default_model,
                api_key=api_key,
                endpoint=data.get("endpoint"),
                timeout=data.get("timeout", info.timeout),
                max_output_tokens=data.get("max_output_tokens", info.max_output_tokens),
                token_budget=data.get("token_budget"),
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {self.config_file}: {e}"
            ) from e

    def save_provider_config(self, config: ProviderConfig) -> None:
        """Store provider configuration securely.

        Args:
            config: Provider selection and API key to store
        """
        config_data = self._load_config()
        config_data.update(
            {
                "provider": config.provider.value,
                "model": config.model,
                "api_key": config.api_key.get_secret_value(),
            }
        )
        for key in ("endpoint", "token_budget"):
            value = getattr(config, key)
            if value is not None:
                config_data[key] = value
            else:
                config_data.pop(key, None)

        with self.config_file.open("w") as f:
            json.dump(config_data, f, indent=2)

        # Set restrictive permissions on the config file
        self.config_file.chmod(0o600)
        logger.info(f"Saved provider configuration for {config.provider.value}")
        print(f"[green]✓[/green] Configuration stored securely in {self.config_file}")

    def clear(self) -> None:
        """Remove the stored configuration."""
        self.config_file.unlink(missing_ok=True)
        print("[green]✓[/green] Configuration removed from local storage")

    def _read_config(self) -> dict[str, Any]:
        """Load the config file, failing loudly on corruption."""
        if not self.config_file.exists():
            return {}

        try:
            with self.config_file.open() as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Failed to parse config file {self.config_file}: {e}"
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read config file {self.config_file}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.config_file} is not an object")
        return data

    def _load_config(self) -> dict[str, Any]:
        """Load existing config or return empty dict."""
        try:
            return self._read_config()
        except ConfigurationError as e:
            logger.warning(f"Ignoring unreadable config: {e}")
            return {}

    def get_config_info(self) -> dict[str, Any]:
        """Get information about current configuration.

        Returns:
            Dictionary with config status information
        """
        data = self._load_config()
        config_exists = self.config_file.exists()

        return {
            "config_file": str(self.config_file),
            "config_exists": config_exists,
            "provider": data.get("provider"),
            "model": data.get("model"),
            "has_api_key": bool(data.get("api_key")),
            "config_file_permissions": oct(self.config_file.stat().st_mode)[-3:]
            if config_exists
            else None,
        }


def _parse_provider(name: str) -> ProviderIdentity:
    key = name.strip().lower()
    if key in _PROVIDER_ALIASES:
        return _PROVIDER_ALIASES[key]
    try:
        return ProviderIdentity(key)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown provider '{name}'. Expected one of: "
            f"{', '.join(p.value for p in ProviderIdentity)}"
        ) from e
