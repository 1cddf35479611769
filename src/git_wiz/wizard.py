"""Interactive first-run setup: provider, API key and model."""

import logging

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from git_wiz.ai.catalog import ProviderInfo
from git_wiz.config import Config
from git_wiz.console import console as default_console
from git_wiz.exceptions import ConfigurationError
from git_wiz.models import ProviderConfig

logger = logging.getLogger(__name__)


def run_setup(config_store: Config, console: Console = default_console) -> ProviderConfig:
    """Ask for provider, API key and model, then save the configuration.

    Returns:
        The saved ProviderConfig

    Raises:
        ConfigurationError: If the catalog has no providers or the answers are invalid
    """
    providers = config_store.catalog.providers()
    if not providers:
        raise ConfigurationError("No providers available in the provider catalog")

    console.print("[cyan]Welcome![/cyan] Let's set up git-wiz with a few simple questions.\n")

    provider = _select_provider(providers, console)
    api_key = _ask_api_key(provider, console)
    model = _select_model(provider, console)

    try:
        config = ProviderConfig(
            provider=provider.identity,
            model=model,
            api_key=api_key,
            timeout=provider.timeout,
            max_output_tokens=provider.max_output_tokens,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid setup answers: {e}") from e

    config_store.save_provider_config(config)
    logger.info(f"Setup complete for {provider.identity.value} ({model})")

    console.print(
        Panel(
            "1. Stage your changes:   [cyan]git add <files>[/cyan]\n"
            "2. Run the wizard:       [cyan]git-wiz[/cyan]\n"
            "3. Review & commit:      [cyan]follow the prompts[/cyan]",
            title="Quick Start",
            border_style="green",
        )
    )
    return config


def _select_provider(providers: list[ProviderInfo], console: Console) -> ProviderInfo:
    table = Table(title="AI Providers", show_header=True, header_style="bold magenta")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Provider", style="green")
    table.add_column("Default model", style="dim")
    for index, info in enumerate(providers, start=1):
        table.add_row(str(index), info.display_name, info.default_model)
    console.print(table)

    choice = Prompt.ask(
        "[cyan]Select your AI provider[/cyan]",
        choices=[str(i) for i in range(1, len(providers) + 1)],
        default="1",
        console=console,
    )
    return providers[int(choice) - 1]


def _ask_api_key(provider: ProviderInfo, console: Console) -> str:
    env_key = provider.api_key_from_env()
    prompt = f"[cyan]Enter your {provider.display_name} API key[/cyan]"
    if env_key:
        console.print(
            f"[dim]Found a key in {' / '.join(provider.api_key_env)}; "
            "leave blank to keep using it.[/dim]"
        )

    while True:
        api_key = Prompt.ask(prompt, password=True, default="", show_default=False, console=console)
        api_key = api_key.strip()
        if api_key:
            return api_key
        if env_key:
            return env_key
        console.print("[red]An API key is required.[/red]")


def _select_model(provider: ProviderInfo, console: Console) -> str:
    names = [m.name for m in provider.models]
    if provider.default_model not in names:
        names.insert(0, provider.default_model)

    table = Table(
        title=f"{provider.display_name} Models", show_header=True, header_style="bold magenta"
    )
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Model", style="green")
    table.add_column("Description", style="dim")
    descriptions = {m.name: m.description for m in provider.models}
    for index, name in enumerate(names, start=1):
        table.add_row(str(index), name, descriptions.get(name, ""))
    table.add_row(str(len(names) + 1), "Other...", "Enter a custom model name")
    console.print(table)

    default_index = names.index(provider.default_model) + 1
    choice = Prompt.ask(
        f"[cyan]Select {provider.display_name} model[/cyan]",
        choices=[str(i) for i in range(1, len(names) + 2)],
        default=str(default_index),
        console=console,
    )
    index = int(choice) - 1
    if index < len(names):
        return names[index]

    custom = ""
    while not custom:
        custom = Prompt.ask("[cyan]Enter custom model name[/cyan]", console=console).strip()
    return custom
