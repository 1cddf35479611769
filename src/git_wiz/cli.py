"""Command-line interface for git-wiz."""

import asyncio
import logging
import sys

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm

from git_wiz.ai import (
    MockClient,
    PromptBuilder,
    ProviderCatalog,
    ResponseValidator,
    RetryingClient,
    get_client,
)
from git_wiz.config import Config
from git_wiz.console import (
    TerminalDecisions,
    confirm_preflight,
    console,
    print_banner,
    print_diff_summary,
    print_error,
)
from git_wiz.exceptions import (
    ConfigurationError,
    ExitCode,
    GitWizError,
    MalformedResponse,
    NotConfigured,
    RepositoryError,
)
from git_wiz.git import GitRepository
from git_wiz.models import CommitMessage, DiffPayload, ProviderConfig, ProviderIdentity
from git_wiz.session import Decision, DecisionMaker, RegenerationSession, SessionOutcome
from git_wiz.wizard import run_setup

app = typer.Typer(
    name="git-wiz",
    help="Generate Conventional Commits messages for your staged changes with an LLM",
    add_completion=False,
)

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_path=verbose,
                rich_tracebacks=verbose,
            )
        ],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


def _version_callback(value: bool) -> None:
    if value:
        from git_wiz import __version__

        console.print(f"git-wiz {__version__}")
        raise typer.Exit()


def _is_interactive() -> bool:
    return sys.stdin.isatty()


def _load_or_setup(config_store: Config) -> ProviderConfig:
    """Load the provider configuration, offering first-run setup when missing."""
    try:
        return config_store.load_provider_config()
    except NotConfigured as e:
        if not _is_interactive():
            raise
        console.print(f"[yellow]{e}[/yellow]")
        if not Confirm.ask("Would you like to set up git-wiz now?", default=True):
            raise
        return run_setup(config_store)


def _mock_provider_config() -> ProviderConfig:
    # Only the provider's prompt budget is used; no key is sent anywhere
    return ProviderConfig(
        provider=ProviderIdentity.GEMINI, model=MockClient.model, api_key="mock"
    )


def build_session(
    diff: DiffPayload,
    provider_config: ProviderConfig,
    catalog: ProviderCatalog,
    decisions: DecisionMaker,
    hint: str | None = None,
    mock: bool = False,
) -> RegenerationSession:
    """Wire the prompt builder, client and validator into a session.

    With ``mock`` the session uses the offline MockClient instead of the
    configured provider.
    """
    budgets = catalog.token_budgets()
    if provider_config.token_budget:
        budgets[provider_config.provider] = provider_config.token_budget

    try:
        builder = PromptBuilder(budgets)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    if mock:
        client = MockClient(hint=hint)
    else:
        client = RetryingClient(get_client(provider_config.provider, catalog=catalog))
    return RegenerationSession(
        diff=diff,
        config=provider_config,
        client=client,
        builder=builder,
        validator=ResponseValidator(),
        decisions=decisions,
        hint=hint,
    )


async def _run_session(session: RegenerationSession) -> SessionOutcome:
    return await session.run()


def _commit_with_recovery(
    repository: GitRepository,
    message: CommitMessage,
    decisions: TerminalDecisions,
    new_session,
) -> str:
    """Commit ``message``, letting the user retry, edit or regenerate on failure.

    Args:
        new_session: Callable returning a fresh RegenerationSession

    Raises:
        RepositoryError: If the commit failed and the user gave up
        typer.Exit: If a regeneration ended without an accepted message
    """
    validator = ResponseValidator()
    while True:
        try:
            return repository.commit(message.to_text())
        except RepositoryError as e:
            print_error(f"Commit failed: {e}")
            if not _is_interactive():
                raise
            choice = decisions.on_commit_failure(message)
            if choice == Decision.ABORT:
                raise

        if choice == Decision.EDIT:
            text = decisions.edit(message)
            if text is None:
                continue
            try:
                message = validator.validate_edit(message, text)
            except MalformedResponse as e:
                print_error(f"Edit rejected: {e}")
        elif choice == Decision.REGENERATE:
            decisions.notify("Regenerating...")
            outcome = asyncio.run(_run_session(new_session()))
            if not outcome.accepted or outcome.message is None:
                if outcome.error is None:
                    console.print("[yellow]Aborted. Nothing was committed.[/yellow]")
                raise typer.Exit(int(outcome.exit_code))
            message = outcome.message


@app.command()
def main(
    config: bool = typer.Option(
        False, "--config", help="Run the setup wizard (provider, API key, model) and exit"
    ),
    hint: str | None = typer.Option(
        None,
        "--hint",
        "-H",
        help="Extra context for the model, e.g. 'this fixes the login race'",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print the accepted message instead of committing"
    ),
    mock: bool = typer.Option(
        False, "--mock", help="Use an offline mock provider (no API calls, no API key)"
    ),
    preflight: bool = typer.Option(
        False,
        "--preflight",
        "-p",
        help="Ask before calling the model, with an option to preview the diff",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Generate a commit message for the staged changes, review it, then commit."""
    _configure_logging(verbose)
    config_store = Config()

    if config:
        try:
            run_setup(config_store)
        except GitWizError as e:
            print_error(e)
            raise typer.Exit(int(e.exit_code))
        except KeyboardInterrupt:
            console.print("\n[yellow]Setup cancelled by user[/yellow]")
            raise typer.Exit(int(ExitCode.INTERRUPTED))
        return

    repository = GitRepository()
    decisions = TerminalDecisions(console)
    try:
        provider_config = _mock_provider_config() if mock else _load_or_setup(config_store)
        diff = repository.get_staged_diff()

        print_banner()
        print_diff_summary(diff)
        if preflight and not confirm_preflight(diff):
            console.print("[yellow]Cancelled. Nothing was committed.[/yellow]")
            raise typer.Exit(int(ExitCode.ABORTED))

        if mock:
            console.print("[dim]Generating with the offline mock provider...[/dim]")
        else:
            console.print(
                f"[dim]Generating with {provider_config.provider.value} "
                f"({provider_config.model})...[/dim]"
            )

        def new_session() -> RegenerationSession:
            return build_session(
                diff, provider_config, config_store.catalog, decisions, hint, mock=mock
            )

        outcome = asyncio.run(_run_session(new_session()))

        if not outcome.accepted or outcome.message is None:
            if outcome.error is None:
                console.print("[yellow]Aborted. Nothing was committed.[/yellow]")
            raise typer.Exit(int(outcome.exit_code))

        message = outcome.message
        if dry_run:
            console.print("[dim]Dry run, not committing. Accepted message:[/dim]")
            console.print(message.to_text(), highlight=False, markup=False)
            return

        try:
            output = _commit_with_recovery(repository, message, decisions, new_session)
        except RepositoryError:
            console.print("[dim]Your message was not committed:[/dim]")
            console.print(message.to_text(), highlight=False, markup=False)
            raise typer.Exit(int(ExitCode.COMMIT_FAILED))
    except GitWizError as e:
        print_error(e)
        raise typer.Exit(int(e.exit_code))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        raise typer.Exit(int(ExitCode.INTERRUPTED))

    console.print("[green]✓[/green] Changes committed successfully!")
    if output:
        console.print(f"[dim]{output}[/dim]", highlight=False)


if __name__ == "__main__":
    app()
