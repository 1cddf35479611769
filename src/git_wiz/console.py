"""Terminal rendering and interactive decisions for git-wiz."""

import logging

import click
import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text

from git_wiz.exceptions import GitWizError
from git_wiz.models import CommitMessage, DiffPayload
from git_wiz.session import Decision

logger = logging.getLogger(__name__)

console = Console()

_DECISION_KEYS = {
    "c": Decision.ACCEPT,
    "e": Decision.EDIT,
    "r": Decision.REGENERATE,
    "q": Decision.ABORT,
}


def print_banner() -> None:
    console.print(
        Panel.fit(
            "[bold magenta]GIT WIZ[/bold magenta]\n"
            "[dim]Conventional Commits messages from your staged changes[/dim]"
        )
    )


def print_diff_summary(diff: DiffPayload, console: Console = console) -> None:
    """Print the staged file list with insertion/deletion counts."""
    summary = diff.summary()
    console.print(
        f"[white]Staged:[/white] [cyan]{summary.files_changed}[/cyan] files, "
        f"[green]+{summary.insertions}[/green] [red]-{summary.deletions}[/red] "
        f"[dim]({summary.bytes} bytes)[/dim]"
    )
    for change in diff.files:
        console.print(
            f"  [dim]•[/dim] {change.label} "
            f"[green]+{change.insertions}[/green] [red]-{change.deletions}[/red]",
            highlight=False,
        )


def print_commit_preview(message: CommitMessage, console: Console = console) -> None:
    """Show a candidate message in a panel."""
    body = Text(message.to_text(), style="cyan")
    title = "Generated Commit Message"
    if message.is_breaking:
        title += " [bold red](breaking)[/bold red]"
    console.print()
    console.print(Panel(body, title=title, title_align="left", border_style="dim"))


def print_error(error: GitWizError | str, console: Console = console) -> None:
    console.print(f"[red]✗[/red] {error}", highlight=False)


def print_diff(diff: DiffPayload, console: Console = console) -> None:
    """Print the staged diff that will be sent to the model."""
    console.print()
    for change in diff.files:
        if change.hunk:
            console.print(change.hunk, markup=False, highlight=False)
        else:
            console.print(f"[dim]{change.label}: no textual diff[/dim]", highlight=False)
    console.print()


def confirm_preflight(diff: DiffPayload, console: Console = console) -> bool:
    """Ask before spending a model call; the diff can be previewed first.

    Returns:
        True to proceed, False to cancel
    """
    while True:
        choice = Prompt.ask(
            "[cyan]Before calling the model: \\[p]roceed, \\[v]iew diff or \\[c]ancel?[/cyan]",
            choices=["p", "v", "c"],
            default="p",
            console=console,
        )
        if choice == "v":
            print_diff(diff, console)
            continue
        return choice == "p"


class TerminalDecisions:
    """DecisionMaker backed by rich prompts and the user's $EDITOR."""

    def __init__(self, console: Console = console) -> None:
        self.console = console

    def decide(self, candidate: CommitMessage, attempt: int) -> Decision:
        print_commit_preview(candidate, self.console)
        choice = Prompt.ask(
            "[cyan]\\[c]ommit, \\[e]dit, \\[r]egenerate or \\[q]uit?[/cyan]",
            choices=list(_DECISION_KEYS),
            default="c",
            console=self.console,
        )
        return _DECISION_KEYS[choice]

    def edit(self, candidate: CommitMessage) -> str | None:
        try:
            edited = typer.edit(candidate.to_text() + "\n")
        except click.ClickException as e:
            logger.debug(f"External editor unavailable: {e}")
            header = Prompt.ask(
                "[cyan]Edit commit message header[/cyan]",
                default=candidate.header,
                console=self.console,
            )
            if header == candidate.header:
                return None
            return "\n\n".join([header, *candidate.to_text().split("\n\n")[1:]])

        if edited is None:
            self.console.print("[dim]Message unchanged[/dim]")
        return edited

    def on_failure(self, error: GitWizError, attempt: int) -> Decision:
        print_error(error, self.console)
        if Confirm.ask("Try again?", default=True, console=self.console):
            return Decision.REGENERATE
        return Decision.ABORT

    def on_commit_failure(self, message: CommitMessage) -> Decision:
        """Choose what to do after ``git commit`` rejected ``message``.

        ACCEPT retries the commit with the same message.
        """
        print_commit_preview(message, self.console)
        choice = Prompt.ask(
            "[cyan]\\[c]ommit again, \\[e]dit, \\[r]egenerate or \\[q]uit?[/cyan]",
            choices=list(_DECISION_KEYS),
            default="e",
            console=self.console,
        )
        return _DECISION_KEYS[choice]

    def notify(self, message: str) -> None:
        self.console.print(f"[blue]→[/blue] {message}")
