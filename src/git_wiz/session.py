"""Regeneration session: generate, review, edit, regenerate, accept or abort.

The session owns one staged diff and drives candidate commit messages through
an explicit phase machine. Each generation is a numbered attempt; only the
result of the most recently started attempt is ever applied.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from git_wiz.ai.client import ProviderClient
from git_wiz.ai.mock import MockClient
from git_wiz.ai.prompt import PromptBuilder
from git_wiz.ai.retry import RetryingClient
from git_wiz.ai.validator import ResponseValidator
from git_wiz.exceptions import (
    AuthError,
    ConfigurationError,
    ExitCode,
    GitWizError,
    MalformedResponse,
    NoStagedChanges,
    ProviderTransportError,
    ResponseFormatError,
    SessionError,
)
from git_wiz.models import CommitMessage, DiffPayload, ProviderConfig, ProviderIdentity

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Lifecycle phases of a regeneration session."""

    IDLE = "idle"
    GENERATING = "generating"
    AWAITING_DECISION = "awaiting_decision"
    EDITING = "editing"
    REGENERATING = "regenerating"
    ACCEPTED = "accepted"
    ABORTED = "aborted"


TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.IDLE: frozenset({Phase.GENERATING}),
    Phase.GENERATING: frozenset(
        {Phase.AWAITING_DECISION, Phase.REGENERATING, Phase.ABORTED}
    ),
    Phase.AWAITING_DECISION: frozenset(
        {Phase.ACCEPTED, Phase.EDITING, Phase.REGENERATING, Phase.ABORTED}
    ),
    Phase.EDITING: frozenset({Phase.ACCEPTED, Phase.AWAITING_DECISION}),
    Phase.REGENERATING: frozenset({Phase.GENERATING}),
    Phase.ACCEPTED: frozenset(),
    Phase.ABORTED: frozenset(),
}

TERMINAL_PHASES = frozenset({Phase.ACCEPTED, Phase.ABORTED})

# Failures a regenerate cannot fix
_FATAL_ERRORS = (AuthError, ConfigurationError)


class Decision(str, Enum):
    """What the user chose to do with a candidate (or a failure)."""

    ACCEPT = "accept"
    EDIT = "edit"
    REGENERATE = "regenerate"
    ABORT = "abort"


class DecisionMaker(Protocol):
    """The interactive side of a session (terminal prompts, or a test double)."""

    def decide(self, candidate: CommitMessage, attempt: int) -> Decision:
        """Choose what to do with a freshly generated candidate."""
        ...

    def edit(self, candidate: CommitMessage) -> str | None:
        """Return the edited message text, or None to cancel the edit."""
        ...

    def on_failure(self, error: GitWizError, attempt: int) -> Decision:
        """Choose REGENERATE or ABORT after a failed attempt."""
        ...

    def notify(self, message: str) -> None:
        """Show an informational message."""
        ...


@dataclass
class SessionState:
    provider: ProviderIdentity
    phase: Phase = Phase.IDLE
    attempt: int = 0
    candidate: CommitMessage | None = None
    error: GitWizError | None = None
    # Failed attempts (transport or malformed replies), for diagnostics
    failures: int = 0


@dataclass
class SessionOutcome:
    """Final result of ``RegenerationSession.run``."""

    phase: Phase
    message: CommitMessage | None = None
    error: GitWizError | None = None
    attempts: int = 0
    failures: int = 0
    provider: ProviderIdentity | None = None

    @property
    def accepted(self) -> bool:
        return self.phase == Phase.ACCEPTED and self.message is not None

    @property
    def exit_code(self) -> ExitCode:
        if self.accepted:
            return ExitCode.OK
        if self.error is not None:
            return self.error.exit_code
        return ExitCode.ABORTED


class RegenerationSession:
    """Drives candidate commit messages for one staged diff."""

    def __init__(
        self,
        diff: DiffPayload,
        config: ProviderConfig,
        client: ProviderClient | RetryingClient | MockClient,
        builder: PromptBuilder,
        validator: ResponseValidator | None = None,
        decisions: DecisionMaker | None = None,
        hint: str | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            diff: Staged changes, fixed for the lifetime of the session
            config: Provider configuration snapshot
            client: Provider client (usually wrapped in a RetryingClient)
            builder: Prompt builder holding the per-provider budgets
            validator: Reply validator
            decisions: Interactive decision maker, required by ``run``
            hint: Optional user context added to every prompt
        """
        self.diff = diff
        self.config = config
        self.client = client
        self.builder = builder
        self.validator = validator or ResponseValidator()
        self.decisions = decisions
        self.hint = hint
        self.state = SessionState(provider=config.provider)
        self._task: asyncio.Task[CommitMessage] | None = None

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def candidate(self) -> CommitMessage | None:
        return self.state.candidate

    @property
    def attempt(self) -> int:
        return self.state.attempt

    @property
    def finished(self) -> bool:
        return self.state.phase in TERMINAL_PHASES

    def _transition(self, to: Phase) -> None:
        current = self.state.phase
        if to not in TRANSITIONS[current]:
            raise SessionError(
                f"Illegal session transition: {current.value} -> {to.value}"
            )
        logger.debug(f"Session phase {current.value} -> {to.value}")
        self.state.phase = to

    async def start(self) -> CommitMessage | None:
        """Launch the first attempt.

        Returns:
            The candidate, or None if the attempt was superseded

        Raises:
            NoStagedChanges: If the diff is empty (no provider call is made)
            ProviderTransportError: If the provider call failed after retries
            MalformedResponse: If the reply could not be validated
        """
        if self.diff.is_empty:
            raise NoStagedChanges()
        self._transition(Phase.GENERATING)
        return await self._generate()

    async def regenerate(self) -> CommitMessage | None:
        """Discard the current candidate (or failure) and start a new attempt."""
        self._transition(Phase.REGENERATING)
        self._transition(Phase.GENERATING)
        return await self._generate()

    def accept(self) -> CommitMessage:
        """Accept the current candidate."""
        if self.state.candidate is None:
            raise SessionError("No candidate to accept")
        self._transition(Phase.ACCEPTED)
        logger.info(f"Accepted commit message: {self.state.candidate.header}")
        return self.state.candidate

    def begin_edit(self) -> CommitMessage:
        if self.state.candidate is None:
            raise SessionError("No candidate to edit")
        self._transition(Phase.EDITING)
        return self.state.candidate

    def cancel_edit(self) -> None:
        self._transition(Phase.AWAITING_DECISION)

    def edit(self, text: str, accept: bool = False) -> CommitMessage:
        """Replace the candidate with user-edited text.

        On success the session returns to AwaitingDecision (or goes straight to
        Accepted when ``accept`` is set). A rejected edit returns to
        AwaitingDecision with the previous candidate and re-raises.

        Raises:
            MalformedResponse: If the edited text breaks a message invariant
        """
        if self.state.phase == Phase.EDITING and self.state.candidate is not None:
            current = self.state.candidate
        else:
            current = self.begin_edit()

        try:
            edited = self.validator.validate_edit(current, text)
        except MalformedResponse:
            self._transition(Phase.AWAITING_DECISION)
            raise

        self.state.candidate = edited
        logger.info(f"Edited commit message: {edited.header}")
        if accept:
            self._transition(Phase.ACCEPTED)
        else:
            self._transition(Phase.AWAITING_DECISION)
        return edited

    def abort(self) -> None:
        """Abort the session, cancelling any in-flight attempt."""
        self._cancel_in_flight()
        self._transition(Phase.ABORTED)
        logger.info("Session aborted")

    async def _generate(self) -> CommitMessage | None:
        self._cancel_in_flight()
        self.state.attempt += 1
        attempt = self.state.attempt
        self.state.candidate = None
        self.state.error = None

        task = asyncio.create_task(self._run_attempt(attempt))
        self._task = task
        try:
            candidate = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self.is_current(attempt):
                logger.info(f"Attempt {attempt} was superseded by attempt {self.state.attempt}")
                return None
            raise
        except (ProviderTransportError, ResponseFormatError) as error:
            if not self.is_current(attempt):
                logger.info(f"Discarding failure of stale attempt {attempt}: {error}")
                return None
            self.state.error = error
            self.state.failures += 1
            raise
        finally:
            if self._task is task:
                self._task = None

        return self.apply_result(attempt, candidate)

    async def _run_attempt(self, attempt: int) -> CommitMessage:
        prompt = self.builder.build(self.diff, self.config.provider, self.hint)
        logger.info(
            f"Attempt {attempt}: requesting commit message from "
            f"{self.config.provider.value} ({self.config.model})"
            + (" with truncated context" if prompt.truncated else "")
        )
        reply = await self.client.generate(prompt, self.config)
        return self.validator.validate(reply)

    def is_current(self, attempt: int) -> bool:
        return attempt == self.state.attempt

    def apply_result(self, attempt: int, candidate: CommitMessage) -> CommitMessage | None:
        """Install ``candidate`` if it belongs to the most recent attempt."""
        if not self.is_current(attempt) or self.state.phase != Phase.GENERATING:
            logger.info(
                f"Discarding stale result from attempt {attempt} "
                f"(current attempt {self.state.attempt})"
            )
            return None
        self.state.candidate = candidate
        self._transition(Phase.AWAITING_DECISION)
        return candidate

    def _cancel_in_flight(self) -> None:
        if self._task is not None and not self._task.done():
            logger.info(f"Cancelling in-flight attempt {self.state.attempt}")
            self._task.cancel()

    async def run(self) -> SessionOutcome:
        """Drive the session to Accepted or Aborted using ``decisions``.

        Raises:
            NoStagedChanges: If the diff is empty
        """
        if self.decisions is None:
            raise SessionError("A decision maker is required to run a session")
        decisions = self.decisions

        generate = self.start
        while True:
            try:
                candidate = await generate()
            except _FATAL_ERRORS as error:
                self.state.error = error
                logger.info(f"Aborting after unrecoverable error: {error}")
                self.abort()
                return self._outcome(error)
            except (ProviderTransportError, ResponseFormatError) as error:
                logger.info(f"Attempt {self.state.attempt} failed: {error}")
                if decisions.on_failure(error, self.state.attempt) == Decision.REGENERATE:
                    generate = self.regenerate
                    continue
                self.abort()
                return self._outcome(error)

            if candidate is None:
                raise SessionError(f"Attempt {self.state.attempt} produced no result")

            while self.state.phase == Phase.AWAITING_DECISION:
                decision = decisions.decide(self.state.candidate, self.state.attempt)

                if decision == Decision.ACCEPT:
                    return self._outcome(message=self.accept())

                if decision == Decision.ABORT:
                    self.abort()
                    return self._outcome()

                if decision == Decision.REGENERATE:
                    decisions.notify("Regenerating...")
                    break

                current = self.begin_edit()
                text = decisions.edit(current)
                if text is None:
                    self.cancel_edit()
                    continue
                try:
                    edited = self.edit(text, accept=True)
                except MalformedResponse as error:
                    decisions.notify(f"Edit rejected: {error}")
                    continue
                decisions.notify("Message updated.")
                return self._outcome(message=edited)

            generate = self.regenerate

    def _outcome(
        self,
        error: GitWizError | None = None,
        message: CommitMessage | None = None,
    ) -> SessionOutcome:
        return SessionOutcome(
            phase=self.state.phase,
            message=message,
            error=error,
            attempts=self.state.attempt,
            failures=self.state.failures,
            provider=self.state.provider,
        )
