"""Tests for the regeneration session state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from git_wiz.ai.prompt import PromptBuilder
from git_wiz.ai.retry import RetryingClient
from git_wiz.exceptions import (
    AuthError,
    ExitCode,
    MalformedResponse,
    NoStagedChanges,
    ProviderError,
    RateLimitError,
    SessionError,
)
from git_wiz.models import CommitMessage, DiffPayload, ProviderIdentity, RawModelReply
from git_wiz.session import (
    TERMINAL_PHASES,
    TRANSITIONS,
    Decision,
    Phase,
    RegenerationSession,
)
from tests.fixtures.diffs import provider_config, small_diff

GEMINI = ProviderIdentity.GEMINI


def _reply(text: str) -> RawModelReply:
    return RawModelReply(provider=GEMINI, text=text)


class ScriptedClient:
    """Provider client double that replays replies or errors in order."""

    identity = GEMINI
    name = "Gemini"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.prompts = []

    async def generate(self, prompt, config):
        self.calls += 1
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _reply(outcome)


class SlowFirstClient:
    """First call stalls until cancelled; later calls answer immediately."""

    identity = GEMINI
    name = "Gemini"

    def __init__(self):
        self.calls = 0
        self.first_call_started = asyncio.Event()
        self.first_call_cancelled = False

    async def generate(self, prompt, config):
        self.calls += 1
        if self.calls == 1:
            self.first_call_started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                self.first_call_cancelled = True
                raise
            return _reply("feat: stale candidate")
        return _reply("fix: fresh candidate")


class ScriptedDecisions:
    """DecisionMaker double with canned answers."""

    def __init__(self, decisions=(), edits=(), failures=()):
        self.decisions = list(decisions)
        self.edits = list(edits)
        self.failures = list(failures)
        self.seen_candidates: list[CommitMessage] = []
        self.seen_errors: list[Exception] = []
        self.notifications: list[str] = []

    def decide(self, candidate, attempt):
        self.seen_candidates.append(candidate)
        return self.decisions.pop(0)

    def edit(self, candidate):
        return self.edits.pop(0)

    def on_failure(self, error, attempt):
        self.seen_errors.append(error)
        return self.failures.pop(0)

    def notify(self, message):
        self.notifications.append(message)


def _session(client, decisions=None, diff=None, hint=None) -> RegenerationSession:
    return RegenerationSession(
        diff=diff if diff is not None else small_diff(),
        config=provider_config(GEMINI),
        client=client,
        builder=PromptBuilder({GEMINI: 16000}),
        decisions=decisions,
        hint=hint,
    )


class TestTransitionTable:
    """Test the phase transition table itself."""

    def test_every_phase_has_an_entry(self):
        """Test that the table is exhaustive over phases."""
        assert set(TRANSITIONS) == set(Phase)

    def test_terminal_phases_have_no_exits(self):
        """Test that Accepted and Aborted are final."""
        for phase in TERMINAL_PHASES:
            assert TRANSITIONS[phase] == frozenset()

    def test_idle_only_starts_generating(self):
        """Test the single way out of Idle."""
        assert TRANSITIONS[Phase.IDLE] == frozenset({Phase.GENERATING})


class TestSessionOperations:
    """Test driving the session through its public operations."""

    @pytest.mark.asyncio
    async def test_start_produces_candidate(self):
        """Test that the first attempt yields a candidate awaiting a decision."""
        session = _session(ScriptedClient(["feat(cli): add --hint option"]))

        candidate = await session.start()

        assert candidate.header == "feat(cli): add --hint option"
        assert session.phase == Phase.AWAITING_DECISION
        assert session.attempt == 1
        assert session.candidate == candidate

    @pytest.mark.asyncio
    async def test_empty_diff_makes_no_provider_call(self):
        """Test that an empty diff is rejected before any provider call."""
        client = ScriptedClient(["feat: should not happen"])
        session = _session(client, diff=DiffPayload())

        with pytest.raises(NoStagedChanges):
            await session.start()

        assert client.calls == 0
        assert session.phase == Phase.IDLE

    @pytest.mark.asyncio
    async def test_hint_reaches_the_prompt(self):
        """Test that user context is part of every attempt's prompt."""
        client = ScriptedClient(["fix: close race"])
        session = _session(client, hint="closes #12")

        await session.start()

        assert "Focus on this context: closes #12" in client.prompts[0].text

    @pytest.mark.asyncio
    async def test_regenerate_replaces_candidate(self):
        """Test that regenerating discards the previous candidate."""
        session = _session(ScriptedClient(["feat: first try", "fix: second try"]))

        await session.start()
        candidate = await session.regenerate()

        assert candidate.header == "fix: second try"
        assert session.candidate == candidate
        assert session.attempt == 2

    @pytest.mark.asyncio
    async def test_same_reply_yields_equal_candidates(self):
        """Test that validation of a fixed reply is deterministic."""
        session = _session(ScriptedClient(["perf: cache diff"] * 2))

        first = await session.start()
        second = await session.regenerate()

        assert first == second

    @pytest.mark.asyncio
    async def test_accept(self):
        """Test accepting the current candidate."""
        session = _session(ScriptedClient(["docs: explain setup"]))
        await session.start()

        message = session.accept()

        assert message.header == "docs: explain setup"
        assert session.phase == Phase.ACCEPTED
        assert session.finished

    @pytest.mark.asyncio
    async def test_edit_adds_scope(self):
        """Test editing 'feat: add x' into 'feat(core): add x'."""
        session = _session(ScriptedClient(["feat: add x"]))
        await session.start()

        edited = session.edit("feat(core): add x")

        assert edited.type == "feat"
        assert edited.scope == "core"
        assert edited.subject == "add x"
        assert session.candidate == edited
        assert session.phase == Phase.AWAITING_DECISION

    @pytest.mark.asyncio
    async def test_edit_and_accept(self):
        """Test going straight from Editing to Accepted."""
        session = _session(ScriptedClient(["fix: thing"]))
        await session.start()

        session.edit("fix: handle empty config file", accept=True)

        assert session.phase == Phase.ACCEPTED
        assert session.candidate.subject == "handle empty config file"

    @pytest.mark.asyncio
    async def test_rejected_edit_returns_to_awaiting_decision(self):
        """Test that an invalid edit keeps the previous candidate."""
        session = _session(ScriptedClient(["feat: add x"]))
        original = await session.start()

        with pytest.raises(MalformedResponse):
            session.edit("z" * 100)

        assert session.phase == Phase.AWAITING_DECISION
        assert session.candidate == original

    @pytest.mark.asyncio
    async def test_failure_is_raised_and_recorded(self):
        """Test that a failed attempt stays in Generating with its error."""
        session = _session(ScriptedClient([ProviderError("boom", status_code=500)]))

        with pytest.raises(ProviderError):
            await session.start()

        assert session.phase == Phase.GENERATING
        assert isinstance(session.state.error, ProviderError)
        assert session.candidate is None

    @pytest.mark.asyncio
    async def test_abort_after_failure(self):
        """Test Generating -> Aborted."""
        session = _session(ScriptedClient([ProviderError("boom")]))
        with pytest.raises(ProviderError):
            await session.start()

        session.abort()

        assert session.phase == Phase.ABORTED


class TestIllegalTransitions:
    """Test that operations outside the table raise SessionError."""

    def test_accept_before_start(self):
        """Test accepting with no candidate."""
        session = _session(ScriptedClient([]))

        with pytest.raises(SessionError):
            session.accept()

    def test_edit_before_start(self):
        """Test that there is nothing to edit before the first candidate."""
        session = _session(ScriptedClient([]))

        with pytest.raises(SessionError, match="No candidate to edit"):
            session.edit("feat: x")

        assert session.phase == Phase.IDLE

    def test_abort_from_idle(self):
        """Test that Idle cannot be aborted directly."""
        session = _session(ScriptedClient([]))

        with pytest.raises(SessionError, match="idle -> aborted"):
            session.abort()

    @pytest.mark.asyncio
    async def test_no_transitions_after_accept(self):
        """Test that Accepted is terminal."""
        session = _session(ScriptedClient(["feat: done"]))
        await session.start()
        session.accept()

        with pytest.raises(SessionError):
            session.abort()
        with pytest.raises(SessionError):
            await session.regenerate()

    @pytest.mark.asyncio
    async def test_abort_while_editing(self):
        """Test that Editing must be left through a decision, not an abort."""
        session = _session(ScriptedClient(["feat: x"]))
        await session.start()
        session.begin_edit()

        with pytest.raises(SessionError, match="editing -> aborted"):
            session.abort()

    @pytest.mark.asyncio
    async def test_start_twice(self):
        """Test that start is only legal from Idle."""
        session = _session(ScriptedClient(["feat: x", "feat: y"]))
        await session.start()

        with pytest.raises(SessionError):
            await session.start()


class TestStaleAttempts:
    """Test that only the most recent attempt's result is applied."""

    @pytest.mark.asyncio
    async def test_slow_attempt_is_superseded(self):
        """Test a slow attempt 1 superseded by a fast attempt 2."""
        client = SlowFirstClient()
        session = _session(client)

        first = asyncio.create_task(session.start())
        await client.first_call_started.wait()

        fresh = await session.regenerate()

        assert await first is None
        assert fresh.header == "fix: fresh candidate"
        assert session.candidate.header == "fix: fresh candidate"
        assert session.phase == Phase.AWAITING_DECISION
        assert session.attempt == 2
        assert client.first_call_cancelled

    @pytest.mark.asyncio
    async def test_stale_result_is_discarded(self):
        """Test the attempt gate directly."""
        session = _session(ScriptedClient(["feat: current"]))
        current = await session.start()
        stale = CommitMessage(type="fix", subject="stale")

        assert session.apply_result(0, stale) is None
        assert session.apply_result(1, stale) is None
        assert session.candidate == current


class TestRun:
    """Test RegenerationSession.run against scripted decisions."""

    @pytest.mark.asyncio
    async def test_accept_first_candidate(self):
        """Test the happy path."""
        decisions = ScriptedDecisions(decisions=[Decision.ACCEPT])
        session = _session(ScriptedClient(["feat: add x"]), decisions)

        outcome = await session.run()

        assert outcome.accepted
        assert outcome.phase == Phase.ACCEPTED
        assert outcome.message.header == "feat: add x"
        assert outcome.attempts == 1
        assert outcome.exit_code == ExitCode.OK

    @pytest.mark.asyncio
    async def test_empty_diff(self):
        """Test that run rejects an empty diff without calling the provider."""
        client = ScriptedClient([])
        session = _session(client, ScriptedDecisions(), diff=DiffPayload())

        with pytest.raises(NoStagedChanges):
            await session.run()

        assert client.calls == 0

    @pytest.mark.asyncio
    async def test_rate_limited_then_aborted(self):
        """Test RateLimitError three times: two retries, three calls, Aborted."""
        inner = ScriptedClient([RateLimitError("429")] * 3)
        client = RetryingClient(inner, sleep=AsyncMock())
        decisions = ScriptedDecisions(failures=[Decision.ABORT])
        session = _session(client, decisions)

        outcome = await session.run()

        assert inner.calls == 3
        assert outcome.phase == Phase.ABORTED
        assert outcome.message is None
        assert isinstance(outcome.error, RateLimitError)
        assert outcome.exit_code == ExitCode.RATE_LIMIT
        assert len(decisions.seen_errors) == 1

    @pytest.mark.asyncio
    async def test_regenerate_after_failure(self):
        """Test Generating -> Regenerating after a reported failure."""
        client = ScriptedClient([ProviderError("boom", status_code=500), "fix: works"])
        decisions = ScriptedDecisions(
            decisions=[Decision.ACCEPT], failures=[Decision.REGENERATE]
        )

        outcome = await _session(client, decisions).run()

        assert outcome.accepted
        assert outcome.message.header == "fix: works"
        assert outcome.attempts == 2
        assert isinstance(decisions.seen_errors[0], ProviderError)

    @pytest.mark.asyncio
    async def test_failures_are_counted(self):
        """Test that failed attempts, including malformed replies, are counted."""
        client = ScriptedClient([ProviderError("boom"), "no type here", "fix: works"])
        decisions = ScriptedDecisions(
            decisions=[Decision.ACCEPT], failures=[Decision.REGENERATE, Decision.REGENERATE]
        )
        session = _session(client, decisions)

        outcome = await session.run()

        assert outcome.accepted
        assert outcome.attempts == 3
        assert outcome.failures == 2
        assert outcome.provider == GEMINI
        assert session.state.failures == 2
        assert session.state.provider == GEMINI

    @pytest.mark.asyncio
    async def test_auth_error_aborts_without_offering_regenerate(self):
        """Test that credential failures abort immediately."""
        decisions = ScriptedDecisions()
        session = _session(ScriptedClient([AuthError("401")]), decisions)

        outcome = await session.run()

        assert outcome.phase == Phase.ABORTED
        assert isinstance(outcome.error, AuthError)
        assert outcome.exit_code == ExitCode.AUTH
        assert decisions.seen_errors == []

    @pytest.mark.asyncio
    async def test_malformed_reply_is_reported(self):
        """Test that an unusable reply goes through on_failure."""
        decisions = ScriptedDecisions(failures=[Decision.ABORT])
        session = _session(ScriptedClient(["not a commit message"]), decisions)

        outcome = await session.run()

        assert isinstance(outcome.error, MalformedResponse)
        assert outcome.exit_code == ExitCode.MALFORMED_RESPONSE

    @pytest.mark.asyncio
    async def test_regenerate_decision(self):
        """Test that regenerating asks the provider again."""
        client = ScriptedClient(["feat: first", "fix: second"])
        decisions = ScriptedDecisions(decisions=[Decision.REGENERATE, Decision.ACCEPT])

        outcome = await _session(client, decisions).run()

        assert outcome.message.header == "fix: second"
        assert client.calls == 2
        assert [c.header for c in decisions.seen_candidates] == ["feat: first", "fix: second"]

    @pytest.mark.asyncio
    async def test_edit_then_accept(self):
        """Test that a valid edit becomes the final message."""
        decisions = ScriptedDecisions(decisions=[Decision.EDIT], edits=["feat(core): add x"])

        outcome = await _session(ScriptedClient(["feat: add x"]), decisions).run()

        assert outcome.accepted
        assert outcome.phase == Phase.ACCEPTED
        assert outcome.message.type == "feat"
        assert outcome.message.scope == "core"
        assert outcome.message.subject == "add x"
        assert len(decisions.seen_candidates) == 1
        assert "Message updated." in decisions.notifications

    @pytest.mark.asyncio
    async def test_rejected_edit_is_reported(self):
        """Test that a bad edit is reported and the user can decide again."""
        decisions = ScriptedDecisions(
            decisions=[Decision.EDIT, Decision.ABORT], edits=["q" * 90]
        )

        outcome = await _session(ScriptedClient(["feat: add x"]), decisions).run()

        assert outcome.phase == Phase.ABORTED
        assert outcome.error is None
        assert outcome.exit_code == ExitCode.ABORTED
        assert any(n.startswith("Edit rejected:") for n in decisions.notifications)
        assert [c.header for c in decisions.seen_candidates] == ["feat: add x"] * 2

    @pytest.mark.asyncio
    async def test_cancelled_edit_keeps_candidate(self):
        """Test that closing the editor without changes keeps the candidate."""
        decisions = ScriptedDecisions(
            decisions=[Decision.EDIT, Decision.ACCEPT], edits=[None]
        )

        outcome = await _session(ScriptedClient(["chore: tidy"]), decisions).run()

        assert outcome.message.header == "chore: tidy"

    @pytest.mark.asyncio
    async def test_run_requires_decision_maker(self):
        """Test that run cannot proceed without a decision maker."""
        with pytest.raises(SessionError):
            await _session(ScriptedClient(["feat: x"])).run()
