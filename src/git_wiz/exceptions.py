"""Exception hierarchy for git-wiz.

Every error carries the process exit code the CLI uses when the error ends a
run, so callers can map failures without isinstance ladders.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes for the git-wiz CLI."""

    OK = 0
    ABORTED = 1
    CONFIGURATION = 2
    DIFF_ACQUISITION = 3
    AUTH = 4
    RATE_LIMIT = 5
    NETWORK = 6
    TIMEOUT = 7
    PROVIDER = 8
    MALFORMED_RESPONSE = 9
    COMMIT_FAILED = 10
    INTERRUPTED = 130


class GitWizError(Exception):
    """Base exception for git-wiz errors."""

    exit_code: ExitCode = ExitCode.ABORTED


# Configuration


class ConfigurationError(GitWizError):
    """Raised when the provider setup is missing or invalid."""

    exit_code = ExitCode.CONFIGURATION


class NotConfigured(ConfigurationError):
    """Raised when no provider or API key has been set up yet."""


# Diff acquisition


class DiffAcquisitionError(GitWizError):
    """Raised when the staged changes cannot be collected."""

    exit_code = ExitCode.DIFF_ACQUISITION


class NoStagedChanges(DiffAcquisitionError):
    """Raised when nothing is staged for commit."""

    def __init__(
        self, message: str = "No staged changes found. Did you forget to 'git add'?"
    ) -> None:
        super().__init__(message)


class RepositoryError(DiffAcquisitionError):
    """Raised when the working tree cannot be inspected or committed to."""


# Provider transport


class ProviderTransportError(GitWizError):
    """Base class for failures of a single provider call."""

    retryable: bool = False

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class AuthError(ProviderTransportError):
    """Raised when the vendor rejects the credential (401/403-class)."""

    exit_code = ExitCode.AUTH

    def __str__(self) -> str:
        return f"{super().__str__()}\nRun 'git-wiz --config' to update your API key."


class RateLimitError(ProviderTransportError):
    """Raised when the vendor signals backpressure."""

    exit_code = ExitCode.RATE_LIMIT
    retryable = True

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.retry_after = retry_after


class NetworkError(ProviderTransportError):
    """Raised when the vendor cannot be reached."""

    exit_code = ExitCode.NETWORK
    retryable = True


class ProviderTimeout(ProviderTransportError):
    """Raised when a call exceeds its wall-clock timeout."""

    exit_code = ExitCode.TIMEOUT
    retryable = True


class ProviderError(ProviderTransportError):
    """Raised on an unexpected status or a malformed response envelope."""

    exit_code = ExitCode.PROVIDER

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code


# Response format


class ResponseFormatError(GitWizError):
    """Base class for model replies that cannot be used."""

    exit_code = ExitCode.MALFORMED_RESPONSE


class MalformedResponse(ResponseFormatError):
    """Raised when a reply cannot be coerced into a commit message."""

    def __init__(self, message: str, reply_text: str = "") -> None:
        super().__init__(message)
        self.reply_text = reply_text


class SessionError(GitWizError):
    """Raised on an illegal regeneration session transition."""
