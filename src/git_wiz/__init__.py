"""git-wiz - Conventional Commits messages for staged changes, written by an LLM.

Library API:

    from git_wiz import GitRepository, Config, RegenerationSession

    diff = GitRepository().get_staged_diff()
    provider_config = Config().load_provider_config()

The ``git-wiz`` command wires these together with interactive review.
"""

__version__ = "0.1.0"

from git_wiz.config import Config
from git_wiz.exceptions import (
    AuthError,
    ConfigurationError,
    DiffAcquisitionError,
    ExitCode,
    GitWizError,
    MalformedResponse,
    NetworkError,
    NoStagedChanges,
    NotConfigured,
    ProviderError,
    ProviderTimeout,
    ProviderTransportError,
    RateLimitError,
    RepositoryError,
    ResponseFormatError,
    SessionError,
)
from git_wiz.git import GitRepository
from git_wiz.models import (
    CommitMessage,
    DiffPayload,
    FileChange,
    Prompt,
    ProviderConfig,
    ProviderIdentity,
    RawModelReply,
)
from git_wiz.session import (
    Decision,
    DecisionMaker,
    Phase,
    RegenerationSession,
    SessionOutcome,
)

__all__ = [
    # Core API
    "GitRepository",
    "Config",
    "RegenerationSession",
    "Decision",
    "DecisionMaker",
    "Phase",
    "SessionOutcome",
    # Models
    "CommitMessage",
    "DiffPayload",
    "FileChange",
    "Prompt",
    "ProviderConfig",
    "ProviderIdentity",
    "RawModelReply",
    # Exceptions
    "GitWizError",
    "ConfigurationError",
    "NotConfigured",
    "DiffAcquisitionError",
    "NoStagedChanges",
    "RepositoryError",
    "ProviderTransportError",
    "AuthError",
    "RateLimitError",
    "NetworkError",
    "ProviderTimeout",
    "ProviderError",
    "ResponseFormatError",
    "MalformedResponse",
    "SessionError",
    "ExitCode",
    # Metadata
    "__version__",
]
