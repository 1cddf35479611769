"""Pydantic models for diffs, prompts, provider settings and commit messages."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator

# Conventional Commits vocabulary - single source of truth for the prompt,
# the validator and the CommitMessage invariant.
COMMIT_TYPES: dict[str, str] = {
    "feat": "A new feature or capability",
    "fix": "A bug fix",
    "docs": "Documentation only changes",
    "style": "Formatting, whitespace, no code change",
    "refactor": "Code restructuring without behavior change",
    "perf": "Performance improvement",
    "test": "Adding or updating tests",
    "build": "Build system or external dependency changes",
    "ci": "CI/CD configuration changes",
    "chore": "Maintenance tasks, dependencies, tooling",
    "revert": "Reverts a previous commit",
}

SUBJECT_MAX_LENGTH = 72

# Characters models like to leave at the end of a subject line
SUBJECT_TRAILING_NOISE = ".,;:!"

_WHITESPACE_RE = re.compile(r"\s+")


class ChangeKind(str, Enum):
    """How a file changed in the staged diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class FileChange(BaseModel):
    """A single file's staged change."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: ChangeKind = ChangeKind.MODIFIED
    hunk: str = ""
    old_path: str | None = None

    @property
    def insertions(self) -> int:
        return sum(
            1
            for line in self.hunk.splitlines()
            if line.startswith("+") and not line.startswith("+++")
        )

    @property
    def deletions(self) -> int:
        return sum(
            1
            for line in self.hunk.splitlines()
            if line.startswith("-") and not line.startswith("---")
        )

    @property
    def label(self) -> str:
        """One-line description used in file summaries."""
        if self.kind == ChangeKind.RENAMED and self.old_path:
            return f"{self.old_path} -> {self.path} ({self.kind.value})"
        return f"{self.path} ({self.kind.value})"


class DiffSummary(BaseModel):
    """Aggregate numbers for a staged diff."""

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    bytes: int = 0


class DiffPayload(BaseModel):
    """Ordered, immutable set of staged file changes for one invocation."""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        return len(self.files) == 0

    def summary(self) -> DiffSummary:
        """Compute files/insertions/deletions/bytes for display."""
        return DiffSummary(
            files_changed=len(self.files),
            insertions=sum(f.insertions for f in self.files),
            deletions=sum(f.deletions for f in self.files),
            bytes=sum(len(f.hunk.encode("utf-8")) for f in self.files),
        )


class ProviderIdentity(str, Enum):
    """Supported LLM vendors; the dispatch tag for provider clients."""

    GEMINI = "gemini"
    CLAUDE = "claude"
    GPT = "gpt"


class Prompt(BaseModel):
    """Provider-agnostic prompt text plus the budget it was built for."""

    model_config = ConfigDict(frozen=True)

    text: str
    provider: ProviderIdentity
    max_tokens: int
    truncated: bool = False


class ProviderConfig(BaseModel):
    """Provider selection and credentials, supplied by the config store."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderIdentity
    model: str
    api_key: SecretStr
    endpoint: str | None = None
    timeout: float = 30.0
    max_output_tokens: int = 1024
    token_budget: int | None = None

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Model identifiers must be non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("model must not be empty")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v


class RawModelReply(BaseModel):
    """Unvalidated text returned by a provider call."""

    provider: ProviderIdentity
    text: str
    model: str = ""
    tokens_used: int = 0


class CommitMessage(BaseModel):
    """A structured Conventional Commits message.

    Instances are immutable; an edit produces a new, re-validated message.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    scope: str | None = None
    subject: str
    body: tuple[str, ...] = ()
    breaking: bool = False
    breaking_change: str | None = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Type must come from the fixed Conventional Commits set."""
        v = v.strip().lower()
        if v not in COMMIT_TYPES:
            raise ValueError(
                f"unknown commit type '{v}' (expected one of: {', '.join(COMMIT_TYPES)})"
            )
        return v

    @field_validator("scope")
    @classmethod
    def validate_scope(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if any(ch in v for ch in "()\n"):
            raise ValueError(f"invalid scope '{v}'")
        return v

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v: str) -> str:
        """Subject is a single non-empty line of at most 72 characters."""
        if "\n" in v.strip():
            raise ValueError("subject must be a single line")
        v = v.strip().rstrip(SUBJECT_TRAILING_NOISE).rstrip()
        if not v:
            raise ValueError("subject must not be empty")
        if len(v) > SUBJECT_MAX_LENGTH:
            raise ValueError(
                f"subject is {len(v)} characters (maximum {SUBJECT_MAX_LENGTH})"
            )
        return v

    @field_validator("breaking_change")
    @classmethod
    def validate_breaking_change(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def is_breaking(self) -> bool:
        return self.breaking or self.breaking_change is not None

    @property
    def header(self) -> str:
        """The first line, e.g. ``feat(api)!: drop v1 endpoints``."""
        scope = f"({self.scope})" if self.scope else ""
        bang = "!" if self.is_breaking else ""
        return f"{self.type}{scope}{bang}: {self.subject}"

    def to_text(self) -> str:
        """Render the full commit message text."""
        parts = [self.header]
        parts.extend(self.body)
        if self.breaking_change:
            parts.append(f"BREAKING CHANGE: {self.breaking_change}")
        return "\n\n".join(parts)


def collapse_whitespace(text: str) -> str:
    """Join lines and collapse runs of whitespace into single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()
