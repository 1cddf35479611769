"""Turn raw model replies (and user edits) into validated CommitMessages."""

import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from git_wiz.ai.client import clean_response
from git_wiz.ai.prompt import NO_CHANGES_REPLY
from git_wiz.exceptions import MalformedResponse
from git_wiz.models import COMMIT_TYPES, CommitMessage, RawModelReply, collapse_whitespace

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(
    r"^(?P<type>[A-Za-z]+)(?:\((?P<scope>[^()\n]*)\))?(?P<bang>!)?:\s*(?P<subject>.*)$"
)
_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE:\s*(?P<description>.*)$")

# Characters models wrap headers in
_WRAPPERS = "`\"'*"

# Subject first words that unambiguously name a commit type
DEFAULT_TYPE_ALIASES: dict[str, str] = {
    "feat": "feat",
    "feature": "feat",
    "features": "feat",
    "fix": "fix",
    "fixes": "fix",
    "fixed": "fix",
    "bugfix": "fix",
    "hotfix": "fix",
    "doc": "docs",
    "docs": "docs",
    "documentation": "docs",
    "style": "style",
    "refactor": "refactor",
    "refactors": "refactor",
    "refactored": "refactor",
    "perf": "perf",
    "performance": "perf",
    "test": "test",
    "tests": "test",
    "build": "build",
    "ci": "ci",
    "chore": "chore",
    "revert": "revert",
    "reverts": "revert",
}


@dataclass
class _Parts:
    header: str
    body: tuple[str, ...]
    breaking_change: str | None


class ResponseValidator:
    """Parses text in ``type(scope)!: subject`` form into a CommitMessage."""

    def __init__(self, aliases: dict[str, str] | None = None) -> None:
        """Initialize the validator.

        Args:
            aliases: Map of lower-case subject first words to commit types,
                used to repair replies that omit the type prefix

        Raises:
            ValueError: If an alias maps to an unknown commit type
        """
        self.aliases = dict(DEFAULT_TYPE_ALIASES if aliases is None else aliases)
        unknown = sorted(set(self.aliases.values()) - set(COMMIT_TYPES))
        if unknown:
            raise ValueError(f"Type aliases map to unknown types: {', '.join(unknown)}")

    def validate(self, reply: RawModelReply | str) -> CommitMessage:
        """Validate a model reply.

        Raises:
            MalformedResponse: If the reply cannot be coerced into a commit message
        """
        raw = reply.text if isinstance(reply, RawModelReply) else reply
        text = clean_response(raw)
        if not text:
            raise MalformedResponse("The model returned an empty reply", raw)

        if collapse_whitespace(text).strip(_WRAPPERS + ".").lower() == NO_CHANGES_REPLY:
            raise MalformedResponse(
                "The model reported that there are no changes to commit", raw
            )

        parts = _split(text)
        match = _HEADER_RE.match(parts.header)

        if match:
            type_token = match["type"].lower()
            if type_token not in COMMIT_TYPES:
                raise MalformedResponse(f"Unknown commit type '{match['type']}'", raw)
            fields = {
                "type": type_token,
                "scope": match["scope"],
                "subject": _clean_subject(match["subject"]),
                "breaking": bool(match["bang"]),
            }
        else:
            inferred = self.infer_type(parts.header)
            if inferred is None:
                raise MalformedResponse(
                    f"Reply has no Conventional Commits type: {parts.header!r}", raw
                )
            logger.info(f"Inferred commit type '{inferred}' from subject")
            fields = {"type": inferred, "subject": _clean_subject(parts.header)}

        return _build(
            raw,
            body=parts.body,
            breaking_change=parts.breaking_change,
            **fields,
        )

    def validate_edit(self, candidate: CommitMessage, text: str) -> CommitMessage:
        """Re-validate a user-edited message.

        A header without a known type prefix keeps the candidate's type, scope
        and breaking flag, so `README: clarify install` is a subject. A known
        type prefix replaces them.

        Raises:
            MalformedResponse: If the edit breaks a commit message invariant
        """
        cleaned = clean_response(text)
        if not cleaned:
            raise MalformedResponse("Edited message is empty", text)

        parts = _split(cleaned)
        match = _HEADER_RE.match(parts.header)

        if match and match["type"].lower() in COMMIT_TYPES:
            fields = {
                "type": match["type"].lower(),
                "scope": match["scope"],
                "subject": _clean_subject(match["subject"]),
                "breaking": bool(match["bang"]),
            }
        else:
            fields = {
                "type": candidate.type,
                "scope": candidate.scope,
                "subject": _clean_subject(parts.header),
                "breaking": candidate.breaking,
            }

        return _build(
            text,
            body=parts.body,
            breaking_change=parts.breaking_change,
            **fields,
        )

    def infer_type(self, header: str) -> str | None:
        """Commit type named by the header's first word, if unambiguous."""
        words = header.split()
        if not words:
            return None
        first = words[0].strip(_WRAPPERS + ".,;:!").lower()
        return self.aliases.get(first)


def _split(text: str) -> _Parts:
    """Split message text into header, body paragraphs and breaking footer."""
    lines = text.splitlines()
    start = next(i for i, line in enumerate(lines) if line.strip())
    header = lines[start].strip().strip(_WRAPPERS).strip()

    rest = lines[start + 1 :]
    breaking_change = None
    for i, line in enumerate(rest):
        footer = _FOOTER_RE.match(line.strip())
        if footer:
            tail = [footer["description"], *(extra.strip() for extra in rest[i + 1 :])]
            breaking_change = collapse_whitespace(" ".join(tail)) or None
            rest = rest[:i]
            break

    paragraphs: list[str] = []
    current: list[str] = []
    for line in rest:
        if line.strip():
            current.append(line.rstrip())
        elif current:
            paragraphs.append("\n".join(current))
            current = []
    if current:
        paragraphs.append("\n".join(current))

    return _Parts(header=header, body=tuple(paragraphs), breaking_change=breaking_change)


def _clean_subject(subject: str) -> str:
    return collapse_whitespace(subject).strip(_WRAPPERS).strip()


def _build(raw: str, **fields) -> CommitMessage:
    try:
        return CommitMessage(**fields)
    except ValidationError as e:
        reason = "; ".join(
            str(err["msg"]).removeprefix("Value error, ") for err in e.errors()
        )
        raise MalformedResponse(f"Invalid commit message: {reason}", raw) from e
