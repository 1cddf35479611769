"""Prompt construction for commit message generation.

The same instruction block is used for every provider; only the token budget
differs. When the serialized diff does not fit, per-file diffs are dropped
from the end of the path-sorted file list (then file summary lines), and a
truncation marker tells the model that context was cut.
"""

import logging
from collections.abc import Callable

from git_wiz.models import (
    COMMIT_TYPES,
    SUBJECT_MAX_LENGTH,
    DiffPayload,
    FileChange,
    Prompt,
    ProviderIdentity,
)

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

NO_CHANGES_REPLY = "no changes to commit"

_TYPE_LINES = "\n".join(f"  - {name}: {desc}" for name, desc in COMMIT_TYPES.items())

INSTRUCTIONS = f"""You are a senior software engineer writing a git commit message.
Write ONE commit message for the staged changes below, following the Conventional Commits specification.

Output format (plain text only - no markdown, no code fences, no commentary):
<type>(<scope>): <subject>

<body>

BREAKING CHANGE: <description>

Rules:
- <type> must be one of:
{_TYPE_LINES}
- (<scope>) is optional: a short noun for the affected area, e.g. (api) or (parser)
- <subject> uses the imperative mood, has no trailing period and is at most {SUBJECT_MAX_LENGTH} characters
- Add "!" after the type or scope and a BREAKING CHANGE footer only for incompatible changes
- The body is optional: explain what changed and why, in short paragraphs or "- " bullets
- The diff shows WHAT changed; use the body to explain WHY
- If no changes are listed below, reply with exactly: {NO_CHANGES_REPLY}"""

TRUNCATION_MARKER = (
    "[Context truncated: diffs for {omitted} of {total} files were omitted to fit "
    "the prompt budget. Base the message on the file list and the diffs shown.]"
)

# Upper bound on file counts used when sizing the smallest possible prompt
_SIZING_FILE_COUNT = 999_999


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 chars per token, rounded up)."""
    return -(-len(text) // CHARS_PER_TOKEN)


class PromptBuilder:
    """Turns a DiffPayload into a bounded-size Prompt."""

    def __init__(
        self,
        budgets: dict[ProviderIdentity, int],
        estimator: Callable[[str], int] = estimate_tokens,
    ) -> None:
        """Initialize the builder.

        Args:
            budgets: Maximum prompt tokens per provider
            estimator: Token estimator applied to the full prompt text

        Raises:
            ValueError: If a budget cannot hold the instruction block
        """
        self.budgets = dict(budgets)
        self.estimator = estimator

        floor = self.minimum_budget()
        for provider, budget in self.budgets.items():
            if budget < floor:
                raise ValueError(
                    f"Token budget {budget} for {provider.value} is below the "
                    f"minimum of {floor} needed for the instructions"
                )

    def minimum_budget(self) -> int:
        """Smallest budget that can hold a fully truncated prompt."""
        return self.estimator(
            self._render(
                files=[],
                total=_SIZING_FILE_COUNT,
                listed=0,
                kept=0,
                hint=None,
            )
        )

    def budget_for(self, provider: ProviderIdentity) -> int:
        try:
            return self.budgets[provider]
        except KeyError as e:
            raise ValueError(f"No token budget configured for {provider.value}") from e

    def build(
        self,
        diff: DiffPayload,
        provider: ProviderIdentity,
        hint: str | None = None,
    ) -> Prompt:
        """Build the prompt for ``provider`` from the staged diff."""
        budget = self.budget_for(provider)
        files = sorted(diff.files, key=lambda f: f.path)
        total = len(files)
        hint = hint.strip() if hint and hint.strip() else None

        def render(listed: int, kept: int, hint_text: str | None) -> str:
            return self._render(files, total, listed, kept, hint_text)

        text = render(total, total, hint)
        if self.fits(text, budget):
            logger.debug(
                f"Built {provider.value} prompt: {self.estimator(text)}/{budget} tokens, "
                f"{total} files"
            )
            return Prompt(text=text, provider=provider, max_tokens=budget)

        # Keep the longest prefix of per-file diffs that fits
        kept = self._largest_fitting(
            total, lambda k: self.fits(render(total, k, hint), budget)
        )
        listed = total
        if kept == 0 and not self.fits(render(total, 0, hint), budget):
            listed = self._largest_fitting(
                total, lambda m: self.fits(render(m, 0, hint), budget)
            )

        text = render(listed, kept, hint)
        while hint and not self.fits(text, budget):
            hint = hint[: len(hint) // 2].rstrip() or None
            text = render(listed, kept, hint)

        logger.info(
            f"Prompt truncated for {provider.value}: kept diffs for {kept}/{total} files "
            f"({self.estimator(text)}/{budget} tokens)"
        )
        return Prompt(text=text, provider=provider, max_tokens=budget, truncated=True)

    def fits(self, text: str, budget: int) -> bool:
        return self.estimator(text) <= budget

    @staticmethod
    def _largest_fitting(upper: int, fits: Callable[[int], bool]) -> int:
        """Largest n in [0, upper] with fits(n), assuming fits is monotone."""
        low, high = 0, upper
        while low < high:
            mid = (low + high + 1) // 2
            if fits(mid):
                low = mid
            else:
                high = mid - 1
        return low

    def _render(
        self,
        files: list[FileChange],
        total: int,
        listed: int,
        kept: int,
        hint: str | None,
    ) -> str:
        parts = [INSTRUCTIONS]

        if hint:
            parts.append(f"Focus on this context: {hint}")

        if total == 0:
            parts.append("Files changed: none")
            parts.append("Diff: (empty)")
            return "\n\n".join(parts)

        summary_lines = [
            f"- {f.label} +{f.insertions} -{f.deletions}" for f in files[:listed]
        ]
        if listed < total:
            summary_lines.append(f"- ... and {total - listed} more files")
        parts.append(f"Files changed ({total}):\n" + "\n".join(summary_lines))

        blocks = [self._file_block(f) for f in files[:kept]]
        parts.append("Diff:\n" + "\n\n".join(blocks) if blocks else "Diff: (omitted)")

        if kept < total:
            parts.append(TRUNCATION_MARKER.format(omitted=total - kept, total=total))

        return "\n\n".join(parts)

    @staticmethod
    def _file_block(change: FileChange) -> str:
        if change.hunk.strip():
            return change.hunk.rstrip()
        return f"{change.label}: binary or mode-only change, no textual diff"
