"""Git integration: collect staged changes and create the commit."""

import logging
import re
import subprocess
from pathlib import Path

from git_wiz.exceptions import NoStagedChanges, RepositoryError
from git_wiz.models import ChangeKind, DiffPayload, FileChange

logger = logging.getLogger(__name__)

_QUOTED = r'"(?:[^"\\]|\\.)*"'
_DIFF_HEADER_RE = re.compile(rf"^diff --git (?:{_QUOTED}|a/.+?) (?P<new>{_QUOTED}|b/.+)$")

# Paths are still C-quoted when they contain control characters, quotes or backslashes
_NO_QUOTE_PATH = ("-c", "core.quotePath=false")

_STATUS_KINDS = {
    "A": ChangeKind.ADDED,
    "C": ChangeKind.ADDED,
    "D": ChangeKind.DELETED,
    "M": ChangeKind.MODIFIED,
    "T": ChangeKind.MODIFIED,
    "R": ChangeKind.RENAMED,
}


class GitRepository:
    """Reads staged changes from, and commits to, a git working tree."""

    def __init__(self, cwd: Path | str | None = None) -> None:
        self.cwd = Path(cwd) if cwd else None

    def _run_git(self, *args: str, input_text: str | None = None) -> str:
        """Run a git command and return stdout."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                input=input_text,
                capture_output=True,
                text=True,
                check=True,
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.CalledProcessError as e:
            raise RepositoryError(
                f"git {' '.join(args)} failed: {e.stderr.strip()}"
            ) from e
        except FileNotFoundError as e:
            raise RepositoryError("Git is not installed or not in PATH") from e
        return result.stdout

    def is_repo(self) -> bool:
        try:
            return self._run_git("rev-parse", "--is-inside-work-tree").strip() == "true"
        except RepositoryError:
            return False

    def get_staged_diff(self) -> DiffPayload:
        """Capture the staged changes as a DiffPayload.

        Raises:
            RepositoryError: If this is not a git repository or git fails
            NoStagedChanges: If nothing is staged
        """
        if not self.is_repo():
            raise RepositoryError("Not a git repository (or git is not installed).")

        status_output = self._run_git(*_NO_QUOTE_PATH, "diff", "--cached", "--name-status", "-M")
        entries = parse_name_status(status_output)
        if not entries:
            raise NoStagedChanges()

        hunks = split_diff_by_file(self._run_git(*_NO_QUOTE_PATH, "diff", "--cached", "-M"))
        missing = [path for _, path, _ in entries if path not in hunks]
        if missing:
            logger.debug(f"No textual diff for: {', '.join(missing)}")

        files = []
        for kind, path, old_path in entries:
            files.append(
                FileChange(
                    path=path,
                    kind=kind,
                    hunk=hunks.get(path, ""),
                    old_path=old_path,
                )
            )

        logger.info(f"Captured staged diff: {len(files)} files")
        return DiffPayload(files=tuple(files))

    def commit(self, message: str) -> str:
        """Commit the staged changes with ``message``; returns git's output."""
        if not message.strip():
            raise RepositoryError("Refusing to commit with an empty message")
        output = self._run_git("commit", "-F", "-", input_text=message)
        logger.info("Created commit")
        return output.strip()


def parse_name_status(output: str) -> list[tuple[ChangeKind, str, str | None]]:
    """Parse ``git diff --name-status -M`` output into (kind, path, old_path)."""
    entries: list[tuple[ChangeKind, str, str | None]] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        status_field, *paths = line.split("\t")
        parts = [status_field, *(unquote_path(p) for p in paths)]
        status = parts[0][:1]
        kind = _STATUS_KINDS.get(status, ChangeKind.MODIFIED)
        if status in ("R", "C") and len(parts) >= 3:
            old_path, path = parts[1], parts[2]
            entries.append((kind, path, old_path if status == "R" else None))
        elif len(parts) >= 2:
            entries.append((kind, parts[1], None))
        else:
            logger.warning(f"Skipping unparseable name-status line: {line!r}")
    return entries


def split_diff_by_file(diff: str) -> dict[str, str]:
    """Split a unified diff into per-file blocks keyed by the new path."""
    files: dict[str, str] = {}
    current_file: str | None = None
    current_lines: list[str] = []

    for line in diff.splitlines():
        if line.startswith("diff --git "):
            if current_file is not None:
                files[current_file] = "\n".join(current_lines)
            match = _DIFF_HEADER_RE.match(line)
            current_file = unquote_path(match.group("new"))[2:] if match else None
            if current_file is None:
                logger.warning(f"Unrecognized diff header: {line!r}")
            current_lines = [line]
        elif current_file is not None:
            current_lines.append(line)

    if current_file is not None:
        files[current_file] = "\n".join(current_lines)

    return files


def unquote_path(path: str) -> str:
    """Decode a path that git wrapped in double quotes with C-style escapes.

    Octal escapes are raw bytes of the UTF-8 encoded name, so ``"caf\\303\\251.py"``
    decodes to ``café.py``. Unquoted paths are returned unchanged.
    """
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    raw = path[1:-1].encode("utf-8").decode("unicode_escape")
    return raw.encode("latin-1").decode("utf-8", errors="replace")
