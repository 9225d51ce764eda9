"""
Unified diff parser for secret-sieve.

Turns ``git diff`` (or plain ``diff -u``) output into the added lines of each
hunk, numbered in the new version of the file. Only added lines are kept:
removed lines can no longer leak anything and context lines were already
scanned when they were added.

The parser is an explicit two-state machine (HEADER, IN_HUNK). The running
new-file line number and the remaining hunk body counts are parser state. A
malformed hunk header discards the hunks of that file, records a parse error,
and the parser skips ahead to the next file header.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from .config import FileError
from .errors import DiffParseError
from .utils import normalize_path

logger = logging.getLogger(__name__)

# @@ -a[,b] +c[,d] @@ optional section heading
HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(?: .*)?$")

GIT_HEADER = re.compile(r'^diff --git "?a/(?P<old>.*?)"? "?b/(?P<new>.*?)"?$')

DEV_NULL = "/dev/null"


class ParserState(Enum):
    """Where the parser is inside the current file section."""

    HEADER = "header"
    IN_HUNK = "in_hunk"


@dataclass
class DiffHunk:
    """Added lines of one hunk, as (new-file line number, content) pairs."""

    file_path: str
    added_lines: list[tuple[int, str]] = field(default_factory=list)


@dataclass
class DiffParseResult:
    """Parsed hunks plus the per-file parse errors encountered."""

    hunks: list[DiffHunk] = field(default_factory=list)
    errors: list[FileError] = field(default_factory=list)

    def __iter__(self) -> Iterator[DiffHunk]:
        return iter(self.hunks)

    def __len__(self) -> int:
        return len(self.hunks)

    @property
    def files(self) -> list[str]:
        """Distinct file paths with at least one hunk, in diff order."""
        seen: dict[str, None] = {}
        for hunk in self.hunks:
            seen.setdefault(hunk.file_path, None)
        return list(seen)


def _clean_path(raw: str) -> str | None:
    """Strip the a/ b/ prefix, quoting and any trailing timestamp from a header path."""
    path = raw.split("\t", 1)[0].strip()
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    if path == DEV_NULL:
        return None
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return normalize_path(path)


class DiffParser:
    """Single-use state machine over the lines of one diff text."""

    def __init__(self) -> None:
        self.state = ParserState.HEADER
        self.line_number = 0
        self._old_remaining = 0
        self._new_remaining = 0
        self._file_path: str | None = None
        self._deleted = False
        self._binary = False
        self._skipping = False
        self._saw_new_path = False
        self._git_format = False
        self._file_hunks: list[DiffHunk] = []
        self._hunk: DiffHunk | None = None
        self._result = DiffParseResult()

    # -- file sections -------------------------------------------------

    def _start_file(self, file_path: str | None) -> None:
        self._finish_file()
        self.state = ParserState.HEADER
        self._file_path = file_path
        self._deleted = False
        self._binary = False
        self._skipping = False
        self._saw_new_path = False

    def _finish_file(self) -> None:
        self._close_hunk()
        if not self._skipping and not self._deleted and not self._binary:
            self._result.hunks.extend(self._file_hunks)
        self._file_hunks = []

    def _fail_file(self, error: DiffParseError) -> None:
        """Discard the current file's hunks and skip to the next file header."""
        logger.debug("Diff parse error: %s", error)
        self._result.errors.append(FileError(
            file_path=error.file_path,
            kind="parse",
            message=error.message,
        ))
        self._hunk = None
        self._file_hunks = []
        self._skipping = True
        self.state = ParserState.HEADER

    # -- hunks ---------------------------------------------------------

    def _open_hunk(self, header: str, diff_line: int) -> None:
        match = HUNK_HEADER.match(header)
        if match is None:
            # The header text is not echoed: its trailing section heading is file content
            raise DiffParseError(self._file_path or "", f"malformed hunk header at diff line {diff_line}")
        if self._file_path is None and not self._deleted:
            raise DiffParseError("", "hunk header before any file header")

        self._close_hunk()
        old_count = int(match.group(2)) if match.group(2) is not None else 1
        new_start = int(match.group(3))
        new_count = int(match.group(4)) if match.group(4) is not None else 1

        self.line_number = new_start
        self._old_remaining = old_count
        self._new_remaining = new_count
        self._hunk = DiffHunk(file_path=self._file_path or DEV_NULL)
        self.state = ParserState.IN_HUNK

    def _close_hunk(self) -> None:
        if self._hunk is not None and self._hunk.added_lines:
            self._file_hunks.append(self._hunk)
        self._hunk = None

    def _hunk_line(self, line: str) -> None:
        marker = line[:1]
        if marker == "+":
            self.line_number += 1
            self._new_remaining -= 1
            if self._hunk is not None:
                self._hunk.added_lines.append((self.line_number, line[1:]))
        elif marker == " " or line == "":
            self.line_number += 1
            self._new_remaining -= 1
            self._old_remaining -= 1
        elif marker == "-":
            self._old_remaining -= 1
        # "\ No newline at end of file" and anything else leave the counter alone

    # -- driver --------------------------------------------------------

    def _is_plain_file_header(self, lines: list[str], idx: int) -> bool:
        return (
            lines[idx].startswith("--- ")
            and idx + 1 < len(lines)
            and lines[idx + 1].startswith("+++ ")
        )

    def parse(self, diff_text: str) -> DiffParseResult:
        """Parse a complete diff text."""
        lines = [line[:-1] if line.endswith("\r") else line for line in diff_text.split("\n")]
        if lines and lines[-1] == "":
            lines.pop()
        # Plain ---/+++ pairs only open file sections when no `diff --git` line does
        self._git_format = any(line.startswith("diff --git ") for line in lines)

        for idx, line in enumerate(lines):
            if self.state is ParserState.IN_HUNK:
                if self._old_remaining <= 0 and self._new_remaining <= 0:
                    self._close_hunk()
                    self.state = ParserState.HEADER
                elif line.startswith("diff --git "):
                    self.state = ParserState.HEADER
                elif line.startswith("@@"):
                    self.state = ParserState.HEADER
                else:
                    self._hunk_line(line)
                    continue

            if line.startswith("diff --git "):
                match = GIT_HEADER.match(line)
                self._start_file(normalize_path(match.group("new")) if match else None)
                continue

            if self._skipping and (self._git_format or not self._is_plain_file_header(lines, idx)):
                continue

            try:
                self._header_line(lines, idx)
            except DiffParseError as e:
                self._fail_file(e)

        self._finish_file()
        return self._result

    def _header_line(self, lines: list[str], idx: int) -> None:
        line = lines[idx]
        if line.startswith("--- "):
            # Plain `diff -u` output has no `diff --git` line to open the section
            if not self._git_format and (self._saw_new_path or self._skipping):
                self._start_file(None)
            return
        if line.startswith("+++ "):
            self._saw_new_path = True
            new_path = _clean_path(line[4:])
            if new_path is None:
                self._deleted = True
            else:
                self._file_path = new_path
            return
        if line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            self._binary = True
            return
        if line.startswith("deleted file mode"):
            self._deleted = True
            return
        if line.startswith("@@"):
            self._open_hunk(line, idx + 1)


def parse(diff_text: str) -> DiffParseResult:
    """
    Parse unified diff text into added-line hunks.

    Args:
        diff_text: Output of ``git diff`` or ``diff -u``

    Returns:
        DiffParseResult with the hunks of every well-formed file section and
        one parse error per malformed section
    """
    return DiffParser().parse(diff_text)
