"""
In-place secret redaction for secret-sieve.

Rewrites source files so that confirmed findings are replaced by a placeholder
token. Files are handled one at a time:

- the current bytes are re-read and decoded strictly with the detected
  encoding, so a file that would not round-trip is never written;
- every finding is re-checked against the current content (the line must
  exist and its span must still hold the matched text), and anything that no
  longer matches is counted as stale and left alone;
- replacements on a line are applied right to left so earlier offsets stay
  valid, and line endings are preserved exactly;
- the new content goes through a temp file in the same directory and an
  atomic rename, so the original is either fully replaced or untouched.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_PLACEHOLDER, Finding
from .errors import RepairError
from .utils import (
    atomic_write_bytes,
    decode_bytes,
    split_lines_keepends,
    strip_line_ending,
)

logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    """Outcome of repairing one file."""

    file_path: str
    findings_repaired: int = 0
    bytes_written: bool = False
    skipped_stale: int = 0
    error: str | None = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.findings_repaired:
            return "repaired"
        if self.skipped_stale:
            return "stale"
        return "skipped"

    def to_dict(self) -> dict:
        return {
            "bytes_written": self.bytes_written,
            "error": self.error,
            "file_path": self.file_path,
            "findings_repaired": self.findings_repaired,
            "skipped_stale": self.skipped_stale,
            "status": self.status,
        }


def _select_applicable(
    lines: list[str], findings: Iterable[Finding]
) -> tuple[dict[int, list[Finding]], int]:
    """
    Split findings into those still present in ``lines`` and a stale count.

    Of two overlapping spans on one line the later one is stale.
    """
    applicable: dict[int, list[Finding]] = defaultdict(list)
    stale = 0

    for finding in sorted(findings, key=lambda f: (f.line_number, f.column_span, f.rule_id)):
        idx = finding.line_number - 1
        if idx < 0 or idx >= len(lines):
            stale += 1
            continue

        body, _ = strip_line_ending(lines[idx])
        start, end = finding.column_span
        if body[start:end] != finding.matched_text:
            stale += 1
            continue

        if any(start < other.column_span[1] and other.column_span[0] < end for other in applicable[idx]):
            stale += 1
            continue

        applicable[idx].append(finding)

    return {idx: group for idx, group in applicable.items() if group}, stale


def redact_lines(lines: list[str], applicable: dict[int, list[Finding]], placeholder: str) -> list[str]:
    """Return a copy of ``lines`` with every applicable span replaced."""
    result = list(lines)
    for idx, group in applicable.items():
        body, terminator = strip_line_ending(result[idx])
        for finding in sorted(group, key=lambda f: f.column_span[0], reverse=True):
            start, end = finding.column_span
            body = body[:start] + placeholder + body[end:]
        result[idx] = body + terminator
    return result


def _read_text(path: Path) -> tuple[str, str]:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RepairError(str(path), f"cannot read file: {e.strerror or type(e).__name__}") from e
    try:
        return decode_bytes(data, strict=True)
    except UnicodeDecodeError as e:
        raise RepairError(str(path), f"content does not decode cleanly as {e.encoding}") from e


def repair_file(
    path: Path,
    findings: list[Finding],
    placeholder: str = DEFAULT_PLACEHOLDER,
    dry_run: bool = False,
    display_path: str | None = None,
) -> RepairResult:
    """
    Repair the findings of a single file.

    Args:
        path: Path of the file on disk
        findings: Findings located in this file
        placeholder: Replacement token
        dry_run: Validate and count without writing
        display_path: Path to report (default: ``path``)
    """
    result = RepairResult(file_path=display_path or str(path))

    try:
        text, encoding = _read_text(path)
        lines = split_lines_keepends(text)
        applicable, result.skipped_stale = _select_applicable(lines, findings)
        if not applicable:
            return result

        count = sum(len(group) for group in applicable.values())
        new_text = "".join(redact_lines(lines, applicable, placeholder))

        if dry_run:
            result.findings_repaired = count
            return result

        try:
            data = new_text.encode(encoding)
        except UnicodeEncodeError as e:
            raise RepairError(result.file_path, f"placeholder cannot be encoded as {encoding}") from e
        try:
            atomic_write_bytes(path, data)
        except OSError as e:
            raise RepairError(result.file_path, f"write failed: {e.strerror or type(e).__name__}") from e

        result.findings_repaired = count
        result.bytes_written = True
    except RepairError as e:
        logger.error("Repair of %s failed: %s", result.file_path, e.message)
        result.error = e.message

    if result.skipped_stale:
        logger.warning("%s: %d stale findings skipped", result.file_path, result.skipped_stale)
    return result


def repair(
    findings: Iterable[Finding],
    placeholder: str = DEFAULT_PLACEHOLDER,
    root: Path | str | None = None,
    dry_run: bool = False,
) -> list[RepairResult]:
    """
    Redact findings in place.

    Args:
        findings: Findings to repair; their paths are resolved against ``root``
        placeholder: Replacement token (default: REDACTED_SECRET)
        root: Directory finding paths are relative to (default: current directory)
        dry_run: Report what would change without writing anything

    Returns:
        One RepairResult per distinct file, in path order
    """
    base = Path(root) if root is not None else Path.cwd()
    by_file: dict[str, list[Finding]] = defaultdict(list)
    for finding in findings:
        by_file[finding.file_path].append(finding)

    results = []
    for file_path in sorted(by_file):
        result = repair_file(
            base / file_path,
            by_file[file_path],
            placeholder=placeholder,
            dry_run=dry_run,
            display_path=file_path,
        )
        logger.info("%s: %s", file_path, result.status)
        results.append(result)
    return results
