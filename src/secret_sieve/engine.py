"""
Scan orchestration for secret-sieve.

Drives the line scanner over a file tree or a diff, then turns raw matches
into ranked findings:

1. fingerprint every raw finding
2. drop baselined fingerprints (or mark them when show_suppressed is set)
3. drop scores below the configured floor
4. sort by descending score, then path, line, column and rule id

Tree scans fan out one task per file on a bounded thread pool. Results are
collected by a single consumer and only sorted once every worker is done, so
the output order never depends on scheduling.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from .baseline import BaselineStore
from .config import (
    MIN_REPORT_SCORE,
    FileError,
    FileInfo,
    Finding,
    RawFinding,
    ScanConfig,
    ScanResult,
    ScanStats,
)
from .detector import Detector
from .diff import DiffParseResult, parse
from .fingerprint import fingerprint
from .scanner import FileScanner
from .utils import read_file_safe, split_lines_keepends, strip_line_ending

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class _FileOutcome:
    """What one worker reports back for one file."""

    findings: list[RawFinding] = field(default_factory=list)
    lines: int = 0
    error: FileError | None = None


def load_baseline(path: Path | str) -> BaselineStore:
    """
    Load the baseline for a scan.

    Raises:
        BaselineError: if the file exists but is invalid. Scanning on with an
            empty baseline would resurface every reviewed finding.
    """
    return BaselineStore.load(path)


class ScanEngine:
    """Runs scans against one configuration and one baseline."""

    def __init__(
        self,
        config: ScanConfig | None = None,
        baseline: BaselineStore | None = None,
    ):
        self.config = config or ScanConfig()
        self.baseline = baseline if baseline is not None else BaselineStore()
        self.detector = Detector(
            disabled_rules=self.config.disabled_rules,
            min_score=MIN_REPORT_SCORE,
            placeholder=self.config.placeholder,
        )

    def _max_workers(self) -> int:
        if self.config.max_workers is not None:
            return self.config.max_workers
        return min(32, (os.cpu_count() or 1) + 4)

    # -- per-source scanning -------------------------------------------

    def _scan_text(self, file_path: str, lines: Iterable[str], start: int = 1) -> tuple[list[RawFinding], int]:
        found: list[RawFinding] = []
        count = 0
        for line_number, line in enumerate(lines, start=start):
            body, _ = strip_line_ending(line)
            found.extend(self.detector.scan_line(file_path, line_number, body))
            count += 1
        return found, count

    def _scan_file(self, info: FileInfo) -> _FileOutcome:
        try:
            content, encoding = read_file_safe(info.path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", info.relative_path, e.strerror or e)
            return _FileOutcome(error=FileError(
                file_path=info.relative_path,
                kind="io",
                message=e.strerror or str(e),
            ))

        if encoding != "utf-8":
            logger.debug("Decoded %s as %s", info.relative_path, encoding)

        found, count = self._scan_text(info.relative_path, split_lines_keepends(content))
        return _FileOutcome(findings=found, lines=count)

    def scan_tree(self, root: Path | str, progress_callback: ProgressCallback | None = None) -> ScanResult:
        """
        Scan every eligible file under ``root``.

        Finding paths are relative to ``root``.
        """
        start_time = time.monotonic()
        root = Path(root).resolve()

        scanner = FileScanner(
            root_path=root,
            exclude_globs=self.config.exclude_globs,
            max_file_bytes=self.config.max_file_bytes,
            respect_gitignore=self.config.respect_gitignore,
            follow_symlinks=self.config.follow_symlinks,
            skip_paths={self.config.baseline_path},
        )
        files = list(scanner.scan())
        stats = scanner.stats
        logger.info("Scanning %d files under %s", len(files), root)

        raw: list[RawFinding] = []
        errors: list[FileError] = []
        total = len(files)
        completed = 0

        with ThreadPoolExecutor(max_workers=self._max_workers()) as executor:
            futures = {executor.submit(self._scan_file, info): info for info in files}

            for future in as_completed(futures):
                outcome = future.result()
                completed += 1
                if progress_callback:
                    progress_callback(completed, total)

                if outcome.error is not None:
                    stats.files_errored += 1
                    errors.append(outcome.error)
                    continue
                stats.files_scanned += 1
                stats.lines_scanned += outcome.lines
                raw.extend(outcome.findings)

        return self._finalize(raw, errors, stats, start_time)

    def scan_diff(self, diff: str | DiffParseResult) -> ScanResult:
        """Scan the added lines of a unified diff."""
        start_time = time.monotonic()
        parsed = parse(diff) if isinstance(diff, str) else diff
        stats = ScanStats()

        raw: list[RawFinding] = []
        for hunk in parsed:
            for line_number, content in hunk.added_lines:
                raw.extend(self.detector.scan_line(hunk.file_path, line_number, content))
                stats.lines_scanned += 1

        stats.files_scanned = len(parsed.files)
        stats.files_errored = len({e.file_path for e in parsed.errors})
        return self._finalize(raw, list(parsed.errors), stats, start_time)

    def scan_lines(self, file_path: str, lines: Iterable[str], start: int = 1) -> ScanResult:
        """Scan arbitrary lines as if they were the content of ``file_path``."""
        start_time = time.monotonic()
        stats = ScanStats()
        raw, stats.lines_scanned = self._scan_text(file_path, lines, start=start)
        stats.files_scanned = 1
        return self._finalize(raw, [], stats, start_time)

    def relocate(self, findings: Iterable[Finding], root: Path | str) -> tuple[list[Finding], set[str]]:
        """
        Find where the given findings sit in the working tree right now.

        Each affected file under ``root`` is rescanned and every current match
        whose fingerprint is among ``findings`` is returned with its present
        location. Fingerprints do not include line numbers, so this works for
        findings that came from a diff or from an older scan.

        Returns:
            Tuple of (located findings sorted by rank, fingerprints not found)
        """
        root = Path(root)
        wanted = {f.fingerprint for f in findings}
        paths = sorted({f.file_path for f in findings})
        located: list[Finding] = []

        for rel_path in paths:
            try:
                content, _ = read_file_safe(root / rel_path)
            except OSError as e:
                logger.warning("Cannot read %s: %s", rel_path, e.strerror or e)
                continue
            raw, _ = self._scan_text(rel_path, split_lines_keepends(content))
            for item in raw:
                fp = fingerprint(item.rule_id, item.matched_text, item.file_path)
                if fp in wanted:
                    located.append(Finding.from_raw(item, fp))

        located.sort(key=lambda f: f.sort_key())
        missing = wanted - {f.fingerprint for f in located}
        return located, missing

    # -- merge ---------------------------------------------------------

    def _finalize(
        self,
        raw: list[RawFinding],
        errors: list[FileError],
        stats: ScanStats,
        start_time: float,
    ) -> ScanResult:
        """Fingerprint, filter and rank. Runs single-threaded after all workers finish."""
        min_score = self.config.min_score
        findings: list[Finding] = []
        stats.raw_findings = len(raw)

        for item in raw:
            fp = fingerprint(item.rule_id, item.matched_text, item.file_path)
            baselined = fp in self.baseline
            if baselined:
                stats.findings_suppressed += 1
                if not self.config.show_suppressed:
                    continue
            if item.score < min_score:
                stats.findings_below_threshold += 1
                continue
            findings.append(Finding.from_raw(item, fp, baselined=baselined))

        findings.sort(key=lambda f: f.sort_key())
        errors.sort(key=lambda e: (e.file_path, e.kind, e.message))

        for finding in findings:
            if not finding.baselined:
                stats.rule_counts[finding.rule_id] = stats.rule_counts.get(finding.rule_id, 0) + 1
        stats.findings_reported = sum(1 for f in findings if not f.baselined)
        stats.processing_time_seconds = time.monotonic() - start_time

        logger.info(
            "%d findings reported, %d baselined, %d below threshold",
            stats.findings_reported,
            stats.findings_suppressed,
            stats.findings_below_threshold,
        )
        return ScanResult(findings=findings, errors=errors, stats=stats)


def scan_tree(
    root: Path | str,
    config: ScanConfig | None = None,
    baseline: BaselineStore | None = None,
) -> ScanResult:
    """
    Scan a file tree for secrets.

    This function provides deterministic output: findings are always returned
    in the same order for the same input.
    """
    return ScanEngine(config, baseline).scan_tree(root)


def scan_diff(
    diff_text: str,
    config: ScanConfig | None = None,
    baseline: BaselineStore | None = None,
) -> ScanResult:
    """Scan the added lines of a unified diff for secrets."""
    return ScanEngine(config, baseline).scan_diff(diff_text)
