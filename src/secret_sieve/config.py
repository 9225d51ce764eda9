"""
Configuration models and defaults for secret-sieve.

Holds the default ignore sets and thresholds, the scan configuration, and the
finding data model shared by the engine, the renderer and the repair engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .utils import mask_secret, normalize_path

# Current JSON report schema version
REPORT_SCHEMA_VERSION = "1.0.0"

# Baseline file, looked up in the working directory
BASELINE_FILENAME = ".sieve.baseline.json"

# Token written over a repaired secret
DEFAULT_PLACEHOLDER = "REDACTED_SECRET"

# Minimum length of a configured placeholder
MIN_PLACEHOLDER_LENGTH = 4

# Findings scoring at least this are surfaced by default
HIGH_CONFIDENCE_THRESHOLD = 70

# Below this a match is not reported at all, not even as informational
MIN_REPORT_SCORE = 40

# Bytes read from the head of a file for the null-byte binary check
BINARY_SAMPLE_BYTES = 8192

# Lines longer than this are treated as minified and not scanned
MAX_LINE_LENGTH = 1000


class OutputFormat(str, Enum):
    """Output format for findings."""

    HUMAN = "human"
    JSON = "json"


class Severity(str, Enum):
    """Severity bucket derived from a finding's score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_score(cls, score: int) -> Severity:
        if score >= 80:
            return cls.HIGH
        if score >= 60:
            return cls.MEDIUM
        return cls.LOW


# Directory names that are never descended into
DEFAULT_IGNORE_DIRS: frozenset[str] = frozenset({
    "node_modules",
    "target",
    "dist",
    ".git",
    "vendor",
})

# Default glob patterns to exclude (gitignore syntax)
DEFAULT_EXCLUDE_GLOBS: set[str] = {
    # Dependencies and build outputs
    "node_modules/**",
    "target/**",
    "dist/**",
    "vendor/**",
    "build/**",
    ".venv/**",
    "venv/**",
    "__pycache__/**",
    ".tox/**",
    ".eggs/**",
    "*.egg-info/**",
    # Version control
    ".git/**",
    ".svn/**",
    ".hg/**",
    # Cache
    ".cache/**",
    ".pytest_cache/**",
    ".mypy_cache/**",
    ".ruff_cache/**",
    "*.pyc",
    # Lock files are full of integrity hashes
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Cargo.lock",
    "go.sum",
    # Minified and generated assets
    "*.min.js",
    "*.min.css",
    "*.bundle.js",
    "*.map",
    # Our own state
    BASELINE_FILENAME,
}

# Ignore files honored in addition to .gitignore
IGNORE_FILE_NAMES: tuple[str, ...] = (".gitignore", ".sieveignore")


@dataclass
class ScanConfig:
    """Resolved configuration for one scan pass."""

    high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD
    include_informational: bool = False
    show_suppressed: bool = False
    exclude_globs: set[str] = field(default_factory=lambda: DEFAULT_EXCLUDE_GLOBS.copy())
    max_file_bytes: int = 1_048_576  # 1 MB
    respect_gitignore: bool = True
    follow_symlinks: bool = False
    max_workers: int | None = None
    disabled_rules: set[str] = field(default_factory=set)
    baseline_path: Path = field(default_factory=lambda: Path(BASELINE_FILENAME))
    placeholder: str = DEFAULT_PLACEHOLDER

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not 0 <= self.high_confidence_threshold <= 100:
            raise ValueError(
                f"high_confidence_threshold must be between 0 and 100, "
                f"got {self.high_confidence_threshold}"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.max_file_bytes <= 0:
            raise ValueError(f"max_file_bytes must be positive, got {self.max_file_bytes}")
        if len(self.placeholder) < MIN_PLACEHOLDER_LENGTH:
            raise ValueError(f"placeholder must be at least {MIN_PLACEHOLDER_LENGTH} characters")

        self.baseline_path = Path(self.baseline_path)
        self.disabled_rules = {r.strip() for r in self.disabled_rules if r.strip()}

    @property
    def min_score(self) -> int:
        """Lowest score a finding needs to be returned by a scan."""
        if self.include_informational:
            return MIN_REPORT_SCORE
        return self.high_confidence_threshold


@dataclass
class FileInfo:
    """Information about a file selected for scanning."""

    path: Path  # Absolute path
    relative_path: str  # Relative to scan root
    size_bytes: int


@dataclass(frozen=True)
class RawFinding:
    """A single rule match on a single line, before fingerprinting."""

    rule_id: str
    file_path: str
    line_number: int  # 1-based
    column_span: tuple[int, int]  # [start, end) offsets into the line
    matched_text: str = field(repr=False)
    score: int
    reason: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.score <= 100:
            raise ValueError(f"score out of range: {self.score}")
        start, end = self.column_span
        if start < 0 or end < start:
            raise ValueError(f"invalid column span: {self.column_span}")


@dataclass(frozen=True)
class Finding:
    """A scored, located, fingerprinted candidate secret."""

    rule_id: str
    file_path: str
    line_number: int
    column_span: tuple[int, int]
    matched_text: str = field(repr=False)
    score: int
    reason: str
    fingerprint: str
    baselined: bool = False

    @classmethod
    def from_raw(cls, raw: RawFinding, fingerprint: str, baselined: bool = False) -> Finding:
        return cls(
            rule_id=raw.rule_id,
            file_path=raw.file_path,
            line_number=raw.line_number,
            column_span=raw.column_span,
            matched_text=raw.matched_text,
            score=raw.score,
            reason=raw.reason,
            fingerprint=fingerprint,
            baselined=baselined,
        )

    @property
    def severity(self) -> Severity:
        return Severity.from_score(self.score)

    @property
    def redacted_preview(self) -> str:
        """Fixed-width masked rendering of the matched value."""
        return mask_secret(self.matched_text)

    def sort_key(self) -> tuple:
        """Descending score, then path, line, column and rule id."""
        return (
            -self.score,
            self.file_path,
            self.line_number,
            self.column_span[0],
            self.rule_id,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization. Never includes the raw value."""
        return {
            "baselined": self.baselined,
            "column_end": self.column_span[1],
            "column_start": self.column_span[0],
            "file_path": self.file_path,
            "fingerprint": self.fingerprint,
            "line_number": self.line_number,
            "reason": self.reason,
            "redacted_preview": self.redacted_preview,
            "rule_id": self.rule_id,
            "score": self.score,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class FileError:
    """A per-file problem recorded during a scan; the scan itself continues."""

    file_path: str
    kind: str  # "parse" or "io"
    message: str

    def to_dict(self) -> dict:
        return {
            "file_path": normalize_path(self.file_path),
            "kind": self.kind,
            "message": self.message,
        }


@dataclass
class ScanStats:
    """Statistics from one scan pass."""

    files_scanned: int = 0
    files_skipped_size: int = 0
    files_skipped_binary: int = 0
    files_skipped_gitignore: int = 0
    files_skipped_glob: int = 0
    files_errored: int = 0
    lines_scanned: int = 0
    raw_findings: int = 0
    findings_suppressed: int = 0
    findings_below_threshold: int = 0
    findings_reported: int = 0
    processing_time_seconds: float = 0.0
    rule_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization.

        Output is deterministic: all dicts are sorted by key for stable JSON.
        """
        return {
            "files_errored": self.files_errored,
            "files_scanned": self.files_scanned,
            "files_skipped": {
                "binary": self.files_skipped_binary,
                "gitignore": self.files_skipped_gitignore,
                "glob": self.files_skipped_glob,
                "size": self.files_skipped_size,
            },
            "findings": {
                "below_threshold": self.findings_below_threshold,
                "raw": self.raw_findings,
                "reported": self.findings_reported,
                "suppressed": self.findings_suppressed,
            },
            "lines_scanned": self.lines_scanned,
            "processing_time_seconds": round(self.processing_time_seconds, 3),
            "rule_counts": dict(
                sorted(self.rule_counts.items(), key=lambda x: (-x[1], x[0]))
            ),
        }


@dataclass
class ScanResult:
    """Findings plus the per-file errors and statistics of a scan pass."""

    findings: list[Finding] = field(default_factory=list)
    errors: list[FileError] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict:
        return {
            "errors": [e.to_dict() for e in self.errors],
            "findings": [f.to_dict() for f in self.findings],
            "schema_version": REPORT_SCHEMA_VERSION,
            "stats": self.stats.to_dict(),
        }
