"""
Exception types for secret-sieve.

Messages carry paths, line numbers and rule ids only. A matched secret value
must never be formatted into any of these.
"""

from __future__ import annotations

from pathlib import Path


class SieveError(Exception):
    """Base class for all secret-sieve errors."""


class DiffParseError(SieveError):
    """A file section of a unified diff could not be parsed."""

    def __init__(self, file_path: str, message: str):
        self.file_path = file_path
        self.message = message
        super().__init__(f"{file_path or '<unknown>'}: {message}")


class BaselineError(SieveError):
    """The baseline file exists but is not a valid baseline document."""

    def __init__(self, path: Path | str, message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"Invalid baseline file {self.path}: {message}")


class GitError(SieveError):
    """A git command failed or git is unavailable."""


class RepairError(SieveError):
    """A single file could not be repaired."""

    def __init__(self, file_path: str, message: str):
        self.file_path = file_path
        self.message = message
        super().__init__(f"{file_path}: {message}")


class ConfigError(SieveError):
    """A configuration file or option is invalid."""
