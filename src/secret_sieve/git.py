"""
Git access for secret-sieve.

Only the textual diff output of the git CLI is used; secret-sieve does not
read git objects itself.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from .errors import GitError

logger = logging.getLogger(__name__)

# Zero context lines: only what was added is of interest
DIFF_ARGS = ["--unified=0", "--no-color", "--no-ext-diff"]


def run_git(args: list[str], cwd: Path | None = None, timeout: int = 60) -> str:
    """
    Run a git command and return its stdout.

    Raises:
        GitError: if git is missing, times out or exits non-zero
    """
    cmd = ["git", "-c", "core.quotepath=off", *args]
    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise GitError("git is not installed or not in PATH") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {args[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise GitError(f"could not run git: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise GitError(f"git {args[0]} failed: {stderr or f'exit code {result.returncode}'}")

    return result.stdout.decode("utf-8", errors="replace")


def check_git_installed() -> str:
    """Return the git version string, or raise GitError if git is unavailable."""
    return run_git(["--version"]).strip()


def validate_scan_root(path: Path) -> Path:
    """
    Validate and resolve a directory to scan.

    Raises:
        ValueError: if the path is missing, not a directory or unreadable
    """
    resolved = path.resolve()

    if not resolved.exists():
        raise ValueError(f"Path does not exist: {resolved}")

    if not resolved.is_dir():
        raise ValueError(f"Path is not a directory: {resolved}")

    if not os.access(resolved, os.R_OK):
        raise ValueError(f"Path is not readable: {resolved}")

    return resolved


def get_repo_root(path: Path | None = None) -> Path:
    """Find the top-level directory of the git work tree containing ``path``."""
    output = run_git(["rev-parse", "--show-toplevel"], cwd=path)
    return Path(output.strip())


def get_staged_diff(cwd: Path | None = None) -> str:
    """Diff of the index against HEAD, as ``git commit`` would record it."""
    return run_git(["diff", "--cached", *DIFF_ARGS], cwd=cwd)


def get_since_diff(ref: str, cwd: Path | None = None) -> str:
    """Diff of everything committed since ``ref`` (``ref..HEAD``)."""
    if not ref or ref.startswith("-"):
        raise GitError(f"invalid revision: {ref!r}")
    return run_git(["diff", f"{ref}..HEAD", *DIFF_ARGS], cwd=cwd)
