"""File discovery for secret-sieve.

Walks a source tree and decides which files are worth scanning. A file is
skipped when it matches an exclude glob, is ignored by .gitignore or
.sieveignore, is larger than the size limit, or looks binary. Ignore files
are matched with pathspec's GitWildMatchPattern, or by git itself when the
tree is a work tree.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Generator, Iterable
from pathlib import Path

import pathspec
from pathspec.patterns import GitWildMatchPattern

from .config import (
    BINARY_SAMPLE_BYTES,
    DEFAULT_EXCLUDE_GLOBS,
    DEFAULT_IGNORE_DIRS,
    IGNORE_FILE_NAMES,
    FileInfo,
    ScanStats,
)
from .utils import is_binary_file, normalize_path

logger = logging.getLogger(__name__)

# Skip reason -> ScanStats counter
SKIP_COUNTERS = {
    "glob": "files_skipped_glob",
    "ignored": "files_skipped_gitignore",
    "size": "files_skipped_size",
    "binary": "files_skipped_binary",
}


def _compile(patterns: Iterable[str]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines(GitWildMatchPattern, patterns)


def read_ignore_patterns(ignore_path: Path) -> list[str]:
    """Patterns of one ignore file, without blanks and comments. Negations are kept."""
    try:
        text = ignore_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning("Could not read %s: %s", ignore_path, e)
        return []

    stripped = (line.strip() for line in text.splitlines())
    return [line for line in stripped if line and not line.startswith("#")]


class GitIgnoreParser:
    """
    Answers "is this path ignored?" for one kind of ignore file.

    For .gitignore inside a git work tree, `git check-ignore` is asked first
    so global excludes and .git/info/exclude count too. Otherwise every ignore
    file of that name in the tree is compiled with pathspec and applied
    relative to its own directory, deepest first.
    """

    def __init__(
        self,
        root_path: Path,
        ignore_file_name: str = ".gitignore",
        use_git_check: bool = True,
    ):
        self.root_path = root_path.resolve()
        self.ignore_file_name = ignore_file_name
        self._git_answers: dict[str, bool] = {}
        self._use_git = (
            use_git_check
            and ignore_file_name == ".gitignore"
            and self._run_git("rev-parse", "--git-dir", timeout=5) == 0
        )

        # Deepest directory first, so nested files are consulted before the root one
        self._specs: list[tuple[Path, pathspec.PathSpec]] = sorted(
            self._collect_specs(),
            key=lambda item: len(item[0].parts),
            reverse=True,
        )

    def _run_git(self, *args: str, timeout: int) -> int | None:
        """Return git's exit status, or None when git cannot be run."""
        try:
            completed = subprocess.run(
                ["git", *args],
                cwd=self.root_path,
                capture_output=True,
                timeout=timeout,
            )
        except (subprocess.TimeoutExpired, OSError):
            return None
        return completed.returncode

    def _collect_specs(self) -> Generator[tuple[Path, pathspec.PathSpec], None, None]:
        root_file = self.root_path / self.ignore_file_name
        candidates = [root_file] if root_file.is_file() else []

        # git already knows about nested .gitignore files
        if not self._use_git:
            for path in sorted(self.root_path.rglob(self.ignore_file_name)):
                rel_parts = path.relative_to(self.root_path).parts
                if path != root_file and not DEFAULT_IGNORE_DIRS.intersection(rel_parts):
                    candidates.append(path)

        for path in candidates:
            patterns = read_ignore_patterns(path)
            if patterns:
                yield path.parent, _compile(patterns)

    @property
    def has_rules(self) -> bool:
        return self._use_git or bool(self._specs)

    def _ask_git(self, rel_path: str) -> bool | None:
        if rel_path not in self._git_answers:
            # 0: ignored, 1: not ignored, anything else: git could not tell
            status = self._run_git("check-ignore", "-q", rel_path, timeout=2)
            if status not in (0, 1):
                return None
            self._git_answers[rel_path] = status == 0
        return self._git_answers[rel_path]

    def is_ignored(self, file_path: Path) -> bool:
        """Whether the absolute ``file_path`` is excluded by these ignore files."""
        file_path = file_path.resolve()

        if self._use_git:
            try:
                answer = self._ask_git(str(file_path.relative_to(self.root_path)))
            except ValueError:
                answer = None
            if answer is not None:
                return answer

        for base_path, spec in self._specs:
            try:
                rel_path = normalize_path(str(file_path.relative_to(base_path)))
            except ValueError:
                continue
            if spec.match_file(rel_path):
                return True
        return False


class FileScanner:
    """
    Discovers the files of a tree that should be scanned for secrets.

    Skipped files are counted in ``stats`` by reason. Files are yielded
    sorted by relative path.
    """

    def __init__(
        self,
        root_path: Path,
        exclude_globs: set[str] | None = None,
        max_file_bytes: int = 1_048_576,
        respect_gitignore: bool = True,
        follow_symlinks: bool = False,
        skip_paths: set[Path] | None = None,
    ):
        """
        Args:
            root_path: Root directory to scan
            exclude_globs: Globs that replace DEFAULT_EXCLUDE_GLOBS when given
            max_file_bytes: Files larger than this are skipped
            respect_gitignore: Apply .gitignore files (.sieveignore always applies)
            follow_symlinks: Descend into and yield symlinked entries
            skip_paths: Absolute paths never to yield, such as the baseline file
        """
        self.root_path = root_path.resolve()
        self.exclude_globs = set(DEFAULT_EXCLUDE_GLOBS if exclude_globs is None else exclude_globs)
        self.max_file_bytes = max_file_bytes
        self.respect_gitignore = respect_gitignore
        self.follow_symlinks = follow_symlinks
        self.skip_paths = {p.resolve() for p in skip_paths or ()}
        self.stats = ScanStats()

        self._exclude_spec = _compile(sorted(self.exclude_globs))
        ignore_names = [
            name for name in IGNORE_FILE_NAMES if respect_gitignore or name != ".gitignore"
        ]
        self._ignore_parsers = [
            parser
            for parser in (GitIgnoreParser(self.root_path, name) for name in ignore_names)
            if parser.has_rules
        ]

    def skip_reason(self, file_path: Path, rel_path: str, size: int) -> str | None:
        """Why ``file_path`` should not be scanned, or None if it should be."""
        if self._exclude_spec.match_file(rel_path):
            return "glob"
        if any(parser.is_ignored(file_path) for parser in self._ignore_parsers):
            return "ignored"
        if size > self.max_file_bytes:
            return "size"
        if is_binary_file(file_path, BINARY_SAMPLE_BYTES):
            return "binary"
        return None

    def scan(self) -> Generator[FileInfo, None, None]:
        """Yield a FileInfo for every file that should be scanned."""
        selected: list[FileInfo] = []

        for file_path in self._walk_files():
            rel_path = normalize_path(os.path.relpath(file_path, self.root_path))
            if file_path.resolve() in self.skip_paths:
                continue

            try:
                size = file_path.stat().st_size
            except OSError as e:
                logger.debug("Cannot stat %s: %s", rel_path, e)
                continue

            reason = self.skip_reason(file_path, rel_path, size)
            if reason is not None:
                logger.debug("Skipping %s (%s)", rel_path, reason)
                counter = SKIP_COUNTERS[reason]
                setattr(self.stats, counter, getattr(self.stats, counter) + 1)
                continue

            selected.append(FileInfo(path=file_path, relative_path=rel_path, size_bytes=size))

        yield from sorted(selected, key=lambda info: info.relative_path)

    def _usable(self, entry: os.DirEntry) -> bool:
        if not entry.is_symlink():
            return True
        if not self.follow_symlinks:
            return False
        try:
            return Path(entry.path).resolve(strict=True).exists()
        except (OSError, RuntimeError):
            return False

    def _walk_files(self) -> Generator[Path, None, None]:
        """Depth-first walk with os.scandir, pruning DEFAULT_IGNORE_DIRS."""
        pending = [self.root_path]

        while pending:
            directory = pending.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug("Cannot list %s: %s", directory, e)
                continue

            subdirs: list[Path] = []
            for entry in entries:
                try:
                    if not self._usable(entry):
                        continue
                    # Symlinked entries keep their link path
                    if entry.is_dir(follow_symlinks=self.follow_symlinks):
                        if entry.name not in DEFAULT_IGNORE_DIRS:
                            subdirs.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=self.follow_symlinks):
                        yield Path(entry.path)
                except OSError:
                    continue

            # Reversed so that pop() visits subdirectories in name order
            pending.extend(reversed(subdirs))


def discover_files(
    root_path: Path,
    exclude_globs: set[str] | None = None,
    max_file_bytes: int = 1_048_576,
    respect_gitignore: bool = True,
    follow_symlinks: bool = False,
) -> tuple[list[FileInfo], ScanStats]:
    """Return the scannable files of a tree, sorted, with skip statistics."""
    scanner = FileScanner(
        root_path,
        exclude_globs=exclude_globs,
        max_file_bytes=max_file_bytes,
        respect_gitignore=respect_gitignore,
        follow_symlinks=follow_symlinks,
    )
    return list(scanner.scan()), scanner.stats
