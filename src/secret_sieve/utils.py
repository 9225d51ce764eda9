"""
Utility functions for secret-sieve.

Includes encoding detection, binary probing, safe file reading, path
normalization and secret masking.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

import chardet

# Fixed width of every masked secret preview
MASK_WIDTH = 12

# Characters of the real value shown at each end of a long enough secret
MASK_REVEAL = 3


def detect_encoding_bytes(sample: bytes) -> str:
    """
    Detect the encoding of raw bytes.

    Strategy:
    1. Check for BOM markers first
    2. Try UTF-8 (most common for modern source files)
    3. Fall back to chardet only if UTF-8 fails

    Returns:
        Detected encoding name (e.g., 'utf-8', 'latin-1')
    """
    if not sample:
        return "utf-8"

    # Check for BOM markers first (most reliable)
    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if sample.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if sample.startswith(b"\xfe\xff"):
        return "utf-16-be"

    try:
        sample.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass

    result = chardet.detect(sample)
    encoding = result.get("encoding")

    if encoding is None:
        return "utf-8"

    encoding = encoding.lower()
    if encoding in ("ascii", "utf-8", "utf8"):
        return "utf-8"

    return encoding


def detect_encoding(file_path: Path, sample_size: int = 8192) -> str:
    """Detect the encoding of a file from its first ``sample_size`` bytes."""
    try:
        with open(file_path, "rb") as f:
            sample = f.read(sample_size)
    except OSError:
        return "utf-8"
    return detect_encoding_bytes(sample)


def is_binary_file(file_path: Path, sample_size: int = 8192) -> bool:
    """
    Check if a file appears to be binary.

    A null byte anywhere in the first ``sample_size`` bytes marks the file as
    binary. Unreadable files are reported as binary so they are skipped.
    """
    try:
        with open(file_path, "rb") as f:
            sample = f.read(sample_size)
    except OSError:
        return True

    return b"\x00" in sample


def decode_bytes(data: bytes, strict: bool = False) -> tuple[str, str]:
    """
    Decode file bytes, detecting the encoding.

    Args:
        data: Raw file content
        strict: Raise UnicodeDecodeError instead of substituting bad bytes

    Returns:
        Tuple of (text, encoding_used)
    """
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        pass

    encoding = detect_encoding_bytes(data)
    errors = "strict" if strict else "replace"
    try:
        return data.decode(encoding, errors=errors), encoding
    except LookupError:
        # chardet named a codec Python does not ship
        return data.decode("utf-8", errors=errors), "utf-8"


def read_file_safe(file_path: Path, max_bytes: int | None = None) -> tuple[str, str]:
    """
    Read a text file with encoding detection.

    Undecodable bytes are replaced rather than raising. OSError (missing file,
    permission denied) propagates to the caller.

    Returns:
        Tuple of (content, encoding_used)
    """
    with open(file_path, "rb") as f:
        data = f.read(max_bytes) if max_bytes is not None else f.read()
    return decode_bytes(data)


def split_lines_keepends(content: str) -> list[str]:
    """
    Split text into lines, keeping each line's terminator.

    Unlike str.splitlines this only splits on \\n, \\r\\n and \\r, so form feeds
    and other Unicode separators stay inside their line.
    """
    lines: list[str] = []
    start = 0
    i = 0
    length = len(content)
    while i < length:
        char = content[i]
        if char == "\n":
            lines.append(content[start:i + 1])
            start = i + 1
        elif char == "\r":
            if i + 1 < length and content[i + 1] == "\n":
                i += 1
            lines.append(content[start:i + 1])
            start = i + 1
        i += 1
    if start < length:
        lines.append(content[start:])
    return lines


def strip_line_ending(line: str) -> tuple[str, str]:
    """Split a line into (body, terminator)."""
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith("\n") or line.endswith("\r"):
        return line[:-1], line[-1]
    return line, ""


def normalize_path(path: str) -> str:
    """Normalize a path for consistent comparison (use forward slashes)."""
    return path.replace("\\", "/")


def mask_secret(value: str) -> str:
    """
    Render a secret as a fixed-width masked preview.

    Values of at least MASK_WIDTH characters keep their first and last
    MASK_REVEAL characters; shorter values are fully masked so that nothing
    meaningful leaks.
    """
    if len(value) < MASK_WIDTH:
        return "*" * MASK_WIDTH
    hidden = MASK_WIDTH - 2 * MASK_REVEAL
    return f"{value[:MASK_REVEAL]}{'*' * hidden}{value[-MASK_REVEAL:]}"


def atomic_write_bytes(file_path: Path, data: bytes) -> None:
    """
    Replace a file's content atomically.

    The data goes to a temp file in the same directory, is fsynced, takes over
    the original's permission bits and is renamed onto the target. On any
    failure the temp file is removed and the target is left untouched.
    """
    file_path = Path(file_path)
    fd, tmp_name = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if file_path.exists():
            shutil.copymode(file_path, tmp_name)
        os.replace(tmp_name, file_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
