"""
Stable finding identity.

A fingerprint is the SHA-256 hex digest of ``rule_id|normalized value|path``.
The line number is deliberately left out so that a baselined secret stays
baselined when unrelated edits move it up or down its file.
"""

from __future__ import annotations

import hashlib
import re

from .utils import normalize_path

FINGERPRINT_PATTERN = re.compile(r"[0-9a-f]{64}")

_QUOTES = "\"'`"


def normalize_matched_text(text: str) -> str:
    """Trim surrounding whitespace and one layer of matching quotes."""
    text = text.strip()
    if len(text) >= 2 and text[0] in _QUOTES and text[-1] == text[0]:
        text = text[1:-1].strip()
    return text


def fingerprint(rule_id: str, matched_text: str, file_path: str) -> str:
    """
    Compute the fingerprint of a finding.

    Args:
        rule_id: Id of the rule that matched
        matched_text: The raw matched value
        file_path: Path of the file, relative to the scan root

    Returns:
        64-character lowercase hex digest
    """
    payload = f"{rule_id}|{normalize_matched_text(matched_text)}|{normalize_path(file_path)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_fingerprint(value: str) -> bool:
    """Check if a string has the shape of a fingerprint."""
    return FINGERPRINT_PATTERN.fullmatch(value) is not None
