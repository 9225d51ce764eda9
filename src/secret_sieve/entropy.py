"""
Entropy scoring for candidate secret tokens.

Shannon entropy is normalized by the maximum entropy a string of the same
length can reach (log2 of its length), so the result always lies in [0, 1]
regardless of the alphabet the token is drawn from.
"""

from __future__ import annotations

import math
import re

# Tokens shorter than this are never treated as high entropy
MIN_TOKEN_LENGTH = 16

# Normalized entropy must exceed this to count as "high"
ENTROPY_THRESHOLD = 0.55

# Character classes that are common and not suspicious on their own
_SINGLE_CLASS_PATTERNS = [
    re.compile(r"^[0-9]+$"),
    re.compile(r"^[0-9a-f]+$"),
    re.compile(r"^[0-9A-F]+$"),
    re.compile(r"^[a-z]+$"),
    re.compile(r"^[A-Z]+$"),
]

# Contiguous runs of non-whitespace, non-quote characters
_TOKEN_PATTERN = re.compile(r"[^\s\"'`]+")


def shannon_entropy(s: str) -> float:
    """
    Calculate Shannon entropy of a string.

    Args:
        s: String to analyze

    Returns:
        Shannon entropy in bits per character
    """
    if not s:
        return 0.0

    freq: dict[str, int] = {}
    for char in s:
        freq[char] = freq.get(char, 0) + 1

    length = len(s)
    entropy = 0.0
    for count in freq.values():
        p = count / length
        entropy -= p * math.log2(p)

    return entropy


def normalized_entropy(s: str) -> float:
    """Shannon entropy divided by log2(len(s)), in [0, 1]."""
    if len(s) < 2:
        return 0.0
    value = shannon_entropy(s) / math.log2(len(s))
    return max(0.0, min(1.0, value))


def is_single_class(s: str) -> bool:
    """Check if a token is drawn from a single common character class (e.g. all hex)."""
    return any(pattern.match(s) for pattern in _SINGLE_CLASS_PATTERNS)


def entropy_score(
    token: str,
    corroborated: bool = False,
    min_length: int = MIN_TOKEN_LENGTH,
) -> float:
    """
    Score the randomness of a candidate token.

    Short tokens score 0 because entropy over few characters is unreliable.
    Single-class tokens (all digits, all hex, one letter case) also score 0
    unless another signal, such as a secret-like keyword, corroborates them.

    Args:
        token: Candidate token
        corroborated: Whether another heuristic already points at this token
        min_length: Minimum token length to score

    Returns:
        Normalized entropy in [0, 1], or 0.0 when the token is excluded
    """
    if len(token) < min_length:
        return 0.0
    if not corroborated and is_single_class(token):
        return 0.0
    return normalized_entropy(token)


def is_high_entropy(
    token: str,
    corroborated: bool = False,
    threshold: float = ENTROPY_THRESHOLD,
    min_length: int = MIN_TOKEN_LENGTH,
) -> bool:
    """Check if a token is long enough and random enough to look like a secret."""
    return entropy_score(token, corroborated=corroborated, min_length=min_length) > threshold


def extract_candidate_tokens(line: str) -> list[tuple[str, int, int]]:
    """
    Split a line into candidate tokens.

    Returns:
        List of (token, start, end) tuples with offsets into the line
    """
    return [(m.group(0), m.start(), m.end()) for m in _TOKEN_PATTERN.finditer(line)]
