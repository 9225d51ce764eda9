"""
Line scanner for secret-sieve.

Applies the rule table to a single line of text and produces raw findings.

Precedence:
- Pattern rules run first, in table order. Each token goes to the first
  pattern rule that matches it, and any pattern match on a line skips the
  heuristics for that line.
- Otherwise every heuristic runs and, per token, the highest score wins.

Known placeholders are suppressed after matching, so the rule and reason that
would have fired are still available for debug logging.
"""

from __future__ import annotations

import logging
import re

from .config import (
    DEFAULT_PLACEHOLDER,
    MAX_LINE_LENGTH,
    MIN_PLACEHOLDER_LENGTH,
    MIN_REPORT_SCORE,
    RawFinding,
)
from .rules import DEFAULT_RULES, Rule, RuleKind, RuleMatch
from .utils import normalize_path

logger = logging.getLogger(__name__)

# Whole-line placeholder conventions and inline allow markers
PLACEHOLDER_LINE_PATTERNS = [
    re.compile(r"<\s*your[-_ ][^>]*>", re.IGNORECASE),
    re.compile(r"\byour[-_ ]?(?:api[-_ ]?)?(?:key|token|secret|password)[-_ ]here\b", re.IGNORECASE),
    re.compile(r"(?:sieve:\s*allow|pragma:\s*allowlist[ -]secret|\bnosecret\b)", re.IGNORECASE),
]

# Matched values that are stand-ins rather than real credentials
DUMMY_VALUE_PATTERNS = [
    re.compile(r"^x{3,}", re.IGNORECASE),
    re.compile(r"x{6,}", re.IGNORECASE),
    re.compile(r"\*{3,}"),
    re.compile(r"\.{3,}"),
    re.compile(r"(?:changeme|change_me|placeholder|dummy|redacted|your[-_](?:token|key|secret))", re.IGNORECASE),
    re.compile(r"^(?:null|none|undefined|true|false|secret|password)$", re.IGNORECASE),
    re.compile(r"^\$\{[^}]*\}$|^\{\{.*\}\}$|^%\([^)]*\)s$|^<[^>]*>$"),
]

Candidate = tuple[Rule, RuleMatch]


def _overlaps(span: tuple[int, int], taken: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < t_end and t_start < end for t_start, t_end in taken)


def is_dummy_value(value: str) -> bool:
    """Check if a matched value is an obvious stand-in (xxx..., changeme, ${VAR})."""
    return any(pattern.search(value) for pattern in DUMMY_VALUE_PATTERNS)


class Detector:
    """
    Applies an ordered rule set to lines of text.

    A Detector is immutable after construction and safe to share between
    worker threads.
    """

    def __init__(
        self,
        rules: tuple[Rule, ...] | None = None,
        disabled_rules: set[str] | None = None,
        min_score: int = MIN_REPORT_SCORE,
        placeholder: str = DEFAULT_PLACEHOLDER,
        max_line_length: int = MAX_LINE_LENGTH,
    ):
        """
        Initialize the detector.

        Args:
            rules: Rule table to evaluate (default: the built-in table)
            disabled_rules: Rule ids to skip
            min_score: Matches scoring below this are dropped
            placeholder: Redaction token; lines containing it as a whole token
                are never reported, nor are lines containing DEFAULT_PLACEHOLDER
            max_line_length: Longer lines are treated as minified and skipped
        """
        table = rules if rules is not None else DEFAULT_RULES
        disabled = disabled_rules or set()
        self.rules = tuple(rule for rule in table if rule.id not in disabled)
        self._pattern_rules = [r for r in self.rules if r.kind is RuleKind.PATTERN]
        self._heuristic_rules = [r for r in self.rules if r.kind is RuleKind.HEURISTIC]
        self.min_score = min_score
        if len(placeholder) < MIN_PLACEHOLDER_LENGTH:
            raise ValueError(f"placeholder must be at least {MIN_PLACEHOLDER_LENGTH} characters")
        self.placeholder = placeholder
        self._placeholder_patterns = [
            re.compile(rf"(?<!\w){re.escape(token)}(?!\w)")
            for token in dict.fromkeys((placeholder, DEFAULT_PLACEHOLDER))
        ]
        self.max_line_length = max_line_length

    def candidates(self, line: str, file_path: str = "") -> list[Candidate]:
        """
        Return the matches that survive rule precedence, ordered by column.

        No placeholder or score filtering happens here.
        """
        claimed: list[Candidate] = []
        taken: list[tuple[int, int]] = []

        for rule in self._pattern_rules:
            for match in rule.find(line, file_path):
                if not _overlaps(match.span, taken):
                    claimed.append((rule, match))
                    taken.append(match.span)

        if claimed:
            return sorted(claimed, key=lambda c: c[1].span)

        order = {rule.id: idx for idx, rule in enumerate(self._heuristic_rules)}
        heuristic: list[Candidate] = []
        for rule in self._heuristic_rules:
            heuristic.extend((rule, m) for m in rule.find(line, file_path) if m.matched)

        # Highest score per token; rule order breaks ties
        heuristic.sort(key=lambda c: (-c[1].score, order[c[0].id], c[1].span))
        for rule, match in heuristic:
            if not _overlaps(match.span, taken):
                claimed.append((rule, match))
                taken.append(match.span)

        return sorted(claimed, key=lambda c: c[1].span)

    def suppression_reason(self, line: str, value: str) -> str | None:
        """Explain why a match on this line must not be reported, or None."""
        if any(pattern.search(line) for pattern in self._placeholder_patterns):
            return "line contains the redaction placeholder"
        for pattern in PLACEHOLDER_LINE_PATTERNS:
            if pattern.search(line):
                return "line matches a placeholder or allow marker"
        if is_dummy_value(value):
            return "value is a known dummy"
        return None

    def scan_line(self, file_path: str, line_number: int, content: str) -> list[RawFinding]:
        """
        Scan one line.

        Args:
            file_path: Path reported on findings (relative to the scan root)
            line_number: 1-based line number
            content: Line text without its terminator

        Returns:
            Zero or more raw findings, ordered by column
        """
        content = content.rstrip("\r\n")
        if not content or len(content) > self.max_line_length:
            return []

        file_path = normalize_path(file_path)
        findings: list[RawFinding] = []

        for rule, match in self.candidates(content, file_path):
            if match.score < self.min_score:
                continue

            reason = self.suppression_reason(content, match.text)
            if reason is not None:
                logger.debug(
                    "Suppressed %s at %s:%d (%s)", rule.id, file_path, line_number, reason
                )
                continue

            findings.append(RawFinding(
                rule_id=rule.id,
                file_path=file_path,
                line_number=line_number,
                column_span=match.span,
                matched_text=match.text,
                score=match.score,
                reason=match.reason,
            ))

        return findings


_default_detector: Detector | None = None


def get_default_detector() -> Detector:
    """Get or create the shared detector built from the default rule table."""
    global _default_detector
    if _default_detector is None:
        _default_detector = Detector()
    return _default_detector


def scan_line(
    file_path: str,
    line_number: int,
    content: str,
    rules: tuple[Rule, ...] | None = None,
) -> list[RawFinding]:
    """Scan one line with the default detector, or with a one-off detector over ``rules``."""
    detector = get_default_detector() if rules is None else Detector(rules=rules)
    return detector.scan_line(file_path, line_number, content)
