"""
Detection rules for secret-sieve.

Rules come in two kinds:
- Pattern rules: a compiled regex for a known credential format with a fixed
  confidence.
- Heuristic rules: a small pure function that combines keyword proximity and
  entropy into a variable confidence.

ORDER MATTERS: the table is evaluated top to bottom and, for any given token,
the first pattern rule that matches it wins. Vendor-specific formats therefore
come before generic ones, so a Slack webhook is reported as SLACK_WEBHOOK
rather than as a bare URL credential.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .entropy import (
    ENTROPY_THRESHOLD,
    MIN_TOKEN_LENGTH,
    entropy_score,
    normalized_entropy,
)


class RuleKind(str, Enum):
    """Tag for the two rule variants."""

    PATTERN = "pattern"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class RuleMatch:
    """What one detector reports for one token on a line."""

    matched: bool
    score: int
    reason: str
    span: tuple[int, int] = (0, 0)
    text: str = field(default="", repr=False)


NO_MATCH = RuleMatch(matched=False, score=0, reason="")


@dataclass(frozen=True)
class Rule:
    """A named detector."""

    id: str
    kind: RuleKind
    confidence_base: int
    reason: str
    pattern: re.Pattern[str] | None = None
    # Heuristic detector: (line, file_path) -> matches
    detector: Callable[[str, str], list[RuleMatch]] | None = None

    def find(self, line: str, file_path: str = "") -> list[RuleMatch]:
        """Return every match of this rule on a line."""
        if self.kind is RuleKind.PATTERN:
            return _pattern_matches(self, line)
        if self.detector is None:
            return []
        return self.detector(line, file_path)

    def matcher(self, text: str) -> bool:
        """Check whether this rule fires anywhere in ``text``."""
        return any(m.matched for m in self.find(text))


def _pattern_matches(rule: Rule, line: str) -> list[RuleMatch]:
    """Pattern rules report the named ``secret`` group when present, else the whole match."""
    if rule.pattern is None:
        return []
    has_group = "secret" in rule.pattern.groupindex
    matches = []
    for m in rule.pattern.finditer(line):
        if has_group and m.group("secret") is not None:
            start, end = m.span("secret")
        else:
            start, end = m.span(0)
        if start == end:
            continue
        matches.append(RuleMatch(
            matched=True,
            score=rule.confidence_base,
            reason=rule.reason,
            span=(start, end),
            text=line[start:end],
        ))
    return matches


def pattern_rule(rule_id: str, pattern: str, confidence: int, reason: str) -> Rule:
    """Build a pattern rule from a regex source string."""
    return Rule(
        id=rule_id,
        kind=RuleKind.PATTERN,
        confidence_base=confidence,
        reason=reason,
        pattern=re.compile(pattern),
    )


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------

# Key names that imply the value is a secret
SUSPECT_KEYS = re.compile(
    r"(?i)(secret|token|passw(?:or)?d|pwd|credential|api[_\-.]?key|private[_\-.]?key"
    r"|access[_\-.]?key|auth[_\-.]?key|(?:^|[_\-.])key$)"
)

# key = "value", key: 'value', "key": "value", KEY=value, key := value, key => value
ASSIGNMENT = re.compile(
    r"""(?P<key>[A-Za-z_][A-Za-z0-9_.\-]*)["']?\s*(?::=|=>|[:=])\s*"""
    r"""(?:(?P<quote>["'`])(?P<qval>[^"'`\r\n]+)(?P=quote)"""
    r"""|(?P<val>[^\s"'`,;=(){}\[\]<>][^\s"'`,;(){}\[\]<>]*))"""
)

# Quoted literals with no whitespace inside
QUOTED_LITERAL = re.compile(r"""(?P<quote>["'`])(?P<val>[^"'`\s]{16,})(?P=quote)""")

# Values whose prefix marks them as API keys even without a vendor pattern
KEYLIKE_PREFIX = re.compile(r"^(?:sk|pk|rk|ak)[-_][A-Za-z0-9]", re.IGNORECASE)

# Unquoted values that are references to other names, not literals
IDENTIFIER_REFERENCE = re.compile(r"^(?:[a-z_][a-z0-9_]*|[A-Z_][A-Z0-9_]*)$|\.")

# Path fragments that mark test, mock or example code
TEST_PATH_MARKERS = ("test", "spec", "mock", "fixture", "example")

# Values commonly found in safe content (UUIDs, hashes, versions)
SAFE_VALUE_PATTERNS = [
    re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I),
    re.compile(r"^[0-9a-f]{40}$"),
    re.compile(r"^[0-9a-f]{32}$"),
    re.compile(r"^[0-9a-f]{64}$"),
    re.compile(r"^\d+\.\d+\.\d+[\w\-+.]*$"),
    re.compile(r"^(?:https?|file)://\S+$"),
    re.compile(r"^[\w.\-]*(?:/[\w.\-]+)+/?$"),
]

TEST_PATH_PENALTY = 40


def is_safe_value(s: str) -> bool:
    """Check if a string matches known safe patterns (UUIDs, hashes, paths)."""
    return any(pattern.match(s) for pattern in SAFE_VALUE_PATTERNS)


def is_test_path(file_path: str) -> bool:
    """Check if a path looks like test, mock or example code."""
    lowered = file_path.lower()
    return any(marker in lowered for marker in TEST_PATH_MARKERS)


def is_name_reference(value: str) -> bool:
    """
    Check if an unquoted value reads as a variable or attribute name.

    Dotted names, snake_case names and short names count as references.
    Other single-case tokens only do when they are not random enough to be
    a literal key, so unquoted .env values are still scored.
    """
    if not IDENTIFIER_REFERENCE.search(value):
        return False
    if "." in value or "_" in value or len(value) < MIN_TOKEN_LENGTH:
        return True
    return entropy_score(value, corroborated=True) <= ENTROPY_THRESHOLD


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def score_assignment(key: str, value: str, quoted: bool, file_path: str = "") -> RuleMatch:
    """
    Score a key/value assignment.

    Returns NO_MATCH unless the key name implies a secret. The score starts at
    40 for the keyword and moves with the value's length, entropy and shape.
    """
    if not SUSPECT_KEYS.search(key):
        return NO_MATCH
    if not quoted and is_name_reference(value):
        return NO_MATCH

    score = 40
    reasons = [f"Variable '{key}' implies a secret"]

    if len(value) < 8:
        score -= 20
        reasons.append("Value is very short")
    elif entropy_score(value, corroborated=True) > ENTROPY_THRESHOLD:
        score += 40
        reasons.append("Value has high entropy")
    elif len(value) >= 20 and normalized_entropy(value) > 0.4:
        score += 20
        reasons.append("Value has moderate entropy and length")

    if KEYLIKE_PREFIX.match(value):
        score += 20
        reasons.append("Value looks like an API key")

    if file_path and is_test_path(file_path):
        score -= TEST_PATH_PENALTY
        reasons.append("File appears to be a test/mock")

    return RuleMatch(matched=True, score=_clamp(score), reason=", ".join(reasons))


def detect_suspect_assignment(line: str, file_path: str = "") -> list[RuleMatch]:
    """Keyword-proximity heuristic: secret-like key names assigned a literal value."""
    matches = []
    for m in ASSIGNMENT.finditer(line):
        if m.group("qval") is not None:
            group, quoted = "qval", True
        else:
            group, quoted = "val", False
        value = m.group(group)
        result = score_assignment(m.group("key"), value, quoted, file_path)
        if not result.matched:
            continue
        start, end = m.span(group)
        matches.append(RuleMatch(
            matched=True,
            score=result.score,
            reason=result.reason,
            span=(start, end),
            text=value,
        ))
    return matches


def detect_high_entropy_string(line: str, file_path: str = "") -> list[RuleMatch]:
    """Uncorroborated heuristic: quoted literals that are random enough to be keys."""
    matches = []
    for m in QUOTED_LITERAL.finditer(line):
        value = m.group("val")
        if is_safe_value(value):
            continue
        ent = entropy_score(value, corroborated=False, min_length=MIN_TOKEN_LENGTH)
        if ent <= ENTROPY_THRESHOLD:
            continue
        score = min(65, 30 + round(35 * ent))
        reasons = [f"Quoted literal has high entropy ({ent:.2f})"]
        if file_path and is_test_path(file_path):
            score -= TEST_PATH_PENALTY
            reasons.append("File appears to be a test/mock")
        start, end = m.span("val")
        matches.append(RuleMatch(
            matched=True,
            score=_clamp(score),
            reason=", ".join(reasons),
            span=(start, end),
            text=value,
        ))
    return matches


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

DEFAULT_RULES: tuple[Rule, ...] = (
    # Private keys
    pattern_rule(
        "PRIVATE_KEY_BLOCK",
        r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |PGP |ENCRYPTED )?PRIVATE KEY(?: BLOCK)?-----",
        100,
        "Found private key block",
    ),

    # AWS
    pattern_rule(
        "AWS_ACCESS_KEY",
        r"(?<![A-Za-z0-9])(?:AKIA|ASIA|ABIA|ACCA)[0-9A-Z]{16}[0-9A-Za-z]*",
        95,
        "Found AWS access key id",
    ),
    pattern_rule(
        "AWS_SECRET_KEY",
        r"(?i)aws[_\-]?secret[_\-]?(?:access[_\-]?)?key[\"']?\s*[:=]\s*[\"']?"
        r"(?P<secret>[A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])",
        95,
        "Found AWS secret access key assignment",
    ),

    # GitHub / GitLab
    pattern_rule(
        "GITHUB_TOKEN",
        r"\b(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{36}\b",
        95,
        "Found GitHub token",
    ),
    pattern_rule(
        "GITHUB_FINE_GRAINED_TOKEN",
        r"\bgithub_pat_[A-Za-z0-9_]{60,}",
        95,
        "Found GitHub fine-grained token",
    ),
    pattern_rule(
        "GITLAB_TOKEN",
        r"\bglpat-[A-Za-z0-9\-_]{20,}",
        95,
        "Found GitLab personal access token",
    ),

    # Slack
    pattern_rule(
        "SLACK_WEBHOOK",
        r"https://hooks\.slack\.com/services/T[A-Z0-9]+/B[A-Z0-9]+/[A-Za-z0-9]+",
        90,
        "Found Slack webhook URL",
    ),
    pattern_rule(
        "SLACK_TOKEN",
        r"\bxox[baprs]-[A-Za-z0-9\-]{10,}",
        90,
        "Found Slack token",
    ),

    # Payment / SaaS providers
    pattern_rule(
        "STRIPE_KEY",
        r"\b(?:sk|rk)_live_[0-9A-Za-z]{16,}",
        95,
        "Found Stripe live key",
    ),
    pattern_rule(
        "GOOGLE_API_KEY",
        r"\bAIza[0-9A-Za-z\-_]{35,}",
        90,
        "Found Google API key",
    ),
    pattern_rule(
        "SENDGRID_KEY",
        r"\bSG\.[A-Za-z0-9\-_]{22,}\.[A-Za-z0-9\-_]{22,}",
        95,
        "Found SendGrid API key",
    ),
    pattern_rule(
        "NPM_TOKEN",
        r"\bnpm_[A-Za-z0-9]{36}\b",
        90,
        "Found npm access token",
    ),
    pattern_rule(
        "PYPI_TOKEN",
        r"\bpypi-[A-Za-z0-9\-_]{50,}",
        90,
        "Found PyPI upload token",
    ),
    pattern_rule(
        "OPENAI_STYLE_KEY",
        r"\bsk-(?:proj-)?[A-Za-z0-9_\-]{20,}",
        85,
        "Found sk- prefixed API key",
    ),

    # Context formats
    pattern_rule(
        "BEARER_TOKEN",
        r"(?i)Authorization:\s*Bearer\s+(?P<secret>[A-Za-z0-9_\-.=+/]{16,})",
        85,
        "Found bearer token in Authorization header",
    ),
    pattern_rule(
        "JWT_TOKEN",
        r"\beyJ[A-Za-z0-9_\-]+\.eyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+",
        80,
        "Found JSON Web Token",
    ),
    pattern_rule(
        "CONNECTION_STRING",
        r"(?i)\b(?:postgres(?:ql)?|mysql|mariadb|mongodb(?:\+srv)?|rediss?|amqps?|mssql)://"
        r"[^\s:/@\"']+:(?P<secret>[^\s@/\"']+)@",
        90,
        "Found connection string with embedded password",
    ),

    # Heuristics
    Rule(
        id="SUSPECT_ASSIGNMENT",
        kind=RuleKind.HEURISTIC,
        confidence_base=40,
        reason="Secret-like variable assigned a literal value",
        detector=detect_suspect_assignment,
    ),
    Rule(
        id="HIGH_ENTROPY_STRING",
        kind=RuleKind.HEURISTIC,
        confidence_base=30,
        reason="High-entropy quoted literal",
        detector=detect_high_entropy_string,
    ),
)

RULES_BY_ID: dict[str, Rule] = {rule.id: rule for rule in DEFAULT_RULES}


def get_rule(rule_id: str) -> Rule:
    """Look up a rule by id."""
    try:
        return RULES_BY_ID[rule_id]
    except KeyError:
        raise KeyError(f"Unknown rule id: {rule_id}") from None


def select_rules(disabled: set[str] | frozenset[str] = frozenset()) -> tuple[Rule, ...]:
    """Return the default table minus disabled rule ids, order preserved."""
    if not disabled:
        return DEFAULT_RULES
    return tuple(rule for rule in DEFAULT_RULES if rule.id not in disabled)
