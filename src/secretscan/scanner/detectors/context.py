"""Context-aware detector — suspicious names assigned suspicious values.

Re-scans assignment-like constructs (``name = value``, ``name: value``,
``name := value``, ``name => value``) and flags those whose identifier uses
secret vocabulary and whose value is long and random enough. Each candidate
is classified as comment, string literal, test file or config key, and the
classification adjusts confidence:

- inside a comment: suppressed, or confidence x0.5 with ``analyze_comments``
- config-file key: confidence x1.2 (capped) and severity at least HIGH

Test-file relaxation is applied once per merged finding by
:func:`apply_context_adjustments`, for every detector's findings alike.
"""

from __future__ import annotations

import re

from secretscan.config import ScanConfiguration
from secretscan.scanner.detectors.base import build_finding, is_config_file
from secretscan.scanner.entropy import shannon_entropy
from secretscan.scanner.models import Category, Finding, ScanContext, Severity

COMMENT_PENALTY = 0.5
DETECTED_COMMENT_PENALTY = 0.7
CONFIG_KEY_BOOST = 1.2
TEST_FILE_PENALTY = 0.5

_ASSIGNMENT = re.compile(
    r"""(?P<name>[A-Za-z_$][\w.\-$]*)["']?\s*"""
    r"""(?::\s*[A-Za-z_][\w<>\[\]?.]*\s*(?==))?"""
    r"""(?P<op>:=|=>|=(?![=>])|:(?![:=]))\s*"""
    r"""(?:"(?P<dq>[^"\n]*)"|'(?P<sq>[^'\n]*)'|`(?P<bq>[^`\n]*)`|(?P<bare>[^\s"'`,;#]+))"""
)

_WORD = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")

_PASSWORD_WORDS = frozenset({"password", "passwd", "pwd", "pass", "passphrase"})
_TOKEN_WORDS = frozenset({"token", "bearer", "jwt", "auth", "authorization"})
_KEY_WORDS = frozenset({"key", "apikey", "secretkey", "accesskey", "privatekey"})
_SECRET_WORDS = frozenset({"secret", "credential", "credentials", "creds"})

# A trailing word like these names metadata about a secret, not the secret.
_METADATA_SUFFIXES = frozenset(
    {
        "url", "uri", "name", "id", "ids", "length", "len", "size", "count",
        "type", "file", "path", "dir", "field", "prompt", "label", "hint",
        "format", "header", "policy", "regex", "pattern", "min", "max",
        "expiry", "expires", "timeout", "ttl", "endpoint", "provider",
    }
)

_PLACEHOLDER_MARKERS = (
    "example",
    "dummy",
    "changeme",
    "change_me",
    "placeholder",
    "your_",
    "your-",
    "xxxx",
    "****",
    "redacted",
    "sample",
    "todo",
    "fixme",
)
_REFERENCE_MARKERS = ("environ", "getenv", "process.env", "env(", "secrets.", "vault:")
_REFERENCE_PREFIXES = ("$", "%(", "{{", "<", "@", "#{")

_RULES = {
    Category.PASSWORD: "context-password",
    Category.TOKEN: "context-token",
    Category.API_KEY: "context-api-key",
    Category.GENERIC: "context-secret",
}


def split_identifier(name: str) -> list[str]:
    """``spring.datasource.apiSecret`` -> ``['spring', 'datasource', 'api', 'secret']``."""
    words = []
    for part in re.split(r"[._\-$]+", name):
        words.extend(w.lower() for w in _WORD.findall(part))
    return words


def classify_name(name: str) -> Category | None:
    """Secret category implied by an identifier, or None when it is not suspicious."""
    words = split_identifier(name)
    if not words or words[-1] in _METADATA_SUFFIXES:
        return None
    vocabulary = set(words)
    if vocabulary & _PASSWORD_WORDS:
        return Category.PASSWORD
    if vocabulary & _TOKEN_WORDS:
        return Category.TOKEN
    if vocabulary & _KEY_WORDS:
        return Category.API_KEY
    if vocabulary & _SECRET_WORDS:
        return Category.GENERIC
    return None


def is_placeholder(value: str) -> bool:
    """Template references, environment lookups and well-known dummy values."""
    lowered = value.lower()
    if value.startswith(_REFERENCE_PREFIXES):
        return True
    if any(marker in lowered for marker in _REFERENCE_MARKERS):
        return True
    return any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


class ContextAwareDetector:
    """Assignment scanner weighing identifier vocabulary against its surroundings."""

    name = "context"

    def __init__(
        self,
        min_length: int = 8,
        min_entropy: float = 3.0,
        analyze_comments: bool = False,
    ) -> None:
        self.min_length = min_length
        self.min_entropy = min_entropy
        self.analyze_comments = analyze_comments

    @classmethod
    def from_config(cls, config: ScanConfiguration) -> ContextAwareDetector:
        return cls(
            min_length=config.context_min_length,
            min_entropy=config.context_min_entropy,
            analyze_comments=config.analyze_comments,
        )

    def detect(self, context: ScanContext) -> list[Finding]:
        findings: list[Finding] = []
        config_file = is_config_file(context.extension)
        yaml_file = context.extension in (".yml", ".yaml")
        key_stack: list[tuple[int, str]] = []

        for index, raw_line in enumerate(context.lines):
            context.check_deadline()
            line = raw_line.rstrip("\r")
            line_start = context.line_starts[index]
            if yaml_file:
                _track_yaml_keys(line, key_stack)

            for match in _ASSIGNMENT.finditer(line):
                finding = self._candidate(
                    context, match, line_start, config_file, key_stack if yaml_file else None
                )
                if finding is not None:
                    findings.append(finding)
        return findings

    def _candidate(
        self,
        context: ScanContext,
        match: re.Match[str],
        line_start: int,
        config_file: bool,
        key_stack: list[tuple[int, str]] | None,
    ) -> Finding | None:
        name = match.group("name")
        category = classify_name(name)
        if category is None:
            return None

        group = next(g for g in ("dq", "sq", "bq", "bare") if match.group(g) is not None)
        # Bare values in code are expressions, not literals
        if group == "bare" and not config_file:
            return None
        raw = match.group(group)
        value = raw.strip()
        if len(value) < self.min_length or is_placeholder(value):
            return None
        entropy = shannon_entropy(value)
        if entropy < self.min_entropy:
            return None

        start = line_start + match.start(group) + len(raw) - len(raw.lstrip())
        in_comment = context.syntax.in_comment(start)
        if in_comment and not self.analyze_comments:
            return None

        variable = name
        if key_stack:
            variable = ".".join(key for _, key in key_stack)
        config_key = config_file or _is_dotted_key(name)

        severity = Severity.HIGH if category is not Category.GENERIC else Severity.MEDIUM
        confidence = 0.6 + min(0.3, (entropy - 3.0) * 0.15)
        if in_comment:
            confidence *= COMMENT_PENALTY
        if config_key:
            confidence = min(1.0, confidence * CONFIG_KEY_BOOST)
            if severity.rank < Severity.HIGH.rank:
                severity = Severity.HIGH

        return build_finding(
            context,
            start,
            value,
            detector=self.name,
            rule=_RULES[category],
            severity=severity,
            confidence=confidence,
            category=category,
            variable=variable,
            in_config_file=config_key,
        )


def _is_dotted_key(name: str) -> bool:
    parts = name.split(".")
    return len(parts) >= 3 and parts[0] not in ("self", "this", "cls")


def _track_yaml_keys(line: str, stack: list[tuple[int, str]]) -> None:
    stripped = line.lstrip(" ")
    if not stripped or stripped.startswith("#"):
        return
    key_match = re.match(r"(?:-\s+)?[\"']?([\w.\-]+)[\"']?\s*:(?:\s|$)", stripped)
    if key_match is None:
        return
    indent = len(line) - len(stripped)
    while stack and stack[-1][0] >= indent:
        stack.pop()
    stack.append((indent, key_match.group(1)))


def apply_context_adjustments(finding: Finding, context: ScanContext) -> Finding:
    """Post-merge confidence policy, applied exactly once per merged finding.

    Pattern and entropy findings inside comments keep their severity at x0.7
    confidence. In test files with relaxed rules, severity drops one level
    (never below LOW) and confidence halves; findings are reduced, never
    suppressed.
    """
    if finding.detector != ContextAwareDetector.name and finding.context.in_comment:
        finding.confidence *= DETECTED_COMMENT_PENALTY
    if context.is_test_file and context.config.relaxed_test_rules:
        finding.severity = finding.severity.lowered()
        finding.confidence *= TEST_FILE_PENALTY
    return finding
