"""Built-in secret patterns: named regexes with severity, category and known placeholders.

``PATTERNS`` is built once at import and never mutated, so every worker
thread reads it without locking.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from secretscan.errors import ConfigurationError
from secretscan.scanner.models import Category, Severity

if TYPE_CHECKING:
    from secretscan.config import ScanConfiguration


@dataclass(frozen=True)
class Pattern:
    """A detection pattern with compiled regex and metadata.

    When the regex has a capture group, group 1 is the secret value;
    otherwise the whole match is. A match whose value contains any
    ``false_positive_indicators`` entry (case-insensitive) is discarded. A
    non-empty ``context_keywords`` makes the pattern fire only when one of
    the keywords appears on the matched line.
    """

    name: str
    regex: re.Pattern[str]
    severity: Severity
    category: Category
    confidence: float = 0.8
    description: str = ""
    false_positive_indicators: tuple[str, ...] = ()
    context_keywords: tuple[str, ...] = ()


_PLACEHOLDERS = (
    "example",
    "sample",
    "dummy",
    "placeholder",
    "changeme",
    "change_me",
    "your_",
    "your-",
    "xxxxxx",
    "${",
    "{{",
    "<",
)


def compile_pattern(
    name: str,
    regex: str,
    severity: Severity = Severity.HIGH,
    category: Category = Category.GENERIC,
    confidence: float = 0.8,
    description: str = "",
    false_positive_indicators: Iterable[str] = (),
    context_keywords: Iterable[str] = (),
) -> Pattern:
    """Compile a pattern definition, reporting bad regexes as configuration errors."""
    try:
        compiled = re.compile(regex)
    except re.error as e:
        raise ConfigurationError(f"patterns.{name}", f"invalid regex: {e}") from e
    if not 0.0 <= confidence <= 1.0:
        raise ConfigurationError(f"patterns.{name}", "confidence must be within [0, 1]")
    return Pattern(
        name=name,
        regex=compiled,
        severity=severity,
        category=category,
        confidence=confidence,
        description=description,
        false_positive_indicators=tuple(false_positive_indicators),
        context_keywords=tuple(k.lower() for k in context_keywords),
    )


PATTERNS: tuple[Pattern, ...] = (
    compile_pattern(
        "aws_access_key_id",
        r"\b((?:AKIA|ASIA|AGPA|AIDA|AROA|ANPA|ANVA|AIPA)[0-9A-Z]{16})\b",
        Severity.CRITICAL,
        Category.CLOUD_CREDENTIAL,
        0.9,
        "Amazon Web Services access key ID",
        false_positive_indicators=("EXAMPLE",),
    ),
    compile_pattern(
        "aws_secret_access_key",
        r"(?i)aws.{0,20}?(?:secret|key).{0,20}?[=:]\s*[\"']?([A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])",
        Severity.CRITICAL,
        Category.CLOUD_CREDENTIAL,
        0.85,
        "Amazon Web Services secret access key",
        false_positive_indicators=("EXAMPLE",),
    ),
    compile_pattern(
        "azure_storage_account_key",
        r"AccountKey=([A-Za-z0-9+/=]{86,88})",
        Severity.CRITICAL,
        Category.CLOUD_CREDENTIAL,
        0.9,
        "Azure storage account key in a connection string",
    ),
    compile_pattern(
        "gcp_api_key",
        r"\b(AIza[0-9A-Za-z_\-]{35})(?![0-9A-Za-z_\-])",
        Severity.HIGH,
        Category.API_KEY,
        0.9,
        "Google API key",
    ),
    compile_pattern(
        "gcp_service_account",
        r"\"type\"\s*:\s*\"service_account\"",
        Severity.HIGH,
        Category.CLOUD_CREDENTIAL,
        0.7,
        "Google Cloud service account key file",
    ),
    compile_pattern(
        "github_token",
        r"\b((?:ghp|gho|ghu|ghs|ghr)_[0-9A-Za-z]{36})\b",
        Severity.CRITICAL,
        Category.TOKEN,
        0.95,
        "GitHub personal access, OAuth, app or refresh token",
    ),
    compile_pattern(
        "github_fine_grained_token",
        r"\b(github_pat_[0-9A-Za-z_]{82})\b",
        Severity.CRITICAL,
        Category.TOKEN,
        0.95,
        "GitHub fine-grained personal access token",
    ),
    compile_pattern(
        "gitlab_token",
        r"\b(glpat-[0-9A-Za-z_\-]{20})(?![0-9A-Za-z_\-])",
        Severity.CRITICAL,
        Category.TOKEN,
        0.9,
        "GitLab personal access token",
    ),
    compile_pattern(
        "slack_token",
        r"\b(xox[abprs]-[0-9A-Za-z\-]{10,72})",
        Severity.HIGH,
        Category.TOKEN,
        0.9,
        "Slack bot, user or app token",
    ),
    compile_pattern(
        "slack_webhook",
        r"(https://hooks\.slack\.com/services/T[0-9A-Z]{8,12}/B[0-9A-Z]{8,12}/[0-9A-Za-z]{24})",
        Severity.HIGH,
        Category.TOKEN,
        0.9,
        "Slack incoming webhook URL",
    ),
    compile_pattern(
        "stripe_secret_key",
        r"\b((?:sk|rk)_live_[0-9A-Za-z]{24,99})\b",
        Severity.CRITICAL,
        Category.API_KEY,
        0.95,
        "Stripe live secret or restricted key",
    ),
    compile_pattern(
        "openai_api_key",
        r"\b(sk-(?:proj-)?[A-Za-z0-9_\-]{32,})",
        Severity.HIGH,
        Category.API_KEY,
        0.8,
        "OpenAI API key",
        false_positive_indicators=_PLACEHOLDERS,
    ),
    compile_pattern(
        "sendgrid_api_key",
        r"\b(SG\.[0-9A-Za-z_\-]{22}\.[0-9A-Za-z_\-]{43})",
        Severity.HIGH,
        Category.API_KEY,
        0.95,
        "SendGrid API key",
    ),
    compile_pattern(
        "twilio_api_key",
        r"\b(SK[0-9a-fA-F]{32})\b",
        Severity.HIGH,
        Category.API_KEY,
        0.7,
        "Twilio API key SID",
    ),
    compile_pattern(
        "npm_token",
        r"\b(npm_[0-9A-Za-z]{36})\b",
        Severity.HIGH,
        Category.TOKEN,
        0.9,
        "npm access token",
    ),
    compile_pattern(
        "pypi_token",
        r"\b(pypi-AgEIcHlwaS5vcmc[0-9A-Za-z_\-]{50,})",
        Severity.HIGH,
        Category.TOKEN,
        0.95,
        "PyPI upload token",
    ),
    compile_pattern(
        "private_key",
        r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |ENCRYPTED |PGP )?PRIVATE KEY(?: BLOCK)?-----"
        r"[\s\S]*?"
        r"-----END (?:RSA |EC |DSA |OPENSSH |ENCRYPTED |PGP )?PRIVATE KEY(?: BLOCK)?-----",
        Severity.CRITICAL,
        Category.CRYPTO_KEY,
        0.95,
        "PEM or PGP private key block",
    ),
    compile_pattern(
        "jwt",
        r"\b(eyJ[A-Za-z0-9_\-]{10,}\.eyJ[A-Za-z0-9_\-]{10,}\.[A-Za-z0-9_\-]{10,})",
        Severity.MEDIUM,
        Category.TOKEN,
        0.7,
        "JSON Web Token",
    ),
    compile_pattern(
        "database_url",
        r"\b((?:postgres(?:ql)?|mysql|mariadb|mssql|mongodb(?:\+srv)?|rediss?|amqps?)"
        r"://[^\s:/@'\"]+:[^\s@'\"]+@[^\s'\"]+)",
        Severity.HIGH,
        Category.DATABASE,
        0.85,
        "Database connection string with embedded credentials",
        false_positive_indicators=(
            "user:pass@",
            "username:password@",
            "user:password@",
            "${",
            "<password>",
            "example.com",
        ),
    ),
    compile_pattern(
        "jdbc_password",
        r"(?i)(jdbc:[a-z0-9]+:[^\s'\"]*password=[^\s&;'\"]+)",
        Severity.HIGH,
        Category.DATABASE,
        0.8,
        "JDBC URL with an inline password",
        false_positive_indicators=("password=${", "password=<"),
    ),
    compile_pattern(
        "basic_auth_url",
        r"\bhttps?://[^\s:/@'\"]+:([^\s:/@'\"]{3,})@[^\s'\"]+",
        Severity.MEDIUM,
        Category.PASSWORD,
        0.7,
        "Credentials embedded in an HTTP URL",
        false_positive_indicators=_PLACEHOLDERS + ("password", "pass"),
    ),
    compile_pattern(
        "generic_password",
        r"(?i)\b(?:password|passwd|pwd)[\"']?\s*[:=]\s*[\"']([^\s\"']{8,})[\"']",
        Severity.MEDIUM,
        Category.PASSWORD,
        0.6,
        "Password assigned to a string literal",
        false_positive_indicators=_PLACEHOLDERS + ("password", "secret", "test"),
    ),
    compile_pattern(
        "generic_api_key",
        r"(?i)\b(?:api[_-]?key|apikey|access[_-]?key)[\"']?\s*[:=]\s*[\"']([0-9A-Za-z_\-]{16,})[\"']",
        Severity.MEDIUM,
        Category.API_KEY,
        0.7,
        "API key assigned to a string literal",
        false_positive_indicators=_PLACEHOLDERS + ("test",),
    ),
)


def active_patterns(config: ScanConfiguration) -> tuple[Pattern, ...]:
    """Built-in plus custom patterns, narrowed by the enabled/disabled sets."""
    patterns = PATTERNS + tuple(config.custom_patterns)
    selected = []
    for pattern in patterns:
        if config.enabled_patterns and pattern.name not in config.enabled_patterns:
            continue
        if pattern.name in config.disabled_patterns:
            continue
        selected.append(pattern)
    return tuple(selected)


def pattern_names() -> list[str]:
    return [p.name for p in PATTERNS]
