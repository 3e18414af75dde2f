"""Shannon entropy scoring and candidate-token extraction.

All functions here are pure and hold no state, so they are shared freely
between worker threads.
"""

from __future__ import annotations

import functools
import math
import re
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass

BASE64_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/="
)
HEX_CHARS = frozenset("0123456789abcdefABCDEF")

# Empirical ceiling for secret-like tokens, used to scale confidence.
ENTROPY_CEILING = 8.0

# Pure-hex lengths of common digests (MD5, SHA-1, SHA-256).
HASH_LENGTHS = frozenset({32, 40, 64})

SECRET_KEYWORDS = ("key", "secret", "token", "password", "passwd", "pwd", "credential", "auth")

_CHARSET_REGEX = {
    "base64": r"[A-Za-z0-9+/=]",
    "hex": r"[0-9a-fA-F]",
}


@dataclass(frozen=True)
class Token:
    """A candidate substring and its offsets in the scanned content."""

    text: str
    start: int
    end: int


def shannon_entropy(token: str) -> float:
    """H = -sum(p(c) * log2(p(c))) over the token's character distribution.

    Counts are summed in sorted order so identical input always produces a
    bit-identical float. Empty input has zero entropy.
    """
    if not token:
        return 0.0
    length = len(token)
    entropy = 0.0
    for count in sorted(Counter(token).values()):
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


def is_hex(token: str) -> bool:
    return bool(token) and all(ch in HEX_CHARS for ch in token)


def iter_tokens(
    content: str,
    charset: str,
    min_length: int,
    max_length: int,
) -> Iterator[Token]:
    """Yield maximal runs of ``charset`` characters within the length bounds.

    Runs longer than ``max_length`` are skipped whole rather than split; they
    are almost always encoded blobs rather than credentials.
    """
    regex = _token_regex(charset, min_length)
    for match in regex.finditer(content):
        text = match.group(0)
        if len(text) <= max_length:
            yield Token(text=text, start=match.start(), end=match.end())


@functools.lru_cache(maxsize=32)
def _token_regex(charset: str, min_length: int) -> re.Pattern[str]:
    return re.compile(f"{_CHARSET_REGEX[charset]}{{{min_length},}}")


def is_repeating(token: str, max_distinct: int = 2) -> bool:
    """Token made of one or two characters, e.g. ``aaaa`` or ``abab``."""
    return len(set(token)) <= max_distinct


def is_sequential(token: str) -> bool:
    """Monotonic run such as ``abcdef`` or ``987654``."""
    if len(token) < 3:
        return False
    steps = {ord(b) - ord(a) for a, b in zip(token, token[1:])}
    return steps in ({1}, {-1})


def is_hash_like(token: str) -> bool:
    """Pure hex with a digest length (32, 40 or 64 characters)."""
    return len(token) in HASH_LENGTHS and is_hex(token)


def has_secret_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in SECRET_KEYWORDS)


def is_low_information(token: str, line: str = "") -> bool:
    """Heuristic for tokens that score as random but rarely are secrets.

    Tunable, not a guarantee: repeating and monotonic runs are dropped, and
    digest-length hex strings are dropped unless the surrounding line
    mentions a key, secret, token or password.
    """
    if is_repeating(token) or is_sequential(token):
        return True
    if is_hash_like(token) and not has_secret_keyword(line):
        return True
    return False


def scaled_confidence(entropy: float, threshold: float, ceiling: float = ENTROPY_CEILING) -> float:
    """Linear scale from 0.5 at the threshold to 1.0 at the ceiling."""
    if ceiling <= threshold:
        return 1.0
    return max(0.0, min(1.0, (entropy - threshold) / (ceiling - threshold) + 0.5))
