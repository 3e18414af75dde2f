"""Entropy detector — flags random-looking tokens no pattern knows about."""

from __future__ import annotations

from collections.abc import Sequence

from secretscan.config import Charset, ScanConfiguration
from secretscan.scanner.detectors.base import build_finding
from secretscan.scanner.entropy import (
    ENTROPY_CEILING,
    is_hex,
    is_low_information,
    iter_tokens,
    scaled_confidence,
    shannon_entropy,
)
from secretscan.scanner.models import Category, Finding, ScanContext, Severity


class EntropyDetector:
    """Shannon-entropy scoring over base64-like and hex token runs.

    Tokens made only of hex digits are held to ``hex_threshold`` because a
    16-symbol alphabet tops out at 4 bits per character. A hex run already
    covered by an emitted base64 token is not reported twice.
    """

    name = "entropy"

    def __init__(
        self,
        threshold: float = 4.5,
        hex_threshold: float = 3.0,
        min_length: int = 20,
        max_length: int = 100,
        charsets: Sequence[Charset] = (Charset.BASE64, Charset.HEX),
    ) -> None:
        self.threshold = threshold
        self.hex_threshold = hex_threshold
        self.min_length = min_length
        self.max_length = max_length
        self.charsets = tuple(charsets)

    @classmethod
    def from_config(cls, config: ScanConfiguration) -> EntropyDetector:
        return cls(
            threshold=config.entropy_threshold,
            hex_threshold=config.hex_entropy_threshold,
            min_length=config.min_token_length,
            max_length=config.max_token_length,
            charsets=config.entropy_charsets,
        )

    def detect(self, context: ScanContext) -> list[Finding]:
        findings: list[Finding] = []
        emitted: list[tuple[int, int]] = []
        for charset in self.charsets:
            for token in iter_tokens(
                context.content, charset.value, self.min_length, self.max_length
            ):
                context.check_deadline()
                if any(s <= token.start and token.end <= e for s, e in emitted):
                    continue
                hex_only = is_hex(token.text)
                threshold = self.hex_threshold if hex_only else self.threshold
                entropy = shannon_entropy(token.text)
                if entropy < threshold:
                    continue
                line, _ = context.position(token.start)
                if is_low_information(token.text, context.line_at(line)):
                    continue
                emitted.append((token.start, token.end))
                ceiling = 4.0 if hex_only else ENTROPY_CEILING
                findings.append(
                    build_finding(
                        context,
                        token.start,
                        token.text,
                        detector=self.name,
                        rule="high-entropy-hex" if hex_only else "high-entropy-base64",
                        severity=Severity.MEDIUM,
                        confidence=scaled_confidence(entropy, threshold, ceiling),
                        category=Category.HIGH_ENTROPY,
                    )
                )
        return findings
