"""Tests for entropy scoring and tokenization."""

from __future__ import annotations

import pytest

from secretscan.scanner.entropy import (
    is_hash_like,
    is_low_information,
    is_repeating,
    is_sequential,
    iter_tokens,
    scaled_confidence,
    shannon_entropy,
)

# 32 distinct characters: entropy is exactly log2(32)
RANDOM_32 = "Zq8Lm3Xp7Rt2Vw9Ny4Kb6Hc1Jd5Fg0Ts"
MD5 = "9e107d9d372bb6826bd81d3542a419d6"


class TestShannonEntropy:
    def test_empty_is_zero(self):
        assert shannon_entropy("") == 0.0

    def test_single_repeated_character_is_zero(self):
        assert shannon_entropy("A" * 20) == 0.0

    def test_two_symbols_equally_likely(self):
        assert shannon_entropy("abab") == 1.0

    def test_distinct_characters(self):
        assert shannon_entropy(RANDOM_32) == 5.0

    def test_more_uniform_is_not_lower(self):
        assert shannon_entropy("aabb") >= shannon_entropy("aaab")
        assert shannon_entropy("abcd") >= shannon_entropy("aabc")

    def test_deterministic(self):
        values = {shannon_entropy(MD5) for _ in range(50)}
        assert len(values) == 1
        assert values.pop() == pytest.approx(3.645, abs=0.01)


class TestIterTokens:
    def test_extracts_runs_within_bounds(self):
        content = f'key = "{RANDOM_32}"; short = "abc"'
        tokens = list(iter_tokens(content, "base64", 20, 100))
        assert [t.text for t in tokens] == [RANDOM_32]
        assert content[tokens[0].start : tokens[0].end] == RANDOM_32

    def test_overlong_runs_are_skipped(self):
        content = RANDOM_32 * 4
        assert list(iter_tokens(content, "base64", 20, 100)) == []

    def test_hex_charset(self):
        content = f"digest={MD5}"
        tokens = list(iter_tokens(content, "hex", 20, 100))
        assert [t.text for t in tokens] == [MD5]


class TestLowInformation:
    def test_repeating(self):
        assert is_repeating("abababababab")
        assert not is_repeating("abcabc")

    def test_sequential(self):
        assert is_sequential("abcdefghij")
        assert is_sequential("987654321")
        assert not is_sequential("abcdefghik")

    def test_hash_like(self):
        assert is_hash_like(MD5)
        assert not is_hash_like(MD5[:-1])
        assert not is_hash_like(RANDOM_32)

    def test_hash_with_secret_context_is_kept(self):
        assert is_low_information(MD5, f'checksum = "{MD5}"')
        assert not is_low_information(MD5, f'secret_key = "{MD5}"')


def test_scaled_confidence():
    assert scaled_confidence(4.5, 4.5) == 0.5
    assert scaled_confidence(8.0, 4.5) == 1.0
    assert scaled_confidence(9.0, 4.5) == 1.0
    assert scaled_confidence(5.0, 4.5) == pytest.approx(0.5 + 0.5 / 3.5)
