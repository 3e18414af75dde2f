"""Tests for YAML configuration loading and preset inheritance."""

from __future__ import annotations

import pytest

from secretscan.config import DEFAULT_EXCLUDE_GLOBS, Charset, DetectorKind, ScanConfiguration
from secretscan.errors import ConfigurationError
from secretscan.loader import (
    load_configuration,
    load_configuration_from_string,
    load_preset,
    parse_size,
    preset_names,
)
from secretscan.scanner.models import Category, Severity


class TestLoadFile:
    def test_base(self, fixtures_dir):
        config = load_configuration(fixtures_dir / "base.yaml")
        assert config.max_file_size == 512 * 1024
        assert config.exclude_globs == DEFAULT_EXCLUDE_GLOBS + ("generated/",)
        assert config.entropy_threshold == 4.2
        assert config.disabled_patterns == frozenset({"jwt"})
        assert config.whitelist == ("not-a-secret",)

    def test_child_inherits_and_overrides(self, fixtures_dir):
        config = load_configuration(fixtures_dir / "child.yaml")
        assert config.max_file_size == 512 * 1024
        assert config.entropy_threshold == 4.2
        assert config.min_token_length == 24
        assert config.exclude_globs == DEFAULT_EXCLUDE_GLOBS + ("generated/", "*.snap")
        assert config.workers == 2
        assert config.min_confidence == 0.4

    def test_circular_inheritance(self, fixtures_dir):
        with pytest.raises(ConfigurationError) as exc:
            load_configuration(fixtures_dir / "circular_a.yaml")
        assert exc.value.field == "extends"
        assert "circular" in str(exc.value)

    def test_extends_preset(self, fixtures_dir):
        config = load_configuration(fixtures_dir / "strict_child.yaml")
        assert config.entropy_threshold == 4.0
        assert config.analyze_comments is True
        assert config.relaxed_test_rules is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc:
            load_configuration(tmp_path / "nope.yaml")
        assert exc.value.field == "config"


class TestPresets:
    def test_names(self):
        assert preset_names() == ["balanced", "lenient", "strict"]

    def test_balanced_matches_defaults(self):
        balanced = load_preset("balanced")
        defaults = ScanConfiguration()
        for name in (
            "entropy_threshold",
            "hex_entropy_threshold",
            "min_token_length",
            "max_token_length",
            "entropy_charsets",
            "analyze_comments",
            "context_min_length",
            "context_min_entropy",
            "scan_test_files",
            "relaxed_test_rules",
            "min_confidence",
            "detectors",
        ):
            assert getattr(balanced, name) == getattr(defaults, name), name

    def test_lenient(self):
        config = load_preset("lenient")
        assert config.entropy_threshold == 5.0
        assert config.scan_test_files is False
        assert config.min_confidence == 0.5

    def test_strict(self):
        config = load_preset("strict")
        assert config.min_token_length == 16
        assert config.relaxed_test_rules is False

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            load_preset("paranoid")


class TestFromString:
    def test_empty_document_gives_defaults(self):
        assert load_configuration_from_string("").entropy_threshold == 4.5

    def test_roots_resolve_against_base_dir(self, tmp_path):
        config = load_configuration_from_string("paths:\n  roots: [src]\n", base_dir=tmp_path)
        assert config.roots == (tmp_path / "src",)

    def test_default_excludes_can_be_dropped(self):
        config = load_configuration_from_string(
            "paths:\n  use-default-excludes: false\n  exclude: [vendor/]\n"
        )
        assert config.exclude_globs == ("vendor/",)

    def test_extensions(self):
        config = load_configuration_from_string(
            "extensions:\n  include: [kt, .Java]\n  exclude: [snap]\n"
        )
        assert config.include_extensions == frozenset({".kt", ".java"})
        assert ".snap" in config.exclude_extensions
        assert ".png" in config.exclude_extensions

    def test_detector_selection_and_charsets(self):
        config = load_configuration_from_string(
            "detectors:\n  enabled: [pattern, context]\n  entropy:\n    charsets: [hex]\n"
        )
        assert config.detectors == (DetectorKind.PATTERN, DetectorKind.CONTEXT)
        assert config.entropy_charsets == (Charset.HEX,)

    def test_custom_pattern(self):
        config = load_configuration_from_string(
            """
detectors:
  patterns:
    custom:
      - name: internal_token
        regex: "itk_[0-9a-f]{12}"
        severity: critical
        category: token
        confidence: 0.95
        context-keywords: [internal]
    disabled: [internal_token]
"""
        )
        (pattern,) = config.custom_patterns
        assert pattern.name == "internal_token"
        assert pattern.severity == Severity.CRITICAL
        assert pattern.category == Category.TOKEN
        assert pattern.confidence == 0.95
        assert config.disabled_patterns == frozenset({"internal_token"})

    def test_whitelist_and_performance(self):
        config = load_configuration_from_string(
            """
whitelist:
  values: [dummy]
  patterns: ["^sk-test-"]
  ignore-file: null
performance:
  workers: 3
  file-timeout: 2.5
  follow-symlinks: true
"""
        )
        assert config.whitelist == ("dummy",)
        assert config.whitelist_patterns == ("^sk-test-",)
        assert config.ignore_file is None
        assert config.workers == 3
        assert config.file_timeout == 2.5
        assert config.follow_symlinks is True

    @pytest.mark.parametrize(
        ("text", "field"),
        [
            ("detectors:\n  enabled: [magic]\n", "detectors.enabled"),
            ("detectors:\n  patterns:\n    disabled: [nope]\n", "detectors.patterns.disabled"),
            ("detectors:\n  entropy:\n    threshold: high\n", "detectors.entropy.threshold"),
            ("detectors:\n  entropy:\n    charsets: [octal]\n", "detectors.entropy.charsets"),
            ("detectors:\n  patterns:\n    custom:\n      - name: bad\n        regex: '('\n", "patterns.bad"),
            ("whitelist:\n  patterns: ['[']\n", "whitelist.patterns"),
            ("tests:\n  scan: 'yes'\n", "tests.scan"),
            ("paths: [a, b]\n", "paths"),
            ("max-file-size: lots\n", "max-file-size"),
            ("- just\n- a list\n", "<string>"),
        ],
    )
    def test_errors_name_the_field(self, text, field):
        with pytest.raises(ConfigurationError) as exc:
            load_configuration_from_string(text)
        assert exc.value.field == field

    def test_invalid_yaml(self):
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_configuration_from_string("detectors: [unclosed\n")


@pytest.mark.parametrize(
    ("value", "expected"),
    [(2048, 2048), ("512KB", 524288), ("1 MB", 1048576), ("1.5kb", 1536), ("100", 100)],
)
def test_parse_size(value, expected):
    assert parse_size(value) == expected
