"""Load ScanConfiguration objects from YAML files, resolving ``extends``."""

from __future__ import annotations

import importlib.resources
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from secretscan.config import (
    DEFAULT_EXCLUDE_EXTENSIONS,
    DEFAULT_EXCLUDE_GLOBS,
    Charset,
    DetectorKind,
    ScanConfiguration,
    normalize_extension,
)
from secretscan.errors import ConfigurationError
from secretscan.scanner.models import Category, Severity
from secretscan.scanner.patterns import Pattern, compile_pattern, pattern_names

_PRESET_PREFIX = "preset:"
_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}


def load_configuration(path: str | Path) -> ScanConfiguration:
    """Load a configuration from a YAML file path."""
    return ScanConfiguration(**_load_file(Path(path), []))


def load_configuration_from_string(
    text: str, base_dir: str | Path | None = None
) -> ScanConfiguration:
    """Parse a YAML string into a configuration, resolving inheritance.

    Relative paths (``extends`` files and scan roots) resolve against
    ``base_dir``, or the working directory when it is omitted.
    """
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    return ScanConfiguration(**_fields_from_text(text, base, [], "<string>"))


def load_preset(name: str) -> ScanConfiguration:
    return ScanConfiguration(**_load_preset(name, []))


def preset_names() -> list[str]:
    pkg = importlib.resources.files("secretscan.presets")
    return sorted(
        entry.name[: -len(".yaml")] for entry in pkg.iterdir() if entry.name.endswith(".yaml")
    )


# --- Inheritance -------------------------------------------------------------


def _load_file(path: Path, chain: list[str]) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError("config", f"cannot read {path}: {e.strerror or e}") from e
    return _enter(
        str(path.resolve()),
        chain,
        lambda: _fields_from_text(text, path.parent, chain, str(path)),
    )


def _load_preset(name: str, chain: list[str]) -> dict[str, Any]:
    resource = importlib.resources.files("secretscan.presets").joinpath(f"{name}.yaml")
    if not resource.is_file():
        raise ConfigurationError("extends", f"unknown preset {name!r}")
    text = resource.read_text(encoding="utf-8")
    key = _PRESET_PREFIX + name
    return _enter(key, chain, lambda: _fields_from_text(text, Path.cwd(), chain, key))


def _enter(key: str, chain: list[str], load: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    # Circular inheritance detection
    if key in chain:
        cycle = " -> ".join(chain + [key])
        raise ConfigurationError("extends", f"circular configuration inheritance: {cycle}")
    chain.append(key)
    try:
        return load()
    finally:
        chain.pop()


def _load_ref(ref: str, base_dir: Path, chain: list[str]) -> dict[str, Any]:
    if ref.startswith(_PRESET_PREFIX):
        return _load_preset(ref[len(_PRESET_PREFIX) :], chain)
    # Treat as file path, relative to the including file
    path = Path(ref)
    if not path.is_absolute():
        path = base_dir / path
    return _load_file(path, chain)


def _fields_from_text(text: str, base_dir: Path, chain: list[str], source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(source, f"invalid YAML: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(source, "configuration YAML must be a mapping")

    fields: dict[str, Any] = {}
    parents = data.get("extends", [])
    if isinstance(parents, str):
        parents = [parents]
    for ref in parents:
        fields.update(_load_ref(str(ref), base_dir, chain))

    # Own values override inherited ones
    _parse_into(fields, data, base_dir)
    return fields


# --- Sections ----------------------------------------------------------------


def _parse_into(fields: dict[str, Any], data: dict, base_dir: Path) -> None:
    paths = _section(data, "paths")
    if "roots" in paths:
        roots = [Path(p) for p in _strings(paths, "roots", "paths.roots")]
        fields["roots"] = tuple(p if p.is_absolute() else base_dir / p for p in roots)
    if "include" in paths:
        fields["include_globs"] = tuple(_strings(paths, "include", "paths.include"))
    use_defaults = paths.get("use-default-excludes", True)
    if "exclude" in paths or not use_defaults:
        base = fields.get("exclude_globs", DEFAULT_EXCLUDE_GLOBS) if use_defaults else ()
        fields["exclude_globs"] = tuple(base) + tuple(_strings(paths, "exclude", "paths.exclude"))

    extensions = _section(data, "extensions")
    if "include" in extensions:
        fields["include_extensions"] = frozenset(
            normalize_extension(e) for e in _strings(extensions, "include", "extensions.include")
        )
    if "exclude" in extensions:
        base = fields.get("exclude_extensions", DEFAULT_EXCLUDE_EXTENSIONS)
        fields["exclude_extensions"] = frozenset(base) | {
            normalize_extension(e) for e in _strings(extensions, "exclude", "extensions.exclude")
        }

    if "max-file-size" in data:
        fields["max_file_size"] = parse_size(data["max-file-size"])

    _parse_detectors(fields, _section(data, "detectors"))

    tests = _section(data, "tests")
    _copy(fields, tests, "scan", "scan_test_files", bool, "tests.scan")
    _copy(fields, tests, "relaxed-rules", "relaxed_test_rules", bool, "tests.relaxed-rules")
    if "patterns" in tests:
        fields["test_globs"] = tuple(_strings(tests, "patterns", "tests.patterns"))

    whitelist = _section(data, "whitelist")
    if "values" in whitelist:
        fields["whitelist"] = tuple(_strings(whitelist, "values", "whitelist.values"))
    if "patterns" in whitelist:
        regexes = tuple(_strings(whitelist, "patterns", "whitelist.patterns"))
        for regex in regexes:
            _check_regex(regex, "whitelist.patterns")
        fields["whitelist_patterns"] = regexes
    if "ignore-file" in whitelist:
        value = whitelist["ignore-file"]
        fields["ignore_file"] = str(value) if value else None

    performance = _section(data, "performance")
    _copy(fields, performance, "workers", "workers", int, "performance.workers")
    _copy(fields, performance, "file-timeout", "file_timeout", float, "performance.file-timeout")
    _copy(fields, performance, "scan-timeout", "scan_timeout", float, "performance.scan-timeout")
    _copy(fields, performance, "follow-symlinks", "follow_symlinks", bool, "performance.follow-symlinks")

    reporting = _section(data, "reporting")
    _copy(fields, reporting, "min-confidence", "min_confidence", float, "reporting.min-confidence")


def _parse_detectors(fields: dict[str, Any], detectors: dict) -> None:
    if "enabled" in detectors:
        kinds = []
        for name in _strings(detectors, "enabled", "detectors.enabled"):
            try:
                kinds.append(DetectorKind(name.lower()))
            except ValueError:
                raise ConfigurationError(
                    "detectors.enabled", f"unknown detector {name!r}"
                ) from None
        fields["detectors"] = tuple(kinds)

    entropy = _section(detectors, "entropy", "detectors.entropy")
    _copy(fields, entropy, "threshold", "entropy_threshold", float, "detectors.entropy.threshold")
    _copy(fields, entropy, "hex-threshold", "hex_entropy_threshold", float, "detectors.entropy.hex-threshold")
    _copy(fields, entropy, "min-length", "min_token_length", int, "detectors.entropy.min-length")
    _copy(fields, entropy, "max-length", "max_token_length", int, "detectors.entropy.max-length")
    if "charsets" in entropy:
        charsets = []
        for name in _strings(entropy, "charsets", "detectors.entropy.charsets"):
            try:
                charsets.append(Charset(name.lower()))
            except ValueError:
                raise ConfigurationError(
                    "detectors.entropy.charsets", f"unknown charset {name!r}"
                ) from None
        fields["entropy_charsets"] = tuple(charsets)

    context = _section(detectors, "context", "detectors.context")
    _copy(fields, context, "analyze-comments", "analyze_comments", bool, "detectors.context.analyze-comments")
    _copy(fields, context, "min-length", "context_min_length", int, "detectors.context.min-length")
    _copy(fields, context, "min-entropy", "context_min_entropy", float, "detectors.context.min-entropy")

    patterns = _section(detectors, "patterns", "detectors.patterns")
    if "custom" in patterns:
        fields["custom_patterns"] = tuple(_parse_custom(patterns["custom"]))
    known = set(pattern_names()) | {p.name for p in fields.get("custom_patterns", ())}
    for key, target in (("enabled", "enabled_patterns"), ("disabled", "disabled_patterns")):
        if key not in patterns:
            continue
        names = frozenset(_strings(patterns, key, f"detectors.patterns.{key}"))
        unknown = sorted(names - known)
        if unknown:
            raise ConfigurationError(
                f"detectors.patterns.{key}", f"unknown pattern(s): {', '.join(unknown)}"
            )
        fields[target] = names


def _parse_custom(entries: Any) -> list[Pattern]:
    if not isinstance(entries, list):
        raise ConfigurationError("detectors.patterns.custom", "must be a list")
    patterns: list[Pattern] = []
    for entry in entries:
        if not isinstance(entry, dict) or "name" not in entry or "regex" not in entry:
            raise ConfigurationError(
                "detectors.patterns.custom", "each pattern needs a name and a regex"
            )
        name = str(entry["name"])
        where = f"detectors.patterns.custom.{name}"
        try:
            severity = Severity.parse(str(entry.get("severity", "high")))
        except ValueError:
            raise ConfigurationError(where, f"unknown severity {entry.get('severity')!r}") from None
        try:
            category = Category(str(entry.get("category", "generic")).lower())
        except ValueError:
            raise ConfigurationError(where, f"unknown category {entry.get('category')!r}") from None
        patterns.append(
            compile_pattern(
                name,
                str(entry["regex"]),
                severity,
                category,
                _convert(entry.get("confidence", 0.8), float, where),
                str(entry.get("description", "")),
                false_positive_indicators=entry.get("false-positive-indicators", ()) or (),
                context_keywords=entry.get("context-keywords", ()) or (),
            )
        )
    return patterns


def parse_size(value: Any) -> int:
    """``1048576``, ``"512KB"`` or ``"1 MB"`` -> bytes."""
    if isinstance(value, bool):
        raise ConfigurationError("max-file-size", f"not a size: {value!r}")
    if isinstance(value, int):
        return value
    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*([kmg]?b)?\s*", str(value), re.IGNORECASE)
    if match is None:
        raise ConfigurationError("max-file-size", f"not a size: {value!r}")
    unit = (match.group(2) or "b").lower()
    return int(float(match.group(1)) * _SIZE_UNITS[unit])


# --- Helpers -----------------------------------------------------------------


def _section(data: dict, key: str, where: str | None = None) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(where or key, "must be a mapping")
    return value


def _strings(data: dict, key: str, where: str) -> list[str]:
    value = data.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ConfigurationError(where, "must be a list")
    return [str(v) for v in value]


def _convert(value: Any, kind: type, where: str) -> Any:
    if kind is bool:
        if not isinstance(value, bool):
            raise ConfigurationError(where, f"expected true or false, got {value!r}")
        return value
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigurationError(where, f"cannot parse {value!r} as {kind.__name__}") from None


def _copy(
    fields: dict[str, Any], section: dict, key: str, target: str, kind: type, where: str
) -> None:
    if key in section and section[key] is not None:
        fields[target] = _convert(section[key], kind, where)


def _check_regex(regex: str, where: str) -> None:
    try:
        re.compile(regex)
    except re.error as e:
        raise ConfigurationError(where, f"invalid regex {regex!r}: {e}") from e
