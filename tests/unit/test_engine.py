"""Tests for the scan engine: tree walk, dispatch, aggregation and lifecycle."""

from __future__ import annotations

import os
import threading
import time

import pytest

from secretscan.config import ScanConfiguration
from secretscan.errors import ConfigurationError, EngineStateError, PathNotFoundError
from secretscan.scanner.detectors import CompositeDetector, build_detectors
from secretscan.scanner.engine import EngineState, ScanEngine
from secretscan.scanner.models import Category, ErrorKind, Severity, SkipReason

AWS_KEY = "AKIAZ4Q7RT2MX9LK3PWD"
RANDOM_32 = "Zq8Lm3Xp7Rt2Vw9Ny4Kb6Hc1Jd5Fg0Ts"

TREE = {
    "src/main/kotlin/Config.kt": f'val apiSecret = "{RANDOM_32}"\n',
    "src/main/resources/application.properties": "spring.datasource.password=Xk9mP2vL8qR4tW7z\n",
    "src/app/settings.py": f'AWS = "{AWS_KEY}"\nDEBUG = True\n',
    "src/app/util.py": "def add(a, b):\n    return a + b\n",
    "deploy/.env": f"STRIPE_KEY=sk_live_{RANDOM_32[:24]}\n",
    "docs/logo.png": b"\x89PNG\r\n\x1a\n\x00\x00",
    "node_modules/lib/index.js": f'const key = "{AWS_KEY}";\n',
}


class CountingDetector:
    """Delegates to the real detectors and records which files reached them."""

    name = "counting"

    def __init__(self, config, fail_on=None, delay=0.0):
        self._inner = CompositeDetector(build_detectors(config))
        self._fail_on = fail_on
        self._delay = delay
        self._lock = threading.Lock()
        self.seen: list[str] = []

    def detect(self, context):
        with self._lock:
            self.seen.append(context.relative_path)
        if self._delay:
            time.sleep(self._delay)
        if self._fail_on and context.relative_path.endswith(self._fail_on):
            raise RuntimeError("detector exploded")
        return self._inner.detect(context)


def _comparable(result):
    return (
        [f.to_dict(redact_value=False) for f in result.findings],
        result.files_scanned,
        [(s.path, s.reason) for s in result.skipped],
        [(e.path, e.kind) for e in result.errors],
    )


def test_empty_directory(tmp_path):
    engine = ScanEngine(ScanConfiguration(workers=2))
    result = engine.scan(tmp_path)
    assert (result.files_scanned, len(result.findings), len(result.errors)) == (0, 0, 0)
    assert engine.state is EngineState.COMPLETED
    assert not result.timed_out


def test_results_do_not_depend_on_worker_count(write_tree):
    root = write_tree(TREE)
    sequential = ScanEngine(ScanConfiguration(workers=1)).scan(root)
    parallel = ScanEngine(ScanConfiguration(workers=4)).scan(root)
    assert _comparable(sequential) == _comparable(parallel)
    assert sequential.files_scanned == 5


def test_findings_are_sorted(write_tree):
    result = ScanEngine(ScanConfiguration(workers=3)).scan(write_tree(TREE))
    keys = [f.sort_key for f in result.findings]
    assert keys == sorted(keys)
    assert {f.relative_path for f in result.findings} == {
        "deploy/.env",
        "src/app/settings.py",
        "src/main/kotlin/Config.kt",
        "src/main/resources/application.properties",
    }


class TestScenarios:
    def test_aws_key_is_one_critical_finding(self, write_tree):
        root = write_tree({"Config.kt": f'val awsKey = "{AWS_KEY}"\n'})
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert len(result.findings) == 1
        assert result.findings[0].severity == Severity.CRITICAL
        assert result.findings[0].category == Category.CLOUD_CREDENTIAL

    def test_harmless_file_has_no_findings(self, write_tree):
        root = write_tree({"Main.kt": 'val x = "hello"\n'})
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert result.findings == []
        assert result.files_scanned == 1

    def test_repeated_characters_have_no_entropy_finding(self, write_tree):
        root = write_tree({"Main.kt": f'val filler = "{"A" * 20}"\n'})
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert [f for f in result.findings if f.detector == "entropy"] == []

    def test_secret_in_test_file_is_reduced_not_suppressed(self, write_tree):
        content = f'val apiSecret = "{RANDOM_32}"\n'
        root = write_tree(
            {"src/test/kotlin/ConfigTest.kt": content, "src/main/kotlin/Config.kt": content}
        )
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        by_path = {f.relative_path: f for f in result.findings}
        assert len(result.findings) == 2
        in_test = by_path["src/test/kotlin/ConfigTest.kt"]
        in_main = by_path["src/main/kotlin/Config.kt"]
        assert in_test.severity == Severity.LOW
        assert in_main.severity == Severity.MEDIUM
        assert in_test.confidence == pytest.approx(in_main.confidence * 0.5)


class TestWalk:
    def test_excluded_directories_are_pruned(self, write_tree):
        root = write_tree(TREE)
        config = ScanConfiguration(workers=1)
        detector = CountingDetector(config)
        result = ScanEngine(config, detector=detector).scan(root)
        assert not any(p.startswith("node_modules") for p in detector.seen)
        assert not any("node_modules" in s.path for s in result.skipped)

    def test_filtered_files_are_skipped_before_reading(self, write_tree):
        root = write_tree(TREE)
        config = ScanConfiguration(workers=2)
        detector = CountingDetector(config)
        result = ScanEngine(config, detector=detector).scan(root)
        assert "docs/logo.png" not in detector.seen
        assert [s.reason for s in result.skipped] == [SkipReason.FILTERED]
        assert result.summary.skipped_by_reason == {"filtered": 1}

    def test_size_limit(self, write_tree):
        root = write_tree({"big.py": f'AWS = "{AWS_KEY}"\n' + "#" * 200, "small.py": "x = 1\n"})
        result = ScanEngine(ScanConfiguration(workers=1, max_file_size=100)).scan(root)
        assert result.files_scanned == 1
        assert [s.reason for s in result.skipped] == [SkipReason.TOO_LARGE]
        assert result.findings == []
        assert result.errors == []

    def test_binary_file_is_skipped(self, write_tree):
        root = write_tree({"blob.dat": b"\x00" * 10 + AWS_KEY.encode()})
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert [s.reason for s in result.skipped] == [SkipReason.BINARY]

    def test_ignore_file(self, write_tree):
        root = write_tree(
            {
                ".secretscanignore": "# generated\ngenerated/\n",
                "generated/keys.py": f'AWS = "{AWS_KEY}"\n',
                "app.py": f'AWS = "{AWS_KEY}"\n',
            }
        )
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert [f.relative_path for f in result.findings] == ["app.py"]

    def test_skip_test_files(self, write_tree):
        root = write_tree({"tests/test_app.py": f'AWS = "{AWS_KEY}"\n'})
        result = ScanEngine(ScanConfiguration(workers=1, scan_test_files=False)).scan(root)
        assert result.findings == []
        assert result.skipped[0].reason == SkipReason.FILTERED

    def test_single_file_root(self, write_tree):
        root = write_tree({"settings.py": f'AWS = "{AWS_KEY}"\n'})
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root / "settings.py")
        assert result.files_scanned == 1
        assert len(result.findings) == 1

    def test_single_file_root_keeps_parent_directories(self, write_tree, monkeypatch):
        root = write_tree({"src/test/kotlin/Config.kt": f'val apiSecret = "{RANDOM_32}"\n'})
        monkeypatch.chdir(root)
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root / "src/test/kotlin/Config.kt")
        (finding,) = result.findings
        assert finding.relative_path == "src/test/kotlin/Config.kt"
        assert finding.context.in_test_file
        assert finding.severity == Severity.LOW

    def test_configured_roots(self, write_tree):
        root = write_tree({"a.py": f'AWS = "{AWS_KEY}"\n'})
        result = ScanEngine(ScanConfiguration(workers=1, roots=(root,))).scan()
        assert len(result.findings) == 1


class TestErrors:
    @pytest.mark.parametrize("workers", [1, 3])
    def test_detector_failure_does_not_abort(self, write_tree, workers):
        root = write_tree({"a.py": f'AWS = "{AWS_KEY}"\n', "bad.py": "x = 1\n", "c.py": "y = 2\n"})
        config = ScanConfiguration(workers=workers)
        engine = ScanEngine(config, detector=CountingDetector(config, fail_on="bad.py"))
        result = engine.scan(root)
        assert engine.state is EngineState.COMPLETED
        assert result.files_scanned == 2
        assert len(result.findings) == 1
        assert [e.kind for e in result.errors] == [ErrorKind.DETECTOR]
        assert result.errors[0].path.endswith("bad.py")

    def test_file_timeout(self, write_tree):
        root = write_tree({"a.py": "x = 1\n"})

        class Slow:
            name = "slow"

            def detect(self, context):
                time.sleep(0.05)
                context.check_deadline()
                return []

        config = ScanConfiguration(workers=1, file_timeout=0.01)
        result = ScanEngine(config, detector=Slow()).scan(root)
        assert [e.kind for e in result.errors] == [ErrorKind.TIMEOUT]
        assert not result.timed_out

    def test_run_timeout_parallel(self, write_tree):
        root = write_tree({f"f{i:02d}.py": "x = 1\n" for i in range(12)})
        config = ScanConfiguration(workers=2, scan_timeout=0.1)
        engine = ScanEngine(config, detector=CountingDetector(config, delay=0.3))
        result = engine.scan(root)
        assert result.timed_out
        assert engine.state is EngineState.COMPLETED
        assert result.files_scanned < 12
        assert result.errors
        assert all(e.kind is ErrorKind.TIMEOUT for e in result.errors)

    def test_unlistable_directory_is_an_error(self, write_tree, monkeypatch):
        root = write_tree({"a.py": "x = 1\n", "sub/secret.py": f'AWS = "{AWS_KEY}"\n'})
        real_scandir = os.scandir

        def scandir(path="."):
            if os.path.basename(os.fspath(path)) == "sub":
                raise PermissionError(13, "Permission denied", os.fspath(path))
            return real_scandir(path)

        monkeypatch.setattr(os, "scandir", scandir)
        result = ScanEngine(ScanConfiguration(workers=1)).scan(root)
        assert result.files_scanned == 1
        assert result.findings == []
        (error,) = result.errors
        assert error.kind is ErrorKind.READ
        assert error.path.endswith("sub")
        assert "Permission denied" in error.message

    def test_run_timeout_single_worker(self, write_tree):
        root = write_tree({f"f{i:02d}.py": "x = 1\n" for i in range(5)})
        config = ScanConfiguration(workers=1, scan_timeout=0.1)
        result = ScanEngine(config, detector=CountingDetector(config, delay=0.15)).scan(root)
        assert result.timed_out
        assert result.files_scanned == 0
        assert result.errors
        assert all(e.kind is ErrorKind.TIMEOUT for e in result.errors)

    def test_hanging_file_single_worker(self, write_tree):
        root = write_tree({"stuck.py": "x = 1\n"})
        config = ScanConfiguration(workers=1, scan_timeout=0.2)
        engine = ScanEngine(config, detector=CountingDetector(config, delay=1.0))
        started = time.monotonic()
        result = engine.scan(root)
        assert time.monotonic() - started < 0.8
        assert result.timed_out
        assert result.files_scanned == 0
        assert [(e.kind, e.path.endswith("stuck.py")) for e in result.errors] == [
            (ErrorKind.TIMEOUT, True)
        ]


class TestLifecycle:
    def test_invalid_configuration_fails_at_construction(self):
        with pytest.raises(ConfigurationError) as exc:
            ScanEngine(ScanConfiguration(workers=0))
        assert exc.value.field == "workers"

    def test_missing_root_fails_engine(self, tmp_path):
        engine = ScanEngine(ScanConfiguration(workers=1))
        with pytest.raises(PathNotFoundError):
            engine.scan(tmp_path / "missing")
        assert engine.state is EngineState.FAILED
        with pytest.raises(EngineStateError):
            engine.scan(tmp_path)

    def test_no_root(self):
        engine = ScanEngine(ScanConfiguration(workers=1))
        with pytest.raises(ConfigurationError) as exc:
            engine.scan()
        assert exc.value.field == "roots"

    def test_completed_engine_can_scan_again(self, tmp_path):
        engine = ScanEngine(ScanConfiguration(workers=1))
        engine.scan(tmp_path)
        engine.scan(tmp_path)
        assert engine.state is EngineState.COMPLETED

    def test_concurrent_scan_is_rejected(self, write_tree):
        root = write_tree({"a.py": "x = 1\n"})
        started = threading.Event()
        release = threading.Event()

        class Blocking:
            name = "blocking"

            def detect(self, context):
                started.set()
                release.wait(5)
                return []

        engine = ScanEngine(ScanConfiguration(workers=1), detector=Blocking())
        worker = threading.Thread(target=engine.scan, args=(root,))
        worker.start()
        try:
            assert started.wait(5)
            assert engine.state is EngineState.RUNNING
            with pytest.raises(EngineStateError):
                engine.scan(root)
        finally:
            release.set()
            worker.join(5)
        assert engine.state is EngineState.COMPLETED
