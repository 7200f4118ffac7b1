"""Tests for the toolchain build."""

import os

import psutil
import pytest

from buildwarden.commands import BuildOutcome, build
from buildwarden.lifecycle import KILLED
from buildwarden.sinks import Origin, Stream
from tests.conftest import stop_when


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    directory = tmp_path / "workspace"
    monkeypatch.setenv("GOPATH", str(directory))
    monkeypatch.delenv("GOBIN", raising=False)
    return directory


def test_successful_build(project, stop, config, sink):
    result = build(project, stop, ["-c", "pass"], sink=sink, config=config)

    assert result.outcome is BuildOutcome.SUCCEEDED
    assert result.output == ""
    assert result.error is None
    assert sink.std_log[0].text.startswith("Built in")
    assert sink.std_log[0].origin is Origin.BUILD


def test_failed_build_returns_exact_stderr(project, stop, config, sink):
    code = "import sys; print('compiling'); sys.stderr.write('main.go:3: undefined: x'); sys.exit(2)"

    result = build(project, stop, ["-c", code], sink=sink, config=config)

    assert result.failed
    assert result.output == "main.go:3: undefined: x"
    assert result.error is not None
    assert result.returncode == 2
    assert [r.text for r in sink.std_err] == ["main.go:3: undefined: x"]


def test_cancelled_build_is_killed_not_failed(project, stop, config, tmp_path):
    pidfile = tmp_path / "build.pid"
    code = f"import os, time; open({str(pidfile)!r}, 'w').write(str(os.getpid())); time.sleep(30)"
    stop_when(stop, lambda: pidfile.exists() and pidfile.read_text() != "")

    result = build(project, stop, ["-c", code], config=config)

    assert result.outcome is BuildOutcome.KILLED
    assert result.output == KILLED
    assert result.error is None
    assert not psutil.pid_exists(int(pidfile.read_text()))


def test_stop_set_before_build_kills_it(project, stop, config, sink):
    stop.set()

    result = build(project, stop, ["-c", "import time; time.sleep(30)"], sink=sink, config=config)

    assert result.killed
    assert result.output == "killed"
    assert result.error is None
    assert sink.std_log[0].text == "Build killed"


def test_bin_dir_written_into_environment(project, stop, config, workspace, tmp_path):
    seen = tmp_path / "seen"
    code = f"import os; open({str(seen)!r}, 'w').write(os.environ['GOBIN'])"

    result = build(project, stop, ["-c", code], config=config)

    assert result.succeeded
    expected = os.path.join(str(workspace), "bin")
    assert seen.read_text() == expected
    assert os.environ["GOBIN"] == expected


def test_build_runs_in_project_base(project, stop, config, base, tmp_path):
    seen = tmp_path / "cwd"
    code = f"import os; open({str(seen)!r}, 'w').write(os.getcwd())"

    build(project, stop, ["-c", code], config=config)

    assert os.path.realpath(seen.read_text()) == os.path.realpath(str(base))


def test_first_workspace_entry_is_used(project, stop, config, monkeypatch, tmp_path):
    first, second = tmp_path / "one", tmp_path / "two"
    monkeypatch.setenv("GOPATH", os.pathsep.join([str(first), str(second)]))

    build(project, stop, ["-c", "pass"], config=config)

    assert os.environ["GOBIN"] == os.path.join(str(first), "bin")


def test_missing_build_command_is_a_failure(project, stop, config):
    config.build_command = "no-such-toolchain-for-tests"

    result = build(project, stop, ["install"], config=config)

    assert result.failed
    assert isinstance(result.error, OSError)
    assert result.output
