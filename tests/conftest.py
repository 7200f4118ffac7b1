"""Shared pytest fixtures."""

import os
import stat
import sys
import textwrap
import threading
from pathlib import Path

import pytest

from buildwarden.config import Config
from buildwarden.project import Project
from buildwarden.sinks import Buffer

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs executable scripts")


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        data_dir=tmp_path / "data",
        build_command=sys.executable,
        build_args="install",
        source_extension="src",
        workspace_env="GOPATH",
        bin_env="GOBIN",
        executable_suffixes=("", ".exe"),
        poll_interval=0.02,
        reader_join_timeout=2.0,
        tool_workers=4,
        restart_delay=0,
    )


@pytest.fixture
def stop() -> threading.Event:
    return threading.Event()


@pytest.fixture
def sink() -> Buffer:
    return Buffer()


@pytest.fixture
def base(tmp_path: Path) -> Path:
    directory = tmp_path / "project"
    directory.mkdir()
    return directory


@pytest.fixture
def project(base: Path) -> Project:
    return Project(name="app", base=str(base), path="app")


@pytest.fixture
def gobin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    directory = tmp_path / "gobin"
    directory.mkdir()
    monkeypatch.setenv("GOBIN", str(directory))
    return directory


@pytest.fixture
def script():
    """Write a Python script; executable ones get a shebang and the x bit."""

    def write(path: Path, body: str, executable: bool = False) -> Path:
        source = textwrap.dedent(body).lstrip()
        if executable:
            source = f"#!{sys.executable}\n{source}"
        path.write_text(source)
        if executable:
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return write


def stop_when(stop: threading.Event, condition, timeout: float = 10.0) -> threading.Thread:
    """Set stop from a background thread once condition() holds."""

    def watch():
        waited = threading.Event()
        for _ in range(int(timeout / 0.01)):
            if condition():
                break
            waited.wait(0.01)
        stop.set()

    thread = threading.Thread(target=watch, daemon=True)
    thread.start()
    return thread


def realpath(path) -> str:
    return os.path.realpath(str(path))
