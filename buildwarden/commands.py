"""
Ad-hoc commands and toolchain builds.

Both spawn exactly one subprocess, capture its output in memory and race
its exit against a cancellation event. Neither retries.
"""

import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum

from .config import Config, config as default_config
from .lifecycle import KILLED, communicate, decode
from .project import Command, Project
from .sinks import BufferOut, LogSink, Origin, Stream

logger = logging.getLogger(__name__)


def split_command(command: str) -> list[str]:
    """Strip quote characters and split on whitespace.

    There is no real shell quoting: `echo 'hi there'` becomes
    ["echo", "hi", "there"].
    """
    return command.replace("'", "").replace('"', "").split()


def _under(base: str, path: str) -> bool:
    try:
        return os.path.commonpath([base, path]) == os.path.normpath(base)
    except ValueError:
        # Mixed absolute and relative paths, or different drives.
        return False


def resolve_dir(base: str, path: str) -> str:
    """Working directory for a command: base, or an override inside it.

    An override that already starts with the base directory is used as is;
    anything else is taken relative to the base.
    """
    if not path:
        return base
    if _under(base, path):
        return path
    return os.path.join(base, path.lstrip("/" + os.sep))


def run_command(
    project: Project,
    stop: threading.Event,
    cmd: Command,
    sink: LogSink = None,
    config: Config = default_config,
) -> tuple[str, str]:
    """Run a command and return (error_output, standard_output).

    A non-zero exit returns the captured stderr as error output; a
    cancelled command returns ("", "").
    """
    args = split_command(cmd.command)
    if not args:
        return "", ""
    cwd = resolve_dir(project.base, cmd.path)

    try:
        process = subprocess.Popen(
            args,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Failed to start command '{cmd.command}' for {project.name}: {e}")
        errors, output = str(e), ""
    else:
        captured = communicate(process, stop, config.poll_interval)
        if captured is None:
            logger.info(f"Command '{cmd.command}' for {project.name} killed")
            return "", ""
        output = decode(captured[0])
        errors = decode(captured[1]) if process.returncode != 0 else ""

    if sink is not None:
        if errors:
            sink.append(BufferOut(text=errors, origin=Origin.COMMAND, stream=Stream.ERROR))
        if output:
            sink.append(BufferOut(text=output, origin=Origin.COMMAND, stream=Stream.OUT))
    return errors, output


class BuildOutcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    KILLED = "killed"


@dataclass
class BuildResult:
    """Result of one build: succeeded, failed or killed."""

    outcome: BuildOutcome
    output: str = ""
    error: Exception | None = None
    returncode: int | None = None
    duration_seconds: float = 0.0

    @property
    def killed(self) -> bool:
        return self.outcome is BuildOutcome.KILLED

    @property
    def failed(self) -> bool:
        return self.outcome is BuildOutcome.FAILED

    @property
    def succeeded(self) -> bool:
        return self.outcome is BuildOutcome.SUCCEEDED


def build(
    project: Project,
    stop: threading.Event,
    args: list[str],
    sink: LogSink = None,
    config: Config = default_config,
) -> BuildResult:
    """Run the toolchain build command in the project base.

    The binary-output directory (<workspace>/bin) is written into the
    environment first, so the toolchain installs the binary where the
    supervisor looks for it.
    """
    bin_dir = os.path.join(config.workspace_dir(), "bin")
    os.environ[config.bin_env] = bin_dir
    env = os.environ.copy()

    started = time.monotonic()
    try:
        process = subprocess.Popen(
            [config.build_command, *args],
            cwd=project.base,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
    except OSError as e:
        logger.error(f"Failed to start build for {project.name}: {e}")
        result = BuildResult(BuildOutcome.FAILED, output=str(e), error=e)
    else:
        captured = communicate(process, stop, config.poll_interval)
        duration = time.monotonic() - started
        if captured is None:
            logger.info(f"Build of {project.name} killed")
            result = BuildResult(
                BuildOutcome.KILLED,
                output=KILLED,
                returncode=process.returncode,
                duration_seconds=duration,
            )
        elif process.returncode != 0:
            error = subprocess.CalledProcessError(process.returncode, process.args)
            logger.warning(f"Build of {project.name} failed with exit code {process.returncode}")
            result = BuildResult(
                BuildOutcome.FAILED,
                output=decode(captured[1]),
                error=error,
                returncode=process.returncode,
                duration_seconds=duration,
            )
        else:
            logger.info(f"Built {project.name} in {duration:.3f}s")
            result = BuildResult(
                BuildOutcome.SUCCEEDED,
                returncode=process.returncode,
                duration_seconds=duration,
            )

    if sink is not None:
        if result.failed:
            sink.append(BufferOut(text=result.output, origin=Origin.BUILD, stream=Stream.ERROR))
        elif result.killed:
            sink.append(BufferOut(text="Build killed", origin=Origin.BUILD, stream=Stream.LOG))
        else:
            sink.append(BufferOut(
                text=f"Built in {result.duration_seconds:.3f} s",
                origin=Origin.BUILD,
                stream=Stream.LOG,
            ))
    return result
