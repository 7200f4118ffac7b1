"""
Subprocess lifecycle shared by builds, tools, commands and supervised runs.

A cancellation signal is a threading.Event: setting it is seen by every
waiter at once. Waits poll the process and check the event between polls,
so a stop is observed within one poll interval and always ends in a forced
kill. Cancellation is reported as the KILLED sentinel, never as an error.
"""

import logging
import subprocess
import threading

import psutil

logger = logging.getLogger(__name__)

KILLED = "killed"


class SupervisorError(Exception):
    """Base class for errors that stop forward progress."""


class ConfigurationError(SupervisorError):
    """The project cannot be supervised as configured."""


class UnbuiltProjectError(ConfigurationError):
    """No executable exists at any resolvable path."""

    def __init__(self, project: str, candidates: list[str]):
        self.project = project
        self.candidates = candidates
        super().__init__(f"Can't run a not compiled project: {project}")


class StartError(SupervisorError):
    """The supervised process could not be started."""


class KillError(SupervisorError):
    """The OS refused to terminate a process."""

    def __init__(self, pid: int, reason: Exception):
        self.pid = pid
        self.reason = reason
        super().__init__(f"Failed to stop process {pid}: {reason}")


def kill_process(process: subprocess.Popen):
    """Force-kill a process. Raises KillError if the OS refuses."""
    if process.poll() is not None:
        return
    try:
        psutil.Process(process.pid).kill()
    except psutil.NoSuchProcess:
        return
    except psutil.AccessDenied as e:
        raise KillError(process.pid, e) from e


def communicate(
    process: subprocess.Popen,
    stop: threading.Event,
    poll_interval: float,
) -> tuple[bytes, bytes] | None:
    """Collect (stdout, stderr) once the process exits.

    Returns None if stop is set first; the process is then killed and reaped.
    """
    while True:
        if stop.is_set():
            kill_process(process)
            process.wait()
            for pipe in (process.stdout, process.stderr):
                if pipe:
                    pipe.close()
            logger.debug(f"Killed process {process.pid}")
            return None
        try:
            return process.communicate(timeout=poll_interval)
        except subprocess.TimeoutExpired:
            continue


def decode(data: bytes | None) -> str:
    return data.decode("utf-8", errors="replace") if data else ""
