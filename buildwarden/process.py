"""
Supervision of a project's compiled executable.

Locates the binary, starts it with its stdout and stderr piped separately,
turns every line of both streams into a record, and kills the process once
a stop is requested or either stream runs dry.
"""

import logging
import os
import re
import subprocess
import threading
from typing import Callable

from .config import Config, config as default_config
from .lifecycle import KillError, StartError, UnbuiltProjectError, kill_process
from .project import Project
from .sinks import BufferOut, LogSink, Origin, Stream

logger = logging.getLogger(__name__)


def _literal(project: Project, bin_dir: str) -> str:
    # A relative path only means something against the project base.
    if os.path.isabs(project.path):
        return project.path
    return ""


def _in_base(project: Project, bin_dir: str) -> str:
    return os.path.abspath(os.path.join(project.base, project.path))


def _in_bin(project: Project, bin_dir: str) -> str:
    name = os.path.basename(project.path) or project.name
    return os.path.join(bin_dir, name)


# Tried in order, the project's own locations with every suffix first.
LOCAL_CANDIDATES = (_literal, _in_base)
BIN_CANDIDATES = (_in_bin,)


def candidate_paths(project: Project, config: Config = default_config) -> list[str]:
    """Every path the executable may live at, most specific first."""
    bin_dir = config.bin_dir()
    candidates = []
    for generators in (LOCAL_CANDIDATES, BIN_CANDIDATES):
        for suffix in config.executable_suffixes:
            for generator in generators:
                path = generator(project, bin_dir)
                if path and path + suffix not in candidates:
                    candidates.append(path + suffix)
    return candidates


def error_matcher(pattern: str) -> tuple[Callable[[str], bool], str | None]:
    """Compile the error pattern into a predicate.

    An empty or invalid pattern never matches; the compile error, if any,
    is returned alongside.
    """
    if not pattern:
        return (lambda text: False), None
    try:
        regexp = re.compile(pattern)
    except re.error as e:
        return (lambda text: False), str(e)
    return (lambda text: regexp.search(text) is not None), None


class ProcessSupervisor:
    """Runs a project's executable and streams its output into a sink."""

    def __init__(self, project: Project, sink: LogSink, config: Config = default_config):
        self.project = project
        self.sink = sink
        self.config = config
        self.process: subprocess.Popen = None
        self.ready = threading.Event()

    def _record(self, text: str, stream: Stream):
        self.sink.append(BufferOut(text=text, origin=Origin.RUN, stream=stream))

    def locate(self) -> str:
        """Find the executable and adopt it as the project path."""
        candidates = candidate_paths(self.project, self.config)
        for path in candidates:
            if os.path.isfile(path):
                self.project.path = path
                return path
        logger.error(f"No executable for {self.project.name}, tried {candidates}")
        self._record("Can't run a not compiled project", Stream.LOG)
        raise UnbuiltProjectError(self.project.name, candidates)

    def run(self, stop: threading.Event, ready: threading.Event = None):
        """Start the process and stream it until stopped or exhausted.

        Raises UnbuiltProjectError when no executable exists, StartError when
        it cannot be started and KillError when it cannot be stopped.
        """
        is_error_text, compile_error = error_matcher(self.project.error_output_pattern)
        if compile_error:
            self._record(compile_error, Stream.ERROR)

        executable = self.locate()
        try:
            process = subprocess.Popen(
                [executable, *self.project.run_args()],
                cwd=self.project.base,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.project.name}: {e}")
            self._record(str(e), Stream.ERROR)
            raise StartError(f"Failed to start {self.project.name}: {e}") from e

        self.process = process
        logger.info(f"Started {self.project.name} with PID {process.pid}")
        self.ready.set()
        if ready is not None:
            ready.set()

        readers = []
        try:
            readers = self._stream(process, stop, is_error_text)
        finally:
            try:
                self._kill(process)
            finally:
                self._join(readers)
                self._record("Ended", Stream.LOG)
                logger.info(f"{self.project.name} ended")

    def _stream(self, process, stop, is_error_text) -> list[threading.Thread]:
        out_done, err_done = threading.Event(), threading.Event()
        readers = [
            threading.Thread(
                target=self._scan,
                args=(process.stdout, out_done, None),
                name=f"{self.project.name}-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._scan,
                args=(process.stderr, err_done, is_error_text),
                name=f"{self.project.name}-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        while not (out_done.is_set() or err_done.is_set()):
            if stop.wait(self.config.poll_interval):
                logger.info(f"Stopping {self.project.name}")
                break
        return readers

    def _scan(self, stream, done: threading.Event, is_error_text):
        """Record each line; stderr lines the pattern does not match are errors."""
        try:
            for line in iter(stream.readline, b""):
                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                stream_kind = Stream.OUT
                if is_error_text is not None and not is_error_text(text):
                    stream_kind = Stream.ERROR
                try:
                    self._record(text, stream_kind)
                except Exception as e:
                    logger.error(f"Error recording output line for {self.project.name}: {e}")
        finally:
            stream.close()
            done.set()

    def _kill(self, process: subprocess.Popen):
        try:
            kill_process(process)
        except KillError as e:
            logger.error(f"Failed to stop {self.project.name}: {e.reason}")
            self._record(f"Failed to stop: {e.reason}", Stream.LOG)
            raise
        process.wait()

    def _join(self, readers: list[threading.Thread]):
        for reader in readers:
            reader.join(timeout=self.config.reader_join_timeout)
            if reader.is_alive():
                logger.warning(f"Reader {reader.name} still open after {self.config.reader_join_timeout}s")
