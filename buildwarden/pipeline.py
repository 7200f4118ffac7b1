"""
Build pipeline for a single project.

Chains before-commands, build, supervised run and after-commands, and
restarts the run on demand. Each start gets its own stop event, so stop()
cancels an in-flight build as well as the running process. Fatal errors of
the background run are kept and re-raised to the caller by wait().
"""

import logging
import threading
import time

from .commands import BuildResult, build, run_command
from .config import Config, config as default_config
from .lifecycle import SupervisorError
from .process import ProcessSupervisor
from .project import Project, ToolResult
from .sinks import LogSink
from .tools import ToolPool

logger = logging.getLogger(__name__)


class Pipeline:
    """Builds, runs and restarts a project."""

    def __init__(self, project: Project, sink: LogSink, config: Config = default_config):
        self.project = project
        self.sink = sink
        self.config = config
        self.supervisor: ProcessSupervisor = None
        self.shutdown = threading.Event()
        self._stop: threading.Event = None
        self._thread: threading.Thread = None
        self._error: SupervisorError = None
        self._lock = threading.Lock()
        # Held for a whole start, so concurrent starts launch one run.
        self._start_lock = threading.Lock()

    def is_running(self) -> bool:
        """Check if the supervised run is alive."""
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def run_tools(self, paths: list[str]) -> list[ToolResult]:
        """Run the project's tools over the given files or directories."""
        pool = ToolPool(self.project, self.shutdown, sink=self.sink, config=self.config)
        return pool.run(paths, self.project.tools)

    def run_commands(self, kind: str, stop: threading.Event = None) -> list[tuple[str, str]]:
        """Run the project's commands of one type, in order."""
        stop = stop or self.shutdown
        outputs = []
        for cmd in self.project.commands:
            if cmd.type != kind or stop.is_set():
                continue
            logger.info(f"Running {kind} command '{cmd.command}' for {self.project.name}")
            outputs.append(run_command(self.project, stop, cmd, sink=self.sink, config=self.config))
        return outputs

    def build(self, stop: threading.Event = None, args: list[str] = None) -> BuildResult:
        if args is None:
            args = self.config.build_args.split()
        return build(self.project, stop or self.shutdown, args, sink=self.sink, config=self.config)

    def start(self, rebuild: bool = True) -> bool:
        """Build (optionally) and start the process. Returns True once it is live.

        Raises the run's SupervisorError if it failed before becoming ready.
        """
        with self._start_lock:
            return self._start(rebuild)

    def _start(self, rebuild: bool) -> bool:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.info(f"{self.project.name} is already running")
                return True
            stop = threading.Event()
            self._stop = stop
            self._error = None

        self.run_commands("before", stop)
        if rebuild:
            result = self.build(stop)
            if not result.succeeded:
                logger.warning(f"Not starting {self.project.name}: build {result.outcome.value}")
                return False

        supervisor = ProcessSupervisor(self.project, self.sink, self.config)
        thread = threading.Thread(
            target=self._supervise,
            args=(supervisor, stop),
            name=f"{self.project.name}-run",
            daemon=True,
        )
        with self._lock:
            self.supervisor = supervisor
            self._thread = thread
        thread.start()

        while not supervisor.ready.wait(self.config.poll_interval):
            if not thread.is_alive():
                self.wait()
                return False

        self.run_commands("after", stop)
        return True

    def _supervise(self, supervisor: ProcessSupervisor, stop: threading.Event):
        try:
            supervisor.run(stop)
        except SupervisorError as e:
            logger.error(f"Run of {self.project.name} failed: {e}")
            self._error = e

    def wait(self, timeout: float = None):
        """Wait for the current run to end and re-raise its fatal error."""
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
        error, self._error = self._error, None
        if error is not None:
            raise error

    def stop(self):
        """Stop the current build or run."""
        with self._lock:
            stop = self._stop
        if stop is not None:
            stop.set()
        self.wait()
        logger.info(f"Stopped {self.project.name}")

    def restart(self, rebuild: bool = True) -> bool:
        """Stop the current run and start a fresh one."""
        self.stop()
        time.sleep(self.config.restart_delay)
        return self.start(rebuild=rebuild)

    def close(self):
        """Cancel everything, including tools and commands."""
        self.shutdown.set()
        self.stop()
