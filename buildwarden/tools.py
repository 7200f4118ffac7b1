"""
Auxiliary toolchain commands (fmt, vet, test, generate) run concurrently.

run_tool handles one (path, tool) pair and puts a ToolResult on the shared
queue only when the tool fails. ToolPool fans a set of paths and tools out
over a thread pool and drains the queue while it waits, so producers never
block on a full queue with nobody reading it.
"""

import logging
import os
import queue
import subprocess
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import replace

from .config import Config, config as default_config
from .lifecycle import communicate, decode
from .project import Project, Tool, ToolResult
from .sinks import BufferOut, LogSink, Origin, Stream

logger = logging.getLogger(__name__)


def extension(path: str) -> str:
    """File extension without the dot, '' for none."""
    return os.path.splitext(path)[1].lstrip(".")


def tool_invocation(
    project: Project,
    path: str,
    tool: Tool,
    config: Config = default_config,
) -> tuple[str, Tool] | None:
    """Working directory and per-call tool copy, or None if not applicable."""
    ext = extension(path)
    if ext == config.source_extension:
        if tool.dir:
            return os.path.dirname(path), tool
        return project.base, replace(tool, options=(*tool.options, path))
    if ext == "":
        if tool.dir:
            return os.path.dirname(path), tool
        return path, tool
    return None


def run_tool(
    project: Project,
    stop: threading.Event,
    results: queue.Queue,
    path: str,
    tool: Tool,
    config: Config = default_config,
):
    """Run one tool against a file or a root directory."""
    if not tool.enabled:
        return
    invocation = tool_invocation(project, path, tool, config)
    if invocation is None:
        return
    cwd, tool = invocation

    try:
        process = subprocess.Popen(
            [tool.cmd, *tool.options],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Failed to start {tool.name} for {project.name}: {e}")
        results.put(ToolResult(tool=tool, path=path, output=str(e)))
        return

    captured = communicate(process, stop, config.poll_interval)
    if captured is None:
        return
    if process.returncode != 0:
        stdout, stderr = captured
        results.put(ToolResult(tool=tool, path=path, output=decode(stderr) + decode(stdout)))


class ToolPool:
    """Runs tools over many paths at once and collects the failures."""

    def __init__(
        self,
        project: Project,
        stop: threading.Event,
        sink: LogSink = None,
        config: Config = default_config,
        max_workers: int = None,
    ):
        self.project = project
        self.stop = stop
        self.sink = sink
        self.config = config
        self.max_workers = max_workers or config.tool_workers

    def run(self, paths: list[str], tools: list[Tool]) -> list[ToolResult]:
        """Run every tool on every path, returning the failed invocations."""
        results: queue.Queue = queue.Queue(maxsize=self.max_workers)
        collected: list[ToolResult] = []
        errors: list[BaseException] = []

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="tool") as executor:
            pending = {
                executor.submit(run_tool, self.project, self.stop, results, path, tool, self.config)
                for path, tool in self._jobs(paths, tools)
            }
            # Keep draining until every worker is done, even after a failure.
            while pending:
                done, pending = wait(pending, timeout=self.config.poll_interval, return_when=FIRST_COMPLETED)
                collected.extend(self._drain(results))
                errors.extend(f.exception() for f in done if f.exception() is not None)
        collected.extend(self._drain(results))
        if errors:
            raise errors[0]

        if collected:
            logger.warning(f"{len(collected)} tool run(s) failed for {self.project.name}")
        return collected

    def _jobs(self, paths: list[str], tools: list[Tool]) -> list[tuple[str, Tool]]:
        """Every (path, tool) pair, running identical invocations only once."""
        seen = set()
        jobs = []
        for path in paths:
            for tool in tools:
                if tool.enabled:
                    invocation = tool_invocation(self.project, path, tool, self.config)
                    if invocation in seen:
                        continue
                    if invocation is not None:
                        seen.add(invocation)
                jobs.append((path, tool))
        return jobs

    def _drain(self, results: queue.Queue) -> list[ToolResult]:
        drained = []
        while True:
            try:
                result = results.get_nowait()
            except queue.Empty:
                return drained
            drained.append(result)
            if self.sink is not None:
                self.sink.append(BufferOut(
                    text=f"{result.tool.name}: {result.path}\n{result.output}",
                    origin=Origin.TOOL,
                    stream=Stream.ERROR,
                ))
