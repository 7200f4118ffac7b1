"""
Command-line entry point.

Builds a Project from options, runs its tools once over the project root,
then builds and supervises it until interrupted. This is the only place
that turns a fatal SupervisorError into a process exit.
"""

import logging
import os
import signal
import threading
from logging.handlers import RotatingFileHandler
from typing import List, Optional

import typer

from .config import config
from .lifecycle import SupervisorError
from .models import initialize_db
from .pipeline import Pipeline
from .project import Command, Project, default_tools
from .sinks import DatabaseSink, FileSink, LoggingSink, MultiSink

logger = logging.getLogger(__name__)

app = typer.Typer(help="Build, run and restart a project while streaming its output.")


def configure_logging(to_file: bool = True, level: int = logging.INFO):
    """Console logging, plus a rotating log file under the data directory."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    if to_file:
        config.ensure_dirs()
        file_handler = RotatingFileHandler(
            config.supervisor_log,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def source_files(base: str, extension: str) -> list[str]:
    """Source files under base, skipping hidden and vendor directories."""
    files = []
    for root, dirs, names in os.walk(base):
        dirs[:] = sorted(d for d in dirs if not d.startswith(".") and d != "vendor")
        files.extend(os.path.join(root, n) for n in sorted(names) if n.endswith(f".{extension}"))
    return files


@app.command()
def run(
    base: str = typer.Option(".", help="Project base directory."),
    path: str = typer.Option("", help="Executable path, relative to base or absolute."),
    name: Optional[str] = typer.Option(None, help="Project name (defaults to the base directory name)."),
    arg: List[str] = typer.Option([], "--arg", help="Run-time argument, split on whitespace."),
    error_pattern: str = typer.Option("", help="Regex for stderr lines that are not errors."),
    build_args: str = typer.Option(config.build_args, help="Arguments passed to the build command."),
    no_build: bool = typer.Option(False, "--no-build", help="Run an existing binary without building."),
    fmt: bool = typer.Option(False, "--fmt", help="Run the formatter."),
    vet: bool = typer.Option(False, "--vet", help="Run vet."),
    test: bool = typer.Option(False, "--test", help="Run tests."),
    generate: bool = typer.Option(False, "--generate", help="Run code generation."),
    before: List[str] = typer.Option([], "--before", help="Command to run before the build."),
    after: List[str] = typer.Option([], "--after", help="Command to run once the process is live."),
    log_files: bool = typer.Option(False, "--log-files", help="Write outputs/logs/errors files."),
    database: bool = typer.Option(False, "--database", help="Store records in the database."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Build the project and supervise it until interrupted."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO)

    base = os.path.abspath(base)
    project = Project(
        name=name or os.path.basename(base),
        base=base,
        path=path,
        args=list(arg),
        error_output_pattern=error_pattern,
        commands=[Command(c, type="before") for c in before] + [Command(c, type="after") for c in after],
        tools=default_tools(fmt=fmt, generate=generate, test=test, vet=vet),
    )

    sinks = [LoggingSink(project.name)]
    if log_files:
        sinks.append(FileSink(config.logs_dir / project.name))
    if database:
        initialize_db()
        sinks.append(DatabaseSink(project.name))
    config.build_args = build_args
    pipeline = Pipeline(project, MultiSink(*sinks), config)

    interrupted = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: interrupted.set())

    try:
        failures = pipeline.run_tools(source_files(base, config.source_extension))
        for failure in failures:
            logger.warning(f"{failure.tool.name} failed:\n{failure.output}")

        if not pipeline.start(rebuild=not no_build):
            raise typer.Exit(code=1)
        while pipeline.is_running() and not interrupted.wait(config.poll_interval):
            pass
        pipeline.close()
    except SupervisorError as e:
        pipeline.shutdown.set()
        logger.error(str(e))
        raise typer.Exit(code=1)
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def main():
    app()
