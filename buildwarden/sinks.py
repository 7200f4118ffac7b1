"""
Log record sinks.

Every component reports what it captured as BufferOut records appended to a
sink. Records arrive from several threads at once (two stream readers per
supervised process, one worker per tool), so every sink serializes its
appends behind a lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from .config import config
from .models import LogEntry

logger = logging.getLogger(__name__)


class Origin(Enum):
    BUILD = "build"
    RUN = "run"
    TOOL = "tool"
    COMMAND = "command"


class Stream(Enum):
    OUT = "out"
    LOG = "log"
    ERROR = "error"


@dataclass(frozen=True)
class BufferOut:
    """A timestamped, categorized unit of captured output or status."""

    text: str
    origin: Origin
    stream: Stream = Stream.OUT
    time: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "time": self.time.isoformat(),
            "text": self.text,
            "type": self.origin.value,
            "stream": self.stream.value,
        }


class LogSink(Protocol):
    def append(self, record: BufferOut) -> None: ...


class Buffer:
    """In-memory append-only record store, split by stream."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: list[BufferOut] = []

    def append(self, record: BufferOut) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[BufferOut]:
        """Snapshot of every record in arrival order."""
        with self._lock:
            return list(self._records)

    def _select(self, stream: Stream) -> list[BufferOut]:
        with self._lock:
            return [r for r in self._records if r.stream is stream]

    @property
    def std_out(self) -> list[BufferOut]:
        return self._select(Stream.OUT)

    @property
    def std_log(self) -> list[BufferOut]:
        return self._select(Stream.LOG)

    @property
    def std_err(self) -> list[BufferOut]:
        return self._select(Stream.ERROR)

    def __len__(self):
        with self._lock:
            return len(self._records)


class FileSink:
    """Appends records to outputs.log, logs.log and errors.log in a directory."""

    def __init__(self, directory, names: dict[Stream, str] = None):
        self.directory = Path(directory)
        self.names = names or {
            Stream.OUT: config.output_file,
            Stream.LOG: config.log_file,
            Stream.ERROR: config.error_file,
        }
        self._lock = threading.Lock()

    def path_for(self, stream: Stream) -> Path:
        return self.directory / self.names[stream]

    def append(self, record: BufferOut) -> None:
        line = f"[{record.time.isoformat()}] [{record.origin.value}] {record.text}\n"
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(record.stream), "a") as f:
                f.write(line)


class DatabaseSink:
    """Stores records as LogEntry rows. The database must be initialized."""

    def __init__(self, project: str):
        self.project = project
        self._lock = threading.Lock()

    def append(self, record: BufferOut) -> None:
        with self._lock:
            LogEntry.create(
                project=self.project,
                origin=record.origin.value,
                stream=record.stream.value,
                message=record.text[:2000],
                timestamp=record.time,
            )


class LoggingSink:
    """Forwards records to the logging module, errors at ERROR level."""

    def __init__(self, name: str, log: logging.Logger = None):
        self.name = name
        self.log = log or logging.getLogger("buildwarden.output")

    def append(self, record: BufferOut) -> None:
        level = logging.ERROR if record.stream is Stream.ERROR else logging.INFO
        self.log.log(level, f"[{self.name}] {record.origin.value}: {record.text}")


class MultiSink:
    """Fans each record out to several sinks."""

    def __init__(self, *sinks: LogSink):
        self.sinks = list(sinks)

    def append(self, record: BufferOut) -> None:
        for sink in self.sinks:
            try:
                sink.append(record)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed to store record: {e}")
