"""
Configuration for buildwarden.

Loads settings from environment variables with sensible defaults.
Persistent data (rotating log, record database, output logs) lives in
~/.buildwarden/ unless BUILDWARDEN_HOME points elsewhere.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def env_path(name: str) -> str:
    """Return the first entry of a path-list environment variable, or ''."""
    entries = [p for p in os.environ.get(name, "").split(os.pathsep) if p]
    if not entries:
        return ""
    return entries[0]


def _default_suffixes() -> tuple[str, ...]:
    # Windows binaries carry the suffix, but a cross-built one may sit next to
    # a plain one elsewhere, so both forms are always tried.
    if sys.platform in ("win32", "cygwin"):
        return (".exe", "")
    return ("", ".exe")


@dataclass
class Config:
    """buildwarden configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("BUILDWARDEN_HOME", str(Path.home() / ".buildwarden")))
    db_path: Path = None
    logs_dir: Path = None
    supervisor_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))
    output_file: str = "outputs.log"
    log_file: str = "logs.log"
    error_file: str = "errors.log"

    # Toolchain
    build_command: str = os.environ.get("BUILD_COMMAND", "go")
    build_args: str = os.environ.get("BUILD_ARGS", "install")
    source_extension: str = os.environ.get("SOURCE_EXTENSION", "go")
    workspace_env: str = os.environ.get("WORKSPACE_ENV", "GOPATH")
    bin_env: str = os.environ.get("BIN_ENV", "GOBIN")
    executable_suffixes: tuple[str, ...] = _default_suffixes()

    # Process management
    poll_interval: float = float(os.environ.get("POLL_INTERVAL", "0.05"))
    reader_join_timeout: float = float(os.environ.get("READER_JOIN_TIMEOUT", "5"))
    tool_workers: int = int(os.environ.get("TOOL_WORKERS", "8"))
    restart_delay: float = float(os.environ.get("RESTART_DELAY", "0"))

    def __post_init__(self):
        """Initialize derived paths."""
        self.data_dir = Path(self.data_dir)
        self.db_path = self.data_dir / "buildwarden.db"
        self.logs_dir = self.data_dir / "logs"
        self.supervisor_log = self.data_dir / "buildwarden.log"

    def ensure_dirs(self):
        """Create the data and logs directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def workspace_dir(self) -> str:
        """Toolchain workspace, defaulting to ~/go like the go tool does."""
        return env_path(self.workspace_env) or str(Path.home() / "go")

    def bin_dir(self) -> str:
        """Directory compiled binaries are installed into."""
        return env_path(self.bin_env) or os.path.join(self.workspace_dir(), "bin")


config = Config()
