"""
Database models for buildwarden.

Uses Peewee ORM with SQLite. Stores the log records captured from builds,
tools, commands and supervised runs so they survive a restart.
"""

import os
from datetime import datetime

from peewee import (
    AutoField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    Model,
    SqliteDatabase,
    TextField,
)

from .config import config

database = DatabaseProxy()


def initialize_db(path=None):
    """Initialize database connection and create tables."""
    path = str(path or config.db_path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    db = SqliteDatabase(
        path,
        pragmas={
            "journal_mode": "wal",
            "cache_size": -64 * 1000,
            "busy_timeout": 5000,
        },
    )
    database.initialize(db)
    database.create_tables([LogEntry], safe=True)
    return db


class BaseModel(Model):
    """Base model with common configuration."""

    class Meta:
        database = database


class LogEntry(BaseModel):
    """A record emitted by a build, tool, command or supervised run."""

    id = AutoField()
    project = CharField(index=True)
    origin = CharField()  # build, run, tool, command
    stream = CharField(default="out")  # out, log, error
    message = TextField()
    timestamp = DateTimeField(default=datetime.now, index=True)

    class Meta:
        table_name = "log_entries"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project": self.project,
            "origin": self.origin,
            "stream": self.stream,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
