"""
Structured progress events.

Engines report what they do through an EventLog. The log keeps a timestamped
record, mirrors every event to the logging system and optionally forwards it
to a listener (the CLI uses this for verbose output). Nothing in here affects
engine control flow.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from localbak.models import BackupMode


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupStarted:
    target: Path
    mode: BackupMode

    def describe(self) -> str:
        return f"Starting backup of {self.target} ({self.mode.name})"


@dataclass(frozen=True)
class BackupCompleted:
    artifact_path: Path

    def describe(self) -> str:
        return f"Backup written to {self.artifact_path}"


@dataclass(frozen=True)
class RestoreStarted:
    artifact_path: Path
    destination: Path

    def describe(self) -> str:
        return f"Restoring {self.artifact_path} to {self.destination}"


@dataclass(frozen=True)
class RestoreCompleted:
    restored_path: Path

    def describe(self) -> str:
        return f"Restored {self.restored_path}"


@dataclass(frozen=True)
class ArtifactRemoved:
    artifact_path: Path

    def describe(self) -> str:
        return f"Removed backup {self.artifact_path}"


@dataclass(frozen=True)
class Error:
    kind: str
    message: str

    def describe(self) -> str:
        return f"{self.kind}: {self.message}"


class EventLog:
    """
    Collects engine events.

    Can be shared between engines so one operation's full story ends up in a
    single log.
    """

    def __init__(self, listener: Optional[Callable[[object], None]] = None):
        """
        Args:
            listener: Optional callable invoked with every event
        """
        self.records: List[Tuple[datetime, object]] = []
        self.listener = listener

    def emit(self, event):
        """Record an event, log it and hand it to the listener."""
        self.records.append((datetime.now(), event))

        level = logging.ERROR if isinstance(event, Error) else logging.INFO
        logger.log(level, event.describe())

        if self.listener:
            self.listener(event)

    @property
    def events(self) -> list:
        return [event for _, event in self.records]

    @property
    def logs(self) -> List[str]:
        """Human-readable, timestamped lines for every recorded event."""
        return [
            f"[{timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {event.describe()}"
            for timestamp, event in self.records
        ]
