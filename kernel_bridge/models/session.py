"""
Session Models
==============

A session is one launched kernel plus everything it owns. Sessions live only
inside the SessionRegistry; callers get SessionInfo snapshots keyed by id.
"""

from __future__ import annotations

import asyncio
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Set

from kernel_bridge.models.connection import ConnectionInfo


class KernelStatus(str, Enum):
    """Execution state as last reported on IOPub."""
    STARTING = "starting"
    IDLE = "idle"
    BUSY = "busy"
    UNKNOWN = "unknown"
    DEAD = "dead"


@dataclass
class Session:
    """Resources owned by one launched kernel."""
    session_id: str
    spec_name: str
    process: subprocess.Popen
    connection_file: Path
    connection: ConnectionInfo
    display_name: str = ""
    language: str = ""
    status: str = KernelStatus.STARTING.value
    started_at: float = field(default_factory=time.time)

    # Cancellation signal for the IOPub listener; set == stop
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    listener_task: Optional[asyncio.Task] = None
    reply_tasks: Set[asyncio.Task] = field(default_factory=set)
    unsubscribe: list = field(default_factory=list)

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            spec_name=self.spec_name,
            display_name=self.display_name,
            language=self.language,
            status=self.status,
            pid=self.pid,
            connection_file=str(self.connection_file),
            started_at=self.started_at,
        )


@dataclass(frozen=True)
class SessionInfo:
    """Read-only view of a session, safe to hand to callers."""
    session_id: str
    spec_name: str
    display_name: str
    language: str
    status: str
    pid: Optional[int]
    connection_file: str
    started_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "spec_name": self.spec_name,
            "display_name": self.display_name,
            "language": self.language,
            "status": self.status,
            "pid": self.pid,
            "connection_file": self.connection_file,
            "started_at": self.started_at,
        }
