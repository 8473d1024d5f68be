"""
Session Registry
================

Process-wide owner of every live kernel session. Callers only ever hold
session id strings; the process handles, connection files and cancellation
signals stay in here.

One lock guards the whole mapping. It is held for map lookups and mutation
only, never across an await, so a slow session cannot block the others.

remove() is the only path that releases a session's resources. A session
that is never shut down keeps its process and listener task alive.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from kernel_bridge.errors import SessionNotFound
from kernel_bridge.models.session import KernelStatus, Session, SessionInfo
from kernel_bridge.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session ids to the resources they own."""

    def __init__(self, supervisor: Optional[ProcessSupervisor] = None):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._supervisor = supervisor or ProcessSupervisor()

        # Metrics
        self._inserted = 0
        self._removed = 0

    def insert(self, session: Session) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Duplicate session id: {session.session_id}")
            self._sessions[session.session_id] = session
            self._inserted += 1
        logger.debug(f"Registered session {session.session_id}")

    def lookup(self, session_id: str) -> Session:
        """The session for ``session_id``; raises SessionNotFound if absent."""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        """Take ``session_id`` out of the map. None if it was not there."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                self._removed += 1
        return session

    def update_status(self, session_id: str, status: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.status = status

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def snapshot(self) -> List[SessionInfo]:
        with self._lock:
            return [s.info() for s in self._sessions.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def teardown(self, session: Session) -> None:
        """
        Release everything ``session`` owns: stop its listener, cancel reply
        watchers, kill and reap the process, delete the connection file.
        """
        session.cancel.set()

        for task in list(session.reply_tasks):
            task.cancel()
        session.reply_tasks.clear()

        for unsubscribe in session.unsubscribe:
            unsubscribe()
        session.unsubscribe.clear()

        if session.process is not None:
            status = self._supervisor.kill(session.process)
            logger.info(f"Kernel {session.session_id} exited with status {status}")

        try:
            session.connection_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete connection file {session.connection_file}: {e}")

        session.status = KernelStatus.DEAD.value

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "active": len(self._sessions),
                "inserted": self._inserted,
                "removed": self._removed,
            }
