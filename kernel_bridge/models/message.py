"""
Message Models
==============

The wire envelope and the typed message bodies this bridge understands.

Bodies are a closed set selected by ``msg_type``; anything else decodes to
RawContent so unknown kernels and newer protocol versions still pass through.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

DELIMITER = b"<IDS|MSG>"
PROTOCOL_VERSION = "5.3"


def new_header(msg_type: str, session: str, username: str) -> Dict[str, Any]:
    """Header for a freshly created message."""
    return {
        "msg_id": str(uuid.uuid4()),
        "session": session,
        "username": username,
        "date": datetime.now(timezone.utc).isoformat(),
        "msg_type": msg_type,
        "version": PROTOCOL_VERSION,
    }


@dataclass
class WireMessage:
    """
    Six-part envelope: delimiter, signature, header, parent header, metadata,
    content. The JSON parts hold the exact bytes that were signed.
    """
    signature: bytes
    header: bytes
    parent_header: bytes
    metadata: bytes
    content: bytes
    msg_id: str = ""

    @property
    def frames(self) -> List[bytes]:
        return [
            DELIMITER,
            self.signature,
            self.header,
            self.parent_header,
            self.metadata,
            self.content,
        ]

    @property
    def signed_parts(self) -> List[bytes]:
        return [self.header, self.parent_header, self.metadata, self.content]


# ─────────────────────────────────────────────────────────────────────
# Typed bodies
# ─────────────────────────────────────────────────────────────────────

@dataclass
class ExecuteRequest:
    code: str
    silent: bool = False
    store_history: bool = True
    user_expressions: Dict[str, Any] = field(default_factory=dict)
    allow_stdin: bool = False
    stop_on_error: bool = True

    msg_type = "execute_request"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "silent": self.silent,
            "store_history": self.store_history,
            "user_expressions": self.user_expressions,
            "allow_stdin": self.allow_stdin,
            "stop_on_error": self.stop_on_error,
        }


@dataclass
class CompleteRequest:
    code: str
    cursor_pos: int

    msg_type = "complete_request"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "cursor_pos": self.cursor_pos}


@dataclass
class CompleteReply:
    matches: List[str] = field(default_factory=list)
    cursor_start: int = 0
    cursor_end: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    status: str = "ok"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CompleteReply:
        return cls(
            matches=list(data.get("matches") or []),
            cursor_start=data.get("cursor_start") or 0,
            cursor_end=data.get("cursor_end") or 0,
            metadata=data.get("metadata") or {},
            status=data.get("status", "ok"),
        )


@dataclass
class Stream:
    name: str = "stdout"
    text: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Stream:
        name = data.get("name")
        text = data.get("text")
        return cls(
            name=name if isinstance(name, str) else "stdout",
            text=text if isinstance(text, str) else "",
        )


@dataclass
class DisplayData:
    """Body of both ``display_data`` and ``execute_result``."""
    data: Any = None
    metadata: Any = None
    execution_count: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DisplayData:
        return cls(
            data=data.get("data"),
            metadata=data.get("metadata"),
            execution_count=data.get("execution_count"),
        )


@dataclass
class ErrorContent:
    ename: Any = None
    evalue: Any = None
    traceback: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ErrorContent:
        return cls(
            ename=data.get("ename"),
            evalue=data.get("evalue"),
            traceback=data.get("traceback"),
        )


@dataclass
class Status:
    execution_state: str = "unknown"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Status:
        state = data.get("execution_state")
        return cls(execution_state=state if isinstance(state, str) else "unknown")


@dataclass
class RawContent:
    payload: Any = None


Body = Union[CompleteReply, Stream, DisplayData, ErrorContent, Status, RawContent]

_BODY_TYPES = {
    "complete_reply": CompleteReply,
    "stream": Stream,
    "display_data": DisplayData,
    "execute_result": DisplayData,
    "error": ErrorContent,
    "status": Status,
}


def parse_body(msg_type: str, content: Any) -> Body:
    """Select the typed body for ``msg_type``; unknown types stay raw."""
    body_cls = _BODY_TYPES.get(msg_type)
    if body_cls is None or not isinstance(content, dict):
        return RawContent(payload=content)
    return body_cls.from_dict(content)


@dataclass
class DecodedMessage:
    """A received message. ``content`` is the JSON value exactly as sent."""
    msg_type: str
    header: Dict[str, Any]
    parent_header: Dict[str, Any]
    metadata: Dict[str, Any]
    content: Any
    signature: bytes = b""
    signed_parts: List[bytes] = field(default_factory=list, repr=False)

    @property
    def msg_id(self) -> str:
        value = self.header.get("msg_id")
        return value if isinstance(value, str) else ""

    @property
    def parent_msg_id(self) -> str:
        """Request id this message answers, or "" when there is none."""
        return parent_id_of(self.parent_header)

    @property
    def body(self) -> Body:
        return parse_body(self.msg_type, self.content)


def parent_id_of(parent_header: Optional[Dict[str, Any]]) -> str:
    if not isinstance(parent_header, dict):
        return ""
    value = parent_header.get("msg_id")
    return value if isinstance(value, str) else ""
