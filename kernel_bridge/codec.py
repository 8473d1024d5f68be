"""
Message Codec
=============

Encodes and decodes the Jupyter wire envelope::

    <IDS|MSG> | signature | header | parent_header | metadata | content

Packing, signing and unpacking are delegated to ``jupyter_client``'s
Session. The signature is a hex HMAC-SHA256 over the four JSON parts, in
order, using the connection file's key. With no key the signature is empty.

Each JSON part is serialised exactly once and those bytes are both signed
and sent; re-serialising between the two would break the signature.

decode() does not check signatures. Messages on the loopback IOPub socket are
trusted unless ``verify_signatures`` is switched on, in which case callers
use verify() on the decoded message.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, List, Optional, Sequence

from jupyter_client.session import Session

from kernel_bridge.models.connection import SIGNATURE_SCHEME
from kernel_bridge.models.message import (
    DELIMITER, DecodedMessage, WireMessage, new_header,
)

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "kernel-bridge"

# Session warns on an empty key; unsigned sessions get a placeholder key and
# no authenticator
_PLACEHOLDER_KEY = b"unsigned"


def new_session(key: str = "", username: str = DEFAULT_USERNAME, session_id: Optional[str] = None) -> Session:
    """A Session signing with ``key``; an empty key disables signing."""
    kwargs: Dict[str, Any] = {
        "key": key.encode("utf-8") if key else _PLACEHOLDER_KEY,
        "signature_scheme": SIGNATURE_SCHEME,
        "username": username,
    }
    if session_id:
        kwargs["session"] = session_id
    session = Session(**kwargs)
    if not key:
        session.auth = None
    return session


# Decoding never checks signatures; see verify()
_UNSIGNED = new_session()


def sign(parts: Sequence[bytes], key: str) -> bytes:
    """Hex HMAC-SHA256 of ``parts`` under ``key``; empty when there is no key."""
    return new_session(key).sign(list(parts))


def encode(
    msg_type: str,
    session_id: str,
    content: Any,
    key: str,
    username: str = DEFAULT_USERNAME,
    parent_header: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> WireMessage:
    """Build a signed message with a fresh header."""
    session = new_session(key, username=username, session_id=session_id)
    header = new_header(msg_type, session_id, username)
    msg = session.msg(
        msg_type,
        content=content,
        parent=parent_header or None,
        header=header,
        metadata=metadata,
    )
    frames = session.serialize(msg)

    pos = frames.index(DELIMITER)
    signature, header_b, parent_b, metadata_b, content_b = frames[pos + 1:pos + 6]
    return WireMessage(
        signature=signature,
        header=header_b,
        parent_header=parent_b,
        metadata=metadata_b,
        content=content_b,
        msg_id=msg["msg_id"],
    )


def decode(frames: Sequence[bytes]) -> Optional[DecodedMessage]:
    """
    Parse a received multipart message.

    The delimiter is searched for rather than assumed at index 0, since ROUTER
    and PUB sockets may prefix identity or topic frames. Returns None when the
    delimiter is missing, fewer than five frames follow it, a JSON part is
    invalid, or the header lacks ``msg_id`` or a string ``msg_type``. Invalid metadata
    decodes as ``{}``.
    """
    try:
        _, msg_list = _UNSIGNED.feed_identities([bytes(f) for f in frames])
    except ValueError:
        return None
    if len(msg_list) < 5:
        return None

    parts: List[bytes] = list(msg_list)
    signed_parts = parts[1:5]
    try:
        _UNSIGNED.unpack(parts[3])
    except ValueError:
        parts[3] = b"{}"

    try:
        msg = _UNSIGNED.deserialize(parts, content=True)
    except Exception as e:
        logger.debug(f"deserialize failed: {e}")
        return None

    header = msg["header"]
    if not isinstance(header.get("msg_type"), str):
        return None

    parent = msg.get("parent_header")
    metadata = msg.get("metadata")
    return DecodedMessage(
        msg_type=header["msg_type"],
        header=header,
        parent_header=parent if isinstance(parent, dict) else {},
        metadata=metadata if isinstance(metadata, dict) else {},
        content=msg.get("content"),
        signature=parts[0],
        signed_parts=signed_parts,
    )


def verify(message: DecodedMessage, key: str) -> bool:
    """Check a decoded message's signature. Without a key every message passes."""
    if not key:
        return True
    expected = sign(message.signed_parts, key)
    return hmac.compare_digest(expected, message.signature)
