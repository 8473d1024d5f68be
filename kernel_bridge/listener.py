"""
Broadcast Listener
==================

Long-lived task that subscribes to a kernel's IOPub socket and republishes
each message as a named event scoped by session and originating request.

States::

    CONNECTING -> SUBSCRIBED -> DRAINING -> STOPPED
         |                                    ^
         +------------ connect failed --------+

A listener that fails to connect is not restarted; the session keeps running
but produces no output until it is relaunched.

Cancellation is cooperative: the stop signal is only looked at between
messages. A frame that has already been received is always dispatched in
full, so a stop may be honoured up to one receive-and-decode cycle late.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Optional

import zmq
import zmq.asyncio

from kernel_bridge import codec
from kernel_bridge.events import EventBus, done_event, output_event, status_event
from kernel_bridge.models.connection import ConnectionInfo
from kernel_bridge.models.message import (
    DecodedMessage, DisplayData, ErrorContent, Status, Stream,
)

logger = logging.getLogger(__name__)

# Parent ids remembered for done-event deduplication
COMPLETED_HISTORY = 4096


class ListenerState(str, Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    DRAINING = "draining"
    STOPPED = "stopped"


class BroadcastListener:
    """IOPub subscriber for a single session."""

    def __init__(
        self,
        session_id: str,
        connection: ConnectionInfo,
        bus: EventBus,
        cancel: asyncio.Event,
        context: Optional[zmq.asyncio.Context] = None,
        recv_backoff: float = 0.1,
        verify_signatures: bool = False,
    ):
        self.session_id = session_id
        self.connection = connection
        self.state = ListenerState.CONNECTING

        self._bus = bus
        self._cancel = cancel
        self._context = context or zmq.asyncio.Context.instance()
        self._recv_backoff = recv_backoff
        self._verify = verify_signatures
        self._completed: "OrderedDict[str, None]" = OrderedDict()

        # Metrics
        self.frames_received = 0
        self.decode_failures = 0
        self.recv_errors = 0
        self.rejected = 0

    async def run(self) -> None:
        """Consume IOPub until the cancellation signal is set."""
        addr = self.connection.iopub_addr
        logger.info(f"IOPub connecting to {addr}")

        self.state = ListenerState.CONNECTING
        try:
            sock = self._context.socket(zmq.SUB)
        except zmq.ZMQError as e:
            logger.error(f"Failed to create IOPub socket: {e}")
            self.state = ListenerState.STOPPED
            return
        try:
            sock.connect(addr)
            sock.setsockopt(zmq.SUBSCRIBE, b"")
        except zmq.ZMQError as e:
            logger.error(f"Failed to connect IOPub: {e}")
            sock.close(linger=0)
            self.state = ListenerState.STOPPED
            return

        self.state = ListenerState.SUBSCRIBED
        logger.info(f"IOPub listener started for {self.session_id}")

        stop_wait = asyncio.ensure_future(self._cancel.wait())
        recv: Optional[asyncio.Future] = None
        try:
            while not self._cancel.is_set():
                recv = asyncio.ensure_future(sock.recv_multipart())
                done, _ = await asyncio.wait(
                    {stop_wait, recv}, return_when=asyncio.FIRST_COMPLETED,
                )
                if recv not in done:
                    recv.cancel()
                    break

                try:
                    frames = recv.result()
                except zmq.ContextTerminated:
                    logger.info(f"IOPub context terminated for {self.session_id}")
                    break
                except zmq.ZMQError as e:
                    self.recv_errors += 1
                    logger.warning(f"IOPub recv error: {e}")
                    await asyncio.sleep(self._recv_backoff)
                    continue

                self.handle_frames(frames)
        finally:
            self.state = ListenerState.DRAINING
            stop_wait.cancel()
            if recv is not None and not recv.done():
                recv.cancel()
            sock.close(linger=0)
            self.state = ListenerState.STOPPED
            logger.info(f"IOPub listener stopped for {self.session_id}")

    def handle_frames(self, frames: List[bytes]) -> None:
        """Decode one multipart message and dispatch it."""
        self.frames_received += 1
        message = codec.decode(frames)
        if message is None:
            self.decode_failures += 1
            logger.debug(f"IOPub dropped undecodable message ({len(frames)} frames)")
            return
        if self._verify and not codec.verify(message, self.connection.key):
            self.rejected += 1
            logger.warning(f"IOPub dropped {message.msg_type} with bad signature")
            return
        self.dispatch(message)

    def dispatch(self, message: DecodedMessage) -> None:
        """Translate a decoded IOPub message into bus events."""
        parent_id = message.parent_msg_id
        body = message.body
        logger.debug(f"IOPub msg_type={message.msg_type}, parent_msg_id={parent_id or 'none'}")

        if isinstance(body, Stream):
            self._emit_output(parent_id, {
                "output_type": "stream",
                "name": body.name,
                "text": body.text,
            })
        elif isinstance(body, DisplayData):
            self._emit_output(parent_id, {
                "output_type": message.msg_type,
                "data": body.data,
                "metadata": body.metadata,
                "execution_count": body.execution_count,
            })
        elif isinstance(body, ErrorContent):
            self._emit_output(parent_id, {
                "output_type": "error",
                "ename": body.ename,
                "evalue": body.evalue,
                "traceback": body.traceback,
            })
        elif isinstance(body, Status):
            state = body.execution_state
            self._bus.emit(status_event(self.session_id), {"status": state})
            if state == "idle" and parent_id:
                self._mark_done(parent_id)

    def _emit_output(self, parent_id: str, payload: Dict[str, Any]) -> None:
        self._bus.emit(output_event(self.session_id, parent_id), payload)

    def _mark_done(self, parent_id: str) -> None:
        if parent_id in self._completed:
            return
        self._completed[parent_id] = None
        if len(self._completed) > COMPLETED_HISTORY:
            self._completed.popitem(last=False)
        self._bus.emit(done_event(self.session_id, parent_id), {"success": True})

    def get_stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "frames_received": self.frames_received,
            "decode_failures": self.decode_failures,
            "recv_errors": self.recv_errors,
            "rejected": self.rejected,
        }
