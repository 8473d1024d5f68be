"""
Request/Reply Channel
=====================

Sends shell-channel requests to a kernel.

Every call gets its own short-lived DEALER socket. Connection setup is paid
per call, but a slow or lost reply on one request can never hold up another.

execute() is fire-and-forget for the caller: the request id comes back as
soon as the message is sent, and a detached task waits for the
``execute_reply`` only to keep the socket open until the message has been
flushed. The reply is discarded and errors are only logged; completion is
signalled by the IOPub idle status for the same request id.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

import zmq
import zmq.asyncio

from kernel_bridge import codec
from kernel_bridge.config import TimingConfig
from kernel_bridge.errors import ReplyTimeout, TransportError
from kernel_bridge.models.connection import ConnectionInfo
from kernel_bridge.models.message import CompleteRequest, ExecuteRequest, WireMessage

logger = logging.getLogger(__name__)


@dataclass
class PreparedRequest:
    """An encoded request and the connection it is bound for."""
    connection: ConnectionInfo
    message: WireMessage
    msg_type: str

    @property
    def request_id(self) -> str:
        return self.message.msg_id


class RequestChannel:
    """Shell-channel client: one DEALER socket per request."""

    def __init__(
        self,
        context: Optional[zmq.asyncio.Context] = None,
        timing: Optional[TimingConfig] = None,
        username: str = codec.DEFAULT_USERNAME,
    ):
        self._context = context or zmq.asyncio.Context.instance()
        self._timing = timing or TimingConfig()
        self._username = username
        # Client session id carried in every header we send
        self.client_session = str(uuid.uuid4())

    def prepare(self, connection_file: str | Path, msg_type: str, content: Dict[str, Any]) -> PreparedRequest:
        """
        Encode a request, signing it with the key from ``connection_file``.

        The key is reread on every call; a missing or corrupt file raises
        ConfigurationError.
        """
        connection = ConnectionInfo.load(connection_file)
        message = codec.encode(
            msg_type, self.client_session, content, connection.key, username=self._username,
        )
        return PreparedRequest(connection=connection, message=message, msg_type=msg_type)

    def prepare_execute(self, connection_file: str | Path, code: str) -> PreparedRequest:
        request = ExecuteRequest(code=code)
        return self.prepare(connection_file, request.msg_type, request.to_dict())

    def _open(self, connection: ConnectionInfo) -> zmq.asyncio.Socket:
        addr = connection.shell_addr
        logger.debug(f"Connecting DEALER to {addr}")
        try:
            sock = self._context.socket(zmq.DEALER)
        except zmq.ZMQError as e:
            raise TransportError(f"Failed to connect shell: {e}") from e
        try:
            sock.connect(addr)
        except zmq.ZMQError as e:
            sock.close(linger=0)
            raise TransportError(f"Failed to connect shell: {e}") from e
        return sock

    async def _send(self, sock: zmq.asyncio.Socket, request: PreparedRequest) -> None:
        try:
            await sock.send_multipart(request.message.frames)
        except zmq.ZMQError as e:
            sock.close(linger=0)
            short = request.msg_type.replace("_request", "")
            raise TransportError(f"Failed to send {short} request: {e}") from e

    async def send_execute(
        self,
        request: PreparedRequest,
        track: Optional[Set[asyncio.Task]] = None,
    ) -> str:
        """
        Send a prepared execute request and return its request id.

        The reply watcher task is added to ``track`` (and removed when it
        finishes) so the owner can cancel it on teardown.
        """
        sock = self._open(request.connection)

        try:
            # Let the connect handshake finish before sending
            await asyncio.sleep(self._timing.settle_delay_s)
            logger.debug(f"Sending execute_request msg_id={request.request_id}")
            await self._send(sock, request)
        except BaseException:
            sock.close(linger=0)
            raise

        task = asyncio.ensure_future(
            self._await_reply(sock, request.request_id, self._timing.execute_reply_timeout_s)
        )
        if track is not None:
            track.add(task)
            task.add_done_callback(track.discard)
        return request.request_id

    async def execute(
        self,
        connection_file: str | Path,
        code: str,
        track: Optional[Set[asyncio.Task]] = None,
    ) -> str:
        """Send ``code`` for execution; returns the request id."""
        return await self.send_execute(self.prepare_execute(connection_file, code), track=track)

    async def _await_reply(self, sock: zmq.asyncio.Socket, request_id: str, timeout: float) -> None:
        try:
            await asyncio.wait_for(sock.recv_multipart(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Shell reply timeout for {request_id}")
        except zmq.ZMQError as e:
            logger.error(f"Shell reply error for {request_id}: {e}")
        finally:
            sock.close(linger=0)

    async def complete(self, connection_file: str | Path, code: str, cursor_pos: int) -> Any:
        """
        Ask for completions at ``cursor_pos`` and return the reply content as sent.

        Raises ReplyTimeout when no reply arrives in time and TransportError
        when the reply cannot be decoded.
        """
        body = CompleteRequest(code=code, cursor_pos=cursor_pos)
        request = self.prepare(connection_file, body.msg_type, body.to_dict())
        timeout = self._timing.complete_timeout_s

        sock = self._open(request.connection)
        try:
            await self._send(sock, request)
            try:
                frames = await asyncio.wait_for(sock.recv_multipart(), timeout)
            except asyncio.TimeoutError:
                raise ReplyTimeout(f"No completion reply within {timeout:g}s")
            except zmq.ZMQError as e:
                raise TransportError(f"Failed to receive reply: {e}") from e
        finally:
            sock.close(linger=0)

        reply = codec.decode(frames)
        if reply is None:
            raise TransportError("Failed to parse completion reply")
        return reply.content
