"""
Kernel Manager
==============

The session API used by editors and the CLI:

    discover() -> [KernelSpec]
    launch(spec_name, spec_path) -> session_id
    ensure(language) -> session_id
    execute(session_id, code) -> request_id
    execute_and_wait(session_id, code) -> ExecutionResult
    complete(session_id, code, cursor_pos) -> reply content
    interrupt(session_id)
    shutdown(session_id)

Outputs and status are pushed through the EventBus, never polled.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import zmq.asyncio

from kernel_bridge.channel import RequestChannel
from kernel_bridge.config import BridgeConfig
from kernel_bridge.errors import KernelSpecNotFound, ReplyTimeout
from kernel_bridge.events import EventBus, done_event, output_event, status_event
from kernel_bridge.kernelspecs import (
    KernelSpecRegistry, find_spec_for_language, missing_kernel_message,
)
from kernel_bridge.listener import BroadcastListener
from kernel_bridge.models.connection import ConnectionInfo, runtime_dir
from kernel_bridge.models.kernelspec import (
    KernelSpec, load_kernel_file, substitute_connection_file,
)
from kernel_bridge.models.session import KernelStatus, Session, SessionInfo
from kernel_bridge.resolver import InterpreterResolver
from kernel_bridge.sessions import SessionRegistry
from kernel_bridge.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

# How long shutdown waits for the listener task to notice the stop signal
LISTENER_STOP_WAIT_S = 1.0


@dataclass
class ExecutionResult:
    """Everything a finished execution produced on IOPub."""
    request_id: str
    outputs: List[Dict[str, Any]] = field(default_factory=list)
    success: bool = True

    @property
    def error(self) -> Optional[Dict[str, Any]]:
        for output in self.outputs:
            if output.get("output_type") == "error":
                return output
        return None

    @property
    def stdout(self) -> str:
        return "".join(
            o.get("text", "") for o in self.outputs
            if o.get("output_type") == "stream" and o.get("name") == "stdout"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "outputs": self.outputs,
            "success": self.success,
        }


class KernelManager:
    """
    Owns the session registry and wires discovery, launch, the IOPub
    listeners and the shell channel together.

    Use as an async context manager, or call close() when done, so that
    every kernel process is killed and every connection file removed.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        bus: Optional[EventBus] = None,
        resolver: Optional[InterpreterResolver] = None,
        kernelspecs: Optional[KernelSpecRegistry] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        context: Optional[zmq.asyncio.Context] = None,
    ):
        self.config = config or BridgeConfig()
        timing = self.config.timing

        self.bus = bus or EventBus()
        self.supervisor = supervisor or ProcessSupervisor(kill_timeout=timing.kill_timeout_s)
        self.sessions = SessionRegistry(self.supervisor)
        self.resolver = resolver or InterpreterResolver(check_timeout=timing.check_timeout_s)
        self.kernelspecs = kernelspecs or KernelSpecRegistry(
            extra_dirs=self.config.paths.extra_kernel_dirs,
            timeout=timing.discover_timeout_s,
        )

        self._owns_context = context is None
        self._context = context or zmq.asyncio.Context()
        self.channel = RequestChannel(
            context=self._context,
            timing=timing,
            username=self.config.protocol.username,
        )
        self._listeners: Dict[str, BroadcastListener] = {}

        # One kernel per language for ensure(); launches in flight are shared
        self._by_language: Dict[str, str] = {}
        self._launching: Dict[str, asyncio.Future] = {}

    async def __aenter__(self) -> KernelManager:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────────
    # Discovery
    # ─────────────────────────────────────────────────────────────────

    def discover(self) -> List[KernelSpec]:
        """Installed kernels on this host."""
        return self.kernelspecs.discover()

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    async def launch(self, spec_name: str, spec_path: str) -> str:
        """
        Start the kernel defined in ``<spec_path>/kernel.json``.

        Returns the new session id. On any failure the connection file is
        removed, a spawned process is reaped, and nothing is registered.
        """
        spec_file = load_kernel_file(spec_path)
        # The ipykernel check runs candidate interpreters; keep it off the loop
        argv = await asyncio.to_thread(self.resolver.resolve_argv, spec_file.argv or [])

        kernel_id = str(uuid.uuid4())
        connection = ConnectionInfo.generate()
        conn_path = connection.persist(runtime_dir(self.config.paths.runtime_dir), kernel_id)
        logger.info(f"Connection file: {conn_path}")

        process = None
        try:
            argv = substitute_connection_file(argv, str(conn_path))
            process = self.supervisor.spawn(argv, env=spec_file.env or None)
            await self.supervisor.verify_alive(process, self.config.timing.startup_grace_s)
        except BaseException:
            if process is not None:
                self.supervisor.kill(process)
            _remove_quietly(conn_path)
            raise

        session = Session(
            session_id=kernel_id,
            spec_name=spec_name,
            process=process,
            connection_file=conn_path,
            connection=connection,
            display_name=spec_file.display_name or spec_name,
            language=spec_file.language or "",
            status=KernelStatus.IDLE.value,
        )
        session.unsubscribe.append(self.bus.subscribe(
            status_event(kernel_id),
            lambda payload: self.sessions.update_status(kernel_id, payload.get("status", "unknown")),
        ))
        self.sessions.insert(session)

        listener = BroadcastListener(
            session_id=kernel_id,
            connection=connection,
            bus=self.bus,
            cancel=session.cancel,
            context=self._context,
            recv_backoff=self.config.timing.recv_backoff_s,
            verify_signatures=self.config.protocol.verify_signatures,
        )
        self._listeners[kernel_id] = listener
        session.listener_task = asyncio.ensure_future(listener.run())

        logger.info(f"Launched kernel {spec_name} as {kernel_id} (pid={process.pid})")
        return kernel_id

    async def ensure(self, language: str) -> str:
        """
        Session id of a live kernel for ``language``, launching one if needed.

        A kernel started here is reused by later calls until it dies or is
        shut down. Concurrent calls for the same language share one launch.
        Raises KernelSpecNotFound, with install instructions, when no
        installed kernel matches.
        """
        language = language.lower()
        session_id = self._by_language.get(language)
        if session_id is not None:
            session = self.sessions.get(session_id)
            if session is not None and session.status != KernelStatus.DEAD.value:
                return session_id
            del self._by_language[language]

        task = self._launching.get(language)
        if task is None:
            task = asyncio.ensure_future(self._launch_for_language(language))
            task.add_done_callback(lambda _: self._launching.pop(language, None))
            self._launching[language] = task
        # A cancelled caller must not cancel the launch the others wait on
        return await asyncio.shield(task)

    async def _launch_for_language(self, language: str) -> str:
        specs = await asyncio.to_thread(self.kernelspecs.discover)
        spec = find_spec_for_language(specs, language)
        if spec is None:
            raise KernelSpecNotFound(missing_kernel_message(language))

        logger.info(f"Using kernel spec {spec.name} for {language}")
        session_id = await self.launch(spec.name, spec.path)
        self._by_language[language] = session_id
        return session_id

    def interrupt(self, session_id: str) -> None:
        """Abort the running computation without losing kernel state."""
        session = self.sessions.lookup(session_id)
        self.supervisor.interrupt(session.process)
        logger.info(f"Interrupted kernel {session_id}")

    async def shutdown(self, session_id: str) -> bool:
        """
        Tear a session down. Returns False (and does nothing) when the id is
        unknown or was already shut down.
        """
        session = self.sessions.remove(session_id)
        if session is None:
            logger.debug(f"Shutdown of unknown session {session_id} ignored")
            return False

        self.sessions.teardown(session)
        self._listeners.pop(session_id, None)

        task = session.listener_task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=LISTENER_STOP_WAIT_S)
            if not task.done():
                task.cancel()

        logger.info(f"Kernel {session_id} shut down")
        return True

    async def shutdown_all(self) -> int:
        count = 0
        for session_id in self.sessions.ids():
            if await self.shutdown(session_id):
                count += 1
        return count

    async def close(self) -> None:
        pending = list(self._launching.values())
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self.shutdown_all()
        if self._owns_context:
            self._context.destroy(linger=0)

    # ─────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────

    async def execute(self, session_id: str, code: str) -> str:
        """
        Send ``code`` for execution and return the request id at once.

        Outputs arrive as ``kernel-output-<session>-<request>`` events and
        completion as ``kernel-done-<session>-<request>``.
        """
        session = self.sessions.lookup(session_id)
        logger.debug(f"execute for session_id={session_id}, code_len={len(code)}")
        return await self.channel.execute(session.connection_file, code, track=session.reply_tasks)

    async def execute_and_wait(
        self,
        session_id: str,
        code: str,
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Execute ``code`` and wait for the kernel to go idle for it.

        Listeners are registered before the request is sent, so no output can
        be missed. Raises ReplyTimeout after ``timeout`` seconds (default: the
        execute reply timeout).
        """
        session = self.sessions.lookup(session_id)
        timeout = timeout if timeout is not None else self.config.timing.execute_reply_timeout_s

        request = self.channel.prepare_execute(session.connection_file, code)
        result = ExecutionResult(request_id=request.request_id)
        finished: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_done(payload: Dict[str, Any]) -> None:
            if not finished.done():
                finished.set_result(payload)

        unsubscribers = [
            self.bus.subscribe(output_event(session_id, request.request_id), result.outputs.append),
            self.bus.subscribe(done_event(session_id, request.request_id), on_done),
        ]
        try:
            await self.channel.send_execute(request, track=session.reply_tasks)
            try:
                payload = await asyncio.wait_for(finished, timeout)
            except asyncio.TimeoutError:
                raise ReplyTimeout(f"Execution timed out ({timeout:g}s)")
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

        result.success = payload.get("success") is not False
        return result

    async def complete(self, session_id: str, code: str, cursor_pos: int) -> Any:
        """Completion reply content for ``code`` at ``cursor_pos``."""
        session = self.sessions.lookup(session_id)
        return await self.channel.complete(session.connection_file, code, cursor_pos)

    # ─────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────

    def subscribe(self, name: str, callback: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        return self.bus.subscribe(name, callback)

    def list_sessions(self) -> List[SessionInfo]:
        return self.sessions.snapshot()

    def get_session(self, session_id: str) -> SessionInfo:
        return self.sessions.lookup(session_id).info()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sessions": self.sessions.get_stats(),
            "events": self.bus.get_stats(),
            "listeners": {sid: l.get_stats() for sid, l in self._listeners.items()},
        }


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to delete connection file {path}: {e}")
