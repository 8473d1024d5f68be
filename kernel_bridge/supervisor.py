"""
Process Supervisor
==================

Spawns kernel processes, checks they survived startup, and owns interrupt
and kill signalling.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from typing import IO, Dict, List, Optional

from kernel_bridge.errors import ProcessExitedEarly, ProcessLaunchFailure

logger = logging.getLogger(__name__)

STDERR_LOG_LIMIT = 2000
STDERR_MESSAGE_LIMIT = 500
STDERR_READ_LIMIT = 64 * 1024
STDERR_READ_TIMEOUT_S = 1.0

# Substring in stderr -> remediation hint, first match wins
STDERR_HINTS = (
    ("No module named",
     "Hint: A required Python module is missing. Try: pip3 install ipykernel"),
    ("Permission denied",
     "Hint: Permission denied. Check file permissions or try running with appropriate access."),
    ("SyntaxError",
     "Hint: Python version mismatch. The kernel may need a different Python version."),
)


def classify_stderr(stderr: str) -> str:
    """Remediation hint for common startup failures, or ""."""
    for needle, hint in STDERR_HINTS:
        if needle in stderr:
            return hint
    return ""


def _drain_nonblocking(pipe: IO[bytes], limit: int) -> bytes:
    fd = pipe.fileno()
    os.set_blocking(fd, False)
    chunks: List[bytes] = []
    size = 0
    while size < limit:
        try:
            chunk = os.read(fd, limit - size)
        except BlockingIOError:
            break
        if not chunk:
            break
        chunks.append(chunk)
        size += len(chunk)
    return b"".join(chunks)


async def read_available(pipe: IO[bytes], limit: int = STDERR_READ_LIMIT) -> bytes:
    """
    What an exited process left in ``pipe``, up to ``limit`` bytes.

    Never waits for end-of-file: a grandchild that inherited the pipe can
    hold it open long after the kernel itself is gone.
    """
    if sys.platform != "win32":
        return _drain_nonblocking(pipe, limit)
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(os.read, pipe.fileno(), limit), STDERR_READ_TIMEOUT_S,
        )
    except asyncio.TimeoutError:
        logger.warning("Timed out reading kernel stderr")
        return b""


def exit_message(status: Optional[int], stderr: str, hint: str) -> str:
    message = f"Kernel process exited with status: {status}."
    if stderr:
        message += "\n" + stderr[:STDERR_MESSAGE_LIMIT]
    if hint:
        message += "\n" + hint
    return message


class ProcessSupervisor:
    """Launch, liveness check and termination for kernel processes."""

    def __init__(self, kill_timeout: float = 5.0):
        self._kill_timeout = kill_timeout

    def spawn(
        self,
        argv: List[str],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> subprocess.Popen:
        """
        Start ``argv`` with stdout and stderr captured.

        ``env`` is merged over the current environment. Raises
        ProcessLaunchFailure if the executable cannot be started.
        """
        if not argv:
            raise ProcessLaunchFailure("Failed to spawn kernel: empty argv")

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        logger.info(f"Launching: {argv}")
        try:
            return subprocess.Popen(
                argv,
                env=full_env,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            raise ProcessLaunchFailure(f"Failed to spawn kernel: {e}") from e

    async def verify_alive(self, process: subprocess.Popen, grace_period: float) -> None:
        """
        Wait ``grace_period`` seconds, then make sure the process is still up.

        Raises ProcessExitedEarly carrying the exit status, captured stderr
        and a remediation hint when it is not.
        """
        await asyncio.sleep(grace_period)

        status = process.poll()
        if status is None:
            logger.info(f"Process alive (pid={process.pid})")
            return

        logger.error(f"Process exited early with status: {status}")
        stderr_text = ""
        if process.stderr is not None:
            try:
                raw = await read_available(process.stderr)
                stderr_text = raw.decode("utf-8", errors="replace")
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read kernel stderr: {e}")
        if stderr_text:
            logger.error(f"stderr: {stderr_text[:STDERR_LOG_LIMIT]}")

        hint = classify_stderr(stderr_text)
        raise ProcessExitedEarly(
            exit_message(status, stderr_text, hint),
            status=status,
            stderr=stderr_text,
            hint=hint,
        )

    def interrupt(self, process: subprocess.Popen) -> None:
        """
        Ask the kernel to abort its current computation.

        This is SIGINT, not a kill: kernel state survives.
        """
        if process.poll() is not None:
            logger.debug(f"Interrupt skipped, pid {process.pid} already exited")
            return

        if sys.platform == "win32":
            subprocess.run(
                ["taskkill", "/PID", str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return

        try:
            os.kill(process.pid, signal.SIGINT)
        except ProcessLookupError:
            pass  # Already dead

    def kill(self, process: subprocess.Popen) -> Optional[int]:
        """Kill unconditionally and reap. Returns the exit status if known."""
        if process.poll() is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        try:
            status = process.wait(timeout=self._kill_timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"Process {process.pid} did not exit after kill")
            status = None

        for pipe in (process.stdout, process.stderr):
            if pipe is not None:
                pipe.close()
        return status
