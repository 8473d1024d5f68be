"""
Command Boundary
================

Front door for UI layers. Every command returns a CommandResult, so an error
never crosses this boundary. ``error`` carries the exception's message
verbatim; show it to the user as-is, since remediation text is already in it.

A failed execute or complete does not make the session unusable.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional

from kernel_bridge.errors import KernelBridgeError
from kernel_bridge.manager import KernelManager

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one command: a value or a single descriptive error."""
    command: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "success": self.success,
            "value": self.value,
            "error": self.error,
            "error_type": self.error_type,
            "duration_ms": self.duration_ms,
        }


class KernelCommands:
    """Error-capturing wrappers around a KernelManager."""

    def __init__(self, manager: KernelManager):
        self.manager = manager

    async def _run(self, command: str, awaitable: Awaitable[Any]) -> CommandResult:
        start = time.time()
        try:
            value = await awaitable
        except KernelBridgeError as e:
            logger.warning(f"{command} failed: {e}")
            return CommandResult(
                command=command, success=False, error=str(e), error_type=e.kind,
                duration_ms=(time.time() - start) * 1000,
            )
        except Exception as e:
            logger.error(f"{command} failed unexpectedly: {e}", exc_info=True)
            return CommandResult(
                command=command, success=False, error=str(e), error_type=type(e).__name__,
                duration_ms=(time.time() - start) * 1000,
            )
        return CommandResult(
            command=command, success=True, value=value,
            duration_ms=(time.time() - start) * 1000,
        )

    async def discover(self) -> CommandResult:
        async def _discover():
            specs = await asyncio.to_thread(self.manager.discover)
            return [s.to_dict() for s in specs]
        return await self._run("kernel_discover", _discover())

    async def launch(self, spec_name: str, spec_path: str) -> CommandResult:
        return await self._run("kernel_launch", self.manager.launch(spec_name, spec_path))

    async def ensure(self, language: str) -> CommandResult:
        return await self._run("kernel_ensure", self.manager.ensure(language))

    async def execute(self, session_id: str, code: str) -> CommandResult:
        return await self._run("kernel_execute", self.manager.execute(session_id, code))

    async def complete(self, session_id: str, code: str, cursor_pos: int) -> CommandResult:
        return await self._run(
            "kernel_complete", self.manager.complete(session_id, code, cursor_pos),
        )

    async def interrupt(self, session_id: str) -> CommandResult:
        async def _interrupt():
            self.manager.interrupt(session_id)
        return await self._run("kernel_interrupt", _interrupt())

    async def shutdown(self, session_id: str) -> CommandResult:
        async def _shutdown():
            await self.manager.shutdown(session_id)
        return await self._run("kernel_shutdown", _shutdown())
