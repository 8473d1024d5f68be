"""
Errors
======

Every failure a public operation can report. The message of each exception
is meant to be shown to the user verbatim; where a remediation exists it is
already part of the text.
"""

from __future__ import annotations

from typing import Optional


class KernelBridgeError(Exception):
    """Base class for all kernel bridge failures."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(KernelBridgeError):
    """Malformed kernel.json or connection file."""


class InterpreterNotFound(KernelBridgeError):
    """No interpreter with the kernel runtime could be located."""


class ProcessLaunchFailure(KernelBridgeError):
    """The spawn call itself failed (e.g. executable missing)."""


class ProcessExitedEarly(KernelBridgeError):
    """The kernel process started but died before verification."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        stderr: str = "",
        hint: str = "",
    ):
        super().__init__(message)
        self.status = status
        self.stderr = stderr
        self.hint = hint


class TransportError(KernelBridgeError):
    """Socket connect, send or receive failed."""


class ReplyTimeout(KernelBridgeError):
    """No reply arrived within the configured bound."""


class SessionNotFound(KernelBridgeError):
    """Operation against an unknown or already removed session."""

    def __init__(self, session_id: str):
        super().__init__(f"Kernel not found: {session_id}")
        self.session_id = session_id


class KernelSpecNotFound(KernelBridgeError):
    """No installed kernel matches the requested name or language."""
