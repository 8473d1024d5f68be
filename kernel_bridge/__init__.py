"""
Kernel Bridge
=============

Launches Jupyter-protocol kernels and speaks their wire protocol.

Architecture:
    InterpreterResolver - Finds a Python that can run ipykernel
    KernelSpecRegistry  - Discovers installed kernels
    ProcessSupervisor   - Spawns, verifies, interrupts and kills kernels
    codec               - Signs and parses the six-frame wire envelope
    BroadcastListener   - Turns IOPub traffic into named events
    RequestChannel      - Shell-channel execute/complete requests
    SessionRegistry     - Owns every live session's resources
    KernelManager       - The session API tying it all together

Callers hold only session id strings; outputs and status are pushed through
the EventBus.
"""

from kernel_bridge.errors import (
    KernelBridgeError, ConfigurationError, InterpreterNotFound,
    ProcessLaunchFailure, ProcessExitedEarly, TransportError,
    ReplyTimeout, SessionNotFound, KernelSpecNotFound,
)
from kernel_bridge.config import BridgeConfig, load_config
from kernel_bridge.models.kernelspec import KernelSpec
from kernel_bridge.models.connection import ConnectionInfo
from kernel_bridge.models.session import SessionInfo, KernelStatus
from kernel_bridge.events import EventBus, output_event, status_event, done_event
from kernel_bridge.resolver import InterpreterResolver
from kernel_bridge.kernelspecs import KernelSpecRegistry
from kernel_bridge.supervisor import ProcessSupervisor
from kernel_bridge.listener import BroadcastListener, ListenerState
from kernel_bridge.channel import RequestChannel
from kernel_bridge.sessions import SessionRegistry
from kernel_bridge.manager import KernelManager, ExecutionResult
from kernel_bridge.commands import KernelCommands, CommandResult

__all__ = [
    # Errors
    "KernelBridgeError", "ConfigurationError", "InterpreterNotFound",
    "ProcessLaunchFailure", "ProcessExitedEarly", "TransportError",
    "ReplyTimeout", "SessionNotFound", "KernelSpecNotFound",
    # Config and models
    "BridgeConfig", "load_config",
    "KernelSpec", "ConnectionInfo", "SessionInfo", "KernelStatus",
    # Events
    "EventBus", "output_event", "status_event", "done_event",
    # Core
    "InterpreterResolver",
    "KernelSpecRegistry",
    "ProcessSupervisor",
    "BroadcastListener", "ListenerState",
    "RequestChannel",
    "SessionRegistry",
    "KernelManager", "ExecutionResult",
    "KernelCommands", "CommandResult",
]

__version__ = "0.1.0"
