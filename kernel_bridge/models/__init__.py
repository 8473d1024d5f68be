"""Data models for the kernel bridge."""

from kernel_bridge.models.kernelspec import KernelSpec, KernelSpecFile, load_kernel_file
from kernel_bridge.models.connection import ConnectionInfo, runtime_dir
from kernel_bridge.models.message import WireMessage, DecodedMessage, ExecuteRequest, CompleteRequest
from kernel_bridge.models.session import Session, SessionInfo, KernelStatus

__all__ = [
    "KernelSpec", "KernelSpecFile", "load_kernel_file",
    "ConnectionInfo", "runtime_dir",
    "WireMessage", "DecodedMessage", "ExecuteRequest", "CompleteRequest",
    "Session", "SessionInfo", "KernelStatus",
]
