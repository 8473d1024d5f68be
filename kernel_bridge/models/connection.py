"""
Connection Descriptor
=====================

Per-session network and security parameters, written to the JSON file the
kernel process reads at startup.

Ports come from binding ephemeral loopback listeners and releasing them.
Another process can grab a released port before the kernel binds it; that
window is accepted and not retried.
"""

from __future__ import annotations

import json
import os
import socket
import sys
import uuid
from contextlib import ExitStack
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from kernel_bridge.errors import ConfigurationError

LOOPBACK_IP = "127.0.0.1"
SIGNATURE_SCHEME = "hmac-sha256"
PORT_NAMES = ("shell_port", "iopub_port", "stdin_port", "control_port", "hb_port")


def find_free_ports(count: int, ip: str = LOOPBACK_IP) -> List[int]:
    """
    Ask the OS for ``count`` free TCP ports.

    All listeners stay bound until every port has been read, so the returned
    ports are pairwise distinct.
    """
    ports = []
    with ExitStack() as stack:
        for _ in range(count):
            sock = stack.enter_context(socket.socket(socket.AF_INET, socket.SOCK_STREAM))
            sock.bind((ip, 0))
            ports.append(sock.getsockname()[1])
    return ports


def runtime_dir(override: Optional[str] = None) -> Path:
    """Directory where connection files live (Jupyter's runtime dir)."""
    if override:
        return Path(override).expanduser()
    if os.environ.get("JUPYTER_RUNTIME_DIR"):
        return Path(os.environ["JUPYTER_RUNTIME_DIR"])

    home = Path.home()
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "jupyter" / "runtime"
        return home / "AppData" / "Roaming" / "jupyter" / "runtime"
    if sys.platform.startswith("linux"):
        xdg = os.environ.get("XDG_RUNTIME_DIR")
        if xdg:
            return Path(xdg) / "jupyter"
        return home / ".local" / "share" / "jupyter" / "runtime"
    return home / "Library" / "Jupyter" / "runtime"


class ConnectionInfo(BaseModel):
    """Contents of a ``kernel-<id>.json`` connection file."""
    ip: str = LOOPBACK_IP
    transport: str = "tcp"
    shell_port: int
    iopub_port: int
    stdin_port: int
    control_port: int
    hb_port: int
    key: str = ""
    signature_scheme: str = SIGNATURE_SCHEME

    @classmethod
    def generate(cls) -> ConnectionInfo:
        """Fresh descriptor: five free loopback ports and a random signing key."""
        ports = dict(zip(PORT_NAMES, find_free_ports(len(PORT_NAMES))))
        return cls(key=uuid.uuid4().hex, **ports)

    @classmethod
    def load(cls, path: str | Path) -> ConnectionInfo:
        """Read a connection file; a missing or corrupt file is a ConfigurationError."""
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read connection file: {e}") from e
        try:
            return cls.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Failed to parse connection file: {e}") from e

    def persist(self, directory: str | Path, kernel_id: str) -> Path:
        """Write ``kernel-<kernel_id>.json`` into ``directory`` and return its path."""
        directory = Path(directory)
        path = directory / f"kernel-{kernel_id}.json"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.model_dump(), indent=2), encoding="utf-8")
            # Holds the signing key
            os.chmod(path, 0o600)
        except OSError as e:
            raise ConfigurationError(f"Failed to write connection file: {e}") from e
        return path

    @property
    def ports(self) -> List[int]:
        return [getattr(self, name) for name in PORT_NAMES]

    def addr(self, port: int) -> str:
        return f"{self.transport}://{self.ip}:{port}"

    @property
    def shell_addr(self) -> str:
        return self.addr(self.shell_port)

    @property
    def iopub_addr(self) -> str:
        return self.addr(self.iopub_port)
