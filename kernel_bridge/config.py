"""
Bridge Configuration
====================

Loads kernel bridge configuration from YAML.

Example ``kernel_bridge.yaml``::

    timing:
      startup_grace_s: 2.0
      complete_timeout_s: 10
    protocol:
      username: notebook
      verify_signatures: true
    paths:
      runtime_dir: /tmp/jupyter-runtime
      extra_kernel_dirs:
        - /opt/kernels
    log_level: DEBUG
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from kernel_bridge.errors import ConfigurationError

CONFIG_ENV_VAR = "KERNEL_BRIDGE_CONFIG"


@dataclass
class TimingConfig:
    """Delays and timeouts, all in seconds."""
    startup_grace_s: float = 1.5          # wait before the liveness check
    settle_delay_s: float = 0.05          # DEALER connect handshake
    execute_reply_timeout_s: float = 300.0
    complete_timeout_s: float = 30.0
    recv_backoff_s: float = 0.1           # IOPub receive error backoff
    check_timeout_s: float = 10.0         # ipykernel capability check
    discover_timeout_s: float = 15.0      # `jupyter kernelspec list`
    kill_timeout_s: float = 5.0


@dataclass
class ProtocolConfig:
    """Wire protocol settings."""
    username: str = "kernel-bridge"
    verify_signatures: bool = False


@dataclass
class PathsConfig:
    """Filesystem locations."""
    runtime_dir: Optional[str] = None
    extra_kernel_dirs: List[str] = field(default_factory=list)


def _filter_dataclass_fields(dc_class, data: Dict[str, Any]) -> Dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in dataclasses.fields(dc_class)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class BridgeConfig:
    """Complete kernel bridge configuration."""
    timing: TimingConfig = field(default_factory=TimingConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BridgeConfig:
        """Create config from dictionary."""
        return cls(
            timing=TimingConfig(**_filter_dataclass_fields(TimingConfig, data.get("timing") or {})),
            protocol=ProtocolConfig(**_filter_dataclass_fields(ProtocolConfig, data.get("protocol") or {})),
            paths=PathsConfig(**_filter_dataclass_fields(PathsConfig, data.get("paths") or {})),
            log_level=data.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def load_config(path: Optional[str] = None) -> BridgeConfig:
    """
    Load configuration from YAML file.

    Falls back to ``$KERNEL_BRIDGE_CONFIG`` when no path is given, and to
    defaults when the file does not exist.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return BridgeConfig()

    config_path = Path(path).expanduser()
    if not config_path.exists():
        return BridgeConfig()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config {config_path}: {e}") from e

    return BridgeConfig.from_dict(data)
