"""
Kernel Spec Models
==================

Discovery records for installed kernels and the on-disk ``kernel.json``
definition they point to.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kernel_bridge.errors import ConfigurationError

KERNEL_JSON = "kernel.json"
CONNECTION_FILE_PLACEHOLDER = "{connection_file}"


@dataclass(frozen=True)
class KernelSpec:
    """An installed kernel, as found by discovery."""
    name: str
    display_name: str
    language: str
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "language": self.language,
            "path": self.path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KernelSpec:
        return cls(
            name=data["name"],
            display_name=data.get("display_name", data["name"]),
            language=data.get("language", data["name"]),
            path=data.get("path", ""),
        )


class KernelSpecFile(BaseModel):
    """Contents of a kernel directory's ``kernel.json``."""
    model_config = ConfigDict(extra="ignore")

    argv: Optional[List[str]] = None
    display_name: Optional[str] = None
    language: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    interrupt_mode: str = "signal"

    def to_spec(self, directory: Path) -> KernelSpec:
        """Build a discovery record; missing names fall back to the directory name."""
        name = directory.name
        return KernelSpec(
            name=name,
            display_name=self.display_name or name,
            language=self.language or name,
            path=str(directory),
        )


def substitute_connection_file(argv: List[str], connection_file: str) -> List[str]:
    """argv with every ``{connection_file}`` placeholder replaced by the descriptor path."""
    return [a.replace(CONNECTION_FILE_PLACEHOLDER, connection_file) for a in argv]


def load_kernel_file(spec_path: str | Path) -> KernelSpecFile:
    """
    Read and validate ``<spec_path>/kernel.json``.

    Raises ConfigurationError when the file is unreadable, is not valid JSON,
    has the wrong shape, or has no ``argv``.
    """
    kernel_json = Path(spec_path) / KERNEL_JSON
    try:
        raw = kernel_json.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to read kernel.json: {e}") from e

    try:
        data = json.loads(raw)
        spec_file = KernelSpecFile.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(f"Failed to parse kernel.json: {e}") from e

    if not spec_file.argv:
        raise ConfigurationError("kernel.json missing 'argv'")
    return spec_file


def read_kernel_dir(directory: Path) -> Optional[KernelSpec]:
    """Discovery helper: a KernelSpec for ``directory`` or None if it has no usable kernel.json."""
    try:
        data = json.loads((directory / KERNEL_JSON).read_text(encoding="utf-8"))
        return KernelSpecFile.model_validate(data).to_spec(directory)
    except (OSError, ValueError, ValidationError):
        return None
