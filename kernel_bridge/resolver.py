"""
Interpreter Resolver
====================

kernel.json files usually say ``python`` or ``python3``, which may resolve to
a different interpreter than the one ipykernel was installed into (Homebrew
vs system, pyenv vs conda, ...). The resolver finds one that can actually
run the kernel.

Candidates are checked most-specific first: an activated virtualenv beats
pyenv, conda and vendor installs, which beat the system Python.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
from pathlib import Path
from typing import Callable, List, Mapping, Optional

from kernel_bridge.errors import InterpreterNotFound

logger = logging.getLogger(__name__)

KERNEL_MODULE = "ipykernel_launcher"

REMEDIATION = (
    "Could not find a Python interpreter with ipykernel installed.\n"
    "Install it with: pip3 install ipykernel\n"
    "Then restart or re-check the kernel list."
)

_BARE_PYTHON = re.compile(r"^python(3(\.\d+)?)?$")


def is_bare_python(command: str) -> bool:
    """True for ``python``, ``python3`` and ``python3.N``."""
    return bool(_BARE_PYTHON.match(command))


def has_ipykernel(python: str, timeout: float = 10.0) -> bool:
    """Run ``<python> -m ipykernel_launcher --version`` and report success."""
    try:
        result = subprocess.run(
            [python, "-m", KERNEL_MODULE, "--version"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


def candidate_interpreters(
    home: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
) -> List[str]:
    """Well-known interpreter locations in priority order."""
    home = home if home is not None else str(Path.home())
    env = env if env is not None else os.environ
    platform = platform or sys.platform
    candidates: List[str] = []

    # Activated virtualenv
    venv = env.get("VIRTUAL_ENV")
    if venv:
        candidates.append(f"{venv}/bin/python3")
        candidates.append(f"{venv}/bin/python")

    # pyenv shims
    pyenv_root = env.get("PYENV_ROOT") or f"{home}/.pyenv"
    candidates.append(f"{pyenv_root}/shims/python3")
    candidates.append(f"{pyenv_root}/shims/python")

    # conda / miniconda / miniforge / mambaforge
    conda_prefix = env.get("CONDA_PREFIX")
    if conda_prefix:
        candidates.append(f"{conda_prefix}/bin/python3")
        candidates.append(f"{conda_prefix}/bin/python")
    for d in ("miniconda3", "miniforge3", "mambaforge", "anaconda3"):
        candidates.append(f"{home}/{d}/bin/python3")

    # Homebrew
    candidates.append("/opt/homebrew/bin/python3")
    candidates.append("/usr/local/bin/python3")

    # macOS per-version
    for minor in range(15, 8, -1):
        candidates.append(f"{home}/Library/Python/3.{minor}/bin/python3")
        candidates.append(f"/Library/Frameworks/Python.framework/Versions/3.{minor}/bin/python3")

    # System
    candidates.append("/usr/bin/python3")
    candidates.append("/usr/bin/python")

    # Linux per-version
    for minor in range(14, 7, -1):
        candidates.append(f"/usr/bin/python3.{minor}")

    candidates.append(f"{home}/.local/bin/python3")

    if platform == "win32":
        candidates.append("py")
        for minor in range(14, 7, -1):
            candidates.append(f"{home}\\AppData\\Local\\Programs\\Python\\Python3{minor}\\python.exe")
            candidates.append(f"C:\\Python3{minor}\\python.exe")
        for d in ("miniconda3", "miniforge3", "Anaconda3"):
            candidates.append(f"{home}\\{d}\\python.exe")
        candidates.append(f"{home}\\scoop\\apps\\python\\current\\python.exe")

    return candidates


class InterpreterResolver:
    """
    Finds an interpreter that supports the kernel runtime.

    ``check`` and ``exists`` are injectable so the search order can be
    exercised without real interpreters.
    """

    def __init__(
        self,
        check: Optional[Callable[[str], bool]] = None,
        exists: Optional[Callable[[str], bool]] = None,
        candidates: Optional[Callable[[], List[str]]] = None,
        check_timeout: float = 10.0,
    ):
        self._check = check or (lambda python: has_ipykernel(python, timeout=check_timeout))
        self._exists = exists or (lambda path: Path(path).exists())
        self._candidates = candidates or candidate_interpreters

    def resolve(self, command: str) -> str:
        """
        Return ``command`` itself if it passes the check, otherwise the first
        existing candidate that does.

        Raises InterpreterNotFound with install instructions when nothing works.
        """
        if self._check(command):
            return command

        logger.info(f"Bare '{command}' lacks ipykernel, trying alternatives...")

        for candidate in self._candidates():
            # "py" is a launcher on PATH, not a file
            if candidate != "py" and not self._exists(candidate):
                continue
            if self._check(candidate):
                logger.info(f"Resolved '{command}' -> '{candidate}' (has ipykernel)")
                return candidate

        raise InterpreterNotFound(REMEDIATION)

    def resolve_argv(self, argv: List[str]) -> List[str]:
        """Resolve ``argv[0]`` when it is a bare Python command; other argv pass through."""
        if not argv or not is_bare_python(argv[0]):
            return list(argv)
        return [self.resolve(argv[0])] + list(argv[1:])
