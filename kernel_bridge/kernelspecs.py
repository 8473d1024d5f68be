"""
Kernel Spec Registry
====================

Discovers installed Jupyter kernels.

Primary source is ``jupyter kernelspec list --json``, which knows about every
data path Jupyter itself uses. When that command is unavailable or reports
nothing, the well-known kernel directories are scanned instead.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from kernel_bridge.models.kernelspec import KernelSpec, read_kernel_dir

logger = logging.getLogger(__name__)

DISCOVERY_COMMAND = ["jupyter", "kernelspec", "list", "--json"]

# Language -> substrings of spec names, tried in order
LANGUAGE_SPEC_PATTERNS: Dict[str, List[str]] = {
    "r": ["ir", "r"],
    "python": ["python3", "python", "ipykernel"],
    "julia": ["julia"],
}

INSTALL_HINTS: Dict[str, str] = {
    "r": 'install.packages("IRkernel"); IRkernel::installspec()',
    "python": "pip install ipykernel",
    "julia": 'using Pkg; Pkg.add("IJulia")',
}


def standard_kernel_dirs(
    home: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    platform: Optional[str] = None,
    prefix: Optional[str] = None,
) -> List[Path]:
    """Kernel directories to scan, highest priority first."""
    home = home if home is not None else str(Path.home())
    env = env if env is not None else dict(os.environ)
    platform = platform or sys.platform
    prefix = prefix or sys.prefix

    dirs: List[str] = []
    for entry in env.get("JUPYTER_PATH", "").split(os.pathsep):
        if entry:
            dirs.append(os.path.join(entry, "kernels"))

    dirs.append(f"{home}/Library/Jupyter/kernels")
    for minor in range(9, 14):
        dirs.append(f"{home}/Library/Python/3.{minor}/share/jupyter/kernels")
    dirs.append(f"{home}/.local/share/jupyter/kernels")
    dirs.append(os.path.join(prefix, "share", "jupyter", "kernels"))
    dirs.append("/usr/local/share/jupyter/kernels")
    dirs.append("/usr/share/jupyter/kernels")
    for d in ("miniconda3", "anaconda3", "miniforge3"):
        dirs.append(f"{home}/{d}/share/jupyter/kernels")

    if platform == "win32":
        if env.get("APPDATA"):
            dirs.append(os.path.join(env["APPDATA"], "jupyter", "kernels"))
        if env.get("ProgramData"):
            dirs.append(os.path.join(env["ProgramData"], "jupyter", "kernels"))

    return [Path(d) for d in dirs]


def parse_kernelspec_listing(payload: str) -> List[KernelSpec]:
    """Turn the JSON printed by ``jupyter kernelspec list --json`` into specs."""
    try:
        data = json.loads(payload)
    except ValueError:
        return []
    kernelspecs = data.get("kernelspecs") if isinstance(data, dict) else None
    if not isinstance(kernelspecs, dict):
        return []

    specs = []
    for name, info in kernelspecs.items():
        info = info if isinstance(info, dict) else {}
        spec = info.get("spec") if isinstance(info.get("spec"), dict) else {}
        specs.append(KernelSpec(
            name=name,
            display_name=spec.get("display_name") or name,
            language=spec.get("language") or name,
            path=info.get("resource_dir") or "",
        ))
    return specs


class KernelSpecRegistry:
    """
    Read-only view of the kernels installed on this host.

    discover() has no side effects and can be called any number of times.
    """

    def __init__(
        self,
        extra_dirs: Iterable[str] = (),
        search_dirs: Optional[Callable[[], List[Path]]] = None,
        run_command: Optional[Callable[[List[str]], Optional[str]]] = None,
        timeout: float = 15.0,
    ):
        self._extra_dirs = [Path(d).expanduser() for d in extra_dirs]
        self._search_dirs = search_dirs or standard_kernel_dirs
        self._run_command = run_command or self._run
        self._timeout = timeout

    def _run(self, argv: List[str]) -> Optional[str]:
        try:
            result = subprocess.run(
                argv, capture_output=True, text=True, timeout=self._timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"{argv[0]} unavailable: {e}")
            return None
        if result.returncode != 0:
            logger.debug(f"{' '.join(argv)} exited with {result.returncode}")
            return None
        return result.stdout

    def discover(self) -> List[KernelSpec]:
        """Installed kernels, deduplicated by name (first found wins)."""
        output = self._run_command(DISCOVERY_COMMAND)
        specs = parse_kernelspec_listing(output) if output else []
        if specs:
            logger.debug(f"Discovered {len(specs)} kernels via jupyter")
            return specs

        specs = self.scan(self._extra_dirs + self._search_dirs())
        logger.debug(f"Discovered {len(specs)} kernels by directory scan")
        return specs

    @staticmethod
    def scan(directories: Iterable[Path]) -> List[KernelSpec]:
        """Read every ``<dir>/<kernel>/kernel.json``; missing dirs are skipped."""
        found: Dict[str, KernelSpec] = {}
        for directory in directories:
            if not directory.is_dir():
                continue
            try:
                entries = sorted(directory.iterdir())
            except OSError:
                continue
            for entry in entries:
                if entry.name in found or not entry.is_dir():
                    continue
                spec = read_kernel_dir(entry)
                if spec is not None:
                    found[spec.name] = spec
        return list(found.values())

    def find(self, name: str) -> Optional[KernelSpec]:
        for spec in self.discover():
            if spec.name == name:
                return spec
        return None


def find_spec_for_language(specs: Iterable[KernelSpec], language: str) -> Optional[KernelSpec]:
    """
    Pick a kernel for ``language``.

    Spec names are matched against the language's patterns first (so
    ``python3`` wins over some other kernel that merely reports Python),
    then the spec's declared language is compared.
    """
    specs = list(specs)
    language = language.lower()
    for pattern in LANGUAGE_SPEC_PATTERNS.get(language, [language]):
        for spec in specs:
            if pattern in spec.name.lower():
                return spec
    for spec in specs:
        if spec.language.lower() == language:
            return spec
    return None


def missing_kernel_message(language: str) -> str:
    """User-facing text for a language with no installed kernel."""
    hint = INSTALL_HINTS.get(language.lower(), f"Install a Jupyter kernel for {language}")
    return (
        f"No {language.capitalize()} kernel found. Install one to get inline outputs:\n\n"
        f"  {hint}\n\nThen restart the app."
    )
