#!/usr/bin/env python3
"""
kernel-bridge CLI
=================

Command-line interface for launching and talking to Jupyter kernels.

Usage:
    kernel-bridge list [--json]                 # Installed kernels
    kernel-bridge resolve python3               # Interpreter with ipykernel
    kernel-bridge run python3 "print(1 + 1)"    # Launch, execute, shut down
    kernel-bridge run python3 -f script.py
    kernel-bridge complete python3 "import o" --cursor 8
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from kernel_bridge.config import BridgeConfig, load_config
from kernel_bridge.errors import KernelBridgeError
from kernel_bridge.kernelspecs import KernelSpecRegistry
from kernel_bridge.manager import KernelManager
from kernel_bridge.models.kernelspec import KernelSpec
from kernel_bridge.resolver import InterpreterResolver


async def _find_spec(manager: KernelManager, name: str) -> Optional[KernelSpec]:
    spec = await asyncio.to_thread(manager.kernelspecs.find, name)
    if spec is None:
        print(f"Kernel spec not found: {name}", file=sys.stderr)
    return spec


def format_output(output: Dict[str, Any]) -> str:
    """Plain-text rendering of one output event."""
    kind = output.get("output_type")
    if kind == "stream":
        return output.get("text", "")
    if kind in ("execute_result", "display_data"):
        data = output.get("data") or {}
        text = data.get("text/plain", "")
        if isinstance(text, list):
            text = "".join(text)
        return f"{text}\n" if text else f"<{', '.join(sorted(data))}>\n"
    if kind == "error":
        traceback = output.get("traceback") or []
        if traceback:
            return "\n".join(traceback) + "\n"
        return f"{output.get('ename')}: {output.get('evalue')}\n"
    return ""


def cmd_list(args: argparse.Namespace, config: BridgeConfig) -> int:
    """List installed kernels."""
    registry = KernelSpecRegistry(
        extra_dirs=config.paths.extra_kernel_dirs,
        timeout=config.timing.discover_timeout_s,
    )
    specs = registry.discover()

    if args.json:
        print(json.dumps([s.to_dict() for s in specs], indent=2))
        return 0

    if not specs:
        print("No kernels found")
        return 1

    print(f"{'NAME':<24} {'LANGUAGE':<12} DISPLAY NAME")
    print("-" * 60)
    for spec in specs:
        print(f"{spec.name:<24} {spec.language:<12} {spec.display_name}")
    return 0


def cmd_resolve(args: argparse.Namespace, config: BridgeConfig) -> int:
    """Show which interpreter a bare command resolves to."""
    resolver = InterpreterResolver(check_timeout=config.timing.check_timeout_s)
    try:
        print(resolver.resolve(args.interpreter))
    except KernelBridgeError as e:
        print(str(e), file=sys.stderr)
        return 1
    return 0


async def _run(args: argparse.Namespace, config: BridgeConfig) -> int:
    code = Path(args.file).read_text() if args.file else args.code
    if code is None:
        print("Nothing to run: pass code or --file", file=sys.stderr)
        return 2

    async with KernelManager(config) as manager:
        spec = await _find_spec(manager, args.spec)
        if spec is None:
            return 1

        session_id = await manager.launch(spec.name, spec.path)
        result = await manager.execute_and_wait(session_id, code, timeout=args.timeout)
        for output in result.outputs:
            sys.stdout.write(format_output(output))
        sys.stdout.flush()
        return 1 if result.error else 0


async def _complete(args: argparse.Namespace, config: BridgeConfig) -> int:
    async with KernelManager(config) as manager:
        spec = await _find_spec(manager, args.spec)
        if spec is None:
            return 1

        session_id = await manager.launch(spec.name, spec.path)
        cursor = args.cursor if args.cursor is not None else len(args.code)
        reply = await manager.complete(session_id, args.code, cursor)
        print(json.dumps(reply, indent=2))
        return 0


def cmd_run(args: argparse.Namespace, config: BridgeConfig) -> int:
    """Launch a kernel, execute code, print outputs, shut down."""
    try:
        return asyncio.run(_run(args, config))
    except KernelBridgeError as e:
        print(str(e), file=sys.stderr)
        return 1


def cmd_complete(args: argparse.Namespace, config: BridgeConfig) -> int:
    """Launch a kernel and print completions for the given code."""
    try:
        return asyncio.run(_complete(args, config))
    except KernelBridgeError as e:
        print(str(e), file=sys.stderr)
        return 1


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Launch and drive Jupyter kernels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: from config)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # list
    p = subparsers.add_parser("list", help="List installed kernels")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.set_defaults(func=cmd_list)

    # resolve
    p = subparsers.add_parser("resolve", help="Find an interpreter with ipykernel")
    p.add_argument("interpreter", nargs="?", default="python3",
                   help="Bare interpreter command")
    p.set_defaults(func=cmd_resolve)

    # run
    p = subparsers.add_parser("run", help="Execute code on a fresh kernel")
    p.add_argument("spec", help="Kernel spec name")
    p.add_argument("code", nargs="?", help="Code to execute")
    p.add_argument("--file", "-f", help="Read code from file")
    p.add_argument("--timeout", type=float, default=None,
                   help="Seconds to wait for completion")
    p.set_defaults(func=cmd_run)

    # complete
    p = subparsers.add_parser("complete", help="Ask a fresh kernel for completions")
    p.add_argument("spec", help="Kernel spec name")
    p.add_argument("code", help="Code to complete")
    p.add_argument("--cursor", type=int, default=None,
                   help="Cursor position (default: end of code)")
    p.set_defaults(func=cmd_complete)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
    except KernelBridgeError as e:
        print(str(e), file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, args.log_level or config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
