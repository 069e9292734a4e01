"""cli.py — `frostty-bridge`: run the bridge with the console transport."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import logfire

from .bridge import BridgeController
from .config import BridgeConfig, ConfigError, load_config
from .console import ConsoleTransport
from .observability import configure as configure_observability


async def run(config: BridgeConfig) -> None:
    """Boot the agent, serve chat events until EOF or a signal, clean up."""
    controller = BridgeController.from_config(config)
    transport = ConsoleTransport(controller)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, transport.stop)

    try:
        await controller.boot()
        logfire.info("Bridge started (workspace {cwd}, port {port})", cwd=config.default_project_path, port=config.port)
        await transport.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await controller.shutdown()
        logfire.info("Bridge stopped")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="frostty-bridge", description="Chat bridge for a local Frostty agent.")
    parser.add_argument("--env-file", help="Path to a .env file (default: search from the current directory)")
    parser.add_argument("--debug", action="store_true", help="Log to the console")
    args = parser.parse_args(argv)

    try:
        config = load_config(env_file=args.env_file)
    except ConfigError as e:
        print(f"frostty-bridge: {e}", file=sys.stderr)
        sys.exit(1)

    configure_observability(debug=args.debug)
    asyncio.run(run(config))
