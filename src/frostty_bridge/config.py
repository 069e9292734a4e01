"""config.py — Settings from the environment (and an optional .env file).

Loaded once at startup. Anything missing or malformed is a ConfigError,
which the CLI turns into a diagnostic and exit status 1.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

from .agent import DEFAULT_PORT


REQUIRED_VARS = ("TELEGRAM_BOT_TOKEN", "FROSTTY_BINARY_PATH", "DEFAULT_PROJECT_PATH")


class ConfigError(Exception):
    """Required configuration is missing or invalid."""

    def __init__(self, problems: list[str]):
        super().__init__("Invalid configuration: " + "; ".join(problems))
        self.problems = problems


@dataclass(frozen=True)
class BridgeConfig:
    # Read by a chat platform transport; the console transport ignores it
    bot_token: str
    frostty_binary_path: str
    default_project_path: str
    port: int = DEFAULT_PORT


def load_config(
    env: Mapping[str, str] | None = None,
    env_file: str | Path | None = None,
) -> BridgeConfig:
    """Build a BridgeConfig.

    Args:
        env: Variables to read. Defaults to os.environ, after loading
             `env_file` (or ./.env) into it without overriding.
        env_file: Explicit .env path. Ignored when `env` is given.

    Raises ConfigError listing every problem found.
    """
    if env is None:
        load_dotenv(env_file or find_dotenv(usecwd=True), override=False)
        env = os.environ

    problems = [f"{name} is not set" for name in REQUIRED_VARS if not env.get(name, "").strip()]

    port = DEFAULT_PORT
    raw_port = env.get("PORT", "").strip()
    if raw_port:
        try:
            port = int(raw_port)
        except ValueError:
            problems.append(f"PORT must be an integer, got {raw_port!r}")
        else:
            if not 0 < port < 65536:
                problems.append(f"PORT out of range: {port}")

    if problems:
        raise ConfigError(problems)

    return BridgeConfig(
        bot_token=env["TELEGRAM_BOT_TOKEN"].strip(),
        frostty_binary_path=env["FROSTTY_BINARY_PATH"].strip(),
        default_project_path=env["DEFAULT_PROJECT_PATH"].strip(),
        port=port,
    )
