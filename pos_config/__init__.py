"""
pos_config -- single public entrypoint for terminal configuration.

Responsibility:
    ``get_terminal_config()`` is the only way runtime code obtains terminal
    settings. It reads one YAML file (the packaged default under ``sets/``
    unless a path is given) and returns a frozen ``TerminalConfig``.

Architecture position:
    Configuration. Sits above ``pos_kernel``; the kernel never imports
    from ``pos_config``. ``bridges`` translates parsed settings into kernel
    session types.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid settings.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pos_config.bridges import build_validation_config
from pos_config.loader import load_terminal_config
from pos_config.schema import TerminalConfig

_logger = logging.getLogger("pos_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "terminal.yaml"


def get_terminal_config(path: Path | str | None = None) -> TerminalConfig:
    """Load and validate the terminal configuration."""
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_terminal_config(config_path)
    _logger.info(
        "terminal_config_loaded",
        extra={
            "terminal_id": config.terminal_id,
            "currency": config.currency,
            "config_path": str(config_path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "TerminalConfig",
    "build_validation_config",
    "get_terminal_config",
]
