"""
Configuration Loader (``pos_config.loader``).

Loads a terminal YAML file and parses it into ``pos_config.schema``
dataclasses. Runtime callers go through ``pos_config.get_terminal_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown currency or log level  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from pos_config.schema import (
    BackendDef,
    ReferenceDef,
    TerminalConfig,
    ValidationSeed,
)
from pos_kernel.domain.currency import CurrencyRegistry


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_reference(data: dict[str, Any] | None) -> ReferenceDef | None:
    if not data:
        return None
    return ReferenceDef(
        id=str(data["id"]),
        name=data["name"],
        tax_id=str(data["tax_id"]) if data.get("tax_id") is not None else None,
        consecutive_series=(
            str(data["consecutive_series"]) if data.get("consecutive_series") is not None else None
        ),
    )


def parse_validation(data: dict[str, Any] | None) -> ValidationSeed:
    data = data or {}
    return ValidationSeed(
        prices_include_vat=bool(data.get("prices_include_vat", False)),
        default_client=parse_reference(data.get("default_client")),
        default_warehouse=parse_reference(data.get("default_warehouse")),
    )


def parse_terminal_config(data: dict[str, Any]) -> TerminalConfig:
    """
    Parse a ``TerminalConfig`` from a dict.

    Raises:
        KeyError: if ``terminal.id``, ``terminal.currency`` or
            ``backend.database_url`` is missing.
        ValueError: if the currency or log level is not recognized.
    """
    terminal = data["terminal"]
    backend = data["backend"]

    currency = str(terminal["currency"]).upper()
    if not CurrencyRegistry.is_valid(currency):
        raise ValueError(f"Unknown currency code: {currency!r}")

    log_level = str(terminal.get("log_level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Unknown log level: {log_level!r}")

    return TerminalConfig(
        terminal_id=str(terminal["id"]),
        currency=currency,
        counter_label=terminal.get("counter_label", "Mostrador"),
        log_level=log_level,
        backend=BackendDef(
            database_url=backend["database_url"],
            echo=bool(backend.get("echo", False)),
        ),
        validation=parse_validation(data.get("validation")),
    )


def load_terminal_config(path: Path) -> TerminalConfig:
    return parse_terminal_config(load_yaml_file(path))
