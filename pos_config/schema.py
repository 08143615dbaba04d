"""
Terminal configuration schema.

Frozen dataclasses parsed from a terminal's YAML file by the loader. The
``validation`` section is only a seed: the backend's stored settings win
when present.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReferenceDef:
    """Client or warehouse reference as written in YAML."""

    id: str
    name: str
    tax_id: str | None = None
    consecutive_series: str | None = None


@dataclass(frozen=True)
class ValidationSeed:
    """Fallback sale validation settings."""

    prices_include_vat: bool = False
    default_client: ReferenceDef | None = None
    default_warehouse: ReferenceDef | None = None


@dataclass(frozen=True)
class BackendDef:
    """Where the backend record store lives."""

    database_url: str
    echo: bool = False


@dataclass(frozen=True)
class TerminalConfig:
    """Complete configuration of one POS terminal."""

    terminal_id: str
    currency: str
    backend: BackendDef
    counter_label: str = "Mostrador"
    log_level: str = "INFO"
    validation: ValidationSeed = ValidationSeed()
