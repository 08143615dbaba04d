"""
Module: pos_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines. This is the canonical import surface for
    pos_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pos_kernel (domain, exceptions, logging).
    MUST NOT import pos_services or pos_config.

Invariants enforced:
    - Purity: engines never read the clock or session state; every input
      is an explicit parameter.
    - Decimal-only arithmetic through Money; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from pos_engines import LineTaxCalculator, OrderAggregator
    from pos_engines import occupied_locations, settle
"""

from pos_engines.aggregation import OrderAggregator, recompute, vat_breakdown
from pos_engines.occupancy import find_holder, occupied_locations
from pos_engines.tax import LineTaxCalculator, LineTaxResult, compute_line
from pos_engines.tender import TenderEntry, TenderSummary, settle

__all__ = [
    "LineTaxCalculator",
    "LineTaxResult",
    "compute_line",
    "OrderAggregator",
    "recompute",
    "vat_breakdown",
    "occupied_locations",
    "find_holder",
    "TenderEntry",
    "TenderSummary",
    "settle",
]
