"""
Bridges from parsed configuration to kernel session types.
"""

from __future__ import annotations

from pos_config.schema import TerminalConfig
from pos_kernel.domain.catalog import ClientRef, WarehouseRef
from pos_kernel.domain.session import ValidationConfig


def build_validation_config(config: TerminalConfig) -> ValidationConfig:
    """Kernel ValidationConfig from the terminal's seed section."""
    seed = config.validation
    client = None
    if seed.default_client is not None:
        client = ClientRef(
            client_id=seed.default_client.id,
            name=seed.default_client.name,
            tax_id=seed.default_client.tax_id,
        )
    warehouse = None
    if seed.default_warehouse is not None:
        warehouse = WarehouseRef(
            warehouse_id=seed.default_warehouse.id,
            name=seed.default_warehouse.name,
            consecutive_series=seed.default_warehouse.consecutive_series,
        )
    return ValidationConfig(
        prices_include_vat=seed.prices_include_vat,
        default_client=client,
        default_warehouse=warehouse,
    )
