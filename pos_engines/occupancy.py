"""
Location Occupancy - which sale locations hold an open order.

Pure derived view over an order set; it keeps no state of its own and is
recomputed by callers on every order-set change.
"""

from __future__ import annotations

from collections.abc import Iterable

from pos_kernel.domain.order import Order


def occupied_locations(orders: Iterable[Order]) -> frozenset[str]:
    """Location ids attached to at least one pending order."""
    return frozenset(
        order.location_id
        for order in orders
        if order.is_pending and order.location_id is not None
    )


def find_holder(
    orders: Iterable[Order],
    location_id: str,
    exclude_order_id: str | None = None,
) -> Order | None:
    """First pending order bound to ``location_id``, skipping ``exclude_order_id``."""
    for order in orders:
        if order.local_id == exclude_order_id:
            continue
        if order.is_pending and order.location_id == location_id:
            return order
    return None
