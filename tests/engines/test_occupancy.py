"""Tests for location occupancy derived from the order set."""

from dataclasses import replace
from datetime import UTC, datetime

from pos_engines.occupancy import find_holder, occupied_locations
from pos_kernel.domain.catalog import LocationRef
from pos_kernel.domain.order import Order, OrderStatus
from pos_kernel.domain.values import Currency

COP = Currency("COP")


def _order(local_id, location_id=None, status=OrderStatus.PENDING):
    location = (
        LocationRef(location_id=location_id, code=f"M{location_id}", name=f"Mesa {location_id}")
        if location_id else None
    )
    return Order(
        local_id=local_id,
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
        currency=COP,
        location_name=location.name if location else "Mostrador",
        status=status,
        location=location,
    )


class TestOccupiedLocations:
    """A location is occupied iff a pending order references it."""

    def test_pending_orders_occupy(self):
        orders = [_order("o-1", "1"), _order("o-2", "2")]

        assert occupied_locations(orders) == frozenset({"1", "2"})

    def test_completed_orders_release(self):
        orders = [_order("o-1", "1", OrderStatus.COMPLETED), _order("o-2", "2")]

        assert occupied_locations(orders) == frozenset({"2"})

    def test_counter_orders_ignored(self):
        assert occupied_locations([_order("o-1")]) == frozenset()

    def test_duplicates_collapse(self):
        orders = [_order("o-1", "3"), _order("o-2", "3")]

        assert occupied_locations(orders) == frozenset({"3"})

    def test_empty(self):
        assert occupied_locations([]) == frozenset()

    def test_recomputes_from_current_set(self):
        first = _order("o-1", "1")
        assert "1" in occupied_locations([first])

        moved = replace(first, location=None, location_name="Mostrador")
        assert "1" not in occupied_locations([moved])


class TestFindHolder:

    def test_finds_pending_holder(self):
        orders = [_order("o-1", "1"), _order("o-2", "2")]

        assert find_holder(orders, "2").local_id == "o-2"

    def test_excludes_given_order(self):
        orders = [_order("o-1", "1")]

        assert find_holder(orders, "1", exclude_order_id="o-1") is None

    def test_ignores_completed(self):
        orders = [_order("o-1", "1", OrderStatus.COMPLETED)]

        assert find_holder(orders, "1") is None
