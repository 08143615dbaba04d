#!/usr/bin/env python3
"""
Scripted POS session against the SQLite record store.

Loads the terminal YAML config, opens a session on a
SqlReconciliationGateway, and walks one table through the full lifecycle:
claim, add lines, edit, pay. A second order is deleted before payment.

Usage:
    python3 scripts/demo_pos.py
    python3 scripts/demo_pos.py --config path/to/terminal.yaml
    python3 scripts/demo_pos.py --exclusive     # catalog prices exclude VAT
    python3 scripts/demo_pos.py --verbose       # JSON logs on stderr
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from pos_config import build_validation_config, get_terminal_config  # noqa: E402
from pos_engines.tender import TenderEntry  # noqa: E402
from pos_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from pos_kernel.domain.catalog import LocationRef, Product, TaxProfile  # noqa: E402
from pos_kernel.domain.values import Money  # noqa: E402
from pos_kernel.logging_config import LogContext, configure_logging  # noqa: E402
from pos_services import (  # noqa: E402
    OrderLifecycleManager,
    PaymentRequest,
    SqlReconciliationGateway,
)


def _catalog(currency: str) -> dict[str, Product]:
    return {
        "coffee": Product(
            product_id="101", code="CAF", name="Cafe tinto",
            unit_price=Money.of("3500", currency),
            tax_profile=TaxProfile(vat_rate=Decimal("19")),
        ),
        "lunch": Product(
            product_id="205", code="ALM", name="Almuerzo ejecutivo",
            unit_price=Money.of("24000", currency),
            tax_profile=TaxProfile(vat_rate=Decimal("5")),
        ),
        "catering": Product(
            product_id="310", code="CAT", name="Servicio de catering",
            unit_price=Money.of("350000", currency),
            tax_profile=TaxProfile(
                vat_rate=Decimal("19"),
                withholding_rate=Decimal("2.5"),
                withholding_base=Money.of("300000", currency),
            ),
        ),
    }


def _print_order(order) -> None:
    t = order.totals
    print(f"    {order.local_id}  [{order.status.value}]  {order.location_name}"
          f"  backend={order.backend_id}")
    for line in order.lines:
        print(f"      #{line.sequence:<2d} {line.name:32s} x{line.quantity!s:>5s}"
              f"  vat {line.vat_rate!s:>4s}%  {line.total.amount:>14}")
    print(f"      subtotal {t.subtotal.amount:>14}   vat {t.vat_total.amount:>12}")
    print(f"      total    {t.total.amount:>14}   withholding {t.withholding.amount:>6}")
    for rate, amount in t.vat_breakdown.items():
        print(f"        vat {rate}%: {amount.amount}")


async def run(args: argparse.Namespace) -> int:
    config = get_terminal_config(args.config)
    validation = build_validation_config(config)
    if args.exclusive:
        validation = replace(validation, prices_include_vat=False)

    init_engine_from_url(args.db_url or config.backend.database_url, echo=config.backend.echo)
    create_tables()

    gateway = SqlReconciliationGateway(get_session_factory(), terminal_id=config.terminal_id)
    gateway.store_validation_config(validation)

    def notify(order_id: str, exc: Exception) -> None:
        print(f"  ! sync failed for {order_id}: {exc}", file=sys.stderr)

    manager = await OrderLifecycleManager.open_session(
        gateway,
        currency=config.currency,
        fallback_validation=validation,
        counter_label=config.counter_label,
        notifier=notify,
    )
    catalog = _catalog(config.currency)

    print()
    print(f"  Terminal {config.terminal_id}  ({config.currency}, "
          f"{manager.session.pricing_mode.value} pricing)")
    print()

    with LogContext.bind(terminal_id=config.terminal_id):
        print("  [1/4] Claiming table 4 and taking the order...")
        table = LocationRef(location_id="4", code="M4", name="Mesa 4")
        order = await manager.claim_location(table)
        manager.add_line(order, catalog["coffee"], Decimal("2"))
        manager.add_line(order, catalog["lunch"])
        manager.add_line(order, catalog["coffee"])
        order = manager.add_line(order, catalog["catering"])
        await manager.drain()
        _print_order(manager.get(order.local_id))
        print()

        print("  [2/4] Discounting lunch 10% and re-claiming the table...")
        manager.update_line(order, 2, discount_percent=Decimal("10"), note="sin postre")
        await manager.drain()
        again = await manager.claim_location(table)
        print(f"         same order: {again.local_id == order.local_id}")
        _print_order(manager.get(order.local_id))
        print()

        print("  [3/4] Counter order created and deleted...")
        counter = manager.create_order()
        manager.add_line(counter, catalog["coffee"])
        deleted = await manager.delete_order(counter)
        print(f"         deleted: {deleted}; occupied: {sorted(manager.occupied_locations())}")
        print()

        print("  [4/4] Paying table 4...")
        current = manager.get(order.local_id)
        due = current.totals.amount_due
        cash = Money.of("100000", config.currency)
        payment = PaymentRequest(
            tenders=(
                TenderEntry(method_id="efectivo", amount=cash),
                TenderEntry(method_id="transferencia", amount=due - cash),
            ),
            invoice_consecutive="FE-1001",
            resolution_id="18760000001",
        )
        completed = await manager.capture_payment(current, payment)
        print(f"         amount due {due.amount}; sale {completed.sale_id}")
        _print_order(completed)
        print()

    counts = manager.count_by_status()
    print("  Orders: " + ", ".join(f"{s.value}={n}" for s, n in counts.items()))
    reset_engine()
    print("  Done.")
    print()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Scripted POS order session")
    parser.add_argument("--config", default=None, help="Terminal YAML file")
    parser.add_argument("--db-url", default=None, help="Override the record store URL")
    parser.add_argument("--exclusive", action="store_true",
                        help="Treat catalog prices as excluding VAT")
    parser.add_argument("--verbose", action="store_true", help="Emit JSON logs")
    args = parser.parse_args()

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
