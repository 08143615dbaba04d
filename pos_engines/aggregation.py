"""
Order Aggregation Engine - fold order lines into order totals.

Pure function of (lines, pricing mode, withholding rate, threshold). The
result replaces every aggregate field at once; there is no partial update.

Order of operations (fiscally significant):
    1. vat_total = sum(vat); discount_total = sum(discount);
       gross_before_vat = sum(quantity x unit_cost - discount)
    2. inclusive: gross_before_vat -= vat_total   (prices carried VAT)
    3. total = gross_before_vat (inclusive) or gross_before_vat + vat_total
    4. withholding = gross_before_vat x rate/100 when total >= threshold
    5. inclusive: total += vat_total
So in inclusive mode the threshold is tested against the pre-VAT total,
and in exclusive mode against the VAT-inclusive total.

Withholding is informational: it is never subtracted from ``total``.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from pos_engines.tracer import traced_engine
from pos_kernel.domain.order import Order, OrderLine, OrderTotals
from pos_kernel.domain.session import PricingMode
from pos_kernel.domain.values import Currency, Money
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def vat_breakdown(lines: tuple[OrderLine, ...], currency: Currency) -> dict[Decimal, Money]:
    """
    VAT grouped by rate, excluding zero-rated lines.

    Keys appear in first-seen line order.
    """
    breakdown: dict[Decimal, Money] = {}
    for line in lines:
        if line.vat_rate == _ZERO:
            continue
        breakdown[line.vat_rate] = breakdown.get(line.vat_rate, Money.zero(currency)) + line.vat_amount
    return breakdown


class OrderAggregator:
    """Recompute order aggregates from lines. Pure; no session state."""

    @traced_engine(
        "order_aggregation",
        "1.0",
        fingerprint_fields=("pricing_mode", "withholding_rate", "withholding_threshold"),
    )
    def recompute(
        self,
        order: Order,
        pricing_mode: PricingMode,
        withholding_rate: Decimal,
        withholding_threshold: Money,
    ) -> Order:
        """
        Return ``order`` with totals recomputed from its lines.

        Args:
            order: Order snapshot (lines are read, never changed)
            pricing_mode: Whether line prices carried VAT
            withholding_rate: Order-wide withholding percentage
            withholding_threshold: Minimum total for withholding to apply

        Returns:
            New Order snapshot with a fresh OrderTotals
        """
        currency = order.currency
        lines = order.lines

        vat_total = Money.sum((line.vat_amount for line in lines), currency)
        discount_total = Money.sum((line.discount_amount for line in lines), currency)
        gross_before_vat = Money.sum(
            ((line.gross - line.discount_amount).round() for line in lines),
            currency,
        )

        if pricing_mode == PricingMode.INCLUSIVE:
            gross_before_vat = gross_before_vat - vat_total

        total = gross_before_vat if pricing_mode == PricingMode.INCLUSIVE else gross_before_vat + vat_total

        if withholding_rate > _ZERO and total >= withholding_threshold:
            withholding = (gross_before_vat * withholding_rate / _HUNDRED).round()
        else:
            withholding = Money.zero(currency)

        if pricing_mode == PricingMode.INCLUSIVE:
            total = total + vat_total

        totals = OrderTotals(
            subtotal=gross_before_vat,
            discount_total=discount_total,
            vat_total=vat_total,
            withholding=withholding,
            total=total,
            vat_breakdown=vat_breakdown(lines, currency),
        )

        logger.debug("order_totals_recomputed", extra={
            "order_id": order.local_id,
            "line_count": len(lines),
            "pricing_mode": pricing_mode.value,
            "subtotal": str(totals.subtotal.amount),
            "vat_total": str(totals.vat_total.amount),
            "withholding": str(totals.withholding.amount),
            "total": str(totals.total.amount),
        })
        return replace(order, totals=totals)


def recompute(
    order: Order,
    pricing_mode: PricingMode,
    withholding_rate: Decimal,
    withholding_threshold: Money,
) -> Order:
    """Convenience wrapper around ``OrderAggregator().recompute``."""
    return OrderAggregator().recompute(
        order=order,
        pricing_mode=pricing_mode,
        withholding_rate=withholding_rate,
        withholding_threshold=withholding_threshold,
    )
