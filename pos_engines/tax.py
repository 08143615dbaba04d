"""
Tax Engine - VAT, withholding and discount amounts for one order line.

Pure functions with no I/O. The product's tax profile supplies the rates;
the session supplies the pricing mode.

Per-unit rules (then scaled by quantity):
    inclusive  vat = price - price / (1 + rate/100)   subtotal = price - vat
    exclusive  vat = price * rate/100                 subtotal = price
    line_total = subtotal + vat in both modes
    withholding = (price - discount) * withholding_rate/100

The engine works on the discounted line base (quantity x price - discount),
which is the per-unit rule scaled by quantity. Results are rounded half-up
to the currency's decimal places; subtotal is derived after rounding VAT
so that ``subtotal + vat == line_total`` holds exactly.

Usage:
    from pos_engines.tax import LineTaxCalculator
    from pos_kernel.domain.session import PricingMode

    result = LineTaxCalculator().compute_line(
        product=product,
        quantity=Decimal("2"),
        pricing_mode=PricingMode.INCLUSIVE,
    )
    print(result.vat_amount, result.line_total)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pos_engines.tracer import traced_engine
from pos_kernel.domain.catalog import Product
from pos_kernel.domain.session import PricingMode
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    InvalidDiscountError,
    NegativePriceError,
    NegativeQuantityError,
    TaxRateOutOfRangeError,
)
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineTaxResult:
    """
    Computed amounts for one product/quantity pair.

    Immutable value object; every money field is already rounded.
    """

    gross: Money  # quantity x unit price
    discount_amount: Money  # percent-of-gross + absolute
    subtotal: Money  # line value excluding VAT
    vat_amount: Money
    withholding_amount: Money
    line_total: Money  # subtotal + vat
    vat_rate: Decimal
    withholding_rate: Decimal


def _check_rate(kind: str, rate: Decimal) -> Decimal:
    if rate < _ZERO or rate > _HUNDRED:
        raise TaxRateOutOfRangeError(kind, str(rate))
    return rate


class LineTaxCalculator:
    """
    Calculate line taxes.

    Pure functions - no I/O, no session state. The order-wide withholding
    ratchet is an aggregation concern and never read here.
    """

    @traced_engine("line_tax", "1.0", fingerprint_fields=("product", "quantity", "pricing_mode"))
    def compute_line(
        self,
        product: Product,
        quantity: Decimal,
        pricing_mode: PricingMode,
        discount_percent: Decimal = _ZERO,
        discount_value: Money | None = None,
    ) -> LineTaxResult:
        """
        Compute subtotal, VAT, withholding and total for a line.

        Args:
            product: Product with unit price and tax profile
            quantity: Units sold (fractional allowed, >= 0)
            pricing_mode: Whether the unit price already contains VAT
            discount_percent: Percentage of the gross taken off (0-100)
            discount_value: Absolute amount taken off on top of the percentage

        Returns:
            LineTaxResult with rounded amounts

        Raises:
            NegativeQuantityError, NegativePriceError, TaxRateOutOfRangeError,
            InvalidDiscountError: rejected before any tax is computed
        """
        price = product.unit_price
        currency = price.currency
        profile = product.tax_profile

        if quantity < _ZERO:
            raise NegativeQuantityError(str(quantity))
        if price.is_negative:
            raise NegativePriceError(product.product_id, str(price.amount))
        vat_rate = _check_rate("VAT", profile.vat_rate if profile.vat_rate is not None else _ZERO)
        withholding_rate = _check_rate(
            "Withholding",
            profile.withholding_rate if profile.withholding_rate is not None else _ZERO,
        )

        absolute = discount_value if discount_value is not None else Money.zero(currency)
        if discount_percent < _ZERO or discount_percent > _HUNDRED or absolute.is_negative:
            raise InvalidDiscountError(str(discount_percent), str(absolute.amount))

        gross = (price * quantity).round()
        discount_amount = (gross * discount_percent / _HUNDRED + absolute).round()
        if discount_amount > gross:
            logger.error("tax_discount_exceeds_gross", extra={
                "product_id": product.product_id,
                "gross": str(gross.amount),
                "discount": str(discount_amount.amount),
            })
            raise InvalidDiscountError(str(discount_percent), str(absolute.amount))

        base = gross - discount_amount

        if pricing_mode == PricingMode.INCLUSIVE:
            # Back out the tax already embedded in the price
            vat_amount = (base - base / (1 + vat_rate / _HUNDRED)).round()
            subtotal = base - vat_amount
        else:
            vat_amount = (base * vat_rate / _HUNDRED).round()
            subtotal = base

        withholding_amount = (base * withholding_rate / _HUNDRED).round()

        result = LineTaxResult(
            gross=gross,
            discount_amount=discount_amount,
            subtotal=subtotal,
            vat_amount=vat_amount,
            withholding_amount=withholding_amount,
            line_total=subtotal + vat_amount,
            vat_rate=vat_rate,
            withholding_rate=withholding_rate,
        )

        logger.debug("line_tax_computed", extra={
            "product_id": product.product_id,
            "quantity": str(quantity),
            "pricing_mode": pricing_mode.value,
            "subtotal": str(result.subtotal.amount),
            "vat_amount": str(result.vat_amount.amount),
            "withholding_amount": str(result.withholding_amount.amount),
            "line_total": str(result.line_total.amount),
        })
        return result


def compute_line(
    product: Product,
    quantity: Decimal,
    pricing_mode: PricingMode,
    discount_percent: Decimal = _ZERO,
    discount_value: Money | None = None,
) -> LineTaxResult:
    """Convenience wrapper around ``LineTaxCalculator().compute_line``."""
    return LineTaxCalculator().compute_line(
        product=product,
        quantity=quantity,
        pricing_mode=pricing_mode,
        discount_percent=discount_percent,
        discount_value=discount_value,
    )
