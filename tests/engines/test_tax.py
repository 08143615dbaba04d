"""
Tests for the line tax engine.

Covers:
- VAT-inclusive (back-out) and VAT-exclusive pricing
- Discounts (percentage, absolute, both)
- Per-line withholding on the discounted base
- Quantity scaling and rounding
- Input validation
"""

from decimal import Decimal

import pytest

from pos_engines.tax import LineTaxCalculator, compute_line
from pos_kernel.domain.catalog import Product, TaxProfile
from pos_kernel.domain.session import PricingMode
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import (
    InvalidDiscountError,
    InvalidInputError,
    NegativePriceError,
    NegativeQuantityError,
    TaxRateOutOfRangeError,
)


def _product(price, vat=None, withholding=None, base=None, product_id="p-1"):
    return Product(
        product_id=product_id,
        code="X",
        name="Item",
        unit_price=Money.of(price, "COP"),
        tax_profile=TaxProfile(
            vat_rate=Decimal(vat) if vat is not None else None,
            withholding_rate=Decimal(withholding) if withholding is not None else None,
            withholding_base=Money.of(base, "COP") if base is not None else None,
        ),
    )


class TestInclusivePricing:
    """Prices that already contain VAT."""

    def setup_method(self):
        self.calculator = LineTaxCalculator()

    def test_backs_out_embedded_vat(self):
        """119,000 at 19% inclusive carries 19,000 of VAT on a 100,000 subtotal."""
        result = self.calculator.compute_line(
            product=_product("119000", vat="19"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.INCLUSIVE,
        )

        assert result.vat_amount == Money.of("19000", "COP")
        assert result.subtotal == Money.of("100000", "COP")
        assert result.line_total == Money.of("119000", "COP")

    def test_vat_is_not_naive_percentage(self):
        result = self.calculator.compute_line(
            product=_product("119000", vat="19"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.INCLUSIVE,
        )

        assert result.vat_amount != Money.of("22610", "COP")

    def test_subtotal_rederives_vat_under_exclusive(self):
        """VAT recomputed on the inclusive subtotal matches the backed-out VAT."""
        result = self.calculator.compute_line(
            product=_product("119000", vat="19"),
            quantity=Decimal("3"),
            pricing_mode=PricingMode.INCLUSIVE,
        )

        rederived = (result.subtotal * result.vat_rate / Decimal("100")).round()
        assert rederived == result.vat_amount
        assert result.line_total == result.subtotal + result.vat_amount

    def test_scaled_by_quantity(self):
        result = self.calculator.compute_line(
            product=_product("119000", vat="19"),
            quantity=Decimal("2"),
            pricing_mode=PricingMode.INCLUSIVE,
        )

        assert result.gross == Money.of("238000", "COP")
        assert result.vat_amount == Money.of("38000", "COP")
        assert result.subtotal == Money.of("200000", "COP")


class TestExclusivePricing:
    """Prices that exclude VAT; VAT is added on top."""

    def setup_method(self):
        self.calculator = LineTaxCalculator()

    def test_adds_vat_on_top(self):
        """100,000 at 19% exclusive totals 119,000."""
        result = self.calculator.compute_line(
            product=_product("100000", vat="19"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.vat_amount == Money.of("19000", "COP")
        assert result.subtotal == Money.of("100000", "COP")
        assert result.line_total == Money.of("119000", "COP")

    def test_line_total_is_subtotal_plus_vat(self):
        result = self.calculator.compute_line(
            product=_product("3333.33", vat="19"),
            quantity=Decimal("7"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.line_total == result.subtotal + result.vat_amount

    def test_fractional_quantity_rounds_half_up(self):
        result = self.calculator.compute_line(
            product=_product("1000", vat="19"),
            quantity=Decimal("0.333"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.gross == Money.of("333.00", "COP")
        assert result.vat_amount == Money.of("63.27", "COP")

    def test_no_tax_profile_means_no_tax(self):
        result = self.calculator.compute_line(
            product=_product("5000"),
            quantity=Decimal("2"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.vat_amount.is_zero
        assert result.withholding_amount.is_zero
        assert result.vat_rate == Decimal("0")
        assert result.line_total == Money.of("10000", "COP")

    def test_zero_quantity(self):
        result = compute_line(
            product=_product("100000", vat="19"),
            quantity=Decimal("0"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.line_total.is_zero


class TestDiscounts:
    """Percentage and absolute discounts add up."""

    def setup_method(self):
        self.calculator = LineTaxCalculator()

    def test_percentage_discount(self):
        result = self.calculator.compute_line(
            product=_product("100000", vat="19"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.EXCLUSIVE,
            discount_percent=Decimal("10"),
        )

        assert result.discount_amount == Money.of("10000", "COP")
        assert result.subtotal == Money.of("90000", "COP")
        assert result.vat_amount == Money.of("17100", "COP")

    def test_percentage_and_absolute_are_summed(self):
        result = self.calculator.compute_line(
            product=_product("100000", vat="19"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.EXCLUSIVE,
            discount_percent=Decimal("10"),
            discount_value=Money.of("5000", "COP"),
        )

        assert result.discount_amount == Money.of("15000", "COP")
        assert result.vat_amount == Money.of("16150", "COP")
        assert result.line_total == Money.of("101150", "COP")

    def test_discount_above_gross_rejected(self):
        with pytest.raises(InvalidDiscountError):
            self.calculator.compute_line(
                product=_product("1000", vat="19"),
                quantity=Decimal("1"),
                pricing_mode=PricingMode.EXCLUSIVE,
                discount_value=Money.of("1500", "COP"),
            )

    def test_percentage_over_hundred_rejected(self):
        with pytest.raises(InvalidDiscountError):
            self.calculator.compute_line(
                product=_product("1000"),
                quantity=Decimal("1"),
                pricing_mode=PricingMode.EXCLUSIVE,
                discount_percent=Decimal("101"),
            )


class TestLineWithholding:
    """Per-line withholding uses the product's own rate."""

    def setup_method(self):
        self.calculator = LineTaxCalculator()

    def test_withholding_on_discounted_base(self):
        result = self.calculator.compute_line(
            product=_product("500000", withholding="2.5", base="300000"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.EXCLUSIVE,
            discount_percent=Decimal("20"),
        )

        assert result.withholding_amount == Money.of("10000", "COP")
        assert result.withholding_rate == Decimal("2.5")

    def test_withholding_not_subtracted_from_total(self):
        result = self.calculator.compute_line(
            product=_product("500000", withholding="2.5"),
            quantity=Decimal("1"),
            pricing_mode=PricingMode.EXCLUSIVE,
        )

        assert result.line_total == Money.of("500000", "COP")


class TestValidation:
    """Bad inputs are rejected before any arithmetic."""

    def setup_method(self):
        self.calculator = LineTaxCalculator()

    def test_negative_quantity(self):
        with pytest.raises(NegativeQuantityError, match="negative"):
            self.calculator.compute_line(
                product=_product("1000"),
                quantity=Decimal("-1"),
                pricing_mode=PricingMode.EXCLUSIVE,
            )

    def test_negative_price(self):
        with pytest.raises(NegativePriceError) as exc_info:
            self.calculator.compute_line(
                product=_product("-1000", product_id="p-neg"),
                quantity=Decimal("1"),
                pricing_mode=PricingMode.EXCLUSIVE,
            )
        assert exc_info.value.product_id == "p-neg"

    def test_vat_rate_above_hundred(self):
        with pytest.raises(TaxRateOutOfRangeError):
            self.calculator.compute_line(
                product=_product("1000", vat="150"),
                quantity=Decimal("1"),
                pricing_mode=PricingMode.EXCLUSIVE,
            )

    def test_negative_withholding_rate(self):
        with pytest.raises(TaxRateOutOfRangeError):
            self.calculator.compute_line(
                product=_product("1000", withholding="-1"),
                quantity=Decimal("1"),
                pricing_mode=PricingMode.EXCLUSIVE,
            )

    def test_errors_share_input_base(self):
        with pytest.raises(InvalidInputError) as exc_info:
            compute_line(
                product=_product("1000"),
                quantity=Decimal("-2"),
                pricing_mode=PricingMode.INCLUSIVE,
            )
        assert exc_info.value.code == "NEGATIVE_QUANTITY"
