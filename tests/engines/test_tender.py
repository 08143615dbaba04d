"""Tests for tender settlement."""

import pytest

from pos_engines.tender import TenderEntry, settle
from pos_kernel.domain.values import Money
from pos_kernel.exceptions import InvalidInputError


def _cop(amount):
    return Money.of(amount, "COP")


class TestSettle:
    """Paid, remaining and change against the amount due."""

    def test_exact_payment(self):
        summary = settle(_cop("119000"), [TenderEntry("efectivo", _cop("119000"))])

        assert summary.is_settled
        assert summary.change.is_zero
        assert summary.total_paid == _cop("119000")

    def test_split_tenders(self):
        summary = settle(
            _cop("119000"),
            [TenderEntry("efectivo", _cop("100000")), TenderEntry("transferencia", _cop("19000"))],
        )

        assert summary.is_settled
        assert summary.total_paid == _cop("119000")

    def test_underpaid(self):
        summary = settle(_cop("119000"), [TenderEntry("efectivo", _cop("100000"))])

        assert not summary.is_settled
        assert summary.remaining == _cop("19000")
        assert summary.change.is_zero

    def test_overpaid_gives_change(self):
        summary = settle(_cop("95000"), [TenderEntry("efectivo", _cop("100000"))])

        assert summary.is_settled
        assert summary.change == _cop("5000")
        assert summary.remaining.is_zero

    def test_no_tenders(self):
        summary = settle(_cop("1000"), [])

        assert summary.remaining == _cop("1000")
        assert summary.total_paid.is_zero

    def test_zero_due_settled_without_tenders(self):
        assert settle(_cop("0"), []).is_settled


class TestTenderEntry:

    def test_rejects_zero(self):
        with pytest.raises(InvalidInputError, match="positive"):
            TenderEntry("efectivo", _cop("0"))

    def test_rejects_negative(self):
        with pytest.raises(InvalidInputError):
            TenderEntry("efectivo", _cop("-5"))
