"""
Tender Settlement - how far a set of payments covers an order.

A sale may be paid with several tenders (cash, transfer, receivable...).
Settlement reports what was paid, what is still owed and the change to
hand back. Pure; amounts are Money in the order currency.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pos_kernel.domain.values import Money
from pos_kernel.exceptions import InvalidInputError


@dataclass(frozen=True)
class TenderEntry:
    """One payment line: payment method id and amount."""

    method_id: str
    amount: Money

    def __post_init__(self) -> None:
        if not self.amount.is_positive:
            raise InvalidInputError(
                f"Tender amount must be positive: {self.amount}"
            )


@dataclass(frozen=True)
class TenderSummary:
    amount_due: Money
    total_paid: Money
    remaining: Money
    change: Money

    @property
    def is_settled(self) -> bool:
        return self.remaining.is_zero


def settle(amount_due: Money, tenders: Sequence[TenderEntry]) -> TenderSummary:
    """
    Summarize tenders against the amount due.

    ``remaining`` and ``change`` are never negative; at most one of them is
    non-zero.
    """
    currency = amount_due.currency
    zero = Money.zero(currency)
    total_paid = Money.sum((t.amount for t in tenders), currency)
    difference = amount_due - total_paid
    return TenderSummary(
        amount_due=amount_due,
        total_paid=total_paid,
        remaining=difference if difference.is_positive else zero,
        change=-difference if difference.is_negative else zero,
    )
