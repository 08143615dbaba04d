"""
Session -- per-terminal pricing and withholding settings.

Responsibility:
    Holds the ValidationConfig fetched once per session from the backend and
    the session-scoped withholding ratchet: the highest withholding rate seen
    across processed products, together with that product's minimum-total
    threshold. The ratchet only moves through ``observe_product()``.

Architecture position:
    Kernel > Domain. SessionConfig is the only mutable object in the domain
    package and is owned by OrderLifecycleManager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from pos_kernel.domain.catalog import ClientRef, TaxProfile, WarehouseRef
from pos_kernel.domain.values import Currency, Money
from pos_kernel.exceptions import TaxRateOutOfRangeError
from pos_kernel.logging_config import get_logger

logger = get_logger("domain.session")


class PricingMode(str, Enum):
    """Whether catalog unit prices already contain VAT."""

    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"

    @classmethod
    def from_flag(cls, prices_include_vat: bool) -> PricingMode:
        return cls.INCLUSIVE if prices_include_vat else cls.EXCLUSIVE


@dataclass(frozen=True)
class WithholdingPolicy:
    """Order-wide withholding rate (percent) and its minimum-total threshold."""

    rate: Decimal
    threshold: Money

    @classmethod
    def none(cls, currency: Currency | str) -> WithholdingPolicy:
        return cls(rate=Decimal("0"), threshold=Money.zero(currency))


@dataclass(frozen=True)
class ValidationConfig:
    """Backend-provided session settings."""

    prices_include_vat: bool
    default_client: ClientRef | None = None
    default_warehouse: WarehouseRef | None = None

    @property
    def pricing_mode(self) -> PricingMode:
        return PricingMode.from_flag(self.prices_include_vat)


@dataclass
class SessionConfig:
    """
    Session-scoped configuration threaded through the lifecycle manager.

    Contract:
        ``withholding`` starts at zero and ratchets upward. A product whose
        withholding rate exceeds the tracked rate replaces both the rate and
        the threshold; lower or equal rates leave the policy unchanged.
    """

    currency: Currency
    validation: ValidationConfig
    counter_label: str = "Mostrador"
    withholding: WithholdingPolicy = field(init=False)

    def __post_init__(self) -> None:
        self.withholding = WithholdingPolicy.none(self.currency)

    @property
    def pricing_mode(self) -> PricingMode:
        return self.validation.pricing_mode

    def observe_product(self, tax_profile: TaxProfile) -> bool:
        """
        Feed a product's tax profile into the withholding ratchet.

        Returns:
            True if the tracked policy changed.

        Raises:
            TaxRateOutOfRangeError: Withholding rate outside [0, 100]; the
                ratchet is left as it was.
        """
        rate = tax_profile.withholding_rate
        if rate is None:
            return False
        if rate < 0 or rate > 100:
            raise TaxRateOutOfRangeError("Withholding", str(rate))
        if rate <= self.withholding.rate:
            return False

        threshold = tax_profile.withholding_base or Money.zero(self.currency)
        previous = self.withholding
        self.withholding = WithholdingPolicy(rate=rate, threshold=threshold)
        logger.info("withholding_ratchet_raised", extra={
            "previous_rate": str(previous.rate),
            "rate": str(rate),
            "threshold": str(threshold.amount),
        })
        return True
