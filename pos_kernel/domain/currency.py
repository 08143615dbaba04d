"""Currency -- ISO 4217 registry and precision-derived rounding."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantize_exponent(self) -> Decimal:
        """Exponent for Decimal.quantize() at this currency's precision."""
        return Decimal(10) ** -self.decimal_places


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies a terminal may trade in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Americas
        "ARS": CurrencyInfo("ARS", 2, "Argentine Peso"),
        "BOB": CurrencyInfo("BOB", 2, "Bolivian Boliviano"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "COP": CurrencyInfo("COP", 2, "Colombian Peso"),
        "CRC": CurrencyInfo("CRC", 2, "Costa Rican Colon"),
        "DOP": CurrencyInfo("DOP", 2, "Dominican Peso"),
        "GTQ": CurrencyInfo("GTQ", 2, "Guatemalan Quetzal"),
        "HNL": CurrencyInfo("HNL", 2, "Honduran Lempira"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "NIO": CurrencyInfo("NIO", 2, "Nicaraguan Cordoba"),
        "PAB": CurrencyInfo("PAB", 2, "Panamanian Balboa"),
        "PEN": CurrencyInfo("PEN", 2, "Peruvian Sol"),
        "PYG": CurrencyInfo("PYG", 0, "Paraguayan Guarani"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "UYU": CurrencyInfo("UYU", 2, "Uruguayan Peso"),
        "VES": CurrencyInfo("VES", 2, "Venezuelan Bolivar Soberano"),
        # Other majors
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is registered."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Get decimal places for a currency."""
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        """Get all valid currency codes."""
        return frozenset(cls._CURRENCIES.keys())
