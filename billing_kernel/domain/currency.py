"""
Currency -- the ISO 4217 codes an issuer can invoice in.

Rates, payouts and invoices carry a currency code.  The registry supplies
each code's minor unit so invoice lines and totals can be rounded to what
can actually be paid (cents for EUR, whole yen for JPY).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str

    @property
    def minor_unit(self) -> Decimal:
        """Smallest payable amount: Decimal("0.01") for EUR, Decimal("1") for JPY."""
        return Decimal(1).scaleb(-self.decimal_places)


# code, decimal places, name
_ISO_4217: tuple[tuple[str, int, str], ...] = (
    ("EUR", 2, "Euro"),
    ("CHF", 2, "Swiss Franc"),
    ("GBP", 2, "Pound Sterling"),
    ("USD", 2, "US Dollar"),
    ("CAD", 2, "Canadian Dollar"),
    ("AUD", 2, "Australian Dollar"),
    ("NZD", 2, "New Zealand Dollar"),
    ("DKK", 2, "Danish Krone"),
    ("SEK", 2, "Swedish Krona"),
    ("NOK", 2, "Norwegian Krone"),
    ("PLN", 2, "Polish Zloty"),
    ("CZK", 2, "Czech Koruna"),
    ("HUF", 2, "Hungarian Forint"),
    ("RON", 2, "Romanian Leu"),
    ("BGN", 2, "Bulgarian Lev"),
    ("TRY", 2, "Turkish Lira"),
    ("ILS", 2, "Israeli New Shekel"),
    ("AED", 2, "UAE Dirham"),
    ("ZAR", 2, "South African Rand"),
    ("BRL", 2, "Brazilian Real"),
    ("MXN", 2, "Mexican Peso"),
    ("SGD", 2, "Singapore Dollar"),
    ("HKD", 2, "Hong Kong Dollar"),
    ("INR", 2, "Indian Rupee"),
    ("JPY", 0, "Japanese Yen"),
    ("KRW", 0, "South Korean Won"),
    ("ISK", 0, "Icelandic Krona"),
    ("CLP", 0, "Chilean Peso"),
    ("BHD", 3, "Bahraini Dinar"),
    ("KWD", 3, "Kuwaiti Dinar"),
    ("JOD", 3, "Jordanian Dinar"),
)


def _normalize(code: object) -> str:
    return code.strip().upper() if isinstance(code, str) else ""


class CurrencyRegistry:
    """Lookup of supported currencies.  Unknown codes are rejected, never guessed."""

    _BY_CODE: ClassVar[dict[str, CurrencyInfo]] = {
        code: CurrencyInfo(code, places, name) for code, places, name in _ISO_4217
    }

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._BY_CODE.get(_normalize(code))

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """
        Raises:
            ValueError: ``code`` is not a supported currency.
        """
        return cls._require(code).decimal_places

    @classmethod
    def validate(cls, code: str) -> str:
        """
        Normalized code (``" eur "`` -> ``"EUR"``).

        Raises:
            ValueError: Not three letters, or not a supported currency.
        """
        normalized = _normalize(code)
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        return cls._require(normalized).code

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._BY_CODE)

    @classmethod
    def _require(cls, code: str) -> CurrencyInfo:
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unsupported currency code: {code!r}")
        return info
