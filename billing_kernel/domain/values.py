"""
Values -- Currency and Money, the value types for every amount in billing.

Responsibility:
    A payout, an invoice line and an invoice total are all Money: a Decimal
    amount bound to a Currency.  Engines and services never pass bare
    Decimals around as amounts.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Depends on domain.currency only.

Invariants enforced:
    - Amounts are Decimal; floats are converted through ``str`` so 0.1
      stays 0.1.
    - Currencies are registered ISO 4217 codes, normalized to upper case.
    - Nothing rounds implicitly.  ``round()`` quantizes half-up to the
      currency's minor unit and is called only at invoice line and total
      boundaries.

Failure modes:
    - ValueError for unparseable amounts or unsupported currencies.
    - ValueError when adding, subtracting or ordering different currencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

from billing_kernel.domain.currency import CurrencyRegistry


@dataclass(frozen=True, slots=True)
class Currency:
    code: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "code", CurrencyRegistry.validate(self.code))

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def minor_unit(self) -> Decimal:
        return CurrencyRegistry.get_info(self.code).minor_unit

    def __str__(self) -> str:
        return self.code


def _to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def _to_currency(value: Currency | str) -> Currency:
    if isinstance(value, Currency):
        return value
    if isinstance(value, str):
        return Currency(value)
    raise TypeError(f"currency must be Currency or str, got {type(value).__name__}")


@total_ordering
@dataclass(frozen=True, slots=True)
class Money:
    """
    An exact amount in one currency.

    Addition, subtraction and ordering require both sides to share a
    currency.  Multiplication takes a scalar (an attendee count or a rate
    factor).  There is no currency conversion.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _to_decimal(self.amount))
        object.__setattr__(self, "currency", _to_currency(self.currency))

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        return cls(_to_decimal(amount), _to_currency(currency))

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(Decimal(0), _to_currency(currency))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, rounding: str = ROUND_HALF_UP) -> Money:
        """Quantize to the currency's minor unit (half-up by default)."""
        return Money(
            self.amount.quantize(self.currency.minor_unit, rounding=rounding),
            self.currency,
        )

    def _same_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {operation} {self.currency} and {other.currency} amounts"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, bool) or not isinstance(factor, (Decimal, int, str)):
            return NotImplemented
        return Money(self.amount * _to_decimal(factor), self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._same_currency(other, "compare")
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"
