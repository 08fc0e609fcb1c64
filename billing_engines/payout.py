"""
billing_engines.payout -- Rate calculator for class payouts.

Responsibility:
    Compute the payout of one event from its attendance and a RateConfig,
    and aggregate payouts across events.  Pure functions with deterministic
    behavior.  No I/O.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain.

Invariants enforced:
    - Every RateConfig variant is handled by an exhaustive ``match``.
    - Decimal arithmetic only; a single event's payout is NOT rounded.
      Rounding to the currency's minor unit happens at invoice line and
      total boundaries (``round_line``, ``TotalPayout.total``).
    - A missing or unknown config yields amount 0 with status
      NO_RATE_CONFIGURED, distinguishable from a legitimate zero.
    - Tiered payouts are monotonically non-decreasing in attendance when
      tier rates are non-decreasing and no tier max leaves a gap.  A count
      in a gap is paid ``default_rate``.
    - Online bonuses are added after the base amount of every variant,
      counting at most ``online_bonus_ceiling`` online attendees.
    - compute_total_payout is order independent (exact Decimal sum).

Failure modes:
    - None raised for bad configs: validate_rate_config returns a typed
      InvalidTierConfig result instead.

Usage:
    from billing_engines.payout import compute_payout
    from billing_kernel.domain import Attendance, PerStudentRate

    result = compute_payout(
        Attendance(onsite=8, online=2),
        PerStudentRate(rate_per_student=Decimal("5")),
        "EUR",
    )
    assert result.amount == Money.of("50", "EUR")
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from billing_engines.tracer import traced_engine
from billing_kernel.domain.dtos import (
    Attendance,
    BillingEntityInfo,
    EventInfo,
    PayoutResult,
    PayoutStatus,
)
from billing_kernel.domain.rate_config import (
    BelowMinimumPolicy,
    FlatRate,
    OnlineBonus,
    PerStudentRate,
    RateConfig,
    RateConfigValidation,
    RateType,
    TieredRate,
    parse_rate_config,
    validate_rate_config,
)
from billing_kernel.domain.values import Currency, Money
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.payout")

_ZERO = Decimal("0")

__all__ = [
    "TotalPayout",
    "compute_payout",
    "compute_total_payout",
    "round_line",
    "validate_rate_config",
    "RateConfigValidation",
]


@dataclass(frozen=True)
class TotalPayout:
    """
    Aggregate payout over several events.

    ``exact`` is the unrounded sum; ``total`` is ``exact`` rounded once to
    the currency.  ``no_rate_event_ids`` lists events priced at zero because
    no rate was configured.
    """

    exact: Money
    total: Money
    event_count: int
    no_rate_event_ids: tuple[UUID, ...] = ()

    @property
    def has_missing_rates(self) -> bool:
        return bool(self.no_rate_event_ids)


def _online_bonus(attendance: Attendance, bonus: OnlineBonus | None) -> Decimal:
    return bonus.amount_for(attendance.online) if bonus is not None else _ZERO


def _flat(attendance: Attendance, config: FlatRate) -> Decimal:
    penalty = _ZERO
    if (
        config.studio_penalty_per_student is not None
        and config.minimum_threshold is not None
        and attendance.onsite < config.minimum_threshold
    ):
        missing = config.minimum_threshold - attendance.onsite
        penalty += missing * config.studio_penalty_per_student
    if config.online_penalty_per_student is not None:
        penalty += attendance.online * config.online_penalty_per_student
    if config.max_discount is not None:
        penalty = min(penalty, config.max_discount)

    amount = max(config.base_rate - penalty, _ZERO)
    if (
        config.bonus_threshold is not None
        and config.bonus_per_student is not None
        and attendance.total > config.bonus_threshold
    ):
        amount += (attendance.total - config.bonus_threshold) * config.bonus_per_student
    return amount + _online_bonus(attendance, config.online_bonus)


def _per_student(attendance: Attendance, config: PerStudentRate) -> Decimal:
    total = attendance.total
    below = config.minimum_threshold is not None and total < config.minimum_threshold

    if below and config.below_minimum == BelowMinimumPolicy.ZERO:
        return _ZERO

    if config.is_floor_plus_bonus:
        extra = max(0, total - config.minimum_threshold)
        amount = config.base_rate + extra * config.bonus_per_student
    else:
        amount = (
            attendance.onsite * config.rate_per_student
            + attendance.online * config.effective_online_rate
        )
    return amount + _online_bonus(attendance, config.online_bonus)


def _tiered(attendance: Attendance, config: TieredRate) -> Decimal:
    count = attendance.total if config.tier_count_includes_online else attendance.onsite
    selected = None
    for tier in sorted(config.tiers, key=lambda t: t.threshold):
        if tier.threshold > count:
            break
        selected = tier
    # Past the selected tier's max the count falls in a gap
    if selected is not None and selected.covers(count):
        amount = selected.rate
    else:
        amount = config.default_rate if config.default_rate is not None else _ZERO
    return amount + _online_bonus(attendance, config.online_bonus)


def _rate_type(config: RateConfig) -> str:
    match config:
        case FlatRate():
            return RateType.FLAT.value
        case PerStudentRate():
            return RateType.PER_STUDENT.value
        case TieredRate():
            return RateType.TIERED.value
    raise TypeError(f"Unknown rate config variant: {type(config).__name__}")


@traced_engine("payout", "1.0", fingerprint_fields=("attendance", "rate_config"))
def compute_payout(
    attendance: Attendance,
    rate_config: RateConfig | dict | None,
    currency: str | Currency,
) -> PayoutResult:
    """
    Payout for one event.

    Pure function - no side effects, no I/O, deterministic output.

    Args:
        attendance: On-site and online counts (overrides already applied).
        rate_config: A RateConfig variant, a raw stored document, or None.
        currency: Currency of the rate source.

    Returns:
        PayoutResult with the exact (unrounded) amount.
    """
    if isinstance(rate_config, dict):
        rate_config = parse_rate_config(rate_config)

    if rate_config is None:
        return PayoutResult(
            amount=Money.zero(currency),
            status=PayoutStatus.NO_RATE_CONFIGURED,
        )

    match rate_config:
        case FlatRate():
            amount = _flat(attendance, rate_config)
        case PerStudentRate():
            amount = _per_student(attendance, rate_config)
        case TieredRate():
            amount = _tiered(attendance, rate_config)
        case _:
            logger.warning(
                "payout_unknown_rate_config",
                extra={"config_type": type(rate_config).__name__},
            )
            return PayoutResult(
                amount=Money.zero(currency),
                status=PayoutStatus.NO_RATE_CONFIGURED,
            )

    return PayoutResult(
        amount=Money.of(amount, currency),
        status=PayoutStatus.COMPUTED,
        rate_type=_rate_type(rate_config),
    )


def round_line(payout: PayoutResult) -> Money:
    """Invoice line amount: the payout rounded to the currency's minor unit."""
    return payout.amount.round()


def rate_source_for(event: EventInfo) -> UUID | None:
    """
    Entity whose RateConfig prices ``event``.

    The preserved rate source (the studio) wins, unless the user explicitly
    chose to price a redirected event with the payee's own rate.
    """
    if event.use_payee_rate and event.billing_entity_id is not None:
        return event.billing_entity_id
    return event.rate_source_entity_id or event.billing_entity_id


@traced_engine("payout_total", "1.0")
def compute_total_payout(
    events: Iterable[EventInfo],
    entity: BillingEntityInfo | None = None,
    *,
    entity_lookup: Callable[[UUID | None], BillingEntityInfo | None] | None = None,
    currency: str | None = None,
) -> TotalPayout:
    """
    Sum of per-event payouts.

    With ``entity`` every event is priced by that entity's config.  With
    ``entity_lookup`` each event is priced by its own rate source
    (see ``rate_source_for``).  The exact sum is order independent; it is
    rounded once for ``total``.

    Raises:
        ValueError: If neither entity nor currency is given, or if the
            priced events mix currencies.
    """
    target_currency = currency or (entity.currency if entity is not None else None)
    if target_currency is None:
        raise ValueError("compute_total_payout needs an entity or a currency")

    exact = Money.zero(target_currency)
    no_rate: list[UUID] = []
    count = 0
    for event in events:
        source = entity
        if source is None and entity_lookup is not None:
            source = entity_lookup(rate_source_for(event))
        config = source.rate_config if source is not None else None
        result = compute_payout(
            event.attendance,
            config,
            source.currency if source is not None else target_currency,
        )
        if not result.has_rate:
            no_rate.append(event.id)
        exact = exact + result.amount
        count += 1

    return TotalPayout(
        exact=exact,
        total=exact.round(),
        event_count=count,
        no_rate_event_ids=tuple(sorted(no_rate, key=str)),
    )
