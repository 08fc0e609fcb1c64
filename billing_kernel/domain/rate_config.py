"""
Rate configuration -- tagged union attached to a billing entity.

Responsibility:
    Parse the structured ``rate_config`` sub-document stored on a billing
    entity into one of three frozen variants (FlatRate, PerStudentRate,
    TieredRate), validate it at configuration time, and serialize it back.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumed by the
    payout engine (billing_engines.payout) and by the entity service, which
    validates configs before they are stored.

Invariants enforced:
    - Tier thresholds within one config are strictly increasing and
      non-negative; an explicit tier max never reaches into the next tier.
    - Rates are non-negative Decimals (never float).
    - Every key a variant reads is written back by rate_config_to_dict, so
      a normalized config stores everything it was given.
    - Every consumer matches on the variant exhaustively.

Failure modes:
    - validate_rate_config() returns a RateConfigValidation carrying an
      InvalidTierConfig value; it never raises for bad input.
    - parse_rate_config() returns None for a missing or unknown config so
      that payout can report NO_RATE_CONFIGURED.

Stored document shape (JSON)::

    {"type": "flat", "base_rate": "60",
     "bonus_threshold": 10, "bonus_per_student": "2",
     "minimum_threshold": 5, "studio_penalty_per_student": "4",
     "online_penalty_per_student": "1", "max_discount": "20"}
    {"type": "per_student", "rate_per_student": "5",
     "online_rate_per_student": "3", "base_rate": "40",
     "minimum_threshold": 5, "bonus_per_student": "4",
     "below_minimum": "floor"}
    {"type": "tiered", "default_rate": "0", "tier_count_includes_online": false,
     "tiers": [{"min": 0, "max": 9, "rate": "20"}, {"min": 10, "rate": "35"}]}

    Any variant may add ``"online_bonus_per_student": "2"`` and
    ``"online_bonus_ceiling": 3``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union


class RateType(str, Enum):
    """Discriminator stored in ``rate_config["type"]``."""

    FLAT = "flat"
    PER_STUDENT = "per_student"
    TIERED = "tiered"


class BelowMinimumPolicy(str, Enum):
    """What a per-student config pays when attendance is below its minimum."""

    FLOOR = "floor"  # still pay (base rate, or the plain product)
    ZERO = "zero"  # hard gate: nothing below the minimum


@dataclass(frozen=True)
class OnlineBonus:
    """Extra amount per online attendee, counting at most ``ceiling`` of them."""

    per_student: Decimal
    ceiling: int | None = None

    def amount_for(self, online: int) -> Decimal:
        eligible = online if self.ceiling is None else min(online, self.ceiling)
        return eligible * self.per_student


@dataclass(frozen=True)
class FlatRate:
    """
    Fixed amount per event.

    Optional adjustments, all off by default:

    * ``bonus_per_student`` for every attendee above ``bonus_threshold``
      (both must be set);
    * ``studio_penalty_per_student`` for every on-site attendee short of
      ``minimum_threshold``, and ``online_penalty_per_student`` for every
      online attendee;
    * ``max_discount`` caps the total penalty.

    Penalties never take the amount below zero.
    """

    base_rate: Decimal
    bonus_threshold: int | None = None
    bonus_per_student: Decimal | None = None
    minimum_threshold: int | None = None
    studio_penalty_per_student: Decimal | None = None
    online_penalty_per_student: Decimal | None = None
    max_discount: Decimal | None = None
    online_bonus: OnlineBonus | None = None


@dataclass(frozen=True)
class PerStudentRate:
    """
    Per-attendee pricing.

    Without a bonus the payout is ``onsite * rate_per_student + online *
    online_rate_per_student``.  With ``minimum_threshold`` and
    ``bonus_per_student`` both set the payout is floor-plus-bonus:
    ``base_rate + max(0, attendance - minimum_threshold) * bonus_per_student``.
    """

    rate_per_student: Decimal
    online_rate_per_student: Decimal | None = None
    base_rate: Decimal = Decimal("0")
    minimum_threshold: int | None = None
    bonus_per_student: Decimal | None = None
    below_minimum: BelowMinimumPolicy = BelowMinimumPolicy.FLOOR
    online_bonus: OnlineBonus | None = None

    @property
    def effective_online_rate(self) -> Decimal:
        if self.online_rate_per_student is None:
            return self.rate_per_student
        return self.online_rate_per_student

    @property
    def is_floor_plus_bonus(self) -> bool:
        return self.minimum_threshold is not None and self.bonus_per_student is not None


@dataclass(frozen=True)
class RateTier:
    """
    One tier of a tiered config: applies from ``threshold`` attendees up to
    ``max_students`` inclusive, or without upper bound when that is None.
    """

    threshold: int
    rate: Decimal
    max_students: int | None = None

    def covers(self, count: int) -> bool:
        return self.threshold <= count and (
            self.max_students is None or count <= self.max_students
        )


@dataclass(frozen=True)
class TieredRate:
    """
    Tiers sorted ascending by threshold.

    ``default_rate`` (zero when absent) applies when no tier covers the
    count: below the first threshold, or in a gap a tier's ``max_students``
    leaves before the next one.  With ``tier_count_includes_online`` off
    only on-site attendees are counted.
    """

    tiers: tuple[RateTier, ...]
    default_rate: Decimal | None = None
    tier_count_includes_online: bool = True
    online_bonus: OnlineBonus | None = None


RateConfig = Union[FlatRate, PerStudentRate, TieredRate]


@dataclass(frozen=True)
class InvalidTierConfig:
    """Typed validation failure for a rate config (returned, never raised)."""

    reason: str


@dataclass(frozen=True)
class RateConfigValidation:
    """Result of validate_rate_config(): exactly one of config/error is set."""

    config: RateConfig | None = None
    error: InvalidTierConfig | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


class _RateConfigFormatError(ValueError):
    """Internal: raised while decoding, converted to InvalidTierConfig."""


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------


def _decimal(raw: dict[str, Any], key: str, *, required: bool = False) -> Decimal | None:
    value = raw.get(key)
    if value is None or value == "":
        if required:
            raise _RateConfigFormatError(f"{key} is required")
        return None
    if isinstance(value, bool):
        raise _RateConfigFormatError(f"{key} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise _RateConfigFormatError(f"{key} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise _RateConfigFormatError(f"{key} must be finite")
    if result < 0:
        raise _RateConfigFormatError(f"{key} must not be negative")
    return result


def _count(raw: dict[str, Any], key: str, *, required: bool = False) -> int | None:
    value = raw.get(key)
    if value is None or value == "":
        if required:
            raise _RateConfigFormatError(f"{key} is required")
        return None
    if isinstance(value, bool):
        raise _RateConfigFormatError(f"{key} must be an integer")
    try:
        as_decimal = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise _RateConfigFormatError(f"{key} must be an integer, got {value!r}") from exc
    if as_decimal != as_decimal.to_integral_value():
        raise _RateConfigFormatError(f"{key} must be an integer, got {value!r}")
    result = int(as_decimal)
    if result < 0:
        raise _RateConfigFormatError(f"{key} must not be negative")
    return result


def _flag(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise _RateConfigFormatError(f"{key} must be true or false, got {value!r}")
    return value


def _online_bonus(raw: dict[str, Any]) -> OnlineBonus | None:
    per_student = _decimal(raw, "online_bonus_per_student")
    ceiling = _count(raw, "online_bonus_ceiling")
    if per_student is None:
        if ceiling is not None:
            raise _RateConfigFormatError("online_bonus_ceiling needs online_bonus_per_student")
        return None
    return OnlineBonus(per_student=per_student, ceiling=ceiling)


def _decode(raw: dict[str, Any]) -> RateConfig:
    try:
        rate_type = RateType(raw.get("type"))
    except ValueError as exc:
        raise _RateConfigFormatError(f"unknown rate type {raw.get('type')!r}") from exc

    match rate_type:
        case RateType.FLAT:
            return FlatRate(
                base_rate=_decimal(raw, "base_rate", required=True),
                bonus_threshold=_count(raw, "bonus_threshold"),
                bonus_per_student=_decimal(raw, "bonus_per_student"),
                minimum_threshold=_count(raw, "minimum_threshold"),
                studio_penalty_per_student=_decimal(raw, "studio_penalty_per_student"),
                online_penalty_per_student=_decimal(raw, "online_penalty_per_student"),
                max_discount=_decimal(raw, "max_discount"),
                online_bonus=_online_bonus(raw),
            )

        case RateType.PER_STUDENT:
            policy_raw = raw.get("below_minimum") or BelowMinimumPolicy.FLOOR.value
            try:
                policy = BelowMinimumPolicy(policy_raw)
            except ValueError as exc:
                raise _RateConfigFormatError(
                    f"below_minimum must be 'floor' or 'zero', got {policy_raw!r}"
                ) from exc
            config = PerStudentRate(
                rate_per_student=_decimal(raw, "rate_per_student") or Decimal("0"),
                online_rate_per_student=_decimal(raw, "online_rate_per_student"),
                base_rate=_decimal(raw, "base_rate") or Decimal("0"),
                minimum_threshold=_count(raw, "minimum_threshold"),
                bonus_per_student=_decimal(raw, "bonus_per_student"),
                below_minimum=policy,
                online_bonus=_online_bonus(raw),
            )
            if raw.get("rate_per_student") in (None, "") and not config.is_floor_plus_bonus:
                raise _RateConfigFormatError(
                    "rate_per_student is required unless minimum_threshold "
                    "and bonus_per_student are set"
                )
            return config

        case RateType.TIERED:
            raw_tiers = raw.get("tiers")
            if not isinstance(raw_tiers, (list, tuple)) or not raw_tiers:
                raise _RateConfigFormatError("tiered config needs at least one tier")
            tiers: list[RateTier] = []
            for index, raw_tier in enumerate(raw_tiers):
                if not isinstance(raw_tier, dict):
                    raise _RateConfigFormatError(f"tier {index} must be an object")
                threshold_key = "min" if "min" in raw_tier else "threshold"
                tiers.append(
                    RateTier(
                        threshold=_count(raw_tier, threshold_key, required=True),
                        rate=_decimal(raw_tier, "rate", required=True),
                        max_students=_count(raw_tier, "max"),
                    )
                )
            _check_tiers(tiers)
            return TieredRate(
                tiers=tuple(tiers),
                default_rate=_decimal(raw, "default_rate"),
                tier_count_includes_online=_flag(raw, "tier_count_includes_online", True),
                online_bonus=_online_bonus(raw),
            )


def _check_tiers(tiers: list[RateTier]) -> None:
    """Thresholds strictly increasing; an explicit max stays inside its tier."""
    for index, tier in enumerate(tiers):
        if tier.max_students is not None and tier.max_students < tier.threshold:
            raise _RateConfigFormatError(
                f"tier {index} max {tier.max_students} is below its threshold {tier.threshold}"
            )
        if index == 0:
            continue
        previous = tiers[index - 1]
        if tier.threshold <= previous.threshold:
            raise _RateConfigFormatError(
                f"tier thresholds must be strictly increasing "
                f"({previous.threshold} then {tier.threshold})"
            )
        if previous.max_students is not None and previous.max_students >= tier.threshold:
            raise _RateConfigFormatError(
                f"tier {index - 1} (max {previous.max_students}) overlaps "
                f"tier {index} (from {tier.threshold})"
            )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_rate_config(raw: dict[str, Any] | None) -> RateConfigValidation:
    """
    Validate a stored rate-config document.

    Returns a RateConfigValidation; invalid documents (unknown type,
    negative amounts, overlapping or non-increasing tiers) produce an
    InvalidTierConfig error value instead of an exception.
    """
    if raw is None:
        return RateConfigValidation(error=InvalidTierConfig("rate config is missing"))
    if not isinstance(raw, dict):
        return RateConfigValidation(error=InvalidTierConfig("rate config must be an object"))
    try:
        return RateConfigValidation(config=_decode(raw))
    except _RateConfigFormatError as exc:
        return RateConfigValidation(error=InvalidTierConfig(str(exc)))


def parse_rate_config(raw: dict[str, Any] | None) -> RateConfig | None:
    """Parse a stored document; None when missing or not a valid config."""
    if not raw:
        return None
    return validate_rate_config(raw).config


def _put(doc: dict[str, Any], key: str, value: Decimal | int | None) -> None:
    if value is not None:
        doc[key] = value if isinstance(value, int) else str(value)


def _online_bonus_doc(bonus: OnlineBonus | None) -> dict[str, Any]:
    if bonus is None:
        return {}
    doc: dict[str, Any] = {"online_bonus_per_student": str(bonus.per_student)}
    _put(doc, "online_bonus_ceiling", bonus.ceiling)
    return doc


def rate_config_to_dict(config: RateConfig) -> dict[str, Any]:
    """Serialize a config to its stored JSON shape (Decimals as strings)."""
    match config:
        case FlatRate():
            doc: dict[str, Any] = {
                "type": RateType.FLAT.value,
                "base_rate": str(config.base_rate),
            }
            _put(doc, "bonus_threshold", config.bonus_threshold)
            _put(doc, "bonus_per_student", config.bonus_per_student)
            _put(doc, "minimum_threshold", config.minimum_threshold)
            _put(doc, "studio_penalty_per_student", config.studio_penalty_per_student)
            _put(doc, "online_penalty_per_student", config.online_penalty_per_student)
            _put(doc, "max_discount", config.max_discount)
            return doc | _online_bonus_doc(config.online_bonus)
        case PerStudentRate():
            doc = {
                "type": RateType.PER_STUDENT.value,
                "rate_per_student": str(config.rate_per_student),
                "base_rate": str(config.base_rate),
                "below_minimum": config.below_minimum.value,
            }
            _put(doc, "online_rate_per_student", config.online_rate_per_student)
            _put(doc, "minimum_threshold", config.minimum_threshold)
            _put(doc, "bonus_per_student", config.bonus_per_student)
            return doc | _online_bonus_doc(config.online_bonus)
        case TieredRate():
            doc = {
                "type": RateType.TIERED.value,
                "tiers": [
                    {"min": t.threshold, "rate": str(t.rate)}
                    | ({"max": t.max_students} if t.max_students is not None else {})
                    for t in config.tiers
                ],
            }
            _put(doc, "default_rate", config.default_rate)
            if not config.tier_count_includes_online:
                doc["tier_count_includes_online"] = False
            return doc | _online_bonus_doc(config.online_bonus)
    raise TypeError(f"Unknown rate config variant: {type(config).__name__}")
