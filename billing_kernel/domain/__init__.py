"""Pure domain layer: money, clock, rate configs and DTOs."""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.dtos import (
    Attendance,
    BillingEntityInfo,
    ConflictPolicy,
    EntityType,
    EventInfo,
    EventRejection,
    EventStatus,
    InvoiceInfo,
    InvoiceLineInfo,
    InvoiceStatus,
    InvoiceType,
    LifecycleState,
    PayoutResult,
    PayoutStatus,
    RejectionReason,
)
from billing_kernel.domain.rate_config import (
    BelowMinimumPolicy,
    FlatRate,
    InvalidTierConfig,
    OnlineBonus,
    PerStudentRate,
    RateConfig,
    RateConfigValidation,
    RateTier,
    RateType,
    TieredRate,
    parse_rate_config,
    rate_config_to_dict,
    validate_rate_config,
)
from billing_kernel.domain.values import Currency, Money

__all__ = [
    "Attendance",
    "BelowMinimumPolicy",
    "BillingEntityInfo",
    "Clock",
    "ConflictPolicy",
    "Currency",
    "DeterministicClock",
    "EntityType",
    "EventInfo",
    "EventRejection",
    "EventStatus",
    "FlatRate",
    "InvalidTierConfig",
    "InvoiceInfo",
    "InvoiceLineInfo",
    "InvoiceStatus",
    "InvoiceType",
    "LifecycleState",
    "Money",
    "OnlineBonus",
    "PayoutResult",
    "PayoutStatus",
    "PerStudentRate",
    "RateConfig",
    "RateConfigValidation",
    "RateTier",
    "RateType",
    "RejectionReason",
    "SystemClock",
    "TieredRate",
    "parse_rate_config",
    "rate_config_to_dict",
    "validate_rate_config",
]
