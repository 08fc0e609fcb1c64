"""
DTOs -- Pure domain data transfer objects for the billing engine.

Responsibility:
    Defines the immutable data structures that flow between selectors,
    engines and services: attendance, payout results, link rejections and
    read-only snapshots of billing entities, events and invoices.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  Services convert ORM rows to these DTOs at
    the persistence boundary; engines only ever see DTOs.

Invariants enforced:
    - Attendance counts are non-negative integers.
    - Monetary fields are Money value objects (never raw float).
    - A payout with status NO_RATE_CONFIGURED is always zero, and a zero
      payout with status COMPUTED is a legitimate zero-rate event.

Failure modes:
    - ValueError on Attendance with negative counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from billing_kernel.domain.rate_config import RateConfig
from billing_kernel.domain.values import Money


class EntityType(str, Enum):
    """Kind of billing entity."""

    STUDIO = "studio"
    TEACHER = "teacher"


class EventStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class InvoiceType(str, Enum):
    """Who an event is billed to: the studio, or a substitute teacher."""

    STUDIO_INVOICE = "studio_invoice"
    TEACHER_INVOICE = "teacher_invoice"


class InvoiceStatus(str, Enum):
    """Invoice payment status.

    Contract: PAID and CANCELLED are locked; edits and deletes are refused.
    """

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    @property
    def is_locked(self) -> bool:
        return self in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


class LifecycleState(str, Enum):
    """Document lifecycle of an invoice."""

    CREATED = "created"  # number assigned, events linked, totals fixed
    EDITED = "edited"  # relinked or recomputed, document stale
    DOCUMENT_GENERATED = "document_generated"


class PayoutStatus(str, Enum):
    COMPUTED = "computed"
    NO_RATE_CONFIGURED = "no_rate_configured"


class RejectionReason(str, Enum):
    """Why an event could not be linked to an invoice."""

    NOT_FOUND = "not_found"
    ALREADY_LINKED = "already_linked"
    PAYER_MISMATCH = "payer_mismatch"
    CURRENCY_MISMATCH = "currency_mismatch"


class ConflictPolicy(str, Enum):
    """Caller's choice when some events of a create/update are rejected."""

    ABORT = "abort"
    SKIP = "skip"


# ---------------------------------------------------------------------------
# Value DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Attendance:
    """On-site and online attendee counts for one event."""

    onsite: int = 0
    online: int = 0

    def __post_init__(self) -> None:
        if self.onsite < 0 or self.online < 0:
            raise ValueError(
                f"Attendance counts must be non-negative, got "
                f"onsite={self.onsite} online={self.online}"
            )

    @property
    def total(self) -> int:
        return self.onsite + self.online


@dataclass(frozen=True)
class PayoutResult:
    """
    Payout for one event.

    ``amount`` is exact (unrounded); invoice lines round it to the currency.
    """

    amount: Money
    status: PayoutStatus
    rate_type: str | None = None

    @property
    def has_rate(self) -> bool:
        return self.status == PayoutStatus.COMPUTED


@dataclass(frozen=True)
class EventRejection:
    """One event that could not be linked, with the blocking invoice if any."""

    event_id: UUID
    reason: RejectionReason
    invoice_id: UUID | None = None


# ---------------------------------------------------------------------------
# Read-only snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingEntityInfo:
    """Snapshot of a billing entity (studio or teacher)."""

    id: UUID
    issuer_id: UUID
    entity_name: str
    entity_type: EntityType
    currency: str
    location_match: tuple[str, ...] = ()
    rate_config: RateConfig | None = None
    is_verified: bool = False
    is_featured: bool = False
    recipient_name: str | None = None
    recipient_email: str | None = None
    billing_email: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class EventInfo:
    """Snapshot of a calendar event and its billing assignment."""

    id: UUID
    issuer_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    location: str | None = None
    attendance: Attendance = field(default_factory=Attendance)
    billing_entity_id: UUID | None = None
    rate_source_entity_id: UUID | None = None
    invoice_type: InvoiceType = InvoiceType.STUDIO_INVOICE
    use_payee_rate: bool = False
    exclude_from_matching: bool = False
    match_ambiguous: bool = False
    matched_pattern: str | None = None
    substitute_notes: str | None = None
    status: EventStatus = EventStatus.CONFIRMED
    tag_slugs: tuple[str, ...] = ()

    @property
    def is_redirected(self) -> bool:
        return self.invoice_type == InvoiceType.TEACHER_INVOICE


@dataclass(frozen=True)
class InvoiceLineInfo:
    """One linked event on an invoice, with its rounded line amount."""

    event_id: UUID
    title: str
    start_time: datetime
    location: str | None
    attendance: Attendance
    amount: Money
    payout_status: PayoutStatus
    has_override: bool = False


@dataclass(frozen=True)
class InvoiceInfo:
    """Snapshot of an invoice with its lines."""

    id: UUID
    issuer_id: UUID
    invoice_number: str
    payer_entity_id: UUID
    payer_name: str
    currency: str
    amount_total: Money
    status: InvoiceStatus
    lifecycle_state: LifecycleState
    document_stale: bool
    period_start: datetime | None = None
    period_end: datetime | None = None
    notes: str | None = None
    document_ref: str | None = None
    lines: tuple[InvoiceLineInfo, ...] = ()

    @property
    def event_ids(self) -> frozenset[UUID]:
        return frozenset(line.event_id for line in self.lines)
