"""
Module: billing_kernel.models.numbering
Responsibility: ORM persistence for per-issuer invoice number counters and
    the ledger of every number handed out.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One counter row per (issuer_id, scope_key); the row is advanced only by
      an atomic UPDATE ... SET current_value = current_value + 1.  The
      aggregate-max-plus-one anti-pattern is NEVER used.
    - A reservation row exists for every number ever handed out and is never
      deleted, so a number cannot be reissued (uq_reservation_issuer_number).

Failure modes:
    - IntegrityError when two callers create the same counter row
      concurrently (the loser retries the increment).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import Base, TrackedBase


class ReservationStatus(str, Enum):
    """State of a handed-out invoice number."""

    RESERVED = "reserved"  # consumed, invoice not (yet) written
    ISSUED = "issued"  # used by a persisted invoice
    VOIDED = "voided"  # invoice deleted; the number stays consumed


class InvoiceNumberCounter(Base):
    """
    Per-issuer counter row.

    ``scope_key`` is ``"all"`` for a single running sequence, or the fiscal
    year when numbering restarts every year.
    """

    __tablename__ = "invoice_number_counters"

    __table_args__ = (
        UniqueConstraint("issuer_id", "scope_key", name="uq_counter_issuer_scope"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    scope_key: Mapped[str] = mapped_column(String(20), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class InvoiceNumberReservation(TrackedBase):
    """Ledger row for one handed-out invoice number."""

    __tablename__ = "invoice_number_reservations"

    __table_args__ = (
        UniqueConstraint(
            "issuer_id", "invoice_number", name="uq_reservation_issuer_number"
        ),
        Index("idx_reservation_invoice", "invoice_id"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)

    scope_key: Mapped[str] = mapped_column(String(20), nullable=False)

    sequence_value: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.RESERVED.value,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<InvoiceNumberReservation {self.invoice_number} ({self.status})>"
