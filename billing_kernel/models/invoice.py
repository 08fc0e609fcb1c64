"""
Module: billing_kernel.models.invoice
Responsibility: ORM persistence for invoices and the join rows that link
    events to them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - invoice_number is unique per issuer (uq_invoice_issuer_number).
    - An event belongs to at most one open invoice: invoice_event_links has a
      UNIQUE constraint on event_id, so a concurrent double-link fails at
      flush instead of silently overwriting.
    - Payer details are a frozen snapshot taken at issuance.
    - line_amount is the payout rounded to the currency; amount_total is the
      sum of line amounts.

Failure modes:
    - IntegrityError on duplicate (issuer_id, invoice_number).
    - IntegrityError on a second link for the same event.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class Invoice(TrackedBase):
    """
    An issued invoice for a set of events billed to one payer.

    Contract:
        Created in one transaction together with its links.  Editable while
        status is not paid or cancelled; every edit marks the generated
        document stale until it is regenerated.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("issuer_id", "invoice_number", name="uq_invoice_issuer_number"),
        Index("idx_invoice_issuer", "issuer_id"),
        Index("idx_invoice_payer", "payer_entity_id"),
        Index("idx_invoice_status", "status"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # Counter value the number was formatted from (None for manual numbers)
    sequence_value: Mapped[int | None] = mapped_column(nullable=True)

    fiscal_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    payer_entity_id: Mapped[UUID] = mapped_column(
        ForeignKey("billing_entities.id"),
        nullable=False,
    )

    # Frozen payer snapshot
    payer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payer_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lifecycle_state: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="created",
    )

    document_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    document_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    document_generated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} ({self.status})>"


class InvoiceEventLink(TrackedBase):
    """
    Join row between an invoice and one of its events.

    Contract:
        Holds the per-invoice payout snapshot and optional attendance
        overrides.  Overrides price this invoice only; the Event row keeps
        its own attendance.
    """

    __tablename__ = "invoice_event_links"

    __table_args__ = (
        UniqueConstraint("event_id", name="uq_invoice_link_event"),
        Index("idx_invoice_link_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"),
        nullable=False,
    )

    event_id: Mapped[UUID] = mapped_column(
        ForeignKey("events.id"),
        nullable=False,
    )

    # Payout rounded to the invoice currency
    line_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payout_status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="computed",
    )

    rate_source_entity_id: Mapped[UUID | None] = mapped_column(nullable=True)

    override_onsite: Mapped[int | None] = mapped_column(Integer, nullable=True)
    override_online: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def has_override(self) -> bool:
        return self.override_onsite is not None or self.override_online is not None

    def __repr__(self) -> str:
        return f"<InvoiceEventLink invoice={self.invoice_id} event={self.event_id}>"
