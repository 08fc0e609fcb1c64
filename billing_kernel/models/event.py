"""
Module: billing_kernel.models.event
Responsibility: ORM persistence for calendar events deposited by calendar
    sync, plus the billing assignment fields that only the billing engine
    mutates.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - billing_entity_id (payee) and rate_source_entity_id (pricing) are two
      separate references.  Substitute redirection changes the payee and
      keeps the studio as rate source.
    - Attendance counts are non-negative (CHECK constraints).
    - An event's link to an invoice lives in invoice_event_links, not here.

Failure modes:
    - IntegrityError on negative attendance counts.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class Event(TrackedBase):
    """
    A scheduled class instance.

    Contract:
        Title, location, times and attendance come from calendar sync or
        manual edits.  The billing engine writes only billing_entity_id,
        rate_source_entity_id, invoice_type, substitute_notes,
        use_payee_rate, exclude_from_matching, match_ambiguous,
        matched_pattern and tag_slugs.
    """

    __tablename__ = "events"

    __table_args__ = (
        CheckConstraint("students_onsite >= 0", name="ck_event_onsite_nonneg"),
        CheckConstraint("students_online >= 0", name="ck_event_online_nonneg"),
        Index("idx_event_issuer", "issuer_id"),
        Index("idx_event_issuer_entity", "issuer_id", "billing_entity_id"),
        Index("idx_event_start", "start_time"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    # Calendar provider identifier, if synced
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)

    location: Mapped[str | None] = mapped_column(String(500), nullable=True)

    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)

    students_onsite: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    students_online: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="confirmed")

    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    tag_slugs: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Payee
    billing_entity_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("billing_entities.id"),
        nullable=True,
    )

    # Whose RateConfig prices the event (the studio, even under substitution)
    rate_source_entity_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("billing_entities.id"),
        nullable=True,
    )

    invoice_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="studio_invoice",
    )

    substitute_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Explicit user choice to price with the payee's own RateConfig
    use_payee_rate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    exclude_from_matching: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    match_ambiguous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    matched_pattern: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def is_redirected(self) -> bool:
        return self.invoice_type == "teacher_invoice"

    def __repr__(self) -> str:
        return f"<Event {self.title!r} @ {self.start_time}>"
