"""
Module: billing_kernel.models.billing_entity
Responsibility: ORM persistence for billing entities -- the studios that pay
    for classes and the substitute teachers that get paid for covering them.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - location_match patterns exist only on studio entities (enforced by the
      entity service, which raises InvalidEntityTypeError).
    - rate_config is stored as a JSON sub-document and validated before it is
      written; the payout engine parses it into the RateConfig union.
    - Pattern overlap between studios is NOT a constraint; it is surfaced as
      a warning at write time.

Failure modes:
    - IntegrityError on a missing issuer_id or entity_name.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class BillingEntityType(str, Enum):
    """Studio (pays for classes) or teacher (substitute payee)."""

    STUDIO = "studio"
    TEACHER = "teacher"


class BillingEntity(TrackedBase):
    """
    A party an event is billed to.

    Contract:
        Studios carry location patterns that auto-claim events and usually
        the RateConfig that prices them.  Teachers carry recipient contact
        details and only price events when the user explicitly chooses the
        teacher's own rate.
    """

    __tablename__ = "billing_entities"

    __table_args__ = (
        Index("idx_billing_entity_issuer", "issuer_id"),
        Index("idx_billing_entity_issuer_type", "issuer_id", "entity_type"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    entity_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    entity_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BillingEntityType.STUDIO.value,
    )

    # Substrings used to auto-claim events by location (studio only)
    location_match: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # Tagged rate config document; see billing_kernel.domain.rate_config
    rate_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="EUR",
    )

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Studio only
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    billing_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Teacher recipient details
    recipient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vat_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_studio(self) -> bool:
        return self.entity_type == BillingEntityType.STUDIO.value

    @property
    def is_teacher(self) -> bool:
        return self.entity_type == BillingEntityType.TEACHER.value

    def __repr__(self) -> str:
        return f"<BillingEntity {self.entity_name} ({self.entity_type})>"
