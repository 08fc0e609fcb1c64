"""
Module: billing_kernel.models.issuer_settings
Responsibility: ORM persistence for an issuer's invoice settings: numbering
    prefix, sender details shown on the document, and the small-business
    VAT exemption flag.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one settings row per issuer (uq_issuer_settings_issuer).
"""

from uuid import UUID

from sqlalchemy import Boolean, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class IssuerSettings(TrackedBase):
    """Per-issuer invoice settings."""

    __tablename__ = "issuer_settings"

    __table_args__ = (
        UniqueConstraint("issuer_id", name="uq_issuer_settings_issuer"),
    )

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    # None falls back to numbering.default_prefix from config
    invoice_number_prefix: Mapped[str | None] = mapped_column(String(20), nullable=True)

    include_payer_abbreviation: Mapped[bool | None] = mapped_column(
        Boolean,
        nullable=True,
    )

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vat_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)

    # German Kleinunternehmerregelung (section 19 UStG)
    small_business_exemption: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<IssuerSettings issuer={self.issuer_id}>"
