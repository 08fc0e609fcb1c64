"""
Module: billing_kernel.models.tag_rule
Responsibility: ORM persistence for tag rules -- keyword sets that tag events
    by title and location.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class TagRule(TrackedBase):
    """Keyword rule that assigns ``tag_slug`` to matching events."""

    __tablename__ = "tag_rules"

    __table_args__ = (Index("idx_tag_rule_issuer", "issuer_id"),)

    issuer_id: Mapped[UUID] = mapped_column(nullable=False)

    tag_slug: Mapped[str] = mapped_column(String(100), nullable=False)

    # Matched against the event title
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Matched against the event location
    location_keywords: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    def __repr__(self) -> str:
        return f"<TagRule {self.tag_slug}>"
