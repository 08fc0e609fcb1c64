"""
Module: billing_kernel.selectors.base
Responsibility: Common base for the read side.  Selectors answer questions
    such as "which events still need an invoice" or "which invoice holds
    this event" and hand back DTOs.
Architecture position: Kernel > Selectors.  Imports db/, models/ and
    domain/ only.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Results are frozen dataclasses; ORM rows do not leave the selector.
    - The caller owns the session and its transaction.
"""

from collections.abc import Iterable
from typing import ClassVar, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(Generic[ModelType]):
    """Read-only queries over one primary model."""

    model: ClassVar[type[Base]]

    def __init__(self, session: Session):
        self.session = session

    def _row(self, row_id: UUID) -> ModelType | None:
        return self.session.get(self.model, row_id)

    def _rows(self, row_ids: Iterable[UUID | None]) -> dict[UUID, ModelType]:
        """Rows keyed by id.  None and unknown ids are left out."""
        ids = {rid for rid in row_ids if rid is not None}
        if not ids:
            return {}
        rows = self.session.scalars(select(self.model).where(self.model.id.in_(ids)))
        return {row.id: row for row in rows}
