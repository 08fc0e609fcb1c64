"""
BaseService -- common base for the write side of the kernel.

Responsibility:
    Holds the caller's ``Session`` for kernel services that write rows.

Architecture position:
    Kernel > Services.  Reads belong in ``billing_kernel.selectors``.

Invariants enforced:
    - Kernel services flush and never commit or roll back.  The caller
      (an orchestrating service in ``billing_services``, or a test) owns
      the transaction.
"""

from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from billing_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    @property
    def supports_update_returning(self) -> bool:
        """True when the bound dialect can return columns from an UPDATE."""
        return self.session.get_bind().dialect.update_returning
