"""
InvoiceCounterService -- atomic per-issuer invoice counter.

Responsibility:
    Advance the counter row for ``(issuer_id, scope_key)`` and return the
    new value.  This is the narrow increment-and-fetch interface behind
    invoice numbering.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  The numbering
    service in ``billing_services`` runs it inside its own short
    transaction and commits before the invoice is written.

Invariants enforced:
    - The increment is a single ``UPDATE ... SET current_value =
      current_value + 1`` on the counter row.  The row lock taken by the
      UPDATE serializes concurrent callers for the same issuer; other
      issuers use other rows and never contend.  Read-then-write and the
      aggregate-max-plus-one anti-pattern are NEVER used.
    - Returned values are strictly positive and strictly increasing per
      (issuer_id, scope_key).

Failure modes:
    - IntegrityError (from flush) when two callers create the same counter
      row concurrently.  The caller must roll back and retry; the retry
      finds the row and increments it.
    - OperationalError on lock timeouts propagates to the caller.
"""

from uuid import UUID

from sqlalchemy import select, update

from billing_kernel.logging_config import get_logger
from billing_kernel.models.numbering import InvoiceNumberCounter
from billing_kernel.services.base import BaseService

logger = get_logger("services.invoice_counter")


class InvoiceCounterService(BaseService[InvoiceNumberCounter]):
    """
    Increment-and-fetch on the per-issuer counter row.

    Usage:
        with session_factory() as session:
            value = InvoiceCounterService(session).next_value(issuer_id, "2025")
            ...
            session.commit()
    """

    def next_value(self, issuer_id: UUID, scope_key: str) -> int:
        """
        Advance the counter and return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for (issuer_id, scope_key).
            - The counter row stays locked until the caller's transaction
              ends.

        Raises:
            IntegrityError: concurrent first use of the counter; retry.
        """
        stmt = (
            update(InvoiceNumberCounter)
            .where(
                InvoiceNumberCounter.issuer_id == issuer_id,
                InvoiceNumberCounter.scope_key == scope_key,
            )
            .values(current_value=InvoiceNumberCounter.current_value + 1)
        )

        if self.supports_update_returning:
            value = self.session.execute(
                stmt.returning(InvoiceNumberCounter.current_value),
                execution_options={"synchronize_session": False},
            ).scalar_one_or_none()
        else:
            result = self.session.execute(
                stmt, execution_options={"synchronize_session": False}
            )
            value = None
            if result.rowcount:
                # Same transaction as the UPDATE; the row is still locked.
                value = self.session.scalar(
                    select(InvoiceNumberCounter.current_value).where(
                        InvoiceNumberCounter.issuer_id == issuer_id,
                        InvoiceNumberCounter.scope_key == scope_key,
                    )
                )

        if value is None:
            # First use of this counter
            self.session.add(
                InvoiceNumberCounter(
                    issuer_id=issuer_id,
                    scope_key=scope_key,
                    current_value=1,
                )
            )
            self.session.flush()
            value = 1

        if value < 1:
            raise RuntimeError(
                f"Invoice counter for issuer {issuer_id} returned non-positive value {value}"
            )

        logger.debug(
            "invoice_counter_advanced",
            extra={"issuer_id": str(issuer_id), "scope_key": scope_key, "value": value},
        )
        return value

    def current_value(self, issuer_id: UUID, scope_key: str) -> int | None:
        """Current counter value without incrementing (None if never used)."""
        return self.session.scalar(
            select(InvoiceNumberCounter.current_value).where(
                InvoiceNumberCounter.issuer_id == issuer_id,
                InvoiceNumberCounter.scope_key == scope_key,
            )
        )
