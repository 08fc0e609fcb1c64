"""
Invoice query selector.

Read-only access to invoices and their linked events.

Key design decisions:
- Returns InvoiceInfo / InvoiceSummaryDTO, not ORM models
- Line amounts are the rounded snapshots stored on the link rows; the
  selector never recomputes payouts
- Attendance on a line is the per-invoice override when present, else the
  event's own counts
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.domain.dtos import (
    Attendance,
    InvoiceInfo,
    InvoiceLineInfo,
    InvoiceStatus,
    LifecycleState,
    PayoutStatus,
)
from billing_kernel.domain.values import Money
from billing_kernel.models.event import Event
from billing_kernel.models.invoice import Invoice, InvoiceEventLink
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InvoiceSummaryDTO:
    """One row of an issuer's invoice list."""

    id: UUID
    invoice_number: str
    payer_entity_id: UUID
    payer_name: str
    amount_total: Decimal
    currency: str
    status: str
    document_stale: bool
    event_count: int


def effective_attendance(link: InvoiceEventLink, event: Event) -> Attendance:
    """Attendance used to price ``event`` on the invoice owning ``link``."""
    onsite = link.override_onsite if link.override_onsite is not None else event.students_onsite
    online = link.override_online if link.override_online is not None else event.students_online
    return Attendance(onsite=onsite or 0, online=online or 0)


class InvoiceSelector(BaseSelector[Invoice]):
    """Selector for invoice queries."""

    model = Invoice

    def get(self, invoice_id: UUID) -> InvoiceInfo | None:
        invoice = self._row(invoice_id)
        if invoice is None:
            return None

        rows = self.session.execute(
            select(InvoiceEventLink, Event)
            .join(Event, Event.id == InvoiceEventLink.event_id)
            .where(InvoiceEventLink.invoice_id == invoice_id)
            .order_by(Event.start_time, Event.id)
        ).all()

        lines = tuple(
            InvoiceLineInfo(
                event_id=event.id,
                title=event.title,
                start_time=event.start_time,
                location=event.location,
                attendance=effective_attendance(link, event),
                amount=Money.of(link.line_amount, invoice.currency),
                payout_status=PayoutStatus(link.payout_status),
                has_override=link.has_override,
            )
            for link, event in rows
        )

        return InvoiceInfo(
            id=invoice.id,
            issuer_id=invoice.issuer_id,
            invoice_number=invoice.invoice_number,
            payer_entity_id=invoice.payer_entity_id,
            payer_name=invoice.payer_name,
            currency=invoice.currency,
            amount_total=Money.of(invoice.amount_total, invoice.currency).round(),
            status=InvoiceStatus(invoice.status),
            lifecycle_state=LifecycleState(invoice.lifecycle_state),
            document_stale=invoice.document_stale,
            period_start=invoice.period_start,
            period_end=invoice.period_end,
            notes=invoice.notes,
            document_ref=invoice.document_ref,
            lines=lines,
        )

    def list_for_issuer(self, issuer_id: UUID) -> list[InvoiceSummaryDTO]:
        """All invoices of an issuer with their event counts, newest first."""
        counts = (
            select(
                InvoiceEventLink.invoice_id,
                func.count(InvoiceEventLink.id).label("event_count"),
            )
            .group_by(InvoiceEventLink.invoice_id)
            .subquery()
        )
        rows = self.session.execute(
            select(Invoice, func.coalesce(counts.c.event_count, 0))
            .outerjoin(counts, counts.c.invoice_id == Invoice.id)
            .where(Invoice.issuer_id == issuer_id)
            .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
        ).all()
        return [
            InvoiceSummaryDTO(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                payer_entity_id=invoice.payer_entity_id,
                payer_name=invoice.payer_name,
                amount_total=invoice.amount_total,
                currency=invoice.currency,
                status=invoice.status,
                document_stale=invoice.document_stale,
                event_count=int(event_count),
            )
            for invoice, event_count in rows
        ]

    def number_exists(self, issuer_id: UUID, invoice_number: str) -> bool:
        """True when any invoice of the issuer already uses the number."""
        found = self.session.scalar(
            select(Invoice.id).where(
                Invoice.issuer_id == issuer_id,
                Invoice.invoice_number == invoice_number,
            )
        )
        return found is not None
