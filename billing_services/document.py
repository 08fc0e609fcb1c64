"""
Invoice document model -- what an external renderer needs to draw an invoice.

Responsibility:
    Assemble an immutable InvoiceDocument from an invoice snapshot, the
    issuer's sender details and the payer snapshot.  Rendering (PDF,
    styling, storage) is NOT done here; it is delegated to a
    DocumentRenderer supplied by the application.

Architecture position:
    Services -- pure builder plus a Protocol seam.  Used by
    InvoiceLifecycleManager.build_document / generate_document.

Invariants enforced:
    - Line amounts and the total are the rounded amounts stored on the
      invoice; the document never recomputes payouts.
    - The VAT exemption note appears only when the issuer uses the
      small-business exemption.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from billing_kernel.domain.dtos import InvoiceInfo
from billing_kernel.domain.values import Money


@dataclass(frozen=True)
class PartyDetails:
    """Name and contact block for the issuer or the payer."""

    name: str
    email: str | None = None
    address: str | None = None
    phone: str | None = None
    tax_id: str | None = None
    vat_id: str | None = None
    iban: str | None = None
    bic: str | None = None


@dataclass(frozen=True)
class DocumentLine:
    title: str
    date: date
    location: str | None
    students_onsite: int
    students_online: int
    amount: Money


@dataclass(frozen=True)
class InvoiceDocument:
    """Everything printed on an invoice, in display order."""

    invoice_id: UUID
    invoice_number: str
    issue_date: date
    currency: str
    issuer: PartyDetails
    payer: PartyDetails
    lines: tuple[DocumentLine, ...]
    total: Money
    period_start: date | None = None
    period_end: date | None = None
    notes: str | None = None
    vat_exemption_note: str | None = None

    @property
    def line_count(self) -> int:
        return len(self.lines)


@runtime_checkable
class DocumentRenderer(Protocol):
    """
    Renders an InvoiceDocument and stores the result.

    Returns an opaque reference (path, URL, storage key) that is saved on
    the invoice.
    """

    def render(self, document: InvoiceDocument) -> str: ...


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def build_invoice_document(
    invoice: InvoiceInfo,
    issuer: PartyDetails,
    payer: PartyDetails,
    issue_date: date,
    small_business_exemption: bool = False,
    vat_exemption_note: str | None = None,
) -> InvoiceDocument:
    """Assemble the document for ``invoice``.  Pure."""
    lines = tuple(
        DocumentLine(
            title=line.title,
            date=line.start_time.date(),
            location=line.location,
            students_onsite=line.attendance.onsite,
            students_online=line.attendance.online,
            amount=line.amount,
        )
        for line in invoice.lines
    )
    return InvoiceDocument(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        issue_date=issue_date,
        currency=invoice.currency,
        issuer=issuer,
        payer=payer,
        lines=lines,
        total=invoice.amount_total,
        period_start=_as_date(invoice.period_start),
        period_end=_as_date(invoice.period_end),
        notes=invoice.notes,
        vat_exemption_note=vat_exemption_note if small_business_exemption else None,
    )
