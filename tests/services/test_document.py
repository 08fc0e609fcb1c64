"""Tests for the pure invoice document builder."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from billing_kernel.domain.dtos import (
    Attendance,
    InvoiceInfo,
    InvoiceLineInfo,
    InvoiceStatus,
    LifecycleState,
    PayoutStatus,
)
from billing_kernel.domain.values import Money
from billing_services.document import DocumentRenderer, PartyDetails, build_invoice_document

NOTE = "Kleinunternehmer, keine Umsatzsteuer."


def _invoice(notes=None) -> InvoiceInfo:
    start = datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc)
    lines = (
        InvoiceLineInfo(
            event_id=uuid4(),
            title="Vinyasa Flow",
            start_time=start,
            location="Flow Studio Berlin",
            attendance=Attendance(onsite=8, online=2),
            amount=Money.of("50.00", "EUR"),
            payout_status=PayoutStatus.COMPUTED,
        ),
        InvoiceLineInfo(
            event_id=uuid4(),
            title="Yin",
            start_time=start.replace(day=10),
            location=None,
            attendance=Attendance(onsite=3),
            amount=Money.of("15.00", "EUR"),
            payout_status=PayoutStatus.COMPUTED,
            has_override=True,
        ),
    )
    return InvoiceInfo(
        id=uuid4(),
        issuer_id=uuid4(),
        invoice_number="RE-2025-0007",
        payer_entity_id=uuid4(),
        payer_name="Flow Studio",
        currency="EUR",
        amount_total=Money.of("65.00", "EUR"),
        status=InvoiceStatus.DRAFT,
        lifecycle_state=LifecycleState.CREATED,
        document_stale=False,
        period_start=lines[0].start_time,
        period_end=lines[1].start_time,
        notes=notes,
        lines=lines,
    )


class TestBuildInvoiceDocument:
    def test_lines_and_totals_copied(self):
        invoice = _invoice(notes="Thanks!")
        document = build_invoice_document(
            invoice,
            issuer=PartyDetails(name="Ana Teacher", iban="DE89370400440532013000"),
            payer=PartyDetails(name="Flow Studio", email="billing@flow.de"),
            issue_date=date(2025, 3, 1),
        )

        assert document.invoice_number == "RE-2025-0007"
        assert document.line_count == 2
        assert document.lines[0].students_onsite == 8
        assert document.lines[0].students_online == 2
        assert document.lines[1].date == date(2025, 2, 10)
        assert document.total.amount == Decimal("65.00")
        assert document.period_start == date(2025, 2, 3)
        assert document.period_end == date(2025, 2, 10)
        assert document.issuer.iban == "DE89370400440532013000"
        assert document.payer.email == "billing@flow.de"
        assert document.notes == "Thanks!"

    def test_exemption_note_only_when_exempt(self):
        invoice = _invoice()
        party = PartyDetails(name="Ana Teacher")

        exempt = build_invoice_document(
            invoice, party, party, date(2025, 3, 1),
            small_business_exemption=True, vat_exemption_note=NOTE,
        )
        regular = build_invoice_document(
            invoice, party, party, date(2025, 3, 1),
            small_business_exemption=False, vat_exemption_note=NOTE,
        )
        assert exempt.vat_exemption_note == NOTE
        assert regular.vat_exemption_note is None

    def test_empty_invoice_has_no_period(self):
        invoice = _invoice()
        empty = InvoiceInfo(
            id=invoice.id,
            issuer_id=invoice.issuer_id,
            invoice_number=invoice.invoice_number,
            payer_entity_id=invoice.payer_entity_id,
            payer_name=invoice.payer_name,
            currency="EUR",
            amount_total=Money.zero("EUR"),
            status=InvoiceStatus.CANCELLED,
            lifecycle_state=LifecycleState.CREATED,
            document_stale=False,
        )
        document = build_invoice_document(
            empty, PartyDetails(name=""), PartyDetails(name="Flow Studio"), date(2025, 3, 1)
        )
        assert document.lines == ()
        assert document.period_start is None
        assert document.total.is_zero


def test_renderer_protocol_is_structural():
    class FileRenderer:
        def render(self, document):
            return f"/tmp/{document.invoice_number}.pdf"

    assert isinstance(FileRenderer(), DocumentRenderer)
    assert not isinstance(object(), DocumentRenderer)
