"""
InvoiceLifecycleManager -- create, edit, delete and document invoices.

Responsibility:
    Orchestrates the invoice lifecycle: validate events, price them with
    the payout engine, reserve a number, persist the invoice and its event
    links, and keep totals, the period and the document-stale flag current
    on every edit.

Architecture position:
    Services -- imperative shell.  Calls billing_engines.payout for pricing,
    InvoiceNumberingService for numbers, selectors for reads.
    Owns the transaction boundary: every public operation commits on
    success and rolls back on failure.

    Lifecycle (``lifecycle_state``)::

        created --edit--> edited --generate_document--> document_generated
           |                                                  |
           +-------------------generate_document--------------+
                                     <--edit--

    Payment status (``status``) is orthogonal.  ``paid`` and ``cancelled``
    lock the invoice against edits and deletion.

Invariants enforced:
    - An event is linked to at most one invoice (unique constraint on the
      link table; a concurrent double link is reported as a conflict).
    - amount_total == sum of the rounded line amounts.
    - period_start/period_end == min/max start time of the linked events.
    - Every edit sets document_stale until the document is regenerated.
    - A reserved number is never reused; if the invoice write fails the
      number is voided and a retry reserves a new one.

Failure modes:
    - InvoiceNotFoundError / EntityNotFoundError / EventNotFoundError.
    - InvoiceLockedError on edits of paid or cancelled invoices.
    - LinkConflictError listing every rejected event (ABORT policy, or when
      nothing is left to invoice).
    - DuplicateInvoiceNumberError on a manual number already in use.
    - NumberReservationFailedError once reservation retries are exhausted.
    - InvalidStatusTransitionError for disallowed status changes.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_engines.payout import compute_payout, rate_source_for, round_line
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    Attendance,
    ConflictPolicy,
    EventRejection,
    InvoiceInfo,
    InvoiceStatus,
    LifecycleState,
    PayoutStatus,
    RejectionReason,
)
from billing_kernel.domain.values import Money
from billing_kernel.exceptions import (
    CurrencyMismatchError,
    DuplicateInvoiceNumberError,
    EntityNotFoundError,
    EventNotFoundError,
    InvalidStatusTransitionError,
    InvoiceLockedError,
    InvoiceNotFoundError,
    LinkConflictError,
    NumberReservationFailedError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.billing_entity import BillingEntity
from billing_kernel.models.event import Event
from billing_kernel.models.invoice import Invoice, InvoiceEventLink
from billing_kernel.models.issuer_settings import IssuerSettings
from billing_kernel.selectors.entity_selector import EntitySelector
from billing_kernel.selectors.event_selector import EventSelector, event_to_info
from billing_kernel.selectors.invoice_selector import (
    InvoiceSelector,
    InvoiceSummaryDTO,
    effective_attendance,
)
from billing_services.document import (
    DocumentRenderer,
    InvoiceDocument,
    PartyDetails,
    build_invoice_document,
)
from billing_services.numbering import InvoiceNumberingService, ReservedNumber

logger = get_logger("services.invoice_lifecycle")

_UNSET: Any = object()

_LINK_CONSTRAINT_MARKERS = ("uq_invoice_link_event", "invoice_event_links.event_id")
_NUMBER_CONSTRAINT_MARKERS = (
    "uq_invoice_issuer_number",
    "invoices.issuer_id, invoices.invoice_number",
)

_ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset(
        {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.SENT: frozenset(
        {
            InvoiceStatus.DRAFT,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        }
    ),
    InvoiceStatus.OVERDUE: frozenset(
        {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    # Undo of an accidental "paid"
    InvoiceStatus.PAID: frozenset({InvoiceStatus.SENT, InvoiceStatus.OVERDUE}),
    # Links are released on cancel; there is nothing to reopen
    InvoiceStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class InvoiceOperationResult:
    """
    Outcome of a lifecycle operation.

    ``rejections`` lists events left out under the SKIP policy.
    ``no_rate_event_ids`` lists linked events priced at zero because no
    rate is configured.  ``document_stale`` is informational: the stored
    document no longer reflects the invoice.
    """

    invoice: InvoiceInfo | None
    rejections: tuple[EventRejection, ...] = ()
    no_rate_event_ids: tuple[UUID, ...] = ()
    document_stale: bool = False

    @property
    def has_rejections(self) -> bool:
        return bool(self.rejections)

    @property
    def has_missing_rates(self) -> bool:
        return bool(self.no_rate_event_ids)


def _violates(exc: IntegrityError, markers: Sequence[str]) -> bool:
    text = str(exc.orig)
    return any(marker in text for marker in markers)


class InvoiceLifecycleManager:
    """
    Orchestrates invoice operations through engines, numbering and kernel.

    Transaction boundary: this service commits on success and rolls back on
    failure.  Number reservation commits separately (see
    InvoiceNumberingService), so the session must not carry uncommitted
    writes when ``create_invoice`` is called.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        numbering: InvoiceNumberingService | None = None,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._actor_id = actor_id
        self._config = config or BillingConfig()
        self._clock = clock or SystemClock()
        self._numbering = numbering or InvoiceNumberingService(
            config=self._config, clock=self._clock
        )
        self._entities = EntitySelector(session)
        self._events = EventSelector(session)
        self._invoices = InvoiceSelector(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        info = self._invoices.get(invoice_id)
        if info is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return info

    def list_invoices(self, issuer_id: UUID) -> list[InvoiceSummaryDTO]:
        return self._invoices.list_for_issuer(issuer_id)

    def assert_editable(self, invoice_id: UUID) -> None:
        """
        Raises:
            InvoiceNotFoundError: Unknown invoice.
            InvoiceLockedError: Invoice is paid or cancelled.
        """
        self._assert_editable(self._load_invoice(invoice_id))

    # =========================================================================
    # Create
    # =========================================================================

    def create_invoice(
        self,
        issuer_id: UUID,
        payer_entity_id: UUID,
        event_ids: Sequence[UUID],
        notes: str | None = None,
        attendance_overrides: Mapping[UUID, Attendance] | None = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.ABORT,
    ) -> InvoiceOperationResult:
        """
        Create an invoice for ``event_ids`` billed to ``payer_entity_id``.

        With ABORT every rejection is reported in one LinkConflictError
        before any number is reserved.  With SKIP the acceptable subset is
        invoiced and the rejections are returned.

        Raises:
            ValueError: If ``event_ids`` is empty.
            EntityNotFoundError: Unknown payer.
            LinkConflictError: Rejected events under ABORT, or none left.
            NumberReservationFailedError: Reservation retries exhausted.
        """
        wanted = list(dict.fromkeys(event_ids))
        if not wanted:
            raise ValueError("An invoice needs at least one event")
        overrides = dict(attendance_overrides or {})
        number_attempts = 0

        with LogContext.bind(issuer_id=str(issuer_id), actor_id=str(self._actor_id)):
            try:
                payer = self._load_payer(issuer_id, payer_entity_id)

                while True:
                    accepted, rejections = self._validate_events(issuer_id, payer, wanted)
                    if not accepted or (
                        rejections and conflict_policy == ConflictPolicy.ABORT
                    ):
                        logger.info(
                            "invoice_create_rejected",
                            extra={
                                "payer_entity_id": str(payer_entity_id),
                                "rejected_count": len(rejections),
                            },
                        )
                        raise LinkConflictError(tuple(rejections))

                    reserved = self._reserve_number(issuer_id, payer.entity_name)
                    number_attempts += 1
                    try:
                        invoice, no_rate = self._insert_invoice(
                            payer, reserved, accepted, overrides, notes
                        )
                    except IntegrityError as exc:
                        self._release_number(reserved)
                        if _violates(exc, _LINK_CONSTRAINT_MARKERS):
                            # Linked concurrently; revalidation reports it
                            logger.warning(
                                "invoice_create_link_race",
                                extra={"invoice_number": reserved.number},
                            )
                            continue
                        if (
                            _violates(exc, _NUMBER_CONSTRAINT_MARKERS)
                            and number_attempts < self._config.retry.max_attempts
                        ):
                            continue
                        raise
                    except Exception:
                        self._release_number(reserved)
                        raise
                    break
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "invoice_created",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "event_count": len(accepted),
                    "skipped_count": len(rejections),
                    "amount_total": str(invoice.amount_total),
                },
            )

        return InvoiceOperationResult(
            invoice=self.get_invoice(invoice.id),
            rejections=tuple(rejections),
            no_rate_event_ids=tuple(no_rate),
            document_stale=False,
        )

    def _insert_invoice(
        self,
        payer: BillingEntity,
        reserved: ReservedNumber,
        events: list[Event],
        overrides: dict[UUID, Attendance],
        notes: str | None,
    ) -> tuple[Invoice, list[UUID]]:
        invoice = Invoice(
            issuer_id=payer.issuer_id,
            invoice_number=reserved.number,
            sequence_value=reserved.sequence_value,
            fiscal_year=reserved.fiscal_year,
            payer_entity_id=payer.id,
            payer_name=payer.entity_name,
            payer_email=payer.billing_email or payer.recipient_email,
            payer_address=payer.address,
            currency=payer.currency,
            notes=notes,
            status=InvoiceStatus.DRAFT.value,
            lifecycle_state=LifecycleState.CREATED.value,
            document_stale=False,
            created_by_id=self._actor_id,
        )
        self._session.add(invoice)
        self._session.flush()

        pairs: list[tuple[InvoiceEventLink, Event]] = []
        for event in events:
            link = InvoiceEventLink(
                invoice_id=invoice.id,
                event_id=event.id,
                created_by_id=self._actor_id,
            )
            self._apply_override(link, overrides.get(event.id))
            self._session.add(link)
            pairs.append((link, event))

        no_rate = self._reprice(invoice, pairs)
        self._session.flush()
        self._numbering.mark_issued(
            self._session, invoice.issuer_id, invoice.invoice_number, invoice.id, self._actor_id
        )
        self._session.commit()
        return invoice, no_rate

    # =========================================================================
    # Update
    # =========================================================================

    def update_invoice(
        self,
        invoice_id: UUID,
        event_ids: Sequence[UUID] | None = None,
        attendance_overrides: Mapping[UUID, Attendance | None] | None = None,
        notes: Any = _UNSET,
        invoice_number: str | None = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.ABORT,
    ) -> InvoiceOperationResult:
        """
        Edit an invoice.

        ``event_ids`` is the full desired set: events not in it are
        unlinked, new ones are linked.  Overrides map event id to an
        Attendance (None clears).  Totals and the period are recomputed and
        the document is marked stale.  Repeating the same call changes
        nothing.
        """
        while True:
            try:
                result = self._apply_update(
                    invoice_id,
                    event_ids,
                    attendance_overrides,
                    notes,
                    invoice_number,
                    conflict_policy,
                )
            except IntegrityError as exc:
                self._session.rollback()
                if _violates(exc, _LINK_CONSTRAINT_MARKERS):
                    logger.warning(
                        "invoice_update_link_race",
                        extra={"invoice_id": str(invoice_id)},
                    )
                    continue
                if invoice_number is not None and _violates(exc, _NUMBER_CONSTRAINT_MARKERS):
                    invoice = self._load_invoice(invoice_id)
                    raise DuplicateInvoiceNumberError(
                        str(invoice.issuer_id), invoice_number.strip()
                    ) from exc
                raise
            except Exception:
                self._session.rollback()
                raise
            return result

    def _apply_update(
        self,
        invoice_id: UUID,
        event_ids: Sequence[UUID] | None,
        attendance_overrides: Mapping[UUID, Attendance | None] | None,
        notes: Any,
        invoice_number: str | None,
        conflict_policy: ConflictPolicy,
    ) -> InvoiceOperationResult:
        invoice = self._load_invoice(invoice_id)
        self._assert_editable(invoice)

        current = {event.id: link for link, event in self._linked_pairs(invoice.id)}
        rejections: list[EventRejection] = []
        changed = False
        added = removed = 0

        if event_ids is not None:
            desired = list(dict.fromkeys(event_ids))
            desired_set = set(desired)
            to_add = [eid for eid in desired if eid not in current]
            to_remove = [eid for eid in current if eid not in desired_set]

            payer = self._load_payer(invoice.issuer_id, invoice.payer_entity_id)
            accepted, rejections = self._validate_events(
                invoice.issuer_id, payer, to_add, invoice_id=invoice.id
            )
            if rejections and conflict_policy == ConflictPolicy.ABORT:
                raise LinkConflictError(tuple(rejections), invoice_id=str(invoice.id))

            for eid in to_remove:
                self._session.delete(current.pop(eid))
            for event in accepted:
                link = InvoiceEventLink(
                    invoice_id=invoice.id,
                    event_id=event.id,
                    created_by_id=self._actor_id,
                )
                self._session.add(link)
                current[event.id] = link
            added, removed = len(accepted), len(to_remove)
            changed = changed or bool(added or removed)

        rejected_ids = {r.event_id for r in rejections}
        for eid, attendance in (attendance_overrides or {}).items():
            link = current.get(eid)
            if link is None:
                if eid in rejected_ids:
                    continue
                raise EventNotFoundError(str(eid))
            changed = self._apply_override(link, attendance) or changed

        if notes is not _UNSET and notes != invoice.notes:
            invoice.notes = notes
            changed = True

        if invoice_number is not None and invoice_number.strip() != invoice.invoice_number:
            self._renumber(invoice, invoice_number.strip())
            changed = True

        if changed:
            self._session.flush()
            no_rate = self._reprice(invoice, self._linked_pairs(invoice.id))
            invoice.document_stale = True
            invoice.lifecycle_state = LifecycleState.EDITED.value
            invoice.updated_by_id = self._actor_id
            self._session.flush()
        else:
            no_rate = [
                link.event_id
                for link in current.values()
                if link.payout_status == PayoutStatus.NO_RATE_CONFIGURED.value
            ]
        self._session.commit()

        if changed:
            logger.info(
                "invoice_updated",
                extra={
                    "invoice_id": str(invoice.id),
                    "added_count": added,
                    "removed_count": removed,
                    "skipped_count": len(rejections),
                    "amount_total": str(invoice.amount_total),
                },
            )

        return InvoiceOperationResult(
            invoice=self.get_invoice(invoice.id),
            rejections=tuple(rejections),
            no_rate_event_ids=tuple(sorted(no_rate, key=str)),
            document_stale=invoice.document_stale,
        )

    def set_attendance_override(
        self,
        invoice_id: UUID,
        event_id: UUID,
        onsite: int,
        online: int = 0,
    ) -> InvoiceOperationResult:
        """
        Price ``event_id`` on this invoice with the given attendance.  The
        event's own counts are left untouched.
        """
        return self.update_invoice(
            invoice_id,
            attendance_overrides={event_id: Attendance(onsite=onsite, online=online)},
        )

    def clear_attendance_override(
        self,
        invoice_id: UUID,
        event_id: UUID,
    ) -> InvoiceOperationResult:
        return self.update_invoice(invoice_id, attendance_overrides={event_id: None})

    def _renumber(self, invoice: Invoice, new_number: str) -> None:
        if not new_number:
            raise ValueError("Invoice number must not be blank")
        if self._numbering.is_number_taken(invoice.issuer_id, new_number, session=self._session):
            raise DuplicateInvoiceNumberError(str(invoice.issuer_id), new_number)

        old_number = invoice.invoice_number
        invoice.invoice_number = new_number
        invoice.sequence_value = None
        self._session.flush()
        self._numbering.void(
            invoice.issuer_id, old_number, session=self._session, actor_id=self._actor_id
        )
        self._numbering.mark_issued(
            self._session, invoice.issuer_id, new_number, invoice.id, self._actor_id
        )
        logger.info(
            "invoice_renumbered",
            extra={
                "invoice_id": str(invoice.id),
                "old_number": old_number,
                "new_number": new_number,
            },
        )

    # =========================================================================
    # Delete and status
    # =========================================================================

    def delete_invoice(self, invoice_id: UUID) -> InvoiceOperationResult:
        """
        Delete an editable invoice and release its events.

        The number is voided in the ledger and never handed out again.
        """
        try:
            invoice = self._load_invoice(invoice_id)
            self._assert_editable(invoice)
            snapshot = self.get_invoice(invoice_id)

            for link, _ in self._linked_pairs(invoice.id):
                self._session.delete(link)
            self._session.flush()
            self._numbering.void(
                invoice.issuer_id,
                invoice.invoice_number,
                session=self._session,
                actor_id=self._actor_id,
            )
            self._session.delete(invoice)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "invoice_deleted",
            extra={
                "invoice_id": str(invoice_id),
                "invoice_number": snapshot.invoice_number,
                "released_count": len(snapshot.lines),
            },
        )
        return InvoiceOperationResult(invoice=snapshot)

    def set_status(
        self,
        invoice_id: UUID,
        status: InvoiceStatus | str,
    ) -> InvoiceOperationResult:
        """
        Change the payment status.

        ``sent`` and ``paid`` stamp ``sent_at`` / ``paid_at``.  ``cancelled``
        releases the event links so the events can be invoiced again; the
        number stays consumed.

        Raises:
            InvalidStatusTransitionError: Transition not allowed.
        """
        target = InvoiceStatus(status)
        try:
            invoice = self._load_invoice(invoice_id)
            current = InvoiceStatus(invoice.status)
            released = 0

            if target != current:
                if target not in _ALLOWED_TRANSITIONS[current]:
                    raise InvalidStatusTransitionError(
                        str(invoice_id), current.value, target.value
                    )
                now = self._clock.now()
                if target == InvoiceStatus.SENT:
                    invoice.sent_at = invoice.sent_at or now
                if target == InvoiceStatus.PAID:
                    invoice.paid_at = now
                elif current == InvoiceStatus.PAID:
                    invoice.paid_at = None
                if target == InvoiceStatus.CANCELLED:
                    for link, _ in self._linked_pairs(invoice.id):
                        self._session.delete(link)
                        released += 1
                invoice.status = target.value
                invoice.updated_by_id = self._actor_id
                self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        if target != current:
            logger.info(
                "invoice_status_changed",
                extra={
                    "invoice_id": str(invoice_id),
                    "from_status": current.value,
                    "to_status": target.value,
                    "released_count": released,
                },
            )
        info = self.get_invoice(invoice_id)
        return InvoiceOperationResult(invoice=info, document_stale=info.document_stale)

    # =========================================================================
    # Documents
    # =========================================================================

    def build_document(self, invoice_id: UUID) -> InvoiceDocument:
        """Document model for the external renderer."""
        invoice = self._load_invoice(invoice_id)
        info = self.get_invoice(invoice_id)
        settings = self._session.scalars(
            select(IssuerSettings).where(IssuerSettings.issuer_id == invoice.issuer_id)
        ).first()

        if settings is not None:
            issuer = PartyDetails(
                name=settings.full_name or "",
                email=settings.email,
                address=settings.address,
                phone=settings.phone,
                tax_id=settings.tax_id,
                vat_id=settings.vat_id,
                iban=settings.iban,
                bic=settings.bic,
            )
        else:
            issuer = PartyDetails(name="")

        payer = PartyDetails(
            name=invoice.payer_name,
            email=invoice.payer_email,
            address=invoice.payer_address,
        )
        issued_at = invoice.sent_at or invoice.created_at or self._clock.now()

        return build_invoice_document(
            info,
            issuer=issuer,
            payer=payer,
            issue_date=issued_at.date(),
            small_business_exemption=bool(settings and settings.small_business_exemption),
            vat_exemption_note=self._config.document.vat_exemption_note,
        )

    def generate_document(
        self,
        invoice_id: UUID,
        renderer: DocumentRenderer,
    ) -> InvoiceOperationResult:
        """Render the document, store its reference and clear the stale flag."""
        try:
            document = self.build_document(invoice_id)
            reference = renderer.render(document)

            invoice = self._load_invoice(invoice_id)
            invoice.document_ref = reference
            invoice.document_stale = False
            invoice.document_generated_at = self._clock.now()
            invoice.lifecycle_state = LifecycleState.DOCUMENT_GENERATED.value
            invoice.updated_by_id = self._actor_id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "document_generated",
            extra={
                "invoice_id": str(invoice_id),
                "invoice_number": document.invoice_number,
                "line_count": document.line_count,
            },
        )
        return InvoiceOperationResult(invoice=self.get_invoice(invoice_id))

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self._session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def _load_payer(self, issuer_id: UUID, payer_entity_id: UUID) -> BillingEntity:
        payer = self._session.get(BillingEntity, payer_entity_id)
        if payer is None or payer.issuer_id != issuer_id:
            raise EntityNotFoundError(str(payer_entity_id))
        return payer

    @staticmethod
    def _assert_editable(invoice: Invoice) -> None:
        status = InvoiceStatus(invoice.status)
        if status.is_locked:
            raise InvoiceLockedError(str(invoice.id), status.value)

    def _linked_pairs(self, invoice_id: UUID) -> list[tuple[InvoiceEventLink, Event]]:
        rows = self._session.execute(
            select(InvoiceEventLink, Event)
            .join(Event, Event.id == InvoiceEventLink.event_id)
            .where(InvoiceEventLink.invoice_id == invoice_id)
            .order_by(Event.start_time, Event.id)
        ).all()
        return [(link, event) for link, event in rows]

    def _validate_events(
        self,
        issuer_id: UUID,
        payer: BillingEntity,
        event_ids: Sequence[UUID],
        invoice_id: UUID | None = None,
    ) -> tuple[list[Event], list[EventRejection]]:
        """Split ``event_ids`` into linkable events and per-event rejections."""
        if not event_ids:
            return [], []

        found = {
            event.id: event
            for event in self._session.scalars(
                select(Event).where(Event.id.in_(set(event_ids)))
            ).all()
        }
        linked = self._events.linked_invoice_ids(list(event_ids))
        sources = self._entities.get_many(
            [rate_source_for(event_to_info(e)) for e in found.values()]
        )

        accepted: list[Event] = []
        rejections: list[EventRejection] = []
        for event_id in event_ids:
            event = found.get(event_id)
            if event is None or event.issuer_id != issuer_id:
                rejections.append(EventRejection(event_id, RejectionReason.NOT_FOUND))
                continue
            linked_to = linked.get(event_id)
            if linked_to is not None and linked_to != invoice_id:
                rejections.append(
                    EventRejection(event_id, RejectionReason.ALREADY_LINKED, linked_to)
                )
                continue
            if event.billing_entity_id != payer.id:
                rejections.append(EventRejection(event_id, RejectionReason.PAYER_MISMATCH))
                continue
            source = sources.get(rate_source_for(event_to_info(event)))
            if source is not None and source.currency != payer.currency:
                rejections.append(
                    EventRejection(event_id, RejectionReason.CURRENCY_MISMATCH)
                )
                continue
            accepted.append(event)
        return accepted, rejections

    @staticmethod
    def _apply_override(link: InvoiceEventLink, attendance: Attendance | None) -> bool:
        """Set (or with None clear) the per-invoice attendance; True if changed."""
        onsite = attendance.onsite if attendance is not None else None
        online = attendance.online if attendance is not None else None
        if link.override_onsite == onsite and link.override_online == online:
            return False
        link.override_onsite = onsite
        link.override_online = online
        return True

    def _reprice(
        self,
        invoice: Invoice,
        pairs: list[tuple[InvoiceEventLink, Event]],
    ) -> list[UUID]:
        """
        Price every linked event, store rounded line amounts, and set the
        total and period.  Returns the ids of events with no rate.
        """
        infos = {event.id: event_to_info(event) for _, event in pairs}
        sources = self._entities.get_many(
            [rate_source_for(info) for info in infos.values()]
        )

        total = Money.zero(invoice.currency)
        no_rate: list[UUID] = []
        for link, event in pairs:
            source_id = rate_source_for(infos[event.id])
            source = sources.get(source_id)
            if source is not None and source.currency != invoice.currency:
                raise CurrencyMismatchError(invoice.currency, source.currency, str(event.id))

            payout = compute_payout(
                effective_attendance(link, event),
                source.rate_config if source is not None else None,
                invoice.currency,
            )
            amount = round_line(payout)
            link.line_amount = amount.amount
            link.payout_status = payout.status.value
            link.rate_source_entity_id = source_id
            total = total + amount
            if not payout.has_rate:
                no_rate.append(event.id)

        invoice.amount_total = total.amount
        starts = [event.start_time for _, event in pairs]
        invoice.period_start = min(starts) if starts else None
        invoice.period_end = max(starts) if starts else None
        return sorted(no_rate, key=str)

    def _reserve_number(self, issuer_id: UUID, payer_name: str) -> ReservedNumber:
        """Reserve a number, retrying transient failures with backoff."""
        retry = self._config.retry
        for attempt in range(retry.max_attempts):
            try:
                return self._numbering.next_number(
                    issuer_id, payer_name=payer_name, actor_id=self._actor_id
                )
            except NumberReservationFailedError as exc:
                if attempt < retry.max_attempts - 1:
                    logger.warning(
                        "number_reservation_retry",
                        extra={
                            "attempt": attempt + 1,
                            "max_attempts": retry.max_attempts,
                            "reason": exc.reason,
                        },
                    )
                    time.sleep(retry.backoff_seconds * (attempt + 1))
                else:
                    raise NumberReservationFailedError(
                        str(issuer_id), exc.reason, attempts=retry.max_attempts
                    ) from exc
        raise NumberReservationFailedError(str(issuer_id), "no attempts configured", 0)

    def _release_number(self, reserved: ReservedNumber) -> None:
        """Roll back the failed invoice write and void its consumed number."""
        self._session.rollback()
        self._numbering.void(reserved.issuer_id, reserved.number, actor_id=self._actor_id)
