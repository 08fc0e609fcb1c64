"""
Event query selector.

Provides read-only access to calendar events from a billing perspective.

Key design decisions:
- Returns EventInfo DTOs, not ORM models
- Uses the caller's Session
- "Linked" always means "has a row in invoice_event_links"; events carry no
  invoice pointer of their own
- Unmatched and ambiguous events are queryable so they are never silently
  dropped from billing
"""

from collections import defaultdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select

from billing_kernel.domain.dtos import (
    Attendance,
    EventInfo,
    EventStatus,
    InvoiceType,
)
from billing_kernel.models.event import Event
from billing_kernel.models.invoice import InvoiceEventLink
from billing_kernel.selectors.base import BaseSelector


def event_to_info(event: Event) -> EventInfo:
    """Convert ORM model to DTO."""
    return EventInfo(
        id=event.id,
        issuer_id=event.issuer_id,
        title=event.title,
        start_time=event.start_time,
        end_time=event.end_time,
        location=event.location,
        attendance=Attendance(
            onsite=event.students_onsite or 0,
            online=event.students_online or 0,
        ),
        billing_entity_id=event.billing_entity_id,
        rate_source_entity_id=event.rate_source_entity_id,
        invoice_type=InvoiceType(event.invoice_type),
        use_payee_rate=event.use_payee_rate,
        exclude_from_matching=event.exclude_from_matching,
        match_ambiguous=event.match_ambiguous,
        matched_pattern=event.matched_pattern,
        substitute_notes=event.substitute_notes,
        status=EventStatus(event.status),
        tag_slugs=tuple(event.tag_slugs or ()),
    )


def _not_linked():
    linked = select(InvoiceEventLink.event_id)
    return Event.id.not_in(linked)


class EventSelector(BaseSelector[Event]):
    """Selector for billing-related event queries."""

    model = Event

    def get(self, event_id: UUID) -> EventInfo | None:
        event = self._row(event_id)
        return event_to_info(event) if event is not None else None

    def linked_invoice_ids(self, event_ids: list[UUID]) -> dict[UUID, UUID]:
        """Map event id -> invoice id for those events that are linked."""
        if not event_ids:
            return {}
        rows = self.session.execute(
            select(InvoiceEventLink.event_id, InvoiceEventLink.invoice_id).where(
                InvoiceEventLink.event_id.in_(set(event_ids))
            )
        ).all()
        return {event_id: invoice_id for event_id, invoice_id in rows}

    def uninvoiced(
        self,
        issuer_id: UUID,
        ended_before: datetime | None = None,
    ) -> list[EventInfo]:
        """
        Confirmed events with a payee that are not on any invoice.

        Excluded events only count when they were redirected to a substitute
        (redirection excludes them from matching, not from billing).
        """
        stmt = select(Event).where(
            Event.issuer_id == issuer_id,
            Event.status == EventStatus.CONFIRMED.value,
            Event.billing_entity_id.is_not(None),
            or_(
                Event.exclude_from_matching.is_(False),
                Event.invoice_type == InvoiceType.TEACHER_INVOICE.value,
            ),
            _not_linked(),
        )
        if ended_before is not None:
            stmt = stmt.where(Event.end_time < ended_before)
        rows = self.session.scalars(stmt.order_by(Event.start_time, Event.id)).all()
        return [event_to_info(row) for row in rows]

    def uninvoiced_by_payee(
        self,
        issuer_id: UUID,
        ended_before: datetime | None = None,
    ) -> dict[UUID, list[EventInfo]]:
        """Uninvoiced events grouped by payee entity id."""
        grouped: dict[UUID, list[EventInfo]] = defaultdict(list)
        for event in self.uninvoiced(issuer_id, ended_before=ended_before):
            grouped[event.billing_entity_id].append(event)
        return dict(grouped)

    def unmatched(self, issuer_id: UUID) -> list[EventInfo]:
        """Confirmed, not excluded, unlinked events with no payee."""
        rows = self.session.scalars(
            select(Event)
            .where(
                Event.issuer_id == issuer_id,
                Event.status == EventStatus.CONFIRMED.value,
                Event.billing_entity_id.is_(None),
                Event.exclude_from_matching.is_(False),
                _not_linked(),
            )
            .order_by(Event.start_time, Event.id)
        ).all()
        return [event_to_info(row) for row in rows]

    def ambiguous(self, issuer_id: UUID) -> list[EventInfo]:
        """Events whose studio was picked among several matching studios."""
        rows = self.session.scalars(
            select(Event)
            .where(
                Event.issuer_id == issuer_id,
                Event.status == EventStatus.CONFIRMED.value,
                Event.match_ambiguous.is_(True),
                Event.invoice_type == InvoiceType.STUDIO_INVOICE.value,
            )
            .order_by(Event.start_time, Event.id)
        ).all()
        return [event_to_info(row) for row in rows]

    def excluded(self, issuer_id: UUID) -> list[EventInfo]:
        """Events the user excluded from matching (not redirected ones)."""
        rows = self.session.scalars(
            select(Event)
            .where(
                Event.issuer_id == issuer_id,
                Event.exclude_from_matching.is_(True),
                Event.invoice_type == InvoiceType.STUDIO_INVOICE.value,
            )
            .order_by(Event.start_time, Event.id)
        ).all()
        return [event_to_info(row) for row in rows]

    def substitute_events(self, issuer_id: UUID) -> list[EventInfo]:
        """Events billed to a substitute teacher."""
        rows = self.session.scalars(
            select(Event)
            .where(
                Event.issuer_id == issuer_id,
                Event.invoice_type == InvoiceType.TEACHER_INVOICE.value,
            )
            .order_by(Event.start_time, Event.id)
        ).all()
        return [event_to_info(row) for row in rows]

    def distinct_locations(self, issuer_id: UUID) -> list[str]:
        """Distinct non-blank event locations, sorted (for pattern preview)."""
        rows = self.session.scalars(
            select(Event.location)
            .where(
                and_(
                    Event.issuer_id == issuer_id,
                    Event.location.is_not(None),
                )
            )
            .distinct()
        ).all()
        return sorted({loc.strip() for loc in rows if loc and loc.strip()})
