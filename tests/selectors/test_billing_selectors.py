"""Tests for event, entity and invoice selectors."""

from datetime import timedelta
from uuid import uuid4

from billing_kernel.domain.dtos import Attendance, EntityType, InvoiceType
from billing_kernel.models.event import Event
from billing_kernel.models.invoice import InvoiceEventLink
from billing_kernel.selectors.entity_selector import EntitySelector
from billing_kernel.selectors.event_selector import EventSelector
from billing_kernel.selectors.invoice_selector import effective_attendance
from tests.conftest import BASE_EVENT_TIME, PER_STUDENT_5


class TestEffectiveAttendance:
    def test_event_counts_without_override(self):
        event = Event(students_onsite=8, students_online=2)
        link = InvoiceEventLink()
        assert effective_attendance(link, event) == Attendance(onsite=8, online=2)

    def test_override_per_field(self):
        event = Event(students_onsite=8, students_online=2)
        link = InvoiceEventLink(override_onsite=3)
        assert effective_attendance(link, event) == Attendance(onsite=3, online=2)

    def test_missing_counts_are_zero(self):
        event = Event(students_onsite=None, students_online=None)
        assert effective_attendance(InvoiceEventLink(), event) == Attendance()


class TestUninvoiced:
    def test_lists_confirmed_unlinked_events_with_payee(
        self, session, lifecycle, issuer_id, create_studio, create_event
    ):
        studio = create_studio(rate_config=PER_STUDENT_5)
        invoiced = create_event(onsite=2, payee=studio)
        open_event = create_event(onsite=2, payee=studio)
        create_event(onsite=2, payee=studio, status="cancelled")
        create_event(onsite=2)  # unmatched
        create_event(onsite=2, payee=studio, exclude_from_matching=True)
        lifecycle.create_invoice(issuer_id, studio.id, [invoiced.id])

        uninvoiced = EventSelector(session).uninvoiced(issuer_id)
        assert [e.id for e in uninvoiced] == [open_event.id]

    def test_redirected_events_still_billable(
        self, session, resolver, issuer_id, create_studio, create_teacher, create_event
    ):
        studio = create_studio(rate_config=PER_STUDENT_5)
        teacher = create_teacher()
        event = create_event(onsite=2, payee=studio)
        resolver.redirect_to_substitute(event.id, teacher.id)

        grouped = EventSelector(session).uninvoiced_by_payee(issuer_id)
        assert list(grouped) == [teacher.id]
        assert grouped[teacher.id][0].invoice_type == InvoiceType.TEACHER_INVOICE

        substitutes = EventSelector(session).substitute_events(issuer_id)
        assert [e.id for e in substitutes] == [event.id]
        assert EventSelector(session).excluded(issuer_id) == []

    def test_ended_before(self, session, issuer_id, create_studio, create_event):
        studio = create_studio()
        early = create_event(payee=studio)
        create_event(payee=studio)

        cutoff = BASE_EVENT_TIME + timedelta(hours=12)
        assert [e.id for e in EventSelector(session).uninvoiced(issuer_id, cutoff)] == [early.id]


class TestEventLookups:
    def test_linked_invoice_ids(self, session, lifecycle, issuer_id, create_studio, create_event):
        studio = create_studio(rate_config=PER_STUDENT_5)
        linked = create_event(onsite=1, payee=studio)
        free = create_event(onsite=1, payee=studio)
        invoice = lifecycle.create_invoice(issuer_id, studio.id, [linked.id]).invoice

        mapping = EventSelector(session).linked_invoice_ids([linked.id, free.id, uuid4()])
        assert mapping == {linked.id: invoice.id}
        assert EventSelector(session).linked_invoice_ids([]) == {}

    def test_get_unknown_event(self, session):
        assert EventSelector(session).get(uuid4()) is None


class TestEntitySelector:
    def test_lists_by_type_and_name(self, session, issuer_id, create_studio, create_teacher):
        create_studio("Yogaloft")
        create_studio("Flow Studio")
        create_studio("Elsewhere", issuer=uuid4())
        create_teacher("Mara")

        studios = EntitySelector(session).list_studios(issuer_id)
        assert [s.entity_name for s in studios] == ["Flow Studio", "Yogaloft"]
        assert all(s.entity_type == EntityType.STUDIO for s in studios)
        assert [t.entity_name for t in EntitySelector(session).list_teachers(issuer_id)] == ["Mara"]

    def test_get_many_skips_unknown(self, session, create_studio):
        studio = create_studio()
        found = EntitySelector(session).get_many([studio.id, uuid4(), None])
        assert list(found) == [studio.id]
