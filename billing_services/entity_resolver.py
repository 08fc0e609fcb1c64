"""
EntityResolver -- attribute calendar events to billing entities.

Responsibility:
    Resolve each event's payee from studio location patterns, keep those
    assignments current on rematch, and redirect single events to a
    substitute teacher (and back) while preserving the studio as the rate
    source.

Architecture position:
    Services -- imperative shell.  ``resolve_entity`` is a pure function
    over DTOs; EntityResolver loads events and studios, applies resolutions
    and owns the transaction boundary (commit on success, rollback on
    failure).

Invariants enforced:
    - Empty locations never match.
    - Several matching studios resolve deterministically (longest matched
      pattern, then entity name, then id) and the event is flagged
      ambiguous; it is never silently dropped.
    - Rematch only touches events that are not excluded, not redirected and
      not linked to an invoice, and only writes where the result differs.
      Running it twice changes nothing the second time.
    - Redirection changes the payee only; the studio stays the rate source.

Failure modes:
    - EventNotFoundError / EntityNotFoundError for unknown ids.
    - InvalidEntityTypeError when redirecting to a non-teacher.
    - NotRedirectedError when reverting an event that is not redirected.
    - LinkConflictError when redirecting or reverting an invoiced event.
    - Rematch collects per-event failures in RematchResult.failures.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_engines.patterns import PatternEntry, TagRuleEntry, match_owners, match_tags
from billing_kernel.domain.dtos import (
    BillingEntityInfo,
    EventInfo,
    EventRejection,
    EventStatus,
    InvoiceType,
    RejectionReason,
)
from billing_kernel.exceptions import (
    EntityNotFoundError,
    EventNotFoundError,
    InvalidEntityTypeError,
    LinkConflictError,
    NotRedirectedError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.billing_entity import BillingEntity, BillingEntityType
from billing_kernel.models.event import Event
from billing_kernel.models.tag_rule import TagRule
from billing_kernel.selectors.entity_selector import EntitySelector
from billing_kernel.selectors.event_selector import EventSelector, event_to_info
from billing_services.entity_registry import EntityRegistry

logger = get_logger("services.entity_resolver")


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of resolving one event.

    ``entity_id`` is None for an unmatched event.  ``candidate_ids`` lists
    every matching studio when the match was ambiguous.
    """

    entity_id: UUID | None = None
    entity_name: str | None = None
    pattern: str | None = None
    ambiguous: bool = False
    candidate_ids: tuple[UUID, ...] = ()

    @property
    def is_matched(self) -> bool:
        return self.entity_id is not None


UNMATCHED = Resolution()


@dataclass(frozen=True)
class EventFailure:
    event_id: UUID
    reason: str


@dataclass(frozen=True)
class RematchResult:
    """Counts from one rematch run; failures are per event."""

    updated: int = 0
    unchanged: int = 0
    unmatched: int = 0
    ambiguous: int = 0
    skipped: int = 0
    tagged: int = 0
    failures: tuple[EventFailure, ...] = ()

    @property
    def processed(self) -> int:
        return self.updated + self.unchanged


@dataclass(frozen=True)
class AttentionReport:
    """Events a user has to look at before billing."""

    unmatched: tuple[EventInfo, ...] = ()
    ambiguous: tuple[EventInfo, ...] = ()

    @property
    def total(self) -> int:
        return len(self.unmatched) + len(self.ambiguous)


def resolve_entity(
    event: EventInfo,
    studios: Sequence[BillingEntityInfo],
    min_pattern_length: int = 0,
) -> Resolution:
    """
    Pick the studio whose patterns claim ``event.location``.

    Exactly one match assigns it; none is UNMATCHED; several pick the
    longest matched pattern, then the entity name, then the id, and flag
    the result ambiguous.
    """
    if not (event.location or "").strip():
        return UNMATCHED

    entries = [
        PatternEntry(s.id, s.entity_name, s.location_match)
        for s in studios
        if s.location_match
    ]
    matches = match_owners(event.location, entries, min_pattern_length)
    if not matches:
        return UNMATCHED

    ranked = sorted(
        matches,
        key=lambda m: (-len(m.pattern), m.owner_name.lower(), str(m.owner_id)),
    )
    best = ranked[0]
    ambiguous = len(ranked) > 1
    return Resolution(
        entity_id=best.owner_id,
        entity_name=best.owner_name,
        pattern=best.pattern,
        ambiguous=ambiguous,
        candidate_ids=tuple(m.owner_id for m in ranked) if ambiguous else (),
    )


def _assignment(event: Event) -> tuple[Any, ...]:
    return (
        event.billing_entity_id,
        event.rate_source_entity_id,
        event.match_ambiguous,
        event.matched_pattern,
    )


class EntityResolver:
    """
    Applies entity resolution and substitute redirection to stored events.

    Transaction boundary: every public write commits on success and rolls
    back on failure.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        config: BillingConfig | None = None,
        registry: EntityRegistry | None = None,
    ):
        self._session = session
        self._actor_id = actor_id
        self._config = config or BillingConfig()
        self._registry = registry or EntityRegistry(session, actor_id, self._config)
        self._entities = EntitySelector(session)
        self._events = EventSelector(session)

    @property
    def _min_pattern_length(self) -> int:
        return self._config.matching.min_pattern_length

    # =========================================================================
    # Rematch
    # =========================================================================

    def rematch(
        self,
        issuer_id: UUID,
        event_ids: Sequence[UUID] | None = None,
        rematch_tags: bool = False,
    ) -> RematchResult:
        """
        Re-resolve the issuer's events against the current studio patterns.

        Excluded, redirected, cancelled and invoiced events are skipped.
        With ``rematch_tags`` matching tag rules are added to every event
        in scope.
        """
        studios = self._entities.list_studios(issuer_id)
        tag_rules = self._tag_rules(issuer_id) if rematch_tags else []

        stmt = select(Event).where(Event.issuer_id == issuer_id)
        if event_ids is not None:
            stmt = stmt.where(Event.id.in_(set(event_ids)))
        events = self._session.scalars(stmt.order_by(Event.start_time, Event.id)).all()
        linked = self._events.linked_invoice_ids([e.id for e in events])

        updated = unchanged = unmatched = ambiguous = skipped = tagged = 0
        failures: list[EventFailure] = []

        if event_ids is not None:
            found = {e.id for e in events}
            failures.extend(
                EventFailure(eid, "event not found")
                for eid in dict.fromkeys(event_ids)
                if eid not in found
            )

        try:
            for event in events:
                try:
                    if tag_rules:
                        slugs = match_tags(event.title, event.location, tag_rules)
                        merged = list(dict.fromkeys([*(event.tag_slugs or []), *slugs]))
                        if merged != list(event.tag_slugs or []):
                            event.tag_slugs = merged
                            tagged += 1

                    if (
                        event.exclude_from_matching
                        or event.is_redirected
                        or event.status != EventStatus.CONFIRMED.value
                        or event.id in linked
                    ):
                        skipped += 1
                        continue

                    resolution = resolve_entity(
                        event_to_info(event), studios, self._min_pattern_length
                    )
                except Exception as exc:
                    logger.warning(
                        "rematch_event_failed",
                        extra={"event_id": str(event.id), "error": str(exc)},
                        exc_info=True,
                    )
                    failures.append(EventFailure(event.id, str(exc)))
                    continue

                if not resolution.is_matched:
                    unmatched += 1
                elif resolution.ambiguous:
                    ambiguous += 1

                target = (
                    resolution.entity_id,
                    resolution.entity_id,
                    resolution.ambiguous,
                    resolution.pattern,
                )
                if _assignment(event) == target:
                    unchanged += 1
                    continue

                (
                    event.billing_entity_id,
                    event.rate_source_entity_id,
                    event.match_ambiguous,
                    event.matched_pattern,
                ) = target
                event.updated_by_id = self._actor_id
                updated += 1

            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        result = RematchResult(
            updated=updated,
            unchanged=unchanged,
            unmatched=unmatched,
            ambiguous=ambiguous,
            skipped=skipped,
            tagged=tagged,
            failures=tuple(failures),
        )
        logger.info(
            "rematch_completed",
            extra={
                "issuer_id": str(issuer_id),
                "updated": updated,
                "unchanged": unchanged,
                "unmatched": unmatched,
                "ambiguous": ambiguous,
                "skipped": skipped,
                "tagged": tagged,
                "failure_count": len(failures),
            },
        )
        return result

    def needs_attention(self, issuer_id: UUID) -> AttentionReport:
        """Unmatched and ambiguous events of the issuer."""
        return AttentionReport(
            unmatched=tuple(self._events.unmatched(issuer_id)),
            ambiguous=tuple(self._events.ambiguous(issuer_id)),
        )

    # =========================================================================
    # Substitute redirection
    # =========================================================================

    def redirect_to_substitute(
        self,
        event_id: UUID,
        teacher_entity_id: UUID,
        notes: str | None = None,
        use_teacher_rate: bool = False,
    ) -> EventInfo:
        """
        Bill ``event_id`` to a substitute teacher.

        The studio stays the rate source unless ``use_teacher_rate`` is set.
        The event is excluded from automatic matching until reverted.
        """
        try:
            event = self._redirect(event_id, teacher_entity_id, notes, use_teacher_rate)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return event_to_info(event)

    def redirect_to_new_substitute(
        self,
        event_id: UUID,
        teacher_name: str,
        recipient_email: str | None = None,
        notes: str | None = None,
        use_teacher_rate: bool = False,
        **teacher_details: Any,
    ) -> tuple[EventInfo, BillingEntityInfo]:
        """Find or create the teacher by email (or name), then redirect."""
        try:
            event = self._load_event(event_id)
            teacher, created = self._registry.find_or_create_teacher(
                event.issuer_id,
                teacher_name,
                recipient_email=recipient_email,
                **teacher_details,
            )
            event = self._redirect(event_id, teacher.id, notes, use_teacher_rate)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        if created:
            logger.info(
                "substitute_teacher_created",
                extra={"event_id": str(event_id), "entity_id": str(teacher.id)},
            )
        return event_to_info(event), teacher

    def revert_substitute(self, event_id: UUID) -> EventInfo:
        """
        Bill ``event_id`` to its studio again.

        The preserved rate source becomes the payee.  An event that never
        had a studio is resolved against the current patterns.
        """
        try:
            event = self._load_event(event_id)
            if not event.is_redirected:
                raise NotRedirectedError(str(event_id))
            self._assert_not_linked(event)

            teacher_id = event.billing_entity_id
            studio = (
                self._session.get(BillingEntity, event.rate_source_entity_id)
                if event.rate_source_entity_id is not None
                else None
            )

            event.invoice_type = InvoiceType.STUDIO_INVOICE.value
            event.substitute_notes = None
            event.use_payee_rate = False
            event.exclude_from_matching = False

            if studio is not None and studio.is_studio:
                event.billing_entity_id = studio.id
            else:
                resolution = resolve_entity(
                    event_to_info(event),
                    self._entities.list_studios(event.issuer_id),
                    self._min_pattern_length,
                )
                event.billing_entity_id = resolution.entity_id
                event.rate_source_entity_id = resolution.entity_id
                event.match_ambiguous = resolution.ambiguous
                event.matched_pattern = resolution.pattern

            event.updated_by_id = self._actor_id
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "substitute_reverted",
            extra={
                "event_id": str(event_id),
                "teacher_entity_id": str(teacher_id),
                "payee_entity_id": str(event.billing_entity_id),
            },
        )
        return event_to_info(event)

    def set_excluded(self, event_id: UUID, excluded: bool = True) -> EventInfo:
        """Exclude an event from (or return it to) automatic studio matching."""
        try:
            event = self._load_event(event_id)
            if event.exclude_from_matching != excluded:
                event.exclude_from_matching = excluded
                event.updated_by_id = self._actor_id
                self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.info(
            "event_exclusion_set",
            extra={"event_id": str(event_id), "excluded": excluded},
        )
        return event_to_info(event)

    # =========================================================================
    # Internals
    # =========================================================================

    def _redirect(
        self,
        event_id: UUID,
        teacher_entity_id: UUID,
        notes: str | None,
        use_teacher_rate: bool,
    ) -> Event:
        event = self._load_event(event_id)
        self._assert_not_linked(event)

        teacher = self._session.get(BillingEntity, teacher_entity_id)
        if teacher is None or teacher.issuer_id != event.issuer_id:
            raise EntityNotFoundError(str(teacher_entity_id))
        if not teacher.is_teacher:
            raise InvalidEntityTypeError(
                str(teacher_entity_id),
                teacher.entity_type,
                BillingEntityType.TEACHER.value,
            )

        if event.rate_source_entity_id is None and not event.is_redirected:
            event.rate_source_entity_id = event.billing_entity_id

        previous_payee = event.billing_entity_id
        event.billing_entity_id = teacher.id
        event.invoice_type = InvoiceType.TEACHER_INVOICE.value
        event.substitute_notes = notes
        event.use_payee_rate = use_teacher_rate
        event.exclude_from_matching = True
        event.updated_by_id = self._actor_id
        self._session.flush()

        logger.info(
            "event_redirected",
            extra={
                "event_id": str(event_id),
                "teacher_entity_id": str(teacher.id),
                "previous_payee_id": str(previous_payee),
                "rate_source_entity_id": str(event.rate_source_entity_id),
                "use_teacher_rate": use_teacher_rate,
            },
        )
        return event

    def _load_event(self, event_id: UUID) -> Event:
        event = self._session.get(Event, event_id)
        if event is None:
            raise EventNotFoundError(str(event_id))
        return event

    def _assert_not_linked(self, event: Event) -> None:
        invoice_id = self._events.linked_invoice_ids([event.id]).get(event.id)
        if invoice_id is not None:
            raise LinkConflictError(
                (EventRejection(event.id, RejectionReason.ALREADY_LINKED, invoice_id),),
                invoice_id=str(invoice_id),
            )

    def _tag_rules(self, issuer_id: UUID) -> list[TagRuleEntry]:
        rules = self._session.scalars(
            select(TagRule)
            .where(TagRule.issuer_id == issuer_id)
            .order_by(TagRule.tag_slug, TagRule.id)
        ).all()
        return [
            TagRuleEntry(
                tag_slug=rule.tag_slug,
                keywords=tuple(rule.keywords or ()),
                location_keywords=tuple(rule.location_keywords or ()),
            )
            for rule in rules
        ]
