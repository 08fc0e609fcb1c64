"""
InvoiceNumberingService -- per-issuer, never-reused invoice numbers.

Responsibility:
    Reserve the next invoice number for an issuer, format it, and keep the
    reservation ledger current (reserved -> issued -> voided).

Architecture position:
    Services -- imperative shell.  Advances the counter through the kernel
    InvoiceCounterService and formats with billing_engines.numbering_format.

    Reservation runs in its OWN short session, committed before the
    invoice is written.  The counter row lock is therefore held only for
    the increment, and a reserved number stays consumed even if the
    invoice insert fails afterwards.

Invariants enforced:
    - Numbers are strictly increasing per (issuer, scope) and never reused.
      Gaps from failed writes and deletions are tolerated.
    - Different issuers advance different counter rows and never contend.
    - A number already used by a manual edit is skipped, never handed out.

Failure modes:
    - NumberReservationFailedError on lock timeouts or other operational
      errors, and when the counter-creation race keeps losing.  Retryable.

Usage:
    numbering = InvoiceNumberingService(config=config, clock=clock)
    reserved = numbering.next_number(issuer_id, payer_name="Flow Studio")
    # reserved.number == "RE-2025-0001"

Callers must not hold uncommitted writes on the same database when calling
``next_number``: the reservation commits on a separate connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from billing_config import BillingConfig, NumberingScope
from billing_engines.numbering_format import NumberFormat, format_invoice_number
from billing_kernel.db.engine import get_session_factory
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import NumberReservationFailedError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.issuer_settings import IssuerSettings
from billing_kernel.models.numbering import InvoiceNumberReservation, ReservationStatus
from billing_kernel.services.invoice_counter_service import InvoiceCounterService

logger = get_logger("services.numbering")

# Concurrent first use of a counter row; the loser finds the row on retry
_MAX_CREATE_RACE_RETRIES = 5

ISSUER_SCOPE_KEY = "all"


@dataclass(frozen=True)
class ReservedNumber:
    """A consumed invoice number."""

    issuer_id: UUID
    number: str
    sequence_value: int
    fiscal_year: int | None
    scope_key: str


class InvoiceNumberingService:
    """
    Reserves invoice numbers and maintains the reservation ledger.

    ``next_number`` owns its own transaction.  ``mark_issued``, ``void`` and
    ``is_number_taken`` run in a caller-supplied session when one is given
    (flush-only) so they share the invoice transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or BillingConfig()
        self._clock = clock or SystemClock()

    def _new_session(self) -> Session:
        factory = self._session_factory or get_session_factory()
        return factory()

    def scope_for(self, fiscal_year: int) -> tuple[str, int | None]:
        """Counter scope key and the year shown in the number."""
        if self._config.numbering.scope == NumberingScope.FISCAL_YEAR:
            return str(fiscal_year), fiscal_year
        return ISSUER_SCOPE_KEY, None

    def number_format(self, session: Session, issuer_id: UUID) -> NumberFormat:
        """Issuer settings layered over the configured defaults."""
        defaults = self._config.numbering
        settings = session.scalars(
            select(IssuerSettings).where(IssuerSettings.issuer_id == issuer_id)
        ).first()

        prefix = defaults.default_prefix
        include_abbreviation = defaults.include_payer_abbreviation
        if settings is not None:
            if settings.invoice_number_prefix is not None:
                prefix = settings.invoice_number_prefix
            if settings.include_payer_abbreviation is not None:
                include_abbreviation = settings.include_payer_abbreviation

        return NumberFormat(
            prefix=prefix,
            include_payer_abbreviation=include_abbreviation,
            abbreviation_length=defaults.abbreviation_length,
            include_year=defaults.scope == NumberingScope.FISCAL_YEAR,
            pad_width=defaults.pad_width,
        )

    def next_number(
        self,
        issuer_id: UUID,
        payer_name: str | None = None,
        actor_id: UUID | None = None,
    ) -> ReservedNumber:
        """
        Reserve and commit the next number for ``issuer_id``.

        Postconditions:
            - The returned number is recorded in the ledger as RESERVED and
              will never be returned again for this issuer.

        Raises:
            NumberReservationFailedError: lock timeout, database error, or
                repeated counter-creation races.
        """
        scope_key, fiscal_year = self.scope_for(self._clock.today_year())
        race_attempts = 0

        while True:
            session = self._new_session()
            try:
                fmt = self.number_format(session, issuer_id)
                value = InvoiceCounterService(session).next_value(issuer_id, scope_key)
                number = format_invoice_number(fmt, value, payer_name, fiscal_year)

                if self.is_number_taken(issuer_id, number, session=session):
                    # Manually assigned earlier; keep the counter advanced
                    session.commit()
                    logger.warning(
                        "number_skipped_taken",
                        extra={"issuer_id": str(issuer_id), "invoice_number": number},
                    )
                    continue

                session.add(
                    InvoiceNumberReservation(
                        issuer_id=issuer_id,
                        invoice_number=number,
                        scope_key=scope_key,
                        sequence_value=value,
                        status=ReservationStatus.RESERVED.value,
                        created_by_id=actor_id or issuer_id,
                    )
                )
                session.flush()
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                race_attempts += 1
                if race_attempts >= _MAX_CREATE_RACE_RETRIES:
                    raise NumberReservationFailedError(
                        str(issuer_id), "counter creation race", race_attempts
                    ) from exc
                logger.info(
                    "number_counter_race_retry",
                    extra={"issuer_id": str(issuer_id), "attempt": race_attempts},
                )
                continue
            except OperationalError as exc:
                session.rollback()
                logger.warning(
                    "number_reservation_failed",
                    extra={"issuer_id": str(issuer_id), "error": str(exc.orig)},
                )
                raise NumberReservationFailedError(
                    str(issuer_id), str(exc.orig), race_attempts + 1
                ) from exc
            finally:
                session.close()

            logger.info(
                "number_reserved",
                extra={
                    "issuer_id": str(issuer_id),
                    "invoice_number": number,
                    "sequence_value": value,
                    "scope_key": scope_key,
                },
            )
            return ReservedNumber(
                issuer_id=issuer_id,
                number=number,
                sequence_value=value,
                fiscal_year=fiscal_year,
                scope_key=scope_key,
            )

    def is_number_taken(
        self,
        issuer_id: UUID,
        number: str,
        session: Session | None = None,
    ) -> bool:
        """True when an invoice or the ledger already holds ``number``."""
        if session is None:
            with self._new_session() as own:
                return self.is_number_taken(issuer_id, number, session=own)

        in_invoices = session.scalar(
            select(Invoice.id).where(
                Invoice.issuer_id == issuer_id,
                Invoice.invoice_number == number,
            )
        )
        if in_invoices is not None:
            return True
        in_ledger = session.scalar(
            select(InvoiceNumberReservation.id).where(
                InvoiceNumberReservation.issuer_id == issuer_id,
                InvoiceNumberReservation.invoice_number == number,
            )
        )
        return in_ledger is not None

    def mark_issued(
        self,
        session: Session,
        issuer_id: UUID,
        number: str,
        invoice_id: UUID,
        actor_id: UUID | None = None,
    ) -> None:
        """
        Record that ``number`` is used by ``invoice_id``.  Flush-only.

        Manual numbers have no reservation yet; one is created with no
        sequence value.
        """
        reservation = self._reservation(session, issuer_id, number)
        if reservation is None:
            scope_key, _ = self.scope_for(self._clock.today_year())
            reservation = InvoiceNumberReservation(
                issuer_id=issuer_id,
                invoice_number=number,
                scope_key=scope_key,
                sequence_value=None,
                created_by_id=actor_id or issuer_id,
            )
            session.add(reservation)
        reservation.status = ReservationStatus.ISSUED.value
        reservation.invoice_id = invoice_id
        reservation.updated_by_id = actor_id
        session.flush()

    def void(
        self,
        issuer_id: UUID,
        number: str,
        session: Session | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        """
        Mark ``number`` voided.  The number stays consumed.

        With ``session`` this is flush-only; without one it commits on its
        own connection.
        """
        if session is None:
            with self._new_session() as own:
                try:
                    self.void(issuer_id, number, session=own, actor_id=actor_id)
                    own.commit()
                except Exception:
                    own.rollback()
                    raise
            return

        reservation = self._reservation(session, issuer_id, number)
        if reservation is None:
            return
        reservation.status = ReservationStatus.VOIDED.value
        reservation.updated_by_id = actor_id
        session.flush()
        logger.info(
            "number_voided",
            extra={"issuer_id": str(issuer_id), "invoice_number": number},
        )

    @staticmethod
    def _reservation(
        session: Session,
        issuer_id: UUID,
        number: str,
    ) -> InvoiceNumberReservation | None:
        return session.scalars(
            select(InvoiceNumberReservation).where(
                InvoiceNumberReservation.issuer_id == issuer_id,
                InvoiceNumberReservation.invoice_number == number,
            )
        ).first()
