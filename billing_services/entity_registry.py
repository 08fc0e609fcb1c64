"""
EntityRegistry -- create and update studios and substitute teachers.

Responsibility:
    Write path for billing entities.  Rate configs are validated before
    they are stored; overlapping studio location patterns are reported as
    non-blocking PatternConflict warnings alongside the written entity.

Architecture position:
    Services -- imperative shell.  Reads through EntitySelector, detects
    overlaps with billing_engines.patterns, writes BillingEntity rows.
    Owns the transaction boundary: commits on success, rolls back on
    failure.

Invariants enforced:
    - Only studios carry location patterns (InvalidEntityTypeError).
    - A stored rate_config is always a valid, normalized document
      (InvalidTierConfigError otherwise).
    - Entity currency is a known ISO 4217 code.
    - Pattern overlap never blocks a write.

Failure modes:
    - EntityNotFoundError for an unknown entity id.
    - InvalidEntityTypeError when patterns are set on a teacher.
    - InvalidTierConfigError for a rate config that fails validation.
    - ValueError for an unknown currency code.

Usage:
    registry = EntityRegistry(session, actor_id=user_id)
    result = registry.create_studio(
        issuer_id, "Flow Studio Berlin",
        location_match=["Flow Studio Berlin"],
        rate_config={"type": "per_student", "rate_per_student": "5"},
    )
    for conflict in result.conflicts:
        warn(conflict.message)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_engines.patterns import (
    PatternConflict,
    PatternEntry,
    find_all_conflicts,
    preview_pattern,
)
from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.dtos import BillingEntityInfo
from billing_kernel.domain.rate_config import (
    FlatRate,
    PerStudentRate,
    RateConfig,
    TieredRate,
    rate_config_to_dict,
    validate_rate_config,
)
from billing_kernel.exceptions import (
    EntityNotFoundError,
    InvalidEntityTypeError,
    InvalidTierConfigError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.billing_entity import BillingEntity, BillingEntityType
from billing_kernel.selectors.entity_selector import EntitySelector, entity_to_info
from billing_kernel.selectors.event_selector import EventSelector

logger = get_logger("services.entity_registry")

_UNSET: Any = object()


@dataclass(frozen=True)
class EntityWriteResult:
    """A written entity and the pattern overlaps it introduced (warnings only)."""

    entity: BillingEntityInfo
    conflicts: tuple[PatternConflict, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def _clean_patterns(patterns: Sequence[str] | None) -> list[str]:
    """Trimmed, non-blank patterns with case-insensitive duplicates removed."""
    cleaned: list[str] = []
    seen: set[str] = set()
    for pattern in patterns or ():
        value = (pattern or "").strip()
        if value and value.lower() not in seen:
            seen.add(value.lower())
            cleaned.append(value)
    return cleaned


def _normalize_rate_config(
    rate_config: RateConfig | dict[str, Any] | None,
    entity_id: UUID | None = None,
) -> dict[str, Any] | None:
    """Validated stored document for ``rate_config`` (None clears it)."""
    if rate_config is None:
        return None
    if isinstance(rate_config, (FlatRate, PerStudentRate, TieredRate)):
        rate_config = rate_config_to_dict(rate_config)
    validation = validate_rate_config(rate_config)
    if not validation.is_valid:
        raise InvalidTierConfigError(
            validation.error.reason,
            entity_id=str(entity_id) if entity_id else None,
        )
    return rate_config_to_dict(validation.config)


class EntityRegistry:
    """
    Write service for billing entities.

    Transaction boundary: every public write commits on success and rolls
    back on failure.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        config: BillingConfig | None = None,
    ):
        self._session = session
        self._config = config or BillingConfig()
        self._actor_id = actor_id
        self._entities = EntitySelector(session)
        self._events = EventSelector(session)

    @property
    def _min_pattern_length(self) -> int:
        return self._config.matching.min_pattern_length

    def _currency(self, currency: str | None) -> str:
        return CurrencyRegistry.validate(currency or self._config.default_currency)

    def _load(self, entity_id: UUID) -> BillingEntity:
        entity = self._session.get(BillingEntity, entity_id)
        if entity is None:
            raise EntityNotFoundError(str(entity_id))
        return entity

    # =========================================================================
    # Studios
    # =========================================================================

    def create_studio(
        self,
        issuer_id: UUID,
        entity_name: str,
        location_match: Sequence[str] | None = None,
        rate_config: RateConfig | dict[str, Any] | None = None,
        currency: str | None = None,
        billing_email: str | None = None,
        address: str | None = None,
        is_verified: bool = False,
        is_featured: bool = False,
        notes: str | None = None,
    ) -> EntityWriteResult:
        """Create a studio.  Overlapping patterns are returned as warnings."""
        try:
            patterns = _clean_patterns(location_match)
            studio = BillingEntity(
                issuer_id=issuer_id,
                entity_name=entity_name.strip(),
                entity_type=BillingEntityType.STUDIO.value,
                location_match=patterns,
                rate_config=_normalize_rate_config(rate_config),
                currency=self._currency(currency),
                billing_email=billing_email,
                address=address,
                is_verified=is_verified,
                is_featured=is_featured,
                notes=notes,
                created_by_id=self._actor_id,
            )
            self._session.add(studio)
            self._session.flush()
            conflicts = self.check_pattern_conflicts(issuer_id, patterns, owner_id=studio.id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "studio_created",
            extra={
                "issuer_id": str(issuer_id),
                "entity_id": str(studio.id),
                "pattern_count": len(patterns),
                "conflict_count": len(conflicts),
            },
        )
        return EntityWriteResult(entity_to_info(studio), tuple(conflicts))

    def update_studio(
        self,
        entity_id: UUID,
        *,
        entity_name: str | None = None,
        location_match: Sequence[str] | None = None,
        rate_config: Any = _UNSET,
        currency: str | None = None,
        billing_email: Any = _UNSET,
        address: Any = _UNSET,
        is_verified: bool | None = None,
        is_featured: bool | None = None,
        notes: Any = _UNSET,
    ) -> EntityWriteResult:
        """
        Update a studio.  Omitted arguments keep their value; pass
        ``rate_config=None`` to clear the rate.

        Changing patterns or rates does not touch existing assignments or
        invoices; run a rematch to apply new patterns.
        """
        try:
            studio = self._load(entity_id)
            if not studio.is_studio:
                raise InvalidEntityTypeError(
                    str(entity_id), studio.entity_type, BillingEntityType.STUDIO.value
                )

            conflicts: list[PatternConflict] = []
            if entity_name is not None:
                studio.entity_name = entity_name.strip()
            if location_match is not None:
                patterns = _clean_patterns(location_match)
                conflicts = self.check_pattern_conflicts(
                    studio.issuer_id, patterns, owner_id=studio.id
                )
                studio.location_match = patterns
            if rate_config is not _UNSET:
                studio.rate_config = _normalize_rate_config(rate_config, entity_id)
            if currency is not None:
                studio.currency = self._currency(currency)
            if billing_email is not _UNSET:
                studio.billing_email = billing_email
            if address is not _UNSET:
                studio.address = address
            if is_verified is not None:
                studio.is_verified = is_verified
            if is_featured is not None:
                studio.is_featured = is_featured
            if notes is not _UNSET:
                studio.notes = notes
            studio.updated_by_id = self._actor_id

            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "studio_updated",
            extra={
                "entity_id": str(entity_id),
                "conflict_count": len(conflicts),
            },
        )
        return EntityWriteResult(entity_to_info(studio), tuple(conflicts))

    def check_pattern_conflicts(
        self,
        issuer_id: UUID,
        patterns: Sequence[str],
        owner_id: UUID | None = None,
    ) -> list[PatternConflict]:
        """Overlaps between ``patterns`` and the issuer's other studios."""
        entries = [
            PatternEntry(s.id, s.entity_name, s.location_match)
            for s in self._entities.list_studios(issuer_id)
            if s.id != owner_id
        ]
        return find_all_conflicts(
            owner_id, _clean_patterns(patterns), entries, self._min_pattern_length
        )

    def preview_pattern(self, issuer_id: UUID, pattern: str) -> list[str]:
        """Distinct event locations of the issuer that ``pattern`` would claim."""
        return preview_pattern(
            pattern,
            self._events.distinct_locations(issuer_id),
            self._min_pattern_length,
        )

    # =========================================================================
    # Teachers
    # =========================================================================

    def create_teacher(
        self,
        issuer_id: UUID,
        entity_name: str,
        recipient_email: str | None = None,
        recipient_name: str | None = None,
        recipient_phone: str | None = None,
        address: str | None = None,
        rate_config: RateConfig | dict[str, Any] | None = None,
        currency: str | None = None,
        iban: str | None = None,
        bic: str | None = None,
        tax_id: str | None = None,
        location_match: Sequence[str] | None = None,
    ) -> BillingEntityInfo:
        """
        Create a substitute teacher.

        Raises:
            InvalidEntityTypeError: If location patterns are supplied.
        """
        if _clean_patterns(location_match):
            raise InvalidEntityTypeError(
                "new", BillingEntityType.TEACHER.value, BillingEntityType.STUDIO.value
            )
        try:
            teacher = self._new_teacher(
                issuer_id,
                entity_name,
                recipient_email=recipient_email,
                recipient_name=recipient_name,
                recipient_phone=recipient_phone,
                address=address,
                rate_config=rate_config,
                currency=currency,
                iban=iban,
                bic=bic,
                tax_id=tax_id,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return entity_to_info(teacher)

    def find_or_create_teacher(
        self,
        issuer_id: UUID,
        entity_name: str,
        recipient_email: str | None = None,
        **details: Any,
    ) -> tuple[BillingEntityInfo, bool]:
        """
        Existing teacher matching the email (or, without an email, the name),
        else a new one.  Returns ``(teacher, created)``.

        Flush-only: the caller commits.
        """
        teacher = self._find_teacher(issuer_id, entity_name, recipient_email)
        if teacher is not None:
            return entity_to_info(teacher), False
        teacher = self._new_teacher(
            issuer_id, entity_name, recipient_email=recipient_email, **details
        )
        return entity_to_info(teacher), True

    def set_location_patterns(
        self,
        entity_id: UUID,
        patterns: Sequence[str],
    ) -> EntityWriteResult:
        """Replace a studio's patterns; teachers cannot carry patterns."""
        entity = self._load(entity_id)
        if not entity.is_studio:
            raise InvalidEntityTypeError(
                str(entity_id), entity.entity_type, BillingEntityType.STUDIO.value
            )
        return self.update_studio(entity_id, location_match=patterns)

    def _find_teacher(
        self,
        issuer_id: UUID,
        entity_name: str,
        recipient_email: str | None,
    ) -> BillingEntity | None:
        stmt = select(BillingEntity).where(
            BillingEntity.issuer_id == issuer_id,
            BillingEntity.entity_type == BillingEntityType.TEACHER.value,
        )
        if recipient_email:
            stmt = stmt.where(
                func.lower(BillingEntity.recipient_email) == recipient_email.strip().lower()
            )
        else:
            stmt = stmt.where(
                func.lower(BillingEntity.entity_name) == entity_name.strip().lower()
            )
        return self._session.scalars(stmt.order_by(BillingEntity.created_at)).first()

    def _new_teacher(
        self,
        issuer_id: UUID,
        entity_name: str,
        recipient_email: str | None = None,
        recipient_name: str | None = None,
        recipient_phone: str | None = None,
        address: str | None = None,
        rate_config: RateConfig | dict[str, Any] | None = None,
        currency: str | None = None,
        iban: str | None = None,
        bic: str | None = None,
        tax_id: str | None = None,
    ) -> BillingEntity:
        teacher = BillingEntity(
            issuer_id=issuer_id,
            entity_name=entity_name.strip(),
            entity_type=BillingEntityType.TEACHER.value,
            location_match=[],
            rate_config=_normalize_rate_config(rate_config),
            currency=self._currency(currency),
            recipient_name=recipient_name or entity_name.strip(),
            recipient_email=recipient_email.strip() if recipient_email else None,
            recipient_phone=recipient_phone,
            address=address,
            iban=iban,
            bic=bic,
            tax_id=tax_id,
            created_by_id=self._actor_id,
        )
        self._session.add(teacher)
        self._session.flush()
        logger.info(
            "teacher_created",
            extra={"issuer_id": str(issuer_id), "entity_id": str(teacher.id)},
        )
        return teacher
