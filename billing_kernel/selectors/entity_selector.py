"""
Billing entity query selector.

Read-only access to studios and teachers for an issuer, converted to
BillingEntityInfo DTOs with their rate config parsed into the RateConfig
union.
"""

from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.dtos import BillingEntityInfo, EntityType
from billing_kernel.domain.rate_config import parse_rate_config
from billing_kernel.models.billing_entity import BillingEntity, BillingEntityType
from billing_kernel.selectors.base import BaseSelector


def entity_to_info(entity: BillingEntity) -> BillingEntityInfo:
    """Convert ORM model to DTO."""
    return BillingEntityInfo(
        id=entity.id,
        issuer_id=entity.issuer_id,
        entity_name=entity.entity_name,
        entity_type=EntityType(entity.entity_type),
        currency=entity.currency,
        location_match=tuple(entity.location_match or ()),
        rate_config=parse_rate_config(entity.rate_config),
        is_verified=entity.is_verified,
        is_featured=entity.is_featured,
        recipient_name=entity.recipient_name,
        recipient_email=entity.recipient_email,
        billing_email=entity.billing_email,
        address=entity.address,
    )


class EntitySelector(BaseSelector[BillingEntity]):
    """Selector for billing entity queries."""

    model = BillingEntity

    def get(self, entity_id: UUID) -> BillingEntityInfo | None:
        entity = self._row(entity_id)
        return entity_to_info(entity) if entity is not None else None

    def get_many(self, entity_ids: list[UUID]) -> dict[UUID, BillingEntityInfo]:
        """Entities by id; unknown ids are absent from the result."""
        return {eid: entity_to_info(row) for eid, row in self._rows(entity_ids).items()}

    def list_studios(self, issuer_id: UUID) -> list[BillingEntityInfo]:
        """All studios of an issuer, ordered by name then id."""
        return self._list(issuer_id, BillingEntityType.STUDIO)

    def list_teachers(self, issuer_id: UUID) -> list[BillingEntityInfo]:
        return self._list(issuer_id, BillingEntityType.TEACHER)

    def _list(
        self,
        issuer_id: UUID,
        entity_type: BillingEntityType,
    ) -> list[BillingEntityInfo]:
        rows = self.session.scalars(
            select(BillingEntity)
            .where(
                BillingEntity.issuer_id == issuer_id,
                BillingEntity.entity_type == entity_type.value,
            )
            .order_by(BillingEntity.entity_name, BillingEntity.id)
        ).all()
        return [entity_to_info(row) for row in rows]
