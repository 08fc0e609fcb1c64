"""
Billing services -- orchestration over engines, kernel and configuration.

Each service owns its transaction boundary (commit on success, rollback on
failure); invoice number reservation commits on its own connection.
"""

from billing_services.document import (
    DocumentLine,
    DocumentRenderer,
    InvoiceDocument,
    PartyDetails,
    build_invoice_document,
)
from billing_services.entity_registry import EntityRegistry, EntityWriteResult
from billing_services.entity_resolver import (
    UNMATCHED,
    AttentionReport,
    EntityResolver,
    EventFailure,
    RematchResult,
    Resolution,
    resolve_entity,
)
from billing_services.invoice_lifecycle import (
    InvoiceLifecycleManager,
    InvoiceOperationResult,
)
from billing_services.numbering import InvoiceNumberingService, ReservedNumber

__all__ = [
    "UNMATCHED",
    "AttentionReport",
    "DocumentLine",
    "DocumentRenderer",
    "EntityRegistry",
    "EntityResolver",
    "EntityWriteResult",
    "EventFailure",
    "InvoiceDocument",
    "InvoiceLifecycleManager",
    "InvoiceNumberingService",
    "InvoiceOperationResult",
    "PartyDetails",
    "RematchResult",
    "Resolution",
    "ReservedNumber",
    "build_invoice_document",
    "resolve_entity",
]
