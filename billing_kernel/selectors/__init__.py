"""Read-only query selectors."""

from billing_kernel.selectors.base import BaseSelector
from billing_kernel.selectors.entity_selector import EntitySelector, entity_to_info
from billing_kernel.selectors.event_selector import EventSelector, event_to_info
from billing_kernel.selectors.invoice_selector import (
    InvoiceSelector,
    InvoiceSummaryDTO,
    effective_attendance,
)

__all__ = [
    "BaseSelector",
    "EntitySelector",
    "EventSelector",
    "InvoiceSelector",
    "InvoiceSummaryDTO",
    "effective_attendance",
    "entity_to_info",
    "event_to_info",
]
