"""ORM models for the billing kernel."""

from billing_kernel.models.billing_entity import BillingEntity, BillingEntityType
from billing_kernel.models.event import Event
from billing_kernel.models.invoice import Invoice, InvoiceEventLink
from billing_kernel.models.issuer_settings import IssuerSettings
from billing_kernel.models.numbering import (
    InvoiceNumberCounter,
    InvoiceNumberReservation,
    ReservationStatus,
)
from billing_kernel.models.tag_rule import TagRule

__all__ = [
    "BillingEntity",
    "BillingEntityType",
    "Event",
    "Invoice",
    "InvoiceEventLink",
    "InvoiceNumberCounter",
    "InvoiceNumberReservation",
    "IssuerSettings",
    "ReservationStatus",
    "TagRule",
]
