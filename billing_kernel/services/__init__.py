"""Kernel services (flush-only; callers own transactions)."""

from billing_kernel.services.base import BaseService
from billing_kernel.services.invoice_counter_service import InvoiceCounterService

__all__ = ["BaseService", "InvoiceCounterService"]
