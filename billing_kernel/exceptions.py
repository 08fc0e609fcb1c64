"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Billing errors have to reach the application layer with enough structure to
render specific guidance ("these three events are already on invoice
RE-2025-0007") and to decide whether a retry is safe.  Callers catch by type
and read attributes; they never parse messages.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Pure calculation outcomes (no rate configured, invalid tier config,
unmatched events, stale documents) are NOT exceptions.  They are returned as
typed result values from the engines so that a UI can render them inline.
InvalidTierConfigError exists only for the configuration-time write path,
where a caller explicitly asks for the invalid config to be rejected.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- EntityError
    |   +-- EntityNotFoundError
    |   +-- InvalidEntityTypeError
    |   +-- InvalidTierConfigError
    |
    +-- EventError
    |   +-- EventNotFoundError
    |   +-- NotRedirectedError
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceLockedError
    |   +-- InvalidStatusTransitionError
    |   +-- LinkConflictError
    |   +-- CurrencyMismatchError
    |
    +-- NumberingError
        +-- DuplicateInvoiceNumberError
        +-- NumberReservationFailedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                       | When Raised
-----------|----------------------------|--------------------------------------
Entity     | ENTITY_NOT_FOUND           | Billing entity ID doesn't exist
           | INVALID_ENTITY_TYPE        | Operation not valid for entity type
           | INVALID_TIER_CONFIG        | Rate config rejected at write time
-----------|----------------------------|--------------------------------------
Event      | EVENT_NOT_FOUND            | Event ID doesn't exist
           | EVENT_NOT_REDIRECTED       | Revert on an event with no substitute
-----------|----------------------------|--------------------------------------
Invoice    | INVOICE_NOT_FOUND          | Invoice ID doesn't exist
           | INVOICE_LOCKED             | Edit/delete on a paid/cancelled invoice
           | INVALID_STATUS_TRANSITION  | Status change not permitted
           | LINK_CONFLICT              | Event already on another open invoice
           | CURRENCY_MISMATCH          | Rate source priced in other currency
-----------|----------------------------|--------------------------------------
Numbering  | DUPLICATE_INVOICE_NUMBER   | Manual number already used by issuer
           | NUMBER_RESERVATION_FAILED  | Counter increment failed (retryable)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. PARTIAL LINK FAILURES:

    try:
        result = manager.create_invoice(...)
    except LinkConflictError as e:
        for rejection in e.rejections:
            show(rejection.event_id, rejection.reason, rejection.invoice_id)

2. RETRYABLE RESERVATION FAILURES:

    except NumberReservationFailedError as e:
        # The manager already retried e.attempts times; a fresh request
        # will reserve a NEW number.  The failed one is never reused.
        ...
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Entity-related exceptions


class EntityError(BillingKernelError):
    """Base exception for billing entity errors."""

    code: str = "ENTITY_ERROR"


class EntityNotFoundError(EntityError):
    """Billing entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Billing entity not found: {entity_id}")


class InvalidEntityTypeError(EntityError):
    """Operation is not valid for this kind of billing entity."""

    code: str = "INVALID_ENTITY_TYPE"

    def __init__(self, entity_id: str, entity_type: str, expected: str):
        self.entity_id = entity_id
        self.entity_type = entity_type
        self.expected = expected
        super().__init__(
            f"Billing entity {entity_id} is a {entity_type}, expected {expected}"
        )


class InvalidTierConfigError(EntityError):
    """Rate configuration was rejected when it was stored."""

    code: str = "INVALID_TIER_CONFIG"

    def __init__(self, reason: str, entity_id: str | None = None):
        self.reason = reason
        self.entity_id = entity_id
        super().__init__(f"Invalid rate configuration: {reason}")


# Event-related exceptions


class EventError(BillingKernelError):
    """Base exception for calendar event errors."""

    code: str = "EVENT_ERROR"


class EventNotFoundError(EventError):
    """Event with given ID was not found."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class NotRedirectedError(EventError):
    """Revert requested for an event that is not billed to a substitute."""

    code: str = "EVENT_NOT_REDIRECTED"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} is not redirected to a substitute")


# Invoice-related exceptions


class InvoiceError(BillingKernelError):
    """Base exception for invoice lifecycle errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvoiceLockedError(InvoiceError):
    """Invoice has reached a locked status and can no longer be edited."""

    code: str = "INVOICE_LOCKED"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Invoice {invoice_id} is {status} and cannot be modified")


class InvalidStatusTransitionError(InvoiceError):
    """Requested invoice status change is not permitted."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id} cannot move from {from_status} to {to_status}"
        )


class LinkConflictError(InvoiceError):
    """
    One or more events could not be linked to the invoice.

    ``rejections`` holds one entry per event (an object exposing
    ``event_id``, ``reason`` and ``invoice_id``), so callers can report
    every conflict at once and decide whether to retry with the
    non-conflicting subset.
    """

    code: str = "LINK_CONFLICT"

    def __init__(self, rejections: tuple, invoice_id: str | None = None):
        self.rejections = tuple(rejections)
        self.invoice_id = invoice_id
        event_ids = ", ".join(str(r.event_id) for r in self.rejections)
        super().__init__(
            f"{len(self.rejections)} event(s) could not be linked: {event_ids}"
        )


class CurrencyMismatchError(InvoiceError):
    """An event's rate source is priced in a different currency than the invoice."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str, event_id: str | None = None):
        self.expected = expected
        self.actual = actual
        self.event_id = event_id
        super().__init__(
            f"Currency mismatch for event {event_id}: expected {expected}, got {actual}"
        )


# Numbering-related exceptions


class NumberingError(BillingKernelError):
    """Base exception for invoice numbering errors."""

    code: str = "NUMBERING_ERROR"


class DuplicateInvoiceNumberError(NumberingError):
    """Invoice number is already used by this issuer."""

    code: str = "DUPLICATE_INVOICE_NUMBER"

    def __init__(self, issuer_id: str, invoice_number: str):
        self.issuer_id = issuer_id
        self.invoice_number = invoice_number
        super().__init__(
            f"Invoice number {invoice_number} is already used by issuer {issuer_id}"
        )


class NumberReservationFailedError(NumberingError):
    """
    The per-issuer counter could not be advanced.

    Transient and retryable.  A retry always reserves a NEW number.
    """

    code: str = "NUMBER_RESERVATION_FAILED"

    def __init__(self, issuer_id: str, reason: str, attempts: int = 1):
        self.issuer_id = issuer_id
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Could not reserve invoice number for issuer {issuer_id} "
            f"after {attempts} attempt(s): {reason}"
        )
