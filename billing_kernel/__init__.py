"""
Billing Kernel

Persistence and domain core for instructor billing:
- Billing entities (studios, substitute teachers) with typed rate configs
- Calendar events with separate payee and rate-source references
- Invoices, event links and per-issuer numbering counters
- Structured logging and typed exceptions
"""

__version__ = "0.1.0"
