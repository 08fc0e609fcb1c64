"""
Billing configuration schema.

Typed, frozen view of a billing configuration set.  YAML files are parsed
into these types by the loader; services receive a BillingConfig and never
read files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NumberingScope(str, Enum):
    """How invoice counters are partitioned per issuer."""

    ISSUER = "issuer"  # one running sequence per issuer
    FISCAL_YEAR = "fiscal_year"  # restart every year, year shown in the number


@dataclass(frozen=True)
class NumberingConfig:
    default_prefix: str = "RE"
    pad_width: int = 4
    scope: NumberingScope = NumberingScope.FISCAL_YEAR
    include_payer_abbreviation: bool = False
    abbreviation_length: int = 3


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for invoice number reservation."""

    max_attempts: int = 3
    backoff_seconds: float = 0.5


@dataclass(frozen=True)
class MatchingConfig:
    # 0 disables the guard
    min_pattern_length: int = 0
    ambiguity_tiebreak: str = "longest_pattern"


@dataclass(frozen=True)
class DocumentConfig:
    vat_exemption_note: str = (
        "Gemäß § 19 UStG wird keine Umsatzsteuer berechnet."
    )


@dataclass(frozen=True)
class BillingConfig:
    """Complete billing configuration."""

    config_id: str = "default"
    version: int = 1
    default_currency: str = "EUR"
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)
    checksum: str = ""
