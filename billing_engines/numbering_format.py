"""
billing_engines.numbering_format -- Invoice number formatting.

Responsibility:
    Turn a reserved counter value into the issuer-facing invoice number
    ``{prefix}-{ABBR}-{YYYY}-{counter}``.  Pure string formatting; the
    counter itself is advanced by the numbering service.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Empty parts are omitted together with their separator.
    - The counter is zero-padded to ``pad_width`` and never truncated, so
      numbers keep sorting correctly within a width.
    - Only ASCII letters and digits reach the payer abbreviation.

Usage:
    format_invoice_number(
        NumberFormat(prefix="RE", pad_width=4),
        counter=7,
        payer_name="Flow Studio Berlin",
        fiscal_year=2025,
    )
    # -> "RE-FSB-2025-0007"
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_WORD_RE = re.compile(r"[A-Za-z0-9]+")
_PREFIX_RE = re.compile(r"[^A-Za-z0-9_]+")


@dataclass(frozen=True)
class NumberFormat:
    """How an issuer's invoice numbers are assembled."""

    prefix: str = ""
    include_payer_abbreviation: bool = False
    abbreviation_length: int = 3
    include_year: bool = False
    pad_width: int = 4
    separator: str = "-"


def abbreviate_payer(name: str | None, length: int = 3) -> str:
    """
    Uppercase abbreviation of a payer name.

    Multi-word names use their initials ("Flow Studio Berlin" -> "FSB");
    single words use their leading letters ("Yogaloft" -> "YOG").
    """
    if not name or length <= 0:
        return ""
    words = _WORD_RE.findall(name)
    if not words:
        return ""
    if len(words) == 1:
        return words[0][:length].upper()
    return "".join(w[0] for w in words)[:length].upper()


def clean_prefix(prefix: str | None) -> str:
    """Strip separators and whitespace a user may have typed into the prefix."""
    if not prefix:
        return ""
    return _PREFIX_RE.sub("", prefix.strip())


def format_invoice_number(
    fmt: NumberFormat,
    counter: int,
    payer_name: str | None = None,
    fiscal_year: int | None = None,
) -> str:
    """
    Assemble an invoice number.

    Raises:
        ValueError: If counter is not positive.
    """
    if counter < 1:
        raise ValueError(f"Invoice counter must be positive, got {counter}")

    parts: list[str] = []
    prefix = clean_prefix(fmt.prefix)
    if prefix:
        parts.append(prefix)
    if fmt.include_payer_abbreviation:
        abbreviation = abbreviate_payer(payer_name, fmt.abbreviation_length)
        if abbreviation:
            parts.append(abbreviation)
    if fmt.include_year and fiscal_year is not None:
        parts.append(f"{fiscal_year:04d}")
    parts.append(str(counter).zfill(max(fmt.pad_width, 1)))
    return fmt.separator.join(parts)
