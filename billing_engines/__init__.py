"""
Pure calculation engines for billing: pattern matching, payouts and
invoice number formatting.  No I/O; every engine call is traced.
"""

from billing_engines.numbering_format import (
    NumberFormat,
    abbreviate_payer,
    format_invoice_number,
)
from billing_engines.patterns import (
    PatternConflict,
    PatternEntry,
    PatternMatch,
    TagRuleEntry,
    find_all_conflicts,
    find_conflicts,
    match_owners,
    match_tags,
    patterns_overlap,
    preview_pattern,
)
from billing_engines.payout import (
    TotalPayout,
    compute_payout,
    compute_total_payout,
    rate_source_for,
    round_line,
)
from billing_engines.tracer import traced_engine

__all__ = [
    "NumberFormat",
    "PatternConflict",
    "PatternEntry",
    "PatternMatch",
    "TagRuleEntry",
    "TotalPayout",
    "abbreviate_payer",
    "compute_payout",
    "compute_total_payout",
    "find_all_conflicts",
    "find_conflicts",
    "format_invoice_number",
    "match_owners",
    "match_tags",
    "patterns_overlap",
    "preview_pattern",
    "rate_source_for",
    "round_line",
    "traced_engine",
]
