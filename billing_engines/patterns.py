"""
billing_engines.patterns -- Pattern matcher for studio claims and tag rules.

Responsibility:
    Match free-text event attributes (location, title) against pattern sets
    owned by billing entities or tag rules, detect overlapping pattern
    claims between owners, and preview which locations a pattern would
    claim.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by the entity resolver (studio claims), the entity service
    (conflict warnings on create/update) and tag matching.

Invariants enforced:
    - Matching is case-insensitive substring containment in EITHER
      direction: pattern in text OR text in pattern.
    - Blank text and blank patterns never match anything.
    - Matching is non-exclusive: every owner whose set matches is returned;
      tie-breaking is the caller's decision.
    - Conflicts are warnings.  Nothing here rejects a pattern.
    - Purity: no clock access, no I/O; identical inputs give identical
      outputs in identical order.

Failure modes:
    - None raised.  Unusable input (None, blanks) simply yields no match.

Usage:
    from billing_engines.patterns import PatternEntry, match_owners, find_conflicts

    entries = [PatternEntry(studio_id, "Flow Studio", ("Flow Studio",))]
    matches = match_owners("Flow Studio Berlin, Room 2", entries)
    conflicts = find_conflicts(other_id, "Flow Studio Berlin", entries)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from billing_engines.tracer import traced_engine


@dataclass(frozen=True)
class PatternEntry:
    """An owner (studio) and the patterns it uses to claim events."""

    owner_id: UUID
    owner_name: str
    patterns: tuple[str, ...]


@dataclass(frozen=True)
class PatternMatch:
    """One owner whose pattern set matched; ``pattern`` is its longest hit."""

    owner_id: UUID
    owner_name: str
    pattern: str


@dataclass(frozen=True)
class PatternConflict:
    """
    Non-blocking warning: ``pattern`` proposed for ``owner_id`` overlaps
    ``conflicting_pattern`` already used by another owner.
    """

    owner_id: UUID | None
    pattern: str
    conflicting_owner_id: UUID
    conflicting_owner_name: str
    conflicting_pattern: str

    @property
    def message(self) -> str:
        return (
            f'Pattern "{self.pattern}" overlaps "{self.conflicting_pattern}" '
            f"used by {self.conflicting_owner_name}"
        )


@dataclass(frozen=True)
class TagRuleEntry:
    """Keyword rule for tagging events."""

    tag_slug: str
    keywords: tuple[str, ...] = ()
    location_keywords: tuple[str, ...] = ()


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def _usable(pattern: str, min_pattern_length: int) -> bool:
    return bool(pattern) and len(pattern) >= min_pattern_length


def patterns_overlap(a: str | None, b: str | None, min_pattern_length: int = 0) -> bool:
    """
    Bidirectional containment test used for matching and conflicts.

    True when the normalized values are non-blank and one contains the other.
    Values shorter than ``min_pattern_length`` never overlap (0 disables the
    guard).
    """
    left = _normalize(a)
    right = _normalize(b)
    if not _usable(left, min_pattern_length) or not _usable(right, min_pattern_length):
        return False
    return left in right or right in left


@traced_engine("patterns", "1.0", fingerprint_fields=("text",))
def match_owners(
    text: str | None,
    entries: Sequence[PatternEntry],
    min_pattern_length: int = 0,
) -> list[PatternMatch]:
    """
    Every owner whose pattern set matches ``text``.

    Returns one PatternMatch per matching owner, carrying that owner's
    longest matching pattern.  Order follows ``entries``.
    """
    if not _normalize(text):
        return []

    matches: list[PatternMatch] = []
    for entry in entries:
        hits = [
            p for p in entry.patterns
            if patterns_overlap(p, text, min_pattern_length)
        ]
        if hits:
            best = max(hits, key=lambda p: (len(p.strip()), p))
            matches.append(PatternMatch(entry.owner_id, entry.owner_name, best.strip()))
    return matches


def find_conflicts(
    owner_id: UUID | None,
    pattern: str,
    entries: Sequence[PatternEntry],
    min_pattern_length: int = 0,
) -> list[PatternConflict]:
    """
    Patterns of OTHER owners that overlap the proposed ``pattern``.

    ``owner_id`` may be None for an entity that does not exist yet.
    """
    conflicts: list[PatternConflict] = []
    for entry in entries:
        if owner_id is not None and entry.owner_id == owner_id:
            continue
        for existing in entry.patterns:
            if patterns_overlap(pattern, existing, min_pattern_length):
                conflicts.append(
                    PatternConflict(
                        owner_id=owner_id,
                        pattern=pattern.strip(),
                        conflicting_owner_id=entry.owner_id,
                        conflicting_owner_name=entry.owner_name,
                        conflicting_pattern=existing.strip(),
                    )
                )
    return conflicts


@traced_engine("patterns", "1.0", fingerprint_fields=("owner_id", "patterns"))
def find_all_conflicts(
    owner_id: UUID | None,
    patterns: Sequence[str],
    entries: Sequence[PatternEntry],
    min_pattern_length: int = 0,
) -> list[PatternConflict]:
    """Conflicts for a whole proposed pattern set, in pattern order."""
    conflicts: list[PatternConflict] = []
    seen: set[str] = set()
    for pattern in patterns:
        key = _normalize(pattern)
        if not key or key in seen:
            continue
        seen.add(key)
        conflicts.extend(find_conflicts(owner_id, pattern, entries, min_pattern_length))
    return conflicts


def preview_pattern(
    pattern: str,
    candidates: Sequence[str],
    min_pattern_length: int = 0,
) -> list[str]:
    """Which candidate strings (e.g. distinct event locations) ``pattern`` would claim."""
    return [c for c in candidates if patterns_overlap(pattern, c, min_pattern_length)]


def match_tags(
    title: str | None,
    location: str | None,
    rules: Sequence[TagRuleEntry],
) -> list[str]:
    """
    Tag slugs whose keywords occur in the title or whose location keywords
    occur in the location.

    Tag keywords are one-directional (keyword contained in text).  Result
    order follows ``rules``; slugs are not repeated.
    """
    title_text = _normalize(title)
    location_text = _normalize(location)

    slugs: list[str] = []
    for rule in rules:
        keyword_hit = bool(title_text) and any(
            _normalize(k) and _normalize(k) in title_text for k in rule.keywords
        )
        location_hit = bool(location_text) and any(
            _normalize(k) and _normalize(k) in location_text for k in rule.location_keywords
        )
        if (keyword_hit or location_hit) and rule.tag_slug not in slugs:
            slugs.append(rule.tag_slug)
    return slugs
