"""
Tests for the pattern matcher.

Bidirectional, case-insensitive containment; non-exclusive matches;
overlap warnings between owners; tag keywords.
"""

from uuid import uuid4

from billing_engines.patterns import (
    PatternEntry,
    TagRuleEntry,
    find_all_conflicts,
    find_conflicts,
    match_owners,
    match_tags,
    patterns_overlap,
    preview_pattern,
)


class TestPatternsOverlap:
    def test_pattern_in_text(self):
        """A pattern contained in the location matches."""
        assert patterns_overlap("Flow Studio", "Flow Studio Berlin, Room 2")

    def test_text_in_pattern(self):
        """A short location contained in a longer pattern also matches."""
        assert patterns_overlap("Flow Studio Berlin", "flow studio")

    def test_case_insensitive(self):
        assert patterns_overlap("YOGALOFT", "yogaloft kreuzberg")

    def test_blank_never_matches(self):
        """Blank text or pattern matches nothing."""
        assert not patterns_overlap("", "Flow Studio")
        assert not patterns_overlap("Flow Studio", "   ")
        assert not patterns_overlap(None, "Flow Studio")

    def test_minimum_length_guard(self):
        """With a guard, short values never overlap."""
        assert patterns_overlap("A", "Alpha Studio")
        assert not patterns_overlap("A", "Alpha Studio", min_pattern_length=3)


class TestMatchOwners:
    """Every matching owner is returned with its longest hit."""

    def test_single_match(self):
        flow = uuid4()
        entries = [
            PatternEntry(flow, "Flow Studio", ("Flow Studio",)),
            PatternEntry(uuid4(), "Yogaloft", ("Yogaloft",)),
        ]
        matches = match_owners("Flow Studio Berlin", entries)
        assert [m.owner_id for m in matches] == [flow]
        assert matches[0].pattern == "Flow Studio"

    def test_multiple_owners_match(self):
        """Matching is non-exclusive."""
        a, b = uuid4(), uuid4()
        entries = [
            PatternEntry(a, "Flow Studio", ("Flow Studio",)),
            PatternEntry(b, "Flow Studio Berlin", ("Flow Studio Berlin",)),
        ]
        matches = match_owners("Flow Studio Berlin, Room 2", entries)
        assert {m.owner_id for m in matches} == {a, b}

    def test_longest_pattern_per_owner(self):
        """An owner with several hits reports its longest pattern."""
        owner = uuid4()
        entries = [PatternEntry(owner, "Flow", ("Flow", "Flow Studio Berlin", "Berlin"))]
        matches = match_owners("Flow Studio Berlin", entries)
        assert len(matches) == 1
        assert matches[0].pattern == "Flow Studio Berlin"

    def test_no_location(self):
        entries = [PatternEntry(uuid4(), "Flow Studio", ("Flow Studio",))]
        assert match_owners(None, entries) == []
        assert match_owners("  ", entries) == []

    def test_deterministic(self):
        """Identical inputs give identical output."""
        entries = [
            PatternEntry(uuid4(), "A", ("Studio",)),
            PatternEntry(uuid4(), "B", ("Studio Berlin",)),
        ]
        assert match_owners("Studio Berlin", entries) == match_owners("Studio Berlin", entries)


class TestConflicts:
    """Overlaps are warnings between DIFFERENT owners."""

    def test_flow_studio_vs_flow_studio_berlin(self):
        """'Flow Studio Berlin' overlaps an existing 'Flow Studio'."""
        existing = uuid4()
        entries = [PatternEntry(existing, "Flow Studio", ("Flow Studio",))]
        conflicts = find_conflicts(None, "Flow Studio Berlin", entries)
        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.conflicting_owner_id == existing
        assert conflict.conflicting_pattern == "Flow Studio"
        assert "Flow Studio Berlin" in conflict.message
        assert "Flow Studio" in conflict.message

    def test_own_patterns_ignored(self):
        """An owner does not conflict with itself."""
        owner = uuid4()
        entries = [PatternEntry(owner, "Flow Studio", ("Flow Studio",))]
        assert find_conflicts(owner, "Flow Studio Berlin", entries) == []

    def test_all_conflicts_deduplicates_patterns(self):
        """Repeated proposed patterns are checked once."""
        entries = [PatternEntry(uuid4(), "Flow Studio", ("Flow Studio",))]
        conflicts = find_all_conflicts(
            None, ["Flow Studio Berlin", "flow studio berlin", ""], entries
        )
        assert len(conflicts) == 1

    def test_disjoint_patterns(self):
        entries = [PatternEntry(uuid4(), "Yogaloft", ("Yogaloft",))]
        assert find_all_conflicts(None, ["Flow Studio"], entries) == []


class TestPreviewPattern:
    def test_preview_lists_claimed_locations(self):
        """Preview returns the candidates a pattern would claim, in order."""
        locations = ["Flow Studio Berlin", "Yogaloft", "flow studio, Room 2", "Flow"]
        assert preview_pattern("Flow Studio", locations) == [
            "Flow Studio Berlin",
            "flow studio, Room 2",
            "Flow",
        ]


class TestMatchTags:
    """Tag keywords match one way: keyword inside text."""

    def test_title_and_location_keywords(self):
        rules = [
            TagRuleEntry("prenatal", keywords=("prenatal",)),
            TagRuleEntry("online", location_keywords=("zoom",)),
            TagRuleEntry("yin", keywords=("yin",)),
        ]
        assert match_tags("Prenatal Flow", "Zoom Room", rules) == ["prenatal", "online"]

    def test_keyword_not_matched_in_reverse(self):
        """A title contained in a keyword does not tag."""
        rules = [TagRuleEntry("restorative", keywords=("restorative yoga",))]
        assert match_tags("Restorative", None, rules) == []

    def test_slugs_not_repeated(self):
        rules = [
            TagRuleEntry("flow", keywords=("flow",)),
            TagRuleEntry("flow", location_keywords=("flow studio",)),
        ]
        assert match_tags("Vinyasa Flow", "Flow Studio", rules) == ["flow"]
