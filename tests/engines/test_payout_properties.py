"""
Property-based tests for the payout engine (Hypothesis).

Properties:
- Tiered payouts never decrease as attendance grows, for tier rates that
  are non-decreasing and a default rate not above the first tier.
- Per-student payouts without a minimum are linear in attendance.
- compute_total_payout does not depend on event order.
- A line amount is within half a minor unit of the exact payout.
- Past the last tier's max the default rate applies.
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from billing_engines.payout import compute_payout, compute_total_payout, round_line
from billing_kernel.domain.dtos import Attendance, BillingEntityInfo, EntityType, EventInfo
from billing_kernel.domain.rate_config import PerStudentRate, RateTier, TieredRate

START = datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc)

rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2)
counts = st.integers(min_value=0, max_value=200)


@st.composite
def tiered_configs(draw):
    """Strictly increasing thresholds, non-decreasing rates."""
    thresholds = sorted(
        draw(st.sets(st.integers(min_value=0, max_value=100), min_size=1, max_size=6))
    )
    tier_rates = sorted(draw(st.lists(rates, min_size=len(thresholds), max_size=len(thresholds))))
    default = draw(st.one_of(st.none(), st.decimals(min_value=Decimal("0"), max_value=tier_rates[0], places=2)))
    return TieredRate(
        tiers=tuple(RateTier(threshold=t, rate=r) for t, r in zip(thresholds, tier_rates)),
        default_rate=default,
    )


def _event(onsite: int, online: int) -> EventInfo:
    return EventInfo(
        id=uuid4(),
        issuer_id=uuid4(),
        title="Class",
        start_time=START,
        end_time=START,
        attendance=Attendance(onsite=onsite, online=online),
    )


class TestTieredMonotonicity:
    @given(config=tiered_configs(), a=counts, b=counts)
    @settings(max_examples=200, deadline=None)
    def test_more_attendees_never_pay_less(self, config, a, b):
        """payout(min(a, b)) <= payout(max(a, b))."""
        low, high = sorted((a, b))
        low_pay = compute_payout(Attendance(onsite=low), config, "EUR").amount
        high_pay = compute_payout(Attendance(onsite=high), config, "EUR").amount
        assert low_pay <= high_pay


class TestPerStudentLinearity:
    @given(rate=rates, onsite=counts, online=counts)
    @settings(max_examples=200, deadline=None)
    def test_product_of_attendance_and_rate(self, rate, onsite, online):
        """Without a minimum the payout is attendance times rate."""
        result = compute_payout(
            Attendance(onsite=onsite, online=online),
            PerStudentRate(rate_per_student=rate),
            "EUR",
        )
        assert result.amount.amount == (onsite + online) * rate


class TestTotalOrderIndependence:
    @given(
        rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("50"), places=3),
        attendance=st.lists(st.tuples(counts, counts), min_size=1, max_size=20),
        data=st.data(),
    )
    @settings(max_examples=100, deadline=None)
    def test_permutation_gives_same_total(self, rate, attendance, data):
        """Reordering events does not change the exact or rounded total."""
        studio = BillingEntityInfo(
            id=uuid4(),
            issuer_id=uuid4(),
            entity_name="Flow Studio",
            entity_type=EntityType.STUDIO,
            currency="EUR",
            rate_config=PerStudentRate(rate_per_student=rate),
        )
        events = [_event(onsite, online) for onsite, online in attendance]
        shuffled = data.draw(st.permutations(events))

        first = compute_total_payout(events, studio)
        second = compute_total_payout(shuffled, studio)
        assert first.exact == second.exact
        assert first.total == second.total


class TestLineRounding:
    @given(
        rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("50"), places=4),
        onsite=counts,
    )
    @settings(max_examples=200, deadline=None)
    def test_line_within_half_minor_unit(self, rate, onsite):
        payout = compute_payout(Attendance(onsite=onsite), PerStudentRate(rate_per_student=rate), "EUR")
        line = round_line(payout)
        assert abs(line.amount - payout.amount.amount) <= Decimal("0.005")
        assert line.amount == line.amount.quantize(Decimal("0.01"))


class TestTierGap:
    @given(config=tiered_configs(), count=counts)
    @settings(max_examples=200, deadline=None)
    def test_count_outside_every_tier_pays_default(self, config, count):
        """Capping the last tier at its own threshold pays the default above it."""
        last = config.tiers[-1]
        capped = replace(
            config,
            tiers=config.tiers[:-1] + (replace(last, max_students=last.threshold),),
        )
        paid = compute_payout(Attendance(onsite=count), capped, "EUR").amount.amount
        if count > last.threshold:
            assert paid == (config.default_rate or Decimal("0"))
        else:
            assert paid == compute_payout(Attendance(onsite=count), config, "EUR").amount.amount
