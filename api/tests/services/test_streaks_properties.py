"""Property-based tests for services/streaks.py using Hypothesis.

These tests verify properties that must always hold, regardless of the
calendar. They complement the example-based tests by exploring edge cases
automatically.
"""

from datetime import date, timedelta

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from services.streaks import MAX_STREAK_DAYS, calculate_streak

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit

TODAY = date(2026, 1, 17)

# =============================================================================
# Custom Strategies
# =============================================================================


@st.composite
def calendars(draw, max_days_ago: int = 400) -> dict[date, bool]:
    """Generate sparse calendars around TODAY with arbitrary activity."""
    offsets = draw(
        st.dictionaries(
            st.integers(min_value=-3, max_value=max_days_ago),
            st.booleans(),
            max_size=120,
        )
    )
    return {TODAY - timedelta(days=offset): active for offset, active in offsets.items()}


@st.composite
def older_history(draw, start: int) -> dict[date, bool]:
    """Arbitrary entries strictly older than ``start`` days ago."""
    offsets = draw(
        st.dictionaries(
            st.integers(min_value=start + 1, max_value=start + 200),
            st.booleans(),
            max_size=60,
        )
    )
    return {TODAY - timedelta(days=offset): active for offset, active in offsets.items()}


hypothesis_settings = settings(
    max_examples=100,
    suppress_health_check=[HealthCheck.too_slow],
)


# =============================================================================
# Property Tests
# =============================================================================


class TestStreakInvariants:
    @given(calendar=calendars())
    @hypothesis_settings
    def test_streak_is_bounded(self, calendar: dict[date, bool]):
        streak = calculate_streak(calendar, TODAY)
        assert 0 <= streak <= MAX_STREAK_DAYS

    @given(calendar=calendars())
    @hypothesis_settings
    def test_streak_never_exceeds_active_days(self, calendar: dict[date, bool]):
        streak = calculate_streak(calendar, TODAY)
        assert streak <= sum(1 for active in calendar.values() if active)

    @given(calendar=calendars())
    @hypothesis_settings
    def test_deterministic(self, calendar: dict[date, bool]):
        assert calculate_streak(calendar, TODAY) == calculate_streak(
            dict(calendar), TODAY
        )


class TestStreakRuns:
    @given(
        n=st.integers(min_value=1, max_value=MAX_STREAK_DAYS),
        data=st.data(),
    )
    @hypothesis_settings
    def test_run_ending_today(self, n: int, data: st.DataObject):
        """A run of n active days ending today, followed by a break, gives n."""
        calendar = data.draw(older_history(n))
        calendar.update({TODAY - timedelta(days=i): True for i in range(n)})
        calendar[TODAY - timedelta(days=n)] = False
        assert calculate_streak(calendar, TODAY) == n

    @given(
        n=st.integers(min_value=1, max_value=MAX_STREAK_DAYS - 1),
        data=st.data(),
    )
    @hypothesis_settings
    def test_run_ending_yesterday_with_today_missing(
        self, n: int, data: st.DataObject
    ):
        """Today not yet reported: the run ending yesterday still counts."""
        calendar = data.draw(older_history(n + 1))
        calendar.update({TODAY - timedelta(days=i): True for i in range(1, n + 1)})
        calendar[TODAY - timedelta(days=n + 1)] = False
        assert calculate_streak(calendar, TODAY) == n

    @given(
        today_state=st.sampled_from(["missing", "inactive"]),
        data=st.data(),
    )
    @hypothesis_settings
    def test_inactive_yesterday_zeroes_streak(
        self, today_state: str, data: st.DataObject
    ):
        calendar = data.draw(older_history(1))
        calendar[TODAY - timedelta(days=1)] = False
        if today_state == "inactive":
            calendar[TODAY] = False
        assert calculate_streak(calendar, TODAY) == 0
