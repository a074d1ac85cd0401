"""Streak calculation utilities."""

from collections.abc import Mapping
from datetime import date, timedelta

# A calendar maps each UTC day to whether it had qualifying activity.
# A missing day is "unknown", which is not the same as False.
ActivityCalendar = Mapping[date, bool]

MAX_STREAK_DAYS = 365


def calculate_streak(calendar: ActivityCalendar, today: date) -> int:
    """Count consecutive active days walking back from ``today``.

    Rules:
    - today missing from the calendar is skipped (upstream may not have
      reported it yet), it neither counts nor ends the streak
    - an active day adds one and the walk continues
    - any other day (inactive, or missing before today) ends the walk
    - the walk stops after MAX_STREAK_DAYS days, capping the result

    Args:
        calendar: Day -> had-activity mapping
        today: The current UTC date

    Returns:
        Streak length, 0 <= streak <= MAX_STREAK_DAYS
    """
    if not calendar:
        return 0

    streak = 0
    for offset in range(MAX_STREAK_DAYS):
        day = today - timedelta(days=offset)
        active = calendar.get(day)

        if active is None and offset == 0:
            continue
        if not active:
            break
        streak += 1

    return streak
