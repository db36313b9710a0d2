"""Completion streak arithmetic over YYYY-MM-DD date strings."""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple


def today_str(today: Optional[date] = None) -> str:
    return (today or date.today()).isoformat()


def _parse_dates(dates: Iterable[str]) -> List[date]:
    parsed = set()
    for value in dates:
        try:
            parsed.add(date.fromisoformat(str(value)[:10]))
        except ValueError:
            continue
    return sorted(parsed)


def calc_streak(dates: Iterable[str], today: Optional[date] = None) -> Tuple[int, int]:
    """Return (current_streak, longest_streak).

    The current streak only counts when the latest completion is today or
    yesterday; it then walks back over consecutive days. The longest streak
    is the longest run of consecutive days anywhere in the history.
    """
    days = _parse_dates(dates)
    if not days:
        return 0, 0
    today = today or date.today()

    current = 0
    if days[-1] in (today, today - timedelta(days=1)):
        current = 1
        for prev, curr in zip(reversed(days), reversed(days[:-1])):
            if (prev - curr).days != 1:
                break
            current += 1

    longest = 1
    run = 1
    for prev, curr in zip(days, days[1:]):
        if (curr - prev).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1
    return current, longest


def union_dates(*date_lists: Iterable[str]) -> List[str]:
    merged = set()
    for dates in date_lists:
        merged.update(dates)
    return sorted(merged)


__all__ = ["today_str", "calc_streak", "union_dates"]
