"""
Span calculation module.

Labor is estimated in fractional days but a job occupies whole calendar
days, so every estimate is rounded up to the next half day and then to the
next whole day.
"""

import math
from typing import Optional

from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.records import as_labor_days


def round_up_to_half(labor_days) -> float:
    """
    Round a labor estimate up to the next half day.

    Missing, non-finite or non-positive estimates count as half a day.

    Args:
        labor_days: Raw labor estimate

    Returns:
        float: Estimate in half-day steps (0.5, 1.0, 1.5, ...)
    """
    number = as_labor_days(labor_days)
    if number is None or number <= 0:
        return 1.0 / SchedulingConfig.HALF_DAYS_PER_DAY
    halves = SchedulingConfig.HALF_DAYS_PER_DAY
    return math.ceil(number * halves) / halves


def span_days(labor_days) -> int:
    """
    Number of working days a job occupies.

    Formula: max(1, ceil(round_up_to_half(labor_days)))

    Examples: 1.1 -> 2, 1.6 -> 2, 2.5 -> 3, 0 -> 1

    Args:
        labor_days: Raw labor estimate

    Returns:
        int: Span in whole days (never below 1)
    """
    return max(SchedulingConfig.MIN_SPAN_DAYS, math.ceil(round_up_to_half(labor_days)))


def adjusted_labor_days(current, delta: int) -> int:
    """
    Labor estimate after a manual +/- adjustment from the queue.

    The current estimate is first converted to its span, so adjusting a
    1.25-day job by +1 gives 3 whole days.
    """
    number = as_labor_days(current)
    base = span_days(number if number is not None and number > 0 else 1)
    return max(SchedulingConfig.MIN_SPAN_DAYS, round(base + delta))


def original_labor_days(current, existing_original) -> float:
    """Labor estimate to remember before the first manual adjustment."""
    existing = as_labor_days(existing_original)
    if existing is not None and existing > 0:
        return existing
    number = as_labor_days(current)
    return float(span_days(number if number is not None and number > 0 else 1))


def reset_labor_days(original) -> Optional[int]:
    """Whole-day estimate restored by a reset, or None when there is nothing to restore."""
    number = as_labor_days(original)
    if number is None or number <= 0:
        return None
    return max(SchedulingConfig.MIN_SPAN_DAYS, round(number))
