"""
Read-only views over a ScheduleResult for the calendar UI.
"""
import calendar as month_calendar
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from jobcal.brain.scheduling.calendar import WorkCalendar
from jobcal.brain.scheduling.records import (
    BlockOutRecord,
    JobStatus,
    Placement,
    PlacementKind,
    ScheduleResult,
)


def month_bounds(month_start: date) -> Tuple[date, date]:
    """First and last day of the month containing month_start."""
    first = month_start.replace(day=1)
    last_day = month_calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


def last_completed(placements: Iterable[Placement], today: date) -> Optional[Placement]:
    """The past placement (end before today) with the latest end date."""
    latest = None
    for placement in placements:
        if placement.end_date < today and (latest is None or placement.end_date > latest.end_date):
            latest = placement
    return latest


def apply_recency_rule(placements: Iterable[Placement], today: date) -> List[Placement]:
    """
    Keep every placement still running or upcoming, plus exactly one past
    placement: the most recently finished. All other history is dropped.
    """
    placements = list(placements)
    keep = last_completed(placements, today)
    return [
        p for p in placements
        if p.end_date >= today or (keep is not None and p.job_id == keep.job_id)
    ]


def _display_order(placement: Placement):
    return (placement.start_date, placement.job_id)


def jobs_for_month(placements: Iterable[Placement], month_start: date, today: date) -> List[Placement]:
    """
    Placements to show for a month.

    Args:
        placements: All placements of a pass
        month_start: Any date in the displayed month
        today: Reference date for the recency rule

    Returns:
        Placements intersecting the month, ordered by start date
    """
    first, last = month_bounds(month_start)
    visible = [p for p in placements if p.status is not JobStatus.VOID]
    recent = apply_recency_rule(visible, today)
    in_month = [p for p in recent if p.intersects(first, last)]
    in_month.sort(key=_display_order)
    return in_month


def jobs_by_day(placements: Iterable[Placement]) -> Dict[date, List[Placement]]:
    """Map each occupied date to the placements on it, ordered by start date."""
    index: Dict[date, List[Placement]] = {}
    for placement in sorted(placements, key=_display_order):
        days = placement.days or (placement.start_date,)
        for day in days:
            index.setdefault(day, []).append(placement)
    return index


def day_detail(day: date, placements: Iterable[Placement], work_calendar: WorkCalendar) -> dict:
    """
    Everything scheduled on one date.

    Returns:
        dict with 'placements' on the day and 'block_outs' covering it
    """
    on_day = jobs_by_day(placements).get(day, [])
    blocks: List[BlockOutRecord] = work_calendar.block_outs_on(day)
    return {
        'date': day,
        'placements': on_day,
        'block_outs': blocks,
        'is_blocked': work_calendar.is_blocked_day(day),
    }


def queue_view(result: ScheduleResult) -> List[Placement]:
    """Sold placements in queue order (rank, then start date)."""
    queued = result.placements_of_kind(PlacementKind.QUEUED)
    queued.sort(key=lambda p: (p.queue_rank is None, p.queue_rank or 0, p.start_date, p.job_id))
    return queued
