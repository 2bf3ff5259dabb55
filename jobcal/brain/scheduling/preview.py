"""
Preview script to show the computed schedule without changing anything.

Runs one scheduling pass against the current database contents, prints the
sold queue (and optionally one month), and can export every placement to CSV.
"""

from datetime import date
from typing import Any, Dict, Optional

import pandas as pd

from jobcal.brain.scheduling.projection import jobs_for_month, queue_view
from jobcal.brain.scheduling.records import ScheduleResult
from jobcal.datetime_utils import parse_iso_date, parse_month
from jobcal.logging_config import get_logger

logger = get_logger(__name__)

PLACEMENT_COLUMNS = [
    'job_id', 'status', 'kind', 'queue_rank', 'start_date', 'end_date',
    'span_days', 'used_saturday', 'used_sunday',
]


def format_date(d: Optional[date]) -> str:
    """Format a date for display, or 'None' if None."""
    if d is None:
        return 'None'
    return d.isoformat()


def placements_frame(result: ScheduleResult) -> pd.DataFrame:
    """
    Flatten a ScheduleResult into a DataFrame, one row per placement.

    Failed jobs are included with empty dates and their reason.
    """
    rows = []
    for placement in result.placements.values():
        rows.append({
            'job_id': placement.job_id,
            'status': placement.status.value,
            'kind': placement.kind.value,
            'queue_rank': placement.queue_rank,
            'start_date': placement.start_date,
            'end_date': placement.end_date,
            'span_days': placement.span_days,
            'used_saturday': placement.used_saturday,
            'used_sunday': placement.used_sunday,
            'failure': None,
        })
    for failure in result.failures.values():
        rows.append({
            'job_id': failure.job_id,
            'failure': failure.reason,
        })

    frame = pd.DataFrame(rows, columns=PLACEMENT_COLUMNS + ['failure'])
    if frame.empty:
        return frame
    return frame.sort_values(['start_date', 'job_id'], na_position='last').reset_index(drop=True)


def print_preview(result: ScheduleResult, month_start: Optional[date] = None):
    """
    Print a formatted view of the sold queue and, optionally, one month.

    Args:
        result: Output of a scheduling pass
        month_start: Any date in the month to list, or None to skip
    """
    queue = queue_view(result)

    print("\n" + "=" * 80)
    print(f"SCHEDULE PREVIEW - today {format_date(result.today)}")
    print("=" * 80)
    print(f"\nPlacements: {len(result.placements)}")
    print(f"Queued (sold): {len(queue)}")
    print(f"Unschedulable: {len(result.failures)}")
    print(f"Block-outs: {len(result.block_outs)}")

    print("\n" + "-" * 80)
    print("SOLD QUEUE")
    print("-" * 80)
    for placement in queue:
        weekend = []
        if placement.used_saturday:
            weekend.append("Sat")
        if placement.used_sunday:
            weekend.append("Sun")
        weekend_str = f"  [{'/'.join(weekend)}]" if weekend else ""
        rank = str(placement.queue_rank) if placement.queue_rank is not None else '-'
        print(
            f"  #{rank:>3}  "
            f"{placement.job_id:<20} {format_date(placement.start_date)} → {format_date(placement.end_date)} "
            f"({placement.span_days}d){weekend_str}"
        )

    if result.failures:
        print("\n" + "-" * 80)
        print("UNSCHEDULABLE")
        print("-" * 80)
        for failure in result.failures.values():
            print(f"  ⚠️  {failure.job_id}: {failure.reason}")

    if month_start is not None:
        month_jobs = jobs_for_month(result.placements.values(), month_start, result.today)
        print("\n" + "-" * 80)
        print(f"MONTH {month_start.strftime('%Y-%m')}")
        print("-" * 80)
        for placement in month_jobs:
            print(
                f"  {format_date(placement.start_date)} → {format_date(placement.end_date)}  "
                f"{placement.job_id} ({placement.status.value})"
            )

    print("\n" + "=" * 80)


def run_preview_script(
    today_str: Optional[str] = None,
    month_str: Optional[str] = None,
    csv_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Run the preview script from command line. Requires an app context.
    Read-only: unranked sold jobs are shown last, not given ranks.

    Args:
        today_str: Optional ISO date string (YYYY-MM-DD) overriding today
        month_str: Optional month (YYYY-MM) to list
        csv_path: Optional path to write every placement as CSV

    Returns:
        dict: the serialized ScheduleResult
    """
    # Imported here so the pure helpers above stay usable without a database
    from jobcal.brain.scheduling.service import SchedulingService

    today = None
    if today_str:
        today = parse_iso_date(today_str)
        if today is None:
            print(f"Warning: Invalid today '{today_str}', using the business date")

    month_start = None
    if month_str:
        month_start = parse_month(month_str)
        if month_start is None:
            print(f"Warning: Invalid month '{month_str}', skipping month listing")

    try:
        result = SchedulingService().compute_schedule(today=today, backfill=False)
        print_preview(result, month_start=month_start)

        if csv_path:
            placements_frame(result).to_csv(csv_path, index=False)
            logger.info("Exported placements", path=csv_path, rows=len(result.placements))
            print(f"\nWrote {csv_path}")

        return result.to_dict()

    except Exception as e:
        logger.error("Error in preview script", error=str(e), exc_info=True)
        print(f"\nError: {e}")
        raise
