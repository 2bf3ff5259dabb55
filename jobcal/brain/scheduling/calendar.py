"""
Day classification for the scheduler.

Decides whether a date is a working day, globally (weekends never work) or
for a job's weekend policy, and walks forward to the next one.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set
import logging

from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.records import BlockOutRecord
from jobcal.exceptions import CalendarExhaustedError

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def expand_range(start: date, end: date, limit: int = SchedulingConfig.MAX_RANGE_DAYS) -> List[date]:
    """Every date in the inclusive range, at most `limit` of them."""
    days = []
    current = start
    while current <= end and len(days) < limit:
        days.append(current)
        current += ONE_DAY
    return days


def is_weekend(day: date) -> bool:
    return day.weekday() >= SchedulingConfig.SATURDAY


class WorkCalendar:
    """Working-day rules over a fixed set of block-outs."""

    def __init__(self, block_outs: Optional[Iterable[BlockOutRecord]] = None,
                 max_scan_days: int = SchedulingConfig.MAX_WORKING_DAY_SCAN):
        self.block_outs: List[BlockOutRecord] = list(block_outs or [])
        self.max_scan_days = max_scan_days
        self._blocked: Set[date] = set()
        for block in self.block_outs:
            self._blocked.update(expand_range(block.start_date, block.end_date))

    @property
    def blocked_dates(self) -> Set[date]:
        return set(self._blocked)

    def is_blocked_out(self, day: date) -> bool:
        return day in self._blocked

    def is_working_day(self, day: date, allow_saturday: bool = False, allow_sunday: bool = False) -> bool:
        """
        Check a date against block-outs and a weekend policy.

        Args:
            day: Date to check
            allow_saturday: Job may work Saturdays
            allow_sunday: Job may work Sundays

        Returns:
            bool: False inside a block-out or on a disallowed weekend day
        """
        if day in self._blocked:
            return False
        weekday = day.weekday()
        if weekday == SchedulingConfig.SATURDAY:
            return allow_saturday
        if weekday == SchedulingConfig.SUNDAY:
            return allow_sunday
        return True

    def is_blocked_day(self, day: date) -> bool:
        """Policy-free variant: weekends and block-outs are never working days."""
        return is_weekend(day) or day in self._blocked

    def next_working_day(self, day: date, allow_saturday: bool = False, allow_sunday: bool = False) -> date:
        """
        Smallest date >= day that is a working day for the policy.

        Raises:
            CalendarExhaustedError: if none is found within max_scan_days
        """
        current = day
        for _ in range(self.max_scan_days):
            if self.is_working_day(current, allow_saturday, allow_sunday):
                return current
            current += ONE_DAY
        raise CalendarExhaustedError(day, self.max_scan_days)

    def working_day_sequence(self, start: date, count: int,
                             allow_saturday: bool = False, allow_sunday: bool = False) -> List[date]:
        """
        First `count` working days at or after next_working_day(start).

        Raises:
            CalendarExhaustedError: if the scan runs past its bound
        """
        days: List[date] = []
        current = self.next_working_day(start, allow_saturday, allow_sunday)
        while len(days) < count:
            days.append(current)
            if len(days) < count:
                current = self.next_working_day(current + ONE_DAY, allow_saturday, allow_sunday)
        return days

    def blocked_days_index(self) -> Dict[date, List[BlockOutRecord]]:
        """Map each blocked date to the block-outs covering it."""
        index: Dict[date, List[BlockOutRecord]] = {}
        for block in self.block_outs:
            for day in expand_range(block.start_date, block.end_date):
                index.setdefault(day, []).append(block)
        return index

    def block_outs_on(self, day: date) -> List[BlockOutRecord]:
        return [block for block in self.block_outs if block.covers(day)]
