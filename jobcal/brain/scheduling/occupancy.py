"""
Per-pass occupancy index.

Each occupied date maps to the furthest end of whatever reserved it, so a
conflicting candidate can jump past a whole placement in one step. Hold gaps
are kept as half-open ranges instead of expanded days, so a hold years out
reserves its whole gap.
"""
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple


class OccupancyTracker:
    """Occupied dates and their conflict ends for one scheduling pass."""

    def __init__(self):
        self._occupied: Set[date] = set()
        self._end_by_day: Dict[date, date] = {}
        self._gaps: List[Tuple[date, date]] = []

    def occupy(self, days: Iterable[date], end: date) -> None:
        """Mark days occupied, raising each day's mapped end to `end` if later."""
        for day in days:
            self._occupied.add(day)
            previous = self._end_by_day.get(day)
            if previous is None or end > previous:
                self._end_by_day[day] = end

    def occupy_day(self, day: date) -> None:
        """Mark a single day occupied, mapped to itself (block-outs)."""
        self.occupy([day], day)

    def reserve(self, start: date, end_exclusive: date) -> int:
        """
        Reserve every calendar day in [start, end_exclusive), weekends included.
        Reserved days map to themselves as their conflict end.

        Returns:
            int: number of days reserved
        """
        if end_exclusive <= start:
            return 0
        self._gaps.append((start, end_exclusive))
        return (end_exclusive - start).days

    def in_gap(self, day: date) -> bool:
        return any(start <= day < end for start, end in self._gaps)

    def is_occupied(self, day: date) -> bool:
        return day in self._occupied or self.in_gap(day)

    def conflict_end(self, day: date) -> date:
        return self._end_by_day.get(day, day)

    def first_conflict(self, days: Iterable[date]) -> Optional[date]:
        for day in days:
            if self.is_occupied(day):
                return day
        return None

    def __len__(self):
        """Days occupied by placements and block-outs; gap ranges are not counted."""
        return len(self._occupied)

    def __contains__(self, day):
        return self.is_occupied(day)
