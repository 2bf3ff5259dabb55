"""
Scheduling configuration module.

Constants for the greedy placement pass. The iteration caps are safety
valves against pathological calendars (everything blocked), not proofs of
termination; a job that hits one is reported as unschedulable.
"""


class SchedulingConfig:
    """
    Configuration for scheduling calculations.
    """

    # Placement attempts per job before it is reported as unschedulable
    MAX_PLACEMENT_ITERATIONS: int = 365

    # Days scanned forward when looking for the next working day
    MAX_WORKING_DAY_SCAN: int = 365

    # Days expanded per block-out record
    MAX_RANGE_DAYS: int = 366

    # Labor is estimated in half-day increments but occupies whole days
    HALF_DAYS_PER_DAY: int = 2

    # Minimum span of any placement
    MIN_SPAN_DAYS: int = 1

    DEFAULT_BLOCK_OUT_DESCRIPTION: str = "Blocked"
    BLOCK_OUT_DESCRIPTION_MAX: int = 120

    # Weekday numbers (date.weekday())
    SATURDAY: int = 5
    SUNDAY: int = 6

    WEEKEND_DAYS = {
        'saturday': 'allow_saturday',
        'sat': 'allow_saturday',
        'sunday': 'allow_sunday',
        'sun': 'allow_sunday',
    }

    @classmethod
    def weekend_field(cls, day: str):
        """
        Map a weekend day name to the job flag it toggles.

        Returns:
            'allow_saturday', 'allow_sunday' or None for unknown names
        """
        if not day:
            return None
        return cls.WEEKEND_DAYS.get(str(day).strip().lower())
