"""
Scheduling module for placing jobs on the crew calendar.

This module provides:
- Configuration for the placement pass (SchedulingConfig)
- Normalized job/block-out records and the pass result types
- Span calculation from fractional labor estimates
- The greedy sequential scheduler
- Queue rank ordering with fixed hold slots
- Month/day projections for the calendar UI
"""

from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.records import (
    BlockOutRecord,
    JobRecord,
    JobStatus,
    Placement,
    PlacementKind,
    ScheduleResult,
    SchedulingFailure,
)
from jobcal.brain.scheduling.calculator import span_days, round_up_to_half
from jobcal.brain.scheduling.calendar import WorkCalendar
from jobcal.brain.scheduling.engine import GreedyScheduler, schedule
from jobcal.brain.scheduling.ordering import MoveOutcome, QueueOrderingEngine, RankUpdate
from jobcal.brain.scheduling.projection import (
    day_detail,
    jobs_by_day,
    jobs_for_month,
    month_bounds,
    queue_view,
)

__all__ = [
    'SchedulingConfig',
    'BlockOutRecord',
    'JobRecord',
    'JobStatus',
    'Placement',
    'PlacementKind',
    'ScheduleResult',
    'SchedulingFailure',
    'span_days',
    'round_up_to_half',
    'WorkCalendar',
    'GreedyScheduler',
    'schedule',
    'MoveOutcome',
    'QueueOrderingEngine',
    'RankUpdate',
    'day_detail',
    'jobs_by_day',
    'jobs_for_month',
    'month_bounds',
    'queue_view',
]
