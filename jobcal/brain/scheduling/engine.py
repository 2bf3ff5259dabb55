"""
Greedy sequential scheduler.

Places sold jobs one at a time in queue order onto the earliest free run of
working days, then fits pending jobs at their explicit dates into what is
left. Pure: the only state is the OccupancyTracker built for the pass.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from jobcal.brain.scheduling.calculator import span_days
from jobcal.brain.scheduling.calendar import WorkCalendar, expand_range
from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.occupancy import OccupancyTracker
from jobcal.brain.scheduling.ordering import QueueOrderingEngine
from jobcal.brain.scheduling.records import (
    BlockOutRecord,
    JobRecord,
    JobStatus,
    Placement,
    PlacementKind,
    ScheduleResult,
    SchedulingFailure,
)
from jobcal.exceptions import CalendarExhaustedError

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


class PlacementSearchExhausted(Exception):
    """The bounded conflict-skipping loop ran out of attempts."""

    def __init__(self, iterations: int, last_candidate: date):
        self.iterations = iterations
        self.last_candidate = last_candidate
        super().__init__(f"No free window after {iterations} attempts (last candidate {last_candidate.isoformat()})")


@dataclass
class _Window:
    days: List[date]
    iterations: int

    @property
    def start(self) -> date:
        return self.days[0]

    @property
    def end(self) -> date:
        return self.days[-1]


class GreedyScheduler:
    """One deterministic placement pass over a snapshot of jobs and block-outs."""

    def __init__(self, block_outs: Iterable[BlockOutRecord], today: date,
                 max_iterations: int = SchedulingConfig.MAX_PLACEMENT_ITERATIONS):
        self.block_outs = list(block_outs)
        self.today = today
        self.max_iterations = max_iterations
        self.calendar = WorkCalendar(self.block_outs)
        self.tracker = OccupancyTracker()

    def _seed_block_outs(self) -> None:
        for day in sorted(self.calendar.blocked_dates):
            self.tracker.occupy_day(day)

    def _footprint(self, window: List[date]) -> List[date]:
        """
        Window days plus any block-out days between its first and last day.

        A job may pause over weekends it does not work, but a window never
        straddles a block-out.
        """
        days = set(window)
        return [
            day for day in expand_range(window[0], window[-1])
            if day in days or self.calendar.is_blocked_out(day)
        ]

    def _find_window(self, job: JobRecord, candidate: date, span: int, skip_non_working: bool) -> _Window:
        """
        Bounded conflict-skipping search for `span` free working days.

        On a conflict the next candidate jumps past the conflicting
        reservation's end rather than advancing one day at a time.
        """
        sat, sun = job.allow_saturday, job.allow_sunday
        for attempt in range(1, self.max_iterations + 1):
            if skip_non_working and not self.calendar.is_working_day(candidate, sat, sun):
                candidate = self.calendar.next_working_day(candidate + ONE_DAY, sat, sun)
                continue
            window = self.calendar.working_day_sequence(candidate, span, sat, sun)
            conflict = self.tracker.first_conflict(self._footprint(window))
            if conflict is None:
                return _Window(days=window, iterations=attempt)
            candidate = self.calendar.next_working_day(self.tracker.conflict_end(conflict) + ONE_DAY, sat, sun)
        raise PlacementSearchExhausted(self.max_iterations, candidate)

    def _place_queued(self, job: JobRecord, last_queued_end: Optional[date]) -> Tuple[Placement, Optional[Tuple[date, date]]]:
        """
        Compute a sold job's placement.

        Returns:
            (placement, gap) where gap is the [start, end) range the hold
            reserves, or None
        """
        sat, sun = job.allow_saturday, job.allow_sunday
        span = span_days(job.labor_days)

        if last_queued_end is not None:
            sequence_min = self.calendar.next_working_day(last_queued_end + ONE_DAY, sat, sun)
        else:
            sequence_min = self.calendar.next_working_day(self.today, sat, sun)

        requested = job.requested_start
        if requested is not None:
            explicit_min = self.calendar.next_working_day(max(requested, self.today), sat, sun)
        else:
            explicit_min = sequence_min

        candidate = max(explicit_min, sequence_min)
        gap = None
        if requested is not None and explicit_min > sequence_min:
            gap = (sequence_min, explicit_min)

        window = self._find_window(job, candidate, span, skip_non_working=True)
        placement = Placement(
            job_id=job.job_id,
            start_date=window.start,
            end_date=window.end,
            span_days=span,
            kind=PlacementKind.QUEUED,
            status=job.status,
            queue_rank=job.queue_rank,
            days=tuple(window.days),
        )
        return placement, gap

    def _place_capacity(self, job: JobRecord) -> Placement:
        sat, sun = job.allow_saturday, job.allow_sunday
        span = span_days(job.labor_days)
        candidate = self.calendar.next_working_day(job.start_date, sat, sun)
        window = self._find_window(job, candidate, span, skip_non_working=False)
        return Placement(
            job_id=job.job_id,
            start_date=window.start,
            end_date=window.end,
            span_days=span,
            kind=PlacementKind.CAPACITY,
            status=job.status,
            queue_rank=job.queue_rank,
            days=tuple(window.days),
        )

    @staticmethod
    def _appointment(job: JobRecord) -> Placement:
        day = job.appointment_date
        return Placement(
            job_id=job.job_id,
            start_date=day,
            end_date=day,
            span_days=1,
            kind=PlacementKind.APPOINTMENT,
            status=job.status,
            queue_rank=job.queue_rank,
            days=(day,),
        )

    def _fail(self, result: ScheduleResult, job: JobRecord, exc: Exception) -> None:
        iterations = getattr(exc, 'iterations', 0) or getattr(exc, 'max_days', 0)
        failure = SchedulingFailure(job_id=job.job_id, reason=str(exc), iterations=iterations)
        result.failures[job.job_id] = failure
        logger.warning("Job %s is unschedulable: %s", job.job_id, exc)

    def run(self, jobs: Sequence[JobRecord]) -> ScheduleResult:
        result = ScheduleResult(today=self.today, block_outs=list(self.block_outs))
        self._seed_block_outs()

        # 1. Sold queue, strictly in rank order
        last_queued_end: Optional[date] = None
        for job in QueueOrderingEngine.sold_queue(jobs):
            try:
                placement, gap = self._place_queued(job, last_queued_end)
            except (PlacementSearchExhausted, CalendarExhaustedError) as exc:
                self._fail(result, job, exc)
                continue
            # A held job that failed above leaves its would-be gap free
            if gap is not None:
                reserved = self.tracker.reserve(*gap)
                logger.debug("Reserved %s gap days before held job %s", reserved, job.job_id)
            self.tracker.occupy(placement.days, placement.end_date)
            result.placements[job.job_id] = placement
            last_queued_end = placement.end_date

        # 2. Pending capacity jobs at their explicit dates, no gap reservation
        capacity = [
            job for job in jobs
            if not job.calendar_hidden and job.status is JobStatus.PENDING and job.start_date is not None
        ]
        capacity.sort(key=lambda job: (job.start_date, job.job_id))
        for job in capacity:
            try:
                placement = self._place_capacity(job)
            except (PlacementSearchExhausted, CalendarExhaustedError) as exc:
                self._fail(result, job, exc)
                continue
            self.tracker.occupy(placement.days, placement.end_date)
            result.placements[job.job_id] = placement

        # 3. Estimate appointments are shown but never consume capacity
        for job in jobs:
            if job.calendar_hidden or job.status is not JobStatus.ESTIMATE:
                continue
            if job.appointment_date is None:
                continue
            result.placements[job.job_id] = self._appointment(job)

        logger.debug(
            "Schedule pass complete: %s placements, %s failures",
            len(result.placements), len(result.failures)
        )
        return result


def schedule(jobs: Sequence[JobRecord], block_outs: Iterable[BlockOutRecord], today: date,
             max_iterations: int = SchedulingConfig.MAX_PLACEMENT_ITERATIONS) -> ScheduleResult:
    """
    Compute placements for every schedulable job.

    Args:
        jobs: Job snapshots (any status; filtering happens here)
        block_outs: Globally blocked ranges
        today: First schedulable day for the sold queue
        max_iterations: Per-job search bound

    Returns:
        ScheduleResult with placements and per-job failures
    """
    return GreedyScheduler(block_outs, today, max_iterations).run(list(jobs))
