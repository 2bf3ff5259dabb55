"""
Scheduling service.

The only layer that touches the database. Loads a snapshot of jobs and
block-outs, runs the pure scheduler over it, and applies queue/job mutations
as serialized read-modify-write cycles. Every mutation commits, then
recomputes and returns the fresh schedule.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.orm.exc import StaleDataError

from jobcal.brain.scheduling import calculator
from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.brain.scheduling.engine import schedule
from jobcal.brain.scheduling.ordering import MoveOutcome, QueueOrderingEngine, RankUpdate
from jobcal.brain.scheduling.records import BlockOutRecord, JobRecord, ScheduleResult
from jobcal.config import Config
from jobcal.datetime_utils import business_today, parse_iso_date
from jobcal.exceptions import JobNotFoundError, QueueBusyError, ValidationError
from jobcal.logging_config import SchedulingContext, get_logger
from jobcal.models import BlockOut, Job, db
from jobcal.queue_lock import queue_lock_manager

logger = get_logger(__name__)

_DIRECTIONS = {
    'up': QueueOrderingEngine.MOVE_UP,
    'down': QueueOrderingEngine.MOVE_DOWN,
    '-1': QueueOrderingEngine.MOVE_UP,
    '1': QueueOrderingEngine.MOVE_DOWN,
    '+1': QueueOrderingEngine.MOVE_DOWN,
}


@dataclass
class MutationResult:
    """What a mutating call changed, plus the schedule recomputed afterwards."""
    operation: str
    schedule: Optional[ScheduleResult]
    changed: bool = True
    job: Optional[Dict[str, Any]] = None
    block_out: Optional[Dict[str, Any]] = None
    outcome: Optional[MoveOutcome] = None
    rank_updates: List[RankUpdate] = field(default_factory=list)

    def to_dict(self) -> dict:
        payload = {
            'operation': self.operation,
            'changed': self.changed,
            'schedule': self.schedule.to_dict(),
        }
        if self.job is not None:
            payload['job'] = self.job
        if self.block_out is not None:
            payload['block_out'] = self.block_out
        if self.outcome is not None:
            payload.update(self.outcome.to_dict())
        if self.rank_updates:
            payload['rank_updates'] = [
                {'job_id': u.job_id, 'old_rank': u.old_rank, 'new_rank': u.new_rank}
                for u in self.rank_updates
            ]
        return payload


def _setting(name: str):
    if has_app_context():
        return current_app.config.get(name, getattr(Config, name))
    return getattr(Config, name)


def parse_direction(value) -> int:
    """Validate a move direction (-1/+1 or 'up'/'down')."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid direction: {value!r}")
    if isinstance(value, int) and value in (QueueOrderingEngine.MOVE_UP, QueueOrderingEngine.MOVE_DOWN):
        return value
    key = str(value).strip().lower() if value is not None else ''
    if key in _DIRECTIONS:
        return _DIRECTIONS[key]
    raise ValidationError(f"Invalid direction: {value!r} (expected -1, 1, 'up' or 'down')")


def parse_position(value) -> int:
    """Validate a 1-based queue position. Out-of-range values are clamped later."""
    if value is None or isinstance(value, bool):
        raise ValidationError("position is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid position: {value!r}")
    if not math.isfinite(number):
        raise ValidationError(f"Invalid position: {value!r}")
    return int(number)


def parse_delta(value) -> int:
    """Validate a labor-day adjustment."""
    if value is None or isinstance(value, bool):
        raise ValidationError("delta is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid delta: {value!r}")
    if not math.isfinite(number) or number != int(number):
        raise ValidationError(f"delta must be a whole number of days, got {value!r}")
    return int(number)


class SchedulingService:
    """Database-backed entry point to the scheduler and queue operations."""

    def __init__(self, timezone_name: Optional[str] = None, max_iterations: Optional[int] = None,
                 lock_manager=None, lock_timeout: Optional[int] = None):
        self.timezone_name = timezone_name or _setting('SCHEDULE_TIMEZONE')
        self.max_iterations = max_iterations or _setting('SCHEDULE_MAX_ITERATIONS')
        self.lock_manager = lock_manager or queue_lock_manager
        self.lock_timeout = lock_timeout or _setting('QUEUE_LOCK_TIMEOUT_SECONDS')

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def resolve_today(self, today: Optional[date] = None) -> date:
        return today or business_today(self.timezone_name)

    @staticmethod
    def load_snapshot(lock_rows: bool = False) -> Tuple[List[JobRecord], List[BlockOutRecord]]:
        """
        Read every job and block-out and normalize them into records.

        Args:
            lock_rows: Take row locks on the jobs (SELECT ... FOR UPDATE) until
                       the transaction ends; used by read-modify-write cycles
        """
        query = Job.query
        if lock_rows:
            query = query.with_for_update()

        jobs = []
        for job in query.all():
            record = JobRecord.from_raw(job.to_dict())
            if record is not None:
                jobs.append(record)

        block_outs = []
        for block in BlockOut.query.order_by(BlockOut.start_date.asc()).all():
            record = BlockOutRecord.from_raw(block.to_dict())
            if record is not None:
                block_outs.append(record)
        return jobs, block_outs

    def compute_schedule(self, today: Optional[date] = None, backfill: bool = True) -> ScheduleResult:
        """
        Run one scheduling pass over the current database contents.

        Visible sold jobs without a rank are given one first (rank backfill is
        idempotent, so every load may trigger it). If the queue is busy the
        pass runs anyway with those jobs at the end of the queue.

        Args:
            today: Reference date (defaults to today in the business timezone)
            backfill: Persist ranks for unranked sold jobs before the pass

        Returns:
            ScheduleResult
        """
        today = self.resolve_today(today)
        jobs, block_outs = self.load_snapshot()
        if backfill and QueueOrderingEngine.backfill_ranks(jobs):
            try:
                return self.backfill_ranks(today).schedule
            except QueueBusyError as exc:
                logger.warning("Rank backfill skipped, queue busy", error=str(exc))
        result = schedule(jobs, block_outs, today, max_iterations=self.max_iterations)
        if result.failures:
            logger.warning(
                "Unschedulable jobs in pass",
                today=today.isoformat(),
                failed=sorted(result.failures.keys())
            )
        return result

    @staticmethod
    def list_block_outs() -> List[BlockOut]:
        return BlockOut.query.order_by(BlockOut.start_date.asc(), BlockOut.id.asc()).all()

    @staticmethod
    def get_job(job_id: str, lock_row: bool = False) -> Job:
        if job_id is None:
            raise JobNotFoundError("Job not found: None")
        job = db.session.get(Job, str(job_id), with_for_update=True if lock_row else None)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _mutate(self, operation: str, apply: Callable[[], MutationResult], today: Optional[date] = None,
                **context) -> MutationResult:
        """
        Run one read-modify-write cycle under the queue lock.

        `apply` changes the session and returns a partial MutationResult; the
        session is committed, or rolled back on any error, and the schedule
        is recomputed after a successful commit.

        The queue lock only serializes threads of this process. Across worker
        processes, `apply` reads with row locks and Job.version_id rejects a
        write based on a row another worker changed meanwhile; that conflict
        surfaces as QueueBusyError so the caller can retry.
        """
        with self.lock_manager.acquire_queue_lock(operation, timeout_seconds=self.lock_timeout):
            with SchedulingContext(operation, **context):
                try:
                    mutation = apply()
                    db.session.commit()
                except StaleDataError as exc:
                    db.session.rollback()
                    logger.warning("Concurrent queue change detected", operation=operation, error=str(exc))
                    raise QueueBusyError(f"Queue changed by another request during '{operation}', retry") from exc
                except Exception:
                    db.session.rollback()
                    raise
                mutation.schedule = self.compute_schedule(today)
                return mutation

    @staticmethod
    def _apply_rank_updates(updates: List[RankUpdate]) -> None:
        now = datetime.utcnow()
        for update in updates:
            job = db.session.get(Job, update.job_id)
            if job is None:
                # Snapshot and session disagree; the row was removed meanwhile
                raise JobNotFoundError(f"Job not found: {update.job_id}")
            job.queue_rank = update.new_rank
            job.updated_at = now
        if updates:
            logger.info(
                "Applied queue rank updates",
                count=len(updates),
                updates=[(u.job_id, u.old_rank, u.new_rank) for u in updates]
            )

    def backfill_ranks(self, today: Optional[date] = None) -> MutationResult:
        """Give every unranked visible sold job the next rank. Idempotent."""
        def apply():
            jobs, _ = self.load_snapshot(lock_rows=True)
            updates = QueueOrderingEngine.backfill_ranks(jobs)
            self._apply_rank_updates(updates)
            return MutationResult(
                operation='backfill_ranks',
                schedule=None,
                changed=bool(updates),
                rank_updates=updates,
            )
        return self._mutate('backfill_ranks', apply, today)

    def move_queue(self, job_id: str, direction, today: Optional[date] = None) -> MutationResult:
        """Move a sold job one slot earlier (-1) or later (+1) among movable jobs."""
        step = parse_direction(direction)

        def apply():
            jobs, _ = self.load_snapshot(lock_rows=True)
            outcome = QueueOrderingEngine.move_queue(jobs, str(job_id), step)
            self._apply_rank_updates(outcome.updates)
            return MutationResult(
                operation='move_queue',
                schedule=None,
                changed=outcome.moved,
                outcome=outcome,
            )
        return self._mutate('move_queue', apply, today, job_id=str(job_id), direction=step)

    def move_to_position(self, job_id: str, position, today: Optional[date] = None) -> MutationResult:
        """Move a sold job to an absolute 1-based queue position."""
        target = parse_position(position)

        def apply():
            jobs, _ = self.load_snapshot(lock_rows=True)
            outcome = QueueOrderingEngine.move_to_position(jobs, str(job_id), target)
            self._apply_rank_updates(outcome.updates)
            return MutationResult(
                operation='move_to_position',
                schedule=None,
                changed=outcome.moved,
                outcome=outcome,
            )
        return self._mutate('move_to_position', apply, today, job_id=str(job_id), position=target)

    def set_hold_date(self, job_id: str, hold_date, today: Optional[date] = None) -> MutationResult:
        """
        Set or clear a job's hold date.

        Args:
            job_id: Job to change
            hold_date: ISO date string/date, or None/"" to clear
        """
        if hold_date in (None, ''):
            new_hold = None
        else:
            new_hold = parse_iso_date(hold_date)
            if new_hold is None:
                raise ValidationError(f"Invalid hold_date: {hold_date!r}")

        def apply():
            job = self.get_job(job_id, lock_row=True)
            changed = job.hold_date != new_hold
            job.hold_date = new_hold
            job.updated_at = datetime.utcnow()
            return MutationResult(operation='set_hold_date', schedule=None, changed=changed, job=job.to_dict())
        return self._mutate('set_hold_date', apply, today, job_id=str(job_id),
                            hold_date=new_hold.isoformat() if new_hold else None)

    def toggle_weekend(self, job_id: str, day: str, today: Optional[date] = None) -> MutationResult:
        """Flip a job's Saturday or Sunday permission."""
        field_name = SchedulingConfig.weekend_field(day)
        if field_name is None:
            raise ValidationError(f"Invalid weekend day: {day!r} (expected 'saturday' or 'sunday')")

        def apply():
            job = self.get_job(job_id, lock_row=True)
            setattr(job, field_name, not bool(getattr(job, field_name)))
            job.updated_at = datetime.utcnow()
            return MutationResult(operation='toggle_weekend', schedule=None, job=job.to_dict())
        return self._mutate('toggle_weekend', apply, today, job_id=str(job_id), field=field_name)

    def adjust_labor_days(self, job_id: str, delta, today: Optional[date] = None) -> MutationResult:
        """
        Step a job's labor estimate by whole days from its current span.

        The estimate before the first adjustment is kept in
        original_labor_days so that reset_labor_days can restore it.
        """
        step = parse_delta(delta)

        def apply():
            job = self.get_job(job_id, lock_row=True)
            job.original_labor_days = calculator.original_labor_days(job.labor_days, job.original_labor_days)
            new_labor = calculator.adjusted_labor_days(job.labor_days, step)
            changed = job.labor_days != new_labor
            job.labor_days = new_labor
            job.updated_at = datetime.utcnow()
            return MutationResult(operation='adjust_labor_days', schedule=None, changed=changed, job=job.to_dict())
        return self._mutate('adjust_labor_days', apply, today, job_id=str(job_id), delta=step)

    def reset_labor_days(self, job_id: str, today: Optional[date] = None) -> MutationResult:
        """Restore the labor estimate saved before the first adjustment (no-op if none)."""
        def apply():
            job = self.get_job(job_id, lock_row=True)
            restored = calculator.reset_labor_days(job.original_labor_days)
            if restored is None:
                logger.info("No original labor estimate to restore", job_id=job.id)
                return MutationResult(operation='reset_labor_days', schedule=None, changed=False, job=job.to_dict())
            changed = job.labor_days != restored
            job.labor_days = restored
            job.updated_at = datetime.utcnow()
            return MutationResult(operation='reset_labor_days', schedule=None, changed=changed, job=job.to_dict())
        return self._mutate('reset_labor_days', apply, today, job_id=str(job_id))

    def create_block_out(self, start_date, end_date=None, description: Optional[str] = None,
                         today: Optional[date] = None) -> MutationResult:
        """
        Add a globally blocked, inclusive date range.

        A missing end date makes it a single day; an empty description
        becomes "Blocked". Descriptions are cut to 120 characters.
        """
        start = parse_iso_date(start_date)
        if start is None:
            raise ValidationError(f"Invalid start_date: {start_date!r}")
        if end_date in (None, ''):
            end = start
        else:
            end = parse_iso_date(end_date)
            if end is None:
                raise ValidationError(f"Invalid end_date: {end_date!r}")
        if end < start:
            raise ValidationError("end_date must not be before start_date")
        text = (str(description).strip() if description is not None else '') or SchedulingConfig.DEFAULT_BLOCK_OUT_DESCRIPTION
        text = text[:SchedulingConfig.BLOCK_OUT_DESCRIPTION_MAX]

        def apply():
            block = BlockOut(
                id=f"b_{uuid.uuid4().hex[:12]}",
                start_date=start,
                end_date=end,
                description=text,
                created_at=datetime.utcnow(),
            )
            db.session.add(block)
            db.session.flush()
            return MutationResult(operation='create_block_out', schedule=None, block_out=block.to_dict())
        return self._mutate('create_block_out', apply, today,
                            start_date=start.isoformat(), end_date=end.isoformat())

    def delete_block_out(self, block_out_id: str, today: Optional[date] = None) -> MutationResult:
        def apply():
            block = db.session.get(BlockOut, str(block_out_id))
            if block is None:
                raise JobNotFoundError(f"Block-out not found: {block_out_id}")
            payload = block.to_dict()
            db.session.delete(block)
            return MutationResult(operation='delete_block_out', schedule=None, block_out=payload)
        return self._mutate('delete_block_out', apply, today, block_out_id=str(block_out_id))


def run_daily_rollover() -> dict:
    """
    Scheduled job: backfill ranks for newly sold jobs and log the day's schedule.
    Requires an app context.
    """
    service = SchedulingService()
    mutation = service.backfill_ranks()
    result = mutation.schedule
    summary = {
        'today': result.today.isoformat(),
        'ranks_assigned': len(mutation.rank_updates),
        'placements': len(result.placements),
        'failures': len(result.failures),
    }
    logger.info("Daily schedule rollover complete", **summary)
    return summary
