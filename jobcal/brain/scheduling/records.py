"""
Immutable snapshots consumed and produced by the scheduling core.

Persisted job and block-out rows are loose (strings where dates belong,
missing numbers, truthy strings for flags). Every default-resolution rule
lives here so that the engine only ever sees clean values.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from jobcal.brain.scheduling.config import SchedulingConfig
from jobcal.datetime_utils import parse_iso_date, parse_iso_datetime

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off", ""}


class JobStatus(Enum):
    ESTIMATE = "estimate"
    PENDING = "pending"
    SOLD = "sold"
    VOID = "void"

    @classmethod
    def parse(cls, value) -> "JobStatus":
        """Resolve a loosely-typed status; unknown or empty values are estimates."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for status in cls:
            if status.value == text:
                return status
        return cls.ESTIMATE


class PlacementKind(Enum):
    QUEUED = "queued"            # Sold job placed by queue order
    CAPACITY = "capacity"        # Pending job at its explicit date
    APPOINTMENT = "appointment"  # Estimate visit, display only


def as_bool(value) -> bool:
    """Coerce a persisted flag. Unknown non-empty strings count as true."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        return True
    return False


def as_labor_days(value) -> Optional[float]:
    """Return a finite labor estimate or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(number):
        return None
    return number


def as_rank(value) -> Optional[int]:
    """Return a positive integer queue rank or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    if not math.isfinite(number) or number != int(number) or number < 1:
        return None
    return int(number)


@dataclass(frozen=True)
class JobRecord:
    """Normalized view of one persisted job."""
    job_id: str
    status: JobStatus = JobStatus.ESTIMATE
    labor_days: Optional[float] = None
    original_labor_days: Optional[float] = None
    hold_date: Optional[date] = None
    start_date: Optional[date] = None
    scheduled_at: Optional[datetime] = None
    allow_saturday: bool = False
    allow_sunday: bool = False
    queue_rank: Optional[int] = None
    calendar_hidden: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    title: Optional[str] = None

    @property
    def is_visible_sold(self) -> bool:
        return self.status is JobStatus.SOLD and not self.calendar_hidden

    @property
    def has_hold(self) -> bool:
        return self.hold_date is not None

    @property
    def requested_start(self) -> Optional[date]:
        """Hold date first, then the explicit start request."""
        return self.hold_date or self.start_date

    @property
    def appointment_date(self) -> Optional[date]:
        """Date an estimate appears on the calendar."""
        if self.scheduled_at is not None:
            return self.scheduled_at.date()
        return self.start_date

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> Optional["JobRecord"]:
        """
        Build a record from a persisted mapping, applying documented defaults.

        Args:
            raw: dict with the Job.to_dict() keys (camelCase aliases accepted)

        Returns:
            JobRecord, or None when the mapping has no usable id
        """
        def pick(*keys):
            for key in keys:
                if key in raw and raw[key] is not None:
                    return raw[key]
            return None

        job_id = pick('id', 'job_id')
        if job_id is None or str(job_id).strip() == '':
            logger.warning("Skipping job record without id")
            return None

        return cls(
            job_id=str(job_id),
            status=JobStatus.parse(pick('status')),
            labor_days=as_labor_days(pick('labor_days', 'laborDays')),
            original_labor_days=as_labor_days(pick('original_labor_days', 'originalLaborDays')),
            hold_date=parse_iso_date(pick('hold_date', 'holdDate')),
            start_date=parse_iso_date(pick('start_date', 'startDate', 'install_date', 'installDate')),
            scheduled_at=parse_iso_datetime(pick('scheduled_at', 'scheduledAt')),
            allow_saturday=as_bool(pick('allow_saturday', 'allowSaturday')),
            allow_sunday=as_bool(pick('allow_sunday', 'allowSunday')),
            queue_rank=as_rank(pick('queue_rank', 'queueRank')),
            calendar_hidden=as_bool(pick('calendar_hidden', 'calendarHidden')),
            created_at=parse_iso_datetime(pick('created_at', 'createdAt')),
            updated_at=parse_iso_datetime(pick('updated_at', 'updatedAt')),
            title=pick('title'),
        )


@dataclass(frozen=True)
class BlockOutRecord:
    """Normalized inclusive block-out range."""
    block_out_id: str
    start_date: date
    end_date: date
    description: str = SchedulingConfig.DEFAULT_BLOCK_OUT_DESCRIPTION

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> dict:
        return {
            'id': self.block_out_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'description': self.description,
        }

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> Optional["BlockOutRecord"]:
        """Build a block-out; a missing end means a single day, reversed ranges are swapped."""
        start = parse_iso_date(raw.get('start_date') or raw.get('startIso'))
        end = parse_iso_date(raw.get('end_date') or raw.get('endIso')) or start
        if start is None:
            logger.warning("Skipping block-out without a start date: %s", raw.get('id'))
            return None
        if end < start:
            start, end = end, start
        description = str(raw.get('description') or SchedulingConfig.DEFAULT_BLOCK_OUT_DESCRIPTION)
        return cls(
            block_out_id=str(raw.get('id') or ''),
            start_date=start,
            end_date=end,
            description=description[:SchedulingConfig.BLOCK_OUT_DESCRIPTION_MAX],
        )


@dataclass(frozen=True)
class Placement:
    """Computed calendar window for one job."""
    job_id: str
    start_date: date
    end_date: date
    span_days: int
    kind: PlacementKind = PlacementKind.QUEUED
    status: JobStatus = JobStatus.SOLD
    queue_rank: Optional[int] = None
    days: Tuple[date, ...] = ()

    @property
    def used_saturday(self) -> bool:
        return any(d.weekday() == 5 for d in self.days)

    @property
    def used_sunday(self) -> bool:
        return any(d.weekday() == 6 for d in self.days)

    def intersects(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start

    def to_dict(self) -> dict:
        """Serialize for JSON response"""
        return {
            'job_id': self.job_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'span_days': self.span_days,
            'kind': self.kind.value,
            'status': self.status.value,
            'queue_rank': self.queue_rank,
            'days': [d.isoformat() for d in self.days],
            'used_saturday': self.used_saturday,
            'used_sunday': self.used_sunday,
        }


@dataclass(frozen=True)
class SchedulingFailure:
    """A job whose placement search ran out of its bound."""
    job_id: str
    reason: str
    iterations: int = 0

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'reason': self.reason,
            'iterations': self.iterations,
        }


@dataclass
class ScheduleResult:
    """Output of one scheduling pass."""
    today: date
    placements: Dict[str, Placement] = field(default_factory=dict)
    failures: Dict[str, SchedulingFailure] = field(default_factory=dict)
    block_outs: List[BlockOutRecord] = field(default_factory=list)

    def placements_of_kind(self, kind: PlacementKind) -> List[Placement]:
        return [p for p in self.placements.values() if p.kind is kind]

    def to_dict(self) -> dict:
        return {
            'today': self.today.isoformat(),
            'placements': [p.to_dict() for p in self.placements.values()],
            'failures': [f.to_dict() for f in self.failures.values()],
        }
