"""
Pure business logic for the sold-job queue order.
Contains no database dependencies - works with JobRecord snapshots and
returns the rank updates the service layer should persist.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Set, Tuple
import logging

from jobcal.brain.scheduling.records import JobRecord

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class RankUpdate:
    """Value object representing a queue_rank change for one job."""
    job_id: str
    old_rank: Optional[int]
    new_rank: int


@dataclass
class MoveOutcome:
    """Result of a reorder request. An empty update list means nothing moved."""
    job_id: str
    updates: List[RankUpdate] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def moved(self) -> bool:
        return bool(self.updates)

    def to_dict(self) -> dict:
        return {
            'job_id': self.job_id,
            'moved': self.moved,
            'reason': self.reason,
            'updates': [
                {'job_id': u.job_id, 'old_rank': u.old_rank, 'new_rank': u.new_rank}
                for u in self.updates
            ],
        }


@dataclass
class SlotPartition:
    """The queue split into fixed hold slots and movable jobs."""
    hold_slots: Set[int]
    holds: List[JobRecord]
    movable: List[JobRecord]
    movable_slots: List[int]

    @property
    def size(self) -> int:
        return len(self.hold_slots) + len(self.movable)

    def recombine(self, movable: Sequence[JobRecord]) -> List[JobRecord]:
        """Put holds back in their slot indexes and fill the rest in movable order."""
        rebuilt: List[JobRecord] = []
        holds = iter(self.holds)
        rest = iter(movable)
        for idx in range(self.size):
            rebuilt.append(next(holds) if idx in self.hold_slots else next(rest))
        return rebuilt


class QueueOrderingEngine:
    """Pure business logic for queue rank calculations."""

    MOVE_UP = -1
    MOVE_DOWN = 1

    @staticmethod
    def queue_sort_key(job: JobRecord) -> Tuple:
        """
        Total order over sold jobs: rank first (unranked last), then
        updated_at, created_at and id as deterministic tie-breaks.
        """
        return (
            job.queue_rank is None,
            job.queue_rank or 0,
            job.updated_at or job.created_at or _EPOCH,
            job.created_at or _EPOCH,
            job.job_id,
        )

    @staticmethod
    def sold_queue(jobs: Sequence[JobRecord]) -> List[JobRecord]:
        """Visible sold jobs in queue order."""
        sold = [job for job in jobs if job.is_visible_sold]
        sold.sort(key=QueueOrderingEngine.queue_sort_key)
        return sold

    @staticmethod
    def backfill_ranks(jobs: Sequence[JobRecord]) -> List[RankUpdate]:
        """
        Give every visible sold job lacking a rank the next integer above the
        current maximum, in queue order. Running it again yields no updates.

        Returns: List of RankUpdate for the jobs that received a rank
        """
        queue = QueueOrderingEngine.sold_queue(jobs)
        ranks = [job.queue_rank for job in queue if job.queue_rank is not None]
        next_rank = (max(ranks) if ranks else 0) + 1

        updates = []
        for job in queue:
            if job.queue_rank is None:
                updates.append(RankUpdate(job_id=job.job_id, old_rank=None, new_rank=next_rank))
                next_rank += 1
        return updates

    @staticmethod
    def partition_slots(queue: Sequence[JobRecord]) -> SlotPartition:
        """
        Split the ordered queue into hold slots and movable slots,
        preserving relative order within each partition.
        """
        hold_slots = set()
        holds = []
        movable = []
        for idx, job in enumerate(queue):
            if job.has_hold:
                hold_slots.add(idx)
                holds.append(job)
            else:
                movable.append(job)
        movable_slots = [idx for idx in range(len(queue)) if idx not in hold_slots]
        return SlotPartition(hold_slots=hold_slots, holds=holds, movable=movable, movable_slots=movable_slots)

    @staticmethod
    def renumber(rebuilt: Sequence[JobRecord]) -> List[RankUpdate]:
        """Assign rank = index + 1 and report the ranks that change."""
        updates = []
        for idx, job in enumerate(rebuilt):
            new_rank = idx + 1
            if job.queue_rank != new_rank:
                updates.append(RankUpdate(job_id=job.job_id, old_rank=job.queue_rank, new_rank=new_rank))
        return updates

    @staticmethod
    def _locate(queue: Sequence[JobRecord], partition: SlotPartition, job_id: str) -> Tuple[Optional[int], Optional[str]]:
        """Index of the job among movable jobs, or a reason it cannot move."""
        full_idx = next((idx for idx, job in enumerate(queue) if job.job_id == job_id), None)
        if full_idx is None:
            return None, "not_found"
        if full_idx in partition.hold_slots:
            return None, "hold_job"
        return partition.movable_slots.index(full_idx), None

    @staticmethod
    def move_queue(jobs: Sequence[JobRecord], job_id: str, direction: int) -> MoveOutcome:
        """
        Move a job one position within the movable partition.

        Hold jobs keep their slots; a movable job steps over them.
        Example: [A(hold), B, C, D] with D moved up gives [A, B, D, C].

        Args:
            jobs: All job records (filtered to the sold queue here)
            job_id: Job to move
            direction: -1 (earlier) or +1 (later)

        Returns: MoveOutcome with the rank updates, or a reason for a no-op
        """
        if direction not in (QueueOrderingEngine.MOVE_UP, QueueOrderingEngine.MOVE_DOWN):
            raise ValueError(f"direction must be -1 or 1, got {direction!r}")

        queue = QueueOrderingEngine.sold_queue(jobs)
        partition = QueueOrderingEngine.partition_slots(queue)
        current, reason = QueueOrderingEngine._locate(queue, partition, job_id)
        if reason:
            logger.info("move_queue no-op for %s: %s", job_id, reason)
            return MoveOutcome(job_id=job_id, reason=reason)

        target = current + direction
        if target < 0 or target >= len(partition.movable):
            return MoveOutcome(job_id=job_id, reason="out_of_bounds")

        movable = list(partition.movable)
        picked = movable.pop(current)
        movable.insert(target, picked)

        updates = QueueOrderingEngine.renumber(partition.recombine(movable))
        return MoveOutcome(job_id=job_id, updates=updates, reason=None if updates else "unchanged")

    @staticmethod
    def move_to_position(jobs: Sequence[JobRecord], job_id: str, target_pos: int) -> MoveOutcome:
        """
        Move a job to an absolute 1-based queue position.

        The position is clamped to the queue. Dropping onto a slot held by a
        hold job is rejected.

        Returns: MoveOutcome with the rank updates, or a reason for a no-op
        """
        queue = QueueOrderingEngine.sold_queue(jobs)
        partition = QueueOrderingEngine.partition_slots(queue)
        current, reason = QueueOrderingEngine._locate(queue, partition, job_id)
        if reason:
            logger.info("move_to_position no-op for %s: %s", job_id, reason)
            return MoveOutcome(job_id=job_id, reason=reason)

        desired_full_idx = max(0, min(len(queue) - 1, int(target_pos) - 1))
        if desired_full_idx in partition.hold_slots:
            return MoveOutcome(job_id=job_id, reason="hold_slot")
        desired = partition.movable_slots.index(desired_full_idx)

        movable = list(partition.movable)
        picked = movable.pop(current)
        movable.insert(desired, picked)

        updates = QueueOrderingEngine.renumber(partition.recombine(movable))
        return MoveOutcome(job_id=job_id, updates=updates, reason=None if updates else "unchanged")
