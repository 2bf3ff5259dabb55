import threading
from contextlib import contextmanager
from typing import Optional
from datetime import datetime

from jobcal.exceptions import QueueBusyError
from jobcal.logging_config import get_logger

logger = get_logger(__name__)


class QueueLockManager:
    """
    Serializes read-modify-write cycles against the job/rank store.

    Two rank mutations computed from stale snapshots would clobber each other,
    so every mutating service call runs inside acquire_queue_lock().
    """

    def __init__(self, timeout_seconds: int = 30):
        self._lock = threading.RLock()  # Reentrant lock
        self._is_locked = False
        self._current_operation = None
        self._holder_thread_id = None
        self._acquired_at: Optional[datetime] = None
        self._timeout_seconds = timeout_seconds

    def is_locked(self) -> bool:
        """Check if a queue mutation is in progress"""
        with self._lock:
            return self._is_locked

    def get_current_operation(self) -> Optional[str]:
        """Get the name of the operation holding the lock"""
        with self._lock:
            return self._current_operation if self._is_locked else None

    @contextmanager
    def acquire_queue_lock(self, operation_name: str, timeout_seconds: Optional[int] = None):
        """
        Context manager to acquire the queue lock

        Args:
            operation_name: Name of the operation acquiring the lock
            timeout_seconds: Optional override of the default wait

        Raises:
            QueueBusyError: If another thread holds the lock past the timeout
        """
        acquired = False
        reentrant = False
        timeout = timeout_seconds or self._timeout_seconds
        current_thread_id = threading.get_ident()
        deadline = datetime.now().timestamp() + timeout
        try:
            while True:
                if not self._lock.acquire(timeout=timeout):
                    raise QueueBusyError(f"Queue lock timed out after {timeout}s for '{operation_name}'")
                try:
                    if not self._is_locked:
                        self._is_locked = True
                        self._current_operation = operation_name
                        self._holder_thread_id = current_thread_id
                        self._acquired_at = datetime.now()
                        acquired = True
                        logger.debug("Queue lock acquired", operation=operation_name)
                        break
                    if self._holder_thread_id == current_thread_id:
                        reentrant = True
                        logger.debug("Re-entrant queue lock", operation=operation_name)
                        break
                    if datetime.now().timestamp() >= deadline:
                        logger.warning(
                            "Queue lock busy",
                            held_by=self._current_operation,
                            requested_by=operation_name
                        )
                        raise QueueBusyError(f"Queue mutation already in progress: {self._current_operation}")
                finally:
                    self._lock.release()
                threading.Event().wait(0.05)

            yield  # This is where the mutation runs

        finally:
            if acquired and not reentrant:
                with self._lock:
                    self._is_locked = False
                    self._current_operation = None
                    self._holder_thread_id = None
                    self._acquired_at = None
                    logger.debug("Queue lock released", operation=operation_name)

    def get_status(self) -> dict:
        """Get current status of the lock manager"""
        return {
            "is_locked": self.is_locked(),
            "current_operation": self.get_current_operation(),
            "timestamp": datetime.now().isoformat(),
            "held_by_thread": self._holder_thread_id,
            "held_for_seconds": (datetime.now() - self._acquired_at).total_seconds() if self._acquired_at else 0,
            "timeout_seconds": self._timeout_seconds,
        }


# Global instance - create once and reuse
queue_lock_manager = QueueLockManager()
