class SchedulingError(Exception):
    """Base class for errors raised by the scheduling core."""
    pass


class CalendarExhaustedError(SchedulingError):
    """Raised when no working day can be found inside the scan bound."""

    def __init__(self, start, max_days):
        self.start = start
        self.max_days = max_days
        super().__init__(f"No working day found within {max_days} days of {start.isoformat()}")


class ValidationError(Exception):
    """Raised when a request to the scheduling service is malformed."""
    pass


class JobNotFoundError(LookupError):
    """Raised when a job or block-out id does not exist in the store."""
    pass


class QueueBusyError(RuntimeError):
    """Raised when another queue mutation is holding the lock."""
    pass
