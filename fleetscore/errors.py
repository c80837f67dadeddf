"""
Fleet Score Error Taxonomy
==========================

RETRYABLE vs PERMANENT:
    - Retryable: transient failures (timeouts, lost score writes, storage
      hiccups). Consumers retry them with backoff, then dead-letter.
    - Permanent: the message itself is bad. Retrying cannot help, so it
      is dead-lettered immediately.

Author: Fleet Platform Team
Version: 1.0.0
"""

from typing import Optional


class FleetScoreError(Exception):
    """Base class for all scoring pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, driver_id: Optional[str] = None):
        super().__init__(message)
        self.driver_id = driver_id


class RetryableError(FleetScoreError):
    """A failure that may succeed on a later attempt."""

    retryable = True


class PersistenceError(RetryableError):
    """The persistence collaborator rejected or failed a call."""


class PersistenceTimeoutError(PersistenceError):
    """A persistence call exceeded its time budget."""

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        driver_id: Optional[str] = None,
    ):
        super().__init__(
            f"{operation} timed out after {timeout_seconds:.2f}s",
            driver_id=driver_id,
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class ScoreConflictError(RetryableError):
    """Every versioned score write lost to a concurrent writer."""

    def __init__(self, driver_id: str, attempts: int):
        super().__init__(
            f"Score write for driver {driver_id} conflicted {attempts} times",
            driver_id=driver_id,
        )
        self.attempts = attempts


class DeadLetterError(RetryableError):
    """A failed message could not be published to its dead letter topic."""

    def __init__(self, topic: str, offset: int, reason: str):
        super().__init__(f"Dead-lettering offset {offset} to '{topic}' failed: {reason}")
        self.topic = topic
        self.offset = offset


class PermanentError(FleetScoreError):
    """A failure that will repeat on every attempt."""


class InvalidMessageError(PermanentError):
    """A broker message does not satisfy its schema."""


def is_retryable(error: BaseException) -> bool:
    """
    Classify an exception for the consumer retry loop.

    Unknown exceptions are treated as retryable; the retry budget and the
    dead letter topic bound the cost of a wrong guess.
    """
    if isinstance(error, FleetScoreError):
        return error.retryable
    return True
