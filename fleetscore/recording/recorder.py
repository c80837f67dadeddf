"""
Violation Recorder
==================

Turns a violation event into a persisted violation and rescores the
driver.

Flow:
    ViolationEvent → classify points → insert-if-absent → recompute score

Delivery is at-least-once. A redelivered event maps to the same
fingerprint, so the insert is skipped and the stored violation is reused.
Rescoring still runs on a duplicate: if the first delivery stored the
violation but failed to rescore, the redelivery repairs the score.

Failures are not swallowed here. They propagate to the consumer, which
retries with backoff and dead-letters what cannot be recorded.

Author: Fleet Platform Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from fleetscore.config import settings
from fleetscore.db.repository import ViolationRepository, bounded
from fleetscore.scoring.aggregator import ScoreAggregator
from fleetscore.scoring.points import points_for
from shared.schemas.scores import DriverScore
from shared.schemas.violations import Violation, ViolationEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordResult:
    """Outcome of recording one violation event."""

    violation: Violation
    duplicate: bool
    score: DriverScore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ViolationRecorder:
    """
    Persists violations and triggers rescoring of the affected driver.

    Usage:
        recorder = ViolationRecorder(violation_repo, aggregator)
        result = await recorder.record(event)
    """

    def __init__(
        self,
        violations: ViolationRepository,
        aggregator: ScoreAggregator,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._violations = violations
        self._aggregator = aggregator
        self.timeout_seconds = (
            settings.persistence_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        self._clock = clock

    async def record(self, event: ViolationEvent) -> RecordResult:
        """
        Record a violation event.

        Raises:
            PersistenceError: The violation store failed (retryable)
            PersistenceTimeoutError: A store call exceeded its budget
            ScoreConflictError: Rescoring lost every versioned write
        """
        points = points_for(event.violation_type, event.severity)
        violation = Violation.from_event(event, points, recorded_at=self._clock())

        inserted = await bounded(
            self._violations.add(violation),
            "insert violation",
            self.timeout_seconds,
            event.driver_id,
        )

        if inserted:
            logger.info(
                "Violation recorded: id=%s driver=%s type=%s severity=%s points=%d",
                violation.id,
                violation.driver_id,
                violation.violation_type.value,
                violation.severity.value,
                violation.points_deducted,
            )
        else:
            stored = await bounded(
                self._violations.get_by_fingerprint(violation.fingerprint),
                "load violation",
                self.timeout_seconds,
                event.driver_id,
            )
            violation = stored or violation
            logger.info(
                "Duplicate violation %s for driver %s (fingerprint=%s), rescoring only",
                violation.id,
                violation.driver_id,
                violation.fingerprint[:12],
            )

        score = await self._aggregator.recompute(violation.driver_id)
        return RecordResult(violation=violation, duplicate=not inserted, score=score)
