"""
Driver Score Aggregator
=======================

Recomputes a driver's safety score from the violations in a trailing
window:

    score = clamp(baseline - Σ points_deducted, 0, baseline)

then bands it into a category.

Concurrency:
    Recomputation is a read-then-write. It is serialized per driver
    inside the process, and the write is a compare-and-swap on the score
    row version, so concurrent writers in other processes cannot silently
    overwrite a newer result. A lost swap re-reads and recomputes.

Usage:
    aggregator = ScoreAggregator(violation_repo, score_repo)
    score = await aggregator.recompute("DR-001")

Author: Fleet Platform Team
Version: 1.0.0
"""

import asyncio
import logging
import weakref
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional, Tuple

from fleetscore.config import settings
from fleetscore.db.repository import (
    DriverScoreRepository,
    ViolationRepository,
    bounded,
)
from fleetscore.errors import ScoreConflictError
from shared.schemas.scores import DriverScore, ScoreCategory
from shared.schemas.violations import Violation

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SCORING_VERSION = "1.0.0"

# Evaluated in order; a score must be strictly above the threshold.
# Anything at or below the last threshold is CRITICAL.
CATEGORY_THRESHOLDS: Tuple[Tuple[int, ScoreCategory], ...] = (
    (90, ScoreCategory.EXCELLENT),
    (75, ScoreCategory.GOOD),
    (60, ScoreCategory.AVERAGE),
    (40, ScoreCategory.POOR),
)


def classify_score_category(score: int) -> ScoreCategory:
    """Map a numeric score to its category band."""
    for threshold, category in CATEGORY_THRESHOLDS:
        if score > threshold:
            return category
    return ScoreCategory.CRITICAL


def compute_driver_score(
    driver_id: str,
    violations: Iterable[Violation],
    now: datetime,
    window_days: int = 30,
    baseline: int = 100,
) -> DriverScore:
    """
    Compute a driver score from violation history.

    Pure: the result depends only on the violations, ``now`` and the
    window, so recomputing an unchanged set yields the same score.

    Args:
        driver_id: Driver being scored
        violations: Candidate violations (anything outside the window is ignored)
        now: Upper reference point of the trailing window
        window_days: Window length in days
        baseline: Score with no violations in the window

    Returns:
        The recomputed DriverScore (version 0, not yet stored)
    """
    window_start = now - timedelta(days=window_days)
    in_window = [
        v for v in violations
        if v.driver_id == driver_id and v.recorded_at > window_start
    ]

    deducted = sum(v.points_deducted for v in in_window)
    score = max(0, baseline - deducted)

    counts: Counter = Counter()
    points: Dict[str, int] = defaultdict(int)
    for v in in_window:
        counts[v.violation_type.value] += 1
        points[v.violation_type.value] += v.points_deducted

    explain = {
        "baseline": baseline,
        "points_deducted": deducted,
        "window_days": window_days,
        "window_start": window_start.isoformat(),
        "window_end": now.isoformat(),
        "by_type": {
            vtype: {"count": counts[vtype], "points": points[vtype]}
            for vtype in sorted(counts)
        },
        "scoring_version": SCORING_VERSION,
    }

    return DriverScore(
        driver_id=driver_id,
        current_score=score,
        score_category=classify_score_category(score),
        total_violations=len(in_window),
        last_violation_date=max((v.recorded_at for v in in_window), default=None),
        updated_at=now,
        explain=explain,
    )


# =============================================================================
# Aggregator
# =============================================================================


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScoreAggregator:
    """
    Recomputes and persists driver scores.

    One external read (violation window plus current version) and one
    versioned write per attempt.
    """

    def __init__(
        self,
        violations: ViolationRepository,
        scores: DriverScoreRepository,
        window_days: Optional[int] = None,
        baseline: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        write_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._violations = violations
        self._scores = scores
        self.window_days = settings.score_window_days if window_days is None else window_days
        self.baseline = settings.score_baseline if baseline is None else baseline
        self.timeout_seconds = (
            settings.persistence_timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        self.write_attempts = (
            settings.score_write_attempts if write_attempts is None else write_attempts
        )
        if self.window_days < 1:
            raise ValueError(f"window_days must be at least 1, got {self.window_days}")
        if not 0 <= self.baseline <= 100:
            raise ValueError(f"baseline must be within 0..100, got {self.baseline}")
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.write_attempts < 1:
            raise ValueError(f"write_attempts must be at least 1, got {self.write_attempts}")
        self._clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, driver_id: str) -> asyncio.Lock:
        lock = self._locks.get(driver_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[driver_id] = lock
        return lock

    async def get_score(self, driver_id: str) -> Optional[DriverScore]:
        """Current stored score of a driver."""
        return await bounded(
            self._scores.get(driver_id),
            "load driver score",
            self.timeout_seconds,
            driver_id,
        )

    async def recompute(
        self, driver_id: str, now: Optional[datetime] = None
    ) -> DriverScore:
        """
        Recompute and store the score of a driver.

        Args:
            driver_id: Driver to rescore
            now: Reference time of the window (defaults to the clock)

        Returns:
            The stored score

        Raises:
            PersistenceTimeoutError: A read or write exceeded its budget
            ScoreConflictError: Every attempt lost its compare-and-swap
        """
        lock = self._lock_for(driver_id)
        async with lock:
            return await self._recompute_locked(driver_id, now)

    async def _recompute_locked(
        self, driver_id: str, now: Optional[datetime]
    ) -> DriverScore:
        for attempt in range(1, self.write_attempts + 1):
            current = await self.get_score(driver_id)
            expected_version = current.version if current else None

            at = now or self._clock()
            window_start = at - timedelta(days=self.window_days)
            violations = await bounded(
                self._violations.list_for_driver_since(driver_id, window_start),
                "load violation window",
                self.timeout_seconds,
                driver_id,
            )

            score = compute_driver_score(
                driver_id,
                violations,
                now=at,
                window_days=self.window_days,
                baseline=self.baseline,
            )

            stored = await bounded(
                self._scores.replace(score, expected_version),
                "write driver score",
                self.timeout_seconds,
                driver_id,
            )
            if stored is not None:
                logger.info(
                    "Driver score updated: driver=%s score=%d category=%s "
                    "violations=%d version=%d",
                    driver_id,
                    stored.current_score,
                    stored.score_category.value,
                    stored.total_violations,
                    stored.version,
                )
                return stored

            logger.warning(
                "Score write for driver %s lost to a concurrent writer "
                "(attempt %d/%d)",
                driver_id,
                attempt,
                self.write_attempts,
            )

        raise ScoreConflictError(driver_id, self.write_attempts)
