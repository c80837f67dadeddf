"""
In-Memory Repositories
======================

Process-local implementations of the scoring repositories.

Used for local runs without PostgreSQL and by the test suite. They honor
the same contracts as the PostgreSQL stores: fingerprint deduplication,
window queries, and versioned score replacement.

Author: Fleet Platform Team
Version: 1.0.0
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from fleetscore.db.repository import DriverScoreRepository, ViolationRepository
from shared.schemas.scores import DriverScore
from shared.schemas.violations import Violation

logger = logging.getLogger(__name__)


class InMemoryViolationRepository(ViolationRepository):
    """Violation history kept in process memory."""

    def __init__(self):
        self._by_fingerprint: Dict[str, Violation] = {}
        self._by_driver: Dict[str, List[Violation]] = defaultdict(list)

    async def add(self, violation: Violation) -> bool:
        if violation.fingerprint in self._by_fingerprint:
            return False
        self._by_fingerprint[violation.fingerprint] = violation
        self._by_driver[violation.driver_id].append(violation)
        return True

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Violation]:
        return self._by_fingerprint.get(fingerprint)

    async def list_for_driver_since(
        self, driver_id: str, since: datetime
    ) -> List[Violation]:
        rows = [v for v in self._by_driver.get(driver_id, []) if v.recorded_at > since]
        return sorted(rows, key=lambda v: v.recorded_at)

    def __len__(self) -> int:
        return len(self._by_fingerprint)


class InMemoryDriverScoreRepository(DriverScoreRepository):
    """Current driver scores kept in process memory."""

    def __init__(self):
        self._scores: Dict[str, DriverScore] = {}
        self.writes = 0

    async def get(self, driver_id: str) -> Optional[DriverScore]:
        return self._scores.get(driver_id)

    async def replace(
        self, score: DriverScore, expected_version: Optional[int]
    ) -> Optional[DriverScore]:
        current = self._scores.get(score.driver_id)
        current_version = current.version if current else None
        if current_version != expected_version:
            logger.debug(
                "Score write conflict for driver %s (expected %s, found %s)",
                score.driver_id,
                expected_version,
                current_version,
            )
            return None

        stored = score.model_copy(update={"version": (expected_version or 0) + 1})
        self._scores[score.driver_id] = stored
        self.writes += 1
        return stored
