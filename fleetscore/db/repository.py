"""
Scoring Repositories
====================

Persistence boundary of the scoring pipeline.

Two collaborators:
    - ViolationRepository: append violations (insert-if-absent on
      fingerprint) and fetch a driver's violations within a window
    - DriverScoreRepository: fetch and replace a driver's current score
      with a compare-and-swap on the row version

PostgreSQL implementations live here; in-memory implementations live in
``fleetscore.db.memory``.

Author: Fleet Platform Team
Version: 1.0.0
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleetscore.db.models import DriverScoreDB, ViolationDB
from fleetscore.errors import PersistenceError, PersistenceTimeoutError
from shared.schemas.scores import DriverScore
from shared.schemas.violations import Violation

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    operation: str,
    timeout_seconds: float,
    driver_id: Optional[str] = None,
) -> T:
    """
    Await a persistence call within a time budget.

    Raises:
        PersistenceTimeoutError: The call did not finish in time (retryable)
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise PersistenceTimeoutError(operation, timeout_seconds, driver_id) from e


# =============================================================================
# Interfaces
# =============================================================================


class ViolationRepository(ABC):
    """Append-only violation history."""

    @abstractmethod
    async def add(self, violation: Violation) -> bool:
        """
        Insert a violation unless its fingerprint is already stored.

        Returns:
            True if inserted, False if it was a duplicate
        """

    @abstractmethod
    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Violation]:
        """Fetch a stored violation by fingerprint."""

    @abstractmethod
    async def list_for_driver_since(
        self, driver_id: str, since: datetime
    ) -> List[Violation]:
        """Violations of a driver recorded strictly after ``since``, oldest first."""


class DriverScoreRepository(ABC):
    """One current score per driver, versioned."""

    @abstractmethod
    async def get(self, driver_id: str) -> Optional[DriverScore]:
        """Fetch the current score of a driver (None if never scored)."""

    @abstractmethod
    async def replace(
        self, score: DriverScore, expected_version: Optional[int]
    ) -> Optional[DriverScore]:
        """
        Replace a driver's score if the stored version still matches.

        Args:
            score: New score computed from a fresh window read
            expected_version: Version read before computing (None if no row)

        Returns:
            The stored score with its new version, or None on conflict
        """


# =============================================================================
# PostgreSQL
# =============================================================================


def _violation_values(violation: Violation) -> dict:
    values = violation.model_dump()
    values["violation_type"] = violation.violation_type.value
    values["severity"] = violation.severity.value
    return values


def _violation_from_row(row: ViolationDB) -> Violation:
    return Violation.model_validate(row, from_attributes=True)


def _score_from_row(row: DriverScoreDB) -> DriverScore:
    return DriverScore.model_validate(row, from_attributes=True)


def _score_values(score: DriverScore, version: int) -> dict:
    values = score.model_dump(mode="python")
    values["score_category"] = score.score_category.value
    values["version"] = version
    return values


class SqlViolationRepository(ViolationRepository):
    """
    PostgreSQL violation store.

    Usage:
        repo = SqlViolationRepository(session_factory)
        inserted = await repo.add(violation)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def add(self, violation: Violation) -> bool:
        stmt = (
            pg_insert(ViolationDB)
            .values(**_violation_values(violation))
            .on_conflict_do_nothing(index_elements=[ViolationDB.fingerprint])
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to insert violation {violation.id}: {e}",
                driver_id=violation.driver_id,
            ) from e
        return result.rowcount == 1

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Violation]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ViolationDB).where(ViolationDB.fingerprint == fingerprint)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load violation {fingerprint[:12]}: {e}") from e
        return _violation_from_row(row) if row else None

    async def list_for_driver_since(
        self, driver_id: str, since: datetime
    ) -> List[Violation]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ViolationDB)
                    .where(ViolationDB.driver_id == driver_id)
                    .where(ViolationDB.recorded_at > since)
                    .order_by(ViolationDB.recorded_at)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to load violations for driver {driver_id}: {e}",
                driver_id=driver_id,
            ) from e
        return [_violation_from_row(row) for row in rows]


class SqlDriverScoreRepository(DriverScoreRepository):
    """
    PostgreSQL driver score store with optimistic versioning.

    A first write inserts version 1 (a racing insert loses on the primary
    key). Later writes update only the row whose version was read.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, driver_id: str) -> Optional[DriverScore]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DriverScoreDB).where(DriverScoreDB.driver_id == driver_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to load score for driver {driver_id}: {e}",
                driver_id=driver_id,
            ) from e
        return _score_from_row(row) if row else None

    async def replace(
        self, score: DriverScore, expected_version: Optional[int]
    ) -> Optional[DriverScore]:
        new_version = (expected_version or 0) + 1
        values = _score_values(score, new_version)

        if expected_version is None:
            stmt = (
                pg_insert(DriverScoreDB)
                .values(**values)
                .on_conflict_do_nothing(index_elements=[DriverScoreDB.driver_id])
            )
        else:
            stmt = (
                update(DriverScoreDB)
                .where(DriverScoreDB.driver_id == score.driver_id)
                .where(DriverScoreDB.version == expected_version)
                .values(**values)
            )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to write score for driver {score.driver_id}: {e}",
                driver_id=score.driver_id,
            ) from e

        if result.rowcount != 1:
            logger.debug(
                "Score write conflict for driver %s (expected version %s)",
                score.driver_id,
                expected_version,
            )
            return None
        return score.model_copy(update={"version": new_version})
