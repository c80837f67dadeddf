"""
Tests for the Score Aggregator
==============================

Covers the scoring formula, category bands, the trailing window,
idempotence, and the concurrency guarantees of recomputation
(versioned writes, conflict retry, bounded persistence calls).

Author: Fleet Platform Team
Version: 1.0.0
"""

import asyncio
from datetime import timedelta

import pytest

from fixtures import NOW, make_violation
from fleetscore.config import settings
from fleetscore.db.memory import InMemoryDriverScoreRepository
from fleetscore.errors import PersistenceTimeoutError, ScoreConflictError
from fleetscore.scoring.aggregator import (
    ScoreAggregator,
    classify_score_category,
    compute_driver_score,
)
from shared.schemas.scores import ScoreCategory
from shared.schemas.violations import Severity, ViolationType


async def store(repo, *violations):
    for v in violations:
        assert await repo.add(v)


class TestClassifyScoreCategory:

    @pytest.mark.parametrize(
        "score,category",
        [
            (100, ScoreCategory.EXCELLENT),
            (91, ScoreCategory.EXCELLENT),
            (90, ScoreCategory.GOOD),
            (76, ScoreCategory.GOOD),
            (75, ScoreCategory.AVERAGE),
            (61, ScoreCategory.AVERAGE),
            (60, ScoreCategory.POOR),
            (41, ScoreCategory.POOR),
            (40, ScoreCategory.CRITICAL),
            (0, ScoreCategory.CRITICAL),
        ],
    )
    def test_bands(self, score, category):
        assert classify_score_category(score) == category


class TestComputeDriverScore:
    """The pure scoring formula."""

    def test_no_violations_is_baseline(self):
        score = compute_driver_score("DR-001", [], now=NOW)
        assert score.current_score == 100
        assert score.score_category == ScoreCategory.EXCELLENT
        assert score.total_violations == 0
        assert score.last_violation_date is None

    def test_three_medium_speeding(self):
        violations = [make_violation(seq=i) for i in range(3)]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.current_score == 94
        assert score.score_category == ScoreCategory.EXCELLENT
        assert score.total_violations == 3

    def test_mixed_violations(self):
        violations = [
            make_violation(ViolationType.SPEEDING, Severity.MEDIUM, seq=0),
            make_violation(ViolationType.HIGH_TEMP, Severity.HIGH, seq=1),
            make_violation(ViolationType.SPEEDING, Severity.HIGH, seq=2),
            make_violation(ViolationType.LOW_TIRE_PRESSURE, Severity.CRITICAL, seq=3),
        ]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.current_score == 88
        assert score.score_category == ScoreCategory.GOOD

    def test_speeding_fuel_temp_tire_mix_is_good(self):
        violations = [
            make_violation(ViolationType.SPEEDING, Severity.MEDIUM, seq=0),
            make_violation(ViolationType.LOW_FUEL, Severity.CRITICAL, seq=1),
            make_violation(ViolationType.HIGH_TEMP, Severity.CRITICAL, seq=2),
            make_violation(ViolationType.LOW_TIRE_PRESSURE, Severity.HIGH, seq=3),
        ]
        assert [v.points_deducted for v in violations] == [2, 3, 5, 2]

        score = compute_driver_score("DR-001", violations, now=NOW)

        assert score.current_score == 88
        assert score.score_category == ScoreCategory.GOOD
        assert score.total_violations == 4

    def test_old_violations_are_ignored(self):
        violations = [
            make_violation(recorded_at=NOW - timedelta(days=60), seq=0),
            make_violation(recorded_at=NOW - timedelta(days=1), seq=1),
        ]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.current_score == 98
        assert score.total_violations == 1
        assert score.last_violation_date == NOW - timedelta(days=1)

    def test_window_start_is_exclusive(self):
        edge = NOW - timedelta(days=30)
        violations = [
            make_violation(recorded_at=edge, seq=0),
            make_violation(recorded_at=edge + timedelta(seconds=1), seq=1),
        ]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.total_violations == 1

    def test_score_floors_at_zero(self):
        violations = [make_violation(points=30, seq=i) for i in range(4)]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.current_score == 0
        assert score.score_category == ScoreCategory.CRITICAL
        assert score.explain["points_deducted"] == 120

    def test_score_of_forty_is_critical(self):
        violations = [
            make_violation(ViolationType.SPEEDING, Severity.HIGH, seq=i)
            for i in range(12)
        ]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.current_score == 40
        assert score.score_category == ScoreCategory.CRITICAL

    def test_other_drivers_are_ignored(self):
        violations = [
            make_violation(driver_id="DR-002", seq=0),
            make_violation(driver_id="DR-001", seq=1),
        ]
        score = compute_driver_score("DR-001", violations, now=NOW)
        assert score.total_violations == 1

    def test_explain_breaks_down_each_type(self):
        violations = [
            make_violation(ViolationType.SPEEDING, Severity.HIGH, seq=0),
            make_violation(ViolationType.SPEEDING, Severity.MEDIUM, seq=1),
            make_violation(ViolationType.LOW_FUEL, Severity.CRITICAL, seq=2),
            make_violation(ViolationType.LOW_TIRE_PRESSURE, Severity.CRITICAL, seq=3),
        ]
        explain = compute_driver_score("DR-001", violations, now=NOW).explain
        assert explain["by_type"] == {
            "LOW_FUEL": {"count": 1, "points": 3},
            "LOW_TIRE_PRESSURE": {"count": 1, "points": 2},
            "SPEEDING": {"count": 2, "points": 7},
        }
        assert explain["baseline"] == 100
        assert explain["window_days"] == 30
        assert explain["window_end"] == NOW.isoformat()


class TestScoreAggregator:
    """Recomputation against the repositories."""

    @pytest.mark.asyncio
    async def test_recompute_with_no_violations(self, aggregator, score_repo):
        score = await aggregator.recompute("DR-001")
        assert score.current_score == 100
        assert score.score_category == ScoreCategory.EXCELLENT
        assert score.version == 1
        assert await score_repo.get("DR-001") == score

    @pytest.mark.asyncio
    async def test_recompute_reads_the_window(self, aggregator, violation_repo):
        await store(
            violation_repo,
            make_violation(seq=0),
            make_violation(seq=1),
            make_violation(seq=2),
            make_violation(recorded_at=NOW - timedelta(days=45), seq=3),
        )
        score = await aggregator.recompute("DR-001")
        assert score.current_score == 94
        assert score.total_violations == 3

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(self, aggregator, violation_repo):
        await store(violation_repo, make_violation(ViolationType.HIGH_TEMP, Severity.HIGH))
        first = await aggregator.recompute("DR-001")
        second = await aggregator.recompute("DR-001")
        assert first.same_result(second)
        assert second.version == first.version + 1

    @pytest.mark.asyncio
    async def test_get_score_before_first_recompute(self, aggregator):
        assert await aggregator.get_score("DR-404") is None

    @pytest.mark.asyncio
    async def test_concurrent_recomputes_converge(self, aggregator, violation_repo, score_repo):
        await store(violation_repo, *[make_violation(seq=i) for i in range(5)])
        results = await asyncio.gather(
            *[aggregator.recompute("DR-001") for _ in range(5)]
        )
        assert {r.current_score for r in results} == {90}
        stored = await score_repo.get("DR-001")
        assert stored.version == 5
        assert score_repo.writes == 5


class RacingScoreRepository(InMemoryDriverScoreRepository):
    """Simulates another process writing the score between read and swap."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    async def replace(self, score, expected_version):
        if self.races > 0:
            self.races -= 1
            await super().replace(
                score.model_copy(update={"current_score": 1}), expected_version
            )
        return await super().replace(score, expected_version)


class TestScoreConflicts:

    @pytest.mark.asyncio
    async def test_lost_swap_is_retried(self, violation_repo, clock):
        scores = RacingScoreRepository(races=1)
        aggregator = ScoreAggregator(
            violation_repo, scores, write_attempts=3, clock=clock
        )
        await store(violation_repo, make_violation())

        score = await aggregator.recompute("DR-001")

        assert score.current_score == 98
        assert score.version == 2
        assert (await scores.get("DR-001")).current_score == 98

    @pytest.mark.asyncio
    async def test_conflict_after_all_attempts(self, violation_repo, clock):
        scores = RacingScoreRepository(races=3)
        aggregator = ScoreAggregator(
            violation_repo, scores, write_attempts=3, clock=clock
        )

        with pytest.raises(ScoreConflictError) as exc_info:
            await aggregator.recompute("DR-001")

        assert exc_info.value.retryable
        assert exc_info.value.driver_id == "DR-001"
        assert exc_info.value.attempts == 3
        # Only the competing writer's rows were stored
        assert (await scores.get("DR-001")).current_score == 1


class SlowViolationRepository:
    """Violation store whose window read never finishes in time."""

    async def add(self, violation):
        return True

    async def get_by_fingerprint(self, fingerprint):
        return None

    async def list_for_driver_since(self, driver_id, since):
        await asyncio.sleep(5)
        return []


class TestPersistenceTimeouts:

    @pytest.mark.asyncio
    async def test_slow_read_times_out_without_writing(self, score_repo, clock):
        aggregator = ScoreAggregator(
            SlowViolationRepository(), score_repo, timeout_seconds=0.01, clock=clock
        )

        with pytest.raises(PersistenceTimeoutError) as exc_info:
            await aggregator.recompute("DR-001")

        assert exc_info.value.retryable
        assert exc_info.value.operation == "load violation window"
        assert score_repo.writes == 0


class TestAggregatorArguments:

    def test_defaults_come_from_settings(self, violation_repo, score_repo):
        aggregator = ScoreAggregator(violation_repo, score_repo)
        assert aggregator.window_days == settings.score_window_days
        assert aggregator.write_attempts == settings.score_write_attempts
        assert aggregator.timeout_seconds == settings.persistence_timeout_seconds

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window_days": 0},
            {"write_attempts": 0},
            {"timeout_seconds": 0.0},
            {"baseline": 101},
        ],
    )
    def test_explicit_invalid_values_are_rejected(self, violation_repo, score_repo, kwargs):
        with pytest.raises(ValueError):
            ScoreAggregator(violation_repo, score_repo, **kwargs)

    @pytest.mark.asyncio
    async def test_explicit_window_is_honoured(self, violation_repo, score_repo, clock):
        aggregator = ScoreAggregator(violation_repo, score_repo, window_days=1, clock=clock)
        await store(
            violation_repo,
            make_violation(recorded_at=NOW - timedelta(days=2), seq=0),
            make_violation(recorded_at=NOW - timedelta(hours=1), seq=1),
        )

        score = await aggregator.recompute("DR-001")

        assert score.total_violations == 1
        assert score.current_score == 98
