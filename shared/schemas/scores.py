"""
Driver Score Schemas
====================

The per-driver safety score materialized over violation history.

Author: Fleet Platform Team
Version: 1.0.0
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScoreCategory(str, Enum):
    """Score band derived from the numeric score."""

    EXCELLENT = "EXCELLENT"
    """Score above 90"""

    GOOD = "GOOD"
    """Score above 75"""

    AVERAGE = "AVERAGE"
    """Score above 60"""

    POOR = "POOR"
    """Score above 40"""

    CRITICAL = "CRITICAL"
    """Score of 40 or below"""


class DriverScore(BaseModel):
    """
    Current safety score for a driver.

    Always recomputed wholesale from the violations in the trailing
    window; never patched incrementally.

    Attributes:
        driver_id: Driver identifier
        current_score: Integer score in [0, 100]
        score_category: Band of the score
        total_violations: Violations counted in the window
        last_violation_date: Latest recorded_at in the window (None if empty)
        updated_at: When this score was computed
        version: Optimistic concurrency counter of the stored row
        explain: Per-type breakdown and window bounds
    """

    model_config = ConfigDict(frozen=True)

    driver_id: str
    current_score: int = Field(..., ge=0, le=100)
    score_category: ScoreCategory
    total_violations: int = Field(default=0, ge=0)
    last_violation_date: Optional[datetime] = None
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    version: int = Field(default=0, ge=0)
    explain: Dict[str, Any] = Field(default_factory=dict)

    def same_result(self, other: "DriverScore") -> bool:
        """True when two scores agree on everything except bookkeeping fields."""
        ignored = {"updated_at", "version"}
        return self.model_dump(exclude=ignored) == other.model_dump(exclude=ignored)
