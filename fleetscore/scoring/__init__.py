"""
Fleet Scoring Package
=====================

Driver safety scoring for the fleet pipeline.

This package provides:
    - points: Violation classifier (type, severity) → point deduction
    - aggregator: Trailing-window score recomputation and banding

Author: Fleet Platform Team
Version: 1.0.0
"""

from fleetscore.scoring.points import points_for
from fleetscore.scoring.aggregator import (
    ScoreAggregator,
    classify_score_category,
    compute_driver_score,
)

__all__ = [
    "points_for",
    "ScoreAggregator",
    "classify_score_category",
    "compute_driver_score",
]
