"""
Fleet Shared Schemas Package
============================

Wire and record schemas shared by the detection and scoring stages.

This package provides:
    - TelemetryReading: Core input schema for vehicle telemetry
    - ViolationEvent: Hand-off schema between detection and recording
    - Violation: Persisted violation record
    - DriverScore: Materialized per-driver score
    - Enumerations: Violation types, severities, score categories

Author: Fleet Platform Team
Version: 1.0.0
"""

from shared.schemas.telemetry import (
    TelemetryReading,
    TirePressure,
    Location,
)

from shared.schemas.violations import (
    ViolationEvent,
    Violation,
    ViolationType,
    Severity,
    compute_violation_fingerprint,
    violation_id_for,
)

from shared.schemas.scores import (
    DriverScore,
    ScoreCategory,
)

__all__ = [
    # Input schema
    "TelemetryReading",
    "TirePressure",
    "Location",
    # Hand-off and records
    "ViolationEvent",
    "Violation",
    "ViolationType",
    "Severity",
    "compute_violation_fingerprint",
    "violation_id_for",
    # Scores
    "DriverScore",
    "ScoreCategory",
]
