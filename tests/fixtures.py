"""
Test Fixtures for the Scoring Pipeline
======================================

Builders for readings and stored violations:
    - reading_payload: wire payload of a clean reading
    - make_reading: schema-validated reading with overrides
    - make_violation: stored violation with a distinct fingerprint

Author: Fleet Platform Team
Version: 1.0.0
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fleetscore.scoring.points import points_for
from shared.schemas.telemetry import TelemetryReading
from shared.schemas.violations import (
    Severity,
    Violation,
    ViolationType,
    compute_violation_fingerprint,
    violation_id_for,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
NOW_MILLIS = int(NOW.timestamp() * 1000)


def reading_payload(**overrides) -> dict:
    """Wire payload of a reading that trips no rule."""
    payload = {
        "truckId": "TRK-001",
        "driverId": "DR-001",
        "speed": 65.0,
        "fuelLevel": 60.0,
        "engineTemp": 90.0,
        "tirePressure": {
            "frontLeft": 32.0,
            "frontRight": 32.0,
            "rearLeft": 32.0,
            "rearRight": 32.0,
        },
        "location": {"lat": 52.52, "lon": 13.405},
        "timestamp": NOW_MILLIS,
    }
    payload.update(overrides)
    return payload


def make_reading(tires: Optional[dict] = None, **overrides) -> TelemetryReading:
    """A clean reading with snake_case field overrides."""
    base = TelemetryReading.from_kafka_message(reading_payload())
    update = dict(overrides)
    if tires:
        update["tire_pressure"] = base.tire_pressure.model_copy(update=tires)
    return base.model_copy(update=update)


def make_violation(
    violation_type: ViolationType = ViolationType.SPEEDING,
    severity: Severity = Severity.MEDIUM,
    recorded_at: datetime = NOW,
    driver_id: str = "DR-001",
    points: Optional[int] = None,
    seq: int = 0,
) -> Violation:
    """A stored violation; ``seq`` keeps fingerprints distinct."""
    reading_ts = recorded_at - timedelta(seconds=seq + 1)
    rule_id = f"test.{seq}"
    fingerprint = compute_violation_fingerprint(
        driver_id, violation_type, severity, reading_ts, rule_id
    )
    return Violation(
        id=violation_id_for(fingerprint),
        fingerprint=fingerprint,
        truck_id="TRK-001",
        driver_id=driver_id,
        violation_type=violation_type,
        severity=severity,
        rule_id=rule_id,
        points_deducted=points_for(violation_type, severity) if points is None else points,
        detected_at=recorded_at,
        recorded_at=recorded_at,
        reading_timestamp=reading_ts,
    )
