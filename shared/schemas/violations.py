"""
Violation Schemas
=================

Schemas for rule breaches detected in telemetry.

Key Components:
    - ViolationType: The four rule families
    - Severity: Severity ladder shared by all rules
    - ViolationEvent: In-flight hand-off between detection and recording
    - Violation: Persisted, immutable record carrying a point deduction

Identity:
    A violation is identified by a fingerprint over
    (driver, type, severity, source reading timestamp, rule component).
    Redelivery of the same reading or event yields the same fingerprint
    and the same UUIDv5 violation id.

Author: Fleet Platform Team
Version: 1.0.0
"""

import hashlib
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.schemas.telemetry import TelemetryReading, parse_epoch_or_iso


# Namespace for deterministic violation ids
VIOLATION_NAMESPACE = uuid.UUID("6f1c5a52-3d0e-4d2b-9a57-6a9e3e7b2c10")


class ViolationType(str, Enum):
    """Rule family that produced a violation."""

    SPEEDING = "SPEEDING"
    """Speed above the fleet limit"""

    LOW_FUEL = "LOW_FUEL"
    """Fuel level below reserve"""

    HIGH_TEMP = "HIGH_TEMP"
    """Engine temperature above operating range"""

    LOW_TIRE_PRESSURE = "LOW_TIRE_PRESSURE"
    """One tire under-inflated (one event per tire)"""


class Severity(str, Enum):
    """Severity of a violation, lowest to highest."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def compute_violation_fingerprint(
    driver_id: str,
    violation_type: ViolationType,
    severity: Severity,
    reading_timestamp: datetime,
    rule_id: str = "",
) -> str:
    """
    Compute the deduplication key of a violation.

    Fingerprint components:
        - driver_id
        - violation_type
        - severity
        - reading timestamp (epoch millis, UTC)
        - rule_id (tells the four tire events of one reading apart)

    Returns:
        SHA256 hex digest (64 chars)
    """
    millis = int(reading_timestamp.astimezone(timezone.utc).timestamp() * 1000)
    components = [
        driver_id,
        violation_type.value,
        severity.value,
        str(millis),
        rule_id or "-",
    ]
    return hashlib.sha256("|".join(components).encode()).hexdigest()


def violation_id_for(fingerprint: str) -> uuid.UUID:
    """Deterministic violation id derived from a fingerprint."""
    return uuid.uuid5(VIOLATION_NAMESPACE, fingerprint)


class ViolationEvent(BaseModel):
    """
    A detected rule breach in flight between detection and recording.

    Published on the violation topic keyed by driver id. The original
    reading travels with the event so the recorder can snapshot it.

    Attributes:
        violation_id: Deterministic id (UUIDv5 of the fingerprint)
        truck_id: Truck that produced the reading
        driver_id: Driver the violation counts against
        violation_type: Rule family
        severity: Severity assigned by the rule
        message: Human-readable description
        rule_id: Rule component that fired (e.g. "tire.front_left")
        original_reading: The reading that tripped the rule
        detected_at: When the evaluator produced the event
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    violation_id: uuid.UUID
    truck_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    violation_type: ViolationType
    severity: Severity
    message: str = ""
    rule_id: str = ""
    original_reading: TelemetryReading
    detected_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("detected_at", mode="before")
    @classmethod
    def validate_detected_at(cls, v: Any) -> datetime:
        return parse_epoch_or_iso(v)

    @property
    def fingerprint(self) -> str:
        """Deduplication key, recomputed from content (never trusted from the wire)."""
        return compute_violation_fingerprint(
            self.driver_id,
            self.violation_type,
            self.severity,
            self.original_reading.timestamp,
            self.rule_id,
        )

    def to_kafka_message(self) -> Dict[str, Any]:
        """Serialize for the violation topic."""
        data = self.model_dump(mode="json", by_alias=True)
        data["originalReading"] = self.original_reading.to_kafka_message()
        data["detectedAt"] = int(self.detected_at.timestamp() * 1000)
        data["fingerprint"] = self.fingerprint
        return data

    @classmethod
    def from_kafka_message(cls, data: Dict[str, Any]) -> "ViolationEvent":
        """Deserialize from a violation topic payload."""
        payload = {k: v for k, v in data.items() if k != "fingerprint"}
        return cls.model_validate(payload)


class Violation(BaseModel):
    """
    Persisted violation record.

    Immutable once written. Carries the assigned point deduction, the
    recording time used by the trailing score window, and a snapshot of
    the originating reading.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    fingerprint: str
    truck_id: str
    driver_id: str
    violation_type: ViolationType
    severity: Severity
    message: str = ""
    rule_id: str = ""
    points_deducted: int = Field(..., ge=0)
    detected_at: datetime
    recorded_at: datetime

    # Snapshot of the originating reading
    reading_timestamp: datetime
    speed: Optional[float] = None
    fuel_level: Optional[float] = None
    engine_temp: Optional[float] = None
    tire_front_left: Optional[float] = None
    tire_front_right: Optional[float] = None
    tire_rear_left: Optional[float] = None
    tire_rear_right: Optional[float] = None
    location_lat: Optional[float] = None
    location_lon: Optional[float] = None

    @classmethod
    def from_event(
        cls,
        event: ViolationEvent,
        points_deducted: int,
        recorded_at: Optional[datetime] = None,
    ) -> "Violation":
        """Stamp a violation event into a persistable record."""
        reading = event.original_reading
        fingerprint = event.fingerprint
        return cls(
            id=violation_id_for(fingerprint),
            fingerprint=fingerprint,
            truck_id=event.truck_id,
            driver_id=event.driver_id,
            violation_type=event.violation_type,
            severity=event.severity,
            message=event.message,
            rule_id=event.rule_id,
            points_deducted=points_deducted,
            detected_at=event.detected_at,
            recorded_at=recorded_at or datetime.now(timezone.utc),
            reading_timestamp=reading.timestamp,
            speed=reading.speed,
            fuel_level=reading.fuel_level,
            engine_temp=reading.engine_temp,
            tire_front_left=reading.tire_pressure.front_left,
            tire_front_right=reading.tire_pressure.front_right,
            tire_rear_left=reading.tire_pressure.rear_left,
            tire_rear_right=reading.tire_pressure.rear_right,
            location_lat=reading.location.lat if reading.location else None,
            location_lon=reading.location.lon if reading.location else None,
        )
