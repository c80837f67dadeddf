"""
Telemetry Reading Schemas
=========================

Schemas for the periodic vehicle telemetry consumed from Kafka.

Key Components:
    - TelemetryReading: One timestamped sample from a truck/driver pair
    - TirePressure: The four tire pressures of a reading (PSI)
    - Location: Geolocation of a reading

Range constraints mirror the ingestion contract. A reading that violates
them never reaches rule evaluation.

Usage:
    from shared.schemas.telemetry import TelemetryReading

    reading = TelemetryReading.from_kafka_message(message.value)

Author: Fleet Platform Team
Version: 1.0.0
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _from_epoch_millis(millis: Union[int, float]) -> datetime:
    try:
        return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValueError(f"epoch timestamp {millis!r} out of range") from e


def parse_epoch_or_iso(value: Any) -> datetime:
    """
    Normalize a producer timestamp to an aware UTC datetime.

    Producers send epoch milliseconds; ISO-8601 strings are accepted
    for replays and tests.

    Raises:
        ValueError: Not a timestamp, or outside the representable range
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError("timestamp must be epoch milliseconds or ISO-8601, not a boolean")
    elif isinstance(value, (int, float)):
        return _from_epoch_millis(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return _from_epoch_millis(int(text))
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(
            f"timestamp must be epoch milliseconds or ISO-8601, got {type(value).__name__}"
        )

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Location(_WireModel):
    """Geolocation of a reading."""

    lat: float = Field(
        ...,
        ge=-90.0,
        le=90.0,
        validation_alias=AliasChoices("lat", "latitude"),
    )
    lon: float = Field(
        ...,
        ge=-180.0,
        le=180.0,
        validation_alias=AliasChoices("lon", "longitude"),
    )


class TirePressure(_WireModel):
    """Tire pressures in PSI, valid range 20-120."""

    front_left: float = Field(..., ge=20.0, le=120.0)
    front_right: float = Field(..., ge=20.0, le=120.0)
    rear_left: float = Field(..., ge=20.0, le=120.0)
    rear_right: float = Field(..., ge=20.0, le=120.0)


class TelemetryReading(_WireModel):
    """
    One telemetry sample from a truck.

    Attributes:
        truck_id: Truck identifier (broker partition key upstream)
        driver_id: Driver operating the truck
        speed: Speed in km/h (0-200)
        fuel_level: Fuel level in percent (0-100)
        engine_temp: Engine temperature in °C (0-150)
        tire_pressure: The four tire pressures
        location: Optional geolocation
        timestamp: Capture time (UTC)
    """

    truck_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    speed: float = Field(..., ge=0.0, le=200.0)
    fuel_level: float = Field(..., ge=0.0, le=100.0)
    engine_temp: float = Field(..., ge=0.0, le=150.0)
    tire_pressure: TirePressure
    location: Optional[Location] = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Capture timestamp (epoch millis or ISO-8601 on the wire)",
    )

    @field_validator("truck_id", "driver_id")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Identifiers cannot be blank."""
        if not v.strip():
            raise ValueError("identifier cannot be blank")
        return v.strip()

    @field_validator("timestamp", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> datetime:
        return parse_epoch_or_iso(v)

    @property
    def timestamp_millis(self) -> int:
        """Capture time as epoch milliseconds (the producer's format)."""
        return int(self.timestamp.timestamp() * 1000)

    def to_kafka_message(self) -> Dict[str, Any]:
        """
        Serialize the reading with camelCase keys.

        The timestamp is emitted as epoch milliseconds, matching what the
        ingestion service publishes.
        """
        data = self.model_dump(mode="json", by_alias=True)
        data["timestamp"] = self.timestamp_millis
        return data

    @classmethod
    def from_kafka_message(cls, data: Dict[str, Any]) -> "TelemetryReading":
        """
        Deserialize a reading from a Kafka message payload.

        Raises:
            pydantic.ValidationError: If the payload breaks the contract
        """
        return cls.model_validate(data)
