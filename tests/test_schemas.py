"""
Tests for Wire Schemas
======================

Telemetry parsing (camelCase, timestamps, aliases, ranges), violation
identity, and driver score comparison.

Author: Fleet Platform Team
Version: 1.0.0
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from fixtures import NOW, NOW_MILLIS, make_reading, reading_payload
from shared.schemas.scores import DriverScore, ScoreCategory
from shared.schemas.telemetry import TelemetryReading, parse_epoch_or_iso
from shared.schemas.violations import (
    Severity,
    ViolationEvent,
    ViolationType,
    compute_violation_fingerprint,
    violation_id_for,
)


class TestTelemetryReading:
    """Parsing of raw telemetry payloads."""

    def test_parses_camel_case_payload(self):
        reading = TelemetryReading.from_kafka_message(reading_payload())
        assert reading.truck_id == "TRK-001"
        assert reading.driver_id == "DR-001"
        assert reading.fuel_level == 60.0
        assert reading.tire_pressure.rear_right == 32.0
        assert reading.location.lat == 52.52

    def test_epoch_millis_timestamp(self):
        reading = TelemetryReading.from_kafka_message(reading_payload())
        assert reading.timestamp == NOW
        assert reading.timestamp.tzinfo is not None
        assert reading.timestamp_millis == NOW_MILLIS

    def test_iso_timestamp(self):
        reading = TelemetryReading.from_kafka_message(
            reading_payload(timestamp="2026-03-01T12:00:00Z")
        )
        assert reading.timestamp == NOW

    def test_latitude_longitude_aliases(self):
        reading = TelemetryReading.from_kafka_message(
            reading_payload(location={"latitude": 48.85, "longitude": 2.35})
        )
        assert reading.location.lat == 48.85
        assert reading.location.lon == 2.35

    def test_location_is_optional(self):
        payload = reading_payload()
        del payload["location"]
        assert TelemetryReading.from_kafka_message(payload).location is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("speed", 201),
            ("speed", -1),
            ("fuelLevel", 101),
            ("engineTemp", 151),
        ],
    )
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            TelemetryReading.from_kafka_message(reading_payload(**{field: value}))

    def test_rejects_out_of_range_tire(self):
        tires = dict(reading_payload()["tirePressure"], frontLeft=19.5)
        with pytest.raises(ValidationError):
            TelemetryReading.from_kafka_message(reading_payload(tirePressure=tires))

    def test_rejects_blank_driver(self):
        with pytest.raises(ValidationError):
            TelemetryReading.from_kafka_message(reading_payload(driverId="   "))

    def test_round_trip_keeps_wire_format(self):
        message = make_reading(speed=95.0).to_kafka_message()
        assert message["timestamp"] == NOW_MILLIS
        assert message["tirePressure"]["frontLeft"] == 32.0
        assert TelemetryReading.from_kafka_message(message).speed == 95.0


class TestParseEpochOrIso:

    def test_digit_string_is_millis(self):
        assert parse_epoch_or_iso(str(NOW_MILLIS)) == NOW

    def test_naive_datetime_is_utc(self):
        naive = datetime(2026, 3, 1, 12, 0)
        assert parse_epoch_or_iso(naive) == NOW

    def test_offset_converted_to_utc(self):
        parsed = parse_epoch_or_iso("2026-03-01T14:00:00+02:00")
        assert parsed == NOW
        assert parsed.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, {}, [], True, 1e30, float("nan"), "not-a-date"])
    def test_rejects_non_timestamps(self, value):
        with pytest.raises(ValueError):
            parse_epoch_or_iso(value)

    @pytest.mark.parametrize("value", [None, {"ms": 1}, 1e30, str(10**20)])
    def test_bad_timestamp_is_validation_error(self, value):
        with pytest.raises(ValidationError):
            TelemetryReading.from_kafka_message(reading_payload(timestamp=value))


class TestViolationIdentity:
    """Fingerprint and id stability."""

    def test_fingerprint_is_deterministic(self):
        a = compute_violation_fingerprint(
            "DR-001", ViolationType.SPEEDING, Severity.HIGH, NOW, "speeding"
        )
        b = compute_violation_fingerprint(
            "DR-001", ViolationType.SPEEDING, Severity.HIGH, NOW, "speeding"
        )
        assert a == b
        assert len(a) == 64

    def test_fingerprint_distinguishes_rule_component(self):
        left = compute_violation_fingerprint(
            "DR-001", ViolationType.LOW_TIRE_PRESSURE, Severity.CRITICAL, NOW,
            "tire.front_left",
        )
        right = compute_violation_fingerprint(
            "DR-001", ViolationType.LOW_TIRE_PRESSURE, Severity.CRITICAL, NOW,
            "tire.front_right",
        )
        assert left != right

    def test_fingerprint_ignores_timezone_representation(self):
        shifted = NOW.astimezone(timezone(timedelta(hours=5)))
        assert compute_violation_fingerprint(
            "DR-001", ViolationType.LOW_FUEL, Severity.HIGH, NOW
        ) == compute_violation_fingerprint(
            "DR-001", ViolationType.LOW_FUEL, Severity.HIGH, shifted
        )

    def test_violation_id_is_uuid5_of_fingerprint(self):
        fp = compute_violation_fingerprint(
            "DR-001", ViolationType.HIGH_TEMP, Severity.HIGH, NOW
        )
        vid = violation_id_for(fp)
        assert isinstance(vid, uuid.UUID)
        assert vid.version == 5
        assert vid == violation_id_for(fp)

    def test_event_round_trip_recomputes_fingerprint(self):
        reading = make_reading(speed=120.0)
        fp = compute_violation_fingerprint(
            reading.driver_id, ViolationType.SPEEDING, Severity.HIGH,
            reading.timestamp, "speeding",
        )
        event = ViolationEvent(
            violation_id=violation_id_for(fp),
            truck_id=reading.truck_id,
            driver_id=reading.driver_id,
            violation_type=ViolationType.SPEEDING,
            severity=Severity.HIGH,
            rule_id="speeding",
            original_reading=reading,
            detected_at=NOW,
        )
        message = event.to_kafka_message()
        assert message["fingerprint"] == fp
        assert message["violationType"] == "SPEEDING"
        assert message["detectedAt"] == NOW_MILLIS

        message["fingerprint"] = "forged"
        parsed = ViolationEvent.from_kafka_message(message)
        assert parsed.fingerprint == fp
        assert parsed.original_reading.speed == 120.0

    @pytest.mark.parametrize("detected_at", [None, {}, 1e30])
    def test_event_rejects_bad_detected_at(self, detected_at):
        message = ViolationEvent(
            violation_id=uuid.uuid4(),
            truck_id="TRK-001",
            driver_id="DR-001",
            violation_type=ViolationType.SPEEDING,
            severity=Severity.HIGH,
            rule_id="speeding",
            original_reading=make_reading(speed=120.0),
            detected_at=NOW,
        ).to_kafka_message()
        message["detectedAt"] = detected_at

        with pytest.raises(ValidationError):
            ViolationEvent.from_kafka_message(message)


class TestDriverScore:

    def test_same_result_ignores_bookkeeping(self):
        a = DriverScore(
            driver_id="DR-001",
            current_score=94,
            score_category=ScoreCategory.EXCELLENT,
            total_violations=3,
            updated_at=NOW,
            version=1,
        )
        b = a.model_copy(update={"updated_at": NOW + timedelta(hours=1), "version": 2})
        assert a.same_result(b)
        assert not a.same_result(a.model_copy(update={"current_score": 93}))

    def test_rejects_score_above_baseline(self):
        with pytest.raises(ValidationError):
            DriverScore(
                driver_id="DR-001",
                current_score=101,
                score_category=ScoreCategory.EXCELLENT,
            )
