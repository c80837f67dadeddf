"""
Telemetry Rule Evaluator
========================

Declarative rule table evaluated uniformly against one reading.

Rules are grouped. Within a group the first matching rule wins, so a
group contributes at most one violation. Groups are independent, which
gives the fan-out of a single reading:

    speeding (0..1) + fuel (0..1) + engine temp (0..1) + tires (0..4)

The evaluator is pure: no state, no I/O, and total over valid readings.

Usage:
    events = evaluate(reading)

Author: Fleet Platform Team
Version: 1.0.0
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from shared.schemas.telemetry import TelemetryReading
from shared.schemas.violations import (
    Severity,
    ViolationEvent,
    ViolationType,
    compute_violation_fingerprint,
    violation_id_for,
)


# =============================================================================
# Thresholds
# =============================================================================

SPEED_LIMIT_KMH = 80.0
SPEED_SEVERE_KMH = 100.0

FUEL_RESERVE_PCT = 15.0
FUEL_EMPTY_PCT = 5.0

ENGINE_TEMP_MAX_C = 110.0
# Severity of HIGH_TEMP is decided by fuel level, as the fleet rules
# were written. Fuel never exceeds 100%, so HIGH is the live outcome.
HIGH_TEMP_FUEL_CUTOFF = 120.0

TIRE_PRESSURE_MIN_PSI = 28.0

# (rule component, attribute on TirePressure, label used in messages)
TIRES: Tuple[Tuple[str, str, str], ...] = (
    ("tire.front_left", "front_left", "front left"),
    ("tire.front_right", "front_right", "front right"),
    ("tire.rear_left", "rear_left", "back left"),
    ("tire.rear_right", "rear_right", "back right"),
)


# =============================================================================
# Rule Table
# =============================================================================


@dataclass(frozen=True)
class ViolationRule:
    """
    One row of the rule table.

    Attributes:
        rule_id: Stable component name, part of the violation fingerprint
        violation_type: Type emitted when the rule fires
        severity: Severity emitted when the rule fires
        condition: Predicate over a reading
        describe: Builds the human-readable message
    """

    rule_id: str
    violation_type: ViolationType
    severity: Severity
    condition: Callable[[TelemetryReading], bool]
    describe: Callable[[TelemetryReading], str]


@dataclass(frozen=True)
class RuleGroup:
    """Mutually exclusive rules; the first match wins."""

    name: str
    rules: Tuple[ViolationRule, ...]

    def first_match(self, reading: TelemetryReading) -> Optional[ViolationRule]:
        for rule in self.rules:
            if rule.condition(reading):
                return rule
        return None


def _speeding_message(r: TelemetryReading) -> str:
    return f"Truck {r.truck_id} speeding at {r.speed} km/h (Driver: {r.driver_id})"


def _fuel_message(r: TelemetryReading) -> str:
    return f"Truck {r.truck_id} low fuel {r.fuel_level} %"


def _temp_message(r: TelemetryReading) -> str:
    return f"Truck {r.truck_id} high engine temperature {r.engine_temp}°C"


def _tire_group(rule_id: str, attr: str, label: str) -> RuleGroup:
    def pressure(r: TelemetryReading) -> float:
        return getattr(r.tire_pressure, attr)

    return RuleGroup(
        name=rule_id,
        rules=(
            ViolationRule(
                rule_id=rule_id,
                violation_type=ViolationType.LOW_TIRE_PRESSURE,
                severity=Severity.CRITICAL,
                condition=lambda r: pressure(r) < TIRE_PRESSURE_MIN_PSI,
                describe=lambda r: (
                    f"Truck {r.truck_id} low tire pressure: "
                    f"{label} tire = {pressure(r)} PSI"
                ),
            ),
        ),
    )


RULE_GROUPS: Tuple[RuleGroup, ...] = (
    RuleGroup(
        name="speeding",
        rules=(
            ViolationRule(
                rule_id="speeding",
                violation_type=ViolationType.SPEEDING,
                severity=Severity.HIGH,
                condition=lambda r: r.speed > SPEED_SEVERE_KMH,
                describe=_speeding_message,
            ),
            ViolationRule(
                rule_id="speeding",
                violation_type=ViolationType.SPEEDING,
                severity=Severity.MEDIUM,
                condition=lambda r: SPEED_LIMIT_KMH < r.speed <= SPEED_SEVERE_KMH,
                describe=_speeding_message,
            ),
        ),
    ),
    RuleGroup(
        name="fuel",
        rules=(
            ViolationRule(
                rule_id="fuel",
                violation_type=ViolationType.LOW_FUEL,
                severity=Severity.CRITICAL,
                condition=lambda r: r.fuel_level < FUEL_EMPTY_PCT,
                describe=_fuel_message,
            ),
            ViolationRule(
                rule_id="fuel",
                violation_type=ViolationType.LOW_FUEL,
                severity=Severity.HIGH,
                condition=lambda r: FUEL_EMPTY_PCT <= r.fuel_level < FUEL_RESERVE_PCT,
                describe=_fuel_message,
            ),
        ),
    ),
    RuleGroup(
        name="engine_temp",
        rules=(
            ViolationRule(
                rule_id="engine_temp",
                violation_type=ViolationType.HIGH_TEMP,
                severity=Severity.HIGH,
                condition=lambda r: (
                    r.engine_temp > ENGINE_TEMP_MAX_C
                    and r.fuel_level <= HIGH_TEMP_FUEL_CUTOFF
                ),
                describe=_temp_message,
            ),
            ViolationRule(
                rule_id="engine_temp",
                violation_type=ViolationType.HIGH_TEMP,
                severity=Severity.CRITICAL,
                condition=lambda r: r.engine_temp > ENGINE_TEMP_MAX_C,
                describe=_temp_message,
            ),
        ),
    ),
    *(_tire_group(rule_id, attr, label) for rule_id, attr, label in TIRES),
)

# Upper bound of events a single reading can produce
MAX_EVENTS_PER_READING = len(RULE_GROUPS)


# =============================================================================
# Evaluation
# =============================================================================


def build_event(
    rule: ViolationRule,
    reading: TelemetryReading,
    detected_at: datetime,
) -> ViolationEvent:
    """Create the violation event a rule emits for a reading."""
    fingerprint = compute_violation_fingerprint(
        reading.driver_id,
        rule.violation_type,
        rule.severity,
        reading.timestamp,
        rule.rule_id,
    )
    return ViolationEvent(
        violation_id=violation_id_for(fingerprint),
        truck_id=reading.truck_id,
        driver_id=reading.driver_id,
        violation_type=rule.violation_type,
        severity=rule.severity,
        message=rule.describe(reading),
        rule_id=rule.rule_id,
        original_reading=reading,
        detected_at=detected_at,
    )


def evaluate(
    reading: TelemetryReading,
    detected_at: Optional[datetime] = None,
    groups: Tuple[RuleGroup, ...] = RULE_GROUPS,
) -> List[ViolationEvent]:
    """
    Evaluate every rule group against a reading.

    Args:
        reading: A range-validated telemetry reading
        detected_at: Detection timestamp stamped on every event (defaults to now)
        groups: Rule table to evaluate (defaults to the fleet rules)

    Returns:
        Violation events in rule table order (empty when nothing trips)
    """
    detected_at = detected_at or datetime.now(timezone.utc)
    events = []
    for group in groups:
        rule = group.first_match(reading)
        if rule is not None:
            events.append(build_event(rule, reading, detected_at))
    return events
