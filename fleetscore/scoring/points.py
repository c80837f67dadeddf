"""
Violation Classifier
====================

Maps (violation type, severity) to a point deduction.

Lookup order:
    1. Exact (type, severity) entry
    2. Type-wide entry (any severity)
    3. Severity-only fallback
    4. Zero

The lookup never raises, so the recorder always has a deduction.

Author: Fleet Platform Team
Version: 1.0.0
"""

from typing import Dict, Optional, Tuple

from shared.schemas.violations import Severity, ViolationType


POINTS_TABLE: Dict[Tuple[ViolationType, Severity], int] = {
    (ViolationType.SPEEDING, Severity.HIGH): 5,
    (ViolationType.SPEEDING, Severity.MEDIUM): 2,
    (ViolationType.LOW_FUEL, Severity.CRITICAL): 3,
    (ViolationType.LOW_FUEL, Severity.HIGH): 1,
    (ViolationType.HIGH_TEMP, Severity.CRITICAL): 5,
    (ViolationType.HIGH_TEMP, Severity.HIGH): 3,
}

# Deductions that apply regardless of severity
TYPE_POINTS: Dict[ViolationType, int] = {
    ViolationType.LOW_TIRE_PRESSURE: 2,
}

SEVERITY_FALLBACK_POINTS: Dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


def points_for(
    violation_type: Optional[ViolationType],
    severity: Optional[Severity],
) -> int:
    """Point deduction for a violation; 0 when nothing matches."""
    exact = POINTS_TABLE.get((violation_type, severity))
    if exact is not None:
        return exact
    type_wide = TYPE_POINTS.get(violation_type)
    if type_wide is not None:
        return type_wide
    return SEVERITY_FALLBACK_POINTS.get(severity, 0)
