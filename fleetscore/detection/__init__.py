"""
Fleet Detection Package
=======================

Stateless rule evaluation over single telemetry readings.

Author: Fleet Platform Team
Version: 1.0.0
"""

from fleetscore.detection.rules import (
    RULE_GROUPS,
    RuleGroup,
    ViolationRule,
    evaluate,
)

__all__ = [
    "RULE_GROUPS",
    "RuleGroup",
    "ViolationRule",
    "evaluate",
]
