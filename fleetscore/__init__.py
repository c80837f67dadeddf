"""
Fleet Score Core Package
========================

Telemetry violation detection and driver safety scoring.

This package contains:
    - detection/: Stateless rule evaluation over telemetry readings
    - scoring/: Point classification and trailing-window driver scores
    - recording/: Idempotent violation recording
    - ingestion/: Kafka consumers, producer and pipeline wiring
    - db/: PostgreSQL and in-memory persistence

Author: Fleet Platform Team
Version: 1.0.0
"""

__version__ = "1.0.0"
