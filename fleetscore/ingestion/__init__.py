"""
Fleet Ingestion Package
=======================

Kafka hand-off between the pipeline stages.

This package provides:
    - consumer: Kafka consumer with retry and dead-lettering
    - producer: Violation event publisher
    - pipeline: Coordinator wiring detection to recording

Flow:
    TelemetryReading → Rule Evaluator → ViolationEvent → Recorder → DriverScore

Author: Fleet Platform Team
Version: 1.0.0
"""

from fleetscore.ingestion.consumer import EventConsumer
from fleetscore.ingestion.producer import PublishError, ViolationProducer
from fleetscore.ingestion.pipeline import (
    LocalViolationSink,
    PipelineCoordinator,
    ViolationSink,
)

__all__ = [
    "EventConsumer",
    "PublishError",
    "ViolationProducer",
    "LocalViolationSink",
    "PipelineCoordinator",
    "ViolationSink",
]
