"""
Pipeline Coordinator
====================

Wires the two stages of the scoring pipeline:

    raw-telemetry ──► detect ──► violation sink ──► record + rescore

The violation sink is either the Kafka producer (stages run as separate
consumers, decoupled by the violation topic) or the recorder itself
(single-process mode, used for local runs and tests).

Usage:
    coordinator = PipelineCoordinator.in_process(violation_repo, score_repo)
    events = await coordinator.handle_reading(reading)

Author: Fleet Platform Team
Version: 1.0.0
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from fleetscore.config import settings
from fleetscore.db.repository import DriverScoreRepository, ViolationRepository
from fleetscore.detection.rules import evaluate
from fleetscore.ingestion.consumer import EventConsumer
from fleetscore.recording.recorder import RecordResult, ViolationRecorder
from fleetscore.scoring.aggregator import ScoreAggregator
from shared.schemas.telemetry import TelemetryReading
from shared.schemas.violations import ViolationEvent


logger = logging.getLogger(__name__)


class ViolationSink(Protocol):
    """Destination of detected violations."""

    async def publish(self, event: ViolationEvent) -> None:
        ...


class LocalViolationSink:
    """Hands violations straight to the scoring stage, without a broker hop."""

    def __init__(self, handler: Callable[[ViolationEvent], Awaitable[Any]]):
        self._handler = handler

    async def publish(self, event: ViolationEvent) -> None:
        await self._handler(event)


def reading_key(reading: TelemetryReading) -> str:
    """Idempotency key of a telemetry message."""
    return f"{reading.truck_id}:{reading.driver_id}:{reading.timestamp_millis}"


def violation_key(event: ViolationEvent) -> str:
    """Idempotency key of a violation message."""
    return event.fingerprint


class PipelineCoordinator:
    """
    Routes readings through detection and violations through recording.

    Publishing several events of one reading is not atomic. If a later
    publish fails, the whole reading is retried and the already-published
    events are deduplicated downstream by fingerprint.
    """

    def __init__(
        self,
        sink: Optional[ViolationSink] = None,
        recorder: Optional[ViolationRecorder] = None,
        evaluator: Callable[[TelemetryReading], List[ViolationEvent]] = evaluate,
    ):
        if sink is None and recorder is None:
            raise ValueError("Coordinator needs a violation sink or a recorder")
        self._sink = sink or LocalViolationSink(self.handle_violation)
        self._recorder = recorder
        self._evaluate = evaluator
        self._stats = {
            "readings_evaluated": 0,
            "violations_detected": 0,
            "violations_recorded": 0,
            "duplicates": 0,
        }

    @classmethod
    def in_process(
        cls,
        violations: ViolationRepository,
        scores: DriverScoreRepository,
        aggregator: Optional[ScoreAggregator] = None,
    ) -> "PipelineCoordinator":
        """Build a coordinator whose detection feeds the recorder directly."""
        aggregator = aggregator or ScoreAggregator(violations, scores)
        return cls(recorder=ViolationRecorder(violations, aggregator))

    async def handle_reading(self, reading: TelemetryReading) -> List[ViolationEvent]:
        """
        Evaluate one reading and publish every violation it produces.

        Returns:
            The detected events (empty for a clean reading)
        """
        self._stats["readings_evaluated"] += 1
        events = self._evaluate(reading)
        if not events:
            logger.debug(
                "Reading from truck %s is within limits", reading.truck_id
            )
            return []

        for event in events:
            await self._sink.publish(event)

        self._stats["violations_detected"] += len(events)
        logger.info(
            "Detected %d violation(s) for truck %s driver %s: %s",
            len(events),
            reading.truck_id,
            reading.driver_id,
            ", ".join(e.violation_type.value for e in events),
        )
        return events

    async def handle_violation(self, event: ViolationEvent) -> RecordResult:
        """Record one violation event and rescore its driver."""
        if self._recorder is None:
            raise RuntimeError("Coordinator has no recorder for the scoring stage")
        result = await self._recorder.record(event)
        if result.duplicate:
            self._stats["duplicates"] += 1
        else:
            self._stats["violations_recorded"] += 1
        return result

    def telemetry_consumer(self, **kwargs) -> EventConsumer[TelemetryReading]:
        """Consumer of the telemetry topic feeding the detection stage."""
        consumer: EventConsumer[TelemetryReading] = EventConsumer(
            topic=kwargs.pop("topic", settings.kafka_telemetry_topic),
            parse=TelemetryReading.from_kafka_message,
            key_of=reading_key,
            **kwargs,
        )
        consumer.register_handler(self.handle_reading)
        return consumer

    def violation_consumer(self, **kwargs) -> EventConsumer[ViolationEvent]:
        """Consumer of the violation topic feeding the scoring stage."""
        consumer: EventConsumer[ViolationEvent] = EventConsumer(
            topic=kwargs.pop("topic", settings.kafka_violation_topic),
            parse=ViolationEvent.from_kafka_message,
            key_of=violation_key,
            **kwargs,
        )
        consumer.register_handler(self.handle_violation)
        return consumer

    def get_stats(self) -> dict:
        return dict(self._stats)
