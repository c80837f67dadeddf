"""
Violation Producer
==================

Publishes detected violations to the violation topic, keyed by driver so
that one driver's violations stay on one partition and are consumed in
order.

Author: Fleet Platform Team
Version: 1.0.0
"""

import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from fleetscore.config import settings
from fleetscore.errors import RetryableError
from shared.schemas.violations import ViolationEvent


logger = logging.getLogger(__name__)


class PublishError(RetryableError):
    """The broker did not acknowledge a violation event."""


class ViolationProducer:
    """
    Kafka sink for violation events.

    Usage:
        producer = ViolationProducer()
        await producer.start()
        await producer.publish(event)
    """

    def __init__(
        self,
        topic: Optional[str] = None,
        bootstrap_servers: Optional[str] = None,
    ):
        self.topic = topic or settings.kafka_violation_topic
        self.bootstrap_servers = bootstrap_servers or settings.kafka_bootstrap_servers
        self._producer: Optional[AIOKafkaProducer] = None
        self._published = 0

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            key_serializer=lambda k: k.encode("utf-8"),
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            acks="all",
            enable_idempotence=True,
        )
        await self._producer.start()
        logger.info(f"Violation producer started for topic '{self.topic}'")

    async def stop(self) -> None:
        if self._producer:
            await self._producer.stop()
            self._producer = None
            logger.info("Violation producer stopped")

    async def publish(self, event: ViolationEvent) -> None:
        """
        Publish one violation event and wait for the broker acknowledgement.

        Raises:
            PublishError: The send failed (retryable)
        """
        if not self._producer:
            raise RuntimeError("Producer not started. Call start() first.")
        try:
            await self._producer.send_and_wait(
                self.topic,
                value=event.to_kafka_message(),
                key=event.driver_id,
            )
        except KafkaError as e:
            raise PublishError(
                f"Failed to publish violation {event.violation_id}: {e}",
                driver_id=event.driver_id,
            ) from e
        self._published += 1
        logger.debug(
            f"Published {event.violation_type.value} for driver {event.driver_id}"
        )

    @property
    def published(self) -> int:
        return self._published
