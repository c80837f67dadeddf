"""
Fleet Event Consumer
====================

Async Kafka consumer shared by both pipeline stages.

Consumes one topic, validates each message into a schema object, and
routes it to registered handlers with retry and dead-lettering.

Delivery:
    - At-least-once. Offsets are committed only after a message was
      handled or dead-lettered. When the dead letter topic cannot be
      written, consumption stops with the offset uncommitted.
    - Recently handled message keys are remembered so that an immediate
      redelivery is skipped. Durable deduplication lives in the
      violation store (fingerprints); this cache only saves work.

Usage:
    consumer = EventConsumer(
        topic="violation-events",
        parse=ViolationEvent.from_kafka_message,
        key_of=lambda event: event.fingerprint,
    )
    consumer.register_handler(recorder.record)

    try:
        await consumer.start()
        await consumer.consume_forever()
    finally:
        await consumer.stop()

Author: Fleet Platform Team
Version: 1.0.0
"""

import json
import logging
import asyncio
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar
from datetime import datetime, timezone

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.errors import KafkaError

from fleetscore.config import settings
from fleetscore.errors import DeadLetterError, InvalidMessageError, is_retryable
from fleetscore.logging import bind_message_context, clear_message_context


logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[Any]]


class _RecentKeys:
    """Bounded memory of recently settled message keys, oldest evicted first."""

    def __init__(self, capacity: int = 100_000):
        self.capacity = capacity
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        found = key in self._keys
        if found:
            self._keys.move_to_end(key)
        return found

    def add(self, key: str) -> None:
        if self.capacity <= 0:
            return
        self._keys[key] = None
        self._keys.move_to_end(key)
        while len(self._keys) > self.capacity:
            self._keys.popitem(last=False)

    def __len__(self) -> int:
        return len(self._keys)


def deserialize_message(data: Optional[bytes]) -> Optional[Dict[str, Any]]:
    """
    Deserialize a Kafka message value from JSON bytes.

    Raises:
        InvalidMessageError: The value is not a JSON object
    """
    if data is None:
        return None
    try:
        payload = json.loads(data.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidMessageError(f"Failed to deserialize message: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidMessageError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return payload


class EventConsumer(Generic[T]):
    """
    Async Kafka consumer with retry and dead-lettering.

    Attributes:
        topic: Kafka topic to consume from
        group_id: Consumer group identifier
        dlq_topic: Where unprocessable messages are published
    """

    def __init__(
        self,
        topic: str,
        parse: Callable[[Dict[str, Any]], T],
        key_of: Callable[[T], str],
        group_id: Optional[str] = None,
        bootstrap_servers: Optional[str] = None,
        dlq_topic: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        dedupe_cache_size: Optional[int] = None,
    ):
        """
        Initialize the event consumer.

        Args:
            topic: Kafka topic
            parse: Builds the schema object from a decoded message
            key_of: Idempotency key of a parsed message
            group_id: Consumer group (defaults to config)
            bootstrap_servers: Kafka servers (defaults to config)
            dlq_topic: Dead letter topic (defaults to topic + configured suffix)
            max_retries: Handler attempts before dead-lettering
            retry_backoff_seconds: Linear backoff step between attempts
            dedupe_cache_size: Remembered message keys
        """
        self.topic = topic
        self.group_id = group_id or settings.kafka_consumer_group
        self.bootstrap_servers = (
            bootstrap_servers or settings.kafka_bootstrap_servers
        )
        self.dlq_topic = dlq_topic or f"{topic}{settings.kafka_dlq_suffix}"
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        self.retry_backoff_seconds = (
            settings.retry_backoff_seconds
            if retry_backoff_seconds is None
            else retry_backoff_seconds
        )

        self._parse = parse
        self._key_of = key_of
        self._consumer: Optional[AIOKafkaConsumer] = None
        self._dlq_producer: Optional[AIOKafkaProducer] = None
        self._handlers: List[Handler] = []
        self._running = False
        self._seen_keys = _RecentKeys(
            capacity=(
                settings.dedupe_cache_size
                if dedupe_cache_size is None
                else dedupe_cache_size
            )
        )
        self._stats = {
            "messages_consumed": 0,
            "messages_processed": 0,
            "messages_failed": 0,
            "messages_deduplicated": 0,
            "messages_dlq": 0,
            "dlq_failures": 0,
            "last_message_at": None,
        }

    def register_handler(self, handler: Handler) -> None:
        """
        Register a handler for parsed messages.

        Handlers run in registration order. A message counts as handled
        only when every handler succeeded.
        """
        self._handlers.append(handler)
        logger.info(
            f"Handler {_handler_name(handler)} subscribed to '{self.topic}'"
        )

    async def start(self) -> None:
        """Connect to the brokers, join the consumer group and open the DLQ producer."""
        self._consumer = AIOKafkaConsumer(
            self.topic,
            bootstrap_servers=self.bootstrap_servers,
            group_id=self.group_id,
            auto_offset_reset="earliest",
            # Offsets are committed by _process_message once a message is settled
            enable_auto_commit=False,
        )
        self._dlq_producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
        )

        await self._consumer.start()
        await self._dlq_producer.start()
        self._running = True
        logger.info(
            f"Consuming '{self.topic}' as group '{self.group_id}' "
            f"(dead letters to '{self.dlq_topic}')"
        )

    async def stop(self) -> None:
        """Leave the group and close both clients. Safe to call twice."""
        self._running = False
        consumer, self._consumer = self._consumer, None
        producer, self._dlq_producer = self._dlq_producer, None

        if consumer:
            await consumer.stop()
        if producer:
            await producer.stop()
        logger.info(f"Consumer for '{self.topic}' stopped")

    async def consume_forever(self) -> None:
        """
        Handle messages until stop() is called.

        Raises:
            RuntimeError: start() was not awaited first
            KafkaError: The broker connection failed
            DeadLetterError: A failed message could not be dead-lettered
        """
        consumer = self._require_started()
        try:
            async for message in consumer:
                await self._process_message(message)
                if not self._running:
                    break
        except KafkaError as e:
            logger.error(f"Broker error while consuming '{self.topic}': {e}")
            raise

    async def consume_batch(
        self,
        max_messages: int = 100,
        timeout_ms: int = 1000,
    ) -> int:
        """
        Fetch and handle at most one batch of messages.

        Returns:
            Number of messages settled
        """
        consumer = self._require_started()
        batches = await consumer.getmany(timeout_ms=timeout_ms, max_records=max_messages)

        settled = 0
        for messages in batches.values():
            for message in messages:
                await self._process_message(message)
                settled += 1
        return settled

    def _require_started(self) -> AIOKafkaConsumer:
        if self._consumer is None:
            raise RuntimeError(f"Consumer for '{self.topic}' not started")
        return self._consumer

    async def _process_message(self, message: Any) -> None:
        """
        Settle one Kafka message: handle it, skip it, or dead-letter it.

        The offset is committed once the outcome is final. A message whose
        dead letter publish failed is left uncommitted.

        Raises:
            DeadLetterError: The dead letter topic could not be written
        """
        self._stats["messages_consumed"] += 1
        self._stats["last_message_at"] = datetime.now(timezone.utc)
        bind_message_context(message.topic, message.partition, message.offset, message.key)

        try:
            await self._settle(message)
            await self._commit()
        except DeadLetterError as e:
            logger.error(f"Offset {message.offset} not committed: {e}")
            raise
        finally:
            clear_message_context()

    async def _settle(self, message: Any) -> None:
        item = await self._parse_or_dead_letter(message)
        if item is None:
            return

        key = self._key_of(item)
        if key in self._seen_keys:
            self._stats["messages_deduplicated"] += 1
            logger.debug(f"Skipping redelivered message {key[:24]}")
            return

        outcomes = [
            await self._invoke_handler_with_retry(handler, item, message)
            for handler in self._handlers
        ]
        if all(outcomes):
            self._seen_keys.add(key)
            self._stats["messages_processed"] += 1
        else:
            self._stats["messages_failed"] += 1

    async def _parse_or_dead_letter(self, message: Any) -> Optional[T]:
        """Parse a message; a message that cannot be parsed is dead-lettered."""
        try:
            data = deserialize_message(message.value)
            if data is None:
                logger.warning(f"Null message at offset {message.offset} skipped")
                return None
            return self._parse(data)
        except Exception as e:
            logger.error(f"Rejected message at offset {message.offset}: {e}")
            self._stats["messages_failed"] += 1
            await self._send_to_dlq(message, e, attempts=0, retryable=False)
            return None

    async def _invoke_handler_with_retry(
        self, handler: Handler, item: T, message: Any
    ) -> bool:
        """
        Run a handler with linear backoff between attempts.

        Returns:
            True on success, False once the message was dead-lettered
        """
        name = _handler_name(handler)
        error: Optional[BaseException] = None
        attempts = 0

        while attempts < self.max_retries:
            attempts += 1
            try:
                await handler(item)
                return True
            except Exception as e:
                error = e
                if not is_retryable(e):
                    logger.error(f"Handler {name} failed permanently: {e}")
                    break
                logger.warning(
                    f"Handler {name} attempt {attempts}/{self.max_retries} failed: {e}"
                )
                if attempts < self.max_retries:
                    await asyncio.sleep(self.retry_backoff_seconds * attempts)
        else:
            logger.error(f"Handler {name} gave up after {attempts} attempts")

        await self._send_to_dlq(message, error, attempts=attempts)
        return False

    async def _send_to_dlq(
        self,
        message: Any,
        error: Optional[BaseException],
        attempts: int,
        retryable: Optional[bool] = None,
    ) -> None:
        """
        Publish a failed message with its failure context to the dead letter topic.

        Raises:
            DeadLetterError: No producer, or the broker rejected the publish
        """
        if retryable is None:
            retryable = is_retryable(error) if error else False
        payload = {
            "original_topic": self.topic,
            "original_partition": message.partition,
            "original_offset": message.offset,
            "key": _text(message.key),
            "error": str(error),
            "error_type": type(error).__name__ if error else None,
            "retryable": retryable,
            "attempts": attempts,
            "failed_at": datetime.now(timezone.utc).isoformat(),
            "raw_value": _text(message.value),
        }

        if not self._dlq_producer:
            self._stats["dlq_failures"] += 1
            raise DeadLetterError(self.dlq_topic, message.offset, "producer not started")
        try:
            await self._dlq_producer.send_and_wait(self.dlq_topic, payload)
        except KafkaError as e:
            self._stats["dlq_failures"] += 1
            raise DeadLetterError(self.dlq_topic, message.offset, str(e)) from e
        self._stats["messages_dlq"] += 1
        logger.info(f"Offset {message.offset} dead-lettered to '{self.dlq_topic}'")

    async def _commit(self) -> None:
        if not self._consumer:
            return
        try:
            await self._consumer.commit()
        except KafkaError as e:
            # Redelivered after the next rebalance
            logger.warning(f"Offset commit failed on '{self.topic}': {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Consumption counters plus the consumer's current state."""
        return {
            **self._stats,
            "topic": self.topic,
            "running": self._running,
            "handler_count": len(self._handlers),
            "remembered_keys": len(self._seen_keys),
        }


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def _text(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
