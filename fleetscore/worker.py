"""
Fleet Score Worker
==================

Service entrypoint. Runs the detection stage, the scoring stage, or both.

    detect: raw-telemetry  ──► rules ──► violation-events
    score:  violation-events ──► recorder ──► driver_scores

Usage:
    fleetscore-worker --stage all
    fleetscore-worker --stage score --log-level DEBUG

Author: Fleet Platform Team
Version: 1.0.0
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from fleetscore import __version__
from fleetscore.config import settings
from fleetscore.db.repository import SqlDriverScoreRepository, SqlViolationRepository
from fleetscore.db.session import (
    close_db,
    create_engine,
    create_session_factory,
    init_db,
)
from fleetscore.ingestion.consumer import EventConsumer
from fleetscore.ingestion.pipeline import PipelineCoordinator
from fleetscore.ingestion.producer import ViolationProducer
from fleetscore.logging import get_logger, setup_logging
from fleetscore.recording.recorder import ViolationRecorder
from fleetscore.scoring.aggregator import ScoreAggregator


logger = get_logger(__name__)

STAGES = ("detect", "score", "all")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fleetscore-worker",
        description="Fleet telemetry violation detection and driver scoring worker",
    )
    parser.add_argument(
        "--stage",
        choices=STAGES,
        default="all",
        help="Pipeline stage to run (default: all)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help=f"Log level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


class Worker:
    """
    Owns the engine, producer and consumers of one worker process.

    Usage:
        worker = Worker(stage="all")
        await worker.run()
    """

    def __init__(self, stage: str = "all"):
        if stage not in STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        self.stage = stage
        self._engine = None
        self._producer: Optional[ViolationProducer] = None
        self._consumers: List[EventConsumer] = []
        self._stopping = asyncio.Event()

    @property
    def runs_detection(self) -> bool:
        return self.stage in ("detect", "all")

    @property
    def runs_scoring(self) -> bool:
        return self.stage in ("score", "all")

    async def start(self) -> None:
        """
        Open the stage's clients and join the consumer groups.

        Whatever was opened before a failure is closed again before the
        error propagates.
        """
        try:
            await self._open()
        except Exception as e:
            logger.error("worker_start_failed", stage=self.stage, error=str(e))
            await self.stop()
            raise

        logger.info(
            "worker_started",
            stage=self.stage,
            topics=[c.topic for c in self._consumers],
            version=__version__,
        )

    async def _open(self) -> None:
        recorder = None
        if self.runs_scoring:
            self._engine = create_engine()
            await init_db(self._engine)
            session_factory = create_session_factory(self._engine)
            violations = SqlViolationRepository(session_factory)
            aggregator = ScoreAggregator(violations, SqlDriverScoreRepository(session_factory))
            recorder = ViolationRecorder(violations, aggregator)

        if self.runs_detection:
            self._producer = ViolationProducer()
            await self._producer.start()

        coordinator = PipelineCoordinator(sink=self._producer, recorder=recorder)

        if self.runs_detection:
            self._consumers.append(coordinator.telemetry_consumer())
        if self.runs_scoring:
            self._consumers.append(coordinator.violation_consumer())

        for consumer in self._consumers:
            await consumer.start()

    async def stop(self) -> None:
        for consumer in self._consumers:
            logger.info("consumer_stats", **consumer.get_stats())
            await consumer.stop()
        self._consumers = []

        if self._producer:
            await self._producer.stop()
            self._producer = None

        if self._engine is not None:
            await close_db(self._engine)
            self._engine = None

        logger.info("worker_stopped", stage=self.stage)

    def request_stop(self) -> None:
        logger.info("shutdown_requested", stage=self.stage)
        self._stopping.set()

    def get_stats(self) -> dict:
        return {consumer.topic: consumer.get_stats() for consumer in self._consumers}

    async def run(self) -> None:
        """Run until a shutdown is requested or a consumer fails."""
        await self.start()
        tasks = [
            asyncio.create_task(consumer.consume_forever(), name=consumer.topic)
            for consumer in self._consumers
        ]
        stop_task = asyncio.create_task(self._stopping.wait(), name="shutdown")
        try:
            done, _ = await asyncio.wait(
                [*tasks, stop_task], return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is not stop_task and task.exception() is not None:
                    raise task.exception()
        finally:
            for task in [*tasks, stop_task]:
                task.cancel()
            await asyncio.gather(*tasks, stop_task, return_exceptions=True)
            await self.stop()


async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    worker = Worker(stage=args.stage)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await worker.run()
        return 0
    except Exception as e:
        logger.error("worker_failed", error=str(e), exc_info=True)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=args.log_level or settings.log_level,
        json_output=settings.log_json,
    )

    return asyncio.run(async_main(args))


if __name__ == "__main__":
    sys.exit(main())
