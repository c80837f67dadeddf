"""
Tests for the worker entrypoint.

Author: Fleet Platform Team
Version: 1.0.0
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetscore.worker import Worker, create_parser


class TestParser:

    def test_defaults(self):
        args = create_parser().parse_args([])
        assert args.stage == "all"
        assert args.log_level is None

    def test_stage_and_level(self):
        args = create_parser().parse_args(["--stage", "score", "--log-level", "DEBUG"])
        assert args.stage == "score"
        assert args.log_level == "DEBUG"

    def test_rejects_unknown_stage(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--stage", "report"])


def fake_consumer(topic):
    consumer = MagicMock()
    consumer.topic = topic
    consumer.start = AsyncMock()
    consumer.stop = AsyncMock()
    consumer.get_stats.return_value = {"messages_consumed": 0}

    async def consume_forever():
        await asyncio.Event().wait()

    consumer.consume_forever = consume_forever
    return consumer


class TestWorker:

    def test_rejects_unknown_stage(self):
        with pytest.raises(ValueError):
            Worker(stage="report")

    @pytest.mark.parametrize(
        "stage,detect,score",
        [("detect", True, False), ("score", False, True), ("all", True, True)],
    )
    def test_stage_selection(self, stage, detect, score):
        worker = Worker(stage=stage)
        assert worker.runs_detection is detect
        assert worker.runs_scoring is score

    @pytest.mark.asyncio
    async def test_detect_stage_runs_until_stopped(self):
        producer = AsyncMock()
        telemetry = fake_consumer("raw-telemetry")

        with patch("fleetscore.worker.ViolationProducer", return_value=producer), \
                patch("fleetscore.worker.PipelineCoordinator") as coordinator_cls, \
                patch("fleetscore.worker.create_engine") as create_engine:
            coordinator_cls.return_value.telemetry_consumer.return_value = telemetry
            worker = Worker(stage="detect")

            task = asyncio.create_task(worker.run())
            await asyncio.sleep(0.01)
            assert set(worker.get_stats()) == {"raw-telemetry"}
            worker.request_stop()
            await asyncio.wait_for(task, timeout=1.0)

        create_engine.assert_not_called()
        producer.start.assert_awaited_once()
        producer.stop.assert_awaited_once()
        telemetry.start.assert_awaited_once()
        telemetry.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_consumer_failure_stops_worker(self):
        failing = fake_consumer("violation-events")

        async def boom():
            raise RuntimeError("broker gone")

        failing.consume_forever = boom

        with patch("fleetscore.worker.create_engine"), \
                patch("fleetscore.worker.init_db", new=AsyncMock()), \
                patch("fleetscore.worker.close_db", new=AsyncMock()) as close_db, \
                patch("fleetscore.worker.create_session_factory"), \
                patch("fleetscore.worker.PipelineCoordinator") as coordinator_cls:
            coordinator_cls.return_value.violation_consumer.return_value = failing
            worker = Worker(stage="score")

            with pytest.raises(RuntimeError, match="broker gone"):
                await worker.run()

        failing.stop.assert_awaited_once()
        close_db.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_database_check_closes_engine(self):
        with patch("fleetscore.worker.create_engine"), \
                patch("fleetscore.worker.init_db",
                      new=AsyncMock(side_effect=RuntimeError("tables missing"))), \
                patch("fleetscore.worker.close_db", new=AsyncMock()) as close_db, \
                patch("fleetscore.worker.PipelineCoordinator") as coordinator_cls:
            worker = Worker(stage="score")

            with pytest.raises(RuntimeError, match="tables missing"):
                await worker.run()

        close_db.assert_awaited_once()
        coordinator_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_start_is_unwound(self):
        producer = AsyncMock()
        telemetry = fake_consumer("raw-telemetry")
        violations = fake_consumer("violation-events")
        violations.start.side_effect = RuntimeError("group join failed")

        with patch("fleetscore.worker.ViolationProducer", return_value=producer), \
                patch("fleetscore.worker.create_engine"), \
                patch("fleetscore.worker.init_db", new=AsyncMock()), \
                patch("fleetscore.worker.close_db", new=AsyncMock()) as close_db, \
                patch("fleetscore.worker.create_session_factory"), \
                patch("fleetscore.worker.PipelineCoordinator") as coordinator_cls:
            coordinator_cls.return_value.telemetry_consumer.return_value = telemetry
            coordinator_cls.return_value.violation_consumer.return_value = violations
            worker = Worker(stage="all")

            with pytest.raises(RuntimeError, match="group join failed"):
                await worker.run()

        telemetry.stop.assert_awaited_once()
        violations.stop.assert_awaited_once()
        producer.stop.assert_awaited_once()
        close_db.assert_awaited_once()
        assert worker.get_stats() == {}
