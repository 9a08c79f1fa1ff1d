"""Tests for the durable telemetry queue."""

import json

import pytest
import pytest_asyncio

from workflow_patterns.config import TelemetryConfig, WorkflowConfig
from workflow_patterns.patterns.models import PatternKind
from workflow_patterns.telemetry import (
    FailureReason,
    TelemetryCollector,
    TelemetryEventType,
)
from workflow_patterns.utils.fs import FileSystemError

PATTERN_ID = "2b1f6a4e-3c1d-4d8e-9a57-0f6c2f1e9d11"


@pytest_asyncio.fixture
async def opted_in(contributor):
    await contributor.enable_telemetry()
    return contributor


def small_batches(workspace, batch_size=2, max_queue_size=100):
    return WorkflowConfig(
        repo_root=str(workspace),
        telemetry=TelemetryConfig(batch_size=batch_size, max_queue_size=max_queue_size),
    )


class RecordingSender:
    """Sender that records batches and answers with a scripted outcome."""

    def __init__(self, outcomes=None):
        self.batches = []
        self.outcomes = list(outcomes or [])

    async def __call__(self, events):
        self.batches.append(events)
        return self.outcomes.pop(0) if self.outcomes else True


class TestRecording:

    @pytest.mark.asyncio
    async def test_disabled_telemetry_records_nothing(self, config):
        collector = TelemetryCollector(config=config)

        result = await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert not result.success
        assert result.error == "Telemetry is disabled"
        assert not config.telemetry_queue_path.exists()

    @pytest.mark.asyncio
    async def test_event_carries_contributor_and_timestamp(self, config, opted_in):
        collector = TelemetryCollector(config=config)

        result = await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert result.success
        event = result.data
        assert event.type is TelemetryEventType.APPLIED
        assert event.contributor_id == (await opted_in.get_or_create_id()).data
        assert event.timestamp.endswith("Z")

    @pytest.mark.asyncio
    async def test_queue_is_shared_across_instances(self, config, opted_in):
        first = TelemetryCollector(config=config)
        second = TelemetryCollector(config=config)

        await first.record_success(PATTERN_ID, PatternKind.BLUEPRINT, "next", "14.1.0")

        assert await second.get_pending_count() == 1

    @pytest.mark.asyncio
    async def test_queue_file_layout(self, config, opted_in):
        collector = TelemetryCollector(config=config)
        await collector.record_failure(
            PATTERN_ID, PatternKind.FIX, "react", "18.2.0",
            failure_reason=FailureReason.VERSION_MISMATCH,
        )

        stored = json.loads(config.telemetry_queue_path.read_text())

        assert stored["totalEventsSent"] == 0
        assert stored["events"][0]["failureReason"] == "version-mismatch"
        assert stored["events"][0]["success"] is False
        assert stored["events"][0]["patternType"] == "fix"

    @pytest.mark.asyncio
    async def test_invalid_event_is_rejected(self, config, opted_in):
        collector = TelemetryCollector(config=config)

        result = await collector.record_application(PATTERN_ID, PatternKind.FIX, "", "18.2.0")

        assert not result.success
        assert await collector.get_pending_count() == 0

    @pytest.mark.asyncio
    async def test_queue_is_capped(self, workspace, opted_in):
        collector = TelemetryCollector(config=small_batches(workspace, batch_size=10, max_queue_size=3))

        for version in ("1", "2", "3", "4", "5"):
            await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", version)

        queue = await collector.get_queue()
        assert [e.framework_version for e in queue.events] == ["3", "4", "5"]

    @pytest.mark.asyncio
    async def test_malformed_queue_raises(self, config):
        config.telemetry_queue_path.parent.mkdir(parents=True)
        config.telemetry_queue_path.write_text(json.dumps({"events": [{"id": "x"}]}))

        with pytest.raises(FileSystemError, match="Malformed"):
            await TelemetryCollector(config=config).get_queue()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["[]", "null", '"events"', "3"])
    async def test_non_object_queue_raises(self, config, content):
        config.telemetry_queue_path.parent.mkdir(parents=True)
        config.telemetry_queue_path.write_text(content)

        with pytest.raises(FileSystemError, match="Malformed"):
            await TelemetryCollector(config=config).get_queue()

    @pytest.mark.asyncio
    async def test_corrupt_queue_does_not_break_callers(self, config, opted_in):
        config.telemetry_queue_path.parent.mkdir(parents=True, exist_ok=True)
        config.telemetry_queue_path.write_text("[]")
        collector = TelemetryCollector(config=config)

        result = await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert not result.success
        assert result.error
        assert await collector.get_pending_count() == 0
        assert (await collector.get_stats()).pending_events == 0
        assert (await collector.get_pattern_stats(PATTERN_ID)).applications == 0
        assert await collector.get_events_by_type(TelemetryEventType.APPLIED) == []

    @pytest.mark.asyncio
    async def test_clear_replaces_corrupt_queue(self, config, opted_in):
        config.telemetry_queue_path.parent.mkdir(parents=True, exist_ok=True)
        config.telemetry_queue_path.write_text("[]")
        collector = TelemetryCollector(config=config)

        assert (await collector.clear()).success
        result = await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert result.success
        assert await collector.get_pending_count() == 1


class TestStats:

    @pytest.mark.asyncio
    async def test_pattern_stats(self, config, opted_in):
        collector = TelemetryCollector(config=config)
        await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        await collector.record_success(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        await collector.record_failure(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        await collector.record_failure(
            "9c5d8e2a-1b4f-4a6e-8d3c-7e2f1a0b9c8d", PatternKind.FIX, "react", "18.2.0"
        )

        stats = await collector.get_pattern_stats(PATTERN_ID)

        assert stats.applications == 1
        assert stats.successes == 1
        assert stats.failures == 1
        assert stats.failure_reasons == {"unknown": 1}
        assert len(await collector.get_events_by_type(TelemetryEventType.FAILURE)) == 2

    @pytest.mark.asyncio
    async def test_clear(self, config, opted_in):
        collector = TelemetryCollector(config=config)
        await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert (await collector.clear()).success
        assert await collector.get_pending_count() == 0


class TestFlush:

    @pytest.mark.asyncio
    async def test_flush_without_sender(self, config):
        collector = TelemetryCollector(config=config)

        assert not collector.has_sender()
        assert not (await collector.flush()).success

    @pytest.mark.asyncio
    async def test_flush_sends_in_batches(self, workspace, opted_in):
        collector = TelemetryCollector(config=small_batches(workspace, batch_size=10))
        for _ in range(5):
            await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        sender = RecordingSender()
        collector.set_sender(sender)
        collector.batch_size = 2

        result = await collector.flush()

        assert result.success
        assert result.data == 5
        assert [len(b) for b in sender.batches] == [2, 2, 1]
        stats = await collector.get_stats()
        assert stats.pending_events == 0
        assert stats.total_events_sent == 5
        assert stats.last_flush_at is not None

    @pytest.mark.asyncio
    async def test_rejected_batch_stays_queued(self, workspace, opted_in):
        collector = TelemetryCollector(config=small_batches(workspace, batch_size=10))
        for _ in range(4):
            await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        collector.set_sender(RecordingSender([True, False]))
        collector.batch_size = 2

        result = await collector.flush()

        assert not result.success
        assert result.data == 2
        assert await collector.get_pending_count() == 2

    @pytest.mark.asyncio
    async def test_sender_exception_stops_flush(self, config, opted_in):
        async def failing(events):
            raise ConnectionError("offline")

        collector = TelemetryCollector(config=config, sender=failing)
        await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        result = await collector.flush()

        assert not result.success
        assert "offline" in result.error
        assert await collector.get_pending_count() == 1

    @pytest.mark.asyncio
    async def test_auto_flush_at_batch_size(self, workspace, opted_in):
        sender = RecordingSender()
        collector = TelemetryCollector(config=small_batches(workspace, batch_size=2), sender=sender)

        await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")
        assert sender.batches == []

        await collector.record_application(PATTERN_ID, PatternKind.FIX, "react", "18.2.0")

        assert len(sender.batches) == 1
        assert await collector.get_pending_count() == 0
