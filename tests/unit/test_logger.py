"""Tests for the JSONL sync audit log."""

from workflow_patterns.logger import LogLevel, SyncLogger


class TestSyncLogger:

    def test_writes_jsonl_entry(self, config):
        log = SyncLogger("sync", config=config)
        log.info("push_start", {"kinds": ["fix"]})

        entries = log.read_logs()
        assert len(entries) == 1
        assert entries[0]["event_type"] == "push_start"
        assert entries[0]["level"] == LogLevel.INFO
        assert entries[0]["component"] == "sync"
        assert entries[0]["data"] == {"kinds": ["fix"]}
        assert entries[0]["timestamp"].endswith("Z")

    def test_log_file_is_daily_per_component(self, config):
        log = SyncLogger("sync", config=config)
        log.debug("ping")

        files = list(config.logs_path.glob("sync-*.jsonl"))
        assert len(files) == 1

    def test_run_context_tags_entries(self, config):
        log = SyncLogger("sync", config=config)

        with log.run_context("push-abc") as run:
            run.warn("pattern_blocked", {"id": "x"})
        log.info("outside")

        tagged = log.read_logs(run_id="push-abc")
        assert [e["event_type"] for e in tagged] == ["run_start", "pattern_blocked", "run_end"]
        assert "run_id" not in log.read_logs(event_type="outside")[0]

    def test_filters_and_limit(self, config):
        log = SyncLogger("sync", config=config)
        log.info("a")
        log.error("b")
        log.error("c")

        assert [e["event_type"] for e in log.read_logs(level=LogLevel.ERROR)] == ["b", "c"]
        assert len(log.read_logs(limit=2)) == 2

    def test_read_logs_for_missing_day(self, config):
        assert SyncLogger("sync", config=config).read_logs(date="1999-01-01") == []

    def test_skips_corrupt_lines(self, config):
        log = SyncLogger("sync", config=config)
        log.info("good")
        with open(log._get_log_path(), "a") as f:
            f.write("{not json\n\n")

        assert [e["event_type"] for e in log.read_logs()] == ["good"]
