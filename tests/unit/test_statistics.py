"""Tests for pass statistics and the unmapped ledger."""

from __future__ import annotations

import threading

from listsync.sync.models import CatalogType, SyncDirection, UnmappedEntry
from listsync.sync.statistics import RunStatistics, UnmappedLedger, UpdateItem


class RecordingLogger:
    def __init__(self):
        self.messages = []

    def info(self, message, **kwargs):
        self.messages.append(("info", message, kwargs))

    def error(self, message, **kwargs):
        self.messages.append(("error", message, kwargs))


class TestRunStatistics:
    def test_counts(self) -> None:
        stats = RunStatistics()
        for _ in range(4):
            stats.increment_total()
        stats.record_update(UpdateItem("A", status="completed"))
        stats.record_skip(UpdateItem("B", status="completed", reason="no changes"))
        stats.record_dry_run(UpdateItem("C", status="planned"))
        stats.record_error(UpdateItem("D", error=ValueError("boom")))

        assert stats.counts() == {"total": 4, "updated": 1, "skipped": 1, "errors": 1, "dry_run": 1}

    def test_reset_clears_everything(self) -> None:
        stats = RunStatistics()
        stats.increment_total()
        stats.record_update(UpdateItem("A"))

        stats.reset()

        assert stats.counts() == {"total": 0, "updated": 0, "skipped": 0, "errors": 0, "dry_run": 0}
        assert stats.completed_at is None

    def test_skip_reasons(self) -> None:
        stats = RunStatistics()
        stats.record_skip(UpdateItem("A", reason="unmapped"))
        stats.record_skip(UpdateItem("B", reason="no changes"))
        stats.record_skip(UpdateItem("C", reason="unmapped"))
        stats.record_skip(UpdateItem("D"))

        assert stats.skip_reasons() == {"no changes": 1, "unmapped": 2, "unspecified": 1}

    def test_summary_limits_errors(self) -> None:
        stats = RunStatistics()
        for i in range(5):
            stats.record_error(UpdateItem(f"Show {i}", error=RuntimeError(f"fail {i}")))

        summary = stats.summary(error_limit=2)

        assert summary["errors"] == 5
        assert summary["first_errors"] == ["Show 0: fail 0", "Show 1: fail 1"]

    def test_summary_status_breakdown(self) -> None:
        stats = RunStatistics()
        stats.record_update(UpdateItem("A", status="completed"))
        stats.record_skip(UpdateItem("B", status="completed"))
        stats.record_skip(UpdateItem("C", status="dropped"))

        assert stats.summary()["statuses"] == {"completed": 2, "dropped": 1}

    def test_log_summary_reports_hidden_errors(self) -> None:
        stats = RunStatistics()
        for i in range(3):
            stats.record_error(UpdateItem(f"Show {i}", error=RuntimeError("x")))
        stats.finish()
        logger = RecordingLogger()

        stats.log_summary(logger, error_limit=1)

        errors = [message for level, message, _ in logger.messages if level == "error"]
        assert errors == ["Failed update 1: Show 0: x", "... and 2 more errors"]
        assert logger.messages[0][2]["errors"] == 3

    def test_concurrent_recording(self) -> None:
        stats = RunStatistics()

        def record():
            for _ in range(200):
                stats.increment_total()
                stats.record_update(UpdateItem("A"))

        threads = [threading.Thread(target=record) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert stats.total == 800
        assert stats.updated_count == 800


class TestUnmappedLedger:
    def test_append_and_copy(self) -> None:
        ledger = UnmappedLedger()
        entry = UnmappedEntry("Lost", CatalogType.ANIME, SyncDirection.FORWARD, "no match", anilist_id=3)

        ledger.append(entry)
        snapshot = ledger.entries
        snapshot.clear()

        assert len(ledger) == 1
        assert ledger.entries[0].describe() == "'Lost' (AniList: 3) [anime] - no match"
