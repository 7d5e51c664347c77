"""
Per-pass statistics and the unmapped-entry ledger.
"""

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from listsync.sync.models import UnmappedEntry, _utcnow


@dataclass
class UpdateItem:
    """One reported item of a pass."""
    title: str
    status: str = ""
    detail: str = ""
    reason: str = ""
    error: Optional[BaseException] = None


class RunStatistics:
    """
    Counts and item lists for one reconciliation pass.

    All methods take the internal lock, so one instance may be shared by
    worker threads. Call reset() at the start of every pass.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.started_at: datetime = _utcnow()
            self.completed_at: Optional[datetime] = None
            self.total = 0
            self.updated: List[UpdateItem] = []
            self.skipped: List[UpdateItem] = []
            self.errors: List[UpdateItem] = []
            self.dry_run: List[UpdateItem] = []
            self.status_counts: Counter = Counter()

    def increment_total(self) -> None:
        with self._lock:
            self.total += 1

    def record_update(self, item: UpdateItem) -> None:
        with self._lock:
            self.updated.append(item)
            self.status_counts[item.status] += 1

    def record_skip(self, item: UpdateItem) -> None:
        with self._lock:
            self.skipped.append(item)
            self.status_counts[item.status] += 1

    def record_dry_run(self, item: UpdateItem) -> None:
        with self._lock:
            self.dry_run.append(item)
            self.status_counts[item.status] += 1

    def record_error(self, item: UpdateItem) -> None:
        with self._lock:
            self.errors.append(item)

    def finish(self) -> None:
        with self._lock:
            self.completed_at = _utcnow()

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def dry_run_count(self) -> int:
        return len(self.dry_run)

    def skip_reasons(self) -> Dict[str, int]:
        with self._lock:
            reasons = Counter(item.reason or "unspecified" for item in self.skipped)
        return dict(sorted(reasons.items()))

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                "total": self.total,
                "updated": len(self.updated),
                "skipped": len(self.skipped),
                "errors": len(self.errors),
                "dry_run": len(self.dry_run),
            }

    def summary(self, error_limit: int = 10) -> Dict[str, object]:
        """
        Summary of the pass for logging.

        Args:
            error_limit: How many error items to include

        Returns:
            Dict with counts, status breakdown, skip reasons and the first
            error_limit errors as "title: message" strings
        """
        summary: Dict[str, object] = dict(self.counts())
        with self._lock:
            summary["statuses"] = dict(sorted(
                (status, count) for status, count in self.status_counts.items() if status
            ))
            errors = self.errors[:error_limit]
        summary["skip_reasons"] = self.skip_reasons()
        summary["first_errors"] = [f"{item.title}: {item.error}" for item in errors]
        return summary

    def log_summary(self, logger, error_limit: int = 10) -> None:
        """Write the end-of-pass summary to a logger."""
        summary = self.summary(error_limit)
        duration = None
        if self.completed_at:
            duration = round((self.completed_at - self.started_at).total_seconds(), 3)

        logger.info(
            "Sync complete",
            duration_seconds=duration,
            total=summary["total"],
            updated=summary["updated"],
            skipped=summary["skipped"],
            errors=summary["errors"],
            dry_run=summary["dry_run"],
        )

        if summary["statuses"]:
            logger.info("Status breakdown", **summary["statuses"])
        if summary["skip_reasons"]:
            logger.info("Skipped by reason", reasons=summary["skip_reasons"])

        for index, item in enumerate(summary["first_errors"], start=1):
            logger.error(f"Failed update {index}: {item}")

        hidden = summary["errors"] - len(summary["first_errors"])
        if hidden > 0:
            logger.error(f"... and {hidden} more errors")


class UnmappedLedger:
    """Append-only, thread-safe list of entries that could not be resolved."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[UnmappedEntry] = []

    def append(self, entry: UnmappedEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def extend(self, entries: List[UnmappedEntry]) -> None:
        with self._lock:
            self._entries.extend(entries)

    @property
    def entries(self) -> List[UnmappedEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
