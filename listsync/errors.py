"""
Error taxonomy for listsync.

Only RemoteFetchFailed aborts work (for one catalog type) and ConfigInvalid
stops the run before any pass starts. Everything else is attributed to a
single entry and reported in the end-of-run summary.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for all listsync errors."""


class ConfigInvalid(SyncError):
    """Configuration or mapping data is malformed."""


class CorrespondenceNotFound(SyncError):
    """No counterpart entry could be determined for a source entry."""

    def __init__(self, title: str, reason: str = "no match"):
        super().__init__(f"{title}: {reason}")
        self.title = title
        self.reason = reason


class EntryExcluded(SyncError):
    """The entry matched an ignore rule and takes no part in reconciliation."""

    def __init__(self, title: str, rule: str):
        super().__init__(f"{title}: excluded by {rule}")
        self.title = title
        self.rule = rule


class RemoteFetchFailed(SyncError):
    """A whole entry list could not be fetched from a service."""

    def __init__(self, service: str, catalog_type: str, cause: Optional[BaseException] = None):
        message = f"Failed to fetch {catalog_type} list from {service}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.service = service
        self.catalog_type = catalog_type
        self.cause = cause


class RemoteUpdateFailed(SyncError):
    """Writing a single entry to a service failed."""

    def __init__(self, target_id: int, cause: Optional[BaseException] = None):
        message = f"Failed to update entry {target_id}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.target_id = target_id
        self.cause = cause


class StatusUnknown(SyncError):
    """A status has no equivalent on the other service."""


class ScoreFormatUnknown(SyncError):
    """A score cannot be converted because its scale is unknown."""


class SyncCancelled(SyncError):
    """The caller cancelled the run."""
