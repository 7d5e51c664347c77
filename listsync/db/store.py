"""
Persistence of mappings, ignore rules, unmapped snapshots and run history.

Converts between database rows and the sync data types.
"""

from collections import Counter
from datetime import timezone
from typing import List

from listsync.db.database import get_db_session
from listsync.db.models import IgnoreRule, ManualMappingRow, SyncRun, UnmappedEntryRow
from listsync.errors import ConfigInvalid
from listsync.sync.mappings import IgnoreInfo, IgnoreRegistry, MappingStore
from listsync.sync.models import (
    CatalogType,
    OutcomeKind,
    Service,
    SyncDirection,
    SyncRunResult,
    UnmappedEntry,
)
from listsync.utils.logging import get_logger

logger = get_logger(__name__)


def load_mapping_store() -> MappingStore:
    """
    Load manual mappings in their stored order.

    Raises:
        ConfigInvalid: If a stored mapping is malformed
    """
    with get_db_session() as session:
        rows = session.query(ManualMappingRow).order_by(ManualMappingRow.position, ManualMappingRow.id).all()
        records = [
            {"anilist_id": row.anilist_id, "mal_id": row.mal_id, "comment": row.comment}
            for row in rows
        ]

    store = MappingStore.from_records(records)
    logger.debug("Loaded manual mappings", count=len(store))
    return store


def save_mapping_store(store: MappingStore) -> None:
    """Replace the stored mappings with the store's contents."""
    with get_db_session() as session:
        session.query(ManualMappingRow).delete()
        for position, mapping in enumerate(store):
            session.add(ManualMappingRow(
                position=position,
                anilist_id=mapping.anilist_id,
                mal_id=mapping.mal_id,
                comment=mapping.comment or None,
            ))


def load_ignore_registry() -> IgnoreRegistry:
    """
    Load ignore rules.

    Raises:
        ConfigInvalid: If a rule has neither a usable id nor a title
    """
    registry = IgnoreRegistry()

    with get_db_session() as session:
        for row in session.query(IgnoreRule).order_by(IgnoreRule.id).all():
            if row.media_id is not None:
                try:
                    service = Service(row.service)
                except ValueError:
                    raise ConfigInvalid(f"Ignore rule #{row.id} has unknown service {row.service!r}")
                if row.media_id <= 0:
                    raise ConfigInvalid(f"Ignore rule #{row.id} has invalid id {row.media_id}")
                registry.add_ignore(service, row.media_id, title=row.title or "", reason=row.reason or "")
            elif row.title:
                registry.add_title(row.title)
            else:
                raise ConfigInvalid(f"Ignore rule #{row.id} has neither id nor title")

    return registry


def save_ignore_registry(registry: IgnoreRegistry) -> None:
    """Replace the stored ignore rules with the registry's contents."""
    with get_db_session() as session:
        session.query(IgnoreRule).delete()

        for service in Service:
            metadata = registry.metadata[service]
            for media_id in sorted(registry.ids(service)):
                info = metadata.get(media_id, IgnoreInfo())
                session.add(IgnoreRule(
                    service=service.value,
                    media_id=media_id,
                    title=info.title or None,
                    reason=info.reason or None,
                ))

        for title in registry.titles:
            session.add(IgnoreRule(title=title))


def save_unmapped_snapshot(entries: List[UnmappedEntry]) -> None:
    """Replace the stored unmapped snapshot."""
    with get_db_session() as session:
        session.query(UnmappedEntryRow).delete()
        for entry in entries:
            session.add(UnmappedEntryRow(
                anilist_id=entry.anilist_id,
                mal_id=entry.mal_id,
                title=entry.title,
                catalog_type=entry.catalog_type.value,
                direction=entry.direction.value,
                reason=entry.reason,
                recorded_at=entry.timestamp,
            ))

    logger.info("Saved unmapped snapshot", count=len(entries))


def load_unmapped_snapshot() -> List[UnmappedEntry]:
    with get_db_session() as session:
        rows = session.query(UnmappedEntryRow).order_by(UnmappedEntryRow.id).all()
        return [
            UnmappedEntry(
                title=row.title,
                catalog_type=CatalogType(row.catalog_type),
                direction=SyncDirection(row.direction),
                reason=row.reason or "",
                anilist_id=row.anilist_id,
                mal_id=row.mal_id,
                timestamp=row.recorded_at.replace(tzinfo=timezone.utc)
                if row.recorded_at.tzinfo is None else row.recorded_at,
            )
            for row in rows
        ]


def record_sync_run(result: SyncRunResult) -> SyncRun:
    """Store the counts of a finished run."""
    counts: Counter = Counter()
    for outcomes in result.outcomes.values():
        counts.update(outcome.kind for outcome in outcomes)

    if result.cancelled:
        status = "cancelled"
    elif result.failed_catalogs:
        status = "partial"
    else:
        status = "completed"

    error_message = "; ".join(result.failed_catalogs.values()) or None

    with get_db_session() as session:
        run = SyncRun(
            run_id=result.run_id,
            direction=result.direction.value,
            started_at=result.started_at,
            completed_at=result.completed_at,
            status=status,
            entries_processed=sum(counts.values()),
            entries_updated=counts[OutcomeKind.UPDATED],
            entries_skipped=(
                counts[OutcomeKind.SKIPPED]
                + counts[OutcomeKind.EXCLUDED]
                + counts[OutcomeKind.UNMAPPED]
            ),
            entries_failed=counts[OutcomeKind.ERROR],
            entries_unmapped=len(result.unmapped),
            entries_dry_run=counts[OutcomeKind.DRY_RUN],
            error_message=error_message,
        )
        session.add(run)

    return run
