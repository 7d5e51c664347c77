"""
Main sync engine for listsync.

Reconciles one service's lists into the other's. A pass per catalog type
runs Discover -> Resolve -> Diff -> Apply/Report -> Aggregate; each entry is
handled independently and outcomes are reduced into statistics in source
order at a single point.
"""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

from listsync.config import SyncConfig
from listsync.errors import (
    RemoteFetchFailed,
    RemoteUpdateFailed,
    ScoreFormatUnknown,
    StatusUnknown,
    SyncCancelled,
)
from listsync.sync.favorites import FavoritesSync
from listsync.sync.mappings import IgnoreRegistry, MappingStore
from listsync.sync.matcher import CorrespondenceResolver, ResolutionKind, index_by_target_id
from listsync.sync.models import (
    CatalogEntry,
    CatalogProvider,
    CatalogType,
    EntryOutcome,
    FavoritesResult,
    FavoriteToggler,
    IdentifierLookup,
    OutcomeKind,
    Service,
    Status,
    SyncDirection,
    SyncRunResult,
    UnmappedEntry,
    UpdateRecord,
    _utcnow,
)
from listsync.sync.scores import ScoreFormat, from_canonical, round_half_up, to_canonical
from listsync.sync.statistics import RunStatistics, UnmappedLedger, UpdateItem
from listsync.utils.logging import SyncLogger, get_logger

logger = get_logger(__name__)

SKIP_IGNORED = "in ignore list"
SKIP_UNMAPPED = "unmapped"
SKIP_NO_CHANGES = "no changes"
SKIP_SYNCHRONIZED = "already synchronized"


def known_status(entry: CatalogEntry) -> Status:
    if entry.status is Status.UNKNOWN:
        raise StatusUnknown(f"{entry.title}: status unknown")
    return entry.status


def canonical_score(entry: CatalogEntry) -> int:
    return to_canonical(entry.score, entry.score_format)


def same_progress(source: CatalogEntry, target: CatalogEntry) -> bool:
    """
    Compare progress, falling back from remaining units to raw progress.

    Remaining units are only meaningful when both totals are known and
    non-zero; an unset total must not read as "everything remaining".
    """
    if source.progress == target.progress:
        return True
    if source.total_units and target.total_units:
        return (
            source.total_units - source.progress
            == target.total_units - target.progress
        )
    return False


def compute_diff(
    source: CatalogEntry,
    target: Optional[CatalogEntry],
) -> Dict[str, Tuple[Any, Any]]:
    """
    Field-level differences between a source entry and its counterpart.

    Fields whose status or score cannot be mapped are left out. A missing
    target differs in every field.

    Returns:
        {field: (source value, target value)}
    """
    if target is None:
        return {"entry": (source.title, None)}

    diff: Dict[str, Tuple[Any, Any]] = {}

    try:
        if known_status(source) != known_status(target):
            diff["status"] = (source.status.value, target.status.value)
    except StatusUnknown:
        pass

    try:
        source_score = canonical_score(source)
        target_score = canonical_score(target)
        if source_score != target_score:
            diff["score"] = (source_score, target_score)
    except ScoreFormatUnknown:
        pass

    if source.progress != target.progress:
        diff["progress"] = (source.progress, target.progress)

    if source.is_chaptered and source.progress_volumes != target.progress_volumes:
        diff["progress_volumes"] = (source.progress_volumes, target.progress_volumes)

    if source.total_units and target.total_units and source.total_units != target.total_units:
        diff["total_units"] = (source.total_units, target.total_units)

    if source.total_volumes and target.total_volumes and source.total_volumes != target.total_volumes:
        diff["total_volumes"] = (source.total_volumes, target.total_volumes)

    return diff


def is_synchronized(source: CatalogEntry, target: Optional[CatalogEntry]) -> bool:
    """True when the pair needs no update unless forced."""
    if target is None:
        return False

    try:
        if known_status(source) != known_status(target):
            return False
    except StatusUnknown:
        pass

    try:
        if canonical_score(source) != canonical_score(target):
            return False
    except ScoreFormatUnknown:
        pass

    if not same_progress(source, target):
        return False

    if source.is_chaptered and source.progress_volumes != target.progress_volumes:
        return False

    return True


def build_update_record(
    source: CatalogEntry,
    target: Optional[CatalogEntry],
    target_format: Optional[ScoreFormat],
) -> UpdateRecord:
    """
    Full record to send to the target service.

    Fields the source cannot supply keep the target's current value.
    """
    status = source.status
    if status is Status.UNKNOWN and target is not None:
        status = target.status

    try:
        score = from_canonical(canonical_score(source), target_format)
    except ScoreFormatUnknown:
        score = round_half_up(target.score) if target is not None else 0

    started_at = source.started_at
    finished_at = source.finished_at
    if target is not None:
        started_at = started_at or target.started_at
        finished_at = finished_at or target.finished_at

    return UpdateRecord(
        status=status,
        score=score,
        progress=source.progress,
        progress_volumes=source.progress_volumes if source.is_chaptered else 0,
        started_at=started_at,
        finished_at=finished_at,
    )


def format_diff(diff: Dict[str, Tuple[Any, Any]]) -> str:
    return ", ".join(f"{name}: {theirs} -> {mine}" for name, (mine, theirs) in diff.items())


def reconcile_entry(
    entry: CatalogEntry,
    candidates: Sequence[CatalogEntry],
    resolver: CorrespondenceResolver,
    writer: CatalogProvider,
    config: SyncConfig,
    target_format: Optional[ScoreFormat] = None,
    by_id: Optional[Dict[int, CatalogEntry]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[EntryOutcome]:
    """
    Resolve, diff and apply one source entry.

    Returns:
        The outcome, or None if cancelled before a write was attempted
    """
    if cancel_event is not None and cancel_event.is_set():
        return None

    resolution = resolver.resolve(entry, candidates, by_id)

    if resolution.outcome is ResolutionKind.EXCLUDED:
        return EntryOutcome(OutcomeKind.EXCLUDED, entry, reason=SKIP_IGNORED)

    if resolution.outcome is ResolutionKind.UNMAPPED:
        return EntryOutcome(OutcomeKind.UNMAPPED, entry, reason=resolution.reason)

    target = resolution.target
    diff = compute_diff(entry, target)
    outcome = EntryOutcome(
        OutcomeKind.SKIPPED,
        entry,
        target_id=resolution.target_id,
        target=target,
        diff=diff,
        method=resolution.method,
    )

    if not diff:
        outcome.reason = SKIP_NO_CHANGES
        return outcome

    if not config.force and is_synchronized(entry, target):
        outcome.reason = SKIP_SYNCHRONIZED
        return outcome

    if target_format is None and target is not None:
        target_format = target.score_format
    outcome.record = build_update_record(entry, target, target_format)

    if config.dry_run:
        outcome.kind = OutcomeKind.DRY_RUN
        return outcome

    if cancel_event is not None and cancel_event.is_set():
        return None

    try:
        writer.apply_update(entry.catalog_type, resolution.target_id, outcome.record)
    except Exception as e:
        outcome.kind = OutcomeKind.ERROR
        outcome.error = RemoteUpdateFailed(resolution.target_id, e)
        return outcome

    outcome.kind = OutcomeKind.UPDATED
    return outcome


def record_outcome(
    outcome: EntryOutcome,
    stats: RunStatistics,
    ledger: UnmappedLedger,
    direction: SyncDirection,
    sync_logger: SyncLogger,
    verbose: bool = False,
) -> None:
    """Fold one outcome into the pass statistics and ledger."""
    entry = outcome.source
    item = UpdateItem(
        title=entry.title,
        status=entry.status.value,
        detail=format_diff(outcome.diff),
        reason=outcome.reason,
        error=outcome.error,
    )
    stats.increment_total()

    if outcome.kind is OutcomeKind.UPDATED:
        stats.record_update(item)
        sync_logger.info(
            f"Updated {entry.title!r}",
            target_id=outcome.target_id,
            changes=item.detail,
            method=outcome.method,
        )
    elif outcome.kind is OutcomeKind.DRY_RUN:
        stats.record_dry_run(item)
        sync_logger.info(
            f"[DRY RUN] Would update {entry.title!r}",
            target_id=outcome.target_id,
            changes=item.detail,
        )
    elif outcome.kind is OutcomeKind.ERROR:
        stats.record_error(item)
        sync_logger.error(f"Failed to update {entry.title!r}", error=str(outcome.error))
    elif outcome.kind is OutcomeKind.UNMAPPED:
        ledger.append(UnmappedEntry.from_entry(entry, direction, outcome.reason))
        item.reason = SKIP_UNMAPPED
        stats.record_skip(item)
        sync_logger.warning(
            f"No counterpart for {entry.title!r}",
            reason=outcome.reason,
            anilist_id=entry.anilist_id,
            mal_id=entry.mal_id,
        )
    else:
        stats.record_skip(item)
        if verbose:
            sync_logger.info(f"Skipped {entry.title!r}", reason=outcome.reason)


def reconcile_entries(
    sources: Sequence[CatalogEntry],
    candidates: Sequence[CatalogEntry],
    config: SyncConfig,
    writer: CatalogProvider,
    resolver: Optional[CorrespondenceResolver] = None,
    stats: Optional[RunStatistics] = None,
    ledger: Optional[UnmappedLedger] = None,
    target_format: Optional[ScoreFormat] = None,
    cancel_event: Optional[threading.Event] = None,
    sync_logger: Optional[SyncLogger] = None,
) -> List[EntryOutcome]:
    """
    Reconcile a source list against a target list.

    Args:
        sources: Entries of the authoritative service
        candidates: Entries of the target service
        config: Run configuration (direction, force, dry run, workers)
        writer: Target provider that applies updates
        resolver: Correspondence resolver; built from config if omitted
        stats: Statistics to record into; reset by the caller
        ledger: Collects unmapped entries
        target_format: Score scale of the target list
        cancel_event: Stops processing of remaining entries once set
        sync_logger: Logger for per-entry messages

    Returns:
        Outcomes in source order; entries skipped by cancellation are absent
    """
    resolver = resolver or CorrespondenceResolver(
        config.direction,
        structural_fallback=config.structural_fallback,
    )
    stats = stats if stats is not None else RunStatistics()
    ledger = ledger if ledger is not None else UnmappedLedger()
    sync_logger = sync_logger or SyncLogger(prefix=config.direction.prefix)
    by_id = index_by_target_id(candidates, config.direction)

    def work(entry: CatalogEntry) -> Optional[EntryOutcome]:
        return reconcile_entry(
            entry,
            candidates,
            resolver,
            writer,
            config,
            target_format=target_format,
            by_id=by_id,
            cancel_event=cancel_event,
        )

    if config.max_workers > 1 and len(sources) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            results = list(executor.map(work, sources))
    else:
        results = []
        for entry in sources:
            outcome = work(entry)
            if outcome is None:
                break
            results.append(outcome)

    outcomes = [outcome for outcome in results if outcome is not None]
    for outcome in outcomes:
        record_outcome(outcome, stats, ledger, config.direction, sync_logger, config.verbose)

    return outcomes


class SyncEngine:
    """
    Main sync engine that coordinates a sync run.

    Responsibilities:
    - Fetch both lists per catalog type
    - Reconcile the source list into the target service
    - Reconcile favorites
    - Collect unmapped entries for later correction
    """

    def __init__(
        self,
        config: SyncConfig,
        anilist: CatalogProvider,
        myanimelist: CatalogProvider,
        mappings: Optional[MappingStore] = None,
        ignore_rules: Optional[IgnoreRegistry] = None,
        favorites_toggler: Optional[FavoriteToggler] = None,
        id_lookup: Optional[IdentifierLookup] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize sync engine.

        Args:
            config: Sync configuration
            anilist: AniList provider
            myanimelist: MyAnimeList provider
            mappings: Manual mappings
            ignore_rules: Ignore registry
            favorites_toggler: Writes AniList favorites
            id_lookup: Finds AniList ids for MAL entries
            cancel_event: Set from outside to stop the run
        """
        self.config = config
        self.providers: Dict[Service, CatalogProvider] = {
            Service.ANILIST: anilist,
            Service.MYANIMELIST: myanimelist,
        }
        self.mappings = mappings or MappingStore()
        self.ignore_rules = ignore_rules or IgnoreRegistry()
        self.favorites_toggler = favorites_toggler
        self.id_lookup = id_lookup
        self.cancel_event = cancel_event or threading.Event()

        self.stats = RunStatistics()
        self.resolver = CorrespondenceResolver(
            config.direction,
            mappings=self.mappings,
            ignore_rules=self.ignore_rules,
            structural_fallback=config.structural_fallback,
        )

    @property
    def direction(self) -> SyncDirection:
        return self.config.direction

    @property
    def source(self) -> CatalogProvider:
        return self.providers[self.direction.source_service]

    @property
    def target(self) -> CatalogProvider:
        return self.providers[self.direction.target_service]

    def run(self, run_id: Optional[str] = None) -> SyncRunResult:
        """
        Run a full sync over the configured catalog types.

        A catalog type whose lists cannot be fetched is reported in
        failed_catalogs; the other types still run.
        """
        run_id = run_id or str(uuid.uuid4())[:8]
        sync_logger = SyncLogger(run_id, prefix=self.direction.prefix)
        ledger = UnmappedLedger()

        result = SyncRunResult(run_id=run_id, direction=self.direction, started_at=_utcnow())
        favorites = FavoritesSync(
            self.direction,
            toggler=self.favorites_toggler,
            dry_run=self.config.dry_run,
            interval=self.config.favorites_interval_seconds,
            cancel_event=self.cancel_event,
        ) if self.config.sync_favorites else None

        sync_logger.info(
            "Starting sync run",
            dry_run=self.config.dry_run,
            force=self.config.force,
            catalog_types=[t.value for t in self.config.catalog_types],
        )

        try:
            for catalog_type in self.config.catalog_types:
                if self.cancel_event.is_set():
                    raise SyncCancelled("Cancelled before the next catalog type")

                outcomes = self._run_pass(catalog_type, ledger, sync_logger, result)
                if outcomes is None:
                    continue

                result.outcomes[catalog_type] = outcomes

                if favorites is not None:
                    if result.favorites is None:
                        result.favorites = FavoritesResult()
                    favorites.reconcile(self._favorite_pairs(outcomes), result.favorites)

                if self.cancel_event.is_set():
                    raise SyncCancelled("Cancelled during reconciliation")

        except SyncCancelled as e:
            sync_logger.warning("Sync run cancelled", reason=str(e))
            result.cancelled = True

        result.unmapped = ledger.entries
        result.completed_at = _utcnow()

        if result.unmapped:
            sync_logger.warning(f"{len(result.unmapped)} entries could not be mapped")
        if result.favorites is not None:
            sync_logger.info(
                "Favorites complete",
                added=result.favorites.added,
                skipped=result.favorites.skipped,
                errors=result.favorites.errors,
                mismatches=len(result.favorites.mismatches),
            )

        sync_logger.info(
            "Sync run completed",
            success=result.success,
            failed_catalogs=[t.value for t in result.failed_catalogs],
        )
        return result

    def _fetch(self, service: Service, catalog_type: CatalogType) -> List[CatalogEntry]:
        try:
            return self.providers[service].fetch_entries(catalog_type)
        except Exception as e:
            raise RemoteFetchFailed(service.label, catalog_type.value, e) from e

    def _run_pass(
        self,
        catalog_type: CatalogType,
        ledger: UnmappedLedger,
        sync_logger: SyncLogger,
        result: SyncRunResult,
    ) -> Optional[List[EntryOutcome]]:
        """One Discover -> Aggregate pass. None if the lists could not be fetched."""
        self.stats.reset()

        try:
            sources = self._fetch(self.direction.source_service, catalog_type)
            candidates = self._fetch(self.direction.target_service, catalog_type)
        except RemoteFetchFailed as e:
            sync_logger.error(str(e))
            result.failed_catalogs[catalog_type] = str(e)
            return None

        sync_logger.info(
            f"Fetched {catalog_type.value} lists",
            source=len(sources),
            target=len(candidates),
        )

        if self.direction is SyncDirection.REVERSE and self.config.lookup_missing_ids:
            sources = self._lookup_missing_ids(sources)

        target_format = self._target_format(candidates)

        outcomes = reconcile_entries(
            sources,
            candidates,
            self.config,
            self.target,
            resolver=self.resolver,
            stats=self.stats,
            ledger=ledger,
            target_format=target_format,
            cancel_event=self.cancel_event,
            sync_logger=sync_logger,
        )

        self.stats.finish()
        self.stats.log_summary(sync_logger, self.config.error_summary_limit)
        return outcomes

    def _target_format(self, candidates: Sequence[CatalogEntry]) -> Optional[ScoreFormat]:
        # All entries of one list share the owner's scale
        if candidates:
            return candidates[0].score_format
        return getattr(self.target, "score_format", ScoreFormat.POINT_10)

    def _lookup_missing_ids(self, entries: List[CatalogEntry]) -> List[CatalogEntry]:
        """Fill in AniList ids of MAL entries that lack one."""
        if self.id_lookup is None:
            return entries

        enriched = []
        for entry in entries:
            if entry.anilist_id is None and entry.mal_id is not None:
                if self.cancel_event.is_set():
                    raise SyncCancelled("Cancelled during id lookup")
                try:
                    anilist_id = self.id_lookup.lookup_anilist_id(entry.catalog_type, entry.mal_id)
                except Exception as e:
                    logger.warning("AniList id lookup failed", mal_id=entry.mal_id, error=str(e))
                    anilist_id = None
                if anilist_id is not None:
                    entry = entry.with_id(Service.ANILIST, anilist_id)
            enriched.append(entry)
        return enriched

    def _favorite_pairs(self, outcomes: List[EntryOutcome]) -> List[Tuple[CatalogEntry, CatalogEntry]]:
        return [
            (outcome.source, outcome.target)
            for outcome in outcomes
            if outcome.target is not None and outcome.kind is not OutcomeKind.ERROR
        ]
