"""
Favorites reconciliation.

Only MAL -> AniList can write (AniList exposes ToggleFavourite, MAL has no
write API for favorites); AniList -> MAL only reports differences. Favorites
are never removed: a favorite present only on the non-authoritative side may
be an independent choice.
"""

import threading
from typing import Iterable, Optional, Tuple

from listsync.errors import SyncCancelled
from listsync.sync.models import (
    CatalogEntry,
    FavoriteMismatch,
    FavoritesResult,
    FavoriteToggler,
    Service,
    SyncDirection,
)
from listsync.utils.logging import get_logger

logger = get_logger(__name__)

# AniList allows roughly 90 requests per minute
DEFAULT_INTERVAL_SECONDS = 0.7

WRITABLE_DIRECTION = SyncDirection.REVERSE


class FavoritesSync:
    """
    Reconciles the favorite flag of resolved entry pairs.
    """

    def __init__(
        self,
        direction: SyncDirection,
        toggler: Optional[FavoriteToggler] = None,
        dry_run: bool = False,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            direction: Direction of the current pass
            toggler: Writes AniList favorites; unused in the report-only direction
            dry_run: Count adds without calling the toggler
            interval: Seconds waited before every toggle call
            cancel_event: Set to abandon a pending wait
        """
        self.direction = direction
        self.toggler = toggler
        self.dry_run = dry_run
        self.interval = interval
        self.cancel_event = cancel_event or threading.Event()

    @property
    def writable(self) -> bool:
        return self.direction is WRITABLE_DIRECTION and self.toggler is not None

    def reconcile(
        self,
        pairs: Iterable[Tuple[CatalogEntry, CatalogEntry]],
        result: Optional[FavoritesResult] = None,
    ) -> FavoritesResult:
        """
        Reconcile favorites for (source, target) pairs.

        Raises:
            SyncCancelled: If cancelled while waiting to write
        """
        result = result or FavoritesResult()

        for source, target in pairs:
            if source.favorite == target.favorite:
                result.skipped += 1
                continue

            if source.favorite and self.writable:
                self._add(source, target, result)
                continue

            mismatch = self._mismatch(source, target)
            logger.info(
                f"Favorite mismatch: {mismatch.describe()}",
                anilist_id=mismatch.anilist_id,
                mal_id=mismatch.mal_id,
            )
            result.mismatches.append(mismatch)

        return result

    def _mismatch(self, source: CatalogEntry, target: CatalogEntry) -> FavoriteMismatch:
        if self.direction.source_service is Service.ANILIST:
            anilist_side, mal_side = source, target
        else:
            anilist_side, mal_side = target, source

        return FavoriteMismatch(
            title=source.title,
            catalog_type=source.catalog_type,
            anilist_id=anilist_side.anilist_id or mal_side.anilist_id,
            mal_id=mal_side.mal_id or anilist_side.mal_id,
            on_anilist=anilist_side.favorite,
            on_mal=mal_side.favorite,
        )

    def _add(self, source: CatalogEntry, target: CatalogEntry, result: FavoritesResult) -> None:
        anilist_id = target.anilist_id or source.anilist_id
        if anilist_id is None:
            logger.debug("Skipping favorite without AniList id", title=source.title)
            result.skipped += 1
            return

        if self.dry_run:
            logger.info(
                "[DRY RUN] Would add to AniList favorites",
                title=source.title,
                catalog_type=source.catalog_type.value,
                anilist_id=anilist_id,
            )
            result.added += 1
            return

        self._wait()

        try:
            self.toggler.toggle_favourite(source.catalog_type, anilist_id)
        except Exception as e:
            logger.warning(
                "Failed to add favorite",
                title=source.title,
                anilist_id=anilist_id,
                error=str(e),
            )
            result.errors += 1
            return

        logger.info("Added to AniList favorites", title=source.title, anilist_id=anilist_id)
        result.added += 1

    def _wait(self) -> None:
        """Wait out the rate-limit interval, or raise at once if cancelled."""
        if self.cancel_event.is_set() or self.cancel_event.wait(self.interval):
            raise SyncCancelled("Cancelled while waiting to toggle a favorite")
