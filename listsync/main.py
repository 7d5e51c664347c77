"""
Main entry point for listsync.

Runs one sync between AniList and MyAnimeList using environment
configuration. Ctrl+C stops the run after the entry in progress.
"""

import logging
import os
import signal
import sys
import threading

from listsync.api.anilist import AniListClient
from listsync.api.myanimelist import JikanClient, MyAnimeListClient
from listsync.config import SyncConfig, load_config
from listsync.db.database import close_db, init_db
from listsync.db.store import (
    load_ignore_registry,
    load_mapping_store,
    record_sync_run,
    save_unmapped_snapshot,
)
from listsync.errors import ConfigInvalid
from listsync.sync.engine import SyncEngine
from listsync.sync.models import SyncRunResult
from listsync.utils.cache import ResponseCache
from listsync.utils.logging import get_logger, init_db_logging, setup_logging

logger = get_logger(__name__)

CACHE_FILE = "responses.json"


def build_engine(config: SyncConfig, cancel_event: threading.Event) -> tuple:
    """
    Create clients and the sync engine.

    Returns:
        (engine, cache, mal client)
    """
    mappings = load_mapping_store()
    ignore_rules = load_ignore_registry()

    cache = ResponseCache(
        os.path.join(config.cache_dir, CACHE_FILE),
        max_age_seconds=config.cache_max_age_hours * 3600,
    )

    anilist = AniListClient(config.anilist_token, cache=cache)
    mal = MyAnimeListClient(
        config.mal_client_id,
        config.mal_token,
        username=config.mal_username,
        jikan=JikanClient() if config.sync_favorites else None,
    )

    engine = SyncEngine(
        config,
        anilist=anilist,
        myanimelist=mal,
        mappings=mappings,
        ignore_rules=ignore_rules,
        favorites_toggler=anilist,
        id_lookup=anilist,
        cancel_event=cancel_event,
    )
    return engine, cache, mal


def report(result: SyncRunResult, limit: int) -> None:
    """Log what needs the user's attention after a run."""
    for catalog_type, message in result.failed_catalogs.items():
        logger.error(f"{catalog_type.value} was not synced", error=message)

    for entry in result.unmapped[:limit]:
        logger.warning(f"Unmapped: {entry.describe()}")
    if len(result.unmapped) > limit:
        logger.warning(f"... and {len(result.unmapped) - limit} more unmapped entries")


def main() -> int:
    """Main entry point."""
    try:
        config = load_config()
        config.require_credentials()
    except ConfigInvalid as e:
        setup_logging()
        logger.error("Invalid configuration", error=str(e))
        return 2

    setup_logging(config.log_level)

    init_db(config.database_url)
    db_log_handler = init_db_logging()

    cancel_event = threading.Event()

    def handle_interrupt(signum, frame):
        logger.warning("Interrupt received, stopping after the current entry")
        cancel_event.set()

    signal.signal(signal.SIGINT, handle_interrupt)

    logger.info(
        "Starting listsync",
        version="0.1.0",
        direction=config.direction.prefix,
        dry_run=config.dry_run,
    )

    try:
        engine, cache, mal = build_engine(config, cancel_event)
    except ConfigInvalid as e:
        logger.error("Invalid mappings", error=str(e))
        logging.getLogger().removeHandler(db_log_handler)
        close_db()
        return 2

    try:
        result = engine.run()
        save_unmapped_snapshot(result.unmapped)
        record_sync_run(result)
        report(result, config.error_summary_limit)
    finally:
        cache.save()
        mal.close()
        logging.getLogger().removeHandler(db_log_handler)
        close_db()

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
