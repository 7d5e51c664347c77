"""
Configuration management for listsync.
Configuration is read from environment variables (and a .env file).
"""

import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from listsync.errors import ConfigInvalid
from listsync.sync.models import CatalogType, SyncDirection

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///data/listsync.db"


class SyncConfig(BaseModel):
    """Configuration for a sync run. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    # AniList settings
    anilist_token: Optional[str] = Field(default=None, description="AniList OAuth access token")

    # MyAnimeList settings
    mal_client_id: Optional[str] = Field(default=None, description="MyAnimeList API client id")
    mal_token: Optional[str] = Field(default=None, description="MyAnimeList OAuth access token")
    mal_username: Optional[str] = Field(default=None, description="MyAnimeList user name, used for favorites")

    # Sync settings
    direction: SyncDirection = Field(default=SyncDirection.FORWARD, description="forward: AniList to MAL, reverse: MAL to AniList")
    force: bool = Field(default=False, description="Update every resolved entry that has a diff")
    dry_run: bool = Field(default=False, description="Compute updates without writing them")
    verbose: bool = Field(default=False, description="Log skipped items in detail")
    catalog_types: Tuple[CatalogType, ...] = Field(
        default=(CatalogType.ANIME, CatalogType.MANGA),
        description="Catalog types to sync, in order",
    )

    # Feature toggles
    structural_fallback: bool = Field(default=True, description="Match title-less manga on equal chapter and volume totals")
    lookup_missing_ids: bool = Field(default=True, description="Look up AniList ids for MAL entries in reverse syncs")
    sync_favorites: bool = Field(default=False, description="Reconcile favorites after the list pass")

    # Resources
    max_workers: int = Field(default=1, ge=1, description="Worker threads per pass")
    favorites_interval_seconds: float = Field(default=0.7, ge=0, description="Minimum wait before each favorite toggle")
    cache_dir: str = Field(default="data/cache", description="Directory for the response cache")
    cache_max_age_hours: float = Field(default=168.0, gt=0, description="Cached responses older than this are ignored")

    # Application settings
    database_url: str = Field(default=DEFAULT_DATABASE_URL, description="Database connection URL")
    log_level: str = Field(default="INFO", description="Logging level")
    error_summary_limit: int = Field(default=10, ge=0, description="Errors listed in the end-of-run summary")

    @field_validator("catalog_types", mode="before")
    @classmethod
    def _split_catalog_types(cls, value):
        if isinstance(value, str):
            value = [part.strip().lower() for part in value.split(",") if part.strip()]
        return value

    @field_validator("catalog_types")
    @classmethod
    def _require_catalog_types(cls, value):
        if not value:
            raise ValueError("at least one catalog type is required")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def require_credentials(self) -> None:
        """
        Check that both services can be reached.

        Raises:
            ConfigInvalid: If a token or the MAL client id is missing
        """
        missing = [
            name for name, value in (
                ("ANILIST_TOKEN", self.anilist_token),
                ("MAL_CLIENT_ID", self.mal_client_id),
                ("MAL_TOKEN", self.mal_token),
            )
            if not value
        ]
        if self.sync_favorites and not self.mal_username:
            missing.append("MAL_USERNAME")
        if missing:
            raise ConfigInvalid(f"Missing configuration: {', '.join(missing)}")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def get_config_from_env() -> SyncConfig:
    """
    Load configuration from environment variables.

    Raises:
        ValidationError: If a value cannot be converted
    """
    return SyncConfig(
        anilist_token=os.getenv("ANILIST_TOKEN"),
        mal_client_id=os.getenv("MAL_CLIENT_ID"),
        mal_token=os.getenv("MAL_TOKEN"),
        mal_username=os.getenv("MAL_USERNAME"),
        direction=os.getenv("SYNC_DIRECTION", "forward").lower(),
        force=_env_bool("FORCE_SYNC", False),
        dry_run=_env_bool("DRY_RUN", False),
        verbose=_env_bool("VERBOSE", False),
        catalog_types=os.getenv("CATALOG_TYPES", "anime,manga"),
        structural_fallback=_env_bool("STRUCTURAL_FALLBACK", True),
        lookup_missing_ids=_env_bool("LOOKUP_MISSING_IDS", True),
        sync_favorites=_env_bool("SYNC_FAVORITES", False),
        max_workers=os.getenv("MAX_WORKERS", "1"),
        favorites_interval_seconds=os.getenv("FAVORITES_INTERVAL_SECONDS", "0.7"),
        cache_dir=os.getenv("CACHE_DIR", "data/cache"),
        cache_max_age_hours=os.getenv("CACHE_MAX_AGE_HOURS", "168"),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        error_summary_limit=os.getenv("ERROR_SUMMARY_LIMIT", "10"),
    )


def load_config() -> SyncConfig:
    """
    Load configuration, reporting bad values as ConfigInvalid.

    Raises:
        ConfigInvalid: If any value fails validation
    """
    try:
        return get_config_from_env()
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid configuration: {e}") from e
