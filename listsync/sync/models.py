"""
Data models for sync operations.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from listsync.sync.scores import ScoreFormat


class CatalogType(str, Enum):
    """Kind of work tracked in a list."""
    ANIME = "anime"
    MANGA = "manga"


class Status(str, Enum):
    """Service-independent list status."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAUSED = "paused"
    DROPPED = "dropped"
    PLANNED = "planned"
    UNKNOWN = "unknown"


class Service(str, Enum):
    ANILIST = "anilist"
    MYANIMELIST = "myanimelist"

    @property
    def label(self) -> str:
        return "AniList" if self is Service.ANILIST else "MAL"


class SyncDirection(str, Enum):
    """
    Which service is authoritative.

    FORWARD pushes AniList state to MyAnimeList, REVERSE pushes
    MyAnimeList state to AniList.
    """
    FORWARD = "forward"
    REVERSE = "reverse"

    @property
    def source_service(self) -> Service:
        return Service.ANILIST if self is SyncDirection.FORWARD else Service.MYANIMELIST

    @property
    def target_service(self) -> Service:
        return Service.MYANIMELIST if self is SyncDirection.FORWARD else Service.ANILIST

    @property
    def prefix(self) -> str:
        return f"{self.source_service.label} to {self.target_service.label}"


def coerce_id(value: Any) -> Optional[int]:
    """
    Convert a service identifier to an optional int.

    Services use 0 or -1 to mean "not known"; those become None.
    """
    if value is None:
        return None
    try:
        ident = int(value)
    except (TypeError, ValueError):
        return None
    return ident if ident > 0 else None


@dataclass(frozen=True)
class TitleSet:
    """Localized titles of a work. Empty strings carry no signal."""
    primary: str = ""
    native: str = ""
    romanized: str = ""

    def pairs_with(self, other: "TitleSet") -> List[Tuple[str, str, str]]:
        """Same-field pairs where both sides have a value."""
        pairs = []
        for name in ("primary", "native", "romanized"):
            mine = getattr(self, name)
            theirs = getattr(other, name)
            if mine and theirs:
                pairs.append((name, mine, theirs))
        return pairs

    @property
    def is_empty(self) -> bool:
        return not (self.primary or self.native or self.romanized)

    @property
    def display(self) -> str:
        return self.primary or self.native or self.romanized


@dataclass
class CatalogEntry:
    """An entry of a user's list on either service."""
    catalog_type: CatalogType
    anilist_id: Optional[int] = None
    mal_id: Optional[int] = None
    titles: TitleSet = field(default_factory=TitleSet)
    status: Status = Status.UNKNOWN

    # Progress
    progress: int = 0
    progress_volumes: int = 0
    total_units: Optional[int] = None
    total_volumes: Optional[int] = None

    # Score in the owning service's native scale
    score: float = 0.0
    score_format: Optional[ScoreFormat] = ScoreFormat.POINT_10

    started_at: Optional[date] = None
    finished_at: Optional[date] = None
    favorite: bool = False

    @property
    def title(self) -> str:
        return self.titles.display

    @property
    def is_chaptered(self) -> bool:
        return self.catalog_type is CatalogType.MANGA

    def id_for(self, service: Service) -> Optional[int]:
        return self.anilist_id if service is Service.ANILIST else self.mal_id

    def source_id(self, direction: SyncDirection) -> Optional[int]:
        return self.id_for(direction.source_service)

    def target_id(self, direction: SyncDirection) -> Optional[int]:
        return self.id_for(direction.target_service)

    def with_id(self, service: Service, ident: Optional[int]) -> "CatalogEntry":
        """Copy of the entry with one identifier replaced."""
        if service is Service.ANILIST:
            return replace(self, anilist_id=ident)
        return replace(self, mal_id=ident)

    def __str__(self) -> str:
        return (
            f"{self.catalog_type.value.capitalize()}{{AniList: {self.anilist_id}, "
            f"MAL: {self.mal_id}, Title: {self.title!r}, Status: {self.status.value}, "
            f"Score: {self.score}, Progress: {self.progress}/{self.total_units}}}"
        )


@dataclass(frozen=True)
class UpdateRecord:
    """
    Complete list state sent to a service.

    Target services do not accept partial updates, so every write carries
    all of these fields.
    """
    status: Status
    score: int
    progress: int
    progress_volumes: int = 0
    started_at: Optional[date] = None
    finished_at: Optional[date] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UnmappedEntry:
    """An entry whose counterpart could not be determined."""
    title: str
    catalog_type: CatalogType
    direction: SyncDirection
    reason: str
    anilist_id: Optional[int] = None
    mal_id: Optional[int] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_entry(
        cls,
        entry: CatalogEntry,
        direction: SyncDirection,
        reason: str,
    ) -> "UnmappedEntry":
        return cls(
            title=entry.title,
            catalog_type=entry.catalog_type,
            direction=direction,
            reason=reason,
            anilist_id=entry.anilist_id,
            mal_id=entry.mal_id,
        )

    def describe(self) -> str:
        if self.anilist_id:
            ident = f" (AniList: {self.anilist_id})"
        elif self.mal_id:
            ident = f" (MAL: {self.mal_id})"
        else:
            ident = ""
        return f"{self.title!r}{ident} [{self.catalog_type.value}] - {self.reason}"


class OutcomeKind(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"
    ERROR = "error"
    EXCLUDED = "excluded"
    UNMAPPED = "unmapped"


@dataclass
class EntryOutcome:
    """Result of reconciling one source entry."""
    kind: OutcomeKind
    source: CatalogEntry
    reason: str = ""
    target_id: Optional[int] = None
    target: Optional[CatalogEntry] = None
    diff: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)
    record: Optional[UpdateRecord] = None
    error: Optional[BaseException] = None
    method: str = ""

    @property
    def resolved(self) -> bool:
        return self.target_id is not None


@dataclass
class FavoriteMismatch:
    """A favorite flag that differs between the services."""
    title: str
    catalog_type: CatalogType
    anilist_id: Optional[int]
    mal_id: Optional[int]
    on_anilist: bool
    on_mal: bool

    def describe(self) -> str:
        side = "AniList" if self.on_anilist else "MAL"
        return f"{self.catalog_type.value} {self.title!r} is only favorited on {side}"


@dataclass
class FavoritesResult:
    """Outcome of a favorites reconciliation."""
    added: int = 0
    skipped: int = 0
    errors: int = 0
    mismatches: List[FavoriteMismatch] = field(default_factory=list)


@dataclass
class SyncRunResult:
    """Result of a complete sync run."""
    run_id: str
    direction: SyncDirection
    started_at: datetime
    completed_at: Optional[datetime] = None

    # Per catalog type outcomes, in source order
    outcomes: Dict[CatalogType, List[EntryOutcome]] = field(default_factory=dict)
    failed_catalogs: Dict[CatalogType, str] = field(default_factory=dict)
    unmapped: List[UnmappedEntry] = field(default_factory=list)
    favorites: Optional[FavoritesResult] = None

    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.failed_catalogs and not self.cancelled


class CatalogProvider(Protocol):
    """Read/write access to one service's lists."""

    def fetch_entries(self, catalog_type: CatalogType) -> List[CatalogEntry]:
        ...

    def apply_update(
        self,
        catalog_type: CatalogType,
        target_id: int,
        record: UpdateRecord,
    ) -> None:
        ...


class FavoriteToggler(Protocol):
    def toggle_favourite(self, catalog_type: CatalogType, anilist_id: int) -> None:
        ...


class IdentifierLookup(Protocol):
    def lookup_anilist_id(self, catalog_type: CatalogType, mal_id: int) -> Optional[int]:
        ...
