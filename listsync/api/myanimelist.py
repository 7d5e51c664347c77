"""
MyAnimeList API client for listsync.

Documentation: https://myanimelist.net/apiconfig/references/api/v2
Lists are read and written through the official v2 API; favorites are not
exposed there and are read from the public Jikan API instead.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set

from listsync.api.base import BaseClient
from listsync.sync.models import CatalogEntry, CatalogType, Status, TitleSet, UpdateRecord, coerce_id
from listsync.sync.scores import ScoreFormat
from listsync.utils.logging import get_logger

logger = get_logger(__name__)

MAL_API_URL = "https://api.myanimelist.net/v2"
JIKAN_API_URL = "https://api.jikan.moe/v4"

PAGE_SIZE = 100

_LIST_FIELDS = {
    CatalogType.ANIME: "list_status,num_episodes,alternative_titles",
    CatalogType.MANGA: "list_status,num_chapters,num_volumes,alternative_titles",
}

_STATUS_FROM_MAL = {
    "watching": Status.IN_PROGRESS,
    "reading": Status.IN_PROGRESS,
    "completed": Status.COMPLETED,
    "on_hold": Status.PAUSED,
    "dropped": Status.DROPPED,
    "plan_to_watch": Status.PLANNED,
    "plan_to_read": Status.PLANNED,
}

_STATUS_TO_MAL = {
    CatalogType.ANIME: {
        Status.IN_PROGRESS: "watching",
        Status.COMPLETED: "completed",
        Status.PAUSED: "on_hold",
        Status.DROPPED: "dropped",
        Status.PLANNED: "plan_to_watch",
    },
    CatalogType.MANGA: {
        Status.IN_PROGRESS: "reading",
        Status.COMPLETED: "completed",
        Status.PAUSED: "on_hold",
        Status.DROPPED: "dropped",
        Status.PLANNED: "plan_to_read",
    },
}


def parse_mal_date(value: Optional[str]) -> Optional[date]:
    """Parse MAL's YYYY-MM-DD dates; partial dates (YYYY-MM, YYYY) are dropped."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def status_from_mal(value: Optional[str]) -> Status:
    return _STATUS_FROM_MAL.get(value or "", Status.UNKNOWN)


def status_to_mal(status: Status, catalog_type: CatalogType) -> Optional[str]:
    """MAL status string, or None when the status has no MAL equivalent."""
    return _STATUS_TO_MAL[catalog_type].get(status)


def entry_from_mal(item: Dict[str, Any], catalog_type: CatalogType) -> CatalogEntry:
    """
    Convert one item of a MAL list response.

    Args:
        item: {"node": {...}, "list_status": {...}}
        catalog_type: Anime or manga

    Returns:
        CatalogEntry with a MAL id and no AniList id
    """
    node = item.get("node") or {}
    list_status = item.get("list_status") or {}
    alternative = node.get("alternative_titles") or {}

    entry = CatalogEntry(
        catalog_type=catalog_type,
        mal_id=coerce_id(node.get("id")),
        titles=TitleSet(
            primary=alternative.get("en") or "",
            native=alternative.get("ja") or "",
            romanized=node.get("title") or "",
        ),
        status=status_from_mal(list_status.get("status")),
        score=float(list_status.get("score") or 0),
        score_format=ScoreFormat.POINT_10,
        started_at=parse_mal_date(list_status.get("start_date")),
        finished_at=parse_mal_date(list_status.get("finish_date")),
    )

    if catalog_type is CatalogType.ANIME:
        entry.progress = list_status.get("num_episodes_watched") or 0
        entry.total_units = coerce_id(node.get("num_episodes"))
    else:
        entry.progress = list_status.get("num_chapters_read") or 0
        entry.progress_volumes = list_status.get("num_volumes_read") or 0
        entry.total_units = coerce_id(node.get("num_chapters"))
        entry.total_volumes = coerce_id(node.get("num_volumes"))

    return entry


class JikanClient(BaseClient):
    """Read-only client for the public Jikan API."""

    def __init__(self, base_url: str = JIKAN_API_URL):
        super().__init__(base_url, max_retries=5, retry_backoff_factor=1.0)

    def get_user_favorites(self, username: str) -> Dict[CatalogType, Set[int]]:
        """
        Get a user's favorite anime and manga.

        Returns:
            MAL ids per catalog type
        """
        data = self.get(f"/users/{username}/favorites").get("data") or {}

        favorites = {}
        for catalog_type in CatalogType:
            favorites[catalog_type] = {
                ident
                for ident in (coerce_id(item.get("mal_id")) for item in data.get(catalog_type.value) or [])
                if ident is not None
            }

        logger.debug(
            "Fetched MAL favorites",
            username=username,
            anime=len(favorites[CatalogType.ANIME]),
            manga=len(favorites[CatalogType.MANGA]),
        )
        return favorites


class MyAnimeListClient(BaseClient):
    """
    Client for the MyAnimeList v2 API.

    Provides the authenticated user's lists and updates list entries.
    """

    score_format = ScoreFormat.POINT_10

    def __init__(
        self,
        client_id: str,
        access_token: str,
        username: Optional[str] = None,
        jikan: Optional[JikanClient] = None,
        base_url: str = MAL_API_URL,
    ):
        """
        Initialize MyAnimeList client.

        Args:
            client_id: MAL API client id
            access_token: OAuth access token for the user
            username: MAL user name; needed to read favorites
            jikan: Jikan client for favorites; favorites are not read without it
        """
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-MAL-CLIENT-ID": client_id,
            },
        )
        self.username = username
        self.jikan = jikan
        self._favorites: Optional[Dict[CatalogType, Set[int]]] = None

    def favorite_ids(self, catalog_type: CatalogType) -> Set[int]:
        if self.jikan is None or not self.username:
            return set()
        if self._favorites is None:
            self._favorites = self.jikan.get_user_favorites(self.username)
        return self._favorites.get(catalog_type, set())

    def fetch_entries(self, catalog_type: CatalogType) -> List[CatalogEntry]:
        """
        Get every entry of the user's anime or manga list.

        Raises:
            APIError: If a page cannot be fetched
        """
        endpoint: Optional[str] = f"/users/@me/{catalog_type.value}list"
        params: Optional[Dict[str, Any]] = {
            "fields": _LIST_FIELDS[catalog_type],
            "limit": PAGE_SIZE,
            "nsfw": "true",
        }

        entries: List[CatalogEntry] = []
        while endpoint:
            response = self.get(endpoint, params=params)
            entries.extend(entry_from_mal(item, catalog_type) for item in response.get("data") or [])

            # The next link already carries the query string
            endpoint = (response.get("paging") or {}).get("next")
            params = None

        favorites = self.favorite_ids(catalog_type)
        for entry in entries:
            entry.favorite = entry.mal_id in favorites

        logger.info(f"Fetched MAL {catalog_type.value} list", count=len(entries))
        return entries

    def apply_update(self, catalog_type: CatalogType, target_id: int, record: UpdateRecord) -> None:
        """
        Replace the list status of one entry.

        Raises:
            APIError: If the update fails
        """
        data: Dict[str, Any] = {"score": record.score}

        status = status_to_mal(record.status, catalog_type)
        if status:
            data["status"] = status

        if catalog_type is CatalogType.ANIME:
            data["num_watched_episodes"] = record.progress
        else:
            data["num_chapters_read"] = record.progress
            data["num_volumes_read"] = record.progress_volumes

        if record.started_at:
            data["start_date"] = record.started_at.isoformat()
        if record.finished_at:
            data["finish_date"] = record.finished_at.isoformat()

        self.patch(f"/{catalog_type.value}/{target_id}/my_list_status", data=data)
        logger.debug("Updated MAL entry", catalog_type=catalog_type.value, mal_id=target_id)
