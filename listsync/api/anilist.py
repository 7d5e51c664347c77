"""
AniList API client for listsync.

Documentation: https://docs.anilist.co
AniList uses a GraphQL API.
"""

import threading
from datetime import date
from typing import Any, Dict, List, Optional

from gql import Client, gql
from gql.transport.exceptions import TransportQueryError
from gql.transport.requests import RequestsHTTPTransport

from listsync.sync.models import CatalogEntry, CatalogType, Status, TitleSet, UpdateRecord, coerce_id
from listsync.sync.scores import ScoreFormat, parse_score_format
from listsync.utils.cache import ResponseCache
from listsync.utils.logging import get_logger

logger = get_logger(__name__)

ANILIST_API_URL = "https://graphql.anilist.co"

_STATUS_FROM_ANILIST = {
    "CURRENT": Status.IN_PROGRESS,
    "REPEATING": Status.IN_PROGRESS,
    "COMPLETED": Status.COMPLETED,
    "PAUSED": Status.PAUSED,
    "DROPPED": Status.DROPPED,
    "PLANNING": Status.PLANNED,
}

_STATUS_TO_ANILIST = {
    Status.IN_PROGRESS: "CURRENT",
    Status.COMPLETED: "COMPLETED",
    Status.PAUSED: "PAUSED",
    Status.DROPPED: "DROPPED",
    Status.PLANNED: "PLANNING",
}

VIEWER_QUERY = gql("""
    query Viewer {
        Viewer {
            id
            name
            mediaListOptions {
                scoreFormat
            }
        }
    }
""")

LIST_QUERY = gql("""
    query MediaListCollection($userId: Int, $type: MediaType) {
        MediaListCollection(userId: $userId, type: $type) {
            lists {
                entries {
                    status
                    score
                    progress
                    progressVolumes
                    startedAt { year month day }
                    completedAt { year month day }
                    media {
                        id
                        idMal
                        episodes
                        chapters
                        volumes
                        isFavourite
                        title {
                            english
                            native
                            romaji
                        }
                    }
                }
            }
        }
    }
""")

SAVE_MUTATION = gql("""
    mutation SaveMediaListEntry(
        $mediaId: Int,
        $status: MediaListStatus,
        $score: Float,
        $progress: Int,
        $progressVolumes: Int,
        $startedAt: FuzzyDateInput,
        $completedAt: FuzzyDateInput
    ) {
        SaveMediaListEntry(
            mediaId: $mediaId,
            status: $status,
            score: $score,
            progress: $progress,
            progressVolumes: $progressVolumes,
            startedAt: $startedAt,
            completedAt: $completedAt
        ) {
            id
            status
        }
    }
""")

TOGGLE_FAVOURITE_MUTATION = gql("""
    mutation ToggleFavourite($animeId: Int, $mangaId: Int) {
        ToggleFavourite(animeId: $animeId, mangaId: $mangaId) {
            anime { pageInfo { total } }
            manga { pageInfo { total } }
        }
    }
""")

MEDIA_BY_MAL_ID_QUERY = gql("""
    query MediaByMalId($idMal: Int, $type: MediaType) {
        Media(idMal: $idMal, type: $type) {
            id
        }
    }
""")


def parse_fuzzy_date(value: Optional[Dict[str, Any]]) -> Optional[date]:
    """Convert an AniList FuzzyDate; incomplete dates become None."""
    if not value:
        return None
    try:
        return date(value["year"], value["month"], value["day"])
    except (KeyError, TypeError, ValueError):
        return None


def fuzzy_date_input(value: Optional[date]) -> Optional[Dict[str, int]]:
    if value is None:
        return None
    return {"year": value.year, "month": value.month, "day": value.day}


def status_from_anilist(value: Optional[str]) -> Status:
    return _STATUS_FROM_ANILIST.get(value or "", Status.UNKNOWN)


def status_to_anilist(status: Status) -> Optional[str]:
    return _STATUS_TO_ANILIST.get(status)


def entry_from_anilist(
    item: Dict[str, Any],
    catalog_type: CatalogType,
    score_format: Optional[ScoreFormat],
) -> CatalogEntry:
    """Convert one MediaList entry of a MediaListCollection response."""
    media = item.get("media") or {}
    title = media.get("title") or {}

    entry = CatalogEntry(
        catalog_type=catalog_type,
        anilist_id=coerce_id(media.get("id")),
        mal_id=coerce_id(media.get("idMal")),
        titles=TitleSet(
            primary=title.get("english") or "",
            native=title.get("native") or "",
            romanized=title.get("romaji") or "",
        ),
        status=status_from_anilist(item.get("status")),
        progress=item.get("progress") or 0,
        score=float(item.get("score") or 0),
        score_format=score_format,
        started_at=parse_fuzzy_date(item.get("startedAt")),
        finished_at=parse_fuzzy_date(item.get("completedAt")),
        favorite=bool(media.get("isFavourite")),
    )

    if catalog_type is CatalogType.ANIME:
        entry.total_units = coerce_id(media.get("episodes"))
    else:
        entry.progress_volumes = item.get("progressVolumes") or 0
        entry.total_units = coerce_id(media.get("chapters"))
        entry.total_volumes = coerce_id(media.get("volumes"))

    return entry


class AniListClient:
    """
    Client for the AniList GraphQL API.

    Reads the viewer's lists, saves list entries, toggles favourites and
    looks up AniList ids by MAL id.
    """

    def __init__(
        self,
        access_token: str,
        cache: Optional[ResponseCache] = None,
        url: str = ANILIST_API_URL,
    ):
        """
        Initialize AniList client.

        Args:
            access_token: AniList OAuth access token
            cache: Cache for id lookups
            url: GraphQL endpoint
        """
        self.access_token = access_token
        self.cache = cache
        self.url = url
        self._client = None
        self._lock = threading.Lock()
        self._viewer: Optional[Dict[str, Any]] = None

    @property
    def client(self) -> Client:
        """Get or create GraphQL client."""
        if self._client is None:
            transport = RequestsHTTPTransport(
                url=self.url,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=30,
                retries=3,
            )
            self._client = Client(transport=transport, fetch_schema_from_transport=False)
        return self._client

    def _execute(self, document, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        # The sync transport holds one session; calls from worker threads take turns
        with self._lock:
            return self.client.execute(document, variable_values=variables or {})

    @property
    def viewer(self) -> Dict[str, Any]:
        if self._viewer is None:
            self._viewer = self._execute(VIEWER_QUERY).get("Viewer") or {}
        return self._viewer

    @property
    def score_format(self) -> Optional[ScoreFormat]:
        """The user's score format, None if AniList reports one this client does not know."""
        options = self.viewer.get("mediaListOptions") or {}
        return parse_score_format(options.get("scoreFormat"))

    def fetch_entries(self, catalog_type: CatalogType) -> List[CatalogEntry]:
        """
        Get every entry of the viewer's anime or manga list.

        Entries in several custom lists are returned once.
        """
        result = self._execute(LIST_QUERY, {
            "userId": self.viewer.get("id"),
            "type": catalog_type.value.upper(),
        })
        score_format = self.score_format

        entries: List[CatalogEntry] = []
        seen = set()
        collection = result.get("MediaListCollection") or {}
        for media_list in collection.get("lists") or []:
            for item in media_list.get("entries") or []:
                entry = entry_from_anilist(item, catalog_type, score_format)
                if entry.anilist_id in seen:
                    continue
                seen.add(entry.anilist_id)
                entries.append(entry)

        logger.info(f"Fetched AniList {catalog_type.value} list", count=len(entries))
        return entries

    def apply_update(self, catalog_type: CatalogType, target_id: int, record: UpdateRecord) -> None:
        """Save the complete list state of one entry."""
        variables: Dict[str, Any] = {
            "mediaId": target_id,
            "score": record.score,
            "progress": record.progress,
            "startedAt": fuzzy_date_input(record.started_at),
            "completedAt": fuzzy_date_input(record.finished_at),
        }
        status = status_to_anilist(record.status)
        if status:
            variables["status"] = status
        if catalog_type is CatalogType.MANGA:
            variables["progressVolumes"] = record.progress_volumes

        self._execute(SAVE_MUTATION, variables)
        logger.debug("Updated AniList entry", catalog_type=catalog_type.value, anilist_id=target_id)

    def toggle_favourite(self, catalog_type: CatalogType, anilist_id: int) -> None:
        key = "animeId" if catalog_type is CatalogType.ANIME else "mangaId"
        self._execute(TOGGLE_FAVOURITE_MUTATION, {key: anilist_id})

    def lookup_anilist_id(self, catalog_type: CatalogType, mal_id: int) -> Optional[int]:
        """
        Find the AniList id of a work by its MAL id.

        Results, including misses, are cached.
        """
        cache_key = f"anilist:{catalog_type.value}:mal:{mal_id}"
        if self.cache is not None:
            cached, found = self.cache.get(cache_key)
            if found:
                return cached

        try:
            result = self._execute(MEDIA_BY_MAL_ID_QUERY, {
                "idMal": mal_id,
                "type": catalog_type.value.upper(),
            })
            anilist_id = coerce_id((result.get("Media") or {}).get("id"))
        except TransportQueryError as e:
            # AniList answers unknown ids with a "Not Found." error
            logger.debug("No AniList media for MAL id", mal_id=mal_id, error=str(e))
            anilist_id = None

        if self.cache is not None:
            self.cache.set(cache_key, anilist_id)
        return anilist_id
