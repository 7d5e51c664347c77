"""
Manual mappings and ignore rules.

Both tables are loaded once before a pass and handed to the resolver; they
are persisted by listsync.db.store.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from listsync.errors import ConfigInvalid
from listsync.sync.models import Service, SyncDirection, coerce_id
from listsync.sync.titles import normalize


@dataclass
class ManualMapping:
    """Explicit AniList <-> MAL identifier override."""
    anilist_id: int
    mal_id: int
    comment: str = ""


class MappingStore:
    """
    Ordered collection of manual mappings, one per AniList id.
    """

    def __init__(self, mappings: Optional[Iterable[ManualMapping]] = None):
        self._mappings: List[ManualMapping] = []
        for mapping in mappings or []:
            self.add_or_update(mapping.anilist_id, mapping.mal_id, mapping.comment)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "MappingStore":
        """
        Build a store from plain dicts with anilist_id, mal_id and comment.

        Raises:
            ConfigInvalid: If a record lacks a usable identifier
        """
        store = cls()
        for index, record in enumerate(records):
            anilist_id = coerce_id(record.get("anilist_id"))
            mal_id = coerce_id(record.get("mal_id"))
            if anilist_id is None or mal_id is None:
                raise ConfigInvalid(
                    f"Manual mapping #{index} needs positive anilist_id and mal_id: {dict(record)!r}"
                )
            store.add_or_update(anilist_id, mal_id, record.get("comment") or "")
        return store

    def add_or_update(self, anilist_id: int, mal_id: int, comment: str = "") -> ManualMapping:
        """Add a mapping, replacing any existing one for the same AniList id."""
        for mapping in self._mappings:
            if mapping.anilist_id == anilist_id:
                mapping.mal_id = mal_id
                mapping.comment = comment
                return mapping

        mapping = ManualMapping(anilist_id=anilist_id, mal_id=mal_id, comment=comment)
        self._mappings.append(mapping)
        return mapping

    def lookup(self, source_id: Optional[int], direction: SyncDirection) -> Optional[int]:
        """
        Find the counterpart of a source identifier.

        Forward reads AniList id -> MAL id, reverse reads MAL id -> AniList id.
        """
        if source_id is None:
            return None

        for mapping in self._mappings:
            if direction is SyncDirection.FORWARD and mapping.anilist_id == source_id:
                return mapping.mal_id
            if direction is SyncDirection.REVERSE and mapping.mal_id == source_id:
                return mapping.anilist_id
        return None

    def __iter__(self):
        return iter(list(self._mappings))

    def __len__(self) -> int:
        return len(self._mappings)


@dataclass
class IgnoreInfo:
    title: str = ""
    reason: str = ""


class IgnoreRegistry:
    """
    Entries excluded from reconciliation.

    Holds one identifier set per service plus a set of normalized titles.
    """

    def __init__(
        self,
        anilist_ids: Optional[Iterable[int]] = None,
        mal_ids: Optional[Iterable[int]] = None,
        titles: Optional[Iterable[str]] = None,
    ):
        self._ids: Dict[Service, Set[int]] = {
            Service.ANILIST: set(anilist_ids or []),
            Service.MYANIMELIST: set(mal_ids or []),
        }
        self._titles: Dict[str, str] = {}
        for title in titles or []:
            self.add_title(title)
        self.metadata: Dict[Service, Dict[int, IgnoreInfo]] = {
            Service.ANILIST: {},
            Service.MYANIMELIST: {},
        }

    def ids(self, service: Service) -> Set[int]:
        return set(self._ids[service])

    @property
    def titles(self) -> List[str]:
        return list(self._titles.values())

    def add_title(self, title: str) -> None:
        key = normalize(title)
        if key and key not in self._titles:
            self._titles[key] = title

    def is_ignored(
        self,
        title: str = "",
        anilist_id: Optional[int] = None,
        mal_id: Optional[int] = None,
    ) -> bool:
        if anilist_id is not None and anilist_id in self._ids[Service.ANILIST]:
            return True
        if mal_id is not None and mal_id in self._ids[Service.MYANIMELIST]:
            return True
        return bool(title) and normalize(title) in self._titles

    def matched_rule(
        self,
        title: str = "",
        anilist_id: Optional[int] = None,
        mal_id: Optional[int] = None,
    ) -> Optional[str]:
        """Describe which rule excludes an entry, or None."""
        if anilist_id is not None and anilist_id in self._ids[Service.ANILIST]:
            return f"anilist_id {anilist_id}"
        if mal_id is not None and mal_id in self._ids[Service.MYANIMELIST]:
            return f"mal_id {mal_id}"
        if title and normalize(title) in self._titles:
            return f"title {title!r}"
        return None

    def add_ignore(
        self,
        service: Service,
        ident: Optional[int] = None,
        title: str = "",
        reason: str = "",
    ) -> None:
        """
        Ignore an entry by identifier, or by title when no identifier is known.
        """
        if ident is not None:
            self._ids[service].add(ident)
            self.metadata[service][ident] = IgnoreInfo(title=title, reason=reason)
        elif title:
            self.add_title(title)
        else:
            raise ValueError("add_ignore needs an identifier or a title")
