"""
Entry matching logic for listsync.

Decides which entry on the target service corresponds to a source entry.

Matching priority:
1. Ignore rules (entry is excluded, not unmapped)
2. Manual mapping
3. Identifier the source entry already carries for the target service
4. Title cascade, first matching candidate in list order
5. Structural fallback on equal chapter and volume totals, for manga without titles
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from listsync.errors import CorrespondenceNotFound, EntryExcluded
from listsync.sync.mappings import IgnoreRegistry, MappingStore
from listsync.sync.models import CatalogEntry, SyncDirection
from listsync.sync.titles import match_tier
from listsync.utils.logging import get_logger

logger = get_logger(__name__)

REASON_NO_MATCH = "no match"
REASON_AMBIGUOUS = "ambiguous"


class ResolutionKind(str, Enum):
    RESOLVED = "resolved"
    EXCLUDED = "excluded"
    UNMAPPED = "unmapped"


@dataclass
class Resolution:
    """Result of resolving one source entry."""
    outcome: ResolutionKind
    target_id: Optional[int] = None
    target: Optional[CatalogEntry] = None
    method: str = ""
    reason: str = ""


def index_by_target_id(
    candidates: Sequence[CatalogEntry],
    direction: SyncDirection,
) -> Dict[int, CatalogEntry]:
    """Map target-service identifiers to candidate entries, first one wins."""
    index: Dict[int, CatalogEntry] = {}
    for candidate in candidates:
        ident = candidate.target_id(direction)
        if ident is not None and ident not in index:
            index[ident] = candidate
    return index


class CorrespondenceResolver:
    """
    Resolves source entries against the target list.

    Holds only immutable inputs; resolving one entry never depends on
    another, so a resolver can be shared between worker threads.
    """

    def __init__(
        self,
        direction: SyncDirection,
        mappings: Optional[MappingStore] = None,
        ignore_rules: Optional[IgnoreRegistry] = None,
        structural_fallback: bool = True,
    ):
        self.direction = direction
        self.mappings = mappings or MappingStore()
        self.ignore_rules = ignore_rules or IgnoreRegistry()
        self.structural_fallback = structural_fallback

    def find_target(
        self,
        entry: CatalogEntry,
        candidates: Sequence[CatalogEntry],
        by_id: Optional[Dict[int, CatalogEntry]] = None,
    ) -> Tuple[int, Optional[CatalogEntry], str]:
        """
        Find the target entry for a source entry.

        Args:
            entry: Source-side entry
            candidates: Target-side entries, in the order the service returned them
            by_id: Optional precomputed index from index_by_target_id()

        Returns:
            (target id, target entry or None when not in the list, match method)

        Raises:
            EntryExcluded: If an ignore rule matches
            CorrespondenceNotFound: If no counterpart can be determined
        """
        rule = self.ignore_rules.matched_rule(
            title=entry.title,
            anilist_id=entry.anilist_id,
            mal_id=entry.mal_id,
        )
        if rule:
            raise EntryExcluded(entry.title, rule)

        if by_id is None:
            by_id = index_by_target_id(candidates, self.direction)

        mapped_id = self.mappings.lookup(entry.source_id(self.direction), self.direction)
        if mapped_id is not None:
            logger.debug("Using manual mapping", title=entry.title, target_id=mapped_id)
            return mapped_id, by_id.get(mapped_id), "manual"

        known_id = entry.target_id(self.direction)
        if known_id is not None:
            return known_id, by_id.get(known_id), "id"

        same_type = [c for c in candidates if c.catalog_type is entry.catalog_type]

        for candidate in same_type:
            tier = match_tier(entry.titles, candidate.titles)
            if tier is None:
                continue
            target_id = candidate.target_id(self.direction)
            if target_id is None:
                continue
            return target_id, candidate, f"title:{tier}"

        if self.structural_fallback:
            matches = self._structural_matches(entry, same_type)
            if len(matches) > 1:
                raise CorrespondenceNotFound(entry.title, REASON_AMBIGUOUS)
            if matches:
                candidate = matches[0]
                logger.debug(
                    "Structural match",
                    title=entry.title,
                    candidate=candidate.title,
                    total_units=entry.total_units,
                )
                return candidate.target_id(self.direction), candidate, "structural"

        raise CorrespondenceNotFound(entry.title, REASON_NO_MATCH)

    def _structural_matches(
        self,
        entry: CatalogEntry,
        candidates: List[CatalogEntry],
    ) -> List[CatalogEntry]:
        """
        Title-less manga candidates with equal chapter and volume totals.

        Only manga take part, and any title on either side blocks the fallback.
        """
        if not entry.is_chaptered or not entry.total_units or not entry.titles.is_empty:
            return []

        matches = []
        for candidate in candidates:
            if not candidate.titles.is_empty:
                continue
            if candidate.target_id(self.direction) is None:
                continue
            if candidate.total_units != entry.total_units:
                continue
            if candidate.total_volumes != entry.total_volumes:
                continue
            matches.append(candidate)
        return matches

    def resolve(
        self,
        entry: CatalogEntry,
        candidates: Sequence[CatalogEntry],
        by_id: Optional[Dict[int, CatalogEntry]] = None,
    ) -> Resolution:
        """Like find_target(), but reports the outcome as a value."""
        try:
            target_id, target, method = self.find_target(entry, candidates, by_id)
        except EntryExcluded as e:
            return Resolution(ResolutionKind.EXCLUDED, reason=e.rule)
        except CorrespondenceNotFound as e:
            return Resolution(ResolutionKind.UNMAPPED, reason=e.reason)

        return Resolution(
            ResolutionKind.RESOLVED,
            target_id=target_id,
            target=target,
            method=method,
        )


def resolve_correspondence(
    entry: CatalogEntry,
    candidates: Sequence[CatalogEntry],
    direction: SyncDirection,
    mappings: Optional[MappingStore] = None,
    ignore_rules: Optional[IgnoreRegistry] = None,
    structural_fallback: bool = True,
) -> Resolution:
    """Resolve one entry without keeping a resolver around."""
    resolver = CorrespondenceResolver(
        direction,
        mappings=mappings,
        ignore_rules=ignore_rules,
        structural_fallback=structural_fallback,
    )
    return resolver.resolve(entry, candidates)
