"""
Location Group Service.

Loads the LocationGroup hierarchy from Nimbus and answers membership queries
("which locations does this selection cover?") for report location filters.

Entities:
    - LocationGroup: groups with a description and SAP organisation code
    - LocationGroup2Location: group -> directly assigned location
    - LocationGroup2LocationGroup: group -> nested child group

The hierarchy is loaded once and reused until its TTL (24 hours by default)
expires, a reload is forced, or the cache is cleared on connection change.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Set

from nimbus_reports.core.config import NimbusSettings, get_settings
from nimbus_reports.core.odata import (
    NimbusConfigurationError,
    PageFetcher,
    active_filter,
    fetch_all,
)
from nimbus_reports.core.session import NimbusSession
from nimbus_reports.modules.location_groups.hierarchy import (
    LocationGroupHierarchy,
    get_all_descendant_group_ids,
    get_root_group_ids,
    resolve_locations_for_group,
    resolve_locations_for_groups,
)
from nimbus_reports.modules.location_groups.models import HierarchyState, LocationGroupInfo

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
Clock = Callable[[], datetime]

GROUP_FIELDS = ("Id", "Description", "adhoc_OrganisationCode")
GROUP_LOCATION_FIELDS = ("LocationGroupID", "LocationID")
GROUP_NESTING_FIELDS = ("PrimaryLocationGroupID", "SecondaryLocationGroupID")


def _by_description(info: LocationGroupInfo) -> tuple:
    return (info.description.casefold(), info.id)


def _as_id(value: Any) -> Optional[int]:
    """Coerce an OData key to a positive int, or None when it is not one."""
    if isinstance(value, bool):
        return None
    try:
        record_id = int(value)
    except (TypeError, ValueError):
        return None
    return record_id if record_id > 0 else None


class LocationGroupService:
    """
    Cached location group hierarchy for the current connection.

    Args:
        fetcher: Page fetch primitive (usually an ODataService).
        settings: Provides the hierarchy TTL and page size.
        clock: Returns the current time; injectable for TTL tests.
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        settings: Optional[NimbusSettings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.fetcher = fetcher
        self._settings = settings or get_settings()
        self._clock = clock or datetime.now
        self._hierarchy = LocationGroupHierarchy()
        self._state = HierarchyState.EMPTY
        self._loaded_at: Optional[datetime] = None
        self._lock = asyncio.Lock()
        # Bumped by clear(); loads started under an older value are discarded
        self._generation = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> HierarchyState:
        return self._state

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    @property
    def hierarchy(self) -> LocationGroupHierarchy:
        return self._hierarchy

    def is_loaded(self) -> bool:
        return self._state is HierarchyState.LOADED

    def _is_fresh(self) -> bool:
        if not self.is_loaded() or self._loaded_at is None:
            return False
        age = (self._clock() - self._loaded_at).total_seconds()
        return age < self._settings.hierarchy_ttl_seconds

    def clear(self) -> None:
        """Drop the hierarchy. Call when switching connections."""
        self._hierarchy = LocationGroupHierarchy()
        self._state = HierarchyState.EMPTY
        self._loaded_at = None
        self._generation += 1
        logger.info("Location group cache cleared")

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_hierarchy(
        self,
        session: NimbusSession,
        on_progress: Optional[ProgressCallback] = None,
        force: bool = False,
    ) -> bool:
        """
        Load the complete location group hierarchy.

        Groups, group-to-location mappings and group nestings are fetched in
        that order. The new hierarchy replaces the current one only after all
        three fetches succeed.

        Args:
            session: Connected session handle.
            on_progress: Optional callback receiving progress messages.
            force: Reload even if the cached hierarchy is still fresh.

        Returns:
            True if the hierarchy was fetched and installed, False on a cache
            hit or when clear() ran while the fetch was in flight.

        Raises:
            NimbusConnectionError: If any fetch fails. The previous state and
                hierarchy are kept.
        """
        if not force and self._is_fresh():
            logger.debug("Location group hierarchy cache still valid")
            return False

        fetcher = self.fetcher
        if fetcher is None:
            raise NimbusConfigurationError(
                "LocationGroupService has no page fetcher. Bind one with "
                "get_location_group_service(fetcher) before loading."
            )

        def progress(message: str) -> None:
            if on_progress is not None:
                on_progress(message)

        async with self._lock:
            # A concurrent caller may have loaded it while we waited
            if not force and self._is_fresh():
                return False

            generation = self._generation
            previous_state = self._state
            self._state = HierarchyState.LOADING
            try:
                hierarchy = await self._fetch_hierarchy(fetcher, session, progress)
            except Exception:
                if self._generation == generation:
                    self._state = previous_state
                logger.error("Loading location group hierarchy failed")
                raise

            if self._generation != generation:
                logger.info("Discarded location group load; cache was cleared while loading")
                return False

            self._hierarchy = hierarchy
            self._state = HierarchyState.LOADED
            self._loaded_at = self._clock()

        progress(f"Location group hierarchy loaded ({len(hierarchy)} groups)")
        return True

    async def _fetch_hierarchy(
        self,
        fetcher: PageFetcher,
        session: NimbusSession,
        progress: ProgressCallback,
    ) -> LocationGroupHierarchy:
        hierarchy = LocationGroupHierarchy()
        page_size = self._settings.page_size

        progress("Loading location groups...")
        groups = await fetch_all(
            fetcher,
            session,
            "LocationGroup",
            filter=active_filter(),
            select=GROUP_FIELDS,
            orderby="Description",
            page_size=page_size,
        )
        malformed = 0
        for record in groups:
            group_id = _as_id(record.get("Id"))
            if group_id is None:
                if record.get("Id"):
                    malformed += 1
                    logger.warning(f"Skipping location group with malformed Id {record.get('Id')!r}")
                continue
            hierarchy.add_group(
                group_id,
                record.get("Description"),
                record.get("adhoc_OrganisationCode"),
            )
        logger.info(f"Loaded {len(hierarchy)} location groups ({malformed} malformed)")

        progress("Loading group-to-location mappings...")
        mappings = await fetch_all(
            fetcher,
            session,
            "LocationGroup2Location",
            filter=active_filter(),
            select=GROUP_LOCATION_FIELDS,
            page_size=page_size,
        )
        dropped = 0
        for record in mappings:
            if not hierarchy.assign_location(
                _as_id(record.get("LocationGroupID")),
                _as_id(record.get("LocationID")),
            ):
                dropped += 1
        logger.info(f"Loaded {len(mappings)} group-to-location mappings ({dropped} dropped)")

        progress("Loading nested group relationships...")
        nestings = await fetch_all(
            fetcher,
            session,
            "LocationGroup2LocationGroup",
            filter=active_filter(),
            select=GROUP_NESTING_FIELDS,
            page_size=page_size,
        )
        dropped = 0
        for record in nestings:
            if not hierarchy.nest_group(
                _as_id(record.get("PrimaryLocationGroupID")),
                _as_id(record.get("SecondaryLocationGroupID")),
            ):
                dropped += 1
        logger.info(f"Loaded {len(nestings)} nested group relationships ({dropped} dropped)")

        return hierarchy

    async def reload_hierarchy(
        self,
        session: NimbusSession,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Clear the cache and load again, ignoring the TTL."""
        self.clear()
        return await self.load_hierarchy(session, on_progress=on_progress, force=True)

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_locations_for_group(self, group_id: int) -> Set[int]:
        """All location ids in a group, including every nested group."""
        return resolve_locations_for_group(self._hierarchy, group_id)

    def resolve_locations_for_groups(self, group_ids: Iterable[int]) -> Set[int]:
        """All location ids for a multi-group selection."""
        return resolve_locations_for_groups(self._hierarchy, group_ids)

    def get_location_count_for_group(self, group_id: int) -> int:
        return len(self.resolve_locations_for_group(group_id))

    def get_child_group_ids(self, group_id: int) -> List[int]:
        """Direct children only."""
        node = self._hierarchy.get(group_id)
        return sorted(node.child_group_ids) if node else []

    def get_all_descendant_group_ids(self, group_id: int) -> Set[int]:
        return get_all_descendant_group_ids(self._hierarchy, group_id)

    # =========================================================================
    # Getters
    # =========================================================================

    def get_location_group(self, group_id: Optional[int]) -> Optional[LocationGroupInfo]:
        node = self._hierarchy.get(group_id)
        return node.to_info() if node else None

    def get_all_location_groups(self) -> List[LocationGroupInfo]:
        """All groups sorted by description, for dropdowns."""
        infos = [node.to_info() for node in self._hierarchy.nodes_by_id.values()]
        return sorted(infos, key=_by_description)

    def get_root_location_groups(self) -> List[LocationGroupInfo]:
        """Groups not contained in any other group, sorted by description."""
        return [
            self._hierarchy.nodes_by_id[group_id].to_info()
            for group_id in get_root_group_ids(self._hierarchy)
        ]

    def search_location_groups(self, query: str, limit: int = 20) -> List[LocationGroupInfo]:
        """
        Case-insensitive substring search on description and org code.

        Matches are sorted by description before the limit is applied, so the
        same query always returns the same groups.
        """
        lower_query = (query or "").strip().lower()
        if not lower_query or limit <= 0:
            return []

        matches = []
        for node in self._hierarchy.nodes_by_id.values():
            if lower_query in node.description.lower() or (
                node.org_code and lower_query in node.org_code.lower()
            ):
                matches.append(node.to_info())

        matches.sort(key=_by_description)
        return matches[:limit]


# =============================================================================
# Singleton Access
# =============================================================================


_location_group_service: Optional[LocationGroupService] = None


def get_location_group_service(fetcher: Optional[PageFetcher] = None) -> LocationGroupService:
    """
    Get the process-wide LocationGroupService.

    Args:
        fetcher: When given, becomes the service's page fetcher.
    """
    global _location_group_service
    if _location_group_service is None:
        _location_group_service = LocationGroupService(fetcher=fetcher)
    elif fetcher is not None:
        _location_group_service.fetcher = fetcher
    return _location_group_service


def reset_location_group_service() -> None:
    """Reset the singleton (for testing)."""
    global _location_group_service
    _location_group_service = None
