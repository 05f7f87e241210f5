"""
Reference Lookup Service.

Read-through, in-memory caches of Nimbus reference data (users, locations,
departments, schedules, agreements, activity types) used to turn foreign-key
integers on report rows into display strings.

Caching Policy:
    - Full-table loads run once per connected session. A table that loaded
      successfully stays loaded, even when it is empty, until clear_caches().
    - Id-scoped loads (schedules, agreements, schedule shifts) are additive:
      only ids not already cached are requested, in OR-predicate batches.
    - Point lookups never raise for unknown ids. They return None, an empty
      string or a placeholder such as "Location 42".

Failure Policy:
    Transport failures propagate from the load call (no internal retry). Rows
    parsed from pages received before the failure stay cached.

Usage:
    lookups = get_lookup_service(ODataService(http_client))
    await asyncio.gather(lookups.load_users(session), lookups.load_locations(session))
    lookups.get_location(row["LocationID"])
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError

from nimbus_reports.core.config import NimbusSettings, get_settings
from nimbus_reports.core.odata import (
    NimbusConfigurationError,
    PageFetcher,
    Record,
    and_filters,
    active_filter,
    fetch_all,
    fetch_by_ids,
    not_deleted_filter,
)
from nimbus_reports.core.session import NimbusSession
from nimbus_reports.modules.lookups.cache import CacheState, TableCache
from nimbus_reports.modules.lookups.models import (
    ActivityTypeInfo,
    AgreementInfo,
    AgreementTypeInfo,
    DepartmentInfo,
    LocationInfo,
    ScheduleInfo,
    ScheduleShiftInfo,
    UserInfo,
)
from nimbus_reports.modules.lookups.search import UserSearchIndex

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

ProgressCallback = Callable[[str], None]

# AgreementType 2 marks shift/person agreements, the ones reports filter on
SHIFT_AGREEMENT_TYPE = 2

USER_FIELDS = ("Id", "Username", "Forename", "Surname", "Payroll")
DESCRIPTION_FIELDS = ("Id", "Description")
SCHEDULE_FIELDS = ("Id", "Description", "ScheduleStart", "ScheduleFinish", "LocationID")
SCHEDULE_SHIFT_FIELDS = (
    "Id", "Description", "StartTime", "FinishTime", "ScheduleID", "DepartmentID", "UserID",
)


def _by_description(record: Any) -> tuple:
    return (record.description.casefold(), record.id)


def _by_full_name(user: UserInfo) -> tuple:
    return (user.full_name.casefold(), user.id)


def _record_id(record: Any) -> int:
    return record.id


class LookupService:
    """
    Reference lookup caches for one connected session.

    Args:
        fetcher: Page fetch primitive (usually an ODataService).
        settings: Paging and batching settings.
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        settings: Optional[NimbusSettings] = None,
    ) -> None:
        self.fetcher = fetcher
        self._settings = settings or get_settings()

        self._users: TableCache[UserInfo] = TableCache("users", _by_full_name)
        self._locations: TableCache[LocationInfo] = TableCache("locations", _by_description)
        self._departments: TableCache[DepartmentInfo] = TableCache("departments", _by_description)
        self._agreement_types: TableCache[AgreementTypeInfo] = TableCache(
            "agreement_types", _by_description
        )
        self._activity_types: TableCache[ActivityTypeInfo] = TableCache(
            "activity_types", _by_description
        )
        self._schedules: TableCache[ScheduleInfo] = TableCache("schedules", _by_description)
        self._agreements: TableCache[AgreementInfo] = TableCache("agreements", _by_description)
        self._schedule_shifts: TableCache[ScheduleShiftInfo] = TableCache(
            "schedule_shifts", _by_description
        )

        self._user_index = UserSearchIndex()

    @property
    def _tables(self) -> Dict[str, TableCache]:
        return {
            table.name: table
            for table in (
                self._users,
                self._locations,
                self._departments,
                self._agreement_types,
                self._activity_types,
                self._schedules,
                self._agreements,
                self._schedule_shifts,
            )
        }

    def _require_fetcher(self) -> PageFetcher:
        if self.fetcher is None:
            raise NimbusConfigurationError(
                "LookupService has no page fetcher. Bind one with "
                "get_lookup_service(fetcher) before loading."
            )
        return self.fetcher

    # =========================================================================
    # Internal Load Machinery
    # =========================================================================

    @staticmethod
    def _parse_page(
        table: TableCache,
        model_cls: Type[ModelT],
        page: List[Record],
        generation: int,
    ) -> None:
        if table.generation != generation:
            # Table was cleared after this load started
            return

        parsed = []
        skipped = 0
        for record in page:
            if not record.get("Id"):
                continue
            try:
                parsed.append(model_cls.from_odata(record))
            except ValidationError as e:
                skipped += 1
                logger.warning(f"Skipping malformed {table.name} record {record.get('Id')!r}: {e}")
        table.put_many(parsed, key=_record_id)
        if skipped:
            logger.warning(f"Skipped {skipped} malformed {table.name} records in page")

    async def _load_full_table(
        self,
        table: TableCache,
        model_cls: Type[ModelT],
        session: NimbusSession,
        entity_set: str,
        *,
        select: Sequence[str],
        filter: Optional[str] = None,
        orderby: Optional[str] = None,
    ) -> bool:
        """
        Load-once sequence shared by all full-table lookups.

        Returns:
            True if a fetch was performed and installed, False on a cache hit
            or when clear_caches() ran while the fetch was in flight.
        """
        if table.is_loaded:
            logger.debug(f"{table.name} already loaded ({len(table)} records)")
            return False

        fetcher = self._require_fetcher()

        async with table.lock:
            # Another loader may have finished while we waited
            if table.is_loaded:
                return False

            generation = table.generation
            table.mark_loading()
            try:
                await fetch_all(
                    fetcher,
                    session,
                    entity_set,
                    filter=filter,
                    select=select,
                    orderby=orderby,
                    page_size=self._settings.page_size,
                    max_records=self._settings.lookup_max_records,
                    on_page=lambda page: self._parse_page(table, model_cls, page, generation),
                )
            except Exception:
                if table.generation == generation:
                    table.mark_failed()
                logger.error(f"Loading {table.name} failed; {len(table)} records kept")
                raise

            if table.generation != generation:
                logger.info(f"Discarded {table.name} load; cache was cleared while loading")
                return False

            table.mark_loaded()

        logger.info(f"Loaded {len(table)} {table.name} into cache")
        return True

    async def _load_by_ids(
        self,
        table: TableCache,
        model_cls: Type[ModelT],
        session: NimbusSession,
        entity_set: str,
        ids: Iterable[Optional[int]],
        is_cached: Callable[[int], bool],
        *,
        select: Sequence[str],
    ) -> int:
        """
        Fetch the ids the table does not already hold.

        Returns:
            Number of ids requested.
        """
        missing_ids = self._missing(ids, is_cached)
        if not missing_ids:
            return 0

        fetcher = self._require_fetcher()

        async with table.lock:
            # A concurrent loader may have fetched some while we waited
            still_missing = [i for i in missing_ids if not is_cached(i)]
            if not still_missing:
                return 0

            generation = table.generation
            await fetch_by_ids(
                fetcher,
                session,
                entity_set,
                still_missing,
                select=select,
                batch_size=self._settings.id_batch_size,
                on_page=lambda page: self._parse_page(table, model_cls, page, generation),
            )

            if table.generation != generation:
                logger.info(f"Discarded {table.name} load; cache was cleared while loading")
                return 0

            table.mark_loaded()

        logger.info(
            f"Requested {len(still_missing)} {table.name}; {len(table)} {table.name} in cache"
        )
        return len(still_missing)

    @staticmethod
    def _missing(ids: Iterable[Optional[int]], is_cached: Callable[[int], bool]) -> List[int]:
        seen = set()
        missing = []
        for record_id in ids:
            if not record_id or record_id <= 0 or record_id in seen:
                continue
            seen.add(record_id)
            if not is_cached(record_id):
                missing.append(record_id)
        return missing

    # =========================================================================
    # Full-Table Loads
    # =========================================================================

    async def load_users(self, session: NimbusSession) -> bool:
        """
        Load all non-deleted users and rebuild the user search index.

        Returns:
            True if a fetch was performed, False if already loaded.
        """
        fetched = await self._load_full_table(
            self._users,
            UserInfo,
            session,
            "User",
            select=USER_FIELDS,
            filter=not_deleted_filter(),
        )
        if fetched:
            self._user_index.build(self._users.values())
        return fetched

    async def load_locations(self, session: NimbusSession) -> bool:
        """Load all active locations."""
        return await self._load_full_table(
            self._locations,
            LocationInfo,
            session,
            "Location",
            select=DESCRIPTION_FIELDS,
            filter=active_filter(),
        )

    async def load_departments(self, session: NimbusSession) -> bool:
        """Load all active departments."""
        return await self._load_full_table(
            self._departments,
            DepartmentInfo,
            session,
            "Department",
            select=DESCRIPTION_FIELDS,
            filter=active_filter(),
        )

    async def load_agreement_types(self, session: NimbusSession) -> bool:
        """
        Load the shift/person agreements offered by the agreement type filter.

        Agreement ids differ per environment, so they are always loaded,
        never hard-coded.
        """
        return await self._load_full_table(
            self._agreement_types,
            AgreementTypeInfo,
            session,
            "Agreement",
            select=DESCRIPTION_FIELDS,
            filter=and_filters(active_filter(), f"AgreementType eq {SHIFT_AGREEMENT_TYPE}"),
            orderby="Description",
        )

    async def load_activity_types(self, session: NimbusSession) -> bool:
        """Load all activity types."""
        return await self._load_full_table(
            self._activity_types,
            ActivityTypeInfo,
            session,
            "ActivityType",
            select=DESCRIPTION_FIELDS,
        )

    # =========================================================================
    # Id-Scoped Loads
    # =========================================================================

    def _has_complete_schedule(self, schedule_id: int) -> bool:
        cached = self._schedules.get(schedule_id)
        return cached is not None and cached.has_location_field

    async def load_schedules(self, session: NimbusSession, schedule_ids: Iterable[int]) -> int:
        """
        Load the schedules referenced by the current report rows.

        An id is requested when it is not cached, or when its cached entry
        was built without the LocationID field.

        Args:
            session: Connected session handle.
            schedule_ids: Schedule ids collected from report rows.

        Returns:
            Number of ids requested from the server.
        """
        return await self._load_by_ids(
            self._schedules,
            ScheduleInfo,
            session,
            "Schedule",
            schedule_ids,
            self._has_complete_schedule,
            select=SCHEDULE_FIELDS,
        )

    async def load_agreements(self, session: NimbusSession, agreement_ids: Iterable[int]) -> int:
        """Load the agreements referenced by the current report rows."""
        return await self._load_by_ids(
            self._agreements,
            AgreementInfo,
            session,
            "Agreement",
            agreement_ids,
            self._agreements.__contains__,
            select=DESCRIPTION_FIELDS,
        )

    async def load_schedule_shifts(self, session: NimbusSession, shift_ids: Iterable[int]) -> int:
        """Load the schedule shifts referenced by the current report rows."""
        return await self._load_by_ids(
            self._schedule_shifts,
            ScheduleShiftInfo,
            session,
            "ScheduleShift",
            shift_ids,
            self._schedule_shifts.__contains__,
            select=SCHEDULE_SHIFT_FIELDS,
        )

    async def load_all_lookups(
        self,
        session: NimbusSession,
        schedule_ids: Sequence[int] = (),
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Load every lookup a report needs.

        The independent full-table loads run concurrently. When schedule ids
        are given the schedule table is cleared first so every entry is
        rebuilt with its location.
        """
        def progress(message: str) -> None:
            if on_progress is not None:
                on_progress(message)

        progress("Loading users, locations, departments and activity types...")
        await asyncio.gather(
            self.load_users(session),
            self.load_locations(session),
            self.load_departments(session),
            self.load_activity_types(session),
        )

        if schedule_ids:
            progress("Loading schedules...")
            self._schedules.clear()
            await self.load_schedules(session, schedule_ids)

        progress("Lookups loaded")

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: Optional[int]) -> Optional[UserInfo]:
        return self._users.get(user_id)

    def get_username(self, user_id: Optional[int]) -> str:
        user = self.get_user(user_id)
        if user and user.username:
            return user.username
        return f"User {user_id}" if user_id else "Unknown"

    def get_user_full_name(self, user_id: Optional[int]) -> str:
        user = self.get_user(user_id)
        if user and user.full_name:
            return user.full_name
        return f"User {user_id}" if user_id else "Unknown"

    def get_user_display_name(self, user_id: Optional[int]) -> str:
        """Display name such as "John Smith (jsmith)"."""
        user = self.get_user(user_id)
        if user is None:
            return f"User {user_id}" if user_id else "Unknown"
        return user.display_name

    def get_user_payroll(self, user_id: Optional[int]) -> str:
        user = self.get_user(user_id)
        return user.payroll if user else ""

    def get_all_users(self) -> List[UserInfo]:
        """All cached users sorted by full name (prefer search_users for type-ahead)."""
        return self._users.sorted_values()

    def search_users(self, query: str, limit: int = 20) -> List[UserInfo]:
        """Type-ahead search by payroll, username or name prefix."""
        return self._user_index.search(query, self._users.records, limit=limit)

    def is_user_search_index_ready(self) -> bool:
        return self._user_index.built

    # =========================================================================
    # Locations, Departments, Schedules
    # =========================================================================

    def get_location(self, location_id: Optional[int]) -> str:
        """Location description, or "Location {id}" when not cached."""
        if not location_id:
            return ""
        location = self._locations.get(location_id)
        return location.description if location else f"Location {location_id}"

    def get_location_info(self, location_id: Optional[int]) -> Optional[LocationInfo]:
        return self._locations.get(location_id)

    def get_all_locations(self) -> List[LocationInfo]:
        return self._locations.sorted_values()

    def get_department(self, department_id: Optional[int]) -> str:
        """Department description, or "Department {id}" when not cached."""
        if not department_id:
            return ""
        department = self._departments.get(department_id)
        return department.description if department else f"Department {department_id}"

    def get_all_departments(self) -> List[DepartmentInfo]:
        return self._departments.sorted_values()

    def get_schedule(self, schedule_id: Optional[int]) -> Optional[ScheduleInfo]:
        return self._schedules.get(schedule_id)

    def get_schedule_date_range(self, schedule_id: Optional[int]) -> str:
        schedule = self.get_schedule(schedule_id)
        return schedule.date_range if schedule else ""

    def get_location_id_via_schedule(self, schedule_id: Optional[int]) -> Optional[int]:
        """Schedule -> LocationID, or None when either link is missing."""
        schedule = self.get_schedule(schedule_id)
        return schedule.location_id if schedule else None

    def get_location_via_schedule(self, schedule_id: Optional[int]) -> str:
        """
        Resolve Schedule -> Location -> description.

        Returns an empty string when the schedule is not cached or has no
        location; an uncached location yields the "Location {id}" placeholder.
        """
        location_id = self.get_location_id_via_schedule(schedule_id)
        if not location_id:
            return ""
        return self.get_location(location_id)

    def get_schedule_shift(self, shift_id: Optional[int]) -> Optional[ScheduleShiftInfo]:
        return self._schedule_shifts.get(shift_id)

    # =========================================================================
    # Agreements and Activity Types
    # =========================================================================

    def get_agreement_type(self, agreement_id: Optional[int]) -> Optional[AgreementTypeInfo]:
        return self._agreement_types.get(agreement_id)

    def get_all_agreement_types(self) -> List[AgreementTypeInfo]:
        return self._agreement_types.sorted_values()

    def get_agreement(self, agreement_id: Optional[int]) -> Optional[AgreementInfo]:
        return self._agreements.get(agreement_id)

    def get_agreement_description(self, agreement_id: Optional[int]) -> str:
        if not agreement_id:
            return ""
        agreement = self._agreements.get(agreement_id)
        return agreement.description if agreement else f"Agreement {agreement_id}"

    def get_activity_type(self, activity_type_id: Optional[int]) -> Optional[ActivityTypeInfo]:
        return self._activity_types.get(activity_type_id)

    def get_activity_type_description(self, activity_type_id: Optional[int]) -> str:
        if not activity_type_id:
            return ""
        activity_type = self._activity_types.get(activity_type_id)
        if activity_type and activity_type.description:
            return activity_type.description
        return f"Activity {activity_type_id}"

    def is_activity_type_tt(self, activity_type_id: Optional[int]) -> bool:
        activity_type = self._activity_types.get(activity_type_id)
        return activity_type.is_tt if activity_type else False

    # =========================================================================
    # Cache Management
    # =========================================================================

    def get_state(self, table_name: str) -> CacheState:
        """Load state of a table by name (e.g. "users")."""
        try:
            return self._tables[table_name].state
        except KeyError:
            raise ValueError(
                f"Unknown lookup table '{table_name}'. Available: {sorted(self._tables)}"
            ) from None

    def is_loaded(self, table_name: str) -> bool:
        return self.get_state(table_name) is CacheState.LOADED

    def clear_caches(self) -> None:
        """
        Drop every cached record and reset load states.

        Must be called before switching to another connection.
        Loads still in flight from before the clear discard their results.
        """
        for table in self._tables.values():
            table.clear()
        self._user_index.clear()
        logger.info("Lookup caches cleared")


# =============================================================================
# Singleton Access
# =============================================================================


_lookup_service: Optional[LookupService] = None


def get_lookup_service(fetcher: Optional[PageFetcher] = None) -> LookupService:
    """
    Get the process-wide LookupService.

    Args:
        fetcher: When given, becomes the service's page fetcher (used when a
            new connection is established).
    """
    global _lookup_service
    if _lookup_service is None:
        _lookup_service = LookupService(fetcher=fetcher)
    elif fetcher is not None:
        _lookup_service.fetcher = fetcher
    return _lookup_service


def reset_lookup_service() -> None:
    """Reset the singleton (for testing)."""
    global _lookup_service
    _lookup_service = None
