"""
Reference lookup caches.

Flat reference tables (users, locations, departments, schedules, agreements,
activity types) cached per connected session for display-name enrichment.
"""

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
from nimbus_reports.modules.lookups.service import (
    LookupService,
    get_lookup_service,
    reset_lookup_service,
)

__all__ = [
    "CacheState",
    "TableCache",
    "UserSearchIndex",
    "LookupService",
    "get_lookup_service",
    "reset_lookup_service",
    # Records
    "ActivityTypeInfo",
    "AgreementInfo",
    "AgreementTypeInfo",
    "DepartmentInfo",
    "LocationInfo",
    "ScheduleInfo",
    "ScheduleShiftInfo",
    "UserInfo",
]
