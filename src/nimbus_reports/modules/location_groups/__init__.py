"""
Location group hierarchy.

Resolves a location group selection to the full set of member locations,
following nested groups and tolerating cycles in the source data.
"""

from nimbus_reports.modules.location_groups.hierarchy import (
    LocationGroupHierarchy,
    get_all_descendant_group_ids,
    get_root_group_ids,
    resolve_locations_for_group,
    resolve_locations_for_groups,
)
from nimbus_reports.modules.location_groups.models import (
    GroupNode,
    HierarchyState,
    LocationGroupInfo,
)
from nimbus_reports.modules.location_groups.service import (
    LocationGroupService,
    get_location_group_service,
    reset_location_group_service,
)

__all__ = [
    "GroupNode",
    "HierarchyState",
    "LocationGroupInfo",
    "LocationGroupHierarchy",
    "resolve_locations_for_group",
    "resolve_locations_for_groups",
    "get_all_descendant_group_ids",
    "get_root_group_ids",
    "LocationGroupService",
    "get_location_group_service",
    "reset_location_group_service",
]
