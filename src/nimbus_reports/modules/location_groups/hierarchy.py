"""
Location group hierarchy and traversal.

LocationGroupHierarchy owns the group graph; the module-level functions are
pure queries over it. Every traversal is iterative with an explicit visited
set, so cyclic nesting terminates and deep chains never touch the recursion
limit.
"""

from typing import Any, Dict, Iterable, List, Optional, Set

from nimbus_reports.modules.location_groups.models import GroupNode


class LocationGroupHierarchy:
    """
    Group graph keyed by group id.

    Relations referencing an unknown parent group are dropped, since they
    reflect backend data quality the client cannot fix.
    """

    def __init__(self) -> None:
        self.nodes_by_id: Dict[int, GroupNode] = {}

    def __len__(self) -> int:
        return len(self.nodes_by_id)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self.nodes_by_id

    def get(self, group_id: Optional[int]) -> Optional[GroupNode]:
        if group_id is None:
            return None
        return self.nodes_by_id.get(group_id)

    def add_group(
        self,
        group_id: int,
        description: Optional[str] = None,
        org_code: Any = None,
    ) -> GroupNode:
        """
        Create (or replace) a group node with empty member sets.

        Org codes arrive as strings or numbers and are stored as stripped
        strings, blank ones as None.
        """
        description = ("" if description is None else str(description)).strip() or f"Group {group_id}"
        if org_code is not None:
            org_code = str(org_code).strip() or None
        node = GroupNode(id=group_id, description=description, org_code=org_code)
        self.nodes_by_id[group_id] = node
        return node

    def assign_location(self, group_id: int, location_id: int) -> bool:
        """
        Add a location directly to a group.

        Returns:
            False if the group is unknown or the location id is empty.
        """
        node = self.nodes_by_id.get(group_id)
        if node is None or not location_id:
            return False
        node.direct_location_ids.add(location_id)
        return True

    def nest_group(self, parent_id: int, child_id: int) -> bool:
        """
        Nest child_id under parent_id.

        The child does not have to be a known group; an unknown child simply
        contributes no locations.

        Returns:
            False if the parent is unknown or the child id is empty.
        """
        node = self.nodes_by_id.get(parent_id)
        if node is None or not child_id:
            return False
        node.child_group_ids.add(child_id)
        return True


def resolve_locations_for_group(hierarchy: LocationGroupHierarchy, group_id: int) -> Set[int]:
    """
    All location ids reachable from a group through zero or more nestings.

    Args:
        hierarchy: Loaded group graph.
        group_id: Starting group. Unknown ids resolve to an empty set.

    Returns:
        Direct locations of the group and of every descendant group.
    """
    locations: Set[int] = set()
    visited: Set[int] = set()
    stack = [group_id]

    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)

        node = hierarchy.nodes_by_id.get(current)
        if node is None:
            continue

        locations.update(node.direct_location_ids)
        stack.extend(child for child in node.child_group_ids if child not in visited)

    return locations


def resolve_locations_for_groups(
    hierarchy: LocationGroupHierarchy,
    group_ids: Iterable[int],
) -> Set[int]:
    """Union of the resolved locations of several groups."""
    locations: Set[int] = set()
    for group_id in group_ids:
        locations.update(resolve_locations_for_group(hierarchy, group_id))
    return locations


def get_all_descendant_group_ids(hierarchy: LocationGroupHierarchy, group_id: int) -> Set[int]:
    """
    Every group nested under a group at any depth.

    The starting group is never included, even when a cycle leads back to it.
    """
    descendants: Set[int] = set()
    visited = {group_id}
    stack = [group_id]

    while stack:
        node = hierarchy.nodes_by_id.get(stack.pop())
        if node is None:
            continue
        for child in node.child_group_ids:
            if child != group_id:
                descendants.add(child)
            if child not in visited:
                visited.add(child)
                stack.append(child)

    return descendants


def get_root_group_ids(hierarchy: LocationGroupHierarchy) -> List[int]:
    """
    Groups not nested under any other group, ordered by description.

    A group that only nests itself still counts as nested.
    """
    nested: Set[int] = set()
    for node in hierarchy.nodes_by_id.values():
        nested.update(node.child_group_ids)

    roots = [node for node in hierarchy.nodes_by_id.values() if node.id not in nested]
    roots.sort(key=lambda node: (node.description.casefold(), node.id))
    return [node.id for node in roots]
