"""
Location group data structures.

A location group may directly contain locations and other groups. Nesting is
a DAG in intent but cycles occur in real data, so nothing here assumes
acyclicity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Set

from pydantic import BaseModel, ConfigDict, field_validator

# Description Nimbus shows for groups with no real name
PLACEHOLDER_DESCRIPTION = "-"


class HierarchyState(str, Enum):
    """Load state of the location group hierarchy."""

    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"

    def __str__(self) -> str:
        return self.value


@dataclass
class GroupNode:
    """
    One location group in the in-memory graph.

    child_group_ids and direct_location_ids hold direct members only. The
    effective location set is computed on demand by traversal.
    """

    id: int
    description: str
    org_code: Optional[str] = None
    child_group_ids: Set[int] = field(default_factory=set)
    direct_location_ids: Set[int] = field(default_factory=set)

    def to_info(self) -> "LocationGroupInfo":
        return LocationGroupInfo(id=self.id, description=self.description, org_code=self.org_code)


class LocationGroupInfo(BaseModel):
    """Public view of a location group for dropdowns and search results."""

    model_config = ConfigDict(frozen=True)

    id: int
    description: str
    org_code: Optional[str] = None

    @field_validator("org_code", mode="before")
    @classmethod
    def parse_org_code(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def is_placeholder(self) -> bool:
        """True for the "-" sentinel group, which should not be offered to users."""
        return self.description.strip() == PLACEHOLDER_DESCRIPTION
