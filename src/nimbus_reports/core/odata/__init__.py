"""
Nimbus OData transport layer.

Components:
    - PageFetcher: Protocol for the fetch-one-page primitive
    - ODataService: httpx implementation of PageFetcher
    - fetch_all / fetch_by_ids: Paging and id-batching helpers
    - Query helpers for $filter expressions
"""

from nimbus_reports.core.odata.exceptions import (
    NimbusConfigurationError,
    NimbusConnectionError,
    NimbusError,
)
from nimbus_reports.core.odata.query import (
    active_filter,
    and_filters,
    chunked,
    id_in_filter,
    not_deleted_filter,
)
from nimbus_reports.core.odata.service import ODataService, PageFetcher, Record
from nimbus_reports.core.odata.paging import fetch_all, fetch_by_ids

__all__ = [
    # Exceptions
    "NimbusError",
    "NimbusConfigurationError",
    "NimbusConnectionError",
    # Transport
    "PageFetcher",
    "ODataService",
    "Record",
    # Paging
    "fetch_all",
    "fetch_by_ids",
    # Query helpers
    "active_filter",
    "and_filters",
    "chunked",
    "id_in_filter",
    "not_deleted_filter",
]
