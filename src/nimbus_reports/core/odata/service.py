"""
Nimbus OData HTTP Service.

Low-level HTTP client for the Nimbus CoreAPI OData endpoints. Exposes a single
primitive, fetch_page(), which the paging helpers and the caches build on.

Design Principles:
    ODataService requires httpx.AsyncClient via EXPLICIT dependency injection.
    The HTTP client lifecycle is managed by the caller.

    Usage:
        from nimbus_reports.core.http_client import create_standalone_http_client

        async with create_standalone_http_client() as http_client:
            odata = ODataService(http_client=http_client)
            rows = await odata.fetch_page(session, "Location", top=10)

Error Policy:
    - Network errors and non-success status codes raise NimbusConnectionError.
    - A body that is not valid OData JSON is logged and treated as an empty page.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from nimbus_reports.core.config import NimbusSettings, get_settings
from nimbus_reports.core.odata.exceptions import NimbusConnectionError

if TYPE_CHECKING:
    from nimbus_reports.core.session import NimbusSession

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


# =============================================================================
# Protocol Definitions (for Type Safety and Testability)
# =============================================================================


@runtime_checkable
class PageFetcher(Protocol):
    """
    Protocol for the "fetch one page of records" primitive.

    The caches depend on this protocol only, which allows replacing the
    HTTP transport with an in-memory fake in tests.
    """

    async def fetch_page(
        self,
        session: "NimbusSession",
        entity_set: str,
        *,
        filter: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
        orderby: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Record]: ...


# =============================================================================
# HTTP Implementation
# =============================================================================


class ODataService:
    """
    Nimbus CoreAPI OData client.

    Args:
        http_client: Shared httpx.AsyncClient (required).
        settings: Settings providing the OData path and timeout.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Optional[NimbusSettings] = None,
    ) -> None:
        if http_client is None:
            raise ValueError(
                "http_client is required. Use HttpClientManager or "
                "create_standalone_http_client() to obtain one."
            )

        self._client = http_client
        self._settings = settings or get_settings()

    def _build_url(self, session: "NimbusSession", entity_set: str) -> str:
        """Build API URL for an entity set."""
        return f"{session.odata_base(self._settings.odata_path)}/{entity_set.lstrip('/')}"

    @staticmethod
    def _build_params(
        filter: Optional[str],
        select: Optional[Sequence[str]],
        orderby: Optional[str],
        top: Optional[int],
        skip: Optional[int],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if filter:
            params["$filter"] = filter
        if select:
            params["$select"] = ",".join(select)
        if orderby:
            params["$orderby"] = orderby
        if top is not None:
            params["$top"] = top
        if skip:
            params["$skip"] = skip
        return params

    @staticmethod
    def parse_records(body: str, entity_set: str) -> List[Record]:
        """
        Extract the record list from an OData response body.

        Accepts both a bare JSON array and the {"value": [...]} envelope.
        Anything else is logged and yields an empty list.

        Paging is driven by $top/$skip. A server that caps pages below the
        requested $top answers with @odata.nextLink, which is logged because
        the short page will end the paged read early.
        """
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to parse OData response for {entity_set}: {e}")
            return []

        if isinstance(data, list):
            records = data
        elif isinstance(data, dict):
            records = data.get("value") or []
            if data.get("@odata.nextLink"):
                logger.warning(
                    f"Server paged {entity_set} below the requested page size; "
                    "lower NIMBUS_PAGE_SIZE or results will be truncated"
                )
        else:
            records = []

        if not isinstance(records, list):
            logger.error(f"Unexpected OData payload shape for {entity_set}")
            return []

        return [r for r in records if isinstance(r, dict)]

    async def fetch_page(
        self,
        session: "NimbusSession",
        entity_set: str,
        *,
        filter: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
        orderby: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Record]:
        """
        Fetch one page of records from an entity set.

        Args:
            session: Connected session handle.
            entity_set: OData entity set name (e.g., "LocationGroup").
            filter: Optional $filter expression.
            select: Optional field names for $select.
            orderby: Optional $orderby expression.
            top: Optional page size.
            skip: Optional offset.

        Returns:
            List of record dictionaries (possibly empty).

        Raises:
            NimbusConnectionError: On network failure or non-success status.
        """
        url = self._build_url(session, entity_set)
        params = self._build_params(filter, select, orderby, top, skip)

        logger.debug(f"[OData] GET {entity_set} params={params}")

        try:
            response = await self._client.get(
                url,
                params=params,
                headers=session.headers(),
                timeout=self._settings.request_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Nimbus OData error for {entity_set}: HTTP {status_code}")
            raise NimbusConnectionError(
                f"Nimbus returned HTTP {status_code} for {entity_set}",
                entity_set=entity_set,
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch {entity_set} from Nimbus: {e}")
            raise NimbusConnectionError(
                f"Request for {entity_set} failed: {e}",
                entity_set=entity_set,
            ) from e

        records = self.parse_records(response.text, entity_set)
        logger.debug(f"[OData] {entity_set}: {len(records)} records")
        return records
