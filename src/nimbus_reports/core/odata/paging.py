"""
Paginated and id-batched fetch helpers.

Both helpers are written against the PageFetcher protocol so every cache
shares one paging loop and one OR-predicate batching routine.
"""

import logging
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence

from nimbus_reports.core.odata.query import chunked, id_in_filter
from nimbus_reports.core.odata.service import PageFetcher, Record

if TYPE_CHECKING:
    from nimbus_reports.core.session import NimbusSession

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
DEFAULT_ID_BATCH_SIZE = 50

PageCallback = Callable[[List[Record]], None]


async def fetch_all(
    fetcher: PageFetcher,
    session: "NimbusSession",
    entity_set: str,
    *,
    filter: Optional[str] = None,
    select: Optional[Sequence[str]] = None,
    orderby: Optional[str] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_records: Optional[int] = None,
    on_page: Optional[PageCallback] = None,
) -> List[Record]:
    """
    Fetch every record of an entity set using $top/$skip paging.

    Paging stops at the first page shorter than page_size. When max_records
    is given, paging also stops once that many records have been collected
    and the result is truncated to it.

    Args:
        fetcher: Page fetch primitive.
        session: Connected session handle.
        entity_set: OData entity set name.
        filter: Optional $filter expression.
        select: Optional field names for $select.
        orderby: Optional $orderby expression.
        page_size: Records per request.
        max_records: Optional hard cap on the total.
        on_page: Optional callback receiving each page as it arrives
            (already truncated to the cap).

    Returns:
        All fetched records.
    """
    if page_size <= 0:
        raise ValueError("page_size must be greater than zero")

    records: List[Record] = []
    page_count = 0

    while True:
        page = await fetcher.fetch_page(
            session,
            entity_set,
            filter=filter,
            select=select,
            orderby=orderby,
            top=page_size,
            skip=len(records),
        )
        page_count += 1
        full_page = len(page) >= page_size

        capped = max_records is not None and len(records) + len(page) >= max_records
        if capped:
            if len(records) + len(page) > max_records or full_page:
                logger.warning(
                    f"{entity_set}: stopped at the {max_records} record cap "
                    f"after {page_count} pages"
                )
            page = page[:max_records - len(records)]

        records.extend(page)
        if on_page is not None and page:
            on_page(page)

        if capped or not full_page:
            break

    logger.debug(f"Fetched {len(records)} {entity_set} records in {page_count} pages")
    return records


def _unique_positive_ids(ids: Iterable[int]) -> List[int]:
    seen = set()
    result = []
    for record_id in ids:
        if not record_id or record_id <= 0 or record_id in seen:
            continue
        seen.add(record_id)
        result.append(record_id)
    return result


async def fetch_by_ids(
    fetcher: PageFetcher,
    session: "NimbusSession",
    entity_set: str,
    ids: Iterable[int],
    *,
    select: Optional[Sequence[str]] = None,
    batch_size: int = DEFAULT_ID_BATCH_SIZE,
    id_field: str = "Id",
    on_page: Optional[PageCallback] = None,
) -> List[Record]:
    """
    Fetch records by id, batching ids into OR-predicates.

    Batching keeps request URLs under server length limits. Duplicate and
    non-positive ids are dropped before batching.

    Args:
        fetcher: Page fetch primitive.
        session: Connected session handle.
        entity_set: OData entity set name.
        ids: Ids to fetch.
        select: Optional field names for $select.
        batch_size: Ids per request.
        id_field: Key field used in the predicate.
        on_page: Optional callback receiving each batch's records.

    Returns:
        Records returned for all batches.
    """
    wanted = _unique_positive_ids(ids)
    if not wanted:
        return []

    records: List[Record] = []
    for batch in chunked(wanted, batch_size):
        page = await fetcher.fetch_page(
            session,
            entity_set,
            filter=id_in_filter(batch, field=id_field),
            select=select,
        )
        records.extend(page)
        if on_page is not None and page:
            on_page(page)

    logger.debug(f"Fetched {len(records)} of {len(wanted)} requested {entity_set} records")
    return records
