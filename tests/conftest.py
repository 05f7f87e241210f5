"""
Pytest Configuration and Shared Fixtures.

Provides common test fixtures for the cache and transport unit tests.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from nimbus_reports.core.config import NimbusSettings, get_settings
from nimbus_reports.core.odata.exceptions import NimbusConnectionError
from nimbus_reports.core.session import NimbusSession

_ID_PREDICATE = re.compile(r"^(\w+) eq (\d+)$")


# =============================================================================
# Fake Page Fetcher
# =============================================================================


@dataclass
class FetchCall:
    """One recorded fetch_page() call."""

    entity_set: str
    filter: Optional[str]
    select: Optional[Sequence[str]]
    orderby: Optional[str]
    top: Optional[int]
    skip: Optional[int]


class FakePageFetcher:
    """
    In-memory PageFetcher serving fixed tables.

    Honours $top/$skip and OR-predicate id filters ("Id eq 1 or Id eq 2").
    Other filters are recorded but not applied.
    """

    def __init__(self, tables: Optional[Dict[str, List[dict]]] = None) -> None:
        self.tables: Dict[str, List[dict]] = tables or {}
        self.calls: List[FetchCall] = []
        # entity set -> 1-based call number that raises
        self.fail_on_call: Dict[str, int] = {}
        # When set, responses are held until the event is set
        self.gate: Optional[asyncio.Event] = None

    def calls_for(self, entity_set: str) -> List[FetchCall]:
        return [c for c in self.calls if c.entity_set == entity_set]

    @staticmethod
    def _parse_id_filter(filter: Optional[str]):
        if not filter:
            return None
        field = None
        ids = set()
        for term in filter.split(" or "):
            match = _ID_PREDICATE.match(term.strip())
            if match is None:
                return None
            field = match.group(1)
            ids.add(int(match.group(2)))
        return field, ids

    async def fetch_page(
        self,
        session: NimbusSession,
        entity_set: str,
        *,
        filter: Optional[str] = None,
        select: Optional[Sequence[str]] = None,
        orderby: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[dict]:
        self.calls.append(FetchCall(entity_set, filter, select, orderby, top, skip))
        # Yield like a real network call so concurrent loaders interleave
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()

        if self.fail_on_call.get(entity_set) == len(self.calls_for(entity_set)):
            raise NimbusConnectionError(f"{entity_set} unavailable", entity_set=entity_set)

        records = list(self.tables.get(entity_set, []))

        id_filter = self._parse_id_filter(filter)
        if id_filter is not None:
            field, ids = id_filter
            records = [r for r in records if r.get(field) in ids]

        start = skip or 0
        end = start + top if top is not None else None
        return records[start:end]


# =============================================================================
# Session and Settings Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset process-wide singletons and cached settings around each test."""
    from nimbus_reports.modules.location_groups import reset_location_group_service
    from nimbus_reports.modules.lookups import reset_lookup_service

    get_settings.cache_clear()
    reset_lookup_service()
    reset_location_group_service()
    yield
    get_settings.cache_clear()
    reset_lookup_service()
    reset_location_group_service()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    env_vars = {
        "NIMBUS_ODATA_PATH": "/CoreAPI/Odata",
        "NIMBUS_REQUEST_TIMEOUT_SECONDS": "15",
        "NIMBUS_PAGE_SIZE": "250",
        "NIMBUS_ID_BATCH_SIZE": "25",
        "NIMBUS_HIERARCHY_TTL_HOURS": "12",
        "NIMBUS_LOG_LEVEL": "debug",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


@pytest.fixture
def settings() -> NimbusSettings:
    """Default settings, isolated from any local .env file."""
    return NimbusSettings(_env_file=None)


@pytest.fixture
def session() -> NimbusSession:
    """Connected session handle for a test environment."""
    return NimbusSession(
        base_url="https://nimbus.test.example.com/",
        user_id=42,
        auth_token="test-auth-token-abc123",
    )


@pytest.fixture
def fake_fetcher_factory() -> Callable[..., FakePageFetcher]:
    """Factory for FakePageFetcher instances serving the given tables."""
    def _create(**tables: List[dict]) -> FakePageFetcher:
        return FakePageFetcher(dict(tables))

    return _create


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
def mock_httpx_response_factory() -> Callable[..., MagicMock]:
    """
    Factory fixture for creating mock httpx responses.

    Returns a callable that creates mock responses with customizable properties.
    """
    def _create_response(
        status_code: int = 200,
        text: str = "",
        raise_for_status_error: Exception | None = None,
    ) -> MagicMock:
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.text = text

        if raise_for_status_error:
            mock_response.raise_for_status.side_effect = raise_for_status_error
        else:
            mock_response.raise_for_status = MagicMock()

        return mock_response

    return _create_response


@pytest.fixture
def mock_httpx_client_factory() -> Callable[..., MagicMock]:
    """
    Factory for creating mock async httpx clients with pre-configured responses.
    """
    def _create_client(
        get_response: Any = None,
        get_side_effect: Exception | None = None,
    ) -> MagicMock:
        mock_client = MagicMock()
        mock_client.get = AsyncMock(return_value=get_response, side_effect=get_side_effect)
        mock_client.aclose = AsyncMock()
        return mock_client

    return _create_client
