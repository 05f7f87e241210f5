"""
HTTP Client Lifecycle Management.

Provides a lifecycle-managed httpx.AsyncClient for the OData transport.
The client is bound to the scope that creates it and handed to
ODataService by explicit injection; nothing here is global.

Usage:
    # Long-lived (one per connected session):
    manager = HttpClientManager()
    client = await manager.start()
    ...
    await manager.stop()

    # Scoped:
    async with create_standalone_http_client() as client:
        odata = ODataService(http_client=client)
        await lookups.load_locations(session)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx

from nimbus_reports.core.config import NimbusSettings, get_settings

logger = logging.getLogger(__name__)

USER_AGENT = "NimbusReports/1.0 (Python; httpx)"


def _build_limits(max_connections: int) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max(1, max_connections // 2),
        keepalive_expiry=30.0,
    )


class HttpClientManager:
    """
    Manages the lifecycle of httpx.AsyncClient.

    This class provides a clean interface for creating and closing
    HTTP clients, ensuring proper resource cleanup.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_connections: Optional[int] = None,
        settings: Optional[NimbusSettings] = None,
    ) -> None:
        """
        Initialize the HTTP client manager.

        Args:
            timeout: Default timeout for requests in seconds.
            max_connections: Maximum number of concurrent connections.
            settings: Settings used for values not given explicitly.
        """
        settings = settings or get_settings()
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._limits = _build_limits(
            max_connections if max_connections is not None else settings.max_connections
        )
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> httpx.AsyncClient:
        """
        Create and start the HTTP client.

        Returns:
            The initialized httpx.AsyncClient.

        Raises:
            RuntimeError: If client is already started.
        """
        if self._client is not None:
            raise RuntimeError("HTTP client already started")

        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            limits=self._limits,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        logger.info(
            f"HTTP client started (timeout={self._timeout}s, "
            f"max_connections={self._limits.max_connections})"
        )
        return self._client

    async def stop(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP client closed")

    @property
    def client(self) -> httpx.AsyncClient:
        """
        Get the managed HTTP client.

        Raises:
            RuntimeError: If client is not started.
        """
        if self._client is None:
            raise RuntimeError("HTTP client not started. Call start() first.")
        return self._client

    @property
    def is_running(self) -> bool:
        """Check if the HTTP client is running."""
        return self._client is not None and not self._client.is_closed


@asynccontextmanager
async def create_standalone_http_client(
    timeout: Optional[float] = None,
    max_connections: Optional[int] = None,
    settings: Optional[NimbusSettings] = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an HTTP client whose lifetime is bound to the context manager scope.

    Args:
        timeout: Request timeout in seconds.
        max_connections: Maximum concurrent connections.
        settings: Settings used for values not given explicitly.

    Yields:
        httpx.AsyncClient instance bound to the caller's event loop.
    """
    manager = HttpClientManager(
        timeout=timeout,
        max_connections=max_connections,
        settings=settings,
    )
    client = await manager.start()
    try:
        yield client
    finally:
        await manager.stop()
