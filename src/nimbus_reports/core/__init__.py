"""Core module - settings, logging, HTTP lifecycle and OData transport."""
from nimbus_reports.core.config import NimbusSettings, get_settings
from nimbus_reports.core.logging_config import setup_logging
from nimbus_reports.core.http_client import HttpClientManager, create_standalone_http_client
from nimbus_reports.core.odata import (
    NimbusConfigurationError,
    NimbusConnectionError,
    NimbusError,
    ODataService,
    PageFetcher,
)
from nimbus_reports.core.session import NimbusSession

__all__ = [
    "NimbusSettings", "get_settings",
    "setup_logging",
    "HttpClientManager", "create_standalone_http_client",
    "NimbusError", "NimbusConfigurationError", "NimbusConnectionError",
    "ODataService", "PageFetcher",
    "NimbusSession",
]
