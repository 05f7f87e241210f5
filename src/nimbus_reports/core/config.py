"""
Nimbus Reports Configuration.

Settings for the OData transport and the in-memory reference caches.
All variables use the NIMBUS_ prefix and may be supplied through a .env file.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NimbusSettings(BaseSettings):
    """
    Nimbus Reports settings loaded from environment variables.

    Connection credentials are NOT configured here: they arrive on the
    session handle supplied by the connection layer.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="NIMBUS_",
        case_sensitive=False,
        extra="ignore",
    )

    # OData transport
    odata_path: Annotated[
        str,
        Field(
            description="Path of the OData service root relative to the session base URL",
        ),
    ] = "/CoreAPI/Odata"

    request_timeout_seconds: Annotated[
        float,
        Field(description="HTTP timeout for OData requests"),
    ] = 30.0

    max_connections: Annotated[
        int,
        Field(description="Connection pool size of the HTTP client"),
    ] = 20

    # Paging
    page_size: Annotated[
        int,
        Field(description="Records requested per page ($top)"),
    ] = 500

    lookup_max_records: Annotated[
        int,
        Field(
            description="Hard cap on records fetched by a single lookup table load",
        ),
    ] = 100_000

    id_batch_size: Annotated[
        int,
        Field(
            description="Ids per OR-predicate batch when loading records by id",
        ),
    ] = 50

    # Caching
    hierarchy_ttl_hours: Annotated[
        float,
        Field(description="Time-to-live of the location group hierarchy"),
    ] = 24.0

    # Logging
    log_level: Annotated[
        str,
        Field(description="Root log level"),
    ] = "INFO"

    log_dir: Annotated[
        str,
        Field(description="Directory for rotating log files"),
    ] = "logs"

    @field_validator("odata_path")
    @classmethod
    def validate_odata_path(cls, v: str) -> str:
        """Ensure odata_path starts with / and has no trailing slash."""
        v = v.strip().rstrip("/")
        if not v.startswith("/"):
            return f"/{v}"
        return v

    @field_validator(
        "request_timeout_seconds",
        "max_connections",
        "page_size",
        "lookup_max_records",
        "id_batch_size",
        "hierarchy_ttl_hours",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Sizes, limits and durations must be positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    @property
    def hierarchy_ttl_seconds(self) -> float:
        """Hierarchy TTL expressed in seconds."""
        return self.hierarchy_ttl_hours * 3600


@lru_cache
def get_settings() -> NimbusSettings:
    """
    Get cached Nimbus settings.

    Uses LRU cache to ensure settings are loaded only once.

    Returns:
        NimbusSettings: Settings instance.
    """
    return NimbusSettings()
