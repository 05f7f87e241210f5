"""
Nimbus Session Handle.

The connection layer authenticates and hands the caches a NimbusSession.
The caches never look inside it; only the OData transport reads the base
URL and builds request headers from it.
"""

from dataclasses import dataclass, field
from typing import Dict

from nimbus_reports.core.odata.exceptions import NimbusConfigurationError


@dataclass(frozen=True)
class NimbusSession:
    """
    Credentials of one connected Nimbus environment.

    Attributes:
        base_url: Root URL of the Nimbus server (e.g. "https://nimbus.example.com").
        user_id: Authenticated Nimbus user id (sent as the UserID header).
        auth_token: Authentication token returned by the authenticate call.
    """

    base_url: str
    user_id: int
    auth_token: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.base_url or not self.base_url.strip():
            raise NimbusConfigurationError("Session base_url must not be empty")

    def odata_base(self, odata_path: str) -> str:
        """Build the OData service root for this session."""
        return f"{self.base_url.strip().rstrip('/')}{odata_path}"

    def headers(self) -> Dict[str, str]:
        """
        Build request headers.

        Nimbus answers in XML unless JSON is requested, and expects the token
        both as a bearer Authorization header and as AuthenticationToken.
        """
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "UserID": str(self.user_id),
            "Authorization": f"Bearer {self.auth_token}",
            "AuthenticationToken": self.auth_token,
        }
