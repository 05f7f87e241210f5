"""
User search index.

Supports type-ahead over tens of thousands of users: name tokens for prefix
matching, payroll and username for exact matching.
"""

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Set

from nimbus_reports.modules.lookups.models import UserInfo

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MIN_TOKEN_LENGTH = 2

_WHITESPACE = re.compile(r"\s+")


class UserSearchIndex:
    """Token and exact-match indexes over cached users."""

    def __init__(self) -> None:
        self.by_name_token: Dict[str, Set[int]] = {}
        self.by_payroll: Dict[str, int] = {}
        self.by_username: Dict[str, int] = {}
        self.built = False

    def clear(self) -> None:
        self.by_name_token.clear()
        self.by_payroll.clear()
        self.by_username.clear()
        self.built = False

    def build(self, users: Iterable[UserInfo]) -> None:
        """Rebuild all indexes from the given users."""
        self.clear()

        for user in users:
            tokens = _WHITESPACE.split(f"{user.forename} {user.surname}".lower())
            for token in tokens:
                if len(token) >= MIN_TOKEN_LENGTH:
                    self.by_name_token.setdefault(token, set()).add(user.id)

            if user.payroll:
                self.by_payroll[user.payroll.lower()] = user.id
            if user.username:
                self.by_username[user.username.lower()] = user.id

        self.built = True
        logger.info(
            f"User search index built: {len(self.by_name_token)} name tokens, "
            f"{len(self.by_payroll)} payrolls"
        )

    def search(self, query: str, users: Mapping[int, UserInfo], limit: int = 20) -> List[UserInfo]:
        """
        Search users by payroll, username or name prefix.

        Priority: exact payroll, exact username, name-token prefix, then
        partial username. The result is sorted by full name.

        Args:
            query: Search text (at least two characters).
            users: Cached users keyed by id.
            limit: Maximum number of results.
        """
        if not self.built or not query:
            return []
        lower_query = query.strip().lower()
        if len(lower_query) < MIN_QUERY_LENGTH or limit <= 0:
            return []

        results: Dict[int, UserInfo] = {}

        def add(user_id: Optional[int]) -> None:
            if user_id is None or user_id in results or len(results) >= limit:
                return
            user = users.get(user_id)
            if user is not None:
                results[user_id] = user

        # 1. Exact payroll match
        add(self.by_payroll.get(lower_query))

        # 2. Exact username match
        add(self.by_username.get(lower_query))

        # 3. Prefix match on name tokens
        if len(results) < limit:
            matching: Set[int] = set()
            for token, ids in self.by_name_token.items():
                if token.startswith(lower_query):
                    matching.update(i for i in ids if i in users)
            # Stable order so the limit cuts the same users every time
            for user_id in sorted(matching, key=lambda i: (users[i].full_name.lower(), i)):
                add(user_id)

        # 4. Partial username match
        if len(results) < limit:
            for username, user_id in self.by_username.items():
                if lower_query in username:
                    add(user_id)

        return sorted(results.values(), key=lambda u: (u.full_name.lower(), u.id))
