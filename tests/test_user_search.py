"""
Unit Tests for nimbus_reports.modules.lookups.search.

Tests UserSearchIndex matching priority, ordering and limits.
"""

import pytest

from nimbus_reports.modules.lookups.models import UserInfo
from nimbus_reports.modules.lookups.search import UserSearchIndex


def _user(user_id, username, forename, surname, payroll=""):
    return UserInfo.from_odata({
        "Id": user_id,
        "Username": username,
        "Forename": forename,
        "Surname": surname,
        "Payroll": payroll,
    })


@pytest.fixture
def users():
    """Cached users keyed by id."""
    people = [
        _user(1, "jsmith", "John", "Smith", "100200"),
        _user(2, "jsmithers", "Jane", "Smithers", "100201"),
        _user(3, "asmith", "Adam", "Smith", "300400"),
        _user(4, "mjones", "Mary", "Jones", "smi99"),
        _user(5, "xsmi", "Xavier", "Brown"),
    ]
    return {u.id: u for u in people}


@pytest.fixture
def index(users):
    """Index built over the users fixture."""
    search_index = UserSearchIndex()
    search_index.build(users.values())
    return search_index


class TestUserSearchIndex:
    """Tests for UserSearchIndex."""

    def test_not_built_returns_empty(self, users):
        """Test searching before build() finds nothing."""
        assert UserSearchIndex().search("smith", users) == []

    @pytest.mark.parametrize("query", ["", "s", " j "])
    def test_short_query_returns_empty(self, index, users, query):
        """Test queries shorter than two characters find nothing."""
        assert index.search(query, users) == []

    def test_exact_payroll(self, index, users):
        """Test a payroll number finds exactly its user."""
        results = index.search("300400", users)

        assert [u.id for u in results] == [3]

    def test_exact_username_case_insensitive(self, index, users):
        """Test usernames match exactly, ignoring case."""
        results = index.search("MJONES", users)

        assert [u.id for u in results] == [4]

    def test_name_prefix_sorted_by_full_name(self, index, users):
        """Test name-token prefix matches come back sorted by full name."""
        results = index.search("smith", users)

        assert [u.full_name for u in results] == [
            "Adam Smith", "Jane Smithers", "John Smith",
        ]

    def test_partial_username(self, index, users):
        """Test partial username matches are included after name matches."""
        results = index.search("smi", users)

        ids = {u.id for u in results}
        assert {1, 2, 3, 5}.issubset(ids)

    def test_exact_matches_survive_limit(self, index, users):
        """Test exact payroll matches are kept when the limit is tight."""
        results = index.search("smi99", users, limit=1)

        assert [u.id for u in results] == [4]

    def test_limit_applied(self, index, users):
        """Test results are capped at the limit."""
        assert len(index.search("smi", users, limit=2)) == 2
        assert index.search("smith", users, limit=0) == []

    def test_ignores_users_missing_from_cache(self, index, users):
        """Test indexed ids no longer cached are skipped."""
        del users[1]

        results = index.search("john", users)

        assert results == []

    def test_clear(self, index, users):
        """Test clear() empties the index."""
        index.clear()

        assert not index.built
        assert index.search("smith", users) == []
