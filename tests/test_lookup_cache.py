"""
Unit Tests for nimbus_reports.modules.lookups.cache.

Tests TableCache state transitions, the read-only records view and the
generation counter used to discard loads that straddle a clear().
"""

import pytest

from nimbus_reports.modules.lookups.cache import CacheState, TableCache
from nimbus_reports.modules.lookups.models import LocationInfo


def _location(location_id, description):
    return LocationInfo.from_odata({"Id": location_id, "Description": description})


@pytest.fixture
def table():
    """Location table sorted by description."""
    return TableCache("locations", lambda record: record.description.casefold())


class TestTableCache:
    """Tests for TableCache."""

    def test_records_view_is_read_only(self, table):
        """Test records cannot be modified through the mapping view."""
        table.put_many([_location(1, "North")], key=lambda r: r.id)

        with pytest.raises(TypeError):
            table.records[2] = _location(2, "South")

        assert 2 not in table

    def test_records_view_is_live(self, table):
        """Test the mapping view reflects later inserts and clears."""
        records = table.records

        table.put_many([_location(1, "North")], key=lambda r: r.id)
        assert records[1].description == "North"

        table.clear()
        assert len(records) == 0

    def test_clear_bumps_generation(self, table):
        """Test each clear() starts a new generation and resets state."""
        table.mark_loading()
        generation = table.generation

        table.clear()

        assert table.generation == generation + 1
        assert table.state is CacheState.NOT_LOADED
        assert table.loaded_at is None

    def test_sorted_view_invalidated_on_insert(self, table):
        """Test sorted_values() picks up records added after a previous read."""
        table.put_many([_location(1, "South")], key=lambda r: r.id)
        assert [r.id for r in table.sorted_values()] == [1]

        table.put_many([_location(2, "north")], key=lambda r: r.id)

        assert [r.id for r in table.sorted_values()] == [2, 1]
