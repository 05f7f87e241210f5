"""
Unit Tests for nimbus_reports.modules.lookups.models.

Tests the mapping from Nimbus OData records to cached lookup records.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from nimbus_reports.modules.lookups.models import (
    ActivityTypeInfo,
    DepartmentInfo,
    LocationInfo,
    ScheduleInfo,
    ScheduleShiftInfo,
    UserInfo,
)


class TestUserInfo:
    """Tests for UserInfo."""

    def test_from_odata(self):
        """Test full name is built from forename and surname."""
        user = UserInfo.from_odata({
            "Id": 7, "Username": "jsmith", "Forename": " John ", "Surname": "Smith", "Payroll": "P007",
        })

        assert user.full_name == "John Smith"
        assert user.payroll == "P007"
        assert user.display_name == "John Smith (jsmith)"

    def test_full_name_falls_back_to_username(self):
        """Test users without names are shown by username."""
        user = UserInfo.from_odata({"Id": 8, "Username": "svc_batch", "Forename": None, "Surname": None})

        assert user.full_name == "svc_batch"

    def test_full_name_placeholder(self):
        """Test users with neither name nor username get a placeholder."""
        user = UserInfo.from_odata({"Id": 9})

        assert user.full_name == "User 9"
        assert user.username == ""
        assert user.payroll == ""

    def test_is_immutable(self):
        """Test cached records cannot be modified."""
        user = UserInfo.from_odata({"Id": 1, "Username": "a"})

        with pytest.raises(ValidationError):
            user.username = "b"


class TestDescriptionRecords:
    """Tests for the id/description lookup records."""

    def test_blank_description_placeholder(self):
        """Test blank descriptions become "<Label> <id>"."""
        assert LocationInfo.from_odata({"Id": 3, "Description": "  "}).description == "Location 3"
        assert DepartmentInfo.from_odata({"Id": 4, "Description": None}).description == "Department 4"

    def test_description_kept(self):
        """Test real descriptions are kept (whitespace stripped)."""
        assert LocationInfo.from_odata({"Id": 3, "Description": " Main Campus "}).description == "Main Campus"

    def test_activity_type_tt_flag(self):
        """Test timetabled activity types are flagged."""
        assert ActivityTypeInfo.from_odata({"Id": 1, "Description": "TT: Lecture"}).is_tt is True
        assert ActivityTypeInfo.from_odata({"Id": 2, "Description": "Marking"}).is_tt is False


class TestScheduleInfo:
    """Tests for ScheduleInfo."""

    def test_from_odata(self):
        """Test timestamps and location are parsed."""
        schedule = ScheduleInfo.from_odata({
            "Id": 11,
            "Description": "Semester 1",
            "ScheduleStart": "2024-02-26T00:00:00Z",
            "ScheduleFinish": "2024-06-30T00:00:00",
            "LocationID": 5,
        })

        assert schedule.start.year == 2024
        assert schedule.location_id == 5
        assert schedule.date_range == "26/02/2024 - 30/06/2024"
        assert schedule.has_location_field is True

    def test_missing_location_field_detected(self):
        """Test records without LocationID are recognised as incomplete."""
        schedule = ScheduleInfo.from_odata({"Id": 11, "Description": "Old shape"})

        assert schedule.location_id is None
        assert schedule.has_location_field is False

    def test_null_location_is_still_complete(self):
        """Test an explicit null LocationID counts as a present field."""
        schedule = ScheduleInfo.from_odata({"Id": 11, "LocationID": None})

        assert schedule.has_location_field is True
        assert schedule.location_id is None

    def test_zero_location_means_none(self):
        """Test LocationID 0 means no location."""
        assert ScheduleInfo.from_odata({"Id": 11, "LocationID": 0}).location_id is None

    def test_bad_timestamp_is_none(self):
        """Test unparseable timestamps degrade to None and an empty range."""
        schedule = ScheduleInfo(id=1, start="garbage", finish=datetime(2024, 1, 1))

        assert schedule.start is None
        assert schedule.finish_date == "01/01/2024"
        assert schedule.date_range == ""

    @pytest.mark.parametrize("raw,expected", [
        ("2024-03-04T09:30:00.1234567Z", datetime(2024, 3, 4, 9, 30, 0, 123456)),
        ("2024-03-04T09:30:00.1234567", datetime(2024, 3, 4, 9, 30, 0, 123456)),
        ("2024-03-04T09:30:00.5+10:00", datetime(2024, 3, 4, 9, 30, 0, 500000)),
    ])
    def test_dotnet_timestamps(self, raw, expected):
        """Test seven-digit fractions and offsets parse to the same wall time."""
        schedule = ScheduleInfo.from_odata({"Id": 1, "ScheduleStart": raw, "LocationID": 5})

        assert schedule.start.replace(tzinfo=None) == expected
        assert schedule.start_date == "04/03/2024"

    def test_zulu_timestamp_is_utc(self):
        """Test a trailing Z yields an aware UTC timestamp."""
        schedule = ScheduleInfo.from_odata({"Id": 1, "ScheduleStart": "2024-03-04T09:30:00.1234567Z"})

        assert schedule.start.utcoffset().total_seconds() == 0

    def test_non_numeric_location_id_rejected(self):
        """Test a malformed LocationID fails validation for the loader to skip."""
        with pytest.raises(ValidationError):
            ScheduleInfo.from_odata({"Id": 1, "LocationID": "x7"})


class TestScheduleShiftInfo:
    """Tests for ScheduleShiftInfo."""

    def test_from_odata_zero_ids_are_none(self):
        """Test zero foreign keys are stored as None."""
        shift = ScheduleShiftInfo.from_odata({
            "Id": 100, "Description": "Tutorial", "ScheduleID": 11, "DepartmentID": 0, "UserID": None,
        })

        assert shift.schedule_id == 11
        assert shift.department_id is None
        assert shift.user_id is None
