"""
Lookup record schemas.

Flat reference records cached for display-name enrichment. Each schema maps
the vendor's OData field names through from_odata(); records are immutable
once cached.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)

logger = logging.getLogger(__name__)

DATE_DISPLAY_FORMAT = "%d/%m/%Y"

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class LookupRecord(BaseModel):
    """Base schema: integer id plus a human-readable description."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: int
    description: str = ""

    @field_validator("description", mode="before")
    @classmethod
    def parse_description(cls, v: Any) -> str:
        return "" if v is None else str(v)


def _placeholder(record: dict, label: str) -> str:
    description = (record.get("Description") or "").strip()
    return description or f"{label} {record['Id']}"


class LocationInfo(LookupRecord):
    """Location reference record."""

    @classmethod
    def from_odata(cls, record: dict) -> "LocationInfo":
        return cls(id=record["Id"], description=_placeholder(record, "Location"))


class DepartmentInfo(LookupRecord):
    """Department reference record."""

    @classmethod
    def from_odata(cls, record: dict) -> "DepartmentInfo":
        return cls(id=record["Id"], description=_placeholder(record, "Department"))


class AgreementTypeInfo(LookupRecord):
    """Shift/person agreement offered in the agreement type filter."""

    @classmethod
    def from_odata(cls, record: dict) -> "AgreementTypeInfo":
        return cls(id=record["Id"], description=_placeholder(record, "Agreement"))


class AgreementInfo(LookupRecord):
    """Agreement referenced by report rows."""

    @classmethod
    def from_odata(cls, record: dict) -> "AgreementInfo":
        return cls(id=record["Id"], description=_placeholder(record, "Agreement"))


class ActivityTypeInfo(LookupRecord):
    """
    Activity type reference record.

    Timetabled activity types are recognised by the "TT:" description prefix.
    """

    is_tt: bool = False

    @classmethod
    def from_odata(cls, record: dict) -> "ActivityTypeInfo":
        description = record.get("Description") or ""
        return cls(id=record["Id"], description=description, is_tt=description.startswith("TT:"))


class UserInfo(BaseModel):
    """
    User reference record.

    The payroll number is the secondary identifier used by report exports.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: int
    username: str = ""
    forename: str = ""
    surname: str = ""
    full_name: str = ""
    payroll: str = ""

    @field_validator("username", "forename", "surname", "payroll", mode="before")
    @classmethod
    def parse_optional_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @property
    def display_name(self) -> str:
        """Full name with username, e.g. "John Smith (jsmith)"."""
        if self.full_name and self.username:
            return f"{self.full_name} ({self.username})"
        return self.full_name or self.username or f"User {self.id}"

    @classmethod
    def from_odata(cls, record: dict) -> "UserInfo":
        user_id = record["Id"]
        username = (record.get("Username") or "").strip()
        forename = (record.get("Forename") or "").strip()
        surname = (record.get("Surname") or "").strip()
        full_name = f"{forename} {surname}".strip() or username or f"User {user_id}"
        return cls(
            id=user_id,
            username=username,
            forename=forename,
            surname=surname,
            full_name=full_name,
            payroll=record.get("Payroll") or "",
        )


class ScheduleInfo(BaseModel):
    """
    Schedule reference record.

    The schedule is the join point between shift-level rows and locations.
    location_id is only part of model_fields_set when the source record
    carried a LocationID field; entries without it are treated as stale.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: int
    description: str = ""
    start: Optional[datetime] = None
    finish: Optional[datetime] = None
    location_id: Optional[int] = None

    @field_validator("description", mode="before")
    @classmethod
    def parse_description(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("start", "finish", mode="wrap")
    @classmethod
    def parse_datetime(cls, v: Any, handler: ValidatorFunctionWrapHandler) -> Optional[datetime]:
        """Parse OData timestamps, treating blanks and garbage as missing."""
        if v is None or v == "":
            return None
        if isinstance(v, str):
            # .NET serialises 7 fractional digits; datetime holds 6
            v = _EXCESS_FRACTION.sub(r"\1", v)
        try:
            return handler(v)
        except ValidationError:
            logger.warning(f"Could not parse schedule timestamp: {v}")
            return None

    @field_validator("location_id", mode="before")
    @classmethod
    def parse_location_id(cls, v: Any) -> Optional[int]:
        # Nimbus sends 0 for "no location"
        return v or None

    @property
    def has_location_field(self) -> bool:
        """True when the cached entry was built from a record carrying LocationID."""
        return "location_id" in self.model_fields_set

    @property
    def start_date(self) -> str:
        return self.start.strftime(DATE_DISPLAY_FORMAT) if self.start else ""

    @property
    def finish_date(self) -> str:
        return self.finish.strftime(DATE_DISPLAY_FORMAT) if self.finish else ""

    @property
    def date_range(self) -> str:
        """"start - finish", or empty when either end is unknown."""
        if self.start_date and self.finish_date:
            return f"{self.start_date} - {self.finish_date}"
        return ""

    @classmethod
    def from_odata(cls, record: dict) -> "ScheduleInfo":
        data = {
            "id": record["Id"],
            "description": record.get("Description"),
            "start": record.get("ScheduleStart"),
            "finish": record.get("ScheduleFinish"),
        }
        if "LocationID" in record:
            data["location_id"] = record["LocationID"]
        return cls(**data)


class ScheduleShiftInfo(BaseModel):
    """Schedule shift reference record."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: int
    description: str = ""
    start_time: str = ""
    finish_time: str = ""
    schedule_id: Optional[int] = Field(default=None)
    department_id: Optional[int] = Field(default=None)
    user_id: Optional[int] = Field(default=None)

    @classmethod
    def from_odata(cls, record: dict) -> "ScheduleShiftInfo":
        return cls(
            id=record["Id"],
            description=record.get("Description") or "",
            start_time=record.get("StartTime") or "",
            finish_time=record.get("FinishTime") or "",
            schedule_id=record.get("ScheduleID") or None,
            department_id=record.get("DepartmentID") or None,
            user_id=record.get("UserID") or None,
        )
