"""
SLA Value Objects
==================

Immutable value objects for the SLA domain.

Value objects are defined by their attributes rather than an identity.
Schedules and rules are Pydantic models so they validate on the way in
from the API and from JSON columns alike.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from supportdesk.config import DurationUnit, settings

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_CLOCK_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$|^24:00$")
_HOLIDAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_MINUTES_PER_UNIT = {
    DurationUnit.MINUTES.value: 1,
    DurationUnit.HOURS.value: 60,
    DurationUnit.DAYS.value: 1440,
}


def clock_to_minutes(value: str) -> int:
    """Convert an "HH:MM" clock string to minutes after midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


@dataclass(frozen=True)
class DurationTarget:
    """
    An amount of time in one of the supported units.

    Unknown units are representable; converting them yields None so the
    caller decides how to degrade.
    """
    amount: float
    unit: str = DurationUnit.MINUTES.value

    def to_minutes(self) -> Optional[float]:
        factor = _MINUTES_PER_UNIT.get(str(getattr(self.unit, "value", self.unit)))
        if factor is None:
            return None
        return self.amount * factor

    def to_timedelta(self) -> Optional[timedelta]:
        minutes = self.to_minutes()
        if minutes is None:
            return None
        return timedelta(minutes=minutes)


class SLATargets(BaseModel):
    """Response and resolution targets in minutes."""
    model_config = ConfigDict(frozen=True)

    response_time: int = Field(
        default_factory=lambda: settings.default_response_minutes, ge=1,
        description="Minutes until first response is due"
    )
    resolution_time: int = Field(
        default_factory=lambda: settings.default_resolution_minutes, ge=1,
        description="Minutes until resolution is due"
    )


class TimeWindow(BaseModel):
    """A [start, end) window on the local clock."""
    model_config = ConfigDict(frozen=True)

    start: str = Field(..., description="Start time, HH:MM")
    end: str = Field(..., description="End time, HH:MM (24:00 allowed)")

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        if not _CLOCK_RE.match(v):
            raise ValueError(f"time must be HH:MM, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_order(self) -> "TimeWindow":
        if clock_to_minutes(self.end) <= clock_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self

    @property
    def start_minute(self) -> int:
        return clock_to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return clock_to_minutes(self.end)


class DaySchedule(TimeWindow):
    """Working hours for one weekday, with optional breaks."""

    enabled: bool = Field(default=True, description="Whether this weekday has working hours")
    breaks: List[TimeWindow] = Field(default_factory=list, description="Unpaid gaps inside the day")


class BusinessHoursSchedule(BaseModel):
    """
    Weekly business-hours calendar.

    Missing weekdays count as non-working days.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Apply business hours to due dates")
    timezone: str = Field(default="UTC", description="IANA timezone of the schedule")
    schedule: Dict[str, DaySchedule] = Field(default_factory=dict, description="Windows by weekday")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone {v!r}") from e
        return v

    @field_validator("schedule")
    @classmethod
    def validate_weekdays(cls, v: Dict[str, DaySchedule]) -> Dict[str, DaySchedule]:
        normalized = {day.lower(): window for day, window in v.items()}
        unknown = set(normalized) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"unknown weekdays: {sorted(unknown)}")
        return normalized

    def for_weekday(self, weekday: int) -> Optional[DaySchedule]:
        """Schedule for a date.weekday() index, or None when not working."""
        day = self.schedule.get(WEEKDAYS[weekday])
        if day is None or not day.enabled:
            return None
        return day


def validate_holidays(holidays: List[str]) -> List[str]:
    """Check that every holiday is a YYYY-MM-DD string."""
    for holiday in holidays:
        if not _HOLIDAY_RE.match(holiday):
            raise ValueError(f"holiday must be YYYY-MM-DD, got {holiday!r}")
    return holidays


class EscalationRule(BaseModel):
    """Who to involve when an instance reaches an escalation level."""
    model_config = ConfigDict(frozen=True)

    level: int = Field(..., ge=1, description="Escalation level the rule applies to")
    time_threshold: int = Field(default=0, ge=0, description="Minutes past due before acting")
    action: str = Field(default="notify", description="Action to request (notify, reassign, ...)")
    recipients: List[str] = Field(default_factory=list, description="User ids to notify")
    message: Optional[str] = Field(default=None, description="Message override")


class NotificationSetting(BaseModel):
    """Notification preferences stored with a policy."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Channel type (email, push, webhook, ...)")
    recipients: List[str] = Field(default_factory=list)
    template: Optional[str] = None
    conditions: Dict[str, Any] = Field(default_factory=dict)
