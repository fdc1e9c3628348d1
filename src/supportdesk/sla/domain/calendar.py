"""
Due Date Calendar
=================

Turns a start instant and a duration target into a due instant.

Two strategies share one signature:
- NaiveDueDateStrategy: plain wall-clock addition (the default)
- BusinessHoursDueDateStrategy: consumes working minutes from a weekly
  schedule, skipping holidays and breaks
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo

from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.sla.domain.value_objects import BusinessHoursSchedule, DaySchedule, DurationTarget

logger = get_logger(__name__)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DueDateStrategy(ABC):
    """Strategy interface for due date computation."""

    name: str = "abstract"

    @abstractmethod
    def add(
        self,
        start: datetime,
        target: DurationTarget,
        business_hours: Optional[BusinessHoursSchedule] = None,
        holidays: Iterable[str] = (),
    ) -> datetime:
        """Return the UTC instant at which the target elapses; naive starts are read as UTC."""


class NaiveDueDateStrategy(DueDateStrategy):
    """start + amount, ignoring any schedule."""

    name = "naive"

    def add(
        self,
        start: datetime,
        target: DurationTarget,
        business_hours: Optional[BusinessHoursSchedule] = None,
        holidays: Iterable[str] = (),
    ) -> datetime:
        delta = target.to_timedelta()
        if delta is None:
            logger.warning(
                "Unknown duration unit, due date left at start",
                extra={"unit": str(target.unit), "amount": target.amount}
            )
            return ensure_utc(start)
        return ensure_utc(start) + delta


class BusinessHoursDueDateStrategy(DueDateStrategy):
    """
    Walk working windows until the target's minutes are used up.

    Windows are computed on the schedule's local calendar and converted to
    UTC before any arithmetic, so DST changes shorten or lengthen the local
    day without skewing the result.
    """

    name = "business_hours"
    LOOKAHEAD_DAYS = 366

    def __init__(self, fallback: Optional[DueDateStrategy] = None):
        self._fallback = fallback or NaiveDueDateStrategy()

    def add(
        self,
        start: datetime,
        target: DurationTarget,
        business_hours: Optional[BusinessHoursSchedule] = None,
        holidays: Iterable[str] = (),
    ) -> datetime:
        if business_hours is None or not business_hours.enabled:
            return self._fallback.add(start, target)

        minutes = target.to_minutes()
        if minutes is None:
            return self._fallback.add(start, target)

        start_utc = ensure_utc(start)
        remaining = timedelta(minutes=minutes)
        if remaining <= timedelta(0):
            return start_utc

        tz = ZoneInfo(business_hours.timezone)
        first_day = start_utc.astimezone(tz).date()
        holiday_set = set(holidays)

        for offset in range(self.LOOKAHEAD_DAYS):
            current = first_day + timedelta(days=offset)
            if current.isoformat() in holiday_set:
                continue
            day = business_hours.for_weekday(current.weekday())
            if day is None:
                continue

            for window_start, window_end in self._working_windows(current, day, tz):
                begin = max(window_start, start_utc)
                if begin >= window_end:
                    continue
                available = window_end - begin
                if remaining <= available:
                    return begin + remaining
                remaining -= available

        logger.warning(
            "Business hours schedule has no working time in lookahead, using naive due date",
            extra={"timezone": business_hours.timezone, "lookahead_days": self.LOOKAHEAD_DAYS}
        )
        return self._fallback.add(start, target)

    @staticmethod
    def _working_windows(
        current: date,
        day: DaySchedule,
        tz: ZoneInfo,
    ) -> Iterator[Tuple[datetime, datetime]]:
        """Yield the day's windows minus breaks, as UTC pairs."""
        breaks = sorted((b.start_minute, b.end_minute) for b in day.breaks)
        cursor = day.start_minute
        segments: List[Tuple[int, int]] = []
        for break_start, break_end in breaks:
            if break_end <= cursor or break_start >= day.end_minute:
                continue
            if break_start > cursor:
                segments.append((cursor, break_start))
            cursor = max(cursor, break_end)
        if cursor < day.end_minute:
            segments.append((cursor, day.end_minute))

        midnight = datetime.combine(current, time(0, 0))
        for seg_start, seg_end in segments:
            local_start = (midnight + timedelta(minutes=seg_start)).replace(tzinfo=tz)
            local_end = (midnight + timedelta(minutes=seg_end)).replace(tzinfo=tz)
            yield local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


_STRATEGIES = {
    NaiveDueDateStrategy.name: NaiveDueDateStrategy,
    BusinessHoursDueDateStrategy.name: BusinessHoursDueDateStrategy,
}


class DueDateCalculator:
    """Entry point used by the instance service."""

    def __init__(self, strategy: Optional[DueDateStrategy] = None):
        self._strategy = strategy or NaiveDueDateStrategy()

    @property
    def strategy(self) -> DueDateStrategy:
        return self._strategy

    @classmethod
    def from_name(cls, name: str) -> "DueDateCalculator":
        try:
            return cls(_STRATEGIES[name]())
        except KeyError:
            raise ValueError(f"Unknown due date strategy: {name}") from None

    def calculate_due_date(
        self,
        start: datetime,
        target: DurationTarget,
        business_hours: Optional[BusinessHoursSchedule] = None,
        holidays: Optional[Iterable[str]] = None,
    ) -> datetime:
        """
        Compute the due instant for a target.

        Args:
            start: Instant the clock starts
            target: Amount and unit
            business_hours: Optional weekly schedule
            holidays: YYYY-MM-DD dates without working time

        Returns:
            The due instant; equal to start for an unknown unit
        """
        return self._strategy.add(start, target, business_hours, holidays or ())
