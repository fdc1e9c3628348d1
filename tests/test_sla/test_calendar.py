"""
Due date calendar tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from supportdesk.sla.domain import (
    BusinessHoursDueDateStrategy,
    BusinessHoursSchedule,
    DueDateCalculator,
    DurationTarget,
    NaiveDueDateStrategy,
)

MONDAY_9 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def _weekdays(start="09:00", end="17:00", **day_overrides) -> dict:
    days = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    schedule = {day: {"enabled": True, "start": start, "end": end} for day in days}
    schedule.update(day_overrides)
    return schedule


def _schedule(tz="UTC", **kwargs) -> BusinessHoursSchedule:
    return BusinessHoursSchedule(timezone=tz, schedule=_weekdays(**kwargs))


class TestDurationTarget:
    """Unit conversion."""

    def test_minutes_hours_days(self):
        assert DurationTarget(30, "minutes").to_minutes() == 30
        assert DurationTarget(2, "hours").to_minutes() == 120
        assert DurationTarget(1, "days").to_minutes() == 1440

    def test_unknown_unit_has_no_length(self):
        assert DurationTarget(3, "fortnights").to_timedelta() is None


class TestNaiveStrategy:
    """Wall-clock addition."""

    def setup_method(self):
        self.calculator = DueDateCalculator()

    def test_adds_minutes(self):
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(30, "minutes"))
        assert due == MONDAY_9 + timedelta(minutes=30)

    def test_adds_days(self):
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(2, "days"))
        assert due == MONDAY_9 + timedelta(days=2)

    def test_ignores_business_hours(self):
        """The default strategy does not consult the schedule."""
        due = self.calculator.calculate_due_date(
            datetime(2024, 1, 15, 16, 0, tzinfo=timezone.utc),
            DurationTarget(2, "hours"),
            _schedule(),
        )
        assert due == datetime(2024, 1, 15, 18, 0, tzinfo=timezone.utc)

    def test_unknown_unit_returns_start(self):
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(5, "weeks"))
        assert due == MONDAY_9

    def test_default_strategy_is_naive(self):
        assert isinstance(self.calculator.strategy, NaiveDueDateStrategy)


class TestBusinessHoursStrategy:
    """Walking working windows."""

    def setup_method(self):
        self.calculator = DueDateCalculator(BusinessHoursDueDateStrategy())

    def test_within_one_window(self):
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(60, "minutes"), _schedule())
        assert due == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_rolls_over_to_next_working_day(self):
        start = datetime(2024, 1, 15, 16, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(start, DurationTarget(2, "hours"), _schedule())
        assert due == datetime(2024, 1, 16, 10, 0, tzinfo=timezone.utc)

    def test_start_before_opening(self):
        start = datetime(2024, 1, 15, 6, 30, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(start, DurationTarget(30, "minutes"), _schedule())
        assert due == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

    def test_skips_weekend(self):
        friday = datetime(2024, 1, 19, 16, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(friday, DurationTarget(2, "hours"), _schedule())
        assert due == datetime(2024, 1, 22, 10, 0, tzinfo=timezone.utc)

    def test_skips_holidays(self):
        start = datetime(2024, 1, 15, 16, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(
            start, DurationTarget(2, "hours"), _schedule(), holidays=["2024-01-16"]
        )
        assert due == datetime(2024, 1, 17, 10, 0, tzinfo=timezone.utc)

    def test_breaks_are_not_working_time(self):
        schedule = _schedule(
            monday={"start": "09:00", "end": "17:00", "breaks": [{"start": "12:00", "end": "13:00"}]}
        )
        start = datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(start, DurationTarget(2, "hours"), schedule)
        assert due == datetime(2024, 1, 15, 14, 0, tzinfo=timezone.utc)

    def test_disabled_day_is_skipped(self):
        schedule = _schedule(tuesday={"enabled": False, "start": "09:00", "end": "17:00"})
        start = datetime(2024, 1, 15, 16, 30, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(start, DurationTarget(60, "minutes"), schedule)
        assert due == datetime(2024, 1, 17, 9, 30, tzinfo=timezone.utc)

    def test_schedule_timezone(self):
        """09:00-17:00 in Berlin is 08:00-16:00 UTC in winter."""
        start = datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(
            start, DurationTarget(2, "hours"), _schedule(tz="Europe/Berlin")
        )
        assert due == datetime(2024, 1, 16, 9, 0, tzinfo=timezone.utc)

    def test_dst_transition(self):
        """After the spring change Berlin opens at 07:00 UTC."""
        friday = datetime(2024, 3, 29, 15, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(
            friday, DurationTarget(2, "hours"), _schedule(tz="Europe/Berlin")
        )
        assert due == datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc)

    def test_disabled_schedule_falls_back_to_naive(self):
        schedule = BusinessHoursSchedule(enabled=False, schedule=_weekdays())
        start = datetime(2024, 1, 15, 16, 0, tzinfo=timezone.utc)
        due = self.calculator.calculate_due_date(start, DurationTarget(2, "hours"), schedule)
        assert due == datetime(2024, 1, 15, 18, 0, tzinfo=timezone.utc)

    def test_no_schedule_falls_back_to_naive(self):
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(90, "minutes"))
        assert due == MONDAY_9 + timedelta(minutes=90)

    def test_no_working_days_falls_back_to_naive(self):
        schedule = BusinessHoursSchedule(schedule={})
        due = self.calculator.calculate_due_date(MONDAY_9, DurationTarget(60, "minutes"), schedule)
        assert due == MONDAY_9 + timedelta(minutes=60)


class TestCalculatorFactory:
    def test_from_name(self):
        assert DueDateCalculator.from_name("business_hours").strategy.name == "business_hours"
        assert DueDateCalculator.from_name("naive").strategy.name == "naive"

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            DueDateCalculator.from_name("lunar")


class TestScheduleValidation:
    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValueError):
            BusinessHoursSchedule(timezone="Mars/Olympus")

    def test_rejects_unknown_weekday(self):
        with pytest.raises(ValueError):
            BusinessHoursSchedule(schedule={"funday": {"start": "09:00", "end": "17:00"}})

    def test_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            BusinessHoursSchedule(schedule={"monday": {"start": "17:00", "end": "09:00"}})

    def test_weekday_keys_are_case_insensitive(self):
        schedule = BusinessHoursSchedule(schedule={"Monday": {"start": "09:00", "end": "17:00"}})
        assert schedule.for_weekday(0) is not None
        assert schedule.for_weekday(1) is None


class TestNaiveStartInstants:
    """Both strategies read a naive start as UTC and return UTC."""

    @pytest.mark.parametrize("strategy", [NaiveDueDateStrategy(), BusinessHoursDueDateStrategy()])
    def test_naive_start(self, strategy):
        due = DueDateCalculator(strategy).calculate_due_date(
            datetime(2024, 1, 15, 16, 0), DurationTarget(30, "minutes"), _schedule()
        )

        assert due.tzinfo is not None
        assert due.utcoffset() == timedelta(0)
        assert due == datetime(2024, 1, 15, 16, 30, tzinfo=timezone.utc)

    def test_unknown_unit_with_naive_start(self):
        due = DueDateCalculator().calculate_due_date(datetime(2024, 1, 15, 9, 0), DurationTarget(5, "weeks"))
        assert due == MONDAY_9
        assert due.tzinfo is not None
