"""Tests for the holiday calendar and opening-time policy."""

from datetime import date

import pytest

from agenda.services.errors import ValidationError
from agenda.services.holidays import Holiday, HolidayCalendar, easter_sunday, national_holidays
from agenda.utils.config import Settings


def test_municipal_holiday_opens_in_the_morning() -> None:
    calendar = HolidayCalendar()

    assert calendar.is_holiday(date(2025, 7, 11))
    assert calendar.holiday_info(date(2025, 7, 11)).kind == "municipal"
    assert calendar.default_opening_time(date(2025, 7, 11)) == "09:00"


def test_regular_weekday_opens_in_the_evening() -> None:
    calendar = HolidayCalendar()

    assert not calendar.is_holiday(date(2025, 6, 10))
    assert calendar.default_opening_time(date(2025, 6, 10)) == "17:00"


@pytest.mark.parametrize("day", [date(2025, 6, 14), date(2025, 6, 15)])
def test_weekend_opens_in_the_morning(day: date) -> None:
    calendar = HolidayCalendar()

    assert calendar.is_weekend(day)
    assert calendar.default_opening_time(day) == "09:00"


def test_opening_times_follow_settings() -> None:
    settings = Settings(weekday_opening_time="18:30", non_business_opening_time="08:00")
    calendar = HolidayCalendar.from_settings(settings)

    assert calendar.default_opening_time(date(2025, 6, 10)) == "18:30"
    assert calendar.default_opening_time(date(2025, 7, 11)) == "08:00"


@pytest.mark.parametrize(
    ("year", "expected"),
    [(2024, date(2024, 3, 31)), (2025, date(2025, 4, 20)), (2026, date(2026, 4, 5))],
)
def test_easter_sunday(year: int, expected: date) -> None:
    assert easter_sunday(year) == expected


def test_movable_national_holidays_for_other_years() -> None:
    dates = {holiday.name: holiday.date for holiday in national_holidays(2026)}

    assert dates["Carnaval"] == date(2026, 2, 17)
    assert dates["Sexta-feira Santa"] == date(2026, 4, 3)
    assert dates["Corpus Christi"] == date(2026, 6, 4)

    calendar = HolidayCalendar()
    assert calendar.is_holiday(date(2026, 4, 3))
    assert calendar.is_holiday(date(2026, 12, 25))


def test_national_holidays_can_be_disabled() -> None:
    calendar = HolidayCalendar(fixed_holidays={}, include_national=False)

    assert not calendar.is_holiday(date(2026, 4, 3))
    assert calendar.default_opening_time(date(2026, 4, 3)) == "17:00"


def test_custom_holidays_recurring_and_one_off() -> None:
    calendar = HolidayCalendar()
    anniversary = calendar.add_custom_holiday("Aniversário da clínica", date(2024, 3, 15), recurring=True)
    closure = calendar.add_custom_holiday("Dedetização", date(2025, 3, 14))

    assert anniversary.id.startswith("custom-")
    assert calendar.is_holiday(date(2026, 3, 15))
    assert calendar.is_holiday(date(2025, 3, 14))
    assert not calendar.is_holiday(date(2026, 3, 14))

    assert calendar.remove_custom_holiday(closure.id)
    assert not calendar.remove_custom_holiday(closure.id)
    assert not calendar.is_holiday(date(2025, 3, 14))
    assert [holiday.id for holiday in calendar.custom_holidays] == [anniversary.id]


def test_inactive_custom_holiday_is_ignored() -> None:
    inactive = Holiday(id="custom-x", name="Reforma", date=date(2025, 6, 10), active=False)
    calendar = HolidayCalendar(custom_holidays=[inactive])

    assert not calendar.is_holiday(date(2025, 6, 10))


def test_custom_holiday_requires_a_name() -> None:
    with pytest.raises(ValidationError):
        HolidayCalendar().add_custom_holiday("   ", date(2025, 6, 10))


def test_business_day_queries() -> None:
    calendar = HolidayCalendar()

    # 9 July is a state holiday and 11 July a municipal one.
    assert calendar.count_business_days(date(2025, 7, 7), date(2025, 7, 13)) == 3
    assert calendar.next_business_day(date(2025, 7, 10)) == date(2025, 7, 14)

    days = calendar.non_business_days(date(2025, 7, 9), date(2025, 7, 13))
    assert [(item.date.day, item.kind) for item in days] == [
        (9, "holiday"),
        (11, "holiday"),
        (12, "weekend"),
        (13, "weekend"),
    ]


def test_closed_weekday() -> None:
    calendar = HolidayCalendar(working_weekdays=(0, 1, 2, 3))

    days = calendar.non_business_days(date(2025, 6, 13), date(2025, 6, 13))
    assert days[0].kind == "closed"
    assert calendar.default_opening_time(date(2025, 6, 13)) == "17:00"


def test_next_business_day_without_working_weekdays() -> None:
    with pytest.raises(ValidationError):
        HolidayCalendar(working_weekdays=()).next_business_day(date(2025, 6, 10))


def test_upcoming_holidays_cross_the_year() -> None:
    calendar = HolidayCalendar()

    upcoming = calendar.upcoming_holidays(date(2025, 12, 1), limit=2)
    assert [holiday.date for holiday in upcoming] == [date(2025, 12, 25), date(2026, 1, 1)]
