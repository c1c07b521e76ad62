"""Holiday calendar and opening-time policy."""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from functools import lru_cache
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

from agenda.services.errors import ValidationError
from agenda.utils.config import Settings

LOGGER = logging.getLogger(__name__)

HolidayKind = Literal["national", "state", "municipal", "custom"]

# Dated table kept by the Araraquara (SP) clinic for 2025.
FIXED_HOLIDAYS: Dict[str, Tuple[str, HolidayKind]] = {
    "2025-01-01": ("Confraternização Universal", "national"),
    "2025-02-17": ("Carnaval", "national"),
    "2025-02-18": ("Carnaval", "national"),
    "2025-04-18": ("Sexta-feira Santa", "national"),
    "2025-04-21": ("Tiradentes", "national"),
    "2025-05-01": ("Dia do Trabalhador", "national"),
    "2025-07-09": ("Revolução Constitucionalista (SP)", "state"),
    "2025-07-11": ("Dia de São Bento - Araraquara", "municipal"),
    "2025-08-22": ("Feriado Municipal - Araraquara", "municipal"),
    "2025-09-07": ("Independência do Brasil", "national"),
    "2025-10-12": ("Nossa Senhora Aparecida", "national"),
    "2025-11-02": ("Finados", "national"),
    "2025-11-15": ("Proclamação da República", "national"),
    "2025-11-20": ("Consciência Negra (SP)", "state"),
    "2025-12-25": ("Natal", "national"),
}

NATIONAL_FIXED_DATES: List[Tuple[int, int, str]] = [
    (1, 1, "Confraternização Universal"),
    (4, 21, "Tiradentes"),
    (5, 1, "Dia do Trabalhador"),
    (9, 7, "Independência do Brasil"),
    (10, 12, "Nossa Senhora Aparecida"),
    (11, 2, "Finados"),
    (11, 15, "Proclamação da República"),
    (12, 25, "Natal"),
]

# Offsets in days from Easter Sunday.
NATIONAL_MOVABLE_OFFSETS: List[Tuple[int, str]] = [
    (-47, "Carnaval"),
    (-2, "Sexta-feira Santa"),
    (60, "Corpus Christi"),
]


class Holiday(BaseModel):
    """A named day on which the clinic keeps holiday hours."""

    id: str
    name: str
    date: date
    kind: HolidayKind = "custom"
    recurring: bool = False
    active: bool = True


class NonBusinessDay(BaseModel):
    """A day excluded from the business calendar, with the reason why."""

    date: date
    reason: str
    kind: Literal["holiday", "weekend", "closed"]


def easter_sunday(year: int) -> date:
    """Return Easter Sunday for ``year`` (anonymous Gregorian algorithm)."""

    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


@lru_cache(maxsize=32)
def national_holidays(year: int) -> Tuple[Holiday, ...]:
    """Return the Brazilian national holidays for ``year``."""

    holidays = [
        Holiday(
            id=f"national-{year}-{month:02d}-{day:02d}",
            name=name,
            date=date(year, month, day),
            kind="national",
            recurring=True,
        )
        for month, day, name in NATIONAL_FIXED_DATES
    ]
    easter = easter_sunday(year)
    for offset, name in NATIONAL_MOVABLE_OFFSETS:
        moved = easter + timedelta(days=offset)
        holidays.append(
            Holiday(
                id=f"national-{moved.isoformat()}",
                name=name,
                date=moved,
                kind="national",
            )
        )
    return tuple(sorted(holidays, key=lambda item: item.date))


class HolidayCalendar:
    """Answers holiday, weekend and opening-time questions for a date."""

    def __init__(
        self,
        *,
        fixed_holidays: Optional[Dict[str, Tuple[str, HolidayKind]]] = None,
        custom_holidays: Iterable[Holiday] = (),
        include_national: bool = True,
        working_weekdays: Iterable[int] = (0, 1, 2, 3, 4),
        weekday_opening_time: str = "17:00",
        non_business_opening_time: str = "09:00",
    ) -> None:
        table = FIXED_HOLIDAYS if fixed_holidays is None else fixed_holidays
        self._fixed: Dict[date, Holiday] = {
            date.fromisoformat(key): Holiday(
                id=f"fixed-{key}",
                name=name,
                date=date.fromisoformat(key),
                kind=kind,
            )
            for key, (name, kind) in table.items()
        }
        self._custom: List[Holiday] = list(custom_holidays)
        self.include_national = include_national
        self.working_weekdays = frozenset(working_weekdays)
        self.weekday_opening_time = weekday_opening_time
        self.non_business_opening_time = non_business_opening_time

    @classmethod
    def from_settings(cls, settings: Settings, custom_holidays: Iterable[Holiday] = ()) -> "HolidayCalendar":
        return cls(
            custom_holidays=custom_holidays,
            include_national=settings.include_national_holidays,
            working_weekdays=settings.working_weekdays,
            weekday_opening_time=settings.weekday_opening_time,
            non_business_opening_time=settings.non_business_opening_time,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def holiday_info(self, day: date) -> Optional[Holiday]:
        """Return the holiday falling on ``day``, if any."""

        fixed = self._fixed.get(day)
        if fixed is not None:
            return fixed

        if self.include_national:
            for holiday in national_holidays(day.year):
                if holiday.date == day:
                    return holiday

        for holiday in self._custom:
            if holiday.active and self._custom_matches(holiday, day):
                return holiday

        return None

    def is_holiday(self, day: date) -> bool:
        return self.holiday_info(day) is not None

    @staticmethod
    def is_weekend(day: date) -> bool:
        return day.weekday() >= 5

    def default_opening_time(self, day: date) -> str:
        """Return the first bookable time of ``day``.

        Holidays and weekends open in the morning; regular weekdays only take
        evening sessions.
        """

        if self.is_holiday(day) or self.is_weekend(day):
            return self.non_business_opening_time
        return self.weekday_opening_time

    def holidays_for_year(self, year: int) -> List[Holiday]:
        """Return every active holiday of ``year`` ordered by date."""

        found: Dict[date, Holiday] = {
            day: holiday for day, holiday in self._fixed.items() if day.year == year
        }
        if self.include_national:
            for holiday in national_holidays(year):
                found.setdefault(holiday.date, holiday)
        for holiday in self._custom:
            if not holiday.active:
                continue
            if holiday.recurring:
                try:
                    occurrence = holiday.date.replace(year=year)
                except ValueError:
                    # 29 February in a common year.
                    continue
            elif holiday.date.year == year:
                occurrence = holiday.date
            else:
                continue
            found.setdefault(occurrence, holiday.model_copy(update={"date": occurrence}))
        return [found[day] for day in sorted(found)]

    def upcoming_holidays(self, from_day: date, limit: int = 5) -> List[Holiday]:
        candidates = self.holidays_for_year(from_day.year) + self.holidays_for_year(
            from_day.year + 1
        )
        return [holiday for holiday in candidates if holiday.date >= from_day][:limit]

    # ------------------------------------------------------------------
    # Business days
    # ------------------------------------------------------------------
    def is_business_day(self, day: date) -> bool:
        if day.weekday() not in self.working_weekdays:
            return False
        return not self.is_holiday(day)

    def next_business_day(self, day: date) -> date:
        """Return the first business day strictly after ``day``."""

        if not self.working_weekdays:
            raise ValidationError("No working weekdays configured")

        candidate = day + timedelta(days=1)
        while not self.is_business_day(candidate):
            candidate += timedelta(days=1)
        return candidate

    def count_business_days(self, start: date, end: date) -> int:
        return sum(1 for day in _days_between(start, end) if self.is_business_day(day))

    def non_business_days(self, start: date, end: date) -> List[NonBusinessDay]:
        """List the days of ``[start, end]`` that are not business days."""

        result: List[NonBusinessDay] = []
        for day in _days_between(start, end):
            if self.is_business_day(day):
                continue
            holiday = self.holiday_info(day)
            if holiday is not None:
                result.append(NonBusinessDay(date=day, reason=holiday.name, kind="holiday"))
            elif self.is_weekend(day):
                result.append(NonBusinessDay(date=day, reason="Weekend", kind="weekend"))
            else:
                result.append(NonBusinessDay(date=day, reason="Closed weekday", kind="closed"))
        return result

    # ------------------------------------------------------------------
    # Custom holidays
    # ------------------------------------------------------------------
    @property
    def custom_holidays(self) -> List[Holiday]:
        return list(self._custom)

    def add_custom_holiday(self, name: str, day: date, *, recurring: bool = False) -> Holiday:
        if not name.strip():
            raise ValidationError("Holiday name must not be empty")

        holiday = Holiday(
            id=f"custom-{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            date=day,
            kind="custom",
            recurring=recurring,
        )
        self._custom.append(holiday)
        LOGGER.debug("Added custom holiday %s on %s", holiday.id, day)
        return holiday

    def remove_custom_holiday(self, holiday_id: str) -> bool:
        before = len(self._custom)
        self._custom = [holiday for holiday in self._custom if holiday.id != holiday_id]
        return len(self._custom) < before

    @staticmethod
    def _custom_matches(holiday: Holiday, day: date) -> bool:
        if holiday.recurring:
            return (holiday.date.month, holiday.date.day) == (day.month, day.day)
        return holiday.date == day


def _days_between(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
