from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

QueryValue = Union[int, str, None]


@dataclass(frozen=True)
class Window:
    """Half-open ``[start, end)`` range of local timestamps."""

    start: datetime
    end: datetime

    @property
    def start_day(self) -> date:
        return self.start.date()


def _coerce_int(value: QueryValue) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number or None


def _first_of_month(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def _next_month(year: int, month: int) -> datetime:
    if month == 12:
        return datetime(year + 1, 1, 1)
    return datetime(year, month + 1, 1)


def month_window(
    month: QueryValue = None,
    year: QueryValue = None,
    *,
    today: Optional[date] = None,
) -> Window:
    today = today or date.today()
    target_month = _coerce_int(month)
    if target_month is None or not 1 <= target_month <= 12:
        target_month = today.month
    target_year = _coerce_int(year)
    if target_year is None or not 1 <= target_year <= 9998:
        target_year = today.year
    return Window(
        _first_of_month(target_year, target_month),
        _next_month(target_year, target_month),
    )


def year_window(year: QueryValue = None, *, today: Optional[date] = None) -> Window:
    today = today or date.today()
    target_year = _coerce_int(year)
    if target_year is None or not 1 <= target_year <= 9998:
        target_year = today.year
    return Window(datetime(target_year, 1, 1), datetime(target_year + 1, 1, 1))


def current_month(today: Optional[date] = None) -> Window:
    return month_window(today=today)
