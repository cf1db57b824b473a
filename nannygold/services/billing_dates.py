import calendar
from datetime import date


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def month_bounds(day: date):
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def shift_month(day: date, months: int, day_of_month: int = None) -> date:
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    target_day = day_of_month if day_of_month is not None else day.day
    return date(year, month, min(target_day, calendar.monthrange(year, month)[1]))


def first_cycle_dates(as_of: date, authorization_day: int, capture_day: int):
    """Authorize in the month after ``as_of``, capture in the month after that."""
    return shift_month(as_of, 1, authorization_day), shift_month(as_of, 2, capture_day)
