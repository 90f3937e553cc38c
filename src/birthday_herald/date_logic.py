from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

# Stand-in year for birthdays entered without one. A leap year, so 02-29 validates.
PLACEHOLDER_YEAR = 2000

MIN_UTC_OFFSET = -12
MAX_UTC_OFFSET = 14

# Longest gap between two 29 Februaries (e.g. 2096 -> 2104).
_MAX_YEARS_BETWEEN_OCCURRENCES = 8


class InvalidDateError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def make_date(day: int, month: int, year: int | None = None) -> date:
    if month < 1 or month > 12:
        raise InvalidDateError(f"Invalid month: {month}")

    if day < 1 or day > 31:
        raise InvalidDateError(f"Invalid day: {day}")

    try:
        return date(PLACEHOLDER_YEAR if year is None else year, month, day)
    except ValueError as exc:
        if year is None:
            raise InvalidDateError(f"Invalid day/month combination: {day}.{month}") from exc
        raise InvalidDateError(f"Invalid date: {day}.{month}.{year}") from exc


def validate_utc_offset(hours: int) -> int:
    if hours < MIN_UTC_OFFSET or hours > MAX_UTC_OFFSET:
        raise InvalidDateError(
            f"UTC offset must be between {MIN_UTC_OFFSET:+d} and {MAX_UTC_OFFSET:+d} hours"
        )
    return hours


def _occurrence_in_year(month: int, day: int, year: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def effective_local_day(local_date: date, utc_offset_hours: int) -> date:
    """Return the UTC date at the instant ``local_date`` begins for the owner.

    Local midnight at UTC+2 is 22:00 UTC the day before, so a birthday on
    06-15 at +2 has an effective day of 06-14.
    """
    local_midnight = datetime.combine(local_date, time.min)
    return (local_midnight - timedelta(hours=utc_offset_hours)).date()


def next_occurrence(month: int, day: int, from_date: date) -> date:
    """Nearest date on or after ``from_date`` that falls on month/day.

    Years in which the day does not exist (29 February outside leap years)
    are skipped rather than clamped.
    """
    make_date(day, month)
    for year in range(from_date.year, from_date.year + _MAX_YEARS_BETWEEN_OCCURRENCES + 2):
        candidate = _occurrence_in_year(month, day, year)
        if candidate is not None and candidate >= from_date:
            return candidate
    raise InvalidDateError(f"No occurrence of {day}.{month} found after {from_date.isoformat()}")


def occurrence_due_on(month: int, day: int, utc_offset_hours: int, today_utc: date) -> date | None:
    """Return the local birthday whose effective day is ``today_utc``, if any.

    The next year is considered because a positive offset pulls a 1 January
    birthday back to 31 December in UTC terms. Negative offsets never move
    local midnight off its own UTC day.
    """
    for year in (today_utc.year, today_utc.year + 1):
        candidate = _occurrence_in_year(month, day, year)
        if candidate is None:
            continue
        if effective_local_day(candidate, utc_offset_hours) == today_utc:
            return candidate
    return None


def time_until_next_occurrence(month: int, day: int, utc_offset_hours: int, now: datetime) -> timedelta:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    local_tz = timezone(timedelta(hours=utc_offset_hours))
    local_now = now.astimezone(local_tz)
    upcoming = next_occurrence(month, day, local_now.date())
    starts_at = datetime.combine(upcoming, time.min, tzinfo=local_tz)
    if starts_at <= local_now:
        return timedelta(0)
    return starts_at - local_now


def age_on(birth_year: int | None, month: int, day: int, on_date: date) -> int | None:
    if birth_year is None:
        return None

    age = on_date.year - birth_year
    if (on_date.month, on_date.day) < (month, day):
        age -= 1
    return age


def projected_birthday(birth_year: int | None, month: int, day: int, age: int) -> date | None:
    """Date on which the owner turns ``age``, or None without a birth year."""
    if birth_year is None:
        return None
    if age < 0:
        raise ValueError("age must not be negative")

    return next_occurrence(month, day, date(birth_year + age, 1, 1))
