"""
Helper utilities for Workout Tracker
Includes date formatting and workout frequency (streak/week/month/year) helpers
"""

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Set, Union

import pandas as pd

DateSource = Union[str, date, datetime]


def get_muscle_groups() -> List[str]:
    """
    Get list of muscle groups

    Returns:
        List of muscle group names
    """
    return [
        'Chest',
        'Back',
        'Shoulders',
        'Legs',
        'Biceps',
        'Triceps',
        'Core',
        'Other'
    ]


def to_local_date(date_source: DateSource) -> date:
    """
    Convert a stored date representation to a calendar date

    'YYYY-MM-DD' strings are read as local calendar days (no UTC shift).
    Timestamps ('2024-06-01T18:30:00+00:00') are converted to local time first.

    Args:
        date_source: ISO string, date or datetime

    Returns:
        The local calendar date
    """
    if isinstance(date_source, datetime):
        if date_source.tzinfo is not None:
            return date_source.astimezone().date()
        return date_source.date()
    if isinstance(date_source, date):
        return date_source

    text = str(date_source).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return to_local_date(parse_timestamp(text))


def parse_timestamp(value: str) -> datetime:
    """
    Parse a Supabase timestamp

    PostgREST trims trailing zeros from the fraction ('18:30:00.12345+00:00'),
    which datetime.fromisoformat only accepts from Python 3.11.
    """
    return pd.Timestamp(value).to_pydatetime()


def format_date(date_source: DateSource) -> str:
    """Format as dd/mm/yyyy"""
    return to_local_date(date_source).strftime('%d/%m/%Y')


def format_short_date(date_source: DateSource) -> str:
    """Format as dd/mm"""
    return to_local_date(date_source).strftime('%d/%m')


def format_start_time(created_at: DateSource) -> str:
    """Format a creation timestamp as a short local clock time, e.g. '6:05 PM'"""
    if isinstance(created_at, str):
        created_at = parse_timestamp(created_at)
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone()
    hour = created_at.hour % 12 or 12
    suffix = 'AM' if created_at.hour < 12 else 'PM'
    return f"{hour}:{created_at.minute:02d} {suffix}"


def workout_days(dates: Iterable[DateSource]) -> Set[date]:
    """Distinct local calendar days of the given session dates"""
    return {to_local_date(d) for d in dates if d}


def calculate_streak(dates: Iterable[DateSource], today: date = None) -> int:
    """
    Count consecutive workout days ending today

    If today has no session the count starts from yesterday, so a streak
    is not broken until a whole day is missed.

    Args:
        dates: Session dates
        today: Reference day (defaults to the local date)

    Returns:
        Streak length in days
    """
    days = workout_days(dates)
    today = today or date.today()

    streak = 0
    current = today
    if current in days:
        streak += 1
    current -= timedelta(days=1)

    while current in days:
        streak += 1
        current -= timedelta(days=1)

    return streak


def start_of_week(today: date = None) -> date:
    """Most recent Monday (weeks start on Monday)"""
    today = today or date.today()
    return today - timedelta(days=today.weekday())


def start_of_month(today: date = None) -> date:
    today = today or date.today()
    return today.replace(day=1)


def start_of_year(today: date = None) -> date:
    today = today or date.today()
    return today.replace(month=1, day=1)


def count_workouts_since(dates: Iterable[DateSource], start: date) -> int:
    """Number of distinct workout days on or after `start`"""
    return sum(1 for day in workout_days(dates) if day >= start)


def get_workout_frequency(dates: Iterable[DateSource], today: date = None) -> Dict[str, int]:
    """
    Summarise workout frequency for the home page badges

    Returns:
        Dictionary with 'streak', 'week', 'month' and 'year' counts
    """
    today = today or date.today()
    dates = list(dates)
    return {
        'streak': calculate_streak(dates, today),
        'week': count_workouts_since(dates, start_of_week(today)),
        'month': count_workouts_since(dates, start_of_month(today)),
        'year': count_workouts_since(dates, start_of_year(today)),
    }
