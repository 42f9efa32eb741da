from datetime import date, datetime, timedelta, timezone

from utils.helpers import (
    calculate_streak, count_workouts_since, format_date, format_short_date,
    format_start_time, get_muscle_groups, get_workout_frequency, parse_timestamp,
    start_of_week, to_local_date
)

# A Wednesday
TODAY = date(2024, 6, 12)


def days_ago(n):
    return (TODAY - timedelta(days=n)).isoformat()


def test_date_only_strings_are_local_calendar_days():
    assert to_local_date("2024-01-01") == date(2024, 1, 1)
    assert format_date("2024-01-01") == "01/01/2024"
    assert format_short_date("2024-06-04") == "04/06"


def test_timestamps_are_converted_to_local_time():
    stamp = datetime(2024, 6, 1, 23, 30, tzinfo=timezone.utc)
    assert to_local_date(stamp.isoformat()) == stamp.astimezone().date()


def test_format_start_time():
    naive = datetime(2024, 6, 1, 18, 5)
    assert format_start_time(naive) == "6:05 PM"
    assert format_start_time(datetime(2024, 6, 1, 0, 15)) == "12:15 AM"
    assert format_start_time(datetime(2024, 6, 1, 12, 0)) == "12:00 PM"


def test_timestamps_with_trimmed_fractions_parse():
    stamp = "2024-06-01T18:30:00.12345+00:00"
    expected = datetime(2024, 6, 1, 18, 30, 0, 123450, tzinfo=timezone.utc)
    assert parse_timestamp(stamp) == expected
    assert parse_timestamp("2024-06-01T18:30:00.1Z") == expected.replace(microsecond=100000)
    assert format_start_time(stamp) == format_start_time(expected)
    assert to_local_date(stamp) == expected.astimezone().date()


def test_muscle_groups_include_other():
    groups = get_muscle_groups()
    assert "Chest" in groups
    assert groups[-1] == "Other"


def test_streak_counts_consecutive_days_including_today():
    dates = [days_ago(0), days_ago(1), days_ago(2)]
    assert calculate_streak(dates, TODAY) == 3


def test_streak_starts_yesterday_when_today_has_no_session():
    assert calculate_streak([days_ago(1)], TODAY) == 1
    assert calculate_streak([days_ago(1), days_ago(2)], TODAY) == 2


def test_streak_stops_at_first_gap():
    dates = [days_ago(0), days_ago(1), days_ago(3), days_ago(4)]
    assert calculate_streak(dates, TODAY) == 2


def test_streak_is_zero_after_a_missed_day():
    assert calculate_streak([days_ago(2)], TODAY) == 0
    assert calculate_streak([], TODAY) == 0


def test_multiple_sessions_on_one_day_count_once():
    dates = [days_ago(0), days_ago(0), days_ago(1)]
    assert calculate_streak(dates, TODAY) == 2
    assert count_workouts_since(dates, TODAY - timedelta(days=1)) == 2


def test_weeks_start_on_monday():
    monday = date(2024, 6, 10)
    assert start_of_week(TODAY) == monday
    assert start_of_week(monday) == monday


def test_sunday_session_not_counted_in_next_week():
    sunday = "2024-06-09"
    monday = date(2024, 6, 10)
    frequency = get_workout_frequency([sunday], monday)
    assert frequency["week"] == 0
    assert frequency["streak"] == 1


def test_workout_frequency():
    dates = [
        "2024-06-12",  # this week
        "2024-06-10",  # this week (Monday)
        "2024-06-03",  # this month
        "2024-02-14",  # this year
        "2023-12-31",  # last year
    ]
    frequency = get_workout_frequency(dates, TODAY)
    assert frequency == {"streak": 1, "week": 2, "month": 3, "year": 4}
