"""
Database management module for Workout Tracker
Handles all Supabase PostgreSQL database operations

Tables: exercises, workout_sessions, sets, settings
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from supabase import Client

from database.errors import BackendError
from src.client import get_supabase_client
from src.config import DEFAULT_PLAY_SOUND, DEFAULT_REST_TIMER_DURATION
from utils.calculations import calculate_session_volume
from utils.helpers import format_start_time

logger = logging.getLogger(__name__)

# Dependent tables first: this is the wipe order used by restore
TABLES = ["sets", "workout_sessions", "exercises", "settings"]


def get_supabase() -> Client:
    """Get Supabase client"""
    return get_supabase_client()


def _execute(query, error_message: str):
    """
    Run a query builder once

    Raises:
        BackendError: with `error_message` if the request fails
    """
    try:
        return query.execute()
    except Exception as e:
        logger.error("%s: %s", error_message, e)
        raise BackendError(error_message, e) from e


# ============================================================================
# EXERCISES
# ============================================================================

def get_all_exercises(order_by: str = "ordering") -> List[Dict]:
    """
    Get the whole exercise catalog

    Args:
        order_by: Column to sort on ('ordering' for routine order, 'id' for creation order)

    Returns:
        List of exercise dictionaries
    """
    supabase = get_supabase()

    result = _execute(
        supabase.table("exercises")
        .select("*")
        .order(order_by)
        .order("id"),
        "Error fetching exercises",
    )

    return result.data if result.data else []


def get_routine_exercises() -> List[Dict]:
    """Exercises in the current routine, in display order"""
    supabase = get_supabase()

    result = _execute(
        supabase.table("exercises")
        .select("*")
        .eq("is_in_routine", True)
        .order("ordering")
        .order("id"),
        "Error fetching routine exercises",
    )

    return result.data if result.data else []


def get_exercises_by_ids(exercise_ids: List[int]) -> List[Dict]:
    if not exercise_ids:
        return []

    supabase = get_supabase()
    result = _execute(
        supabase.table("exercises")
        .select("*")
        .in_("id", list(exercise_ids))
        .order("ordering")
        .order("id"),
        "Error fetching exercises",
    )
    return result.data if result.data else []


def add_exercise(name: str, muscle_group: Optional[str] = None, is_in_routine: Optional[bool] = None) -> Dict:
    """
    Add an exercise to the catalog

    Args:
        name: Exercise name (unique)
        muscle_group: Muscle group
        is_in_routine: Routine membership; left to the backend default when None

    Returns:
        The inserted exercise row

    Raises:
        BackendError: if the insert fails (usually because the name already exists)
    """
    supabase = get_supabase()

    data = {"name": name.strip()}
    if muscle_group:
        data["muscle_group"] = muscle_group
    if is_in_routine is not None:
        data["is_in_routine"] = is_in_routine

    result = _execute(
        supabase.table("exercises").insert(data),
        "Failed to add exercise. It might already exist.",
    )

    if not result.data:
        raise BackendError("Failed to add exercise. It might already exist.")
    return result.data[0]


def rename_exercise(exercise_id: int, new_name: str):
    supabase = get_supabase()
    _execute(
        supabase.table("exercises")
        .update({"name": new_name.strip()})
        .eq("id", exercise_id),
        "Error updating exercise.",
    )


def update_exercise_routine(exercise_id: int, is_in_routine: bool):
    """Move an exercise into or out of the routine"""
    supabase = get_supabase()
    _execute(
        supabase.table("exercises")
        .update({"is_in_routine": is_in_routine})
        .eq("id", exercise_id),
        "Error updating routine",
    )


def update_exercise_ordering(exercise_id: int, ordering: int):
    supabase = get_supabase()
    _execute(
        supabase.table("exercises")
        .update({"ordering": ordering})
        .eq("id", exercise_id),
        "Error reordering",
    )


def delete_exercise(exercise_id: int):
    """
    Permanently delete an exercise

    Sets referencing it are removed by the backend's cascade.
    """
    supabase = get_supabase()
    _execute(
        supabase.table("exercises").delete().eq("id", exercise_id),
        "Error deleting exercise.",
    )


# ============================================================================
# WORKOUT SESSIONS
# ============================================================================

def get_session(session_id: int) -> Optional[Dict]:
    supabase = get_supabase()

    result = _execute(
        supabase.table("workout_sessions")
        .select("id, date, created_at, duration")
        .eq("id", session_id)
        .limit(1),
        "Error fetching workout session",
    )

    if result.data:
        return result.data[0]
    return None


def get_all_sessions() -> List[Dict]:
    """All sessions, most recent first"""
    supabase = get_supabase()

    result = _execute(
        supabase.table("workout_sessions")
        .select("id, date, created_at, duration")
        .order("date", desc=True)
        .order("created_at", desc=True),
        "Error fetching sessions",
    )

    return result.data if result.data else []


def get_calendar_events() -> List[Dict]:
    """
    Calendar entries for all sessions

    Returns:
        List of {'title': 'Workout 6:05 PM', 'start': 'YYYY-MM-DD', 'session_id'}
    """
    events = []
    for session in get_all_sessions():
        title = "Workout"
        if session.get("created_at"):
            title = f"Workout {format_start_time(session['created_at'])}"
        events.append({
            "title": title,
            "start": session["date"],
            "session_id": session["id"],
        })
    return events


def get_session_dates() -> List[str]:
    """Dates of all sessions (duplicates included), most recent first"""
    supabase = get_supabase()

    result = _execute(
        supabase.table("workout_sessions")
        .select("date")
        .order("date", desc=True),
        "Error fetching session dates",
    )

    return [row["date"] for row in result.data] if result.data else []


def get_sessions_with_sets() -> List[Dict]:
    """
    Get every session with its sets and each set's exercise, oldest first

    Returns:
        List of sessions: {'id', 'date', 'duration', 'sets': [{..., 'exercises': {...}}]}
    """
    supabase = get_supabase()

    result = _execute(
        supabase.table("workout_sessions")
        .select("id, date, duration, sets(*, exercises(id, name, muscle_group))")
        .order("date")
        .order("created_at"),
        "Error fetching data for charts",
    )

    return result.data if result.data else []


def create_session(session_date: date, duration: Optional[int] = None) -> int:
    """
    Create a workout session

    Returns:
        ID of the new session
    """
    supabase = get_supabase()

    data = {"date": session_date.isoformat()}
    if duration is not None:
        data["duration"] = duration

    result = _execute(
        supabase.table("workout_sessions").insert(data),
        "Failed to save session.",
    )

    if not result.data:
        raise BackendError("Failed to save session.")
    return result.data[0]["id"]


def update_session_duration(session_id: int, duration: int):
    supabase = get_supabase()
    _execute(
        supabase.table("workout_sessions")
        .update({"duration": duration})
        .eq("id", session_id),
        "Failed to save session.",
    )


def delete_session(session_id: int):
    """
    Delete a session and its sets

    Sets go first; a failure after that leaves an empty session behind.
    """
    supabase = get_supabase()

    _execute(
        supabase.table("sets").delete().eq("workout_session_id", session_id),
        "Failed to delete workout sets.",
    )
    _execute(
        supabase.table("workout_sessions").delete().eq("id", session_id),
        "Failed to delete workout session.",
    )


# ============================================================================
# SETS
# ============================================================================

def get_session_sets(session_id: int) -> List[Dict]:
    """All sets of a session, grouped by exercise in set order"""
    supabase = get_supabase()

    result = _execute(
        supabase.table("sets")
        .select("*")
        .eq("workout_session_id", session_id)
        .order("exercise_id")
        .order("set_number"),
        "Error fetching workout sets",
    )

    return result.data if result.data else []


def delete_session_sets(session_id: int):
    supabase = get_supabase()
    _execute(
        supabase.table("sets").delete().eq("workout_session_id", session_id),
        "Failed to save workout details.",
    )


def save_sets(sets: List[Dict]):
    """
    Insert set rows

    Args:
        sets: Dictionaries with workout_session_id, exercise_id, set_number, weight, reps
    """
    if not sets:
        return

    supabase = get_supabase()
    _execute(
        supabase.table("sets").insert(sets),
        "Failed to save workout details.",
    )


def get_best_set(exercise_id: int) -> Optional[Dict]:
    """
    Get the personal record set of an exercise

    Returns:
        {'weight', 'reps'} of the heaviest set (ties broken by reps) or None
    """
    supabase = get_supabase()

    result = _execute(
        supabase.table("sets")
        .select("weight, reps")
        .eq("exercise_id", exercise_id)
        .order("weight", desc=True)
        .order("reps", desc=True)
        .limit(1),
        "Error checking personal record",
    )

    if result.data:
        return result.data[0]
    return None


def get_personal_records() -> List[Dict]:
    """
    Get personal records for all exercises

    Returns:
        List of {'exercise_id', 'exercise_name', 'weight', 'reps'}, catalog order,
        exercises without sets left out
    """
    records = []
    for exercise in get_all_exercises():
        best_set = get_best_set(exercise["id"])
        if best_set:
            records.append({
                "exercise_id": exercise["id"],
                "exercise_name": exercise["name"],
                "weight": best_set["weight"],
                "reps": best_set["reps"],
            })
    return records


def _sessions_with_exercise(supabase, exercise_id: int, exclude_session_id: Optional[int]):
    query = supabase.table("workout_sessions")\
        .select("id, date, created_at, sets!inner(exercise_id)")\
        .eq("sets.exercise_id", exercise_id)
    if exclude_session_id is not None:
        query = query.neq("id", exclude_session_id)
    return query


def _latest_session(query) -> Optional[Dict]:
    result = _execute(
        query.order("date", desc=True).order("created_at", desc=True).limit(1),
        "Error fetching previous workout",
    )
    return result.data[0] if result.data else None


def get_previous_performance(exercise_id: int, exclude_session_id: Optional[int] = None,
                             before_date: Optional[str] = None,
                             before_created_at: Optional[str] = None) -> Optional[Dict]:
    """
    Get all sets from the most recent session containing an exercise

    Args:
        exercise_id: Exercise ID
        exclude_session_id: Session being edited (never its own baseline)
        before_date: Only consider sessions dated on or before this 'YYYY-MM-DD'
        before_created_at: With before_date, sessions on that same day only
            count when created before this timestamp

    Returns:
        Dictionary with:
        - 'session_id': baseline session ID
        - 'date': baseline session date
        - 'sets': list of sets with set_number, weight, reps, volume
        - 'volume': total volume of those sets
        Or None if the exercise was never performed
    """
    supabase = get_supabase()

    # First, find the most recent session with at least one set of this exercise
    if before_date is not None and before_created_at is not None:
        last_session = _latest_session(
            _sessions_with_exercise(supabase, exercise_id, exclude_session_id)
            .eq("date", before_date)
            .lt("created_at", before_created_at)
        )
        if last_session is None:
            last_session = _latest_session(
                _sessions_with_exercise(supabase, exercise_id, exclude_session_id)
                .lt("date", before_date)
            )
    else:
        query = _sessions_with_exercise(supabase, exercise_id, exclude_session_id)
        if before_date is not None:
            query = query.lte("date", before_date)
        last_session = _latest_session(query)

    if last_session is None:
        return None

    # Then get all sets of this exercise from that session
    sets_result = _execute(
        supabase.table("sets")
        .select("set_number, weight, reps, volume")
        .eq("workout_session_id", last_session["id"])
        .eq("exercise_id", exercise_id)
        .order("set_number"),
        "Error fetching previous workout sets",
    )

    sets = sets_result.data if sets_result.data else []
    return {
        "session_id": last_session["id"],
        "date": last_session["date"],
        "sets": sets,
        "volume": calculate_session_volume(sets),
    }


# ============================================================================
# SETTINGS
# ============================================================================

def get_settings() -> Dict:
    """
    Get the settings row

    Returns:
        Dictionary with 'id' (None when no row exists yet), 'rest_timer_duration'
        and 'play_sound_on_timer_end'; missing values fall back to the configured defaults
    """
    supabase = get_supabase()

    result = _execute(
        supabase.table("settings").select("*").order("id").limit(1),
        "Error fetching settings",
    )

    row = result.data[0] if result.data else {}
    duration = row.get("rest_timer_duration")
    play_sound = row.get("play_sound_on_timer_end")
    return {
        "id": row.get("id"),
        "rest_timer_duration": int(duration) if duration else DEFAULT_REST_TIMER_DURATION,
        "play_sound_on_timer_end": DEFAULT_PLAY_SOUND if play_sound is None else bool(play_sound),
    }


def update_settings(rest_timer_duration: int, play_sound_on_timer_end: bool) -> Dict:
    """Update the settings row, creating it when the table is empty"""
    supabase = get_supabase()

    current = get_settings()
    data = {
        "rest_timer_duration": int(rest_timer_duration),
        "play_sound_on_timer_end": bool(play_sound_on_timer_end),
    }

    if current["id"] is None:
        query = supabase.table("settings").insert(data)
    else:
        query = supabase.table("settings").update(data).eq("id", current["id"])

    _execute(query, "Failed to save settings.")
    return {"id": current["id"], **data}


# ============================================================================
# WHOLE TABLES (backup / restore)
# ============================================================================

def fetch_table(table: str) -> List[Dict]:
    """Every row of a table"""
    supabase = get_supabase()
    result = _execute(supabase.table(table).select("*"), f"Error reading {table}")
    return result.data if result.data else []


def clear_table(table: str):
    """Delete every row of a table"""
    supabase = get_supabase()
    # PostgREST refuses unfiltered deletes; ids are never 0
    _execute(supabase.table(table).delete().neq("id", 0), f"Error clearing {table}")


def insert_rows(table: str, rows: List[Dict]) -> List[Dict]:
    """
    Insert rows into a table

    Returns:
        The inserted rows as stored (with their new ids)
    """
    if not rows:
        return []

    supabase = get_supabase()
    result = _execute(supabase.table(table).insert(rows), f"Error restoring {table}")
    return result.data if result.data else []
