"""
Backup and restore for Workout Tracker
Serializes every table to one JSON document and re-imports it with id remapping
"""

import json
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from database.db_manager import TABLES, clear_table, fetch_table, insert_rows
from database.errors import RestoreFileError
from src.config import RESTORE_CONFIRMATION_PHRASE

logger = logging.getLogger(__name__)

# Keys a backup must carry; settings is optional
REQUIRED_KEYS = ["exercises", "workout_sessions", "sets"]


def create_backup() -> Dict[str, List[Dict]]:
    """
    Read all rows from every table

    Returns:
        {'exercises': [...], 'workout_sessions': [...], 'sets': [...], 'settings': [...]}
    """
    return {
        "exercises": fetch_table("exercises"),
        "workout_sessions": fetch_table("workout_sessions"),
        "sets": fetch_table("sets"),
        "settings": fetch_table("settings"),
    }


def backup_to_json(backup_data: Dict) -> str:
    return json.dumps(backup_data, indent=2, ensure_ascii=False, default=str)


def backup_filename(now: Optional[datetime] = None) -> str:
    """e.g. workout-backup-2024-06-04_18-30-05.json"""
    now = now or datetime.now()
    return f"workout-backup-{now.strftime('%Y-%m-%d_%H-%M-%S')}.json"


def parse_backup(content) -> Dict:
    """
    Parse and validate a backup file

    Args:
        content: File content (str or bytes)

    Returns:
        The backup dictionary

    Raises:
        RestoreFileError: if the file is not a usable backup
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8")

    try:
        backup_data = json.loads(content)
    except ValueError as e:
        raise RestoreFileError(f"Backup file is not valid JSON: {e}") from e

    validate_backup(backup_data)
    return backup_data


def _duplicates(values) -> List:
    return sorted(str(value) for value, count in Counter(values).items() if count > 1)


def validate_backup(backup_data) -> None:
    """
    Check the backup structure before anything is deleted

    Exercises are matched back by name and sessions by date after re-insert,
    so both have to be unique in the file.

    Raises:
        RestoreFileError: describing the first problem found
    """
    if not isinstance(backup_data, dict):
        raise RestoreFileError("Invalid backup file structure.")

    missing = [key for key in REQUIRED_KEYS if not isinstance(backup_data.get(key), list)]
    if missing:
        raise RestoreFileError(f"Invalid backup file structure. Missing: {', '.join(missing)}")

    settings = backup_data.get("settings")
    if settings is not None and not isinstance(settings, list):
        raise RestoreFileError("Invalid backup file structure. 'settings' must be a list")

    duplicate_names = _duplicates(ex.get("name") for ex in backup_data["exercises"])
    if duplicate_names:
        raise RestoreFileError(f"Duplicate exercise names in backup: {', '.join(duplicate_names)}")

    duplicate_dates = _duplicates(s.get("date") for s in backup_data["workout_sessions"])
    if duplicate_dates:
        raise RestoreFileError(
            f"Backup has more than one session on: {', '.join(duplicate_dates)}. "
            "Sessions are matched by date, merge them before restoring."
        )


def _without(row: Dict, *keys) -> Dict:
    return {k: v for k, v in row.items() if k not in keys}


def restore_backup(backup_data: Dict, confirmation: str) -> Dict[str, int]:
    """
    Replace all data with the content of a backup

    Steps: wipe sets, sessions, exercises and settings (in that order), then
    re-insert settings, exercises, sessions and remapped sets. There is no
    rollback; a failure part way leaves the database partially restored.

    Args:
        backup_data: Parsed backup (see create_backup)
        confirmation: Must equal the restore confirmation phrase

    Returns:
        Counts of restored rows per table

    Raises:
        RestoreFileError: wrong confirmation or invalid backup (nothing deleted)
        BackendError: a backend call failed (data may be inconsistent)
    """
    if confirmation != RESTORE_CONFIRMATION_PHRASE:
        raise RestoreFileError("Restore cancelled.")

    validate_backup(backup_data)

    # 1. Clear existing data in reverse order of dependency
    for table in TABLES:
        clear_table(table)
    logger.info("Cleared all tables for restore")

    # 2. Settings go back as they were
    restored_settings = insert_rows("settings", backup_data.get("settings") or [])

    # 3. Exercises, remembering old id -> new id by name
    sanitized_exercises = []
    for index, exercise in enumerate(backup_data["exercises"]):
        row = _without(exercise, "id", "created_at")
        if row.get("is_in_routine") is None:
            row["is_in_routine"] = True
        if row.get("ordering") is None:
            row["ordering"] = index
        sanitized_exercises.append(row)

    new_exercises = insert_rows("exercises", sanitized_exercises)
    new_exercise_ids = {ex["name"]: ex["id"] for ex in new_exercises}
    exercise_id_map = {
        ex.get("id"): new_exercise_ids[ex["name"]]
        for ex in backup_data["exercises"]
        if ex.get("name") in new_exercise_ids
    }

    # 4. Sessions, remembering old id -> new id by date
    sanitized_sessions = []
    for session in backup_data["workout_sessions"]:
        row = _without(session, "id", "created_at")
        row["duration"] = row.get("duration") or None
        sanitized_sessions.append(row)

    new_sessions = insert_rows("workout_sessions", sanitized_sessions)
    new_session_ids = {s["date"]: s["id"] for s in new_sessions}
    session_id_map = {
        s.get("id"): new_session_ids[s["date"]]
        for s in backup_data["workout_sessions"]
        if s.get("date") in new_session_ids
    }

    # 5. Remap sets, dropping any whose session or exercise did not come back
    valid_sets = []
    for set_row in backup_data["sets"]:
        row = _without(set_row, "id", "created_at", "volume", "workout_session_id", "exercise_id")
        row["workout_session_id"] = session_id_map.get(set_row.get("workout_session_id"))
        row["exercise_id"] = exercise_id_map.get(set_row.get("exercise_id"))
        if row["workout_session_id"] and row["exercise_id"]:
            valid_sets.append(row)

    skipped = len(backup_data["sets"]) - len(valid_sets)
    if skipped:
        logger.warning("Skipped %d sets with unknown session or exercise", skipped)

    restored_sets = insert_rows("sets", valid_sets)

    counts = {
        "settings": len(restored_settings),
        "exercises": len(new_exercises),
        "workout_sessions": len(new_sessions),
        "sets": len(restored_sets),
    }
    logger.info("Restore finished: %s", counts)
    return counts
