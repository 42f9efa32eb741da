"""
Session editor for Workout Tracker

Builds and edits the table of exercises and sets of one workout session,
coordinating volume calculation, previous-performance lookup, personal
record checks, the session timer and rest timers.
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Hashable, List, Optional

from database import db_manager
from utils.calculations import (
    calculate_change, calculate_total_volume, format_change, format_volume,
    is_new_pr, parse_set_input, to_float, to_int
)
from utils.helpers import format_date, format_short_date, to_local_date
from utils.timers import Clock, RestTimers, SessionTimer

logger = logging.getLogger(__name__)

WEIGHT_PLACEHOLDER = 'kg'
REPS_PLACEHOLDER = 'reps'

_set_keys = itertools.count(1)


class EditorCommand(Enum):
    ADD_SET = 'add_set'
    DELETE_SET = 'delete_set'
    DELETE_EXERCISE = 'delete_exercise'
    UPDATE_SET = 'update_set'


@dataclass
class EditorEvent:
    """A user action on one exercise row"""
    command: EditorCommand
    exercise_id: int
    set_index: Optional[int] = None
    weight: Optional[str] = None
    reps: Optional[str] = None


@dataclass
class SetEntry:
    weight: str = ''
    reps: str = ''
    weight_placeholder: str = WEIGHT_PLACEHOLDER
    reps_placeholder: str = REPS_PLACEHOLDER
    is_pr: bool = False
    key: int = field(default_factory=lambda: next(_set_keys))

    @property
    def is_filled(self) -> bool:
        return self.weight.strip() != '' and self.reps.strip() != ''


@dataclass
class ExerciseRow:
    exercise_id: int
    name: str
    muscle_group: Optional[str] = None
    sets: List[SetEntry] = field(default_factory=list)
    previous_volume: float = 0.0
    previous_date: Optional[str] = None
    volume: float = 0.0
    change: Optional[Dict] = None

    @property
    def volume_display(self) -> str:
        return format_volume(self.volume)

    @property
    def previous_display(self) -> str:
        if self.previous_volume > 0:
            return f"{format_volume(self.previous_volume)} - {format_short_date(self.previous_date)}"
        return 'N/A'

    @property
    def change_display(self):
        """(text, colour) of the change vs previous performance"""
        return format_change(self.change)


class RequestTracker:
    """
    Generation counter per key

    Every request takes a token; only the result carrying the newest token
    for its key may be applied, so a slow old response never overwrites a
    newer one.
    """

    def __init__(self):
        self._generations: Dict[Hashable, int] = {}

    def issue(self, key: Hashable) -> int:
        token = self._generations.get(key, 0) + 1
        self._generations[key] = token
        return token

    def is_current(self, key: Hashable, token: int) -> bool:
        return self._generations.get(key) == token


def _format_number(value) -> str:
    if value is None or value == '':
        return ''
    number = to_float(value)
    return str(int(number)) if number == int(number) else str(number)


def build_set_entries(recorded_sets: List[Dict], previous_sets: List[Dict]) -> List[SetEntry]:
    """
    Set inputs for one exercise row

    Recorded sets come first with their values. Baseline sets beyond the
    recorded ones are appended as empty inputs using the baseline values as
    placeholders. With neither, a single empty set.
    """
    entries = []
    for s in recorded_sets:
        weight = _format_number(s.get('weight'))
        reps = _format_number(s.get('reps'))
        entries.append(SetEntry(
            weight=weight,
            reps=reps,
            weight_placeholder=weight or WEIGHT_PLACEHOLDER,
            reps_placeholder=reps or REPS_PLACEHOLDER,
        ))

    for s in previous_sets[len(recorded_sets):]:
        entries.append(SetEntry(
            weight_placeholder=_format_number(s.get('weight')) or WEIGHT_PLACEHOLDER,
            reps_placeholder=_format_number(s.get('reps')) or REPS_PLACEHOLDER,
        ))

    if not entries:
        entries.append(SetEntry())
    return entries


class SessionEditor:
    """
    State of the workout session being created or edited

    Owns its timers; `close()` (or `save()`) stops all of them.
    """

    def __init__(self, clock: Optional[Clock] = None, settings: Optional[Dict] = None,
                 today: Optional[date] = None):
        self.clock = clock or time.monotonic
        self.settings = settings
        self.today = today
        self.session_id: Optional[int] = None
        self.session_date: date = today or date.today()
        self.session_created_at: Optional[str] = None
        self.rows: List[ExerciseRow] = []
        self.session_timer = SessionTimer(self.clock)
        self.rest_timers: Optional[RestTimers] = None
        self.pr_requests = RequestTracker()
        self.lookup_requests = RequestTracker()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_editing(self) -> bool:
        return self.session_id is not None

    @property
    def title(self) -> str:
        return f"Workout Session - {format_date(self.session_date)}"

    def load(self, session_id: Optional[int] = None):
        """
        Build the table for a new session (session_id None) or an existing one

        New sessions list the routine. Existing sessions list the routine plus
        any other exercise recorded in them.
        """
        self.close()

        if self.settings is None:
            self.settings = db_manager.get_settings()
        self.rest_timers = RestTimers(
            duration=self.settings['rest_timer_duration'],
            play_sound=self.settings['play_sound_on_timer_end'],
            clock=self.clock,
        )

        self.session_id = session_id
        self.rows = []
        self.session_created_at = None
        recorded_sets: List[Dict] = []
        self.session_timer = SessionTimer(self.clock)

        if session_id is not None:
            session = db_manager.get_session(session_id)
            if session is None:
                raise KeyError(f"Workout session {session_id} not found")
            self.session_date = to_local_date(session['date'])
            self.session_created_at = session.get('created_at')
            self.session_timer.seed(session.get('duration'))
            recorded_sets = db_manager.get_session_sets(session_id)
        else:
            self.session_date = self.today or date.today()

        exercises = db_manager.get_routine_exercises()
        listed = {ex['id'] for ex in exercises}
        extra_ids = []
        for s in recorded_sets:
            if s['exercise_id'] not in listed and s['exercise_id'] not in extra_ids:
                extra_ids.append(s['exercise_id'])
        exercises = exercises + db_manager.get_exercises_by_ids(extra_ids)

        for exercise in exercises:
            sets_for_exercise = sorted(
                (s for s in recorded_sets if s['exercise_id'] == exercise['id']),
                key=lambda s: s.get('set_number') or 0,
            )
            self._build_row(exercise, sets_for_exercise)

        self.session_timer.start()
        logger.info("Loaded %s with %d exercises", self.title, len(self.rows))

    def _build_row(self, exercise: Dict, recorded_sets: List[Dict]) -> ExerciseRow:
        row = ExerciseRow(
            exercise_id=exercise['id'],
            name=exercise['name'],
            muscle_group=exercise.get('muscle_group'),
        )
        self.rows.append(row)

        token = self.lookup_requests.issue(exercise['id'])
        previous = self._fetch_previous(exercise['id'])
        row.sets = build_set_entries(recorded_sets, previous['sets'] if previous else [])
        self.apply_previous(exercise['id'], token, previous)
        return row

    def _fetch_previous(self, exercise_id: int) -> Optional[Dict]:
        if self.is_editing:
            return db_manager.get_previous_performance(
                exercise_id,
                exclude_session_id=self.session_id,
                before_date=self.session_date.isoformat(),
                before_created_at=self.session_created_at,
            )
        return db_manager.get_previous_performance(exercise_id)

    def apply_previous(self, exercise_id: int, token: int, previous: Optional[Dict]) -> bool:
        """
        Store a previous-performance result on its row

        Returns:
            False if the result is stale or the row is gone
        """
        if not self.lookup_requests.is_current(exercise_id, token):
            return False
        row = self.get_row(exercise_id)
        if row is None:
            return False

        row.previous_volume = previous['volume'] if previous else 0.0
        row.previous_date = previous['date'] if previous else None
        self.recalculate(row)
        return True

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def get_row(self, exercise_id: int) -> Optional[ExerciseRow]:
        for row in self.rows:
            if row.exercise_id == exercise_id:
                return row
        return None

    def recalculate(self, row: ExerciseRow):
        row.volume = calculate_total_volume((s.weight, s.reps) for s in row.sets)
        row.change = calculate_change(row.volume, row.previous_volume)

    def dispatch(self, event: EditorEvent) -> Optional[str]:
        """
        Apply a user action

        Returns:
            A message for the user when the action was refused, else None
        """
        row = self.get_row(event.exercise_id)
        if row is None:
            return None

        if event.command is EditorCommand.ADD_SET:
            self.add_set(row)
        elif event.command is EditorCommand.DELETE_SET:
            return self.delete_set(row)
        elif event.command is EditorCommand.DELETE_EXERCISE:
            self.delete_exercise(row)
        elif event.command is EditorCommand.UPDATE_SET:
            self.update_set(row, event.set_index, event.weight, event.reps)
        return None

    def add_set(self, row: ExerciseRow) -> SetEntry:
        """Append an empty set, reusing the last set's placeholders"""
        last = row.sets[-1] if row.sets else SetEntry()
        entry = SetEntry(
            weight_placeholder=last.weight_placeholder,
            reps_placeholder=last.reps_placeholder,
        )
        row.sets.append(entry)
        return entry

    def delete_set(self, row: ExerciseRow) -> Optional[str]:
        """Remove the last set; every exercise keeps at least one"""
        if len(row.sets) <= 1:
            return 'Each exercise must have at least one set.'

        removed = row.sets.pop()
        self._forget_set(removed)
        self.recalculate(row)
        return None

    def delete_exercise(self, row: ExerciseRow):
        """Remove an exercise from this session's table"""
        for entry in row.sets:
            self._forget_set(entry)
        self.rows.remove(row)

    def _forget_set(self, entry: SetEntry):
        self.pr_requests.issue(entry.key)
        if self.rest_timers is not None:
            self.rest_timers.cancel(entry.key)

    def update_set(self, row: ExerciseRow, set_index: int, weight=None, reps=None):
        """
        Record new input for one set

        Recomputes the row volume, re-checks personal records and, once both
        weight and reps are filled, (re)starts the set's rest countdown.
        """
        entry = row.sets[set_index]
        if weight is not None:
            entry.weight = str(weight)
        if reps is not None:
            entry.reps = str(reps)

        self.recalculate(row)
        self.check_prs(row)

        if entry.is_filled and self.rest_timers is not None:
            self.rest_timers.start(entry.key)

    def add_new_exercise(self, name: str, muscle_group: Optional[str] = None) -> ExerciseRow:
        """
        Create a catalog exercise and add it to the current session

        Raises:
            BackendError: if the exercise could not be created
        """
        exercise = db_manager.add_exercise(name, muscle_group)
        row = ExerciseRow(
            exercise_id=exercise['id'],
            name=exercise['name'],
            muscle_group=exercise.get('muscle_group'),
            sets=[SetEntry()],
        )
        self.rows.append(row)
        return row

    # ------------------------------------------------------------------
    # Personal records
    # ------------------------------------------------------------------

    def check_prs(self, row: ExerciseRow):
        """Query the best set and flag every filled set of the row"""
        for entry in row.sets:
            weight = to_float(entry.weight)
            reps = to_int(entry.reps)
            token = self.pr_requests.issue(entry.key)
            if weight > 0 and reps > 0:
                best = db_manager.get_best_set(row.exercise_id)
                self.apply_pr_result(entry.key, token, is_new_pr(weight, reps, best))
            else:
                self.apply_pr_result(entry.key, token, False)

    def apply_pr_result(self, set_key: int, token: int, is_pr: bool) -> bool:
        """
        Set a PR flag if `token` is still the newest check for the set

        Returns:
            True if applied
        """
        if not self.pr_requests.is_current(set_key, token):
            return False
        entry = self._find_set(set_key)
        if entry is None:
            return False
        entry.is_pr = is_pr
        return True

    def _find_set(self, set_key: int) -> Optional[SetEntry]:
        for row in self.rows:
            for entry in row.sets:
                if entry.key == set_key:
                    return entry
        return None

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def collect_sets(self, session_id: int) -> List[Dict]:
        """
        Set rows to store; sets with a blank or non-numeric weight or reps are skipped

        set_number counts the stored sets of each exercise from 1.
        """
        sets = []
        for row in self.rows:
            set_number = 1
            for entry in row.sets:
                weight = parse_set_input(entry.weight)
                reps = parse_set_input(entry.reps, as_int=True)
                if weight is None or reps is None:
                    continue
                sets.append({
                    'workout_session_id': session_id,
                    'exercise_id': row.exercise_id,
                    'set_number': set_number,
                    'weight': weight,
                    'reps': reps,
                })
                set_number += 1
        return sets

    def save(self) -> int:
        """
        Store the session with its duration and sets

        Editing replaces all the session's sets (delete, then insert).
        There is no transaction around the two steps.

        Returns:
            The session ID

        Raises:
            BackendError: on failure; the session timer keeps running
        """
        duration = self.session_timer.stop()
        try:
            session_id = self.session_id
            if session_id is None:
                session_id = db_manager.create_session(self.session_date, duration)
                self.session_id = session_id
            else:
                db_manager.delete_session_sets(session_id)
                db_manager.update_session_duration(session_id, duration)

            db_manager.save_sets(self.collect_sets(session_id))
        except Exception:
            self.session_timer.resume()
            raise

        if self.rest_timers is not None:
            self.rest_timers.cancel_all()
        logger.info("Saved workout session %s (%s s)", session_id, duration)
        return session_id

    def delete_session(self):
        """Delete the edited session and everything in it"""
        if self.session_id is None:
            return
        db_manager.delete_session(self.session_id)
        self.close()

    def close(self):
        """Stop every timer this editor started"""
        self.session_timer.pause()
        if self.rest_timers is not None:
            self.rest_timers.cancel_all()
