"""
Routine management for Workout Tracker
Keeps the in-routine / available views of the exercise catalog and their ordering
"""

import logging
from typing import Dict, List, Optional

from database import db_manager
from database.errors import BackendError

logger = logging.getLogger(__name__)


class RoutineManager:
    """
    Owns the routine page state: the two lists and the current selection

    Only one item is selected at a time, either in the routine list or in
    the available list.
    """

    def __init__(self):
        self.routine: List[Dict] = []
        self.available: List[Dict] = []
        self.all_exercises: List[Dict] = []
        self.selected_routine_id: Optional[int] = None
        self.selected_available_id: Optional[int] = None

    def load(self):
        """Reload the catalog from the backend"""
        exercises = db_manager.get_all_exercises(order_by="ordering")
        self.all_exercises = exercises
        self.routine = [ex for ex in exercises if ex.get("is_in_routine")]
        self.available = [ex for ex in exercises if not ex.get("is_in_routine")]

        routine_ids = {ex["id"] for ex in self.routine}
        available_ids = {ex["id"] for ex in self.available}
        if self.selected_routine_id not in routine_ids:
            self.selected_routine_id = None
        if self.selected_available_id not in available_ids:
            self.selected_available_id = None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_routine_item(self, exercise_id: int):
        self.selected_routine_id = exercise_id
        self.selected_available_id = None

    def select_available_item(self, exercise_id: int):
        self.selected_available_id = exercise_id
        self.selected_routine_id = None

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_to_routine(self) -> bool:
        """Move the selected available exercise to the end of the routine"""
        if self.selected_available_id is None:
            return False

        exercise = self._find(self.available, self.selected_available_id)
        db_manager.update_exercise_routine(exercise["id"], True)

        self.available.remove(exercise)
        exercise["is_in_routine"] = True
        self.routine.append(exercise)
        self.selected_available_id = None
        return True

    def remove_from_routine(self) -> bool:
        """Move the selected routine exercise back to the available list"""
        if self.selected_routine_id is None:
            return False

        exercise = self._find(self.routine, self.selected_routine_id)
        db_manager.update_exercise_routine(exercise["id"], False)

        self.routine.remove(exercise)
        exercise["is_in_routine"] = False
        self.available.append(exercise)
        self.selected_routine_id = None
        return True

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def move_up(self) -> bool:
        return self.move_selected(-1)

    def move_down(self) -> bool:
        return self.move_selected(1)

    def move_selected(self, direction: int) -> bool:
        """
        Move the selected routine item one position and persist the new order

        Every routine item gets `ordering` = its index, one update per item.
        There is no transaction: if an update fails the earlier ones stay.

        Args:
            direction: -1 for up, 1 for down

        Returns:
            False if nothing is selected or the move would leave the list
        """
        if self.selected_routine_id is None:
            return False

        current_index = next(
            (i for i, ex in enumerate(self.routine) if ex["id"] == self.selected_routine_id),
            None,
        )
        if current_index is None:
            return False

        new_index = current_index + direction
        if new_index < 0 or new_index >= len(self.routine):
            return False

        item = self.routine.pop(current_index)
        self.routine.insert(new_index, item)

        for index, exercise in enumerate(self.routine):
            db_manager.update_exercise_ordering(exercise["id"], index)
            exercise["ordering"] = index
        return True

    # ------------------------------------------------------------------
    # Catalog CRUD
    # ------------------------------------------------------------------

    def create_exercise(self, name: str, muscle_group: str) -> Dict:
        """
        Create a catalog exercise outside the routine

        Raises:
            ValueError: if name or muscle group is missing
            BackendError: if the insert fails (e.g. the name exists)
        """
        if not name or not name.strip() or not muscle_group:
            raise ValueError("Please provide a name and muscle group.")

        try:
            exercise = db_manager.add_exercise(name, muscle_group, is_in_routine=False)
        except BackendError as e:
            raise BackendError("Error creating exercise. It might already exist.", e.original) from e

        self.load()
        return exercise

    def rename_exercise(self, exercise_id: int, new_name: str) -> bool:
        if not new_name or not new_name.strip():
            return False
        db_manager.rename_exercise(exercise_id, new_name)
        self.load()
        return True

    def delete_exercise(self, exercise_id: int):
        """Delete an exercise and, through the backend cascade, its workout data"""
        db_manager.delete_exercise(exercise_id)
        logger.info("Deleted exercise %s", exercise_id)
        self.load()

    @staticmethod
    def _find(exercises: List[Dict], exercise_id: int) -> Dict:
        for exercise in exercises:
            if exercise["id"] == exercise_id:
                return exercise
        raise KeyError(exercise_id)
