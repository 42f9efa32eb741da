"""
Dashboard aggregation for Workout Tracker
Turns sessions with nested sets into chart-ready series and plotly figures
"""

from typing import Dict, List, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from utils.calculations import calculate_session_volume, set_volume
from utils.helpers import format_date

UNKNOWN_MUSCLE_GROUP = 'Other'

SET_COLUMNS = ['session_id', 'date', 'exercise_id', 'exercise_name', 'muscle_group', 'volume']


def sets_frame(sessions: List[Dict]) -> pd.DataFrame:
    """
    Flatten sessions (as returned by get_sessions_with_sets) into one row per set

    Returns:
        DataFrame with session_id, date, exercise_id, exercise_name, muscle_group, volume
    """
    rows = []
    for session in sessions:
        for s in session.get('sets') or []:
            exercise = s.get('exercises') or {}
            rows.append({
                'session_id': session.get('id'),
                'date': session['date'],
                'exercise_id': exercise.get('id', s.get('exercise_id')),
                'exercise_name': exercise.get('name'),
                'muscle_group': exercise.get('muscle_group') or UNKNOWN_MUSCLE_GROUP,
                'volume': set_volume(s),
            })
    return pd.DataFrame(rows, columns=SET_COLUMNS)


def _series(labels, values) -> Dict[str, list]:
    return {'labels': list(labels), 'values': [float(v) for v in values]}


def muscle_group_volumes(sessions: List[Dict]) -> Dict[str, list]:
    """Total volume per muscle group, groups in order of first appearance"""
    df = sets_frame(sessions)
    if df.empty:
        return _series([], [])
    totals = df.groupby('muscle_group', sort=False)['volume'].sum()
    return _series(totals.index, totals.values)


def session_volumes(sessions: List[Dict]) -> Dict[str, list]:
    """Total volume of every session, in session order (empty sessions count as 0)"""
    labels = []
    values = []
    for session in sessions:
        labels.append(format_date(session['date']))
        values.append(calculate_session_volume(session.get('sets') or []))
    return _series(labels, values)


def exercise_volumes(sessions: List[Dict], exercise_id: int) -> Dict[str, list]:
    """Volume of one exercise per session; sessions without it are left out"""
    labels = []
    values = []
    for session in sessions:
        volume = sum(
            set_volume(s)
            for s in session.get('sets') or []
            if (s.get('exercises') or {}).get('id', s.get('exercise_id')) == exercise_id
        )
        if volume > 0:
            labels.append(format_date(session['date']))
            values.append(volume)
    return _series(labels, values)


def session_durations(sessions: List[Dict]) -> Dict[str, list]:
    """Session duration in minutes; sessions without a recorded duration are left out"""
    labels = []
    values = []
    for session in sessions:
        duration = session.get('duration')
        if duration:
            labels.append(format_date(session['date']))
            values.append(round(duration / 60, 1))
    return _series(labels, values)


class Dashboard:
    """
    Series for the dashboard page

    All series are computed on load; choosing another exercise only
    recomputes the per-exercise series.
    """

    def __init__(self, sessions: List[Dict], exercises: List[Dict]):
        self.sessions = sessions
        self.exercises = exercises
        self.muscle_groups = muscle_group_volumes(sessions)
        self.overall_volume = session_volumes(sessions)
        self.durations = session_durations(sessions)
        self.selected_exercise_id: Optional[int] = None
        self.exercise_progress = _series([], [])
        if exercises:
            self.select_exercise(exercises[0]['id'])

    @property
    def is_empty(self) -> bool:
        return not self.sessions

    @property
    def selected_exercise_name(self) -> Optional[str]:
        for exercise in self.exercises:
            if exercise['id'] == self.selected_exercise_id:
                return exercise['name']
        return None

    def select_exercise(self, exercise_id: int):
        self.selected_exercise_id = exercise_id
        self.exercise_progress = exercise_volumes(self.sessions, exercise_id)


# ============================================================================
# Charts
# ============================================================================

def muscle_group_chart(series: Dict[str, list]) -> go.Figure:
    fig = px.pie(names=series['labels'], values=series['values'], title='Volume by Muscle Group')
    return fig


def line_chart(series: Dict[str, list], title: str, y_label: str = 'Volume (kg)') -> go.Figure:
    fig = px.line(x=series['labels'], y=series['values'], markers=True, title=title)
    fig.update_layout(xaxis_title='Date', yaxis_title=y_label)
    return fig


def overall_volume_chart(series: Dict[str, list]) -> go.Figure:
    return line_chart(series, 'Total Volume (kg)')


def exercise_progress_chart(series: Dict[str, list], exercise_name: str) -> go.Figure:
    return line_chart(series, f'Volume for {exercise_name} (kg)')


def duration_chart(series: Dict[str, list]) -> go.Figure:
    fig = px.bar(x=series['labels'], y=series['values'], title='Workout Duration (min)')
    fig.update_layout(xaxis_title='Date', yaxis_title='Minutes')
    return fig
