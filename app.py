"""
Workout Tracker - Main Application
Records workout sessions and shows progress, built with Streamlit
"""

import io
import logging
import math
import struct
import wave

import streamlit as st

from database import db_manager
from database.backup import (
    backup_filename, backup_to_json, create_backup, parse_backup, restore_backup
)
from database.errors import BackendError, RestoreFileError
from database.routine_manager import RoutineManager
from src.config import RESTORE_CONFIRMATION_PHRASE, configure_logging
from utils.dashboard import (
    Dashboard, duration_chart, exercise_progress_chart, muscle_group_chart,
    overall_volume_chart
)
from utils.helpers import format_date, get_muscle_groups, get_workout_frequency
from utils.session_editor import EditorCommand, EditorEvent, SessionEditor

configure_logging()
logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title="Workout Tracker",
    page_icon="🏋️",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_data
def alert_sound() -> bytes:
    """Short beep played when a rest countdown ends"""
    rate = 22050
    frames = b"".join(
        struct.pack("<h", int(12000 * math.sin(2 * math.pi * 880 * i / rate)))
        for i in range(int(rate * 0.4))
    )
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(frames)
    return buffer.getvalue()


def show_backend_error(error: BackendError):
    st.error(error.message)


# ============================================================================
# PAGE 1: WORKOUT (home + session editor)
# ============================================================================

def open_session_editor(session_id=None):
    """Start a new session (None) or edit an existing one"""
    previous = st.session_state.get("editor")
    if previous is not None:
        previous.close()

    editor = SessionEditor()
    try:
        editor.load(session_id)
    except BackendError as e:
        editor.close()
        show_backend_error(e)
        return
    except KeyError:
        editor.close()
        st.error("Workout session not found.")
        return
    st.session_state.editor = editor
    st.session_state.confirm_delete_exercise = None
    st.session_state.confirm_delete_session = False


SET_INPUT_PREFIXES = ("weight_", "reps_")


def close_session_editor():
    """Stop the editor's timers and forget its set inputs"""
    editor = st.session_state.get("editor")
    if editor is not None:
        editor.close()
    st.session_state.editor = None
    for key in list(st.session_state.keys()):
        if key.startswith(SET_INPUT_PREFIXES):
            del st.session_state[key]


def render_home():
    """Streak badges, calendar, personal records"""
    st.header("🏋️ Workouts")

    if st.button("➕ New Workout", type="primary"):
        open_session_editor()
        st.rerun()

    try:
        frequency = get_workout_frequency(db_manager.get_session_dates())
        events = db_manager.get_calendar_events()
        records = db_manager.get_personal_records()
    except BackendError as e:
        show_backend_error(e)
        return

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("🔥 Day Streak", frequency["streak"])
    col2.metric("💪 This Week", frequency["week"])
    col3.metric("🗓️ This Month", frequency["month"])
    col4.metric("📅 This Year", frequency["year"])

    cal_col, pr_col = st.columns([3, 2])

    with cal_col:
        st.subheader("🗓️ Calendar")
        if not events:
            st.info("No workouts logged yet.")
        for event in events:
            info_col, open_col = st.columns([4, 1])
            with info_col:
                st.markdown(f"**{format_date(event['start'])}** · {event['title']}")
            with open_col:
                if st.button("Open", key=f"open_session_{event['session_id']}", use_container_width=True):
                    open_session_editor(event["session_id"])
                    st.rerun()

    with pr_col:
        st.subheader("🏆 Personal Records")
        if not records:
            st.info("No records yet. Go lift!")
        for record in records:
            st.markdown(f"{record['exercise_name']}: **{record['weight']} kg x {record['reps']} reps**")


def _on_set_input(editor: SessionEditor, exercise_id: int, set_index: int, set_key: int):
    try:
        editor.dispatch(EditorEvent(
            EditorCommand.UPDATE_SET,
            exercise_id,
            set_index=set_index,
            weight=st.session_state.get(f"weight_{set_key}", ""),
            reps=st.session_state.get(f"reps_{set_key}", ""),
        ))
    except BackendError as e:
        st.session_state.editor_error = e.message


def render_exercise_row(editor: SessionEditor, row):
    """One exercise: its sets, volume, previous performance and actions"""
    with st.container(border=True):
        head_col, volume_col, previous_col, change_col = st.columns([3, 1, 2, 2])
        with head_col:
            st.markdown(f"**{row.name}**" + (f"  ·  {row.muscle_group}" if row.muscle_group else ""))
        with volume_col:
            st.markdown(f"Volume: `{row.volume_display}`")
        with previous_col:
            st.markdown(f"Previous: {row.previous_display}")
        with change_col:
            text, colour = row.change_display
            st.markdown(f":{colour}[{text}]" if colour else text)

        for index, entry in enumerate(row.sets):
            weight_key = f"weight_{entry.key}"
            reps_key = f"reps_{entry.key}"
            if weight_key not in st.session_state:
                st.session_state[weight_key] = entry.weight
            if reps_key not in st.session_state:
                st.session_state[reps_key] = entry.reps

            weight_col, reps_col, badge_col = st.columns([2, 2, 1])
            with weight_col:
                st.text_input(
                    f"Set {index + 1} weight", key=weight_key, placeholder=entry.weight_placeholder,
                    label_visibility="collapsed",
                    on_change=_on_set_input, args=(editor, row.exercise_id, index, entry.key),
                )
            with reps_col:
                st.text_input(
                    f"Set {index + 1} reps", key=reps_key, placeholder=entry.reps_placeholder,
                    label_visibility="collapsed",
                    on_change=_on_set_input, args=(editor, row.exercise_id, index, entry.key),
                )
            with badge_col:
                if entry.is_pr:
                    st.markdown(":red[**New PR!**]")

        add_col, del_set_col, del_ex_col = st.columns(3)
        with add_col:
            if st.button("Add Set", key=f"add_set_{row.exercise_id}", use_container_width=True):
                editor.dispatch(EditorEvent(EditorCommand.ADD_SET, row.exercise_id))
                st.rerun()
        with del_set_col:
            if st.button("Delete Set", key=f"delete_set_{row.exercise_id}", use_container_width=True):
                message = editor.dispatch(EditorEvent(EditorCommand.DELETE_SET, row.exercise_id))
                if message:
                    st.warning(message)
                else:
                    st.rerun()
        with del_ex_col:
            if st.button("Delete Exercise", key=f"delete_exercise_{row.exercise_id}", use_container_width=True):
                st.session_state.confirm_delete_exercise = row.exercise_id
                st.rerun()

        if st.session_state.get("confirm_delete_exercise") == row.exercise_id:
            st.warning("Are you sure you want to remove this exercise from the session?")
            yes_col, no_col = st.columns(2)
            with yes_col:
                if st.button("✅ Remove", key=f"confirm_remove_{row.exercise_id}", type="primary"):
                    editor.dispatch(EditorEvent(EditorCommand.DELETE_EXERCISE, row.exercise_id))
                    st.session_state.confirm_delete_exercise = None
                    st.rerun()
            with no_col:
                if st.button("❌ Cancel", key=f"cancel_remove_{row.exercise_id}"):
                    st.session_state.confirm_delete_exercise = None
                    st.rerun()


@st.fragment(run_every=1)
def render_timers(editor: SessionEditor):
    """Session clock and rest countdowns, refreshed every second"""
    clock_col, toggle_col = st.columns([3, 1])
    with clock_col:
        state = "" if editor.session_timer.running else " (paused)"
        st.markdown(f"### ⏱️ {editor.session_timer.display}{state}")
    with toggle_col:
        label = "⏸️ Pause" if editor.session_timer.running else "▶️ Resume"
        if st.button(label, key="toggle_session_timer", use_container_width=True):
            editor.session_timer.toggle()
            st.rerun(scope="fragment")

    if editor.rest_timers is None:
        return

    alerts = editor.rest_timers.take_alerts()

    labels = {}
    for row in editor.rows:
        for index, entry in enumerate(row.sets):
            labels[entry.key] = f"{row.name} · set {index + 1}"

    for key, timer in editor.rest_timers.timers.items():
        st.info(f"Rest {labels.get(key, '')}: {timer.display}")

    if alerts:
        st.audio(alert_sound(), format="audio/wav", autoplay=True)


def render_session_editor(editor: SessionEditor):
    st.header(f"📝 {editor.title}")

    if st.button("⬅️ Back to home"):
        close_session_editor()
        st.rerun()

    error = st.session_state.pop("editor_error", None)
    if error:
        st.error(error)

    render_timers(editor)

    for row in list(editor.rows):
        render_exercise_row(editor, row)

    with st.expander("➕ Add a new exercise"):
        with st.form("add_exercise_to_session", clear_on_submit=True):
            name = st.text_input("Exercise name")
            muscle_group = st.selectbox("Muscle group", get_muscle_groups())
            if st.form_submit_button("Add"):
                if not name.strip():
                    st.error("Please enter an exercise name.")
                else:
                    try:
                        row = editor.add_new_exercise(name, muscle_group)
                        st.session_state.routine_manager = None
                        st.success(f'Exercise "{row.name}" added successfully!')
                    except BackendError as e:
                        show_backend_error(e)

    save_col, delete_col = st.columns(2)
    with save_col:
        if st.button("💾 Save Workout", type="primary", use_container_width=True):
            try:
                editor.save()
            except BackendError as e:
                show_backend_error(e)
            else:
                st.session_state.flash = "Workout session saved successfully!"
                st.session_state.dashboard = None
                close_session_editor()
                st.rerun()

    with delete_col:
        if editor.is_editing:
            if st.button("🗑️ Delete Workout", use_container_width=True):
                st.session_state.confirm_delete_session = True
            if st.session_state.get("confirm_delete_session"):
                st.warning("Delete this workout and all its sets?")
                if st.button("✅ Delete", key="confirm_delete_session_btn", type="primary"):
                    try:
                        editor.delete_session()
                    except BackendError as e:
                        show_backend_error(e)
                    else:
                        st.session_state.flash = "Workout session deleted."
                        st.session_state.dashboard = None
                        close_session_editor()
                        st.rerun()


def render_workout_page():
    flash = st.session_state.pop("flash", None)
    if flash:
        st.success(flash)

    editor = st.session_state.get("editor")
    if editor is None:
        render_home()
    else:
        render_session_editor(editor)


# ============================================================================
# PAGE 2: DASHBOARD
# ============================================================================

def render_dashboard_page():
    st.header("📈 Dashboard")

    if st.session_state.get("dashboard") is None:
        try:
            st.session_state.dashboard = Dashboard(
                db_manager.get_sessions_with_sets(),
                db_manager.get_all_exercises(order_by="id"),
            )
        except BackendError as e:
            show_backend_error(e)
            return

    dashboard = st.session_state.dashboard

    if dashboard.is_empty:
        st.info("No workouts logged yet.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(overall_volume_chart(dashboard.overall_volume), use_container_width=True)
    with col2:
        st.plotly_chart(muscle_group_chart(dashboard.muscle_groups), use_container_width=True)

    if dashboard.exercises:
        exercise_names = {ex["id"]: ex["name"] for ex in dashboard.exercises}
        selected = st.selectbox(
            "Exercise",
            list(exercise_names.keys()),
            index=list(exercise_names.keys()).index(dashboard.selected_exercise_id),
            format_func=lambda exercise_id: exercise_names[exercise_id],
        )
        if selected != dashboard.selected_exercise_id:
            dashboard.select_exercise(selected)
        st.plotly_chart(
            exercise_progress_chart(dashboard.exercise_progress, dashboard.selected_exercise_name),
            use_container_width=True,
        )

    if dashboard.durations["values"]:
        st.plotly_chart(duration_chart(dashboard.durations), use_container_width=True)

    if st.button("🔄 Refresh"):
        st.session_state.dashboard = None
        st.rerun()


# ============================================================================
# PAGE 3: MANAGE EXERCISES
# ============================================================================

def _routine_list(exercises, selected_id, key_prefix, on_select):
    for ex in exercises:
        label = f"{ex['name']}  ·  {ex.get('muscle_group') or '-'}"
        button_type = "primary" if ex["id"] == selected_id else "secondary"
        if st.button(label, key=f"{key_prefix}_{ex['id']}", type=button_type, use_container_width=True):
            on_select(ex["id"])
            st.rerun()


def render_manage_exercises_page():
    st.header("📚 Manage Exercises")

    manager = st.session_state.get("routine_manager")
    if manager is None:
        manager = RoutineManager()
        try:
            manager.load()
        except BackendError as e:
            show_backend_error(e)
            return
        st.session_state.routine_manager = manager

    st.subheader("Routine")
    routine_col, actions_col, available_col = st.columns([3, 1, 3])

    with routine_col:
        st.markdown("**In routine**")
        _routine_list(manager.routine, manager.selected_routine_id, "routine", manager.select_routine_item)

    with available_col:
        st.markdown("**Available**")
        _routine_list(manager.available, manager.selected_available_id, "available", manager.select_available_item)

    with actions_col:
        actions = [
            ("⬅️ Add", manager.add_to_routine),
            ("➡️ Remove", manager.remove_from_routine),
            ("⬆️ Up", manager.move_up),
            ("⬇️ Down", manager.move_down),
        ]
        for label, action in actions:
            if st.button(label, key=f"routine_action_{label}", use_container_width=True):
                try:
                    action()
                except BackendError as e:
                    show_backend_error(e)
                else:
                    st.rerun()

    st.subheader("All exercises")

    with st.form("create_exercise_form", clear_on_submit=True):
        name_col, group_col = st.columns(2)
        with name_col:
            name = st.text_input("Exercise name *")
        with group_col:
            muscle_group = st.selectbox("Muscle group *", get_muscle_groups(), index=None,
                                        placeholder="Choose Muscle Group...")
        if st.form_submit_button("➕ Create", type="primary"):
            try:
                manager.create_exercise(name, muscle_group)
                st.rerun()
            except ValueError as e:
                st.error(str(e))
            except BackendError as e:
                show_backend_error(e)

    for ex in manager.all_exercises:
        info_col, edit_col, delete_col = st.columns([4, 1, 1])
        with info_col:
            st.markdown(f"**{ex['name']}**  ·  {ex.get('muscle_group') or '-'}")
        with edit_col:
            if st.button("Edit", key=f"edit_exercise_{ex['id']}", use_container_width=True):
                st.session_state.editing_exercise_id = ex["id"]
                st.rerun()
        with delete_col:
            if st.button("Delete", key=f"delete_catalog_{ex['id']}", use_container_width=True):
                st.session_state.confirm_delete_catalog_id = ex["id"]
                st.rerun()

        if st.session_state.get("editing_exercise_id") == ex["id"]:
            with st.form(f"rename_exercise_{ex['id']}"):
                new_name = st.text_input("Enter new exercise name:", value=ex["name"])
                save_col, cancel_col = st.columns(2)
                with save_col:
                    if st.form_submit_button("💾 Save", type="primary"):
                        try:
                            manager.rename_exercise(ex["id"], new_name)
                            st.session_state.editing_exercise_id = None
                            st.rerun()
                        except BackendError as e:
                            show_backend_error(e)
                with cancel_col:
                    if st.form_submit_button("❌ Cancel"):
                        st.session_state.editing_exercise_id = None
                        st.rerun()

        if st.session_state.get("confirm_delete_catalog_id") == ex["id"]:
            st.warning(
                f'Are you sure you want to permanently delete "{ex["name"]}"? '
                "This will also delete all associated workout data."
            )
            yes_col, no_col = st.columns(2)
            with yes_col:
                if st.button("✅ Delete", key=f"confirm_delete_catalog_{ex['id']}", type="primary"):
                    try:
                        manager.delete_exercise(ex["id"])
                    except BackendError as e:
                        show_backend_error(e)
                    else:
                        st.session_state.confirm_delete_catalog_id = None
                        st.session_state.dashboard = None
                        st.rerun()
            with no_col:
                if st.button("❌ Cancel", key=f"cancel_delete_catalog_{ex['id']}"):
                    st.session_state.confirm_delete_catalog_id = None
                    st.rerun()


# ============================================================================
# PAGE 4: BACKUP & RESTORE
# ============================================================================

def render_backup_page():
    st.header("💾 Backup & Restore")

    st.subheader("Backup")
    if st.button("Prepare backup"):
        try:
            st.session_state.backup_json = backup_to_json(create_backup())
            st.session_state.backup_name = backup_filename()
        except BackendError as e:
            st.error("Backup failed. Check the logs for details.")
            logger.error("Backup failed: %s", e)

    if st.session_state.get("backup_json"):
        st.download_button(
            "⬇️ Download backup",
            data=st.session_state.backup_json,
            file_name=st.session_state.backup_name,
            mime="application/json",
        )

    st.subheader("Restore")
    uploaded_file = st.file_uploader("Backup file", type=["json"])
    confirmation = st.text_input(
        f"Type '{RESTORE_CONFIRMATION_PHRASE}' to confirm. This will completely wipe all existing data."
    )

    if st.button("Restore Data", type="primary", disabled=uploaded_file is None):
        restore_uploaded_backup(uploaded_file.getvalue(), confirmation)


def restore_uploaded_backup(content: bytes, confirmation: str) -> bool:
    """
    Restore an uploaded backup file and report the outcome on the page

    Returns:
        True if every table was restored
    """
    try:
        backup_data = parse_backup(content)
        with st.spinner("Restoring..."):
            counts = restore_backup(backup_data, confirmation)
    except RestoreFileError as e:
        st.error(f"Restore failed: {e}")
        return False
    except BackendError as e:
        logger.error("Restore failed: %s", e)
        st.error(f"Restore failed: {e.message}. Data may be in an inconsistent state.")
        return False

    close_session_editor()
    for key in ("dashboard", "routine_manager"):
        st.session_state[key] = None
    st.success(
        f"Restore successful! {counts['exercises']} exercises, "
        f"{counts['workout_sessions']} sessions, {counts['sets']} sets."
    )
    return True


# ============================================================================
# MAIN APP ROUTING
# ============================================================================

def render_settings_sidebar():
    """Rest timer settings"""
    st.sidebar.markdown("### ⚙️ Settings")
    try:
        user_settings = db_manager.get_settings()
    except BackendError as e:
        show_backend_error(e)
        return

    duration = st.sidebar.number_input(
        "Rest timer (seconds)", min_value=1, step=5,
        value=max(1, int(user_settings["rest_timer_duration"])),
    )
    play_sound = st.sidebar.checkbox("Play sound when rest ends", value=user_settings["play_sound_on_timer_end"])

    if (duration, play_sound) != (user_settings["rest_timer_duration"], user_settings["play_sound_on_timer_end"]):
        try:
            user_settings = db_manager.update_settings(duration, play_sound)
        except BackendError as e:
            show_backend_error(e)
            return

        editor = st.session_state.get("editor")
        if editor is not None and editor.rest_timers is not None:
            editor.settings = user_settings
            editor.rest_timers.duration = user_settings["rest_timer_duration"]
            editor.rest_timers.play_sound = user_settings["play_sound_on_timer_end"]


def main():
    """Main application entry point"""
    st.sidebar.title("🏋️ Workout Tracker")

    if "current_page" not in st.session_state:
        st.session_state.current_page = "Workout"

    pages = {
        "Workout": "📝",
        "Dashboard": "📈",
        "Manage Exercises": "📚",
        "Backup & Restore": "💾",
    }

    for page_name, icon in pages.items():
        is_active = st.session_state.current_page == page_name
        button_type = "primary" if is_active else "secondary"

        if st.sidebar.button(
            f"{icon} {page_name}",
            key=f"nav_{page_name}",
            use_container_width=True,
            type=button_type
        ):
            if page_name != "Workout":
                # Leaving the editor stops its timers
                close_session_editor()
            st.session_state.current_page = page_name
            st.rerun()

    st.sidebar.markdown("---")
    render_settings_sidebar()

    page = st.session_state.current_page
    if page == "Workout":
        render_workout_page()
    elif page == "Dashboard":
        render_dashboard_page()
    elif page == "Manage Exercises":
        render_manage_exercises_page()
    elif page == "Backup & Restore":
        render_backup_page()


if __name__ == "__main__":
    main()
