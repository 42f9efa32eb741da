"""
Shared fixtures: an in-memory stand-in for the Supabase client and a
manually advanced clock for timer tests.
"""

import copy
from datetime import datetime, timedelta, timezone

import pytest

# child table -> (parent table, foreign key); used for embedded selects and cascades
FOREIGN_KEYS = {
    ("workout_sessions", "sets"): ("many", "workout_session_id"),
    ("sets", "exercises"): ("one", "exercise_id"),
    ("sets", "workout_sessions"): ("one", "workout_session_id"),
    ("exercises", "sets"): ("many", "exercise_id"),
}

CASCADES = {
    "exercises": [("sets", "exercise_id")],
    "workout_sessions": [("sets", "workout_session_id")],
}


class FakeResponse:
    def __init__(self, data):
        self.data = data
        self.count = len(data)


def _split_top_level(text):
    parts, depth, current = [], 0, ""
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def _parse_select(text):
    """'id, sets!inner(exercise_id)' -> [('id', None, False), ('sets', [...], True)]"""
    fields = []
    for part in _split_top_level(text):
        if "(" in part:
            name = part[:part.index("(")].strip()
            inner = part[part.index("(") + 1:part.rindex(")")]
            is_inner = name.endswith("!inner")
            fields.append((name.replace("!inner", ""), _parse_select(inner), is_inner))
        else:
            fields.append((part, None, False))
    return fields


def _matches(row, op, column, value):
    current = row.get(column)
    if op == "eq":
        return current == value
    if op == "neq":
        return current != value
    if op == "lt":
        return current is not None and current < value
    if op == "lte":
        return current is not None and current <= value
    if op == "gte":
        return current is not None and current >= value
    if op == "in":
        return current in value
    raise ValueError(op)


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.payload = None
        self.filters = []
        self.orders = []
        self.limit_count = None

    # builders -------------------------------------------------------------

    def select(self, columns="*", count=None):
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, data):
        self.operation = "update"
        self.payload = data
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def neq(self, column, value):
        self.filters.append(("neq", column, value))
        return self

    def lt(self, column, value):
        self.filters.append(("lt", column, value))
        return self

    def lte(self, column, value):
        self.filters.append(("lte", column, value))
        return self

    def gte(self, column, value):
        self.filters.append(("gte", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column, desc=False, **kwargs):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    # execution ------------------------------------------------------------

    def execute(self):
        self.db.calls.append((self.table, self.operation, list(self.filters), copy.deepcopy(self.payload)))
        if (self.table, self.operation) in self.db.failures:
            raise Exception(f"simulated failure: {self.operation} on {self.table}")
        handler = getattr(self, f"_execute_{self.operation}")
        return FakeResponse(handler())

    def _base_filters(self):
        return [f for f in self.filters if "." not in f[1]]

    def _matching_rows(self):
        return [
            row for row in self.db.tables[self.table]
            if all(_matches(row, op, col, val) for op, col, val in self._base_filters())
        ]

    def _execute_select(self):
        base_rows = self._matching_rows()
        # ordering works on the table's own columns, selected or not
        for column, desc in reversed(self.orders):
            base_rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)

        rows = []
        for row in base_rows:
            projected = self.db.project(self.table, row, _parse_select(self.columns), self.filters)
            if projected is not None:
                rows.append(projected)

        if self.limit_count is not None:
            rows = rows[:self.limit_count]
        return rows

    def _execute_insert(self):
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        return [self.db.insert(self.table, row) for row in rows]

    def _execute_update(self):
        updated = []
        for row in self._matching_rows():
            if self.table == "exercises" and "name" in self.payload:
                self.db.check_unique_name(self.payload["name"], exclude_id=row["id"])
            row.update(self.payload)
            if self.table == "sets":
                row["volume"] = row["weight"] * row["reps"]
            updated.append(copy.deepcopy(row))
        return updated

    def _execute_delete(self):
        doomed = self._matching_rows()
        for row in doomed:
            self.db.tables[self.table].remove(row)
            for child_table, fk in CASCADES.get(self.table, []):
                self.db.tables[child_table] = [
                    child for child in self.db.tables[child_table] if child[fk] != row["id"]
                ]
        return copy.deepcopy(doomed)


class FakeSupabase:
    """Enough of supabase-py's query builder for the database layer"""

    def __init__(self):
        self.tables = {"exercises": [], "workout_sessions": [], "sets": [], "settings": []}
        self.next_ids = {name: 1 for name in self.tables}
        self.calls = []
        self.failures = set()
        self._clock = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def table(self, name):
        return FakeQuery(self, name)

    def fail_on(self, table, operation):
        self.failures.add((table, operation))

    def calls_for(self, table, operation):
        return [call for call in self.calls if call[0] == table and call[1] == operation]

    def check_unique_name(self, name, exclude_id=None):
        for existing in self.tables["exercises"]:
            if existing["name"] == name and existing["id"] != exclude_id:
                raise Exception('duplicate key value violates unique constraint "exercises_name_key"')

    def insert(self, table, row):
        row = dict(row)
        if table == "exercises":
            self.check_unique_name(row["name"])
            row.setdefault("muscle_group", None)
            row.setdefault("is_in_routine", True)
            row.setdefault("ordering", None)
        if table == "workout_sessions":
            row.setdefault("duration", None)
        if table == "sets":
            row["volume"] = row["weight"] * row["reps"]
        if "id" not in row:
            row["id"] = self.next_ids[table]
        self.next_ids[table] = max(self.next_ids[table], row["id"]) + 1
        if table != "settings":
            self._clock += timedelta(minutes=1)
            row.setdefault("created_at", self._clock.isoformat())
        self.tables[table].append(row)
        return copy.deepcopy(row)

    def project(self, table, row, fields, filters, prefix=""):
        result = {}
        for name, subfields, is_inner in fields:
            if subfields is None:
                if name == "*":
                    result.update(copy.deepcopy(row))
                else:
                    result[name] = row.get(name)
                continue

            kind, fk = FOREIGN_KEYS[(table, name)]
            path = f"{prefix}{name}."
            child_filters = [
                (op, col[len(path):], val) for op, col, val in filters
                if col.startswith(path) and "." not in col[len(path):]
            ]
            if kind == "many":
                children = [c for c in self.tables[name] if c[fk] == row["id"]]
            else:
                children = [c for c in self.tables[name] if c["id"] == row.get(fk)]
            children = [
                c for c in children
                if all(_matches(c, op, col, val) for op, col, val in child_filters)
            ]
            projected = [self.project(name, c, subfields, filters, path) for c in children]

            if is_inner and not projected:
                return None
            if kind == "many":
                result[name] = projected
            else:
                result[name] = projected[0] if projected else None
        return result

    # seeding helpers ------------------------------------------------------

    def add_exercise(self, name, muscle_group="Chest", is_in_routine=True, ordering=None):
        return self.insert("exercises", {
            "name": name, "muscle_group": muscle_group,
            "is_in_routine": is_in_routine, "ordering": ordering,
        })

    def add_session(self, session_date, duration=None):
        return self.insert("workout_sessions", {"date": session_date, "duration": duration})

    def add_set(self, session, exercise, set_number, weight, reps):
        return self.insert("sets", {
            "workout_session_id": session["id"], "exercise_id": exercise["id"],
            "set_number": set_number, "weight": weight, "reps": reps,
        })


class ManualClock:
    """Monotonic clock that only moves when the test calls advance()"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds=1):
        self.now += seconds


@pytest.fixture
def fake_db(monkeypatch):
    """Route every database call to an empty in-memory backend"""
    db = FakeSupabase()
    monkeypatch.setattr("database.db_manager.get_supabase", lambda: db)
    return db


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def default_settings():
    return {"id": None, "rest_timer_duration": 90, "play_sound_on_timer_end": True}
