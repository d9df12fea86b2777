from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from gradewise.core.errors import PersistenceError
from gradewise.services.store import enrollment_id


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def _dumps(data: Dict) -> str:
    return json.dumps(data, default=_json_default, ensure_ascii=False)


def _sort_text(value) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value or "")


class SqliteStore:
    """Local document store: each row keeps the document as JSON next to the
    columns it is queried by."""

    def __init__(self, db_path: str = "gradewise.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS distributions (
              subject_id TEXT PRIMARY KEY,
              body TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS program_rules (
              program_id TEXT PRIMARY KEY,
              body TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS enrollments (
              id TEXT PRIMARY KEY,
              student_id TEXT NOT NULL,
              class_id TEXT NOT NULL,
              body TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS penalties (
              id TEXT PRIMARY KEY,
              seq INTEGER NOT NULL,
              student_id TEXT NOT NULL,
              subject_id TEXT,
              created_at TEXT NOT NULL,
              body TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS absences (
              id TEXT PRIMARY KEY,
              seq INTEGER NOT NULL,
              student_id TEXT NOT NULL,
              subject_id TEXT,
              semester TEXT,
              absence_date TEXT,
              body TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS notifications (
              id TEXT PRIMARY KEY,
              user_id TEXT NOT NULL,
              body TEXT NOT NULL
            );
            """
        )

    @contextmanager
    def _cursor(self, *, write: bool = False) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cur = self.conn.cursor()
            try:
                if write:
                    cur.execute("BEGIN IMMEDIATE")
                yield cur
                if write:
                    cur.execute("COMMIT")
            except sqlite3.Error as exc:
                if write and self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise PersistenceError(f"SQLite storage error: {exc}") from exc
            except BaseException:
                if write and self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
            finally:
                cur.close()

    def _get_body(self, table: str, key_column: str, key: str) -> Optional[Dict]:
        with self._cursor() as cur:
            cur.execute(f"SELECT body FROM {table} WHERE {key_column}=?", (key,))
            row = cur.fetchone()
        return json.loads(row["body"]) if row else None

    def _next_seq(self, cur: sqlite3.Cursor, table: str) -> int:
        cur.execute(f"SELECT COALESCE(MAX(seq), 0) + 1 AS seq FROM {table}")
        return int(cur.fetchone()["seq"])

    def get_distribution(self, subject_id: str) -> Optional[Dict]:
        return self._get_body("distributions", "subject_id", subject_id)

    def set_distribution(self, subject_id: str, data: Dict) -> None:
        with self._cursor(write=True) as cur:
            cur.execute("SELECT body FROM distributions WHERE subject_id=?", (subject_id,))
            row = cur.fetchone()
            merged = {**(json.loads(row["body"]) if row else {}), **data}
            cur.execute(
                """INSERT INTO distributions(subject_id, body) VALUES(?, ?)
                   ON CONFLICT(subject_id) DO UPDATE SET body=excluded.body""",
                (subject_id, _dumps(merged)),
            )

    def get_program_rules(self, program_id: str) -> Optional[Dict]:
        return self._get_body("program_rules", "program_id", program_id)

    def set_program_rules(self, program_id: str, data: Dict) -> None:
        with self._cursor(write=True) as cur:
            cur.execute("SELECT body FROM program_rules WHERE program_id=?", (program_id,))
            row = cur.fetchone()
            merged = {**(json.loads(row["body"]) if row else {}), **data}
            cur.execute(
                """INSERT INTO program_rules(program_id, body) VALUES(?, ?)
                   ON CONFLICT(program_id) DO UPDATE SET body=excluded.body""",
                (program_id, _dumps(merged)),
            )

    def read_for_merge(self, student_id: str, class_id: str) -> Optional[Dict]:
        return self._get_body("enrollments", "id", enrollment_id(student_id, class_id))

    def write_merged(
        self,
        student_id: str,
        class_id: str,
        subject_id: str,
        mark: Dict,
        enrollment_defaults: Optional[Dict] = None,
    ) -> None:
        doc_id = enrollment_id(student_id, class_id)
        with self._cursor(write=True) as cur:
            cur.execute("SELECT body FROM enrollments WHERE id=?", (doc_id,))
            row = cur.fetchone()
            body = json.loads(row["body"]) if row else dict(enrollment_defaults or {})
            marks = dict(body.get("marks") or {})
            marks[subject_id] = mark
            body["marks"] = marks
            body["updatedAt"] = datetime.now(timezone.utc)
            cur.execute(
                """INSERT INTO enrollments(id, student_id, class_id, body) VALUES(?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET body=excluded.body""",
                (doc_id, student_id, class_id, _dumps(body)),
            )

    def add_penalty(self, data: Dict) -> str:
        doc_id = uuid.uuid4().hex
        with self._cursor(write=True) as cur:
            cur.execute(
                """INSERT INTO penalties(id, seq, student_id, subject_id, created_at, body)
                   VALUES(?,?,?,?,?,?)""",
                (
                    doc_id,
                    self._next_seq(cur, "penalties"),
                    data["studentId"],
                    data.get("subjectId"),
                    _sort_text(data.get("createdAt")),
                    _dumps(data),
                ),
            )
        return doc_id

    def list_penalties(self, student_id: Optional[str] = None, subject_id: Optional[str] = None) -> List[Dict]:
        clauses, params = [], []
        if student_id:
            clauses.append("student_id=?")
            params.append(student_id)
        if subject_id:
            clauses.append("subject_id=?")
            params.append(subject_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT id, body FROM penalties {where} ORDER BY created_at DESC, seq DESC",
                params,
            )
            rows = cur.fetchall()
        return [{**json.loads(row["body"]), "id": row["id"]} for row in rows]

    def add_absence(self, data: Dict) -> str:
        doc_id = uuid.uuid4().hex
        with self._cursor(write=True) as cur:
            cur.execute(
                """INSERT INTO absences(id, seq, student_id, subject_id, semester, absence_date, body)
                   VALUES(?,?,?,?,?,?,?)""",
                (
                    doc_id,
                    self._next_seq(cur, "absences"),
                    data["studentId"],
                    data.get("subjectId"),
                    data.get("semester"),
                    _sort_text(data.get("date")),
                    _dumps(data),
                ),
            )
        return doc_id

    def list_absences(
        self,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        semester: Optional[str] = None,
    ) -> List[Dict]:
        clauses, params = [], []
        for column, value in (("student_id", student_id), ("subject_id", subject_id), ("semester", semester)):
            if value:
                clauses.append(f"{column}=?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._cursor() as cur:
            cur.execute(
                f"SELECT id, body FROM absences {where} ORDER BY absence_date DESC, seq DESC",
                params,
            )
            rows = cur.fetchall()
        return [{**json.loads(row["body"]), "id": row["id"]} for row in rows]

    def add_notification(self, data: Dict) -> str:
        doc_id = uuid.uuid4().hex
        with self._cursor(write=True) as cur:
            cur.execute(
                "INSERT INTO notifications(id, user_id, body) VALUES(?,?,?)",
                (doc_id, data["userId"], _dumps(data)),
            )
        return doc_id

    def list_notifications(self, user_id: str) -> List[Dict]:
        with self._cursor() as cur:
            cur.execute("SELECT id, body FROM notifications WHERE user_id=? ORDER BY rowid DESC", (user_id,))
            rows = cur.fetchall()
        return [{**json.loads(row["body"]), "id": row["id"]} for row in rows]

    def close(self) -> None:
        self.conn.close()
