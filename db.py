# db.py - SurveyDesk
# SQLite storage for survey definitions and their responses.

import os
import sqlite3
from typing import List

try:
    from config import DB_PATH
except Exception:
    DB_PATH = os.environ.get("SURVEYDESK_DB_PATH", "surveydesk.db")


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=? LIMIT 1",
        (table,),
    )
    return cur.fetchone() is not None


def _cols(conn: sqlite3.Connection, table: str) -> List[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return [r["name"] for r in cur.fetchall()]


def _add_column_if_missing(conn: sqlite3.Connection, table: str, col_def_sql: str) -> None:
    """
    col_def_sql example: "user_agent TEXT"
    """
    col_name = col_def_sql.strip().split()[0]
    existing = _cols(conn, table)
    if col_name in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def_sql}")


def init_db() -> None:
    """
    Safe init:
    - Creates tables if missing
    - Adds new columns if missing
    - Adds indexes
    """
    with get_conn() as conn:
        cur = conn.cursor()

        if not _table_exists(conn, "surveys"):
            cur.execute(
                """
                CREATE TABLE surveys (
                  pk INTEGER PRIMARY KEY AUTOINCREMENT,
                  id TEXT NOT NULL UNIQUE,
                  title TEXT NOT NULL,
                  description TEXT,
                  json TEXT NOT NULL,
                  is_active INTEGER NOT NULL DEFAULT 1,
                  response_count INTEGER NOT NULL DEFAULT 0,
                  created_at TEXT,
                  updated_at TEXT
                )
                """
            )

        if not _table_exists(conn, "survey_responses"):
            cur.execute(
                """
                CREATE TABLE survey_responses (
                  pk INTEGER PRIMARY KEY AUTOINCREMENT,
                  survey_pk INTEGER NOT NULL,
                  response_id TEXT NOT NULL,
                  data TEXT NOT NULL,
                  submitted_at TEXT,
                  FOREIGN KEY (survey_pk) REFERENCES surveys(pk) ON DELETE CASCADE
                )
                """
            )

        # Columns added after the first release
        _add_column_if_missing(conn, "survey_responses", "ip_address TEXT")
        _add_column_if_missing(conn, "survey_responses", "user_agent TEXT")

        cur.execute("CREATE INDEX IF NOT EXISTS idx_surveys_created_at ON surveys(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_surveys_is_active ON surveys(is_active)")
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_responses_survey ON survey_responses(survey_pk, pk)"
        )
        conn.commit()
