# surveys.py - SurveyDesk
# Survey definitions + submitted responses (intake and reads only)

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from db import get_conn


def _now() -> str:
    return iso_utc(datetime.now(timezone.utc))


def iso_utc(dt: datetime) -> str:
    """2024-05-01T09:30:00.123Z, the shape browsers produce with toISOString()."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _load_json(raw: Optional[str], default: Any = None) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except Exception:
        return default


def _survey_row_to_dict(r) -> Dict[str, Any]:
    return {
        "id": r["id"],
        "title": r["title"],
        "description": r["description"] or "",
        "json": _load_json(r["json"]),
        "isActive": bool(r["is_active"]),
        "responseCount": int(r["response_count"] or 0),
        "createdAt": r["created_at"],
        "updatedAt": r["updated_at"],
    }


def _response_row_to_dict(r) -> Dict[str, Any]:
    return {
        "responseId": r["response_id"],
        "data": _load_json(r["data"], {}),
        "submittedAt": r["submitted_at"],
        "ipAddress": r["ip_address"],
        "userAgent": r["user_agent"],
    }


# -------------------------------------------------
# Surveys
# -------------------------------------------------

def create_survey(
    survey_id: str,
    title: str,
    definition: Any,
    description: str = "",
    is_active: bool = True,
) -> Dict[str, Any]:
    survey_id = (survey_id or "").strip()
    title = (title or "").strip()
    if not survey_id or not title or definition is None:
        raise ValueError("Missing required fields: id, title, and json are required")
    if get_survey(survey_id) is not None:
        raise ValueError("Survey with this ID already exists")

    now = _now()
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO surveys (id, title, description, json, is_active, response_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                survey_id,
                title,
                (description or "").strip(),
                json.dumps(definition, ensure_ascii=False),
                1 if is_active else 0,
                now,
                now,
            ),
        )
        conn.commit()
    return get_survey(survey_id)


def get_survey(survey_id: str) -> Optional[Dict[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("SELECT * FROM surveys WHERE id=? LIMIT 1", (str(survey_id),))
        r = cur.fetchone()
    if not r:
        return None
    return _survey_row_to_dict(r)


def list_surveys(limit: int = 500) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT *
            FROM surveys
            ORDER BY created_at DESC, pk DESC
            LIMIT ?
            """,
            (int(limit),),
        )
        rows = cur.fetchall()
    return [_survey_row_to_dict(r) for r in rows]


# -------------------------------------------------
# Responses
# -------------------------------------------------

def add_response(
    survey_id: str,
    data: Any,
    response_id: Optional[str] = None,
    submitted_at: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> str:
    """
    Appends one response to a survey and returns its responseId.
    Raises ValueError when the survey does not exist.
    """
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute("SELECT pk FROM surveys WHERE id=? LIMIT 1", (str(survey_id),))
        s = cur.fetchone()
        if not s:
            raise ValueError("Survey not found")

        rid = str(response_id).strip() if response_id not in (None, "") else str(int(time.time() * 1000))
        cur.execute(
            """
            INSERT INTO survey_responses (survey_pk, response_id, data, submitted_at, ip_address, user_agent)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                int(s["pk"]),
                rid,
                json.dumps(data, ensure_ascii=False),
                submitted_at or _now(),
                ip_address,
                user_agent,
            ),
        )
        cur.execute(
            """
            UPDATE surveys
            SET response_count = (SELECT COUNT(*) FROM survey_responses WHERE survey_pk=?),
                updated_at = ?
            WHERE pk=?
            """,
            (int(s["pk"]), _now(), int(s["pk"])),
        )
        conn.commit()
    return rid


def list_responses(survey_id: str) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT r.*
            FROM survey_responses r
            JOIN surveys s ON s.pk = r.survey_pk
            WHERE s.id=?
            ORDER BY r.pk ASC
            """,
            (str(survey_id),),
        )
        rows = cur.fetchall()
    return [_response_row_to_dict(r) for r in rows]
