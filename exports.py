# exports.py - SurveyDesk
# XLSX + CSV + JSON exports of survey responses
# The workbook flattens nested answers into one column per answer path and
# ships a Codebook sheet explaining every generated header.

from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils import get_column_letter

import surveys as srv
from flatten import FallbackFlattener, ModelFlattener, RawFlattener, ResponseRecord
from labels import last_name, resolve_labels
from schema import Element, QuestionMeta, build_identifier_index, normalize, question_headers

logger = logging.getLogger(__name__)

RESPONSE_ID_HEADER = "Response ID"
SUBMITTED_AT_HEADER = "Submitted At"
CODEBOOK_HEADERS = ["Header", "Path", "Name", "Title"]
RESPONSES_SHEET = "Survey Responses"
CODEBOOK_SHEET = "Codebook"
MAX_COLUMN_WIDTH = 50

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportError(Exception):
    pass


class SurveyNotFound(ExportError):
    pass


class NothingToExport(ExportError):
    pass


@dataclass
class CodebookEntry:
    header: str
    path: str
    name: str
    title: str

    def to_row(self) -> List[str]:
        return [self.header, self.path, self.name, self.title]


@dataclass
class SheetData:
    headers: List[str]
    rows: List[Dict[str, str]]
    codebook: List[CodebookEntry]
    paths: List[str] = field(default_factory=list)


@dataclass
class ExportFile:
    filename: str
    mimetype: str
    content: bytes
    rows: int = 0


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _sanitize(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", text or "")


def export_filename(title: str, kind: str, ext: str, today: Optional[date] = None) -> str:
    """
    e.g. Customer_Feedback_responses_2024-05-01.xlsx
    """
    day = (today or _today()).isoformat()
    return f"{_sanitize(title)}_{kind}_{day}.{ext}"


def _iso_timestamp(value: Any) -> str:
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return srv.iso_utc(value)
    s = str(value).strip()
    try:
        return srv.iso_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        return s


def _records(responses: Sequence[Any]) -> List[ResponseRecord]:
    return [r if isinstance(r, ResponseRecord) else ResponseRecord.from_dict(r) for r in responses]


# -------------------------------------------------
# Sheet assembly
# -------------------------------------------------

def assemble_sheet(
    responses: Sequence[Any],
    index: Dict[str, QuestionMeta],
    flattener: Any = None,
    roots: Tuple[Element, ...] = (),
) -> SheetData:
    """
    One row per response, one column per answer path seen in any response.
    Columns follow the survey's question order; blanks where a response
    has no value for a path.
    """
    flattener = flattener or RawFlattener()
    records = _records(responses)

    flat_rows: List[Tuple[ResponseRecord, Dict[str, str]]] = []
    all_paths = set()
    for rec in records:
        flat = flattener.flatten(rec, roots)
        all_paths.update(flat.keys())
        flat_rows.append((rec, flat))

    label_by_path, dynamic_headers = resolve_labels(
        all_paths, index, reserved=(RESPONSE_ID_HEADER, SUBMITTED_AT_HEADER)
    )
    paths = list(label_by_path.keys())
    headers = [RESPONSE_ID_HEADER, SUBMITTED_AT_HEADER] + dynamic_headers

    rows: List[Dict[str, str]] = []
    for rec, flat in flat_rows:
        row = {
            RESPONSE_ID_HEADER: rec.response_id or "",
            SUBMITTED_AT_HEADER: _iso_timestamp(rec.submitted_at),
        }
        for p in paths:
            row[label_by_path[p]] = flat.get(p, "")
        rows.append(row)

    codebook = []
    for p in paths:
        name = last_name(p)
        meta = index.get(name)
        codebook.append(
            CodebookEntry(
                header=label_by_path[p],
                path=p,
                name=name,
                title=meta.title if meta is not None else "",
            )
        )

    return SheetData(headers=headers, rows=rows, codebook=codebook, paths=paths)


def column_widths(headers: Sequence[str], rows: Sequence[Dict[str, str]]) -> List[int]:
    widths = []
    for h in headers:
        longest = max([len(str(h))] + [len(str(r.get(h, "") or "")) for r in rows])
        widths.append(min(longest + 2, MAX_COLUMN_WIDTH))
    return widths


# -------------------------------------------------
# XLSX
# -------------------------------------------------

def _put(ws, row: int, col: int, value: Any) -> None:
    text = "" if value is None else str(value)
    cell = ws.cell(row=row, column=col)
    cell.value = ILLEGAL_CHARACTERS_RE.sub("", text)
    # answers are data, never formulas
    if cell.data_type == "f":
        cell.data_type = "s"


def _write_table(ws, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    for c, h in enumerate(headers, start=1):
        _put(ws, 1, c, h)
    for r, values in enumerate(rows, start=2):
        for c, v in enumerate(values, start=1):
            _put(ws, r, c, v)
    ws.auto_filter.ref = ws.dimensions


def build_workbook(sheet: SheetData) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = RESPONSES_SHEET
    _write_table(ws, sheet.headers, [[row.get(h, "") for h in sheet.headers] for row in sheet.rows])
    for i, width in enumerate(column_widths(sheet.headers, sheet.rows), start=1):
        ws.column_dimensions[get_column_letter(i)].width = width

    wc = wb.create_sheet(CODEBOOK_SHEET)
    _write_table(wc, CODEBOOK_HEADERS, [e.to_row() for e in sheet.codebook])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _load_export_source(survey_id: str) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    survey = srv.get_survey(survey_id)
    if not survey:
        raise SurveyNotFound("Survey not found")
    responses = srv.list_responses(survey_id)
    if not responses:
        raise NothingToExport("No responses to export")
    return survey, responses


def export_workbook(survey_id: str, mode: str = "model") -> ExportFile:
    """
    mode="model": answers rendered through the survey definition (choice
    texts), falling back to raw data per response.
    mode="raw": stored answer data flattened as-is.
    """
    survey, responses = _load_export_source(survey_id)
    roots = normalize(survey.get("json"))
    index = build_identifier_index(roots)
    if not index:
        logger.info("survey %s has no indexed questions; headers will be raw paths", survey_id)

    if mode == "raw":
        flattener = RawFlattener()
        kind = "responses_raw"
    else:
        flattener = FallbackFlattener(ModelFlattener(), RawFlattener())
        kind = "responses"

    sheet = assemble_sheet(responses, index, flattener=flattener, roots=roots)
    content = build_workbook(sheet)
    logger.info(
        "exported %d responses x %d columns for survey %s (%s)",
        len(sheet.rows),
        len(sheet.headers),
        survey_id,
        flattener.name,
    )
    return ExportFile(
        filename=export_filename(survey.get("title") or "", kind, "xlsx"),
        mimetype=XLSX_MIMETYPE,
        content=content,
        rows=len(sheet.rows),
    )


# -------------------------------------------------
# Legacy CSV (one column per question; matrix rows as name.row)
# -------------------------------------------------

def _csv_cell(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(_csv_cell(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_responses_csv(definition: Any, responses: Sequence[Any]) -> str:
    columns = question_headers(definition)
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    w.writerow([c.title for c in columns])
    for rec in _records(responses):
        data = rec.data if isinstance(rec.data, dict) else {}
        row = []
        for c in columns:
            if c.row is not None:
                answer = data.get(c.question)
                row.append(_csv_cell(answer.get(str(c.row))) if isinstance(answer, dict) else "")
            else:
                row.append(_csv_cell(data.get(c.question)))
        w.writerow(row)
    return buf.getvalue()


def export_responses_csv(survey_id: str) -> ExportFile:
    survey, responses = _load_export_source(survey_id)
    text = build_responses_csv(survey.get("json"), responses)
    return ExportFile(
        filename=export_filename(survey.get("title") or "", "responses", "csv"),
        mimetype="text/csv",
        content=text.encode("utf-8"),
        rows=len(responses),
    )


# -------------------------------------------------
# JSON
# -------------------------------------------------

def _dump(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def _response_entries(responses: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "id": r.get("responseId"),
            "submittedAt": r.get("submittedAt"),
            "data": r.get("data"),
        }
        for r in responses
    ]


def export_responses_json(survey_id: str) -> ExportFile:
    survey, responses = _load_export_source(survey_id)
    out = {
        "survey": {
            "id": survey.get("id"),
            "title": survey.get("title"),
            "description": survey.get("description"),
            "exportDate": srv.iso_utc(datetime.now(timezone.utc)),
        },
        "responses": _response_entries(responses),
    }
    return ExportFile(
        filename=export_filename(survey.get("title") or "", "responses", "json"),
        mimetype="application/json",
        content=_dump(out),
        rows=len(responses),
    )


def _fingerprint(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def summary_statistics(responses: Sequence[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Per top-level answer key: how many responses answered it, the answer
    rate, and how many distinct answers were given.
    """
    total = len(responses)
    keys: List[str] = []
    for r in responses:
        data = r.get("data")
        if isinstance(data, dict):
            for k in data.keys():
                if k not in keys:
                    keys.append(k)

    stats: Dict[str, Dict[str, Any]] = {}
    for k in keys:
        values = []
        for r in responses:
            data = r.get("data")
            v = data.get(k) if isinstance(data, dict) else None
            if v is None or v == "":
                continue
            values.append(v)
        stats[k] = {
            "responseCount": len(values),
            "responseRate": f"{(len(values) / total * 100) if total else 0:.1f}%",
            "uniqueValues": len({_fingerprint(v) for v in values}),
        }
    return stats


def export_summary_report(survey_id: str) -> ExportFile:
    survey, responses = _load_export_source(survey_id)
    out = {
        "survey": {
            "title": survey.get("title"),
            "description": survey.get("description"),
            "totalResponses": len(responses),
            "exportDate": srv.iso_utc(datetime.now(timezone.utc)),
        },
        "statistics": summary_statistics(responses),
        "responses": _response_entries(responses),
    }
    return ExportFile(
        filename=export_filename(survey.get("title") or "", "summary_report", "json"),
        mimetype="application/json",
        content=_dump(out),
        rows=len(responses),
    )
