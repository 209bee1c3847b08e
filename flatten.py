# flatten.py - SurveyDesk
# Turns nested answer data into path -> cell text maps for spreadsheet export.
#
# Paths join object keys with " - " and mark array entries with a 1-based
# suffix on the parent segment: "household[2] - age".

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schema import Choice, Container, Element, Leaf, iter_elements, normalize

logger = logging.getLogger(__name__)

SEPARATOR = " - "
EXCEL_MAX_LEN = 32767
TRUNCATION_MARKER = " …[truncated]"

_PRIMITIVES = (str, int, float, bool)


@dataclass
class ResponseRecord:
    response_id: str
    data: Any
    submitted_at: Any = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ResponseRecord":
        return cls(
            response_id=str(d.get("responseId") or ""),
            data=d.get("data"),
            submitted_at=d.get("submittedAt"),
        )


# -------------------------------------------------
# Cell text
# -------------------------------------------------

def _coerce(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def clip_text(value: Any) -> str:
    s = "" if value is None else _coerce(value)
    if len(s) <= EXCEL_MAX_LEN:
        return s
    keep = max(0, EXCEL_MAX_LEN - len(TRUNCATION_MARKER))
    return s[:keep] + TRUNCATION_MARKER


def _serialize_mapping(value: Dict[Any, Any]) -> str:
    if "text" in value or "value" in value:
        text = value.get("text")
        val = value.get("value")
        if text is not None and _coerce(text).strip() != "":
            return clip_text(text)
        if val is not None:
            return clip_text(val)

    try:
        if not value:
            return ""
        flattened = "; ".join(f"{k}: {serialize_value(v)}" for k, v in value.items())
        return clip_text(flattened)
    except (RecursionError, TypeError, ValueError):
        try:
            return clip_text(json.dumps(value, ensure_ascii=False))
        except (RecursionError, TypeError, ValueError):
            return clip_text(repr(value))


def serialize_value(value: Any) -> str:
    """Human-friendly cell text for any answer value. Never raises."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return clip_text(", ".join(serialize_value(v) for v in value))
    if isinstance(value, dict):
        return _serialize_mapping(value)
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return clip_text(value)


# -------------------------------------------------
# Raw stored data
# -------------------------------------------------

def _is_primitive(value: Any) -> bool:
    return value is None or isinstance(value, _PRIMITIVES)


def _join(path: str, key: Any) -> str:
    return f"{path}{SEPARATOR}{key}" if path else str(key)


def flatten_response_data(data: Any, out: Dict[str, str], path: str = "") -> Dict[str, str]:
    if data is None:
        return out
    if isinstance(data, (list, tuple)):
        if not data:
            return out
        if all(_is_primitive(d) for d in data):
            if path:
                out[path] = serialize_value(data)
            return out
        for i, item in enumerate(data):
            flatten_response_data(item, out, f"{path}[{i + 1}]")
        return out
    if isinstance(data, dict):
        for k, v in data.items():
            flatten_response_data(v, out, _join(path, k))
        return out
    # bare scalar at the root has no column to live in
    if not path:
        return out
    out[path] = serialize_value(data)
    return out


# -------------------------------------------------
# Rendered form model (plain data)
# -------------------------------------------------

@dataclass
class PlainItem:
    name: str
    value: Any = None
    display_value: Any = None
    children: Optional[List["PlainItem"]] = None

    @property
    def is_node(self) -> bool:
        return self.children is not None


def flatten_plain_items(items: Sequence[PlainItem], out: Dict[str, str], name_path: Tuple[str, ...] = ()) -> Dict[str, str]:
    for item in items or ():
        if item is None:
            continue
        if item.is_node:
            next_path = name_path + (item.name,) if item.name else name_path
            flatten_plain_items(item.children, out, next_path)
            continue
        path = SEPARATOR.join(n for n in name_path + (item.name,) if n)
        value = item.display_value if item.display_value is not None else item.value
        out[path] = serialize_value(value)
    return out


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _choice_text(choices: Tuple[Choice, ...], value: Any) -> Any:
    for c in choices:
        if c.value == value or (not isinstance(value, bool) and str(c.value) == str(value)):
            return c.text
    return value


def _display(choices: Tuple[Choice, ...], value: Any) -> Any:
    if not choices:
        return value
    if isinstance(value, list):
        return [_choice_text(choices, v) if _is_primitive(v) else v for v in value]
    if _is_primitive(value):
        return _choice_text(choices, value)
    return value


def _plain_value(name: str, value: Any, element: Optional[Element]) -> PlainItem:
    if (
        isinstance(element, Container)
        and element.dynamic
        and isinstance(value, list)
        and all(isinstance(entry, dict) for entry in value)
    ):
        entries = []
        for i, entry in enumerate(value):
            entries.append(PlainItem(name=f"{name}[{i + 1}]", children=_plain_questions(element.children, entry)))
        return PlainItem(name="", value=value, children=entries)

    if isinstance(value, dict):
        keys = list(value.keys())
        rows = element.rows if isinstance(element, Leaf) else ()
        if rows:
            ordered = [str(r.value) for r in rows if str(r.value) in value]
            keys = ordered + [k for k in keys if k not in ordered]
        columns = element.columns if isinstance(element, Leaf) else ()
        children = []
        for k in keys:
            v = value[k]
            if _is_empty(v):
                continue
            if isinstance(v, (dict, list)) and not (isinstance(v, list) and all(_is_primitive(x) for x in v)):
                children.append(_plain_value(str(k), v, None))
            else:
                children.append(PlainItem(name=str(k), value=v, display_value=_display(columns, v)))
        return PlainItem(name=name, value=value, children=children)

    if isinstance(value, list) and not all(_is_primitive(v) for v in value):
        entries = []
        for i, entry in enumerate(value):
            item = _plain_value(f"{name}[{i + 1}]", entry, None)
            if item.is_node:
                entries.append(item)
            elif not _is_empty(entry):
                entries.append(PlainItem(name=f"{name}[{i + 1}]", value=entry))
        return PlainItem(name="", value=value, children=entries)

    choices = element.choices if isinstance(element, Leaf) else ()
    return PlainItem(name=name, value=value, display_value=_display(choices, value))


def _plain_questions(elements: Tuple[Element, ...], data: Dict[str, Any], seen: Optional[set] = None) -> List[PlainItem]:
    if seen is None:
        seen = set()
    items: List[PlainItem] = []
    for el in elements:
        if isinstance(el, Container) and not el.dynamic:
            # pages and static panels do not nest the answer data
            items.extend(_plain_questions(el.children, data, seen))
            continue
        if not el.name or el.name in seen:
            continue
        seen.add(el.name)
        value = data.get(el.name)
        if _is_empty(value):
            continue
        items.append(_plain_value(el.name, value, el))
    return items


def build_plain_data(roots: Tuple[Element, ...], data: Any) -> List[PlainItem]:
    if not isinstance(data, dict):
        raise ValueError("response data is not an object")
    if not any(el.name for el in iter_elements(roots) if not (isinstance(el, Container) and el.kind == "page")):
        raise ValueError("survey definition has no questions")
    return _plain_questions(roots, data)


# -------------------------------------------------
# Flattening strategies
# -------------------------------------------------

class RawFlattener:
    name = "raw"

    def flatten(self, response: ResponseRecord, roots: Tuple[Element, ...] = ()) -> Dict[str, str]:
        out: Dict[str, str] = {}
        if isinstance(response.data, (dict, list)):
            flatten_response_data(response.data, out)
        return out


class ModelFlattener:
    """
    Renders the definition against one response (only known questions,
    choice texts instead of stored values) and flattens the result.
    """

    name = "model"

    def flatten(self, response: ResponseRecord, roots: Tuple[Element, ...] = ()) -> Dict[str, str]:
        if not isinstance(roots, tuple):
            roots = normalize(roots)
        return flatten_plain_items(build_plain_data(roots, response.data), {})


@dataclass
class FallbackFlattener:
    primary: Any
    fallback: Any = field(default_factory=RawFlattener)

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    def flatten(self, response: ResponseRecord, roots: Tuple[Element, ...] = ()) -> Dict[str, str]:
        try:
            return self.primary.flatten(response, roots)
        except Exception as e:
            logger.warning(
                "%s flattening failed for response %s, using %s: %s",
                self.primary.name,
                response.response_id or "?",
                self.fallback.name,
                e,
            )
            return self.fallback.flatten(response, roots)
