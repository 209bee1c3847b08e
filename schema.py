# schema.py - SurveyDesk
# Survey definition tree: normalization, question index, legacy CSV headers

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Choice:
    value: Any
    text: str


@dataclass(frozen=True)
class Leaf:
    name: Optional[str]
    title: Optional[str]
    kind: str = ""
    choices: Tuple[Choice, ...] = ()
    rows: Tuple[Choice, ...] = ()
    columns: Tuple[Choice, ...] = ()


@dataclass(frozen=True)
class Container:
    name: Optional[str]
    title: Optional[str]
    kind: str = ""
    children: Tuple["Element", ...] = ()
    # templateElements present: children repeat once per entry of the answer list
    dynamic: bool = False


Element = Union[Leaf, Container]


@dataclass(frozen=True)
class QuestionMeta:
    title: str
    order: int


# -------------------------------------------------
# Normalizing adapter
# -------------------------------------------------

def load_definition(raw: Any) -> Dict[str, Any]:
    """
    Accepts the stored definition (dict or JSON text). Anything unusable
    becomes an empty definition.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            return {}
    if not isinstance(raw, dict):
        return {}
    return raw


def _text(value: Any) -> str:
    # Localized strings arrive as {"default": "...", "de": "..."}.
    if isinstance(value, dict):
        if value.get("default"):
            return str(value["default"])
        for v in value.values():
            if v:
                return str(v)
        return ""
    if value is None:
        return ""
    return str(value)


def _name(node: Dict[str, Any]) -> Optional[str]:
    name = node.get("name")
    if name is None or name == "":
        return None
    return str(name)


def _title(node: Dict[str, Any], name: Optional[str]) -> Optional[str]:
    for key in ("title", "titleExpanded"):
        t = _text(node.get(key))
        if t:
            return t
    return name


def _choices(raw: Any) -> Tuple[Choice, ...]:
    if not isinstance(raw, list):
        return ()
    out: List[Choice] = []
    for item in raw:
        if isinstance(item, dict):
            if "value" not in item:
                continue
            value = item.get("value")
            out.append(Choice(value=value, text=_text(item.get("text")) or _text(value)))
        elif item is not None:
            out.append(Choice(value=item, text=_text(item)))
    return tuple(out)


def _node(node: Any) -> Optional[Element]:
    if not isinstance(node, dict):
        return None
    name = _name(node)
    title = _title(node, name)
    kind = str(node.get("type") or "").strip().lower()

    elements = node.get("elements")
    template = node.get("templateElements")
    has_elements = isinstance(elements, list)
    has_template = isinstance(template, list)
    if has_elements or has_template:
        children = _nodes(elements if has_elements else []) + _nodes(template if has_template else [])
        return Container(name=name, title=title, kind=kind, children=children, dynamic=has_template)

    return Leaf(
        name=name,
        title=title,
        kind=kind,
        choices=_choices(node.get("choices")),
        rows=_choices(node.get("rows")),
        columns=_choices(node.get("columns")),
    )


def _nodes(items: Any) -> Tuple[Element, ...]:
    if not isinstance(items, list):
        return ()
    out = []
    for item in items:
        el = _node(item)
        if el is not None:
            out.append(el)
    return tuple(out)


def normalize(definition: Any) -> Tuple[Element, ...]:
    definition = load_definition(definition)
    pages = definition.get("pages")
    if isinstance(pages, list):
        roots = []
        for p in pages:
            if not isinstance(p, dict):
                continue
            name = _name(p)
            roots.append(
                Container(
                    name=name,
                    title=_title(p, name),
                    kind="page",
                    children=_nodes(p.get("elements")),
                )
            )
        return tuple(roots)
    return _nodes(definition.get("elements"))


def iter_elements(roots: Tuple[Element, ...]):
    """Depth-first, pre-order."""
    for el in roots:
        yield el
        if isinstance(el, Container):
            yield from iter_elements(el.children)


# -------------------------------------------------
# Question index
# -------------------------------------------------

def _index_into(index: Dict[str, QuestionMeta], elements: Tuple[Element, ...]) -> Dict[str, QuestionMeta]:
    for el in elements:
        if el.name and el.name not in index:
            index[el.name] = QuestionMeta(title=el.title or el.name, order=len(index))
        if isinstance(el, Container):
            _index_into(index, el.children)
    return index


def build_identifier_index(definition: Any) -> Dict[str, QuestionMeta]:
    """
    Maps each question name to its display title and first-occurrence order.
    Takes a raw definition or already normalized roots.
    """
    if isinstance(definition, tuple):
        roots = definition
    else:
        roots = normalize(definition)
    return _index_into({}, roots)


# -------------------------------------------------
# Legacy CSV headers (one column per question, matrix rows split)
# -------------------------------------------------

_LEGACY_CONTAINER_KINDS = ("panel", "paneldynamic", "matrixdynamic")


@dataclass(frozen=True)
class CsvColumn:
    name: str
    title: str
    question: str
    row: Optional[Any] = None


def _legacy_walk(elements: Tuple[Element, ...], out: List[CsvColumn]) -> None:
    for el in elements:
        if el.kind in _LEGACY_CONTAINER_KINDS:
            if isinstance(el, Container):
                _legacy_walk(el.children, out)
            continue
        if not el.name:
            continue
        if el.kind == "matrix" and isinstance(el, Leaf) and el.rows:
            base = el.title or el.name
            for row in el.rows:
                out.append(
                    CsvColumn(
                        name=f"{el.name}.{row.value}",
                        title=f"{base} [{row.text}]",
                        question=el.name,
                        row=row.value,
                    )
                )
            continue
        out.append(CsvColumn(name=el.name, title=el.title or el.name, question=el.name))


def question_headers(definition: Any) -> List[CsvColumn]:
    roots = normalize(definition)
    out: List[CsvColumn] = []
    for root in roots:
        if root.kind == "page" and isinstance(root, Container):
            _legacy_walk(root.children, out)
        else:
            _legacy_walk((root,), out)
    return out
