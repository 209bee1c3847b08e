# labels.py - SurveyDesk
# Column headers for flattened answer paths, in survey question order

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Mapping, Tuple

from flatten import SEPARATOR
from schema import QuestionMeta

UNKNOWN_ORDER = 999999

_INDEX_SUFFIX = re.compile(r"\[[^\]]+\]$")


def strip_index(segment: str) -> str:
    return _INDEX_SUFFIX.sub("", segment)


def last_name(path: str) -> str:
    return strip_index(path.split(SEPARATOR)[-1])


def _order_of(name: str, index: Mapping[str, QuestionMeta]) -> int:
    meta = index.get(name)
    return meta.order if meta is not None else UNKNOWN_ORDER


def sort_paths(paths: Iterable[str], index: Mapping[str, QuestionMeta]) -> List[str]:
    """
    Segment-by-segment by question order; unknown names and missing
    segments sort last, then the full path breaks ties.
    """
    unique = set(paths)
    if not unique:
        return []
    split = {p: [_order_of(strip_index(s), index) for s in p.split(SEPARATOR)] for p in unique}
    width = max(len(v) for v in split.values())

    def key(p: str) -> Tuple[Tuple[int, ...], str]:
        orders = split[p]
        return tuple(orders + [UNKNOWN_ORDER] * (width - len(orders))), p

    return sorted(unique, key=key)


def base_label(path: str, index: Mapping[str, QuestionMeta]) -> str:
    meta = index.get(last_name(path))
    if meta is not None and meta.title:
        return f"{path}{SEPARATOR}{meta.title}"
    return path


def resolve_labels(
    paths: Iterable[str],
    index: Mapping[str, QuestionMeta],
    reserved: Iterable[str] = (),
) -> Tuple[Dict[str, str], List[str]]:
    """
    Returns (label by path, headers in column order). label_by_path is
    filled in column order too. Colliding base labels get " (2)", " (3)", ...
    Labels in `reserved` (fixed leading headers) are never handed out.
    """
    counts: Dict[str, int] = {}
    used = set(reserved)
    label_by_path: Dict[str, str] = {}
    for p in sort_paths(paths, index):
        base = base_label(p, index)
        n = counts.get(base, 0)
        label = base if n == 0 else f"{base} ({n + 1})"
        while label in used:
            n += 1
            label = f"{base} ({n + 1})"
        counts[base] = n + 1
        used.add(label)
        label_by_path[p] = label
    return label_by_path, list(label_by_path.values())
