from __future__ import annotations

import datetime as dt
import math
from typing import Callable, Dict, List, Optional, Sequence

from .models import DerivedTask, QueryResult, QueryState


PRIORITY_RANK: Dict[str, int] = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}
STATUS_RANK: Dict[str, int] = {"OPEN": 0, "IN_PROGRESS": 1, "DONE": 2}


def local_tz() -> dt.tzinfo:
    return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc


def _haystack(t: DerivedTask) -> str:
    parts = [t.title, t.description, t.assignee, t.status, t.priority]
    return " ".join(p for p in parts if p).lower()


def _date_bounds(state: QueryState, tz: dt.tzinfo):
    lo = hi = None
    if state.date_from:
        lo = dt.datetime.combine(state.date_from, dt.time(0, 0, 0), tzinfo=tz)
    if state.date_to:
        hi = dt.datetime.combine(state.date_to, dt.time(23, 59, 59), tzinfo=tz)
    return lo, hi


def matches(t: DerivedTask, state: QueryState, tz: Optional[dt.tzinfo] = None) -> bool:
    term = (state.term or "").strip().lower()
    if term and term not in _haystack(t):
        return False
    if state.status and t.status != state.status:
        return False
    if state.priority and t.priority != state.priority:
        return False
    if state.assignee and (t.assignee or "").strip() != state.assignee:
        return False
    if state.date_from or state.date_to:
        if t.due_date is None:
            return False
        lo, hi = _date_bounds(state, tz or local_tz())
        if lo is not None and t.due_date < lo:
            return False
        if hi is not None and t.due_date > hi:
            return False
    return True


def filter_tasks(derived: Sequence[DerivedTask], state: QueryState, tz: Optional[dt.tzinfo] = None) -> List[DerivedTask]:
    tz = tz or local_tz()
    return [t for t in derived if matches(t, state, tz)]


def _due_sorted(rows: List[DerivedTask], reverse: bool) -> List[DerivedTask]:
    dated = [r for r in rows if r.due_date is not None]
    undated = [r for r in rows if r.due_date is None]
    return sorted(dated, key=lambda r: r.due_date, reverse=reverse) + undated


SORTERS: Dict[str, Callable[[List[DerivedTask]], List[DerivedTask]]] = {
    "due_asc": lambda rows: _due_sorted(rows, reverse=False),
    "due_desc": lambda rows: _due_sorted(rows, reverse=True),
    "priority": lambda rows: sorted(rows, key=lambda r: PRIORITY_RANK.get(r.priority, 99)),
    "status": lambda rows: sorted(rows, key=lambda r: STATUS_RANK.get(r.status, 99)),
    "title": lambda rows: sorted(rows, key=lambda r: r.title or ""),
}


def sort_tasks(rows: List[DerivedTask], sort_key: Optional[str]) -> List[DerivedTask]:
    sorter = SORTERS.get(sort_key or "")
    if sorter is None:
        return list(rows)
    return sorter(list(rows))


def total_pages_for(total: int, page_size: int) -> int:
    return max(1, int(math.ceil(total / float(max(1, page_size)))))


def clamp_page(page: int, total_pages: int) -> int:
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    return max(1, min(page, total_pages))


def query(derived: Sequence[DerivedTask], state: QueryState, tz: Optional[dt.tzinfo] = None) -> QueryResult:
    """Filter, sort and paginate without touching ``derived``."""
    rows = sort_tasks(filter_tasks(derived, state, tz), state.sort)
    size = max(1, int(state.page_size or 1))
    total = len(rows)
    pages = total_pages_for(total, size)
    page = clamp_page(state.page, pages)
    start = (page - 1) * size
    return QueryResult(page=rows[start:start + size], total=total, total_pages=pages, page_number=page)
