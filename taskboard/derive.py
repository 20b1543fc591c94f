"""Derived analytic fields for fetched tasks.

Everything here is an estimate. ``created_at_approx`` falls back to the
timestamp embedded in the first four bytes of ObjectId-style ids, and the
complexity/effort numbers are proxies built from text length and date span,
not measurements.
"""
from __future__ import annotations

import datetime as dt
import math
import re
from typing import Iterable, List, Optional

from .models import DerivedTask, Task, task_field_values
from .policy import escalated_priority


_HEX8 = re.compile(r"^[0-9a-fA-F]{8}$")
_DAY_SECONDS = 86400.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def created_at_from_id(task_id: Optional[str]) -> Optional[dt.datetime]:
    if not task_id or not isinstance(task_id, str) or len(task_id) < 8:
        return None
    prefix = task_id[:8]
    if not _HEX8.match(prefix):
        return None
    try:
        return dt.datetime.fromtimestamp(int(prefix, 16), tz=dt.timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def complexity_score(title: Optional[str], description: Optional[str]) -> int:
    title_len = len((title or "").strip())
    desc_len = len((description or "").strip())
    return max(0, min(100, round_half_up(title_len * 0.8 + desc_len * 0.25)))


def effort_days(created: Optional[dt.datetime], due: Optional[dt.datetime]) -> int:
    if created is None or due is None:
        return 0
    return max(0, round_half_up((due - created).total_seconds() / _DAY_SECONDS))


def is_overdue(task: Task, now: dt.datetime) -> bool:
    return task.due_date is not None and task.status != "DONE" and task.due_date < now


def derive_one(task: Task, now: dt.datetime) -> DerivedTask:
    created = task.created_at or created_at_from_id(task.id)
    return DerivedTask(
        **task_field_values(task),
        created_at_approx=created,
        overdue=is_overdue(task, now),
        complexity_score=complexity_score(task.title, task.description),
        effort_days=effort_days(created, task.due_date),
        escalated_priority=escalated_priority(task, now),
    )


def derive(tasks: Iterable[Task], now: Optional[dt.datetime] = None) -> List[DerivedTask]:
    now = now or dt.datetime.now(dt.timezone.utc)
    return [derive_one(t, now) for t in (tasks or []) if t is not None]
