from __future__ import annotations

import datetime as dt
from dataclasses import replace
from typing import Dict, Optional

from .errors import ValidationFailed
from .models import PRIORITIES, STATUSES, Task


_NEXT_STATUS: Dict[str, str] = {"OPEN": "IN_PROGRESS", "IN_PROGRESS": "DONE"}


def normalize(task: Task) -> Task:
    assignee = task.assignee.strip() if task.assignee is not None else None
    return replace(
        task,
        title=(task.title or "").strip(),
        status=(task.status or "").strip().upper(),
        priority=(task.priority or "").strip().upper(),
        assignee=assignee or None,
    )


def apply_defaults(task: Task) -> Task:
    return replace(task, status=task.status or "OPEN", priority=task.priority or "MEDIUM")


def valid_transition(current: Optional[str], target: Optional[str]) -> bool:
    if current not in STATUSES or target not in STATUSES:
        return False
    if current == target:
        return True
    return _NEXT_STATUS.get(current) == target


def next_status(current: str) -> Optional[str]:
    return _NEXT_STATUS.get(current)


def escalated_priority(task: Task, now: Optional[dt.datetime] = None) -> str:
    """Priority raised by deadline pressure.

    Overdue open work is at least HIGH; work due within 24 hours moves up one
    step (LOW or unknown to MEDIUM, MEDIUM to HIGH). DONE and undated tasks
    keep their priority. Hours are whole hours, truncated toward zero.
    """
    current = (task.priority or "").strip().upper()
    if task.due_date is None or (task.status or "").strip().upper() == "DONE":
        return current
    now = now or dt.datetime.now(dt.timezone.utc)
    hours = int((task.due_date - now).total_seconds() / 3600)
    if hours < 0:
        return "HIGH"
    if hours <= 24:
        if current == "MEDIUM":
            return "HIGH"
        if current != "HIGH":
            return "MEDIUM"
    return current


def validate_due_date(due: Optional[dt.datetime], now: Optional[dt.datetime] = None) -> None:
    if due is None:
        return
    now = now or dt.datetime.now(dt.timezone.utc)
    start_of_today = now.astimezone(dt.timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    if due < start_of_today:
        raise ValidationFailed("Due date cannot be in the past")


def _validate_vocab(task: Task) -> None:
    if task.status not in STATUSES:
        raise ValidationFailed(f"Unknown status {task.status!r}")
    if task.priority not in PRIORITIES:
        raise ValidationFailed(f"Unknown priority {task.priority!r}")


def validate_for_create(task: Task, now: Optional[dt.datetime] = None) -> Task:
    task = apply_defaults(normalize(task))
    if not task.title:
        raise ValidationFailed("Title is required")
    validate_due_date(task.due_date, now)
    _validate_vocab(task)
    return task


def validate_for_update(existing: Task, incoming: Task, now: Optional[dt.datetime] = None) -> Task:
    incoming = apply_defaults(normalize(incoming))
    if not incoming.title:
        raise ValidationFailed("Title is required")
    if incoming.due_date != existing.due_date:
        validate_due_date(incoming.due_date, now)
    _validate_vocab(incoming)
    if not valid_transition(existing.status, incoming.status):
        raise ValidationFailed(f"Invalid status transition {existing.status} -> {incoming.status}")
    return incoming


def parse_task_form(raw: str) -> Dict[str, str]:
    """Split the inline ``title;priority;YYYY-MM-DD;assignee`` entry used by the UI."""
    parts = [p.strip() for p in (raw or "").split(";")]
    keys = ("title", "priority", "due", "assignee")
    return {k: (parts[i] if i < len(parts) else "") for i, k in enumerate(keys)}


def task_from_form(form: Dict[str, str], base: Optional[Task] = None, tz: Optional[dt.tzinfo] = None) -> Task:
    base = base or Task(id="")
    due = base.due_date
    due_raw = (form.get("due") or "").strip()
    if due_raw:
        try:
            day = dt.date.fromisoformat(due_raw)
        except ValueError:
            raise ValidationFailed(f"Bad due date {due_raw!r}; use YYYY-MM-DD") from None
        tz = tz or dt.datetime.now().astimezone().tzinfo or dt.timezone.utc
        due = dt.datetime.combine(day, dt.time(23, 59, 59), tzinfo=tz)
    return replace(
        base,
        title=form.get("title") or base.title,
        description=form.get("description", base.description) or "",
        priority=(form.get("priority") or base.priority or "MEDIUM"),
        status=(form.get("status") or base.status or "OPEN"),
        due_date=due,
        assignee=form.get("assignee") or base.assignee,
    )
