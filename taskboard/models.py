from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Optional, Tuple


STATUSES: Tuple[str, ...] = ("OPEN", "IN_PROGRESS", "DONE")
PRIORITIES: Tuple[str, ...] = ("LOW", "MEDIUM", "HIGH")
ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

SORT_KEYS: Tuple[str, ...] = ("due_asc", "due_desc", "priority", "status", "title")
SORT_LABELS: Dict[Optional[str], str] = {
    None: "None",
    "due_asc": "Due ↑",
    "due_desc": "Due ↓",
    "priority": "Priority",
    "status": "Status",
    "title": "Title",
}


def parse_timestamp(raw: object) -> Optional[dt.datetime]:
    """Parse an API timestamp into an aware datetime (naive values are taken as UTC)."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, dt.datetime):
        value = raw
    elif isinstance(raw, (int, float)):
        # epoch milliseconds, as some serializers emit Instant values
        try:
            return dt.datetime.fromtimestamp(raw / 1000.0, tz=dt.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            value = dt.datetime.fromisoformat(text)
        except ValueError:
            try:
                value = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                try:
                    value = dt.datetime.combine(dt.date.fromisoformat(text[:10]), dt.time.min)
                except ValueError:
                    return None
    else:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value


def format_timestamp(value: Optional[dt.datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(dt.timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _text(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw)


# -----------------------------
# Tasks
# -----------------------------
@dataclass(frozen=True)
class Task:
    id: str
    title: str = ""
    description: str = ""
    status: str = "OPEN"
    priority: str = "MEDIUM"
    due_date: Optional[dt.datetime] = None
    assignee: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    @classmethod
    def from_json(cls, raw: Dict[str, object]) -> "Task":
        if not isinstance(raw, dict):
            raw = {}
        status = _text(raw.get("status")).strip().upper() or "OPEN"
        priority = _text(raw.get("priority")).strip().upper() or "MEDIUM"
        assignee = raw.get("assignee")
        return cls(
            id=_text(raw.get("id")),
            title=_text(raw.get("title")),
            description=_text(raw.get("description")),
            status=status,
            priority=priority,
            due_date=parse_timestamp(raw.get("dueDate")),
            assignee=_text(assignee) if assignee is not None else None,
            created_at=parse_timestamp(raw.get("createdAt")),
        )

    def to_payload(self) -> Dict[str, object]:
        return {
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dueDate": format_timestamp(self.due_date),
            "assignee": self.assignee,
        }

    def with_changes(self, **changes) -> "Task":
        return replace(self, **changes)


@dataclass(frozen=True)
class DerivedTask(Task):
    """A Task plus computed analytic fields.

    ``created_at_approx``, ``complexity_score`` and ``effort_days`` are
    estimates: the creation time may be decoded from the id and the two
    scores are proxies built from text length and date spans.
    ``escalated_priority`` is the priority after deadline escalation.
    """
    created_at_approx: Optional[dt.datetime] = None
    overdue: bool = False
    complexity_score: int = 0
    effort_days: int = 0
    escalated_priority: str = ""

    def source(self) -> Task:
        names = [f.name for f in fields(Task)]
        return Task(**{name: getattr(self, name) for name in names})


def task_field_values(task: Task) -> Dict[str, object]:
    return {f.name: getattr(task, f.name) for f in fields(Task)}


# -----------------------------
# Query / analytics state
# -----------------------------
@dataclass(frozen=True)
class QueryState:
    term: str = ""
    status: str = ""
    priority: str = ""
    assignee: str = ""
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    sort: Optional[str] = None
    page: int = 1
    page_size: int = 10

    def with_changes(self, **changes) -> "QueryState":
        """Return a new state; any change other than the page resets to page 1."""
        if changes and "page" not in changes:
            changes["page"] = 1
        return replace(self, **changes)


@dataclass(frozen=True)
class AnalyticsFilter:
    window_days: int = 90
    assignee: Optional[str] = None


@dataclass
class QueryResult:
    page: List[DerivedTask] = field(default_factory=list)
    total: int = 0
    total_pages: int = 1
    page_number: int = 1
