"""Grouped statistics over derived tasks.

All functions are pure and return zero-filled structures for empty input.
Weekly series are keyed by the ISO date of the Monday that starts the week.
"""
from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .derive import round_half_up
from .models import PRIORITIES, STATUSES, AnalyticsFilter, DerivedTask
from .query import local_tz


UNASSIGNED = "Unassigned"
ASSIGNEE_LIMIT = 12
DEFAULT_WEEKS = 8
RADAR_AXES: Tuple[str, ...] = ("Completion", "Low overdue", "Assigned", "Complexity", "Effort")


@dataclass
class Distribution:
    by_status: Dict[str, int] = field(default_factory=lambda: {s: 0 for s in STATUSES})
    by_priority: Dict[str, int] = field(default_factory=lambda: {p: 0 for p in PRIORITIES})
    overdue: int = 0
    total: int = 0
    done: int = 0
    pending: int = 0
    completion_rate: float = 0.0


@dataclass
class WeeklySeries:
    labels: List[str]
    values: List[int]


@dataclass
class StatusTrend:
    labels: List[str]
    open: List[int]
    in_progress: List[int]
    done: List[int]


@dataclass
class Matrix:
    rows: List[str]
    columns: List[str]
    counts: List[List[int]]

    def cell(self, status: str, priority: str) -> int:
        return self.counts[self.rows.index(status)][self.columns.index(priority)]


@dataclass
class AssigneeLoad:
    assignee: str
    total: int = 0
    done: int = 0
    overdue: int = 0


@dataclass
class RadarScore:
    completion: int = 0
    low_overdue: int = 0
    assignment: int = 0
    complexity: int = 0
    effort: int = 0

    def values(self) -> List[int]:
        return [self.completion, self.low_overdue, self.assignment, self.complexity, self.effort]


@dataclass
class CreatedCompleted:
    labels: List[str]
    created: List[int]
    completed: List[int]


# -----------------------------
# Scoping
# -----------------------------
def scope(derived: Iterable[DerivedTask], flt: Optional[AnalyticsFilter], now: Optional[dt.datetime] = None) -> List[DerivedTask]:
    """Apply the trailing window and optional assignee scope.

    Tasks without a due date stay in the window.
    """
    rows = list(derived or [])
    if flt is None:
        return rows
    now = now or dt.datetime.now(dt.timezone.utc)
    if flt.window_days and flt.window_days > 0:
        since = now - dt.timedelta(days=flt.window_days)
        rows = [t for t in rows if t.due_date is None or t.due_date >= since]
    if flt.assignee:
        wanted = flt.assignee.strip()
        rows = [t for t in rows if (t.assignee or "").strip() == wanted]
    return rows


# -----------------------------
# Counts
# -----------------------------
def distribution(derived: Iterable[DerivedTask]) -> Distribution:
    out = Distribution()
    for t in derived or []:
        out.total += 1
        if t.status in out.by_status:
            out.by_status[t.status] += 1
        if t.priority in out.by_priority:
            out.by_priority[t.priority] += 1
        if t.overdue:
            out.overdue += 1
    out.done = out.by_status["DONE"]
    out.pending = out.total - out.done
    out.completion_rate = (out.done / float(out.total)) if out.total else 0.0
    return out


def priority_status_matrix(derived: Iterable[DerivedTask]) -> Matrix:
    counts = [[0 for _ in PRIORITIES] for _ in STATUSES]
    for t in derived or []:
        if t.status in STATUSES and t.priority in PRIORITIES:
            counts[STATUSES.index(t.status)][PRIORITIES.index(t.priority)] += 1
    return Matrix(rows=list(STATUSES), columns=list(PRIORITIES), counts=counts)


def _assignee_label(raw: Optional[str]) -> str:
    name = (raw or "").strip()
    return name or UNASSIGNED


def assignee_load(derived: Iterable[DerivedTask], limit: int = ASSIGNEE_LIMIT) -> List[AssigneeLoad]:
    groups: Dict[str, AssigneeLoad] = {}
    for t in derived or []:
        name = _assignee_label(t.assignee)
        entry = groups.setdefault(name, AssigneeLoad(assignee=name))
        entry.total += 1
        if t.status == "DONE":
            entry.done += 1
        if t.overdue:
            entry.overdue += 1
    ordered = sorted(groups.values(), key=lambda e: (-e.total, e.assignee.lower()))
    return ordered[:max(0, limit)]


def _pct(numerator: float, denominator: int) -> int:
    return round_half_up(100.0 * numerator / float(denominator or 1))


def radar(derived: Sequence[DerivedTask]) -> RadarScore:
    """Five 0-100 axes where higher is better; empty input scores zero everywhere."""
    rows = list(derived or [])
    if not rows:
        return RadarScore()
    n = len(rows)
    done = sum(1 for t in rows if t.status == "DONE")
    overdue = sum(1 for t in rows if t.overdue)
    assigned = sum(1 for t in rows if (t.assignee or "").strip())
    complexity = sum(min(100, max(0, t.complexity_score)) for t in rows) / float(n)
    effort = sum(min(100, max(0, t.effort_days)) for t in rows) / float(n)
    return RadarScore(
        completion=_pct(done, n),
        low_overdue=100 - _pct(overdue, n),
        assignment=_pct(assigned, n),
        complexity=min(100, max(0, round_half_up(complexity))),
        effort=min(100, max(0, round_half_up(effort))),
    )


# -----------------------------
# Weekly series
# -----------------------------
def week_start(day: dt.date) -> dt.date:
    return day - dt.timedelta(days=day.weekday())


def week_buckets(weeks: int, reference: dt.date) -> List[dt.date]:
    """Mondays of the trailing ``weeks`` weeks, oldest first, ending at ``reference``'s week."""
    last = week_start(reference)
    return [last - dt.timedelta(weeks=i) for i in range(max(0, weeks) - 1, -1, -1)]


def _reference_date(reference: Optional[dt.date], tz: dt.tzinfo) -> dt.date:
    if reference is not None:
        return reference
    return dt.datetime.now(tz).date()


def _bucket_key(ts: Optional[dt.datetime], tz: dt.tzinfo) -> Optional[dt.date]:
    if ts is None:
        return None
    return week_start(ts.astimezone(tz).date())


def _completion_instant(t: DerivedTask) -> Optional[dt.datetime]:
    return t.due_date or t.created_at_approx


def _count_by_week(
    items: Iterable[Optional[dt.datetime]],
    buckets: List[dt.date],
    tz: dt.tzinfo,
) -> List[int]:
    index = {d: i for i, d in enumerate(buckets)}
    counts = [0] * len(buckets)
    for ts in items:
        key = _bucket_key(ts, tz)
        if key is None:
            continue
        i = index.get(key)
        if i is not None:
            counts[i] += 1
    return counts


def weekly_completion(
    derived: Iterable[DerivedTask],
    weeks: int = DEFAULT_WEEKS,
    reference: Optional[dt.date] = None,
    tz: Optional[dt.tzinfo] = None,
) -> WeeklySeries:
    tz = tz or local_tz()
    buckets = week_buckets(weeks, _reference_date(reference, tz))
    done = [_completion_instant(t) for t in derived or [] if t.status == "DONE"]
    return WeeklySeries(labels=[d.isoformat() for d in buckets], values=_count_by_week(done, buckets, tz))


def weekly_status_trend(
    derived: Iterable[DerivedTask],
    weeks: int = DEFAULT_WEEKS,
    reference: Optional[dt.date] = None,
    tz: Optional[dt.tzinfo] = None,
) -> StatusTrend:
    tz = tz or local_tz()
    buckets = week_buckets(weeks, _reference_date(reference, tz))
    rows = list(derived or [])
    per_status = {
        s: _count_by_week((t.due_date for t in rows if t.status == s), buckets, tz)
        for s in STATUSES
    }
    return StatusTrend(
        labels=[d.isoformat() for d in buckets],
        open=per_status["OPEN"],
        in_progress=per_status["IN_PROGRESS"],
        done=per_status["DONE"],
    )


def created_vs_completed(
    derived: Iterable[DerivedTask],
    weeks: int = DEFAULT_WEEKS,
    reference: Optional[dt.date] = None,
    tz: Optional[dt.tzinfo] = None,
) -> CreatedCompleted:
    tz = tz or local_tz()
    buckets = week_buckets(weeks, _reference_date(reference, tz))
    rows = list(derived or [])
    created = _count_by_week((t.created_at_approx for t in rows), buckets, tz)
    completed = _count_by_week((_completion_instant(t) for t in rows if t.status == "DONE"), buckets, tz)
    return CreatedCompleted(labels=[d.isoformat() for d in buckets], created=created, completed=completed)


# -----------------------------
# Calendar
# -----------------------------
CalendarCell = Tuple[Optional[dt.date], List[DerivedTask]]


def calendar_month(
    derived: Iterable[DerivedTask],
    year: int,
    month: int,
    tz: Optional[dt.tzinfo] = None,
) -> List[List[CalendarCell]]:
    """Monday-first weeks of ``month``; days outside the month are ``(None, [])``."""
    tz = tz or local_tz()
    by_day: Dict[dt.date, List[DerivedTask]] = {}
    for t in derived or []:
        if t.due_date is None:
            continue
        day = t.due_date.astimezone(tz).date()
        if day.year == year and day.month == month:
            by_day.setdefault(day, []).append(t)
    grid: List[List[CalendarCell]] = []
    for week in calendar.Calendar(firstweekday=0).monthdatescalendar(year, month):
        row: List[CalendarCell] = []
        for day in week:
            if day.month != month:
                row.append((None, []))
            else:
                row.append((day, by_day.get(day, [])))
        grid.append(row)
    return grid


# -----------------------------
# Report export
# -----------------------------
def report_payload(
    derived: Sequence[DerivedTask],
    flt: Optional[AnalyticsFilter] = None,
    weeks: int = DEFAULT_WEEKS,
    now: Optional[dt.datetime] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Dict[str, object]:
    now = now or dt.datetime.now(dt.timezone.utc)
    tz = tz or local_tz()
    reference = now.astimezone(tz).date()
    rows = scope(derived, flt, now)
    dist = distribution(rows)
    return {
        "meta": {
            "generated_at": now.astimezone(tz).isoformat(timespec="seconds"),
            "window_days": flt.window_days if flt else None,
            "assignee": flt.assignee if flt else None,
            "weeks": weeks,
            "tasks": len(rows),
        },
        "distribution": asdict(dist),
        "weekly_completion": asdict(weekly_completion(rows, weeks, reference, tz)),
        "weekly_status": asdict(weekly_status_trend(rows, weeks, reference, tz)),
        "priority_status": asdict(priority_status_matrix(rows)),
        "assignees": [asdict(a) for a in assignee_load(rows)],
        "radar": dict(zip(RADAR_AXES, radar(rows).values())),
        "created_vs_completed": asdict(created_vs_completed(rows, weeks, reference, tz)),
    }

