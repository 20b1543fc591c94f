"""Application state owner for the terminal dashboard.

``Dashboard`` wires the store, session, API client, refresh scheduler and
chart registry together and exposes the operations the UI and the CLI call.
All mutable UI state lives in a single ``AppState`` instance.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence

import requests

from .analytics import (
    RADAR_AXES,
    AssigneeLoad,
    CreatedCompleted,
    Distribution,
    Matrix,
    RadarScore,
    WeeklySeries,
    assignee_load,
    created_vs_completed,
    distribution,
    priority_status_matrix,
    radar,
    report_payload,
    scope,
    weekly_completion,
)
from .charts import ChartConfig, ChartFactory, ChartRegistry
from .client import InFlightCounter, ResourceClient, TaskApi
from .config import Config
from .errors import SessionExpired, ValidationFailed
from .models import (
    PRIORITIES,
    SORT_KEYS,
    SORT_LABELS,
    STATUSES,
    AnalyticsFilter,
    DerivedTask,
    QueryResult,
    QueryState,
    Task,
)
from .policy import next_status, task_from_form, validate_for_create, validate_for_update
from .query import local_tz, query
from .safe import SafeRunner, Subscriptions
from .scheduler import FetchFn, RefreshScheduler
from .session import THEME_KEY, SessionState
from .store import KeyValueStore


logger = logging.getLogger(__name__)

THEMES = ("light", "dark")
PANEL_PUBLIC = "public"
PANEL_USER = "user"
PANEL_ADMIN = "admin"
USER_CHARTS = ("status", "priority", "weekly")
ADMIN_CHARTS = USER_CHARTS + ("matrix", "assignees", "radar", "created_vs_completed")
_UNSET = object()


@dataclass
class AnalyticsSnapshot:
    distribution: Distribution
    weekly: WeeklySeries
    matrix: Optional[Matrix] = None
    assignees: Optional[List[AssigneeLoad]] = None
    radar: Optional[RadarScore] = None
    created_completed: Optional[CreatedCompleted] = None


@dataclass
class AppState:
    derived: List[DerivedTask] = field(default_factory=list)
    generation: int = 0
    loaded_at: Optional[dt.datetime] = None
    query: QueryState = field(default_factory=QueryState)
    analytics_filter: AnalyticsFilter = field(default_factory=AnalyticsFilter)
    analytics: Optional[AnalyticsSnapshot] = None
    status_line: str = ""
    theme: str = "light"
    busy: bool = False
    selected: int = 0


def _short_week(label: str) -> str:
    # "2024-03-04" -> "03-04"
    return label[5:] if len(label) == 10 else label


def chart_configs(snap: AnalyticsSnapshot) -> Dict[str, ChartConfig]:
    """Chart definitions for a snapshot; admin-only charts appear when their data is present."""
    dist = snap.distribution
    out: Dict[str, ChartConfig] = {
        "status": ChartConfig(
            kind="bar", title="Tasks by status", labels=list(STATUSES),
            series={"Tasks": [dist.by_status.get(s, 0) for s in STATUSES]},
        ),
        "priority": ChartConfig(
            kind="bar", title="Tasks by priority", labels=list(PRIORITIES),
            series={"Tasks": [dist.by_priority.get(p, 0) for p in PRIORITIES]},
        ),
        "weekly": ChartConfig(
            kind="line", title="Completed per week", labels=[_short_week(w) for w in snap.weekly.labels],
            series={"Done": list(snap.weekly.values)},
        ),
    }
    if snap.matrix is not None:
        out["matrix"] = ChartConfig(
            kind="stacked", title="Priority x status", labels=list(snap.matrix.rows),
            series={p: [snap.matrix.cell(s, p) for s in snap.matrix.rows] for p in snap.matrix.columns},
        )
    if snap.assignees is not None:
        out["assignees"] = ChartConfig(
            kind="bar", title="Load by assignee", labels=[a.assignee for a in snap.assignees],
            series={"Total": [a.total for a in snap.assignees], "Overdue": [a.overdue for a in snap.assignees]},
        )
    if snap.radar is not None:
        out["radar"] = ChartConfig(
            kind="radar", title="Team radar", labels=list(RADAR_AXES),
            series={"Team": snap.radar.values()}, options={"max": 100},
        )
    if snap.created_completed is not None:
        cc = snap.created_completed
        out["created_vs_completed"] = ChartConfig(
            kind="line", title="Created vs completed", labels=[_short_week(w) for w in cc.labels],
            series={"Created": list(cc.created), "Completed": list(cc.completed)},
        )
    return out


class Dashboard:
    def __init__(
        self,
        cfg: Config,
        store: KeyValueStore,
        http: Optional[requests.Session] = None,
        fetch: Optional[FetchFn] = None,
        chart_factory: Optional[ChartFactory] = None,
        now: Optional[Callable[[], dt.datetime]] = None,
        tz: Optional[dt.tzinfo] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.now = now or (lambda: dt.datetime.now(dt.timezone.utc))
        self.tz = tz or local_tz()
        self.session = SessionState(store)
        self.counter = InFlightCounter()
        self.client = ResourceClient(cfg.base_url, self.session, cfg.timeout_seconds, self.counter, http)
        self.api = TaskApi(self.client)
        self.registry = ChartRegistry(chart_factory)
        self.runner = SafeRunner(logging.getLogger("taskboard"), notify=self.notify)
        # log-only runner: notify itself emits "changed"
        self.events = Subscriptions(SafeRunner(logging.getLogger("taskboard")))
        self.state = AppState(
            query=QueryState(page_size=cfg.page_size),
            analytics_filter=AnalyticsFilter(window_days=cfg.analytics_window_days),
            theme=self._stored_theme(),
        )
        self.scheduler = RefreshScheduler(
            self.session,
            fetch or self.api.list_tasks,
            self._apply,
            self.runner,
            cfg.auto_refresh_seconds,
            now=self.now,
            deadline=cfg.timeout_seconds,
            on_tick=self._auto_load,
        )
        self._authenticated = self.session.is_authenticated()
        self.counter.add_listener(self._on_busy)

    # -----------------------------
    # Notifications
    # -----------------------------
    def _changed(self) -> None:
        self.events.emit("changed")

    def notify(self, message: str) -> None:
        self.state.status_line = message
        self._changed()

    def _on_busy(self, busy: bool) -> None:
        self.state.busy = busy
        self._changed()

    # -----------------------------
    # Session and panels
    # -----------------------------
    def panel(self) -> str:
        if not self.session.is_authenticated():
            if self._authenticated:
                # logged out by another process or by a rejected credential
                logger.info("Session gone; dropping dashboard state")
                self._drop_session()
            return PANEL_PUBLIC
        self._authenticated = True
        return PANEL_ADMIN if self.session.is_admin() else PANEL_USER

    def login(self, username: str, password: str) -> Dict[str, object]:
        data = self.api.login(username, password)
        self.notify(f"Welcome, {self.session.display_name()}")
        return data

    def signup(self, name: str, email: str, username: str, password: str, confirm: Optional[str] = None) -> Dict[str, object]:
        data = self.api.signup(name, email, username, password, confirm)
        self.notify(f"Account created for {self.session.display_name()}")
        return data

    def _drop_session(self) -> None:
        self._authenticated = False
        self.scheduler.invalidate()
        self.scheduler.set_auto_refresh(False)
        self.session.clear()
        self.registry.destroy_all()
        self.state.derived = []
        self.state.analytics = None
        self.state.loaded_at = None
        self.state.selected = 0

    def logout(self) -> None:
        self._drop_session()
        logger.info("Logged out")
        self.notify("Logged out")

    def _require_login(self) -> None:
        if not self.session.is_authenticated():
            raise ValidationFailed("Please login first")

    async def _guard(self, fn, *args):
        try:
            return await fn(*args)
        except SessionExpired:
            self._drop_session()
            raise

    # -----------------------------
    # Loading
    # -----------------------------
    def _apply(self, derived: List[DerivedTask], generation: int) -> None:
        self.state.derived = derived
        self.state.generation = generation
        self.state.loaded_at = self.now()
        self.runner.run("charts", self.render_charts)
        self._changed()

    async def _refresh(self) -> bool:
        self._require_login()
        applied = await self.scheduler.load()
        if applied:
            self.notify(f"Loaded {len(self.state.derived)} tasks")
        return applied

    async def refresh(self) -> bool:
        return bool(await self.runner.run_async("refresh", self._guard, self._refresh))

    async def _auto_load(self) -> bool:
        return await self._guard(self.scheduler.load)

    def toggle_auto_refresh(self) -> bool:
        enabled = not self.scheduler.auto_refresh
        if enabled:
            self._require_login()
        self.scheduler.set_auto_refresh(enabled)
        self.notify(f"Auto refresh {'on' if enabled else 'off'}")
        return enabled

    # -----------------------------
    # Table query
    # -----------------------------
    def rows(self) -> QueryResult:
        result = query(self.state.derived, self.state.query, self.tz)
        if result.page_number != self.state.query.page:
            self.state.query = replace(self.state.query, page=result.page_number)
        if result.page:
            self.state.selected = max(0, min(self.state.selected, len(result.page) - 1))
        else:
            self.state.selected = 0
        return result

    def set_query(self, **changes) -> QueryState:
        self.state.query = self.state.query.with_changes(**changes)
        self.state.selected = 0
        self._changed()
        return self.state.query

    def _cycle(self, options: Sequence, current, step: int):
        values = list(options)
        idx = values.index(current) if current in values else 0
        return values[(idx + step) % len(values)]

    def cycle_status_filter(self, step: int = 1) -> str:
        value = self._cycle(("",) + STATUSES, self.state.query.status, step)
        self.set_query(status=value)
        return value

    def cycle_priority_filter(self, step: int = 1) -> str:
        value = self._cycle(("",) + PRIORITIES, self.state.query.priority, step)
        self.set_query(priority=value)
        return value

    def cycle_sort(self, step: int = 1) -> Optional[str]:
        value = self._cycle((None,) + SORT_KEYS, self.state.query.sort, step)
        self.set_query(sort=value)
        self.notify(f"Sort: {SORT_LABELS.get(value, value)}")
        return value

    def change_page(self, step: int) -> int:
        self.state.query = self.state.query.with_changes(page=max(1, self.state.query.page + step))
        self.state.selected = 0
        return self.rows().page_number

    def move(self, step: int) -> int:
        self.state.selected = max(0, self.state.selected + step)
        self.rows()
        self._changed()
        return self.state.selected

    def selected_task(self) -> Optional[DerivedTask]:
        page = self.rows().page
        if not page:
            return None
        return page[self.state.selected]

    def find(self, task_id: str) -> Optional[DerivedTask]:
        for t in self.state.derived:
            if t.id == task_id:
                return t
        return None

    # -----------------------------
    # Analytics and charts
    # -----------------------------
    def compute_analytics(self, admin: bool) -> AnalyticsSnapshot:
        now = self.now()
        reference = now.astimezone(self.tz).date()
        weeks = self.cfg.weeks
        rows = scope(self.state.derived, self.state.analytics_filter, now)
        snap = AnalyticsSnapshot(
            distribution=distribution(rows),
            weekly=weekly_completion(rows, weeks, reference, self.tz),
        )
        if admin:
            snap.matrix = priority_status_matrix(rows)
            snap.assignees = assignee_load(rows)
            snap.radar = radar(rows)
            snap.created_completed = created_vs_completed(rows, weeks, reference, self.tz)
        return snap

    def render_charts(self) -> List[str]:
        panel = self.panel()
        if panel == PANEL_PUBLIC:
            self.registry.destroy_all()
            self.state.analytics = None
            return []
        snap = self.compute_analytics(panel == PANEL_ADMIN)
        configs = chart_configs(snap)
        for chart_id, config in configs.items():
            self.runner.run(f"chart:{chart_id}", self.registry.upsert, chart_id, config)
        self.registry.prune(list(configs))
        self.state.analytics = snap
        return list(configs)

    def set_analytics_filter(self, window_days=_UNSET, assignee=_UNSET) -> AnalyticsFilter:
        flt = self.state.analytics_filter
        if window_days is not _UNSET:
            days = int(window_days or 0)
            if days < 0:
                raise ValidationFailed("Window must be zero or more days")
            flt = replace(flt, window_days=days)
        if assignee is not _UNSET:
            flt = replace(flt, assignee=(assignee or "").strip() or None)
        self.state.analytics_filter = flt
        self.runner.run("charts", self.render_charts)
        self._changed()
        return flt

    def export_report(self, window_days: Optional[int] = None) -> Dict[str, object]:
        flt = self.state.analytics_filter
        if window_days is not None:
            flt = replace(flt, window_days=window_days)
        return report_payload(self.state.derived, flt, self.cfg.weeks, self.now(), self.tz)

    # -----------------------------
    # Theme
    # -----------------------------
    def _stored_theme(self) -> str:
        name = self.store.get(THEME_KEY, None)
        return name if name in THEMES else THEMES[0]

    def set_theme(self, name: str) -> str:
        if name not in THEMES:
            raise ValidationFailed(f"Unknown theme {name!r}")
        self.store.set(THEME_KEY, name)
        self.state.theme = name
        # widgets pick up style classes on creation, so rebuild them all
        self.registry.destroy_all()
        self.runner.run("charts", self.render_charts)
        self._changed()
        return name

    def toggle_theme(self) -> str:
        return self.set_theme(self._cycle(THEMES, self.state.theme, 1))

    # -----------------------------
    # Mutations
    # -----------------------------
    def _existing(self, task_id: str) -> DerivedTask:
        existing = self.find(task_id)
        if existing is None:
            raise ValidationFailed(f"Unknown task {task_id}")
        return existing

    async def _save_task(self, form: Dict[str, str], task_id: Optional[str]) -> Optional[Task]:
        self._require_login()
        now = self.now()
        if task_id:
            existing = self._existing(task_id).source()
            task = validate_for_update(existing, task_from_form(form, existing, self.tz), now)
            saved = await self.scheduler.after_mutation(self.api.update_task, task_id, task)
            self.notify(f"Updated: {task.title}")
        else:
            task = validate_for_create(task_from_form(form, tz=self.tz), now)
            saved = await self.scheduler.after_mutation(self.api.create_task, task)
            self.notify(f"Created: {task.title}")
        return saved

    async def save_task(self, form: Dict[str, str], task_id: Optional[str] = None) -> Optional[Task]:
        return await self.runner.run_async("save task", self._guard, self._save_task, form, task_id)

    async def _advance_status(self, task_id: str) -> Optional[Task]:
        self._require_login()
        existing = self._existing(task_id).source()
        target = next_status(existing.status)
        if target is None:
            raise ValidationFailed(f"{existing.title or task_id} is already {existing.status}")
        task = validate_for_update(existing, existing.with_changes(status=target), self.now())
        saved = await self.scheduler.after_mutation(self.api.update_task, task_id, task)
        self.notify(f"{task.title}: {target}")
        return saved

    async def advance_status(self, task_id: str) -> Optional[Task]:
        return await self.runner.run_async("advance status", self._guard, self._advance_status, task_id)

    async def _delete_task(self, task_id: str) -> bool:
        self._require_login()
        existing = self._existing(task_id)
        await self.scheduler.after_mutation(self.api.delete_task, task_id)
        self.notify(f"Deleted: {existing.title or task_id}")
        return True

    async def delete_task(self, task_id: str) -> bool:
        return bool(await self.runner.run_async("delete task", self._guard, self._delete_task, task_id))

    # -----------------------------
    # Text summary
    # -----------------------------
    def summary_lines(self) -> List[str]:
        if self.panel() == PANEL_PUBLIC:
            return ["Not logged in. Use --login USER first."]
        dist = self.compute_analytics(admin=False).distribution
        lines = [
            f"User: {self.session.display_name()} ({', '.join(self.session.roles) or '-'})",
            f"Tasks: {dist.total} (done {dist.done}, pending {dist.pending}, overdue {dist.overdue})",
            "Status: " + ", ".join(f"{s} {dist.by_status[s]}" for s in STATUSES),
            "Priority: " + ", ".join(f"{p} {dist.by_priority[p]}" for p in PRIORITIES),
            f"Completion: {dist.completion_rate * 100:.0f}%",
        ]
        return lines
