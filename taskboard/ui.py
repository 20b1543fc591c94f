# taskboard.ui: full-screen terminal dashboard
#
# Hotkeys
#   u  refresh (runs in background; status bar shows loading)
#   /  search title, description, assignee, status, priority
#   f/p  cycle status / priority filter
#   s/S  cycle sort forward / backward
#   n/b  next / previous page
#   j/k  move selection
#   x  advance status of the selected task (OPEN -> IN_PROGRESS -> DONE)
#   N  new task, e edit selected task (title;priority;YYYY-MM-DD;assignee)
#   D  delete selected task (y to confirm)
#   w  cycle analytics window, a scope analytics to the selected assignee
#   A  toggle auto refresh, T toggle theme, C calendar, L logout
#   ?  help, q quit

from __future__ import annotations

import asyncio
import calendar
import datetime as dt
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from prompt_toolkit import Application
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, VSplit, Window
from prompt_toolkit.layout.containers import DynamicContainer, Float, FloatContainer
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame

from .analytics import calendar_month
from .config import Config
from .dashboard import PANEL_PUBLIC, AppState, Dashboard
from .models import SORT_LABELS, AnalyticsFilter, DerivedTask, QueryResult
from .policy import parse_task_form


logger = logging.getLogger(__name__)

Fragments = List[Tuple[str, str]]

ANALYTICS_WINDOWS = (30, 90, 365, 0)
FORM_HINT = "title;priority;YYYY-MM-DD;assignee"


# -----------------------------
# Themes
# -----------------------------
THEMES: Dict[str, Dict[str, str]] = {
    "light": {
        "topbar": "bg:#e4e4e4 #1c1c1c",
        "topbar.initials": "bold bg:#005f87 #ffffff",
        "status": "bg:#d0d0d0 #1c1c1c",
        "status.busy": "bold #af5f00",
        "table.header": "bold #005f87",
        "table.selected": "reverse",
        "table.status.open": "#005faf",
        "table.status.in_progress": "#af8700",
        "table.status.done": "#008700",
        "table.priority.high": "bold #af0000",
        "table.priority.medium": "#875f00",
        "table.priority.low": "#585858",
        "table.overdue": "bold #d70000",
        "table.estimate": "#767676",
        "table.footer": "#585858",
        "chart.title": "bold #005f87",
        "chart.bar": "#0087af",
        "chart.bar.done": "#008700",
        "chart.bar.overdue": "#d70000",
        "chart.bar.high": "#af0000",
        "chart.bar.completed": "#008700",
        "chart.series": "italic #585858",
        "chart.legend": "#585858",
        "chart.empty": "#8a8a8a",
        "calendar.header": "bold #005f87",
        "calendar.weekdays": "#585858",
        "calendar.day": "",
        "calendar.busy": "bold #af5f00",
        "calendar.today": "reverse bold",
        "public": "#585858",
        "help": "#1c1c1c",
    },
    "dark": {
        "topbar": "bg:#303030 #f0f0f0",
        "topbar.initials": "bold bg:#ffd75f #1c1c1c",
        "status": "bg:#1c1c1c #f0f0f0",
        "status.busy": "bold #ffd787",
        "table.header": "bold #ffd75f",
        "table.selected": "reverse",
        "table.status.open": "#87d7ff",
        "table.status.in_progress": "#ffd75f",
        "table.status.done": "#87ff5f",
        "table.priority.high": "bold #ff8787",
        "table.priority.medium": "#ffd787",
        "table.priority.low": "#bcbcbc",
        "table.overdue": "bold #ff5f5f",
        "table.estimate": "#8a8a8a",
        "table.footer": "#8a8a8a",
        "chart.title": "bold #ffd75f",
        "chart.bar": "#87d7ff",
        "chart.bar.done": "#87ff5f",
        "chart.bar.overdue": "#ff8787",
        "chart.bar.high": "#ff8787",
        "chart.bar.completed": "#87ff5f",
        "chart.series": "italic #bcbcbc",
        "chart.legend": "#bcbcbc",
        "chart.empty": "#6c6c6c",
        "calendar.header": "bold #ffd75f",
        "calendar.weekdays": "#bcbcbc",
        "calendar.day": "#f0f0f0",
        "calendar.busy": "bold #ffd787",
        "calendar.today": "reverse bold",
        "public": "#bcbcbc",
        "help": "#f0f0f0",
    },
}


def style_for(theme: str) -> Style:
    return Style.from_dict(THEMES.get(theme) or THEMES["light"])


# -----------------------------
# Fragment builders
# -----------------------------
def _truncate(text: str, width: int) -> str:
    text = (text or "").replace("\n", " ")
    if len(text) <= width:
        return text.ljust(width)
    return text[: max(0, width - 1)] + "…"


def _due_label(t: DerivedTask, tz: dt.tzinfo) -> str:
    if t.due_date is None:
        return "—"
    return t.due_date.astimezone(tz).strftime("%Y-%m-%d")


def build_table_fragments(result: QueryResult, selected: int, tz: dt.tzinfo, title_width: int = 32) -> Fragments:
    header = (
        "  " + "Status".ljust(12) + "Priority".ljust(9) + "Due".ljust(12)
        + "Title".ljust(title_width + 1) + "Assignee".ljust(13) + "Effort"
    )
    frags: Fragments = [("class:table.header", header), ("", "\n")]
    if not result.page:
        frags.append(("class:table.footer", "  (no tasks; press u to refresh or / to change the search)\n"))
    for i, t in enumerate(result.page):
        is_sel = i == selected
        base = "class:table.selected" if is_sel else ""

        def cell(style: str) -> str:
            return f"{base} {style}".strip()

        frags.append((base, "▶ " if is_sel else "  "))
        frags.append((cell(f"class:table.status.{t.status.lower()}"), t.status.ljust(12)))
        shown = t.escalated_priority or t.priority
        marker = "↑" if shown != t.priority else ""
        frags.append((cell(f"class:table.priority.{shown.lower()}"), (shown + marker).ljust(9)))
        due_style = "class:table.overdue" if t.overdue else ""
        due_text = _due_label(t, tz) + ("!" if t.overdue else "")
        frags.append((cell(due_style), due_text.ljust(12)))
        frags.append((base, _truncate(t.title, title_width) + " "))
        frags.append((base, _truncate(t.assignee or "-", 12) + " "))
        frags.append((cell("class:table.estimate"), f"~{t.effort_days}d"))
        frags.append(("", "\n"))
    frags.append((
        "class:table.footer",
        f"\n  Page {result.page_number}/{result.total_pages}  ·  {result.total} tasks",
    ))
    return frags


def build_top_bar(panel: str, name: str, initials: str, roles: Sequence[str], theme: str, flt: AnalyticsFilter) -> Fragments:
    if panel == PANEL_PUBLIC:
        return [("class:topbar", " taskboard  ·  not logged in")]
    window = f"{flt.window_days}d" if flt.window_days else "all time"
    scope = f"  ·  assignee {flt.assignee}" if flt.assignee else ""
    return [
        ("class:topbar.initials", f" {initials or '?'} "),
        ("class:topbar", f" {name} ({', '.join(roles) or '-'})  ·  {panel} view  ·  analytics {window}{scope}  ·  theme {theme}"),
    ]


def build_status_line(state: AppState, auto_refresh: bool, mode: Optional[str] = None, interval: Optional[float] = None) -> str:
    q = state.query
    parts = [f" {mode or 'BROWSE'}"]
    filters = []
    if q.term:
        filters.append(f"search '{q.term}'")
    if q.status:
        filters.append(f"status {q.status}")
    if q.priority:
        filters.append(f"priority {q.priority}")
    if q.assignee:
        filters.append(f"assignee {q.assignee}")
    if filters:
        parts.append(", ".join(filters))
    parts.append(f"sort {SORT_LABELS.get(q.sort, q.sort)}")
    if auto_refresh:
        parts.append(f"auto {interval:g}s" if interval else "auto")
    else:
        parts.append("manual")
    if state.busy:
        parts.append("loading…")
    elif state.loaded_at is not None:
        parts.append(f"loaded {state.loaded_at.astimezone().strftime('%H:%M:%S')}")
    if state.status_line:
        parts.append(state.status_line)
    return "  ·  ".join(parts)


def build_calendar_fragments(
    grid: Sequence[Sequence[Tuple[Optional[dt.date], List[DerivedTask]]]],
    year: int,
    month: int,
    today: Optional[dt.date] = None,
    tz: Optional[dt.tzinfo] = None,
    max_items: int = 8,
) -> Fragments:
    """Month grid with a per-day task count, followed by the first tasks due that month."""
    frags: Fragments = [
        ("class:calendar.header", f" {calendar.month_name[month]} {year}\n"),
        ("class:calendar.weekdays", " " + "".join(f"{d:<5}" for d in ("Mo", "Tu", "We", "Th", "Fr", "Sa", "Su")) + "\n"),
    ]
    listed: List[Tuple[dt.date, DerivedTask]] = []
    for week in grid:
        frags.append(("", " "))
        for day, tasks in week:
            if day is None:
                frags.append(("", " " * 5))
                continue
            if day == today:
                style = "class:calendar.today"
            elif tasks:
                style = "class:calendar.busy"
            else:
                style = "class:calendar.day"
            count = f"·{min(len(tasks), 9)}" if tasks else "  "
            frags.append((style, f"{day.day:>2}{count}"))
            frags.append(("", " "))
            listed.extend((day, t) for t in tasks)
        frags.append(("", "\n"))
    if not listed:
        frags.append(("class:chart.empty", "\n (no tasks due this month)\n"))
        return frags
    frags.append(("", "\n"))
    for day, t in listed[:max_items]:
        frags.append(("", f" {day.strftime('%m-%d')}  "))
        frags.append((f"class:table.status.{t.status.lower()}", t.status.ljust(12)))
        frags.append(("", _truncate(t.title, 30) + "\n"))
    if len(listed) > max_items:
        frags.append(("class:chart.empty", f" … {len(listed) - max_items} more\n"))
    return frags


HELP_KEYS: List[Tuple[str, str]] = [
    ("u", "refresh tasks"),
    ("/", "search (Enter apply, Esc cancel)"),
    ("f / p", "cycle status / priority filter"),
    ("s / S", "cycle sort forward / backward"),
    ("n / b", "next / previous page"),
    ("j / k", "move selection"),
    ("x", "advance status of selected task"),
    ("N", f"new task ({FORM_HINT})"),
    ("e", "edit selected task"),
    ("D", "delete selected task"),
    ("w", "cycle analytics window"),
    ("a", "scope analytics to selected assignee (again to clear)"),
    ("A", "toggle auto refresh"),
    ("T", "toggle light / dark theme"),
    ("C", "calendar (h / l change month)"),
    ("L", "logout"),
    ("?", "toggle this help"),
    ("q", "quit"),
]


def build_help_text() -> str:
    width = max(len(k) for k, _ in HELP_KEYS)
    lines = [f"  {k.ljust(width)}  {desc}" for k, desc in HELP_KEYS]
    lines.append("")
    lines.append("  Values marked ~ are estimates derived from ids, text and dates.")
    lines.append("  Priorities marked ↑ are escalated by a near or passed due date.")
    return "\n".join(lines)


def _public_fragments() -> Fragments:
    return [
        ("class:public", "\n  Not logged in.\n\n"),
        ("class:public", "  Run `taskboard --login USERNAME` (or --signup) and start the UI again.\n"),
    ]


def spawn_background(app: Application, coro) -> asyncio.Task:
    """Run ``coro`` as an application background task; the application keeps the reference."""
    return app.create_background_task(coro)


# -----------------------------
# Application
# -----------------------------
def run_ui(dashboard: Dashboard, cfg: Config) -> None:
    in_search = False
    search_buffer = ""
    in_form = False
    form_buffer = ""
    form_task_id: Optional[str] = None
    confirm_delete: Optional[str] = None
    show_help = False
    show_calendar = False
    today = dt.datetime.now(dashboard.tz).date()
    cal_year, cal_month = today.year, today.month

    app: Optional[Application] = None

    def invalidate() -> None:
        if app is not None:
            app.invalidate()

    dashboard.events.subscribe("ui.invalidate", "changed", invalidate)

    def mode_label() -> str:
        if in_search:
            return f"SEARCH {search_buffer}_"
        if in_form:
            return f"{'EDIT' if form_task_id else 'NEW'} {form_buffer}_"
        if confirm_delete:
            return "DELETE? y/n"
        if show_calendar:
            return "CALENDAR"
        if show_help:
            return "HELP"
        return "BROWSE"

    def table_fragments() -> Fragments:
        if dashboard.panel() == PANEL_PUBLIC:
            return _public_fragments()
        return build_table_fragments(dashboard.rows(), dashboard.state.selected, dashboard.tz)

    def top_fragments() -> Fragments:
        session = dashboard.session
        return build_top_bar(
            dashboard.panel(),
            session.display_name(),
            session.initials(),
            session.roles,
            dashboard.state.theme,
            dashboard.state.analytics_filter,
        )

    def status_fragments() -> Fragments:
        style = "class:status class:status.busy" if dashboard.state.busy else "class:status"
        return [(style, build_status_line(
            dashboard.state, dashboard.scheduler.auto_refresh, mode_label(), cfg.auto_refresh_seconds))]

    def chart_container():
        windows = []
        for chart_id in dashboard.registry.ids():
            chart = dashboard.registry.get(chart_id)
            if chart is None:
                continue
            windows.append(Window(content=chart.control, height=Dimension(min=3), wrap_lines=False))
            windows.append(Window(height=1, char=" "))
        if not windows:
            windows.append(Window(content=FormattedTextControl(text=[("class:chart.empty", " (no charts)")])))
        return HSplit(windows)

    def calendar_fragments() -> Fragments:
        if dashboard.panel() == PANEL_PUBLIC:
            return _public_fragments()
        grid = calendar_month(dashboard.state.derived, cal_year, cal_month, dashboard.tz)
        return build_calendar_fragments(grid, cal_year, cal_month, today, dashboard.tz)

    top_window = Window(height=1, content=FormattedTextControl(text=top_fragments))
    table_window = Window(content=FormattedTextControl(text=table_fragments), wrap_lines=False, always_hide_cursor=True)
    charts_window = DynamicContainer(chart_container)
    status_window = Window(height=1, content=FormattedTextControl(text=status_fragments))
    help_window = Frame(body=Window(content=FormattedTextControl(text=build_help_text()), width=72), title="Help")
    calendar_window = Frame(
        body=Window(content=FormattedTextControl(text=calendar_fragments), width=40),
        title="Calendar",
    )

    floats: List[Float] = []

    def set_float(window, visible: bool) -> None:
        floats[:] = [f for f in floats if f.content is not window]
        if visible:
            floats.append(Float(content=window, top=2, left=4))
        invalidate()

    body = VSplit([
        table_window,
        Window(width=1, char="│"),
        HSplit([charts_window], width=Dimension(preferred=48, max=60)),
    ])
    container = FloatContainer(content=HSplit([top_window, body, status_window]), floats=floats)

    kb = KeyBindings()
    is_text = Condition(lambda: in_search or in_form)
    is_confirm = Condition(lambda: confirm_delete is not None)
    is_calendar = Condition(lambda: show_calendar and not (in_search or in_form))
    is_normal = Condition(lambda: not (in_search or in_form or confirm_delete is not None))

    def spawn(coro) -> None:
        spawn_background(app, coro)

    def selected() -> Optional[DerivedTask]:
        return dashboard.runner.run("select", dashboard.selected_task)

    @kb.add("q", filter=is_normal)
    def _(event):
        dashboard.scheduler.set_auto_refresh(False)
        event.app.exit()

    @kb.add("u", filter=is_normal)
    def _(event):
        spawn(dashboard.refresh())

    @kb.add("/", filter=is_normal)
    def _(event):
        nonlocal in_search, search_buffer
        in_search = True
        search_buffer = dashboard.state.query.term
        invalidate()

    @kb.add("f", filter=is_normal)
    def _(event):
        dashboard.runner.run("status filter", dashboard.cycle_status_filter)

    @kb.add("p", filter=is_normal)
    def _(event):
        dashboard.runner.run("priority filter", dashboard.cycle_priority_filter)

    @kb.add("s", filter=is_normal)
    def _(event):
        dashboard.runner.run("sort", dashboard.cycle_sort, 1)

    @kb.add("S", filter=is_normal)
    def _(event):
        dashboard.runner.run("sort", dashboard.cycle_sort, -1)

    @kb.add("n", filter=is_normal)
    def _(event):
        dashboard.runner.run("page", dashboard.change_page, 1)
        invalidate()

    @kb.add("b", filter=is_normal)
    def _(event):
        dashboard.runner.run("page", dashboard.change_page, -1)
        invalidate()

    @kb.add("j", filter=is_normal)
    @kb.add("down", filter=is_normal)
    def _(event):
        dashboard.runner.run("move", dashboard.move, 1)

    @kb.add("k", filter=is_normal)
    @kb.add("up", filter=is_normal)
    def _(event):
        dashboard.runner.run("move", dashboard.move, -1)

    @kb.add("x", filter=is_normal)
    def _(event):
        t = selected()
        if t is not None:
            spawn(dashboard.advance_status(t.id))

    @kb.add("N", filter=is_normal)
    def _(event):
        nonlocal in_form, form_buffer, form_task_id
        in_form = True
        form_buffer = ""
        form_task_id = None
        dashboard.notify(f"New task: {FORM_HINT}")

    @kb.add("e", filter=is_normal)
    def _(event):
        nonlocal in_form, form_buffer, form_task_id
        t = selected()
        if t is None:
            return
        due = t.due_date.astimezone(dashboard.tz).strftime("%Y-%m-%d") if t.due_date else ""
        in_form = True
        form_buffer = f"{t.title};{t.priority};{due};{t.assignee or ''}"
        form_task_id = t.id
        dashboard.notify(f"Edit task: {FORM_HINT}")

    @kb.add("D", filter=is_normal)
    def _(event):
        nonlocal confirm_delete
        t = selected()
        if t is None:
            return
        confirm_delete = t.id
        dashboard.notify(f"Delete '{t.title}'? y/n")

    @kb.add("y", filter=is_confirm)
    def _(event):
        nonlocal confirm_delete
        task_id, confirm_delete = confirm_delete, None
        spawn(dashboard.delete_task(task_id))

    @kb.add("n", filter=is_confirm)
    @kb.add("escape", filter=is_confirm)
    def _(event):
        nonlocal confirm_delete
        confirm_delete = None
        dashboard.notify("Delete cancelled")

    @kb.add("w", filter=is_normal)
    def _(event):
        current = dashboard.state.analytics_filter.window_days
        idx = ANALYTICS_WINDOWS.index(current) if current in ANALYTICS_WINDOWS else -1
        dashboard.runner.run(
            "analytics window",
            dashboard.set_analytics_filter,
            window_days=ANALYTICS_WINDOWS[(idx + 1) % len(ANALYTICS_WINDOWS)],
        )

    @kb.add("a", filter=is_normal)
    def _(event):
        if dashboard.state.analytics_filter.assignee:
            dashboard.runner.run("analytics scope", dashboard.set_analytics_filter, assignee=None)
            return
        t = selected()
        if t is not None and t.assignee:
            dashboard.runner.run("analytics scope", dashboard.set_analytics_filter, assignee=t.assignee)

    @kb.add("A", filter=is_normal)
    def _(event):
        dashboard.runner.run("auto refresh", dashboard.toggle_auto_refresh)

    @kb.add("T", filter=is_normal)
    def _(event):
        name = dashboard.runner.run("theme", dashboard.toggle_theme)
        if name:
            event.app.style = style_for(name)
        invalidate()

    @kb.add("C", filter=is_normal)
    def _(event):
        nonlocal show_calendar
        show_calendar = not show_calendar
        set_float(calendar_window, show_calendar)

    @kb.add("h", filter=is_calendar)
    @kb.add("left", filter=is_calendar)
    def _(event):
        nonlocal cal_year, cal_month
        cal_year, cal_month = (cal_year - 1, 12) if cal_month == 1 else (cal_year, cal_month - 1)
        invalidate()

    @kb.add("l", filter=is_calendar)
    @kb.add("right", filter=is_calendar)
    def _(event):
        nonlocal cal_year, cal_month
        cal_year, cal_month = (cal_year + 1, 1) if cal_month == 12 else (cal_year, cal_month + 1)
        invalidate()

    @kb.add("L", filter=is_normal)
    def _(event):
        dashboard.runner.run("logout", dashboard.logout)

    @kb.add("?", filter=is_normal)
    def _(event):
        nonlocal show_help
        show_help = not show_help
        set_float(help_window, show_help)

    @kb.add("escape", filter=is_normal)
    def _(event):
        nonlocal show_help, show_calendar
        show_help = show_calendar = False
        floats.clear()
        invalidate()

    # text entry for search and the task form
    @kb.add("escape", filter=is_text)
    def _(event):
        nonlocal in_search, in_form, search_buffer, form_buffer
        in_search = in_form = False
        search_buffer = form_buffer = ""
        dashboard.notify("Cancelled")

    @kb.add("backspace", filter=is_text)
    def _(event):
        nonlocal search_buffer, form_buffer
        if in_search:
            search_buffer = search_buffer[:-1]
        else:
            form_buffer = form_buffer[:-1]
        invalidate()

    @kb.add("enter", filter=is_text)
    def _(event):
        nonlocal in_search, in_form, form_buffer
        if in_search:
            in_search = False
            dashboard.runner.run("search", dashboard.set_query, term=search_buffer.strip())
            return
        in_form = False
        raw, form_buffer = form_buffer, ""
        spawn(dashboard.save_task(parse_task_form(raw), form_task_id))

    @kb.add(Keys.Any, filter=is_text)
    def _(event):
        nonlocal search_buffer, form_buffer
        ch = event.data or ""
        if not ch or ch in ("\r", "\n"):
            return
        if in_search:
            search_buffer += ch
        else:
            form_buffer += ch
        invalidate()

    app = Application(
        layout=Layout(container),
        key_bindings=kb,
        full_screen=True,
        mouse_support=False,
        style=style_for(dashboard.state.theme),
    )

    async def _startup():
        dashboard.runner.run("charts", dashboard.render_charts)
        if dashboard.session.is_authenticated():
            await dashboard.refresh()

    try:
        app.run(pre_run=lambda: app.create_background_task(_startup()))
    finally:
        dashboard.events.unsubscribe("ui.invalidate")
        dashboard.scheduler.set_auto_refresh(False)
        logger.debug("UI closed")
