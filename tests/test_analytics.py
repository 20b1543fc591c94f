import datetime as dt
import json

import pytest

from taskboard import analytics as an
from taskboard.derive import derive
from taskboard.models import AnalyticsFilter, Task

UTC = dt.timezone.utc
# Monday buckets around NOW (2024-03-13): ..., 02-26, 03-04, 03-11
REFERENCE = dt.date(2024, 3, 13)


def _at(month, day, hour=12):
    return dt.datetime(2024, month, day, hour, tzinfo=UTC)


@pytest.fixture
def derived(now):
    tasks = [
        Task(id='a', title='A', status='DONE', priority='HIGH', due_date=_at(3, 12), assignee='alice',
             created_at=_at(3, 5)),
        Task(id='b', title='B', status='DONE', priority='LOW', due_date=None, assignee='alice',
             created_at=_at(3, 6)),
        Task(id='c', title='C', status='OPEN', priority='HIGH', due_date=_at(3, 1), assignee='',
             created_at=_at(2, 27)),
        Task(id='d', title='D', status='IN_PROGRESS', priority='MEDIUM', due_date=_at(3, 20), assignee='bob',
             created_at=_at(3, 12)),
        Task(id='e', title='E', status='OPEN', priority='MEDIUM', due_date=_at(1, 2), assignee=None,
             created_at=_at(1, 1)),
    ]
    return derive(tasks, now)


def test_distribution_counts(derived):
    dist = an.distribution(derived)
    assert dist.by_status == {'OPEN': 2, 'IN_PROGRESS': 1, 'DONE': 2}
    assert dist.by_priority == {'LOW': 1, 'MEDIUM': 2, 'HIGH': 2}
    assert dist.overdue == 2
    assert (dist.total, dist.done, dist.pending) == (5, 2, 3)
    assert dist.completion_rate == pytest.approx(0.4)


def test_distribution_empty_is_zero_filled():
    dist = an.distribution([])
    assert dist.by_status == {'OPEN': 0, 'IN_PROGRESS': 0, 'DONE': 0}
    assert dist.completion_rate == 0.0


def test_scope_window_keeps_undated_and_assignee_scope(derived, now):
    rows = an.scope(derived, AnalyticsFilter(window_days=30), now)
    assert [t.id for t in rows] == ['a', 'b', 'c', 'd']
    rows = an.scope(derived, AnalyticsFilter(window_days=0, assignee='alice'), now)
    assert [t.id for t in rows] == ['a', 'b']
    assert len(an.scope(derived, None, now)) == 5


def test_week_buckets_end_on_reference_monday():
    buckets = an.week_buckets(3, dt.date(2024, 3, 17))
    assert buckets == [dt.date(2024, 2, 26), dt.date(2024, 3, 4), dt.date(2024, 3, 11)]
    assert an.week_start(dt.date(2024, 3, 11)) == dt.date(2024, 3, 11)


def test_weekly_completion_has_exactly_n_points(derived):
    series = an.weekly_completion(derived, weeks=3, reference=REFERENCE, tz=UTC)
    assert series.labels == ['2024-02-26', '2024-03-04', '2024-03-11']
    # 'a' by due date, 'b' falls back to its creation time
    assert series.values == [0, 1, 1]
    empty = an.weekly_completion([], weeks=8, reference=REFERENCE, tz=UTC)
    assert len(empty.values) == 8
    assert sum(empty.values) == 0


def test_weekly_status_trend_uses_due_dates(derived):
    trend = an.weekly_status_trend(derived, weeks=3, reference=REFERENCE, tz=UTC)
    assert trend.open == [1, 0, 0]
    assert trend.done == [0, 0, 1]
    assert trend.in_progress == [0, 0, 0]


def test_priority_status_matrix(derived):
    matrix = an.priority_status_matrix(derived)
    assert matrix.rows == ['OPEN', 'IN_PROGRESS', 'DONE']
    assert matrix.columns == ['LOW', 'MEDIUM', 'HIGH']
    assert matrix.cell('OPEN', 'HIGH') == 1
    assert matrix.cell('DONE', 'LOW') == 1
    assert sum(sum(r) for r in matrix.counts) == 5


def test_assignee_load_groups_blank_as_unassigned(derived):
    loads = an.assignee_load(derived)
    assert [(l.assignee, l.total, l.done, l.overdue) for l in loads] == [
        ('alice', 2, 2, 0),
        ('Unassigned', 2, 0, 2),
        ('bob', 1, 0, 0),
    ]


def test_assignee_load_truncates(make_derived):
    rows = [make_derived(id=f'x{i}', assignee=f'user{i:02d}') for i in range(20)]
    assert len(an.assignee_load(rows)) == an.ASSIGNEE_LIMIT


def test_radar_scores(derived):
    score = an.radar(derived)
    assert score.completion == 40
    assert score.low_overdue == 60
    assert score.assignment == 60
    assert 0 <= score.complexity <= 100
    assert 0 <= score.effort <= 100


def test_radar_clamps_effort_per_task(make_derived):
    rows = [
        make_derived(id='long', created_at=_at(1, 1), due_date=dt.datetime(2025, 1, 1, tzinfo=UTC)),
        make_derived(id='short', created_at=_at(3, 1), due_date=_at(3, 3)),
    ]
    # 366 days clamps to 100, averaged with 2
    assert an.radar(rows).effort == 51


def test_radar_empty_subset_is_all_zero():
    assert an.radar([]).values() == [0, 0, 0, 0, 0]


def test_created_vs_completed(derived):
    cc = an.created_vs_completed(derived, weeks=3, reference=REFERENCE, tz=UTC)
    assert cc.labels == ['2024-02-26', '2024-03-04', '2024-03-11']
    assert cc.created == [1, 2, 1]
    assert cc.completed == [0, 1, 1]


def test_calendar_month_grid(derived):
    grid = an.calendar_month(derived, 2024, 3, tz=UTC)
    assert all(len(week) == 7 for week in grid)
    # March 2024 starts on a Friday
    assert grid[0][:4] == [(None, [])] * 4
    assert grid[0][4][0] == dt.date(2024, 3, 1)
    assert [t.id for t in grid[0][4][1]] == ['c']
    days = {day: tasks for week in grid for day, tasks in week if day is not None}
    assert [t.id for t in days[dt.date(2024, 3, 20)]] == ['d']
    assert len(days) == 31


def test_report_payload_is_json_serializable(derived, now):
    payload = an.report_payload(derived, AnalyticsFilter(window_days=30), weeks=4, now=now, tz=UTC)
    assert payload['meta']['tasks'] == 4
    assert payload['meta']['window_days'] == 30
    assert len(payload['weekly_completion']['values']) == 4
    assert set(payload['radar']) == set(an.RADAR_AXES)
    json.dumps(payload)
