import datetime as dt

import pytest

from taskboard import policy
from taskboard.errors import ValidationFailed
from taskboard.models import Task

UTC = dt.timezone.utc


def test_normalize_and_defaults():
    raw = Task(id='', title='  Plan  ', status=' in_progress ', priority='', assignee='   ')
    task = policy.apply_defaults(policy.normalize(raw))
    assert task.title == 'Plan'
    assert task.status == 'IN_PROGRESS'
    assert task.priority == 'MEDIUM'
    assert task.assignee is None


def test_create_requires_title(now):
    with pytest.raises(ValidationFailed):
        policy.validate_for_create(Task(id='', title='   '), now)


def test_create_rejects_past_due_but_allows_today(now):
    with pytest.raises(ValidationFailed):
        policy.validate_for_create(Task(id='', title='x', due_date=now - dt.timedelta(days=1)), now)
    earlier_today = now.replace(hour=0, minute=5)
    task = policy.validate_for_create(Task(id='', title='x', due_date=earlier_today), now)
    assert task.due_date == earlier_today


def test_create_rejects_unknown_vocabulary(now):
    with pytest.raises(ValidationFailed):
        policy.validate_for_create(Task(id='', title='x', priority='URGENT'), now)


@pytest.mark.parametrize('current, target, ok', [
    ('OPEN', 'IN_PROGRESS', True),
    ('IN_PROGRESS', 'DONE', True),
    ('OPEN', 'OPEN', True),
    ('OPEN', 'DONE', False),
    ('DONE', 'OPEN', False),
    ('IN_PROGRESS', 'OPEN', False),
    ('OPEN', 'BLOCKED', False),
])
def test_transitions(current, target, ok):
    assert policy.valid_transition(current, target) is ok


def test_next_status():
    assert policy.next_status('OPEN') == 'IN_PROGRESS'
    assert policy.next_status('IN_PROGRESS') == 'DONE'
    assert policy.next_status('DONE') is None


def test_update_keeps_an_old_past_due_date(now):
    past = now - dt.timedelta(days=10)
    existing = Task(id='1', title='Old', due_date=past)
    updated = policy.validate_for_update(existing, existing.with_changes(status='IN_PROGRESS'), now)
    assert updated.status == 'IN_PROGRESS'
    with pytest.raises(ValidationFailed):
        policy.validate_for_update(existing, existing.with_changes(due_date=past - dt.timedelta(days=1)), now)
    with pytest.raises(ValidationFailed):
        policy.validate_for_update(existing, existing.with_changes(status='DONE'), now)


def test_parse_task_form_pads_missing_parts():
    assert policy.parse_task_form('Ship it; high ;2024-03-20') == {
        'title': 'Ship it', 'priority': 'high', 'due': '2024-03-20', 'assignee': '',
    }
    assert policy.parse_task_form('')['title'] == ''


def test_task_from_form_sets_end_of_day_in_zone():
    plus_one = dt.timezone(dt.timedelta(hours=1))
    task = policy.task_from_form({'title': 'Ship', 'priority': 'high', 'due': '2024-03-20', 'assignee': 'bob'}, tz=plus_one)
    assert task.due_date == dt.datetime(2024, 3, 20, 23, 59, 59, tzinfo=plus_one)
    assert task.assignee == 'bob'
    assert policy.normalize(task).priority == 'HIGH'


def test_task_from_form_keeps_base_values():
    base = Task(id='7', title='Old', priority='LOW', status='IN_PROGRESS', assignee='amy', due_date=dt.datetime(2024, 4, 1, tzinfo=UTC))
    task = policy.task_from_form({'title': '', 'priority': '', 'due': '', 'assignee': ''}, base)
    assert task == base


def test_task_from_form_rejects_bad_dates():
    with pytest.raises(ValidationFailed):
        policy.task_from_form({'title': 'x', 'due': '20/03/2024'})


@pytest.mark.parametrize('priority, status, hours, expected', [
    ('LOW', 'OPEN', -48, 'HIGH'),
    ('MEDIUM', 'IN_PROGRESS', -2, 'HIGH'),
    ('LOW', 'OPEN', 12, 'MEDIUM'),
    ('MEDIUM', 'OPEN', 24, 'HIGH'),
    ('HIGH', 'OPEN', 5, 'HIGH'),
    ('LOW', 'OPEN', 25, 'LOW'),
    ('LOW', 'DONE', -48, 'LOW'),
    # half an hour late truncates to zero whole hours
    ('LOW', 'OPEN', -0.5, 'MEDIUM'),
])
def test_escalated_priority(now, priority, status, hours, expected):
    task = Task(id='1', title='x', priority=priority, status=status, due_date=now + dt.timedelta(hours=hours))
    assert policy.escalated_priority(task, now) == expected


def test_undated_tasks_are_not_escalated(now):
    assert policy.escalated_priority(Task(id='1', title='x', priority='LOW'), now) == 'LOW'
