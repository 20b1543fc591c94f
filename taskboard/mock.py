from __future__ import annotations

import datetime as dt
from typing import List, Optional

from .models import PRIORITIES, STATUSES, Task


MOCK_ASSIGNEES = ["alice", "bob", "carol", "", "dave"]
MOCK_TITLES = [
    "Write onboarding guide",
    "Fix login redirect",
    "Review analytics queries",
    "Migrate task table",
    "Plan sprint demo",
    "Audit role checks",
    "Tune dashboard colors",
]


def mock_task_id(created: dt.datetime, serial: int) -> str:
    """An id whose first 8 hex digits encode ``created`` in epoch seconds."""
    return f"{int(created.timestamp()):08x}{serial:016x}"


def generate_mock_tasks(now: Optional[dt.datetime] = None, count: int = 28) -> List[Task]:
    """Generate synthetic tasks for offline demo & testing."""
    now = now or dt.datetime.now(dt.timezone.utc)
    rows: List[Task] = []
    for i in range(count):
        created = now - dt.timedelta(days=3 * (i % 19) + 1, hours=i)
        due_offset = (i % 11) - 4
        due = None if i % 7 == 6 else (now + dt.timedelta(days=due_offset)).replace(
            hour=23, minute=59, second=59, microsecond=0)
        title = MOCK_TITLES[i % len(MOCK_TITLES)]
        rows.append(Task(
            id=mock_task_id(created, i + 1),
            title=f"{title} #{i + 1}",
            description="Demo task. " * (i % 5),
            status=STATUSES[i % len(STATUSES)],
            priority=PRIORITIES[(i * 2) % len(PRIORITIES)],
            due_date=due,
            assignee=MOCK_ASSIGNEES[i % len(MOCK_ASSIGNEES)] or None,
            created_at=created.replace(microsecond=0),
        ))
    return rows
