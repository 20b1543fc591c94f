import datetime as dt
import json
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from taskboard.config import Config  # noqa: E402
from taskboard.derive import derive  # noqa: E402
from taskboard.models import Task  # noqa: E402
from taskboard.session import SessionState  # noqa: E402
from taskboard.store import KeyValueStore  # noqa: E402

UTC = dt.timezone.utc
# Wednesday; the week bucket starts on Monday 2024-03-11
NOW = dt.datetime(2024, 3, 13, 12, 0, 0, tzinfo=UTC)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        if payload is not None:
            self.text = json.dumps(payload)
        else:
            self.text = text or ''

    def json(self):
        return json.loads(self.text)


class FakeHttp:
    """Stands in for requests.Session; ``routes`` maps (METHOD, path) to a response or exception."""

    def __init__(self, base_url='http://api.test'):
        self.base_url = base_url
        self.routes = {}
        self.calls = []

    def route(self, method, path, response):
        self.routes[(method.upper(), path)] = response
        return self

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = url[len(self.base_url):] if url.startswith(self.base_url) else url
        self.calls.append({
            'method': method,
            'path': path,
            'json': json,
            'headers': dict(headers or {}),
            'timeout': timeout,
        })
        result = self.routes.get((method.upper(), path))
        if result is None:
            return FakeResponse(404, {'error': f'no route for {method} {path}'})
        if callable(result) and not isinstance(result, FakeResponse):
            result = result(json)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_task():
    def _make(**overrides):
        base = dict(
            id='65f0a000aaaaaaaaaaaaaaaa',
            title='Write docs',
            description='',
            status='OPEN',
            priority='MEDIUM',
            due_date=None,
            assignee=None,
            created_at=None,
        )
        base.update(overrides)
        return Task(**base)
    return _make


@pytest.fixture
def make_derived(make_task):
    def _make(**overrides):
        return derive([make_task(**overrides)], NOW)[0]
    return _make


@pytest.fixture
def store():
    s = KeyValueStore(':memory:')
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def session(store):
    return SessionState(store)


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def cfg():
    return Config(base_url='http://api.test', timeout_seconds=5.0, page_size=3, weeks=4)
