import threading

import pytest
import requests

from conftest import FakeResponse
from taskboard.client import InFlightCounter, ResourceClient, TaskApi
from taskboard.errors import Cancelled, RequestFailed, SessionExpired, Timeout, ValidationFailed
from taskboard.models import Task


@pytest.fixture
def client(session, fake_http):
    return ResourceClient('http://api.test/', session, timeout=5.0, http=fake_http)


@pytest.fixture
def api(client):
    return TaskApi(client)


def test_bearer_header_and_timeout_are_attached(client, session, fake_http):
    session.set('tok', ['USER'], None)
    fake_http.route('GET', '/api/tasks', FakeResponse(200, []))
    assert client.call('/api/tasks') == []
    call = fake_http.calls[0]
    assert call['headers']['Authorization'] == 'Bearer tok'
    assert call['headers']['Accept'] == 'application/json'
    assert call['timeout'] == 5.0


def test_no_bearer_header_when_logged_out(client, fake_http):
    fake_http.route('GET', '/ping', FakeResponse(200, {'ok': True}))
    assert client.call('/ping') == {'ok': True}
    assert 'Authorization' not in fake_http.calls[0]['headers']


@pytest.mark.parametrize('status', [401, 403])
def test_unauthorized_clears_session(client, session, fake_http, status):
    session.set('tok', ['USER'], None)
    fake_http.route('GET', '/api/tasks', FakeResponse(status, {'error': 'nope'}))
    with pytest.raises(SessionExpired):
        client.call('/api/tasks')
    assert not session.is_authenticated()


@pytest.mark.parametrize('response, message', [
    (FakeResponse(500, {'error': 'Database down'}), 'Database down'),
    (FakeResponse(400, {'message': 'Title is required'}), 'Title is required'),
    (FakeResponse(502, text='Bad gateway'), 'Bad gateway'),
    (FakeResponse(500, text=''), 'Request failed'),
])
def test_error_messages_come_from_the_server(client, fake_http, response, message):
    fake_http.route('GET', '/x', response)
    with pytest.raises(RequestFailed) as info:
        client.call('/x')
    assert info.value.message == message
    assert info.value.status == response.status_code


def test_empty_success_body_is_none(client, fake_http):
    fake_http.route('DELETE', '/api/tasks/1', FakeResponse(204))
    assert client.call('/api/tasks/1', 'DELETE') is None


def test_timeout_and_connection_errors_are_mapped(client, fake_http):
    fake_http.route('GET', '/slow', requests.exceptions.ReadTimeout('slow'))
    fake_http.route('GET', '/down', requests.exceptions.ConnectionError('refused'))
    with pytest.raises(Timeout):
        client.call('/slow')
    with pytest.raises(RequestFailed):
        client.call('/down')
    assert client.counter.count == 0


def test_cancelled_before_dispatch_never_hits_the_network(client, fake_http):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(Cancelled):
        client.call('/api/tasks', cancel=cancel)
    assert fake_http.calls == []
    assert client.counter.count == 0


def test_cancelled_during_request_discards_result(client, fake_http):
    cancel = threading.Event()

    def respond(body):
        cancel.set()
        return FakeResponse(200, [])

    fake_http.route('GET', '/api/tasks', respond)
    with pytest.raises(Cancelled):
        client.call('/api/tasks', cancel=cancel)


def test_malformed_json_is_request_failed(client, fake_http):
    fake_http.route('GET', '/bad', FakeResponse(200, text='{oops'))
    with pytest.raises(RequestFailed):
        client.call('/bad')
    assert client.counter.count == 0


def test_counter_is_saturating_and_reports_flips():
    counter = InFlightCounter()
    seen = []
    counter.add_listener(seen.append)
    counter.add_listener(seen.append)
    counter.increment()
    counter.increment()
    counter.decrement()
    assert counter.busy
    counter.decrement()
    counter.decrement()
    assert counter.count == 0
    assert seen == [True, False]


def test_counter_survives_failing_listener():
    counter = InFlightCounter()

    def boom(busy):
        raise RuntimeError('listener bug')

    seen = []
    counter.add_listener(boom)
    counter.add_listener(seen.append)
    counter.increment()
    assert seen == [True]


def test_login_stores_session(api, session, fake_http):
    fake_http.route('POST', '/auth/login', FakeResponse(200, {
        'token': 'tok', 'roles': ['USER'], 'user': {'name': 'Ada', 'username': 'ada'},
    }))
    api.login(' ada ', 'secret')
    assert fake_http.calls[0]['json'] == {'username': 'ada', 'password': 'secret'}
    assert session.credential == 'tok'
    assert session.roles == ['USER']


def test_login_rejection_is_invalid_credentials(api, fake_http):
    fake_http.route('POST', '/auth/login', FakeResponse(401, text=''))
    with pytest.raises(RequestFailed) as info:
        api.login('ada', 'wrong')
    assert info.value.message == 'Invalid credentials'


def test_login_failure_messages(api, fake_http):
    fake_http.route('POST', '/auth/login', FakeResponse(500, text=''))
    with pytest.raises(RequestFailed) as info:
        api.login('ada', 'pw')
    assert (info.value.message, info.value.status) == ('Invalid credentials', 500)
    fake_http.route('POST', '/auth/login', FakeResponse(400, {'error': 'Account locked'}))
    with pytest.raises(RequestFailed) as info:
        api.login('ada', 'pw')
    assert info.value.message == 'Account locked'


def test_login_requires_both_fields(api, fake_http):
    with pytest.raises(ValidationFailed):
        api.login('', 'pw')
    assert fake_http.calls == []


def test_signup_checks_password_locally(api, fake_http):
    with pytest.raises(ValidationFailed):
        api.signup('Ada', 'ada@example.com', 'ada', 'short')
    with pytest.raises(ValidationFailed):
        api.signup('Ada', 'ada@example.com', 'ada', 'longenough', 'different')
    assert fake_http.calls == []


def test_signup_posts_profile(api, session, fake_http):
    fake_http.route('POST', '/auth/signup', FakeResponse(200, {'token': 't2', 'roles': ['USER'], 'user': None}))
    api.signup('Ada', 'ada@example.com', 'ada', 'longenough', 'longenough')
    assert fake_http.calls[0]['json']['email'] == 'ada@example.com'
    assert session.is_authenticated()


def test_task_endpoints(api, session, fake_http):
    session.set('tok', ['USER'], None)
    fake_http.route('GET', '/api/tasks', FakeResponse(200, [{'id': '1', 'title': 'A'}, 'junk']))
    fake_http.route('POST', '/api/tasks', lambda body: FakeResponse(200, dict(body, id='2')))
    fake_http.route('PUT', '/api/tasks/2', lambda body: FakeResponse(200, dict(body, id='2')))
    fake_http.route('DELETE', '/api/tasks/2', FakeResponse(204))

    tasks = api.list_tasks()
    assert [t.id for t in tasks] == ['1']
    created = api.create_task(Task(id='', title='New', priority='HIGH'))
    assert created.id == '2'
    assert created.priority == 'HIGH'
    updated = api.update_task('2', created.with_changes(status='IN_PROGRESS'))
    assert updated.status == 'IN_PROGRESS'
    api.delete_task('2')
    assert [c['method'] for c in fake_http.calls] == ['GET', 'POST', 'PUT', 'DELETE']
    with pytest.raises(ValidationFailed):
        api.delete_task('')
