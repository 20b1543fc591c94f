import asyncio
import logging

import pytest

from taskboard.safe import SafeRunner, Subscriptions


def test_failing_unit_does_not_stop_the_next(caplog):
    notes = []
    runner = SafeRunner(logging.getLogger('safetest'), notify=notes.append)
    ran = []

    def broken():
        raise ValueError('render bug')

    with caplog.at_level(logging.ERROR, logger='safetest'):
        assert runner.run('status chart', broken) is None
        assert runner.run('priority chart', lambda: ran.append('ok') or 'done') == 'done'
    assert ran == ['ok']
    assert notes == ['render bug']
    assert '[status chart] render bug' in caplog.text


def test_notify_failure_is_contained():
    def bad_notify(message):
        raise RuntimeError('status line gone')

    runner = SafeRunner(notify=bad_notify)
    assert runner.run('x', lambda: 1 / 0) is None


def test_run_async_returns_none_on_error():
    notes = []
    runner = SafeRunner(notify=notes.append)

    async def boom():
        raise RuntimeError('load failed')

    async def fine(value):
        return value

    async def scenario():
        return await runner.run_async('load', boom), await runner.run_async('other', fine, 7)

    assert asyncio.run(scenario()) == (None, 7)
    assert notes == ['load failed']


def test_run_async_lets_cancellation_through():
    runner = SafeRunner()

    async def scenario():
        task = asyncio.ensure_future(runner.run_async('tick', asyncio.sleep, 10))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_subscriptions_are_idempotent_and_isolated():
    runner = SafeRunner()
    subs = Subscriptions(runner)
    calls = []

    assert subs.subscribe('table', 'changed', lambda: calls.append('table'))
    assert not subs.subscribe('table', 'changed', lambda: calls.append('dup'))
    subs.subscribe('broken', 'changed', lambda: 1 / 0)
    subs.subscribe('charts', 'changed', lambda: calls.append('charts'))
    subs.subscribe('other', 'logout', lambda: calls.append('logout'))

    subs.emit('changed')
    assert calls == ['table', 'charts']

    subs.unsubscribe('table')
    assert not subs.is_bound('table')
    subs.emit('changed')
    assert calls == ['table', 'charts', 'charts']
