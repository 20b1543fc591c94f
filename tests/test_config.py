import os

import pytest

from taskboard.config import Config, load_config


def test_missing_file_gives_defaults(tmp_path):
    cfg = load_config(str(tmp_path / 'absent.yaml'), environ={})
    assert cfg == Config()
    assert cfg.timeout_seconds == 15.0
    assert cfg.auto_refresh_seconds == 30.0


def test_yaml_values_are_coerced(tmp_path):
    path = tmp_path / 'taskboard.yaml'
    path.write_text(
        'base_url: http://tasks.example.com/\n'
        'timeout_seconds: 20\n'
        'page_size: "25"\n'
        'analytics_window_days: 30\n'
        'unknown_key: ignored\n',
        encoding='utf-8',
    )
    cfg = load_config(str(path), environ={})
    assert cfg.base_url == 'http://tasks.example.com'
    assert cfg.timeout_seconds == 20.0
    assert cfg.page_size == 25
    assert cfg.analytics_window_days == 30
    assert cfg.weeks == 8


def test_environment_overrides_file(tmp_path):
    path = tmp_path / 'taskboard.yaml'
    path.write_text('base_url: http://file\n', encoding='utf-8')
    cfg = load_config(str(path), environ={'TASKBOARD_BASE_URL': 'http://env', 'TASKBOARD_TIMEOUT': '45'})
    assert cfg.base_url == 'http://env'
    assert cfg.timeout_seconds == 45.0


def test_empty_file_is_defaults(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text('', encoding='utf-8')
    assert load_config(str(path), environ={}) == Config()


@pytest.mark.parametrize('body', ['- a\n- b\n', 'page_size: lots\n', 'page_size: 0\n'])
def test_invalid_documents_raise(tmp_path, body):
    path = tmp_path / 'bad.yaml'
    path.write_text(body, encoding='utf-8')
    with pytest.raises(ValueError):
        load_config(str(path), environ={})


def test_log_path_defaults_next_to_store(tmp_path):
    cfg = Config(store_path=str(tmp_path / 'data' / 'kv.db'))
    assert cfg.resolved_log_path() == os.path.join(str(tmp_path / 'data'), 'taskboard.log')
    assert Config(log_path='~/x.log').resolved_log_path() == os.path.expanduser('~/x.log')
    assert Config(store_path=':memory:').resolved_store_path() == ':memory:'
