#!/usr/bin/env python3
"""Tests for Config loading: defaults, JSON file, environment."""

import json
import os
from pathlib import Path

import pytest

from tcpdrop.config import Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No TCPDROP_* leakage and no stray .env file."""
    for key in list(os.environ):
        if key.startswith('TCPDROP_'):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    config = Config()
    assert config.host == '0.0.0.0'
    assert config.port == 0
    assert config.chunk_size == 1024
    assert config.byte_order == 'native'
    assert config.verify_size is False
    assert config.destination == Path('received_file')
    config.validate()


def test_from_file(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({
        'host': '127.0.0.1',
        'destination': 'out/video.mp4',
        'byte_order': 'big',
        'verify_size': True,
    }))

    config = Config.from_file(path)

    assert config.host == '127.0.0.1'
    assert config.destination == Path('out/video.mp4')
    assert config.byte_order == 'big'
    assert config.verify_size is True
    assert config.chunk_size == 1024


def test_missing_file_gives_defaults(tmp_path):
    assert Config.from_file(tmp_path / 'nope.json') == Config()


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'chunk_size': 4096, 'host': '10.0.0.1'}))
    monkeypatch.setenv('TCPDROP_CHUNK_SIZE', '2048')
    monkeypatch.setenv('TCPDROP_VERIFY_SIZE', 'yes')

    config = load_config(path)

    assert config.chunk_size == 2048
    assert config.verify_size is True
    assert config.host == '10.0.0.1'


def test_env_can_restore_default_over_file(tmp_path, monkeypatch):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({'verify_size': True, 'byte_order': 'big'}))
    monkeypatch.setenv('TCPDROP_VERIFY_SIZE', 'false')
    monkeypatch.setenv('TCPDROP_BYTE_ORDER', 'native')

    config = load_config(path)

    assert config.verify_size is False
    assert config.byte_order == 'native'


def test_dotenv_file_is_read(tmp_path, monkeypatch):
    # Registered so the value load_dotenv sets is removed afterwards
    monkeypatch.setenv('TCPDROP_BYTE_ORDER', '')
    monkeypatch.delenv('TCPDROP_BYTE_ORDER')
    (tmp_path / '.env').write_text('TCPDROP_BYTE_ORDER=little\n')
    assert load_config().byte_order == 'little'


def test_save_round_trip(tmp_path):
    config = Config(port=9000, advertise_host='192.168.1.5', accept_timeout=30.0)
    path = tmp_path / 'saved.json'
    config.save(path)

    assert Config.from_file(path) == config


@pytest.mark.parametrize("field, value", [
    ('chunk_size', 0),
    ('byte_order', 'middle'),
    ('port', 70000),
    ('connect_timeout', 0),
])
def test_validate_rejects(field, value):
    config = Config(**{field: value})
    with pytest.raises(ValueError):
        config.validate()


def test_load_config_validates(monkeypatch):
    monkeypatch.setenv('TCPDROP_BYTE_ORDER', 'sideways')
    with pytest.raises(ValueError):
        load_config()
