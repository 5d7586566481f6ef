import json
import logging
from pathlib import Path

import pytest

from atlas_otm.infrastructure.logging import LoggingManager
from atlas_otm.services.config_service import ConfigService, DEFAULT_CONFIG
from atlas_otm.models.tile_server import DEFAULT_TILE_URL
from atlas_otm.utils.file_utils import FileUtils
from atlas_otm.exceptions.tile_cache_exceptions import ConfigurationError, ValidationError


def test_defaults_without_config_file(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = ConfigService().load_config()

    assert config['tile_url'] == DEFAULT_TILE_URL
    assert config['delay_seconds'] == 5.0
    assert config['on_error'] == 'abort'
    assert config['cache_root'] == FileUtils.default_cache_root()


def test_file_overrides_defaults(tmp_path: Path):
    path = tmp_path / "atlas.json"
    path.write_text(json.dumps({
        'cache_root': str(tmp_path / 'tiles'),
        'delay_seconds': 0,
        'on_error': 'continue',
        'logging': {'level': 'DEBUG'},
    }))

    config = ConfigService().load_config(str(path))

    assert config['cache_root'] == str(tmp_path / 'tiles')
    assert config['delay_seconds'] == 0
    assert config['on_error'] == 'continue'
    assert config['logging']['level'] == 'DEBUG'
    assert config['logging']['format'] == DEFAULT_CONFIG['logging']['format']


def test_explicit_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="not found"):
        ConfigService().load_config(str(tmp_path / "missing.json"))


def test_invalid_json(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        ConfigService().load_config(str(path))


@pytest.mark.parametrize("override", [
    {'tile_url': 'https://example.com/{z}/{x}.png'},
    {'on_error': 'ignore'},
    {'delay_seconds': -1},
    {'max_workers': 0},
    {'retry_attempts': 'three'},
    {'headers': ['User-Agent']},
    {'logging': 'DEBUG'},
    {'unknown_key': 1},
])
def test_invalid_values(override):
    with pytest.raises(ValidationError):
        ConfigService().from_dict(override)


def test_tile_server_from_config():
    config = ConfigService().from_dict({'headers': {'User-Agent': 'atlas'}})
    server = ConfigService().get_tile_server(config)
    assert server.get_headers() == {'User-Agent': 'atlas'}
    assert server.get_tile_url(8, 1, 2).endswith('/8/1/2@2x.png')


def test_logging_setup_quiets_http_loggers():
    logging.getLogger('urllib3').setLevel(logging.DEBUG)
    LoggingManager.setup_logging(ConfigService().from_dict({'logging': {'level': 'debug'}}))

    assert logging.getLogger('urllib3').level == logging.WARNING
    assert logging.getLogger('requests').level == logging.WARNING
