import copy
import json
import os
from typing import Dict, Any, Optional

from atlas_otm.interfaces.tile_cache import IConfigLoader
from atlas_otm.models.tile_server import DEFAULT_TILE_URL, TileServer
from atlas_otm.exceptions.tile_cache_exceptions import ConfigurationError, ValidationError
from atlas_otm.utils.file_utils import FileUtils


DEFAULT_CONFIG_PATH = "config.json"
ON_ERROR_POLICIES = ("abort", "continue")

DEFAULT_CONFIG: Dict[str, Any] = {
    'cache_root': None,  # resolved to ~/AtlasOSMTiles
    'tile_url': DEFAULT_TILE_URL,
    'headers': {},
    'timeout': 30,
    'retry_attempts': 0,
    'delay_seconds': 5.0,
    'on_error': 'abort',
    'max_workers': 1,
    'error_log': 'crash.log',
    'server_port': 3000,
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': None,
    },
}


class ConfigService(IConfigLoader):
    """Service for loading and validating configuration"""

    def load_config(self, config_path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
        """Load configuration from a JSON file merged over the defaults.

        A missing file is only an error when it was asked for explicitly.
        """
        user_config: Dict[str, Any] = {}
        if config_path:
            if os.path.exists(config_path):
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        user_config = json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Invalid JSON in {config_path}: {e}")
                except OSError as e:
                    raise ConfigurationError(f"Error loading config: {e}")
                if not isinstance(user_config, dict):
                    raise ConfigurationError(f"{config_path} must contain a JSON object")
            elif config_path != DEFAULT_CONFIG_PATH:
                raise ConfigurationError(f"Config file {config_path} not found!")

        return self.from_dict(user_config)

    def from_dict(self, user_config: Dict[str, Any]) -> Dict[str, Any]:
        config = copy.deepcopy(DEFAULT_CONFIG)
        for key, value in user_config.items():
            if key == 'logging' and isinstance(value, dict):
                config['logging'].update(value)
            else:
                config[key] = value

        self.validate_config(config)
        return self._process_config(config)

    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration values"""
        unknown = set(config) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        url = config['tile_url']
        if not isinstance(url, str) or not all(p in url for p in ('{z}', '{x}', '{y}')):
            raise ValidationError("tile_url must contain {z}, {x} and {y} placeholders")

        if not isinstance(config['headers'], dict):
            raise ValidationError("headers must be a dictionary")

        if not isinstance(config['logging'], dict):
            raise ValidationError("logging must be a dictionary")

        if config['on_error'] not in ON_ERROR_POLICIES:
            raise ValidationError(f"on_error must be one of {', '.join(ON_ERROR_POLICIES)}")

        for key in ('timeout', 'delay_seconds'):
            if not isinstance(config[key], (int, float)) or config[key] < 0:
                raise ValidationError(f"{key} must be a non-negative number")

        for key, minimum in (('retry_attempts', 0), ('max_workers', 1), ('server_port', 1)):
            value = config[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                raise ValidationError(f"{key} must be an integer >= {minimum}")

        return True

    def _process_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Fill in derived values"""
        if not config['cache_root']:
            config['cache_root'] = FileUtils.default_cache_root()
        config['cache_root'] = os.path.expanduser(config['cache_root'])
        return config

    def get_tile_server(self, config: Dict[str, Any]) -> TileServer:
        return TileServer(url=config['tile_url'], headers=dict(config['headers']))
