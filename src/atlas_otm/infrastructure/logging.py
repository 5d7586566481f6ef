"""Logging configuration"""
import logging
import sys
from typing import Dict, Any

NOISY_LOGGERS = ('urllib3', 'requests')


class LoggingManager:
    """Configures the root logger from the 'logging' config section"""

    @staticmethod
    def setup_logging(config: Dict[str, Any]) -> None:
        """Console logging plus an optional log file"""
        logging_config = config.get('logging', {})

        level_name = str(logging_config.get('level', 'INFO')).upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO
        format_str = logging_config.get('format',
                                        '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

        handlers = [logging.StreamHandler(sys.stdout)]
        if logging_config.get('file'):
            handlers.append(logging.FileHandler(logging_config['file'], encoding='utf-8'))

        logging.basicConfig(level=level, format=format_str, handlers=handlers)

        # Tile requests are logged by atlas_otm itself
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
