"""
Logging setup shared by every decaymem module.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Client libraries that log every request at INFO
NOISY_LOGGERS = ('botocore', 'urllib3', 'opensearch', 'gremlinpython')


def _level(config: Optional[AppConfig]) -> int:
    if config is None:
        from .config import config as default_config
        config = default_config
    return getattr(logging, config.log_level.upper(), logging.INFO)


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Configure the root logger to write to stdout at the configured LOG_LEVEL.

    Does nothing to the root logger when the host application configured it first.

    Args:
        config: AppConfig instance, uses default if None
    """
    logging.basicConfig(level=_level(config), format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Logger for a decaymem module (usually called with __name__).

    Args:
        name: Logger name
        config: AppConfig instance, uses default if None
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level(config))
    return logger
