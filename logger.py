import logging
import sys

import config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level=None, log_file=None):
    """
    Configures the root logger once for the dashboard / scripts.
    Engine modules only ever call logging.getLogger(__name__).
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = log_file or config.LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=handlers
    )
    return logging.getLogger("scheduler")
