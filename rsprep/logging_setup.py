"""
Logging configuration: console output plus an optional timestamped log file.
"""
import os
import sys
import logging
from datetime import datetime
from typing import Optional

# Third-party loggers that are very chatty at DEBUG level
QUIET_LOGGERS = {
    "rasterio": logging.WARNING,
    "rasterio._env": logging.WARNING,
    "urllib3": logging.WARNING,
    "urllib3.connectionpool": logging.WARNING,
    "googleapiclient": logging.ERROR,
    "googleapiclient.discovery": logging.ERROR,
    "google.auth": logging.WARNING,
    "google.auth.transport": logging.WARNING,
}

# Handlers added by setup_logging, replaced on the next call
_installed_handlers = []


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> Optional[str]:
    """
    Configure the root logger with a console handler and, if log_dir is given,
    a DEBUG-level file handler. Returns the log file path (or None).
    Calling it again replaces the handlers of the previous call.
    """
    logger = logging.getLogger()
    for handler in _installed_handlers:
        logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
    logger.setLevel(logging.DEBUG)

    for name, lvl in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(lvl)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    log_filepath = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_filename = f"rsprep_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        log_filepath = os.path.join(log_dir, log_filename)
        file_handler = logging.FileHandler(log_filepath, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] [%(filename)s:%(lineno)d] %(message)s")
        )
        logger.addHandler(file_handler)
        _installed_handlers.append(file_handler)
        logging.info(f"Logging initialized. Log file: {log_filepath}")

    return log_filepath
