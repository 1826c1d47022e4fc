import logging
import os
from logging.handlers import TimedRotatingFileHandler

PACKAGE_LOGGER = "banknode"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name):
    """
    Return a module logger hanging off the package logger, which gets a
    console handler the first time it is asked for.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(logging.DEBUG)
    if not root.hasHandlers():
        ch = logging.StreamHandler()
        ch.setLevel(logging.DEBUG)
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(ch)
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    return logger


def set_console_level(level):
    root = logging.getLogger(PACKAGE_LOGGER)
    for handler in root.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(level)


def add_file_handlers(log_dir):
    """Daily rolling status (INFO+) and error (ERROR+) logs under log_dir."""
    os.makedirs(log_dir, exist_ok=True)
    root = logging.getLogger(PACKAGE_LOGGER)
    formatter = logging.Formatter(LOG_FORMAT)
    for filename, level in (("status.log", logging.INFO), ("errors.log", logging.ERROR)):
        fh = TimedRotatingFileHandler(os.path.join(log_dir, filename), when="midnight", encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
