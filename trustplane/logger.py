"""
trustplane.logger
-----------------
One JSON object per line (`ts`, `level`, `name`, `msg`), UTC timestamps.

`configure()` owns the handlers and is applied once to the package root
logger "TrustPlane". Components log through `get_logger("<Area>")`, whose
records propagate to that root.
"""

import logging, json, sys, time, os

ROOT_LOGGER = "TrustPlane"


def _json_formatter():
    formatter = logging.Formatter(
        fmt=json.dumps({
            "ts": "%(asctime)s",
            "level": "%(levelname)s",
            "name": "%(name)s",
            "msg": "%(message)s"
        }),
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    formatter.converter = time.gmtime
    return formatter


def _level(level):
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure(level="INFO", to_file=None):
    """Apply the configured level and handlers (stdout, optional file) to the root logger."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_level(level))
    formatter = _json_formatter()

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if to_file:
        path = os.path.abspath(to_file)
        if not any(isinstance(h, logging.FileHandler) and h.baseFilename == path for h in logger.handlers):
            os.makedirs(os.path.dirname(path), exist_ok=True)
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(area=None):
    return logging.getLogger(f"{ROOT_LOGGER}.{area}" if area else ROOT_LOGGER)
