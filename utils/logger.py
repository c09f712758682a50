"""Centralized logging with rotation suitable for audit trails."""
import logging
import os
from logging.handlers import RotatingFileHandler

CORE_LOGGER_NAMES = ("utils", "routes")


def init_logging(app) -> logging.Logger:
    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []
    log_path = None
    if app.config.get("LOG_TO_FILE", True):
        log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, "app.log")
        file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    logger = logging.getLogger(app.name)
    logger.setLevel(level)
    logger.handlers = list(handlers)
    logger.propagate = False

    # Core modules log under their package names; route them to the same handlers.
    for name in CORE_LOGGER_NAMES:
        core_logger = logging.getLogger(name)
        core_logger.setLevel(level)
        core_logger.handlers = list(handlers)

    # Flask's built-in logger
    app.logger.handlers = logger.handlers
    app.logger.setLevel(level)

    logger.info("Logging initialized", extra={"log_path": log_path})
    return logger
