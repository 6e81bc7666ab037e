"""Logging configuration for the portal API.

Human-readable console logging. Clinical payloads are never logged; the
service and API layers only log ids, counts and auth outcomes.
"""
import logging
import sys


def setup_logging(log_level: str = "INFO") -> None:
    """Configure the root logger with a single stdout handler.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(handler)

    # Quiet third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
