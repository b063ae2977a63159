import logging
import os

import structlog


def _log_level_from_env():
    level_name = os.getenv('LOG_LEVEL', 'INFO').strip().upper()
    if not level_name:
        return logging.INFO
    return getattr(logging, level_name, logging.INFO)


def configure_logging():
    """structlog → stdlib logging, console output"""
    level = _log_level_from_env()
    logging.basicConfig(level=level, format='%(message)s', force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name=None):
    return structlog.get_logger(name)
