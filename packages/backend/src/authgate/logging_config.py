"""structlog setup.

Learn: merge_contextvars must be the first processor, otherwise the
request_id bound by RequestIdMiddleware never shows up in log entries.
Development gets the colored console renderer, everything else JSON.
"""

import logging

import structlog


def configure_logging(debug: bool = False, environment: str = "development") -> None:
    level = logging.DEBUG if debug else logging.INFO
    renderer = (
        structlog.dev.ConsoleRenderer()
        if environment == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
