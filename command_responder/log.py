"""Structured logging setup.

Modules log through ``structlog.get_logger(__name__)`` and attach the
alert's identity (fingerprint, alert name, action type, command, ...) with
``logger.bind(...)``.  Events are rendered as ``key=value`` pairs and handed
to the standard :mod:`logging` handlers, so application and Uvicorn output
end up in the same stream.
"""

import logging

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Route structlog events through stdlib logging at *level*."""
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
