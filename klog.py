"""Structlog loggers for kprintf.

Each logger wraps the standard library logger of the same name, so a
formatting call prints nothing of its own unless the application has
configured logging."""

import logging

import structlog

def get_logger(name):
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=[structlog.stdlib.filter_by_level,
                    structlog.processors.KeyValueRenderer(key_order=["event"])],
        wrapper_class=structlog.stdlib.BoundLogger)
