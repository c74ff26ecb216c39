from __future__ import annotations
import logging
import sys
import structlog

def configure_logging(debug: bool = False, json: bool = True) -> None:
    """structlog setup shared by the CLI and the live runtime; json=False is for terminals."""
    level = logging.DEBUG if debug else logging.INFO
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    # stdlib logging -> same stream (pynput and friends log through it)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
