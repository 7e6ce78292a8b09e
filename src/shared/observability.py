import logging

import structlog

# Pre-instantiate processors for performance
_TIME_STAMPER = structlog.processors.TimeStamper(fmt="iso")
_JSON_RENDERER = structlog.processors.JSONRenderer()
_LEVEL_ADDER = structlog.processors.add_log_level
_CALLSITE_ADDER = structlog.processors.CallsiteParameterAdder(
    {
        structlog.processors.CallsiteParameter.FILENAME,
        structlog.processors.CallsiteParameter.FUNC_NAME,
        structlog.processors.CallsiteParameter.LINENO,
    }
)


def setup_logging(level: int = logging.INFO):
    """Configures structlog for JSON logging with optimized processors."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _TIME_STAMPER,
            _LEVEL_ADDER,
            _CALLSITE_ADDER,
            _JSON_RENDERER,
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
