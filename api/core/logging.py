"""
Logging for the design studio API.

Records from structlog loggers and from the plain ``logging.getLogger(__name__)``
loggers in the services go through one structlog ProcessorFormatter on the
root logger. While a request is being served, RequestLoggingMiddleware binds
its request_id and design session_id into structlog's context, and every
record picks them up.

The vision client, the orchestrators and the session store log each mask and
edit step. They get their own level (``pipeline_log_level``) so the API can run
at WARNING while a single generation is still traceable end to end.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

import structlog

from core.config import settings

# Loggers that trace the mask and edit pipelines step by step
PIPELINE_LOGGERS = (
    "services.vision_client",
    "services.mask_orchestrator",
    "services.edit_orchestrator",
    "services.reference_images",
    "services.design_session",
    "services.design_studio_service",
)

NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "google_genai",
    "aiohttp.access",
    "PIL",
)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _shared_processors() -> List:
    # Applied to stdlib records as well as structlog events
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _formatter(json_output: bool) -> structlog.stdlib.ProcessorFormatter:
    if json_output:
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]
    return structlog.stdlib.ProcessorFormatter(foreign_pre_chain=_shared_processors(), processors=processors)


def setup_logging():
    """Install the root handlers and set API, pipeline and third-party levels."""
    log_level = _level(settings.log_level)
    pipeline_level = _level(settings.pipeline_log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_formatter(settings.log_format == "json"))
    root_logger.addHandler(console_handler)

    if settings.log_dir:
        # Files are always JSON so generation failures can be grepped by session_id
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "design_api.log",
            maxBytes=settings.log_file_max_bytes,
            backupCount=5,
        )
        file_handler.setFormatter(_formatter(json_output=True))
        root_logger.addHandler(file_handler)

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(pipeline_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        api_level=settings.log_level,
        pipeline_level=settings.pipeline_log_level,
        format=settings.log_format,
        log_dir=settings.log_dir,
    )
