"""Structured logging with structlog.

Configured once per process by the API lifespan and the import worker:
JSON lines in production, colorized console otherwise. Every event carries
the process's ``service`` name so API and worker lines for the same import
job can be told apart once they land in one log stream.

Usage:
    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("chunk_processed", job_id=job.id, processed=500, total=1200)
"""

import logging
import sys

import structlog

API_SERVICE = "marketplace-import-api"
WORKER_SERVICE = "marketplace-import-worker"


def add_service_name(service: str):
    """Processor stamping ``service`` on each event unless already bound."""

    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def setup_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    service: str = API_SERVICE,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Python log level string (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, use JSON renderer (production). If False,
                     use colorized console renderer (development).
        service: Name stamped on every event (API or worker).
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        add_service_name(service),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
