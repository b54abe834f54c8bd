"""Tests for structured logging setup."""

import json
from unittest.mock import patch

import structlog

from apps.api.core.logging import (
    API_SERVICE,
    WORKER_SERVICE,
    add_service_name,
    setup_logging,
)


class TestStructuredLogging:
    def test_setup_logging_configures_structlog(self):
        setup_logging(log_level="DEBUG", json_output=True)
        logger = structlog.get_logger(__name__)
        assert logger is not None

    def test_setup_logging_dev_mode(self):
        """Dev mode should configure console renderer without errors."""
        setup_logging(log_level="DEBUG", json_output=False, service=WORKER_SERVICE)
        logger = structlog.get_logger(__name__)
        assert logger is not None

    def test_service_name_is_stamped(self):
        processor = add_service_name(WORKER_SERVICE)
        event = processor(None, "info", {"event": "job_concluded", "job_id": "job-1"})
        assert event["service"] == WORKER_SERVICE

    def test_bound_service_is_kept(self):
        processor = add_service_name(API_SERVICE)
        event = processor(None, "info", {"event": "job_created", "service": "backfill"})
        assert event["service"] == "backfill"

    def test_service_processor_is_installed(self):
        with patch("apps.api.core.logging.structlog.configure") as configure:
            setup_logging(json_output=True, service=WORKER_SERVICE)

        processors = configure.call_args.kwargs["processors"]
        stamped = processors[1](None, "info", {"event": "chunk_processed"})
        assert stamped["service"] == WORKER_SERVICE

    def test_json_keeps_portuguese_descriptions_readable(self):
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
        line = renderer(None, "info", {"event": "line_items_created", "description": "Comissão"})
        assert "Comissão" in line
        assert json.loads(line)["description"] == "Comissão"
