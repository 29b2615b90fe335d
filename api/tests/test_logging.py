"""
Tests for logging setup: JSON output, request context and pipeline levels.
"""
import json
import logging
from unittest.mock import patch

import pytest
import structlog

from core.logging import PIPELINE_LOGGERS, setup_logging


@pytest.fixture
def restore_logging():
    root_logger = logging.getLogger()
    handlers, level = root_logger.handlers[:], root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers = handlers
    root_logger.setLevel(level)
    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def configure(tmp_path=None, **overrides):
    values = {
        "log_level": "INFO",
        "log_format": "json",
        "pipeline_log_level": "INFO",
        "log_dir": str(tmp_path) if tmp_path else None,
        "log_file_max_bytes": 1024 * 1024,
    }
    values.update(overrides)
    with patch("core.logging.settings") as mock_settings:
        for key, value in values.items():
            setattr(mock_settings, key, value)
        setup_logging()


def json_lines(text):
    return [json.loads(line) for line in text.splitlines() if line.startswith("{")]


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    def test_service_records_carry_request_context(self, capsys):
        configure()
        structlog.contextvars.bind_contextvars(request_id="a1b2c3d4", session_id="sess-42")

        logging.getLogger("services.mask_orchestrator").info("siding mask complete")

        records = json_lines(capsys.readouterr().out)
        record = next(r for r in records if r["event"] == "siding mask complete")
        assert record["logger"] == "services.mask_orchestrator"
        assert record["level"] == "info"
        assert record["request_id"] == "a1b2c3d4"
        assert record["session_id"] == "sess-42"

    def test_pipeline_level_is_independent(self, capsys):
        configure(log_level="INFO", pipeline_log_level="WARNING")

        logging.getLogger("services.vision_client").info("image generated")
        logging.getLogger("services.vision_client").warning("no image returned")
        logging.getLogger("routers.design").info("catalog served")

        events = [r["event"] for r in json_lines(capsys.readouterr().out)]
        assert "image generated" not in events
        assert "no image returned" in events
        assert "catalog served" in events

    def test_pipeline_debug_below_api_level(self, capsys):
        configure(log_level="WARNING", pipeline_log_level="DEBUG")

        logging.getLogger("services.edit_orchestrator").debug("step 1 prompt built")
        logging.getLogger("main").info("startup detail")

        events = [r["event"] for r in json_lines(capsys.readouterr().out)]
        assert "step 1 prompt built" in events
        assert "startup detail" not in events

    def test_log_dir_gets_json_file(self, tmp_path):
        configure(tmp_path=tmp_path, log_format="console")
        structlog.contextvars.bind_contextvars(session_id="sess-7")

        logging.getLogger("services.design_studio_service").error("design generation failed")
        for handler in logging.getLogger().handlers:
            handler.flush()

        records = json_lines((tmp_path / "design_api.log").read_text())
        failure = next(r for r in records if r["event"] == "design generation failed")
        assert failure["session_id"] == "sess-7"
        assert failure["level"] == "error"

    def test_noisy_libraries_quieted(self):
        configure()
        assert logging.getLogger("google_genai").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
