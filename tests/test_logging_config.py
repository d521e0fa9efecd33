"""
Tests for structured logging
"""

import json
import logging
import sys

from atm_ledger.logging_config import JSONFormatter, TEXT_FORMAT, get_logger, log_action, setup_logging


class CaptureHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestJSONFormatter:
    """Test JSON log lines"""

    def test_structured_fields(self):
        logger = logging.getLogger("atm.test.json")
        logger.setLevel(logging.INFO)
        handler = CaptureHandler()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "Withdrawal rejected", user_id="alice",
                       action="withdraw", extra={"amount": 5})
        finally:
            logger.removeHandler(handler)

        line = json.loads(JSONFormatter().format(handler.records[0]))

        assert line["level"] == "INFO"
        assert line["module"] == "atm.test.json"
        assert line["message"] == "Withdrawal rejected"
        assert line["user_id"] == "alice"
        assert line["action"] == "withdraw"
        assert line["extra"] == {"amount": 5}
        assert "thread" in line
        assert "resource" not in line

    def test_exception_included(self):
        record = logging.LogRecord("atm", logging.ERROR, __file__, 1, "failed", None, None)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record.exc_info = sys.exc_info()

        line = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in line["exception"]


class TestLogAction:
    """Test the structured logging helper"""

    def test_disabled_level_skipped(self):
        logger = logging.getLogger("atm.test.quiet")
        logger.setLevel(logging.WARNING)
        handler = CaptureHandler()
        logger.addHandler(handler)
        try:
            log_action(logger, "debug", "not shown")
        finally:
            logger.removeHandler(handler)

        assert handler.records == []


class TestSetupLogging:
    """Test logger configuration"""

    def test_json_handler(self):
        logger = setup_logging("DEBUG", "atm.test.setup")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.propagate is False

    def test_text_handler_replaces_previous(self):
        setup_logging("INFO", "atm.test.text")
        logger = setup_logging("WARNING", "atm.test.text", fmt="text")

        assert len(logger.handlers) == 1
        assert logger.handlers[0].formatter._fmt == TEXT_FORMAT

    def test_get_logger(self):
        assert get_logger("atm.ledger") is logging.getLogger("atm.ledger")
