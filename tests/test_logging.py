"""
Tests for structured logging, correlation and production settings checks.
"""

import json
import logging

from shared.config.logging import (
    CONTEXT_ATTR,
    DevelopmentFormatter,
    StructuredFormatter,
    get_logger,
)
from shared.config.settings import Settings
from shared.infrastructure.correlation import CorrelationIdFilter, connection_id_var


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []
        self.addFilter(CorrelationIdFilter())

    def emit(self, record):
        self.records.append(record)


def _capture(name):
    logger = get_logger(name)
    handler = _Capture()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, handler


class TestStructuredLogger:

    def test_keyword_context_lands_on_record(self):
        logger, handler = _capture("test.context")

        logger.info("Message relayed", sender="a", recipient="b")

        record = handler.records[0]
        assert record.getMessage() == "Message relayed"
        assert getattr(record, CONTEXT_ATTR) == {"sender": "a", "recipient": "b"}

    def test_record_points_at_the_caller(self):
        logger, handler = _capture("test.caller")

        logger.warning("here", n=1)

        assert handler.records[0].funcName == "test_record_points_at_the_caller"

    def test_connection_id_is_stamped(self):
        logger, handler = _capture("test.correlation")
        token = connection_id_var.set("abc123")
        try:
            logger.info("inside")
        finally:
            connection_id_var.reset(token)
        logger.info("outside")

        assert [r.connection_id for r in handler.records] == ["abc123", "-"]


class TestFormatters:

    def _record(self, **context):
        record = logging.LogRecord("chat_gateway", logging.INFO, __file__, 1, "hello %s", ("bob",), None)
        record.connection_id = "0123456789abcdef"
        if context:
            setattr(record, CONTEXT_ATTR, context)
        return record

    def test_json_formatter_flattens_context(self):
        entry = json.loads(StructuredFormatter().format(self._record(user_id="a")))

        assert entry["msg"] == "hello bob"
        assert entry["level"] == "INFO"
        assert entry["connection_id"] == "0123456789abcdef"
        assert entry["user_id"] == "a"

    def test_development_formatter_shows_short_connection_id(self):
        line = DevelopmentFormatter().format(self._record(count=2))

        assert "#01234567" in line
        assert "hello bob" in line
        assert "count=2" in line


class TestProductionChecks:

    def test_development_never_reports_problems(self):
        assert Settings(environment="development", jwt_secret="secret").validate_production_secrets() == []

    def test_weak_production_settings_are_reported(self):
        problems = Settings(
            environment="production", jwt_secret="secret", debug=True, allowed_origins=""
        ).validate_production_secrets()

        assert len(problems) == 3

    def test_sound_production_settings_pass(self):
        settings = Settings(
            environment="production",
            jwt_secret="x" * 40,
            debug=False,
            allowed_origins="https://chat.example.com",
        )
        assert settings.validate_production_secrets() == []
