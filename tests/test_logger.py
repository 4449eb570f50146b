"""
Tests for JSON log output
"""

import json
import logging

from bidtarget.logger import JsonFormatter, get_logger


class TestJsonFormatter:
    def setup_method(self):
        self.formatter = JsonFormatter()

    def make_record(self, **extra):
        record = logging.LogRecord(
            name="bidtarget.test",
            level=logging.WARNING,
            pathname=__file__,
            lineno=10,
            msg="Loss budget %s",
            args=("BREACH",),
            exc_info=None,
            func="evaluate",
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_core_fields(self):
        payload = json.loads(self.formatter.format(self.make_record()))

        assert payload["severity"] == "WARNING"
        assert payload["message"] == "Loss budget BREACH"
        assert payload["logger"] == "bidtarget.test"
        assert payload["function"] == "evaluate"
        assert payload["line"] == 10
        assert "timestamp" in payload

    def test_extra_fields_included(self):
        payload = json.loads(
            self.formatter.format(self.make_record(product_id="B0LOG", max_cpc=15.525))
        )

        assert payload["product_id"] == "B0LOG"
        assert payload["max_cpc"] == 15.525


class TestGetLogger:
    def test_single_handler(self):
        first = get_logger("bidtarget.test_single_handler")
        second = get_logger("bidtarget.test_single_handler")

        assert first is second
        assert len(first.handlers) == 1
        assert first.propagate is False

    def test_writes_json_to_stdout(self, capsys):
        logger = get_logger("bidtarget.test_stdout")
        logger.info("evaluated", extra={"product_id": "B0OUT"})

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["message"] == "evaluated"
        assert payload["product_id"] == "B0OUT"
