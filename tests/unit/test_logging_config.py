"""Unit tests for structured logging."""

import json
import logging

from learnpath.logging_config import (
    DevFormatter,
    JsonFormatter,
    RequestIdFilter,
    request_id_var,
    structured_fields,
)


def make_record(**extra) -> logging.LogRecord:
    logger = logging.getLogger("learnpath.test")
    record = logger.makeRecord("learnpath.test", logging.INFO, __file__, 1, "Answer %s", ("correct",), None, extra=extra)
    RequestIdFilter().filter(record)
    return record


class TestFormatters:
    """extra= fields reach both formatters."""

    def test_json_includes_extra_and_request_id(self):
        token = request_id_var.set("req-42")
        try:
            record = make_record(batch_id="b-1", student_id="s-1")
        finally:
            request_id_var.reset(token)

        entry = json.loads(JsonFormatter().format(record))
        assert entry["message"] == "Answer correct"
        assert entry["request_id"] == "req-42"
        assert entry["batch_id"] == "b-1"
        assert entry["student_id"] == "s-1"

    def test_json_without_request(self):
        entry = json.loads(JsonFormatter().format(make_record()))
        assert "request_id" not in entry

    def test_dev_appends_key_values(self):
        line = DevFormatter().format(make_record(student_id="s-1", batch_id="b-1"))
        assert line.endswith("Answer correct batch_id=b-1 student_id=s-1")
        assert "req=-" in line

    def test_unserializable_values_become_strings(self):
        fields = structured_fields(make_record(payload={"when": object}))
        assert isinstance(fields["payload"], str)
