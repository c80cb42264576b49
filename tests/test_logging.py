"""Tests for log formatting."""
import json
import logging

from app.logging_config import HumanReadableFormatter, StructuredFormatter


def record(message="Thought accepted", **extra):
    log_record = logging.LogRecord(
        name="app.thinking.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(log_record, key, value)
    return log_record


class TestFormatters:

    def test_structured_output_is_json_with_context(self):
        """JSON output carries the context fields."""
        output = StructuredFormatter().format(record(session_id="s1", sequence_id="seq_abc", thought_number=3))
        data = json.loads(output)

        assert data["level"] == "INFO"
        assert data["message"] == "Thought accepted"
        assert data["session_id"] == "s1"
        assert data["sequence_id"] == "seq_abc"
        assert data["thought_number"] == 3
        assert "msg" not in data

    def test_human_readable_includes_context(self):
        """Text output shows short context tags."""
        output = HumanReadableFormatter().format(
            record(request_id="0123456789abcdef", session_id="alice", sequence_id="seq_abc")
        )
        assert "[INFO    ]" in output
        assert "req:01234567" in output
        assert "session:alice" in output
        assert "seq:seq_abc" in output
        assert output.endswith("Thought accepted")

    def test_human_readable_skips_empty_sequence(self):
        output = HumanReadableFormatter().format(record(sequence_id=None))
        assert "seq:" not in output
