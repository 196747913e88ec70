"""
Tests for execution tracing.
"""

import logging

import pytest

from salary_advance.observability import trace_span


class TestTraceSpan:
    def test_logs_metadata_and_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="salary_advance.trace"):
            with trace_span("submit_request", requester=1) as span:
                span["outcome"] = "accepted"

        message = caplog.records[-1].getMessage()
        assert message.startswith("[TRACE] submit_request duration_ms=")
        assert "outcome=accepted requester=1" in message

    def test_logs_error_and_reraises(self, caplog):
        with caplog.at_level(logging.INFO, logger="salary_advance.trace"):
            with pytest.raises(ValueError):
                with trace_span("report"):
                    raise ValueError("boom")

        assert "outcome=error" in caplog.records[-1].getMessage()
