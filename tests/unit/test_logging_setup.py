import json
import logging
import sys

import pytest

from postflow.logging_setup import JsonFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="runtime",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="worker stage failed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_json_formatter_emits_structured_fields() -> None:
    line = JsonFormatter().format(
        _record(
            role="worker-publish",
            outbox_job_id="job_1",
            job_type="publish",
            last_error_code="remote_transport_failed",
            retry_classification="recoverable",
            attempt=2,
        )
    )
    payload = json.loads(line)

    assert payload["level"] == "WARNING"
    assert payload["message"] == "worker stage failed"
    assert payload["logger"] == "runtime"
    assert payload["outbox_job_id"] == "job_1"
    assert payload["last_error_code"] == "remote_transport_failed"
    assert payload["retry_classification"] == "recoverable"
    assert "attempt" not in payload
    assert "tenant_id" not in payload


@pytest.mark.unit
def test_json_formatter_includes_exception_text() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc_info"]
