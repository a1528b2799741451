"""
Tests for QualityPilot logging utilities.
"""

import json
import logging
import sys

import pytest

from qualitypilot.monitoring.logger import (
    JSONFormatter,
    RunContextFormatter,
    RunLogAdapter,
    SanitizingHandler,
    get_logger,
    log_performance_metric,
    log_run_event,
)
from qualitypilot.security.sanitizer import SECRET_PLACEHOLDER, get_sanitizer


def make_record(msg, **extra):
    record = logging.LogRecord(
        name="qualitypilot.orchestration.runner",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class CollectingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def secret():
    value = "correct-horse-battery"
    get_sanitizer().register_secrets([value])
    yield value
    get_sanitizer().unregister_secrets([value])


def test_json_formatter_groups_run_context():
    """Run and step ids are nested under "run", other extras under "context"."""
    record = make_record(
        "Resolved target", run_id="run-1", step_id="step_2", strategy="role-match", attempts=3
    )

    output = json.loads(JSONFormatter().format(record))

    assert output["message"] == "Resolved target"
    assert output["level"] == "INFO"
    assert output["logger"] == "qualitypilot.orchestration.runner"
    assert output["run"] == {"run_id": "run-1", "step_id": "step_2", "strategy": "role-match"}
    assert output["context"] == {"attempts": 3}
    assert output["source"].endswith(":42")


def test_json_formatter_omits_empty_sections():
    output = json.loads(JSONFormatter().format(make_record("plain", step_id=None)))

    assert "run" not in output
    assert "context" not in output


def test_json_formatter_stringifies_objects():
    output = json.loads(JSONFormatter().format(make_record("x", payload={"a": 1})))

    assert output["context"]["payload"] == "{'a': 1}"


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("failed")
        record.exc_info = sys.exc_info()

    output = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in output["exception"]


def test_run_context_formatter_prefixes_run_and_step():
    formatter = RunContextFormatter("%(run_tag)s%(message)s")

    assert formatter.format(make_record("Step started", run_id="run-1", step_id="step_0")) == (
        "[run-1 step_0] Step started"
    )
    assert formatter.format(make_record("Run queued", run_id="run-1")) == "[run-1] Run queued"
    assert formatter.format(make_record("Scheduler ready")) == "Scheduler ready"


def test_json_formatter_redacts_registered_secret(secret):
    output = JSONFormatter().format(make_record(f"typing {secret}", error=f"bad {secret}"))

    assert secret not in output
    assert SECRET_PLACEHOLDER in output


def test_sanitizing_handler_redacts_message(secret):
    inner = CollectingHandler()
    handler = SanitizingHandler(inner)

    handler.emit(make_record(f"login with {secret}"))

    assert inner.records[0].msg == f"login with {SECRET_PLACEHOLDER}"


def test_get_logger_with_context():
    """Context keyword arguments produce a run-aware adapter."""
    plain = get_logger("qualitypilot.test")
    contextual = get_logger("qualitypilot.test", run_id="run-1")

    assert isinstance(plain, logging.Logger)
    assert isinstance(contextual, RunLogAdapter)
    assert contextual.extra == {"run_id": "run-1"}


def test_adapter_merges_extra(caplog):
    logger = get_logger("qualitypilot.test", run_id="run-1")

    with caplog.at_level(logging.INFO, logger="qualitypilot.test"):
        logger.info("Step started", extra={"step_id": "step_0"})

    record = caplog.records[-1]
    assert record.run_id == "run-1"
    assert record.step_id == "step_0"


def test_log_run_event(caplog):
    with caplog.at_level(logging.DEBUG, logger="qualitypilot.run_events"):
        log_run_event("step_started", "run-1", step_id="step_0")

    record = caplog.records[-1]
    assert record.getMessage() == "Run event: step_started"
    assert record.event_type == "step_started"
    assert record.step_id == "step_0"


def test_log_run_event_rendered_as_run_context():
    with_context = make_record("Run event: step_started", event_type="step_started", run_id="run-1")

    output = json.loads(JSONFormatter().format(with_context))

    assert output["run"] == {"run_id": "run-1", "event_type": "step_started"}


def test_log_performance_metric(caplog):
    with caplog.at_level(logging.DEBUG, logger="qualitypilot.performance"):
        log_performance_metric("browser_launch", 812.0, context={"run_id": "run-1"})

    record = caplog.records[-1]
    assert record.getMessage() == "Performance metric: browser_launch=812.0ms"
    assert record.metric_name == "browser_launch"
    assert record.run_id == "run-1"
