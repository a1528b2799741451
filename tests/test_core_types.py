"""
Tests for core data models.
"""

import pytest
from pydantic import ValidationError

from qualitypilot.core.types import (
    AssertionSpec,
    AssertionType,
    BrowserKind,
    Run,
    RunOptions,
    RunRequest,
    RunStatus,
    StepDefinition,
    StepResult,
    StepStatus,
    Viewport,
)


class TestStepDefinition:
    """Tests for StepDefinition model."""

    def test_action_normalized(self):
        step = StepDefinition(action=" Click ", target="Login")

        assert step.action == "click"

    def test_numeric_value_coerced(self):
        step = StepDefinition(action="wait", value=2000)

        assert step.value == "2000"

    def test_frozen(self):
        step = StepDefinition(action="click", target="Login")

        with pytest.raises(ValidationError):
            step.target = "Logout"

    def test_unknown_action_accepted(self):
        """Unknown actions are rejected at execution time, not at parse time."""
        assert StepDefinition(action="drag").action == "drag"

    def test_assertion_parsed(self):
        step = StepDefinition(
            action="assert",
            assertion={"type": "count", "expected": 3, "selector": "li"},
        )

        assert step.assertion == AssertionSpec(type=AssertionType.COUNT, expected=3, selector="li")

    def test_invalid_assertion_type(self):
        with pytest.raises(ValidationError):
            StepDefinition(action="assert", assertion={"type": "color", "expected": "red"})


class TestRunRequest:

    def test_defaults(self):
        request = RunRequest(prompt="Log in", url="https://example.com")

        assert request.credentials == {}
        assert request.options.browser is BrowserKind.CHROMIUM
        assert request.options.headless is True

    @pytest.mark.parametrize("url", ["example.com", "ftp://example.com", ""])
    def test_invalid_url(self, url):
        with pytest.raises(ValidationError):
            RunRequest(prompt="Log in", url=url)

    def test_empty_prompt(self):
        with pytest.raises(ValidationError):
            RunRequest(prompt="", url="https://example.com")

    def test_options(self):
        options = RunOptions(browser="webkit", headless=False, viewport=Viewport(width=800, height=600))

        assert options.browser is BrowserKind.WEBKIT
        assert options.viewport.width == 800

    def test_invalid_viewport(self):
        with pytest.raises(ValidationError):
            Viewport(width=0, height=600)


class TestRun:
    """Tests for the run lifecycle."""

    @pytest.fixture
    def run(self):
        return Run.from_request("run-1", RunRequest(prompt="Log in", url="https://example.com"))

    def test_from_request(self, run):
        assert run.id == "run-1"
        assert run.status is RunStatus.QUEUED
        assert run.steps == []
        assert run.duration_seconds is None

    def test_lifecycle(self, run):
        run.mark_running()
        assert run.status is RunStatus.RUNNING
        assert run.start_time is not None

        run.finish(RunStatus.COMPLETED)
        assert run.is_terminal
        assert run.end_time >= run.start_time
        assert run.duration_seconds >= 0

    def test_cannot_start_twice(self, run):
        run.mark_running()

        with pytest.raises(RuntimeError):
            run.mark_running()

    def test_finish_only_once(self, run):
        run.mark_running()
        run.finish(RunStatus.FAILED, "boom")

        with pytest.raises(RuntimeError, match="already finished"):
            run.finish(RunStatus.COMPLETED)
        assert run.status is RunStatus.FAILED
        assert run.error == "boom"

    def test_finish_requires_terminal_status(self, run):
        with pytest.raises(ValueError):
            run.finish(RunStatus.RUNNING)

    def test_terminal_statuses(self):
        assert {s for s in RunStatus if s.is_terminal} == {
            RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED,
        }


class TestStepResult:

    def test_snapshot_is_json_safe(self):
        result = StepResult(id="step_0", index=0, action="click", target="Login")
        result.status = StepStatus.COMPLETED

        snapshot = result.snapshot()

        assert snapshot["status"] == "completed"
        assert snapshot["id"] == "step_0"
        assert isinstance(snapshot["timestamp"], int)
