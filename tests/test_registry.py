"""
Tests for the execution registry.
"""

import threading

import pytest

from qualitypilot.error_handling.exceptions import DuplicateRunError
from qualitypilot.orchestration.registry import ExecutionHandle, ExecutionRegistry


@pytest.fixture
def registry():
    return ExecutionRegistry()


class TestExecutionHandle:

    def test_initial_state(self):
        handle = ExecutionHandle("run-1")

        assert handle.run_id == "run-1"
        assert handle.session is None
        assert not handle.cancel_requested
        assert not handle.is_terminal

    def test_request_cancel(self):
        handle = ExecutionHandle("run-1")

        assert handle.request_cancel() is True
        assert handle.cancel_requested

    def test_cancel_after_terminal_is_refused(self):
        handle = ExecutionHandle("run-1")
        handle.mark_terminal()

        assert handle.request_cancel() is False
        assert not handle.cancel_requested

    def test_cancel_from_another_thread(self):
        handle = ExecutionHandle("run-1")
        thread = threading.Thread(target=handle.request_cancel)
        thread.start()
        thread.join()

        assert handle.cancel_requested


class TestExecutionRegistry:

    def test_register_and_get(self, registry):
        handle = registry.register("run-1")

        assert registry.get("run-1") is handle
        assert "run-1" in registry
        assert len(registry) == 1

    def test_duplicate_registration(self, registry):
        registry.register("run-1")

        with pytest.raises(DuplicateRunError) as exc_info:
            registry.register("run-1")

        assert exc_info.value.run_id == "run-1"

    def test_get_unknown(self, registry):
        assert registry.get("missing") is None

    def test_request_cancel(self, registry):
        handle = registry.register("run-1")

        assert registry.request_cancel("run-1") is True
        assert handle.cancel_requested

    def test_request_cancel_unknown(self, registry):
        assert registry.request_cancel("missing") is False

    def test_request_cancel_after_release(self, registry):
        handle = registry.register("run-1")
        registry.release("run-1")

        assert registry.request_cancel("run-1") is False
        assert handle.is_terminal
        assert not handle.cancel_requested

    def test_release_is_idempotent(self, registry):
        registry.register("run-1")

        registry.release("run-1")
        registry.release("run-1")

        assert "run-1" not in registry
        assert len(registry) == 0

    def test_id_reusable_after_release(self, registry):
        first = registry.register("run-1")
        registry.release("run-1")

        second = registry.register("run-1")

        assert second is not first
        assert not second.is_terminal

    def test_runs_are_isolated(self, registry):
        one = registry.register("run-1")
        two = registry.register("run-2")

        registry.request_cancel("run-1")

        assert one.cancel_requested
        assert not two.cancel_requested
        assert sorted(registry.active_run_ids()) == ["run-1", "run-2"]

    def test_concurrent_registration(self, registry):
        errors = []

        def register(i):
            try:
                registry.register(f"run-{i}")
            except DuplicateRunError as e:
                errors.append(e)

        threads = [threading.Thread(target=register, args=(i % 10,)) for i in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 10
        assert len(errors) == 40
