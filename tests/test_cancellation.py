"""Tests for CancellationToken."""

from __future__ import annotations

import pytest

from code_scout.core.cancellation import CancellationToken, OperationCancelled


class TestCancellationToken:
    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.is_cancelled()
        token.raise_if_cancelled()

    def test_cancel_sets_reason_once(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.is_cancelled()
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(OperationCancelled, match="stop"):
            token.raise_if_cancelled()

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert calls == [1]

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.add_callback(lambda: calls.append(1))
        assert calls == [1]

    def test_failing_callback_does_not_stop_others(self):
        token = CancellationToken()
        calls = []

        def boom():
            raise RuntimeError("x")

        token.add_callback(boom)
        token.add_callback(lambda: calls.append(1))
        token.cancel()
        assert calls == [1]

    def test_child_follows_parent(self):
        parent = CancellationToken()
        child = parent.child()
        parent.cancel("user")
        assert child.is_cancelled()
        assert child.reason == "user"

    def test_child_does_not_cancel_parent(self):
        parent = CancellationToken()
        child = parent.child()
        child.cancel()
        assert not parent.is_cancelled()

    def test_detached_child_stops_following_parent(self):
        parent = CancellationToken()
        child = parent.child()
        child.detach()
        assert parent._callbacks == []
        parent.cancel("user")
        assert not child.is_cancelled()

    def test_detach_is_idempotent(self):
        parent = CancellationToken()
        child = parent.child()
        child.detach()
        child.detach()
        parent.detach()
        assert parent._callbacks == []

    def test_remove_unknown_callback_is_ignored(self):
        token = CancellationToken()
        token.remove_callback(lambda: None)
        assert token._callbacks == []

    def test_wait_returns_true_when_cancelled(self):
        token = CancellationToken()
        token.cancel()
        assert token.wait(0.01) is True

    def test_wait_times_out(self):
        assert CancellationToken().wait(0.01) is False

    def test_cancel_after(self):
        token = CancellationToken()
        timer = token.cancel_after(0.01)
        assert token.wait(2.0) is True
        assert token.reason == "timeout"
        timer.cancel()

    def test_cancel_after_disarmed(self):
        token = CancellationToken()
        timer = token.cancel_after(0.05)
        timer.cancel()
        assert token.wait(0.1) is False
