from __future__ import annotations

import threading

from image_bridge.cancellation import CancellationToken


def test_callbacks_run_once_on_cancel():
    token = CancellationToken()
    calls = []
    token.register(lambda: calls.append("a"))
    token.register(lambda: calls.append("b"))

    token.cancel()
    token.cancel()

    assert token.cancelled
    assert sorted(calls) == ["a", "b"]


def test_register_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls = []
    token.register(lambda: calls.append(1))()
    assert calls == [1]


def test_unregistered_callback_is_not_run():
    token = CancellationToken()
    calls = []
    unregister = token.register(lambda: calls.append(1))
    unregister()
    token.cancel()
    assert calls == []


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    calls = []

    def boom():
        raise RuntimeError("observer failed")

    token.register(boom)
    token.register(lambda: calls.append(1))
    token.cancel()
    assert calls == [1]


def test_wait_returns_when_cancelled_from_another_thread():
    token = CancellationToken()
    threading.Timer(0.01, token.cancel).start()
    assert token.wait(2)
