from __future__ import annotations

import threading
import time
from concurrent.futures import CancelledError

import numpy as np
import pytest

from image_bridge.cancellation import CancellationToken
from image_bridge.engine.runner import CommandRunner, RunnerState, RunRequest
from image_bridge.exceptions import (
    AlreadyRunningError,
    EngineError,
    ImageListClosedError,
    UnsupportedFormatError,
)
from image_bridge.imaging.numpy_bitmap import NumpyBitmap
from image_bridge.imaging.output import NumpyOutputFactory
from image_bridge.imaging.pixel_format import PixelFormat
from image_bridge.interop.image_list import NativeImageList
from image_bridge.interop.native_types import NativeStatus
from image_bridge.metrics import metrics
from tests.helpers.fake_native import (
    block_until,
    fail_with,
    invert,
    produce,
    report_progress,
    wait_for_abort,
)

RGB_2X2 = np.array(
    [[[255, 0, 0], [0, 255, 0]], [[0, 0, 255], [10, 20, 30]]],
    dtype=np.uint8,
)


def _request(command="identity", bitmaps=(), **kwargs) -> RunRequest:
    image_list = NativeImageList()
    for bitmap in bitmaps:
        image_list.add_bitmap(bitmap)
    return RunRequest(command, image_list, **kwargs)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


def test_identity_returns_same_pixels(fake_engine, fast_settings):
    runner = CommandRunner(settings=fast_settings)
    request = _request(bitmaps=[NumpyBitmap(RGB_2X2, name="input")])

    outputs = runner.run(request)

    assert len(outputs) == 1
    assert np.array_equal(outputs[0].array, RGB_2X2)
    assert outputs[0].name == "input"
    assert runner.state == RunnerState.COMPLETED
    assert request.image_list.closed


def test_outputs_follow_engine_result(fake_engine, fast_settings):
    fake_engine.run_behavior = invert
    runner = CommandRunner(NumpyOutputFactory(channel_order="BGR"), settings=fast_settings)

    outputs = runner.run(_request("negate", [NumpyBitmap(RGB_2X2)]))

    expected = (255 - RGB_2X2)[:, :, ::-1]
    assert np.array_equal(outputs[0].array, expected)
    assert outputs[0].channel_order == "BGR"


def test_new_outputs_use_reported_format_and_name(fake_engine, fast_settings):
    fake_engine.run_behavior = produce((3, 1, int(PixelFormat.RGBA), "result"), (2, 2, int(PixelFormat.GRAY), None))
    outputs = CommandRunner(settings=fast_settings).run(_request())

    assert [o.array.shape for o in outputs] == [(1, 3, 4), (2, 2)]
    assert outputs[0].name == "result"
    assert outputs[1].name is None


def test_options_passed_to_native_run(fake_engine, fast_settings):
    runner = CommandRunner(settings=fast_settings)
    runner.run(_request("crop 10x10", resource_path="/opt/res", host_name="tests"))
    runner.run(_request("crop 10x10"))

    first, second = fake_engine.run_calls
    assert (first.command, first.resource_path, first.host_name) == ("crop 10x10", "/opt/res", "tests")
    assert second.host_name == "image_bridge"
    assert second.resource_path is None
    # NULL pointers unless the caller asked for progress or cancellation.
    assert not first.has_progress and not first.has_abort
    assert first.thread.startswith("engine-runner-")


def test_second_start_while_running_is_rejected(fake_engine, fast_settings):
    release = threading.Event()
    fake_engine.run_behavior = block_until(release)
    runner = CommandRunner(settings=fast_settings)

    future = runner.start(_request(bitmaps=[NumpyBitmap(RGB_2X2)]))
    _wait_for(lambda: fake_engine.run_calls)
    assert runner.is_running

    rejected = _request()
    with pytest.raises(AlreadyRunningError):
        runner.start(rejected)
    rejected.image_list.destroy()

    release.set()
    assert len(future.result(timeout=5)) == 1
    assert runner.state == RunnerState.COMPLETED


def test_pre_cancelled_token_skips_native_run(fake_engine, fast_settings):
    token = CancellationToken()
    token.cancel()
    runner = CommandRunner(settings=fast_settings)
    request = _request(bitmaps=[NumpyBitmap(RGB_2X2)], cancellation=token)

    future = runner.start(request)

    with pytest.raises(CancelledError):
        future.result(timeout=5)
    assert fake_engine.run_calls == []
    assert runner.state == RunnerState.CANCELED
    assert request.image_list.closed


def test_cancel_during_run(fake_engine, fast_settings):
    fake_engine.run_behavior = wait_for_abort()
    token = CancellationToken()
    runner = CommandRunner(settings=fast_settings)

    future = runner.start(_request(cancellation=token))
    _wait_for(lambda: fake_engine.run_calls)
    token.cancel()

    with pytest.raises(CancelledError):
        future.result(timeout=5)
    assert fake_engine.run_calls[0].has_abort
    assert runner.state == RunnerState.CANCELED
    assert metrics.count("runner.canceled") == 1


def test_abort_wins_over_error_status(fake_engine, fast_settings):
    fake_engine.run_behavior = wait_for_abort(status=NativeStatus.ENGINE_ERROR)
    token = CancellationToken()
    runner = CommandRunner(settings=fast_settings)

    future = runner.start(_request(cancellation=token))
    _wait_for(lambda: fake_engine.run_calls)
    token.cancel()

    with pytest.raises(CancelledError):
        future.result(timeout=5)
    assert runner.last_error is None


def test_late_cancel_observer_does_not_abort_next_run(fake_engine, fast_settings):
    token = CancellationToken()
    observer_entered = threading.Event()
    release_observer = threading.Event()
    token.register(lambda: (observer_entered.set(), release_observer.wait(5)))
    first_done = threading.Event()
    fake_engine.run_behavior = block_until(first_done)
    runner = CommandRunner(settings=fast_settings)

    first = runner.start(_request(cancellation=token))
    _wait_for(lambda: len(fake_engine.run_calls) == 1)
    canceller = threading.Thread(target=token.cancel)
    canceller.start()
    assert observer_entered.wait(5)
    first_done.set()
    assert first.result(timeout=5) == []

    second_done = threading.Event()
    fake_engine.run_behavior = block_until(second_done)
    second = runner.start(_request())
    _wait_for(lambda: len(fake_engine.run_calls) == 2)
    release_observer.set()
    canceller.join(5)
    second_done.set()

    assert second.result(timeout=5) == []
    assert runner.state == RunnerState.COMPLETED


def test_progress_is_increasing_without_duplicates(fake_engine, fast_settings):
    fake_engine.run_behavior = report_progress([5.0, 20.0, 20.0, 15.0, 60.0, 100.0], delay=0.05)
    reports: list[int] = []
    runner = CommandRunner(settings=fast_settings)

    runner.run(_request(progress=reports.append))

    assert fake_engine.run_calls[0].has_progress
    assert reports
    assert reports == sorted(set(reports))
    assert set(reports) <= {5, 20, 60, 100}


def test_no_progress_after_completion(fake_engine, fast_settings):
    fake_engine.run_behavior = report_progress([50.0], delay=0.05)
    reports: list[int] = []
    runner = CommandRunner(settings=fast_settings)
    runner.run(_request(progress=reports.append))
    seen = list(reports)

    time.sleep(0.05)

    assert reports == seen


def test_engine_error_carries_command(fake_engine, fast_settings):
    fake_engine.run_behavior = fail_with(NativeStatus.ENGINE_ERROR, "unknown option", "blur")
    runner = CommandRunner(settings=fast_settings)
    request = _request("blur -x")

    with pytest.raises(EngineError) as info:
        runner.run(request)

    assert str(info.value) == "unknown option"
    assert info.value.command == "blur"
    assert runner.state == RunnerState.FAILED
    assert runner.last_error is info.value
    assert request.image_list.closed


def test_resource_path_init_failure_is_not_fatal(fake_engine, fast_settings):
    fake_engine.run_behavior = fail_with(NativeStatus.RESOURCE_PATH_INIT_FAILED)
    outputs = CommandRunner(settings=fast_settings).run(_request(bitmaps=[NumpyBitmap(RGB_2X2)]))
    assert len(outputs) == 1


def test_unknown_output_format_fails_the_run(fake_engine, fast_settings):
    fake_engine.run_behavior = produce((2, 2, 7, None))
    runner = CommandRunner(settings=fast_settings)

    with pytest.raises(UnsupportedFormatError):
        runner.run(_request())
    assert runner.state == RunnerState.FAILED


def test_closed_image_list_fails(fake_engine, fast_settings):
    request = _request()
    request.image_list.destroy()

    with pytest.raises(ImageListClosedError):
        CommandRunner(settings=fast_settings).run(request)
    assert fake_engine.run_calls == []


def test_blank_command_is_rejected(fake_engine):
    image_list = NativeImageList()
    with pytest.raises(ValueError):
        RunRequest("", image_list)
    image_list.destroy()


def test_every_outcome_releases_the_list(fake_engine, fast_settings):
    runner = CommandRunner(settings=fast_settings)

    runner.run(_request(bitmaps=[NumpyBitmap(RGB_2X2)]))

    fake_engine.run_behavior = fail_with(NativeStatus.OUT_OF_MEMORY)
    with pytest.raises(MemoryError):
        runner.run(_request())

    token = CancellationToken()
    token.cancel()
    with pytest.raises(CancelledError):
        runner.run(_request(cancellation=token))

    # The same runner and a fresh one both work after a failure.
    fake_engine.run_behavior = produce((1, 1, int(PixelFormat.GRAY), None))
    assert len(runner.run(_request())) == 1
    assert len(CommandRunner(settings=fast_settings).run(_request())) == 1

    assert fake_engine.live_lists == 0
    assert metrics.outstanding("image_list.created", "image_list.destroyed") == 0
    assert metrics.count("runner.started") == 5
    assert metrics.count("runner.failed") == 1
    assert "runner.native_run" in metrics.snapshot()["timings"]


def test_done_callback_can_start_next_run(fake_engine, fast_settings):
    runner = CommandRunner(settings=fast_settings)
    chained = []

    def on_done(_future):
        chained.append(runner.start(RunRequest("second", NativeImageList())))

    first = runner.start(_request("first"))
    first.add_done_callback(on_done)
    first.result(timeout=5)
    _wait_for(lambda: chained)
    chained[0].result(timeout=5)

    assert [c.command for c in fake_engine.run_calls] == ["first", "second"]
