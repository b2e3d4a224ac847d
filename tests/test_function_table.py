from __future__ import annotations

import threading

import pytest

from image_bridge.exceptions import EntryPointNotFoundError, NotInitializedError, VersionMismatchError
from image_bridge.interop import function_table
from image_bridge.interop.function_table import initialize, instance, is_compatible, is_initialized
from tests.helpers.fake_native import FakeNativeEngine, _package_version


def test_instance_before_initialize_raises(no_table):
    assert not is_initialized()
    with pytest.raises(NotInitializedError):
        instance()


def test_initialize_binds_every_export(no_table):
    engine = FakeNativeEngine()

    table = initialize("handle", engine.resolve)

    assert instance() is table
    assert table.library_version() == _package_version()
    handle = table.create_image_list()
    assert table.image_list_get_count(handle) == 0


def test_initialize_returns_existing_table(no_table):
    first = initialize("handle", FakeNativeEngine().resolve)
    second = initialize("handle", FakeNativeEngine().resolve)
    assert second is first


def test_missing_entry_point_publishes_nothing(no_table):
    engine = FakeNativeEngine()
    engine.missing.add("image_list_get_image_data")

    with pytest.raises(EntryPointNotFoundError):
        initialize("handle", engine.resolve)

    assert not is_initialized()
    # A later, complete library still initializes.
    assert initialize("handle", FakeNativeEngine().resolve) is instance()


def test_version_mismatch_publishes_nothing(no_table):
    major, minor, patch = _package_version()
    engine = FakeNativeEngine(version=(major + 1, minor, patch))

    with pytest.raises(VersionMismatchError) as info:
        initialize("handle", engine.resolve)

    assert info.value.library_version == (major + 1, minor, patch)
    assert not is_initialized()


@pytest.mark.parametrize(
    ("library", "expected", "ok"),
    [
        ((1, 2, 0), (1, 0, 0), True),
        ((2, 0, 0), (1, 9, 9), False),
        ((0, 4, 7), (0, 4, 0), True),
        ((0, 5, 0), (0, 4, 0), False),
    ],
)
def test_is_compatible(library, expected, ok):
    assert is_compatible(library, expected) is ok


def test_concurrent_initialize_binds_once(no_table, monkeypatch):
    built = []
    original = function_table.NativeFunctionTable

    def counting(handle, resolve):
        table = original(handle, resolve)
        built.append(table)
        return table

    monkeypatch.setattr(function_table, "NativeFunctionTable", counting)
    engine = FakeNativeEngine()
    results = []
    threads = [threading.Thread(target=lambda: results.append(initialize("h", engine.resolve))) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(built) == 1
    assert all(r is built[0] for r in results)
