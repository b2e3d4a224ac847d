"""Pytest configuration.

The Qt adapter tests need a Qt application object so queued signals can be
delivered. We create a single ``QCoreApplication`` for the entire session as
early as possible and cleanly shut it down at the end; environments without
PySide6 skip that step.

Every other test runs the real binding, marshaling and threading code against
``FakeNativeEngine`` instead of a compiled engine library.
"""

from __future__ import annotations

from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QCoreApplication exists before collecting/running tests."""

    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    global _APP

    app = QCoreApplication.instance()
    if app is None:
        # Keep a strong ref so it isn't GC'd mid-session.
        _APP = QCoreApplication([])
    else:
        _APP = app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    app = QCoreApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


@pytest.fixture
def fast_settings():
    """In-memory settings with short progress timings."""
    from image_bridge.settings_manager import SettingsManager

    settings = SettingsManager()
    settings.set("progress_initial_delay_ms", 0)
    settings.set("progress_interval_ms", 10)
    return settings


@pytest.fixture
def fake_engine(monkeypatch):
    """Publish a fake native engine as the process-wide function table."""
    from image_bridge.interop import function_table
    from image_bridge.metrics import metrics
    from tests.helpers.fake_native import FakeNativeEngine

    engine = FakeNativeEngine()
    monkeypatch.setattr(function_table, "_instance", engine.table())
    metrics.reset()
    return engine


@pytest.fixture
def no_table(monkeypatch):
    """Start with no published function table."""
    from image_bridge.interop import function_table

    monkeypatch.setattr(function_table, "_instance", None)
