from __future__ import annotations

import json
import os
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")

# Environment variables win over both the JSON file and DEFAULTS.
_ENV_OVERRIDES: dict[str, str] = {
    "library_dir": "IMAGE_BRIDGE_LIBRARY_DIR",
    "host_name": "IMAGE_BRIDGE_HOST_NAME",
}


class SettingsManager:
    """JSON-backed bridge settings.

    A manager created without a path keeps its values in memory only.
    """

    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "host_name": "image_bridge",
        "custom_resource_path": None,
        "library_dir": None,
        "progress_initial_delay_ms": 1000,
        "progress_interval_ms": 250,
    }

    def load(self) -> None:
        try:
            if self.settings_path and os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except Exception as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except Exception as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        env_name = _ENV_OVERRIDES.get(key)
        if env_name:
            env_value = (os.getenv(env_name) or "").strip()
            if env_value:
                return env_value
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def host_name(self) -> str:
        val = self.get("host_name")
        return val if isinstance(val, str) and val.strip() else self.DEFAULTS["host_name"]

    @property
    def library_dirs(self) -> list[str]:
        """Extra directories searched for the native library before the packaged layouts."""
        val = self.get("library_dir")
        if isinstance(val, str) and val.strip():
            return [p for p in val.split(os.pathsep) if p.strip()]
        if isinstance(val, list):
            return [str(p) for p in val if str(p).strip()]
        return []

    def _seconds(self, key: str) -> float:
        try:
            ms = int(self.get(key))
        except (TypeError, ValueError):
            _logger.warning("invalid %s, using default", key)
            ms = int(self.DEFAULTS[key])
        return max(0, ms) / 1000.0

    @property
    def progress_initial_delay(self) -> float:
        return self._seconds("progress_initial_delay_ms")

    @property
    def progress_interval(self) -> float:
        return self._seconds("progress_interval_ms")
