from __future__ import annotations
import fcntl
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

from modguard.moderation.panic import DEFAULT_PANIC_OFF, DEFAULT_PANIC_ON, PanicSettings
from modguard.moderation.rate_limiter import DEFAULT_COMMAND_LIMIT, DEFAULT_USER_LIMIT, WindowLimit
from modguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    Caches the contents of ``./config/app_config.yml`` and exposes typed
    shortcuts with defaults for every setting, so a missing or broken file
    still yields a usable configuration.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _id_list(values: Any, label: str) -> List[int]:
        ids = []
        for value in values if isinstance(values, list) else []:
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                logger.warning("[APP CONFIGURATION] Ignoring invalid %s %r", label, value)
        return ids

    def _window_limit(self, name: str, default: WindowLimit) -> WindowLimit:
        limits = self._data.get("rate_limits", {})
        section = limits.get(name) if isinstance(limits, dict) else None
        if not isinstance(section, dict):
            return default
        try:
            window_ms = int(float(section.get("window_seconds", default.window_ms / 1000)) * 1000)
            max_events = int(section.get("max", default.max_events))
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid rate limit '%s', using defaults", name)
            return default
        return WindowLimit(window_ms=window_ms, max_events=max_events)

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def command_prefix(self) -> str:
        return str(self._data.get("command_prefix") or "!")

    @property
    def staff_role_ids(self) -> List[int]:
        """Staff roles from the config file, or the ``STAFF_ROLE_IDS`` env var (comma separated)."""
        value = self._data.get("staff_role_ids")
        if value is None:
            value = [part.strip() for part in os.getenv("STAFF_ROLE_IDS", "").split(",") if part.strip()]
        return self._id_list(value, "staff role id")

    @property
    def panic_controller_id(self) -> int | None:
        value = self._data.get("panic_controller_id") or os.getenv("PANIC_CONTROLLER_ID")
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            return None

    @property
    def data_dir(self) -> Path:
        return Path(self._data.get("data_dir") or "./data").resolve()

    @property
    def automod_config_path(self) -> Path:
        return Path(self._data.get("automod_config_path") or "./config/automod.yml").resolve()

    @property
    def audit_db_path(self) -> Path:
        return Path(self._data.get("audit_db_path") or self.data_dir / "audit.db").resolve()

    @property
    def user_rate_limit(self) -> WindowLimit:
        return self._window_limit("user", DEFAULT_USER_LIMIT)

    @property
    def command_rate_limit(self) -> WindowLimit:
        return self._window_limit("command", DEFAULT_COMMAND_LIMIT)

    @property
    def panic_settings(self) -> PanicSettings:
        """Channels, roles and notices used by the ``panic``/``unpanic`` commands."""
        section = self._data.get("panic")
        if not isinstance(section, dict):
            return PanicSettings()
        announcement_channel = section.get("announcement_channel_id")
        try:
            announcement_channel_id = int(announcement_channel) if announcement_channel else None
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Ignoring invalid announcement channel %r", announcement_channel)
            announcement_channel_id = None
        return PanicSettings(
            lock_channel_ids=tuple(self._id_list(section.get("lock_channel_ids"), "panic channel id")),
            member_role_ids=tuple(self._id_list(section.get("member_role_ids"), "panic role id")),
            announcement_channel_id=announcement_channel_id,
            announcement_on=str(section.get("announcement_on") or DEFAULT_PANIC_ON),
            announcement_off=str(section.get("announcement_off") or DEFAULT_PANIC_OFF),
        )
