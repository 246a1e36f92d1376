"""
Whole-file JSON persistence used by the warn and mute ledgers.

Reads never raise: a missing, unreadable or corrupt file yields the store's
empty value. Writes replace the whole file once per mutation (temp file +
``os.replace``) and report failure through their return value instead of
raising, since ledger persistence is best-effort.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable

from modguard.util.logger import get_logger

logger = get_logger("json_store")


class JsonFileStore:
    """Load/save a single JSON document.

    Args:
        path: Location of the JSON file; parent directories are created on save.
        empty_factory: Returns the value used when the file cannot be loaded.
        expected_type: Top-level JSON type the document must have.
    """

    def __init__(self, path: Path, empty_factory: Callable[[], Any], expected_type: type) -> None:
        self.path = Path(path)
        self.empty_factory = empty_factory
        self.expected_type = expected_type

    def load(self) -> Any:
        if not self.path.exists():
            return self.empty_factory()
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.error("[JSON STORE] Failed to read %s, treating it as empty: %s", self.path, exc)
            return self.empty_factory()

        if not isinstance(data, self.expected_type):
            logger.error(
                "[JSON STORE] %s holds %s instead of %s, treating it as empty",
                self.path, type(data).__name__, self.expected_type.__name__,
            )
            return self.empty_factory()
        return data

    def save(self, data: Any) -> bool:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.error("[JSON STORE] Failed to write %s: %s", self.path, exc)
            return False
