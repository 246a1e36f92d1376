"""
In-memory admission control for the command pipeline and the automod pass.

State lives on explicit instances handed to the handlers; restarts reset it.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from modguard.util.logger import get_logger
from modguard.util.time_utils import monotonic_ms

logger = get_logger("rate_limiter")

USER_LIMIT_REASON = "Rate limit: too many requests (user)."
COMMAND_LIMIT_REASON = "Rate limit: command cooling down."


@dataclass(frozen=True, slots=True)
class WindowLimit:
    """At most ``max_events`` within the trailing ``window_ms``."""

    window_ms: int
    max_events: int


DEFAULT_USER_LIMIT = WindowLimit(window_ms=15_000, max_events=8)
DEFAULT_COMMAND_LIMIT = WindowLimit(window_ms=8_000, max_events=4)

# Idle windows are dropped at most this often.
SWEEP_INTERVAL_MS = 60_000


@dataclass(frozen=True, slots=True)
class Admission:
    allowed: bool
    reason: str | None = None


class RateLimiter:
    """
    Sliding-window limiter keyed by user (``user:<id>``) and by command kind
    (``cmd:<name>``).

    ``admit`` prunes both windows, checks the user window then the command
    window, and records the attempt in both only when both pass. Denied
    attempts are not recorded.
    """

    def __init__(
        self,
        user_limit: WindowLimit = DEFAULT_USER_LIMIT,
        command_limit: WindowLimit = DEFAULT_COMMAND_LIMIT,
        *,
        clock: Callable[[], int] = monotonic_ms,
        sweep_interval_ms: int = SWEEP_INTERVAL_MS,
    ) -> None:
        self.user_limit = user_limit
        self.command_limit = command_limit
        self.clock = clock
        self.sweep_interval_ms = sweep_interval_ms
        self.windows: Dict[str, Deque[int]] = {}
        self._last_sweep = clock()

    def _window_ms(self, key: str) -> int:
        return self.user_limit.window_ms if key.startswith("user:") else self.command_limit.window_ms

    def _prune(self, key: str, now: int) -> Deque[int]:
        """Drop expired timestamps; a key whose window empties is removed from ``windows``."""
        window = self.windows.get(key)
        if window is None:
            return deque()
        cutoff = now - self._window_ms(key)
        while window and window[0] < cutoff:
            window.popleft()
        if not window:
            del self.windows[key]
        return window

    def sweep(self, now: int | None = None) -> int:
        """Prune every window and return how many idle keys were dropped."""
        now = self.clock() if now is None else now
        before = len(self.windows)
        for key in list(self.windows):
            self._prune(key, now)
        self._last_sweep = now
        return before - len(self.windows)

    def admit(self, user_id, command_kind: str) -> Admission:
        now = self.clock()
        if now - self._last_sweep >= self.sweep_interval_ms:
            self.sweep(now)

        user_key = f"user:{user_id}"
        command_key = f"cmd:{command_kind}"
        user_window = self._prune(user_key, now)
        command_window = self._prune(command_key, now)

        if len(user_window) >= self.user_limit.max_events:
            logger.debug("[RATE LIMITER] Denied user %s (user window saturated)", user_id)
            return Admission(False, USER_LIMIT_REASON)
        if len(command_window) >= self.command_limit.max_events:
            logger.debug("[RATE LIMITER] Denied command %s for user %s", command_kind, user_id)
            return Admission(False, COMMAND_LIMIT_REASON)

        user_window.append(now)
        command_window.append(now)
        self.windows[user_key] = user_window
        self.windows[command_key] = command_window
        return Admission(True)

    def reset(self) -> None:
        self.windows.clear()


class CooldownTracker:
    """Per-user cooldown between automod actions."""

    def __init__(self, cooldown_ms: int, *, clock: Callable[[], int] = monotonic_ms) -> None:
        self.cooldown_ms = cooldown_ms
        self.clock = clock
        self.last_hit: Dict[str, int] = {}

    def is_cooling_down(self, user_id) -> bool:
        key = str(user_id)
        last = self.last_hit.get(key)
        if last is None:
            return False
        if self.clock() - last < self.cooldown_ms:
            return True
        del self.last_hit[key]
        return False

    def touch(self, user_id) -> None:
        now = self.clock()
        self.sweep(now)
        self.last_hit[str(user_id)] = now

    def sweep(self, now: int | None = None) -> None:
        """Forget users whose cooldown has run out."""
        now = self.clock() if now is None else now
        expired = [key for key, last in self.last_hit.items() if now - last >= self.cooldown_ms]
        for key in expired:
            del self.last_hit[key]
