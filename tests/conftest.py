"""
Pytest configuration and fixtures for ModGuard tests.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


class FakeClock:
    """Millisecond clock that only moves when a test advances it."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def platform() -> AsyncMock:
    """Moderation platform whose every call succeeds."""
    fake = AsyncMock()
    for name in (
        "send_direct_message",
        "timeout_member",
        "remove_timeout",
        "kick_member",
        "ban_member",
        "delete_message",
        "send_channel_message",
        "send_audit_log",
        "set_channel_lock",
    ):
        setattr(fake, name, AsyncMock(return_value=None))
    fake.can_moderate = AsyncMock(return_value=True)
    return fake
