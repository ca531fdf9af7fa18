"""
Shared fixtures for LimitGuard unit tests.
"""

import pytest


class FakeClock:
    """Settable time source."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Create fake clock."""
    return FakeClock()
