"""pytest configuration for LookHere tests."""

from __future__ import annotations

import time

import pytest


def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture()
def wait_until():
    """Poll a predicate until it holds or the timeout passes."""
    return _wait_until
