"""Shared test fixtures."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from fakes import FakeCache, FakePool


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def memory_usage():
    """Patch host memory so usage is a chosen percentage. Yields a setter."""
    state = {"percent": 30}

    def _virtual_memory():
        total = 1000
        return SimpleNamespace(total=total, available=total - state["percent"] * 10)

    with patch("healthcore.health.metrics.psutil.virtual_memory", side_effect=_virtual_memory):
        yield lambda pct: state.__setitem__("percent", pct)
