"""Shared test fixtures."""

import os
import sys

import pytest


def py(script: str) -> list[str]:
    """Command that runs `script` with the current interpreter."""
    return [sys.executable, "-c", script]


@pytest.fixture(params=["select", "thread"])
def reader(request):
    """Run a test once per non-blocking read backend."""
    if request.param == "select" and os.name != "posix":
        pytest.skip("selector reader needs POSIX pipes")
    return request.param


@pytest.fixture
def open_fds():
    """Return a callable that counts this process's open file descriptors."""
    if not os.path.isdir("/proc/self/fd"):
        pytest.skip("needs /proc/self/fd")
    return lambda: len(os.listdir("/proc/self/fd"))


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch):
    monkeypatch.delenv("GITHUB_ACTIONS", raising=False)
    monkeypatch.delenv("FLOW_EXEC_LOG_LEVEL", raising=False)
    monkeypatch.delenv("FLOW_EXEC_CONFIG", raising=False)
