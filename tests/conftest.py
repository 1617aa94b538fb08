"""Pytest configuration for jsbridge tests."""

import signal
import sys

import pytest

from jsbridge import Runtime


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "timeout(seconds): set custom timeout for test")


def timeout_handler(signum, frame):
    """Handle timeout signal."""
    pytest.fail("Test timed out")


@pytest.fixture(autouse=True)
def test_timeout(request):
    """Apply a timeout to all tests.

    Default is 10 seconds; mark a test with @pytest.mark.timeout(30) for more.
    """
    if sys.platform == "win32":
        yield
        return
    marker = request.node.get_closest_marker("timeout")
    timeout_seconds = marker.args[0] if marker else 10
    old_handler = signal.signal(signal.SIGALRM, timeout_handler)
    signal.alarm(timeout_seconds)
    yield
    signal.alarm(0)
    signal.signal(signal.SIGALRM, old_handler)


@pytest.fixture
def runtime():
    """A runtime freed after the test, along with any context left open."""
    rt = Runtime()
    yield rt
    for ctx in list(rt._contexts):
        if not ctx.closed:
            ctx.free()
    if not rt.closed:
        rt.free()


@pytest.fixture
def ctx(runtime):
    """A fresh context in the shared runtime fixture."""
    context = runtime.new_context()
    yield context
    if not context.closed:
        context.free()
