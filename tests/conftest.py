"""
Brief: Global pytest configuration for wpsync tests.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
import time

import pytest

# Ensure 'src' is on sys.path so 'wpsync' is importable without installation
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    raise TimeoutError("Test exceeded 15 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Fail any test that runs longer than 15 seconds.

    Inputs:
      - None

    Outputs:
      - None: Cancels the alarm after the test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(15)
        try:
            yield
        finally:
            signal.alarm(0)
    else:  # pragma: no cover - non-POSIX platforms
        yield


def wait_until(predicate, timeout=3.0, interval=0.02):
    """
    Brief: Poll until predicate() returns True or timeout expires.

    Inputs:
      - predicate: callable returning bool
      - timeout: maximum seconds to wait (float)
      - interval: sleep duration between polls (float)

    Outputs:
      - bool: True if condition met; False if timed out
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def waiter():
    """Brief: Expose wait_until to tests as a fixture."""
    return wait_until


@pytest.fixture
def src_dir():
    """Brief: Absolute path of the src/ directory, for child processes."""
    return SRC_DIR
