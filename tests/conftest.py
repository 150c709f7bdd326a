"""
Brief: Global pytest configuration: src/ on sys.path, per-test timeout, fakes.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
from typing import List, Tuple

import pytest

# Ensure 'src' is on sys.path so the 'dnssd' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnssd.transports.base import BaseTransport  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


class FakeTransport(BaseTransport):
    """
    Brief: In-memory transport recording sent queries and answers.

    Inputs:
      - None

    Outputs:
      - FakeTransport with `queries`, `answers`, `started` and
        `dispose_calls` for assertions.
    """

    def __init__(self):
        super().__init__()
        self.queries: List[Tuple[str, int]] = []
        self.answers = []
        self.started = 0
        self.dispose_calls = 0

    def start(self):
        self.started += 1

    def send_query(self, name, qtype):
        self.queries.append((name, int(qtype)))

    def send_answer(self, message):
        self.answers.append(message)

    def dispose(self):
        self.dispose_calls += 1


@pytest.fixture
def fake_transport_cls():
    return FakeTransport


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield
