"""
Brief: Global pytest configuration: src on sys.path, per-test 10s timeout and
shared zone fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so 'eyrie' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from eyrie.zones.db.store import ZoneStore  # noqa: E402
from eyrie.zones.models import SECONDARY, Record, Zone  # noqa: E402


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


@pytest.fixture(autouse=True)
def restore_root_logger():
    """
    Brief: Undo init_logging() side effects so tests do not leak handlers.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


def make_secondary_zone(name="example.com", serial=1, records=None, zone_id=None):
    """
    Brief: Build a secondary Zone with SOA metadata and a couple of records.

    Inputs:
      - name: zone apex
      - serial: SOA serial
      - records: optional list of Record; defaults to www A + mail MX
      - zone_id: optional persistence id

    Outputs:
      - Zone
    """
    apex = name.rstrip(".") + "."
    if records is None:
        records = [
            Record("www." + apex, "A", 300, "192.0.2.10"),
            Record(apex, "MX", 300, "10 mail." + apex),
        ]
    return Zone(
        apex,
        records,
        zone_id=zone_id,
        zone_type=SECONDARY,
        remote_server="192.0.2.53",
        soa_mname="ns1." + apex,
        soa_rname="hostmaster." + apex,
        serial=serial,
    )


@pytest.fixture
def store():
    """
    Brief: In-memory sqlite3 ZoneStore with its schema created.

    Inputs:
      - None

    Outputs:
      - ZoneStore; closed after the test.
    """
    s = ZoneStore("sqlite3", ":memory:")
    yield s
    s.close()


@pytest.fixture
def zone_factory():
    """
    Brief: Expose make_secondary_zone() to tests as a fixture.

    Outputs:
      - callable(name="example.com", serial=1, records=None, zone_id=None) -> Zone
    """
    return make_secondary_zone
