import sys

import pytest

# Ensure project root is importable (so `import main` / `import cli` work reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fleetlb import db, settings as settings_mod
from fleetlb.errors import PacketFilterError, RuntimeClientError


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the event/history store at a throwaway sqlite file."""
    monkeypatch.setattr(settings_mod, "settings", settings_mod.Settings(db_path=str(tmp_path / "test.db")))
    db.init_db()
    return tmp_path / "test.db"


class FakeRuntime:
    """In-memory stand-in for the container runtime.

    ``fail`` maps (phase, container name) to an error message. Names are not
    required to be unique, so repeated deployments of one spec just pile up.
    """

    def __init__(self, fail=None):
        self.fail = dict(fail or {})
        self.calls = []
        self.containers = {}  # id -> attributes
        self._seq = 0

    def _maybe_fail(self, phase, name):
        if (phase, name) in self.fail:
            raise RuntimeClientError(self.fail[(phase, name)])

    def create(self, image, exposed_port, host_port, labels, name):
        self.calls.append(("create", name))
        self._maybe_fail("create", name)
        self._seq += 1
        cid = f"{self._seq:064x}"
        self.containers[cid] = {
            "name": name,
            "image": image,
            "exposed_port": exposed_port,
            "host_port": host_port,
            "labels": dict(labels),
            "state": "created",
            "ip": f"172.17.0.{self._seq + 1}",
        }
        return cid

    def start(self, container_id):
        name = self.containers[container_id]["name"]
        self.calls.append(("start", name))
        self._maybe_fail("start", name)
        self.containers[container_id]["state"] = "running"

    def inspect(self, container_id):
        name = self.containers[container_id]["name"]
        self.calls.append(("inspect", name))
        self._maybe_fail("inspect", name)
        return self.containers[container_id]["ip"]

    def names(self, state=None):
        return [c["name"] for c in self.containers.values() if state is None or c["state"] == state]


class FakePacketFilter:
    """Records appended rules; ``fail_at`` makes the n-th append (0-based) fail."""

    def __init__(self, fail_at=None):
        self.fail_at = fail_at
        self.rules = []
        self.attempts = 0

    def append_rule(self, match_port, destination, probability=None, protocol="tcp"):
        n = self.attempts
        self.attempts += 1
        if self.fail_at is not None and n == self.fail_at:
            raise PacketFilterError("iptables error: exit status 1\niptables: No chain/target/match by that name.")
        self.rules.append(
            {"match_port": match_port, "destination": destination, "probability": probability, "protocol": protocol}
        )


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def packet_filter():
    return FakePacketFilter()
