from __future__ import annotations

import pytest
import requests

from bftbench.automation.topology import (
    HostRecord,
    HttpTopologyResolver,
    StaticTopologyResolver,
    TopologyError,
    assign_replica_ids,
    role_for_name,
)

INVENTORY = {
    "replica": ["10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4"],
    "client": ["10.0.1.1"],
}


def test_role_for_name():
    assert role_for_name("replica3", "replica", "client") == "replica"
    assert role_for_name("client0", "replica", "client") == "client"


def test_role_for_name_prefers_longest_prefix():
    assert role_for_name("node-client0", "node", "node-client") == "client"
    assert role_for_name("node3", "node", "node-client") == "replica"


def test_role_for_unknown_name():
    with pytest.raises(TopologyError, match="observer0"):
        role_for_name("observer0", "replica", "client")


class TestStaticTopologyResolver:
    def test_resolve_in_group_order(self):
        resolver = StaticTopologyResolver(INVENTORY, "replica", "client")
        hosts = resolver.resolve({"replica": 4, "client": 1})
        assert [h.name for h in hosts] == ["replica0", "replica1", "replica2", "replica3", "client0"]
        assert [h.role for h in hosts] == ["replica"] * 4 + ["client"]
        assert hosts[4] == HostRecord("client0", "10.0.1.1", "client")

    def test_group_order_is_caller_order(self):
        resolver = StaticTopologyResolver(INVENTORY, "replica", "client")
        hosts = resolver.resolve({"client": 1, "replica": 2})
        assert [h.name for h in hosts] == ["client0", "replica0", "replica1"]

    def test_resolution_is_stable(self):
        resolver = StaticTopologyResolver(INVENTORY, "replica", "client")
        groups = {"replica": 3, "client": 1}
        assert resolver.resolve(groups) == resolver.resolve(groups)

    def test_too_many_hosts_requested(self):
        resolver = StaticTopologyResolver(INVENTORY, "replica", "client")
        with pytest.raises(TopologyError, match="needs 7 hosts"):
            resolver.resolve({"replica": 7, "client": 1})

    def test_from_file(self, tmp_path):
        path = tmp_path / "inventory.yaml"
        path.write_text("replica:\n  - 192.168.0.10\nclient:\n  - 192.168.0.20\n", encoding="utf-8")
        hosts = StaticTopologyResolver.from_file(path, "replica", "client").resolve({"replica": 1, "client": 1})
        assert [(h.name, h.ip) for h in hosts] == [("replica0", "192.168.0.10"), ("client0", "192.168.0.20")]

    def test_from_file_rejects_malformed_yaml(self, tmp_path):
        path = tmp_path / "inventory.yaml"
        path.write_text("replica: [10.0.0.1\n", encoding="utf-8")
        with pytest.raises(TopologyError, match="not valid YAML"):
            StaticTopologyResolver.from_file(path, "replica", "client")

    def test_from_file_rejects_lists(self, tmp_path):
        path = tmp_path / "inventory.yaml"
        path.write_text("- 10.0.0.1\n", encoding="utf-8")
        with pytest.raises(TopologyError):
            StaticTopologyResolver.from_file(path, "replica", "client")


class _FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Server Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class _FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        return self.response


class TestHttpTopologyResolver:
    def test_resolve(self):
        session = _FakeSession(
            _FakeResponse(
                [
                    {"name": "replica0", "ip": "10.1.0.1"},
                    {"name": "client0", "ip": "10.1.1.1"},
                    {"name": "replica1", "ip": "10.1.0.2"},
                ]
            )
        )
        resolver = HttpTopologyResolver("http://topology:8080/", "replica", "client", session=session, timeout=3)
        hosts = resolver.resolve({"replica": 2, "client": 1})

        assert session.calls == [("http://topology:8080/hosts", {"groups": {"replica": 2, "client": 1}}, 3)]
        assert [(h.name, h.role) for h in hosts] == [
            ("replica0", "replica"),
            ("client0", "client"),
            ("replica1", "replica"),
        ]

    def test_http_error(self):
        resolver = HttpTopologyResolver(
            "http://topology", "replica", "client", session=_FakeSession(_FakeResponse([], status=503))
        )
        with pytest.raises(TopologyError, match="503"):
            resolver.resolve({"replica": 4})

    def test_invalid_json(self):
        resolver = HttpTopologyResolver(
            "http://topology", "replica", "client", session=_FakeSession(_FakeResponse(ValueError("bad json")))
        )
        with pytest.raises(TopologyError, match="invalid JSON"):
            resolver.resolve({"replica": 4})

    @pytest.mark.parametrize("payload", [{"hosts": []}, [{"name": "replica0"}], ["10.0.0.1"]])
    def test_malformed_payload(self, payload):
        resolver = HttpTopologyResolver(
            "http://topology", "replica", "client", session=_FakeSession(_FakeResponse(payload))
        )
        with pytest.raises(TopologyError):
            resolver.resolve({"replica": 1})


def test_assign_replica_ids_skips_clients(make_hosts):
    assignment = assign_replica_ids(make_hosts("crrcrr"))
    assert [rid for _, rid in assignment] == [None, 0, 1, None, 2, 3]
    assert len(assignment) == 6
    assert [host.name for host, _ in assignment.replicas()] == ["replica0", "replica1", "replica2", "replica3"]


def test_assignment_is_immutable(make_hosts):
    assignment = assign_replica_ids(make_hosts("rrc"))
    with pytest.raises(AttributeError):
        assignment.entries = ()
    assert isinstance(assignment.entries, tuple)
