from __future__ import annotations

import pytest

from bftbench.automation.connector_config import ConnectorConfig
from bftbench.automation.topology import HostRecord


@pytest.fixture
def config(tmp_path):
    return ConnectorConfig(
        root_dir=str(tmp_path / "themis"),
        keys_dir="keys",
        config_file_path="config/experiment.toml",
        config_path="config/experiment.toml",
        replica_port=10000,
        client_port=10003,
        execution_dir=str(tmp_path / "exec"),
        experiments_output_dir=str(tmp_path / "out"),
    )


@pytest.fixture
def replica_settings():
    return {
        "replicas": 4,
        "minBatchSize": 1,
        "maxBatchSize": 512,
        "replySize": 128,
        "batchReplies": True,
        "batchTimeout": {"secs": 0, "nano": 10_000_000},
    }


@pytest.fixture
def client_settings():
    return {
        "clients": 64,
        "concurrent": 8,
        "payload": 128,
        "duration": 60,
        "response_strategy": "receive-all",
    }


def _make_hosts(layout: str):
    """'rrcr' -> replica0, replica1, client0, replica2."""
    hosts = []
    counts = {"r": 0, "c": 0}
    for kind in layout:
        index = counts[kind]
        counts[kind] += 1
        if kind == "r":
            hosts.append(HostRecord(f"replica{index}", f"10.0.0.{index + 1}", "replica"))
        else:
            hosts.append(HostRecord(f"client{index}", f"10.0.1.{index + 1}", "client"))
    return hosts


@pytest.fixture
def make_hosts():
    return _make_hosts
