#!/usr/bin/env python3
"""Build and persist the layered Themis protocol configuration.

The document wires three protocol layers in a fixed order:

    protocols[0]  batching     no peers
    protocols[1]  bracha-rbc   peers listen on replica_port + 1
    protocols[2]  pbft         peers listen on replica_port + 2

Every peer-bearing layer gets the same replica ids and key files; only the
port differs, by the layer's index in `protocols`.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

import tomli_w
import yaml

from bftbench.automation.connector_config import ConnectorConfig
from bftbench.automation.settings import SettingsError, resolve, resolve_duration, resolve_optional
from bftbench.automation.topology import ReplicaAssignment

MAX_REQUEST_SIZE = 100_000_000
MAX_PROTOCOL_SIZE = 15_000_000_000
KEEP_CHECKPOINTS = 2
HIGH_MARK_DELTA = 3200


def fault_bound(replicas: int) -> int:
    """Largest f with 3f + 1 <= replicas."""
    if replicas < 1:
        raise ValueError(f"replica count must be at least 1, got {replicas}")
    return (replicas - 1) // 3


@dataclass(frozen=True)
class PeerRecord:
    id: int
    host: str
    port: int
    private_key: str
    public_key: str

    def to_dict(self, port_key: str) -> Dict[str, Any]:
        return {
            "id": self.id,
            "host": self.host,
            port_key: self.port,
            "private_key": self.private_key,
            "public_key": self.public_key,
        }


def _drop_unset(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value is not None}


def _required(settings: Mapping[str, Any], key: str) -> Any:
    value = settings.get(key)
    if value is None:
        raise SettingsError(f"{key} property of replica object is required to build the protocol config")
    return value


def _protocol_layers(settings: Mapping[str, Any], faults: int) -> List[Dict[str, Any]]:
    bracha = {
        "name": "bracha-rbc",
        "authentication": {"peers": resolve(settings, "bracha_authentication_peers")},
        "config": _drop_unset(
            {
                "faults": faults,
                "verify_proposal": False,
                "hashed_echo_and_ready": True,
                "request_proposals": False,
                "hashed_batching": resolve_optional(settings, "bracha_hashed_batching"),
                "hashed_batch_size": resolve_optional(settings, "bracha_hashed_batch_size"),
                "hashed_batch_timeout_ms": resolve_optional(settings, "bracha_hashed_batch_timeout_ms"),
            }
        ),
        "peers": [],
    }
    pbft = {
        "name": "pbft",
        "authentication": {"peers": resolve(settings, "pbft_authentication_peers")},
        "config": _drop_unset(
            {
                "faults": faults,
                "first_primary": 0,
                "checkpoint_interval": int(resolve(settings, "checkpoint_interval")),
                "high_mark_delta": HIGH_MARK_DELTA,
                "request_timeout": resolve_optional(settings, "request_timeout"),
                "primary_forwarding": "None",
                "backup_forwarding": "None",
                "reply_mode": "All",
                "timer_granularity": "proposal",
                "request_proposals": False,
                "remove_duplicate_requests": False,
            }
        ),
        "peers": [],
    }
    return [{"name": "batching"}, bracha, pbft]


def build_protocol_config(
    settings: Mapping[str, Any],
    assignment: ReplicaAssignment,
    faults: int,
    config: ConnectorConfig,
) -> Dict[str, Any]:
    """Return the configuration document for one experiment.

    `faults` is computed once by the caller and copied into the global
    section and into every peer-bearing layer.
    """
    timeout = resolve_duration(_required(settings, "batchTimeout"), "batchTimeout")
    min_batch = int(_required(settings, "minBatchSize"))
    max_batch = int(_required(settings, "maxBatchSize"))
    if not assignment.replicas():
        raise ValueError("topology contains no replica host")

    document: Dict[str, Any] = {
        "reply_size": settings.get("replySize"),
        "execution": "Single",
        "batching": settings.get("batchReplies"),
        "faults": faults,
        "response_store": {"enable": bool(resolve(settings, "enable_response_store"))},
        "client": {
            "request_strategy": "round-robin-fixed",
            "wait_on_all_replicas_to_be_ready": True,
        },
        "communication": _drop_unset(
            {
                "max_parallel_requests_per_client": resolve_optional(settings, "max_parallel_requests_per_client"),
                "max_request_size": MAX_REQUEST_SIZE,
                "max_protocol_size": MAX_PROTOCOL_SIZE,
                "reliable_sender_cache": bool(resolve(settings, "reliable_sender_cache")),
            }
        ),
        "authentication": {"clients": resolve(settings, "authentication_clients")},
        "batch": {
            "timeout": timeout,
            "min_delay": resolve_duration(resolve(settings, "batch_min_delay"), "batchMinDelay"),
            "min": min_batch,
            "max": max_batch,
        },
        "checkpoint": {"keep_checkpoints": KEEP_CHECKPOINTS},
        "client_peers": [],
        "protocols": _protocol_layers(settings, faults),
    }
    document = _drop_unset(document)

    # client_peers lists the replicas clients connect to; client hosts get no entry or key pair
    for host, replica_id in assignment.replicas():
        private_key = config.private_key(replica_id)
        public_key = config.public_key(replica_id)
        client_peer = PeerRecord(replica_id, host.ip, config.client_port, private_key, public_key)
        document["client_peers"].append(client_peer.to_dict("client_port"))
        for index, layer in enumerate(document["protocols"]):
            if "peers" not in layer:
                continue
            peer = PeerRecord(replica_id, host.ip, config.replica_port + index, private_key, public_key)
            layer["peers"].append(peer.to_dict("peer_port"))
    return document


def write_protocol_config(document: Mapping[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix in {".yaml", ".yml"}:
        path.write_text(yaml.safe_dump(dict(document), sort_keys=False), encoding="utf-8")
    else:
        path.write_bytes(tomli_w.dumps(dict(document)).encode("utf-8"))
    return path


def load_protocol_config(path: Path) -> Dict[str, Any]:
    path = Path(path)
    if path.suffix in {".yaml", ".yml"}:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    with path.open("rb") as f:
        return tomllib.load(f)
