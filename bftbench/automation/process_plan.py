#!/usr/bin/env python3
"""Turn resolved hosts into per-host process launch descriptors."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from bftbench.automation.connector_config import ConnectorConfig
from bftbench.automation.settings import resolve, resolve_log_levels
from bftbench.automation.topology import HostRecord, ReplicaAssignment

LOG_ENV_VAR = "RUST_LOG"


@dataclass
class ProcessDescriptor:
    path: str
    env: str
    args: str
    start_time: float = 0


@dataclass
class PlannedHost:
    host: HostRecord
    replica_id: Optional[int]
    procs: List[ProcessDescriptor] = field(default_factory=list)


def _client_descriptor(client: Mapping[str, Any], level: str, config: ConnectorConfig) -> ProcessDescriptor:
    args = (
        f"-d {client['duration']} --config {config.config_path} --payload {client['payload']}"
        f" -c {client['clients']} --concurrent {client['concurrent']}"
        f" --response-strategy {resolve(client, 'response_strategy')}"
    )
    return ProcessDescriptor(
        path=config.client_bin_path,
        env=f"{LOG_ENV_VAR}={level}",
        args=args,
        start_time=resolve(client, "start_time") or 0,
    )


def _replica_descriptor(replica_id: int, level: str, config: ConnectorConfig) -> ProcessDescriptor:
    # replicas always start with the experiment
    return ProcessDescriptor(
        path=config.replica_bin_path,
        env=f"{LOG_ENV_VAR}={level}",
        args=f"{replica_id} --config {config.config_path}",
        start_time=0,
    )


def build_process_plan(
    assignment: ReplicaAssignment,
    replica: Mapping[str, Any],
    client: Mapping[str, Any],
    config: ConnectorConfig,
) -> List[PlannedHost]:
    replica_level, client_level = resolve_log_levels(replica, client)
    plan: List[PlannedHost] = []
    for host, replica_id in assignment:
        if host.is_client:
            proc = _client_descriptor(client, client_level, config)
        else:
            proc = _replica_descriptor(replica_id, replica_level, config)
        plan.append(PlannedHost(host=host, replica_id=replica_id, procs=[proc]))
    return plan


def plan_to_dict(plan: List[PlannedHost]) -> List[Dict[str, Any]]:
    return [
        {
            "name": entry.host.name,
            "ip": entry.host.ip,
            "role": entry.host.role,
            "replica_id": entry.replica_id,
            "procs": [asdict(proc) for proc in entry.procs],
        }
        for entry in plan
    ]
