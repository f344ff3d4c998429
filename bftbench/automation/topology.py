#!/usr/bin/env python3
"""Resolve logical host groups into concrete replica/client hosts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Sequence, Tuple

import requests
import yaml

ROLE_REPLICA = "replica"
ROLE_CLIENT = "client"


class TopologyError(RuntimeError):
    pass


@dataclass(frozen=True)
class HostRecord:
    name: str
    ip: str
    role: str

    @property
    def is_client(self) -> bool:
        return self.role == ROLE_CLIENT


def role_for_name(name: str, replica_prefix: str, client_prefix: str) -> str:
    # longest prefix wins
    candidates = sorted(
        [(replica_prefix, ROLE_REPLICA), (client_prefix, ROLE_CLIENT)],
        key=lambda item: len(item[0]),
        reverse=True,
    )
    for prefix, role in candidates:
        if prefix and name.startswith(prefix):
            return role
    raise TopologyError(
        f"host {name!r} matches neither the replica prefix {replica_prefix!r} nor the client prefix {client_prefix!r}"
    )


def _to_records(raw: Sequence[Tuple[str, str]], replica_prefix: str, client_prefix: str) -> List[HostRecord]:
    return [HostRecord(name=name, ip=ip, role=role_for_name(name, replica_prefix, client_prefix)) for name, ip in raw]


class StaticTopologyResolver:
    """Hand out hosts from a fixed inventory: {group prefix: [ip, ...]}.

    Hosts are named <prefix><index>, groups are visited in the order of the
    requested mapping.
    """

    def __init__(self, inventory: Mapping[str, Sequence[str]], replica_prefix: str, client_prefix: str):
        self.inventory = {str(group): [str(ip) for ip in ips] for group, ips in inventory.items()}
        self.replica_prefix = replica_prefix
        self.client_prefix = client_prefix

    @classmethod
    def from_file(cls, path: Path, replica_prefix: str, client_prefix: str) -> "StaticTopologyResolver":
        try:
            raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise TopologyError(f"inventory {path} is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise TopologyError(f"inventory {path} must map host-group prefixes to IP lists")
        return cls(raw, replica_prefix, client_prefix)

    def resolve(self, groups: Mapping[str, int]) -> List[HostRecord]:
        raw: List[Tuple[str, str]] = []
        for group, count in groups.items():
            ips = self.inventory.get(group, [])
            if count > len(ips):
                raise TopologyError(f"host group {group!r} needs {count} hosts but inventory lists {len(ips)}")
            raw.extend((f"{group}{i}", ips[i]) for i in range(count))
        return _to_records(raw, self.replica_prefix, self.client_prefix)


class HttpTopologyResolver:
    """Ask a topology service for hosts.

    POST <base_url>/hosts with {"groups": {prefix: count}}; the service replies
    with an ordered JSON list of {"name": ..., "ip": ...} objects.
    """

    def __init__(
        self,
        base_url: str,
        replica_prefix: str,
        client_prefix: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.replica_prefix = replica_prefix
        self.client_prefix = client_prefix
        self.session = session or requests.Session()
        self.timeout = timeout

    def resolve(self, groups: Mapping[str, int]) -> List[HostRecord]:
        url = f"{self.base_url}/hosts"
        try:
            resp = self.session.post(url, json={"groups": dict(groups)}, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise TopologyError(f"topology service {url} failed: {exc}") from exc
        except ValueError as exc:
            raise TopologyError(f"topology service {url} returned invalid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise TopologyError(f"topology service {url} must return a list of hosts")
        raw: List[Tuple[str, str]] = []
        for entry in payload:
            if not isinstance(entry, dict) or "name" not in entry or "ip" not in entry:
                raise TopologyError(f"malformed host entry from {url}: {entry!r}")
            raw.append((str(entry["name"]), str(entry["ip"])))
        return _to_records(raw, self.replica_prefix, self.client_prefix)


@dataclass(frozen=True)
class ReplicaAssignment:
    """Hosts in resolution order paired with their dense replica id (None for clients)."""

    entries: Tuple[Tuple[HostRecord, Optional[int]], ...]

    def __iter__(self) -> Iterator[Tuple[HostRecord, Optional[int]]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def hosts(self) -> List[HostRecord]:
        return [host for host, _ in self.entries]

    def replicas(self) -> List[Tuple[HostRecord, int]]:
        return [(host, rid) for host, rid in self.entries if rid is not None]


def assign_replica_ids(hosts: Sequence[HostRecord]) -> ReplicaAssignment:
    entries: List[Tuple[HostRecord, Optional[int]]] = []
    next_id = 0
    for host in hosts:
        if host.is_client:
            entries.append((host, None))
            continue
        entries.append((host, next_id))
        next_id += 1
    return ReplicaAssignment(tuple(entries))
