#!/usr/bin/env python3
"""Connector-wide paths, binaries, host prefixes and ports.

Values come from the THEMIS_LEGO_BFT_* environment variables and can be
overridden per experiment from the `connector:` section of an experiment YAML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

ENV_PREFIX = "THEMIS_LEGO_BFT_"
PROCESS_NAME = "themis-bench-app"

PEER_KEY_SCHEME = "Ed25519"
PUBLIC_KEY_PREFIX = "ed-25519-public-"
PRIVATE_KEY_PREFIX = "ed-25519-private-"

CLIENT_LOG_NAME = "bench-client.1000.stdout"


class ConnectorConfigError(ValueError):
    pass


# field name -> (env suffix, default); None marks a required variable
_ENV_FIELDS: Dict[str, tuple] = {
    "root_dir": ("DIR", None),
    "keys_dir": ("KEYS_DIR", "keys"),
    "config_file_path": ("CONFIG_FILE_PATH", "config/default.toml"),
    "config_path": ("CONFIG_PATH", "config/default.toml"),
    "replica_bin": ("REPLICA_BIN", "target/release/themis-bench-app"),
    "client_bin": ("CLIENT_BIN", "target/release/bench-client"),
    "replica_host_prefix": ("REPLICA_HOST_PREFIX", "replica"),
    "client_host_prefix": ("CLIENT_HOST_PREFIX", "client"),
    "replica_port": ("REPLICA_PORT", "10000"),
    "client_port": ("CLIENT_PORT", "10003"),
    "execution_dir": ("EXECUTION_DIR", "."),
    "experiments_output_dir": ("EXPERIMENTS_OUTPUT_DIR", "artifacts/experiments"),
    "analyze_script": ("ANALYZE_SCRIPT", "scripts/themis-lego-bft/analyze.sh"),
}

_INT_FIELDS = {"replica_port", "client_port"}


def _coerce_port(name: str, value) -> int:
    if isinstance(value, bool):
        raise ConnectorConfigError(f"{name} must be an integer port, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConnectorConfigError(f"{name} must be an integer port, got {value!r}") from None


@dataclass(frozen=True)
class ConnectorConfig:
    root_dir: str
    keys_dir: str = "keys"
    config_file_path: str = "config/default.toml"
    config_path: str = "config/default.toml"
    replica_bin: str = "target/release/themis-bench-app"
    client_bin: str = "target/release/bench-client"
    replica_host_prefix: str = "replica"
    client_host_prefix: str = "client"
    replica_port: int = 10000
    client_port: int = 10003
    execution_dir: str = "."
    experiments_output_dir: str = "artifacts/experiments"
    analyze_script: str = "scripts/themis-lego-bft/analyze.sh"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConnectorConfig":
        env = os.environ if environ is None else environ
        values: Dict[str, object] = {}
        for name, (suffix, default) in _ENV_FIELDS.items():
            var = ENV_PREFIX + suffix
            raw = env.get(var) or default
            if raw is None:
                raise ConnectorConfigError(f"environment variable {var} is not set")
            values[name] = _coerce_port(var, raw) if name in _INT_FIELDS else raw
        return cls(**values)

    def with_overrides(self, overrides: Optional[Mapping[str, object]]) -> "ConnectorConfig":
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConnectorConfigError(f"unknown connector settings {unknown}")
        values = dict(overrides)
        for name in _INT_FIELDS & set(values):
            values[name] = _coerce_port(name, values[name])
        return replace(self, **values)

    @property
    def config_file(self) -> Path:
        return Path(self.root_dir) / self.config_file_path

    @property
    def keys_path(self) -> Path:
        return Path(self.root_dir) / self.keys_dir

    @property
    def replica_bin_path(self) -> str:
        return os.path.join(self.root_dir, self.replica_bin)

    @property
    def client_bin_path(self) -> str:
        return os.path.join(self.root_dir, self.client_bin)

    def private_key(self, replica_id: int) -> str:
        return f"{self.keys_dir}/{PRIVATE_KEY_PREFIX}{replica_id}"

    def public_key(self, replica_id: int) -> str:
        return f"{self.keys_dir}/{PUBLIC_KEY_PREFIX}{replica_id}"

    def experiment_dir(self, experiment_id: str) -> Path:
        return Path(self.experiments_output_dir) / experiment_id

    def client_log_path(self, experiment_id: str) -> Path:
        host = f"{self.client_host_prefix}0"
        return self.experiment_dir(experiment_id) / "hosts" / host / f"{host}.{CLIENT_LOG_NAME}"
