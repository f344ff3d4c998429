#!/usr/bin/env python3
"""Experiment-driver connector for the Themis lego-BFT benchmark.

A configuration pass runs these steps in order, each to completion:

    validate settings -> generate keys -> resolve topology and write the
    protocol config -> build per-host process descriptors

Topology is resolved once and the replica ids are assigned once; the same
assignment feeds both the config document and the process plan.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from bftbench.automation.connector_config import PEER_KEY_SCHEME, PROCESS_NAME, ConnectorConfig
from bftbench.automation.process_plan import PlannedHost, build_process_plan
from bftbench.automation.process_utils import CommandError, run_command
from bftbench.automation.protocol_config import build_protocol_config, fault_bound, write_protocol_config
from bftbench.automation.results import log_progress
from bftbench.automation.settings import validate_settings
from bftbench.automation.stats import ExperimentStats, extract_stats
from bftbench.automation.topology import ReplicaAssignment, assign_replica_ids

CommandRunner = Callable[..., None]


@dataclass
class Configuration:
    config_file: Path
    faults: int
    assignment: ReplicaAssignment
    document: Dict[str, Any]
    plan: List[PlannedHost] = field(default_factory=list)


class ThemisLegoBftConnector:
    def __init__(
        self,
        config: ConnectorConfig,
        resolver,
        runner: CommandRunner = run_command,
        progress_dir: Optional[Path] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.runner = runner
        self.progress_dir = progress_dir

    def _log(self, message: str) -> None:
        print(f"[connector] {message}")
        if self.progress_dir:
            log_progress(self.progress_dir, f"[connector] {message}")

    def _warn(self, message: str) -> None:
        print(f"[connector] warning: {message}", file=sys.stderr)
        if self.progress_dir:
            log_progress(self.progress_dir, f"[connector] warning: {message}")

    def _command_log(self, name: str) -> Optional[Path]:
        return self.progress_dir / f"{name}.log" if self.progress_dir else None

    def build(self) -> None:
        self._log("building Themis ...")
        self.runner(
            "cargo-build",
            ["cargo", "build", "--bins", "--release"],
            cwd=Path(self.config.root_dir),
            log_path=self._command_log("build"),
        )
        self._log("Themis build terminated successfully")

    def generate_keys(self, num_keys: int) -> None:
        self._log(f"generating keys for {num_keys} replicas ...")
        keys_path = self.config.keys_path
        if keys_path.is_dir():
            self._warn(f"using a pre-existing keys directory {keys_path}")
        keys_path.mkdir(parents=True, exist_ok=True)
        self.runner(
            "keygen",
            [
                "cargo", "run", "--bin", "keygen", "--",
                PEER_KEY_SCHEME, "0", str(num_keys),
                "--out-dir", self.config.keys_dir,
            ],
            cwd=Path(self.config.root_dir),
            log_path=self._command_log("keygen"),
        )
        self._log("keys generated successfully")

    def resolve_hosts(self, replicas: int) -> ReplicaAssignment:
        groups = {
            self.config.replica_host_prefix: replicas,
            # one load generator per experiment
            self.config.client_host_prefix: 1,
        }
        return assign_replica_ids(self.resolver.resolve(groups))

    def create_config_file(self, replica: Mapping[str, Any]) -> Configuration:
        self._log("generating Themis config ...")
        faults = fault_bound(replica["replicas"])
        assignment = self.resolve_hosts(replica["replicas"])
        document = build_protocol_config(replica, assignment, faults, self.config)
        config_file = write_protocol_config(document, self.config.config_file)
        self._log(f"config file generated, saved to {config_file}")
        return Configuration(config_file=config_file, faults=faults, assignment=assignment, document=document)

    def pass_args(
        self,
        assignment: ReplicaAssignment,
        replica: Mapping[str, Any],
        client: Mapping[str, Any],
    ) -> List[PlannedHost]:
        return build_process_plan(assignment, replica, client, self.config)

    def configure(
        self,
        replica: Mapping[str, Any],
        client: Mapping[str, Any],
        generate_keys: bool = True,
    ) -> Configuration:
        self._log("parsing replica and client objects")
        validate_settings(replica, client)
        self._log("objects parsed")
        if generate_keys:
            self.generate_keys(replica["replicas"])
        configuration = self.create_config_file(replica)
        configuration.plan = self.pass_args(configuration.assignment, replica, client)
        return configuration

    def get_process_name(self) -> str:
        return PROCESS_NAME

    def get_execution_dir(self) -> str:
        return self.config.execution_dir

    def get_experiments_output_directory(self) -> str:
        return self.config.experiments_output_dir

    def get_stats(self, experiment_id: str) -> ExperimentStats:
        return extract_stats(self.config.client_log_path(experiment_id))

    def post_run(self, experiment_id: str) -> bool:
        """Run the analysis script; failures are reported, never raised."""
        experiment_dir = self.config.experiment_dir(experiment_id)
        try:
            self._log("running post-experiment analysis ...")
            self.runner(
                "analyze",
                ["bash", self.config.analyze_script, str(experiment_dir)],
                cwd=Path(self.config.execution_dir),
                log_path=self._command_log("analyze"),
            )
        except (CommandError, OSError) as exc:
            self._warn(f"post-experiment analysis failed: {exc}")
            return False
        self._log("post-experiment analysis completed")
        return True
