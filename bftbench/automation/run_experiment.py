#!/usr/bin/env python3
"""Drive the Themis connector from an experiment YAML in bftbench/configs/.

Typical usage:
  # build the Themis binaries
  python3 -m bftbench.automation.run_experiment build

  # generate keys + config and print the per-host launch plan
  python3 -m bftbench.automation.run_experiment configure --experiment pbft_4r

  # after the run
  python3 -m bftbench.automation.run_experiment stats --experiment-id 20261017_101500
  python3 -m bftbench.automation.run_experiment post-run --experiment-id 20261017_101500
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, Optional

import yaml

from bftbench.automation.connector import ThemisLegoBftConnector
from bftbench.automation.connector_config import ConnectorConfig, ConnectorConfigError
from bftbench.automation.process_plan import plan_to_dict
from bftbench.automation.process_utils import CommandError
from bftbench.automation.results import RunRecorder
from bftbench.automation.settings import SettingsError
from bftbench.automation.topology import HttpTopologyResolver, StaticTopologyResolver, TopologyError

CONFIG_ROOT = Path("bftbench/configs/experiments")
ALLOWED_EXPERIMENT_KEYS = {
    "replica",
    "client",
    "connector",
    "topology",
    "description",
}


def _warn_unknown_keys(label: str, mapping: Dict) -> None:
    unknown = sorted(set(mapping.keys()) - ALLOWED_EXPERIMENT_KEYS)
    if unknown:
        print(
            f"[run_experiment] warning: unrecognized top-level keys {unknown} in {label}; they will be ignored",
            file=sys.stderr,
        )


def load_experiment(name: Optional[str]) -> Dict:
    if not name:
        return {}
    path = Path(name)
    if not path.exists():
        path = CONFIG_ROOT / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"experiment config not found: {name}")
    try:
        experiment = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise SettingsError(f"experiment config {path} is not valid YAML: {exc}") from exc
    if not isinstance(experiment, dict):
        raise SettingsError(f"experiment config {path} must be a mapping")
    _warn_unknown_keys(str(path), experiment)
    return experiment


def build_resolver(topology: Optional[Dict], config: ConnectorConfig):
    topology = topology or {}
    prefixes = (config.replica_host_prefix, config.client_host_prefix)
    if topology.get("url"):
        try:
            timeout = float(topology.get("timeout", 10.0))
        except (TypeError, ValueError):
            raise TopologyError(f"topology timeout must be a number of seconds, got {topology.get('timeout')!r}") from None
        return HttpTopologyResolver(str(topology["url"]), *prefixes, timeout=timeout)
    if topology.get("inventory_file"):
        return StaticTopologyResolver.from_file(Path(topology["inventory_file"]), *prefixes)
    if isinstance(topology.get("inventory"), dict):
        return StaticTopologyResolver(topology["inventory"], *prefixes)
    raise TopologyError("experiment needs a topology section with url, inventory_file or inventory")


def build_connector(experiment: Dict, progress_dir: Optional[Path] = None) -> ThemisLegoBftConnector:
    config = ConnectorConfig.from_env().with_overrides(experiment.get("connector"))
    resolver = build_resolver(experiment.get("topology"), config) if experiment.get("topology") else None
    return ThemisLegoBftConnector(config, resolver, progress_dir=progress_dir)


def cmd_build(args) -> None:
    connector = build_connector(load_experiment(args.experiment))
    connector.build()


def cmd_configure(args) -> None:
    experiment = load_experiment(args.experiment)
    artifact_dir = Path(args.artifact_dir) if args.artifact_dir else None
    connector = build_connector(experiment, progress_dir=artifact_dir)
    if connector.resolver is None:
        raise TopologyError("experiment needs a topology section with url, inventory_file or inventory")
    replica = experiment.get("replica") or {}
    client = experiment.get("client") or {}
    configuration = connector.configure(replica, client, generate_keys=not args.dry_run)
    if artifact_dir:
        RunRecorder(artifact_dir).record_plan(
            replica, client, configuration.config_file, configuration.faults, configuration.plan
        )
    try:
        print(json.dumps(plan_to_dict(configuration.plan), indent=2))
    except BrokenPipeError:
        # Common when piping to `head`; exit cleanly.
        pass


def cmd_stats(args) -> None:
    connector = build_connector(load_experiment(args.experiment))
    stats = connector.get_stats(args.experiment_id)
    if args.record:
        RunRecorder(connector.config.experiment_dir(args.experiment_id)).record_stats(args.experiment_id, stats)
    print(json.dumps(stats.to_dict(), indent=2))


def cmd_post_run(args) -> None:
    connector = build_connector(load_experiment(args.experiment))
    connector.post_run(args.experiment_id)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Configure and analyze Themis lego-BFT experiments")
    parser.add_argument("--experiment", help="Experiment name under bftbench/configs/experiments or a YAML path")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("build", help="cargo build the Themis binaries").set_defaults(func=cmd_build)

    configure = sub.add_parser("configure", help="generate keys, protocol config and launch plan")
    configure.add_argument("--dry-run", action="store_true", help="skip key generation")
    configure.add_argument("--artifact-dir", help="write plan.json and progress.log here")
    configure.set_defaults(func=cmd_configure)

    stats = sub.add_parser("stats", help="summarize the client log of a finished experiment")
    stats.add_argument("--experiment-id", required=True)
    stats.add_argument("--record", action="store_true", help="write stats.json into the experiment directory")
    stats.set_defaults(func=cmd_stats)

    post_run = sub.add_parser("post-run", help="run the analysis script over an experiment directory")
    post_run.add_argument("--experiment-id", required=True)
    post_run.set_defaults(func=cmd_post_run)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        args.func(args)
    except (SettingsError, ConnectorConfigError, TopologyError, CommandError, FileNotFoundError) as exc:
        print(f"[run_experiment] error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
