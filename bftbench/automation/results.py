#!/usr/bin/env python3
"""Persist connector plans and post-run statistics next to the experiment."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

from bftbench.automation.process_plan import PlannedHost, plan_to_dict
from bftbench.automation.stats import ExperimentStats


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def log_progress(artifact_dir: Path, message: str) -> None:
    """Append a progress line to a per-run log so users can follow execution."""
    try:
        log_path = artifact_dir / "progress.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as f:
            ts = datetime.now().isoformat(timespec="seconds")
            f.write(f"[{ts}] {message}\n")
    except OSError:
        # best-effort only
        pass


@dataclass
class RunRecorder:
    artifact_dir: Path

    def _write(self, name: str, payload: Dict[str, Any]) -> Path:
        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        path = self.artifact_dir / name
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def record_plan(
        self,
        replica: Mapping[str, Any],
        client: Mapping[str, Any],
        config_file: Path,
        faults: int,
        plan: List[PlannedHost],
    ) -> Path:
        return self._write(
            "plan.json",
            {
                "replica": dict(replica),
                "client": dict(client),
                "config_file": str(config_file),
                "faults": faults,
                "hosts": plan_to_dict(plan),
                "generated_at": _now(),
            },
        )

    def record_stats(self, experiment_id: str, stats: ExperimentStats) -> Path:
        return self._write(
            "stats.json",
            {
                "experiment_id": experiment_id,
                "stats": stats.to_dict(),
                "no_data": stats.is_sentinel,
                "generated_at": _now(),
            },
        )
