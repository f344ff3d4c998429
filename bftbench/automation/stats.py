#!/usr/bin/env python3
"""Throughput/latency statistics from a bench-client stdout log.

The client prints one `RPS: <value>` and one `LAG: <value>` line per
reporting interval plus `Total rps:` / `Total lag:` summaries at the end.
Only the per-interval samples are used. Logs can be large, so they are
streamed line by line.
"""

from __future__ import annotations

import re
import statistics
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

SENTINEL_VALUE = -1.0

_NUMBER = r"([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)"
_RPS = re.compile(r"RPS:\s*" + _NUMBER)
_LAG = re.compile(r"LAG:\s*" + _NUMBER)
_TOTAL_RPS = "Total rps:"
_TOTAL_LAG = "Total lag:"


@dataclass(frozen=True)
class ExperimentStats:
    max_throughput: float = SENTINEL_VALUE
    avg_throughput: float = SENTINEL_VALUE
    latency_all: float = SENTINEL_VALUE
    latency_outlier_removed: float = SENTINEL_VALUE

    @property
    def is_sentinel(self) -> bool:
        return self == SENTINEL

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


SENTINEL = ExperimentStats()


def iter_lines(path: Path) -> Iterator[str]:
    with Path(path).open("r", encoding="utf-8", errors="replace") as f:
        for line in f:
            yield line.rstrip("\n")


def _marker_value(pattern: re.Pattern, line: str):
    m = pattern.search(line)
    if not m:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return None


def parse_samples(lines: Iterable[str]) -> Tuple[List[float], List[float]]:
    rps: List[float] = []
    lag: List[float] = []
    for line in lines:
        if _TOTAL_RPS not in line:
            value = _marker_value(_RPS, line)
            if value is not None and value > 0:
                rps.append(value)
        if _TOTAL_LAG not in line:
            value = _marker_value(_LAG, line)
            if value is not None and value > 0:
                lag.append(value)
    return rps, lag


def remove_outliers(samples: Sequence[float], k: float = 1.5) -> List[float]:
    """Drop values outside the Tukey fences [Q1 - k*IQR, Q3 + k*IQR].

    Fewer than four samples are returned as-is. The result is never empty
    for a non-empty input.
    """
    values = list(samples)
    if len(values) < 4:
        return values
    q1, _, q3 = statistics.quantiles(values, n=4, method="inclusive")
    iqr = q3 - q1
    low, high = q1 - k * iqr, q3 + k * iqr
    kept = [v for v in values if low <= v <= high]
    return kept or values


def compute_stats(rps: Sequence[float], lag: Sequence[float]) -> ExperimentStats:
    if not rps or not lag:
        return SENTINEL
    return ExperimentStats(
        max_throughput=float(max(rps)),
        avg_throughput=float(statistics.mean(rps)),
        latency_all=float(statistics.mean(lag)),
        latency_outlier_removed=float(statistics.mean(remove_outliers(lag))),
    )


def extract_stats(path: Path) -> ExperimentStats:
    path = Path(path)
    if not path.exists():
        print(f"[stats] warning: client log file not found: {path}", file=sys.stderr)
        return SENTINEL
    rps, lag = parse_samples(iter_lines(path))
    if not rps or not lag:
        print(f"[stats] warning: no RPS/LAG entries found in {path}", file=sys.stderr)
        return SENTINEL
    return compute_stats(rps, lag)
