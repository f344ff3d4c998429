from __future__ import annotations

import statistics

import pytest

from bftbench.automation.stats import (
    SENTINEL,
    ExperimentStats,
    compute_stats,
    extract_stats,
    iter_lines,
    parse_samples,
    remove_outliers,
)


def _write_log(path, lines):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_sentinel_defaults():
    assert ExperimentStats() == SENTINEL
    assert SENTINEL.to_dict() == {
        "max_throughput": -1,
        "avg_throughput": -1,
        "latency_all": -1,
        "latency_outlier_removed": -1,
    }
    assert SENTINEL.is_sentinel
    assert not ExperimentStats(1.0, 1.0, 1.0, 1.0).is_sentinel


def test_missing_log_yields_sentinel(tmp_path, capsys):
    assert extract_stats(tmp_path / "nope" / "client0.stdout") == SENTINEL
    assert "not found" in capsys.readouterr().err


def test_throughput_without_latency_yields_sentinel(tmp_path):
    path = _write_log(tmp_path / "client.log", ["RPS: 10", "RPS: 20", "RPS: 30"])
    assert extract_stats(path) == SENTINEL


def test_latency_without_throughput_yields_sentinel(tmp_path):
    path = _write_log(tmp_path / "client.log", ["LAG: 1.5", "LAG: 2.5"])
    assert extract_stats(path) == SENTINEL


def test_extract_stats(tmp_path):
    path = _write_log(
        tmp_path / "client.log",
        [
            "2026-10-17T10:00:01 INFO bench_client: RPS: 1000.0 LAG: 5.0",
            "2026-10-17T10:00:02 INFO bench_client: RPS: 3000.0",
            "2026-10-17T10:00:02 INFO bench_client: LAG: 5.0",
            "2026-10-17T10:00:03 INFO bench_client: RPS: 2000.0 LAG: 5.0",
            "RPS: 0",
            "LAG: 0",
            "LAG: 5.0",
            "LAG: 100.0",
            "Total rps: 99999",
            "Total lag: 77777",
        ],
    )
    stats = extract_stats(path)
    assert stats.max_throughput == 3000.0
    assert stats.avg_throughput == 2000.0
    assert stats.latency_all == 24.0
    assert stats.latency_outlier_removed == 5.0


def test_parse_samples_skips_totals_and_non_positive():
    lines = [
        "RPS: 10",
        "RPS: -4",
        "RPS: garbage",
        "Total rps: 100 RPS: 100",
        "LAG: 2.5e1",
        "Total lag: 9 LAG: 9",
        "LAG: 0.0",
        "unrelated line",
    ]
    rps, lag = parse_samples(lines)
    assert rps == [10.0]
    assert lag == [25.0]


def test_parse_samples_consumes_a_generator():
    rps, lag = parse_samples(f"RPS: {i} LAG: {i / 10}" for i in range(1, 1001))
    assert len(rps) == len(lag) == 1000
    assert max(rps) == 1000.0


def test_iter_lines_is_lazy(tmp_path):
    path = _write_log(tmp_path / "client.log", ["RPS: 1", "LAG: 2"])
    lines = iter_lines(path)
    assert next(lines) == "RPS: 1"
    assert list(lines) == ["LAG: 2"]
    # restartable: a fresh generator starts over
    assert list(iter_lines(path)) == ["RPS: 1", "LAG: 2"]


def test_unreadable_path_propagates(tmp_path):
    directory = tmp_path / "client.log"
    directory.mkdir()
    with pytest.raises(OSError):
        extract_stats(directory)


# =============================================================================
# Outlier removal
# =============================================================================


def test_outlier_is_suppressed():
    samples = [5, 5, 5, 5, 100]
    kept = remove_outliers(samples)
    assert statistics.mean(samples) == 24
    assert 100 not in kept
    assert abs(statistics.mean(kept) - 5) < abs(statistics.mean(samples) - 5)


def test_small_samples_untouched():
    assert remove_outliers([1, 1000]) == [1, 1000]
    assert remove_outliers([]) == []


@pytest.mark.parametrize(
    "samples",
    [
        [1, 2, 3, 4, 5, 6, 7, 8, 9, 10],
        [10, 12, 11, 13, 500, 12, 11, 1],
        [3.5, 3.5, 3.5, 3.5],
        [1, 1, 1, 2, 1000, 1000, 1000],
    ],
)
def test_outlier_removal_never_widens_or_empties(samples):
    kept = remove_outliers(samples)
    assert kept
    assert set(kept) <= set(samples)
    assert max(kept) - min(kept) <= max(samples) - min(samples)


def test_throughput_is_never_filtered():
    stats = compute_stats([10, 10, 10, 10, 1000], [1, 1, 1, 1])
    assert stats.max_throughput == 1000
    assert stats.avg_throughput == 208
