"""Metrics for SIR tutorials.

Includes per-parameter estimation errors, trajectory distances and
timing summaries."""


from typing import Dict, Mapping, Sequence

import numpy as np


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    return float(np.sqrt(np.mean((y_true - y_pred) ** 2)))


def parameter_errors(
    true: Mapping[str, float], estimated: Mapping[str, float]
) -> Dict[str, float]:
    """Absolute and relative error for every parameter present in both."""
    metrics = {}
    for name, est in estimated.items():
        if name not in true:
            continue
        ref = float(true[name])
        err = abs(float(est) - ref)
        metrics[f"abs_err_{name}"] = err
        # Relative error is undefined for a zero reference value.
        metrics[f"rel_err_{name}"] = err / abs(ref) if ref != 0 else float("nan")
    return metrics


def trajectory_rmse(
    a: np.ndarray,
    b: np.ndarray,
    names: Sequence[str] = ("S", "I", "R", "C"),
) -> Dict[str, float]:
    """RMSE per compartment between two (T, n) trajectories."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"shape mismatch: {a.shape} vs {b.shape}")
    return {f"rmse_{name}": rmse(a[:, idx], b[:, idx]) for idx, name in enumerate(names)}


def timing_summary(times: np.ndarray) -> Dict[str, float]:
    """Summarize timings with p50/p90 (seconds)."""
    times = np.asarray(times)
    if times.size == 0:
        # Keep the schema consistent if no timing samples.
        return {"time_p50": 0.0, "time_p90": 0.0}
    return {
        "time_p50": float(np.percentile(times, 50)),
        "time_p90": float(np.percentile(times, 90)),
    }
