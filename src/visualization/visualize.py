"""Plotting utilities for the SIR tutorials.

This module provides reusable Matplotlib helpers to visualize:
- deterministic trajectories (S, I, R) and curve comparisons
- stochastic ensembles (sample paths, mean and quantile bands)
- incidence data against fitted model curves
- likelihood profiles

It can also be used as a script to re-plot a saved trajectory CSV, e.g.:
  python -m src.visualization.visualize --trajectory runs/ode_.../ode_solution.csv
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt
from scipy.stats import chi2

from src.sirtutorials.io import ensure_dir
from src.sirtutorials.ode import COMPARTMENTS, SIRSolution


def save_figure(fig: plt.Figure, path: Path | str, dpi: int = 150) -> Path:
    """Save a Matplotlib figure and ensure the parent directory exists."""
    path = Path(path)
    ensure_dir(path.parent)
    fig.tight_layout()
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    return path


def plot_curve_comparison(
    times: np.ndarray,
    curves: Mapping[str, np.ndarray],
    title: Optional[str] = None,
    xlabel: str = "t",
    ylabel: str = "I(t)",
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """Plot multiple curves on the same axis for comparison."""
    ax = ax or plt.gca()
    for label, series in curves.items():
        if series is None:
            continue
        series = np.asarray(series)
        t = times[: series.shape[-1]]
        ax.plot(t, series, label=label)
    if title:
        ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    return ax


def plot_solution(
    solution: SIRSolution,
    compartments: Sequence[str] = ("S", "I", "R"),
    title: Optional[str] = None,
    ax: Optional[plt.Axes] = None,
    linestyle: str = "-",
) -> plt.Axes:
    """Plot the compartments of one trajectory."""
    ax = ax or plt.gca()
    for name in compartments:
        if name not in COMPARTMENTS:
            raise ValueError(f"unknown compartment {name!r}")
        ax.plot(solution.t, getattr(solution, name), linestyle=linestyle, label=name)
    ax.set_xlabel("Time")
    ax.set_ylabel("Number")
    if title:
        ax.set_title(title)
    ax.legend(fontsize=8)
    return ax


def plot_ensemble(
    times: np.ndarray,
    ensemble: np.ndarray,
    compartment: str = "I",
    quantiles: Tuple[float, float] = (0.05, 0.95),
    reference: Optional[SIRSolution] = None,
    n_paths: int = 10,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 4),
) -> plt.Figure:
    """Sample paths, mean and a quantile band of one compartment."""
    idx = COMPARTMENTS.index(compartment)
    series = np.asarray(ensemble, dtype=float)[:, :, idx]
    fig, ax = plt.subplots(1, 1, figsize=figsize)

    for path in series[:n_paths]:
        ax.step(times, path, where="post", color="grey", alpha=0.3, lw=0.8)
    low, high = np.quantile(series, quantiles, axis=0)
    ax.fill_between(
        times, low, high, color="tab:blue", alpha=0.2,
        label=f"{quantiles[0]:.0%}-{quantiles[1]:.0%} band",
    )
    ax.plot(times, series.mean(axis=0), color="tab:blue", label="ensemble mean")
    if reference is not None:
        ax.plot(reference.t, getattr(reference, compartment), "k--", label="ODE")

    ax.set_xlabel("Time")
    ax.set_ylabel(compartment)
    ax.legend(fontsize=8)
    if title:
        ax.set_title(title)
    return fig


def plot_incidence_fit(
    times: np.ndarray,
    observed: np.ndarray,
    fitted: Mapping[str, np.ndarray],
    expected: Optional[np.ndarray] = None,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (7, 4),
) -> plt.Figure:
    """Observed counts with the incidence implied by each fit."""
    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.scatter(times, observed, s=14, color="k", label="observed", zorder=3)
    if expected is not None:
        ax.plot(times, expected, "k--", lw=1, label="true mean")
    for label, series in fitted.items():
        ax.plot(times, series, label=label)
    ax.set_xlabel("Time")
    ax.set_ylabel("Incidence")
    ax.legend(fontsize=8)
    if title:
        ax.set_title(title)
    return fig


def plot_profile(
    grid: np.ndarray,
    loss: np.ndarray,
    name: str,
    true_value: Optional[float] = None,
    level: float = 0.95,
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (6, 4),
    likelihood: bool = True,
) -> plt.Figure:
    """Profile loss relative to its minimum.

    For a negative log-likelihood (``likelihood=True``) the likelihood-ratio
    cutoff at ``level`` is drawn as well; other losses get no cutoff.
    """
    grid = np.asarray(grid, dtype=float)
    loss = np.asarray(loss, dtype=float)
    fig, ax = plt.subplots(1, 1, figsize=figsize)
    delta = loss - np.nanmin(loss)
    ax.plot(grid, delta, marker="o", ms=3)
    if likelihood:
        ax.axhline(chi2.ppf(level, df=1) / 2, color="r", ls=":", label=f"{level:.0%} cutoff")
    if true_value is not None:
        ax.axvline(true_value, color="k", ls="--", lw=1, label="true")
    ax.set_xlabel(name)
    ax.set_ylabel("profile NLL - min" if likelihood else "profile loss - min")
    ax.legend(fontsize=8)
    if title:
        ax.set_title(title)
    return fig


def load_trajectory_csv(path: Path | str) -> SIRSolution:
    """Load a trajectory written by the tutorial scripts."""
    table = np.genfromtxt(path, delimiter=",", names=True)
    return SIRSolution(
        t=table["t"], S=table["S"], I=table["I"], R=table["R"], C=table["C"]
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plot a saved SIR trajectory CSV.")
    parser.add_argument("--trajectory", type=str, required=True)
    parser.add_argument("--out", type=str, default=None)
    parser.add_argument("--title", type=str, default=None)
    parser.add_argument("--dpi", type=int, default=150)
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    path = Path(args.trajectory)
    solution = load_trajectory_csv(path)
    fig, ax = plt.subplots(1, 1, figsize=(7, 4))
    plot_solution(solution, title=args.title or path.stem, ax=ax)
    out = Path(args.out) if args.out else path.with_suffix(".png")
    save_figure(fig, out, dpi=args.dpi)
    plt.close(fig)


if __name__ == "__main__":
    main()
