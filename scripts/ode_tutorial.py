"""Deterministic SIR tutorial.

Integrates the SIR ODE with an adaptive solver, summarizes the epidemic
(R0, peak, final size against the final-size relation) and optionally
cross-checks the trajectory with the summer implementation or stops the
integration when infections die out.
Writes a run folder with config.json, summary.csv, ode_solution.csv and
plots under runs/.
Typical usage:
  python scripts/ode_tutorial.py --compare-summer --extinction-threshold 1
"""


from __future__ import annotations

import argparse
from datetime import datetime
import logging
from pathlib import Path

import matplotlib.pyplot as plt

from src.sirtutorials.config import DEFAULTS, SIRParams, initial_state
from src.sirtutorials.io import ensure_dir, save_csv, save_json
from src.sirtutorials.logging_utils import setup_logging
from src.sirtutorials.metrics import trajectory_rmse
from src.sirtutorials.ode import final_size, peak_indices, simulate_ode, simulate_summer
from src.visualization.visualize import plot_curve_comparison, plot_solution, save_figure


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the deterministic SIR tutorial.")
    parser.add_argument("--beta", type=float, default=DEFAULTS.beta)
    parser.add_argument("--c", type=float, default=DEFAULTS.c)
    parser.add_argument("--gamma", type=float, default=DEFAULTS.gamma)
    parser.add_argument("--s0", type=float, default=DEFAULTS.s0)
    parser.add_argument("--i0", type=float, default=DEFAULTS.i0)
    parser.add_argument("--r0", type=float, default=DEFAULTS.r0)
    parser.add_argument("--tmax", type=float, default=DEFAULTS.t1)
    parser.add_argument("--dt", type=float, default=DEFAULTS.dt)
    parser.add_argument("--method", type=str, default=DEFAULTS.ode_method)
    parser.add_argument("--extinction-threshold", type=float, default=None)
    parser.add_argument("--compare-summer", action="store_true")
    parser.add_argument("--out-dir", type=str, default=None)
    parser.add_argument("--log-level", type=str, default="INFO")
    parser.add_argument("--no-console-log", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    out_dir = Path(args.out_dir) if args.out_dir else DEFAULTS.runs_dir / f"ode_{timestamp}"
    ensure_dir(out_dir)
    setup_logging(level=args.log_level, log_file=out_dir / "run.log", console=not args.no_console_log)
    logger = logging.getLogger(__name__)

    params = SIRParams(args.beta, args.c, args.gamma)
    u0 = initial_state(args.s0, args.i0, args.r0)
    save_json(out_dir / "config.json", vars(args))
    logger.info("ODE tutorial start: %s, u0=%s, R0=%.3f", params, u0.tolist(), params.R0)

    solution = simulate_ode(
        params,
        u0,
        t1=args.tmax,
        dt=args.dt,
        method=args.method,
        extinction_threshold=args.extinction_threshold,
    )
    save_csv(out_dir / "ode_solution.csv", solution.as_rows())

    t_peak, i_peak = solution.peak()
    N = solution.N
    summary = {
        "R0": params.R0,
        "t_peak": t_peak,
        "I_peak": i_peak,
        "n_peaks": int(peak_indices(solution.I).size),
        "final_size_at_tmax": solution.final_size(),
        "final_size_relation": final_size(params.R0, u0[0] / N, u0[2] / N),
        "t_end": float(solution.t[-1]),
    }
    extinction = solution.events.get("extinction")
    if extinction is not None and extinction.size:
        summary["t_extinction"] = float(extinction[0])
        logger.info("Infections fell below %.3g at t=%.3f", args.extinction_threshold, extinction[0])

    fig, ax = plt.subplots(1, 1, figsize=(7, 4))
    plot_solution(solution, title=f"SIR ODE ({args.method}), R0={params.R0:.2f}", ax=ax)
    save_figure(fig, out_dir / "ode_solution.png")
    plt.close(fig)

    if args.compare_summer:
        reference = simulate_summer(params, u0, t1=solution.t[-1], dt=args.dt)
        n = min(reference.t.size, solution.t.size)
        summary.update(trajectory_rmse(solution.to_array()[:n], reference.to_array()[:n]))
        logger.info("summer cross-check RMSE(I)=%.4g", summary["rmse_I"])
        fig, ax = plt.subplots(1, 1, figsize=(7, 4))
        plot_curve_comparison(
            solution.t[:n],
            {"solve_ivp": solution.I[:n], "summer": reference.I[:n]},
            title="I(t): solve_ivp vs summer",
            ax=ax,
        )
        ax.legend(fontsize=8)
        save_figure(fig, out_dir / "ode_vs_summer.png")
        plt.close(fig)

    save_csv(out_dir / "summary.csv", [summary])
    logger.info(
        "Peak I=%.1f at t=%.2f; final size %.4f (relation %.4f)",
        i_peak,
        t_peak,
        summary["final_size_at_tmax"],
        summary["final_size_relation"],
    )
    logger.info("Outputs written to %s", out_dir)


if __name__ == "__main__":
    main()
