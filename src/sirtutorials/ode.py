"""Deterministic SIR model as an ordinary differential equation.

Provides the right-hand side of the SIR equations with a cumulative
infections compartment C, an adaptive integration wrapper around
scipy's solve_ivp (optionally stopping on an extinction event), an
equivalent model built with summer for cross-checking, and a few
summary helpers (final-size relation, peak detection).
"""


from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import solve_ivp
from scipy.optimize import brentq
from scipy.signal import find_peaks

from .config import DEFAULTS, SIRParams, default_params, initial_state
from .exceptions import IntegrationError

logger = logging.getLogger(__name__)

COMPARTMENTS = ("S", "I", "R", "C")


def sir_rhs(t: float, u: np.ndarray, beta: float, c: float, gamma: float) -> List[float]:
    """Right-hand side of the SIR equations for the state (S, I, R, C)."""
    S, I, R, _ = u
    N = S + I + R
    # Frequency-dependent transmission.
    infection = beta * c * I / N * S if N > 0 else 0.0
    recovery = gamma * I
    return [-infection, infection - recovery, recovery, infection]


@dataclass
class SIRSolution:
    """Trajectory of the SIR compartments on a time grid.

    C holds cumulative infections, so incidence over an interval is the
    difference of C at its end points. ``events`` maps event names to the
    times they fired at, when the producer supports events.
    """

    t: np.ndarray
    S: np.ndarray
    I: np.ndarray
    R: np.ndarray
    C: np.ndarray
    events: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def N(self) -> float:
        return float(self.S[0] + self.I[0] + self.R[0])

    def incidence(self) -> np.ndarray:
        """New infections between consecutive grid points (first entry is 0)."""
        return np.diff(self.C, prepend=self.C[0])

    def peak(self) -> Tuple[float, float]:
        """Return (t_peak, I_max)."""
        idx = int(np.argmax(self.I))
        return float(self.t[idx]), float(self.I[idx])

    def final_size(self) -> float:
        """Fraction recovered at the last time point."""
        return float(self.R[-1]) / self.N if self.N > 0 else 0.0

    def to_array(self) -> np.ndarray:
        return np.column_stack([self.S, self.I, self.R, self.C])

    def as_rows(self) -> List[Dict[str, float]]:
        return [
            {"t": float(t), "S": float(s), "I": float(i), "R": float(r), "C": float(cc)}
            for t, s, i, r, cc in zip(self.t, self.S, self.I, self.R, self.C)
        ]

    @classmethod
    def from_array(cls, t: np.ndarray, arr: np.ndarray) -> "SIRSolution":
        arr = np.asarray(arr, dtype=float)
        return cls(
            t=np.asarray(t, dtype=float),
            S=arr[:, 0],
            I=arr[:, 1],
            R=arr[:, 2],
            C=arr[:, 3],
        )


def time_grid(t0: float, t1: float, dt: float) -> np.ndarray:
    """Regular output grid t0, t0 + dt, ... not exceeding t1."""
    if dt <= 0:
        raise ValueError("dt must be positive")
    if t1 <= t0:
        raise ValueError("t1 must be greater than t0")
    # Tolerate floating point round-off in (t1 - t0) / dt.
    n = int(np.floor((t1 - t0) / dt + 1e-9))
    return t0 + dt * np.arange(n + 1)


def _extinction_event(threshold: float):
    def event(t, u, beta, c, gamma):
        return u[1] - threshold

    event.terminal = True
    event.direction = -1
    return event


def simulate_ode(
    params: Optional[SIRParams] = None,
    u0: Optional[Sequence[float]] = None,
    t0: float = DEFAULTS.t0,
    t1: float = DEFAULTS.t1,
    dt: float = DEFAULTS.dt,
    method: str = DEFAULTS.ode_method,
    rtol: float = DEFAULTS.rtol,
    atol: float = DEFAULTS.atol,
    extinction_threshold: Optional[float] = None,
) -> SIRSolution:
    """Integrate the SIR ODE and sample it on a regular grid.

    If ``extinction_threshold`` is given, integration stops as soon as I
    falls below it; the returned grid is truncated at the event and the
    event time is stored under ``events["extinction"]``.
    """
    params = params or default_params()
    u0 = initial_state() if u0 is None else initial_state(*u0)
    t_eval = time_grid(t0, t1, dt)

    events = None
    if extinction_threshold is not None:
        if extinction_threshold <= 0:
            raise ValueError("extinction_threshold must be positive")
        events = [_extinction_event(extinction_threshold)]

    y0 = np.append(u0, 0.0)
    sol = solve_ivp(
        sir_rhs,
        (t_eval[0], t_eval[-1]),
        y0,
        method=method,
        t_eval=t_eval,
        args=params.as_tuple(),
        rtol=rtol,
        atol=atol,
        events=events,
    )
    if not sol.success:
        raise IntegrationError(f"solve_ivp failed: {sol.message}")
    logger.debug("solve_ivp %s: nfev=%d, %d output points", method, sol.nfev, sol.t.size)

    solution = SIRSolution.from_array(sol.t, sol.y.T)
    if events is not None:
        solution.events["extinction"] = np.asarray(sol.t_events[0], dtype=float)
    return solution


def simulate_summer(
    params: Optional[SIRParams] = None,
    u0: Optional[Sequence[float]] = None,
    t0: float = DEFAULTS.t0,
    t1: float = DEFAULTS.t1,
    dt: float = DEFAULTS.dt,
) -> SIRSolution:
    """Simulate the same SIR model with summer.

    summer is an optional dependency (the `summer` extra), imported on use.
    """
    from summer import CompartmentalModel

    params = params or default_params()
    u0 = initial_state() if u0 is None else initial_state(*u0)
    if dt <= 0:
        raise ValueError("dt must be positive")
    if t1 <= t0:
        raise ValueError("t1 must be greater than t0")

    model = CompartmentalModel(
        times=[t0, t1],
        compartments=["S", "I", "R"],
        infectious_compartments=["I"],
        timestep=dt,
    )
    model.set_initial_population(distribution={"S": u0[0], "I": u0[1], "R": u0[2]})
    # summer's frequency flow uses contact_rate * S * I / N.
    model.add_infection_frequency_flow(
        name="infection", contact_rate=params.beta * params.c, source="S", dest="I"
    )
    model.add_transition_flow(
        name="recovery", fractional_rate=params.gamma, source="I", dest="R"
    )
    model.run()

    outputs = np.asarray(model.outputs, dtype=float)
    times = np.asarray(model.times, dtype=float)
    # S only ever loses people to infection.
    cumulative = outputs[0, 0] - outputs[:, 0]
    return SIRSolution(
        t=times, S=outputs[:, 0], I=outputs[:, 1], R=outputs[:, 2], C=cumulative
    )


def final_size(R0: float, s0: float = 1.0, r0: float = 0.0) -> float:
    """Final recovered fraction from the SIR final-size relation.

    Solves ln(s0 / s_inf) = R0 * (1 - s_inf - r0) for the susceptible
    fraction left at the end of the epidemic and returns 1 - s_inf.
    ``s0`` and ``r0`` are initial fractions; the rest is infected.
    """
    if np.isnan(R0) or R0 < 0:
        raise ValueError("R0 must be non-negative")
    if not 0 < s0 <= 1 or not 0 <= r0 <= 1 - s0 + 1e-12:
        raise ValueError("s0 and r0 must be fractions with s0 + r0 <= 1")
    i0 = max(1.0 - s0 - r0, 0.0)
    if R0 == 0:
        return 1.0 - s0
    if np.isinf(R0):
        return 1.0

    def g(s: float) -> float:
        return np.log(s0 / s) - R0 * (1.0 - s - r0)

    hi = s0
    if i0 <= 1e-12:
        # No infected: the disease-free state is a root, the epidemic branch
        # only exists above threshold.
        if R0 * s0 <= 1:
            return r0
        hi = s0 * (1.0 - 1e-9)
    # s_inf >= s0 * exp(-R0 * (1 - r0)); halving it gives g(lo) >= ln 2.
    lo = 0.5 * s0 * np.exp(-R0 * (1.0 - r0))
    if lo == 0.0:
        return 1.0
    s_inf = brentq(g, lo, hi, xtol=1e-14)
    return 1.0 - s_inf


def peak_indices(series: np.ndarray, thres: float = 0.5, min_dist: int = 1) -> np.ndarray:
    """Indices of peaks in an infection curve.

    ``thres`` is relative to the range of the series, so only peaks higher
    than min + thres * (max - min) are reported.
    """
    series = np.asarray(series, dtype=float)
    if series.size < 3 or np.allclose(series, series[0]):
        return np.array([], dtype=int)
    height = series.min() + thres * (series.max() - series.min())
    peaks, _ = find_peaks(series, height=height, distance=max(min_dist, 1))
    return peaks.astype(int)
