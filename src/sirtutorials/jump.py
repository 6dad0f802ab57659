"""SIR model as a discrete stochastic jump process.

The model is described by a jump table: each Reaction couples a
propensity (rate) function with an integer state change on (S, I, R).
Paths are drawn with Gillespie steppers (direct method or first-reaction
method) and can be sampled on a regular grid as an SIRSolution, so that
stochastic and deterministic runs share the same downstream tooling.
"""


from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULTS, SIRParams, default_params, initial_state
from .ode import SIRSolution, time_grid

logger = logging.getLogger(__name__)

METHODS = ("direct", "first_reaction")


@dataclass(frozen=True)
class Reaction:
    name: str
    propensity: Callable[[np.ndarray, SIRParams], float]
    change: Tuple[int, int, int]


def _infection_rate(u: np.ndarray, params: SIRParams) -> float:
    S, I, R = u
    N = S + I + R
    if N <= 0:
        return 0.0
    return params.beta * params.c * I / N * S


def _recovery_rate(u: np.ndarray, params: SIRParams) -> float:
    return params.gamma * u[1]


def sir_reactions() -> List[Reaction]:
    """Jump table of the SIR model: infection and recovery."""
    return [
        Reaction("infection", _infection_rate, (-1, 1, 0)),
        Reaction("recovery", _recovery_rate, (0, -1, 1)),
    ]


@dataclass
class JumpPath:
    """A realized jump path.

    ``states[k]`` is the state right after the jump at ``times[k]``; the
    first entry is the initial state, with reaction index -1.
    """

    times: np.ndarray
    states: np.ndarray
    reactions: np.ndarray
    reaction_names: Tuple[str, ...]
    tmax: float

    @property
    def n_events(self) -> int:
        return int(self.times.size - 1)

    def _index_at(self, times: np.ndarray) -> np.ndarray:
        times = np.asarray(times, dtype=float)
        if np.any(times < self.times[0]):
            raise ValueError("cannot sample a path before its start time")
        # Right-continuous step function: the last jump at or before t.
        return np.searchsorted(self.times, times, side="right") - 1

    def state_at(self, times: Sequence[float]) -> np.ndarray:
        """States of the path at the requested times, shape (T, 3)."""
        return self.states[self._index_at(np.asarray(times))]

    def counts_at(self, times: Sequence[float], name: str) -> np.ndarray:
        """Number of ``name`` events fired up to each requested time."""
        if name not in self.reaction_names:
            raise ValueError(f"unknown reaction {name!r}")
        j = self.reaction_names.index(name)
        cumulative = np.cumsum(self.reactions == j)
        return cumulative[self._index_at(np.asarray(times))]

    def to_solution(self, times: Sequence[float], counted: str = "infection") -> SIRSolution:
        times = np.asarray(times, dtype=float)
        states = self.state_at(times).astype(float)
        cumulative = self.counts_at(times, counted).astype(float)
        return SIRSolution(
            t=times, S=states[:, 0], I=states[:, 1], R=states[:, 2], C=cumulative
        )


def _integer_state(u0: Sequence[float]) -> np.ndarray:
    u = initial_state(*u0)
    if not np.allclose(u, np.round(u)):
        raise ValueError("jump process states must be whole numbers of individuals")
    return np.round(u).astype(np.int64)


def gillespie(
    u0: Optional[Sequence[float]] = None,
    params: Optional[SIRParams] = None,
    tmax: float = DEFAULTS.t1,
    rng: Optional[np.random.Generator] = None,
    method: str = "direct",
    reactions: Optional[Sequence[Reaction]] = None,
    max_events: Optional[int] = None,
    t0: float = DEFAULTS.t0,
) -> JumpPath:
    """Draw one path of the jump process with a Gillespie stepper.

    ``direct`` samples the waiting time from the total propensity and then
    the reaction proportionally to its propensity. ``first_reaction`` samples
    one exponential clock per reaction and fires the earliest. The path stops
    when no reaction can fire or the next jump would pass ``tmax``.
    """
    if method not in METHODS:
        raise ValueError(f"method must be one of {METHODS}")
    if tmax <= t0:
        raise ValueError("tmax must be greater than t0")
    params = params or default_params()
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    reactions = list(reactions or sir_reactions())
    u = _integer_state(u0 if u0 is not None else (DEFAULTS.s0, DEFAULTS.i0, DEFAULTS.r0))
    changes = np.array([r.change for r in reactions], dtype=np.int64)

    t = float(t0)
    times: List[float] = [t]
    states: List[np.ndarray] = [u.copy()]
    fired: List[int] = [-1]

    while max_events is None or len(fired) - 1 < max_events:
        rates = np.array([r.propensity(u, params) for r in reactions], dtype=float)
        total = rates.sum()
        if total <= 0:
            # Absorbing state, e.g. no infected left.
            break
        if method == "direct":
            tau = rng.exponential(1.0 / total)
            j = int(np.searchsorted(np.cumsum(rates), rng.random() * total, side="right"))
            j = min(j, len(rates) - 1)
        else:
            clocks = np.full(rates.shape, np.inf)
            active = rates > 0
            clocks[active] = rng.exponential(1.0 / rates[active])
            j = int(np.argmin(clocks))
            tau = clocks[j]
        if t + tau > tmax:
            break
        t += tau
        u = u + changes[j]
        times.append(t)
        states.append(u.copy())
        fired.append(j)

    logger.debug("gillespie %s: %d events, stopped at t=%.3f", method, len(fired) - 1, t)
    return JumpPath(
        times=np.asarray(times, dtype=float),
        states=np.asarray(states, dtype=np.int64),
        reactions=np.asarray(fired, dtype=np.int64),
        reaction_names=tuple(r.name for r in reactions),
        tmax=float(tmax),
    )


def simulate_jump(
    params: Optional[SIRParams] = None,
    u0: Optional[Sequence[float]] = None,
    t0: float = DEFAULTS.t0,
    t1: float = DEFAULTS.t1,
    dt: float = DEFAULTS.dt,
    rng: Optional[np.random.Generator] = None,
    method: str = "direct",
) -> SIRSolution:
    """Simulate one jump path and sample it on the regular output grid."""
    grid = time_grid(t0, t1, dt)
    path = gillespie(u0, params, tmax=t1, rng=rng, method=method, t0=t0)
    return path.to_solution(grid)


def simulate_ensemble(
    n_runs: int,
    params: Optional[SIRParams] = None,
    u0: Optional[Sequence[float]] = None,
    t0: float = DEFAULTS.t0,
    t1: float = DEFAULTS.t1,
    dt: float = DEFAULTS.dt,
    rng: Optional[np.random.Generator] = None,
    method: str = "direct",
) -> Tuple[np.ndarray, np.ndarray]:
    """Simulate ``n_runs`` independent paths.

    Returns (times, ensemble) with ensemble of shape (n_runs, T, 4) holding
    S, I, R and cumulative infections.
    """
    if n_runs <= 0:
        raise ValueError("n_runs must be positive")
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    grid = time_grid(t0, t1, dt)
    runs = []
    for k in range(n_runs):
        path = gillespie(u0, params, tmax=t1, rng=rng, method=method, t0=t0)
        runs.append(path.to_solution(grid).to_array())
        if (k + 1) % 100 == 0:
            logger.info("Simulated %d/%d paths", k + 1, n_runs)
    return grid, np.stack(runs)


def ensemble_summary(
    ensemble: np.ndarray,
    quantiles: Sequence[float] = (0.05, 0.5, 0.95),
) -> Dict[str, np.ndarray]:
    """Mean and quantile bands per compartment across runs."""
    ensemble = np.asarray(ensemble, dtype=float)
    if ensemble.ndim != 3:
        raise ValueError("ensemble must have shape (n_runs, T, n_compartments)")
    q = np.asarray(quantiles, dtype=float)
    if np.any((q < 0) | (q > 1)):
        raise ValueError("quantiles must be in [0, 1]")
    return {
        "mean": ensemble.mean(axis=0),
        "std": ensemble.std(axis=0),
        "q": q,
        "quantiles": np.quantile(ensemble, q, axis=0),
    }


def extinction_probability(ensemble: np.ndarray, threshold: float = 0.1) -> float:
    """Fraction of runs whose final size stays below ``threshold`` * N."""
    ensemble = np.asarray(ensemble, dtype=float)
    N = ensemble[:, 0, :3].sum(axis=1)
    final_cases = ensemble[:, -1, 3] + ensemble[:, 0, 1]
    return float(np.mean(final_cases / N < threshold))
