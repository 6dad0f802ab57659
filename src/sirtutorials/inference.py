"""Parameter inference for the SIR ODE model by optimization.

Fits the deterministic model to incidence counts by minimizing a loss
(sum of squares, Poisson or negative binomial negative log-likelihood).
Three optimizers are wrapped: Nelder-Mead (gradient-free, local),
L-BFGS-B (gradient-based with finite-difference gradients) and
differential evolution (gradient-free, global). Local methods use
multi-start initialization for robustness and return timing info.
"""


from dataclasses import dataclass, field
import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import differential_evolution, minimize
from scipy.special import gammaln

from .config import DEFAULTS, SIRParams, default_params, initial_state
from .exceptions import IntegrationError
from .metrics import parameter_errors, timing_summary
from .noise import apply_downsample, observe_negbin, observe_poisson
from .ode import simulate_ode

logger = logging.getLogger(__name__)

PARAM_NAMES = ("beta", "c", "gamma", "i0")
METHODS = ("nelder-mead", "l-bfgs-b", "differential-evolution")
LOSSES = ("sse", "poisson", "negbin")

DEFAULT_BOUNDS: Dict[str, Tuple[float, float]] = {
    "beta": DEFAULTS.beta_range,
    "c": DEFAULTS.c_range,
    "gamma": DEFAULTS.gamma_range,
    "i0": DEFAULTS.i0_range,
}


@dataclass
class IncidenceData:
    """Incidence counts observed over consecutive intervals.

    ``times`` holds the end of each interval; the first interval starts at
    ``t0``. ``params`` and ``u0`` describe the model that generated the data
    (for synthetic data) or the fixed values used while fitting.
    """

    times: np.ndarray
    counts: np.ndarray
    t0: float
    obs_dt: float
    u0: np.ndarray
    params: SIRParams = field(default_factory=default_params)
    obs_model: str = "poisson"
    rho: float = DEFAULTS.rho
    k: float = DEFAULTS.k
    expected: Optional[np.ndarray] = None

    @property
    def t1(self) -> float:
        return float(self.times[-1])

    @property
    def N(self) -> float:
        return float(np.sum(self.u0))

    def true_values(self) -> Dict[str, float]:
        values = self.params.as_dict()
        values["i0"] = float(self.u0[1]) / self.N
        return values


def generate_incidence_data(
    params: Optional[SIRParams] = None,
    u0: Optional[Sequence[float]] = None,
    t0: float = DEFAULTS.t0,
    t1: float = DEFAULTS.t1,
    obs_dt: float = DEFAULTS.obs_dt,
    rng: Optional[np.random.Generator] = None,
    obs_model: str = "poisson",
    rho: float = DEFAULTS.rho,
    k: float = DEFAULTS.k,
    dt: float = DEFAULTS.dt,
) -> IncidenceData:
    """Simulate the ODE and draw noisy incidence counts on an ``obs_dt`` grid."""
    params = params or default_params()
    u0 = initial_state() if u0 is None else initial_state(*u0)
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    step = int(round(obs_dt / dt))
    if step <= 0 or not np.isclose(step * dt, obs_dt):
        raise ValueError("obs_dt must be a positive multiple of dt")
    if t1 - t0 < obs_dt:
        raise ValueError("the time span must cover at least one observation interval")

    # Integrate on the fine grid, then keep the observation times.
    solution = simulate_ode(params, u0, t0=t0, t1=t1, dt=dt)
    cumulative = apply_downsample(solution.C, step)
    times = apply_downsample(solution.t, step)
    expected = np.diff(cumulative)

    if obs_model == "poisson":
        counts = observe_poisson(expected, rho=rho, rng=rng)
    elif obs_model == "negbin":
        counts = observe_negbin(expected, rho=rho, k=k, rng=rng)
    else:
        raise ValueError("obs_model must be 'poisson' or 'negbin'")

    logger.info(
        "Generated %d %s observations (total=%d, R0=%.3f)",
        counts.size,
        obs_model,
        int(counts.sum()),
        params.R0,
    )
    return IncidenceData(
        times=times[1:],
        counts=counts,
        t0=float(t0),
        obs_dt=float(obs_dt),
        u0=u0,
        params=params,
        obs_model=obs_model,
        rho=rho,
        k=k,
        expected=expected,
    )


def unpack_theta(
    theta: Sequence[float],
    names: Sequence[str],
    base_params: SIRParams,
    base_u0: np.ndarray,
) -> Tuple[SIRParams, np.ndarray]:
    """Map a parameter vector onto model parameters and initial state.

    ``i0`` is the initial infected fraction; the population size and the
    initially recovered stay as in ``base_u0``.
    """
    if len(theta) != len(names):
        raise ValueError("theta and names must have the same length")
    rates = {}
    u0 = np.asarray(base_u0, dtype=float).copy()
    for name, value in zip(names, theta):
        if name == "i0":
            N = u0.sum()
            u0[1] = float(value) * N
            u0[0] = N - u0[1] - u0[2]
        elif name in ("beta", "c", "gamma"):
            rates[name] = float(value)
        else:
            raise ValueError(f"unknown parameter {name!r}; expected one of {PARAM_NAMES}")
    return base_params.replace(**rates), u0


def expected_incidence(
    params: SIRParams,
    u0: np.ndarray,
    data: IncidenceData,
    rtol: float = DEFAULTS.fit_rtol,
    atol: float = DEFAULTS.fit_atol,
) -> np.ndarray:
    """Model incidence over the observation intervals of ``data``."""
    solution = simulate_ode(
        params, u0, t0=data.t0, t1=data.t1, dt=data.obs_dt, rtol=rtol, atol=atol
    )
    return np.diff(solution.C)


def sum_squares(expected: np.ndarray, observed: np.ndarray, rho: float = 1.0) -> float:
    return float(np.sum((rho * expected - observed) ** 2))


def poisson_nll(expected: np.ndarray, observed: np.ndarray, rho: float = 1.0) -> float:
    # Clip to keep the log finite for empty intervals.
    lam = np.clip(rho * expected, 1e-8, None)
    return float(np.sum(lam - observed * np.log(lam) + gammaln(observed + 1)))


def negbin_nll(
    expected: np.ndarray, observed: np.ndarray, rho: float = 1.0, k: float = DEFAULTS.k
) -> float:
    mu = np.clip(rho * expected, 1e-8, None)
    p = k / (k + mu)
    return float(
        -np.sum(
            gammaln(observed + k) - gammaln(k) - gammaln(observed + 1)
            + k * np.log(p) + observed * np.log1p(-p)
        )
    )


def _loss_fn(loss: str, data: IncidenceData) -> Callable[[np.ndarray, np.ndarray], float]:
    if loss == "sse":
        return lambda e, o: sum_squares(e, o, data.rho)
    if loss == "poisson":
        return lambda e, o: poisson_nll(e, o, data.rho)
    if loss == "negbin":
        return lambda e, o: negbin_nll(e, o, data.rho, data.k)
    raise ValueError(f"loss must be one of {LOSSES}")


def make_objective(
    data: IncidenceData,
    names: Sequence[str],
    loss: str = "poisson",
    fixed: Optional[Mapping[str, float]] = None,
    base_params: Optional[SIRParams] = None,
) -> Callable[[np.ndarray], float]:
    """Build the scalar objective theta -> loss for the optimizers.

    Fixed values are applied once up front, so an unknown name or an
    infeasible fixed value raises ``ValueError`` here.
    """
    loss_fn = _loss_fn(loss, data)
    fixed = dict(fixed or {})
    base_params, base_u0 = unpack_theta(
        tuple(fixed.values()), tuple(fixed.keys()), base_params or data.params, data.u0
    )
    base_u0 = initial_state(*base_u0)
    observed = np.asarray(data.counts, dtype=float)

    def objective(theta: np.ndarray) -> float:
        try:
            params, u0 = unpack_theta(theta, names, base_params, base_u0)
            expected = expected_incidence(params, u0, data)
        except (IntegrationError, ValueError) as exc:
            # Infeasible parameters are rejected rather than aborting the search.
            logger.debug("Rejected theta=%s: %s", theta, exc)
            return np.inf
        if not np.all(np.isfinite(expected)):
            return np.inf
        return loss_fn(expected, observed)

    return objective


@dataclass
class FitResult:
    names: Tuple[str, ...]
    values: np.ndarray
    loss: float
    method: str
    n_evals: int
    times: List[float]
    success: bool

    def as_dict(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(self.names, self.values)}

    def model(self, data: IncidenceData) -> Tuple[SIRParams, np.ndarray]:
        """Fitted (params, u0) for the data set the fit was run on."""
        return unpack_theta(self.values, self.names, data.params, data.u0)


def _fit_with_multistart(
    objective: Callable[[np.ndarray], float],
    bounds: List[Tuple[float, float]],
    n_starts: int,
    rng: np.random.Generator,
    method: str,
    options: Optional[Dict[str, float]] = None,
) -> Tuple[np.ndarray, float, int, List[float], bool]:
    best_x = None
    best_loss = np.inf
    best_success = False
    n_evals = 0
    times = []

    # Multi-start optimization for robustness to local minima.
    for _ in range(n_starts):
        # Sample an initial point uniformly within bounds.
        x0 = np.array([rng.uniform(low, high) for low, high in bounds], dtype=float)
        start = time.perf_counter()
        res = minimize(objective, x0=x0, bounds=bounds, method=method, options=options)
        times.append(time.perf_counter() - start)
        n_evals += int(res.nfev)
        if res.fun < best_loss:
            best_loss = float(res.fun)
            best_x = np.asarray(res.x, dtype=float)
            best_success = bool(res.success)

    if best_x is None:
        # Every start ended on an infeasible point.
        best_x = np.full(len(bounds), np.nan)
    return best_x, best_loss, n_evals, times, best_success


def _resolve_bounds(
    names: Sequence[str], bounds: Optional[Mapping[str, Tuple[float, float]]]
) -> List[Tuple[float, float]]:
    merged = dict(DEFAULT_BOUNDS)
    merged.update(bounds or {})
    resolved = []
    for name in names:
        if name not in PARAM_NAMES:
            raise ValueError(f"unknown parameter {name!r}; expected one of {PARAM_NAMES}")
        low, high = merged[name]
        if not low < high:
            raise ValueError(f"invalid bounds for {name}: ({low}, {high})")
        resolved.append((float(low), float(high)))
    return resolved


def fit(
    data: IncidenceData,
    estimate: Sequence[str] = ("beta", "i0"),
    loss: str = "poisson",
    method: str = "nelder-mead",
    bounds: Optional[Mapping[str, Tuple[float, float]]] = None,
    n_starts: int = DEFAULTS.n_starts,
    rng: Optional[np.random.Generator] = None,
    fixed: Optional[Mapping[str, float]] = None,
    maxiter: int = 200,
) -> FitResult:
    """Estimate the ``estimate`` parameters from incidence data."""
    if method not in METHODS:
        raise ValueError(f"method must be one of {METHODS}")
    if n_starts <= 0:
        raise ValueError("n_starts must be positive")
    names = tuple(estimate)
    if not names:
        raise ValueError("estimate must name at least one parameter")
    if fixed and set(fixed) & set(names):
        raise ValueError("a parameter cannot be both fixed and estimated")
    unknown = set(fixed or {}) - set(PARAM_NAMES)
    if unknown:
        raise ValueError(f"unknown fixed parameters {sorted(unknown)}; expected names from {PARAM_NAMES}")
    box = _resolve_bounds(names, bounds)
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    objective = make_objective(data, names, loss=loss, fixed=fixed)

    if method == "differential-evolution":
        start = time.perf_counter()
        res = differential_evolution(
            objective,
            box,
            seed=int(rng.integers(2**31 - 1)),
            maxiter=maxiter,
            tol=1e-8,
            polish=True,
        )
        times = [time.perf_counter() - start]
        x, best_loss, n_evals, success = (
            np.asarray(res.x, dtype=float), float(res.fun), int(res.nfev), bool(res.success)
        )
    else:
        if method == "nelder-mead":
            scipy_method, options = "Nelder-Mead", {"maxiter": maxiter * len(names)}
        else:
            # Gradients come from forward differences with this absolute step.
            scipy_method, options = "L-BFGS-B", {"eps": DEFAULTS.fd_step, "maxiter": maxiter}
        x, best_loss, n_evals, times, success = _fit_with_multistart(
            objective, box, n_starts, rng, scipy_method, options
        )

    result = FitResult(
        names=names,
        values=x,
        loss=best_loss,
        method=method,
        n_evals=n_evals,
        times=times,
        success=success,
    )
    logger.info(
        "%s fit (%s loss): %s loss=%.4f evals=%d",
        method,
        loss,
        {k: round(v, 5) for k, v in result.as_dict().items()},
        best_loss,
        n_evals,
    )
    return result


def profile_likelihood(
    data: IncidenceData,
    name: str,
    grid: Sequence[float],
    estimate: Sequence[str] = ("beta", "i0"),
    loss: str = "poisson",
    method: str = "nelder-mead",
    n_starts: int = 1,
    rng: Optional[np.random.Generator] = None,
) -> Dict[str, np.ndarray]:
    """Profile of the loss over ``grid`` values of one parameter.

    At each grid value ``name`` is held fixed and the remaining parameters
    of ``estimate`` are refit. Returns the grid, the profile loss and the
    refitted values of the other parameters.
    """
    if name not in estimate:
        raise ValueError(f"{name!r} must be one of the estimated parameters")
    others = tuple(p for p in estimate if p != name)
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    grid = np.asarray(grid, dtype=float)
    losses = np.empty(grid.size)
    refit = np.empty((grid.size, len(others)))

    for idx, value in enumerate(grid):
        fixed = {name: float(value)}
        if others:
            res = fit(
                data, estimate=others, loss=loss, method=method,
                n_starts=n_starts, rng=rng, fixed=fixed,
            )
            losses[idx] = res.loss
            refit[idx] = res.values
        else:
            losses[idx] = make_objective(data, (), loss=loss, fixed=fixed)(np.array([]))

    return {"grid": grid, "loss": losses, "others": np.asarray(others), "refit": refit}


def compare_methods(
    data: IncidenceData,
    methods: Sequence[str] = METHODS,
    estimate: Sequence[str] = ("beta", "i0"),
    loss: str = "poisson",
    n_starts: int = DEFAULTS.n_starts,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[List[Dict[str, object]], Dict[str, FitResult]]:
    """Fit with every method and tabulate estimates, loss, errors and timing."""
    rng = rng or np.random.default_rng(DEFAULTS.seed)
    truth = data.true_values()
    rows: List[Dict[str, object]] = []
    results: Dict[str, FitResult] = {}
    for method in methods:
        res = fit(data, estimate=estimate, loss=loss, method=method, n_starts=n_starts, rng=rng)
        results[method] = res
        row: Dict[str, object] = {"method": method, "loss": res.loss, "n_evals": res.n_evals}
        row.update(res.as_dict())
        row.update(parameter_errors(truth, res.as_dict()))
        row.update(timing_summary(np.asarray(res.times)))
        row["success"] = res.success
        rows.append(row)
    return rows, results
