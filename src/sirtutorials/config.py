"""Central defaults for the SIR tutorials.

Defines the Defaults dataclass with the shared tutorial settings (initial
state, parameters, time grid, solver tolerances, inference bounds), the
SIRParams container and a global seed setter. Imported by scripts and
modules to keep runs reproducible and consistent.
"""


from dataclasses import dataclass, replace as _dc_replace
from pathlib import Path
import random
from typing import Dict, Tuple

import numpy as np


# Central defaults for reproducible tutorials.
@dataclass(frozen=True)
class Defaults:
    seed: int = 1234
    t0: float = 0.0
    t1: float = 40.0
    dt: float = 0.1
    s0: float = 990.0
    i0: float = 10.0
    r0: float = 0.0
    beta: float = 0.05
    c: float = 10.0
    gamma: float = 0.25
    ode_method: str = "RK45"
    rtol: float = 1e-6
    atol: float = 1e-8
    obs_dt: float = 1.0
    rho: float = 1.0
    k: float = 10.0
    beta_range: Tuple[float, float] = (0.01, 0.2)
    c_range: Tuple[float, float] = (1.0, 20.0)
    gamma_range: Tuple[float, float] = (0.05, 1.0)
    i0_range: Tuple[float, float] = (1e-4, 0.1)
    n_starts: int = 5
    # Solver tolerances and finite-difference step used inside fits.
    fit_rtol: float = 1e-8
    fit_atol: float = 1e-8
    fd_step: float = 1e-6
    runs_dir: Path = Path("runs")


# Shared defaults instance used across scripts.
DEFAULTS = Defaults()


@dataclass(frozen=True)
class SIRParams:
    """Rates of the SIR model.

    beta is the per-contact transmission probability, c the contact rate
    and gamma the recovery rate. The force of infection is beta * c * I / N.
    """

    beta: float = DEFAULTS.beta
    c: float = DEFAULTS.c
    gamma: float = DEFAULTS.gamma

    def __post_init__(self) -> None:
        for name in ("beta", "c", "gamma"):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a finite non-negative rate, got {value}")

    @property
    def R0(self) -> float:
        """Basic reproduction number beta * c / gamma."""
        if self.gamma == 0:
            return float("inf")
        return self.beta * self.c / self.gamma

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.beta, self.c, self.gamma)

    def as_dict(self) -> Dict[str, float]:
        return {"beta": self.beta, "c": self.c, "gamma": self.gamma}

    def replace(self, **changes: float) -> "SIRParams":
        return _dc_replace(self, **changes)


def default_params() -> SIRParams:
    return SIRParams(DEFAULTS.beta, DEFAULTS.c, DEFAULTS.gamma)


def initial_state(
    s0: float = DEFAULTS.s0,
    i0: float = DEFAULTS.i0,
    r0: float = DEFAULTS.r0,
) -> np.ndarray:
    """Return a validated (S, I, R) initial state."""
    u0 = np.array([s0, i0, r0], dtype=float)
    if np.any(u0 < 0) or not np.all(np.isfinite(u0)):
        raise ValueError("initial state must be finite and non-negative")
    if u0.sum() <= 0:
        raise ValueError("initial population must be positive")
    return u0


def set_global_seed(seed: int) -> None:
    """Set global seeds for reproducibility."""
    # Keep the Python and NumPy PRNGs aligned for scripts.
    random.seed(seed)
    np.random.seed(seed)
