"""Observation models for synthetic incidence data.

The functions here turn a latent series (typically daily incidence from
the ODE model) into observed counts by sampling from a count
distribution. They do not add Gaussian noise: each call draws a new
observed series whose mean is the reported fraction of the latent one.
"""


from typing import Optional

import numpy as np


def _ensure_rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng or np.random.default_rng()


def observe_poisson(
    x: np.ndarray, rho: float = 1.0, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Draw Poisson counts with mean ``rho * x``.

    Parameters
    ----------
    x:
        Latent series, 1D `(T,)` or batch `(..., T)`.
    rho:
        Reporting fraction in (0, 1].
    rng:
        Optional NumPy random generator for reproducibility.

    Returns
    -------
    np.ndarray
        Observed counts, same shape as `x`, dtype `int64`.
    """
    if not 0 < rho <= 1:
        raise ValueError("rho must be in (0, 1]")
    rng = _ensure_rng(rng)
    # Clamp small negative values left by the integrator.
    lam = np.clip(rho * np.asarray(x, dtype=float), 0.0, None)
    return rng.poisson(lam).astype(np.int64, copy=False)


def observe_negbin(
    x: np.ndarray, rho: float = 1.0, k: float = 10.0, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Draw negative binomial counts with mean ``rho * x``.

    The variance is `mu + mu^2 / k`; lower `k` means more over-dispersion.
    """
    if k <= 0:
        raise ValueError("k must be positive")
    if not 0 < rho <= 1:
        raise ValueError("rho must be in (0, 1]")
    rng = _ensure_rng(rng)
    mu = np.clip(rho * np.asarray(x, dtype=float), 0.0, None)
    p = k / (k + mu)
    # mu = 0 gives p = 1, which always samples 0.
    return rng.negative_binomial(k, p).astype(np.int64, copy=False)


def apply_downsample(x: np.ndarray, step: int) -> np.ndarray:
    """Keep every `step`-th point along the last axis."""
    if step <= 0:
        raise ValueError("step must be positive")
    return np.asarray(x)[..., ::step]
