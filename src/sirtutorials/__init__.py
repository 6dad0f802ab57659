"""SIR model tutorials.

Provides a small namespace that re-exports the common entry points so
scripts and notebooks can import from src.sirtutorials without deep
module paths.
"""


# Re-export core helpers for convenience.
from .config import DEFAULTS, SIRParams, initial_state, set_global_seed  # noqa: F401
from .exceptions import IntegrationError  # noqa: F401
from .ode import SIRSolution, simulate_ode, simulate_summer, final_size  # noqa: F401
from .jump import gillespie, simulate_jump, simulate_ensemble, ensemble_summary  # noqa: F401
from .noise import observe_poisson, observe_negbin  # noqa: F401
from .inference import (  # noqa: F401
    IncidenceData,
    FitResult,
    generate_incidence_data,
    fit,
    profile_likelihood,
    compare_methods,
)
