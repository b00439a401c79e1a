"""Inference engine for discrete-time stochastic epidemic models.

Provides a small namespace that re-exports the fitting and simulation entry
points so notebooks and scripts can import from src.epiinfer without deep
module paths.
"""


# Re-export core helpers for convenience.
from .config import DEFAULTS, DomainPolicy, SimulationMode, ZeroPolicy  # noqa: F401
from .errors import (  # noqa: F401
    EpiInferError,
    DataAlignmentError,
    InsufficientDataError,
    IdentifiabilityError,
    NumericalDomainError,
    ConvergenceFailure,
)
from .series import seasonal_index, aggregate_counts, cumulative  # noqa: F401
from .reconstruction import reconstruct, reconstruct_susceptibles  # noqa: F401
from .likelihood import chain_binomial_nll, chain_binomial_nll_grid  # noqa: F401
from .regression import fit_seasonal_regression, build_design  # noqa: F401
from .profile import profile_search, profile_beta, profile_s0, profile_sbar  # noqa: F401
from .optimize import fit_chain_binomial  # noqa: F401
from .simulate import (  # noqa: F401
    simulate_chain_binomial,
    simulate_tsir,
    simulate_ensemble,
    final_size_distribution,
)
from .tsir import fit_tsir, simulate_from_fit  # noqa: F401
