"""Chain-binomial likelihood for an observed incidence sequence.

Each step removes I(t+1) of the S(t) remaining susceptibles, where each
susceptible escapes infection with probability exp(-beta * I(t) / S0).
The negative log-likelihood is the objective minimised by the grid searches
in profile.py and the joint fit in optimize.py.
"""


import logging
from typing import Union

import numpy as np
from scipy.stats import binom

from .config import DEFAULTS, DomainPolicy, coerce_enum
from .errors import InsufficientDataError, NumericalDomainError
from .series import as_series

logger = logging.getLogger(__name__)


def as_incidence(incidence) -> np.ndarray:
    """Validate an observed incidence sequence of non-negative counts."""
    I = as_series(incidence, "incidence")
    if I.size < 2:
        raise InsufficientDataError("incidence needs at least two time steps")
    if np.any(I < 0):
        raise ValueError("incidence must be non-negative")
    if np.any(I != np.round(I)):
        raise ValueError("incidence must contain whole counts")
    return I


def _violation(message: str, policy: DomainPolicy, penalty: float) -> float:
    if policy is DomainPolicy.RAISE:
        raise NumericalDomainError(message)
    logger.debug("Penalised likelihood evaluation: %s", message)
    return float(penalty)


def chain_binomial_terms(s0: float, beta: float, I: np.ndarray):
    """Per-step susceptibles, infection probabilities and log-pmf values."""
    S = np.floor(s0 - np.cumsum(I[:-1]))
    p = -np.expm1(-beta * I[:-1] / s0)
    with np.errstate(divide="ignore", invalid="ignore"):
        logpmf = binom.logpmf(I[1:], S, p)
    return S, p, logpmf


def chain_binomial_nll(
    s0: float,
    beta: float,
    incidence,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    penalty: float = DEFAULTS.domain_penalty,
) -> float:
    """Negative log-likelihood of incidence under the chain-binomial model.

    Parameters
    ----------
    s0:
        Initial number of susceptibles. Must cover all observed infections.
    beta:
        Transmission rate (>= 0).
    incidence:
        Observed counts I(0..T-1).
    policy:
        DomainPolicy.PENALIZE returns penalty for evaluations outside the
        model's support; DomainPolicy.RAISE raises NumericalDomainError.
    penalty:
        Finite value returned under the PENALIZE policy.

    Returns
    -------
    float
        -sum_t log Binom(I(t+1); S(t), p(t)) with
        S(t) = floor(S0 - sum_{k<=t} I(k)) and p(t) = 1 - exp(-beta I(t) / S0).
    """
    policy = coerce_enum(policy, DomainPolicy)
    I = as_incidence(incidence)

    if not (np.isfinite(s0) and s0 > 0):
        return _violation(f"S0 must be positive, got {s0}", policy, penalty)
    if not (np.isfinite(beta) and beta >= 0):
        return _violation(f"beta must be non-negative, got {beta}", policy, penalty)
    total = float(I.sum())
    if s0 < total:
        return _violation(
            f"S0={s0:.6g} is below the {total:.0f} infections observed", policy, penalty
        )

    S, p, logpmf = chain_binomial_terms(s0, beta, I)
    bad = (S < I[1:]) | (p < 0.0) | (p > 1.0) | ~np.isfinite(logpmf)
    if np.any(bad):
        t = int(np.flatnonzero(bad)[0])
        return _violation(
            f"step {t} outside support: S={S[t]:.0f}, I(t+1)={I[t + 1]:.0f}, p={p[t]:.6g}",
            policy,
            penalty,
        )
    return float(-np.sum(logpmf))


def chain_binomial_nll_grid(
    s0: float,
    betas,
    incidence,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    penalty: float = DEFAULTS.domain_penalty,
) -> np.ndarray:
    """Negative log-likelihood for each beta in a grid at fixed S0."""
    betas = as_series(betas, "betas")
    I = as_incidence(incidence)
    return np.asarray(
        [chain_binomial_nll(s0, b, I, policy=policy, penalty=penalty) for b in betas],
        dtype=float,
    )
