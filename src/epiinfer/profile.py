"""Profile-likelihood grid search over one nuisance parameter.

Every candidate in the grid is evaluated: the objectives here are neither
unimodal nor smooth (floors in the chain-binomial susceptibles, log offsets
in the TSIR regression), so there is no early stopping. Candidates are
independent, so an optional concurrent.futures executor can evaluate them in
parallel; objectives are module-level classes so they pickle for process
pools.
"""


from dataclasses import dataclass, field
from functools import partial
import logging
from typing import Any, Callable, Tuple, Union

import numpy as np
from scipy.optimize import minimize_scalar

from .config import DEFAULTS, DomainPolicy, ZeroPolicy, coerce_enum
from .errors import NumericalDomainError
from .likelihood import as_incidence, chain_binomial_nll
from .regression import RegressionFit, fit_seasonal_regression
from .series import as_series

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileResult:
    best: float
    value: float
    fit: Any
    grid: np.ndarray = field(repr=False)
    values: np.ndarray = field(repr=False)
    penalized: np.ndarray = field(repr=False)

    @property
    def n_penalized(self) -> int:
        return int(np.sum(self.penalized))


@dataclass(frozen=True)
class ChainBinomialPoint:
    s0: float
    beta: float
    nll: float


def _evaluate(
    objective: Callable[[float], Any],
    policy: DomainPolicy,
    penalty: float,
    candidate: float,
) -> Tuple[float, Any, bool]:
    """Evaluate one candidate, returning (value, fit, penalized)."""
    try:
        out = objective(candidate)
        value, fit = out if isinstance(out, tuple) else (out, None)
        value = float(value)
        if not np.isfinite(value):
            raise NumericalDomainError(f"objective is not finite at {candidate!r}")
    except NumericalDomainError:
        if policy is DomainPolicy.RAISE:
            raise
        return float(penalty), None, True
    return value, fit, False


def profile_search(
    grid,
    objective: Callable[[float], Any],
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    penalty: float = DEFAULTS.domain_penalty,
    executor=None,
) -> ProfileResult:
    """Evaluate objective on every grid point and keep the minimiser.

    Parameters
    ----------
    grid:
        Candidate values of the nuisance parameter.
    objective:
        Maps a candidate to a scalar or to a (scalar, fit) pair.
    policy:
        PENALIZE substitutes penalty when the objective raises
        NumericalDomainError; RAISE lets the error propagate.
    executor:
        Optional concurrent.futures.Executor used to map the grid.

    Returns
    -------
    ProfileResult
        Best candidate, its value and fit, and the full profile. Exact ties
        go to the smallest candidate.
    """
    policy = coerce_enum(policy, DomainPolicy)
    grid = as_series(grid, "grid")
    if grid.size == 0:
        raise ValueError("grid must contain at least one candidate")

    evaluate = partial(_evaluate, objective, policy, penalty)
    mapper = executor.map if executor is not None else map
    results = list(mapper(evaluate, grid))

    values = np.asarray([r[0] for r in results], dtype=float)
    penalized = np.asarray([r[2] for r in results], dtype=bool)
    if np.all(penalized):
        raise NumericalDomainError("objective is outside its domain at every grid point")
    if np.any(penalized):
        logger.warning("%d of %d grid points penalised", int(penalized.sum()), grid.size)

    valid_values = np.where(penalized, np.inf, values)
    minimum = valid_values.min()
    tied = np.flatnonzero(valid_values == minimum)
    best_idx = int(tied[np.argmin(grid[tied])])
    logger.debug("Profile minimum %.6g at %.6g", minimum, grid[best_idx])

    return ProfileResult(
        best=float(grid[best_idx]),
        value=float(values[best_idx]),
        fit=results[best_idx][1],
        grid=grid,
        values=values,
        penalized=penalized,
    )


class BetaObjective:
    """Chain-binomial NLL as a function of beta at fixed S0."""

    def __init__(self, s0: float, incidence) -> None:
        self.s0 = float(s0)
        self.incidence = as_incidence(incidence)

    def __call__(self, beta: float) -> float:
        return chain_binomial_nll(self.s0, beta, self.incidence, policy=DomainPolicy.RAISE)


class S0Objective:
    """Chain-binomial NLL at fixed S0 with beta concentrated out."""

    def __init__(self, incidence, beta_bounds: Tuple[float, float] = DEFAULTS.beta_bounds) -> None:
        self.incidence = as_incidence(incidence)
        self.beta_bounds = beta_bounds

    def __call__(self, s0: float) -> Tuple[float, ChainBinomialPoint]:
        def nll(beta: float) -> float:
            return chain_binomial_nll(s0, beta, self.incidence)

        res = minimize_scalar(nll, bounds=self.beta_bounds, method="bounded")
        beta = float(res.x)
        # Re-evaluate strictly so an infeasible S0 is reported, not penalised.
        value = chain_binomial_nll(s0, beta, self.incidence, policy=DomainPolicy.RAISE)
        return value, ChainBinomialPoint(s0=float(s0), beta=beta, nll=value)


class SbarObjective:
    """Regression deviance as a function of the mean susceptible level."""

    def __init__(
        self,
        incidence,
        deviation,
        population,
        seasons,
        period: int = DEFAULTS.period,
        zero_policy: Union[ZeroPolicy, str] = ZeroPolicy.RAISE,
    ) -> None:
        self.incidence = incidence
        self.deviation = deviation
        self.population = population
        self.seasons = seasons
        self.period = period
        self.zero_policy = coerce_enum(zero_policy, ZeroPolicy)

    def __call__(self, sbar: float) -> Tuple[float, RegressionFit]:
        fit = fit_seasonal_regression(
            self.incidence,
            self.deviation,
            sbar,
            self.population,
            self.seasons,
            period=self.period,
            zero_policy=self.zero_policy,
        )
        return fit.deviance, fit


def profile_beta(
    grid,
    s0: float,
    incidence,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    executor=None,
) -> ProfileResult:
    """Grid search over beta at fixed S0."""
    return profile_search(grid, BetaObjective(s0, incidence), policy=policy, executor=executor)


def profile_s0(
    grid,
    incidence,
    beta_bounds: Tuple[float, float] = DEFAULTS.beta_bounds,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    executor=None,
) -> ProfileResult:
    """Profile likelihood over S0; result.fit is a ChainBinomialPoint."""
    return profile_search(
        grid, S0Objective(incidence, beta_bounds), policy=policy, executor=executor
    )


def profile_sbar(
    grid,
    incidence,
    deviation,
    population,
    seasons,
    period: int = DEFAULTS.period,
    zero_policy: Union[ZeroPolicy, str] = ZeroPolicy.RAISE,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    executor=None,
) -> ProfileResult:
    """Profile the regression deviance over Sbar; result.fit is a RegressionFit."""
    objective = SbarObjective(incidence, deviation, population, seasons, period, zero_policy)
    return profile_search(grid, objective, policy=policy, executor=executor)
