"""Seasonal log-linear regression for TSIR transmission parameters.

The TSIR model links consecutive corrected incidences by

    log I(t+1) = log beta[season(t)] + alpha * log I(t) + log(Sbar + D(t)) - log N(t)

The last two terms form a fixed offset. The remaining coefficients are
estimated by ordinary least squares on an explicit design matrix with one
indicator column per season (no intercept) and one column for log I(t).
The residual sum of squares is the deviance used to compare Sbar values.
"""


from dataclasses import dataclass, field
import logging
from typing import Union

import numpy as np

from .config import DEFAULTS, ZeroPolicy, coerce_enum
from .errors import IdentifiabilityError, InsufficientDataError, NumericalDomainError
from .series import as_population, as_series, check_aligned

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegressionFit:
    coef: np.ndarray
    se: np.ndarray
    cov: np.ndarray
    deviance: float
    n_obs: int
    period: int
    sbar: float
    fitted: np.ndarray = field(repr=False)
    residuals: np.ndarray = field(repr=False)

    @property
    def log_beta(self) -> np.ndarray:
        return self.coef[: self.period]

    @property
    def beta(self) -> np.ndarray:
        return np.exp(self.log_beta)

    @property
    def log_beta_se(self) -> np.ndarray:
        return self.se[: self.period]

    @property
    def beta_se(self) -> np.ndarray:
        # Delta method on exp(log beta).
        return self.beta * self.log_beta_se

    @property
    def alpha(self) -> float:
        return float(self.coef[self.period])

    @property
    def alpha_se(self) -> float:
        return float(self.se[self.period])

    @property
    def sigma2(self) -> float:
        return self.deviance / (self.n_obs - self.period - 1)


def build_design(seasons, log_incidence, period: int = DEFAULTS.period) -> np.ndarray:
    """Design matrix with one indicator column per season then log I(t).

    seasons holds labels in {1..period}.
    """
    seasons = np.asarray(seasons, dtype=int)
    log_incidence = as_series(log_incidence, "log_incidence")
    check_aligned(seasons=seasons, log_incidence=log_incidence)
    if np.any((seasons < 1) | (seasons > period)):
        raise ValueError(f"season labels must lie in 1..{period}")
    X = np.zeros((seasons.size, period + 1))
    X[np.arange(seasons.size), seasons - 1] = 1.0
    X[:, period] = log_incidence
    return X


def check_identifiable(seasons, period: int) -> None:
    """Raise IdentifiabilityError unless every season label appears."""
    present = np.unique(np.asarray(seasons, dtype=int))
    missing = np.setdiff1d(np.arange(1, period + 1), present)
    if missing.size:
        raise IdentifiabilityError(
            f"seasons {missing.tolist()} have no observations", missing=missing
        )


def tsir_regression_data(incidence, deviation, sbar: float, population, seasons):
    """Response, lagged log-incidence, offset and season labels for each row.

    Row t pairs the state at t with the incidence at t+1. Returns arrays of
    length T-1 plus two masks: observed marks rows with positive incidence
    and population (independent of sbar), feasible marks rows where
    Sbar + D(t) is positive.
    """
    if not sbar > 0:
        raise NumericalDomainError(f"Sbar must be positive, got {sbar!r}")
    I = as_series(incidence, "incidence")
    D = as_series(deviation, "deviation")
    seasons = np.asarray(seasons, dtype=int)
    n = check_aligned(incidence=I, deviation=D, seasons=seasons)
    N = as_population(population, n)

    susceptibles = sbar + D[:-1]
    observed = (I[1:] > 0) & (I[:-1] > 0) & (N[:-1] > 0)
    feasible = susceptibles > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        y = np.log(I[1:])
        lag = np.log(I[:-1])
        offset = np.log(susceptibles) - np.log(N[:-1])
    return y, lag, offset, seasons[:-1], observed, feasible


def fit_seasonal_regression(
    incidence,
    deviation,
    sbar: float,
    population,
    seasons,
    period: int = DEFAULTS.period,
    zero_policy: Union[ZeroPolicy, str] = ZeroPolicy.RAISE,
) -> RegressionFit:
    """Fit per-season log beta and alpha for one candidate Sbar.

    Parameters
    ----------
    incidence:
        Corrected incidence I(t).
    deviation:
        Corrected susceptible deviation D(t).
    sbar:
        Candidate mean number of susceptibles.
    population:
        Population size N(t), scalar or aligned series.
    seasons:
        Season labels in {1..period} aligned with incidence.
    zero_policy:
        ZeroPolicy.RAISE fails with NumericalDomainError when a row has zero
        incidence; ZeroPolicy.DROP removes such rows. The dropped rows never
        depend on sbar, so deviances for different candidates cover the same
        rows. A non-positive Sbar + D(t) on a kept row always raises
        NumericalDomainError.
    """
    zero_policy = coerce_enum(zero_policy, ZeroPolicy)
    y, lag, offset, row_seasons, observed, feasible = tsir_regression_data(
        incidence, deviation, sbar, population, seasons
    )
    if not np.all(observed):
        if zero_policy is ZeroPolicy.RAISE:
            t = int(np.flatnonzero(~observed)[0])
            raise NumericalDomainError(f"zero incidence or population at row {t}")
        logger.debug("Dropping %d rows with zero incidence", int(np.sum(~observed)))
    infeasible = observed & ~feasible
    if np.any(infeasible):
        t = int(np.flatnonzero(infeasible)[0])
        raise NumericalDomainError(
            f"non-positive susceptibles Sbar + D at row {t} (Sbar={sbar:.6g})"
        )
    y, lag, offset, row_seasons = (
        y[observed], lag[observed], offset[observed], row_seasons[observed]
    )

    check_identifiable(row_seasons, period)
    n_obs = y.size
    n_coef = period + 1
    if n_obs <= n_coef:
        raise InsufficientDataError(
            f"{n_obs} usable rows cannot estimate {n_coef} coefficients"
        )

    X = build_design(row_seasons, lag, period)
    target = y - offset
    coef, _, rank, _ = np.linalg.lstsq(X, target, rcond=None)
    linear = X @ coef
    residuals = target - linear
    deviance = float(residuals @ residuals)

    sigma2 = deviance / (n_obs - n_coef)
    xtx = X.T @ X
    xtx_inv = np.linalg.inv(xtx) if rank == n_coef else np.linalg.pinv(xtx)
    cov = sigma2 * xtx_inv
    se = np.sqrt(np.clip(np.diag(cov), 0.0, None))

    return RegressionFit(
        coef=coef,
        se=se,
        cov=cov,
        deviance=deviance,
        n_obs=int(n_obs),
        period=int(period),
        sbar=float(sbar),
        fitted=linear + offset,
        residuals=residuals,
    )
