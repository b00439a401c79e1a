"""Susceptible reconstruction from cumulative births and cases.

Fits a cubic smoothing spline of cumulative cases on cumulative births. The
local slope of the fitted curve estimates the reporting rate rho(t), and the
negated residual is the deviation D(t) = S(t) - Sbar of the unobserved
susceptible count from its long-run mean. The smoothness is given as
effective degrees of freedom (trace of the smoother matrix) and converted to
the spline penalty by root-finding.
"""


from dataclasses import dataclass
import logging
from typing import Optional

import numpy as np
from scipy.interpolate import make_smoothing_spline
from scipy.optimize import brentq

from .config import DEFAULTS
from .errors import InsufficientDataError, NumericalDomainError
from .series import as_series, check_aligned

logger = logging.getLogger(__name__)

# make_smoothing_spline needs at least five knots.
MIN_POINTS = 5
# Search bracket for log10 of the penalty on a unit-length abscissa.
LOG_LAM_BRACKET = (-20.0, 12.0)


@dataclass(frozen=True)
class Reconstruction:
    rho: np.ndarray
    deviation: np.ndarray
    corrected_deviation: np.ndarray
    corrected_incidence: np.ndarray
    fitted: np.ndarray
    df: float
    lam: float

    @property
    def mean_rho(self) -> float:
        return float(np.mean(self.rho))


def _penalty_eigenvalues(x: np.ndarray) -> np.ndarray:
    """Eigenvalues of the Reinsch roughness matrix K = Q R^-1 Q^T for knots x."""
    n = x.size
    h = np.diff(x)
    Q = np.zeros((n, n - 2))
    R = np.zeros((n - 2, n - 2))
    for j in range(n - 2):
        Q[j, j] = 1.0 / h[j]
        Q[j + 1, j] = -1.0 / h[j] - 1.0 / h[j + 1]
        Q[j + 2, j] = 1.0 / h[j + 1]
        R[j, j] = (h[j] + h[j + 1]) / 3.0
        if j + 1 < n - 2:
            R[j, j + 1] = R[j + 1, j] = h[j + 1] / 6.0
    K = Q @ np.linalg.solve(R, Q.T)
    # K is symmetric PSD; clip round-off below zero.
    return np.clip(np.linalg.eigvalsh(0.5 * (K + K.T)), 0.0, None)


def effective_df(eigenvalues: np.ndarray, lam: float) -> float:
    """Trace of the smoother matrix (I + lam K)^-1."""
    return float(np.sum(1.0 / (1.0 + lam * eigenvalues)))


def penalty_for_df(x: np.ndarray, df: float) -> float:
    """Spline penalty whose smoother has df effective degrees of freedom.

    x must already be scaled to the unit interval.
    """
    eig = _penalty_eigenvalues(x)

    def gap(log_lam: float) -> float:
        return effective_df(eig, 10.0 ** log_lam) - df

    log_lam = brentq(gap, *LOG_LAM_BRACKET, xtol=1e-10)
    return float(10.0 ** log_lam)


def _check_inputs(cum_births: np.ndarray, cum_cases: np.ndarray, df: float) -> None:
    n = check_aligned(cum_births=cum_births, cum_cases=cum_cases)
    if n < MIN_POINTS:
        raise InsufficientDataError(f"need at least {MIN_POINTS} observations, got {n}")
    if not 2.0 < df < n:
        raise InsufficientDataError(
            f"degrees of freedom must lie in (2, {n}) for {n} observations, got {df}"
        )
    if np.any(np.diff(cum_births) <= 0):
        raise ValueError("cumulative births must be strictly increasing")
    if np.any(np.diff(cum_cases) < 0):
        raise ValueError("cumulative cases must be non-decreasing")


def reconstruct(
    cum_births,
    cum_cases,
    df: float = DEFAULTS.spline_df,
    cases=None,
    scalar_rho: bool = False,
) -> Reconstruction:
    """Reconstruct the susceptible deviation series and reporting rate.

    Parameters
    ----------
    cum_births, cum_cases:
        Cumulative births and cumulative reported cases, aligned and of equal
        length.
    df:
        Effective degrees of freedom of the smoothing spline.
    cases:
        Per-step reported cases used for the corrected incidence. Defaults to
        the first differences of cum_cases (with the first value kept).
    scalar_rho:
        Replace the local reporting rate by its mean over the series.

    Returns
    -------
    Reconstruction
        rho, D(t), D(t)/rho(t), cases(t)/rho(t), the fitted curve, df and
        the spline penalty that achieved it.
    """
    cum_births = as_series(cum_births, "cum_births")
    cum_cases = as_series(cum_cases, "cum_cases")
    _check_inputs(cum_births, cum_cases, df)
    if cases is None:
        cases = np.diff(cum_cases, prepend=0.0)
    else:
        cases = as_series(cases, "cases")
        check_aligned(cum_births=cum_births, cases=cases)

    # Fit on a unit-length abscissa so the penalty bracket is scale free.
    x0 = cum_births[0]
    span = cum_births[-1] - x0
    u = (cum_births - x0) / span

    lam = penalty_for_df(u, df)
    spline = make_smoothing_spline(u, cum_cases, lam=lam)
    fitted = spline(u)
    rho = spline.derivative()(u) / span
    if scalar_rho:
        rho = np.full_like(rho, np.mean(rho))

    if np.any(rho <= 0.0) or np.any(rho > 1.0):
        raise NumericalDomainError(
            f"reporting rate outside (0, 1]: min={rho.min():.4g}, max={rho.max():.4g}"
        )

    deviation = fitted - cum_cases
    logger.debug("Spline df=%.3f lam=%.4g mean rho=%.4f", df, lam, float(np.mean(rho)))

    return Reconstruction(
        rho=rho,
        deviation=deviation,
        corrected_deviation=deviation / rho,
        corrected_incidence=cases / rho,
        fitted=fitted,
        df=float(df),
        lam=lam,
    )


def reconstruct_susceptibles(
    births,
    cases,
    df: float = DEFAULTS.spline_df,
    scalar_rho: bool = False,
    births_lag: Optional[int] = None,
) -> Reconstruction:
    """Reconstruct from per-step births and cases.

    births_lag shifts births forward by that many steps before cumulating,
    for births that only enter the susceptible pool after maternal immunity
    wanes. The first births_lag steps reuse the first birth count.
    """
    births = as_series(births, "births")
    cases = as_series(cases, "cases")
    check_aligned(births=births, cases=cases)
    if births_lag:
        if not 0 < births_lag < births.size:
            raise ValueError("births_lag must be non-negative and shorter than the series")
        births = np.concatenate([np.full(births_lag, births[0]), births[:-births_lag]])
    return reconstruct(
        np.cumsum(births), np.cumsum(cases), df=df, cases=cases, scalar_rho=scalar_rho
    )
