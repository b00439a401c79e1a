"""End-to-end TSIR fit from raw cases, births and population.

Reconstructs the susceptible deviation and reporting rate, corrects the
incidence, profiles the regression deviance over candidate mean susceptible
levels and keeps the best seasonal fit.
"""


from dataclasses import dataclass
import logging
from typing import Optional, Sequence, Union

import numpy as np

from .config import DEFAULTS, DomainPolicy, SimulationMode, ZeroPolicy
from .profile import ProfileResult, profile_sbar
from .reconstruction import Reconstruction, reconstruct_susceptibles
from .regression import RegressionFit
from .series import as_population, as_series, check_aligned, seasonal_index
from .simulate import TSIRTrajectory, simulate_tsir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TSIRFit:
    reconstruction: Reconstruction
    profile: ProfileResult
    regression: RegressionFit
    seasons: np.ndarray

    @property
    def sbar(self) -> float:
        return self.profile.best

    @property
    def beta(self) -> np.ndarray:
        return self.regression.beta

    @property
    def alpha(self) -> float:
        return self.regression.alpha


def default_sbar_grid(
    population, fractions: Sequence[float] = DEFAULTS.sbar_fractions
) -> np.ndarray:
    """Candidate Sbar values as fractions of the mean population."""
    return float(np.mean(population)) * np.asarray(fractions, dtype=float)


def fit_tsir(
    cases,
    births,
    population,
    sbar_grid=None,
    period: int = DEFAULTS.period,
    df: float = DEFAULTS.spline_df,
    scalar_rho: bool = False,
    season_start: int = 0,
    zero_policy: Union[ZeroPolicy, str] = ZeroPolicy.DROP,
    policy: Union[DomainPolicy, str] = DomainPolicy.PENALIZE,
    executor=None,
) -> TSIRFit:
    """Fit seasonal beta, alpha and Sbar to aligned case and birth series.

    Zero-count steps are dropped from the regression by default because
    log incidence is undefined there.
    """
    cases = as_series(cases, "cases")
    births = as_series(births, "births")
    n = check_aligned(cases=cases, births=births)
    N = as_population(population, n)

    recon = reconstruct_susceptibles(births, cases, df=df, scalar_rho=scalar_rho)
    seasons = seasonal_index(cases.size, period, start=season_start)
    if sbar_grid is None:
        sbar_grid = default_sbar_grid(N)

    profile = profile_sbar(
        sbar_grid,
        recon.corrected_incidence,
        recon.corrected_deviation,
        N,
        seasons,
        period=period,
        zero_policy=zero_policy,
        policy=policy,
        executor=executor,
    )
    logger.info(
        "TSIR fit: Sbar=%.6g alpha=%.4f mean beta=%.4g deviance=%.6g (mean rho=%.4f)",
        profile.best,
        profile.fit.alpha,
        float(np.mean(profile.fit.beta)),
        profile.value,
        recon.mean_rho,
    )
    return TSIRFit(reconstruction=recon, profile=profile, regression=profile.fit, seasons=seasons)


def simulate_from_fit(
    fit: TSIRFit,
    births,
    population,
    i0: Optional[float] = None,
    mode: Union[SimulationMode, str] = SimulationMode.DETERMINISTIC,
    rng: Optional[np.random.Generator] = None,
) -> TSIRTrajectory:
    """Project a fitted TSIR model forward over births.

    Starts from Sbar + D(0) and, unless given, the first corrected incidence.
    """
    recon = fit.reconstruction
    births = as_series(births, "births")
    if i0 is None:
        i0 = float(recon.corrected_incidence[0])
    seasons = seasonal_index(births.size, fit.regression.period, start=int(fit.seasons[0]) - 1)
    return simulate_tsir(
        fit.beta,
        fit.alpha,
        births,
        population,
        s0=fit.sbar + float(recon.corrected_deviation[0]),
        i0=i0,
        seasons=seasons,
        mode=mode,
        rng=rng,
    )
