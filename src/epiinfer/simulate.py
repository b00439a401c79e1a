"""Forward simulation of chain-binomial and TSIR epidemics.

Both simulators advance one step at a time from (S(t-1), I(t-1)): compute
the infection intensity, draw (or take the mean of) the new infections I(t),
then update S(t). Chain-binomial runs stop when the epidemic goes extinct;
TSIR runs cover the full birth series. Randomness always comes from an
explicit numpy Generator, and ensembles spawn one independent stream per
trajectory.
"""


from dataclasses import dataclass
from functools import partial
import logging
from typing import Callable, List, Optional, Union

import numpy as np

from .config import DEFAULTS, SimulationMode, coerce_enum
from .errors import DataAlignmentError
from .series import as_population, as_series, seasonal_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainBinomialTrajectory:
    S: np.ndarray
    I: np.ndarray
    p: np.ndarray
    extinct: bool
    mode: SimulationMode = SimulationMode.STOCHASTIC

    def __len__(self) -> int:
        return self.I.size

    @property
    def final_size(self) -> int:
        return int(self.I.sum())


@dataclass(frozen=True)
class TSIRTrajectory:
    S: np.ndarray
    I: np.ndarray
    lam: np.ndarray
    mode: SimulationMode

    def __len__(self) -> int:
        return self.I.size


def simulate_chain_binomial(
    s0: int,
    beta: float,
    i0: int,
    horizon: int = DEFAULTS.horizon,
    rng: Optional[np.random.Generator] = None,
    mode: Union[SimulationMode, str] = SimulationMode.STOCHASTIC,
) -> ChainBinomialTrajectory:
    """Simulate one chain-binomial epidemic (Reed-Frost type).

    Index 0 holds (S0, I0). Each later step draws
    I(t) ~ Binomial(S(t-1), 1 - exp(-beta I(t-1) / S0)) and sets
    S(t) = S(t-1) - I(t). In deterministic mode I(t) is the binomial mean
    rounded to the nearest count. The run stops after the first step with no
    infectives (I0 = 0 gives a single-step trajectory) or after horizon
    steps, whichever comes first.
    """
    mode = coerce_enum(mode, SimulationMode)
    if horizon < 1:
        raise ValueError("horizon must be >= 1")
    if s0 <= 0:
        raise ValueError("s0 must be positive")
    if beta < 0:
        raise ValueError("beta must be non-negative")
    if i0 < 0:
        raise ValueError("i0 must be non-negative")
    if mode is SimulationMode.STOCHASTIC:
        rng = rng or np.random.default_rng()

    # Pre-sized buffers; n tracks the filled length.
    S = np.zeros(horizon, dtype=np.int64)
    I = np.zeros(horizon, dtype=np.int64)
    p = np.zeros(horizon, dtype=float)
    S[0], I[0] = int(s0), int(i0)
    n = 1
    while n < horizon and I[n - 1] > 0:
        p[n] = -np.expm1(-beta * I[n - 1] / s0)
        if mode is SimulationMode.STOCHASTIC:
            I[n] = rng.binomial(S[n - 1], p[n])
        else:
            I[n] = int(np.rint(S[n - 1] * p[n]))
        S[n] = S[n - 1] - I[n]
        n += 1

    extinct = bool(I[n - 1] == 0)
    return ChainBinomialTrajectory(S=S[:n], I=I[:n], p=p[:n], extinct=extinct, mode=mode)


def simulate_tsir(
    beta,
    alpha: float,
    births,
    population,
    s0: float,
    i0: float,
    seasons=None,
    mode: Union[SimulationMode, str] = SimulationMode.DETERMINISTIC,
    rng: Optional[np.random.Generator] = None,
) -> TSIRTrajectory:
    """Simulate a TSIR epidemic over the length of the birth series.

    Parameters
    ----------
    beta:
        Transmission rate per season (length P) or a scalar.
    alpha:
        Mixing exponent on I(t-1).
    births:
        Susceptible inflow B(t); its length sets the horizon. B(0) is not
        used since index 0 holds the initial conditions.
    population:
        Population size N, scalar or aligned with births.
    s0, i0:
        Initial susceptibles (Sbar + D0 after a fit) and infectives.
    seasons:
        Season labels in {1..P} aligned with births. Defaults to
        seasonal_index(len(births), P).
    mode:
        DETERMINISTIC takes I(t) = lambda(t); STOCHASTIC draws
        I(t) ~ Poisson(lambda(t)).

    Notes
    -----
    lambda(t) = beta[season(t-1)] * S(t-1) * I(t-1)**alpha / N(t-1), i.e. the
    season of the step the transmission starts from, which is the row
    convention of the seasonal regression. Negative intensities are clamped
    to zero and I(t) is capped at S(t-1) + B(t). lam[0] is set to I0.
    """
    mode = coerce_enum(mode, SimulationMode)
    births = as_series(births, "births")
    T = births.size
    if T < 1:
        raise ValueError("births must contain at least one step")
    beta = np.atleast_1d(np.asarray(beta, dtype=float))
    period = beta.size
    seasons = seasonal_index(T, period) if seasons is None else np.asarray(seasons, dtype=int)
    if seasons.size != T:
        raise DataAlignmentError(f"seasons has {seasons.size} steps, births has {T}")
    if np.any((seasons < 1) | (seasons > period)):
        raise ValueError(f"season labels must lie in 1..{period}")
    N = as_population(population, T)
    if mode is SimulationMode.STOCHASTIC:
        rng = rng or np.random.default_rng()

    S = np.zeros(T)
    I = np.zeros(T)
    lam = np.zeros(T)
    S[0], I[0], lam[0] = s0, i0, i0
    for t in range(1, T):
        rate = beta[seasons[t - 1] - 1] * S[t - 1] * I[t - 1] ** alpha / N[t - 1]
        lam[t] = max(rate, 0.0)
        if mode is SimulationMode.STOCHASTIC:
            new = float(rng.poisson(lam[t]))
        else:
            new = lam[t]
        I[t] = min(new, max(S[t - 1] + births[t], 0.0))
        S[t] = S[t - 1] + births[t] - I[t]

    return TSIRTrajectory(S=S, I=I, lam=lam, mode=mode)


def spawn_generators(n: int, seed: Optional[int] = DEFAULTS.seed) -> List[np.random.Generator]:
    """Independent generators for n parallel units of work."""
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(n)]


def _run_one(simulate_fn: Callable, kwargs: dict, rng: np.random.Generator):
    return simulate_fn(rng=rng, **kwargs)


def simulate_ensemble(
    simulate_fn: Callable,
    n: int,
    seed: Optional[int] = DEFAULTS.seed,
    executor=None,
    **kwargs,
) -> list:
    """Run n independent trajectories of simulate_fn.

    Each trajectory gets its own generator spawned from seed, so results are
    identical whether or not an executor is used.
    """
    if n < 1:
        raise ValueError("n must be >= 1")
    run = partial(_run_one, simulate_fn, kwargs)
    rngs = spawn_generators(n, seed)
    mapper = executor.map if executor is not None else map
    trajectories = list(mapper(run, rngs))
    logger.debug("Simulated %d trajectories with %s", n, getattr(simulate_fn, "__name__", simulate_fn))
    return trajectories


def final_size_distribution(
    s0: int,
    beta: float,
    i0: int,
    n: int,
    horizon: int = DEFAULTS.horizon,
    seed: Optional[int] = DEFAULTS.seed,
    executor=None,
) -> np.ndarray:
    """Final epidemic sizes (excluding I0) over n chain-binomial runs."""
    runs = simulate_ensemble(
        simulate_chain_binomial,
        n,
        seed=seed,
        executor=executor,
        s0=s0,
        beta=beta,
        i0=i0,
        horizon=horizon,
    )
    return np.asarray([traj.final_size - i0 for traj in runs], dtype=np.int64)
