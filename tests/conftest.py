import numpy as np
import pytest

from src.epiinfer.simulate import simulate_tsir


PERIOD = 26
ALPHA = 0.97
POPULATION = 3.3e6
BIRTHS_PER_STEP = 2500.0


def mean_chain_binomial(s0, beta, i0, max_steps=200):
    """Incidence equal to the rounded binomial mean at every step.

    Uses the likelihood's bookkeeping: S(t) = S0 - sum_{k<=t} I(k).
    """
    incidence = [i0]
    while len(incidence) < max_steps:
        S = np.floor(s0 - np.sum(incidence))
        p = -np.expm1(-beta * incidence[-1] / s0)
        new = int(np.rint(S * p))
        incidence.append(new)
        if new == 0:
            break
    return np.asarray(incidence, dtype=float)


def seasonal_beta(period=PERIOD, mean=30.0, amplitude=0.1):
    s = np.arange(period)
    return mean * (1.0 + amplitude * np.cos(2.0 * np.pi * s / period))


@pytest.fixture
def reference_incidence():
    return mean_chain_binomial(6500.0, 2.3, 20)


@pytest.fixture
def tsir_truth():
    beta = seasonal_beta()
    births = np.full(PERIOD * 4, BIRTHS_PER_STEP)
    traj = simulate_tsir(
        beta,
        ALPHA,
        births,
        POPULATION,
        s0=139_000.0,
        i0=500.0,
        mode="deterministic",
    )
    return {
        "beta": beta,
        "alpha": ALPHA,
        "births": births,
        "population": POPULATION,
        "trajectory": traj,
    }
