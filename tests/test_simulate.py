from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from src.epiinfer.config import SimulationMode
from src.epiinfer.errors import DataAlignmentError
from src.epiinfer.simulate import (
    final_size_distribution,
    simulate_chain_binomial,
    simulate_ensemble,
    simulate_tsir,
    spawn_generators,
)

from conftest import ALPHA, POPULATION, seasonal_beta


@pytest.mark.parametrize("s0", [1, 100, 6500])
@pytest.mark.parametrize("beta", [0.0, 2.3, 50.0])
def test_no_initial_infectives_absorbs_immediately(s0, beta):
    traj = simulate_chain_binomial(s0, beta, 0, rng=np.random.default_rng(1))
    assert len(traj) == 1
    assert traj.extinct
    assert traj.S.tolist() == [s0]


def test_chain_binomial_bookkeeping():
    traj = simulate_chain_binomial(6500, 2.3, 20, rng=np.random.default_rng(7))
    # Susceptibles only lose the new infections.
    np.testing.assert_array_equal(traj.S[0] - traj.S, np.concatenate([[0], np.cumsum(traj.I[1:])]))
    assert np.all(np.diff(traj.S) <= 0)
    assert traj.extinct == (traj.I[-1] == 0)
    # Only the last step may be zero.
    assert np.all(traj.I[:-1] > 0)
    assert traj.final_size == int(traj.I.sum())


def test_chain_binomial_reproducible_with_seed():
    a = simulate_chain_binomial(6500, 2.3, 20, rng=np.random.default_rng(11))
    b = simulate_chain_binomial(6500, 2.3, 20, rng=np.random.default_rng(11))
    np.testing.assert_array_equal(a.I, b.I)


def test_chain_binomial_horizon_caps_length():
    traj = simulate_chain_binomial(10_000, 3.0, 5, horizon=3, rng=np.random.default_rng(0))
    assert len(traj) == 3
    assert not traj.extinct


def test_chain_binomial_deterministic_mode():
    traj = simulate_chain_binomial(6500, 2.3, 20, mode="deterministic")
    assert traj.mode is SimulationMode.DETERMINISTIC
    assert traj.extinct
    expected = int(np.rint(6500 * -np.expm1(-2.3 * 20 / 6500)))
    assert traj.I[1] == expected


def test_chain_binomial_rejects_bad_inputs():
    with pytest.raises(ValueError):
        simulate_chain_binomial(100, -1.0, 1)
    with pytest.raises(ValueError):
        simulate_chain_binomial(100, 1.0, 1, horizon=0)
    with pytest.raises(ValueError):
        simulate_chain_binomial(100, 1.0, 1, mode="chaotic")


def test_tsir_deterministic_follows_recursion():
    beta = seasonal_beta()
    births = np.full(60, 2500.0)
    traj = simulate_tsir(beta, ALPHA, births, POPULATION, s0=139_000.0, i0=500.0)
    assert len(traj) == births.size
    assert traj.mode is SimulationMode.DETERMINISTIC
    for t in (1, 27, 59):
        season = (t - 1) % 26
        lam = beta[season] * traj.S[t - 1] * traj.I[t - 1] ** ALPHA / POPULATION
        assert traj.lam[t] == pytest.approx(lam)
        assert traj.I[t] == pytest.approx(lam)
        assert traj.S[t] == pytest.approx(traj.S[t - 1] + births[t] - traj.I[t])


def test_tsir_stochastic_draws_integers_and_is_seeded():
    beta = seasonal_beta()
    births = np.full(52, 2500.0)
    a = simulate_tsir(beta, ALPHA, births, POPULATION, 139_000.0, 500.0,
                      mode=SimulationMode.STOCHASTIC, rng=np.random.default_rng(5))
    b = simulate_tsir(beta, ALPHA, births, POPULATION, 139_000.0, 500.0,
                      mode="stochastic", rng=np.random.default_rng(5))
    np.testing.assert_array_equal(a.I, b.I)
    np.testing.assert_array_equal(a.I[1:], np.round(a.I[1:]))
    assert np.all(a.S >= 0)


def test_tsir_clamps_negative_intensity_to_zero():
    births = np.full(5, 10.0)
    traj = simulate_tsir([-1.0], 1.0, births, 1000.0, s0=100.0, i0=5.0)
    assert np.all(traj.lam[1:] == 0.0)
    assert np.all(traj.I[1:] == 0.0)


def test_tsir_caps_infections_at_available_susceptibles():
    births = np.full(4, 1.0)
    traj = simulate_tsir([1e6], 1.0, births, 10.0, s0=5.0, i0=5.0)
    assert traj.I[1] == 6.0
    assert traj.S[1] == 0.0


def test_tsir_rejects_unknown_mode():
    with pytest.raises(ValueError):
        simulate_tsir([1.0], 1.0, np.ones(3), 10.0, 5.0, 1.0, mode="random")


def test_spawned_generators_are_independent():
    a, b = spawn_generators(2, seed=1)
    assert a.integers(1 << 30) != b.integers(1 << 30)


def test_ensemble_reproducible_and_executor_invariant():
    kwargs = dict(s0=500, beta=1.8, i0=3, horizon=200)
    serial = simulate_ensemble(simulate_chain_binomial, 20, seed=9, **kwargs)
    again = simulate_ensemble(simulate_chain_binomial, 20, seed=9, **kwargs)
    with ThreadPoolExecutor(max_workers=4) as pool:
        parallel = simulate_ensemble(simulate_chain_binomial, 20, seed=9, executor=pool, **kwargs)
    for x, y, z in zip(serial, again, parallel):
        np.testing.assert_array_equal(x.I, y.I)
        np.testing.assert_array_equal(x.I, z.I)
    # Distinct streams give different epidemics.
    assert len({tuple(t.I.tolist()) for t in serial}) > 1


def test_final_size_distribution():
    sizes = final_size_distribution(500, 1.8, 3, n=50, seed=4)
    assert sizes.shape == (50,)
    assert np.all(sizes >= 0)
    assert np.all(sizes <= 500)


def test_tsir_rejects_misaligned_series():
    births = np.full(6, 100.0)
    with pytest.raises(DataAlignmentError):
        simulate_tsir([20.0], 0.97, births, np.full(5, 1e5), s0=5000.0, i0=50.0)
    with pytest.raises(DataAlignmentError):
        simulate_tsir([20.0], 0.97, births, 1e5, s0=5000.0, i0=50.0, seasons=np.ones(5, dtype=int))
