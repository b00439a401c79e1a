from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from src.epiinfer.errors import NumericalDomainError
from src.epiinfer.profile import (
    ChainBinomialPoint,
    profile_s0,
    profile_sbar,
    profile_search,
)
from src.epiinfer.regression import RegressionFit
from src.epiinfer.series import seasonal_index

from conftest import PERIOD


def test_selects_minimum_and_keeps_fit():
    grid = [1.0, 2.0, 3.0, 4.0]
    result = profile_search(grid, lambda x: ((x - 3.0) ** 2, {"x": x}))
    assert result.best == 3.0
    assert result.value == 0.0
    assert result.fit == {"x": 3.0}
    np.testing.assert_array_equal(result.values, [4.0, 1.0, 0.0, 1.0])


def test_exact_ties_go_to_smallest_candidate():
    grid = [5.0, 2.0, 3.0, 1.0]
    result = profile_search(grid, lambda x: 0.0 if x in (2.0, 3.0) else 1.0)
    assert result.best == 2.0


def test_evaluates_every_grid_point():
    calls = []

    def objective(x):
        calls.append(x)
        return abs(x)

    profile_search([-2.0, -1.0, 0.0, 1.0, 2.0], objective)
    assert calls == [-2.0, -1.0, 0.0, 1.0, 2.0]


def _domain_limited(x):
    if x < 2.0:
        raise NumericalDomainError("outside")
    return x


def test_domain_errors_penalised_by_default():
    result = profile_search([1.0, 2.0, 3.0], _domain_limited, penalty=99.0)
    assert result.best == 2.0
    assert result.values[0] == 99.0
    assert result.penalized.tolist() == [True, False, False]
    assert result.n_penalized == 1


def test_domain_errors_raise_when_requested():
    with pytest.raises(NumericalDomainError):
        profile_search([1.0, 2.0, 3.0], _domain_limited, policy="raise")


def test_all_points_penalised_raises():
    with pytest.raises(NumericalDomainError):
        profile_search([0.0, 1.0], _domain_limited)


def test_non_finite_objective_is_not_silently_kept():
    result = profile_search([1.0, 2.0], lambda x: np.nan if x == 1.0 else 5.0)
    assert result.best == 2.0
    assert result.penalized[0]


def test_empty_grid_raises():
    with pytest.raises(ValueError):
        profile_search([], lambda x: x)


def test_profile_sbar_is_deterministic_and_finds_truth(tsir_truth):
    traj = tsir_truth["trajectory"]
    sbar = float(np.mean(traj.S))
    D = traj.S - sbar
    seasons = seasonal_index(traj.S.size, PERIOD)
    grid = sbar * np.array([0.8, 0.9, 1.0, 1.1, 1.2])

    first = profile_sbar(grid, traj.I, D, tsir_truth["population"], seasons)
    second = profile_sbar(grid, traj.I, D, tsir_truth["population"], seasons)

    assert first.best == sbar
    assert isinstance(first.fit, RegressionFit)
    assert first.best == second.best
    np.testing.assert_array_equal(first.values, second.values)
    np.testing.assert_array_equal(first.fit.coef, second.fit.coef)


def test_executor_gives_same_profile(tsir_truth):
    traj = tsir_truth["trajectory"]
    sbar = float(np.mean(traj.S))
    D = traj.S - sbar
    seasons = seasonal_index(traj.S.size, PERIOD)
    grid = sbar * np.linspace(0.8, 1.2, 9)

    serial = profile_sbar(grid, traj.I, D, tsir_truth["population"], seasons)
    with ThreadPoolExecutor(max_workers=3) as pool:
        parallel = profile_sbar(grid, traj.I, D, tsir_truth["population"], seasons, executor=pool)
    assert serial.best == parallel.best
    np.testing.assert_array_equal(serial.values, parallel.values)


def test_profile_s0_concentrates_beta(reference_incidence):
    total = reference_incidence.sum()
    grid = np.array([total - 10.0, 6000.0, 6500.0, 7000.0, 8000.0])
    result = profile_s0(grid, reference_incidence, beta_bounds=(0.01, 10.0))
    # S0 below the observed total is outside the support.
    assert result.penalized[0]
    assert isinstance(result.fit, ChainBinomialPoint)
    assert result.best == 6500.0
    assert result.fit.beta == pytest.approx(2.3, abs=0.1)


def test_profile_sbar_penalises_infeasible_candidates_under_drop(tsir_truth):
    traj = tsir_truth["trajectory"]
    sbar = float(np.mean(traj.S))
    D = traj.S - sbar
    I = traj.I.copy()
    I[40] = 0.0
    seasons = seasonal_index(I.size, PERIOD)
    trough = -D[:-1].min()
    grid = np.array([-3051.0, 0.5 * trough, sbar, 1.2 * sbar])

    result = profile_sbar(
        grid, I, D, tsir_truth["population"], seasons, zero_policy="drop"
    )
    assert result.penalized.tolist() == [True, True, False, False]
    assert result.best == sbar
    assert result.fit.n_obs == I.size - 3
