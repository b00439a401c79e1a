"""Joint maximum-likelihood fit of (S0, beta) for the chain-binomial model.

The likelihood surface has flat pieces (S(t) is floored) and saturating
probabilities, so the minimisation uses Nelder-Mead rather than a gradient
method. Standard errors come from a central finite-difference Hessian of the
negative log-likelihood at the optimum.
"""


from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, Sequence, Tuple

import numpy as np
from scipy.optimize import minimize
from scipy.stats import norm

from .config import DEFAULTS, DomainPolicy
from .errors import ConvergenceFailure, NumericalDomainError
from .likelihood import as_incidence, chain_binomial_nll

logger = logging.getLogger(__name__)

PARAM_NAMES = ("s0", "beta")


@dataclass(frozen=True)
class JointFit:
    s0: float
    beta: float
    nll: float
    se: np.ndarray
    cov: np.ndarray = field(repr=False)
    corr: np.ndarray = field(repr=False)
    ci: Dict[str, Tuple[float, float]]
    level: float
    n_iter: int

    @property
    def params(self) -> np.ndarray:
        return np.array([self.s0, self.beta])

    @property
    def correlation(self) -> float:
        """Correlation between the S0 and beta estimates."""
        return float(self.corr[0, 1])


def numerical_hessian(
    f: Callable[[np.ndarray], float],
    x: Sequence[float],
    rel_step: float = DEFAULTS.hessian_rel_step,
) -> np.ndarray:
    """Central finite-difference Hessian of f at x with relative steps."""
    x = np.asarray(x, dtype=float)
    n = x.size
    h = rel_step * np.maximum(np.abs(x), 1.0)
    f0 = f(x)
    H = np.zeros((n, n))
    for i in range(n):
        ei = np.zeros(n)
        ei[i] = h[i]
        H[i, i] = (f(x + ei) - 2.0 * f0 + f(x - ei)) / h[i] ** 2
        for j in range(i + 1, n):
            ej = np.zeros(n)
            ej[j] = h[j]
            H[i, j] = H[j, i] = (
                f(x + ei + ej) - f(x + ei - ej) - f(x - ei + ej) + f(x - ei - ej)
            ) / (4.0 * h[i] * h[j])
    return H


def covariance_from_hessian(H: np.ndarray) -> np.ndarray:
    """Invert a Hessian, failing unless it is positive definite."""
    try:
        np.linalg.cholesky(H)
    except np.linalg.LinAlgError:
        logger.warning("Hessian is not positive definite: eigenvalues %s", np.linalg.eigvalsh(H))
        raise NumericalDomainError(
            "negative log-likelihood curvature is not positive definite at the optimum"
        ) from None
    return np.linalg.inv(H)


def fit_chain_binomial(
    incidence,
    s0_init: float,
    beta_init: float,
    xatol: float = DEFAULTS.xatol,
    fatol: float = DEFAULTS.fatol,
    maxiter: int = DEFAULTS.maxiter,
    level: float = DEFAULTS.ci_level,
    rel_step: float = DEFAULTS.hessian_rel_step,
    penalty: float = DEFAULTS.domain_penalty,
) -> JointFit:
    """Jointly estimate S0 and beta by Nelder-Mead.

    Parameters
    ----------
    incidence:
        Observed counts I(0..T-1).
    s0_init, beta_init:
        Starting point of the simplex.
    xatol, fatol, maxiter:
        Convergence tolerances and iteration cap passed to Nelder-Mead.
    level:
        Confidence level of the Wald intervals.
    rel_step:
        Relative finite-difference step for the Hessian.

    Returns
    -------
    JointFit

    Raises
    ------
    ConvergenceFailure
        If maxiter is reached first; the best point found is attached.
    NumericalDomainError
        If the optimum is outside the model's support or its curvature is
        not positive definite.
    """
    if not 0 < level < 1:
        raise ValueError("level must be in (0,1)")
    I = as_incidence(incidence)

    def objective(x: np.ndarray) -> float:
        return chain_binomial_nll(x[0], x[1], I, policy=DomainPolicy.PENALIZE, penalty=penalty)

    logger.debug("Nelder-Mead start at S0=%.6g beta=%.6g", s0_init, beta_init)
    res = minimize(
        objective,
        x0=np.array([s0_init, beta_init], dtype=float),
        method="Nelder-Mead",
        options={"xatol": xatol, "fatol": fatol, "maxiter": maxiter, "maxfev": 2 * maxiter},
    )
    if not res.success:
        raise ConvergenceFailure(str(res.message), res.x, res.fun, res.nit)
    if res.fun >= penalty:
        raise NumericalDomainError(f"optimum {res.x.tolist()} is outside the model's support")

    def strict(x: np.ndarray) -> float:
        return chain_binomial_nll(x[0], x[1], I, policy=DomainPolicy.RAISE)

    H = numerical_hessian(strict, res.x, rel_step=rel_step)
    cov = covariance_from_hessian(H)
    se = np.sqrt(np.diag(cov))
    corr = cov / np.outer(se, se)

    z = float(norm.ppf(0.5 + level / 2.0))
    ci = {
        name: (float(est - z * s), float(est + z * s))
        for name, est, s in zip(PARAM_NAMES, res.x, se)
    }

    logger.info(
        "Chain-binomial fit: S0=%.2f (se %.2f) beta=%.4f (se %.4f) nll=%.4f in %d iterations",
        res.x[0],
        se[0],
        res.x[1],
        se[1],
        res.fun,
        res.nit,
    )
    return JointFit(
        s0=float(res.x[0]),
        beta=float(res.x[1]),
        nll=float(res.fun),
        se=se,
        cov=cov,
        corr=corr,
        ci=ci,
        level=float(level),
        n_iter=int(res.nit),
    )
