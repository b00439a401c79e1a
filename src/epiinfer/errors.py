"""Exceptions raised by the inference engine.

All errors share the EpiInferError base so callers can catch everything the
engine raises in one place. Input-shape problems also derive from ValueError,
likelihood domain problems from ArithmeticError and optimizer failures from
RuntimeError, so generic handlers keep working.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class EpiInferError(Exception):
    """Base class for inference engine errors."""


class DataAlignmentError(EpiInferError, ValueError):
    """Input series have mismatched length or alignment."""


class InsufficientDataError(EpiInferError, ValueError):
    """Too few observations for the requested fit."""


class IdentifiabilityError(EpiInferError, ValueError):
    """Seasonal design matrix is missing one or more season levels."""

    def __init__(self, message: str, missing: Optional[np.ndarray] = None) -> None:
        super().__init__(message)
        self.missing = missing


class NumericalDomainError(EpiInferError, ArithmeticError):
    """A probability or log argument fell outside its valid domain."""


class ConvergenceFailure(EpiInferError, RuntimeError):
    """An iterative optimizer ran out of iterations before meeting tolerance.

    The best point found is kept on the exception so the caller can decide
    whether to accept it, restart from elsewhere or give up.
    """

    def __init__(self, message: str, x: np.ndarray, fun: float, n_iter: int) -> None:
        super().__init__(message)
        self.message = message
        self.x = np.asarray(x, dtype=float)
        self.fun = float(fun)
        self.n_iter = int(n_iter)

    def __str__(self) -> str:
        return f"{self.message} (best x={self.x.tolist()}, fun={self.fun:.6g}, n_iter={self.n_iter})"
