"""Time-series helpers shared by the fitting and simulation modules.

Validates aligned case/birth/population series, builds the cyclic seasonal
index and aggregates counts into coarser reporting periods (e.g. weekly to
biweekly).
"""


from typing import Dict

import numpy as np

from .config import DEFAULTS
from .errors import DataAlignmentError


def as_series(x, name: str = "series") -> np.ndarray:
    """Return x as a finite 1D float array."""
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be one-dimensional, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values")
    return arr


def check_aligned(**series: np.ndarray) -> int:
    """Check that all named series share one length and return it."""
    lengths: Dict[str, int] = {name: len(values) for name, values in series.items()}
    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"{name}={n}" for name, n in lengths.items())
        raise DataAlignmentError(f"series lengths differ: {detail}")
    return next(iter(lengths.values()), 0)


def as_population(population, n: int) -> np.ndarray:
    """Population N(t) as a length-n series; a scalar is held constant.

    A series of any other length raises DataAlignmentError.
    """
    N = np.asarray(population, dtype=float)
    if N.ndim == 0:
        return np.full(n, float(N))
    N = as_series(N, "population")
    if N.size != n:
        raise DataAlignmentError(f"population has {N.size} steps, expected {n}")
    return N


def seasonal_index(n: int, period: int = DEFAULTS.period, start: int = 0) -> np.ndarray:
    """Cyclic season labels in {1..period} for n consecutive time steps.

    start shifts the cycle so that step 0 carries label start % period + 1.
    """
    if n < 0:
        raise ValueError("n must be non-negative")
    if period < 1:
        raise ValueError("period must be >= 1")
    return (np.arange(n) + start) % period + 1


def aggregate_counts(x, width: int) -> np.ndarray:
    """Sum consecutive non-overlapping blocks of width observations.

    A trailing block shorter than width is dropped.
    """
    if width < 1:
        raise ValueError("width must be >= 1")
    arr = as_series(x, "counts")
    n_blocks = arr.size // width
    return arr[: n_blocks * width].reshape(n_blocks, width).sum(axis=1)


def cumulative(x) -> np.ndarray:
    """Running total of a per-step series."""
    return np.cumsum(as_series(x))
