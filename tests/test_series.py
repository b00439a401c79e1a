import numpy as np
import pytest

from src.epiinfer.errors import DataAlignmentError
from src.epiinfer.series import (
    aggregate_counts,
    as_series,
    check_aligned,
    cumulative,
    seasonal_index,
)


def test_seasonal_index_is_cyclic_and_one_based():
    labels = seasonal_index(60, period=26)
    assert labels[0] == 1
    assert labels[25] == 26
    assert labels[26] == 1
    assert set(labels.tolist()) == set(range(1, 27))


def test_seasonal_index_start_offset():
    labels = seasonal_index(3, period=4, start=3)
    assert labels.tolist() == [4, 1, 2]


def test_aggregate_counts_drops_partial_block():
    weekly = np.arange(1, 8)
    assert aggregate_counts(weekly, 2).tolist() == [3.0, 7.0, 11.0]


def test_aggregate_counts_rejects_bad_width():
    with pytest.raises(ValueError):
        aggregate_counts([1, 2, 3], 0)


def test_check_aligned_reports_lengths():
    with pytest.raises(DataAlignmentError, match="births=3"):
        check_aligned(cases=np.zeros(4), births=np.zeros(3))
    assert check_aligned(cases=np.zeros(4), births=np.zeros(4)) == 4


def test_as_series_rejects_nan_and_2d():
    with pytest.raises(ValueError):
        as_series([1.0, np.nan])
    with pytest.raises(ValueError):
        as_series(np.zeros((2, 2)))


def test_cumulative():
    assert cumulative([1, 2, 3]).tolist() == [1.0, 3.0, 6.0]
