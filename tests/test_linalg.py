"""Tests for the dense linear-algebra helpers."""

import numpy as np
import pytest

from src.bpmf.linalg import (
    NOT_FINITE,
    NOT_POSITIVE_DEFINITE,
    cholesky,
    column_mean,
    covariance,
    inverse,
    is_symmetric_positive_definite,
    symmetrize,
)


def test_cholesky_returns_lower_factor_for_spd_matrix():
    """Test that the factor reproduces the input and is lower-triangular."""
    matrix = np.array([[4.0, 2.0], [2.0, 3.0]])

    result = cholesky(matrix)

    assert result.ok
    assert result.reason is None
    np.testing.assert_allclose(result.factor @ result.factor.T, matrix)
    assert result.factor[0, 1] == 0.0


def test_cholesky_reports_non_positive_definite_instead_of_raising():
    """Test that an indefinite matrix yields a failure result."""
    result = cholesky(np.array([[1.0, 2.0], [2.0, 1.0]]))

    assert not result.ok
    assert result.factor is None
    assert result.reason == NOT_POSITIVE_DEFINITE


def test_cholesky_reports_non_finite_entries():
    """Test that NaN input is reported rather than factorized."""
    result = cholesky(np.array([[np.nan, 0.0], [0.0, 1.0]]))

    assert not result.ok
    assert result.reason == NOT_FINITE


def test_inverse_raises_for_singular_matrix():
    """Test that inversion has no fallback."""
    with pytest.raises(np.linalg.LinAlgError):
        inverse(np.array([[1.0, 2.0], [2.0, 4.0]]))


def test_inverse_matches_numpy():
    matrix = np.array([[2.0, 0.5], [0.5, 1.0]])
    np.testing.assert_allclose(inverse(matrix) @ matrix, np.eye(2), atol=1e-12)


def test_symmetrize_averages_with_transpose():
    matrix = np.array([[1.0, 2.0], [4.0, 3.0]])

    result = symmetrize(matrix)

    np.testing.assert_array_equal(result, np.array([[1.0, 3.0], [3.0, 3.0]]))


def test_column_mean_and_covariance_match_numpy():
    """Test moments of a factor matrix against numpy directly."""
    rng = np.random.RandomState(0)
    factors = rng.normal(size=(20, 3))

    np.testing.assert_allclose(column_mean(factors), factors.mean(axis=0))
    np.testing.assert_allclose(covariance(factors), np.cov(factors.T))


def test_covariance_is_two_dimensional_for_single_factor():
    """Test that K = 1 still yields a 1 x 1 matrix."""
    factors = np.array([[1.0], [2.0], [4.0]])

    result = covariance(factors)

    assert result.shape == (1, 1)
    assert result[0, 0] == pytest.approx(np.var([1.0, 2.0, 4.0], ddof=1))


def test_covariance_requires_two_rows():
    with pytest.raises(ValueError, match="at least 2 rows"):
        covariance(np.array([[1.0, 2.0]]))


def test_is_symmetric_positive_definite():
    assert is_symmetric_positive_definite(np.eye(3))
    assert not is_symmetric_positive_definite(np.array([[1.0, 0.5], [0.0, 1.0]]))
    assert not is_symmetric_positive_definite(np.array([[1.0, 2.0], [2.0, 1.0]]))
    assert not is_symmetric_positive_definite(np.ones((2, 3)))
