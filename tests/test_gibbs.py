"""Tests for the per-entity Gibbs updates of latent factors."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from src.bpmf.diagnostics import SamplerDiagnostics
from src.bpmf.gibbs import posterior_covariance, sample_factor, update_factors
from src.bpmf.hyperparams import HyperParameters
from src.bpmf.linalg import CholeskyResult


@pytest.fixture
def ratings() -> csr_matrix:
    """4 users x 3 items; user 1 has no ratings."""
    return csr_matrix(
        np.array([
            [5.0, 3.0, 0.0],
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 4.0],
            [0.0, 2.0, 5.0],
        ])
    )


@pytest.fixture
def hyper() -> HyperParameters:
    return HyperParameters(mean=np.array([0.1, -0.1]), precision=np.eye(2) * 2.0)


def test_single_rating_single_factor_matches_closed_form():
    """Test K = 1: covariance 1 / (alpha + beta * q^2) and the mean."""
    alpha, mu, beta, q, rating, global_mean = 2.0, 0.5, 2.0, 1.5, 4.0, 3.0
    hyper = HyperParameters(mean=np.array([mu]), precision=np.array([[alpha]]))
    rows = np.array([[q]])

    covar = posterior_covariance(rows, hyper, beta)

    expected_var = 1.0 / (alpha + beta * q ** 2)
    assert covar.shape == (1, 1)
    assert covar[0, 0] == pytest.approx(expected_var)

    expected_mean = expected_var * (beta * q * (rating - global_mean) + alpha * mu)
    vector, reason = sample_factor(
        rows, np.array([rating - global_mean]), hyper, beta, noise=np.array([0.0])
    )
    assert reason is None
    assert vector[0] == pytest.approx(expected_mean)

    vector, _ = sample_factor(
        rows, np.array([rating - global_mean]), hyper, beta, noise=np.array([1.0])
    )
    assert vector[0] == pytest.approx(expected_mean + np.sqrt(expected_var))


def test_update_single_user_with_one_rating():
    """Test one user, one rating, K = 1 through the full pass."""
    alpha, mu, beta, q = 2.0, 0.5, 2.0, 1.5
    hyper = HyperParameters(mean=np.array([mu]), precision=np.array([[alpha]]))
    own = np.array([[0.0]])
    opposite = np.array([[q]])

    updated = update_factors(
        csr_matrix(np.array([[4.0]])), own, opposite, hyper, beta,
        global_mean=3.0, random_state=np.random.RandomState(7),
    )

    z = np.random.RandomState(7).normal(0.0, 1.0, size=(1, 1))[0, 0]
    var = 1.0 / (alpha + beta * q ** 2)
    mean = var * (beta * q * 1.0 + alpha * mu)
    assert updated == 1
    assert own[0, 0] == pytest.approx(mean + np.sqrt(var) * z)


def test_posterior_mean_matches_normal_equations(hyper):
    """Test m = Sigma (beta M^T r + alpha mu) for several ratings."""
    rows = np.array([[0.5, 1.0], [1.5, -0.5], [0.2, 0.3]])
    residuals = np.array([1.0, -0.5, 0.25])
    beta = 2.0

    vector, _ = sample_factor(rows, residuals, hyper, beta, noise=np.zeros(2))

    covar = np.linalg.inv(hyper.precision + beta * rows.T @ rows)
    expected = covar @ (beta * rows.T @ residuals + hyper.precision @ hyper.mean)
    np.testing.assert_allclose(vector, expected, rtol=1e-10)


def test_entity_without_ratings_keeps_bit_identical_row(ratings, hyper):
    rng = np.random.RandomState(0)
    own = rng.uniform(size=(4, 2))
    opposite = rng.uniform(size=(3, 2))
    before = own[1].copy()
    diagnostics = SamplerDiagnostics()

    updated = update_factors(
        ratings, own, opposite, hyper, 2.0, global_mean=3.0,
        random_state=1, diagnostics=diagnostics,
    )

    assert updated == 3
    assert np.array_equal(own[1], before)
    assert diagnostics.empty_skipped == 1
    assert diagnostics.factor_fallbacks == 0


def test_opposite_block_is_not_modified(ratings, hyper):
    rng = np.random.RandomState(0)
    own = rng.uniform(size=(4, 2))
    opposite = rng.uniform(size=(3, 2))
    snapshot = opposite.copy()

    update_factors(ratings, own, opposite, hyper, 2.0, 3.0, random_state=1)

    np.testing.assert_array_equal(opposite, snapshot)


def test_failed_cholesky_keeps_rows(ratings, hyper, monkeypatch):
    """Test the silent fallback when a posterior covariance is not PD."""
    monkeypatch.setattr(
        "src.bpmf.gibbs.cholesky",
        lambda matrix: CholeskyResult(factor=None, reason="not positive definite"),
    )
    rng = np.random.RandomState(0)
    own = rng.uniform(size=(4, 2))
    opposite = rng.uniform(size=(3, 2))
    before = own.copy()
    diagnostics = SamplerDiagnostics()

    updated = update_factors(
        ratings, own, opposite, hyper, 2.0, 3.0,
        random_state=1, diagnostics=diagnostics,
    )

    assert updated == 0
    np.testing.assert_array_equal(own, before)
    assert diagnostics.factor_fallbacks == 3
    assert diagnostics.empty_skipped == 1


def test_thread_pool_gives_same_result_as_sequential(hyper):
    rng = np.random.RandomState(3)
    dense = rng.randint(0, 6, size=(40, 25)).astype(float)
    ratings = csr_matrix(dense)
    opposite = rng.uniform(size=(25, 2))
    sequential = rng.uniform(size=(40, 2))
    parallel = sequential.copy()

    update_factors(ratings, sequential, opposite, hyper, 2.0, 2.5, random_state=11)
    update_factors(
        ratings, parallel, opposite, hyper, 2.0, 2.5, random_state=11, n_jobs=4
    )

    np.testing.assert_array_equal(sequential, parallel)


def test_rejects_mismatched_shapes(ratings, hyper):
    with pytest.raises(ValueError, match="does not match"):
        update_factors(
            ratings, np.zeros((3, 2)), np.zeros((3, 2)), hyper, 2.0, 3.0
        )
