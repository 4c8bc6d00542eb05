"""Bayesian Probabilistic Matrix Factorization training loop.

Salakhutdinov and Mnih, "Bayesian Probabilistic Matrix Factorization using
Markov Chain Monte Carlo", ICML 2008.

Each iteration samples the user and item hyperparameters, then runs one
Gibbs pass over all users followed by one pass over all items, and finally
recomputes the training loss. The stopping decision is delegated to a
convergence predicate supplied by the caller.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix, spmatrix
from sklearn.exceptions import NotFittedError
from sklearn.utils import check_random_state

from src.bpmf.convergence import ConvergencePredicate, never_converge
from src.bpmf.diagnostics import SamplerDiagnostics
from src.bpmf.evaluation import evaluate
from src.bpmf.exceptions import NumericalFailureError
from src.bpmf.gibbs import update_factors
from src.bpmf.hyperparams import (
    GaussianWishartPrior,
    HyperParameters,
    sample_hyperparameters,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Model configuration constants
DEFAULT_NUM_FACTORS = 10
DEFAULT_MAX_ITERS = 100
DEFAULT_BETA = 2.0
DEFAULT_INIT_LOW = 0.0
DEFAULT_INIT_HIGH = 1.0
DEFAULT_RANDOM_STATE = 42

# Errors that abort a run; anything else is a bug and propagates untouched
NUMERICAL_ERRORS = (np.linalg.LinAlgError, FloatingPointError, ValueError)


@dataclass
class BPMFConfig:
    """Run configuration.

    Attributes:
        num_factors: Latent dimensionality K.
        max_iters: Maximum number of Gibbs iterations.
        beta: Observation-noise precision.
        user_prior: Prior constants of the user block (default prior if None).
        item_prior: Prior constants of the item block (default prior if None).
        init_low: Lower bound of the uniform initial factor distribution.
        init_high: Upper bound of the uniform initial factor distribution.
        random_state: Seed (or RandomState) for every random draw of a run.
        n_jobs: Worker threads for the per-entity factor updates.
    """

    num_factors: int = DEFAULT_NUM_FACTORS
    max_iters: int = DEFAULT_MAX_ITERS
    beta: float = DEFAULT_BETA
    user_prior: Optional[GaussianWishartPrior] = None
    item_prior: Optional[GaussianWishartPrior] = None
    init_low: float = DEFAULT_INIT_LOW
    init_high: float = DEFAULT_INIT_HIGH
    random_state: Union[None, int, np.random.RandomState] = DEFAULT_RANDOM_STATE
    n_jobs: int = 1

    def validate(self) -> None:
        """Check the configuration.

        Raises:
            ValueError: If a value is out of range or a prior has the wrong
                dimensionality.
        """
        if self.num_factors < 1:
            raise ValueError(f"num_factors must be positive, got {self.num_factors}")
        if self.max_iters < 1:
            raise ValueError(f"max_iters must be positive, got {self.max_iters}")
        if self.beta <= 0:
            raise ValueError(f"beta must be positive, got {self.beta}")
        if self.init_low >= self.init_high:
            raise ValueError(
                f"init_low ({self.init_low}) must be below init_high ({self.init_high})"
            )
        if self.n_jobs == 0:
            raise ValueError("n_jobs must not be 0")
        for name in ("user_prior", "item_prior"):
            prior = getattr(self, name)
            if prior is None:
                continue
            if prior.num_factors != self.num_factors:
                raise ValueError(
                    f"{name} has {prior.num_factors} factors, "
                    f"expected {self.num_factors}"
                )
            prior.validate()


@dataclass
class IterationReport:
    """Summary of one completed iteration."""

    iteration: int
    loss: float
    train_rmse: float
    test_rmse: Optional[float] = None
    test_mae: Optional[float] = None
    elapsed_ms: float = 0.0
    fallbacks: dict = field(default_factory=dict)


IterationCallback = Callable[["BPMF", IterationReport], None]


class BPMF:
    """Two-block Gibbs sampler for Bayesian matrix factorization.

    After :meth:`train` the sampled factors are available as ``P`` (users x K)
    and ``Q`` (items x K), and the block hyperparameters as ``user_hyper``
    and ``item_hyper``. If a run aborts, these hold the state of the last
    fully completed iteration.
    """

    def __init__(
        self,
        config: BPMFConfig,
        train_matrix: spmatrix,
        test_matrix: Optional[spmatrix] = None,
        global_mean: Optional[float] = None,
        convergence: ConvergencePredicate = never_converge,
    ):
        """Initialize the model.

        Args:
            config: Run configuration.
            train_matrix: Sparse users x items matrix of observed ratings.
                Stored zeros are treated as unobserved.
            test_matrix: Optional held-out ratings of the same shape, scored
                after every iteration.
            global_mean: Mean rating used to center residuals. Defaults to
                the mean of the observed training ratings.
            convergence: Predicate ``(iteration, loss) -> bool`` checked after
                every iteration.

        Raises:
            ValueError: If the configuration or the matrices are invalid.
        """
        config.validate()
        self.config = config

        train = csr_matrix(train_matrix, dtype=np.float64, copy=True)
        train.eliminate_zeros()
        if train.nnz == 0:
            raise ValueError("Cannot train on empty ratings matrix")

        num_users, num_items = train.shape
        if num_users < 2 or num_items < 2:
            raise ValueError(
                f"Need at least 2 users and 2 items, got {num_users}x{num_items}"
            )

        self.train_matrix = train
        self._train_by_item = train.T.tocsr()

        self.test_matrix = None
        if test_matrix is not None:
            test = csr_matrix(test_matrix, dtype=np.float64)
            if test.shape != train.shape:
                raise ValueError(
                    f"Test matrix shape {test.shape} does not match "
                    f"training shape {train.shape}"
                )
            self.test_matrix = test

        self.global_mean = (
            float(train.data.mean()) if global_mean is None else float(global_mean)
        )
        self.convergence = convergence

        k = config.num_factors
        self.user_prior = config.user_prior or GaussianWishartPrior.default(k)
        self.item_prior = config.item_prior or GaussianWishartPrior.default(k)

        # Observed positive ratings used for the training loss
        entries = coo_matrix(train)
        positive = entries.data > 0
        self._loss_users = entries.row[positive]
        self._loss_items = entries.col[positive]
        self._loss_ratings = entries.data[positive]

        self.P: Optional[np.ndarray] = None
        self.Q: Optional[np.ndarray] = None
        self.user_hyper: Optional[HyperParameters] = None
        self.item_hyper: Optional[HyperParameters] = None
        self.initial_loss: Optional[float] = None
        self.history: List[IterationReport] = []
        self.last_completed_iteration = 0
        self.diagnostics = SamplerDiagnostics()
        self._rng: Optional[np.random.RandomState] = None

        logger.info(
            f"Initialized BPMF: {num_users} users, {num_items} items, "
            f"{train.nnz} ratings, K={k}, global mean={self.global_mean:.4f}"
        )

    @property
    def num_users(self) -> int:
        return self.train_matrix.shape[0]

    @property
    def num_items(self) -> int:
        return self.train_matrix.shape[1]

    def initialize(self) -> None:
        """Draw initial factors and moment-matched hyperparameters.

        Raises:
            NumericalFailureError: If the covariance of the initial factors
                cannot be inverted.
        """
        cfg = self.config
        k = cfg.num_factors
        self._rng = check_random_state(cfg.random_state)

        self.P = self._rng.uniform(cfg.init_low, cfg.init_high, size=(self.num_users, k))
        self.Q = self._rng.uniform(cfg.init_low, cfg.init_high, size=(self.num_items, k))

        try:
            self.user_hyper = HyperParameters.from_factors(self.P)
            self.item_hyper = HyperParameters.from_factors(self.Q)
        except NUMERICAL_ERRORS as e:
            logger.error(f"Initialization failed: {e}", exc_info=True)
            raise NumericalFailureError(0, 0, e) from e

        self.history = []
        self.last_completed_iteration = 0
        self.diagnostics.reset()
        self.initial_loss = self.loss()

        logger.debug(f"Initial loss: {self.initial_loss:.6f}")

    def train(
        self,
        callback: Optional[IterationCallback] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> "BPMF":
        """Run the Gibbs sampler until convergence or ``max_iters``.

        Args:
            callback: Called as ``callback(model, report)`` after every
                completed iteration.
            stop_event: Checked before each iteration; once set, training
                stops and keeps the last completed iteration.

        Returns:
            The trained model (self).

        Raises:
            NumericalFailureError: If an iteration fails without a fallback.
                The model is rolled back to the last completed iteration
                before the error is raised.
        """
        cfg = self.config
        self.initialize()

        reset = getattr(self.convergence, "reset", None)
        if reset is not None:
            reset()

        logger.info("=" * 60)
        logger.info(f"Starting BPMF training for at most {cfg.max_iters} iterations")
        logger.info("=" * 60)

        for iteration in range(1, cfg.max_iters + 1):
            if stop_event is not None and stop_event.is_set():
                logger.warning(
                    f"Training stopped before iteration {iteration}",
                    extra={"last_completed_iteration": self.last_completed_iteration},
                )
                break

            report = self._run_iteration(iteration)
            self.history.append(report)
            self.last_completed_iteration = iteration

            logger.info(
                f"iter {iteration}: loss={report.loss:.6f}, "
                f"train_rmse={report.train_rmse:.6f}"
                + (
                    f", test_rmse={report.test_rmse:.6f}"
                    if report.test_rmse is not None
                    else ""
                ),
                extra={
                    "iteration": iteration,
                    "loss": report.loss,
                    "elapsed_ms": report.elapsed_ms,
                },
            )

            if callback is not None:
                callback(self, report)

            if self.convergence(iteration, report.loss):
                logger.info(f"Converged at iteration {iteration}")
                break

        logger.info(
            "BPMF training completed",
            extra={
                "iterations": self.last_completed_iteration,
                "fallbacks": self.diagnostics.snapshot(),
            },
        )
        return self

    def _run_iteration(self, iteration: int) -> IterationReport:
        """One full sweep, rolled back if it fails."""
        cfg = self.config
        start_time = time.time()
        saved = (
            self.P.copy(),
            self.Q.copy(),
            self.user_hyper.copy(),
            self.item_hyper.copy(),
        )
        saved_counts = self.diagnostics.snapshot()

        try:
            self.user_hyper = sample_hyperparameters(
                self.P, self.user_prior, self.user_hyper,
                random_state=self._rng, diagnostics=self.diagnostics, block="user",
            )
            self.item_hyper = sample_hyperparameters(
                self.Q, self.item_prior, self.item_hyper,
                random_state=self._rng, diagnostics=self.diagnostics, block="item",
            )

            # users first: the item pass must see the freshly sampled P
            update_factors(
                self.train_matrix, self.P, self.Q, self.user_hyper, cfg.beta,
                self.global_mean, random_state=self._rng,
                diagnostics=self.diagnostics, n_jobs=cfg.n_jobs, block="user",
            )
            update_factors(
                self._train_by_item, self.Q, self.P, self.item_hyper, cfg.beta,
                self.global_mean, random_state=self._rng,
                diagnostics=self.diagnostics, n_jobs=cfg.n_jobs, block="item",
            )

            loss = self.loss()
            if not np.isfinite(loss):
                raise FloatingPointError(f"Training loss is not finite ({loss})")

        except NUMERICAL_ERRORS as e:
            self.P, self.Q, self.user_hyper, self.item_hyper = saved
            self.diagnostics.restore(saved_counts)
            logger.error(
                f"Iteration {iteration} failed: {e}",
                extra={
                    "iteration": iteration,
                    "last_completed_iteration": self.last_completed_iteration,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise NumericalFailureError(
                iteration, self.last_completed_iteration, e
            ) from e

        report = IterationReport(
            iteration=iteration,
            loss=loss,
            train_rmse=float(np.sqrt(2.0 * loss / max(len(self._loss_ratings), 1))),
            fallbacks=self.diagnostics.snapshot(),
        )
        if self.test_matrix is not None:
            metrics = evaluate(self, self.test_matrix)
            report.test_rmse = metrics["rmse"]
            report.test_mae = metrics["mae"]

        report.elapsed_ms = round((time.time() - start_time) * 1000, 2)
        return report

    def _check_fitted(self) -> None:
        if self.P is None or self.Q is None:
            raise NotFittedError("BPMF model has not been trained yet")

    def loss(self) -> float:
        """Half the sum of squared errors over observed positive ratings."""
        self._check_fitted()
        predictions = self.predict_many(self._loss_users, self._loss_items)
        errors = self._loss_ratings - predictions
        return float(0.5 * np.dot(errors, errors))

    def predict(self, user: int, item: int) -> float:
        """Predicted rating ``global_mean + P[user] . Q[item]``."""
        self._check_fitted()
        return float(self.global_mean + self.P[user].dot(self.Q[item]))

    def predict_many(self, users: np.ndarray, items: np.ndarray) -> np.ndarray:
        """Vectorized :meth:`predict` over aligned index arrays."""
        self._check_fitted()
        users = np.asarray(users, dtype=np.intp)
        items = np.asarray(items, dtype=np.intp)
        return self.global_mean + np.einsum("ij,ij->i", self.P[users], self.Q[items])

    def __getstate__(self) -> dict:
        state = self.__dict__.copy()
        # convergence predicates may be closures or lambdas
        state["convergence"] = None
        return state

    def __setstate__(self, state: dict) -> None:
        self.__dict__.update(state)
        if self.convergence is None:
            self.convergence = never_converge

    def __repr__(self) -> str:
        return (
            f"BPMF(num_factors={self.config.num_factors}, "
            f"max_iters={self.config.max_iters})"
        )
