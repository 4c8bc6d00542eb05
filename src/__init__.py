"""BPMF: Bayesian Probabilistic Matrix Factorization for rating data.

This package provides a Gibbs-sampling recommender that learns user and item
latent factors from a sparse ratings matrix, treating the factors as random
variables under hierarchical Gaussian-Wishart priors.

Modules:
    bpmf: Sampler, training loop, data utilities and inference helpers
"""

__version__ = "0.1.0"
