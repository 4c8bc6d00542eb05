"""Bayesian Probabilistic Matrix Factorization module.

This module contains the Wishart and hyperparameter samplers, the per-entity
Gibbs updater for latent factors, the training loop that ties them together,
and the helpers used to train, persist and query models from rating data.
"""
