"""Multilinear face model fitting: tensor models, pose helpers and weight optimisers."""

__version__ = "0.1.0"