"""Spatial prior densities and the BYM Poisson model."""

from .iar import IARDensityEvaluator, iar_log_density
from .car import SparseCARDensityEvaluator
from .bym import BYMPoissonModel, BYMParameters, BYMPriors

__all__ = [
    "IARDensityEvaluator", "iar_log_density",
    "SparseCARDensityEvaluator",
    "BYMPoissonModel", "BYMParameters", "BYMPriors",
]
