"""
Spatial IAR Package

Sparse adjacency encodings and log-density evaluators for intrinsic and
conditional autoregressive priors on areal data, for use inside an external
MCMC sampler.
"""

__version__ = "0.1.0"

from . import core
from . import models
from .core import AdjacencyEncoder, SparseAdjacency, InvalidGraph, InvalidParameter, DimensionMismatch
from .models import IARDensityEvaluator

__all__ = [
    "core", "models",
    "AdjacencyEncoder", "SparseAdjacency",
    "InvalidGraph", "InvalidParameter", "DimensionMismatch",
    "IARDensityEvaluator",
]
