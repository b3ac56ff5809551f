"""Core functionality: adjacency encoding, errors and storage formats."""

from .exceptions import SpatialIARError, InvalidGraph, InvalidParameter, DimensionMismatch
from .adjacency import AdjacencyEncoder, EncoderConfig, SparseAdjacency, encode_neighbors
from .lattice import GridLattice
from .io import save_adjacency, load_adjacency, to_sampler_data, from_nb_list

__all__ = [
    "SpatialIARError", "InvalidGraph", "InvalidParameter", "DimensionMismatch",
    "AdjacencyEncoder", "EncoderConfig", "SparseAdjacency", "encode_neighbors",
    "GridLattice",
    "save_adjacency", "load_adjacency", "to_sampler_data", "from_nb_list",
]
