"""Exception types raised by the adjacency encoder and density evaluators."""


class SpatialIARError(Exception):
    """Base class for all errors raised by spatial_iar."""


class InvalidGraph(SpatialIARError, ValueError):
    """
    The neighbor relation cannot define an IAR prior.

    Raised for asymmetric relations, self-neighbors, references to unknown
    regions, regions without neighbors and malformed link weights.
    """


class InvalidParameter(SpatialIARError, ValueError):
    """A density parameter lies outside its admissible range."""


class DimensionMismatch(SpatialIARError, ValueError):
    """A vector length disagrees with the number of regions it describes."""
