"""Regular grid study regions for synthetic neighbor relations."""

import itertools
import numpy as np
from typing import Dict, List, Tuple


class GridLattice:
    """
    Rectangular grid of areal units with rook or queen contiguity.

    Rook contiguity links cells sharing an edge; queen contiguity also links
    cells sharing a corner. Any grid with at least two cells is connected
    and has no islands, so it is always a valid IAR neighbor graph.

    Attributes:
        dimensions: Tuple of grid dimensions
        size: Total number of cells
        neighborhood: Either "rook" or "queen"
    """

    def __init__(self, dimensions: Tuple[int, ...], neighborhood: str = "rook"):
        """
        Initialize a grid with given dimensions.

        Args:
            dimensions: Tuple specifying the number of cells in each dimension
            neighborhood: Contiguity rule, "rook" or "queen"
        """
        if neighborhood not in ("rook", "queen"):
            raise ValueError(f"Unknown neighborhood: {neighborhood}")
        if len(dimensions) == 0 or any(int(d) < 1 for d in dimensions):
            raise ValueError(f"Dimensions must be positive, got {dimensions}")

        self.dimensions = tuple(int(d) for d in dimensions)
        self.size = int(np.prod(self.dimensions))
        self.neighborhood = neighborhood
        self._offsets = self._build_offsets()

    def _build_offsets(self) -> List[Tuple[int, ...]]:
        ndim = len(self.dimensions)
        if self.neighborhood == "rook":
            offsets = []
            for axis in range(ndim):
                for step in (-1, 1):
                    offset = [0] * ndim
                    offset[axis] = step
                    offsets.append(tuple(offset))
            return offsets
        return [offset for offset in itertools.product((-1, 0, 1), repeat=ndim)
                if any(offset)]

    def get_neighbors(self, site: int) -> List[int]:
        """
        Get neighboring cells of a given cell.

        Args:
            site: Index of the cell

        Returns:
            Sorted list of neighboring cell indices
        """
        coords = self.site_to_coords(site)
        neighbors = []
        for offset in self._offsets:
            candidate = tuple(c + o for c, o in zip(coords, offset))
            if all(0 <= c < dim for c, dim in zip(candidate, self.dimensions)):
                neighbors.append(self.coords_to_site(candidate))
        return sorted(neighbors)

    def neighbor_relation(self) -> Dict[int, List[int]]:
        """Neighbor relation over all cells, ready for AdjacencyEncoder.encode."""
        return {site: self.get_neighbors(site) for site in range(self.size)}

    def site_to_coords(self, site: int) -> Tuple[int, ...]:
        """Convert cell index to grid coordinates."""
        coords = []
        for dim in reversed(self.dimensions):
            coords.append(site % dim)
            site //= dim
        return tuple(reversed(coords))

    def coords_to_site(self, coords: Tuple[int, ...]) -> int:
        """Convert grid coordinates to cell index."""
        site = 0
        for i, (coord, dim) in enumerate(zip(coords, self.dimensions)):
            site += coord * int(np.prod(self.dimensions[i+1:], dtype=int))
        return site
