"""
Unit tests for grid study regions.
"""

import pytest

from spatial_iar.core import GridLattice


class TestGridLattice:
    """Test grid coordinates and contiguity."""

    def test_coordinate_round_trip(self, grid_lattice):
        for site in range(grid_lattice.size):
            assert grid_lattice.coords_to_site(grid_lattice.site_to_coords(site)) == site

    def test_rook_neighbors(self, grid_lattice):
        """Corner, edge and interior cells of a 4x5 grid."""
        assert grid_lattice.get_neighbors(0) == [1, 5]
        assert grid_lattice.get_neighbors(2) == [1, 3, 7]
        assert grid_lattice.get_neighbors(6) == [1, 5, 7, 11]

    def test_queen_neighbors(self):
        lattice = GridLattice((3, 3), neighborhood="queen")

        assert lattice.get_neighbors(4) == [0, 1, 2, 3, 5, 6, 7, 8]
        assert lattice.get_neighbors(0) == [1, 3, 4]

    def test_encoded_edge_count(self, grid_adjacency):
        """A 4x5 rook grid has 4*4 + 5*3 links."""
        assert grid_adjacency.n_regions == 20
        assert grid_adjacency.n_edges == 31
        assert grid_adjacency.n_components == 1

    def test_neighbor_relation_is_symmetric(self):
        relation = GridLattice((3, 4, 2), neighborhood="queen").neighbor_relation()
        for site, neighbors in relation.items():
            for other in neighbors:
                assert site in relation[other]

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            GridLattice((3, 3), neighborhood="bishop")
        with pytest.raises(ValueError):
            GridLattice((0, 3))
