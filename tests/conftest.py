"""
Test configuration and fixtures for the spatial IAR project.

This module provides pytest fixtures and configuration for testing the
adjacency encoder, the prior density evaluators and the BYM model.
"""

import numpy as np
import pytest
import tempfile
import shutil
from pathlib import Path

# Set random seed for reproducibility
np.random.seed(42)

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from spatial_iar.core import AdjacencyEncoder, GridLattice


@pytest.fixture(scope="session")
def test_seed():
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture(scope="session")
def temp_dir():
    """Temporary directory for test outputs."""
    temp_path = tempfile.mkdtemp(prefix="spatial_iar_test_")
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def encoder():
    """Encoder with default (strict) options."""
    return AdjacencyEncoder()


@pytest.fixture
def two_region_relation():
    """Two regions that are each other's only neighbor."""
    return {0: [1], 1: [0]}


@pytest.fixture
def path_relation():
    """Five regions on a path 0-1-2-3-4."""
    return {
        0: [1],
        1: [0, 2],
        2: [1, 3],
        3: [2, 4],
        4: [3],
    }


@pytest.fixture
def county_relation():
    """Small labeled study region with a cycle and a pendant region."""
    return {
        "Ada": ["Bee", "Cole"],
        "Bee": ["Ada", "Cole", "Dale"],
        "Cole": ["Ada", "Bee", "Dale"],
        "Dale": ["Bee", "Cole", "Eton"],
        "Eton": ["Dale"],
    }


@pytest.fixture
def disconnected_relation():
    """Two triangles with no link between them."""
    return {
        0: [1, 2], 1: [0, 2], 2: [0, 1],
        3: [4, 5], 4: [3, 5], 5: [3, 4],
    }


@pytest.fixture
def weighted_relation():
    """Triangle with a pendant region and unequal link weights."""
    return {
        0: {1: 0.5, 2: 2.0},
        1: {0: 0.5, 2: 1.0},
        2: {0: 2.0, 1: 1.0, 3: 1.5},
        3: {2: 1.5},
    }


@pytest.fixture
def grid_lattice():
    """4x5 rook-contiguity grid."""
    return GridLattice((4, 5))


@pytest.fixture
def grid_adjacency(encoder, grid_lattice):
    """Encoding of the 4x5 rook grid."""
    return encoder.encode(grid_lattice.neighbor_relation())


@pytest.fixture
def tolerance_config():
    """Standard tolerance configuration for numerical tests."""
    return {
        'rtol': 1e-10,          # Relative tolerance
        'atol': 1e-9,           # Absolute tolerance
        'fd_step': 1e-6,        # Finite difference step
        'fd_rtol': 1e-5         # Finite difference relative tolerance
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual functions/methods"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for module interactions"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds"
    )
    config.addinivalue_line(
        "markers", "numerical: Tests that verify numerical accuracy"
    )
    config.addinivalue_line(
        "markers", "edge_case: Tests for edge cases and error conditions"
    )


def pytest_runtest_setup(item):
    """Setup for each test item - ensure reproducible random state."""
    np.random.seed(42)


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names and paths."""
    for item in items:
        # Add unit marker to unit test files
        if "unit" in Path(str(item.fspath)).parts:
            item.add_marker(pytest.mark.unit)

        # Add integration marker to integration test files
        if "integration" in Path(str(item.fspath)).parts:
            item.add_marker(pytest.mark.integration)

        # Add numerical marker to numerical accuracy tests
        if any(keyword in item.name.lower() for keyword in ['accuracy', 'finite_difference', 'numerical']):
            item.add_marker(pytest.mark.numerical)

        # Add edge_case marker to edge case tests
        if any(keyword in item.name.lower() for keyword in ['edge', 'reject', 'invalid']):
            item.add_marker(pytest.mark.edge_case)
