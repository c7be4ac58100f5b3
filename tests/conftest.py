"""Pytest configuration and shared fixtures for sgrid tests."""

import pytest
import numpy as np

from sgrid.grid import SparseGrid


def load_function(grid, func):
    """Load ``func`` (rows of points -> rows of outputs) on the needed points."""
    points = grid.get_needed_points()
    values = np.array([np.atleast_1d(func(x)) for x in points], dtype=float)
    grid.load_needed_points(values)
    return values


def random_points(dimensions, count=20, low=-1.0, high=1.0, seed=42):
    """Reproducible query points inside a box."""
    rng = np.random.default_rng(seed)
    return rng.uniform(low, high, size=(count, dimensions))


# Fixtures for grids


@pytest.fixture
def cc_grid_2d():
    """Two dimensional Clenshaw-Curtis grid of level 3 (29 points)."""
    grid = SparseGrid(acceleration="none")
    grid.make_global_grid(2, 1, 3, "level", "clenshaw-curtis")
    return grid


@pytest.fixture
def leja_grid():
    """Two dimensional Leja sequence grid of depth 3 (10 points)."""
    grid = SparseGrid(acceleration="none")
    grid.make_sequence_grid(2, 1, 3, "level", "leja")
    return grid


@pytest.fixture
def localp_grid():
    """Two dimensional piecewise linear grid of depth 3."""
    grid = SparseGrid(acceleration="none")
    grid.make_local_polynomial_grid(2, 1, 3, 1, "localp")
    return grid


@pytest.fixture
def wavelet_grid():
    """One dimensional order 1 wavelet grid of depth 2."""
    grid = SparseGrid(acceleration="none")
    grid.make_wavelet_grid(1, 1, 2, 1)
    return grid


@pytest.fixture
def fourier_grid():
    """Two dimensional Fourier grid of depth 2."""
    grid = SparseGrid(acceleration="none")
    grid.make_fourier_grid(2, 1, 2, "level")
    return grid


@pytest.fixture(params=["global", "sequence", "localpolynomial", "wavelet", "fourier"])
def any_grid(request):
    """One small loaded grid of every family, with a smooth output."""
    grid = SparseGrid(acceleration="none")
    if request.param == "global":
        grid.make_global_grid(2, 2, 2, "level", "clenshaw-curtis")
    elif request.param == "sequence":
        grid.make_sequence_grid(2, 2, 3, "level", "rleja")
    elif request.param == "localpolynomial":
        grid.make_local_polynomial_grid(2, 2, 2, 2, "localp")
    elif request.param == "wavelet":
        grid.make_wavelet_grid(2, 2, 1, 1)
    else:
        grid.make_fourier_grid(2, 2, 1, "level")
    load_function(grid, lambda x: [np.exp(-x[0] ** 2 - 0.5 * x[1]), np.cos(x[0] + x[1])])
    return grid


# Helper function fixtures


@pytest.fixture
def loader():
    """Expose load_function to tests as a fixture."""
    return load_function
