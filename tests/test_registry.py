"""Tests for the handle based grid registry."""

import pytest

from sgrid.config import InvalidArgumentError, TypeAcceleration
from sgrid.grid import GridRegistry, SparseGrid


class TestGridRegistry:
    """Tests for GridRegistry."""

    def test_handles_are_sequential(self):
        """Test fresh handles count up from zero."""
        registry = GridRegistry()
        assert [registry.create() for _ in range(3)] == [0, 1, 2]
        assert len(registry) == 3
        assert list(registry.handles()) == [0, 1, 2]

    def test_smallest_free_handle_reused(self):
        """Test destroyed slots are reused smallest first."""
        registry = GridRegistry()
        for _ in range(4):
            registry.create()
        registry.destroy(2)
        registry.destroy(0)
        assert registry.create() == 0
        assert registry.create() == 2
        assert registry.create() == 4

    def test_get_returns_same_grid(self):
        """Test a handle keeps addressing the same facade."""
        registry = GridRegistry()
        handle = registry.create()
        grid = registry.get(handle)
        assert isinstance(grid, SparseGrid)
        grid.make_sequence_grid(2, 1, 3, "level", "leja")
        assert registry.get(handle).get_num_needed() == 10

    def test_unknown_handles(self):
        """Test destroyed, negative and out of range handles are rejected."""
        registry = GridRegistry()
        handle = registry.create()
        registry.destroy(handle)
        for bad in (handle, -1, 7, "0"):
            with pytest.raises(InvalidArgumentError):
                registry.get(bad)
        with pytest.raises(InvalidArgumentError):
            registry.destroy(handle)

    def test_contains(self):
        """Test membership follows the live handles."""
        registry = GridRegistry()
        handle = registry.create()
        assert handle in registry
        registry.destroy(handle)
        assert handle not in registry
        assert -1 not in registry
        assert len(registry) == 0

    def test_create_forwards_arguments(self):
        """Test keyword arguments reach the facade."""
        registry = GridRegistry()
        grid = registry.get(registry.create(acceleration="none"))
        assert grid.get_acceleration_type() is TypeAcceleration.NONE

    def test_registries_are_independent(self):
        """Test two registries share no state."""
        first, second = GridRegistry(), GridRegistry()
        first.create()
        assert len(second) == 0
        assert second.create() == 0
