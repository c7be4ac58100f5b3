"""Tests for multi-index sets, selection and anisotropy estimation."""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config.enums import TypeDepth
from sgrid.core.anisotropy import estimate_weights, grow_selection, isotropic_weights
from sgrid.core.multi_index import (
    IndexSelection,
    MultiIndexSet,
    admissible_frontier,
    combination_coefficients,
    complete_lower,
    within_limits,
)


class TestMultiIndexSet:
    """Tests for the sorted index set."""

    def test_sorted_and_unique(self):
        """Test rows are deduplicated and sorted lexicographically."""
        index_set = MultiIndexSet(2, [[1, 0], [0, 1], [1, 0], [0, 0]])
        assert len(index_set) == 3
        assert list(index_set) == [(0, 0), (0, 1), (1, 0)]

    def test_read_only(self):
        """Test the index array cannot be modified."""
        index_set = MultiIndexSet(2, [[0, 0]])
        with pytest.raises(ValueError):
            index_set.indexes[0, 0] = 5

    def test_find(self):
        """Test find returns positions and -1 for missing indexes."""
        index_set = MultiIndexSet.from_tuples(2, [(0, 0), (2, 1)])
        assert index_set.find((2, 1)) == 1
        assert index_set.find((5, 5)) == -1
        assert (0, 0) in index_set
        assert_allclose(index_set.find_all(np.array([[2, 1], [1, 1]])), [1, -1])

    def test_union_and_difference(self):
        """Test set algebra keeps the sorted invariant."""
        a = MultiIndexSet.from_tuples(1, [(0,), (2,)])
        b = MultiIndexSet.from_tuples(1, [(1,), (2,)])
        assert list(a.union(b)) == [(0,), (1,), (2,)]
        assert list(a.difference(b)) == [(0,)]

    def test_empty_set(self):
        """Test an empty set reports zero levels."""
        empty = MultiIndexSet(3)
        assert empty.empty()
        assert_allclose(empty.max_levels(), [0, 0, 0])


class TestLowerSets:
    """Tests for lower completion, frontiers and combination coefficients."""

    def test_complete_lower(self):
        """Test completion adds every backward neighbor."""
        completed = complete_lower(MultiIndexSet.from_tuples(2, [(2, 1)]))
        assert len(completed) == 6
        assert (1, 0) in completed

    def test_frontier_of_empty_set(self):
        """Test the zero index is the only admissible index of an empty set."""
        assert admissible_frontier(MultiIndexSet(2)) == [(0, 0)]

    def test_frontier_respects_limits(self):
        """Test level limits remove frontier indexes."""
        base = MultiIndexSet.from_tuples(2, [(0, 0)])
        assert sorted(admissible_frontier(base)) == [(0, 1), (1, 0)]
        assert admissible_frontier(base, np.array([0, -1])) == [(0, 1)]

    def test_within_limits(self):
        """Test negative limits mean unlimited."""
        assert within_limits((5, 1), np.array([-1, 1]))
        assert not within_limits((5, 2), np.array([-1, 1]))
        assert within_limits((9, 9), None)

    def test_combination_coefficients_sum_to_one(self):
        """Test Smolyak coefficients of a lower set sum to one."""
        tensors = IndexSelection(3, TypeDepth.LEVEL).select(3)
        assert combination_coefficients(tensors).sum() == 1

    def test_combination_coefficients_simplex(self):
        """Test the coefficients of the level 1 simplex in two dimensions."""
        tensors = MultiIndexSet.from_tuples(2, [(0, 0), (1, 0), (0, 1)])
        coefficients = dict(zip(tensors, combination_coefficients(tensors)))
        assert coefficients == {(0, 0): -1, (0, 1): 1, (1, 0): 1}


class TestIndexSelection:
    """Tests for depth based selection."""

    def test_total_level(self):
        """Test the total level simplex in two dimensions."""
        assert len(IndexSelection(2, TypeDepth.LEVEL).select(3)) == 10

    def test_tensor(self):
        """Test a tensor selection is a full box."""
        assert len(IndexSelection(2, TypeDepth.TENSOR).select(2)) == 9

    def test_anisotropic_weights(self):
        """Test larger weights shorten a direction."""
        selected = IndexSelection(2, TypeDepth.LEVEL, [1, 2]).select(4)
        levels = selected.max_levels()
        assert levels[0] == 4
        assert levels[1] == 2

    def test_level_limits(self):
        """Test level limits cap the selection."""
        selected = IndexSelection(2, TypeDepth.LEVEL).select(5, np.array([1, -1]))
        assert selected.max_levels()[0] == 1

    def test_hyperbolic_is_smaller_than_total(self):
        """Test hyperbolic cross selections are subsets of the total degree ones."""
        hyperbolic = IndexSelection(2, TypeDepth.HYPERBOLIC).select(4)
        total = IndexSelection(2, TypeDepth.LEVEL).select(4)
        assert all(index in total for index in hyperbolic)

    def test_rank_orders_by_cost(self):
        """Test ranking puts cheaper indexes first."""
        selection = IndexSelection(2, TypeDepth.LEVEL, [1, 3])
        assert selection.rank([(0, 1), (2, 0), (1, 0)]) == [(1, 0), (2, 0), (0, 1)]


class TestAnisotropy:
    """Tests for anisotropic weight estimation."""

    def test_isotropic_fallback(self):
        """Test too little data gives isotropic weights."""
        weights = estimate_weights(np.array([[0, 0], [1, 0]]), np.array([1.0, 0.5]), TypeDepth.LEVEL)
        assert_allclose(weights, isotropic_weights(2, TypeDepth.LEVEL))

    def test_curved_weights_have_two_halves(self):
        """Test curved depth types return 2 * d weights."""
        assert isotropic_weights(3, TypeDepth.CURVED).size == 6

    def test_recovers_decay_rates(self):
        """Test the fit recovers exact exponential decay rates."""
        indexes = np.array([[i, j] for i in range(5) for j in range(5)])
        magnitudes = np.exp(-1.0 * indexes[:, 0] - 2.0 * indexes[:, 1])
        weights = estimate_weights(indexes, magnitudes, TypeDepth.LEVEL)
        assert weights[1] == 2 * weights[0]

    def test_grow_selection_meets_growth(self):
        """Test growth stops at the first depth adding enough indexes."""
        selection = IndexSelection(2, TypeDepth.LEVEL)
        selected = grow_selection(selection, len, 6)
        assert len(selected) >= 6
        assert len(selection.select(1)) < 6
