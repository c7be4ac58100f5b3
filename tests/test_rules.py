"""Tests for one dimensional rules and the level wrapper."""

import math
import warnings

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config.enums import TypeOneDRule
from sgrid.config.validation import InvalidArgumentError
from sgrid.core.rules import (
    OneDimensionalWrapper,
    get_num_points,
    interpolation_exactness,
    leja_nodes,
    level_nodes_and_weights,
    quadrature_exactness,
    rleja_nodes,
)


class TestLevelCounts:
    """Tests for the number of nodes per level."""

    def test_clenshaw_curtis(self):
        """Test 1, 3, 5, 9 nodes on the first Clenshaw-Curtis levels."""
        counts = [get_num_points(TypeOneDRule.CLENSHAW_CURTIS, level) for level in range(4)]
        assert counts == [1, 3, 5, 9]

    def test_fourier(self):
        """Test Fourier levels grow by powers of three."""
        assert [get_num_points(TypeOneDRule.FOURIER, level) for level in range(3)] == [1, 3, 9]

    def test_gauss_and_sequence(self):
        """Test one new node per level for Gauss and sequence rules."""
        assert get_num_points(TypeOneDRule.GAUSS_LEGENDRE, 4) == 5
        assert get_num_points(TypeOneDRule.LEJA, 0) == 1

    def test_local_rule_has_no_levels(self):
        """Test local rules are rejected."""
        with pytest.raises(InvalidArgumentError):
            get_num_points(TypeOneDRule.LOCALP, 1)

    def test_exactness(self):
        """Test exactness of interpolation and quadrature."""
        assert interpolation_exactness(TypeOneDRule.CLENSHAW_CURTIS, 2) == 4
        assert quadrature_exactness(TypeOneDRule.CLENSHAW_CURTIS, 2) == 5
        assert quadrature_exactness(TypeOneDRule.GAUSS_LEGENDRE, 2) == 5
        assert interpolation_exactness(TypeOneDRule.FOURIER, 1) == 1


class TestNodesAndWeights:
    """Tests for node and weight generators."""

    @pytest.mark.parametrize("rule", ["clenshaw-curtis", "fejer2", "chebyshev", "gauss-legendre"])
    def test_weights_integrate_constants(self, rule):
        """Test weights of [-1, 1] rules sum to the interval length."""
        _, weights = level_nodes_and_weights(TypeOneDRule.from_string(rule), 3)
        assert_allclose(weights.sum(), 2.0, rtol=1e-12)

    def test_clenshaw_curtis_polynomial_exactness(self):
        """Test level 2 Clenshaw-Curtis integrates x^4 exactly."""
        nodes, weights = level_nodes_and_weights(TypeOneDRule.CLENSHAW_CURTIS, 2)
        assert_allclose(weights @ nodes ** 4, 2.0 / 5.0, rtol=1e-12)

    def test_gauss_hermite_weight(self):
        """Test Gauss-Hermite weights integrate exp(-x^2)."""
        _, weights = level_nodes_and_weights(TypeOneDRule.GAUSS_HERMITE, 3)
        assert_allclose(weights.sum(), math.sqrt(math.pi), rtol=1e-12)

    def test_generalized_hermite(self):
        """Test Gauss-Hermite with alpha integrates |x|^alpha exp(-x^2)."""
        _, weights = level_nodes_and_weights(TypeOneDRule.GAUSS_HERMITE, 4, alpha=2.0)
        assert_allclose(weights.sum(), math.gamma(1.5), rtol=1e-10)

    def test_gauss_laguerre_weight(self):
        """Test Gauss-Laguerre weights integrate exp(-x) on the half line."""
        _, weights = level_nodes_and_weights(TypeOneDRule.GAUSS_LAGUERRE, 2)
        assert_allclose(weights.sum(), 1.0, rtol=1e-12)

    def test_fourier_nodes(self):
        """Test Fourier nodes are k / 3^level with equal weights."""
        nodes, weights = level_nodes_and_weights(TypeOneDRule.FOURIER, 1)
        assert_allclose(nodes, [0.0, 1.0 / 3.0, 2.0 / 3.0])
        assert_allclose(weights, np.full(3, 1.0 / 3.0))

    def test_leja_starts_with_zero_and_ends(self):
        """Test Leja sequences start 0, 1, -1 and stay in [-1, 1]."""
        nodes = leja_nodes(6)
        assert_allclose(nodes[:3], [0.0, 1.0, -1.0])
        assert np.all(np.abs(nodes) <= 1.0)
        assert len(np.unique(np.round(nodes, 12))) == 6

    def test_leja_fourth_node(self):
        """Test the fourth Leja node maximizes |x (x - 1) (x + 1)|."""
        assert_allclose(abs(leja_nodes(4)[3]), 1.0 / math.sqrt(3.0), atol=1e-8)

    def test_rleja_nodes(self):
        """Test R-Leja nodes project bisected angles."""
        assert_allclose(rleja_nodes(5), [0.0, 1.0, -1.0, math.sqrt(0.5), -math.sqrt(0.5)], atol=1e-14)

    def test_weights_computed_without_warnings(self):
        """Test odd Chebyshev moments are skipped rather than divided by zero."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            _, weights = level_nodes_and_weights(TypeOneDRule.CLENSHAW_CURTIS, 3)
        assert_allclose(weights.sum(), 2.0, rtol=1e-12)


class TestOneDimensionalWrapper:
    """Tests for the per level node view of global rules."""

    def test_nested_levels_share_nodes(self):
        """Test nested levels reuse node indexes."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.CLENSHAW_CURTIS)
        wrapper.ensure_level(2)
        assert wrapper.nodes.size == 5
        assert set(wrapper.level_indices(1)) <= set(wrapper.level_indices(2))

    def test_non_nested_levels_add_nodes(self):
        """Test Gauss-Legendre levels produce distinct nodes."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.GAUSS_LEGENDRE)
        wrapper.ensure_level(2)
        # the midpoint is shared by levels 0 and 2
        assert wrapper.nodes.size == 5

    def test_level_nodes_before_other_queries(self):
        """Test level_nodes generates the level on a fresh wrapper."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.CLENSHAW_CURTIS)
        nodes = wrapper.level_nodes(2)
        assert nodes.size == 5
        assert_allclose(np.sort(nodes), [-1.0, -math.sqrt(0.5), 0.0, math.sqrt(0.5), 1.0], atol=1e-14)

    def test_basis_is_cardinal(self):
        """Test the Lagrange basis is the identity at the nodes."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.CLENSHAW_CURTIS)
        nodes = wrapper.level_nodes(3)
        assert_allclose(wrapper.basis(3, nodes), np.eye(nodes.size), atol=1e-12)

    def test_basis_partition_of_unity(self):
        """Test the cardinal functions sum to one between nodes."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.LEJA)
        x = np.linspace(-0.95, 0.95, 11)
        assert_allclose(wrapper.basis(4, x).sum(axis=1), np.ones(11), rtol=1e-10)

    def test_fourier_basis_reproduces_frequency_one(self):
        """Test the Dirichlet basis interpolates cos(2 pi x) at level 1."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.FOURIER)
        nodes = wrapper.level_nodes(1)
        x = np.array([0.1, 0.45, 0.8])
        values = wrapper.basis(1, x) @ np.cos(2.0 * np.pi * nodes)
        assert_allclose(values, np.cos(2.0 * np.pi * x), atol=1e-12)

    def test_fourier_exponents(self):
        """Test Fourier exponents follow the node order of nested levels."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.FOURIER)
        assert list(wrapper.exponents(3)) == [0, 1, -1]

    def test_find_node(self):
        """Test nodes are located with the merge tolerance."""
        wrapper = OneDimensionalWrapper(TypeOneDRule.CLENSHAW_CURTIS)
        wrapper.ensure_level(1)
        assert wrapper.find_node(1.0) >= 0
        assert wrapper.find_node(0.3) == -1
