"""Tests for domain and conformal transforms."""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config.enums import TypeOneDRule
from sgrid.config.validation import InvalidArgumentError
from sgrid.core.transforms import ConformalAsin, DomainTransform


class TestDomainTransform:
    """Tests for the per dimension domain maps."""

    @pytest.mark.parametrize("rule", ["clenshaw-curtis", "fourier", "gauss-laguerre", "gauss-hermite"])
    def test_round_trip(self, rule):
        """Test canonical -> user -> canonical is the identity for every law."""
        rule = TypeOneDRule.from_string(rule)
        domain = DomainTransform([-2.0, 1.0], [3.0, 4.0])
        canonical = np.array([[0.0, 0.25], [0.5, 0.9], [0.1, 0.0]])
        user = domain.canonical_to_transformed(canonical, rule)
        assert_allclose(domain.transformed_to_canonical(user, rule), canonical, atol=1e-14)

    def test_bounded_endpoints(self):
        """Test [-1, 1] maps onto [lower, upper]."""
        domain = DomainTransform([0.0], [4.0])
        user = domain.canonical_to_transformed(np.array([[-1.0], [1.0]]), TypeOneDRule.CLENSHAW_CURTIS)
        assert_allclose(user.ravel(), [0.0, 4.0])

    def test_fourier_endpoints(self):
        """Test [0, 1] maps onto [lower, upper] for Fourier grids."""
        domain = DomainTransform([1.0], [3.0])
        user = domain.canonical_to_transformed(np.array([[0.0], [0.5]]), TypeOneDRule.FOURIER)
        assert_allclose(user.ravel(), [1.0, 2.0])

    def test_quadrature_scale_bounded(self):
        """Test the Jacobian of a box is the product of half lengths."""
        domain = DomainTransform([0.0, 0.0], [2.0, 4.0])
        assert domain.quadrature_scale(TypeOneDRule.CLENSHAW_CURTIS) == pytest.approx(2.0)
        assert domain.quadrature_scale(TypeOneDRule.FOURIER) == pytest.approx(8.0)

    def test_quadrature_scale_jacobi_weight(self):
        """Test Chebyshev weights pick up no extra factor of the half length."""
        domain = DomainTransform([0.0], [4.0])
        assert domain.quadrature_scale(TypeOneDRule.GAUSS_CHEBYSHEV1) == pytest.approx(1.0)
        assert domain.quadrature_scale(TypeOneDRule.GAUSS_CHEBYSHEV2) == pytest.approx(4.0)

    def test_quadrature_scale_unbounded(self):
        """Test Laguerre and Hermite scales follow the weight exponent."""
        domain = DomainTransform([0.0], [4.0])
        assert domain.quadrature_scale(TypeOneDRule.GAUSS_LAGUERRE) == pytest.approx(0.25)
        assert domain.quadrature_scale(TypeOneDRule.GAUSS_HERMITE) == pytest.approx(0.5)

    def test_mismatched_bounds(self):
        """Test bounds of different lengths are rejected."""
        with pytest.raises(InvalidArgumentError):
            DomainTransform([0.0, 1.0], [1.0])


class TestConformalAsin:
    """Tests for the truncated arcsine map."""

    def test_fixed_points(self):
        """Test T(0) = 0 and T(+-1) = +-1."""
        conformal = ConformalAsin([4])
        x = np.array([[0.0], [1.0], [-1.0]])
        assert_allclose(conformal.canonical_to_transformed(x).ravel(), [0.0, 1.0, -1.0], atol=1e-14)

    def test_zero_order_is_identity(self):
        """Test truncation order 0 leaves points and weights unchanged."""
        conformal = ConformalAsin([0])
        x = np.linspace(-1.0, 1.0, 7).reshape(-1, 1)
        assert_allclose(conformal.canonical_to_transformed(x), x, atol=1e-15)
        assert_allclose(conformal.weight_correction(x), np.ones(7))

    def test_inverse_round_trip(self):
        """Test the Newton inverse recovers canonical points."""
        conformal = ConformalAsin([3, 6])
        rng = np.random.default_rng(3)
        x = rng.uniform(-0.99, 0.99, size=(25, 2))
        transformed = conformal.canonical_to_transformed(x)
        assert_allclose(conformal.transformed_to_canonical(transformed), x, atol=1e-10)

    def test_monotone(self):
        """Test the map is increasing on [-1, 1]."""
        conformal = ConformalAsin([5])
        x = np.linspace(-1.0, 1.0, 41).reshape(-1, 1)
        assert np.all(np.diff(conformal.canonical_to_transformed(x).ravel()) > 0.0)

    def test_weight_correction_is_derivative(self):
        """Test the weight correction matches a finite difference derivative."""
        conformal = ConformalAsin([4])
        x = np.array([[-0.7], [-0.2], [0.3], [0.8]])
        h = 1.0e-6
        forward = conformal.canonical_to_transformed(x + h).ravel()
        backward = conformal.canonical_to_transformed(x - h).ravel()
        assert_allclose(conformal.weight_correction(x), (forward - backward) / (2.0 * h), rtol=1e-6)

    def test_negative_order_rejected(self):
        """Test negative truncation orders raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            ConformalAsin([2, -1])

    def test_copy_is_independent(self):
        """Test copies keep the truncation in their own array."""
        conformal = ConformalAsin([2, 3])
        duplicate = conformal.copy()
        duplicate.truncation[0] = 9
        assert conformal.truncation[0] == 2
