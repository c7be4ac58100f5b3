"""Tests for surplus and anisotropic refinement."""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config import InvalidArgumentError, PreconditionError
from sgrid.grid import SparseGrid


def smooth(x):
    return np.exp(x[0] + 0.1 * x[1])


def bump(x):
    return np.exp(-10.0 * (x[0] - 0.5) ** 2 - x[1] ** 2)


def needed_after(grid, tolerance, **kwargs):
    """Needed point count of a copy of ``grid`` refined at ``tolerance``."""
    trial = SparseGrid(acceleration="none")
    trial.copy_grid(grid)
    trial.set_surplus_refinement(tolerance, **kwargs)
    return trial.get_num_needed()


class TestSurplusRefinement:
    """Tests for set_surplus_refinement."""

    def test_sequence_tolerance_is_monotone(self, leja_grid, loader):
        """Test smaller tolerances request at least as many points."""
        loader(leja_grid, smooth)
        counts = [needed_after(leja_grid, tolerance) for tolerance in (1.0e10, 1.0e-2, 1.0e-6)]
        assert counts[0] == 0
        assert counts[0] <= counts[1] <= counts[2]
        assert counts[2] > 0

    def test_sequence_refinement_adds_new_points(self, leja_grid, loader):
        """Test requested points are new and load on top of the grid."""
        loader(leja_grid, smooth)
        leja_grid.set_surplus_refinement(1.0e-6)
        needed = leja_grid.get_needed_points()
        loaded = leja_grid.get_loaded_points()
        for point in needed:
            assert not np.any(np.all(np.isclose(loaded, point), axis=1))
        count = leja_grid.get_num_loaded() + leja_grid.get_num_needed()
        loader(leja_grid, smooth)
        assert leja_grid.get_num_loaded() == count
        assert leja_grid.get_num_needed() == 0

    def test_global_sequence_rule(self, loader):
        """Test global grids over Leja nodes refine by tensor surpluses."""
        grid = SparseGrid(acceleration="none")
        grid.make_global_grid(2, 1, 2, "level", "leja")
        loader(grid, smooth)
        before = grid.get_num_loaded()
        grid.set_surplus_refinement(1.0e-8)
        assert grid.get_num_needed() > 0
        loader(grid, smooth)
        assert grid.get_num_loaded() > before
        x = np.array([[0.3, -0.4]])
        assert grid.evaluate_batch(x)[0, 0] == pytest.approx(smooth(x[0]), rel=2e-2)

    def test_global_needs_sequence_rule(self, cc_grid_2d, loader):
        """Test Clenshaw-Curtis grids cannot use surplus refinement."""
        loader(cc_grid_2d, smooth)
        with pytest.raises(PreconditionError):
            cc_grid_2d.set_surplus_refinement(1.0e-3)

    def test_fourier_rejected(self, fourier_grid, loader):
        """Test Fourier grids have no surplus refinement."""
        loader(fourier_grid, lambda x: np.cos(2.0 * np.pi * x[0]))
        with pytest.raises(PreconditionError):
            fourier_grid.set_surplus_refinement(1.0e-3)

    def test_requires_loaded_values(self, leja_grid):
        """Test refinement before loading is a precondition error."""
        with pytest.raises(PreconditionError):
            leja_grid.set_surplus_refinement(1.0e-3)

    def test_invalid_arguments(self, leja_grid, loader):
        """Test tolerance, output and criteria are validated."""
        loader(leja_grid, smooth)
        with pytest.raises(InvalidArgumentError):
            leja_grid.set_surplus_refinement(-1.0)
        with pytest.raises(InvalidArgumentError):
            leja_grid.set_surplus_refinement(1.0e-3, output=3)
        with pytest.raises(InvalidArgumentError):
            leja_grid.set_surplus_refinement(1.0e-3, criteria="classic")
        assert leja_grid.get_num_needed() == 0

    def test_local_stable_contains_classic(self, loader):
        """Test stable refinement adds the classic points plus missing parents."""
        grid = SparseGrid(acceleration="none")
        grid.make_local_polynomial_grid(2, 1, 2)
        loader(grid, bump)
        classic = needed_after(grid, 1.0e-3, criteria="classic")
        stable = needed_after(grid, 1.0e-3, criteria="stable")
        assert 0 < classic <= stable

    @pytest.mark.parametrize("criteria", ["classic", "parents_first", "direction_selective", "fds", "stable"])
    def test_local_criteria_add_new_points(self, localp_grid, loader, criteria):
        """Test every criteria requests only points that are not loaded."""
        loader(localp_grid, bump)
        localp_grid.set_surplus_refinement(1.0e-4, criteria=criteria)
        indexes = {tuple(row) for row in localp_grid.get_point_indexes()}
        needed = {tuple(row) for row in localp_grid.get_needed_indexes()}
        assert needed
        assert not needed & indexes

    def test_local_tolerance_is_monotone(self, localp_grid, loader):
        """Test larger tolerances request fewer points."""
        loader(localp_grid, bump)
        coarse = needed_after(localp_grid, 1.0e-1, criteria="classic")
        fine = needed_after(localp_grid, 1.0e-4, criteria="classic")
        assert coarse <= fine

    def test_local_level_limits(self, loader):
        """Test level limits cap the refined levels and are stored."""
        grid = SparseGrid(acceleration="none")
        grid.make_local_polynomial_grid(2, 1, 2)
        loader(grid, bump)
        grid.set_surplus_refinement(1.0e-6, level_limits=[2, 2], criteria="classic")
        points = grid.get_needed_points()
        assert points.shape[0] > 0
        assert_allclose(2.0 * points, np.round(2.0 * points), atol=1e-14)
        assert list(grid.get_level_limits()) == [2, 2]

    def test_scale_correction(self, localp_grid, loader):
        """Test zero scale corrections suppress every refinement."""
        loader(localp_grid, bump)
        zeros = np.zeros(localp_grid.get_num_loaded())
        assert needed_after(localp_grid, 1.0e-6, criteria="classic", scale_correction=zeros) == 0
        with pytest.raises(InvalidArgumentError):
            localp_grid.set_surplus_refinement(1.0e-6, criteria="classic", scale_correction=[1.0, 2.0])

    def test_wavelet_refinement(self, wavelet_grid, loader):
        """Test wavelet grids refine near a kink."""
        loader(wavelet_grid, lambda x: abs(x[0] - 0.3))
        wavelet_grid.set_surplus_refinement(1.0e-3)
        assert wavelet_grid.get_num_needed() > 0


class TestAnisotropicRefinement:
    """Tests for anisotropy estimation and set_anisotropic_refinement."""

    def test_estimated_weights_follow_decay(self, leja_grid, loader):
        """Test the faster decaying direction gets the larger weight."""
        loader(leja_grid, smooth)
        weights = leja_grid.estimate_anisotropic_coefficients("level")
        assert weights.shape == (2,)
        assert weights[1] > weights[0]

    def test_curved_weights(self, leja_grid, loader):
        """Test curved depth types estimate 2 * d coefficients."""
        loader(leja_grid, smooth)
        assert leja_grid.estimate_anisotropic_coefficients("curved").shape == (4,)

    @pytest.mark.parametrize("rule,family", [("leja", "sequence"), ("clenshaw-curtis", "global")])
    def test_min_growth(self, loader, rule, family):
        """Test refinement requests at least min_growth points."""
        grid = SparseGrid(acceleration="none")
        if family == "sequence":
            grid.make_sequence_grid(2, 1, 3, "level", rule)
        else:
            grid.make_global_grid(2, 1, 2, "level", rule)
        loader(grid, smooth)
        grid.set_anisotropic_refinement("level", 5)
        assert grid.get_num_needed() >= 5

    def test_level_limits(self, cc_grid_2d, loader):
        """Test limits keep the second direction at level 1."""
        loader(cc_grid_2d, smooth)
        cc_grid_2d.set_anisotropic_refinement("level", 10, level_limits=[5, 1])
        points = cc_grid_2d.get_needed_points()
        assert set(np.round(points[:, 1], 12)) <= {-1.0, 0.0, 1.0}
        assert list(cc_grid_2d.get_level_limits()) == [5, 1]

    def test_min_growth_must_be_positive(self, leja_grid, loader):
        """Test min_growth below one is rejected."""
        loader(leja_grid, smooth)
        with pytest.raises(InvalidArgumentError):
            leja_grid.set_anisotropic_refinement("level", 0)

    def test_non_nested_rule(self, loader):
        """Test Gauss rules cannot refine anisotropically."""
        grid = SparseGrid(acceleration="none")
        grid.make_global_grid(2, 1, 2, "level", "gauss-legendre")
        loader(grid, smooth)
        with pytest.raises(PreconditionError):
            grid.set_anisotropic_refinement("level", 5)

    def test_local_grid_rejected(self, localp_grid, loader):
        """Test local grids have no anisotropic refinement."""
        loader(localp_grid, bump)
        with pytest.raises(PreconditionError):
            localp_grid.estimate_anisotropic_coefficients("level")

    def test_requires_values(self, leja_grid):
        """Test estimation needs loaded values."""
        with pytest.raises(PreconditionError):
            leja_grid.estimate_anisotropic_coefficients("level")


class TestRefinementBookkeeping:
    """Tests for clear, merge and coefficient based removal."""

    def test_clear_refinement(self, leja_grid, loader):
        """Test clearing drops the request and keeps the values."""
        loader(leja_grid, smooth)
        leja_grid.set_surplus_refinement(1.0e-8)
        leja_grid.clear_refinement()
        assert leja_grid.get_num_needed() == 0
        assert leja_grid.get_num_loaded() == 10

    def test_clear_without_values_keeps_grid(self, leja_grid):
        """Test an unloaded grid keeps its needed points."""
        leja_grid.clear_refinement()
        assert leja_grid.get_num_needed() == 10

    @pytest.mark.parametrize("family", ["sequence", "global"])
    def test_merge_refinement(self, loader, family):
        """Test merging commits the needed points with zero values."""
        grid = SparseGrid(acceleration="none")
        if family == "sequence":
            grid.make_sequence_grid(2, 1, 2, "level", "rleja")
        else:
            grid.make_global_grid(2, 1, 1, "level", "rleja")
        loader(grid, smooth)
        grid.set_surplus_refinement(1.0e-10)
        total = grid.get_num_loaded() + grid.get_num_needed()
        grid.merge_refinement()
        assert grid.get_num_needed() == 0
        assert grid.get_num_loaded() == total
        assert_allclose(grid.get_hierarchical_coefficients(), np.zeros((total, 1)))

    def test_clear_level_limits(self, leja_grid, loader):
        """Test cleared limits read back as -1."""
        loader(leja_grid, smooth)
        leja_grid.set_anisotropic_refinement("level", 3, level_limits=[4, 4])
        leja_grid.clear_level_limits()
        assert list(leja_grid.get_level_limits()) == [-1, -1]

    def test_remove_points_requires_local_grid(self, leja_grid, loader):
        """Test coefficient removal is limited to local polynomial grids."""
        loader(leja_grid, smooth)
        with pytest.raises(PreconditionError):
            leja_grid.remove_points_by_hierarchical_coefficient(1.0e-3)

    def test_remove_points_keeps_parents(self, localp_grid, loader):
        """Test kept points are closed under the parent relation."""
        loader(localp_grid, bump)
        localp_grid.remove_points_by_hierarchical_coefficient(1.0e-2)
        x = localp_grid.get_loaded_points()
        assert localp_grid.get_num_needed() == 0
        assert np.any(np.all(x == 0.0, axis=1))

    def test_refinement_during_construction(self, leja_grid, loader):
        """Test refinement is unavailable while constructing."""
        loader(leja_grid, smooth)
        leja_grid.begin_construction()
        with pytest.raises(PreconditionError):
            leja_grid.set_surplus_refinement(1.0e-3)
