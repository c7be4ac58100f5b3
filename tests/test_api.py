"""Tests for GridConfig based factories."""

import pytest
import yaml
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config import ConfigurationError, GridConfig, create_validated_config
from sgrid.grid.api import (
    create_global_grid,
    create_grid,
    create_grid_from_file,
    create_local_polynomial_grid,
    create_sequence_grid,
)


@pytest.fixture
def recipe_file(tmp_path):
    path = tmp_path / "grid.yaml"
    path.write_text(yaml.safe_dump({
        "grid": {
            "family": "sequence",
            "dimensions": 2,
            "depth": 3,
            "rule": "leja",
            "domain_lower": [0.0, 1.0],
            "domain_upper": [2.0, 3.0],
            "acceleration": "none",
        }
    }))
    return path


class TestCreateGrid:
    """Tests for create_grid and the one call factories."""

    def test_global_recipe(self):
        """Test a global Clenshaw-Curtis recipe."""
        config = create_validated_config(family="global", dimensions=2, depth=3,
                                         rule="clenshaw-curtis", acceleration="none")
        grid = create_grid(config)
        assert grid.is_global()
        assert grid.get_num_needed() == 29

    def test_transforms_applied(self):
        """Test domain and conformal settings are applied."""
        config = GridConfig(family="sequence", dimensions=2, depth=2, rule="rleja",
                            domain_lower=[-2.0, 0.0], domain_upper=[2.0, 5.0],
                            conformal_truncation=[3, 3], acceleration="none")
        grid = create_grid(config)
        lower, upper = grid.get_domain_transform()
        assert_allclose(lower, [-2.0, 0.0])
        assert_allclose(upper, [2.0, 5.0])
        assert list(grid.get_conformal_transform_asin()) == [3, 3]

    def test_level_limits_applied(self):
        """Test level limits reach the grid."""
        grid = create_grid(GridConfig(family="localpolynomial", dimensions=2, depth=3,
                                      rule="localp", level_limits=[1, 3], acceleration="none"))
        assert list(grid.get_level_limits()) == [1, 3]

    @pytest.mark.parametrize("family,rule,order", [
        ("wavelet", "leja", 1),
        ("fourier", "leja", 1),
    ])
    def test_rule_free_families(self, family, rule, order):
        """Test wavelet and Fourier recipes."""
        grid = create_grid(GridConfig(family=family, dimensions=1, depth=2, rule=rule, order=order,
                                      acceleration="none"))
        assert grid.get_family().value == family
        assert grid.get_num_needed() > 0

    def test_invalid_recipe(self):
        """Test invalid recipes raise before building."""
        with pytest.raises(ConfigurationError):
            create_grid(GridConfig(family="global", rule="localp"))

    def test_factories(self):
        """Test the one call factories."""
        assert create_global_grid(2, 1, 3, acceleration="none").get_num_needed() == 29
        assert create_sequence_grid(2, 1, 3, rule="leja", acceleration="none").get_num_needed() == 10
        grid = create_local_polynomial_grid(1, 1, 2, acceleration="none")
        assert grid.is_local_polynomial()
        assert grid.get_num_needed() == 5

    def test_from_file(self, recipe_file):
        """Test YAML recipes under a 'grid' key."""
        grid = create_grid_from_file(recipe_file)
        assert grid.is_sequence()
        assert grid.get_num_needed() == 10
        points = grid.get_needed_points()
        assert np.all(points >= [0.0, 1.0]) and np.all(points <= [2.0, 3.0])
