"""
High-Level API for building sparse grids from recipes

This module turns GridConfig recipes (dataclasses or YAML files) into
ready SparseGrid facades.

Import Policy:
    from sgrid.grid.api import create_grid, create_grid_from_file

DO NOT use: from sgrid.grid.api import *
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

from sgrid.config import GridConfig, create_validated_config, load_grid_config, validate_config
from sgrid.config.enums import GridFamily
from sgrid.grid.sparse_grid import SparseGrid


def create_grid(config: GridConfig) -> SparseGrid:
    """Build a grid described by ``config``.

    Args:
        config: Grid recipe; validated before anything is built

    Returns:
        SparseGrid with needed points, domain and conformal transforms applied

    Raises:
        ConfigurationError: If the recipe is invalid

    Example:
        >>> config = create_validated_config(family="global", dimensions=2, depth=3,
        ...                                  rule="clenshaw-curtis")
        >>> create_grid(config).get_num_needed()
        29
    """
    validate_config(config, raise_on_error=True)
    grid = SparseGrid(acceleration=config.acceleration, gpu_id=config.gpu_id)
    family = GridFamily.from_string(config.family)

    if family is GridFamily.GLOBAL:
        grid.make_global_grid(config.dimensions, config.outputs, config.depth, config.depth_type,
                              config.rule, config.anisotropic_weights, config.alpha, config.beta,
                              config.level_limits)
    elif family is GridFamily.SEQUENCE:
        grid.make_sequence_grid(config.dimensions, config.outputs, config.depth, config.depth_type,
                                config.rule, config.anisotropic_weights, config.level_limits)
    elif family is GridFamily.LOCAL_POLYNOMIAL:
        grid.make_local_polynomial_grid(config.dimensions, config.outputs, config.depth,
                                        config.order, config.rule, config.level_limits)
    elif family is GridFamily.WAVELET:
        grid.make_wavelet_grid(config.dimensions, config.outputs, config.depth, config.order,
                               config.level_limits)
    elif family is GridFamily.FOURIER:
        grid.make_fourier_grid(config.dimensions, config.outputs, config.depth, config.depth_type,
                               config.anisotropic_weights, config.level_limits)

    if config.domain_lower is not None:
        grid.set_domain_transform(config.domain_lower, config.domain_upper)
    if config.conformal_truncation is not None:
        grid.set_conformal_transform_asin(config.conformal_truncation)
    return grid


def create_grid_from_file(config_path: Union[str, Path]) -> SparseGrid:
    """Build a grid from a YAML recipe.

    Example:
        >>> grid = create_grid_from_file("recipes/leja_2d.yaml")
    """
    return create_grid(load_grid_config(config_path))


def create_global_grid(dimensions: int, outputs: int, depth: int, rule: str = "clenshaw-curtis",
                       depth_type: str = "level", **kwargs) -> SparseGrid:
    """Validated global grid in one call, extra keywords go to GridConfig."""
    return create_grid(create_validated_config(family="global", dimensions=dimensions, outputs=outputs,
                                               depth=depth, rule=rule, depth_type=depth_type, **kwargs))


def create_sequence_grid(dimensions: int, outputs: int, depth: int, rule: str = "rleja",
                         depth_type: str = "level", **kwargs) -> SparseGrid:
    return create_grid(create_validated_config(family="sequence", dimensions=dimensions, outputs=outputs,
                                               depth=depth, rule=rule, depth_type=depth_type, **kwargs))


def create_local_polynomial_grid(dimensions: int, outputs: int, depth: int, order: int = 1,
                                 rule: str = "localp", **kwargs) -> SparseGrid:
    return create_grid(create_validated_config(family="localpolynomial", dimensions=dimensions,
                                               outputs=outputs, depth=depth, order=order, rule=rule,
                                               **kwargs))


__all__ = [
    "create_grid",
    "create_grid_from_file",
    "create_global_grid",
    "create_sequence_grid",
    "create_local_polynomial_grid",
]
