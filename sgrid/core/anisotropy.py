"""Anisotropic weight estimation.

Coefficients of a smooth function decay roughly like
``exp(-sum_j w_j g_j - sum_j c_j log(g_j + 1))`` in the index ``g``. A least
squares fit of ``-log|coefficient|`` recovers the weights, which are then
normalized so the smallest positive linear weight is ANISOTROPIC_WEIGHT_SCALE
and rounded to integers.
"""

import logging
from typing import Callable, Optional

import numpy as np

from sgrid.config.defaults import ANISOTROPIC_MAGNITUDE_FLOOR, ANISOTROPIC_WEIGHT_SCALE
from sgrid.config.enums import TypeDepth

logger = logging.getLogger(__name__)


def isotropic_weights(num_dimensions: int, depth_type: TypeDepth) -> np.ndarray:
    weights = np.full(num_dimensions, ANISOTROPIC_WEIGHT_SCALE, dtype=np.int64)
    if depth_type.is_curved:
        weights = np.concatenate([weights, np.zeros(num_dimensions, dtype=np.int64)])
    return weights


def estimate_weights(indexes: np.ndarray, magnitudes: np.ndarray, depth_type: TypeDepth,
                     exactness: Optional[Callable[[int], int]] = None) -> np.ndarray:
    """Fit integer anisotropic weights to coefficient magnitudes.

    Args:
        indexes: ``(n, d)`` level (or point) multi-indexes
        magnitudes: ``(n,)`` non-negative coefficient magnitudes
        depth_type: Selection type the weights are meant for
        exactness: Level to measured quantity map of the depth type

    Returns:
        ``d`` integer weights, ``2 d`` for curved types. Isotropic weights
        are returned when the data cannot support a fit.
    """
    indexes = np.asarray(indexes, dtype=np.int64)
    magnitudes = np.asarray(magnitudes, dtype=float)
    num_dimensions = indexes.shape[1]
    if exactness is None:
        exactness = lambda level: level  # noqa: E731

    largest = float(np.max(magnitudes)) if magnitudes.size else 0.0
    keep = (magnitudes > ANISOTROPIC_MAGNITUDE_FLOOR * largest) & np.any(indexes > 0, axis=1)
    if largest <= 0.0:
        keep[:] = False

    g = np.vectorize(lambda level: float(exactness(int(level))), otypes=[float])(indexes[keep]) \
        if np.any(keep) else np.zeros((0, num_dimensions))
    if depth_type.is_hyperbolic:
        columns = [np.log(g + 1.0)]
    elif depth_type.is_curved:
        columns = [g, np.log(g + 1.0)]
    else:
        columns = [g]
    unknowns = len(columns) * num_dimensions + 1
    if g.shape[0] < unknowns:
        logger.debug("too few coefficients (%d) to estimate %d weights, using isotropic weights",
                     g.shape[0], unknowns)
        return isotropic_weights(num_dimensions, depth_type)

    matrix = np.hstack(columns + [np.ones((g.shape[0], 1))])
    rhs = -np.log(magnitudes[keep])
    solution, *_ = np.linalg.lstsq(matrix, rhs, rcond=None)
    linear = solution[:num_dimensions]

    positive = linear[linear > 0.0]
    if positive.size == 0:
        return isotropic_weights(num_dimensions, depth_type)
    smallest = float(np.min(positive))
    linear = np.where(linear > 0.0, linear, smallest)
    weights = np.rint(ANISOTROPIC_WEIGHT_SCALE * linear / smallest).astype(np.int64)
    if depth_type.is_curved:
        curvature = solution[num_dimensions:2 * num_dimensions]
        weights = np.concatenate([weights,
                                  np.rint(ANISOTROPIC_WEIGHT_SCALE * curvature / smallest).astype(np.int64)])
    return weights


def grow_selection(selection, count_new: Callable, min_growth: int, level_limits=None,
                   max_depth: int = 1000):
    """Smallest selection (by depth) adding at least ``min_growth`` points.

    Args:
        selection: IndexSelection built from the estimated weights
        count_new: Maps a selected MultiIndexSet to the number of points it
            would add to the grid
        min_growth: Requested number of new points
        level_limits: Optional per dimension limits, negative for none

    Returns:
        The selected set; it may add fewer points when the limits saturate.
    """
    saturation = None
    if level_limits is not None and np.all(np.asarray(level_limits) >= 0):
        saturation = int(np.prod(np.asarray(level_limits, dtype=np.int64) + 1))
    selected = selection.select(0, level_limits)
    for depth in range(1, max_depth + 1):
        if count_new(selected) >= min_growth:
            return selected
        if saturation is not None and len(selected) >= saturation:
            logger.debug("level limits saturated at depth %d", depth - 1)
            return selected
        selected = selection.select(depth, level_limits)
    return selected
