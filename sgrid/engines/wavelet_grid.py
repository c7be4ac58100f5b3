"""Interpolet wavelets of order 1 and 3.

Level 0 holds ``2**base + 1`` equispaced nodal functions; every finer level
adds one function per odd multiple of the level step ``h``.

Order 1 uses lifted hats ``phi(x_i) - phi(x_i - h) / 4 - phi(x_i + h) / 4``.
Order 3 uses the cardinal functions of local cubic interpolation, the cubic
through the four closest nodes of the level (one sided next to the
boundary), so the root level alone reproduces cubics. The order 1 basis is
not interpolating, so coefficients come from a sparse LU factorization.
"""

import logging

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.config.validation import FormatCorruptionError
from sgrid.core.multi_index import IndexSelection
from sgrid.engines.base import BaseGrid
from sgrid.engines.hierarchical import HierarchicalGrid

logger = logging.getLogger(__name__)

_GAUSS_NODES, _GAUSS_WEIGHTS = np.polynomial.legendre.leggauss(4)
_MAX_LOOKUP_LEVEL = 48
_LOOKUP_TOL = 1.0e-12


class WaveletRule:
    """One dimensional interpolet wavelet hierarchy.

    Args:
        order: 1 (lifted piecewise linear) or 3 (local cubic interpolets)
    """

    def __init__(self, order: int):
        self.order = order
        self.base = 1 if order == 1 else 2
        self.num_roots = 2 ** self.base + 1

    def _offset(self, level: int) -> int:
        if level == 0:
            return 0
        return self.num_roots + 2 ** self.base * (2 ** (level - 1) - 1)

    def _step(self, level: int) -> float:
        return 2.0 ** -(level + self.base - 1)

    def level(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        level = np.zeros(indexes.shape, dtype=np.int64)
        fine = indexes >= self.num_roots
        blocks = (indexes[fine] - self.num_roots) // 2 ** self.base + 1
        level[fine] = np.floor(np.log2(blocks)).astype(np.int64) + 1
        return level

    def _locate(self, index: int):
        level = int(self.level(np.array([index]))[0])
        return level, index - self._offset(level)

    def node(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        level = self.level(indexes)
        offsets = np.where(level == 0, 0,
                           self.num_roots + 2 ** self.base * (2 ** np.maximum(level - 1, 0) - 1))
        position = indexes - offsets
        step = 2.0 ** -(level + self.base - 1)
        return np.where(level == 0, -1.0 + position * 2.0 ** (1 - self.base),
                        -1.0 + (2.0 * position + 1.0) * step)

    def level_indexes(self, level: int) -> np.ndarray:
        if level == 0:
            return np.arange(self.num_roots, dtype=np.int64)
        start = self._offset(level)
        return np.arange(start, start + 2 ** (level + self.base - 1), dtype=np.int64)

    def parents(self, index: int) -> list:
        level, position = self._locate(index)
        if level == 0:
            return []
        if level == 1:
            return [position + 1 if position % 2 == 0 else position]
        return [self._offset(level - 1) + position // 2]

    def children(self, index: int) -> list:
        level, position = self._locate(index)
        if level == 0:
            first = self._offset(1)
            return [first + k for k in range(2 ** self.base) if self.parents(first + k) == [index]]
        start = self._offset(level + 1)
        return [start + 2 * position, start + 2 * position + 1]

    def _phi(self, x: np.ndarray, center: float, step: float) -> np.ndarray:
        t = (x - center) / step
        return np.where(np.abs(t) < 1.0, 1.0 - np.abs(t), 0.0)

    @staticmethod
    def _interpolet(x: np.ndarray, grid_index: int, step: float) -> np.ndarray:
        # cardinal function of node ``grid_index`` for local cubic interpolation
        # on the equispaced grid of spacing ``step`` over [-1, 1]
        count = int(round(2.0 / step))
        scaled = (x + 1.0) / step
        cell = np.clip(np.floor(scaled), 0, count - 1)
        start = np.clip(cell - 1, 0, count - 3)
        t = scaled - start
        local = (grid_index - start).astype(np.int64)
        lagrange = (
            -(t - 1.0) * (t - 2.0) * (t - 3.0) / 6.0,
            t * (t - 2.0) * (t - 3.0) / 2.0,
            -t * (t - 1.0) * (t - 3.0) / 2.0,
            t * (t - 1.0) * (t - 2.0) / 6.0,
        )
        inside = (local >= 0) & (local <= 3)
        return np.where(inside, np.choose(np.clip(local, 0, 3), lagrange), 0.0)

    def _function(self, index: int, x: np.ndarray) -> np.ndarray:
        level, position = self._locate(index)
        if self.order == 3:
            if level == 0:
                return self._interpolet(x, position, 0.5)
            return self._interpolet(x, 2 * position + 1, self._step(level))
        center = float(self.node(np.array([index]))[0])
        if level == 0:
            return self._phi(x, center, 1.0)
        step = self._step(level)
        return (self._phi(x, center, step)
                - 0.25 * self._phi(x, center - step, step)
                - 0.25 * self._phi(x, center + step, step))

    def basis(self, indexes, x) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64).ravel()
        x = np.asarray(x, dtype=float).ravel()
        result = np.empty((x.size, indexes.size))
        for column, index in enumerate(indexes):
            result[:, column] = self._function(int(index), x)
        return result

    def _integral(self, index: int) -> float:
        level, _ = self._locate(index)
        center = float(self.node(np.array([index]))[0])
        step = 2.0 ** (1 - self.base) if level == 0 else self._step(level)
        reach = step if (level == 0 and self.order == 1) else 2.0 * step
        total = 0.0
        # polynomial between consecutive grid lines of the level
        kinks = np.arange(center - reach, center + reach + 0.5 * step, step)
        for lower, upper in zip(kinks[:-1], kinks[1:]):
            lower, upper = max(lower, -1.0), min(upper, 1.0)
            if upper <= lower:
                continue
            half = 0.5 * (upper - lower)
            samples = self._function(index, half * _GAUSS_NODES + 0.5 * (upper + lower))
            total += half * float(_GAUSS_WEIGHTS @ samples)
        return total

    def integral(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        unique, inverse = np.unique(indexes, return_inverse=True)
        integrals = np.array([self._integral(int(index)) for index in unique])
        return integrals[inverse.ravel()].reshape(indexes.shape)

    def lookup(self, x: float) -> int:
        x = float(x)
        root_step = 2.0 ** (1 - self.base)
        scaled = (x + 1.0) / root_step
        nearest = int(round(scaled))
        if abs(scaled - nearest) < _LOOKUP_TOL and 0 <= nearest < self.num_roots:
            return nearest
        for level in range(1, _MAX_LOOKUP_LEVEL):
            scaled = (x + 1.0) / self._step(level)
            nearest = int(round(scaled))
            if abs(scaled - nearest) < _LOOKUP_TOL * 2 ** level:
                if nearest % 2 == 1 and 0 < nearest < 2 ** (level + self.base):
                    return self._offset(level) + (nearest - 1) // 2
                return -1
        return -1


class WaveletGrid(HierarchicalGrid):
    """Sparse grid of interpolet wavelets.

    Example:
        >>> WaveletGrid.make_grid(1, 1, 1).get_num_needed()
        5
    """

    family = GridFamily.WAVELET
    triangular = False

    begin_construction = BaseGrid.begin_construction
    write_construction = BaseGrid.write_construction
    read_construction = BaseGrid.read_construction

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0, order: int = 1):
        super().__init__(num_dimensions, num_outputs, WaveletRule(order))

    @property
    def rule(self) -> TypeOneDRule:
        return TypeOneDRule.WAVELET

    @property
    def order(self) -> int:
        return self.rule1d.order

    @classmethod
    def make_grid(cls, num_dimensions: int, num_outputs: int, depth: int, order: int = 1,
                  level_limits=None) -> "WaveletGrid":
        grid = cls(num_dimensions, num_outputs, order)
        levels = IndexSelection(num_dimensions, TypeDepth.LEVEL).select(depth, level_limits)
        grid.needed = grid.points_from_levels(levels)
        logger.debug("wavelet grid (order %d): %d points", order, len(grid.needed))
        return grid

    def _write_rule(self, writer) -> None:
        writer.int(self.order)

    @classmethod
    def _read_rule(cls, reader) -> tuple:
        order = reader.int()
        if order not in (1, 3):
            raise FormatCorruptionError(f"invalid wavelet order {order}")
        return (order,)
