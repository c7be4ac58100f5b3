"""Local polynomial grids on the dyadic hierarchy of [-1, 1].

Node indexes follow the dyadic tree: 0 is the center, 1 and 2 the end
points, and level ``l >= 2`` holds ``2**(l-1)`` nodes at odd multiples of
``2**(1-l)``. The ``localp-zero`` rule drops the end points and uses a
function vanishing at the boundary on the root; ``semi-localp`` uses global
quadratics on the first level.
"""

import logging

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.config.validation import FormatCorruptionError
from sgrid.core.multi_index import IndexSelection
from sgrid.engines.hierarchical import HierarchicalGrid

logger = logging.getLogger(__name__)

_GAUSS_NODES, _GAUSS_WEIGHTS = np.polynomial.legendre.leggauss(4)
_MAX_LOOKUP_LEVEL = 48
_LOOKUP_TOL = 1.0e-12


def _dyadic_level(indexes: np.ndarray) -> np.ndarray:
    indexes = np.asarray(indexes, dtype=np.int64)
    level = np.zeros(indexes.shape, dtype=np.int64)
    level[(indexes == 1) | (indexes == 2)] = 1
    deep = indexes >= 3
    level[deep] = np.floor(np.log2(indexes[deep] - 1)).astype(np.int64) + 1
    return level


def _dyadic_node(indexes: np.ndarray) -> np.ndarray:
    indexes = np.asarray(indexes, dtype=np.int64)
    nodes = np.zeros(indexes.shape)
    nodes[indexes == 1] = -1.0
    nodes[indexes == 2] = 1.0
    deep = indexes >= 3
    level = _dyadic_level(indexes[deep])
    count = 2.0 ** (level - 1)
    offset = indexes[deep] - (count.astype(np.int64) + 1)
    nodes[deep] = -1.0 + (2.0 * offset + 1.0) / count
    return nodes


def _dyadic_lookup(x: float) -> int:
    if abs(x) < _LOOKUP_TOL:
        return 0
    if abs(x + 1.0) < _LOOKUP_TOL:
        return 1
    if abs(x - 1.0) < _LOOKUP_TOL:
        return 2
    for level in range(2, _MAX_LOOKUP_LEVEL):
        count = 2 ** (level - 1)
        scaled = (x + 1.0) * count
        nearest = int(round(scaled))
        if abs(scaled - nearest) < _LOOKUP_TOL * count:
            if nearest % 2 == 1 and 0 < nearest < 2 * count:
                return count + 1 + (nearest - 1) // 2
            return -1
    return -1


class LocalRule:
    """One dimensional dyadic hierarchy of piecewise polynomials.

    Args:
        rule: localp, localp-zero or semi-localp
        order: 0 constant, 1 linear, 2 or more (and -1) quadratic
    """

    def __init__(self, rule: TypeOneDRule, order: int):
        self.rule = rule
        self.order = order

    @property
    def _zero(self) -> bool:
        return self.rule is TypeOneDRule.LOCALP_ZERO

    def _dyadic(self, indexes: np.ndarray) -> np.ndarray:
        """Index in the full dyadic tree (with end points)."""
        indexes = np.asarray(indexes, dtype=np.int64)
        if self._zero:
            return np.where(indexes == 0, 0, indexes + 2)
        return indexes

    def node(self, indexes) -> np.ndarray:
        return _dyadic_node(self._dyadic(indexes))

    def level(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        level = _dyadic_level(self._dyadic(indexes))
        if self._zero:
            level = np.where(indexes == 0, 0, level - 1)
        return level

    def level_indexes(self, level: int) -> np.ndarray:
        if level == 0:
            return np.array([0], dtype=np.int64)
        if self._zero:
            return np.arange(2 ** level - 1, 2 ** (level + 1) - 1, dtype=np.int64)
        if level == 1:
            return np.array([1, 2], dtype=np.int64)
        return np.arange(2 ** (level - 1) + 1, 2 ** level + 1, dtype=np.int64)

    def parents(self, index: int) -> list:
        if index == 0:
            return []
        if self._zero:
            return [0] if index <= 2 else [(index + 3) // 2 - 2]
        if index <= 2:
            return [0]
        if index <= 4:
            return [index - 2]
        return [(index + 1) // 2]

    def children(self, index: int) -> list:
        if index == 0:
            return [1, 2]
        if self._zero:
            return [2 * index + 1, 2 * index + 2]
        if index <= 2:
            return [index + 2]
        return [2 * index - 1, 2 * index]

    def _support(self, index: int) -> float:
        if self._zero and index == 0:
            return 1.0
        level = int(_dyadic_level(self._dyadic(np.array([index])))[0])
        return 1.0 if level <= 1 else 2.0 ** (1 - level)

    def _is_global(self, index: int) -> bool:
        if index == 0:
            return not self._zero
        return self.rule is TypeOneDRule.SEMI_LOCALP and index <= 2 and self.order not in (0, 1)

    def _function(self, index: int, x: np.ndarray) -> np.ndarray:
        if index == 0 and not self._zero:
            return np.ones(x.size)
        center = float(self.node(np.array([index]))[0])
        if self._is_global(index):
            # semi-localp end point quadratics
            return 0.5 * x * (x - 1.0) if center < 0.0 else 0.5 * x * (x + 1.0)
        t = (x - center) / self._support(index)
        inside = np.abs(t) < 1.0
        if self.order == 0:
            return inside.astype(float)
        dyadic_level = int(_dyadic_level(self._dyadic(np.array([index])))[0])
        if self.order == 1 or (dyadic_level == 1 and not self._zero):
            return np.where(inside, 1.0 - np.abs(t), 0.0)
        return np.where(inside, 1.0 - t * t, 0.0)

    def basis(self, indexes, x) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64).ravel()
        x = np.asarray(x, dtype=float).ravel()
        result = np.empty((x.size, indexes.size))
        for column, index in enumerate(indexes):
            result[:, column] = self._function(int(index), x)
        return result

    def _integral(self, index: int) -> float:
        center = float(self.node(np.array([index]))[0])
        if self._is_global(index):
            pieces = [(-1.0, 0.0), (0.0, 1.0)]
        else:
            support = self._support(index)
            pieces = [(max(-1.0, center - support), center), (center, min(1.0, center + support))]
        total = 0.0
        for lower, upper in pieces:
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
        index = _dyadic_lookup(float(x))
        if not self._zero or index <= 0:
            return index
        return -1 if index <= 2 else index - 2


class LocalPolynomialGrid(HierarchicalGrid):
    """Sparse grid of compactly supported piecewise polynomials.

    Example:
        >>> grid = LocalPolynomialGrid.make_grid(1, 1, 2)
        >>> grid.get_num_needed()
        5
    """

    family = GridFamily.LOCAL_POLYNOMIAL

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0,
                 rule: TypeOneDRule = TypeOneDRule.LOCALP, order: int = 1):
        super().__init__(num_dimensions, num_outputs, LocalRule(rule, order))

    @property
    def rule(self) -> TypeOneDRule:
        return self.rule1d.rule

    @property
    def order(self) -> int:
        return self.rule1d.order

    @classmethod
    def make_grid(cls, num_dimensions: int, num_outputs: int, depth: int, order: int = 1,
                  rule: TypeOneDRule = TypeOneDRule.LOCALP, level_limits=None) -> "LocalPolynomialGrid":
        grid = cls(num_dimensions, num_outputs, rule, order)
        levels = IndexSelection(num_dimensions, TypeDepth.LEVEL).select(depth, level_limits)
        grid.needed = grid.points_from_levels(levels)
        logger.debug("local polynomial grid (%s, order %d): %d points", rule.value, order, len(grid.needed))
        return grid

    def _write_rule(self, writer) -> None:
        writer.int(self.rule.code)
        writer.int(self.order)

    @classmethod
    def _read_rule(cls, reader) -> tuple:
        rule = TypeOneDRule.from_code(reader.int())
        order = reader.int()
        if rule is None or not rule.is_local or order < -1:
            raise FormatCorruptionError("invalid local polynomial rule or order")
        return rule, order
