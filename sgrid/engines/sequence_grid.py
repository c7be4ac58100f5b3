"""Sequence grids: Newton interpolation over a lower set of Leja points.

Every one dimensional level adds exactly one node, so a point and its level
multi-index coincide and the grid is any lower set of multi-indexes.
"""

import logging

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.config.validation import FormatCorruptionError
from sgrid.core.anisotropy import estimate_weights, grow_selection
from sgrid.core.multi_index import IndexSelection, MultiIndexSet, admissible_frontier, complete_lower, within_limits
from sgrid.core.rules import OneDimensionalWrapper, interpolation_exactness, quadrature_exactness
from sgrid.engines.hierarchical import HierarchicalGrid

logger = logging.getLogger(__name__)


class SequenceRule:
    """Newton basis ``prod_{m<i} (x - x_m) / (x_i - x_m)`` over a Leja sequence."""

    def __init__(self, rule: TypeOneDRule):
        self.rule = rule
        self.wrapper = OneDimensionalWrapper(rule)

    def _nodes(self, count: int) -> np.ndarray:
        self.wrapper.ensure_level(count - 1)
        return self.wrapper.nodes[:count]

    def node(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        if indexes.size == 0:
            return np.zeros(indexes.shape)
        return self._nodes(int(indexes.max()) + 1)[indexes]

    def level(self, indexes) -> np.ndarray:
        return np.array(indexes, dtype=np.int64)

    def level_indexes(self, level: int) -> np.ndarray:
        return np.array([level], dtype=np.int64)

    def parents(self, index: int) -> list:
        return [index - 1] if index > 0 else []

    def children(self, index: int) -> list:
        return [index + 1]

    def basis(self, indexes, x) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64).ravel()
        x = np.asarray(x, dtype=float).ravel()
        result = np.ones((x.size, indexes.size))
        if indexes.size == 0:
            return result
        nodes = self._nodes(int(indexes.max()) + 1)
        for column, i in enumerate(indexes):
            if i == 0:
                continue
            numerator = np.prod(x[:, None] - nodes[None, :i], axis=1)
            result[:, column] = numerator / np.prod(nodes[i] - nodes[:i])
        return result

    def integral(self, indexes) -> np.ndarray:
        indexes = np.asarray(indexes, dtype=np.int64)
        unique, inverse = np.unique(indexes, return_inverse=True)
        abscissas, weights = np.polynomial.legendre.leggauss(int(unique.max()) // 2 + 1)
        integrals = weights @ self.basis(unique, abscissas)
        return integrals[inverse.ravel()].reshape(indexes.shape)

    def lookup(self, x: float) -> int:
        return self.wrapper.find_node(x)


class SequenceGrid(HierarchicalGrid):
    """Sparse grid of Newton polynomials on a Leja or R-Leja sequence.

    Example:
        >>> grid = SequenceGrid.make_grid(2, 1, 3, TypeDepth.LEVEL, TypeOneDRule.LEJA)
        >>> grid.get_num_needed()
        10
    """

    family = GridFamily.SEQUENCE

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0,
                 rule: TypeOneDRule = TypeOneDRule.RLEJA):
        super().__init__(num_dimensions, num_outputs, SequenceRule(rule))

    @property
    def rule(self) -> TypeOneDRule:
        return self.rule1d.rule

    def exactness(self, depth_type: TypeDepth):
        if depth_type.is_interpolation:
            return lambda level: interpolation_exactness(self.rule, level)
        if depth_type.is_quadrature:
            return lambda level: quadrature_exactness(self.rule, level)
        return None

    def selection(self, depth_type: TypeDepth, anisotropic_weights=None) -> IndexSelection:
        return IndexSelection(self.num_dimensions, depth_type, anisotropic_weights,
                              self.exactness(depth_type))

    @classmethod
    def make_grid(cls, num_dimensions: int, num_outputs: int, depth: int, depth_type: TypeDepth,
                  rule: TypeOneDRule, anisotropic_weights=None, level_limits=None) -> "SequenceGrid":
        grid = cls(num_dimensions, num_outputs, rule)
        grid.needed = grid.selection(depth_type, anisotropic_weights).select(depth, level_limits)
        logger.debug("sequence grid: %d points", len(grid.needed))
        return grid

    def update_grid(self, depth: int, depth_type: TypeDepth, anisotropic_weights=None,
                    level_limits=None) -> None:
        selected = self.selection(depth_type, anisotropic_weights).select(depth, level_limits)
        if self.points.empty():
            self.needed = complete_lower(self.needed.union(selected))
        else:
            self._extend(selected)

    def _extend(self, extra: MultiIndexSet) -> None:
        self.needed = complete_lower(self.points.union(extra)).difference(self.points)

    def get_polynomial_space(self, interpolation: bool) -> np.ndarray:
        # the Newton basis of a lower set spans exactly its monomials
        return self._active().indexes.copy()

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    def normalized_surpluses(self, output: int) -> np.ndarray:
        scale = np.max(np.abs(self.values), axis=0)
        scale[scale == 0.0] = 1.0
        magnitudes = np.abs(self.surpluses) / scale
        if output == -1:
            return np.max(magnitudes, axis=1)
        return magnitudes[:, output]

    def estimate_anisotropic_coefficients(self, depth_type: TypeDepth, output: int) -> np.ndarray:
        return estimate_weights(self.points.indexes, self.normalized_surpluses(output), depth_type,
                                self.exactness(depth_type))

    def set_anisotropic_refinement(self, depth_type: TypeDepth, min_growth: int, output: int,
                                   level_limits=None) -> None:
        weights = self.estimate_anisotropic_coefficients(depth_type, output)
        logger.debug("anisotropic refinement weights %s", weights)

        def count_new(selected):
            return len(complete_lower(self.points.union(selected)).difference(self.points))

        selection = self.selection(depth_type, weights)
        self._extend(grow_selection(selection, count_new, min_growth, level_limits))

    def set_surplus_refinement(self, tolerance: float, output: int, level_limits=None) -> None:
        magnitudes = self.normalized_surpluses(output)
        children = set()
        for index, magnitude in zip(self.points, magnitudes):
            if magnitude <= tolerance:
                continue
            children.update(c for c in self.children_of(index)
                            if c not in self.points and within_limits(c, level_limits))
        logger.debug("surplus refinement adds %d points", len(children))
        self._extend(MultiIndexSet.from_tuples(self.num_dimensions, children))

    # -------------------------------------------------------------------------
    # Dynamic construction
    # -------------------------------------------------------------------------

    def get_candidate_points(self, depth_type: TypeDepth, anisotropic_weights=None,
                             level_limits=None) -> np.ndarray:
        selection = self.selection(depth_type, anisotropic_weights)
        ordered = selection.rank(self._pending_initial())
        ordered.extend(selection.rank(admissible_frontier(self.points, level_limits, exclude=ordered)))
        return self._candidate_coordinates(ordered)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _write_rule(self, writer) -> None:
        writer.int(self.rule.code)

    @classmethod
    def _read_rule(cls, reader) -> tuple:
        rule = TypeOneDRule.from_code(reader.int())
        if rule is None or not rule.is_sequence:
            raise FormatCorruptionError("sequence grid payload names a non-sequence rule")
        return (rule,)
