"""Global polynomial grids built with the combination technique.

Tensors are selected by depth type and anisotropic weights; refinement adds
tensors either by re-estimating the anisotropy or by the magnitude of the
hierarchical surplus of each tensor. Dynamic construction accepts points in
any order and commits a tensor once all of its points have values.
"""

import itertools
import logging
from typing import List, Tuple

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.config.validation import InvalidArgumentError, PreconditionError
from sgrid.core.anisotropy import estimate_weights, grow_selection
from sgrid.core.multi_index import MultiIndexSet, admissible_frontier, complete_lower, within_limits
from sgrid.core.rules import interpolation_exactness, quadrature_exactness
from sgrid.engines.base import ConstructionData
from sgrid.engines.tensor import TensorGrid

logger = logging.getLogger(__name__)


class GlobalGrid(TensorGrid):
    """Sparse grid of global (Lagrange) interpolants.

    Example:
        >>> grid = GlobalGrid.make_grid(2, 1, 3, TypeDepth.LEVEL, TypeOneDRule.CLENSHAW_CURTIS)
        >>> grid.get_num_needed()
        29
    """

    family = GridFamily.GLOBAL

    @classmethod
    def make_grid(cls, num_dimensions: int, num_outputs: int, depth: int, depth_type: TypeDepth,
                  rule: TypeOneDRule, anisotropic_weights=None, alpha: float = 0.0,
                  beta: float = 0.0, level_limits=None) -> "GlobalGrid":
        grid = cls(num_dimensions, num_outputs, rule, alpha, beta)
        tensors = grid.selection(depth_type, anisotropic_weights).select(depth, level_limits)
        grid._set_tensors(tensors)
        logger.debug("global grid: %d tensors, %d points", len(tensors), len(grid.needed))
        return grid

    def update_grid(self, depth: int, depth_type: TypeDepth, anisotropic_weights=None,
                    level_limits=None) -> None:
        """Add the tensors of a new selection to the existing grid."""
        selected = self.selection(depth_type, anisotropic_weights).select(depth, level_limits)
        if self.points.empty():
            self._set_tensors(complete_lower(self.tensors.union(selected)))
            return
        self._grow(selected)

    def _grow(self, extra: MultiIndexSet) -> None:
        updated = complete_lower(self.tensors.union(extra))
        needed = self.points_of(updated).difference(self.points)
        if needed.empty():
            self.needed = MultiIndexSet(self.num_dimensions)
            self.updated_tensors = None
            return
        self.needed = needed
        self.updated_tensors = updated

    # -------------------------------------------------------------------------
    # Hierarchical coefficients
    # -------------------------------------------------------------------------

    def evaluate_hierarchical_functions(self, x: np.ndarray) -> np.ndarray:
        return self.get_interpolation_weights(x)

    def get_hierarchical_coefficients(self) -> np.ndarray:
        return self.values.copy()

    def set_hierarchical_coefficients(self, coefficients: np.ndarray) -> None:
        self._take_needed_as_loaded()
        self.values = np.array(coefficients, dtype=float)
        self._coefficients_changed()

    def get_polynomial_space(self, interpolation: bool) -> np.ndarray:
        """Exponents of the monomials captured exactly by the grid."""
        exactness = interpolation_exactness if interpolation else quadrature_exactness
        tensors, _ = self._active_sets()
        boxes = []
        for tensor in tensors:
            ranges = [np.arange(exactness(self.rule, int(level)) + 1) for level in tensor]
            grids = np.meshgrid(*ranges, indexing="ij")
            boxes.append(np.stack([g.ravel() for g in grids], axis=1))
        if not boxes:
            return np.zeros((0, self.num_dimensions), dtype=np.int64)
        return MultiIndexSet(self.num_dimensions, np.vstack(boxes)).indexes.copy()

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    def _tensor_values(self, tensor, targets: List[np.ndarray]) -> np.ndarray:
        """Tensor interpolant of ``tensor`` evaluated on the tensor grid ``targets``."""
        refs = self.points.find_all(self.tensor_point_indexes(tensor))
        shape = [self.wrapper.num_points(int(level)) for level in tensor]
        result = self.values[refs].reshape(shape + [self.num_outputs])
        for j, level in enumerate(tensor):
            factor = self.wrapper.basis(int(level), targets[j])
            result = np.moveaxis(np.tensordot(factor, result, axes=([1], [j])), 0, j)
        return result.reshape(-1, self.num_outputs)

    def tensor_surpluses(self) -> Tuple[List[tuple], np.ndarray]:
        """Largest hierarchical surplus of every loaded tensor.

        The surplus of tensor ``t`` is the difference operator
        ``sum_e (-1)^|e| U_{t-e}`` evaluated on the points of ``t``.

        Returns:
            The tensors and a ``(num_tensors, num_outputs)`` array.
        """
        if self.points.empty():
            raise PreconditionError("refinement requires loaded values")
        tensors = list(self.tensors)
        result = np.zeros((len(tensors), self.num_outputs))
        for position, tensor in enumerate(tensors):
            targets = [self.wrapper.level_nodes(int(level)) for level in tensor]
            delta = np.zeros((int(np.prod([t.size for t in targets])), self.num_outputs))
            for corner in itertools.product((0, 1), repeat=self.num_dimensions):
                lower = tuple(t - e for t, e in zip(tensor, corner))
                if min(lower) < 0:
                    continue
                sign = -1.0 if sum(corner) % 2 else 1.0
                delta += sign * self._tensor_values(lower, targets)
            result[position] = np.max(np.abs(delta), axis=0)
        return tensors, result

    def _normalized_surpluses(self, output: int) -> Tuple[List[tuple], np.ndarray]:
        tensors, surpluses = self.tensor_surpluses()
        scale = np.max(np.abs(self.values), axis=0)
        scale[scale == 0.0] = 1.0
        surpluses = surpluses / scale
        if output == -1:
            return tensors, np.max(surpluses, axis=1)
        return tensors, surpluses[:, output]

    def estimate_anisotropic_coefficients(self, depth_type: TypeDepth, output: int) -> np.ndarray:
        tensors, magnitudes = self._normalized_surpluses(output)
        return estimate_weights(np.array(tensors, dtype=np.int64), magnitudes, depth_type,
                                self.exactness(depth_type))

    def set_anisotropic_refinement(self, depth_type: TypeDepth, min_growth: int, output: int,
                                   level_limits=None) -> None:
        weights = self.estimate_anisotropic_coefficients(depth_type, output)
        logger.debug("anisotropic refinement weights %s", weights)
        selection = self.selection(depth_type, weights)

        def count_new(selected):
            updated = complete_lower(self.tensors.union(selected))
            return len(self.points_of(updated).difference(self.points))

        self._grow(grow_selection(selection, count_new, min_growth, level_limits))

    def set_surplus_refinement(self, tolerance: float, output: int, level_limits=None) -> None:
        """Add the children of every tensor whose surplus exceeds ``tolerance``."""
        tensors, magnitudes = self._normalized_surpluses(output)
        children = []
        for tensor, magnitude in zip(tensors, magnitudes):
            if magnitude <= tolerance:
                continue
            for j in range(self.num_dimensions):
                child = tensor[:j] + (tensor[j] + 1,) + tensor[j + 1:]
                if child not in self.tensors and within_limits(child, level_limits):
                    children.append(child)
        logger.debug("surplus refinement adds %d tensors", len(set(children)))
        self._grow(MultiIndexSet.from_tuples(self.num_dimensions, children))

    # -------------------------------------------------------------------------
    # Dynamic construction
    # -------------------------------------------------------------------------

    def begin_construction(self) -> None:
        initial = None
        if self.points.empty():
            initial = self.tensors
            self.tensors = MultiIndexSet(self.num_dimensions)
            self.needed = MultiIndexSet(self.num_dimensions)
            self.updated_tensors = None
        else:
            self.clear_refinement()
        self.dynamic = ConstructionData(initial)

    def get_candidate_points(self, depth_type: TypeDepth, anisotropic_weights=None,
                             level_limits=None) -> np.ndarray:
        """Canonical points of the next tensors, most important first."""
        selection = self.selection(depth_type, anisotropic_weights)
        ordered = []
        if self.dynamic.initial is not None:
            ordered.extend(selection.rank(t for t in self.dynamic.initial if t not in self.tensors))
        frontier = admissible_frontier(self.tensors, level_limits, exclude=ordered)
        ordered.extend(selection.rank(frontier))

        listed = set()
        result = []
        for tensor in ordered:
            for row in self.tensor_point_indexes(tensor):
                index = tuple(int(v) for v in row)
                if index in listed or index in self.points or index in self.dynamic.pending:
                    continue
                listed.add(index)
                result.append(index)
        if not result:
            return np.zeros((0, self.num_dimensions))
        return self.wrapper.nodes[np.array(result, dtype=np.int64)]

    def _locate(self, x: np.ndarray) -> tuple:
        index = tuple(self.wrapper.find_node(v) for v in np.asarray(x, dtype=float).ravel())
        if min(index) < 0:
            raise InvalidArgumentError(f"point {list(x)} is not a node of the grid")
        return index

    def load_constructed_point(self, x: np.ndarray, y: np.ndarray) -> None:
        index = self._locate(x)
        y = np.asarray(y, dtype=float).ravel()
        position = self.points.find(index)
        if position >= 0:
            self.values[position] = y
        else:
            self.dynamic.pending[index] = y
            self._commit_tensors()
        self._coefficients_changed()

    def _commit_tensors(self) -> None:
        pending = self.dynamic.pending
        while True:
            ready = None
            for tensor in admissible_frontier(self.tensors):
                rows = [tuple(int(v) for v in row) for row in self.tensor_point_indexes(tensor)]
                if all(r in self.points or r in pending for r in rows):
                    ready = (tensor, [r for r in rows if r not in self.points])
                    break
            if ready is None:
                return
            tensor, fresh = ready
            self.tensors = self.tensors.union(MultiIndexSet.from_tuples(self.num_dimensions, [tensor]))
            if fresh:
                added = MultiIndexSet.from_tuples(self.num_dimensions, fresh)
                merged = self.points.union(added)
                combined = np.zeros((len(merged), self.num_outputs))
                if not self.points.empty():
                    combined[merged.find_all(self.points.indexes)] = self.values
                combined[merged.find_all(added.indexes)] = [pending.pop(r) for r in added]
                self.points = merged
                self.values = combined
            logger.debug("committed tensor %s", tensor)

    def write_construction(self, writer) -> None:
        self.dynamic.write(writer, self.num_dimensions, self.num_outputs)

    def read_construction(self, reader) -> None:
        self.dynamic = ConstructionData.read(reader, self.num_dimensions, self.num_outputs)
        if self.dynamic.initial is not None:
            self.wrapper.ensure_level(int(np.max(self.dynamic.initial.max_levels())))
        self._extend_nodes_to_cover(MultiIndexSet.from_tuples(self.num_dimensions,
                                                               self.dynamic.pending.keys()))
