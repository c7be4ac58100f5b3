"""Combination technique shared by the Global and Fourier engines.

The grid is a lower set of tensor levels. Each tensor is a full tensor
product of one dimensional levels; the sparse interpolant and quadrature are
the Smolyak combination of the tensor interpolants. Points are identified by
their one dimensional node indexes in the OneDimensionalWrapper.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from sgrid.config.enums import TypeDepth, TypeOneDRule
from sgrid.config.validation import FormatCorruptionError
from sgrid.core.io import (
    read_flag,
    read_index_set,
    read_matrix,
    write_flag,
    write_index_set,
    write_matrix,
)
from sgrid.core.multi_index import IndexSelection, MultiIndexSet, combination_coefficients
from sgrid.core.rules import OneDimensionalWrapper, interpolation_exactness, quadrature_exactness
from sgrid.engines.base import BaseGrid

logger = logging.getLogger(__name__)


def outer_rows(factors: List[np.ndarray]) -> np.ndarray:
    """Row-wise Kronecker product, the last factor varying fastest."""
    result = factors[0]
    for factor in factors[1:]:
        result = (result[:, :, None] * factor[:, None, :]).reshape(result.shape[0], -1)
    return result


class TensorGrid(BaseGrid):
    """Lower set of tensors over a global one dimensional rule.

    Attributes:
        wrapper: One dimensional nodes, weights and cardinal functions
        tensors: Tensor levels of the loaded (or initial) grid
        updated_tensors: Tensor levels after a pending refinement, or None
        points: Loaded point indexes
        needed: Point indexes awaiting values
    """

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0,
                 rule: TypeOneDRule = TypeOneDRule.NONE, alpha: float = 0.0, beta: float = 0.0):
        super().__init__(num_dimensions, num_outputs)
        self.wrapper = OneDimensionalWrapper(rule, alpha, beta)
        self.tensors = MultiIndexSet(num_dimensions)
        self.updated_tensors: Optional[MultiIndexSet] = None
        self.points = MultiIndexSet(num_dimensions)
        self.needed = MultiIndexSet(num_dimensions)
        self._combination_for = None
        self._combination: List[Tuple[tuple, int]] = []

    @property
    def rule(self) -> TypeOneDRule:
        return self.wrapper.rule

    @property
    def alpha(self) -> float:
        return self.wrapper.alpha

    @property
    def beta(self) -> float:
        return self.wrapper.beta

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def exactness(self, depth_type: TypeDepth):
        if depth_type.is_interpolation:
            return lambda level: interpolation_exactness(self.rule, level)
        if depth_type.is_quadrature:
            return lambda level: quadrature_exactness(self.rule, level)
        return None

    def selection(self, depth_type: TypeDepth, anisotropic_weights=None) -> IndexSelection:
        return IndexSelection(self.num_dimensions, depth_type, anisotropic_weights,
                              self.exactness(depth_type))

    def tensor_point_indexes(self, tensor) -> np.ndarray:
        """Node indexes of all points of a tensor, last dimension fastest."""
        lists = [self.wrapper.level_indices(int(level)) for level in tensor]
        grids = np.meshgrid(*lists, indexing="ij")
        return np.stack([g.ravel() for g in grids], axis=1)

    def points_of(self, tensors: MultiIndexSet) -> MultiIndexSet:
        if tensors.empty():
            return MultiIndexSet(self.num_dimensions)
        return MultiIndexSet(self.num_dimensions,
                             np.vstack([self.tensor_point_indexes(t) for t in tensors]))

    def _set_tensors(self, tensors: MultiIndexSet) -> None:
        """Start over with a fresh grid made of ``tensors``."""
        self.tensors = tensors
        self.updated_tensors = None
        self.points = MultiIndexSet(self.num_dimensions)
        self.needed = self.points_of(tensors)
        self.values = np.zeros((0, self.num_outputs))
        self._coefficients_changed()

    def _coordinates(self, point_set: MultiIndexSet) -> np.ndarray:
        if point_set.empty():
            return np.zeros((0, self.num_dimensions))
        return self.wrapper.nodes[point_set.indexes]

    def _active_sets(self) -> Tuple[MultiIndexSet, MultiIndexSet]:
        if not self.points.empty():
            return self.tensors, self.points
        return self.tensors, self.needed

    def _active_combination(self, tensors: MultiIndexSet) -> List[Tuple[tuple, int]]:
        if self._combination_for is not tensors:
            coefficients = combination_coefficients(tensors)
            self._combination = [(t, int(c)) for t, c in zip(tensors, coefficients) if c != 0]
            self._combination_for = tensors
        return self._combination

    # -------------------------------------------------------------------------
    # Counts and points
    # -------------------------------------------------------------------------

    def get_num_loaded(self) -> int:
        return len(self.points)

    def get_num_needed(self) -> int:
        return len(self.needed)

    def get_loaded_points(self) -> np.ndarray:
        return self._coordinates(self.points)

    def get_needed_points(self) -> np.ndarray:
        return self._coordinates(self.needed)

    # -------------------------------------------------------------------------
    # Numerics
    # -------------------------------------------------------------------------

    def _tensor_basis(self, tensor, x: np.ndarray) -> np.ndarray:
        return outer_rows([self.wrapper.basis(int(level), x[:, j]) for j, level in enumerate(tensor)])

    def get_interpolation_weights(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(-1, self.num_dimensions)
        tensors, point_set = self._active_sets()
        weights = np.zeros((x.shape[0], len(point_set)))
        for tensor, coefficient in self._active_combination(tensors):
            refs = point_set.find_all(self.tensor_point_indexes(tensor))
            weights[:, refs] += coefficient * self._tensor_basis(tensor, x)
        return weights

    def get_quadrature_weights(self) -> np.ndarray:
        tensors, point_set = self._active_sets()
        weights = np.zeros(len(point_set))
        for tensor, coefficient in self._active_combination(tensors):
            refs = point_set.find_all(self.tensor_point_indexes(tensor))
            factors = [self.wrapper.level_weights(int(level))[None, :] for level in tensor]
            weights[refs] += coefficient * outer_rows(factors)[0]
        return weights

    def _evaluation_matrix(self, x: np.ndarray, sparse: bool):
        return self.get_interpolation_weights(x)

    def _evaluation_coefficients(self) -> np.ndarray:
        return self.values

    def load_needed_points(self, values: np.ndarray) -> None:
        values = np.array(values, dtype=float)
        if self.needed.empty():
            self.values = values
        elif self.points.empty():
            self.points = self.needed
            self.needed = MultiIndexSet(self.num_dimensions)
            self.values = values
        else:
            merged = self.points.union(self.needed)
            combined = np.zeros((len(merged), self.num_outputs))
            combined[merged.find_all(self.points.indexes)] = self.values
            combined[merged.find_all(self.needed.indexes)] = values
            self.points = merged
            self.needed = MultiIndexSet(self.num_dimensions)
            self.values = combined
            if self.updated_tensors is not None:
                self.tensors = self.updated_tensors
                self.updated_tensors = None
        self._coefficients_changed()

    def clear_refinement(self) -> None:
        # without loaded points the needed set is the grid itself
        if self.points.empty():
            return
        self.needed = MultiIndexSet(self.num_dimensions)
        self.updated_tensors = None

    def merge_refinement(self) -> None:
        if self.needed.empty():
            return
        if self.points.empty():
            self.points = self.needed
        else:
            self.points = self.points.union(self.needed)
            if self.updated_tensors is not None:
                self.tensors = self.updated_tensors
        self.needed = MultiIndexSet(self.num_dimensions)
        self.updated_tensors = None
        self.values = np.zeros((len(self.points), self.num_outputs))
        self._coefficients_changed()

    def _take_needed_as_loaded(self) -> None:
        """Prepare for coefficients that replace every value."""
        if not self.points.empty():
            self.clear_refinement()
        else:
            self.points = self.needed
            self.needed = MultiIndexSet(self.num_dimensions)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def write(self, writer) -> None:
        writer.int(self.num_dimensions)
        writer.int(self.num_outputs)
        writer.int(self.rule.code)
        writer.float(self.alpha)
        writer.float(self.beta)
        write_index_set(writer, self.tensors)
        write_flag(writer, self.updated_tensors is not None)
        if self.updated_tensors is not None:
            write_index_set(writer, self.updated_tensors)
        write_index_set(writer, self.points)
        write_index_set(writer, self.needed)
        write_matrix(writer, self.values)

    @classmethod
    def read(cls, reader) -> "TensorGrid":
        num_dimensions = reader.int()
        num_outputs = reader.int()
        rule = TypeOneDRule.from_code(reader.int())
        alpha = reader.float()
        beta = reader.float()
        if num_dimensions < 1 or num_outputs < 0 or rule is None or not cls._accepts_rule(rule):
            raise FormatCorruptionError(f"invalid {cls.family.value} grid header")
        grid = cls(num_dimensions, num_outputs, rule, alpha, beta)
        grid.tensors = read_index_set(reader, num_dimensions)
        if read_flag(reader):
            grid.updated_tensors = read_index_set(reader, num_dimensions)
        grid.points = read_index_set(reader, num_dimensions)
        grid.needed = read_index_set(reader, num_dimensions)
        grid.values = read_matrix(reader, len(grid.points), num_outputs)

        levels = [grid.tensors.max_levels()]
        if grid.updated_tensors is not None:
            levels.append(grid.updated_tensors.max_levels())
        grid.wrapper.ensure_level(int(np.max(levels)))
        grid._extend_nodes_to_cover(grid.points.union(grid.needed))
        return grid

    @classmethod
    def _accepts_rule(cls, rule: TypeOneDRule) -> bool:
        return rule.is_global

    def _extend_nodes_to_cover(self, point_set: MultiIndexSet) -> None:
        """Generate levels until every stored node index exists."""
        if point_set.empty():
            return
        largest = int(point_set.indexes.max())
        level = self.wrapper.num_levels
        while len(self.wrapper.nodes) <= largest:
            if level > 64:
                raise FormatCorruptionError(f"node index {largest} is out of range")
            self.wrapper.ensure_level(level)
            level += 1
