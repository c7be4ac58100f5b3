"""Hierarchical grids: one basis function per point.

Sequence, LocalPolynomial and Wavelet grids share this machinery. A point is
a multi-index of one dimensional node indexes; its basis function is the
product of one dimensional functions supplied by a rule object. The rule
object provides:

    node(indexes)            canonical coordinates, vectorized
    level(indexes)           hierarchical level, vectorized
    level_indexes(level)     node indexes of one level
    parents(index)           list of one dimensional parents
    children(index)          list of one dimensional children
    basis(indexes, x)        ``(len(x), len(indexes))`` function values
    integral(indexes)        integrals over [-1, 1], vectorized
    lookup(x)                node index at ``x`` or -1

The coefficients (surpluses) solve ``A c = values`` with ``A`` the basis
evaluated at the points. Ordered by total level the system is lower
triangular for interpolating hierarchies; lifted wavelets use a sparse LU
factorization instead.
"""

import logging
from abc import abstractmethod
from collections import defaultdict
from typing import List, Optional

import numpy as np
import scipy.sparse
from scipy.sparse.linalg import spsolve_triangular, splu

from sgrid.config.enums import TypeRefinement
from sgrid.config.validation import FormatCorruptionError, InvalidArgumentError
from sgrid.core.io import read_index_set, read_matrix, write_index_set, write_matrix
from sgrid.core.multi_index import MultiIndexSet, complete_lower, within_limits
from sgrid.engines.base import BaseGrid, ConstructionData

logger = logging.getLogger(__name__)


class HierarchicalGrid(BaseGrid):
    """Point based grid with hierarchical surpluses.

    Attributes:
        rule1d: One dimensional hierarchy (see module docstring)
        points: Loaded point indexes
        needed: Point indexes awaiting values
        surpluses: ``(num_loaded, num_outputs)`` hierarchical coefficients
    """

    triangular = True
    supports_sparse = True

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0, rule1d=None):
        super().__init__(num_dimensions, num_outputs)
        self.rule1d = rule1d
        self.points = MultiIndexSet(num_dimensions)
        self.needed = MultiIndexSet(num_dimensions)
        self.surpluses = np.zeros((0, num_outputs))

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def points_from_levels(self, level_set: MultiIndexSet) -> MultiIndexSet:
        """All points whose per dimension levels form an index of ``level_set``."""
        blocks = []
        for levels in level_set:
            lists = [self.rule1d.level_indexes(int(level)) for level in levels]
            grids = np.meshgrid(*lists, indexing="ij")
            blocks.append(np.stack([g.ravel() for g in grids], axis=1))
        if not blocks:
            return MultiIndexSet(self.num_dimensions)
        return MultiIndexSet(self.num_dimensions, np.vstack(blocks))

    def parents_of(self, index: tuple, direction: Optional[int] = None) -> List[tuple]:
        dims = range(self.num_dimensions) if direction is None else (direction,)
        result = []
        for j in dims:
            for parent in self.rule1d.parents(index[j]):
                result.append(index[:j] + (parent,) + index[j + 1:])
        return result

    def children_of(self, index: tuple, direction: Optional[int] = None) -> List[tuple]:
        dims = range(self.num_dimensions) if direction is None else (direction,)
        result = []
        for j in dims:
            for child in self.rule1d.children(index[j]):
                result.append(index[:j] + (child,) + index[j + 1:])
        return result

    def close_under_parents(self, index_set: MultiIndexSet) -> MultiIndexSet:
        return complete_lower(index_set, self.parents_of)

    def levels_of(self, indexes: np.ndarray) -> np.ndarray:
        return self.rule1d.level(np.asarray(indexes, dtype=np.int64))

    def within_level_limits(self, index: tuple, level_limits) -> bool:
        if level_limits is None:
            return True
        return within_limits(self.levels_of(np.array(index)), level_limits)

    def _coordinates(self, point_set: MultiIndexSet) -> np.ndarray:
        if point_set.empty():
            return np.zeros((0, self.num_dimensions))
        return self.rule1d.node(point_set.indexes)

    def _active(self) -> MultiIndexSet:
        return self.points if not self.points.empty() else self.needed

    def get_num_loaded(self) -> int:
        return len(self.points)

    def get_num_needed(self) -> int:
        return len(self.needed)

    def get_loaded_points(self) -> np.ndarray:
        return self._coordinates(self.points)

    def get_needed_points(self) -> np.ndarray:
        return self._coordinates(self.needed)

    def get_point_indexes(self) -> np.ndarray:
        return self._active().indexes.copy()

    def get_needed_indexes(self) -> np.ndarray:
        return self.needed.indexes.copy()

    # -------------------------------------------------------------------------
    # Linear algebra
    # -------------------------------------------------------------------------

    def basis_matrix(self, x: np.ndarray, point_set: MultiIndexSet) -> np.ndarray:
        """``(num_x, len(point_set))`` values of the basis functions at ``x``."""
        x = np.asarray(x, dtype=float).reshape(-1, self.num_dimensions)
        indexes = point_set.indexes
        result = np.ones((x.shape[0], len(point_set)))
        for j in range(self.num_dimensions):
            unique, inverse = np.unique(indexes[:, j], return_inverse=True)
            result *= self.rule1d.basis(unique, x[:, j])[:, inverse.ravel()]
        return result

    def _solve(self, point_set: MultiIndexSet, rhs: np.ndarray, transpose: bool = False) -> np.ndarray:
        """Solve ``A c = rhs`` (``A^T c = rhs`` when transposed)."""
        rhs = np.asarray(rhs, dtype=float)
        if rhs.size == 0:
            return np.zeros_like(rhs)
        matrix = self.basis_matrix(self._coordinates(point_set), point_set)
        if not self.triangular:
            factor = splu(scipy.sparse.csc_matrix(matrix))
            return factor.solve(np.ascontiguousarray(rhs), trans="T" if transpose else "N")
        order = np.argsort(self.levels_of(point_set.indexes).sum(axis=1), kind="stable")
        system = matrix[np.ix_(order, order)]
        if transpose:
            solution = spsolve_triangular(scipy.sparse.csr_matrix(np.triu(system.T)), rhs[order], lower=False)
        else:
            solution = spsolve_triangular(scipy.sparse.csr_matrix(np.tril(system)), rhs[order], lower=True)
        result = np.empty_like(solution)
        result[order] = solution
        return result

    def _recompute_surpluses(self) -> None:
        if self.points.empty():
            self.surpluses = np.zeros((0, self.num_outputs))
        else:
            self.surpluses = self._solve(self.points, self.values).reshape(-1, self.num_outputs)
        self._coefficients_changed()

    def get_quadrature_weights(self) -> np.ndarray:
        point_set = self._active()
        if point_set.empty():
            return np.zeros(0)
        integrals = np.prod(self.rule1d.integral(point_set.indexes), axis=1)
        return self._solve(point_set, integrals, transpose=True)

    def get_interpolation_weights(self, x: np.ndarray) -> np.ndarray:
        point_set = self._active()
        basis = self.basis_matrix(x, point_set)
        if point_set.empty():
            return basis
        return self._solve(point_set, basis.T, transpose=True).reshape(len(point_set), -1).T

    def _evaluation_matrix(self, x: np.ndarray, sparse: bool):
        matrix = self.basis_matrix(x, self.points)
        if sparse:
            return scipy.sparse.csr_matrix(matrix)
        return matrix

    def _evaluation_coefficients(self) -> np.ndarray:
        return self.surpluses

    def evaluate_hierarchical_functions(self, x: np.ndarray) -> np.ndarray:
        return self.basis_matrix(x, self._active())

    def get_hierarchical_coefficients(self) -> np.ndarray:
        return self.surpluses.copy()

    def set_hierarchical_coefficients(self, coefficients: np.ndarray) -> None:
        if not self.points.empty():
            self.clear_refinement()
        else:
            self.points = self.needed
            self.needed = MultiIndexSet(self.num_dimensions)
        self.surpluses = np.array(coefficients, dtype=float)
        self.values = self.basis_matrix(self._coordinates(self.points), self.points) @ self.surpluses
        self._coefficients_changed()

    # -------------------------------------------------------------------------
    # Loading and refinement bookkeeping
    # -------------------------------------------------------------------------

    def _merge_values(self, added: MultiIndexSet, added_values) -> None:
        merged = self.points.union(added)
        combined = np.zeros((len(merged), self.num_outputs))
        if not self.points.empty():
            combined[merged.find_all(self.points.indexes)] = self.values
        combined[merged.find_all(added.indexes)] = added_values
        self.points = merged
        self.values = combined

    def load_needed_points(self, values: np.ndarray) -> None:
        values = np.array(values, dtype=float)
        if self.needed.empty():
            self.values = values
        elif self.points.empty():
            self.points = self.needed
            self.values = values
        else:
            self._merge_values(self.needed, values)
        self.needed = MultiIndexSet(self.num_dimensions)
        self._recompute_surpluses()

    def clear_refinement(self) -> None:
        if not self.points.empty():
            self.needed = MultiIndexSet(self.num_dimensions)

    def merge_refinement(self) -> None:
        if self.needed.empty():
            return
        self.points = self.points.union(self.needed)
        self.needed = MultiIndexSet(self.num_dimensions)
        self.values = np.zeros((len(self.points), self.num_outputs))
        self.surpluses = np.zeros((len(self.points), self.num_outputs))
        self._coefficients_changed()

    def rank(self, indexes) -> List[tuple]:
        """Coarse points first, ties broken lexicographically."""
        indexes = list(indexes)
        return sorted(indexes, key=lambda index: (int(self.levels_of(np.array(index)).sum()), index))

    # -------------------------------------------------------------------------
    # Local surplus refinement, shared by LocalPolynomial and Wavelet
    # -------------------------------------------------------------------------

    def _scaled(self, magnitudes: np.ndarray, output: int, scale_correction) -> np.ndarray:
        if output != -1:
            magnitudes = magnitudes[:, [output]]
        if scale_correction is not None:
            magnitudes = magnitudes * np.asarray(scale_correction, dtype=float).reshape(magnitudes.shape)
        if magnitudes.shape[1] == 0:
            return np.zeros(magnitudes.shape[0])
        return np.max(magnitudes, axis=1)

    def point_magnitudes(self, output: int = -1, scale_correction=None) -> np.ndarray:
        return self._scaled(np.abs(self.surpluses), output, scale_correction)

    def directional_magnitudes(self, output: int = -1, scale_correction=None) -> np.ndarray:
        """``(num_loaded, num_dimensions)`` surpluses of the one dimensional lines."""
        result = np.zeros((len(self.points), self.num_dimensions))
        indexes = self.points.indexes
        for j in range(self.num_dimensions):
            lines = defaultdict(list)
            for position, index in enumerate(self.points):
                lines[index[:j] + index[j + 1:]].append(position)
            surpluses = np.zeros((len(self.points), self.num_outputs))
            for positions in lines.values():
                line = indexes[positions, j]
                matrix = self.rule1d.basis(line, self.rule1d.node(line))
                surpluses[positions] = np.linalg.solve(matrix, self.values[positions])
            result[:, j] = self._scaled(np.abs(surpluses), output, scale_correction)
        return result

    def refinement_additions(self, tolerance: float, criteria: TypeRefinement, output: int = -1,
                             level_limits=None, scale_correction=None) -> MultiIndexSet:
        """Points a local surplus refinement would add, nothing is committed."""
        if criteria in (TypeRefinement.DIRECTION_SELECTIVE, TypeRefinement.FDS):
            flags = self.directional_magnitudes(output, scale_correction) > tolerance
        else:
            flagged = self.point_magnitudes(output, scale_correction) > tolerance
            flags = np.repeat(flagged[:, None], self.num_dimensions, axis=1)
        parents_first = criteria in (TypeRefinement.PARENTS_FIRST, TypeRefinement.FDS)

        additions = set()
        for position, index in enumerate(self.points):
            for j in np.nonzero(flags[position])[0]:
                if parents_first:
                    missing = [p for p in self.parents_of(index, j) if p not in self.points]
                    if missing:
                        additions.update(p for p in missing if self.within_level_limits(p, level_limits))
                        continue
                additions.update(c for c in self.children_of(index, j)
                                 if c not in self.points and self.within_level_limits(c, level_limits))
        added = MultiIndexSet.from_tuples(self.num_dimensions, additions)
        if criteria is TypeRefinement.STABLE:
            added = self.close_under_parents(self.points.union(added)).difference(self.points)
        return added

    def set_local_refinement(self, tolerance: float, criteria: TypeRefinement, output: int = -1,
                             level_limits=None, scale_correction=None) -> None:
        self.needed = self.refinement_additions(tolerance, criteria, output, level_limits, scale_correction)
        logger.debug("%s refinement adds %d points", criteria.value, len(self.needed))

    def remove_points_by_hierarchical_coefficient(self, tolerance: float, output: int = -1,
                                                  scale_correction=None) -> bool:
        """Keep points with large coefficients and their ancestors.

        Returns:
            False when no point survives; the grid is left unchanged then.
        """
        magnitudes = self.point_magnitudes(output, scale_correction)
        keep = MultiIndexSet(self.num_dimensions, self.points.indexes[magnitudes > tolerance])
        if keep.empty():
            return False
        keep = self.close_under_parents(keep)
        positions = self.points.find_all(keep.indexes)
        self.values = self.values[positions]
        self.points = keep
        self.needed = MultiIndexSet(self.num_dimensions)
        self._recompute_surpluses()
        logger.debug("kept %d points after coefficient removal", len(keep))
        return True

    # -------------------------------------------------------------------------
    # Dynamic construction
    # -------------------------------------------------------------------------

    def begin_construction(self) -> None:
        initial = None
        if self.points.empty():
            initial = self.needed
            self.needed = MultiIndexSet(self.num_dimensions)
        else:
            self.clear_refinement()
        self.dynamic = ConstructionData(initial)

    def _pending_initial(self) -> List[tuple]:
        if self.dynamic.initial is None:
            return []
        return [index for index in self.dynamic.initial if index not in self.points]

    def _candidate_coordinates(self, ordered) -> np.ndarray:
        listed = set()
        result = []
        for index in ordered:
            if index in listed or index in self.points or index in self.dynamic.pending:
                continue
            listed.add(index)
            result.append(index)
        if not result:
            return np.zeros((0, self.num_dimensions))
        return self.rule1d.node(np.array(result, dtype=np.int64))

    def get_candidate_points_surplus(self, tolerance: float, criteria: TypeRefinement,
                                     output: int = -1, level_limits=None,
                                     scale_correction=None) -> np.ndarray:
        ordered = self.rank(self._pending_initial())
        if not self.points.empty():
            added = self.refinement_additions(tolerance, criteria, output, level_limits, scale_correction)
            added = self.close_under_parents(self.points.union(added)).difference(self.points)
            ordered.extend(self.rank(added))
        elif not ordered:
            roots = MultiIndexSet(self.num_dimensions, np.zeros((1, self.num_dimensions)))
            ordered = self.rank(self.points_from_levels(roots))
        return self._candidate_coordinates(ordered)

    def _locate(self, x: np.ndarray) -> tuple:
        index = tuple(self.rule1d.lookup(v) for v in np.asarray(x, dtype=float).ravel())
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
            self._commit_pending()
        self._recompute_surpluses()

    def _commit_pending(self) -> None:
        pending = self.dynamic.pending
        while True:
            ready = [index for index in pending
                     if all(parent in self.points for parent in self.parents_of(index))]
            if not ready:
                return
            added = MultiIndexSet.from_tuples(self.num_dimensions, ready)
            self._merge_values(added, [pending.pop(index) for index in added])
            logger.debug("committed %d constructed points", len(added))

    def write_construction(self, writer) -> None:
        self.dynamic.write(writer, self.num_dimensions, self.num_outputs)

    def read_construction(self, reader) -> None:
        self.dynamic = ConstructionData.read(reader, self.num_dimensions, self.num_outputs)
        known = MultiIndexSet.from_tuples(self.num_dimensions, self.dynamic.pending.keys())
        if self.dynamic.initial is not None:
            known = known.union(self.dynamic.initial)
        # generates sequence nodes so constructed points can be located
        self._coordinates(known)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @abstractmethod
    def _write_rule(self, writer) -> None:
        """Write the parameters that rebuild ``rule1d``."""

    @classmethod
    @abstractmethod
    def _read_rule(cls, reader) -> tuple:
        """Read the constructor arguments written by ``_write_rule``."""

    def write(self, writer) -> None:
        writer.int(self.num_dimensions)
        writer.int(self.num_outputs)
        self._write_rule(writer)
        write_index_set(writer, self.points)
        write_index_set(writer, self.needed)
        write_matrix(writer, self.values)
        write_matrix(writer, self.surpluses)

    @classmethod
    def read(cls, reader) -> "HierarchicalGrid":
        num_dimensions = reader.int()
        num_outputs = reader.int()
        if num_dimensions < 1 or num_outputs < 0:
            raise FormatCorruptionError(f"invalid {cls.family.value} grid header")
        grid = cls(num_dimensions, num_outputs, *cls._read_rule(reader))
        grid.points = read_index_set(reader, num_dimensions)
        grid.needed = read_index_set(reader, num_dimensions)
        grid.values = read_matrix(reader, len(grid.points), num_outputs)
        grid.surpluses = read_matrix(reader, len(grid.points), num_outputs)
        stored = grid.points.union(grid.needed)
        if not stored.empty() and stored.indexes.min() < 0:
            raise FormatCorruptionError("negative point index")
        grid._coordinates(stored)
        return grid
