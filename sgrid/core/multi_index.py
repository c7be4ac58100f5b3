"""Multi-index sets and depth based index selection.

A MultiIndexSet is an immutable, lexicographically sorted set of integer
multi-indices stored as a ``(num_indexes, num_dimensions)`` array. Grids use
it both for tensor levels (Global, Fourier) and for hierarchical point
indexes (Sequence, LocalPolynomial, Wavelet).

Import Policy:
    from sgrid.core.multi_index import MultiIndexSet, IndexSelection

DO NOT use: from sgrid.core.multi_index import *
"""

import itertools
import math
from collections import deque
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from sgrid.config.enums import TypeDepth

IndexTuple = Tuple[int, ...]


class MultiIndexSet:
    """Sorted set of unique multi-indices.

    Attributes:
        num_dimensions: Length of every multi-index
        indexes: Read-only ``(len, num_dimensions)`` int array, sorted
            lexicographically
    """

    def __init__(self, num_dimensions: int, indexes=None):
        self.num_dimensions = int(num_dimensions)
        if indexes is None:
            arr = np.zeros((0, self.num_dimensions), dtype=np.int64)
        else:
            arr = np.asarray(indexes, dtype=np.int64).reshape(-1, self.num_dimensions)
            if arr.shape[0] > 1:
                arr = np.unique(arr, axis=0)
        arr.setflags(write=False)
        self._indexes = arr
        self._lookup = None

    @classmethod
    def from_tuples(cls, num_dimensions: int, tuples: Iterable[Sequence[int]]) -> "MultiIndexSet":
        rows = list(tuples)
        if not rows:
            return cls(num_dimensions)
        return cls(num_dimensions, np.array(rows, dtype=np.int64))

    @property
    def indexes(self) -> np.ndarray:
        return self._indexes

    def __len__(self) -> int:
        return self._indexes.shape[0]

    def empty(self) -> bool:
        return self._indexes.shape[0] == 0

    def __iter__(self) -> Iterator[IndexTuple]:
        for row in self._indexes:
            yield tuple(int(v) for v in row)

    def __getitem__(self, position: int) -> IndexTuple:
        return tuple(int(v) for v in self._indexes[position])

    def _table(self) -> dict:
        if self._lookup is None:
            self._lookup = {tuple(int(v) for v in row): i for i, row in enumerate(self._indexes)}
        return self._lookup

    def find(self, index: Sequence[int]) -> int:
        """Position of ``index`` in the set or -1."""
        return self._table().get(tuple(int(v) for v in index), -1)

    def find_all(self, indexes: np.ndarray) -> np.ndarray:
        """Vectorized find over the rows of ``indexes``."""
        table = self._table()
        return np.array([table.get(tuple(int(v) for v in row), -1) for row in indexes], dtype=np.int64)

    def __contains__(self, index) -> bool:
        return self.find(index) >= 0

    def __eq__(self, other) -> bool:
        if not isinstance(other, MultiIndexSet):
            return NotImplemented
        return (self.num_dimensions == other.num_dimensions
                and np.array_equal(self._indexes, other._indexes))

    def __repr__(self) -> str:
        return f"MultiIndexSet(num_dimensions={self.num_dimensions}, size={len(self)})"

    def union(self, other: "MultiIndexSet") -> "MultiIndexSet":
        if other.empty():
            return self
        if self.empty():
            return other
        return MultiIndexSet(self.num_dimensions, np.vstack([self._indexes, other._indexes]))

    def difference(self, other: "MultiIndexSet") -> "MultiIndexSet":
        """Indexes of self that are not in other."""
        if other.empty() or self.empty():
            return self
        keep = [i for i, row in enumerate(self) if row not in other]
        return MultiIndexSet(self.num_dimensions, self._indexes[keep])

    def max_levels(self) -> np.ndarray:
        if self.empty():
            return np.zeros(self.num_dimensions, dtype=np.int64)
        return self._indexes.max(axis=0)


def _backward_neighbors(index: IndexTuple) -> List[IndexTuple]:
    parents = []
    for j, value in enumerate(index):
        if value > 0:
            parents.append(index[:j] + (value - 1,) + index[j + 1:])
    return parents


def complete_lower(index_set: MultiIndexSet,
                   parents: Callable[[IndexTuple], List[IndexTuple]] = _backward_neighbors) -> MultiIndexSet:
    """Smallest superset of ``index_set`` closed under ``parents``."""
    present = set(index_set)
    missing = []
    queue = deque(present)
    while queue:
        index = queue.popleft()
        for parent in parents(index):
            if parent not in present:
                present.add(parent)
                missing.append(parent)
                queue.append(parent)
    if not missing:
        return index_set
    return index_set.union(MultiIndexSet.from_tuples(index_set.num_dimensions, missing))


def within_limits(index: Sequence[int], level_limits: Optional[np.ndarray]) -> bool:
    if level_limits is None:
        return True
    return all(limit < 0 or value <= limit for value, limit in zip(index, level_limits))


def admissible_frontier(index_set: MultiIndexSet, level_limits: Optional[np.ndarray] = None,
                        exclude: Iterable[IndexTuple] = ()) -> List[IndexTuple]:
    """Indexes outside a lower set whose backward neighbors are all inside.

    An empty set has the zero index as its only admissible index.
    """
    num_dimensions = index_set.num_dimensions
    excluded = set(exclude)
    if index_set.empty():
        zero = (0,) * num_dimensions
        return [] if zero in excluded else [zero]
    frontier = []
    seen = set()
    for index in index_set:
        for j in range(num_dimensions):
            child = index[:j] + (index[j] + 1,) + index[j + 1:]
            if child in seen or child in excluded or child in index_set:
                continue
            seen.add(child)
            if not within_limits(child, level_limits):
                continue
            if all(parent in index_set for parent in _backward_neighbors(child)):
                frontier.append(child)
    return frontier


def combination_coefficients(tensors: MultiIndexSet) -> np.ndarray:
    """Smolyak combination coefficients of a lower set of tensor levels.

    The coefficient of tensor ``t`` is the signed count of the corners
    ``t + e``, ``e`` in {0, 1}^d, that belong to the set.
    """
    weights = np.zeros(len(tensors), dtype=np.int64)
    num_dimensions = tensors.num_dimensions
    for position, tensor in enumerate(tensors):
        total = 0
        for corner in itertools.product((0, 1), repeat=num_dimensions):
            shifted = tuple(t + e for t, e in zip(tensor, corner))
            if shifted in tensors:
                total += -1 if sum(corner) % 2 else 1
        weights[position] = total
    return weights


class IndexSelection:
    """Anisotropic index selection for a depth type.

    Attributes:
        depth_type: Selection family
        weights: Linear anisotropic weights (all ones when isotropic)
        curvature: Logarithmic weights of curved types (zeros otherwise)
        exactness: Maps a one dimensional level to the quantity the depth
            type measures (level, interpolation or quadrature exactness)

    Example:
        >>> selection = IndexSelection(2, TypeDepth.LEVEL)
        >>> len(selection.select(3))
        10
    """

    def __init__(self, num_dimensions: int, depth_type: TypeDepth,
                 anisotropic_weights: Optional[Sequence[int]] = None,
                 exactness: Optional[Callable[[int], int]] = None):
        self.num_dimensions = num_dimensions
        self.depth_type = depth_type
        self.exactness = exactness if exactness is not None else (lambda level: level)

        weights = np.ones(num_dimensions)
        curvature = np.zeros(num_dimensions)
        if anisotropic_weights is not None and len(anisotropic_weights) > 0:
            anisotropic_weights = np.asarray(anisotropic_weights, dtype=float)
            weights = anisotropic_weights[:num_dimensions].copy()
            if depth_type.is_curved and anisotropic_weights.size == 2 * num_dimensions:
                curvature = anisotropic_weights[num_dimensions:].copy()
        self.weights = weights
        self.curvature = curvature
        self.min_weight = float(np.min(weights))
        self._cache = {}

    def _measure(self, level: int) -> float:
        if level not in self._cache:
            self._cache[level] = float(self.exactness(level))
        return self._cache[level]

    def cost(self, index: Sequence[int]) -> float:
        """Value compared against the bound, also used to rank candidates."""
        g = np.array([self._measure(int(level)) for level in index])
        if self.depth_type.is_tensor:
            return float(np.max(self.weights * g)) if g.size else 0.0
        if self.depth_type.is_hyperbolic:
            return float(np.sum(self.weights / self.min_weight * np.log(g + 1.0)))
        value = float(np.dot(self.weights, g))
        if self.depth_type.is_curved:
            value += float(np.dot(self.curvature, np.log(g + 1.0)))
        return value

    def bound(self, depth: float) -> float:
        if self.depth_type.is_hyperbolic:
            return math.log(depth + 1.0)
        return depth * self.min_weight

    def admits(self, index: Sequence[int], depth: float) -> bool:
        return self.cost(index) <= self.bound(depth) + 1.0e-10 * max(1.0, abs(self.bound(depth)))

    def select(self, depth: float, level_limits: Optional[np.ndarray] = None) -> MultiIndexSet:
        """All indexes admitted at ``depth``, closed under backward neighbors."""
        zero = (0,) * self.num_dimensions
        accepted = {zero}
        queue = deque([zero])
        while queue:
            index = queue.popleft()
            for j in range(self.num_dimensions):
                child = index[:j] + (index[j] + 1,) + index[j + 1:]
                if child in accepted or not within_limits(child, level_limits):
                    continue
                if self.admits(child, depth):
                    accepted.add(child)
                    queue.append(child)
        return complete_lower(MultiIndexSet.from_tuples(self.num_dimensions, accepted))

    def rank(self, indexes: Iterable[IndexTuple]) -> List[IndexTuple]:
        """Sort indexes by increasing cost, ties broken lexicographically."""
        return sorted(indexes, key=lambda index: (self.cost(index), index))
