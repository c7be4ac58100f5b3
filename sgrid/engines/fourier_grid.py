"""Trigonometric sparse grids on the periodic unit cube.

Each level ``l`` holds the ``3**l`` equispaced nodes ``k / 3**l``; levels
nest, so every node index also names one exponent of the trigonometric
basis (0 for the first node, then the pairs ``(k, -k)``). Coefficients are
the combination of the tensor FFTs.
"""

import logging

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.engines.tensor import TensorGrid

logger = logging.getLogger(__name__)


class FourierGrid(TensorGrid):
    """Sparse Fourier interpolant, coefficients complex valued.

    Hierarchical coefficients are exchanged as a real array of shape
    ``(2 * num_points, num_outputs)``: real parts on top of imaginary parts.
    """

    family = GridFamily.FOURIER

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0,
                 rule: TypeOneDRule = TypeOneDRule.FOURIER, alpha: float = 0.0, beta: float = 0.0):
        super().__init__(num_dimensions, num_outputs, TypeOneDRule.FOURIER)
        self._coefficients = None

    @classmethod
    def make_grid(cls, num_dimensions: int, num_outputs: int, depth: int,
                  depth_type: TypeDepth = TypeDepth.LEVEL, anisotropic_weights=None,
                  level_limits=None) -> "FourierGrid":
        grid = cls(num_dimensions, num_outputs)
        tensors = grid.selection(depth_type, anisotropic_weights).select(depth, level_limits)
        grid._set_tensors(tensors)
        logger.debug("fourier grid: %d tensors, %d points", len(tensors), len(grid.needed))
        return grid

    @classmethod
    def _accepts_rule(cls, rule: TypeOneDRule) -> bool:
        return rule is TypeOneDRule.FOURIER

    def _coefficients_changed(self) -> None:
        super()._coefficients_changed()
        self._coefficients = None

    def _exponents(self, point_set) -> np.ndarray:
        """``(len(point_set), num_dimensions)`` exponents of the basis functions."""
        if point_set.empty():
            return np.zeros((0, self.num_dimensions), dtype=np.int64)
        return self._exponents_of_nodes(point_set.indexes)

    def _basis(self, x: np.ndarray, point_set) -> np.ndarray:
        x = np.asarray(x, dtype=float).reshape(-1, self.num_dimensions)
        return np.exp(2.0j * np.pi * (x @ self._exponents(point_set).T))

    def complex_coefficients(self) -> np.ndarray:
        """Combination of the normalized tensor FFTs of the loaded values."""
        if self._coefficients is not None:
            return self._coefficients
        coefficients = np.zeros((len(self.points), self.num_outputs), dtype=complex)
        for tensor, weight in self._active_combination(self.tensors):
            sizes = [self.wrapper.num_points(int(level)) for level in tensor]
            refs = self.points.find_all(self.tensor_point_indexes(tensor))
            samples = self.values[refs].reshape(sizes + [self.num_outputs])
            spectrum = np.fft.fftn(samples, axes=tuple(range(self.num_dimensions)))
            spectrum /= float(np.prod(sizes))

            grids = np.meshgrid(*[np.arange(n) for n in sizes], indexing="ij")
            node_indexes = np.stack([g.ravel() for g in grids], axis=1)
            positions = self.points.find_all(node_indexes)
            exponents = self._exponents_of_nodes(node_indexes)
            frequency = tuple(exponents[:, j] % sizes[j] for j in range(self.num_dimensions))
            coefficients[positions] += weight * spectrum[frequency]
        self._coefficients = coefficients
        return coefficients

    def _exponents_of_nodes(self, node_indexes: np.ndarray) -> np.ndarray:
        table = self.wrapper.exponents(int(node_indexes.max()) + 1)
        return table[node_indexes]

    def evaluate_hierarchical_functions(self, x: np.ndarray) -> np.ndarray:
        """Complex basis ``exp(2 pi i k . x)`` of every point, shape ``(num_x, num_points)``."""
        _, point_set = self._active_sets()
        return self._basis(x, point_set)

    def get_hierarchical_coefficients(self) -> np.ndarray:
        if self.points.empty():
            return np.zeros((0, self.num_outputs))
        coefficients = self.complex_coefficients()
        return np.vstack([coefficients.real, coefficients.imag])

    def set_hierarchical_coefficients(self, coefficients: np.ndarray) -> None:
        self._take_needed_as_loaded()
        coefficients = np.asarray(coefficients, dtype=float)
        count = len(self.points)
        complex_coefficients = coefficients[:count] + 1j * coefficients[count:]
        basis = self._basis(self._coordinates(self.points), self.points)
        self.values = np.real(basis @ complex_coefficients)
        self._coefficients_changed()
        self._coefficients = complex_coefficients
