"""Capability contract shared by all grid engines.

Engines work entirely in canonical coordinates; the facade applies the
domain and conformal transforms. Point sets are returned as
``(num_points, num_dimensions)`` arrays and values/coefficients as
``(num_points, num_outputs)`` arrays.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from sgrid.config.enums import GridFamily, TypeOneDRule
from sgrid.config.validation import PreconditionError
from sgrid.core.io import read_flag, read_index_set, write_flag, write_index_set

logger = logging.getLogger(__name__)


class BaseGrid(ABC):
    """Common state and default behavior of the five engines.

    Attributes:
        family: Closed family tag used by the facade for dispatch
        num_dimensions: Number of inputs
        num_outputs: Number of outputs per point
        favor_sparse: Evaluate through a sparse basis matrix when supported
    """

    family = GridFamily.EMPTY
    supports_sparse = False

    def __init__(self, num_dimensions: int = 0, num_outputs: int = 0):
        self.num_dimensions = num_dimensions
        self.num_outputs = num_outputs
        self.values = np.zeros((0, num_outputs))
        self.favor_sparse = False
        self.dynamic = None
        self._device_coefficients = None

    # -------------------------------------------------------------------------
    # Descriptors
    # -------------------------------------------------------------------------

    @property
    def rule(self) -> TypeOneDRule:
        return TypeOneDRule.NONE

    @property
    def alpha(self) -> float:
        return 0.0

    @property
    def beta(self) -> float:
        return 0.0

    @property
    def order(self) -> int:
        return -1

    @abstractmethod
    def get_num_loaded(self) -> int:
        """Points with values."""

    @abstractmethod
    def get_num_needed(self) -> int:
        """Points awaiting values."""

    def get_num_points(self) -> int:
        loaded = self.get_num_loaded()
        return loaded if loaded > 0 else self.get_num_needed()

    @abstractmethod
    def get_loaded_points(self) -> np.ndarray:
        """Canonical coordinates of the loaded points."""

    @abstractmethod
    def get_needed_points(self) -> np.ndarray:
        """Canonical coordinates of the needed points."""

    def get_points(self) -> np.ndarray:
        if self.get_num_loaded() > 0:
            return self.get_loaded_points()
        return self.get_needed_points()

    # -------------------------------------------------------------------------
    # Numerics
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_quadrature_weights(self) -> np.ndarray:
        """Weights of get_points() on the canonical domain."""

    @abstractmethod
    def get_interpolation_weights(self, x: np.ndarray) -> np.ndarray:
        """``(num_x, num_points)`` weights such that ``f(x) = W @ values``."""

    @abstractmethod
    def load_needed_points(self, values: np.ndarray) -> None:
        """Accept values for the needed points (or replace loaded values)."""

    @abstractmethod
    def _evaluation_matrix(self, x: np.ndarray, sparse: bool):
        """Matrix multiplying the evaluation coefficients."""

    @abstractmethod
    def _evaluation_coefficients(self) -> np.ndarray:
        """Coefficients multiplied by the evaluation matrix."""

    def evaluate_batch(self, x: np.ndarray, accelerator=None) -> np.ndarray:
        """Surrogate values at canonical points ``x``.

        Args:
            x: ``(num_x, num_dimensions)`` canonical points
            accelerator: LinearAlgebraEngine or None for plain numpy
        """
        x = np.asarray(x, dtype=float).reshape(-1, self.num_dimensions)
        coefficients = self._evaluation_coefficients()
        if coefficients.shape[0] == 0 or self.num_outputs == 0:
            return np.zeros((x.shape[0], self.num_outputs))
        sparse = self.favor_sparse and self.supports_sparse
        matrix = self._evaluation_matrix(x, sparse)
        if accelerator is None:
            return np.asarray(matrix @ coefficients)
        if self._device_coefficients is None:
            self._device_coefficients = accelerator.upload(coefficients)
        if sparse:
            return accelerator.sparse_multiply(1.0, self._device_coefficients.data.T, matrix.T).T
        return accelerator.dense_multiply(1.0, matrix, self._device_coefficients)

    def integrate(self, correction: Optional[np.ndarray] = None) -> np.ndarray:
        """Integral of every output on the canonical domain."""
        if self.get_num_loaded() == 0:
            raise PreconditionError("integrate() requires loaded values")
        weights = self.get_quadrature_weights()
        if correction is not None:
            weights = weights * correction
        return weights @ self.values

    @abstractmethod
    def evaluate_hierarchical_functions(self, x: np.ndarray) -> np.ndarray:
        """Basis functions of get_points() evaluated at ``x``."""

    @abstractmethod
    def get_hierarchical_coefficients(self) -> np.ndarray:
        """Copy of the coefficients of the hierarchical basis."""

    @abstractmethod
    def set_hierarchical_coefficients(self, coefficients: np.ndarray) -> None:
        """Replace the coefficients and recompute the loaded values."""

    # -------------------------------------------------------------------------
    # Refinement and construction hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def clear_refinement(self) -> None:
        """Drop needed points of a pending refinement."""

    @abstractmethod
    def merge_refinement(self) -> None:
        """Commit needed points with zero values and coefficients."""

    def begin_construction(self) -> None:
        raise PreconditionError(f"{self.family.value} grids do not support dynamic construction")

    def finish_construction(self) -> None:
        if self.dynamic is not None:
            logger.debug("discarding %d pending constructed points", len(self.dynamic.pending))
        self.dynamic = None

    def is_using_construction(self) -> bool:
        return self.dynamic is not None

    # -------------------------------------------------------------------------
    # Acceleration
    # -------------------------------------------------------------------------

    def clear_acceleration_data(self) -> None:
        """Release device copies of the coefficients."""
        if self._device_coefficients is not None:
            self._device_coefficients.clear()
        self._device_coefficients = None

    def _coefficients_changed(self) -> None:
        self.clear_acceleration_data()

    def copy(self) -> "BaseGrid":
        """Deep copy without device side data."""
        saved = self._device_coefficients
        self._device_coefficients = None
        try:
            return copy.deepcopy(self)
        finally:
            self._device_coefficients = saved

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @abstractmethod
    def write(self, writer) -> None:
        """Write the engine payload."""

    def write_construction(self, writer) -> None:
        raise PreconditionError(f"{self.family.value} grids do not support dynamic construction")

    def read_construction(self, reader) -> None:
        raise PreconditionError(f"{self.family.value} grids do not support dynamic construction")


class ConstructionData:
    """Pending state of a dynamic construction.

    Attributes:
        pending: Maps an index tuple to the values loaded for it before its
            parents were available
        initial: Index set requested before the first point was loaded
    """

    def __init__(self, initial=None):
        self.pending = {}
        self.initial = initial

    def write(self, writer, num_dimensions: int, num_outputs: int) -> None:
        writer.int(len(self.pending))
        for index, values in sorted(self.pending.items()):
            writer.ints(index)
            writer.floats(values)
        write_flag(writer, self.initial is not None)
        if self.initial is not None:
            write_index_set(writer, self.initial)

    @classmethod
    def read(cls, reader, num_dimensions: int, num_outputs: int) -> "ConstructionData":
        data = cls()
        count = reader.int()
        for _ in range(count):
            index = tuple(int(v) for v in reader.ints(num_dimensions))
            data.pending[index] = reader.floats(num_outputs)
        if read_flag(reader):
            data.initial = read_index_set(reader, num_dimensions)
        return data
