"""SparseGrid facade.

A SparseGrid owns at most one engine (selected by the make_* calls) plus the
user facing state around it: the domain transform, the ASIN conformal map,
the stored level limits and the acceleration settings. Engines work on the
canonical domain; every point entering or leaving the facade goes through

    user = Domain(Conformal(canonical))
    canonical = Conformal^-1(Domain^-1(user))

All returned arrays are freshly allocated and owned by the caller.

Import Policy:
    from sgrid.grid import SparseGrid

Example:
    >>> grid = SparseGrid()
    >>> grid.make_global_grid(2, 1, 3, "level", "clenshaw-curtis")
    >>> grid.get_num_needed()
    29
"""

import logging
import threading
from typing import IO, Any, Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse

from sgrid.config.defaults import (
    DEFAULT_ACCELERATION,
    DEFAULT_GPU_ID,
    FILE_FORMAT_VERSION,
    VERSION_MAJOR,
    VERSION_MINOR,
)
from sgrid.config.enums import GridFamily, TypeAcceleration, TypeDepth, TypeOneDRule, TypeRefinement
from sgrid.config.validation import (
    InvalidArgumentError,
    PreconditionError,
    check_anisotropic_weights,
    check_global_rule,
    check_grid_shape,
    check_level_limits,
    check_local_rule,
    check_output_index,
    check_sequence_rule,
    check_tolerance,
    check_wavelet_order,
)
from sgrid.config.yaml_loader import get_default
from sgrid.core.transforms import ConformalAsin, DomainTransform
from sgrid.engines import FourierGrid, GlobalGrid, LocalPolynomialGrid, SequenceGrid, WaveletGrid
from sgrid.gpu.acceleration import (
    get_available_fallback,
    get_gpu_memory,
    get_gpu_name,
    get_num_gpus,
    is_available,
)
from sgrid.gpu.domain_transform import AccelerationDomainTransform
from sgrid.gpu.linear_algebra import LinearAlgebraEngine
from sgrid.gpu.utils import get_cupy, is_device_array
from sgrid.grid import lifecycle, persistence, refinement
from sgrid.grid.lifecycle import ConstructionState

logger = logging.getLogger(__name__)


class SparseGrid:
    """Sparse grid interpolant and quadrature rule.

    Args:
        acceleration: Requested backend for batch evaluation, falls back to
            the best available one (default from defaults.yaml)
        gpu_id: CUDA device used by GPU backends

    Attributes:
        construction_state: EMPTY, STATIC_READY or DYNAMIC_ACTIVE
    """

    def __init__(self, acceleration: Optional[str] = None, gpu_id: Optional[int] = None):
        self._engine = None
        self._domain: Optional[DomainTransform] = None
        self._conformal: Optional[ConformalAsin] = None
        self._level_limits: Optional[np.ndarray] = None

        if gpu_id is None:
            gpu_id = int(get_default("acceleration.gpu_id", DEFAULT_GPU_ID))
        self._gpu_id = int(gpu_id)
        self._favor_sparse = bool(get_default("acceleration.favor_sparse", False))
        self._linear_algebra: Optional[LinearAlgebraEngine] = None
        self._device_domain: Optional[AccelerationDomainTransform] = None
        self._lock = threading.Lock()
        self._acceleration = TypeAcceleration.NONE
        self.enable_acceleration(acceleration if acceleration is not None
                                 else get_default("acceleration.default", DEFAULT_ACCELERATION))

    def __repr__(self) -> str:
        return (f"SparseGrid(family={self.get_family().value}, dimensions={self.get_num_dimensions()}, "
                f"outputs={self.get_num_outputs()}, points={self.get_num_points()})")

    # =========================================================================
    # Version
    # =========================================================================

    @staticmethod
    def get_version() -> str:
        return FILE_FORMAT_VERSION

    @staticmethod
    def get_version_major() -> int:
        return VERSION_MAJOR

    @staticmethod
    def get_version_minor() -> int:
        return VERSION_MINOR

    # =========================================================================
    # Engine selection
    # =========================================================================

    def _attach(self, engine, level_limits: Optional[np.ndarray]) -> None:
        """Replace the engine and everything tied to the previous one."""
        self._release_device_data()
        engine.favor_sparse = self._favor_sparse
        self._engine = engine
        self._domain = None
        self._conformal = None
        self._level_limits = level_limits

    def _reset(self) -> None:
        self._release_device_data()
        self._engine = None
        self._domain = None
        self._conformal = None
        self._level_limits = None

    def make_global_grid(self, dimensions: int, outputs: int, depth: int, depth_type,
                         rule, anisotropic_weights: Optional[Sequence[int]] = None,
                         alpha: float = 0.0, beta: float = 0.0,
                         level_limits: Optional[Sequence[int]] = None) -> None:
        """Smolyak grid of global Lagrange interpolants.

        Args:
            dimensions: Number of inputs, at least 1
            outputs: Number of outputs, may be 0
            depth: Selection depth, non-negative
            depth_type: TypeDepth or its name (e.g. 'level', 'qptotal')
            rule: A global one dimensional rule (e.g. 'clenshaw-curtis')
            anisotropic_weights: ``dimensions`` ints, ``2 * dimensions`` for curved types
            alpha, beta: Weight parameters of Gegenbauer, Jacobi, Laguerre and Hermite rules
            level_limits: Per dimension level caps, negative for none

        Raises:
            InvalidArgumentError: On any invalid argument; the grid is unchanged.
        """
        caller = "make_global_grid"
        check_grid_shape(dimensions, outputs, depth, caller)
        depth_type = TypeDepth.from_string(depth_type)
        rule = TypeOneDRule.from_string(rule)
        check_global_rule(rule, caller)
        weights = check_anisotropic_weights(anisotropic_weights, depth_type, dimensions, caller)
        limits = check_level_limits(level_limits, dimensions, caller)
        engine = GlobalGrid.make_grid(dimensions, outputs, depth, depth_type, rule, weights,
                                      float(alpha), float(beta), limits)
        self._attach(engine, limits)

    def make_sequence_grid(self, dimensions: int, outputs: int, depth: int, depth_type,
                           rule, anisotropic_weights: Optional[Sequence[int]] = None,
                           level_limits: Optional[Sequence[int]] = None) -> None:
        """Hierarchical Newton grid over a Leja or R-Leja sequence."""
        caller = "make_sequence_grid"
        check_grid_shape(dimensions, outputs, depth, caller)
        depth_type = TypeDepth.from_string(depth_type)
        rule = TypeOneDRule.from_string(rule)
        check_sequence_rule(rule, caller)
        weights = check_anisotropic_weights(anisotropic_weights, depth_type, dimensions, caller)
        limits = check_level_limits(level_limits, dimensions, caller)
        engine = SequenceGrid.make_grid(dimensions, outputs, depth, depth_type, rule, weights, limits)
        self._attach(engine, limits)

    def make_local_polynomial_grid(self, dimensions: int, outputs: int, depth: int, order: int = 1,
                                   rule="localp", level_limits: Optional[Sequence[int]] = None) -> None:
        """Dyadic grid of piecewise polynomials.

        Order 0 is piecewise constant, 1 linear, and -1 or anything above 1
        piecewise quadratic.
        """
        caller = "make_local_polynomial_grid"
        check_grid_shape(dimensions, outputs, depth, caller)
        rule = TypeOneDRule.from_string(rule)
        check_local_rule(rule, order, caller)
        limits = check_level_limits(level_limits, dimensions, caller)
        if order > 3:
            logger.warning("local polynomial order %d is treated as quadratic", order)
        engine = LocalPolynomialGrid.make_grid(dimensions, outputs, depth, int(order), rule, limits)
        self._attach(engine, limits)

    def make_wavelet_grid(self, dimensions: int, outputs: int, depth: int, order: int = 1,
                          level_limits: Optional[Sequence[int]] = None) -> None:
        caller = "make_wavelet_grid"
        check_grid_shape(dimensions, outputs, depth, caller)
        check_wavelet_order(order, caller)
        limits = check_level_limits(level_limits, dimensions, caller)
        engine = WaveletGrid.make_grid(dimensions, outputs, depth, int(order), limits)
        self._attach(engine, limits)

    def make_fourier_grid(self, dimensions: int, outputs: int, depth: int, depth_type="level",
                          anisotropic_weights: Optional[Sequence[int]] = None,
                          level_limits: Optional[Sequence[int]] = None) -> None:
        """Trigonometric grid on the periodic unit cube [0, 1)^d."""
        caller = "make_fourier_grid"
        check_grid_shape(dimensions, outputs, depth, caller)
        depth_type = TypeDepth.from_string(depth_type)
        weights = check_anisotropic_weights(anisotropic_weights, depth_type, dimensions, caller)
        limits = check_level_limits(level_limits, dimensions, caller)
        engine = FourierGrid.make_grid(dimensions, outputs, depth, depth_type, weights, limits)
        self._attach(engine, limits)

    def _update(self, family: GridFamily, caller: str, depth: int, depth_type,
                anisotropic_weights, level_limits) -> None:
        engine = lifecycle.require_family(self._engine, (family,), caller)
        lifecycle.require_static(engine, caller)
        if depth < 0:
            raise InvalidArgumentError(f"{caller}() requires non-negative depth, got {depth}")
        depth_type = TypeDepth.from_string(depth_type)
        weights = check_anisotropic_weights(anisotropic_weights, depth_type, engine.num_dimensions, caller)
        checked = check_level_limits(level_limits, engine.num_dimensions, caller)
        limits = self._level_limits if checked is None else checked
        engine.update_grid(depth, depth_type, weights, limits)
        self._level_limits = limits

    def update_global_grid(self, depth: int, depth_type, anisotropic_weights=None,
                           level_limits=None) -> None:
        """Add the tensors of a new selection, loaded values are kept."""
        self._update(GridFamily.GLOBAL, "update_global_grid", depth, depth_type,
                     anisotropic_weights, level_limits)

    def update_sequence_grid(self, depth: int, depth_type, anisotropic_weights=None,
                             level_limits=None) -> None:
        self._update(GridFamily.SEQUENCE, "update_sequence_grid", depth, depth_type,
                     anisotropic_weights, level_limits)

    # =========================================================================
    # Copies
    # =========================================================================

    def copy_grid(self, source: "SparseGrid") -> None:
        """Make this grid an independent copy of ``source``.

        Device side data is not copied; acceleration settings are.
        """
        if source is self:
            return
        self._release_device_data()
        self._engine = None if source._engine is None else source._engine.copy()
        self._domain = None if source._domain is None else source._domain.copy()
        self._conformal = None if source._conformal is None else source._conformal.copy()
        self._level_limits = None if source._level_limits is None else source._level_limits.copy()
        self._favor_sparse = source._favor_sparse
        if self._engine is not None:
            self._engine.favor_sparse = self._favor_sparse
        if source._acceleration is not self._acceleration or source._gpu_id != self._gpu_id:
            self._gpu_id = source._gpu_id
            self.enable_acceleration(source._acceleration)

    def __copy__(self) -> "SparseGrid":
        # a shallow copy would alias the engine
        return self.__deepcopy__({})

    def __deepcopy__(self, memo) -> "SparseGrid":
        duplicate = SparseGrid(acceleration=self._acceleration.value, gpu_id=self._gpu_id)
        duplicate.copy_grid(self)
        memo[id(self)] = duplicate
        return duplicate

    def clear(self) -> None:
        """Return to the empty state, dropping transforms and level limits.

        Acceleration settings are kept.
        """
        self._reset()
        logger.debug("grid cleared")

    # =========================================================================
    # Accessors (defaults on an empty grid)
    # =========================================================================

    @property
    def construction_state(self) -> ConstructionState:
        return lifecycle.construction_state(self._engine)

    def get_family(self) -> GridFamily:
        return GridFamily.EMPTY if self._engine is None else self._engine.family

    def empty(self) -> bool:
        return self._engine is None

    def is_global(self) -> bool:
        return self.get_family() is GridFamily.GLOBAL

    def is_sequence(self) -> bool:
        return self.get_family() is GridFamily.SEQUENCE

    def is_local_polynomial(self) -> bool:
        return self.get_family() is GridFamily.LOCAL_POLYNOMIAL

    def is_wavelet(self) -> bool:
        return self.get_family() is GridFamily.WAVELET

    def is_fourier(self) -> bool:
        return self.get_family() is GridFamily.FOURIER

    def get_num_dimensions(self) -> int:
        return 0 if self._engine is None else self._engine.num_dimensions

    def get_num_outputs(self) -> int:
        return 0 if self._engine is None else self._engine.num_outputs

    def get_alpha(self) -> float:
        return 0.0 if self._engine is None else float(self._engine.alpha)

    def get_beta(self) -> float:
        return 0.0 if self._engine is None else float(self._engine.beta)

    def get_order(self) -> int:
        return -1 if self._engine is None else int(self._engine.order)

    def get_rule(self) -> TypeOneDRule:
        return TypeOneDRule.NONE if self._engine is None else self._engine.rule

    def get_num_loaded(self) -> int:
        return 0 if self._engine is None else self._engine.get_num_loaded()

    def get_num_needed(self) -> int:
        return 0 if self._engine is None else self._engine.get_num_needed()

    def get_num_points(self) -> int:
        return 0 if self._engine is None else self._engine.get_num_points()

    def get_summary(self) -> Dict[str, Any]:
        """Plain dict describing the grid, for logs and reports."""
        summary = {
            "family": self.get_family().value,
            "dimensions": self.get_num_dimensions(),
            "outputs": self.get_num_outputs(),
            "loaded": self.get_num_loaded(),
            "needed": self.get_num_needed(),
            "rule": self.get_rule().value,
            "order": self.get_order(),
            "domain": None,
            "conformal": None,
            "level_limits": None,
            "construction": self.construction_state.value,
            "acceleration": self._acceleration.value,
            "gpu_id": self._gpu_id,
        }
        if self._domain is not None:
            summary["domain"] = [[float(a), float(b)] for a, b in zip(self._domain.lower, self._domain.upper)]
        if self._conformal is not None:
            summary["conformal"] = self._conformal.truncation.tolist()
        if self._level_limits is not None:
            summary["level_limits"] = self._level_limits.tolist()
        return summary

    # =========================================================================
    # Coordinate transforms
    # =========================================================================

    def _to_user(self, canonical: np.ndarray) -> np.ndarray:
        x = np.array(canonical, dtype=float).reshape(-1, self.get_num_dimensions())
        if self._conformal is not None:
            x = self._conformal.canonical_to_transformed(x)
        if self._domain is not None:
            x = self._domain.canonical_to_transformed(x, self._engine.rule)
        return x

    def _check_points(self, x, caller: str) -> np.ndarray:
        dims = self.get_num_dimensions()
        x = np.asarray(x, dtype=float)
        if x.size % dims != 0:
            raise InvalidArgumentError(f"{caller}() needs a multiple of {dims} coordinates, got {x.size}")
        return x.reshape(-1, dims)

    def _to_canonical(self, x: np.ndarray) -> np.ndarray:
        if self._domain is not None:
            x = self._domain.transformed_to_canonical(x, self._engine.rule)
        if self._conformal is not None:
            x = self._conformal.transformed_to_canonical(x)
        return np.array(x, dtype=float)

    def _canonical_device_points(self, x) -> np.ndarray:
        """Canonical host points from a device resident query array."""
        linear_domain = (self._domain is not None and self._conformal is None
                         and not self._engine.rule.is_half_line and not self._engine.rule.is_full_line)
        cp = get_cupy()
        if not linear_domain:
            return self._to_canonical(self._check_points(cp.asnumpy(x), "evaluate_batch"))
        if self._device_domain is None:
            self._device_domain = AccelerationDomainTransform(cp)
        canonical = self._device_domain.get_canonical_points(
            x.reshape(-1, self.get_num_dimensions()), self._domain.lower, self._domain.upper,
            use01=self._engine.rule is TypeOneDRule.FOURIER,
        )
        return cp.asnumpy(canonical)

    def set_domain_transform(self, lower: Sequence[float], upper: Sequence[float]) -> None:
        """Map the canonical domain onto ``[lower, upper]`` (or shift/scale of unbounded rules)."""
        engine = lifecycle.require_engine(self._engine, "set_domain_transform")
        domain = DomainTransform(lower, upper)
        if domain.num_dimensions != engine.num_dimensions:
            raise InvalidArgumentError(
                f"set_domain_transform() requires {engine.num_dimensions} bounds, got {domain.num_dimensions}"
            )
        self._domain = domain
        self._clear_device_domain()

    def is_set_domain_transform(self) -> bool:
        return self._domain is not None

    def clear_domain_transform(self) -> None:
        self._domain = None
        self._clear_device_domain()

    def get_domain_transform(self) -> Tuple[np.ndarray, np.ndarray]:
        if self._domain is None:
            raise PreconditionError("get_domain_transform() called without a domain transform")
        return self._domain.lower.copy(), self._domain.upper.copy()

    def set_conformal_transform_asin(self, truncation: Sequence[int]) -> None:
        engine = lifecycle.require_engine(self._engine, "set_conformal_transform_asin")
        conformal = ConformalAsin(truncation)
        if conformal.num_dimensions != engine.num_dimensions:
            raise InvalidArgumentError(
                f"set_conformal_transform_asin() requires {engine.num_dimensions} orders, "
                f"got {conformal.num_dimensions}"
            )
        self._conformal = conformal
        self._clear_device_domain()

    def is_set_conformal_transform_asin(self) -> bool:
        return self._conformal is not None

    def clear_conformal_transform(self) -> None:
        self._conformal = None
        self._clear_device_domain()

    def get_conformal_transform_asin(self) -> np.ndarray:
        if self._conformal is None:
            raise PreconditionError("get_conformal_transform_asin() called without a conformal map")
        return self._conformal.truncation.copy()

    # =========================================================================
    # Points and weights
    # =========================================================================

    def _empty_points(self) -> np.ndarray:
        return np.zeros((0, self.get_num_dimensions()))

    def get_loaded_points(self) -> np.ndarray:
        if self._engine is None:
            return self._empty_points()
        return self._to_user(self._engine.get_loaded_points())

    def get_needed_points(self) -> np.ndarray:
        if self._engine is None:
            return self._empty_points()
        return self._to_user(self._engine.get_needed_points())

    def get_points(self) -> np.ndarray:
        if self._engine is None:
            return self._empty_points()
        return self._to_user(self._engine.get_points())

    def _quadrature_scale(self) -> float:
        if self._domain is None:
            return 1.0
        return self._domain.quadrature_scale(self._engine.rule, self._engine.alpha, self._engine.beta)

    def get_quadrature_weights(self) -> np.ndarray:
        """Weights of get_points(), including domain and conformal Jacobians."""
        if self._engine is None:
            return np.zeros(0)
        weights = self._engine.get_quadrature_weights() * self._quadrature_scale()
        if self._conformal is not None:
            weights = weights * self._conformal.weight_correction(self._engine.get_points())
        return np.array(weights, dtype=float)

    def get_interpolation_weights(self, x: Sequence[float]) -> np.ndarray:
        """Weights ``w`` with ``f(x) = w @ values`` for a single point."""
        return self.get_interpolation_weights_batch(x)[0]

    def get_interpolation_weights_batch(self, x) -> np.ndarray:
        engine = lifecycle.require_engine(self._engine, "get_interpolation_weights")
        canonical = self._to_canonical(self._check_points(x, "get_interpolation_weights"))
        return np.array(engine.get_interpolation_weights(canonical), dtype=float)

    # =========================================================================
    # Values and evaluation
    # =========================================================================

    def load_needed_points(self, values) -> None:
        """Assign values to the needed points (or overwrite the loaded values).

        Args:
            values: ``num_needed * num_outputs`` numbers in point major order;
                ``num_loaded * num_outputs`` when nothing is needed
        """
        values = lifecycle.check_load_values(self._engine, values)
        self._engine.load_needed_points(values)
        logger.debug("loaded %d x %d values", values.shape[0], values.shape[1])

    def evaluate(self, x: Sequence[float]) -> np.ndarray:
        """Surrogate outputs at a single point."""
        return self.evaluate_batch(x)[0]

    def evaluate_batch(self, x) -> np.ndarray:
        """Surrogate outputs at many points, shape ``(num_x, num_outputs)``.

        Device resident (CuPy) query points are canonicalized on the device
        when the domain transform is linear.
        """
        engine = lifecycle.require_engine(self._engine, "evaluate_batch")
        if is_device_array(x):
            canonical = self._canonical_device_points(x)
        else:
            canonical = self._to_canonical(self._check_points(x, "evaluate_batch"))
        return np.array(engine.evaluate_batch(canonical, self._accelerator()), dtype=float)

    def integrate(self) -> np.ndarray:
        """Integral of every output over the (transformed) domain."""
        engine = lifecycle.require_engine(self._engine, "integrate")
        correction = None
        if self._conformal is not None and engine.get_num_loaded() > 0:
            correction = self._conformal.weight_correction(engine.get_loaded_points())
        return np.array(engine.integrate(correction) * self._quadrature_scale(), dtype=float)

    # =========================================================================
    # Hierarchical functions and coefficients
    # =========================================================================

    def evaluate_hierarchical_functions(self, x) -> np.ndarray:
        """``(num_x, num_points)`` basis values; complex for Fourier grids."""
        engine = lifecycle.require_engine(self._engine, "evaluate_hierarchical_functions")
        canonical = self._to_canonical(self._check_points(x, "evaluate_hierarchical_functions"))
        return np.array(engine.evaluate_hierarchical_functions(canonical))

    def evaluate_sparse_hierarchical_functions(self, x) -> scipy.sparse.csr_matrix:
        return scipy.sparse.csr_matrix(self.evaluate_hierarchical_functions(x))

    def evaluate_hierarchical_functions_gpu(self, x):
        """Hierarchical functions of device resident points, returned on the device.

        Uses the array module of the active backend, so the result is a numpy
        array when no GPU backend is enabled.
        """
        engine = lifecycle.require_engine(self._engine, "evaluate_hierarchical_functions_gpu")
        accelerator = self._accelerator()
        xp = np if accelerator is None else accelerator.xp
        if is_device_array(x):
            canonical = self._canonical_device_points(x)
        else:
            canonical = self._to_canonical(self._check_points(x, "evaluate_hierarchical_functions_gpu"))
        return xp.asarray(engine.evaluate_hierarchical_functions(canonical))

    def get_hierarchical_coefficients(self) -> np.ndarray:
        """Owned copy of the hierarchical coefficients.

        Surpluses for Sequence, LocalPolynomial and Wavelet grids, the loaded
        values for Global grids, and real parts stacked on imaginary parts
        for Fourier grids.
        """
        if self._engine is None:
            return np.zeros((0, 0))
        return np.array(self._engine.get_hierarchical_coefficients(), dtype=float)

    def set_hierarchical_coefficients(self, coefficients) -> None:
        engine = lifecycle.require_static(self._engine, "set_hierarchical_coefficients")
        rows = engine.get_num_points() * (2 if engine.family is GridFamily.FOURIER else 1)
        if rows == 0:
            raise PreconditionError("set_hierarchical_coefficients() called on a grid without points")
        coefficients = np.asarray(coefficients, dtype=float)
        if coefficients.size != rows * engine.num_outputs:
            raise InvalidArgumentError(
                f"set_hierarchical_coefficients() expects {rows} x {engine.num_outputs} values, "
                f"got {coefficients.size}"
            )
        engine.set_hierarchical_coefficients(coefficients.reshape(rows, engine.num_outputs))

    def get_point_indexes(self) -> np.ndarray:
        engine = lifecycle.require_family(self._engine, (GridFamily.LOCAL_POLYNOMIAL,), "get_point_indexes")
        return engine.get_point_indexes()

    def get_needed_indexes(self) -> np.ndarray:
        engine = lifecycle.require_family(self._engine, (GridFamily.LOCAL_POLYNOMIAL,), "get_needed_indexes")
        return engine.get_needed_indexes()

    def get_global_polynomial_space(self, interpolation: bool) -> np.ndarray:
        """Exponents of the monomials integrated or interpolated exactly."""
        engine = lifecycle.require_family(self._engine, (GridFamily.GLOBAL, GridFamily.SEQUENCE),
                                          "get_global_polynomial_space")
        return engine.get_polynomial_space(bool(interpolation))

    def remove_points_by_hierarchical_coefficient(self, tolerance: float, output: int = -1,
                                                  scale_correction=None) -> None:
        """Drop points whose coefficients are below ``tolerance``.

        Ancestors of kept points stay. When nothing survives the grid
        becomes empty.
        """
        caller = "remove_points_by_hierarchical_coefficient"
        engine = lifecycle.require_family(self._engine, (GridFamily.LOCAL_POLYNOMIAL,), caller)
        lifecycle.require_static(engine, caller)
        check_tolerance(tolerance, caller)
        if engine.get_num_loaded() == 0:
            raise PreconditionError(f"{caller}() requires loaded values")
        check_output_index(output, engine.num_outputs, caller)
        correction = refinement.check_scale_correction(engine, output, scale_correction, caller)
        if not engine.remove_points_by_hierarchical_coefficient(float(tolerance), output, correction):
            logger.debug("no point survived coefficient removal, grid is now empty")
            self._reset()
            return
        self._release_device_data()

    # =========================================================================
    # Refinement
    # =========================================================================

    def _limits_for(self, level_limits, caller: str):
        """Validated new limits (or None) and the limits the call should use."""
        engine = lifecycle.require_engine(self._engine, caller)
        checked = check_level_limits(level_limits, engine.num_dimensions, caller)
        return checked, (self._level_limits if checked is None else checked)

    def estimate_anisotropic_coefficients(self, depth_type, output: int = -1) -> np.ndarray:
        lifecycle.require_engine(self._engine, "estimate_anisotropic_coefficients")
        return refinement.estimate_anisotropic_coefficients(self._engine, depth_type, output)

    def set_anisotropic_refinement(self, depth_type, min_growth: int, output: int = -1,
                                   level_limits=None) -> None:
        _, limits = self._limits_for(level_limits, "set_anisotropic_refinement")
        refinement.set_anisotropic_refinement(self._engine, depth_type, min_growth, output, limits)
        self._level_limits = limits

    def set_surplus_refinement(self, tolerance: float, output: int = -1, level_limits=None,
                               criteria=None, scale_correction=None) -> None:
        """Request the children of points (or tensors) with large surpluses.

        Args:
            tolerance: Non-negative threshold
            output: Output driving the refinement, -1 for all
            level_limits: Replace the stored level limits
            criteria: TypeRefinement for LocalPolynomial and Wavelet grids
                (default 'classic'); must be None for other families
            scale_correction: Per point (and output) multipliers of the surpluses
        """
        _, limits = self._limits_for(level_limits, "set_surplus_refinement")
        refinement.set_surplus_refinement(self._engine, tolerance, output, limits, criteria,
                                          scale_correction)
        self._level_limits = limits

    def clear_refinement(self) -> None:
        refinement.clear_refinement(self._engine)

    def merge_refinement(self) -> None:
        refinement.merge_refinement(self._engine)

    def clear_level_limits(self) -> None:
        self._level_limits = None

    def get_level_limits(self) -> np.ndarray:
        """Stored level limits, -1 per dimension when unlimited."""
        if self._level_limits is None:
            return np.full(self.get_num_dimensions(), -1, dtype=np.int64)
        return self._level_limits.copy()

    # =========================================================================
    # Dynamic construction
    # =========================================================================

    def begin_construction(self) -> None:
        """Start accepting points in any order; idempotent."""
        engine = lifecycle.require_engine(self._engine, "begin_construction")
        if engine.is_using_construction():
            return
        engine.begin_construction()
        logger.debug("began dynamic construction of a %s grid", engine.family.value)

    def is_using_construction(self) -> bool:
        return self._engine is not None and self._engine.is_using_construction()

    def get_candidate_construction_points(self, depth_type, output: int = -1,
                                          anisotropic_weights=None, level_limits=None) -> np.ndarray:
        """Ranked points of the next tensors (Global) or indexes (Sequence).

        Without weights the anisotropy is estimated from ``output`` when
        values are available, otherwise the ranking is isotropic.
        """
        caller = "get_candidate_construction_points"
        engine = lifecycle.require_family(self._engine, (GridFamily.GLOBAL, GridFamily.SEQUENCE), caller)
        lifecycle.require_dynamic(engine, caller)
        depth_type = TypeDepth.from_string(depth_type)
        weights = check_anisotropic_weights(anisotropic_weights, depth_type, engine.num_dimensions, caller)
        _, limits = self._limits_for(level_limits, caller)
        if weights is None and engine.num_outputs > 0 and engine.get_num_loaded() > 0:
            check_output_index(output, engine.num_outputs, caller)
            if engine.family is GridFamily.SEQUENCE or engine.rule.is_nested:
                weights = engine.estimate_anisotropic_coefficients(depth_type, output)
        candidates = engine.get_candidate_points(depth_type, weights, limits)
        self._level_limits = limits
        return self._to_user(candidates)

    def get_candidate_construction_points_surplus(self, tolerance: float, criteria="classic",
                                                  output: int = -1, level_limits=None,
                                                  scale_correction=None) -> np.ndarray:
        """Ranked points a local surplus refinement would add."""
        caller = "get_candidate_construction_points_surplus"
        engine = lifecycle.require_family(self._engine, (GridFamily.LOCAL_POLYNOMIAL,), caller)
        lifecycle.require_dynamic(engine, caller)
        check_tolerance(tolerance, caller)
        criteria = TypeRefinement.from_string(criteria)
        check_output_index(output, engine.num_outputs, caller)
        _, limits = self._limits_for(level_limits, caller)
        correction = None
        if engine.get_num_loaded() > 0:
            correction = refinement.check_scale_correction(engine, output, scale_correction, caller)
        candidates = engine.get_candidate_points_surplus(float(tolerance), criteria, output, limits,
                                                         correction)
        self._level_limits = limits
        return self._to_user(candidates)

    def load_constructed_point(self, x: Sequence[float], y: Sequence[float]) -> None:
        """Value of one point; waits until its hierarchical parents are loaded."""
        caller = "load_constructed_point"
        engine = lifecycle.require_dynamic(self._engine, caller)
        x = np.asarray(x, dtype=float).ravel()
        y = np.asarray(y, dtype=float).ravel()
        if x.size != engine.num_dimensions:
            raise InvalidArgumentError(f"{caller}() needs {engine.num_dimensions} coordinates, got {x.size}")
        if y.size != engine.num_outputs:
            raise InvalidArgumentError(f"{caller}() needs {engine.num_outputs} values, got {y.size}")
        engine.load_constructed_point(self._to_canonical(x.reshape(1, -1))[0], y)

    def finish_construction(self) -> None:
        """Discard pending points and return to batch loading."""
        if self._engine is not None:
            self._engine.finish_construction()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _record(self) -> persistence.GridRecord:
        return persistence.GridRecord(self._engine, self._domain, self._conformal, self._level_limits)

    def _adopt(self, record: persistence.GridRecord) -> None:
        self._release_device_data()
        if record.engine is not None:
            record.engine.favor_sparse = self._favor_sparse
        self._engine = record.engine
        self._domain = record.domain
        self._conformal = record.conformal
        self._level_limits = record.level_limits

    def write(self, filename, binary: bool = False) -> None:
        persistence.write_grid(filename, self._record(), binary)

    def read(self, filename) -> None:
        """Replace this grid with the one stored in ``filename`` (text or binary).

        Raises:
            FormatCorruptionError: The file is malformed; the grid is unchanged.
        """
        self._adopt(persistence.read_grid(filename))

    def write_stream(self, stream: IO[bytes], binary: bool = False) -> None:
        persistence.write_stream(stream, self._record(), binary)

    def read_stream(self, stream: IO[bytes]) -> None:
        self._adopt(persistence.read_stream(stream))

    # =========================================================================
    # Acceleration
    # =========================================================================

    def enable_acceleration(self, acceleration) -> None:
        """Request a backend; unavailable ones fall back and never raise."""
        requested = TypeAcceleration.from_string(acceleration)
        effective = get_available_fallback(requested)
        if requested.is_gpu and not effective.is_gpu:
            logger.warning("acceleration %s is not available, falling back to %s",
                           requested.value, effective.value)
        elif effective is not requested:
            logger.debug("acceleration %s resolved to %s", requested.value, effective.value)
        if effective is self._acceleration:
            return
        self._release_device_data()
        self._acceleration = effective

    def get_acceleration_type(self) -> TypeAcceleration:
        return self._acceleration

    def set_gpu_id(self, gpu_id: int) -> None:
        """Rebind GPU backends to another device."""
        gpu_id = int(gpu_id)
        if gpu_id < 0:
            raise InvalidArgumentError(f"set_gpu_id() requires a non-negative id, got {gpu_id}")
        num_gpus = get_num_gpus()
        if num_gpus > 0 and gpu_id >= num_gpus:
            raise InvalidArgumentError(f"set_gpu_id() got {gpu_id}, only {num_gpus} devices exist")
        if gpu_id == self._gpu_id:
            return
        self._release_device_data()
        self._gpu_id = gpu_id

    def get_gpu_id(self) -> int:
        return self._gpu_id

    def favor_sparse_acceleration(self, favor: bool) -> None:
        """Evaluate hierarchical grids through sparse basis matrices."""
        self._favor_sparse = bool(favor)
        if self._engine is not None:
            self._engine.favor_sparse = self._favor_sparse

    def prepare_acceleration(self) -> None:
        """Create the backend handles now instead of on first evaluation."""
        self._accelerator()

    def _accelerator(self) -> Optional[LinearAlgebraEngine]:
        if self._acceleration is TypeAcceleration.NONE:
            return None
        with self._lock:
            if self._linear_algebra is None:
                self._linear_algebra = LinearAlgebraEngine(self._acceleration, self._gpu_id)
                logger.debug("created %r", self._linear_algebra)
            return self._linear_algebra

    def _clear_device_domain(self) -> None:
        if self._device_domain is not None:
            self._device_domain.clear()

    def _release_device_data(self) -> None:
        """Drop device copies and backend handles, they are rebuilt lazily."""
        if self._engine is not None:
            self._engine.clear_acceleration_data()
        self._clear_device_domain()
        self._device_domain = None
        with self._lock:
            if self._linear_algebra is not None:
                self._linear_algebra.release()
            self._linear_algebra = None

    @staticmethod
    def is_acceleration_available(acceleration) -> bool:
        return is_available(acceleration)

    @staticmethod
    def get_num_gpus() -> int:
        return get_num_gpus()

    @staticmethod
    def get_gpu_memory(gpu_id: int) -> int:
        return get_gpu_memory(gpu_id)

    @staticmethod
    def get_gpu_name(gpu_id: int) -> str:
        return get_gpu_name(gpu_id)
