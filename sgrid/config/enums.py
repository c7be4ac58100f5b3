"""
Configuration Enums for sgrid

This module defines all enumeration types used to describe sparse grids:
grid families, one-dimensional rules, depth (index selection) types,
refinement criteria and acceleration backends.

Import Policy:
    from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule, TypeRefinement, TypeAcceleration

DO NOT use: from sgrid.config.enums import *
"""

from enum import Enum


class _NamedEnum(Enum):
    """String valued enum with a validating parser."""

    @classmethod
    def from_string(cls, value):
        """Convert a string (or an existing member) into a member.

        Raises:
            InvalidArgumentError: If the string does not name a member.
        """
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        # deferred import, validation imports this module
        from sgrid.config.validation import InvalidArgumentError
        options = ", ".join(m.value for m in cls)
        raise InvalidArgumentError(f"unknown {cls.__name__} '{value}', expected one of: {options}")


class GridFamily(_NamedEnum):
    """Closed set of sparse grid families.

    Options:
        EMPTY: No engine is attached to the facade
        GLOBAL: Smolyak combination of tensor Lagrange interpolants
        SEQUENCE: Hierarchical Newton basis over a nested sequence rule
        LOCAL_POLYNOMIAL: Hierarchical piecewise polynomials on a dyadic tree
        WAVELET: Lifted dyadic wavelets
        FOURIER: Trigonometric interpolation on the periodic unit cube
    """
    EMPTY = "empty"
    GLOBAL = "global"
    SEQUENCE = "sequence"
    LOCAL_POLYNOMIAL = "localpolynomial"
    WAVELET = "wavelet"
    FOURIER = "fourier"

    @property
    def binary_tag(self) -> bytes:
        """Single byte tag used by the binary file format."""
        return _FAMILY_BINARY_TAGS[self]

    @classmethod
    def from_binary_tag(cls, tag: bytes):
        for family, value in _FAMILY_BINARY_TAGS.items():
            if value == tag:
                return family
        return None


_FAMILY_BINARY_TAGS = {
    GridFamily.GLOBAL: b"g",
    GridFamily.SEQUENCE: b"s",
    GridFamily.LOCAL_POLYNOMIAL: b"p",
    GridFamily.WAVELET: b"w",
    GridFamily.FOURIER: b"f",
    GridFamily.EMPTY: b"e",
}


class TypeDepth(_NamedEnum):
    """Index selection strategies.

    Options:
        LEVEL, CURVED, HYPERBOLIC, TENSOR: Selection on the rule levels
        IPTOTAL, IPCURVED, IPHYPERBOLIC, IPTENSOR: Selection on the
            polynomial degree interpolated exactly by each level
        QPTOTAL, QPCURVED, QPHYPERBOLIC, QPTENSOR: Selection on the
            polynomial degree integrated exactly by each level

    Note:
        Curved types take 2*dimensions anisotropic weights, the second half
        being the coefficients of the logarithmic correction.
    """
    LEVEL = "level"
    CURVED = "curved"
    HYPERBOLIC = "hyperbolic"
    TENSOR = "tensor"
    IPTOTAL = "iptotal"
    IPCURVED = "ipcurved"
    IPHYPERBOLIC = "iphyperbolic"
    IPTENSOR = "iptensor"
    QPTOTAL = "qptotal"
    QPCURVED = "qpcurved"
    QPHYPERBOLIC = "qphyperbolic"
    QPTENSOR = "qptensor"

    @property
    def is_curved(self) -> bool:
        return self in (TypeDepth.CURVED, TypeDepth.IPCURVED, TypeDepth.QPCURVED)

    @property
    def is_hyperbolic(self) -> bool:
        return self in (TypeDepth.HYPERBOLIC, TypeDepth.IPHYPERBOLIC, TypeDepth.QPHYPERBOLIC)

    @property
    def is_tensor(self) -> bool:
        return self in (TypeDepth.TENSOR, TypeDepth.IPTENSOR, TypeDepth.QPTENSOR)

    @property
    def is_interpolation(self) -> bool:
        return self.value.startswith("ip")

    @property
    def is_quadrature(self) -> bool:
        return self.value.startswith("qp")


class TypeOneDRule(_NamedEnum):
    """One dimensional rules.

    Options:
        NONE: Placeholder reported by an empty grid
        CLENSHAW_CURTIS, FEJER2, CHEBYSHEV: Chebyshev type interpolatory rules
        LEJA, RLEJA: Nested sequences adding one node per level
        GAUSS_*: Gauss quadrature rules (non-nested)
        LOCALP, LOCALP_ZERO, SEMI_LOCALP: Dyadic local polynomial rules
        WAVELET: Dyadic lifted wavelet rule
        FOURIER: Equispaced nested trigonometric rule on [0, 1)
    """
    NONE = "none"
    CLENSHAW_CURTIS = "clenshaw-curtis"
    FEJER2 = "fejer2"
    CHEBYSHEV = "chebyshev"
    LEJA = "leja"
    RLEJA = "rleja"
    GAUSS_LEGENDRE = "gauss-legendre"
    GAUSS_CHEBYSHEV1 = "gauss-chebyshev1"
    GAUSS_CHEBYSHEV2 = "gauss-chebyshev2"
    GAUSS_GEGENBAUER = "gauss-gegenbauer"
    GAUSS_JACOBI = "gauss-jacobi"
    GAUSS_LAGUERRE = "gauss-laguerre"
    GAUSS_HERMITE = "gauss-hermite"
    LOCALP = "localp"
    LOCALP_ZERO = "localp-zero"
    SEMI_LOCALP = "semi-localp"
    WAVELET = "wavelet"
    FOURIER = "fourier"

    @property
    def code(self) -> int:
        """Stable integer code used inside file payloads."""
        return list(TypeOneDRule).index(self)

    @classmethod
    def from_code(cls, code: int):
        members = list(TypeOneDRule)
        if code < 0 or code >= len(members):
            return None
        return members[code]

    @property
    def is_sequence(self) -> bool:
        return self in (TypeOneDRule.LEJA, TypeOneDRule.RLEJA)

    @property
    def is_non_nested(self) -> bool:
        return self.value.startswith("gauss") or self is TypeOneDRule.CHEBYSHEV

    @property
    def is_nested(self) -> bool:
        return self.is_global and not self.is_non_nested

    @property
    def is_global(self) -> bool:
        return self not in (TypeOneDRule.NONE, TypeOneDRule.LOCALP, TypeOneDRule.LOCALP_ZERO,
                            TypeOneDRule.SEMI_LOCALP, TypeOneDRule.WAVELET, TypeOneDRule.FOURIER)

    @property
    def is_local(self) -> bool:
        return self in (TypeOneDRule.LOCALP, TypeOneDRule.LOCALP_ZERO, TypeOneDRule.SEMI_LOCALP)

    @property
    def is_half_line(self) -> bool:
        return self is TypeOneDRule.GAUSS_LAGUERRE

    @property
    def is_full_line(self) -> bool:
        return self is TypeOneDRule.GAUSS_HERMITE


class TypeRefinement(_NamedEnum):
    """Local surplus refinement criteria.

    Options:
        CLASSIC: Add all children of every point with a large coefficient
        PARENTS_FIRST: Add missing parents before any child
        DIRECTION_SELECTIVE: Refine only along directions with a large
            one dimensional coefficient
        FDS: Direction selective refinement with parents first
        STABLE: Classic refinement closed under the parent relation
    """
    CLASSIC = "classic"
    PARENTS_FIRST = "parents_first"
    DIRECTION_SELECTIVE = "direction_selective"
    FDS = "fds"
    STABLE = "stable"


class TypeAcceleration(_NamedEnum):
    """Linear algebra backends for batch evaluation.

    Options:
        NONE: Plain numpy
        CPU_BLAS: scipy BLAS level 3 routines
        GPU_DEFAULT: Best GPU backend available at runtime
        GPU_CUBLAS: CuPy cuBLAS gemm
        GPU_CUDA: CuPy kernels (matmul and cuSPARSE)
        GPU_MAGMA: MAGMA backend (never available from Python)

    Note:
        Requests for unavailable backends fall back, see
        sgrid.gpu.acceleration.get_available_fallback.
    """
    NONE = "none"
    CPU_BLAS = "cpu-blas"
    GPU_DEFAULT = "gpu-default"
    GPU_CUBLAS = "gpu-cublas"
    GPU_CUDA = "gpu-cuda"
    GPU_MAGMA = "gpu-magma"

    @property
    def is_gpu(self) -> bool:
        return self.value.startswith("gpu")
