"""sgrid: adaptive sparse grid interpolation and quadrature

Builds multidimensional sparse grids, evaluates the surrogate they define
and integrates it, with five grid families:

- Global: Smolyak combination of tensor Lagrange interpolants
- Sequence: Newton interpolation over Leja sequences
- LocalPolynomial: hierarchical piecewise polynomials
- Wavelet: lifted dyadic wavelets
- Fourier: trigonometric interpolation on the periodic cube

Grids support anisotropic and surplus driven refinement, dynamic
construction, domain and conformal transforms, text and binary files, and
optional BLAS or CUDA accelerated batch evaluation.

Version: 3.1
"""

__version__ = "3.1"

# Configuration and errors
from sgrid.config import (
    BackendUnavailableError,
    ConfigurationError,
    ConfigurationWarning,
    FormatCorruptionError,
    GridConfig,
    GridFamily,
    InvalidArgumentError,
    PreconditionError,
    SparseGridError,
    TypeAcceleration,
    TypeDepth,
    TypeOneDRule,
    TypeRefinement,
    create_validated_config,
    load_grid_config,
)

# Grids
from sgrid.grid import (
    ConstructionState,
    GridRegistry,
    SparseGrid,
    create_grid,
    create_grid_from_file,
)

__all__ = [
    # Version
    "__version__",
    # Grids
    "SparseGrid",
    "GridRegistry",
    "ConstructionState",
    "create_grid",
    "create_grid_from_file",
    # Configuration
    "GridConfig",
    "load_grid_config",
    "create_validated_config",
    "GridFamily",
    "TypeAcceleration",
    "TypeDepth",
    "TypeOneDRule",
    "TypeRefinement",
    # Errors
    "SparseGridError",
    "InvalidArgumentError",
    "PreconditionError",
    "FormatCorruptionError",
    "BackendUnavailableError",
    "ConfigurationError",
    "ConfigurationWarning",
]
