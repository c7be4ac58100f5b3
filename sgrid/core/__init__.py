"""Core numerics shared by every grid family.

Import Policy:
    from sgrid.core import MultiIndexSet, DomainTransform, ConformalAsin

DO NOT use: from sgrid.core import *

Submodules:
    multi_index: MultiIndexSet, lower set helpers, IndexSelection
    rules: One dimensional global rules and the OneDimensionalWrapper
    transforms: DomainTransform and the ASIN conformal map
    anisotropy: Anisotropic weight estimation
    io: Text and binary record streams
"""

from sgrid.core.multi_index import (
    IndexSelection,
    MultiIndexSet,
    admissible_frontier,
    combination_coefficients,
    complete_lower,
)
from sgrid.core.rules import (
    OneDimensionalWrapper,
    get_num_points,
    interpolation_exactness,
    quadrature_exactness,
)
from sgrid.core.transforms import ConformalAsin, DomainTransform
from sgrid.core.anisotropy import estimate_weights, isotropic_weights

__all__ = [
    "IndexSelection",
    "MultiIndexSet",
    "admissible_frontier",
    "combination_coefficients",
    "complete_lower",
    "OneDimensionalWrapper",
    "get_num_points",
    "interpolation_exactness",
    "quadrature_exactness",
    "ConformalAsin",
    "DomainTransform",
    "estimate_weights",
    "isotropic_weights",
]
