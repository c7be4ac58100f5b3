"""Numerical engines of the five grid families.

Every engine works in canonical coordinates and implements the BaseGrid
capability contract; the SparseGrid facade owns exactly one engine and
dispatches on its ``family`` tag.
"""

from sgrid.engines.base import BaseGrid, ConstructionData
from sgrid.engines.tensor import TensorGrid
from sgrid.engines.global_grid import GlobalGrid
from sgrid.engines.fourier_grid import FourierGrid
from sgrid.engines.hierarchical import HierarchicalGrid
from sgrid.engines.sequence_grid import SequenceGrid, SequenceRule
from sgrid.engines.local_polynomial_grid import LocalPolynomialGrid, LocalRule
from sgrid.engines.wavelet_grid import WaveletGrid, WaveletRule

ENGINES = {
    GlobalGrid.family: GlobalGrid,
    SequenceGrid.family: SequenceGrid,
    LocalPolynomialGrid.family: LocalPolynomialGrid,
    WaveletGrid.family: WaveletGrid,
    FourierGrid.family: FourierGrid,
}

__all__ = [
    "BaseGrid",
    "ConstructionData",
    "TensorGrid",
    "GlobalGrid",
    "FourierGrid",
    "HierarchicalGrid",
    "SequenceGrid",
    "SequenceRule",
    "LocalPolynomialGrid",
    "LocalRule",
    "WaveletGrid",
    "WaveletRule",
    "ENGINES",
]
