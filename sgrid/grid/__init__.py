"""Grid facade layer.

Import Policy:
    from sgrid.grid import SparseGrid, GridRegistry, create_grid

DO NOT use: from sgrid.grid import *

Submodules:
    sparse_grid: SparseGrid facade over the family engines
    lifecycle: Construction states and their guards
    refinement: Refinement preconditions and dispatch
    persistence: Text and binary grid files
    registry: Handle based arena of grids
    api: GridConfig based factories
"""

from sgrid.grid.lifecycle import ConstructionState
from sgrid.grid.sparse_grid import SparseGrid
from sgrid.grid.persistence import GridRecord, read_grid, write_grid
from sgrid.grid.registry import GridRegistry
from sgrid.grid.api import create_grid, create_grid_from_file

__all__ = [
    "ConstructionState",
    "SparseGrid",
    "GridRecord",
    "read_grid",
    "write_grid",
    "GridRegistry",
    "create_grid",
    "create_grid_from_file",
]
