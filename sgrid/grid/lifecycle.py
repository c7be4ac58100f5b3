"""Construction lifecycle of a facade.

A facade is EMPTY until a make_* call attaches an engine, STATIC_READY
while points are loaded in batches (needed -> loaded), and DYNAMIC_ACTIVE
between begin_construction() and finish_construction(). Refinement calls
and dynamic construction are mutually exclusive; the guards below raise
PreconditionError for calls made in the wrong state.

Import Policy:
    from sgrid.grid.lifecycle import ConstructionState, construction_state
"""

from enum import Enum
from typing import Iterable

import numpy as np

from sgrid.config.enums import GridFamily
from sgrid.config.validation import InvalidArgumentError, PreconditionError


class ConstructionState(Enum):
    """Lifecycle states of a facade.

    Options:
        EMPTY: No engine attached
        STATIC_READY: Engine attached, batch loading and refinement allowed
        DYNAMIC_ACTIVE: Dynamic construction in progress
    """
    EMPTY = "empty"
    STATIC_READY = "static"
    DYNAMIC_ACTIVE = "dynamic"


def construction_state(engine) -> ConstructionState:
    if engine is None:
        return ConstructionState.EMPTY
    if engine.is_using_construction():
        return ConstructionState.DYNAMIC_ACTIVE
    return ConstructionState.STATIC_READY


def require_engine(engine, caller: str):
    if engine is None:
        raise PreconditionError(f"{caller}() called on an empty grid")
    return engine


def require_static(engine, caller: str):
    require_engine(engine, caller)
    if engine.is_using_construction():
        raise PreconditionError(f"{caller}() cannot be used during dynamic construction, "
                                "call finish_construction() first")
    return engine


def require_dynamic(engine, caller: str):
    require_engine(engine, caller)
    if not engine.is_using_construction():
        raise PreconditionError(f"{caller}() requires begin_construction() first")
    return engine


def require_family(engine, families: Iterable[GridFamily], caller: str):
    require_engine(engine, caller)
    families = tuple(families)
    if engine.family not in families:
        names = " or ".join(f.value for f in families)
        raise PreconditionError(f"{caller}() requires a {names} grid, "
                                f"this grid is {engine.family.value}")
    return engine


def check_load_values(engine, values, caller: str = "load_needed_points") -> np.ndarray:
    """Shape ``values`` as ``(count, num_outputs)`` for the next load.

    The count is the number of needed points, or the number of loaded points
    when nothing is needed (the loaded values are overwritten).
    """
    require_static(engine, caller)
    needed = engine.get_num_needed()
    loaded = engine.get_num_loaded()
    if needed == 0 and loaded == 0:
        raise PreconditionError(f"{caller}() called on a grid without points")
    count = needed if needed > 0 else loaded
    values = np.asarray(values, dtype=float)
    if values.size != count * engine.num_outputs:
        raise InvalidArgumentError(
            f"{caller}() expects {count} x {engine.num_outputs} values, got {values.size}"
        )
    return values.reshape(count, engine.num_outputs)
