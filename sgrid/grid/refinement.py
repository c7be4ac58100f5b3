"""Refinement preconditions and dispatch.

The numerical work lives in the engines; this module checks that a
refinement request fits the grid (family, rule, loaded values, argument
ranges) and forwards it. Every function takes the engine held by the
facade and the level limits the facade resolved for the call.

Import Policy:
    from sgrid.grid import refinement
"""

import logging
from typing import Optional

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeRefinement
from sgrid.config.validation import (
    InvalidArgumentError,
    PreconditionError,
    check_output_index,
    check_tolerance,
)
from sgrid.grid.lifecycle import require_family, require_static

logger = logging.getLogger(__name__)

_LOCAL_FAMILIES = (GridFamily.LOCAL_POLYNOMIAL, GridFamily.WAVELET)


def _require_loaded(engine, output: int, caller: str) -> None:
    if engine.num_outputs == 0:
        raise PreconditionError(f"{caller}() requires a grid with outputs")
    if engine.get_num_loaded() == 0:
        raise PreconditionError(f"{caller}() requires loaded values")
    check_output_index(output, engine.num_outputs, caller)


def _require_anisotropic_capable(engine, caller: str) -> None:
    require_static(engine, caller)
    require_family(engine, (GridFamily.GLOBAL, GridFamily.SEQUENCE), caller)
    if engine.family is GridFamily.GLOBAL and not engine.rule.is_nested:
        raise PreconditionError(f"{caller}() requires a nested rule, got '{engine.rule.value}'")


def estimate_anisotropic_coefficients(engine, depth_type: TypeDepth, output: int = -1) -> np.ndarray:
    caller = "estimate_anisotropic_coefficients"
    _require_anisotropic_capable(engine, caller)
    _require_loaded(engine, output, caller)
    return engine.estimate_anisotropic_coefficients(TypeDepth.from_string(depth_type), output)


def set_anisotropic_refinement(engine, depth_type: TypeDepth, min_growth: int, output: int = -1,
                               level_limits: Optional[np.ndarray] = None) -> None:
    caller = "set_anisotropic_refinement"
    _require_anisotropic_capable(engine, caller)
    if min_growth < 1:
        raise InvalidArgumentError(f"{caller}() requires min_growth >= 1, got {min_growth}")
    _require_loaded(engine, output, caller)
    engine.set_anisotropic_refinement(TypeDepth.from_string(depth_type), int(min_growth), output,
                                      level_limits)
    logger.debug("anisotropic refinement requests %d points", engine.get_num_needed())


def check_scale_correction(engine, output: int, scale_correction, caller: str) -> Optional[np.ndarray]:
    if scale_correction is None:
        return None
    scale_correction = np.asarray(scale_correction, dtype=float).ravel()
    if scale_correction.size == 0:
        return None
    columns = engine.num_outputs if output == -1 else 1
    expected = engine.get_num_loaded() * columns
    if scale_correction.size != expected:
        raise InvalidArgumentError(
            f"{caller}() scale_correction needs {expected} entries, got {scale_correction.size}"
        )
    return scale_correction.reshape(-1, columns)


def resolve_criteria(engine, criteria, caller: str) -> Optional[TypeRefinement]:
    """Criteria of a local refinement, ``classic`` when omitted for local grids."""
    if engine.family in _LOCAL_FAMILIES:
        return TypeRefinement.CLASSIC if criteria is None else TypeRefinement.from_string(criteria)
    if criteria is not None:
        raise InvalidArgumentError(f"{caller}() accepts refinement criteria only for "
                                   "local polynomial and wavelet grids")
    return None


def set_surplus_refinement(engine, tolerance: float, output: int = -1,
                           level_limits: Optional[np.ndarray] = None, criteria=None,
                           scale_correction=None) -> None:
    caller = "set_surplus_refinement"
    require_static(engine, caller)
    check_tolerance(tolerance, caller)
    if engine.family is GridFamily.FOURIER:
        raise PreconditionError(f"{caller}() is not available for fourier grids")
    criteria = resolve_criteria(engine, criteria, caller)
    _require_loaded(engine, output, caller)

    if criteria is None:
        if engine.family is GridFamily.GLOBAL and not engine.rule.is_sequence:
            raise PreconditionError(f"{caller}() on a global grid requires a sequence rule, "
                                    f"got '{engine.rule.value}'")
        engine.set_surplus_refinement(float(tolerance), output, level_limits)
    else:
        correction = check_scale_correction(engine, output, scale_correction, caller)
        engine.set_local_refinement(float(tolerance), criteria, output, level_limits, correction)
    logger.debug("surplus refinement requests %d points", engine.get_num_needed())


def clear_refinement(engine) -> None:
    if engine is not None:
        engine.clear_refinement()


def merge_refinement(engine) -> None:
    if engine is not None:
        require_static(engine, "merge_refinement")
        engine.merge_refinement()
