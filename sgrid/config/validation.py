"""
Errors and Validation Utilities

This module holds the exception taxonomy of the library, the argument
checks shared by the grid facade and the engines, and validation of
GridConfig objects.

Every argument check raises before the caller mutates any state, so a
failed call leaves a grid exactly as it was.

Import Policy:
    from sgrid.config.validation import InvalidArgumentError, PreconditionError, validate_config

DO NOT use: from sgrid.config.validation import *
"""

import warnings
from typing import List, Optional, Sequence, Tuple

import numpy as np

from sgrid.config.enums import GridFamily, TypeDepth, TypeOneDRule
from sgrid.config.grid_config import GridConfig


class SparseGridError(Exception):
    """Base class of all errors raised by sgrid."""

    pass


class InvalidArgumentError(SparseGridError, ValueError):
    """A caller supplied value is out of range or has the wrong size."""

    pass


class PreconditionError(SparseGridError, RuntimeError):
    """The operation is not allowed in the current grid state."""

    pass


class FormatCorruptionError(SparseGridError, RuntimeError):
    """A grid file is truncated, malformed, or from an unsupported version."""

    pass


class BackendUnavailableError(SparseGridError, RuntimeError):
    """A device level operation was requested without a device library."""

    pass


class ConfigurationError(SparseGridError):
    """Raised when configuration validation fails."""

    pass


class ConfigurationWarning(Warning):
    """Warning for potentially unsafe configuration choices."""

    pass


# =============================================================================
# Argument checks
# =============================================================================


def check_grid_shape(dimensions: int, outputs: int, depth: int, caller: str) -> None:
    """Validate the common size arguments of every make_*_grid call."""
    if dimensions < 1:
        raise InvalidArgumentError(f"{caller}() requires positive dimensions, got {dimensions}")
    if outputs < 0:
        raise InvalidArgumentError(f"{caller}() requires non-negative outputs, got {outputs}")
    if depth < 0:
        raise InvalidArgumentError(f"{caller}() requires non-negative depth, got {depth}")


def check_anisotropic_weights(weights: Optional[Sequence[int]], depth_type: TypeDepth,
                              dimensions: int, caller: str) -> Optional[np.ndarray]:
    """Validate anisotropic weights against the depth type.

    Returns:
        The weights as an int array, or None when no weights were given.
    """
    if weights is None:
        return None
    weights = np.asarray(weights, dtype=np.int64).ravel()
    if weights.size == 0:
        return None
    expected = 2 * dimensions if depth_type.is_curved else dimensions
    if weights.size != expected:
        raise InvalidArgumentError(
            f"{caller}() with depth type '{depth_type.value}' requires {expected} anisotropic "
            f"weights, got {weights.size}"
        )
    return weights


def check_level_limits(level_limits: Optional[Sequence[int]], dimensions: int,
                       caller: str) -> Optional[np.ndarray]:
    """Validate level limits, negative entries mean no limit in that direction."""
    if level_limits is None:
        return None
    level_limits = np.asarray(level_limits, dtype=np.int64).ravel()
    if level_limits.size == 0:
        return None
    if level_limits.size != dimensions:
        raise InvalidArgumentError(
            f"{caller}() requires {dimensions} level limits, got {level_limits.size}"
        )
    return level_limits


def check_output_index(output: int, outputs: int, caller: str) -> None:
    if output < -1 or output >= outputs:
        raise InvalidArgumentError(
            f"{caller}() output must be -1 or in [0, {outputs}), got {output}"
        )


def check_tolerance(tolerance: float, caller: str) -> None:
    if tolerance < 0.0:
        raise InvalidArgumentError(f"{caller}() requires non-negative tolerance, got {tolerance}")


def check_global_rule(rule: TypeOneDRule, caller: str) -> None:
    if not rule.is_global:
        raise InvalidArgumentError(f"{caller}() requires a global rule, got '{rule.value}'")


def check_sequence_rule(rule: TypeOneDRule, caller: str) -> None:
    if not rule.is_sequence:
        raise InvalidArgumentError(f"{caller}() requires a sequence rule, got '{rule.value}'")


def check_local_rule(rule: TypeOneDRule, order: int, caller: str) -> None:
    if order < -1:
        raise InvalidArgumentError(f"{caller}() requires order >= -1, got {order}")
    if not rule.is_local:
        raise InvalidArgumentError(f"{caller}() requires a local polynomial rule, got '{rule.value}'")


def check_wavelet_order(order: int, caller: str) -> None:
    if order not in (1, 3):
        raise InvalidArgumentError(f"{caller}() accepts only orders 1 and 3, got {order}")


# =============================================================================
# GridConfig validation
# =============================================================================


def validate_config(config: GridConfig, raise_on_error: bool = True) -> Tuple[bool, List[str]]:
    """Validate a grid configuration.

    Args:
        config: GridConfig to validate
        raise_on_error: If True, raise ConfigurationError on validation failure

    Returns:
        Tuple of (is_valid, error_messages)

    Raises:
        ConfigurationError: If validation fails and raise_on_error=True
    """
    errors = config.validate()

    if errors:
        if raise_on_error:
            raise ConfigurationError(
                f"Configuration validation failed with {len(errors)} error(s):\n"
                + "\n".join(f"  - {err}" for err in errors)
            )
        return False, errors

    return True, []


def warn_if_unsafe(config: GridConfig) -> List[str]:
    """Check for valid but questionable configuration choices.

    Warnings are issued via Python's warnings module.

    Args:
        config: GridConfig to check

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings_list = []
    family = GridFamily.from_string(config.family)

    if config.conformal_truncation and family in (GridFamily.GLOBAL, GridFamily.SEQUENCE):
        rule = TypeOneDRule.from_string(config.rule)
        if rule.is_half_line or rule.is_full_line:
            warnings_list.append(
                f"conformal map requested with unbounded rule '{rule.value}'; "
                "the ASIN map is meant for the canonical interval [-1, 1]"
            )

    if config.depth * config.dimensions > 60 and config.level_limits is None:
        warnings_list.append(
            f"depth {config.depth} in {config.dimensions} dimensions without level limits "
            "may produce a very large number of points"
        )

    if family is GridFamily.LOCAL_POLYNOMIAL and config.order > 3:
        warnings_list.append(
            f"local polynomial order {config.order} is treated as quadratic"
        )

    for warning_msg in warnings_list:
        warnings.warn(warning_msg, ConfigurationWarning, stacklevel=2)

    return warnings_list


def create_validated_config(**kwargs) -> GridConfig:
    """Create a GridConfig and validate it.

    Example:
        >>> config = create_validated_config(family="sequence", dimensions=2, depth=4, rule="leja")
    """
    config = GridConfig(**kwargs)
    validate_config(config, raise_on_error=True)
    return config
