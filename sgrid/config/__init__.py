"""Configuration Module

Enumerations, defaults, the error taxonomy and grid recipes for sgrid.

Default Configuration (loaded from defaults.yaml):
    from sgrid.config import get_default

    cap = get_default('numerics.newton_max_iterations')
    backend = get_default('acceleration.default')

Recommended Usage:
    from sgrid.config import GridConfig, create_validated_config

    config = create_validated_config(family="global", dimensions=2, depth=3,
                                     rule="clenshaw-curtis")

Import Policy:
    DO NOT use: from sgrid.config import *

Submodules:
    enums: GridFamily, TypeDepth, TypeOneDRule, TypeRefinement, TypeAcceleration
    defaults: Fixed constants (tolerances, format versions)
    yaml_loader: YAML defaults loader (get_default, get_defaults)
    grid_config: GridConfig dataclass and YAML recipe loader
    validation: Errors, argument checks, config validation
"""

from sgrid.config.enums import (
    GridFamily,
    TypeAcceleration,
    TypeDepth,
    TypeOneDRule,
    TypeRefinement,
)
from sgrid.config.yaml_loader import get_default, get_defaults, reload_defaults
from sgrid.config.grid_config import GridConfig, load_grid_config
from sgrid.config.validation import (
    BackendUnavailableError,
    ConfigurationError,
    ConfigurationWarning,
    FormatCorruptionError,
    InvalidArgumentError,
    PreconditionError,
    SparseGridError,
    create_validated_config,
    validate_config,
    warn_if_unsafe,
)


__all__ = [
    # Enums
    "GridFamily",
    "TypeAcceleration",
    "TypeDepth",
    "TypeOneDRule",
    "TypeRefinement",
    # Config
    "GridConfig",
    "load_grid_config",
    "create_validated_config",
    "validate_config",
    "warn_if_unsafe",
    # Errors
    "SparseGridError",
    "InvalidArgumentError",
    "PreconditionError",
    "FormatCorruptionError",
    "BackendUnavailableError",
    "ConfigurationError",
    "ConfigurationWarning",
    # YAML defaults access
    "get_default",
    "get_defaults",
    "reload_defaults",
]
