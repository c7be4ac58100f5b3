"""
Default Configuration Constants for sgrid

This module contains the fixed constants used throughout the library.
This is the Single Source of Truth (SSOT) for numerical tolerances, file
format versions and built-in defaults. User tunable defaults live in
defaults.yaml and are read through sgrid.config.yaml_loader.

IMPORTANT Import Policies:
    1. DO NOT use: from sgrid.config.defaults import *
       This causes namespace pollution and makes tracking difficult.

    2. DO use explicit imports:
       from sgrid.config.defaults import NUM_TOL, FILE_FORMAT_VERSION
"""

# =============================================================================
# Numerical Tolerances
# =============================================================================

# Convergence tolerance of the Newton iteration in the conformal map and the
# threshold below which a coordinate is treated as zero
NUM_TOL = 1.0e-12

# Two one dimensional nodes closer than this are the same node
NODE_MERGE_TOL = 1.0e-12

# Cap on Newton iterations when inverting the conformal map
# Overridden by numerics.newton_max_iterations in defaults.yaml
DEFAULT_NEWTON_MAX_ITERATIONS = 100

# Number of trial points per interval when placing a new Leja node
DEFAULT_LEJA_RESOLUTION = 32

# =============================================================================
# Refinement
# =============================================================================

# The smallest positive linear weight of an estimated anisotropy is scaled to
# this integer value before rounding
ANISOTROPIC_WEIGHT_SCALE = 1000

# Coefficients below this fraction of the largest one are ignored when
# estimating anisotropic weights
ANISOTROPIC_MAGNITUDE_FLOOR = 1.0e-13

# =============================================================================
# File Format
# =============================================================================

# Library and file format version (major.minor)
VERSION_MAJOR = 3
VERSION_MINOR = 1
FILE_FORMAT_VERSION = f"{VERSION_MAJOR}.{VERSION_MINOR}"

# Files written by a major version below this one are rejected
MIN_SUPPORTED_MAJOR = 2

# Text format markers
TEXT_MAGIC = "SGRID"
TEXT_WARNING_LINE = "WARNING: do not edit this manually"
TEXT_END_MARKER = "SGRID end"

# Binary format header: three byte magic plus one byte format version
BINARY_MAGIC = b"SGB1"

# Text blocks appended after the initial release (major, minor); level
# limits arrived together with the conformal block
FORMAT_CONFORMAL_SINCE = (3, 0)
FORMAT_CONSTRUCTION_SINCE = (3, 1)

# =============================================================================
# Acceleration
# =============================================================================

DEFAULT_ACCELERATION = "cpu-blas"
DEFAULT_GPU_ID = 0
