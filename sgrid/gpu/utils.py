"""GPU utility functions for sgrid.

This module is the Single Source of Truth (SSOT) for CuPy imports and GPU
availability checks. Nothing else in the package imports cupy directly.

Import Policy:
    from sgrid.gpu.utils import gpu_available, require_gpu, get_cupy

DO NOT use: from sgrid.gpu.utils import *
"""

import logging
from typing import Any, Optional

from sgrid.config.validation import BackendUnavailableError

logger = logging.getLogger(__name__)

# =============================================================================
# GPU Availability and CuPy Import (SSOT)
# =============================================================================

_cupy_module: Optional[Any] = None
_cupy_import_failed = False
_gpu_available_cached: Optional[bool] = None


def get_cupy() -> Any:
    """Get the CuPy module, importing lazily on first call.

    Returns:
        CuPy module if it can be imported, None otherwise

    Example:
        >>> cp = get_cupy()
        >>> if cp is not None:
        ...     arr = cp.array([1, 2, 3])
    """
    global _cupy_module, _cupy_import_failed

    if _cupy_module is not None or _cupy_import_failed:
        return _cupy_module

    try:
        import cupy as cp
        _cupy_module = cp
    except ImportError:
        logger.debug("cupy is not installed, GPU backends are unavailable")
        _cupy_import_failed = True
    return _cupy_module


def get_cupyx_sparse() -> Any:
    """Get cupyx.scipy.sparse, or None without CuPy."""
    if get_cupy() is None:
        return None
    import cupyx.scipy.sparse as cusparse
    return cusparse


def gpu_available() -> bool:
    """Check if CuPy imports and sees at least one CUDA device.

    Example:
        >>> if gpu_available():
        ...     # Use GPU code path
        ... else:
        ...     # Use CPU fallback
    """
    global _gpu_available_cached

    if _gpu_available_cached is not None:
        return _gpu_available_cached

    cp = get_cupy()
    if cp is None:
        _gpu_available_cached = False
        return False

    # CuPy may import on a machine without a driver or device
    try:
        _gpu_available_cached = bool(cp.cuda.is_available())
    except Exception as exc:  # CUDA runtime errors have no common base class
        logger.debug("CUDA runtime probe failed: %s", exc)
        _gpu_available_cached = False
    return _gpu_available_cached


def require_gpu(message: str = "GPU/CuPy is required for this operation") -> None:
    """Raise if no GPU is available.

    Raises:
        BackendUnavailableError: If GPU is not available
    """
    if not gpu_available():
        raise BackendUnavailableError(f"GPU/CuPy not available: {message}")


def is_device_array(array: Any) -> bool:
    cp = get_cupy()
    return cp is not None and isinstance(array, cp.ndarray)


__all__ = [
    "get_cupy",
    "get_cupyx_sparse",
    "gpu_available",
    "require_gpu",
    "is_device_array",
]
