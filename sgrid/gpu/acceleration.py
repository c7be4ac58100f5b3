"""Backend availability and fallback.

Import Policy:
    from sgrid.gpu.acceleration import get_available_fallback, is_available, get_num_gpus
"""

import logging

from sgrid.config.enums import TypeAcceleration
from sgrid.gpu.utils import get_cupy, gpu_available

logger = logging.getLogger(__name__)

# Most capable first; a request falls back to the first available entry at or
# after its own position
FALLBACK_ORDER = (
    TypeAcceleration.GPU_MAGMA,
    TypeAcceleration.GPU_CUDA,
    TypeAcceleration.GPU_CUBLAS,
    TypeAcceleration.CPU_BLAS,
    TypeAcceleration.NONE,
)


def _blas_available() -> bool:
    try:
        from scipy.linalg import blas
    except ImportError:
        return False
    return hasattr(blas, "dgemm")


def is_available(acceleration: TypeAcceleration) -> bool:
    """True when the backend can run on this machine."""
    acceleration = TypeAcceleration.from_string(acceleration)
    if acceleration is TypeAcceleration.NONE:
        return True
    if acceleration is TypeAcceleration.CPU_BLAS:
        return _blas_available()
    if acceleration is TypeAcceleration.GPU_MAGMA:
        # no Python binding of MAGMA is supported
        return False
    return gpu_available()


def get_available_fallback(acceleration: TypeAcceleration) -> TypeAcceleration:
    """Best available backend for a request; never fails.

    ``gpu-default`` resolves to the most capable available GPU backend.
    """
    acceleration = TypeAcceleration.from_string(acceleration)
    if acceleration is TypeAcceleration.GPU_DEFAULT:
        start = 0
    else:
        start = FALLBACK_ORDER.index(acceleration)
    for candidate in FALLBACK_ORDER[start:]:
        if is_available(candidate):
            return candidate
    return TypeAcceleration.NONE


def get_num_gpus() -> int:
    if not gpu_available():
        return 0
    return int(get_cupy().cuda.runtime.getDeviceCount())


def is_valid_gpu_id(gpu_id: int) -> bool:
    return 0 <= gpu_id < get_num_gpus()


def get_gpu_memory(gpu_id: int) -> int:
    """Total memory of a device in MB, 0 for an invalid id."""
    if not is_valid_gpu_id(gpu_id):
        return 0
    properties = get_cupy().cuda.runtime.getDeviceProperties(gpu_id)
    return int(properties["totalGlobalMem"] // 1048576)


def get_gpu_name(gpu_id: int) -> str:
    """Device name, empty for an invalid id."""
    if not is_valid_gpu_id(gpu_id):
        return ""
    name = get_cupy().cuda.runtime.getDeviceProperties(gpu_id)["name"]
    return name.decode() if isinstance(name, bytes) else str(name)
