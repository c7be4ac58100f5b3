"""Acceleration resources: device memory, linear algebra backends, fallback.

Import Policy:
    from sgrid.gpu import DeviceVector, LinearAlgebraEngine, get_available_fallback

DO NOT use: from sgrid.gpu import *
"""

from sgrid.gpu.utils import get_cupy, gpu_available, require_gpu
from sgrid.gpu.device_vector import DeviceVector
from sgrid.gpu.linear_algebra import LinearAlgebraEngine
from sgrid.gpu.domain_transform import AccelerationDomainTransform
from sgrid.gpu.acceleration import (
    get_available_fallback,
    get_gpu_memory,
    get_gpu_name,
    get_num_gpus,
    is_available,
)

__all__ = [
    "get_cupy",
    "gpu_available",
    "require_gpu",
    "DeviceVector",
    "LinearAlgebraEngine",
    "AccelerationDomainTransform",
    "get_available_fallback",
    "get_gpu_memory",
    "get_gpu_name",
    "get_num_gpus",
    "is_available",
]
