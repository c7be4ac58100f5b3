"""Device side cache of the linear domain transform.

Query points already living in device memory are mapped to the canonical
domain without a round trip through the host. The rate and shift vectors
are uploaded on first use and dropped whenever the transform or the device
changes.

Import Policy:
    from sgrid.gpu.domain_transform import AccelerationDomainTransform
"""

import threading
from typing import Any, Optional

import numpy as np

from sgrid.gpu.device_vector import DeviceVector


class AccelerationDomainTransform:
    """Lazily loaded ``canonical = x * rate - shift`` on a device.

    Args:
        xp: Array module holding the cached vectors (cupy on GPUs)

    Example:
        >>> cache = AccelerationDomainTransform(xp=np)
        >>> cache.get_canonical_points(np.array([[3.0]]), [2.0], [4.0])
        array([[0.]])
    """

    def __init__(self, xp: Any):
        self.xp = xp
        self._rate = DeviceVector(xp=xp)
        self._shift = DeviceVector(xp=xp)
        self._use01: Optional[bool] = None
        self._lock = threading.Lock()

    def is_loaded(self) -> bool:
        return not self._rate.empty()

    def clear(self) -> None:
        with self._lock:
            self._rate.clear()
            self._shift.clear()
            self._use01 = None

    def load(self, lower, upper, use01: bool = False) -> None:
        """Upload rate and shift for [lower, upper] mapped to [-1, 1] or [0, 1]."""
        lower = np.asarray(lower, dtype=float).ravel()
        upper = np.asarray(upper, dtype=float).ravel()
        if use01:
            rate = 1.0 / (upper - lower)
            shift = lower / (upper - lower)
        else:
            rate = 2.0 / (upper - lower)
            shift = (upper + lower) / (upper - lower)
        self._rate.load(rate.reshape(1, -1))
        self._shift.load(shift.reshape(1, -1))
        self._use01 = use01

    def get_canonical_points(self, x, lower, upper, use01: bool = False):
        """Canonical coordinates of the device array ``x`` (num_x by dims)."""
        with self._lock:
            if self._rate.empty() or self._use01 != use01:
                self.load(lower, upper, use01)
            rate, shift = self._rate.data, self._shift.data
        x = self.xp.asarray(x, dtype=np.float64)
        return x * rate - shift
