"""Device memory vector with explicit ownership.

A DeviceVector is in one of three modes:

    empty    no buffer
    owning   the vector allocated its buffer and releases it on clear()
    wrapping the buffer belongs to someone else; clear() only forgets it

Operations on an owning vector of unchanged size reuse the buffer. The array
module is injectable (cupy by default) so the ownership logic also runs on
host memory.

Import Policy:
    from sgrid.gpu.device_vector import DeviceVector
"""

from typing import Any, Optional, Tuple

import numpy as np

from sgrid.gpu.utils import get_cupy, require_gpu


class DeviceVector:
    """Contiguous float64 (or int) buffer on a device.

    Args:
        xp: Array module (cupy or numpy); cupy when omitted
        dtype: Element type of allocations

    Raises:
        BackendUnavailableError: If ``xp`` is omitted and no GPU is available

    Example:
        >>> vec = DeviceVector(xp=np)
        >>> vec.load(np.arange(3.0))
        >>> vec.unload()
        array([0., 1., 2.])
    """

    def __init__(self, xp: Any = None, dtype=np.float64):
        if xp is None:
            require_gpu("DeviceVector allocation")
            xp = get_cupy()
        self.xp = xp
        self.dtype = np.dtype(dtype)
        self._data = None
        self._owns = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        return 0 if self._data is None else int(self._data.size)

    def __len__(self) -> int:
        return self.size

    @property
    def shape(self) -> Tuple[int, ...]:
        return (0,) if self._data is None else tuple(self._data.shape)

    @property
    def data(self):
        """The device array (None when empty)."""
        return self._data

    def empty(self) -> bool:
        return self._data is None

    @property
    def is_owning(self) -> bool:
        return self._data is not None and self._owns

    @property
    def is_wrapping(self) -> bool:
        return self._data is not None and not self._owns

    # -------------------------------------------------------------------------
    # Memory management
    # -------------------------------------------------------------------------

    def clear(self) -> None:
        """Release an owned buffer, or forget a wrapped one."""
        self._data = None
        self._owns = False

    def resize(self, count: int) -> None:
        """Make the vector own ``count`` elements.

        An owning vector that already holds ``count`` elements keeps its
        buffer; contents are unspecified after a reallocation.
        """
        if self.is_owning and self.size == count:
            return
        self.clear()
        if count > 0:
            self._data = self.xp.empty(int(count), dtype=self.dtype)
            self._owns = True

    def load(self, host: np.ndarray) -> None:
        """Copy host data to the device, reusing the buffer when sizes match."""
        host = np.asarray(host, dtype=self.dtype)
        if host.size == 0:
            self.clear()
            return
        if self.is_owning and self.size == host.size:
            if self._data.shape != host.shape:
                self._data = self._data.reshape(host.shape)
            self._data[...] = self.xp.asarray(host)
            return
        self.clear()
        self._data = self.xp.array(host, dtype=self.dtype, copy=True)
        self._owns = True

    def unload(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Copy the device data to the host.

        Args:
            out: Optional host array of matching size receiving the data

        Returns:
            Host array with the vector's shape (``out`` when given).
        """
        if self._data is None:
            host = np.zeros(0, dtype=self.dtype)
        elif hasattr(self._data, "get"):
            host = self._data.get()
        else:
            host = np.array(self._data, copy=True)
        if out is not None:
            out.reshape(-1)[:] = host.reshape(-1)
            return out
        return host

    def wrap(self, external) -> None:
        """Alias an externally owned device array without copying."""
        self.clear()
        self._data = external
        self._owns = False

    def eject(self):
        """Hand the buffer over to the caller and become empty."""
        data = self._data
        self._data = None
        self._owns = False
        return data

    def __repr__(self) -> str:
        mode = "empty" if self.empty() else ("owning" if self._owns else "wrapping")
        return f"DeviceVector(size={self.size}, mode={mode}, xp={self.xp.__name__})"
