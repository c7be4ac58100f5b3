"""Dense and sparse matrix products on the selected backend.

The engine computes ``C = alpha * A * B + beta * C`` for a dense ``B`` or a
compressed sparse row ``B``. Backend contexts (the BLAS routine, the cuBLAS
handle, the sparse module) are created on first use and released by
``release()``.

Import Policy:
    from sgrid.gpu.linear_algebra import LinearAlgebraEngine
"""

import logging
import threading
from typing import Any, Optional

import numpy as np
import scipy.sparse
from scipy.linalg import blas

from sgrid.config.enums import TypeAcceleration
from sgrid.gpu.device_vector import DeviceVector
from sgrid.gpu.utils import get_cupy, get_cupyx_sparse, require_gpu

logger = logging.getLogger(__name__)


class LinearAlgebraEngine:
    """Backend bound handle for level 3 products.

    Args:
        backend: Effective (already available) acceleration type
        device_id: CUDA device of GPU backends

    Example:
        >>> engine = LinearAlgebraEngine(TypeAcceleration.CPU_BLAS)
        >>> engine.dense_multiply(1.0, np.eye(2), np.ones((2, 1)))
        array([[1.],
               [1.]])
    """

    def __init__(self, backend: TypeAcceleration, device_id: int = 0):
        self.backend = TypeAcceleration.from_string(backend)
        self.device_id = int(device_id)
        self._dense_handle: Optional[Any] = None
        self._sparse_handle: Optional[Any] = None
        self._lock = threading.Lock()
        if self.backend.is_gpu:
            require_gpu(f"{self.backend.value} backend")

    @property
    def xp(self):
        return get_cupy() if self.backend.is_gpu else np

    @property
    def is_gpu(self) -> bool:
        return self.backend.is_gpu

    # -------------------------------------------------------------------------
    # Lazy backend contexts
    # -------------------------------------------------------------------------

    def _dense(self):
        with self._lock:
            if self._dense_handle is None:
                if self.backend is TypeAcceleration.CPU_BLAS:
                    self._dense_handle = blas.get_blas_funcs("gemm", dtype=np.float64)
                elif self.backend is TypeAcceleration.GPU_CUBLAS:
                    self._dense_handle = get_cupy().cublas.gemm
                else:
                    self._dense_handle = self.xp.matmul
                logger.debug("created dense context for %s on device %d",
                             self.backend.value, self.device_id)
            return self._dense_handle

    def _sparse(self):
        with self._lock:
            if self._sparse_handle is None:
                self._sparse_handle = get_cupyx_sparse() if self.is_gpu else scipy.sparse
                logger.debug("created sparse context for %s", self.backend.value)
            return self._sparse_handle

    @property
    def has_dense_context(self) -> bool:
        return self._dense_handle is not None

    @property
    def has_sparse_context(self) -> bool:
        return self._sparse_handle is not None

    def release(self) -> None:
        """Drop backend contexts; they are recreated on the next call."""
        with self._lock:
            self._dense_handle = None
            self._sparse_handle = None

    # -------------------------------------------------------------------------
    # Data movement
    # -------------------------------------------------------------------------

    def upload(self, host: np.ndarray) -> DeviceVector:
        """Owning vector holding ``host`` in the backend's memory."""
        vector = DeviceVector(xp=self.xp)
        if self.is_gpu:
            with get_cupy().cuda.Device(self.device_id):
                vector.load(host)
        else:
            vector.load(host)
        return vector

    def _operand(self, value):
        if isinstance(value, DeviceVector):
            value = value.data
        return self.xp.asarray(value, dtype=np.float64)

    def _to_host(self, value) -> np.ndarray:
        if self.is_gpu:
            return get_cupy().asnumpy(value)
        return np.asarray(value)

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    def dense_multiply(self, alpha: float, A, B, beta: float = 0.0, C=None) -> np.ndarray:
        """Return ``alpha * A @ B + beta * C`` as a host array.

        Args:
            alpha, beta: Scalars
            A: ``(M, K)`` array or DeviceVector
            B: ``(K, N)`` array or DeviceVector
            C: Optional ``(M, N)`` array, ignored when ``beta == 0``
        """
        if self.is_gpu:
            with get_cupy().cuda.Device(self.device_id):
                return self._to_host(self._dense_product(alpha, A, B, beta, C))
        return self._to_host(self._dense_product(alpha, A, B, beta, C))

    def _dense_product(self, alpha, A, B, beta, C):
        handle = self._dense()
        a = self._operand(A)
        b = self._operand(B)
        use_c = C is not None and beta != 0.0
        if self.backend is TypeAcceleration.CPU_BLAS:
            if use_c:
                c = np.array(self._operand(C), order="F", copy=True)
                return handle(alpha, a, b, beta=beta, c=c, overwrite_c=1)
            return handle(alpha, a, b)
        if self.backend is TypeAcceleration.GPU_CUBLAS:
            cp = get_cupy()
            out = cp.array(self._operand(C), order="F", copy=True) if use_c else None
            return handle("N", "N", a, b, out=out, alpha=alpha, beta=beta if use_c else 0.0)
        result = alpha * handle(a, b)
        if use_c:
            result = result + beta * self._operand(C)
        return result

    def sparse_multiply(self, alpha: float, A, B, beta: float = 0.0, C=None) -> np.ndarray:
        """Return ``alpha * A @ B + beta * C`` for a CSR matrix ``B``.

        Args:
            A: ``(M, K)`` dense array or DeviceVector
            B: ``(K, N)`` scipy.sparse matrix (converted to CSR)
        """
        if self.is_gpu:
            with get_cupy().cuda.Device(self.device_id):
                return self._to_host(self._sparse_product(alpha, A, B, beta, C))
        return self._to_host(self._sparse_product(alpha, A, B, beta, C))

    def _sparse_product(self, alpha, A, B, beta, C):
        module = self._sparse()
        a = self._operand(A)
        b = module.csr_matrix(scipy.sparse.csr_matrix(B)) if self.is_gpu else scipy.sparse.csr_matrix(B)
        # (A B)^T = B^T A^T keeps the sparse operand on the left
        result = alpha * (b.T @ a.T).T
        if C is not None and beta != 0.0:
            result = result + beta * self._operand(C)
        return result

    def __repr__(self) -> str:
        return f"LinearAlgebraEngine(backend={self.backend.value}, device_id={self.device_id})"
