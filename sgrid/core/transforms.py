"""Domain and conformal transforms.

Every engine works on a canonical domain: [-1, 1] for bounded rules,
[0, 1] for Fourier, the half line for Gauss-Laguerre and the real line for
Gauss-Hermite. A DomainTransform maps that domain to the user's box (or
rescales the weight function of the unbounded rules); a ConformalAsin
transform reshapes [-1, 1] with a truncated arcsine series to speed up
convergence for functions with nearby singularities.

User points are obtained as ``domain(conformal(canonical))``; the inverse
applies the inverse maps in the opposite order.

Import Policy:
    from sgrid.core.transforms import DomainTransform, ConformalAsin

DO NOT use: from sgrid.core.transforms import *
"""

import logging
from typing import Optional, Sequence

import numpy as np
from scipy.special import gammaln

from sgrid.config.defaults import DEFAULT_NEWTON_MAX_ITERATIONS, NUM_TOL
from sgrid.config.enums import TypeOneDRule
from sgrid.config.validation import InvalidArgumentError
from sgrid.config.yaml_loader import get_default

logger = logging.getLogger(__name__)


class DomainTransform:
    """Per dimension affine (or weight rescaling) map.

    Attributes:
        lower: Vector ``a``; the left end, or the shift of unbounded rules
        upper: Vector ``b``; the right end, or the scale of unbounded rules
    """

    def __init__(self, lower: Sequence[float], upper: Sequence[float]):
        self.lower = np.array(lower, dtype=float).ravel()
        self.upper = np.array(upper, dtype=float).ravel()
        if self.lower.size != self.upper.size:
            raise InvalidArgumentError(
                f"domain transform bounds differ in size: {self.lower.size} and {self.upper.size}"
            )

    @property
    def num_dimensions(self) -> int:
        return self.lower.size

    def copy(self) -> "DomainTransform":
        return DomainTransform(self.lower, self.upper)

    def bounded_rate_shift(self):
        """Rate and shift of the bounded law ``x = canonical * rate + shift``."""
        rate = 0.5 * (self.upper - self.lower)
        shift = 0.5 * (self.upper + self.lower)
        return rate, shift

    def canonical_to_transformed(self, x: np.ndarray, rule: TypeOneDRule) -> np.ndarray:
        x = np.array(x, dtype=float, copy=True)
        a, b = self.lower, self.upper
        if rule.is_half_line:
            return x / b + a
        if rule.is_full_line:
            return x / np.sqrt(b) + a
        if rule is TypeOneDRule.FOURIER:
            return x * (b - a) + a
        rate, shift = self.bounded_rate_shift()
        return x * rate + shift

    def transformed_to_canonical(self, x: np.ndarray, rule: TypeOneDRule) -> np.ndarray:
        x = np.array(x, dtype=float, copy=True)
        a, b = self.lower, self.upper
        if rule.is_half_line:
            return (x - a) * b
        if rule.is_full_line:
            return (x - a) * np.sqrt(b)
        if rule is TypeOneDRule.FOURIER:
            return (x - a) / (b - a)
        rate = 2.0 / (b - a)
        shift = (b + a) / (b - a)
        return x * rate - shift

    def quadrature_scale(self, rule: TypeOneDRule, alpha: float = 0.0, beta: float = 0.0) -> float:
        """Product over dimensions of the Jacobian of the map.

        Jacobi type weights pick up the extra powers of the half length that
        the weight function carries.
        """
        a, b = self.lower, self.upper
        if rule in (TypeOneDRule.GAUSS_CHEBYSHEV1, TypeOneDRule.GAUSS_CHEBYSHEV2,
                    TypeOneDRule.GAUSS_GEGENBAUER, TypeOneDRule.GAUSS_JACOBI):
            if rule is TypeOneDRule.GAUSS_CHEBYSHEV1:
                alpha = beta = -0.5
            elif rule is TypeOneDRule.GAUSS_CHEBYSHEV2:
                alpha = beta = 0.5
            elif rule is TypeOneDRule.GAUSS_GEGENBAUER:
                beta = alpha
            power = alpha + beta + 1.0
            return float(np.prod(np.power(0.5 * (b - a), power)))
        if rule.is_half_line:
            return float(np.prod(np.power(b, -(1.0 + alpha))))
        if rule.is_full_line:
            return float(np.prod(np.power(b, -0.5 * (1.0 + alpha))))
        if rule is TypeOneDRule.FOURIER:
            return float(np.prod(b - a))
        return float(np.prod(0.5 * (b - a)))


class ConformalAsin:
    """Truncated arcsine conformal map of [-1, 1] onto itself.

    ``T(x) = sign(x) / c_m * sum_k exp(c_k + (2k + 1) log|x|)`` with
    ``c_k = lgamma(k + 1/2) - lgamma(1/2) - log(2k + 1) - log(k!)`` and
    ``c_m = sum_k exp(c_k)``, so that ``T(0) = 0`` and ``T(1) = 1``. The
    truncation order may differ per dimension.

    Attributes:
        truncation: Highest power index ``p`` of every dimension
        max_iterations: Cap on Newton steps of the inverse map
    """

    def __init__(self, truncation: Sequence[int], max_iterations: Optional[int] = None):
        self.truncation = np.array(truncation, dtype=np.int64).ravel()
        if np.any(self.truncation < 0):
            raise InvalidArgumentError("conformal truncation orders must be non-negative")
        if max_iterations is None:
            max_iterations = int(get_default("numerics.newton_max_iterations",
                                             DEFAULT_NEWTON_MAX_ITERATIONS))
        self.max_iterations = max_iterations
        self._series = [self._coefficients(int(p)) for p in self.truncation]

    @property
    def num_dimensions(self) -> int:
        return self.truncation.size

    def copy(self) -> "ConformalAsin":
        return ConformalAsin(self.truncation, self.max_iterations)

    @staticmethod
    def _coefficients(order: int):
        k = np.arange(order + 1, dtype=float)
        log_binomial = gammaln(0.5 + k) - gammaln(0.5) - gammaln(k + 1.0)
        c = log_binomial - np.log(2.0 * k + 1.0)
        powers = 2.0 * k + 1.0
        normalization = float(np.sum(np.exp(c)))
        # derivative series, without the leading constant term
        dc = log_binomial[1:]
        derivative_normalization = float(np.sum(np.exp(log_binomial - np.log(2.0 * k + 1.0))))
        return c, powers, normalization, dc, derivative_normalization

    def _forward_1d(self, x: np.ndarray, dim: int) -> np.ndarray:
        c, powers, cm, _, _ = self._series[dim]
        result = np.zeros_like(x)
        nonzero = np.abs(x) > NUM_TOL
        logx = np.log(np.abs(x[nonzero]))
        series = np.exp(c[None, :] + powers[None, :] * logx[:, None]).sum(axis=1)
        result[nonzero] = np.sign(x[nonzero]) * series / cm
        return result

    def _inverse_1d(self, target: np.ndarray, dim: int) -> np.ndarray:
        c, powers, cm, dc, _ = self._series[dim]
        result = np.zeros_like(target)
        nonzero = np.abs(target) > NUM_TOL
        if not np.any(nonzero):
            return result
        sign = np.sign(target[nonzero])
        goal = np.abs(target[nonzero])
        x = goal.copy()
        k = np.arange(1, c.size, dtype=float)
        converged = False
        for _ in range(self.max_iterations):
            logx = np.log(np.maximum(x, 1.0e-300))
            r = x + np.exp(c[None, 1:] + powers[None, 1:] * logx[:, None]).sum(axis=1)
            dr = 1.0 + np.exp(dc[None, :] + 2.0 * k[None, :] * logx[:, None]).sum(axis=1)
            r = r / cm - goal
            x = x - r * cm / dr
            if np.max(np.abs(r)) < NUM_TOL:
                converged = True
                break
        if not converged:
            logger.warning("conformal inverse stopped after %d Newton iterations (dimension %d)",
                           self.max_iterations, dim)
        result[nonzero] = sign * x
        return result

    def canonical_to_transformed(self, x: np.ndarray) -> np.ndarray:
        x = np.array(x, dtype=float, copy=True).reshape(-1, self.num_dimensions)
        for j in range(self.num_dimensions):
            x[:, j] = self._forward_1d(x[:, j], j)
        return x

    def transformed_to_canonical(self, x: np.ndarray) -> np.ndarray:
        x = np.array(x, dtype=float, copy=True).reshape(-1, self.num_dimensions)
        for j in range(self.num_dimensions):
            x[:, j] = self._inverse_1d(x[:, j], j)
        return x

    def weight_correction(self, canonical: np.ndarray) -> np.ndarray:
        """Jacobian of the map at canonical points, one factor per point."""
        canonical = np.asarray(canonical, dtype=float).reshape(-1, self.num_dimensions)
        correction = np.ones(canonical.shape[0])
        for j in range(self.num_dimensions):
            _, _, _, dc, cm = self._series[j]
            x = np.abs(canonical[:, j])
            trans = np.ones_like(x)
            nonzero = x > NUM_TOL
            if dc.size:
                k = np.arange(1, dc.size + 1, dtype=float)
                logx = np.log(x[nonzero])
                trans[nonzero] += np.exp(dc[None, :] + 2.0 * k[None, :] * logx[:, None]).sum(axis=1)
            correction *= trans / cm
        return correction
