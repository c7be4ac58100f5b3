"""One dimensional rules used by the Global, Sequence and Fourier grids.

The OneDimensionalWrapper collects the nodes of every level of a rule into a
single list of unique nodes (nested rules produce a growing prefix), keeps
the per level node indexes and quadrature weights, and evaluates the
Lagrange (or Dirichlet, for Fourier) cardinal functions of a level.

Gauss rules come from scipy.special; interpolatory weights are computed from
Chebyshev moments.

Import Policy:
    from sgrid.core.rules import OneDimensionalWrapper, get_num_points

DO NOT use: from sgrid.core.rules import *
"""

import logging
import math
from typing import Dict, List, Tuple

import numpy as np
import scipy.linalg
import scipy.optimize
import scipy.special
from numpy.polynomial import chebyshev

from sgrid.config.defaults import DEFAULT_LEJA_RESOLUTION, NODE_MERGE_TOL
from sgrid.config.enums import TypeOneDRule
from sgrid.config.validation import InvalidArgumentError
from sgrid.config.yaml_loader import get_default

logger = logging.getLogger(__name__)


def get_num_points(rule: TypeOneDRule, level: int) -> int:
    """Number of nodes of ``rule`` at ``level``."""
    if rule is TypeOneDRule.CLENSHAW_CURTIS:
        return 1 if level == 0 else 2 ** level + 1
    if rule is TypeOneDRule.FEJER2:
        return 2 ** (level + 1) - 1
    if rule is TypeOneDRule.FOURIER:
        return 3 ** level
    if rule.is_global:
        return level + 1
    raise InvalidArgumentError(f"rule '{rule.value}' has no global level structure")


def interpolation_exactness(rule: TypeOneDRule, level: int) -> int:
    """Highest degree (frequency for Fourier) interpolated exactly."""
    n = get_num_points(rule, level)
    if rule is TypeOneDRule.FOURIER:
        return (n - 1) // 2
    return n - 1


def quadrature_exactness(rule: TypeOneDRule, level: int) -> int:
    """Highest degree integrated exactly."""
    n = get_num_points(rule, level)
    if rule.value.startswith("gauss"):
        return 2 * n - 1
    if rule in (TypeOneDRule.CLENSHAW_CURTIS, TypeOneDRule.FEJER2, TypeOneDRule.CHEBYSHEV):
        return n if n % 2 == 1 else n - 1
    return n - 1


# =============================================================================
# Node and weight generators
# =============================================================================


def _chebyshev_extrema(n: int) -> np.ndarray:
    if n == 1:
        return np.zeros(1)
    return np.cos(np.pi * np.arange(n) / (n - 1))


def _interpolatory_weights(nodes: np.ndarray) -> np.ndarray:
    """Weights integrating the interpolant of degree len(nodes) - 1 on [-1, 1]."""
    n = nodes.size
    vander = chebyshev.chebvander(nodes, n - 1)
    k = np.arange(n)
    even = k % 2 == 0
    # Chebyshev moments vanish for odd degrees
    moments = np.zeros(n)
    moments[even] = 2.0 / (1.0 - k[even].astype(float) ** 2)
    return scipy.linalg.solve(vander.T, moments)


def _generalized_hermite(n: int, alpha: float) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss rule for the weight |x|^alpha exp(-x^2) by Golub-Welsch."""
    if alpha == 0.0:
        return scipy.special.roots_hermite(n)
    if n == 1:
        return np.zeros(1), np.array([math.gamma(0.5 * (alpha + 1.0))])
    k = np.arange(1, n)
    off_diagonal = np.sqrt(0.5 * (k + alpha * (k % 2)))
    nodes, vectors = scipy.linalg.eigh_tridiagonal(np.zeros(n), off_diagonal)
    weights = math.gamma(0.5 * (alpha + 1.0)) * vectors[0, :] ** 2
    return nodes, weights


def _gauss_rule(rule: TypeOneDRule, n: int, alpha: float, beta: float) -> Tuple[np.ndarray, np.ndarray]:
    if rule is TypeOneDRule.GAUSS_LEGENDRE:
        return scipy.special.roots_legendre(n)
    if rule is TypeOneDRule.GAUSS_CHEBYSHEV1:
        return scipy.special.roots_chebyt(n)
    if rule is TypeOneDRule.GAUSS_CHEBYSHEV2:
        return scipy.special.roots_chebyu(n)
    if rule is TypeOneDRule.GAUSS_GEGENBAUER:
        return scipy.special.roots_gegenbauer(n, alpha + 0.5)
    if rule is TypeOneDRule.GAUSS_JACOBI:
        return scipy.special.roots_jacobi(n, alpha, beta)
    if rule is TypeOneDRule.GAUSS_LAGUERRE:
        return scipy.special.roots_genlaguerre(n, alpha)
    return _generalized_hermite(n, alpha)


def _van_der_corput(m: int) -> float:
    value, denominator = 0.0, 1.0
    while m > 0:
        denominator *= 2.0
        value += (m % 2) / denominator
        m //= 2
    return value


def rleja_nodes(count: int) -> np.ndarray:
    """Projections of bisected half circle angles: 0, 1, -1, cos(pi/4), ..."""
    nodes = []
    for m in range(count):
        if m == 0:
            nodes.append(0.0)
        elif m == 1:
            nodes.append(1.0)
        elif m == 2:
            nodes.append(-1.0)
        else:
            nodes.append(math.cos(math.pi * _van_der_corput(m - 1)))
    return np.array(nodes)


def leja_nodes(count: int, resolution: int = None) -> np.ndarray:
    """Greedy Leja sequence on [-1, 1] starting from 0, 1, -1.

    Each new node maximizes the product of distances to the previous nodes;
    the maximum is bracketed on a sample of every gap and polished with a
    bounded scalar minimization.
    """
    if resolution is None:
        resolution = int(get_default("numerics.leja_resolution", DEFAULT_LEJA_RESOLUTION))
    nodes = [0.0, 1.0, -1.0][:count]
    while len(nodes) < count:
        current = np.array(nodes)

        def negative_log_product(x, current=current):
            return -float(np.sum(np.log(np.abs(x - current) + 1.0e-300)))

        ordered = np.sort(current)
        best_x, best_value = None, np.inf
        for left, right in zip(ordered[:-1], ordered[1:]):
            samples = np.linspace(left, right, resolution + 2)[1:-1]
            values = [negative_log_product(s) for s in samples]
            k = int(np.argmin(values))
            lo = samples[k - 1] if k > 0 else left
            hi = samples[k + 1] if k + 1 < samples.size else right
            result = scipy.optimize.minimize_scalar(
                negative_log_product, bounds=(lo, hi), method="bounded",
                options={"xatol": 1.0e-14})
            candidate = float(result.x) if result.fun <= values[k] else float(samples[k])
            value = min(float(result.fun), values[k])
            if value < best_value:
                best_x, best_value = candidate, value
        nodes.append(best_x)
    return np.array(nodes)


def level_nodes_and_weights(rule: TypeOneDRule, level: int, alpha: float = 0.0,
                            beta: float = 0.0) -> Tuple[np.ndarray, np.ndarray]:
    """Nodes and quadrature weights of a single level of a global rule."""
    n = get_num_points(rule, level)
    if rule.value.startswith("gauss"):
        nodes, weights = _gauss_rule(rule, n, alpha, beta)
        return np.asarray(nodes, dtype=float), np.asarray(weights, dtype=float)
    if rule is TypeOneDRule.FOURIER:
        return np.arange(n) / float(n), np.full(n, 1.0 / n)
    if rule in (TypeOneDRule.CLENSHAW_CURTIS, TypeOneDRule.CHEBYSHEV):
        nodes = _chebyshev_extrema(n)
    elif rule is TypeOneDRule.FEJER2:
        nodes = np.cos(np.pi * np.arange(1, n + 1) / (n + 1))
    elif rule is TypeOneDRule.LEJA:
        nodes = leja_nodes(n)
    elif rule is TypeOneDRule.RLEJA:
        nodes = rleja_nodes(n)
    else:
        raise InvalidArgumentError(f"rule '{rule.value}' is not a global rule")
    return nodes, _interpolatory_weights(nodes)


# =============================================================================
# Wrapper
# =============================================================================


class OneDimensionalWrapper:
    """Per level view of a global one dimensional rule.

    Levels are generated lazily and merged into one list of unique nodes, so
    the points of a tensor grid are identified by integer node indexes.

    Attributes:
        rule: The one dimensional rule
        alpha, beta: Weight function parameters of Gauss rules
        nodes: Unique nodes of all generated levels
    """

    def __init__(self, rule: TypeOneDRule, alpha: float = 0.0, beta: float = 0.0):
        self.rule = rule
        self.alpha = float(alpha)
        self.beta = float(beta)
        self._nodes: List[float] = []
        self._level_indices: List[np.ndarray] = []
        self._level_weights: List[np.ndarray] = []
        self._barycentric: Dict[int, np.ndarray] = {}
        self._exponents: List[int] = []

    @property
    def num_levels(self) -> int:
        return len(self._level_indices)

    @property
    def nodes(self) -> np.ndarray:
        return np.array(self._nodes)

    def _find(self, x: float) -> int:
        for i, node in enumerate(self._nodes):
            if abs(node - x) < NODE_MERGE_TOL:
                return i
        return -1

    def ensure_level(self, level: int) -> None:
        """Generate all levels up to and including ``level``."""
        while self.num_levels <= level:
            current = self.num_levels
            if self.rule.is_sequence:
                # sequence rules regenerate the prefix, one new node per level
                nodes = (leja_nodes if self.rule is TypeOneDRule.LEJA else rleja_nodes)(current + 1)
                weights = _interpolatory_weights(nodes)
            else:
                nodes, weights = level_nodes_and_weights(self.rule, current, self.alpha, self.beta)
                if self.rule is TypeOneDRule.FOURIER:
                    self._extend_exponents(current)
            indices = np.empty(nodes.size, dtype=np.int64)
            for k, x in enumerate(nodes):
                found = self._find(x)
                if found < 0:
                    self._nodes.append(float(x))
                    found = len(self._nodes) - 1
                indices[k] = found
            self._level_indices.append(indices)
            self._level_weights.append(np.asarray(weights, dtype=float))

    def _extend_exponents(self, level: int) -> None:
        previous = (get_num_points(self.rule, level - 1) - 1) // 2 if level > 0 else -1
        current = (get_num_points(self.rule, level) - 1) // 2
        if level == 0:
            self._exponents.append(0)
            return
        for k in range(previous + 1, current + 1):
            self._exponents.extend((k, -k))

    def num_points(self, level: int) -> int:
        return get_num_points(self.rule, level)

    def level_indices(self, level: int) -> np.ndarray:
        self.ensure_level(level)
        return self._level_indices[level]

    def level_nodes(self, level: int) -> np.ndarray:
        indices = self.level_indices(level)
        return np.array(self._nodes)[indices]

    def level_weights(self, level: int) -> np.ndarray:
        self.ensure_level(level)
        return self._level_weights[level]

    def node(self, index: int) -> float:
        return self._nodes[index]

    def find_node(self, x: float) -> int:
        """Index of the node at ``x`` among generated levels, -1 if none."""
        return self._find(float(x))

    def exponents(self, count: int) -> np.ndarray:
        """Fourier exponents attached to the first ``count`` node indexes."""
        level = 0
        while get_num_points(self.rule, level) < count:
            level += 1
        self.ensure_level(level)
        return np.array(self._exponents[:count], dtype=np.int64)

    def basis(self, level: int, x: np.ndarray) -> np.ndarray:
        """Cardinal functions of ``level`` evaluated at ``x``.

        Returns:
            Array of shape ``(len(x), num_points(level))`` in the order of
            ``level_indices(level)``.
        """
        x = np.asarray(x, dtype=float).ravel()
        nodes = self.level_nodes(level)
        if self.rule is TypeOneDRule.FOURIER:
            return _dirichlet_basis(nodes, x)
        if nodes.size == 1:
            return np.ones((x.size, 1))
        if level not in self._barycentric:
            diff = nodes[:, None] - nodes[None, :]
            np.fill_diagonal(diff, 1.0)
            # scaling keeps the products finite for larger levels
            diff *= 0.5 * nodes.size / max(1.0, float(np.ptp(nodes)))
            self._barycentric[level] = 1.0 / np.prod(diff, axis=1)
        lam = self._barycentric[level]
        difference = x[:, None] - nodes[None, :]
        with np.errstate(divide="ignore", invalid="ignore"):
            terms = lam[None, :] / difference
            result = terms / np.sum(terms, axis=1, keepdims=True)
        rows, cols = np.nonzero(difference == 0.0)
        if rows.size:
            result[rows, :] = 0.0
            result[rows, cols] = 1.0
        return result


def _dirichlet_basis(nodes: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Trigonometric cardinal functions of an odd number of equispaced nodes."""
    n = nodes.size
    u = x[:, None] - nodes[None, :]
    denominator = n * np.sin(np.pi * u)
    with np.errstate(divide="ignore", invalid="ignore"):
        result = np.sin(n * np.pi * u) / denominator
    coincident = np.abs(denominator) < 1.0e-14
    result[coincident] = 1.0
    return result
