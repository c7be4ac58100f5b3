"""Grid Configuration

Dataclass description of a sparse grid, suitable for storing grid recipes in
YAML files and for building grids with sgrid.grid.api.create_grid.

Import Policy:
    from sgrid.config.grid_config import GridConfig, load_grid_config

DO NOT use: from sgrid.config.grid_config import *
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from sgrid.config.enums import GridFamily, TypeAcceleration, TypeDepth, TypeOneDRule
from sgrid.config.yaml_loader import get_default


def _default_acceleration() -> str:
    return get_default("acceleration.default", "cpu-blas")


def _default_gpu_id() -> int:
    return int(get_default("acceleration.gpu_id", 0))


@dataclass
class GridConfig:
    """Recipe for a sparse grid.

    Attributes:
        family: Grid family name ('global', 'sequence', 'localpolynomial',
            'wavelet', 'fourier')
        dimensions, outputs, depth: Grid size parameters
        depth_type: Index selection type (Global, Sequence, Fourier)
        rule: One dimensional rule name (Global, Sequence, LocalPolynomial)
        order: Polynomial order (LocalPolynomial, Wavelet)
        alpha, beta: Weight function parameters of Gauss type rules
        anisotropic_weights: Optional selection weights
        level_limits: Optional per direction level caps
        domain_lower, domain_upper: Optional domain transform
        conformal_truncation: Optional ASIN conformal map orders
        acceleration: Requested linear algebra backend
        gpu_id: CUDA device used by GPU backends
    """

    family: str = "sequence"
    dimensions: int = 1
    outputs: int = 1
    depth: int = 1
    depth_type: str = "level"
    rule: str = "leja"
    order: int = 1
    alpha: float = 0.0
    beta: float = 0.0
    anisotropic_weights: Optional[list] = None
    level_limits: Optional[list] = None
    domain_lower: Optional[list] = None
    domain_upper: Optional[list] = None
    conformal_truncation: Optional[list] = None
    acceleration: str = field(default_factory=_default_acceleration)
    gpu_id: int = field(default_factory=_default_gpu_id)

    def validate(self) -> list[str]:
        """Validate the configuration.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        for name, enum_cls in (("family", GridFamily), ("depth_type", TypeDepth),
                               ("rule", TypeOneDRule), ("acceleration", TypeAcceleration)):
            value = getattr(self, name)
            if value not in [m.value for m in enum_cls] and not isinstance(value, enum_cls):
                errors.append(f"{name} '{value}' is not a valid {enum_cls.__name__}")
        if errors:
            return errors

        family = GridFamily.from_string(self.family)
        rule = TypeOneDRule.from_string(self.rule)
        depth_type = TypeDepth.from_string(self.depth_type)

        if family is GridFamily.EMPTY:
            errors.append("family 'empty' cannot be constructed")
        if self.dimensions < 1:
            errors.append(f"dimensions must be >= 1, got {self.dimensions}")
        if self.outputs < 0:
            errors.append(f"outputs must be >= 0, got {self.outputs}")
        if self.depth < 0:
            errors.append(f"depth must be >= 0, got {self.depth}")
        if self.gpu_id < 0:
            errors.append(f"gpu_id must be >= 0, got {self.gpu_id}")

        if family is GridFamily.GLOBAL and not rule.is_global:
            errors.append(f"global grids need a global rule, got '{rule.value}'")
        if family is GridFamily.SEQUENCE and not rule.is_sequence:
            errors.append(f"sequence grids need a sequence rule, got '{rule.value}'")
        if family is GridFamily.LOCAL_POLYNOMIAL:
            if not rule.is_local:
                errors.append(f"local polynomial grids need a local rule, got '{rule.value}'")
            if self.order < -1:
                errors.append(f"order must be >= -1, got {self.order}")
        if family is GridFamily.WAVELET and self.order not in (1, 3):
            errors.append(f"wavelet order must be 1 or 3, got {self.order}")

        if self.anisotropic_weights is not None:
            expected = 2 * self.dimensions if depth_type.is_curved else self.dimensions
            if len(self.anisotropic_weights) != expected:
                errors.append(
                    f"anisotropic_weights must have {expected} entries, got {len(self.anisotropic_weights)}"
                )
        if self.level_limits is not None and len(self.level_limits) != self.dimensions:
            errors.append(f"level_limits must have {self.dimensions} entries, got {len(self.level_limits)}")

        if (self.domain_lower is None) != (self.domain_upper is None):
            errors.append("domain_lower and domain_upper must be given together")
        elif self.domain_lower is not None:
            if len(self.domain_lower) != self.dimensions or len(self.domain_upper) != self.dimensions:
                errors.append(f"domain bounds must have {self.dimensions} entries")

        if self.conformal_truncation is not None:
            if len(self.conformal_truncation) != self.dimensions:
                errors.append(f"conformal_truncation must have {self.dimensions} entries")
            elif any(k < 0 for k in self.conformal_truncation):
                errors.append("conformal_truncation entries must be non-negative")

        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_grid_config(path: Union[str, Path]) -> GridConfig:
    """Read a GridConfig from a YAML file (a top level 'grid' key is optional)."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if "grid" in data and isinstance(data["grid"], dict):
        data = data["grid"]
    return GridConfig.from_dict(data)
