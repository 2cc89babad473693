from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from .color import hex_to_rgb


@dataclass(frozen=True)
class Filament:
    """
    A print material: stable id, hex color and transmission distance (mm).

    `metadata` carries name/brand/calibration data through the planner
    untouched; it never takes part in equality or scoring.
    """
    id: str
    color: str
    td: float
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return hex_to_rgb(self.color)

    def scaled(self, factor: float) -> 'Filament':
        """Copy with the TD multiplied by `factor`."""
        return replace(self, td=self.td * factor)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Filament':
        """
        Build a filament from either a flat record or a project entry.

        Flat: {'id', 'color', 'td' | 'td_value' | 'transmission_distance', ...}
        Project: {'id', 'copied_data': {'name', 'color', 'td_value'}}
        """
        copied = data.get('copied_data') or {}
        merged: Dict[str, Any] = {**copied, **{k: v for k, v in data.items() if k != 'copied_data'}}

        td = merged.get('td', merged.get('td_value', merged.get('transmission_distance')))
        if td is None:
            raise ValueError(f"Filament {merged.get('id')!r} has no transmission distance")

        metadata = {k: v for k, v in merged.items()
                    if k not in ('id', 'color', 'td', 'td_value', 'transmission_distance')}
        return cls(id=str(merged['id']), color=merged.get('color', '#000000'), td=float(td), metadata=metadata)


@dataclass(frozen=True)
class WeightedLabTarget:
    """A clustered image color with its share of the image (0-1)."""
    L: float
    a: float
    b: float
    weight: float

    @property
    def lab(self) -> np.ndarray:
        return np.array([self.L, self.a, self.b])


@dataclass(frozen=True)
class TransitionZone:
    filament_id: str
    color: str
    td: float
    start_height: float
    end_height: float
    ideal_thickness: float
    actual_thickness: float


@dataclass(frozen=True)
class AutoPaintLayer:
    filament_id: str
    color: str
    start_height: float
    end_height: float


@dataclass(frozen=True)
class OptimizerResult:
    order: Tuple[Filament, ...]
    score: float
    iterations: int
    converged: bool
    cache_hit: bool = False
    resolved_algorithm: Optional[str] = None

    @property
    def order_ids(self) -> Tuple[str, ...]:
        return tuple(f.id for f in self.order)


@dataclass(frozen=True)
class AutoPaintResult:
    layers: Tuple[AutoPaintLayer, ...]
    transition_zones: Tuple[TransitionZone, ...]
    total_height: float
    ideal_height: float
    auto_height: float
    compression_ratio: float
    filament_order: Tuple[str, ...]
    optimizer: Optional[OptimizerResult] = None
    truncated: bool = False

    @classmethod
    def empty(cls) -> 'AutoPaintResult':
        return cls(
            layers=(),
            transition_zones=(),
            total_height=0.0,
            ideal_height=0.0,
            auto_height=0.0,
            compression_ratio=1.0,
            filament_order=(),
        )


@dataclass(frozen=True)
class Swatch:
    hex: str
    a: int = 255


@dataclass(frozen=True)
class SliceHeights:
    """Per-physical-layer color assignment for the mesh builder."""
    color_slice_heights: Tuple[float, ...]
    color_order: Tuple[int, ...]
    virtual_swatches: Tuple[Swatch, ...]
    filament_swatches: Tuple[Swatch, ...]
    truncated: bool = False
