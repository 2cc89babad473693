"""
Score candidate filament sequences against clustered image colors.

A sequence is turned into the palette of colors it can physically produce
(one sample per printed layer), and the palette is compared with the image
targets. Lower scores are better.
"""

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import List, NamedTuple, Sequence, Tuple

import numpy as np
from skimage.color import deltaE_cie76

from .color import blend_colors, hex_to_rgb, rgb_to_lab
from .config import (
    DEDUPE_THRESHOLD,
    LAYER_PENALTY,
    MATCH_THRESHOLD,
    MAX_PALETTE_LAYERS,
    SPREAD_PENALTY,
    WASTE_PENALTY,
)
from .models import Filament, TransitionZone, WeightedLabTarget
from .zones import calculate_transition_zones

logger = logging.getLogger(__name__)


class LayerSample(NamedTuple):
    height: float  # top of the layer, mm from Z=0
    thickness: float
    zone_index: int
    rgb: Tuple[float, float, float]


def simulate_layers(zones: Sequence[TransitionZone],
                    layer_height: float,
                    first_layer_height: float,
                    stop_height: float,
                    max_layers: int = MAX_PALETTE_LAYERS) -> Tuple[List[LayerSample], bool]:
    """
    Walk the stack one printed layer at a time and simulate each layer's color.

    Foundation layers show the pure foundation color; layers inside a later
    zone show that zone's filament blended over the previous zone's pure color
    at the thickness printed so far in the zone.

    Returns:
        (samples, truncated) where truncated is True when `max_layers` was hit
        before reaching `stop_height`.
    """
    if not zones or layer_height <= 0:
        return [], False

    starts = [z.start_height for z in zones]
    zone_rgbs = [hex_to_rgb(z.color) for z in zones]
    first_thickness = max(first_layer_height, layer_height)

    samples: List[LayerSample] = []
    current_z = 0.0
    prev_zone = 0
    in_zone = 0.0
    truncated = False

    while current_z < stop_height:
        if len(samples) >= max_layers:
            truncated = True
            break

        thickness = first_thickness if not samples else layer_height
        active = max(bisect_right(starts, current_z) - 1, 0)

        # Thickness printed so far inside the active zone
        if active != prev_zone:
            in_zone = current_z - zones[active].start_height + thickness
            prev_zone = active
        else:
            in_zone += thickness

        if active == 0:
            rgb = tuple(float(c) for c in zone_rgbs[0])
        else:
            rgb = blend_colors(zone_rgbs[active - 1], zone_rgbs[active], zones[active].td, in_zone)

        samples.append(LayerSample(current_z + thickness, thickness, active, rgb))
        current_z += thickness

    return samples, truncated


@dataclass(frozen=True)
class AchievablePalette:
    heights: np.ndarray
    rgb: np.ndarray
    lab: np.ndarray
    truncated: bool = False

    def __len__(self):
        return len(self.heights)


def _empty_palette() -> AchievablePalette:
    return AchievablePalette(np.zeros(0), np.zeros((0, 3)), np.zeros((0, 3)))


def build_achievable_palette(sequence: Sequence[Filament],
                             layer_height: float,
                             first_layer_height: float) -> AchievablePalette:
    """
    All colors a filament sequence can show, one sample per printed layer.

    Args:
        sequence: Ordered filaments, bottom to top (repeats allowed)
        layer_height: Physical layer height (mm)
        first_layer_height: First layer height (mm)

    Returns:
        AchievablePalette with heights, RGB and Lab arrays.
    """
    if not sequence:
        return _empty_palette()

    base = max(first_layer_height, layer_height)
    total_height, zones = calculate_transition_zones(sequence, layer_height, base)
    if not zones:
        return _empty_palette()

    if layer_height <= 0:
        # No layer grid: one sample per zone, at the zone's end color
        heights = np.array([z.end_height for z in zones])
        rgb = np.array([hex_to_rgb(z.color) for z in zones], dtype=float)
        return AchievablePalette(heights, rgb, rgb_to_lab(rgb))

    samples, truncated = simulate_layers(zones, layer_height, first_layer_height,
                                         total_height + layer_height * 0.5)
    if truncated:
        logger.debug("Palette truncated at %d layers for %d filaments", MAX_PALETTE_LAYERS, len(sequence))

    heights = np.array([s.height for s in samples])
    rgb = np.array([s.rgb for s in samples], dtype=float)
    return AchievablePalette(heights, rgb, rgb_to_lab(rgb), truncated)


def deduplicate_palette(palette: AchievablePalette, threshold: float = DEDUPE_THRESHOLD) -> np.ndarray:
    """
    Collapse runs of consecutive near-identical colors.

    Returns the indices of the kept samples: the midpoint of each run of
    neighbours closer than `threshold` DeltaE.
    """
    n = len(palette)
    if n == 0:
        return np.zeros(0, dtype=int)

    diffs = deltaE_cie76(palette.lab[:-1], palette.lab[1:])
    breaks = np.nonzero(diffs >= threshold)[0]
    run_starts = np.concatenate(([0], breaks + 1))
    run_ends = np.concatenate((breaks, [n - 1]))
    return (run_starts + run_ends) // 2


@dataclass(frozen=True)
class ScoringContext:
    """Image targets plus the layer grid they are scored on."""
    targets: Tuple[WeightedLabTarget, ...]
    layer_height: float
    first_layer_height: float
    target_lab: np.ndarray = field(init=False, repr=False, compare=False)
    target_weights: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'targets', tuple(self.targets))
        object.__setattr__(self, 'target_lab',
                           np.array([[t.L, t.a, t.b] for t in self.targets], dtype=float).reshape(-1, 3))
        object.__setattr__(self, 'target_weights',
                           np.array([t.weight for t in self.targets], dtype=float))


def score_palette(palette: AchievablePalette, context: ScoringContext) -> float:
    """
    Score a palette against the image targets (lower is better).

    The score adds up:
      1. weighted color accuracy: sum(min DeltaE * weight) * target count
      2. height spread: distinct targets landing on the same height
      3. layer count: 0.5 per printed layer
      4. transition waste: 1.5 per palette step no target uses
    """
    if len(palette) == 0:
        return float('inf')

    kept = deduplicate_palette(palette)
    reduced_lab = palette.lab[kept]
    reduced_heights = palette.heights[kept]
    n_reduced = len(kept)
    n_targets = len(context.targets)

    score = 0.0
    used = set()
    if n_targets:
        dist = deltaE_cie76(context.target_lab[:, None, :], reduced_lab[None, :, :])
        best = np.argmin(dist, axis=1)
        min_de = dist[np.arange(n_targets), best]

        score = float(np.sum(min_de * context.target_weights)) * n_targets
        used = set(best[min_de < MATCH_THRESHOLD].tolist())

        if n_targets > 1 and n_reduced > 1 and reduced_heights[-1] - reduced_heights[0] > 0:
            unique_heights = np.unique(np.floor(reduced_heights[best] * 100 + 0.5))
            spread_ratio = len(unique_heights) / n_targets
            score += (1 - spread_ratio) * n_targets * SPREAD_PENALTY

    score += len(palette) * LAYER_PENALTY

    if n_reduced > 1:
        score += (n_reduced - len(used)) * WASTE_PENALTY

    return score


def score_sequence(sequence: Sequence[Filament], context: ScoringContext) -> float:
    palette = build_achievable_palette(sequence, context.layer_height, context.first_layer_height)
    return score_palette(palette, context)
