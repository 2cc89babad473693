"""
Transition zone simulation and height compression.

A transition zone is the vertical band a filament needs to visually take
over from the filament below it. The first filament forms an opaque
foundation; every later filament is stacked in layer-height steps until its
blended color is indistinguishable from its pure color, it is nearly opaque,
or a thickness cap is reached.
"""

import logging
from dataclasses import replace
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from .color import blend_colors, delta_e, get_opacity, rgb_to_lab
from .config import (
    BASE_THICKNESS,
    DELTA_E_THRESHOLD,
    FOUNDATION_TD_FACTOR,
    MAX_TRANSITION_STEPS,
    OPACITY_STOP,
    TRANSITION_TD_CAP,
)
from .models import Filament, TransitionZone

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4096)
def _transition_thickness_cached(background: Tuple[float, float, float],
                                 filament: Tuple[float, float, float],
                                 td: float,
                                 layer_height: float) -> float:
    # No stepping possible, fall back to the cap
    if layer_height <= 0:
        return max(0.0, td * TRANSITION_TD_CAP)

    target_lab = rgb_to_lab(filament)

    # Colors already match: still need at least one layer
    if delta_e(rgb_to_lab(background), target_lab) < DELTA_E_THRESHOLD:
        return layer_height

    max_thickness = max(layer_height, td * TRANSITION_TD_CAP)
    step = max(layer_height, max_thickness / MAX_TRANSITION_STEPS)
    thickness = 0.0
    while thickness < max_thickness:
        thickness += step
        current = blend_colors(background, filament, td, thickness)

        if delta_e(rgb_to_lab(current), target_lab) < DELTA_E_THRESHOLD:
            break
        if get_opacity(td, thickness) > OPACITY_STOP:
            break

    return min(thickness, max_thickness)


def calculate_transition_thickness(background: Sequence[float],
                                   filament: Sequence[float],
                                   td: float,
                                   layer_height: float) -> float:
    """
    Thickness needed for `filament` to visually cover `background`.

    Args:
        background: Color the zone starts from
        filament: Pure color of the filament being stacked
        td: Transmission distance of the filament (mm)
        layer_height: Physical layer height increment (mm)

    Returns:
        Zone thickness in mm, never more than max(layer_height, 0.7 * td).
    """
    return _transition_thickness_cached(
        tuple(float(c) for c in background[:3]),
        tuple(float(c) for c in filament[:3]),
        float(td),
        float(layer_height),
    )


def calculate_transition_zones(sequence: Sequence[Filament],
                               layer_height: float,
                               base_thickness: float = BASE_THICKNESS) -> Tuple[float, List[TransitionZone]]:
    """
    Simulate the full stack, bottom to top, and return (ideal_height, zones).

    The first filament is the foundation: thick enough that only ~5% of the
    backlight passes (0.1 ** 1.3), and never thinner than `base_thickness`.
    Each later filament transitions from the previous filament's pure color.
    """
    if not sequence:
        return 0.0, []

    zones: List[TransitionZone] = []
    first = sequence[0]
    foundation = max(base_thickness, first.td * FOUNDATION_TD_FACTOR)
    zones.append(TransitionZone(
        filament_id=first.id,
        color=first.color,
        td=first.td,
        start_height=0.0,
        end_height=foundation,
        ideal_thickness=foundation,
        actual_thickness=foundation,
    ))

    current_height = foundation
    background = first.rgb
    for filament in sequence[1:]:
        rgb = filament.rgb
        thickness = calculate_transition_thickness(background, rgb, filament.td, layer_height)
        zones.append(TransitionZone(
            filament_id=filament.id,
            color=filament.color,
            td=filament.td,
            start_height=current_height,
            end_height=current_height + thickness,
            ideal_thickness=thickness,
            actual_thickness=thickness,
        ))
        background = rgb
        current_height += thickness

    return current_height, zones


def compress_zones(zones: Sequence[TransitionZone],
                   max_height: Optional[float]) -> Tuple[List[TransitionZone], float]:
    """
    Uniformly shrink zones so the stack fits under `max_height`.

    Returns (zones, compression_ratio). Zones that already fit are returned
    unchanged with a ratio of 1.0.
    """
    zones = list(zones)
    if not zones:
        return [], 1.0

    if max_height is None:
        return zones, 1.0
    if max_height <= 0:
        logger.warning("Ignoring non-positive max height %s", max_height)
        return zones, 1.0

    ideal_height = sum(z.ideal_thickness for z in zones)
    if ideal_height <= max_height:
        return zones, 1.0

    ratio = max_height / ideal_height
    compressed = []
    current_height = 0.0
    for zone in zones:
        thickness = zone.ideal_thickness * ratio
        compressed.append(replace(
            zone,
            start_height=current_height,
            end_height=current_height + thickness,
            actual_thickness=thickness,
        ))
        current_height += thickness

    # Pin the top of the stack to the requested height
    compressed[-1] = replace(compressed[-1], end_height=float(max_height))
    return compressed, ratio
