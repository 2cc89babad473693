"""
Auto-paint pipeline: filaments + image colors -> layer plan.

Standard mode stacks filaments dark to light. Enhanced mode clusters the
image colors and asks the optimizer for the sequence that reproduces them
best. Either way the sequence is turned into transition zones, compressed to
the height limit and exposed as layer segments and per-layer slice colors.
"""

import logging
from dataclasses import replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .clustering import SwatchLike, as_color_count, cluster_image_colors
from .color import get_luminance, rgb_to_hex
from .config import BACKLIT_TD_SCALE, FIRST_LAYER_HEIGHT, LAYER_HEIGHT
from .models import AutoPaintLayer, AutoPaintResult, Filament, SliceHeights, Swatch, TransitionZone
from .optimizer import FilamentOrderOptimizer, OptimizerOptions, optimize
from .scoring import simulate_layers
from .utils import timed
from .zones import calculate_transition_zones, compress_zones

logger = logging.getLogger(__name__)

FilamentLike = Union[Filament, Mapping[str, Any]]


def as_filament(filament: FilamentLike) -> Filament:
    if isinstance(filament, Filament):
        return filament
    return Filament.from_dict(filament)


def sort_by_luminance(filaments: Sequence[Filament]) -> List[Filament]:
    """Dark to light; equal luminance keeps input order."""
    return sorted(filaments, key=lambda f: get_luminance(f.rgb))


@timed
def generate_auto_layers(filaments: Iterable[FilamentLike],
                         swatches: Iterable[SwatchLike],
                         layer_height: float = LAYER_HEIGHT,
                         first_layer_height: float = FIRST_LAYER_HEIGHT,
                         max_height: Optional[float] = None,
                         enhanced_color_match: bool = False,
                         allow_repeated_swaps: bool = False,
                         optimizer_options: Optional[OptimizerOptions] = None,
                         td_scale: float = BACKLIT_TD_SCALE,
                         optimizer: Optional[FilamentOrderOptimizer] = None) -> AutoPaintResult:
    """
    Plan the filament stack for an image.

    Args:
        filaments: Available filaments (Filament or project dicts)
        swatches: Image color histogram (see clustering.as_color_count)
        layer_height: Physical layer height (mm)
        first_layer_height: First layer height (mm)
        max_height: Height limit; None or non-positive means no limit
        enhanced_color_match: Optimize the order against the image colors
        allow_repeated_swaps: Let the optimizer reuse filaments (enhanced only)
        optimizer_options: Algorithm selection and tunables
        td_scale: Multiplier applied to every TD before simulation
        optimizer: Long-lived optimizer whose cache should be used

    Returns:
        AutoPaintResult; empty when there are no filaments or no image colors.
    """
    if first_layer_height < 0:
        raise ValueError(f"First layer height must not be negative, got {first_layer_height}")

    filaments = [as_filament(f) for f in filaments]
    swatches = [as_color_count(s) for s in swatches]
    if not filaments or sum(s.effective_count for s in swatches) <= 0:
        logger.info("Nothing to plan: no filaments or no image colors")
        return AutoPaintResult.empty()

    optimizer_result = None
    if enhanced_color_match:
        targets = cluster_image_colors(swatches)
        scaled = [f.scaled(td_scale) for f in filaments]
        originals = {s: f for s, f in zip(scaled, filaments)}

        options = optimizer_options or OptimizerOptions()
        if allow_repeated_swaps and not options.allow_repeated_swaps:
            options = replace(options, allow_repeated_swaps=True)

        if optimizer is not None:
            optimizer_result = optimizer.optimize(scaled, targets, options, layer_height, first_layer_height)
        else:
            optimizer_result = optimize(scaled, targets, options,
                                        layer_height=layer_height,
                                        first_layer_height=first_layer_height)
        sequence = [originals[f] for f in optimizer_result.order]
    else:
        sequence = sort_by_luminance(filaments)

    scaled_sequence = [f.scaled(td_scale) for f in sequence]
    ideal_height, zones = calculate_transition_zones(
        scaled_sequence, layer_height, max(first_layer_height, layer_height))

    auto_height = ideal_height
    zones, compression_ratio = compress_zones(zones, max_height)
    total_height = zones[-1].end_height if zones else 0.0

    _, truncated = simulate_layers(zones, layer_height, first_layer_height, total_height)
    if truncated:
        logger.warning("Stack of %.2fmm exceeds the layer cap; slice output will be cut short", total_height)

    logger.info("Auto-paint: %d zones, ideal %.2fmm, total %.2fmm, compression %.3f",
                len(sequence), ideal_height, total_height, compression_ratio)

    return AutoPaintResult(
        layers=tuple(AutoPaintLayer(z.filament_id, z.color, z.start_height, z.end_height) for z in zones),
        transition_zones=tuple(zones),
        total_height=total_height,
        ideal_height=ideal_height,
        auto_height=auto_height,
        compression_ratio=compression_ratio,
        filament_order=tuple(f.id for f in sequence),
        optimizer=optimizer_result,
        truncated=truncated,
    )


def calculate_recommended_height(filaments: Iterable[FilamentLike], td_scale: float = BACKLIT_TD_SCALE) -> float:
    """Quick height estimate before any zone simulation: 0.9 * sum of scaled TDs, clamped to 1-15mm."""
    filaments = [as_filament(f) for f in filaments]
    if not filaments:
        return 2.0
    estimated = sum(f.td * td_scale for f in filaments) * 0.9
    return max(1.0, min(15.0, estimated))


def to_slice_heights(result: AutoPaintResult,
                     layer_height: float,
                     first_layer_height: float) -> SliceHeights:
    """
    Expand a plan into one entry per physical layer for the mesh builder.

    Each layer gets its thickness, its simulated (blended) color and the
    color of the filament actually printed.
    """
    if not result.layers or result.total_height <= 0:
        return SliceHeights((), (), (), ())

    zones = result.transition_zones
    samples, truncated = simulate_layers(zones, layer_height, first_layer_height, result.total_height)
    if truncated:
        logger.warning("Too many layers, stopping at %d", len(samples))

    return SliceHeights(
        color_slice_heights=tuple(round(s.thickness, 8) for s in samples),
        color_order=tuple(range(len(samples))),
        virtual_swatches=tuple(Swatch(rgb_to_hex(s.rgb)) for s in samples),
        filament_swatches=tuple(Swatch(zones[s.zone_index].color) for s in samples),
        truncated=truncated,
    )


def luminance_to_height(luminance: float,
                        zones: Sequence[TransitionZone],
                        total_height: float,
                        first_layer_height: float) -> float:
    """
    Map a normalized pixel luminance (0-1) to a model height.

    Black sits on top of the foundation, white reaches the full height and
    everything in between is linear.
    """
    if not zones:
        return first_layer_height

    base_height = zones[0].end_height
    if luminance <= 0:
        return base_height
    if luminance >= 1:
        return total_height
    return base_height + luminance * (total_height - base_height)


def describe_result(result: AutoPaintResult) -> str:
    lines = [
        f"Ideal height:  {result.ideal_height:.2f} mm",
        f"Actual height: {result.total_height:.2f} mm",
    ]
    if result.compression_ratio < 1:
        lines.append(f"Compression:   {(1 - result.compression_ratio) * 100:.1f}% compressed")
    else:
        lines.append("Compression:   none")
    lines.append(f"Filament order: {', '.join(result.filament_order) or '-'}")

    if result.optimizer is not None:
        opt = result.optimizer
        lines.append(f"Optimizer: {opt.resolved_algorithm}, score {opt.score:.2f}, "
                     f"{opt.iterations} iterations, converged={opt.converged}, cache_hit={opt.cache_hit}")

    lines.append("Transition zones:")
    for i, zone in enumerate(result.transition_zones, start=1):
        status = 'compressed' if zone.actual_thickness < zone.ideal_thickness else 'ok'
        lines.append(
            f"  {i}. {zone.filament_id} {zone.color} | {zone.start_height:.2f}mm -> {zone.end_height:.2f}mm | "
            f"ideal {zone.ideal_thickness:.2f}mm, actual {zone.actual_thickness:.2f}mm [{status}]"
        )
    if result.truncated:
        lines.append("Warning: layer cap reached, slice output truncated")
    return "\n".join(lines)
