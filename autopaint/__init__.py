"""
Auto-Paint Layer Planner

Plans the filament stack of a multi-filament lithophane. Given the available
filaments (color + transmission distance) and the colors of an image, it
decides which filaments to stack in which order and how thick each
transition zone must be for its color to show through.

Key features:
- Beer-Lambert blend model: simulates how translucent layers mix with what is below
- Perceptual color matching: CIELab / CIE76 DeltaE throughout
- Order optimization: exhaustive, greedy, simulated annealing and genetic search
- Repeated swaps: lets a filament appear more than once in the stack
- Height compression: fits the stack under a maximum model height
- Background worker: latest-request-wins computation in a separate process
"""

from .cache import OptimizerCache
from .clustering import ColorCount, cluster_image_colors, image_histogram
from .color import (
    blend_colors,
    delta_e,
    delta_e_rgb,
    estimate_td_from_color,
    get_luminance,
    get_opacity,
    hex_luminance,
    hex_to_lab,
    hex_to_rgb,
    rgb_to_hex,
    rgb_to_lab,
)
from .config import BACKLIT_TD_SCALE, FRONTLIT_TD_SCALE
from .errors import AutoPaintError, UnknownAlgorithmError, WorkerError
from .models import (
    AutoPaintLayer,
    AutoPaintResult,
    Filament,
    OptimizerResult,
    SliceHeights,
    Swatch,
    TransitionZone,
    WeightedLabTarget,
)
from .optimizer import FilamentOrderOptimizer, OptimizerOptions, optimize
from .pipeline import (
    calculate_recommended_height,
    describe_result,
    generate_auto_layers,
    luminance_to_height,
    to_slice_heights,
)
from .zones import calculate_transition_thickness, calculate_transition_zones, compress_zones

__version__ = "1.0.0"
__all__ = [
    # Color model
    "hex_to_rgb",
    "rgb_to_hex",
    "rgb_to_lab",
    "hex_to_lab",
    "delta_e",
    "delta_e_rgb",
    "get_luminance",
    "hex_luminance",
    "get_opacity",
    "blend_colors",
    "estimate_td_from_color",

    # Zones
    "calculate_transition_thickness",
    "calculate_transition_zones",
    "compress_zones",

    # Image colors
    "ColorCount",
    "cluster_image_colors",
    "image_histogram",

    # Optimizer
    "OptimizerOptions",
    "OptimizerCache",
    "FilamentOrderOptimizer",
    "optimize",

    # Pipeline
    "generate_auto_layers",
    "to_slice_heights",
    "luminance_to_height",
    "calculate_recommended_height",
    "describe_result",

    # Models
    "Filament",
    "WeightedLabTarget",
    "TransitionZone",
    "AutoPaintLayer",
    "AutoPaintResult",
    "OptimizerResult",
    "SliceHeights",
    "Swatch",

    # Errors
    "AutoPaintError",
    "UnknownAlgorithmError",
    "WorkerError",

    "BACKLIT_TD_SCALE",
    "FRONTLIT_TD_SCALE",
]
