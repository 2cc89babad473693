"""
Color space conversion and the Beer-Lambert blend model.

All functions are pure. RGB colors are (r, g, b) tuples in the 0-255 range
(floats allowed, blending never rounds); Lab colors are numpy arrays whose
last axis is (L, a, b).
"""

import math
from typing import Sequence, Tuple

import numpy as np
from skimage.color import deltaE_cie76

RGB = Tuple[float, float, float]

# sRGB companding
GAMMA_BREAKPOINT = 0.04045
GAMMA_EXPONENT = 2.4

# Linear sRGB -> CIEXYZ (D65)
XYZ_FROM_RGB = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
])

# D65 reference white
REF_WHITE = np.array([95.047, 100.0, 108.883])

CIE_EPSILON = 0.008856
CIE_KAPPA = 903.3


def _parse_channel(text: str) -> int:
    try:
        return int(text, 16)
    except ValueError:
        return 0


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Parse '#rrggbb' (leading '#' optional). Malformed channels become 0."""
    h = hex_color[1:] if hex_color.startswith('#') else hex_color
    return (_parse_channel(h[0:2]), _parse_channel(h[2:4]), _parse_channel(h[4:6]))


def rgb_to_hex(rgb: Sequence[float]) -> str:
    """Format an RGB triple as '#rrggbb', clamping and rounding each channel."""
    return '#' + ''.join(
        f"{int(round(max(0.0, min(255.0, float(c))))):02x}" for c in rgb[:3]
    )


def rgb_to_lab(rgb) -> np.ndarray:
    """
    Convert RGB (0-255) to CIELab.

    Accepts a single triple or any array with a trailing axis of 3 and returns
    an array of the same shape.
    """
    arr = np.asarray(rgb, dtype=float) / 255.0
    arr = np.clip(arr, 0.0, None)

    # sRGB gamma expansion
    linear = np.where(
        arr > GAMMA_BREAKPOINT,
        ((arr + 0.055) / 1.055) ** GAMMA_EXPONENT,
        arr / 12.92,
    ) * 100.0

    xyz = linear @ XYZ_FROM_RGB.T
    ratio = xyz / REF_WHITE
    f = np.where(ratio > CIE_EPSILON, np.cbrt(ratio), (CIE_KAPPA * ratio + 16.0) / 116.0)

    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1)


def hex_to_lab(hex_color: str) -> np.ndarray:
    return rgb_to_lab(hex_to_rgb(hex_color))


def delta_e(lab1, lab2) -> float:
    """CIE76 color difference between two Lab colors."""
    return float(deltaE_cie76(np.asarray(lab1, dtype=float), np.asarray(lab2, dtype=float)))


def delta_e_rgb(color1: Sequence[float], color2: Sequence[float]) -> float:
    """CIE76 color difference between two RGB colors."""
    return delta_e(rgb_to_lab(color1), rgb_to_lab(color2))


def get_luminance(rgb: Sequence[float]) -> float:
    """Perceived luminance (0-255) using the sRGB coefficients."""
    return 0.2126 * rgb[0] + 0.7152 * rgb[1] + 0.0722 * rgb[2]


def hex_luminance(hex_color: str) -> float:
    """Perceived luminance (0-1) of a hex color."""
    return get_luminance(hex_to_rgb(hex_color)) / 255.0


def get_opacity(td: float, thickness: float) -> float:
    """
    Opacity of a filament slab of the given thickness.

    Beer-Lambert: transmission = 0.1 ** (thickness / td), so a slab exactly
    one TD thick lets 10% of the light through.
    """
    if td <= 0 or thickness <= 0:
        return 0.0
    return 1.0 - math.pow(0.1, thickness / td)


def blend_colors(background: Sequence[float],
                 filament: Sequence[float],
                 td: float,
                 thickness: float) -> RGB:
    """
    Color seen when a filament slab of `thickness` lies over `background`.

    Args:
        background: Color of the stack underneath
        filament: Pure color of the filament being added
        td: Transmission distance of the filament (mm)
        thickness: Slab thickness (mm)

    Returns:
        Blended RGB color. With td <= 0 or thickness <= 0 no blending happens
        and the filament color is returned unchanged.
    """
    if td <= 0 or thickness <= 0:
        return (float(filament[0]), float(filament[1]), float(filament[2]))

    transmission = math.pow(0.1, thickness / td)
    opacity = 1.0 - transmission
    return tuple(
        float(filament[i]) * opacity + float(background[i]) * transmission
        for i in range(3)
    )


def estimate_td_from_color(hex_color: str) -> float:
    """
    Rough TD guess (mm) for a filament of the given color.

    Darker colors absorb more light and get a larger TD; saturated mid-tones
    and yellow/blue hues come out more translucent. Clamped to the range seen
    for PLA filaments and rounded to 0.1 mm.
    """
    r, g, b = (c / 255.0 for c in hex_to_rgb(hex_color))
    luminance = 0.2126 * r + 0.7152 * g + 0.0722 * b

    hi, lo = max(r, g, b), min(r, g, b)
    saturation = 0.0 if hi == 0 else (hi - lo) / hi

    hue = 0.0
    if hi != lo:
        if hi == r:
            hue = ((g - b) / (hi - lo) + (6 if g < b else 0)) * 60
        elif hi == g:
            hue = ((b - r) / (hi - lo) + 2) * 60
        else:
            hue = ((r - g) / (hi - lo) + 4) * 60

    td = 1.5 + (1.0 - luminance) * 6.5

    if 0.2 < luminance < 0.8:
        td -= saturation * 1.0

    if saturation > 0.3:
        if 30 <= hue < 90:
            td -= 0.5
        elif 180 <= hue < 240:
            td -= 0.3
        elif hue >= 330 or hue < 30 or 270 <= hue < 330:
            td += 0.2

    if luminance > 0.95:
        td = 1.8 + (1.0 - luminance) * 3.0
    if luminance < 0.15:
        td = 7.0 + (0.15 - luminance) * 6.67

    td = max(1.2, min(8.5, td))
    return math.floor(td * 10 + 0.5) / 10
