"""
Reduce an image's color histogram to a few weighted Lab targets.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
from PIL import Image

from .color import hex_to_rgb, rgb_to_hex, rgb_to_lab
from .config import CLUSTER_THRESHOLD, MAX_CLUSTERS
from .models import WeightedLabTarget
from .utils import timed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorCount:
    """
    One histogram bin: a color and how many pixels carry it.

    `weight` is the per-color effect of an upstream importance map (1.0 when
    every pixel matters equally); the clusterer uses count * weight.
    """
    hex: str
    count: float = 1.0
    weight: float = 1.0

    @property
    def effective_count(self) -> float:
        return self.count * self.weight


SwatchLike = Union[ColorCount, Mapping[str, Any], Sequence[Any]]


def as_color_count(swatch: SwatchLike) -> ColorCount:
    """Accept ColorCount, {'hex', 'count', 'weight'} dicts or (hex, count) tuples."""
    if isinstance(swatch, ColorCount):
        return swatch
    if isinstance(swatch, Mapping):
        count = swatch.get('count')
        weight = swatch.get('weight')
        return ColorCount(
            hex=swatch['hex'],
            count=1.0 if count is None else float(count),
            weight=1.0 if weight is None else float(weight),
        )
    hex_color, *rest = swatch
    return ColorCount(hex=hex_color, count=float(rest[0]) if rest else 1.0)


@timed
def cluster_image_colors(swatches: Iterable[SwatchLike],
                         max_clusters: int = MAX_CLUSTERS,
                         threshold: float = CLUSTER_THRESHOLD) -> List[WeightedLabTarget]:
    """
    Greedy agglomerative clustering of image colors in Lab space.

    Most common colors seed clusters first. Each color joins the nearest
    cluster when it lies within `threshold` DeltaE, otherwise it starts a new
    cluster; once `max_clusters` exist, it is force-merged into the nearest.
    Centroids are count-weighted running averages.

    Args:
        swatches: Histogram bins (see as_color_count)
        max_clusters: Upper bound on the number of targets
        threshold: DeltaE merge threshold

    Returns:
        Weighted Lab targets whose weights sum to 1.0, or [] when the
        histogram is empty or carries no weight.
    """
    items = [as_color_count(s) for s in swatches]
    items = [s for s in items if s.effective_count > 0]
    if not items:
        return []

    labs = rgb_to_lab(np.array([hex_to_rgb(s.hex) for s in items], dtype=float))
    counts = np.array([s.effective_count for s in items], dtype=float)

    # Stable sort, most frequent first
    order = sorted(range(len(items)), key=lambda i: -counts[i])

    centroids = np.zeros((max(max_clusters, 1), 3))
    totals = np.zeros(max(max_clusters, 1))
    n_clusters = 0
    threshold_sq = threshold * threshold

    for i in order:
        lab, count = labs[i], counts[i]

        best_idx, best_sq = -1, np.inf
        if n_clusters:
            dist_sq = np.sum((centroids[:n_clusters] - lab) ** 2, axis=1)
            best_idx = int(np.argmin(dist_sq))
            best_sq = dist_sq[best_idx]

        if best_idx >= 0 and (best_sq < threshold_sq or n_clusters >= max_clusters):
            total = totals[best_idx] + count
            centroids[best_idx] = centroids[best_idx] * (totals[best_idx] / total) + lab * (count / total)
            totals[best_idx] = total
        elif n_clusters < max_clusters:
            centroids[n_clusters] = lab
            totals[n_clusters] = count
            n_clusters += 1

    total_pixels = totals[:n_clusters].sum()
    if total_pixels <= 0:
        return []

    logger.debug("Clustered %d colors into %d targets", len(items), n_clusters)
    return [
        WeightedLabTarget(L=float(c[0]), a=float(c[1]), b=float(c[2]), weight=float(t / total_pixels))
        for c, t in zip(centroids[:n_clusters], totals[:n_clusters])
    ]


@timed
def image_histogram(image: Image.Image, importance: Optional[np.ndarray] = None) -> List[ColorCount]:
    """
    Count the distinct colors of an already-quantized image.

    Fully transparent pixels are skipped. When an (H, W) `importance` map is
    given, each color's weight becomes the mean importance of its pixels, so
    count * weight equals the summed importance.
    """
    rgba = np.asarray(image.convert('RGBA'))
    opaque = rgba[..., 3] != 0
    pixels = rgba[..., :3][opaque]
    if pixels.size == 0:
        return []

    colors, inverse, counts = np.unique(pixels, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)

    if importance is None:
        weights = np.ones(len(colors))
    else:
        importance = np.asarray(importance, dtype=float)
        if importance.shape != opaque.shape:
            raise ValueError(f"Importance map shape {importance.shape} does not match image {opaque.shape}")
        summed = np.bincount(inverse, weights=importance[opaque], minlength=len(colors))
        weights = summed / counts

    return [
        ColorCount(hex=rgb_to_hex(color), count=int(count), weight=float(weight))
        for color, count, weight in zip(colors, counts, weights)
    ]
