"""Tests for clustering.py — weighted Lab targets from image colors."""
import numpy as np
import pytest
from PIL import Image

from autopaint.clustering import ColorCount, as_color_count, cluster_image_colors, image_histogram
from autopaint.color import hex_to_lab


class TestAsColorCount:
    def test_accepts_dicts_and_tuples(self):
        assert as_color_count({'hex': '#ff0000', 'count': 4}) == ColorCount('#ff0000', 4.0, 1.0)
        assert as_color_count({'hex': '#ff0000', 'weight': 0.5}) == ColorCount('#ff0000', 1.0, 0.5)
        assert as_color_count(('#00ff00', 7)) == ColorCount('#00ff00', 7.0)
        assert as_color_count(('#00ff00',)) == ColorCount('#00ff00', 1.0)

    def test_effective_count(self):
        assert ColorCount('#000000', 10, 0.25).effective_count == 2.5


class TestClusterImageColors:
    def test_empty(self):
        assert cluster_image_colors([]) == []
        assert cluster_image_colors([ColorCount('#ff0000', 0)]) == []

    def test_weights_sum_to_one(self, mixed_targets):
        assert len(mixed_targets) == 4
        assert sum(t.weight for t in mixed_targets) == pytest.approx(1.0)

    def test_close_colors_merge(self):
        targets = cluster_image_colors([('#ff0000', 3), ('#fe0000', 1)])
        assert len(targets) == 1
        assert targets[0].weight == pytest.approx(1.0)
        assert targets[0].lab == pytest.approx(hex_to_lab('#ff0000'), abs=0.5)

    def test_most_common_first(self):
        targets = cluster_image_colors([('#0000ff', 1), ('#ffff00', 3)])
        assert [t.weight for t in targets] == pytest.approx([0.75, 0.25])
        assert targets[0].lab == pytest.approx(hex_to_lab('#ffff00'))

    def test_max_clusters_forces_merge(self):
        targets = cluster_image_colors([('#000000', 1), ('#ffffff', 1), ('#ff0000', 1)], max_clusters=2)
        assert len(targets) == 2
        assert sum(t.weight for t in targets) == pytest.approx(1.0)

    def test_importance_weight_shifts_share(self):
        targets = cluster_image_colors([
            ColorCount('#000000', 10, weight=3.0),
            ColorCount('#ffffff', 10, weight=1.0),
        ])
        assert targets[0].weight == pytest.approx(0.75)


class TestImageHistogram:
    def _image(self):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        pixels[0, 0, :3] = (255, 0, 0)
        pixels[0, 1, :3] = (255, 0, 0)
        pixels[1, 0, :3] = (255, 0, 0)
        pixels[1, 1] = (0, 255, 0, 0)  # fully transparent
        return Image.fromarray(pixels)

    def test_counts_opaque_pixels(self):
        assert image_histogram(self._image()) == [ColorCount('#ff0000', 3, 1.0)]

    def test_importance_map(self):
        importance = np.array([[1.0, 2.0], [3.0, 100.0]])
        (swatch,) = image_histogram(self._image(), importance)
        assert swatch.count == 3
        assert swatch.weight == pytest.approx(2.0)

    def test_importance_shape_mismatch(self):
        with pytest.raises(ValueError):
            image_histogram(self._image(), np.ones((3, 3)))

    def test_rgb_image(self):
        img = Image.new('RGB', (4, 2), (0, 0, 255))
        assert image_histogram(img) == [ColorCount('#0000ff', 8, 1.0)]

    def test_fully_transparent(self):
        img = Image.new('RGBA', (2, 2), (0, 0, 0, 0))
        assert image_histogram(img) == []
