"""Tests for color.py — conversions and the Beer-Lambert blend model."""
import numpy as np
import pytest

from autopaint.color import (
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


class TestHexConversion:
    def test_hex_to_rgb(self):
        assert hex_to_rgb('#ff8000') == (255, 128, 0)
        assert hex_to_rgb('00ff7f') == (0, 255, 127)

    def test_malformed_channel_becomes_zero(self):
        assert hex_to_rgb('#zz10ff') == (0, 16, 255)

    def test_rgb_to_hex_clamps_and_rounds(self):
        assert rgb_to_hex((300, -5, 127.4)) == '#ff007f'
        assert rgb_to_hex((0.6, 254.9, 16)) == '#01ff10'


class TestLab:
    def test_white_and_black(self):
        assert np.allclose(rgb_to_lab((255, 255, 255)), [100.0, 0.0, 0.0], atol=1e-3)
        assert np.allclose(rgb_to_lab((0, 0, 0)), [0.0, 0.0, 0.0], atol=1e-6)

    def test_red_is_reddish(self):
        L, a, b = hex_to_lab('#ff0000')
        assert L == pytest.approx(53.24, abs=0.05)
        assert a == pytest.approx(80.09, abs=0.1)
        assert b == pytest.approx(67.20, abs=0.1)

    def test_dark_gray_uses_linear_segment(self):
        # Y below epsilon: L = kappa * Y with kappa = 903.3
        assert rgb_to_lab((10, 10, 10))[0] == pytest.approx(903.3 * (10 / 255 / 12.92), abs=1e-4)

    def test_batch_shape_preserved(self):
        rgb = np.random.default_rng(0).integers(0, 256, size=(4, 5, 3))
        lab = rgb_to_lab(rgb)
        assert lab.shape == (4, 5, 3)
        assert np.allclose(lab[2, 3], rgb_to_lab(rgb[2, 3]))


class TestDeltaE:
    def test_identity_and_symmetry(self):
        a = hex_to_lab('#336699')
        b = hex_to_lab('#cc9933')
        assert delta_e(a, a) == 0.0
        assert delta_e(a, b) == pytest.approx(delta_e(b, a))
        assert delta_e(a, b) > 0

    def test_black_white_distance(self):
        assert delta_e_rgb((0, 0, 0), (255, 255, 255)) == pytest.approx(100.0, abs=1e-3)


class TestLuminance:
    def test_get_luminance_scale(self):
        assert get_luminance((255, 255, 255)) == pytest.approx(255.0)
        assert get_luminance((0, 0, 0)) == 0.0
        assert get_luminance((0, 255, 0)) > get_luminance((255, 0, 0)) > get_luminance((0, 0, 255))

    def test_hex_luminance_normalized(self):
        assert hex_luminance('#ffffff') == pytest.approx(1.0)
        assert hex_luminance('#000000') == 0.0


class TestBlendModel:
    def test_opacity_one_td_is_ninety_percent(self):
        assert get_opacity(1.0, 1.0) == pytest.approx(0.9)
        assert get_opacity(2.0, 1.0) == pytest.approx(1 - 0.1 ** 0.5)

    def test_opacity_monotone_and_bounded(self):
        values = [get_opacity(1.5, t) for t in np.linspace(0.0, 10.0, 50)]
        assert all(0.0 <= v < 1.0 for v in values)
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_opacity_degenerate(self):
        assert get_opacity(0.0, 1.0) == 0.0
        assert get_opacity(-1.0, 1.0) == 0.0
        assert get_opacity(1.0, 0.0) == 0.0

    def test_blend_no_thickness_returns_filament(self):
        assert blend_colors((10, 20, 30), (200, 100, 50), 1.0, 0.0) == (200.0, 100.0, 50.0)
        assert blend_colors((10, 20, 30), (200, 100, 50), 0.0, 1.0) == (200.0, 100.0, 50.0)

    def test_blend_one_td(self):
        r, g, b = blend_colors((0, 0, 0), (255, 255, 255), 2.0, 2.0)
        assert r == pytest.approx(229.5)
        assert g == pytest.approx(229.5)
        assert b == pytest.approx(229.5)

    def test_blend_approaches_filament(self):
        thin = blend_colors((0, 0, 0), (255, 0, 0), 1.0, 0.1)
        thick = blend_colors((0, 0, 0), (255, 0, 0), 1.0, 3.0)
        assert thin[0] < thick[0] < 255.0


class TestEstimateTD:
    def test_black_and_white(self):
        assert estimate_td_from_color('#000000') == 8.0
        assert estimate_td_from_color('#ffffff') == 1.8

    def test_range_and_rounding(self):
        for color in ('#ff0000', '#00ff00', '#0000ff', '#ffff00', '#808080', '#123456'):
            td = estimate_td_from_color(color)
            assert 1.2 <= td <= 8.5
            assert round(td, 1) == td

    def test_darker_is_less_translucent(self):
        assert estimate_td_from_color('#202020') > estimate_td_from_color('#c0c0c0')
