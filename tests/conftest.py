"""
Shared fixtures for auto-paint planner tests.
"""
import pytest

from autopaint.clustering import ColorCount, cluster_image_colors
from autopaint.models import Filament


@pytest.fixture
def dark():
    return Filament('dark', '#000000', 1.0)


@pytest.fixture
def white():
    return Filament('white', '#ffffff', 2.0)


@pytest.fixture
def red():
    return Filament('red', '#ff0000', 1.5)


@pytest.fixture
def blue():
    return Filament('blue', '#0000ff', 1.2)


@pytest.fixture
def bw_swatches():
    """Half black, half white image."""
    return [ColorCount('#000000', 50), ColorCount('#ffffff', 50)]


@pytest.fixture
def bw_targets(bw_swatches):
    return cluster_image_colors(bw_swatches)


@pytest.fixture
def mixed_targets():
    return cluster_image_colors([
        ('#000000', 30),
        ('#ffffff', 30),
        ('#ff0000', 20),
        ('#800000', 20),
    ])
