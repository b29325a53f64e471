"""
Test configuration and fixtures for VoteCounter tests.

Photos are drawn with numpy and written with Pillow into the test's tmp_path,
so every snapshot gets its own cache directory.
"""
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Import the main app
from main import app
from votecounter.config import SnapshotSettings
from votecounter.services.cache import DerivedDataCache
from votecounter.services.ledger import PickLedger
from votecounter.services.segmentation.regions import RegionGrower

GRAY = (128, 128, 128)
RED = (200, 30, 30)
DARK_RED = (120, 20, 20)
GREEN = (0, 160, 60)
BLUE = (40, 60, 200)


def draw_photo(path, width, height, rects, background=GRAY):
    """Write a photo of flat rectangles; rects are ((x0, y0, x1, y1), rgb), inclusive."""
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[:, :] = background
    for (x0, y0, x1, y1), color in rects:
        img[y0:y1 + 1, x0:x1 + 1] = color
    Image.fromarray(img).save(path)
    return path


@pytest.fixture
def ballot_photo(tmp_path):
    """120x90 gray photo with a 30x30 red, a 30x30 green and a 20x20 blue card."""
    return draw_photo(tmp_path / "ballot.png", 120, 90, [
        ((5, 5, 34, 34), RED),
        ((45, 50, 74, 79), GREEN),
        ((90, 10, 109, 29), BLUE),
    ])


@pytest.fixture
def corner_photo(tmp_path):
    """60x40 gray photo with a red square covering (0, 0)-(20, 20)."""
    return draw_photo(tmp_path / "corner.png", 60, 40, [((0, 0, 20, 20), RED)])


@pytest.fixture
def bridge_photo(tmp_path):
    """80x40 photo: two red squares joined by a dark red bridge."""
    return draw_photo(tmp_path / "bridge.png", 80, 40, [
        ((10, 10, 29, 29), RED),
        ((50, 10, 69, 29), RED),
        ((30, 18, 49, 21), DARK_RED),
    ])


@pytest.fixture
def gradient_photo(tmp_path):
    """120x30 horizontal gray ramp from black to white."""
    ramp = np.round(np.linspace(0, 255, 120)).astype(np.uint8)
    img = np.repeat(np.tile(ramp, (30, 1))[:, :, None], 3, axis=2)
    path = tmp_path / "gradient.png"
    Image.fromarray(img).save(path)
    return path


@pytest.fixture
def settings():
    """Settings matching the 120 pixel wide ballot photo."""
    return SnapshotSettings(size_limit=120, pick_fuzz=8.0)


@pytest.fixture
def make_grower(tmp_path):
    """Factory for a RegionGrower over a photo with its own cache directory."""
    counter = {"n": 0}

    def _make(photo, size_limit, pick_fuzz=8.0):
        counter["n"] += 1
        cache = DerivedDataCache(photo, tmp_path / f"grower{counter['n']}.cache", size_limit)
        return RegionGrower(cache, PickLedger(), pick_fuzz=pick_fuzz)

    return _make


@pytest.fixture
def test_client():
    """Create test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Reset metrics before each test."""
    from votecounter.utils.metrics import reset_metrics
    reset_metrics()
