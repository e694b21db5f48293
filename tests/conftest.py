"""
Shared fixtures for frame studio tests.

Images are generated in memory with Pillow so tests need no asset files.
"""

import io

import pytest
from PIL import Image

from frame.blob_store import MemoryBlobStore
from frame.themes import ThemeRegistry


def make_png(color="#ff0000", size=(20, 20)) -> bytes:
    """Solid-color PNG bytes."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def assert_pixel(image, xy, expected, tolerance=2):
    """Compare an RGBA pixel against an RGB(A) tuple, allowing resampling error."""
    actual = image.getpixel(xy)
    for a, e in zip(actual, expected):
        assert abs(a - e) <= tolerance, f"Pixel at {xy} is {actual}, expected {expected}"


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def themes():
    return ThemeRegistry()


@pytest.fixture
def default_theme(themes):
    return themes.default
