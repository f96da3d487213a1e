"""Test the OpenCV edge-mask adapter.

Tests for linework.data_pipeline.edge_mask:
    - Padded mask geometry for vector mode
    - Thinned edges stay binary
    - Raster masks are resized to drawing resolution
    - Missing / undecodable files

Run:
    pytest tests/test_edge_mask.py -v
"""

import cv2
import numpy as np
import pytest

from linework.data_pipeline.edge_mask import (
    EdgeMask,
    detect_edges,
    load_edge_mask,
    load_raster_mask,
)
from linework.data_pipeline.pipeline import vectorize_mask
from linework.utils.validators import EdgeDetectionParams, VectorizeParams


@pytest.fixture
def square_image(tmp_path):
    """White 80x60 image with a black filled rectangle."""
    img = np.full((60, 80, 3), 255, dtype=np.uint8)
    img[15:45, 20:60] = 0
    path = tmp_path / "square.png"
    assert cv2.imwrite(str(path), img)
    return path


def test_load_edge_mask_shape(square_image):
    mask = load_edge_mask(square_image, EdgeDetectionParams(), padding=2)
    assert isinstance(mask, EdgeMask)
    assert (mask.width, mask.height, mask.padding) == (80, 60, 2)
    assert mask.pixels.shape == (64, 84)
    assert mask.on_count > 0


def test_thinned_edges_are_binary(square_image):
    mask = load_edge_mask(square_image, EdgeDetectionParams(thinning=True), padding=0)
    assert set(np.unique(mask.pixels)) <= {0, 255}


def test_edges_follow_rectangle_outline(square_image):
    mask = load_edge_mask(square_image, EdgeDetectionParams(), padding=0)
    ys, xs = np.nonzero(mask.pixels)
    assert xs.min() >= 15 and xs.max() <= 64
    assert ys.min() >= 10 and ys.max() <= 49


def test_edge_mask_feeds_pipeline(square_image):
    params = VectorizeParams()
    mask = load_edge_mask(square_image, EdgeDetectionParams(), padding=params.padding_px)
    drawing = vectorize_mask(
        mask.pixels, mask.width, mask.height, envelope=(360.0, 90.0), params=params,
    )
    assert drawing.polylines
    for poly in drawing.polylines:
        assert len(poly) >= 2


def test_detect_edges_rejects_color():
    with pytest.raises(ValueError, match="grayscale"):
        detect_edges(np.zeros((10, 10, 3), dtype=np.uint8), EdgeDetectionParams())


def test_blank_image_has_no_edges():
    mask = detect_edges(np.full((20, 20), 255, dtype=np.uint8), EdgeDetectionParams(), padding=2)
    assert mask.on_count == 0


def test_load_raster_mask_resizes(square_image):
    # 80x60 into 360x90 is height-limited: 1.5 units/px → 120x90
    mask = load_raster_mask(square_image, EdgeDetectionParams(), (360.0, 90.0), 100.0)
    assert (mask.width, mask.height, mask.padding) == (120, 90, 0)
    assert mask.pixels.shape == (90, 120)
    assert mask.pixels[45, 60] == 255   # inside the dark rectangle
    assert mask.pixels[2, 2] == 0       # white background


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_edge_mask(tmp_path / "nope.png", EdgeDetectionParams())


def test_undecodable_file(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not an image")
    with pytest.raises(ValueError, match="decode"):
        load_edge_mask(bad, EdgeDetectionParams())
