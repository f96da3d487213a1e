"""Test pipeline parameter schemas.

Tests for linework.utils.validators:
    - Defaults match the shipped configuration
    - Range checks (scale 20-100 %, smoothing 0-4, tolerance >= 0)
    - Cross-field checks (odd blur kernel, Canny thresholds ordered)
    - Unknown keys rejected

Run:
    pytest tests/test_validators.py -v
"""

import pytest

from linework.utils import validators
from linework.utils.validators import EdgeDetectionParams, ValidationError, VectorizeParams


def test_vectorize_defaults():
    p = VectorizeParams()
    assert p.mode == "vector"
    assert p.simplify_tolerance == pytest.approx(0.7)
    assert p.smoothing_iterations == 1
    assert p.min_chain_length == 5
    assert p.padding_px == 2
    assert p.scale_percent == 100.0
    assert p.center is False


@pytest.mark.parametrize("scale", [10, 19.99, 100.5])
def test_scale_out_of_range(scale):
    with pytest.raises(ValidationError):
        VectorizeParams(scale_percent=scale)


@pytest.mark.parametrize("scale", [20, 55.5, 100])
def test_scale_in_range(scale):
    assert VectorizeParams(scale_percent=scale).scale_percent == pytest.approx(scale)


def test_smoothing_bounded():
    with pytest.raises(ValidationError):
        VectorizeParams(smoothing_iterations=5)
    with pytest.raises(ValidationError):
        VectorizeParams(smoothing_iterations=-1)


def test_negative_tolerance_rejected():
    with pytest.raises(ValidationError):
        VectorizeParams(simplify_tolerance=-0.1)


def test_unknown_mode_and_key_rejected():
    with pytest.raises(ValidationError):
        VectorizeParams(mode="spiral")
    with pytest.raises(ValidationError):
        VectorizeParams(tolerance=1.0)


def test_params_are_frozen():
    p = VectorizeParams()
    with pytest.raises(ValidationError):
        p.scale_percent = 50


def test_edge_detection_defaults():
    p = EdgeDetectionParams()
    assert (p.blur_kernel, p.blur_sigma) == (3, pytest.approx(2.2))
    assert (p.canny_low, p.canny_high) == (50, 180)
    assert p.thinning is True


def test_blur_kernel_must_be_odd():
    with pytest.raises(ValidationError, match="odd"):
        EdgeDetectionParams(blur_kernel=4)


def test_canny_thresholds_ordered():
    with pytest.raises(ValidationError, match="canny_high"):
        EdgeDetectionParams(canny_low=200, canny_high=100)


def test_loaders_accept_none():
    assert validators.load_vectorize_params(None) == VectorizeParams()
    assert validators.load_edge_detection_params({"thinning": False}).thinning is False
