"""Test polyline geometry.

Tests for linework.utils.geometry:
    - Segment distance clamps to the segment ends
    - RDP keeps endpoints, collapses collinear runs, keeps corners
    - RDP idempotence and fidelity (every dropped point within ε)
    - Chaikin endpoint invariance and point growth
    - Nearest-neighbor ordering with reversal, completeness, no mutation
    - Envelope fitting (limiting axis, percent, padding, centering)

Run:
    pytest tests/test_geometry.py -v
"""

import math

import numpy as np
import pytest

from linework.utils import geometry
from linework.utils.geometry import ScaleTransform, fit_to_envelope


def _random_walk(n, seed=0):
    rng = np.random.RandomState(seed)
    steps = rng.normal(size=(n, 2))
    pts = np.cumsum(steps, axis=0)
    return [(float(x), float(y)) for x, y in pts]


# ---------------------------------------------------------------------------
# Distances
# ---------------------------------------------------------------------------


def test_sq_segment_distance_perpendicular():
    assert geometry.sq_segment_distance((2.0, 3.0), (0.0, 0.0), (4.0, 0.0)) == pytest.approx(9.0)


def test_sq_segment_distance_clamps_beyond_ends():
    # Beyond b: distance to b, not to the infinite line
    assert geometry.sq_segment_distance((7.0, 4.0), (0.0, 0.0), (4.0, 0.0)) == pytest.approx(25.0)
    # Before a
    assert geometry.sq_segment_distance((-3.0, 0.0), (0.0, 0.0), (4.0, 0.0)) == pytest.approx(9.0)


def test_sq_segment_distance_degenerate_segment():
    assert geometry.sq_segment_distance((3.0, 4.0), (0.0, 0.0), (0.0, 0.0)) == pytest.approx(25.0)


# ---------------------------------------------------------------------------
# Simplification
# ---------------------------------------------------------------------------


def test_simplify_collinear_collapses_to_endpoints():
    path = [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]
    assert geometry.simplify_path(path, 0.01) == [(0.0, 0.0), (3.0, 3.0)]


def test_simplify_keeps_corner():
    path = [(0.0, 0.0), (5.0, 0.0), (5.0, 5.0)]
    assert geometry.simplify_path(path, 0.5) == path


def test_simplify_short_path_unchanged():
    path = [(0.0, 0.0), (1.0, 7.0)]
    assert geometry.simplify_path(path, 1.0) == path
    assert geometry.simplify_path([(2.0, 2.0)], 1.0) == [(2.0, 2.0)]


@pytest.mark.parametrize("tolerance", [0.0, -1.0])
def test_simplify_non_positive_tolerance_is_noop(tolerance):
    path = [(0.0, 0.0), (1.0, 0.001), (2.0, 0.0)]
    assert geometry.simplify_path(path, tolerance) == path


def test_simplify_does_not_mutate_input():
    path = [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]
    original = list(path)
    geometry.simplify_path(path, 0.5)
    assert path == original


def test_simplify_tie_splits_at_first_maximum():
    # Points 1 and 3 are equally far from the chord
    path = [(0.0, 0.0), (1.0, 2.0), (2.0, 0.0), (3.0, 2.0), (4.0, 0.0)]
    out = geometry.simplify_path(path, 1.0)
    assert out[0] == (0.0, 0.0) and out[-1] == (4.0, 0.0)
    assert (1.0, 2.0) in out


@pytest.mark.parametrize("tolerance", [0.3, 1.0, 2.5])
def test_simplify_idempotent(tolerance):
    path = _random_walk(400, seed=3)
    once = geometry.simplify_path(path, tolerance)
    twice = geometry.simplify_path(once, tolerance)
    assert twice == once


@pytest.mark.parametrize("tolerance", [0.5, 1.5])
def test_simplify_fidelity(tolerance):
    path = _random_walk(300, seed=7)
    out = geometry.simplify_path(path, tolerance)

    assert out[0] == path[0] and out[-1] == path[-1]
    assert set(out) <= set(path)
    for p in path:
        d = min(
            math.sqrt(geometry.sq_segment_distance(p, a, b))
            for a, b in zip(out[:-1], out[1:])
        )
        assert d <= tolerance + 1e-9


def test_simplify_long_chain_without_recursion():
    # Far longer than the default recursion limit
    n = 20000
    path = [(float(i), math.sin(i * 0.01) * 50.0) for i in range(n)]
    out = geometry.simplify_path(path, 1e-6)
    assert out[0] == path[0] and out[-1] == path[-1]
    assert 2 < len(out) <= n


# ---------------------------------------------------------------------------
# Smoothing
# ---------------------------------------------------------------------------


def test_smooth_single_corner():
    path = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0)]
    assert geometry.smooth_path(path, 1) == [
        (0.0, 0.0), (1.0, 0.0), (3.0, 0.0), (4.0, 1.0), (4.0, 3.0), (4.0, 4.0),
    ]


@pytest.mark.parametrize("iterations", [0, 1, 2, 3, 4])
def test_smooth_endpoints_invariant(iterations):
    path = _random_walk(25, seed=iterations)
    out = geometry.smooth_path(path, iterations)
    assert out[0] == path[0]
    assert out[-1] == path[-1]


def test_smooth_point_growth():
    path = _random_walk(10)
    n = len(path)
    for _ in range(3):
        path_next = geometry.smooth_path(path, 1)
        assert len(path_next) == 2 * (n - 1) + 2
        path, n = path_next, len(path_next)


def test_smooth_passthrough():
    two = [(0.0, 0.0), (9.0, 9.0)]
    assert geometry.smooth_path(two, 3) == two
    three = [(0.0, 0.0), (1.0, 5.0), (2.0, 0.0)]
    assert geometry.smooth_path(three, 0) == three


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def test_order_picks_nearest_and_reverses():
    far = [(50.0, 0.0), (60.0, 0.0)]
    near_reversed = [(10.0, 0.0), (1.0, 0.0)]
    ordered = geometry.order_paths([far, near_reversed])
    assert ordered == [
        [(1.0, 0.0), (10.0, 0.0)],
        [(50.0, 0.0), (60.0, 0.0)],
    ]


def test_order_continues_from_last_point():
    a = [(0.0, 1.0), (0.0, 20.0)]
    b = [(100.0, 0.0), (90.0, 0.0)]
    c = [(1.0, 21.0), (5.0, 30.0)]
    ordered = geometry.order_paths([b, c, a])
    assert ordered[0] == a
    assert ordered[1] == c
    assert ordered[2] == [(90.0, 0.0), (100.0, 0.0)]


def test_order_tie_prefers_start_endpoint_then_earlier_path():
    symmetric = [(3.0, 4.0), (4.0, 3.0)]  # both endpoints at distance 5
    assert geometry.order_paths([symmetric])[0] == symmetric

    first = [(5.0, 0.0), (9.0, 0.0)]
    second = [(0.0, 5.0), (0.0, 9.0)]
    assert geometry.order_paths([first, second])[0] == first


def test_order_is_permutation_up_to_reversal():
    paths = [_random_walk(5, seed=s) for s in range(30)]
    ordered = geometry.order_paths(paths)

    assert len(ordered) == len(paths)
    key = lambda p: frozenset([p[0], p[-1]])  # noqa: E731
    assert sorted(map(sorted, map(key, ordered))) == sorted(map(sorted, map(key, paths)))


def test_order_reduces_travel_against_input_order():
    paths = [[(float(x), 0.0), (float(x), 1.0)] for x in (90, 10, 70, 30, 50)]
    ordered = geometry.order_paths(paths)
    assert geometry.travel_distance(ordered) < geometry.travel_distance(paths)


def test_order_does_not_mutate_input():
    path = [(9.0, 0.0), (1.0, 0.0)]
    geometry.order_paths([path])
    assert path == [(9.0, 0.0), (1.0, 0.0)]


def test_order_empty_and_custom_start():
    assert geometry.order_paths([]) == []
    a = [(0.0, 0.0), (1.0, 0.0)]
    b = [(100.0, 0.0), (101.0, 0.0)]
    assert geometry.order_paths([a, b], start=(100.0, 0.0))[0] == b


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def test_polyline_length_and_bbox():
    path = [(0.0, 0.0), (3.0, 4.0), (3.0, 10.0)]
    assert geometry.polyline_length(path) == pytest.approx(11.0)
    assert geometry.polyline_bbox(path) == (0.0, 0.0, 3.0, 10.0)
    with pytest.raises(ValueError):
        geometry.polyline_bbox([])


# ---------------------------------------------------------------------------
# Scaling
# ---------------------------------------------------------------------------


def test_fit_width_limited():
    t = fit_to_envelope(720, 90, 360, 90)
    assert t.scale_x == pytest.approx(0.5)
    assert t.scale_y == t.scale_x
    assert t.apply((720.0, 90.0)) == pytest.approx((360.0, 45.0))


def test_fit_height_limited():
    t = fit_to_envelope(100, 100, 360, 90)
    assert t.scale_x == pytest.approx(0.9)
    assert t.apply((100.0, 100.0)) == pytest.approx((90.0, 90.0))


def test_fit_scale_percent():
    full = fit_to_envelope(100, 100, 360, 90, scale_percent=100)
    half = fit_to_envelope(100, 100, 360, 90, scale_percent=50)
    assert half.scale_x == pytest.approx(full.scale_x / 2)


def test_fit_padding_maps_original_origin_to_home():
    t = fit_to_envelope(36, 9, 360, 90, padding=2)
    assert t.apply((2.0, 2.0)) == pytest.approx((0.0, 0.0))
    assert t.invert((0.0, 0.0)) == pytest.approx((2.0, 2.0))


def test_fit_center():
    t = fit_to_envelope(100, 100, 360, 90, center=True)
    x0, y0 = t.apply((0.0, 0.0))
    x1, y1 = t.apply((100.0, 100.0))
    assert (x0 + x1) / 2 == pytest.approx(180.0)
    assert (y0 + y1) / 2 == pytest.approx(45.0)


@pytest.mark.parametrize("pct", [10.0, 19.9, 100.1])
def test_fit_rejects_out_of_range_scale(pct):
    with pytest.raises(ValueError, match="Scale"):
        fit_to_envelope(100, 100, 360, 90, scale_percent=pct)


def test_fit_rejects_empty_image():
    with pytest.raises(ValueError):
        fit_to_envelope(0, 10, 360, 90)


def test_scale_transform_identity_and_zero_scale():
    t = ScaleTransform.identity()
    assert t.apply((3.5, -2.0)) == (3.5, -2.0)
    with pytest.raises(ValueError):
        ScaleTransform(0.0, 1.0)
