"""Geometric operations on plotter polylines.

Provides:
    - Ramer-Douglas-Peucker simplification (explicit stack, no recursion)
    - Chaikin corner-cutting with pinned endpoints
    - Greedy nearest-neighbor stroke ordering with per-path reversal
    - Source-pixel → device-unit scaling fitted to the work envelope
    - Polyline length and bounding box helpers

Used by:
    - data_pipeline.pipeline: mask → ordered, scaled polylines
    - drawbot.gcode.encoder: envelope checks on scaled points
    - Tests: fidelity and invariance checks

Points are ``(x, y)`` float tuples and polylines are lists of points.
All functions are pure: inputs are never mutated, outputs are new lists.
Pixel space has its origin at the top-left corner of the padded edge mask,
+Y down; device space is whatever the envelope is measured in.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

Point = Tuple[float, float]
Polyline = List[Point]


# ============================================================================
# DISTANCES
# ============================================================================

def point_distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def sq_segment_distance(p: Point, a: Point, b: Point) -> float:
    """Squared distance from ``p`` to the segment ``a``-``b``.

    The projection parameter is clamped to [0, 1], so points beyond either
    end measure to that endpoint. A degenerate segment (a == b) measures to
    ``a``.
    """
    x, y = a
    dx = b[0] - x
    dy = b[1] - y

    if dx != 0.0 or dy != 0.0:
        t = ((p[0] - x) * dx + (p[1] - y) * dy) / (dx * dx + dy * dy)
        if t > 1.0:
            x, y = b
        elif t > 0.0:
            x += dx * t
            y += dy * t

    dx = p[0] - x
    dy = p[1] - y
    return dx * dx + dy * dy


# ============================================================================
# SIMPLIFICATION
# ============================================================================

def simplify_path(path: Sequence[Point], tolerance: float) -> Polyline:
    """Reduce a polyline with the Ramer-Douglas-Peucker algorithm.

    Parameters
    ----------
    path : Sequence[Point]
        Input polyline
    tolerance : float
        Maximum allowed deviation ε (same units as the points)

    Returns
    -------
    Polyline
        Subset of the input points, first and last always kept.
        Paths with fewer than 3 points, or ε ≤ 0, come back unchanged.

    Notes
    -----
    Works on index ranges held in an explicit stack, so very long
    near-collinear chains cannot exhaust the interpreter's recursion limit.
    Distances are compared squared against ε². When several interior
    points share the maximum distance, the first one splits the range.
    """
    points = list(path)
    if len(points) < 3 or tolerance <= 0:
        return points

    sq_tolerance = tolerance * tolerance
    keep = [False] * len(points)
    keep[0] = keep[-1] = True

    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        max_sq_dist = sq_tolerance
        index = -1
        for i in range(first + 1, last):
            sq_dist = sq_segment_distance(points[i], points[first], points[last])
            if sq_dist > max_sq_dist:
                index = i
                max_sq_dist = sq_dist

        if index != -1:
            keep[index] = True
            stack.append((index, last))
            stack.append((first, index))

    return [p for p, k in zip(points, keep) if k]


# ============================================================================
# SMOOTHING
# ============================================================================

def smooth_path(path: Sequence[Point], iterations: int = 1) -> Polyline:
    """Round a polyline with Chaikin corner cutting (open-curve variant).

    Each pass replaces every edge (p0, p1) by the points at 1/4 and 3/4
    along it, then re-attaches the original first and last point, so a
    path of n points becomes 2(n - 1) + 2 points.

    Parameters
    ----------
    path : Sequence[Point]
        Input polyline
    iterations : int
        Number of passes; the caller bounds it (the validated pipeline
        parameter allows 0-4).

    Returns
    -------
    Polyline
        Smoothed copy. Endpoints are the input's endpoint objects, so they
        compare equal bit for bit. Paths with fewer than 3 points or
        ``iterations <= 0`` come back unchanged.
    """
    points = list(path)
    if len(points) < 3 or iterations <= 0:
        return points

    for _ in range(iterations):
        smoothed = [points[0]]
        for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
            smoothed.append((0.75 * x0 + 0.25 * x1, 0.75 * y0 + 0.25 * y1))
            smoothed.append((0.25 * x0 + 0.75 * x1, 0.25 * y0 + 0.75 * y1))
        smoothed.append(points[-1])
        points = smoothed

    return points


# ============================================================================
# ORDERING
# ============================================================================

def order_paths(
    paths: Sequence[Sequence[Point]],
    start: Point = (0.0, 0.0)
) -> List[Polyline]:
    """Order polylines to shorten pen-up travel (greedy nearest neighbor).

    Parameters
    ----------
    paths : Sequence[Sequence[Point]]
        Polylines to order; empty ones are dropped
    start : Point
        Pen position before the first stroke (device home)

    Returns
    -------
    List[Polyline]
        The same polylines as new lists, each oriented so that it starts
        at the endpoint that was nearest when it was picked.

    Notes
    -----
    At every step all remaining paths and both of their endpoints are
    scanned and the global minimum is taken. Ties go to the start endpoint
    over the end endpoint, then to the earlier path. O(n²) in path count;
    a heuristic, no 2-opt refinement.
    """
    remaining = [list(p) for p in paths if len(p) > 0]
    ordered: List[Polyline] = []
    current = start

    while remaining:
        best_index = 0
        best_reverse = False
        best_dist = math.inf

        for i, path in enumerate(remaining):
            d_start = point_distance(current, path[0])
            if d_start < best_dist:
                best_index, best_reverse, best_dist = i, False, d_start
            d_end = point_distance(current, path[-1])
            if d_end < best_dist:
                best_index, best_reverse, best_dist = i, True, d_end

        chosen = remaining.pop(best_index)
        if best_reverse:
            chosen.reverse()
        ordered.append(chosen)
        current = chosen[-1]

    return ordered


def travel_distance(paths: Sequence[Sequence[Point]], start: Point = (0.0, 0.0)) -> float:
    """Total pen-up travel when drawing ``paths`` in order from ``start``."""
    total = 0.0
    current = start
    for path in paths:
        if not path:
            continue
        total += point_distance(current, path[0])
        current = path[-1]
    return total


# ============================================================================
# POLYLINE METRICS
# ============================================================================

def polyline_length(path: Sequence[Point]) -> float:
    """Sum of Euclidean distances between consecutive points."""
    return sum(point_distance(a, b) for a, b in zip(path[:-1], path[1:]))


def polyline_bbox(path: Sequence[Point]) -> Tuple[float, float, float, float]:
    """Bounding box ``(x_min, y_min, x_max, y_max)`` of a non-empty polyline.

    Raises
    ------
    ValueError
        If ``path`` is empty
    """
    if not path:
        raise ValueError("Cannot compute bounding box of an empty polyline")
    xs = [p[0] for p in path]
    ys = [p[1] for p in path]
    return min(xs), min(ys), max(xs), max(ys)


# ============================================================================
# SCALING
# ============================================================================

@dataclass(frozen=True)
class ScaleTransform:
    """Affine map from source pixels to device units.

    ``device = pixel * scale + offset`` per axis.
    """

    scale_x: float
    scale_y: float
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self) -> None:
        if self.scale_x == 0 or self.scale_y == 0:
            raise ValueError(
                f"Scale factors must be non-zero, got ({self.scale_x}, {self.scale_y})"
            )

    @classmethod
    def identity(cls) -> "ScaleTransform":
        return cls(1.0, 1.0, 0.0, 0.0)

    def apply(self, point: Point) -> Point:
        return (
            point[0] * self.scale_x + self.offset_x,
            point[1] * self.scale_y + self.offset_y,
        )

    def apply_path(self, path: Sequence[Point]) -> Polyline:
        return [self.apply(p) for p in path]

    def invert(self, point: Point) -> Point:
        """Map a device-space point back into source pixels."""
        return (
            (point[0] - self.offset_x) / self.scale_x,
            (point[1] - self.offset_y) / self.scale_y,
        )


def fit_to_envelope(
    width: float,
    height: float,
    envelope_width: float,
    envelope_height: float,
    scale_percent: float = 100.0,
    padding: float = 0.0,
    center: bool = False
) -> ScaleTransform:
    """Derive the uniform scale that fits an image into the work envelope.

    Parameters
    ----------
    width, height : float
        Original image size in pixels (without padding)
    envelope_width, envelope_height : float
        Device work envelope W × H
    scale_percent : float
        Share of the limiting envelope axis to use, 20-100
    padding : float
        Border (px) that was added around the image before edge detection;
        it is subtracted so that original pixel (0, 0) lands on the origin
    center : bool
        Shift the drawing to the middle of the envelope on both axes

    Returns
    -------
    ScaleTransform
        Uniform scale (scale_x == scale_y)

    Raises
    ------
    ValueError
        On non-positive sizes or a scale outside 20-100 %

    Notes
    -----
    If the image is relatively wider than the envelope, width is the
    limiting axis (s = W·pct / width); otherwise height is
    (s = H·pct / height).
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    if envelope_width <= 0 or envelope_height <= 0:
        raise ValueError(
            f"Envelope size must be positive, got {envelope_width}x{envelope_height}"
        )
    if not 20.0 <= scale_percent <= 100.0:
        raise ValueError(f"Scale must be between 20% and 100%, got {scale_percent}")

    fraction = scale_percent / 100.0
    if width / height > envelope_width / envelope_height:
        scale = envelope_width * fraction / width
    else:
        scale = envelope_height * fraction / height

    offset_x = -padding * scale
    offset_y = -padding * scale
    if center:
        offset_x += (envelope_width - width * scale) / 2.0
        offset_y += (envelope_height - height * scale) / 2.0

    return ScaleTransform(scale, scale, offset_x, offset_y)
