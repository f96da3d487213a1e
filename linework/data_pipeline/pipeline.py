"""Edge mask → ordered, scaled polylines.

Pipeline (vector mode):
    1. Validate mask dimensions against width/height/padding
    2. Trace 8-connected pixel chains (edge_tracer.trace_edges)
    3. Simplify each chain (RDP) and drop anything under 2 points
    4. Smooth (Chaikin, pinned endpoints)
    5. Order strokes nearest-neighbor from the device home
    6. Scale into device units

Raster mode replaces steps 2-4 with horizontal scanline strokes.

Stateless per call; safe to run concurrently on independent images.
Errors are raised before any output is produced.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..utils import geometry
from ..utils.geometry import Polyline, ScaleTransform
from ..utils.validators import VectorizeParams
from .edge_tracer import trace_edges, trace_scanlines

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Raised when the pipeline input is malformed."""

    pass


@dataclass
class VectorizedDrawing:
    """Pipeline output: device-space strokes plus provenance."""

    polylines: List[Polyline]
    transform: ScaleTransform
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def point_count(self) -> int:
        return sum(len(p) for p in self.polylines)


def _check_mask(mask: np.ndarray, width: int, height: int, padding: int) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise PipelineError(f"Edge mask must be 2-D, got {mask.ndim}-D array")
    if width <= 0 or height <= 0:
        raise PipelineError(f"Image size must be positive, got {width}x{height}")
    expected = (height + 2 * padding, width + 2 * padding)
    if mask.shape != expected:
        raise PipelineError(
            f"Edge mask shape {mask.shape} does not match image {width}x{height} "
            f"with {padding} px padding (expected {expected})"
        )
    return mask


def extract_strokes(mask: np.ndarray, params: VectorizeParams) -> Tuple[List[Polyline], Dict[str, int]]:
    """Run tracing + cleanup in pixel space.

    Returns
    -------
    strokes : List[Polyline]
        Unordered pixel-space strokes, each with ≥ 2 points
    stats : dict
        Counts of raw / kept paths and points
    """
    if params.mode == "raster":
        raw = trace_scanlines(mask)
        strokes = raw
    else:
        raw = trace_edges(mask, params.min_chain_length)
        strokes = []
        for chain in raw:
            simplified = geometry.simplify_path(chain, params.simplify_tolerance)
            if len(simplified) < 2:
                continue
            strokes.append(geometry.smooth_path(simplified, params.smoothing_iterations))

    stats = {
        "raw_paths": len(raw),
        "raw_points": sum(len(p) for p in raw),
        "paths": len(strokes),
        "points": sum(len(p) for p in strokes),
    }
    return strokes, stats


def _drawing_bbox(polylines: List[Polyline]) -> Optional[Tuple[float, float, float, float]]:
    """Union of the per-stroke bounding boxes; ``None`` for an empty drawing."""
    boxes = [geometry.polyline_bbox(p) for p in polylines]
    if not boxes:
        return None
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


def vectorize_mask(
    mask: np.ndarray,
    width: int,
    height: int,
    *,
    envelope: Tuple[float, float],
    params: Optional[VectorizeParams] = None,
    transform: Optional[ScaleTransform] = None
) -> VectorizedDrawing:
    """Convert a binary edge mask into ordered device-space polylines.

    Parameters
    ----------
    mask : np.ndarray
        2-D edge mask, shape ``(height + 2*pad, width + 2*pad)`` where
        ``pad = params.padding_px``. Nonzero = on. Not modified.
    width, height : int
        Original image size (without padding)
    envelope : tuple[float, float]
        Device work envelope (W, H)
    params : VectorizeParams, optional
        Pipeline parameters; defaults if omitted
    transform : ScaleTransform, optional
        Explicit pixel → device transform. When omitted it is fitted to
        the envelope from ``scale_percent``, ``padding_px`` and ``center``.

    Returns
    -------
    VectorizedDrawing
        Ordered polylines in device units, the transform used, and stats
        (path/point counts, ``draw_px`` and ``travel_px`` lengths in pixels,
        device-space ``bbox``)

    Raises
    ------
    PipelineError
        If the mask is not 2-D or its shape disagrees with the image size
    """
    params = params or VectorizeParams()
    mask = _check_mask(mask, width, height, params.padding_px)

    if transform is None:
        transform = geometry.fit_to_envelope(
            width, height, envelope[0], envelope[1],
            scale_percent=params.scale_percent,
            padding=params.padding_px,
            center=params.center,
        )

    strokes, stats = extract_strokes(mask, params)

    # Home (0, 0) expressed in pixel space
    start = transform.invert((0.0, 0.0))
    ordered = geometry.order_paths(strokes, start=start)
    stats["travel_px"] = geometry.travel_distance(ordered, start=start)
    stats["draw_px"] = sum(geometry.polyline_length(p) for p in ordered)

    polylines = [transform.apply_path(p) for p in ordered]
    stats["bbox"] = _drawing_bbox(polylines)

    logger.info(
        "Vectorized %dx%d mask (%s mode): %d raw paths → %d strokes, %d points",
        width, height, params.mode, stats["raw_paths"], stats["paths"], stats["points"],
    )
    return VectorizedDrawing(polylines=polylines, transform=transform, stats=stats)
