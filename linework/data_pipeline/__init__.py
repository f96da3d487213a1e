"""Data pipeline: edge masks to plotter strokes.

Modules:
    - edge_tracer: 8-connected chain walk and scanline extraction
    - edge_mask: OpenCV adapter (image file → EdgeMask)
    - pipeline: trace → simplify → smooth → order → scale

``edge_mask`` is not imported here so that the geometry path does not
require OpenCV at import time.
"""

from .edge_tracer import trace_edges, trace_scanlines
from .pipeline import PipelineError, VectorizedDrawing, vectorize_mask

__all__ = [
    "PipelineError",
    "VectorizedDrawing",
    "trace_edges",
    "trace_scanlines",
    "vectorize_mask",
]
