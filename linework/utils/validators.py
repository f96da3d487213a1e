"""Parameter schemas for the vectorization pipeline.

Provides centralized validation of pipeline parameters using pydantic:
    - VectorizeParams: tracing, simplification, smoothing, scaling, mode
    - EdgeDetectionParams: blur / Canny / thinning settings for the
      OpenCV edge-mask adapter

Out-of-range values (e.g. a scale percentage outside 20-100) fail here,
before any pipeline work begins, with pydantic's field-level messages.

Units:
    - Tolerances and padding: source pixels
    - Scale: percent of the device work envelope

Usage:
    from linework.utils import validators

    params = validators.VectorizeParams(scale_percent=60)
    params = validators.load_vectorize_params({"simplify_tolerance": 1.2})
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "EdgeDetectionParams",
    "ValidationError",
    "VectorizeParams",
    "load_edge_detection_params",
    "load_vectorize_params",
]


# ============================================================================
# VECTORIZATION
# ============================================================================

class VectorizeParams(BaseModel):
    """Pipeline parameters from edge mask to scaled polylines.

    ``mode="vector"`` traces 8-connected edge chains; ``mode="raster"``
    emits one stroke per horizontal run of on-pixels.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["vector", "raster"] = Field("vector", description="Stroke extraction mode")
    simplify_tolerance: float = Field(0.7, ge=0.0, description="RDP tolerance (px); 0 disables")
    smoothing_iterations: int = Field(1, ge=0, le=4, description="Chaikin passes")
    min_chain_length: int = Field(5, ge=1, description="Shortest traced chain kept (px)")
    padding_px: int = Field(2, ge=0, le=64, description="Border added around the source image (px)")
    scale_percent: float = Field(100.0, ge=20.0, le=100.0, description="Share of the envelope used (%)")
    center: bool = Field(False, description="Center the drawing on the slack axis")


class EdgeDetectionParams(BaseModel):
    """OpenCV edge detection settings (blur → Canny → optional thinning)."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    blur_kernel: int = Field(3, ge=1, le=31, description="Gaussian kernel size (odd)")
    blur_sigma: float = Field(2.2, gt=0.0, description="Gaussian sigma")
    canny_low: int = Field(50, ge=0, le=255, description="Canny lower hysteresis threshold")
    canny_high: int = Field(180, ge=0, le=255, description="Canny upper hysteresis threshold")
    thinning: bool = Field(True, description="Skeletonize edges to 1 px")
    raster_threshold: int = Field(200, ge=0, le=255, description="Binary threshold for raster mode")

    @field_validator('blur_kernel')
    @classmethod
    def validate_kernel_odd(cls, v: int) -> int:
        if v % 2 == 0:
            raise ValueError(f"blur_kernel must be odd, got {v}")
        return v

    @field_validator('canny_high')
    @classmethod
    def validate_thresholds_ordered(cls, v: int, info) -> int:
        low = info.data.get('canny_low')
        if low is not None and v < low:
            raise ValueError(f"canny_high ({v}) must be >= canny_low ({low})")
        return v


# ============================================================================
# LOADERS
# ============================================================================

def load_vectorize_params(data: Optional[Dict[str, Any]] = None) -> VectorizeParams:
    """Build VectorizeParams from a (possibly empty) mapping.

    Raises
    ------
    pydantic.ValidationError
        If any field is out of range or unknown.
    """
    return VectorizeParams(**(data or {}))


def load_edge_detection_params(data: Optional[Dict[str, Any]] = None) -> EdgeDetectionParams:
    """Build EdgeDetectionParams from a (possibly empty) mapping."""
    return EdgeDetectionParams(**(data or {}))
