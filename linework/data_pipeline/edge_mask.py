"""OpenCV adapter: image file → binary edge mask.

This is the thin image-processing collaborator in front of the geometry
pipeline; nothing in ``pipeline`` or ``edge_tracer`` depends on it.

Vector mode:
    1. Decode image (cv2.imread)
    2. Pad with a white border (``padding_px``) so edges touching the image
       border still close
    3. Grayscale → Gaussian blur → Canny
    4. Optional thinning to 1 px wide edges (skimage skeletonize)

Raster mode:
    1. Decode + grayscale
    2. Resize so one pixel row is roughly one device unit at the requested
       scale
    3. Binary threshold; dark pixels are "on"

The returned ``EdgeMask`` carries the original (unpadded) width/height and
the padding, which is exactly what ``pipeline.vectorize_mask`` validates.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from skimage.morphology import skeletonize

from ..utils.geometry import fit_to_envelope
from ..utils.validators import EdgeDetectionParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EdgeMask:
    """Binary edge map plus the geometry needed to validate and scale it.

    ``pixels`` has shape ``(height + 2*padding, width + 2*padding)``.
    """

    pixels: np.ndarray
    width: int
    height: int
    padding: int = 0

    @property
    def on_count(self) -> int:
        return int(np.count_nonzero(self.pixels))


def _read_gray(path: Union[str, Path]) -> np.ndarray:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError(f"Could not decode image: {path}")
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def detect_edges(
    gray: np.ndarray,
    params: EdgeDetectionParams,
    padding: int = 0
) -> EdgeMask:
    """Run blur → Canny (→ thinning) on a grayscale uint8 image.

    Parameters
    ----------
    gray : np.ndarray
        (H, W) uint8 grayscale image
    params : EdgeDetectionParams
        Blur / Canny / thinning settings
    padding : int
        White border added on every side before filtering

    Returns
    -------
    EdgeMask
        uint8 mask (0 or 255)
    """
    if gray.ndim != 2:
        raise ValueError(f"Expected a grayscale (H, W) image, got shape {gray.shape}")
    height, width = gray.shape

    if padding > 0:
        gray = cv2.copyMakeBorder(
            gray, padding, padding, padding, padding,
            cv2.BORDER_CONSTANT, value=255,
        )

    k = params.blur_kernel
    blurred = cv2.GaussianBlur(gray, (k, k), params.blur_sigma)
    edges = cv2.Canny(blurred, params.canny_low, params.canny_high)

    if params.thinning:
        edges = skeletonize(edges > 0).astype(np.uint8) * 255

    logger.debug(
        "Edge detection: %dx%d (+%d px pad), %d edge pixels",
        width, height, padding, int(np.count_nonzero(edges)),
    )
    return EdgeMask(pixels=edges, width=width, height=height, padding=padding)


def load_edge_mask(
    path: Union[str, Path],
    params: EdgeDetectionParams,
    padding: int = 2
) -> EdgeMask:
    """Decode an image file and detect its edges (vector mode).

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist
    ValueError
        If OpenCV cannot decode it
    """
    logger.info("Loading image for edge tracing: %s", path)
    return detect_edges(_read_gray(path), params, padding)


def load_raster_mask(
    path: Union[str, Path],
    params: EdgeDetectionParams,
    envelope: Tuple[float, float],
    scale_percent: float = 100.0
) -> EdgeMask:
    """Decode an image file into a thresholded mask for scanline drawing.

    The image is resized to its drawn size in device units so that every
    mask row becomes one pass of the pen.
    """
    logger.info("Loading image for raster drawing: %s", path)
    gray = _read_gray(path)
    height, width = gray.shape

    transform = fit_to_envelope(width, height, envelope[0], envelope[1], scale_percent)
    target_w = max(1, int(round(width * transform.scale_x)))
    target_h = max(1, int(round(height * transform.scale_y)))
    resized = cv2.resize(gray, (target_w, target_h), interpolation=cv2.INTER_AREA)

    _, binary = cv2.threshold(resized, params.raster_threshold, 255, cv2.THRESH_BINARY_INV)

    logger.debug(
        "Raster mask: %dx%d → %dx%d, %d dark pixels",
        width, height, target_w, target_h, int(np.count_nonzero(binary)),
    )
    return EdgeMask(pixels=binary, width=target_w, height=target_h, padding=0)
