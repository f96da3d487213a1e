"""Pixel-chain tracing over binary edge masks.

Two extraction modes:
    1. VECTOR: greedy 8-connected chain walk (``trace_edges``)
    2. RASTER: one stroke per horizontal run of on-pixels (``trace_scanlines``)

The chain walk is a single pass, not a topological skeletonization: every
pixel joins at most one chain, and when several unvisited neighbors are on,
the first one in the fixed clockwise order N, NE, E, SE, S, SW, W, NW wins.
Results therefore depend on scan order, but are fully reproducible.

All coordinates are mask pixels ``(x, y) = (column, row)``, top-left origin,
+Y down.
"""

import logging
from typing import List, Tuple

import numpy as np

from ..utils.geometry import Polyline

logger = logging.getLogger(__name__)

# Clockwise from north, as (dx, dy) with +Y pointing down
NEIGHBOR_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (0, -1),   # N
    (1, -1),   # NE
    (1, 0),    # E
    (1, 1),    # SE
    (0, 1),    # S
    (-1, 1),   # SW
    (-1, 0),   # W
    (-1, -1),  # NW
)

DEFAULT_MIN_CHAIN_LENGTH = 5


def _as_bool_mask(mask: np.ndarray) -> np.ndarray:
    mask = np.asarray(mask)
    if mask.ndim != 2:
        raise ValueError(f"Edge mask must be 2-D, got shape {mask.shape}")
    return mask != 0


def trace_edges(mask: np.ndarray, min_length: int = DEFAULT_MIN_CHAIN_LENGTH) -> List[Polyline]:
    """Extract pixel chains from an edge mask.

    Parameters
    ----------
    mask : np.ndarray
        2-D array, nonzero = edge pixel. Not modified.
    min_length : int
        Chains with fewer pixels are discarded as noise

    Returns
    -------
    List[Polyline]
        Raw chains in scan order of their first pixel

    Raises
    ------
    ValueError
        If ``mask`` is not 2-D

    Notes
    -----
    Rows are scanned top to bottom, columns left to right. A chain starts
    at the first unvisited on-pixel and repeatedly steps to the first
    unvisited on-neighbor in clockwise order until none is left. The
    visited array is shared across chains, so tracing is O(pixel count).
    """
    on = _as_bool_mask(mask)
    rows, cols = on.shape
    visited = np.zeros_like(on, dtype=bool)

    chains: List[Polyline] = []
    discarded = 0

    for y0, x0 in zip(*np.nonzero(on)):
        if visited[y0, x0]:
            continue

        x, y = int(x0), int(y0)
        visited[y, x] = True
        chain: Polyline = [(float(x), float(y))]

        while True:
            for dx, dy in NEIGHBOR_OFFSETS:
                nx, ny = x + dx, y + dy
                if 0 <= nx < cols and 0 <= ny < rows and on[ny, nx] and not visited[ny, nx]:
                    visited[ny, nx] = True
                    x, y = nx, ny
                    chain.append((float(x), float(y)))
                    break
            else:
                break

        if len(chain) >= min_length:
            chains.append(chain)
        else:
            discarded += 1

    logger.debug(
        "Traced %d chains (%d below %d px discarded) from %dx%d mask",
        len(chains), discarded, min_length, cols, rows,
    )
    return chains


def trace_scanlines(mask: np.ndarray) -> List[Polyline]:
    """Turn every horizontal run of on-pixels into a two-point stroke.

    Returns
    -------
    List[Polyline]
        ``[(x_start, y), (x_end, y)]`` per run, rows top to bottom, runs
        left to right. A single-pixel run yields two identical points.
    """
    on = _as_bool_mask(mask)
    strokes: List[Polyline] = []

    for y, row in enumerate(on):
        # Pad with off-pixels so every run has a rising and a falling edge
        padded = np.concatenate(([False], row, [False])).astype(np.int8)
        changes = np.diff(padded)
        starts = np.flatnonzero(changes == 1)
        ends = np.flatnonzero(changes == -1) - 1
        for x_start, x_end in zip(starts, ends):
            strokes.append([(float(x_start), float(y)), (float(x_end), float(y))])

    logger.debug("Extracted %d scanline strokes", len(strokes))
    return strokes
