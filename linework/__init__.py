"""Linework: raster edge maps to ordered, plotter-ready polylines.

Subpackages:
    - utils: cross-cutting primitives (geometry, fs, validators, logging)
    - data_pipeline: edge tracing, OpenCV edge-mask adapter, orchestration

The device side (config, G-code, robot link) lives in ``drawbot``.
"""

__version__ = "0.1.0"
