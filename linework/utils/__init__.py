"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Polyline geometry: simplify, smooth, order, scale (geometry)
    - Parameter validation (validators)
    - Atomic I/O and YAML loading (fs)
    - Unified logging (logging_config)

No module in utils/ may import from data_pipeline/ or from ``drawbot``.

Convenience imports:
    from linework.utils import fs, geometry, validators
    from linework.utils.logging_config import setup_logging, push_context
"""

from . import fs
from . import geometry
from . import validators

__all__ = ["fs", "geometry", "validators"]
