"""Job IR operations -- the vocabulary between polylines and wire commands.

Every motion command the plotter understands is an immutable, slotted
dataclass.  Operations use **semantic** names (``PenDown``, not ``G1 Z0``)
and **device units** (the coordinates of the work envelope, origin at
home).  Rendering to text happens only in ``drawbot.gcode.encoder``.

Grouping
--------
A *Stroke* is the list of operations for one pen-down polyline: lift,
travel to the start, lower, draw through the remaining points.  A *Program*
is the flat list sent to the device, bracketed by ``PenUp`` + ``Home`` on
both ends.
"""

from __future__ import annotations

import math
from abc import ABC
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Stroke = list["Operation"]
"""Operations for one continuous pen-down polyline."""

Program = list["Operation"]
"""A complete, bracketed command sequence."""

# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Operation(ABC):
    """Base class for all plotter operations."""

    pass


# ---------------------------------------------------------------------------
# Pen operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PenUp(Operation):
    """Lift the pen off the paper."""

    pass


@dataclass(frozen=True, slots=True)
class PenDown(Operation):
    """Lower the pen onto the paper.

    Only valid directly after a ``MoveTo`` to a stroke start.
    """

    pass


# ---------------------------------------------------------------------------
# Motion operations  (device units, absolute)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Home(Operation):
    """Return to the origin (0, 0)."""

    pass


@dataclass(frozen=True, slots=True)
class MoveTo(Operation):
    """Linear move to an absolute position.

    Draws when the pen is down, travels when it is up.

    Parameters
    ----------
    x, y : float
        Target in device units.
    """

    x: float
    y: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValueError(
                f"MoveTo requires finite coordinates, got ({self.x}, {self.y})"
            )


# ---------------------------------------------------------------------------
# Stroke helpers
# ---------------------------------------------------------------------------


def create_stroke(points: list[tuple[float, float]]) -> Stroke:
    """Build one stroke: lift -> travel to start -> lower -> draw.

    Parameters
    ----------
    points : list[tuple[float, float]]
        Ordered polyline vertices in device units.  Must have >= 2 points.

    Returns
    -------
    Stroke
        ``[PenUp, MoveTo(p0), PenDown, MoveTo(p1), ..., MoveTo(pn)]``
    """
    if len(points) < 2:
        raise ValueError("Stroke requires at least 2 points")
    x0, y0 = points[0]
    stroke: Stroke = [PenUp(), MoveTo(x0, y0), PenDown()]
    stroke.extend(MoveTo(x, y) for x, y in points[1:])
    return stroke


def check_program(ops: list[Operation]) -> None:
    """Verify pen bracketing of a command sequence.

    Raises
    ------
    ValueError
        If the sequence does not start and end with ``PenUp, Home``, if a
        ``PenDown`` is not directly preceded by a ``MoveTo``, or if two
        ``PenDown`` occur without an intervening move.
    """
    if len(ops) < 4:
        raise ValueError(f"Program too short to be bracketed: {len(ops)} ops")
    if not (isinstance(ops[0], PenUp) and isinstance(ops[1], Home)):
        raise ValueError("Program must start with PenUp, Home")
    if not (isinstance(ops[-2], PenUp) and isinstance(ops[-1], Home)):
        raise ValueError("Program must end with PenUp, Home")

    pen_down = False
    for idx, op in enumerate(ops):
        if isinstance(op, PenDown):
            if pen_down:
                raise ValueError(f"Second PenDown without PenUp at index {idx}")
            if not isinstance(ops[idx - 1], MoveTo):
                raise ValueError(f"PenDown at index {idx} not preceded by MoveTo")
            pen_down = True
        elif isinstance(op, PenUp):
            pen_down = False
        elif isinstance(op, Home) and pen_down:
            raise ValueError(f"Home with pen down at index {idx}")
